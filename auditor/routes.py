"""
路由清單載入與動態發現

支援從 JSON / YAML 載入路由清單：
    [
      {"id": "home", "label": "Home", "path": "/en"},
      {"id": "practice", "label": "Practice", "path": "/en/practice",
       "expects": ["practice-start"]}
    ]
YAML 也可以寫成 {routes: [...]}。

深層頁面（例如某一課）的網址不固定時，改寫 discover 取代 path，
連線後到列表頁找第一個符合 selector 的連結：
      {"id": "lesson", "label": "Lesson",
       "discover": {"from": "/en/learn", "selector": "a[href*=\"/lessons/\"]"}}

用法：
    from auditor.routes import load_routes, limit_routes, resolve_discovered

    routes = limit_routes(load_routes("config/routes.yaml"), Config.MAX_ROUTES)
    routes = resolve_discovered(driver, routes)
"""

import json
from pathlib import Path
from urllib.parse import urljoin, urlsplit

import yaml
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.common.by import By

from auditor.models import Route, RouteDiscovery
from config.config import Config
from core.exceptions import RouteCatalogError
from utils.logger import logger


def _read_json(path: Path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _read_yaml(path: Path):
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


_READERS = {
    ".json": _read_json,
    ".yaml": _read_yaml,
    ".yml": _read_yaml,
}


def parse_routes(data, source: str = "<memory>") -> list[Route]:
    """把已解析的 list[dict]（或 {routes: [...]}）轉成 Route"""
    if isinstance(data, dict) and "routes" in data:
        data = data["routes"]
    if not isinstance(data, list):
        raise RouteCatalogError(source, "最外層必須是 list 或含 routes 的 dict")

    routes: list[Route] = []
    seen: set[str] = set()
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            raise RouteCatalogError(source, f"第 {i} 筆不是物件")
        discover = _parse_discovery(item.get("discover"), source, i)
        required = ("id",) if discover else ("id", "path")
        missing = [k for k in required if not item.get(k)]
        if missing:
            raise RouteCatalogError(source, f"第 {i} 筆缺少欄位: {', '.join(missing)}")
        route_id = str(item["id"])
        if route_id in seen:
            raise RouteCatalogError(source, f"重複的路由 id: {route_id}")
        seen.add(route_id)

        # discover 路由在解析前先以列表頁當作 path
        path = _normalize_path(str(item.get("path") or discover.listing_path))
        expects = item.get("expects") or ()
        if isinstance(expects, str):
            expects = (expects,)
        routes.append(
            Route(
                id=route_id,
                label=str(item.get("label") or route_id),
                path=path,
                expects=tuple(str(e) for e in expects),
                discover=discover,
            )
        )
    return routes


def _normalize_path(path: str) -> str:
    return path if path.startswith("/") else "/" + path


def _parse_discovery(raw, source: str, index: int) -> RouteDiscovery | None:
    if raw is None:
        return None
    if not isinstance(raw, dict) or not raw.get("from") or not raw.get("selector"):
        raise RouteCatalogError(source, f"第 {index} 筆的 discover 需要 from 與 selector")
    return RouteDiscovery(listing_path=_normalize_path(str(raw["from"])), selector=str(raw["selector"]))


def load_routes(path: str | Path) -> list[Route]:
    """
    自動偵測格式並載入路由清單。

    Raises:
        RouteCatalogError: 檔案不存在、格式不支援或內容無效
    """
    path = Path(path)
    reader = _READERS.get(path.suffix.lower())
    if reader is None:
        raise RouteCatalogError(
            str(path), f"不支援的檔案格式: {path.suffix} (支援: {', '.join(_READERS)})"
        )
    if not path.exists():
        raise RouteCatalogError(str(path), "檔案不存在")
    try:
        data = reader(path)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise RouteCatalogError(str(path), f"解析失敗: {e}")

    routes = parse_routes(data, source=str(path))
    logger.info(f"[Routes] 已載入 {len(routes)} 個路由: {path}")
    return routes


def limit_routes(routes: list[Route], max_routes: int | None = None) -> list[Route]:
    """max_routes <= 0 代表全部"""
    max_routes = Config.MAX_ROUTES if max_routes is None else max_routes
    return routes[:max_routes] if max_routes > 0 else list(routes)


def discover_route(
    driver,
    listing_path: str,
    link_selector: str,
    route_id: str,
    label: str,
    base_url: str | None = None,
) -> Route | None:
    """
    到列表頁找第一個符合 selector 的深層連結，當作額外路由。

    找不到或導航失敗時回傳 None（不影響其他路由）。
    """
    base = (base_url or Config.BASE_URL).rstrip("/") + "/"
    listing_url = urljoin(base, listing_path.lstrip("/"))
    try:
        driver.get(listing_url)
        links = driver.find_elements(By.CSS_SELECTOR, link_selector)
        href = next((h for h in (link.get_attribute("href") for link in links) if h), None)
    except WebDriverException as e:
        logger.warning(f"[Routes] 無法從 {listing_path} 發現 {route_id}: {e}")
        return None

    if href is None:
        logger.info(f"[Routes] {listing_path} 沒有符合 {link_selector} 的連結")
        return None

    parts = urlsplit(urljoin(listing_url, href))
    path = parts.path + (f"?{parts.query}" if parts.query else "")
    logger.info(f"[Routes] 發現 {route_id}: {path}")
    return Route(id=route_id, label=label, path=path)


def resolve_discovered(driver, routes: list[Route], base_url: str | None = None) -> list[Route]:
    """
    把帶 discover 的路由換成實際發現的深層連結。

    找不到連結的路由直接略過，其餘路由順序不變。
    """
    resolved: list[Route] = []
    for route in routes:
        if route.discover is None:
            resolved.append(route)
            continue
        found = discover_route(
            driver, route.discover.listing_path, route.discover.selector, route.id, route.label, base_url
        )
        if found is None:
            logger.warning(f"[Routes] 略過 {route.id}：{route.discover.listing_path} 沒有可用的連結")
            continue
        resolved.append(Route(id=route.id, label=route.label, path=found.path, expects=route.expects))
    return resolved
