"""
Route Traversal Controller：逐路由的 發現 → 分類 → 復原 迴圈

每個路由的狀態機：
    Load → DiscoverBatch → ClassifyOne → Restore → (DiscoverBatch | Done)

- Load：safe_goto() 導航、等 readyState、補注入訊號計數器、短暫 settle；
        失敗記為 RouteError，繼續下一個路由
- DiscoverBatch：取可視互動元素，略過本路由已處理過的 GlobalKey
- ClassifyOne：快取 → 連結預檢 → live 分類器；Dead 另記 DeadClick
- Restore：只有實際點擊過才需要；按兩次 Escape、必要時恢復登入、
           回到原路由（失敗就整頁重載），然後重新發現
- 結束：一整批都沒有新元素，或本路由已分類 max_elements_per_route 個

任何單一元素或路由的失敗都不會中斷整次 run；
最後由 ReportBuilder.assert_clean() 統一判定。
"""

from __future__ import annotations

import time
from typing import Callable
from urllib.parse import urljoin, urlsplit

import requests
from selenium.common.exceptions import (
    StaleElementReferenceException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.common.action_chains import ActionChains
from selenium.webdriver.common.keys import Keys

from auditor.classifier import ActionClassifier, ClassifierSettings
from auditor.instrumentation import SignalRegistry
from auditor.link_verifier import LinkPreVerifier
from auditor.models import ActionOutcome, DeadClick, InteractionRecord, Route
from auditor.report import ReportBuilder
from auditor.session import SessionBootstrap
from auditor.snapshots import DiscoveredElement, SnapshotService
from auditor.verification_cache import GlobalVerificationCache
from config.config import Config
from core.exceptions import AuditFrameworkError, ElementStaleError, RouteLoadError
from utils.logger import logger
from utils.wait_helper import wait_for


def pathname(url: str) -> str:
    return urlsplit(url).path or "/"


def _driver_error(e: WebDriverException) -> str:
    return f"{type(e).__name__}: {e.msg}" if e.msg else type(e).__name__


class RouteNavigator:
    """導航到路由並確認可用；三個掃描器共用"""

    def __init__(
        self,
        driver,
        registry: SignalRegistry | None = None,
        base_url: str | None = None,
        settle_delay: float | None = None,
        probe_status: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.driver = driver
        self.registry = registry
        self.base_url = (base_url or Config.BASE_URL).rstrip("/") + "/"
        self.settle_delay = Config.SETTLE_DELAY if settle_delay is None else settle_delay
        self.probe_status = probe_status
        self._sleep = sleep
        self._http = requests.Session()

    def url_for(self, path: str) -> str:
        return urljoin(self.base_url, path.lstrip("/"))

    def safe_goto(self, path: str) -> str:
        """
        導航到路由並等待頁面可用。

        Returns:
            實際落地的 pathname（可能因 redirect 而不同）

        Raises:
            RouteLoadError: 導航失敗、逾時或 HTTP >= 400
        """
        url = self.url_for(path)
        try:
            self.driver.get(url)
            wait_for(
                lambda: self.driver.execute_script("return document.readyState") == "complete",
                timeout=Config.PAGE_LOAD_TIMEOUT,
                interval=0.1,
                message=f"{path} 載入逾時",
            )
        except (TimeoutException, TimeoutError) as e:
            raise RouteLoadError(path, reason=str(e).splitlines()[0] if str(e) else "timeout")
        except WebDriverException as e:
            raise RouteLoadError(path, reason=(e.msg or type(e).__name__))

        status = self._probe_status(url)
        if status is not None and status >= 400:
            raise RouteLoadError(path, reason="HTTP 狀態異常", status=status)

        if self.registry is not None:
            self.registry.ensure(self.driver)
        self._sleep(self.settle_delay)
        return self.current_pathname()

    def current_pathname(self) -> str:
        try:
            return pathname(self.driver.current_url)
        except WebDriverException:
            return ""

    def _probe_status(self, url: str) -> int | None:
        """帶瀏覽器 cookie 的額外 GET，只用來讀 HTTP 狀態碼"""
        if not self.probe_status:
            return None
        try:
            cookies = {c["name"]: c["value"] for c in self.driver.get_cookies() if "name" in c}
            resp = self._http.get(url, cookies=cookies, timeout=Config.LINK_CHECK_TIMEOUT)
        except (requests.RequestException, WebDriverException) as e:
            logger.debug(f"[Navigator] 狀態探測失敗 {url}: {e}")
            return None
        return resp.status_code


class RouteTraversalController:
    """
    用法:
        registry = SignalRegistry()
        registry.install(driver)
        report = ReportBuilder(mode, routes)
        RouteTraversalController(driver, report, mode, registry=registry).run(routes)
    """

    def __init__(
        self,
        driver,
        report: ReportBuilder,
        mode: str,
        registry: SignalRegistry | None = None,
        session: SessionBootstrap | None = None,
        snapshots: SnapshotService | None = None,
        classifier: ActionClassifier | None = None,
        link_verifier: LinkPreVerifier | None = None,
        cache: GlobalVerificationCache | None = None,
        navigator: RouteNavigator | None = None,
        max_elements_per_route: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.driver = driver
        self.report = report
        self.mode = mode
        self.registry = registry or SignalRegistry()
        self.session = session
        self.snapshots = snapshots or SnapshotService(driver, self.registry)
        self.classifier = classifier or ActionClassifier(
            driver, self.snapshots, ClassifierSettings.from_config(), sleep=sleep
        )
        self.link_verifier = link_verifier or LinkPreVerifier(driver)
        self.cache = cache if cache is not None else GlobalVerificationCache()
        self.navigator = navigator or RouteNavigator(driver, self.registry, sleep=sleep)
        self.max_elements_per_route = (
            Config.MAX_ELEMENTS_PER_ROUTE if max_elements_per_route is None else max_elements_per_route
        )
        self._sleep = sleep
        self.live_clicks = 0

    # ── 對外 ──

    def run(self, routes: list[Route]) -> ReportBuilder:
        for route in routes:
            logger.info(f"[Traversal] 造訪 {route.id} {route.path}")
            try:
                self._ensure_session()
                resolved = self.safe_goto(route.path)
            except AuditFrameworkError as e:
                self.report.add_route_error(route, e)
                continue
            except WebDriverException as e:
                self.report.add_route_error(route, _driver_error(e))
                continue

            try:
                count = self.scan_route(route, resolved)
            except AuditFrameworkError as e:
                # 復原失敗：已記錄的紀錄保留，該路由到此為止
                self.report.add_route_error(route, e)
                continue
            except WebDriverException as e:
                # 瀏覽器本身出狀況（視窗消失、alert 擋住）：同樣只中斷該路由
                self.report.add_route_error(route, _driver_error(e))
                continue
            logger.info(f"[Traversal] {route.id} 完成，處理 {count} 個元素")

        logger.info(f"[Traversal] 快取統計: {self.cache.stats}，實際點擊 {self.live_clicks} 次")
        for canonical, usage in self.cache.reuse_counts().items():
            logger.debug(f"[Traversal] 重用 {usage['hits']} 次 (首見於 {usage['route_id']}): {canonical}")
        return self.report

    def safe_goto(self, path: str) -> str:
        return self.navigator.safe_goto(path)

    def scan_route(self, route: Route, resolved_pathname: str) -> int:
        """處理單一路由，回傳分類（含快取命中）的元素數"""
        visited: set[str] = set()
        processed = 0

        while processed < self.max_elements_per_route:
            batch = self.snapshots.interactive_elements()
            progressed = False

            for discovered in batch:
                canonical = discovered.key.canonical()
                if canonical in visited:
                    continue
                visited.add(canonical)
                progressed = True

                try:
                    clicked = self._classify_one(route, resolved_pathname, discovered)
                except (ElementStaleError, StaleElementReferenceException):
                    logger.debug(f"[Traversal] 元素已失效，略過: {discovered.snapshot.describe()}")
                    continue

                processed += 1
                if processed >= self.max_elements_per_route:
                    logger.warning(
                        f"[Traversal] {route.id} 達到每路由上限 {self.max_elements_per_route}，停止"
                    )
                    break
                if clicked:
                    # DOM 可能已變，剩下的 batch 作廢
                    self.restore(route, resolved_pathname)
                    break

            if not progressed:
                break

        return processed

    def restore(self, route: Route, resolved_pathname: str) -> None:
        """
        點擊後把頁面帶回原路由狀態。

        Raises:
            RouteLoadError: 回到原路由與整頁重載都失敗
            SessionError: 無法恢復登入狀態
        """
        self._close_overlays()
        self._ensure_session()

        current = self.navigator.current_pathname()
        if current == resolved_pathname:
            return

        logger.debug(f"[Traversal] 已離開 {resolved_pathname} (目前 {current})，返回中")
        try:
            self.safe_goto(route.path)
        except RouteLoadError as e:
            logger.warning(f"[Traversal] 返回 {route.path} 失敗，整頁重載: {e}")
            try:
                self.driver.get("about:blank")
            except WebDriverException as blank_error:
                logger.debug(f"[Traversal] about:blank 失敗: {blank_error}")
            self.safe_goto(route.path)

    # ── 內部 ──

    def _classify_one(self, route: Route, resolved_pathname: str, discovered: DiscoveredElement) -> bool:
        """
        快取 → 連結預檢 → live 分類。

        Returns:
            是否實際點擊（需要 Restore）
        """
        snap = discovered.snapshot
        key = discovered.key

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"[Traversal] 快取命中 {snap.describe()} → {cached.action}")
            self._record(route, resolved_pathname, discovered, cached, reused=True)
            return False

        clicked = False
        if self.link_verifier.should_verify(snap):
            outcome = self.link_verifier.verify(snap, self._page_url(resolved_pathname))
        else:
            clicked = not snap.disabled
            outcome = self.classifier.classify(discovered)
            if clicked:
                self.live_clicks += 1

        self.cache.put(key, outcome, route_id=route.id)
        self._record(route, resolved_pathname, discovered, outcome)
        return clicked

    def _record(
        self,
        route: Route,
        resolved_pathname: str,
        discovered: DiscoveredElement,
        outcome: ActionOutcome,
        reused: bool = False,
    ) -> None:
        snap = discovered.snapshot
        self.report.add_interaction(
            InteractionRecord.build(route, resolved_pathname, self.mode, snap, outcome, reused=reused)
        )
        if outcome.is_dead:
            self.report.add_dead_click(DeadClick.build(route, resolved_pathname, snap))
        logger.debug(f"[Traversal] {route.id} {snap.describe()} → {outcome.action}")

    def _page_url(self, resolved_pathname: str) -> str:
        """連結預檢的基準 URL；讀不到就用已落地的路由"""
        try:
            return self.snapshots.current_url
        except WebDriverException as e:
            logger.debug(f"[Traversal] 無法讀取目前 URL，改用 {resolved_pathname}: {e}")
            return self.navigator.url_for(resolved_pathname)

    def _close_overlays(self) -> None:
        for _ in range(2):
            try:
                ActionChains(self.driver).send_keys(Keys.ESCAPE).perform()
            except WebDriverException as e:
                logger.debug(f"[Traversal] Escape 失敗: {e}")
            self._sleep(0.15)

    def _ensure_session(self) -> None:
        if self.session is None or self.mode != "signed-in":
            return
        if not self.session.has_active_session(self.driver):
            logger.info("[Traversal] session 已失效，重新建立")
            self.session.ensure(self.driver, self.mode)
