"""
auditor.routes 單元測試
驗證 JSON / YAML 路由清單載入、驗證與動態發現。
"""

import json
from unittest.mock import MagicMock

import pytest
from selenium.common.exceptions import WebDriverException

from auditor.models import Route, RouteDiscovery
from auditor.routes import discover_route, limit_routes, load_routes, parse_routes, resolve_discovered
from config.config import CONFIG_DIR
from core.exceptions import RouteCatalogError


@pytest.mark.unit
class TestParseRoutes:

    def test_list(self):
        routes = parse_routes([{"id": "home", "label": "Home", "path": "/en"}])
        assert routes == [Route("home", "Home", "/en")]

    def test_routes_key_and_defaults(self):
        routes = parse_routes({"routes": [{"id": "about", "path": "en/about", "expects": "about-hero"}]})
        assert routes[0].label == "about"
        assert routes[0].path == "/en/about"
        assert routes[0].expects == ("about-hero",)

    def test_expects_list(self):
        routes = parse_routes([{"id": "p", "path": "/p", "expects": ["a", "b"]}])
        assert routes[0].expects == ("a", "b")

    def test_discover_entry_without_path(self):
        routes = parse_routes([{"id": "lesson", "discover": {"from": "en/learn", "selector": "a.lesson"}}])
        assert routes[0].path == "/en/learn"
        assert routes[0].discover == RouteDiscovery("/en/learn", "a.lesson")

    def test_order_preserved(self):
        data = [{"id": str(i), "path": f"/{i}"} for i in range(5)]
        assert [r.id for r in parse_routes(data)] == ["0", "1", "2", "3", "4"]

    @pytest.mark.parametrize(
        "data, reason",
        [
            ("nope", "list"),
            ([1], "不是物件"),
            ([{"id": "x"}], "path"),
            ([{"path": "/x"}], "id"),
            ([{"id": "x", "path": "/a"}, {"id": "x", "path": "/b"}], "重複"),
            ([{"id": "x", "discover": {"from": "/learn"}}], "discover"),
            ([{"id": "x", "discover": "/learn"}], "discover"),
        ],
    )
    def test_invalid(self, data, reason):
        with pytest.raises(RouteCatalogError, match=reason):
            parse_routes(data)


@pytest.mark.unit
class TestLoadRoutes:

    def test_json(self, tmp_path):
        path = tmp_path / "routes.json"
        path.write_text(json.dumps([{"id": "home", "path": "/en"}]), encoding="utf-8")
        assert load_routes(path)[0].path == "/en"

    def test_yaml(self, tmp_path):
        path = tmp_path / "routes.yml"
        path.write_text("routes:\n  - id: home\n    path: /en\n    expects: [home-start]\n", encoding="utf-8")
        assert load_routes(path)[0].expects == ("home-start",)

    def test_bundled_example(self):
        routes = load_routes(CONFIG_DIR / "routes.example.yaml")
        assert [r.id for r in routes][:2] == ["home", "practice"]
        assert any(r.discover is not None for r in routes)
        assert all(r.expects for r in routes)

    def test_unsupported_suffix(self, tmp_path):
        with pytest.raises(RouteCatalogError, match="不支援"):
            load_routes(tmp_path / "routes.toml")

    def test_missing_file(self, tmp_path):
        with pytest.raises(RouteCatalogError, match="不存在"):
            load_routes(tmp_path / "nope.json")

    def test_broken_json(self, tmp_path):
        path = tmp_path / "routes.json"
        path.write_text("[{", encoding="utf-8")
        with pytest.raises(RouteCatalogError, match="解析失敗"):
            load_routes(path)

    def test_broken_yaml(self, tmp_path):
        path = tmp_path / "routes.yaml"
        path.write_text("routes: [\n", encoding="utf-8")
        with pytest.raises(RouteCatalogError, match="解析失敗"):
            load_routes(path)


@pytest.mark.unit
class TestLimitRoutes:

    ROUTES = [Route(str(i), str(i), f"/{i}") for i in range(4)]

    def test_limit(self):
        assert len(limit_routes(self.ROUTES, 2)) == 2

    def test_zero_means_all(self):
        assert limit_routes(self.ROUTES, 0) == self.ROUTES


@pytest.mark.unit
class TestDiscoverRoute:

    def test_first_matching_link(self):
        driver = MagicMock()
        first, second = MagicMock(), MagicMock()
        first.get_attribute.return_value = None
        second.get_attribute.return_value = "https://app.test/en/lessons/42?step=1"
        driver.find_elements.return_value = [first, second]

        route = discover_route(
            driver, "/en/learn", 'a[href*="/lessons/"]', "lesson", "Lesson", base_url="https://app.test"
        )

        driver.get.assert_called_once_with("https://app.test/en/learn")
        assert route == Route("lesson", "Lesson", "/en/lessons/42?step=1")

    def test_no_link(self):
        driver = MagicMock()
        driver.find_elements.return_value = []
        assert discover_route(driver, "/en/learn", "a", "lesson", "Lesson", base_url="https://app.test") is None

    def test_navigation_error(self):
        driver = MagicMock()
        driver.get.side_effect = WebDriverException("down")
        assert discover_route(driver, "/en/learn", "a", "lesson", "Lesson", base_url="https://app.test") is None


@pytest.mark.unit
class TestResolveDiscovered:

    LESSON = Route("lesson", "Lesson", "/en/learn", ("lesson-start",), RouteDiscovery("/en/learn", "a.lesson"))
    HOME = Route("home", "Home", "/en")

    def _driver(self, href):
        driver = MagicMock()
        link = MagicMock()
        link.get_attribute.return_value = href
        driver.find_elements.return_value = [link] if href else []
        return driver

    def test_replaced_with_discovered_link(self):
        driver = self._driver("https://app.test/en/lessons/7")
        routes = resolve_discovered(driver, [self.HOME, self.LESSON], base_url="https://app.test")

        assert routes == [self.HOME, Route("lesson", "Lesson", "/en/lessons/7", ("lesson-start",))]
        driver.get.assert_called_once_with("https://app.test/en/learn")

    def test_dropped_when_nothing_found(self):
        routes = resolve_discovered(self._driver(None), [self.LESSON, self.HOME], base_url="https://app.test")
        assert routes == [self.HOME]

    def test_plain_routes_untouched(self):
        driver = MagicMock()
        assert resolve_discovered(driver, [self.HOME]) == [self.HOME]
        driver.get.assert_not_called()
