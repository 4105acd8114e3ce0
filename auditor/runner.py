"""
AuditRunner：串接單次稽核 run 的控制器

一次 run = 一個 driver、一個模式、一份 SignalRegistry 與快取：
1. 建立 / 接上 driver，注入訊號計數器
2. 建立模式所需的登入狀態
3. 解析帶 discover 的路由（同一次 run 只解析一次）
4. 依序跑三個掃描器，各自寫出 JSON
5. dead click 掃描另外產出 report.html

產出（<report_dir>/<mode>/）：
- interaction-inventory.json：dead click 掃描
- missing-testids.json：缺少 data-testid 的控制項
- journey-results.json：journey 覆蓋
- report.html：HTML 報告

寫檔一律先於斷言；失敗時拋 AuditFailedError。
"""

from __future__ import annotations

from pathlib import Path

from auditor.html_report import HtmlReportGenerator
from auditor.instrumentation import SignalRegistry
from auditor.journeys import JourneyCoverageScanner
from auditor.missing_ids import MissingIdentifierScanner
from auditor.models import Route
from auditor.report import ReportBuilder
from auditor.routes import resolve_discovered
from auditor.session import AnonymousSession, SessionBootstrap
from auditor.snapshots import SnapshotService
from auditor.traversal import RouteNavigator, RouteTraversalController
from config.config import Config
from core.driver_manager import DriverManager
from utils.logger import logger


class AuditRunner:
    """
    用法:
        runner = AuditRunner(mode="signed-out")
        runner.connect()
        try:
            runner.dead_click_scan(routes)
        finally:
            runner.disconnect()
    """

    def __init__(
        self,
        mode: str | None = None,
        report_dir: str | Path | None = None,
        session: SessionBootstrap | None = None,
        base_url: str | None = None,
    ):
        self.mode = Config.validate_mode(mode)
        self.out_dir = Path(report_dir or Config.REPORT_DIR) / self.mode
        self.session = session or AnonymousSession()
        self.base_url = base_url or Config.BASE_URL
        self.driver = None
        self.registry = SignalRegistry()
        self._owns_driver = False
        self._discovered: dict[str, Route | None] = {}

    def connect(self, driver=None, browser: str | None = None) -> None:
        """
        Args:
            driver: 已有的 driver（pytest fixture 傳入）；None 時由 DriverManager 建立
        """
        if driver is None:
            driver = DriverManager.create_driver(browser)
            self._owns_driver = True
        self.driver = driver
        self.registry.install(driver)
        self.session.ensure(driver, self.mode)
        logger.info(f"[Runner] 已就緒: mode={self.mode} base_url={self.base_url}")

    def disconnect(self) -> None:
        if self._owns_driver:
            DriverManager.quit_driver()
        self.driver = None

    # ── 掃描器 ──

    def navigator(self) -> RouteNavigator:
        return RouteNavigator(self.driver, self.registry, base_url=self.base_url)

    def snapshots(self) -> SnapshotService:
        return SnapshotService(self.driver, self.registry)

    def resolve_routes(self, routes: list[Route]) -> list[Route]:
        """帶 discover 的路由換成實際連結；結果快取，三個掃描器看到同一份路由"""
        pending = [r for r in routes if r.discover is not None and r.id not in self._discovered]
        if pending:
            found = {r.id: r for r in resolve_discovered(self.driver, pending, base_url=self.base_url)}
            for route in pending:
                self._discovered[route.id] = found.get(route.id)

        resolved = []
        for route in routes:
            if route.discover is None:
                resolved.append(route)
            elif self._discovered[route.id] is not None:
                resolved.append(self._discovered[route.id])
        return resolved

    def dead_click_scan(self, routes: list[Route], assert_clean: bool = True) -> ReportBuilder:
        routes = self.resolve_routes(routes)
        report = ReportBuilder(self.mode, routes)
        controller = RouteTraversalController(
            self.driver,
            report,
            self.mode,
            registry=self.registry,
            session=self.session,
            snapshots=self.snapshots(),
            navigator=self.navigator(),
        )
        controller.run(routes)

        path = report.write(self.out_dir)
        HtmlReportGenerator(path).generate(self.out_dir / "report.html")
        if assert_clean:
            report.assert_clean(path)
        return report

    def missing_testid_scan(self, routes: list[Route], assert_clean: bool = True) -> MissingIdentifierScanner:
        routes = self.resolve_routes(routes)
        scanner = MissingIdentifierScanner(self.navigator(), self.snapshots(), self.mode)
        scanner.scan(routes)
        path = scanner.write(self.out_dir)
        if assert_clean:
            scanner.assert_clean(path)
        return scanner

    def journey_coverage(self, routes: list[Route], assert_clean: bool = True) -> JourneyCoverageScanner:
        routes = self.resolve_routes(routes)
        scanner = JourneyCoverageScanner(self.navigator(), self.snapshots(), self.mode)
        scanner.scan(routes)
        path = scanner.write(self.out_dir)
        if assert_clean:
            scanner.assert_clean(path)
        return scanner
