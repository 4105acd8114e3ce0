"""
Journey-coverage Scanner：每個路由至少要看得到一個預期的 journey 入口

Route.expects 列出該路由的候選 data-testid，只要其中一個可見即通過。
沒有設定 expects 的路由本身就算失敗（避免新路由默默沒有覆蓋）。
結果寫到 journey-results.json。
"""

from __future__ import annotations

from pathlib import Path

from auditor.models import JourneyFailure, Route
from auditor.report import iso_now, write_artifact
from auditor.snapshots import SnapshotService
from auditor.traversal import RouteNavigator
from core.exceptions import AuditFailedError, RouteLoadError
from utils.logger import logger

REPORT_FILENAME = "journey-results.json"
SCANNER_NAME = "journey_coverage"


class JourneyCoverageScanner:

    def __init__(self, navigator: RouteNavigator, snapshots: SnapshotService, mode: str):
        self.navigator = navigator
        self.snapshots = snapshots
        self.mode = mode
        self.routes: list[Route] = []
        self.failures: list[JourneyFailure] = []

    def scan(self, routes: list[Route]) -> list[JourneyFailure]:
        self.routes = list(routes)
        for route in self.routes:
            failure = self.check(route)
            if failure is not None:
                logger.warning(f"[Journey] {route.id} 未通過: {failure.error}")
                self.failures.append(failure)
            else:
                logger.info(f"[Journey] {route.id} 通過")
        return self.failures

    def check(self, route: Route) -> JourneyFailure | None:
        expected = list(route.expects)
        try:
            resolved = self.navigator.safe_goto(route.path)
        except RouteLoadError as e:
            return JourneyFailure(route.id, route.path, None, expected, str(e))

        if not expected:
            return JourneyFailure(
                route.id, route.path, resolved, expected,
                f"No journey testIds configured for routeId={route.id}",
            )

        if self.snapshots.any_visible_test_id(expected) is None:
            return JourneyFailure(
                route.id, route.path, resolved, expected,
                f"Expected one of these data-testids to be visible: {', '.join(expected)}",
            )
        return None

    def to_dict(self) -> dict:
        return {
            "mode": self.mode,
            "generatedAt": iso_now(),
            "totalRoutes": len(self.routes),
            "failures": [f.to_dict() for f in self.failures],
        }

    def write(self, out_dir: str | Path) -> Path:
        path = write_artifact(out_dir, REPORT_FILENAME, self.to_dict())
        logger.info(f"[Journey] 已寫出 {path} (失敗 {len(self.failures)})")
        return path

    def assert_clean(self, report_path: str | Path = "") -> None:
        if not self.failures:
            return
        raise AuditFailedError(failures=len(self.failures), report_path=str(report_path), scanner=SCANNER_NAME)
