"""
Missing-identifier Scanner：找出沒有 data-testid 的可見控制項

逐路由載入後，列出所有可見的互動 / 表單控制項，
沒有 data-testid 的記為 MissingIdentifier，寫出 missing-testids.json。
"""

from __future__ import annotations

from pathlib import Path

from auditor.models import MissingIdentifier, Route
from auditor.report import iso_now, write_artifact
from auditor.snapshots import SnapshotService
from auditor.traversal import RouteNavigator
from core.exceptions import AuditFailedError, RouteLoadError
from utils.logger import logger

REPORT_FILENAME = "missing-testids.json"
SCANNER_NAME = "missing_testid_scan"


class MissingIdentifierScanner:

    def __init__(self, navigator: RouteNavigator, snapshots: SnapshotService, mode: str):
        self.navigator = navigator
        self.snapshots = snapshots
        self.mode = mode
        self.routes: list[Route] = []
        self.missing: list[MissingIdentifier] = []
        self.route_errors: list[dict] = []

    def scan(self, routes: list[Route]) -> list[MissingIdentifier]:
        self.routes = list(routes)
        for route in self.routes:
            try:
                self.navigator.safe_goto(route.path)
            except RouteLoadError as e:
                logger.error(f"[MissingIds] {route.id} 無法載入: {e}")
                self.route_errors.append({"routeId": route.id, "routePath": route.path, "error": str(e)})
                continue
            found = self.scan_current(route)
            if found:
                logger.warning(f"[MissingIds] {route.id} 有 {len(found)} 個控制項缺少 data-testid")
        return self.missing

    def scan_current(self, route: Route) -> list[MissingIdentifier]:
        """檢查目前頁面，同一路由內相同的控制項只記一次"""
        seen: set[tuple] = set()
        found: list[MissingIdentifier] = []
        for raw in self.snapshots.identifier_required_elements():
            if raw.get("testId"):
                continue
            item = MissingIdentifier(
                route_id=route.id,
                route_path=route.path,
                tag_name=raw.get("tagName") or "unknown",
                role=raw.get("role") or None,
                label=raw.get("label") or "unknown",
                outer_html=raw.get("outerHtml") or "",
            )
            identity = (item.tag_name, item.role, item.label, item.outer_html)
            if identity in seen:
                continue
            seen.add(identity)
            found.append(item)
        self.missing.extend(found)
        return found

    def to_dict(self) -> dict:
        return {
            "mode": self.mode,
            "generatedAt": iso_now(),
            "totalRoutes": len(self.routes),
            "routeErrorCount": len(self.route_errors),
            "missingCount": len(self.missing),
            "routeErrors": self.route_errors,
            "missing": [m.to_dict() for m in self.missing],
        }

    def write(self, out_dir: str | Path) -> Path:
        path = write_artifact(out_dir, REPORT_FILENAME, self.to_dict())
        logger.info(f"[MissingIds] 已寫出 {path} (缺少 {len(self.missing)})")
        return path

    def assert_clean(self, report_path: str | Path = "") -> None:
        if not self.missing and not self.route_errors:
            return
        raise AuditFailedError(
            route_errors=len(self.route_errors),
            failures=len(self.missing),
            report_path=str(report_path),
            scanner=SCANNER_NAME,
        )
