"""
Report Builder：單次稽核 run 的紀錄與輸出

累積 InteractionRecord / DeadClick / RouteError，
最後寫出 interaction-inventory.json，再做整體斷言。

JSON 欄位（固定契約）:
    mode, generatedAt, totalRoutes, routes, totalInteractions,
    routeErrorCount, deadClickCount, routeErrors, interactions, deadClicks

用法：
    report = ReportBuilder(mode="signed-out", routes=routes)
    ...
    path = report.write(out_dir)
    report.assert_clean(path)      # 有 dead click / route error 時拋 AuditFailedError
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from auditor.models import DeadClick, InteractionRecord, Route, RouteError
from core.exceptions import AuditFailedError
from utils.logger import logger

REPORT_FILENAME = "interaction-inventory.json"


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def write_artifact(out_dir: str | Path, filename: str, payload: dict) -> Path:
    """寫出 JSON 產出物（縮排 2）"""
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    path = out / filename
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    return path


class ReportBuilder:
    """append-only 的稽核紀錄"""

    def __init__(self, mode: str, routes: list[Route] | None = None, clock=iso_now):
        self.mode = mode
        self.routes: list[Route] = list(routes or [])
        self.interactions: list[InteractionRecord] = []
        self.dead_clicks: list[DeadClick] = []
        self.route_errors: list[RouteError] = []
        self._clock = clock

    # ── 累積 ──

    def add_interaction(self, record: InteractionRecord) -> None:
        self.interactions.append(record)

    def add_dead_click(self, dead: DeadClick) -> None:
        self.dead_clicks.append(dead)
        logger.warning(f"[Report] dead click: {dead.route_path} → {dead.selector} ({dead.label})")

    def add_route_error(self, route: Route, error: Exception | str) -> None:
        self.route_errors.append(RouteError(route_id=route.id, route_path=route.path, error=str(error)))
        logger.error(f"[Report] 路由錯誤 {route.id} {route.path}: {error}")

    @property
    def is_clean(self) -> bool:
        return not self.dead_clicks and not self.route_errors

    # ── 輸出 ──

    def to_dict(self) -> dict:
        return {
            "mode": self.mode,
            "generatedAt": self._clock(),
            "totalRoutes": len(self.routes),
            "routes": [r.to_dict() for r in self.routes],
            "totalInteractions": len(self.interactions),
            "routeErrorCount": len(self.route_errors),
            "deadClickCount": len(self.dead_clicks),
            "routeErrors": [e.to_dict() for e in self.route_errors],
            "interactions": [i.to_dict() for i in self.interactions],
            "deadClicks": [d.to_dict() for d in self.dead_clicks],
        }

    def write(self, out_dir: str | Path) -> Path:
        """寫出 JSON 報告，回傳檔案路徑"""
        path = write_artifact(out_dir, REPORT_FILENAME, self.to_dict())
        logger.info(
            f"[Report] 已寫出 {path} (互動 {len(self.interactions)}，"
            f"dead click {len(self.dead_clicks)}，路由錯誤 {len(self.route_errors)})"
        )
        return path

    def assert_clean(self, report_path: str | Path = "") -> None:
        """
        Raises:
            AuditFailedError: 有任何 dead click 或路由錯誤
        """
        if self.is_clean:
            logger.info("[Report] 稽核通過: 0 dead click，0 路由錯誤")
            return
        raise AuditFailedError(
            dead_clicks=len(self.dead_clicks),
            route_errors=len(self.route_errors),
            report_path=str(report_path),
        )
