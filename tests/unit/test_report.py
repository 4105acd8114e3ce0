"""
auditor.report 單元測試
"""

import json

import pytest

from auditor.models import ActionOutcome, DeadClick, ElementSnapshot, InteractionRecord, Route
from auditor.report import REPORT_FILENAME, ReportBuilder, write_artifact
from core.exceptions import AuditFailedError, RouteLoadError

ABOUT = Route("about", "About", "/en/about")
HOME = Route("home", "Home", "/en")
DECOR = ElementSnapshot("button", "Decor")


def _builder():
    return ReportBuilder("signed-out", [HOME, ABOUT], clock=lambda: "2025-01-01T00:00:00.000Z")


@pytest.mark.unit
class TestReportBuilder:

    def test_empty_report_is_clean(self):
        assert _builder().is_clean

    def test_to_dict_keys(self):
        data = _builder().to_dict()
        assert list(data) == [
            "mode", "generatedAt", "totalRoutes", "routes", "totalInteractions",
            "routeErrorCount", "deadClickCount", "routeErrors", "interactions", "deadClicks",
        ]
        assert data["generatedAt"] == "2025-01-01T00:00:00.000Z"
        assert data["totalRoutes"] == 2
        assert data["routes"][0] == {"id": "home", "label": "Home", "path": "/en"}

    def test_counts(self):
        report = _builder()
        report.add_interaction(
            InteractionRecord.build(ABOUT, "/en/about", "signed-out", DECOR, ActionOutcome.dead())
        )
        report.add_dead_click(DeadClick.build(ABOUT, "/en/about", DECOR))
        report.add_route_error(HOME, RouteLoadError("/en", reason="timeout"))

        data = report.to_dict()
        assert data["totalInteractions"] == 1
        assert data["deadClickCount"] == 1
        assert data["routeErrorCount"] == 1
        assert data["routeErrors"][0]["routeId"] == "home"
        assert "timeout" in data["routeErrors"][0]["error"]
        assert not report.is_clean

    def test_route_error_from_string(self):
        report = _builder()
        report.add_route_error(HOME, "boom")
        assert report.route_errors[0].error == "boom"


@pytest.mark.unit
class TestReportOutput:

    def test_write_json(self, tmp_path):
        report = _builder()
        path = report.write(tmp_path / "signed-out")

        assert path == tmp_path / "signed-out" / REPORT_FILENAME
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["mode"] == "signed-out"
        assert path.read_text(encoding="utf-8").startswith('{\n  "mode"')

    def test_write_artifact_keeps_unicode(self, tmp_path):
        path = write_artifact(tmp_path, "x.json", {"label": "開始"})
        assert "開始" in path.read_text(encoding="utf-8")

    def test_assert_clean_passes(self):
        _builder().assert_clean()

    def test_assert_clean_raises_with_counts(self, tmp_path):
        report = _builder()
        report.add_dead_click(DeadClick.build(ABOUT, "/en/about", DECOR))
        report.add_route_error(HOME, "down")
        path = report.write(tmp_path)

        with pytest.raises(AuditFailedError) as exc_info:
            report.assert_clean(path)

        assert exc_info.value.dead_clicks == 1
        assert exc_info.value.route_errors == 1
        assert str(path) in str(exc_info.value)
