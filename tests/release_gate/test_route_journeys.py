"""
Release gate：journey 覆蓋

每個路由至少要看得到一個預期的 journey 入口 (Route.expects)。
"""

import pytest


@pytest.mark.release_gate
class TestRouteJourneys:

    def test_every_route_has_a_visible_journey_entry(self, audit_runner, gate_routes):
        """沒有設定 expects 的路由也算失敗"""
        scanner = audit_runner.journey_coverage(gate_routes)
        assert scanner.failures == []
