"""
auditor.models 單元測試

- ActionOutcome 只有 Navigate 帶目的地
- GlobalKey 的等價規則與 canonical 字串
- 報告紀錄的 camelCase 序列化與 repro 格式
"""

import pytest

from auditor.models import (
    MISSING_ID_MARKER,
    ActionKind,
    ActionOutcome,
    DeadClick,
    ElementSnapshot,
    GlobalKey,
    InteractionRecord,
    Route,
    SignalSnapshot,
    build_selector,
)

ABOUT = Route("about", "About", "/en/about")


@pytest.mark.unit
class TestActionOutcome:

    def test_navigate_destination(self):
        outcome = ActionOutcome.navigate("https://app.test/next")
        assert outcome.destination == "https://app.test/next"
        assert outcome.popup_url is None
        assert outcome.action == "navigate"

    def test_popup_navigation(self):
        outcome = ActionOutcome.navigate("https://ext.test/", popup=True)
        assert outcome.popup_url == "https://ext.test/"
        assert outcome.destination is None

    @pytest.mark.parametrize(
        "outcome, action",
        [
            (ActionOutcome.open_modal(), "open modal"),
            (ActionOutcome.submit(), "submit"),
            (ActionOutcome.toggle(), "toggle"),
            (ActionOutcome.play_audio(), "play audio"),
            (ActionOutcome.disabled(), "disabled-with-reason"),
            (ActionOutcome.dead(), "unknown"),
        ],
    )
    def test_action_strings(self, outcome, action):
        assert outcome.action == action
        assert outcome.destination is None

    def test_only_dead_is_not_cacheable(self):
        assert not ActionOutcome.dead().cacheable
        assert ActionOutcome.disabled().cacheable
        assert ActionOutcome.dead().is_dead
        assert ActionOutcome(ActionKind.TOGGLE).cacheable


@pytest.mark.unit
class TestSelector:

    def test_test_id(self):
        assert build_selector("nav-home", None) == '[data-testid="nav-home"]'

    def test_test_id_with_href(self):
        assert build_selector("nav-home", "/en") == '[data-testid="nav-home"][href="/en"]'

    def test_quotes_escaped(self):
        assert build_selector('a"b', None) == '[data-testid="a\\"b"]'

    def test_missing(self):
        assert build_selector(None, "/en") == MISSING_ID_MARKER


@pytest.mark.unit
class TestGlobalKey:
    """跨路由的等價規則"""

    def test_scan_group_ignores_label(self):
        a = GlobalKey.from_snapshot(ElementSnapshot("button", "Start", scan_group="start"))
        b = GlobalKey.from_snapshot(ElementSnapshot("button", "Start now", scan_group="start"))
        assert a == b
        assert a.canonical() == b.canonical()

    def test_scan_group_wins_over_test_id(self):
        key = GlobalKey.from_snapshot(ElementSnapshot("button", "x", stable_id="id", scan_group="g"))
        assert key.anchor_kind == "scan-group"
        assert key.anchor == "g"

    def test_test_id_includes_label(self):
        a = GlobalKey.from_snapshot(ElementSnapshot("button", "Save", stable_id="save"))
        b = GlobalKey.from_snapshot(ElementSnapshot("button", "Saving", stable_id="save"))
        assert a.canonical() != b.canonical()

    def test_disabled_state_is_part_of_key(self):
        a = GlobalKey.from_snapshot(ElementSnapshot("button", "Go", stable_id="go"))
        b = GlobalKey.from_snapshot(ElementSnapshot("button", "Go", stable_id="go", disabled=True))
        assert a.canonical() != b.canonical()

    def test_href_is_part_of_key(self):
        a = GlobalKey.from_snapshot(ElementSnapshot("a", "Docs", stable_id="docs", href="/a"))
        b = GlobalKey.from_snapshot(ElementSnapshot("a", "Docs", stable_id="docs", href="/b"))
        assert a.canonical() != b.canonical()

    def test_missing_anchor(self):
        key = GlobalKey.from_snapshot(ElementSnapshot("button", "Menu"))
        assert key.anchor_kind == "missing"
        assert key.canonical() == "missing|missing|button|||enabled|Menu"

    def test_pipe_in_values_does_not_collide(self):
        a = GlobalKey.from_snapshot(ElementSnapshot("button", "x|y", stable_id="a"))
        b = GlobalKey.from_snapshot(ElementSnapshot("button", "y", stable_id="a|x"))
        assert a.canonical() != b.canonical()


@pytest.mark.unit
class TestSignalSnapshot:

    def test_audio_or_speech(self):
        before = SignalSnapshot()
        assert SignalSnapshot(audio_play_calls=1).played_audio_since(before)
        assert SignalSnapshot(speech_speak_calls=1).played_audio_since(before)
        assert not before.played_audio_since(before)

    def test_dom_delta_never_negative(self):
        """整頁重載後計數歸零"""
        assert SignalSnapshot(dom_mutation_count=1).dom_delta_since(SignalSnapshot(dom_mutation_count=9)) == 0


@pytest.mark.unit
class TestRecords:

    def test_interaction_record_camel_case(self):
        snap = ElementSnapshot("button", "Open", stable_id="open")
        record = InteractionRecord.build(ABOUT, "/en/about", "signed-out", snap, ActionOutcome.open_modal())
        data = record.to_dict()
        assert data["routeId"] == "about"
        assert data["resolvedPathname"] == "/en/about"
        assert data["testId"] == "open"
        assert data["outcome"] == "pass"
        assert data["reused"] is False
        assert "navigationTo" not in data
        assert "popupUrl" not in data

    def test_dead_interaction(self):
        snap = ElementSnapshot("button", "Decor")
        record = InteractionRecord.build(ABOUT, "/en/about", "signed-out", snap, ActionOutcome.dead())
        assert record.outcome == "dead-click"
        assert record.action == "unknown"
        assert record.selector == MISSING_ID_MARKER

    def test_dead_click_repro(self):
        snap = ElementSnapshot("button", "Decor")
        dead = DeadClick.build(ABOUT, "/en/about", snap)
        assert dead.repro == [
            "Go to /en/about",
            "Click <missing data-testid> (Decor)",
            "Observe: no navigation, modal, or state change",
        ]
        assert dead.to_dict()["resolvedPathname"] == "/en/about"

    def test_route_to_dict_omits_expects(self):
        route = Route("home", "Home", "/en", expects=("home-start",))
        assert route.to_dict() == {"id": "home", "label": "Home", "path": "/en"}
