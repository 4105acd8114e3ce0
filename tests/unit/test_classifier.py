"""
auditor.classifier 單元測試

以假頁面 + 假時鐘驗證：
- 各通道的判斷與優先序
- 雜訊基準（背景計時器不斷改 DOM，無效點擊仍判為 dead）
- popup（即時 / 晚到）
- 點擊被遮擋時改用 JS click
- 分類是 total 的：點擊後任何錯誤都視為 dead
"""

from unittest.mock import MagicMock

import pytest

from auditor.classifier import (
    CHANNELS,
    ActionClassifier,
    BeforeState,
    ClassifierSettings,
    Observation,
    detect_effect,
)
from auditor.models import ActionKind, ElementSnapshot, OverlaySignature, SignalSnapshot
from core.exceptions import ElementStaleError
from fake_browser import (
    BASE,
    FakeDriver,
    FakeElement,
    FakePage,
    FakeSnapshots,
    LostWindowSnapshots,
    copy_text,
    discovered,
    flip_expanded,
    mutate_dom,
    navigate_to,
    open_dialog,
    open_popup,
    play_audio,
    speak,
)


def _classifier(page: FakePage, snapshots=None, settings=None) -> ActionClassifier:
    return ActionClassifier(
        FakeDriver(page),
        snapshots or FakeSnapshots(page),
        settings or ClassifierSettings(),
        sleep=page.sleep,
        monotonic=page.monotonic,
    )


def _before(**overrides) -> BeforeState:
    fields = dict(
        url=BASE + "/",
        overlay=OverlaySignature(0),
        signals=SignalSnapshot(),
        attrs={"class": "btn"},
        baseline_dom_delta=0,
        dom_threshold=2,
    )
    fields.update(overrides)
    return BeforeState(**fields)


def _after(**overrides) -> Observation:
    fields = dict(
        url=BASE + "/",
        overlay=OverlaySignature(0),
        signals=SignalSnapshot(),
        attrs={"class": "btn"},
    )
    fields.update(overrides)
    return Observation(**fields)


_BUTTON = ElementSnapshot(tag_name="button", label="Go")


@pytest.mark.unit
class TestClassifierSettings:
    """雜訊門檻"""

    def test_threshold_uses_floor_when_page_is_quiet(self):
        assert ClassifierSettings().dom_threshold(0) == 2

    def test_threshold_follows_baseline_plus_margin(self):
        assert ClassifierSettings().dom_threshold(5) == 7

    def test_custom_floor_and_margin(self):
        settings = ClassifierSettings(noise_floor=10, noise_margin=1)
        assert settings.dom_threshold(3) == 10
        assert settings.dom_threshold(20) == 21

    def test_threshold_scales_with_elapsed_time(self):
        """0.25 秒量到 15 次（60/s），0.36 秒的觀察窗預期 22 次"""
        settings = ClassifierSettings()
        assert settings.dom_threshold(15, noise_rate=60.0, elapsed=0.36) == 24

    def test_short_window_never_below_baseline(self):
        assert ClassifierSettings().dom_threshold(15, noise_rate=60.0, elapsed=0.06) == 17

    def test_observed_threshold_overrides_before(self):
        before = _before(signals=SignalSnapshot(dom_mutation_count=10), dom_threshold=4)
        after = _after(signals=SignalSnapshot(dom_mutation_count=20), dom_threshold=12)
        assert detect_effect(before, after, _BUTTON) is None


@pytest.mark.unit
class TestDetectEffect:
    """純函式：通道判斷與優先序"""

    def test_no_change_returns_none(self):
        assert detect_effect(_before(), _after(), _BUTTON) is None

    def test_channel_order(self):
        assert [c.name for c in CHANNELS] == ["popup", "url", "overlay", "audio", "clipboard", "state"]

    def test_popup_beats_url_change(self):
        outcome = detect_effect(
            _before(), _after(popup_url="https://ext.test/", url=BASE + "/next"), _BUTTON
        )
        assert outcome.kind is ActionKind.NAVIGATE
        assert outcome.popup_url == "https://ext.test/"
        assert outcome.destination is None

    def test_url_change_beats_overlay(self):
        outcome = detect_effect(_before(), _after(url=BASE + "/next", overlay=OverlaySignature(1)), _BUTTON)
        assert outcome.kind is ActionKind.NAVIGATE
        assert outcome.destination == BASE + "/next"

    def test_overlay_beats_audio(self):
        outcome = detect_effect(
            _before(), _after(overlay=OverlaySignature(1), signals=SignalSnapshot(audio_play_calls=1)), _BUTTON
        )
        assert outcome.kind is ActionKind.OPEN_MODAL

    def test_fewer_overlays_is_not_modal(self):
        outcome = detect_effect(_before(overlay=OverlaySignature(2)), _after(overlay=OverlaySignature(1)), _BUTTON)
        assert outcome is None

    def test_speech_counts_as_audio(self):
        outcome = detect_effect(_before(), _after(signals=SignalSnapshot(speech_speak_calls=1)), _BUTTON)
        assert outcome.kind is ActionKind.PLAY_AUDIO

    def test_clipboard_is_toggle(self):
        outcome = detect_effect(_before(), _after(signals=SignalSnapshot(clipboard_writes=1)), _BUTTON)
        assert outcome.kind is ActionKind.TOGGLE
        assert outcome.reason == "clipboard"

    def test_dom_delta_must_exceed_threshold(self):
        before = _before(signals=SignalSnapshot(dom_mutation_count=10), dom_threshold=4)
        assert detect_effect(before, _after(signals=SignalSnapshot(dom_mutation_count=14)), _BUTTON) is None
        outcome = detect_effect(before, _after(signals=SignalSnapshot(dom_mutation_count=15)), _BUTTON)
        assert outcome.kind is ActionKind.TOGGLE

    def test_attribute_change_on_submit_button(self):
        snap = ElementSnapshot(tag_name="button", label="Save", input_type="submit")
        outcome = detect_effect(_before(), _after(attrs={"class": "btn busy"}), snap)
        assert outcome.kind is ActionKind.SUBMIT

    def test_attribute_change_on_switch_role(self):
        snap = ElementSnapshot(tag_name="button", label="Dark mode", role="switch")
        outcome = detect_effect(_before(), _after(attrs={"class": "btn", "aria-checked": "true"}), snap)
        assert outcome.kind is ActionKind.TOGGLE
        assert outcome.reason == "role=switch"

    def test_detached_element_counts_as_change(self):
        outcome = detect_effect(_before(), _after(attrs=None), _BUTTON)
        assert outcome.kind is ActionKind.TOGGLE


@pytest.mark.unit
class TestActionClassifier:
    """live 分類（假頁面）"""

    def test_disabled_is_not_clicked(self):
        page = FakePage()
        el = FakeElement(page, effect=navigate_to("/x"))
        outcome = _classifier(page).classify(discovered(el, disabled=True))
        assert outcome.kind is ActionKind.DISABLED_WITH_REASON
        assert el.clicks == 0

    def test_navigation(self):
        page = FakePage()
        el = FakeElement(page, effect=navigate_to("/practice/session?deck=1"))
        outcome = _classifier(page).classify(discovered(el))
        assert outcome.kind is ActionKind.NAVIGATE
        assert outcome.destination == BASE + "/practice/session?deck=1"

    def test_first_poll_hit_returns_early(self):
        page = FakePage()
        el = FakeElement(page, effect=open_dialog)
        _classifier(page).classify(discovered(el))
        # 基準 0.25 + 第一個輪詢延遲 0.06
        assert page.sleeps == [0.25, 0.06]

    @pytest.mark.parametrize(
        "effect, kind",
        [
            (open_dialog, ActionKind.OPEN_MODAL),
            (play_audio, ActionKind.PLAY_AUDIO),
            (speak, ActionKind.PLAY_AUDIO),
            (copy_text, ActionKind.TOGGLE),
            (flip_expanded, ActionKind.TOGGLE),
            (mutate_dom(10), ActionKind.TOGGLE),
        ],
    )
    def test_channels(self, effect, kind):
        page = FakePage()
        outcome = _classifier(page).classify(discovered(FakeElement(page, effect=effect)))
        assert outcome.kind is kind

    def test_inert_button_is_dead(self):
        page = FakePage()
        el = FakeElement(page)
        outcome = _classifier(page).classify(discovered(el))
        assert outcome.is_dead
        assert outcome.action == "unknown"
        assert el.clicks == 1

    def test_dead_waits_out_popup_timeout(self):
        page = FakePage()
        _classifier(page).classify(discovered(FakeElement(page)))
        # 0.25 基準 + 0.36 輪詢 + 剩餘 popup 等待 = 0.25 + 1.2
        assert page.now == pytest.approx(1.45)

    @pytest.mark.parametrize("rate", [10, 30, 60])
    def test_background_noise_does_not_mask_dead_click(self, rate):
        """背景計時器持續改 DOM（每秒 rate 次），無效點擊仍是 dead"""
        page = FakePage(noise_rate=rate)
        outcome = _classifier(page).classify(discovered(FakeElement(page)))
        assert outcome.is_dead

    def test_real_change_detected_under_noise(self):
        page = FakePage(noise_rate=10)
        outcome = _classifier(page).classify(discovered(FakeElement(page, effect=mutate_dom(8))))
        assert outcome.kind is ActionKind.TOGGLE

    def test_real_change_detected_under_fast_noise(self):
        page = FakePage(noise_rate=60)
        outcome = _classifier(page).classify(discovered(FakeElement(page, effect=mutate_dom(10))))
        assert outcome.kind is ActionKind.TOGGLE

    def test_deterministic_for_fixed_dom(self):
        results = []
        for _ in range(3):
            page = FakePage(noise_rate=10)
            results.append(_classifier(page).classify(discovered(FakeElement(page, effect=flip_expanded))))
        assert results[0] == results[1] == results[2]

    def test_popup_is_closed_and_reported(self):
        page = FakePage()
        snapshots = FakeSnapshots(page)
        classifier = _classifier(page, snapshots)
        outcome = classifier.classify(discovered(FakeElement(page, effect=open_popup("https://ext.test/a"))))

        assert outcome.kind is ActionKind.NAVIGATE
        assert outcome.popup_url == "https://ext.test/a"
        assert page.popups == {}
        assert classifier.driver.active == "main"

    def test_late_popup_caught_by_final_check(self):
        page = FakePage()
        outcome = _classifier(page).classify(
            discovered(FakeElement(page, effect=open_popup("https://ext.test/late", delay=0.8)))
        )
        assert outcome.kind is ActionKind.NAVIGATE
        assert outcome.popup_url == "https://ext.test/late"

    def test_intercepted_click_falls_back_to_js_click(self):
        page = FakePage()
        el = FakeElement(page, effect=open_dialog, intercepted=True)
        outcome = _classifier(page).classify(discovered(el))
        assert outcome.kind is ActionKind.OPEN_MODAL
        assert el.clicks == 1

    def test_stale_before_click_raises(self):
        page = FakePage()
        el = FakeElement(page)
        el.stale = True
        with pytest.raises(ElementStaleError):
            _classifier(page).classify(discovered(el))
        assert el.clicks == 0

    def test_lost_window_before_click_is_dead(self):
        """點擊前就讀不到頁面（視窗被關閉）也要有結果，不往外拋"""
        page = FakePage()
        el = FakeElement(page)
        outcome = _classifier(page, LostWindowSnapshots(page)).classify(discovered(el))

        assert outcome.is_dead
        assert "NoSuchWindowException" in outcome.reason
        assert el.clicks == 0

    def test_error_after_click_is_dead(self):
        page = FakePage()
        snapshots = FakeSnapshots(page)
        snapshots.overlay_signature = MagicMock(
            side_effect=[OverlaySignature(0), RuntimeError("page crashed")]
        )
        outcome = _classifier(page, snapshots).classify(discovered(FakeElement(page)))
        assert outcome.is_dead
        assert "RuntimeError" in outcome.reason

    def test_element_removed_by_click(self):
        page = FakePage()

        def remove(p, el):
            el.detached = True

        outcome = _classifier(page).classify(discovered(FakeElement(page, effect=remove)))
        assert outcome.kind is ActionKind.TOGGLE
