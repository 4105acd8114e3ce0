"""
Action Classifier：觸發元素並判斷產生了哪一種效果

流程：
1. disabled（原生 disabled 或 aria-disabled="true"）→ DisabledWithReason，不點擊
2. 記錄 before：URL、overlay 數、訊號計數、元素自身狀態屬性
3. 建立雜訊基準：不做任何操作等一小段時間，量測 DOM 自然變動量（換算成每秒速率，
   輪詢時依經過時間放大門檻）
4. 記錄現有視窗（偵測新分頁 / popup）
5. 試探 + 實際點擊；點擊失敗吞掉，真正的 dead 由下方輪詢判斷
6. 依遞增延遲輪詢，按優先序檢查通道（見 CHANNELS）
7. 全部落空 → 等滿 popup 視窗再檢查一次 popup → Dead

通道判斷 (detect_effect) 是純函式，不碰瀏覽器；
ActionClassifier 只負責 I/O，sleep / monotonic 可注入以便用假時鐘測試。
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Callable

from selenium.common.exceptions import (
    ElementClickInterceptedException,
    StaleElementReferenceException,
    WebDriverException,
)

from auditor.models import ActionOutcome, ElementSnapshot, OverlaySignature, SignalSnapshot
from auditor.snapshots import DiscoveredElement, SnapshotService
from config.config import Config
from core.exceptions import ElementStaleError
from utils.logger import logger
from utils.wait_helper import poll_until


@dataclass(frozen=True)
class ClassifierSettings:
    """分類器的時間預算與雜訊門檻"""
    poll_delays: tuple[float, ...] = (0.06, 0.12, 0.18)
    baseline_interval: float = 0.25
    popup_timeout: float = 1.2
    noise_floor: int = 2
    noise_margin: int = 2

    def dom_threshold(self, baseline_dom_delta: int, noise_rate: float = 0.0, elapsed: float = 0.0) -> int:
        """
        DOM 變動超過此值才算點擊造成的效果。

        背景雜訊依量測到的速率換算成 elapsed 秒內的預期變動量，
        與基準量測值取大者，再加上 margin。
        """
        expected = max(baseline_dom_delta, math.ceil(noise_rate * elapsed))
        return max(self.noise_floor, expected + self.noise_margin)

    @classmethod
    def from_config(cls) -> ClassifierSettings:
        return cls(
            poll_delays=Config.poll_delays(),
            baseline_interval=Config.BASELINE_INTERVAL,
            popup_timeout=Config.POPUP_TIMEOUT,
            noise_floor=Config.NOISE_FLOOR,
            noise_margin=Config.NOISE_MARGIN,
        )


@dataclass
class BeforeState:
    """點擊前的參考狀態"""
    url: str
    overlay: OverlaySignature
    signals: SignalSnapshot              # 基準量測後的第二份快照
    attrs: dict | None
    baseline_dom_delta: int = 0
    dom_threshold: int = 2
    noise_rate: float = 0.0              # 每秒背景 DOM 變動
    measured_at: float = 0.0             # 第二份快照的 monotonic 時間
    window: str | None = None
    handles: frozenset[str] = field(default_factory=frozenset)


@dataclass
class Observation:
    """某一次輪詢看到的狀態；attrs 為 None 代表元素已離開 DOM"""
    url: str
    overlay: OverlaySignature
    signals: SignalSnapshot
    attrs: dict | None
    popup_url: str | None = None
    dom_threshold: int | None = None     # 依經過時間換算的門檻；None 沿用 before

    def attrs_changed(self, before: BeforeState) -> bool:
        if before.attrs is None:
            return False
        return self.attrs is None or self.attrs != before.attrs


@dataclass(frozen=True)
class Channel:
    """(名稱, 條件, 結果建構)：依序評估，第一個成立者勝出"""
    name: str
    predicate: Callable[[BeforeState, Observation], bool]
    build: Callable[[BeforeState, Observation, ElementSnapshot], ActionOutcome]


def _caused_change(before: BeforeState, after: Observation) -> bool:
    dom_delta = after.signals.dom_delta_since(before.signals)
    threshold = before.dom_threshold if after.dom_threshold is None else after.dom_threshold
    return after.attrs_changed(before) or dom_delta > threshold


def _state_change_outcome(before: BeforeState, after: Observation, snap: ElementSnapshot) -> ActionOutcome:
    if snap.is_submit:
        return ActionOutcome.submit()
    if snap.is_toggle_role:
        return ActionOutcome.toggle(reason=f"role={snap.role}")
    return ActionOutcome.toggle(reason="state-change")


# 優先序：可靠的通道（popup / URL / overlay）先於雜訊較多的 DOM 差值
CHANNELS: tuple[Channel, ...] = (
    Channel(
        "popup",
        lambda b, a: a.popup_url is not None,
        lambda b, a, s: ActionOutcome.navigate(a.popup_url, popup=True),
    ),
    Channel(
        "url",
        lambda b, a: a.url != b.url,
        lambda b, a, s: ActionOutcome.navigate(a.url),
    ),
    Channel(
        "overlay",
        lambda b, a: a.overlay.open_dialog_count > b.overlay.open_dialog_count,
        lambda b, a, s: ActionOutcome.open_modal(),
    ),
    Channel(
        "audio",
        lambda b, a: a.signals.played_audio_since(b.signals),
        lambda b, a, s: ActionOutcome.play_audio(),
    ),
    Channel(
        "clipboard",
        lambda b, a: a.signals.wrote_clipboard_since(b.signals),
        lambda b, a, s: ActionOutcome.toggle(reason="clipboard"),
    ),
    Channel("state", _caused_change, _state_change_outcome),
)


def detect_effect(
    before: BeforeState,
    after: Observation,
    snap: ElementSnapshot,
    channels: tuple[Channel, ...] = CHANNELS,
) -> ActionOutcome | None:
    """依優先序檢查每個通道，回傳第一個成立的結果；都不成立回傳 None"""
    for channel in channels:
        if channel.predicate(before, after):
            logger.debug(f"[Classifier] 通道成立: {channel.name}")
            return channel.build(before, after, snap)
    return None


class ActionClassifier:
    """
    live 分類器

    用法:
        classifier = ActionClassifier(driver, snapshots)
        outcome = classifier.classify(discovered)
    """

    def __init__(
        self,
        driver,
        snapshots: SnapshotService,
        settings: ClassifierSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.driver = driver
        self.snapshots = snapshots
        self.settings = settings or ClassifierSettings()
        self._sleep = sleep
        self._monotonic = monotonic

    def classify(self, discovered: DiscoveredElement) -> ActionOutcome:
        """
        分類單一元素。

        點擊後任何非預期錯誤都保守地視為 Dead（寧可誤報也不漏報）；
        點擊前讀不到頁面（視窗關閉、alert）同樣視為 Dead。

        Raises:
            ElementStaleError: 點擊前元素就已失效（呼叫端應略過該元素）
        """
        snap = discovered.snapshot
        if snap.disabled:
            return ActionOutcome.disabled(reason="disabled attribute")

        try:
            before = self._capture_before(discovered)
        except WebDriverException as e:
            # 視窗消失、alert 擋住等：沒有參考狀態可比對，保守視為 dead
            logger.warning(f"[Classifier] 無法記錄 {snap.describe()} 點擊前狀態，視為 dead: {e}")
            return ActionOutcome.dead(reason=f"capture error: {type(e).__name__}")

        try:
            return self._activate_and_observe(discovered, before)
        except Exception as e:
            logger.warning(f"[Classifier] 分類 {snap.describe()} 時發生錯誤，視為 dead: {e}")
            return ActionOutcome.dead(reason=f"classification error: {type(e).__name__}")

    # ── 步驟 ──

    def _capture_before(self, discovered: DiscoveredElement) -> BeforeState:
        element = discovered.element
        try:
            self.driver.execute_script(
                "arguments[0].scrollIntoView({block: 'center', inline: 'nearest'});", element
            )
        except StaleElementReferenceException:
            raise ElementStaleError(discovered.snapshot.describe())
        except WebDriverException:
            pass

        attrs = self.snapshots.element_state(element)
        url = self.snapshots.current_url
        overlay = self.snapshots.overlay_signature()
        first = self.snapshots.signals()
        started = self._monotonic()

        # 雜訊基準：什麼都不做時 DOM 自己變了多少
        self._sleep(self.settings.baseline_interval)
        second = self.snapshots.signals()
        measured_at = self._monotonic()
        baseline = second.dom_delta_since(first)
        noise_rate = baseline / max(measured_at - started, self.settings.baseline_interval)

        window, handles = self._window_handles()
        logger.debug(
            f"[Classifier] {discovered.snapshot.describe()} 基準 DOM 變動={baseline} "
            f"({noise_rate:.1f}/s), 門檻={self.settings.dom_threshold(baseline)}"
        )
        return BeforeState(
            url=url,
            overlay=overlay,
            signals=second,
            attrs=attrs,
            baseline_dom_delta=baseline,
            dom_threshold=self.settings.dom_threshold(baseline),
            noise_rate=noise_rate,
            measured_at=measured_at,
            window=window,
            handles=handles,
        )

    def _activate_and_observe(self, discovered: DiscoveredElement, before: BeforeState) -> ActionOutcome:
        self._activate(discovered)
        clicked_at = self._monotonic()

        outcome = poll_until(
            lambda: detect_effect(before, self._observe(discovered, before), discovered.snapshot),
            self.settings.poll_delays,
            sleep=self._sleep,
        )
        if outcome is not None:
            return outcome

        # 晚到的 popup
        remaining = self.settings.popup_timeout - (self._monotonic() - clicked_at)
        if remaining > 0:
            self._sleep(remaining)
        popup_url = self._take_popup(before)
        if popup_url is not None:
            return ActionOutcome.navigate(popup_url, popup=True)

        return ActionOutcome.dead(reason="no observable effect")

    def _activate(self, discovered: DiscoveredElement) -> None:
        """試探 + 實際點擊，失敗一律吞掉"""
        element = discovered.element
        label = discovered.snapshot.describe()
        try:
            if not (element.is_displayed() and element.is_enabled()):
                logger.debug(f"[Classifier] 試探: {label} 不可互動")
        except WebDriverException as e:
            logger.debug(f"[Classifier] 試探失敗: {label}: {e}")

        try:
            element.click()
        except ElementClickInterceptedException:
            # 被其他元素遮住時改用 DOM click
            try:
                self.driver.execute_script("arguments[0].click();", element)
            except WebDriverException as e:
                logger.debug(f"[Classifier] JS click 失敗: {label}: {e}")
        except WebDriverException as e:
            logger.debug(f"[Classifier] 點擊失敗: {label}: {e}")

    def _observe(self, discovered: DiscoveredElement, before: BeforeState) -> Observation:
        try:
            attrs = self.snapshots.element_state(discovered.element)
        except ElementStaleError:
            attrs = None
        observation = Observation(
            popup_url=self._take_popup(before),
            url=self.snapshots.current_url,
            overlay=self.snapshots.overlay_signature(),
            signals=self.snapshots.signals(),
            attrs=attrs,
        )
        # 觀察窗比基準量測長，雜訊門檻依經過時間等比放大
        elapsed = self._monotonic() - before.measured_at
        observation.dom_threshold = self.settings.dom_threshold(
            before.baseline_dom_delta, before.noise_rate, elapsed
        )
        return observation

    # ── popup ──

    def _window_handles(self) -> tuple[str | None, frozenset[str]]:
        try:
            return self.driver.current_window_handle, frozenset(self.driver.window_handles)
        except WebDriverException:
            return None, frozenset()

    def _take_popup(self, before: BeforeState) -> str | None:
        """有新視窗就讀取 URL、關閉並切回原視窗"""
        try:
            new_handles = [h for h in self.driver.window_handles if h not in before.handles]
        except WebDriverException:
            return None
        if not new_handles or before.window is None:
            return None

        popup = new_handles[0]
        url = "about:blank"
        try:
            self.driver.switch_to.window(popup)
            for _ in range(5):
                url = self.driver.current_url
                if url and url != "about:blank":
                    break
                self._sleep(0.2)
            self.driver.close()
        except WebDriverException as e:
            logger.debug(f"[Classifier] popup 處理失敗: {e}")
        finally:
            try:
                self.driver.switch_to.window(before.window)
            except WebDriverException as e:
                logger.warning(f"[Classifier] 無法切回原視窗: {e}")
        logger.debug(f"[Classifier] 偵測到 popup: {url}")
        return url
