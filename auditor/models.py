"""
稽核資料模型

- Route / ElementSnapshot / SignalSnapshot / OverlaySignature：掃描輸入與快照
- ActionKind / ActionOutcome：封閉的動作結果型別，每種結果一個建構子
- GlobalKey：跨路由辨識「同一個邏輯控制項」的結構化 key
- InteractionRecord / DeadClick / RouteError：報告紀錄（序列化為 camelCase JSON）
- MissingIdentifier / JourneyFailure：附屬掃描器的紀錄
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum

MISSING_ID_MARKER = "<missing data-testid>"


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.capitalize() for p in rest)


def _to_camel_dict(obj, skip_none: tuple[str, ...] = ()) -> dict:
    out = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if f.name in skip_none and value is None:
            continue
        if isinstance(value, tuple):
            value = list(value)
        out[_camel(f.name)] = value
    return out


# ── 輸入 ──

@dataclass(frozen=True)
class RouteDiscovery:
    """到 listing_path 找第一個符合 selector 的連結，作為路由的實際 path"""
    listing_path: str
    selector: str


@dataclass(frozen=True)
class Route:
    """可導航的路由；expects 為 journey 掃描要看到的 test id"""
    id: str
    label: str
    path: str
    expects: tuple[str, ...] = ()
    discover: RouteDiscovery | None = None   # 非 None 代表 path 尚待連線後解析

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label, "path": self.path}


@dataclass(frozen=True)
class ElementSnapshot:
    """單一可見互動元素在被發現當下的樣子"""
    tag_name: str
    label: str
    stable_id: str | None = None     # data-testid
    scan_group: str | None = None    # data-scan-group
    role: str | None = None
    href: str | None = None
    disabled: bool = False
    input_type: str | None = None    # <button type=...>

    @property
    def selector(self) -> str:
        return build_selector(self.stable_id, self.href)

    @property
    def is_submit(self) -> bool:
        return self.tag_name == "button" and (self.input_type or "").lower() == "submit"

    @property
    def is_toggle_role(self) -> bool:
        return self.role in ("switch", "tab", "checkbox")

    def describe(self) -> str:
        return f"{self.selector} ({self.label})"


def build_selector(test_id: str | None, href: str | None) -> str:
    """可重現用的 CSS selector；沒有 test id 時回傳固定標記"""
    if not test_id:
        return MISSING_ID_MARKER
    escaped = test_id.replace('"', '\\"')
    if href:
        escaped_href = href.replace('"', '\\"')
        return f'[data-testid="{escaped}"][href="{escaped_href}"]'
    return f'[data-testid="{escaped}"]'


@dataclass(frozen=True)
class SignalSnapshot:
    """頁面載入以來的累計計數，只比較差值"""
    dom_mutation_count: int = 0
    audio_play_calls: int = 0
    speech_speak_calls: int = 0
    clipboard_writes: int = 0

    def played_audio_since(self, before: SignalSnapshot) -> bool:
        return (
            self.audio_play_calls > before.audio_play_calls
            or self.speech_speak_calls > before.speech_speak_calls
        )

    def wrote_clipboard_since(self, before: SignalSnapshot) -> bool:
        return self.clipboard_writes > before.clipboard_writes

    def dom_delta_since(self, before: SignalSnapshot) -> int:
        return max(0, self.dom_mutation_count - before.dom_mutation_count)


@dataclass(frozen=True)
class OverlaySignature:
    open_dialog_count: int = 0


# ── 動作結果 ──

class ActionKind(Enum):
    NAVIGATE = "navigate"
    OPEN_MODAL = "open modal"
    SUBMIT = "submit"
    TOGGLE = "toggle"
    PLAY_AUDIO = "play audio"
    DISABLED_WITH_REASON = "disabled-with-reason"
    DEAD = "unknown"


@dataclass(frozen=True)
class ActionOutcome:
    """
    一次 (路由, 元素) 分類的結果。

    只透過 classmethod 建構，確保只有 Navigate 帶目的地。
    """
    kind: ActionKind
    destination: str | None = None
    popup_url: str | None = None
    reason: str = ""

    @classmethod
    def navigate(cls, destination: str, popup: bool = False) -> ActionOutcome:
        if popup:
            return cls(ActionKind.NAVIGATE, popup_url=destination)
        return cls(ActionKind.NAVIGATE, destination=destination)

    @classmethod
    def open_modal(cls) -> ActionOutcome:
        return cls(ActionKind.OPEN_MODAL)

    @classmethod
    def submit(cls) -> ActionOutcome:
        return cls(ActionKind.SUBMIT)

    @classmethod
    def toggle(cls, reason: str = "") -> ActionOutcome:
        return cls(ActionKind.TOGGLE, reason=reason)

    @classmethod
    def play_audio(cls) -> ActionOutcome:
        return cls(ActionKind.PLAY_AUDIO)

    @classmethod
    def disabled(cls, reason: str = "disabled") -> ActionOutcome:
        return cls(ActionKind.DISABLED_WITH_REASON, reason=reason)

    @classmethod
    def dead(cls, reason: str = "") -> ActionOutcome:
        return cls(ActionKind.DEAD, reason=reason)

    @property
    def action(self) -> str:
        """報告裡的 action 字串"""
        return self.kind.value

    @property
    def is_dead(self) -> bool:
        return self.kind is ActionKind.DEAD

    @property
    def cacheable(self) -> bool:
        """Dead 結果不進快取，下次遇到同類元素仍會實測"""
        return not self.is_dead


# ── 去重 key ──

def _escape(part: str) -> str:
    return part.replace("\\", "\\\\").replace("|", "\\|")


@dataclass(frozen=True)
class GlobalKey:
    """
    跨路由的元素等價 key。

    anchor_kind:
        "scan-group"：作者標記的邏輯群組（不含 label）
        "testid"：data-testid
        "missing"：沒有任何穩定識別，改用 label 區分
    """
    anchor_kind: str
    anchor: str
    tag_name: str
    role: str
    href: str
    disabled: bool
    label: str = ""

    @classmethod
    def from_snapshot(cls, snap: ElementSnapshot) -> GlobalKey:
        common = dict(
            tag_name=snap.tag_name,
            role=snap.role or "",
            href=snap.href or "",
            disabled=snap.disabled,
        )
        if snap.scan_group:
            return cls(anchor_kind="scan-group", anchor=snap.scan_group, **common)
        if snap.stable_id:
            return cls(anchor_kind="testid", anchor=snap.stable_id, label=snap.label, **common)
        return cls(anchor_kind="missing", anchor="missing", label=snap.label, **common)

    def canonical(self) -> str:
        """儲存用的字串形式；每段先跳脫，值裡的 | 不會造成碰撞"""
        parts = [
            self.anchor_kind,
            self.anchor,
            self.tag_name,
            self.role,
            self.href,
            "disabled" if self.disabled else "enabled",
        ]
        if self.anchor_kind != "scan-group":
            parts.append(self.label)
        return "|".join(_escape(p) for p in parts)


# ── 報告紀錄 ──

@dataclass
class InteractionRecord:
    route_id: str
    route_path: str
    resolved_pathname: str
    mode: str
    test_id: str | None
    selector: str
    tag_name: str
    role: str | None
    href: str | None
    label: str
    disabled: bool
    action: str
    outcome: str                      # "pass" / "dead-click"
    navigation_to: str | None = None
    popup_url: str | None = None
    reused: bool = False              # 由全域快取回答，未實際點擊

    @classmethod
    def build(
        cls,
        route: Route,
        resolved_pathname: str,
        mode: str,
        snap: ElementSnapshot,
        outcome: ActionOutcome,
        reused: bool = False,
    ) -> InteractionRecord:
        return cls(
            route_id=route.id,
            route_path=route.path,
            resolved_pathname=resolved_pathname,
            mode=mode,
            test_id=snap.stable_id,
            selector=snap.selector,
            tag_name=snap.tag_name,
            role=snap.role,
            href=snap.href,
            label=snap.label,
            disabled=snap.disabled,
            action=outcome.action,
            outcome="dead-click" if outcome.is_dead else "pass",
            navigation_to=outcome.destination,
            popup_url=outcome.popup_url,
            reused=reused,
        )

    def to_dict(self) -> dict:
        return _to_camel_dict(self, skip_none=("navigation_to", "popup_url"))


@dataclass
class DeadClick:
    route_id: str
    route_path: str
    resolved_pathname: str
    selector: str
    label: str
    repro: list[str] = field(default_factory=list)

    @classmethod
    def build(cls, route: Route, resolved_pathname: str, snap: ElementSnapshot) -> DeadClick:
        return cls(
            route_id=route.id,
            route_path=route.path,
            resolved_pathname=resolved_pathname,
            selector=snap.selector,
            label=snap.label,
            repro=[
                f"Go to {route.path}",
                f"Click {snap.selector} ({snap.label})",
                "Observe: no navigation, modal, or state change",
            ],
        )

    def to_dict(self) -> dict:
        return _to_camel_dict(self)


@dataclass
class RouteError:
    route_id: str
    route_path: str
    error: str

    def to_dict(self) -> dict:
        return _to_camel_dict(self)


@dataclass
class MissingIdentifier:
    route_id: str
    route_path: str
    tag_name: str
    role: str | None
    label: str
    outer_html: str = ""

    def to_dict(self) -> dict:
        return _to_camel_dict(self)


@dataclass
class JourneyFailure:
    route_id: str
    route_path: str
    resolved_pathname: str | None
    expected_test_ids: list[str]
    error: str

    def to_dict(self) -> dict:
        return _to_camel_dict(self)
