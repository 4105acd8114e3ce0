"""
Snapshot Services：無副作用的頁面讀取

一次 script round-trip 取回所有需要的屬性，避免逐屬性呼叫 WebDriver：
1. interactive_elements()        可視範圍內的互動元素（文件順序）
2. overlay_signature()           目前開啟的 dialog / overlay 數量
3. signals()                     SignalRegistry 的計數器
4. dom_mutation_count()          MutationObserver 累計次數
5. element_state(el)             元素自身的可變狀態屬性
6. identifier_required_elements() 需要 data-testid 的可見控制項
7. any_visible_test_id(ids)      journey 掃描用
"""

from __future__ import annotations

from dataclasses import dataclass

from selenium.common.exceptions import (
    JavascriptException,
    StaleElementReferenceException,
    WebDriverException,
)
from selenium.webdriver.remote.webelement import WebElement

from auditor.instrumentation import SignalRegistry
from auditor.models import ElementSnapshot, GlobalKey, OverlaySignature, SignalSnapshot
from core.exceptions import ElementStaleError
from utils.logger import logger

_NOT_EXEMPT = ':not([data-scan-exempt="true"])'

INTERACTIVE_SELECTOR = ", ".join(
    f"{base}{_NOT_EXEMPT}" for base in ("button", "a", '[role="button"]')
)

TESTID_REQUIRED_SELECTOR = ", ".join(
    f"{base}{_NOT_EXEMPT}"
    for base in (
        "button", "a", '[role="button"]', "input", "textarea", "select", "summary",
        '[role="link"]', '[role="tab"]', '[role="menuitem"]', '[role="switch"]',
        '[role="checkbox"]', '[role="radio"]',
    )
)

OVERLAY_SELECTORS = (
    '[role="dialog"]',
    '[role="alertdialog"]',
    '[data-state="open"]',
    '[aria-expanded="true"]',
    "[data-radix-popper-content-wrapper]",
)

STATE_ATTRIBUTES = (
    "aria-expanded",
    "aria-pressed",
    "aria-checked",
    "aria-selected",
    "data-state",
    "data-selected",
    "open",
    "class",
)

# 共用的 JS 函式：可見性與穩定 label
_JS_HELPERS = """
function __isVisible(el) {
  var rect = el.getBoundingClientRect();
  if (rect.width <= 0 || rect.height <= 0) { return false; }
  var style = window.getComputedStyle(el);
  if (style.visibility === 'hidden' || style.display === 'none') { return false; }
  return Number(style.opacity) !== 0;
}
function __inViewport(el) {
  var rect = el.getBoundingClientRect();
  var vw = window.innerWidth || document.documentElement.clientWidth;
  var vh = window.innerHeight || document.documentElement.clientHeight;
  return rect.bottom > 0 && rect.right > 0 && rect.top < vh && rect.left < vw;
}
function __trim(v) { return v ? String(v).replace(/\\s+/g, ' ').trim() : ''; }
function __label(el) {
  var attrs = ['data-scan-label', 'aria-label', 'title', 'placeholder', 'value'];
  for (var i = 0; i < attrs.length; i++) {
    var v = __trim(el.getAttribute(attrs[i]));
    if (v) { return v; }
  }
  var text = __trim(el.innerText);
  if (text) { return text; }
  var img = el.querySelector('img[alt]');
  var alt = img ? __trim(img.getAttribute('alt')) : '';
  return alt || el.tagName.toLowerCase() || 'unknown';
}
function __disabled(el) {
  if (typeof el.disabled === 'boolean' && el.disabled) { return true; }
  return el.getAttribute('aria-disabled') === 'true';
}
"""

_INTERACTIVE_SCRIPT = _JS_HELPERS + """
var nodes = document.querySelectorAll(arguments[0]);
var out = [];
for (var i = 0; i < nodes.length; i++) {
  var el = nodes[i];
  if (!__isVisible(el) || !__inViewport(el)) { continue; }
  out.push({
    element: el,
    tagName: el.tagName.toLowerCase(),
    testId: el.getAttribute('data-testid'),
    scanGroup: el.getAttribute('data-scan-group'),
    role: el.getAttribute('role'),
    href: el.getAttribute('href'),
    type: el.getAttribute('type'),
    disabled: __disabled(el),
    label: __label(el)
  });
}
return out;
"""

_OVERLAY_SCRIPT = _JS_HELPERS + """
var selectors = arguments[0];
var count = 0;
for (var i = 0; i < selectors.length; i++) {
  var nodes = document.querySelectorAll(selectors[i]);
  for (var j = 0; j < nodes.length; j++) {
    if (__isVisible(nodes[j])) { count += 1; }
  }
}
return count;
"""

_STATE_SCRIPT = """
var el = arguments[0];
var names = arguments[1];
var out = {};
for (var i = 0; i < names.length; i++) { out[names[i]] = el.getAttribute(names[i]); }
return out;
"""

_TESTID_REQUIRED_SCRIPT = _JS_HELPERS + """
var nodes = document.querySelectorAll(arguments[0]);
var out = [];
for (var i = 0; i < nodes.length; i++) {
  var el = nodes[i];
  if (!__isVisible(el)) { continue; }
  out.push({
    tagName: el.tagName.toLowerCase(),
    testId: el.getAttribute('data-testid'),
    role: el.getAttribute('role'),
    label: __label(el),
    outerHtml: (el.outerHTML || '').slice(0, 200)
  });
}
return out;
"""

_ANY_TESTID_SCRIPT = _JS_HELPERS + """
var ids = arguments[0];
for (var i = 0; i < ids.length; i++) {
  var nodes = document.querySelectorAll('[data-testid="' + CSS.escape(ids[i]) + '"]');
  for (var j = 0; j < nodes.length; j++) {
    if (__isVisible(nodes[j])) { return ids[i]; }
  }
}
return null;
"""


@dataclass
class DiscoveredElement:
    """活的 WebElement + 發現當下的快照"""
    element: WebElement
    snapshot: ElementSnapshot

    @property
    def key(self) -> GlobalKey:
        return GlobalKey.from_snapshot(self.snapshot)


def _snapshot_from_raw(raw: dict) -> ElementSnapshot:
    return ElementSnapshot(
        tag_name=raw.get("tagName") or "unknown",
        label=raw.get("label") or "unknown",
        stable_id=raw.get("testId") or None,
        scan_group=raw.get("scanGroup") or None,
        role=raw.get("role") or None,
        href=raw.get("href"),
        disabled=bool(raw.get("disabled")),
        input_type=raw.get("type") or None,
    )


class SnapshotService:
    """對單一 driver 的唯讀查詢"""

    def __init__(self, driver, registry: SignalRegistry):
        self.driver = driver
        self.registry = registry

    @property
    def current_url(self) -> str:
        return self.driver.current_url

    def interactive_elements(self) -> list[DiscoveredElement]:
        """可視範圍內、非 scan-exempt 的 button / a / [role=button]，依文件順序"""
        try:
            raw_items = self.driver.execute_script(_INTERACTIVE_SCRIPT, INTERACTIVE_SELECTOR) or []
        except WebDriverException as e:
            logger.warning(f"[Snapshot] 無法取得互動元素: {e}")
            return []
        found = [
            DiscoveredElement(element=raw["element"], snapshot=_snapshot_from_raw(raw))
            for raw in raw_items
            if raw.get("element") is not None
        ]
        logger.debug(f"[Snapshot] 可見互動元素 {len(found)} 個")
        return found

    def overlay_signature(self) -> OverlaySignature:
        try:
            count = self.driver.execute_script(_OVERLAY_SCRIPT, list(OVERLAY_SELECTORS))
        except WebDriverException as e:
            logger.debug(f"[Snapshot] overlay 讀取失敗: {e}")
            count = 0
        return OverlaySignature(open_dialog_count=int(count or 0))

    def signals(self) -> SignalSnapshot:
        return self.registry.read(self.driver)

    def dom_mutation_count(self) -> int:
        return self.registry.read(self.driver).dom_mutation_count

    def element_state(self, element: WebElement) -> dict:
        """
        元素自身的可變狀態屬性 (expanded / pressed / checked / open / selected / class)。

        Raises:
            ElementStaleError: 元素已不在 DOM
        """
        try:
            return self.driver.execute_script(_STATE_SCRIPT, element, list(STATE_ATTRIBUTES)) or {}
        except (StaleElementReferenceException, JavascriptException) as e:
            raise ElementStaleError(str(e).splitlines()[0] if str(e) else "")

    def identifier_required_elements(self) -> list[dict]:
        """所有可見的互動 / 表單控制項（含 testId 欄位供檢查）"""
        try:
            return self.driver.execute_script(_TESTID_REQUIRED_SCRIPT, TESTID_REQUIRED_SELECTOR) or []
        except WebDriverException as e:
            logger.warning(f"[Snapshot] 無法取得表單控制項: {e}")
            return []

    def any_visible_test_id(self, test_ids: list[str]) -> str | None:
        """回傳第一個可見的 test id，都不可見時回傳 None"""
        if not test_ids:
            return None
        try:
            return self.driver.execute_script(_ANY_TESTID_SCRIPT, list(test_ids))
        except WebDriverException as e:
            logger.debug(f"[Snapshot] test id 檢查失敗: {e}")
            return None
