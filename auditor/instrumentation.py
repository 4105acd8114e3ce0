"""
Signal Instrumentation：頁面層級的副作用計數器

在任何導航之前注入一段 init script，包裝：
- HTMLMediaElement.prototype.play   → audioPlayCalls
- speechSynthesis.speak             → speechSpeakCalls
- navigator.clipboard.writeText     → clipboardWrites
並掛一個長駐的 MutationObserver     → domMutationCount

包裝只做觀察，仍會呼叫原本的實作。
計數器在每次整頁 (重新) 載入時歸零，分類器只比較同一次載入內的快照。

SignalRegistry 是 run 範圍的值（window 屬性名稱是它的一部分），
每個稽核 run 各自建立，不是隱藏的 singleton。

用法：
    registry = SignalRegistry()
    registry.install(driver)      # 開始導航前呼叫一次
    driver.get(url)
    registry.ensure(driver)       # 沒有 CDP 的 driver（Appium）每次導航後補注入
    snap = registry.read(driver)
"""

from __future__ import annotations

import json

from selenium.common.exceptions import WebDriverException

from auditor.models import SignalSnapshot
from utils.logger import logger

DEFAULT_GLOBAL_NAME = "__auditSignals"

_INIT_SCRIPT = """
(function (name) {
  if (window[name]) { return false; }
  var signals = { audioPlayCalls: 0, speechSpeakCalls: 0, clipboardWrites: 0, domMutationCount: 0 };
  window[name] = signals;

  try {
    var originalPlay = HTMLMediaElement.prototype.play;
    HTMLMediaElement.prototype.play = function () {
      signals.audioPlayCalls += 1;
      return originalPlay.apply(this, arguments);
    };
  } catch (e) {}

  try {
    var clipboard = navigator.clipboard;
    if (clipboard && clipboard.writeText) {
      var originalWriteText = clipboard.writeText.bind(clipboard);
      clipboard.writeText = function () {
        signals.clipboardWrites += 1;
        return originalWriteText.apply(null, arguments);
      };
    }
  } catch (e) {}

  try {
    var synth = window.speechSynthesis;
    if (synth && synth.speak) {
      var originalSpeak = synth.speak.bind(synth);
      synth.speak = function (utterance) {
        signals.speechSpeakCalls += 1;
        return originalSpeak(utterance);
      };
    }
  } catch (e) {}

  var observe = function () {
    var target = document.documentElement;
    if (!target) {
      document.addEventListener('DOMContentLoaded', observe, { once: true });
      return;
    }
    new MutationObserver(function (records) {
      signals.domMutationCount += records.length;
    }).observe(target, { childList: true, subtree: true, attributes: true, characterData: true });
  };
  observe();
  return true;
})(%s)
"""

_READ_SCRIPT = """
var s = window[arguments[0]];
if (!s) { return null; }
return {
  domMutationCount: Number(s.domMutationCount || 0),
  audioPlayCalls: Number(s.audioPlayCalls || 0),
  speechSpeakCalls: Number(s.speechSpeakCalls || 0),
  clipboardWrites: Number(s.clipboardWrites || 0)
};
"""


class SignalRegistry:
    """run 範圍的訊號計數器注入與讀取"""

    def __init__(self, global_name: str = DEFAULT_GLOBAL_NAME):
        self.global_name = global_name
        self.preloaded = False
        self.injections = 0

    @property
    def script(self) -> str:
        """可獨立執行的 init script（名稱已內嵌）"""
        return _INIT_SCRIPT % json.dumps(self.global_name)

    def install(self, driver) -> None:
        """
        註冊在每個新文件載入前執行的 init script，並注入當前文件。

        Chrome 透過 CDP Page.addScriptToEvaluateOnNewDocument；
        Appium 行動版 Chrome 沒有 execute_cdp_cmd，改由 ensure() 在每次導航後補注入。
        """
        if hasattr(driver, "execute_cdp_cmd"):
            try:
                driver.execute_cdp_cmd(
                    "Page.addScriptToEvaluateOnNewDocument", {"source": self.script}
                )
                self.preloaded = True
                logger.debug(f"[Signals] 已透過 CDP 註冊 init script ({self.global_name})")
            except WebDriverException as e:
                logger.debug(f"[Signals] CDP 註冊失敗，改用逐頁注入: {e}")
        self.ensure(driver)

    def ensure(self, driver) -> bool:
        """
        確保當前文件有計數器。

        Returns:
            True = 這次才注入（計數從 0 開始），False = 已存在或無法注入
        """
        try:
            injected = bool(driver.execute_script("return " + self.script))
        except WebDriverException as e:
            logger.debug(f"[Signals] 注入失敗: {e}")
            return False
        if injected:
            self.injections += 1
            logger.debug(f"[Signals] 已注入當前文件 (第 {self.injections} 次)")
        return injected

    def read(self, driver) -> SignalSnapshot:
        """讀取計數器；頁面無法執行 script 時回傳全 0，不拋例外"""
        try:
            raw = driver.execute_script(_READ_SCRIPT, self.global_name)
        except WebDriverException as e:
            logger.debug(f"[Signals] 讀取失敗: {e}")
            return SignalSnapshot()
        if not isinstance(raw, dict):
            return SignalSnapshot()
        return SignalSnapshot(
            dom_mutation_count=int(raw.get("domMutationCount", 0)),
            audio_play_calls=int(raw.get("audioPlayCalls", 0)),
            speech_speak_calls=int(raw.get("speechSpeakCalls", 0)),
            clipboard_writes=int(raw.get("clipboardWrites", 0)),
        )
