"""
Link Pre-Verifier：不點擊，直接確認連結目的地存在

同源 <a href> 以 requests GET 驗證（帶入瀏覽器 cookie、跟隨 redirect），
跨站與 mailto: / tel: 等協定直接視為 Navigate，不發請求。
永遠不改變瀏覽器的 location。
"""

from __future__ import annotations

from urllib.parse import urljoin, urlsplit

import requests

from auditor.models import ActionOutcome, ElementSnapshot
from config.config import Config
from utils.logger import logger


def _origin(url: str) -> tuple[str, str]:
    parts = urlsplit(url)
    return parts.scheme.lower(), parts.netloc.lower()


class LinkPreVerifier:
    """
    用法:
        verifier = LinkPreVerifier(driver)
        if verifier.should_verify(snap):
            outcome = verifier.verify(snap, driver.current_url)
    """

    def __init__(self, driver=None, timeout: float | None = None, session: requests.Session | None = None):
        self.driver = driver
        self.timeout = Config.LINK_CHECK_TIMEOUT if timeout is None else timeout
        self.session = session or requests.Session()
        self.checked = 0

    @staticmethod
    def should_verify(snap: ElementSnapshot) -> bool:
        """<a> 且 href 不是空字串、#錨點、javascript:"""
        if snap.tag_name != "a" or snap.href is None:
            return False
        href = snap.href.strip()
        if not href or href.startswith("#"):
            return False
        return not href.lower().startswith("javascript:")

    def verify(self, snap: ElementSnapshot, page_url: str) -> ActionOutcome:
        resolved = urljoin(page_url, snap.href.strip())
        scheme, _ = _origin(resolved)

        if scheme not in ("http", "https"):
            logger.debug(f"[LinkCheck] 非 http 連結，不驗證: {resolved}")
            return ActionOutcome.navigate(resolved)
        if _origin(resolved) != _origin(page_url):
            logger.debug(f"[LinkCheck] 跨站連結，不驗證: {resolved}")
            return ActionOutcome.navigate(resolved)

        self.checked += 1
        try:
            resp = self.session.get(
                resolved,
                cookies=self._browser_cookies(),
                allow_redirects=True,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"[LinkCheck] 請求失敗 {resolved}: {e}")
            return ActionOutcome.dead(reason=f"request failed: {type(e).__name__}")

        if resp.status_code >= 400:
            logger.warning(f"[LinkCheck] {resolved} → HTTP {resp.status_code}")
            return ActionOutcome.dead(reason=f"HTTP {resp.status_code}")

        logger.debug(f"[LinkCheck] {resolved} → HTTP {resp.status_code}")
        return ActionOutcome.navigate(resolved)

    def _browser_cookies(self) -> dict[str, str]:
        if self.driver is None:
            return {}
        try:
            return {c["name"]: c["value"] for c in self.driver.get_cookies() if "name" in c}
        except Exception as e:
            logger.debug(f"[LinkCheck] 無法讀取瀏覽器 cookie: {e}")
            return {}
