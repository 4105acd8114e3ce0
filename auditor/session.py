"""
Session Bootstrap：稽核模式所需的登入狀態

稽核器本身不實作登入流程，只透過這個介面要求「讓 driver 處於某個模式」：
- ensure(driver, mode)          建立 / 恢復該模式的登入狀態
- has_active_session(driver)    目前是否仍在登入狀態

內建實作：
- AnonymousSession       signed-out：清除 cookie
- SessionEndpointProbe   用 GET /api/auth/session 判斷登入狀態；
                         登入動作交給呼叫端提供的 sign_in callable
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable
from urllib.parse import urljoin

import requests
from selenium.common.exceptions import WebDriverException

from config.config import Config
from core.exceptions import SessionError
from utils.logger import logger

SESSION_ENDPOINT = "/api/auth/session"


class SessionBootstrap(ABC):
    """登入狀態介面"""

    @abstractmethod
    def ensure(self, driver, mode: str) -> None:
        """讓 driver 處於 mode 所需的狀態；無法達成時拋 SessionError"""

    @abstractmethod
    def has_active_session(self, driver) -> bool:
        ...


class AnonymousSession(SessionBootstrap):
    """signed-out 模式：清掉 cookie 即可"""

    def ensure(self, driver, mode: str) -> None:
        try:
            driver.delete_all_cookies()
        except WebDriverException as e:
            raise SessionError(mode, f"無法清除 cookie: {e}")
        logger.debug("[Session] 已清除 cookie (signed-out)")

    def has_active_session(self, driver) -> bool:
        return False


class CookieSignIn:
    """
    以預先取得的 session cookie 登入（CLI --cookie 使用）。

    selenium 只能替目前網域加 cookie，所以先開一次 base_url。
    """

    def __init__(self, cookies: dict[str, str], base_url: str | None = None):
        self.cookies = dict(cookies)
        self.base_url = base_url or Config.BASE_URL

    @classmethod
    def parse(cls, pairs: list[str], base_url: str | None = None) -> "CookieSignIn":
        cookies = {}
        for pair in pairs:
            name, sep, value = pair.partition("=")
            if not sep or not name.strip():
                raise SessionError("signed-in", f"cookie 格式應為 name=value: {pair}")
            cookies[name.strip()] = value
        return cls(cookies, base_url)

    def __call__(self, driver) -> None:
        driver.get(self.base_url)
        for name, value in self.cookies.items():
            driver.add_cookie({"name": name, "value": value, "path": "/"})
        logger.debug(f"[Session] 已設定 {len(self.cookies)} 個 cookie")


class SessionEndpointProbe(SessionBootstrap):
    """
    以 session endpoint 判斷是否登入。

    Args:
        base_url: 受測站台根網址
        sign_in: (driver) -> None，實際的登入流程（外部提供）
        endpoint: session API 路徑
    """

    def __init__(
        self,
        base_url: str | None = None,
        sign_in: Callable | None = None,
        endpoint: str = SESSION_ENDPOINT,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or Config.BASE_URL).rstrip("/") + "/"
        self.sign_in = sign_in
        self.endpoint = endpoint
        self.timeout = Config.LINK_CHECK_TIMEOUT if timeout is None else timeout
        self.session = session or requests.Session()

    def has_active_session(self, driver) -> bool:
        url = urljoin(self.base_url, self.endpoint.lstrip("/"))
        try:
            cookies = {c["name"]: c["value"] for c in driver.get_cookies() if "name" in c}
        except WebDriverException as e:
            logger.debug(f"[Session] 無法讀取 cookie: {e}")
            cookies = {}
        try:
            resp = self.session.get(url, cookies=cookies, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"[Session] session endpoint 無法連線: {e}")
            return False
        if not resp.ok:
            return False
        try:
            data = resp.json()
        except ValueError:
            return False
        return isinstance(data, dict) and bool(data.get("user"))

    def ensure(self, driver, mode: str) -> None:
        if mode != "signed-in":
            AnonymousSession().ensure(driver, mode)
            return
        if self.has_active_session(driver):
            return
        if self.sign_in is None:
            raise SessionError(mode, "未設定登入流程，無法建立登入狀態")

        logger.info("[Session] 重新登入...")
        self.sign_in(driver)
        if not self.has_active_session(driver):
            raise SessionError(mode, "登入後仍無有效 session")
