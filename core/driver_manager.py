"""
Driver 生命週期管理

負責建立、取得、關閉稽核用的瀏覽器 driver，確保每次稽核 run 獨立。

支援：
- chrome：本機 selenium Chrome（可 headless、行動版 viewport 模擬）
- android：透過 Appium 連線模擬器/實機上的行動版 Chrome
- 執行緒安全（平行跑 signed-out / signed-in 時各自獨立 driver）
- Appium server 連線前健康檢查
- 連線失敗自動重試（指數退避）
"""

import threading
import time
import urllib.request
import urllib.error

from appium import webdriver as appium_webdriver
from appium.options.android import UiAutomator2Options
from selenium import webdriver
from selenium.webdriver.chrome.options import Options as ChromeOptions

from config.config import BROWSERS, Config
from core.exceptions import (
    DriverConnectionError,
    DriverNotInitializedError,
    InvalidConfigError,
)
from utils.logger import logger


class DriverManager:
    """
    管理 WebDriver 的建立與銷毀

    使用 thread-local storage 確保平行 run 時各 worker 的 driver 互不干擾。
    """

    _local = threading.local()

    # ── Appium Server 健康檢查 ──

    @classmethod
    def health_check(cls, url: str | None = None, timeout: float = 5.0) -> bool:
        """
        檢查 Appium server 是否可連線。

        Returns:
            True = server 可用, False = 不可用
        """
        url = url or Config.appium_server_url()
        status_url = f"{url}/status"
        try:
            req = urllib.request.Request(status_url, method="GET")
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                return resp.status == 200
        except (urllib.error.URLError, OSError, TimeoutError):
            return False

    # ── Driver 建立 ──

    @classmethod
    def chrome_options(cls, headless: bool | None = None) -> ChromeOptions:
        """本機 Chrome 選項：headless + 行動版 viewport"""
        headless = Config.HEADLESS if headless is None else headless
        width, height = Config.viewport()
        options = ChromeOptions()
        if headless:
            options.add_argument("--headless=new")
        options.add_argument("--disable-gpu")
        options.add_argument("--no-sandbox")
        options.add_argument("--autoplay-policy=no-user-gesture-required")
        options.add_experimental_option(
            "mobileEmulation",
            {"deviceMetrics": {"width": width, "height": height, "pixelRatio": 3.0}},
        )
        return options

    @classmethod
    def create_driver(
        cls,
        browser: str | None = None,
        max_retries: int = 3,
        retry_delay: float = 2.0,
    ):
        """
        建立瀏覽器 driver，支援自動重試。

        Args:
            browser: 'chrome' 或 'android'，預設讀取 Config.BROWSER
            max_retries: 連線失敗時最多重試次數
            retry_delay: 首次重試等待秒數（後續指數退避）

        Returns:
            selenium / Appium WebDriver 實例
        """
        browser = (browser or Config.BROWSER).lower()
        if browser not in BROWSERS:
            raise InvalidConfigError("AUDIT_BROWSER", browser, f"支援: {', '.join(BROWSERS)}")

        if browser == "android":
            url = Config.appium_server_url()
            options = UiAutomator2Options().load_capabilities(Config.load_caps("android"))
            if not cls.health_check(url):
                logger.warning(f"Appium server 健康檢查失敗: {url}，仍嘗試連線...")
            factory = lambda: appium_webdriver.Remote(command_executor=url, options=options)
        else:
            url = "local-chrome"
            options = cls.chrome_options()
            factory = lambda: webdriver.Chrome(options=options)

        # 帶重試的連線
        last_error: Exception | None = None
        for attempt in range(max_retries):
            try:
                drv = factory()
                break
            except Exception as e:
                last_error = e
                if attempt < max_retries - 1:
                    wait = retry_delay * (2 ** attempt)
                    logger.warning(
                        f"Driver 連線失敗 (第 {attempt + 1} 次)，"
                        f"{wait:.1f}s 後重試: {e}"
                    )
                    time.sleep(wait)
        else:
            raise DriverConnectionError(url, last_error)

        drv.set_page_load_timeout(Config.PAGE_LOAD_TIMEOUT)

        cls._local.driver = drv
        logger.info(f"Driver 已建立: {browser} -> {url}")
        return drv

    @classmethod
    def get_driver(cls):
        """取得當前執行緒的 driver 實例"""
        drv = getattr(cls._local, "driver", None)
        if drv is None:
            raise DriverNotInitializedError()
        return drv

    @classmethod
    def quit_driver(cls) -> None:
        """安全關閉當前執行緒的 driver"""
        drv = getattr(cls._local, "driver", None)
        if drv is not None:
            drv.quit()
            cls._local.driver = None
            logger.info("Driver 已關閉")
