"""
設定管理模組
統一管理稽核目標、瀏覽器、Appium server、掃描上限等設定。
支援透過環境變數覆蓋預設值，方便 CI/CD 整合。
支援 capabilities 結構驗證，提前發現設定錯誤。
"""

import json
import os
from pathlib import Path

from core.exceptions import CapsFileNotFoundError, InvalidConfigError

BASE_DIR = Path(__file__).resolve().parent.parent
CONFIG_DIR = Path(__file__).resolve().parent

# capabilities 必填欄位定義
_REQUIRED_CAPS = {
    "android": ["platformName", "browserName", "appium:deviceName"],
}

# capabilities 建議欄位（缺少時發出警告）
_RECOMMENDED_CAPS = {
    "android": ["appium:automationName", "appium:chromedriverExecutable"],
}

AUDIT_MODES = ("signed-out", "signed-in")
BROWSERS = ("chrome", "android")


class ConfigValidationError(Exception):
    """Capabilities 設定驗證失敗"""

    def __init__(self, errors: list[str]):
        self.errors = errors
        msg = "Capabilities 驗證失敗:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(msg)


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """稽核器全域設定"""

    # 稽核目標
    BASE_URL = os.getenv("AUDIT_BASE_URL", "http://localhost:3000")
    MODE = os.getenv("AUDIT_MODE", "signed-out").lower()

    # 掃描上限（0 = 全部路由）
    MAX_ROUTES = int(os.getenv("AUDIT_MAX_ROUTES", "0"))
    MAX_ELEMENTS_PER_ROUTE = int(os.getenv("AUDIT_MAX_ELEMENTS_PER_ROUTE", "250"))

    # 瀏覽器
    BROWSER = os.getenv("AUDIT_BROWSER", "chrome").lower()
    HEADLESS = _env_flag("AUDIT_HEADLESS", "1")
    VIEWPORT = os.getenv("AUDIT_VIEWPORT", "390x844")

    # Appium Server（BROWSER=android 時使用）
    APPIUM_HOST = os.getenv("APPIUM_HOST", "127.0.0.1")
    APPIUM_PORT = int(os.getenv("APPIUM_PORT", "4723"))

    # 超時設定 (秒)
    PAGE_LOAD_TIMEOUT = int(os.getenv("PAGE_LOAD_TIMEOUT", "30"))
    SETTLE_DELAY = float(os.getenv("AUDIT_SETTLE_DELAY", "0.25"))
    LINK_CHECK_TIMEOUT = float(os.getenv("AUDIT_LINK_CHECK_TIMEOUT", "10"))

    # 動作分類
    POLL_DELAYS = os.getenv("AUDIT_POLL_DELAYS", "0.06,0.12,0.18")
    BASELINE_INTERVAL = float(os.getenv("AUDIT_BASELINE_INTERVAL", "0.25"))
    POPUP_TIMEOUT = float(os.getenv("AUDIT_POPUP_TIMEOUT", "1.2"))
    NOISE_FLOOR = int(os.getenv("AUDIT_NOISE_FLOOR", "2"))
    NOISE_MARGIN = int(os.getenv("AUDIT_NOISE_MARGIN", "2"))

    # 截圖與報告
    SCREENSHOT_DIR = BASE_DIR / "screenshots"
    REPORT_DIR = Path(os.getenv("AUDIT_REPORT_DIR", str(BASE_DIR / "reports")))

    @classmethod
    def appium_server_url(cls) -> str:
        return f"http://{cls.APPIUM_HOST}:{cls.APPIUM_PORT}"

    @classmethod
    def poll_delays(cls, raw: str | None = None) -> tuple[float, ...]:
        """
        解析輪詢延遲序列（秒）。

        Raises:
            InvalidConfigError: 非數字、非遞增或為空
        """
        raw = cls.POLL_DELAYS if raw is None else raw
        try:
            delays = tuple(float(p) for p in raw.split(",") if p.strip())
        except ValueError:
            raise InvalidConfigError("AUDIT_POLL_DELAYS", raw, "必須是逗號分隔的秒數")
        if not delays:
            raise InvalidConfigError("AUDIT_POLL_DELAYS", raw, "至少需要一個延遲")
        if any(d <= 0 for d in delays) or list(delays) != sorted(delays):
            raise InvalidConfigError("AUDIT_POLL_DELAYS", raw, "延遲必須為正且遞增")
        return delays

    @classmethod
    def viewport(cls, raw: str | None = None) -> tuple[int, int]:
        """解析 "寬x高" 格式的 viewport"""
        raw = cls.VIEWPORT if raw is None else raw
        try:
            width, height = (int(p) for p in raw.lower().split("x"))
        except ValueError:
            raise InvalidConfigError("AUDIT_VIEWPORT", raw, "格式應為 寬x高，例如 390x844")
        if width <= 0 or height <= 0:
            raise InvalidConfigError("AUDIT_VIEWPORT", raw, "寬高必須為正數")
        return width, height

    @classmethod
    def validate_mode(cls, mode: str | None = None) -> str:
        mode = (mode or cls.MODE).lower()
        if mode not in AUDIT_MODES:
            raise InvalidConfigError("AUDIT_MODE", mode, f"支援: {', '.join(AUDIT_MODES)}")
        return mode

    @classmethod
    def load_caps(cls, platform: str = "android", validate: bool = True) -> dict:
        """
        從 JSON 檔載入 Appium capabilities（行動版 Chrome）。

        Args:
            platform: 目前只支援 'android'
            validate: 是否驗證必填欄位（預設 True）

        Returns:
            capabilities dict

        Raises:
            CapsFileNotFoundError: 設定檔不存在
            ConfigValidationError: 必填欄位缺失
        """
        caps_file = CONFIG_DIR / f"{platform}_chrome_caps.json"
        if not caps_file.exists():
            raise CapsFileNotFoundError(str(caps_file))
        with open(caps_file, "r", encoding="utf-8") as f:
            caps = json.load(f)

        if validate:
            cls.validate_caps(caps, platform)

        return caps

    @classmethod
    def validate_caps(cls, caps: dict, platform: str) -> list[str]:
        """
        驗證 capabilities 結構。

        Returns:
            警告訊息列表

        Raises:
            ConfigValidationError: 必填欄位缺失時拋出
        """
        errors: list[str] = []
        warnings: list[str] = []

        for key in _REQUIRED_CAPS.get(platform, []):
            if key not in caps:
                errors.append(f"缺少必填欄位: {key}")

        for key in _RECOMMENDED_CAPS.get(platform, []):
            if key not in caps:
                warnings.append(f"建議填寫欄位: {key}")

        if errors:
            raise ConfigValidationError(errors)

        return warnings
