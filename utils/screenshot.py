"""
截圖工具
稽核失敗時擷取瀏覽器畫面，方便對照 dead click 報告 debug。
"""

import re
from datetime import datetime
from pathlib import Path

from selenium.common.exceptions import WebDriverException

from config.config import Config
from utils.logger import logger

_UNSAFE = re.compile(r"[^\w.-]+")


def take_screenshot(driver, name: str, directory: str | Path | None = None) -> str | None:
    """
    擷取瀏覽器截圖。

    Args:
        driver: selenium / Appium driver 實例
        name: 截圖名稱（不含副檔名，pytest 參數化名稱中的符號會被替換）
        directory: 存放目錄，預設 Config.SCREENSHOT_DIR

    Returns:
        截圖檔案的完整路徑；driver 已無法截圖時回傳 None
    """
    target = Path(directory) if directory else Config.SCREENSHOT_DIR
    target.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    safe_name = _UNSAFE.sub("_", name).strip("_") or "screenshot"
    filepath = target / f"{safe_name}_{timestamp}.png"
    try:
        driver.save_screenshot(str(filepath))
    except WebDriverException as e:
        logger.warning(f"截圖失敗 ({name}): {e}")
        return None
    logger.info(f"截圖已儲存: {filepath}")
    return str(filepath)
