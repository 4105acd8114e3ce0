"""
日誌模組
統一的 logging 設定，同時輸出到 console 與檔案。

支援：
- Console 輸出（人類可讀格式）
- 檔案輸出（純文字 + 可選 JSON 結構化格式）
- 環境變數控制:
    LOG_LEVEL: console 日誌等級 (預設 INFO)
    AUDIT_VERBOSE: 設為 "1" 時 console 強制 DEBUG（逐元素的分類細節）
    LOG_JSON: 設為 "1" 啟用 JSON 結構化日誌檔
    AUDIT_REPORT_DIR: 日誌檔所在目錄 (預設 reports/)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

LOG_DIR = Path(
    os.getenv("AUDIT_REPORT_DIR", str(Path(__file__).resolve().parent.parent / "reports"))
)
LOG_DIR.mkdir(parents=True, exist_ok=True)


class JsonFormatter(logging.Formatter):
    """JSON 結構化日誌格式器，適合 ELK / Loki 等日誌系統"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


def _console_level() -> int:
    if os.getenv("AUDIT_VERBOSE", "").strip().lower() in ("1", "true", "yes"):
        return logging.DEBUG
    return getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)


def _create_logger() -> logging.Logger:
    _logger = logging.Logger("ui_auditor")
    _logger.setLevel(logging.DEBUG)

    fmt = logging.Formatter(
        "[%(asctime)s] %(levelname)-7s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Console handler（人類可讀）
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(_console_level())
    console.setFormatter(fmt)
    _logger.addHandler(console)

    # File handler（純文字）
    file_handler = logging.FileHandler(LOG_DIR / "audit.log", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(fmt)
    _logger.addHandler(file_handler)

    # JSON file handler（可選，設 LOG_JSON=1 啟用）
    if os.getenv("LOG_JSON", "").strip() == "1":
        json_handler = logging.FileHandler(
            LOG_DIR / "audit.json.log", encoding="utf-8"
        )
        json_handler.setLevel(logging.DEBUG)
        json_handler.setFormatter(JsonFormatter())
        _logger.addHandler(json_handler)

    return _logger


def set_verbose(enabled: bool) -> None:
    """執行期切換 console 的 DEBUG 輸出（CLI --verbose 使用）"""
    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(
            handler, logging.FileHandler
        ):
            handler.setLevel(logging.DEBUG if enabled else _console_level())


logger = _create_logger()
