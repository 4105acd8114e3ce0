"""
core：框架核心

統一匯出例外體系，方便外部 import。
Driver 管理請直接從 core.driver_manager 匯入（它依賴 config，避免循環匯入）。

用法：
    from core import RouteLoadError, ElementStaleError, AuditFailedError
    from core.driver_manager import DriverManager
"""

from core.exceptions import (
    AuditFailedError,
    AuditFrameworkError,
    CapsFileNotFoundError,
    ConfigError,
    DriverConnectionError,
    DriverError,
    DriverNotInitializedError,
    ElementStaleError,
    InvalidConfigError,
    PageError,
    RouteCatalogError,
    RouteLoadError,
    SessionError,
)

__all__ = [
    "AuditFrameworkError",
    "DriverError",
    "DriverNotInitializedError",
    "DriverConnectionError",
    "PageError",
    "RouteLoadError",
    "ElementStaleError",
    "ConfigError",
    "CapsFileNotFoundError",
    "InvalidConfigError",
    "RouteCatalogError",
    "SessionError",
    "AuditFailedError",
]
