"""
自訂 Exception 體系

統一的錯誤處理階層，讓每種失敗都有明確的分類與訊息。
上層可以 catch 大類別 (如 AuditFrameworkError)，
也可以精準 catch 子類別 (如 RouteLoadError)。

注意：dead click 是「發現」不是例外，不在這棵樹裡；
只有最終彙總斷言 (AuditFailedError) 會讓整次稽核失敗。

Exception 樹：
    AuditFrameworkError
    ├── DriverError
    │   ├── DriverNotInitializedError
    │   └── DriverConnectionError
    ├── PageError
    │   ├── RouteLoadError
    │   └── ElementStaleError
    ├── ConfigError
    │   ├── CapsFileNotFoundError
    │   ├── InvalidConfigError
    │   └── RouteCatalogError
    ├── SessionError
    └── AuditFailedError
"""


class AuditFrameworkError(Exception):
    """框架所有例外的基底，catch 這個就能攔截一切框架錯誤"""

    def __init__(self, message: str = "", context: dict | None = None):
        self.context = context or {}
        super().__init__(message)


# ── Driver 相關 ──

class DriverError(AuditFrameworkError):
    """Driver 相關錯誤"""


class DriverNotInitializedError(DriverError):
    """Driver 尚未初始化就被使用"""

    def __init__(self, message: str = "Driver 尚未建立，請先呼叫 create_driver()"):
        super().__init__(message)


class DriverConnectionError(DriverError):
    """無法連接到瀏覽器或 Appium Server"""

    def __init__(self, url: str = "", original: Exception | None = None):
        self.original = original
        msg = f"無法建立瀏覽器連線: {url}"
        if original:
            msg += f" ({type(original).__name__}: {original})"
        super().__init__(msg, context={"url": url})


# ── Page / Element 相關 ──

class PageError(AuditFrameworkError):
    """頁面操作相關錯誤"""


class RouteLoadError(PageError):
    """路由無法載入（連線失敗、逾時、HTTP >= 400）"""

    def __init__(self, path: str = "", reason: str = "", status: int | None = None):
        self.path = path
        self.status = status
        msg = f"路由載入失敗: {path}"
        if status is not None:
            msg += f" (HTTP {status})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, context={"path": path, "status": status})


class ElementStaleError(PageError):
    """元素參照已失效（DOM 在底下變動），只跳過該元素"""

    def __init__(self, description: str = ""):
        super().__init__(
            f"元素已失效: {description}" if description else "元素已失效",
            context={"element": description},
        )


# ── Config 相關 ──

class ConfigError(AuditFrameworkError):
    """設定相關錯誤"""


class CapsFileNotFoundError(ConfigError):
    """找不到 capabilities 設定檔"""

    def __init__(self, path: str = ""):
        super().__init__(
            f"找不到 capabilities 檔案: {path}",
            context={"path": path},
        )


class InvalidConfigError(ConfigError):
    """設定值無效"""

    def __init__(self, key: str = "", value: str = "", reason: str = ""):
        msg = f"設定值無效: {key}={value}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg, context={"key": key, "value": value})


class RouteCatalogError(ConfigError):
    """路由清單格式錯誤或無法讀取"""

    def __init__(self, source: str = "", reason: str = ""):
        msg = f"路由清單無效: {source}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg, context={"source": source})


# ── Session 相關 ──

class SessionError(AuditFrameworkError):
    """無法建立或恢復登入狀態"""

    def __init__(self, mode: str = "", message: str = ""):
        msg = f"Session 錯誤 [{mode}]: {message}" if mode else message
        super().__init__(msg, context={"mode": mode})


# ── 稽核結果 ──

class AuditFailedError(AuditFrameworkError):
    """稽核結束時仍有 dead click 或路由錯誤"""

    def __init__(
        self,
        dead_clicks: int = 0,
        route_errors: int = 0,
        report_path: str = "",
        failures: int = 0,
        scanner: str = "dead_click_scan",
    ):
        self.dead_clicks = dead_clicks
        self.route_errors = route_errors
        self.failures = failures
        self.report_path = report_path
        parts = []
        if route_errors:
            parts.append(f"{route_errors} 個路由無法載入")
        if dead_clicks:
            parts.append(f"{dead_clicks} 個 dead click")
        if failures:
            parts.append(f"{failures} 個失敗項目")
        msg = f"[{scanner}] 稽核未通過: " + "，".join(parts)
        if report_path:
            msg += f"（報告: {report_path}）"
        super().__init__(
            msg,
            context={
                "scanner": scanner,
                "dead_clicks": dead_clicks,
                "route_errors": route_errors,
                "failures": failures,
                "report_path": report_path,
            },
        )
