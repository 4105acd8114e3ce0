"""
pytest 全域 fixtures

提供：
- 命令列參數 (--base-url, --mode, --browser, --routes)
- driver fixture：release gate 測試用的瀏覽器（session 範圍共用）
- audit_runner / gate_routes fixtures
- 失敗時自動截圖
"""

import pytest

from config.config import AUDIT_MODES, BROWSERS, Config
from utils.logger import logger
from utils.screenshot import take_screenshot


# ── 命令列參數 ──

def pytest_addoption(parser):
    """新增自訂命令列參數"""
    parser.addoption(
        "--base-url",
        action="store",
        default=None,
        help="受測站台網址；未指定時 release gate 測試會被略過",
    )
    parser.addoption(
        "--mode",
        action="store",
        default=None,
        choices=list(AUDIT_MODES),
        help="稽核模式: signed-out 或 signed-in",
    )
    parser.addoption(
        "--browser",
        action="store",
        default=None,
        choices=list(BROWSERS),
        help="瀏覽器: chrome 或 android (Appium)",
    )
    parser.addoption(
        "--routes",
        action="store",
        default=None,
        help="路由清單檔 (.json / .yaml)",
    )


def pytest_collection_modifyitems(config, items):
    """沒有 --base-url 時略過所有 release_gate 測試"""
    if config.getoption("--base-url"):
        return
    skip = pytest.mark.skip(reason="需要 --base-url 才能執行 release gate")
    for item in items:
        if "release_gate" in item.keywords:
            item.add_marker(skip)


# ── Session / Environment ──

@pytest.fixture(scope="session")
def base_url(request) -> str:
    return request.config.getoption("--base-url") or Config.BASE_URL


@pytest.fixture(scope="session")
def audit_mode(request) -> str:
    return Config.validate_mode(request.config.getoption("--mode"))


@pytest.fixture(scope="session")
def browser(request) -> str:
    return request.config.getoption("--browser") or Config.BROWSER


# ── Driver ──

@pytest.fixture(scope="session")
def driver(browser):
    """
    整個 session 共用一個 driver。

    稽核 run 彼此獨立的是 SignalRegistry 與快取，不是瀏覽器本身。
    """
    from core.driver_manager import DriverManager

    logger.info(f"===== 建立 {browser} driver =====")
    drv = DriverManager.create_driver(browser)
    yield drv
    logger.info("===== 關閉 driver =====")
    DriverManager.quit_driver()


@pytest.fixture
def audit_runner(driver, audit_mode, base_url):
    """已連線的 AuditRunner（每個測試一份新的訊號計數器與快取）"""
    from auditor.runner import AuditRunner
    from auditor.session import AnonymousSession, SessionEndpointProbe

    session = (
        SessionEndpointProbe(base_url=base_url)
        if audit_mode == "signed-in"
        else AnonymousSession()
    )
    runner = AuditRunner(mode=audit_mode, session=session, base_url=base_url)
    runner.connect(driver)
    yield runner
    runner.disconnect()


@pytest.fixture(scope="session")
def gate_routes(request):
    """--routes 指定的路由清單（受 AUDIT_MAX_ROUTES 限制）"""
    from auditor.routes import limit_routes, load_routes

    path = request.config.getoption("--routes")
    if not path:
        pytest.skip("需要 --routes 指定路由清單")
    return limit_routes(load_routes(path))


# ── 測試生命週期 Hook ──

@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """測試失敗時截圖"""
    outcome = yield
    report = outcome.get_result()

    if report.when == "call" and report.failed:
        logger.error(f"測試失敗: {item.name}")
        driver = item.funcargs.get("driver")
        if driver is not None:
            take_screenshot(driver, f"FAIL_{item.name}")
