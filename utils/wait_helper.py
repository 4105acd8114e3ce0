"""
等待與輪詢工具
提供通用的條件等待，以及依固定延遲序列輪詢的 poll_until。

用法：
    from utils.wait_helper import wait_for, poll_until

    # 簡易等待（逾時拋出 TimeoutError）
    wait_for(lambda: driver.execute_script("return document.readyState") == "complete")

    # 依遞增延遲輪詢，條件成立即回傳結果；全部延遲用完回傳 None
    outcome = poll_until(probe, delays=(0.06, 0.12, 0.18))
"""

import time
from typing import Callable, Iterable, TypeVar

from utils.logger import logger

T = TypeVar("T")


def wait_for(
    condition: Callable[[], T],
    timeout: float = 10,
    interval: float = 0.5,
    message: str = "",
) -> T:
    """
    等待某個條件成立。

    Args:
        condition: 回傳值為 truthy 時視為成立的 callable
        timeout: 最長等待秒數
        interval: 輪詢間隔秒數
        message: 超時時顯示的錯誤訊息

    Returns:
        condition 的回傳值

    Raises:
        TimeoutError: 超過 timeout 仍未成立
    """
    end_time = time.time() + timeout
    last_exception = None

    while time.time() < end_time:
        try:
            result = condition()
            if result:
                return result
        except Exception as e:
            last_exception = e
        time.sleep(interval)

    error = message or f"等待逾時 ({timeout}s)"
    if last_exception:
        error += f" | 最後的例外: {last_exception}"
    raise TimeoutError(error)


def poll_until(
    predicate: Callable[[], T | None],
    delays: Iterable[float],
    sleep: Callable[[float], None] = time.sleep,
) -> T | None:
    """
    依序等待每個延遲後呼叫 predicate，第一個非 None 結果立即回傳。

    與 wait_for 不同：
    - 延遲序列是明確的（例如 60ms, 120ms, 180ms），總預算固定
    - 用完不拋例外，回傳 None 由呼叫端決定後續
    - sleep 可注入，單元測試可用假時鐘

    Args:
        predicate: 回傳結果或 None（尚未成立）
        delays: 每次檢查前等待的秒數
        sleep: 等待函式

    Returns:
        第一個非 None 的結果，或 None
    """
    for attempt, delay in enumerate(delays, start=1):
        sleep(delay)
        result = predicate()
        if result is not None:
            logger.debug(f"poll_until 第 {attempt} 次檢查成立 (delay={delay}s)")
            return result
    return None
