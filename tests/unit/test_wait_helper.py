"""
utils.wait_helper 單元測試
驗證 wait_for、poll_until 的行為。
"""

import pytest
from unittest.mock import MagicMock

from utils.wait_helper import poll_until, wait_for


@pytest.mark.unit
class TestWaitFor:
    """wait_for 函式"""

    @pytest.mark.unit
    def test_immediate_success(self):
        """條件立即成立"""
        result = wait_for(lambda: "ok", timeout=1)
        assert result == "ok"

    @pytest.mark.unit
    def test_delayed_success(self):
        """條件延遲後成立"""
        counter = {"n": 0}

        def condition():
            counter["n"] += 1
            return "done" if counter["n"] >= 3 else None

        result = wait_for(condition, timeout=5, interval=0.1)
        assert result == "done"

    @pytest.mark.unit
    def test_timeout_raises(self):
        """超時拋出 TimeoutError"""
        with pytest.raises(TimeoutError, match="等待逾時"):
            wait_for(lambda: False, timeout=0.3, interval=0.1)

    @pytest.mark.unit
    def test_custom_message(self):
        """自訂逾時訊息"""
        with pytest.raises(TimeoutError, match="自訂訊息"):
            wait_for(lambda: False, timeout=0.2, interval=0.1, message="自訂訊息")

    @pytest.mark.unit
    def test_exception_in_condition(self):
        """條件拋出例外時包含在逾時錯誤中"""
        def bad():
            raise ValueError("boom")

        with pytest.raises(TimeoutError, match="boom"):
            wait_for(bad, timeout=0.3, interval=0.1)

@pytest.mark.unit
class TestPollUntil:
    """poll_until：固定延遲序列輪詢"""

    def test_returns_first_result(self):
        sleeps = []
        results = iter([None, "hit", "later"])
        assert poll_until(lambda: next(results), (0.06, 0.12, 0.18), sleep=sleeps.append) == "hit"
        assert sleeps == [0.06, 0.12]

    def test_exhausted_returns_none(self):
        sleeps = []
        assert poll_until(lambda: None, (0.06, 0.12, 0.18), sleep=sleeps.append) is None
        assert sleeps == [0.06, 0.12, 0.18]

    def test_sleeps_before_first_check(self):
        """第一次檢查前也會等待"""
        calls = []
        sleep = MagicMock(side_effect=lambda d: calls.append("sleep"))
        poll_until(lambda: calls.append("check") or "x", (0.1,), sleep=sleep)
        assert calls == ["sleep", "check"]

    def test_falsy_non_none_counts_as_result(self):
        assert poll_until(lambda: 0, (0.1,), sleep=lambda d: None) == 0

    def test_empty_delays(self):
        predicate = MagicMock()
        assert poll_until(predicate, (), sleep=lambda d: None) is None
        predicate.assert_not_called()
