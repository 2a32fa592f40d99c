"""Tests for core/retry.py -- call_with_retry() and calculate_delay()."""

from unittest.mock import Mock

import pytest

from raindrop_notebooklm_sync.core.retry import calculate_delay, call_with_retry
from raindrop_notebooklm_sync.errors import (
    AdapterError,
    AuthError,
    NetworkError,
    RateLimited,
)


def test_calculate_delay_grows_and_caps():
    assert calculate_delay(0, 1.0, 30.0, 0.0) == 1.0
    assert calculate_delay(3, 1.0, 30.0, 0.0) == 8.0
    assert calculate_delay(10, 1.0, 30.0, 0.0) == 30.0


def test_calculate_delay_jitter_bounded():
    for _ in range(20):
        delay = calculate_delay(1, 1.0, 30.0, 0.1)
        assert 2.0 <= delay <= 2.2


def test_success_first_try_does_not_sleep():
    sleep = Mock()
    assert call_with_retry(lambda: "ok", sleep=sleep) == "ok"
    sleep.assert_not_called()


def test_network_error_retried_then_succeeds():
    sleep = Mock()
    func = Mock(side_effect=[NetworkError("down"), NetworkError("down"), "ok"])

    result = call_with_retry(func, max_retries=3, jitter=0.0, sleep=sleep)

    assert result == "ok"
    assert func.call_count == 3
    assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]


def test_retries_exhausted_raises_last_error():
    sleep = Mock()
    errors = [NetworkError(f"down {i}") for i in range(3)]
    func = Mock(side_effect=errors)

    with pytest.raises(NetworkError, match="down 2"):
        call_with_retry(func, max_retries=2, sleep=sleep)

    assert func.call_count == 3
    assert sleep.call_count == 2


def test_auth_error_not_retried():
    sleep = Mock()
    func = Mock(side_effect=AuthError("bad token", status_code=401))

    with pytest.raises(AuthError):
        call_with_retry(func, sleep=sleep)

    assert func.call_count == 1
    sleep.assert_not_called()


def test_plain_adapter_error_not_retried():
    func = Mock(side_effect=AdapterError("bad request", status_code=400))

    with pytest.raises(AdapterError):
        call_with_retry(func, sleep=Mock())

    assert func.call_count == 1


def test_rate_limit_retry_after_honoured():
    sleep = Mock()
    func = Mock(side_effect=[RateLimited("slow down", retry_after=7.0), "ok"])

    assert call_with_retry(func, sleep=sleep) == "ok"
    sleep.assert_called_once_with(7.0)


def test_rate_limit_retry_after_capped():
    sleep = Mock()
    func = Mock(side_effect=[RateLimited("slow down", retry_after=600.0), "ok"])

    call_with_retry(func, max_delay=30.0, sleep=sleep)

    sleep.assert_called_once_with(30.0)
