"""Tests for the shared retry helper."""

import pytest

from sleeptimer.core.retry import retry_with_backoff


class _Flaky:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"attempt {self.calls}")
        return "ok"


class TestRetryWithBackoff:
    def test_first_attempt_succeeds(self) -> None:
        slept = []
        assert retry_with_backoff(_Flaky(0), [1, 2], sleep=slept.append) == "ok"
        assert slept == []

    def test_sleeps_through_schedule(self) -> None:
        slept = []
        func = _Flaky(2)
        assert retry_with_backoff(func, [0.5, 1.0], sleep=slept.append) == "ok"
        assert slept == [0.5, 1.0]
        assert func.calls == 3

    def test_reraises_last_failure(self) -> None:
        func = _Flaky(5)
        with pytest.raises(ConnectionError, match="attempt 3"):
            retry_with_backoff(func, [0, 0], sleep=lambda _: None)

    def test_only_retries_listed_errors(self) -> None:
        def boom() -> None:
            raise KeyError("x")

        slept = []
        with pytest.raises(KeyError):
            retry_with_backoff(boom, [1], retry_on=(ConnectionError,), sleep=slept.append)
        assert slept == []

    def test_empty_schedule_tries_once(self) -> None:
        func = _Flaky(1)
        with pytest.raises(ConnectionError):
            retry_with_backoff(func, [])
        assert func.calls == 1
