"""Tests for retry_transient."""

import pytest

from crosspost.core.retry import backoff_delay, retry_transient
from crosspost.errors import NetworkTransientError, NotFoundError, SyncCancelledError
from crosspost.sync.cancellation import CancellationToken


class _Flaky:
    """Fails transiently *failures* times, then returns *value*."""

    def __init__(self, failures: int, value: str = "ok", error=None):
        self.failures = failures
        self.value = value
        self.error = error or NetworkTransientError("connection reset")
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.value


class TestRetryTransient:
    async def test_first_attempt_succeeds(self):
        func = _Flaky(0)
        assert await retry_transient(func, base_delay=0) == "ok"
        assert func.calls == 1

    async def test_retries_transient_failures(self):
        func = _Flaky(2)
        assert await retry_transient(func, attempts=3, base_delay=0) == "ok"
        assert func.calls == 3

    async def test_gives_up_after_attempts(self):
        func = _Flaky(5)
        with pytest.raises(NetworkTransientError, match="gave up after 3 attempts"):
            await retry_transient(func, attempts=3, base_delay=0)
        assert func.calls == 3

    async def test_other_errors_not_retried(self):
        func = _Flaky(5, error=NotFoundError("missing"))
        with pytest.raises(NotFoundError):
            await retry_transient(func, base_delay=0)
        assert func.calls == 1

    async def test_checks_token_before_attempt(self):
        token = CancellationToken("A1")
        token.abort()
        func = _Flaky(0)
        with pytest.raises(SyncCancelledError):
            await retry_transient(func, token=token)
        assert func.calls == 0

    async def test_invalid_attempts(self):
        with pytest.raises(ValueError):
            await retry_transient(_Flaky(0), attempts=0)


class TestBackoffDelay:
    @pytest.mark.parametrize(
        "attempt, expected",
        [(1, 1.0), (2, 2.0), (3, 3.0), (10, 5.0)],
    )
    def test_linear_and_capped(self, attempt, expected):
        assert backoff_delay(attempt, 1.0, 5.0) == expected

    def test_zero_base_never_waits(self):
        assert backoff_delay(3, 0, 5.0) == 0.0
