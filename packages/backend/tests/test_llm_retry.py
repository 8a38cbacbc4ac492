import asyncio

from sitebuilder.exceptions import ProviderError, TransientProviderError
from sitebuilder.llm.retry import backoff_delay, with_retry


def test_with_retry_succeeds_after_retries():
    attempts = {"count": 0}

    async def flaky():
        attempts["count"] += 1
        if attempts["count"] < 3:
            raise TransientProviderError("rate limited")
        return "ok"

    result = asyncio.run(with_retry(flaky, max_retries=3, base_delay=0))
    assert result == "ok"
    assert attempts["count"] == 3


def test_with_retry_raises_after_exhausted():
    attempts = {"count": 0}

    async def always_fail():
        attempts["count"] += 1
        raise RuntimeError("nope")

    try:
        asyncio.run(with_retry(always_fail, max_retries=2, base_delay=0))
        assert False, "Expected RuntimeError"
    except RuntimeError:
        pass

    assert attempts["count"] == 2


def test_with_retry_does_not_retry_fatal_errors():
    attempts = {"count": 0}

    async def fail_type():
        attempts["count"] += 1
        raise ProviderError("invalid api key")

    try:
        asyncio.run(with_retry(fail_type, max_retries=3, base_delay=0, retry_on=(TransientProviderError,)))
        assert False, "Expected ProviderError"
    except ProviderError:
        pass

    assert attempts["count"] == 1


def test_with_retry_reports_each_retry():
    seen = []

    async def always_fail():
        raise TransientProviderError("timeout")

    async def on_retry(attempt, exc, delay):
        seen.append((attempt, str(exc), delay))

    try:
        asyncio.run(with_retry(always_fail, max_retries=3, base_delay=0, on_retry=on_retry))
        assert False, "Expected TransientProviderError"
    except TransientProviderError:
        pass

    assert [attempt for attempt, _, _ in seen] == [1, 2]


def test_with_retry_uses_linear_backoff():
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    original_sleep = asyncio.sleep
    asyncio.sleep = fake_sleep
    try:
        async def always_fail():
            raise RuntimeError("nope")

        try:
            asyncio.run(with_retry(always_fail, max_retries=4, base_delay=0.5))
            assert False, "Expected RuntimeError"
        except RuntimeError:
            pass
    finally:
        asyncio.sleep = original_sleep

    assert delays == [0.5, 1.0, 1.5]
    assert backoff_delay(2.0, 3) == 6.0
