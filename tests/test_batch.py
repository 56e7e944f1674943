"""
Tests for batch helpers.
"""

import asyncio

from intelligence.batch import AsyncRateLimiter, BatchResult, CancellationToken, run_bounded


def test_error_list_is_capped():
    result = BatchResult(max_errors=3)
    for i in range(5):
        result.record_failure(f"item-{i}", "boom")
    result.record_skip("item-5", "no email")

    assert result.failed == 5
    assert result.skipped == 1
    assert result.processed == 6
    assert len(result.errors) == 3
    assert result.errors_truncated == 3


def test_run_bounded_limits_concurrency_and_isolates_errors():
    in_flight = 0
    peak = 0

    async def worker(n):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        if n == 3:
            raise ValueError("bad item")
        return n * 2

    outcomes = asyncio.run(run_bounded(range(8), worker, concurrency=2))

    assert peak <= 2
    assert [item for item, _, _ in outcomes] == list(range(8))
    assert outcomes[2] == (2, 4, None)
    assert isinstance(outcomes[3][2], ValueError)


def test_run_bounded_stops_on_cancel():
    token = CancellationToken()
    started = []

    async def worker(n):
        started.append(n)
        if n == 1:
            token.cancel()
        return n

    outcomes = asyncio.run(run_bounded(range(10), worker, concurrency=1, cancel_token=token))

    assert token.cancelled
    assert [item for item, _, _ in outcomes] == [0, 1]
    assert started == [0, 1]


def test_rate_limiter_spaces_calls():
    async def run():
        limiter = AsyncRateLimiter(0.05)
        loop = asyncio.get_running_loop()
        start = loop.time()
        for _ in range(3):
            await limiter.wait()
        return loop.time() - start

    assert asyncio.run(run()) >= 0.09
