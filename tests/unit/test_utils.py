# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""Unit tests for scheduling, rate limiting, retries, circuit breaking, locks and pub/sub."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from resurrectci.exceptions import ExternalServiceError, GitHubAPIError, VercelAPIError
from resurrectci.utils.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError, CircuitState
from resurrectci.utils.locks import KeyedLock
from resurrectci.utils.pubsub import Publisher
from resurrectci.utils.rate_limiter import SlidingWindowRateLimiter
from resurrectci.utils.retry import calculate_backoff, retry_async
from resurrectci.utils.scheduling import PeriodicTask, TaskOutcome


class FakeClock:
    """Manual clock whose sleep advances time instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestSlidingWindowRateLimiter:
    """Test suite for SlidingWindowRateLimiter."""

    @pytest.fixture
    def clock(self) -> FakeClock:
        return FakeClock()

    @pytest.mark.asyncio
    async def test_calls_within_limit_do_not_wait(self, clock: FakeClock):
        limiter = SlidingWindowRateLimiter(max_calls=3, window_seconds=60, clock=clock, sleep=clock.sleep)

        for _ in range(3):
            await limiter.acquire()

        assert clock.sleeps == []
        assert limiter.calls_in_window == 3

    @pytest.mark.asyncio
    async def test_waits_for_window_to_slide(self, clock: FakeClock):
        limiter = SlidingWindowRateLimiter(max_calls=2, window_seconds=60, clock=clock, sleep=clock.sleep)

        await limiter.acquire()
        clock.now = 10.0
        await limiter.acquire()
        await limiter.acquire()

        assert clock.sleeps == [50.0]
        assert clock.now == 60.0

    @pytest.mark.asyncio
    async def test_minimum_spacing(self, clock: FakeClock):
        limiter = SlidingWindowRateLimiter(
            max_calls=15, window_seconds=60, min_spacing_seconds=2, clock=clock, sleep=clock.sleep
        )

        await limiter.acquire()
        clock.now = 0.5
        await limiter.acquire()

        assert clock.sleeps == [1.5]

    def test_time_until_available(self, clock: FakeClock):
        limiter = SlidingWindowRateLimiter(max_calls=1, window_seconds=60, clock=clock)
        assert limiter.time_until_available() == 0.0

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(max_calls=0, window_seconds=60)


class TestPeriodicTask:
    """Test suite for PeriodicTask."""

    @pytest.mark.asyncio
    async def test_stops_when_tick_returns_true(self):
        results = iter([False, False, True])
        tick = AsyncMock(side_effect=lambda: next(results))

        task = PeriodicTask("test", interval=0.01, tick=tick)
        outcome = await task.wait()

        assert outcome == TaskOutcome.COMPLETED
        assert task.ticks == 3
        assert tick.await_count == 3
        assert not task.running

    @pytest.mark.asyncio
    async def test_deadline_exceeded(self):
        tick = AsyncMock(return_value=False)

        task = PeriodicTask("test", interval=0.01, tick=tick, deadline=0.05)
        outcome = await task.wait()

        assert outcome == TaskOutcome.DEADLINE_EXCEEDED
        assert task.outcome == TaskOutcome.DEADLINE_EXCEEDED
        assert 1 <= tick.await_count <= 7

    @pytest.mark.asyncio
    async def test_deadline_cuts_off_running_tick(self):
        finished = []

        async def tick() -> bool:
            await asyncio.sleep(1)
            finished.append(True)
            return True

        task = PeriodicTask("test", interval=0.01, tick=tick, deadline=0.05)
        outcome = await asyncio.wait_for(task.wait(), timeout=0.5)

        assert outcome == TaskOutcome.DEADLINE_EXCEEDED
        assert task.ticks == 1
        assert finished == []

    @pytest.mark.asyncio
    async def test_cancel(self):
        tick = AsyncMock(return_value=False)
        task = PeriodicTask("test", interval=10, tick=tick)
        task.start()
        await asyncio.sleep(0)

        task.cancel()
        outcome = await task.wait()

        assert outcome == TaskOutcome.CANCELLED
        assert tick.await_count == 1

    @pytest.mark.asyncio
    async def test_tick_exception_does_not_stop_loop(self):
        tick = AsyncMock(side_effect=[RuntimeError("flaky"), True])

        task = PeriodicTask("test", interval=0.01, tick=tick)
        outcome = await task.wait()

        assert outcome == TaskOutcome.COMPLETED
        assert task.ticks == 2

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        task = PeriodicTask("test", interval=0.01, tick=AsyncMock(return_value=True))
        assert task.start() is task.start()
        await task.wait()

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            PeriodicTask("test", interval=0, tick=AsyncMock())


class TestRetry:
    """Test suite for retry helpers."""

    def test_backoff_without_jitter(self):
        assert calculate_backoff(0, base_delay=1.0, jitter=False) == 1.0
        assert calculate_backoff(2, base_delay=1.0, jitter=False) == 4.0
        assert calculate_backoff(10, base_delay=1.0, max_delay=8.0, jitter=False) == 8.0

    def test_jitter_is_additive(self):
        for attempt in range(4):
            delay = calculate_backoff(attempt, base_delay=1.0, max_delay=60.0)
            assert 2 ** attempt <= delay < 2 ** attempt + 1

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        sleep = AsyncMock()
        func = AsyncMock(side_effect=[VercelAPIError("down", 503), "ok"])

        result = await retry_async(func, max_attempts=3, jitter=False, sleep=sleep)

        assert result == "ok"
        assert func.await_count == 2
        sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_raises_last_exception(self):
        func = AsyncMock(side_effect=VercelAPIError("down", 503))

        with pytest.raises(VercelAPIError):
            await retry_async(func, max_attempts=3, sleep=AsyncMock())

        assert func.await_count == 3

    @pytest.mark.asyncio
    async def test_should_retry_rejects(self):
        func = AsyncMock(side_effect=GitHubAPIError("Not Found", 404))

        with pytest.raises(GitHubAPIError):
            await retry_async(
                func,
                max_attempts=3,
                should_retry=lambda e: isinstance(e, ExternalServiceError) and e.is_transient,
                sleep=AsyncMock(),
            )

        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_delay_for_overrides_backoff(self):
        sleep = AsyncMock()
        func = AsyncMock(side_effect=[ValueError("a"), ValueError("b"), "ok"])

        await retry_async(func, max_attempts=3, delay_for=lambda e, attempt: 0.25 * (attempt + 1), sleep=sleep)

        assert [call.args[0] for call in sleep.await_args_list] == [0.25, 0.5]


class TestCircuitBreaker:
    """Test suite for CircuitBreaker."""

    @pytest.fixture
    def breaker(self) -> CircuitBreaker:
        return CircuitBreaker(failure_threshold=2, timeout=60.0, expected_exception=VercelAPIError, name="vercel_api")

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, breaker: CircuitBreaker):
        failing = AsyncMock(side_effect=VercelAPIError("down", 503))

        for _ in range(2):
            with pytest.raises(VercelAPIError):
                await breaker.call(failing)

        assert breaker.get_state() == CircuitState.OPEN
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            await breaker.call(failing)
        assert failing.await_count == 2
        assert exc_info.value.status_code == 503
        assert isinstance(exc_info.value, ExternalServiceError)

    @pytest.mark.asyncio
    async def test_client_errors_do_not_count(self, breaker: CircuitBreaker):
        rejected = AsyncMock(side_effect=VercelAPIError("bad request", 400))

        for _ in range(3):
            with pytest.raises(VercelAPIError):
                await breaker.call(rejected)

        assert breaker.get_state() == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_then_closed(self, breaker: CircuitBreaker):
        breaker.timeout = 0.0
        failing = AsyncMock(side_effect=VercelAPIError("down", 503))
        for _ in range(2):
            with pytest.raises(VercelAPIError):
                await breaker.call(failing)

        healthy = AsyncMock(return_value="ok")
        assert await breaker.call(healthy) == "ok"
        assert breaker.get_state() == CircuitState.HALF_OPEN
        await breaker.call(healthy)
        assert breaker.get_state() == CircuitState.CLOSED

    def test_reset(self, breaker: CircuitBreaker):
        breaker.stats.state = CircuitState.OPEN
        breaker.reset()
        assert breaker.get_stats()["state"] == "closed"


class TestKeyedLock:
    """Test suite for KeyedLock."""

    def test_one_lock_per_key(self):
        locks = KeyedLock()

        with locks.hold("dpl_1"):
            with locks.hold("dpl_1"):
                pass
        with locks.hold("dpl_2"):
            pass

        assert len(locks) == 2
        locks.discard("dpl_1")
        assert len(locks) == 1


class TestPublisher:
    """Test suite for Publisher."""

    def test_delivers_in_registration_order(self):
        publisher: Publisher[str] = Publisher("test")
        received = []
        publisher.subscribe(lambda event: received.append(("a", event)))
        publisher.subscribe(lambda event: received.append(("b", event)))

        publisher.publish("hello")

        assert received == [("a", "hello"), ("b", "hello")]
        assert len(publisher) == 2

    def test_failing_subscriber_is_skipped(self):
        publisher: Publisher[str] = Publisher("test")
        healthy = Mock()
        publisher.subscribe(Mock(side_effect=RuntimeError("boom")))
        publisher.subscribe(healthy)

        publisher.publish("event")

        healthy.assert_called_once_with("event")
