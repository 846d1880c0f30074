"""Tests for token bucket rate limiter.

Tests token acquisition, refill over time, and the context manager.
"""

import asyncio
import time

import pytest

from md_client.rate_limiter import RateLimiter

pytestmark = pytest.mark.unit


class TestRateLimiterInit:
    """Tests for RateLimiter initialization."""

    def test_default_values(self):
        limiter = RateLimiter()

        assert limiter.requests_per_second == 5.0
        assert limiter.burst_size == 5
        assert limiter.available_tokens == pytest.approx(5.0, rel=0.1)

    def test_custom_burst_size(self):
        limiter = RateLimiter(requests_per_second=10.0, burst_size=20)

        assert limiter.burst_size == 20
        assert limiter.available_tokens == pytest.approx(20.0, rel=0.1)

    def test_fractional_rps_keeps_one_token(self):
        """Sub-1 rates still allow a single request burst."""
        limiter = RateLimiter(requests_per_second=0.5)

        assert limiter.burst_size == 1


class TestRateLimiterAcquire:
    """Tests for token acquisition."""

    async def test_acquire_immediate_when_full(self):
        limiter = RateLimiter(requests_per_second=10)

        start = time.monotonic()
        await limiter.acquire()

        assert time.monotonic() - start < 0.05

    async def test_acquire_decrements_tokens(self):
        limiter = RateLimiter(requests_per_second=10, burst_size=10)

        initial = limiter.available_tokens
        await limiter.acquire()

        assert initial - limiter.available_tokens >= 0.9

    async def test_acquire_waits_when_empty(self):
        limiter = RateLimiter(requests_per_second=100, burst_size=2)
        await limiter.acquire()
        await limiter.acquire()

        start = time.monotonic()
        await limiter.acquire()

        assert time.monotonic() - start >= 0.008


class TestRateLimiterRefill:
    """Tests for token refill over time."""

    async def test_tokens_refill_over_time(self):
        limiter = RateLimiter(requests_per_second=100, burst_size=10)
        for _ in range(10):
            await limiter.acquire()

        assert limiter.available_tokens < 1

        await asyncio.sleep(0.05)

        assert limiter.available_tokens >= 4

    async def test_refill_caps_at_burst_size(self):
        limiter = RateLimiter(requests_per_second=100, burst_size=5)

        await asyncio.sleep(0.1)

        assert limiter.available_tokens <= 5.0


class TestRateLimiterContextManager:
    """Tests for async context manager interface."""

    async def test_context_manager_acquires_token(self):
        limiter = RateLimiter(requests_per_second=10)
        initial = limiter.available_tokens

        async with limiter as ctx:
            assert ctx is limiter

        assert limiter.available_tokens < initial
