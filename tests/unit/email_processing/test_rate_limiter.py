"""
Unit tests for the token budget rate limiter.
"""

import asyncio

import pytest

from src.email_processing.rate_limiter import TokenRateLimiter


def make_limiter(clock, tokens_per_minute=1000, safety_buffer=0.2):
    return TokenRateLimiter(
        tokens_per_minute=tokens_per_minute,
        safety_buffer=safety_buffer,
        clock=clock,
        sleep=clock.sleep,
    )


class TestEstimate:
    """Token estimation heuristics."""

    def test_blends_word_and_character_estimates(self):
        # 2 words, 11 chars: ceil((2.6 + 2.75) / 2) = 3
        assert TokenRateLimiter.estimate("hello world") == 3

    def test_empty_text_is_zero(self):
        assert TokenRateLimiter.estimate("") == 0
        assert TokenRateLimiter.estimate(None) == 0

    def test_long_text_scales(self):
        text = "word " * 1000
        # 1000 words, 5000 chars: ceil((1300 + 1250) / 2)
        assert TokenRateLimiter.estimate(text) == 1275


class TestReserve:
    """Budget admission and window behaviour."""

    @pytest.mark.asyncio
    async def test_reservation_within_budget_does_not_wait(self, fake_clock):
        limiter = make_limiter(fake_clock)

        await limiter.reserve(300)
        await limiter.reserve(400)

        assert fake_clock.sleeps == []
        assert limiter.tokens_consumed_this_window == 700

    @pytest.mark.asyncio
    async def test_reservation_over_buffer_waits_for_window_reset(self, fake_clock):
        limiter = make_limiter(fake_clock)
        await limiter.reserve(500)
        fake_clock.advance(15)

        # 500 + 400 exceeds the usable 800 tokens
        await limiter.reserve(400)

        assert fake_clock.sleeps == [pytest.approx(45.0)]
        assert limiter.tokens_consumed_this_window == 400

    @pytest.mark.asyncio
    async def test_exactly_usable_budget_is_admitted(self, fake_clock):
        limiter = make_limiter(fake_clock)

        await limiter.reserve(500)
        await limiter.reserve(300)

        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_oversized_reservation_admitted_into_empty_window(self, fake_clock):
        limiter = make_limiter(fake_clock)

        await limiter.reserve(5000)

        assert fake_clock.sleeps == []
        assert limiter.tokens_consumed_this_window == 5000

    @pytest.mark.asyncio
    async def test_window_resets_on_fixed_ticks(self, fake_clock):
        limiter = make_limiter(fake_clock)
        fake_clock.advance(30)
        await limiter.reserve(500)

        # A sliding window would still count the reservation made 35s ago
        fake_clock.advance(35)
        status = limiter.status()

        assert status["current_token_usage"] == 0
        assert status["time_since_reset"] == pytest.approx(5.0)

    @pytest.mark.asyncio
    async def test_waiters_are_served_in_arrival_order(self, fake_clock):
        limiter = make_limiter(fake_clock)
        order = []

        async def reserve(name, tokens):
            await limiter.reserve(tokens)
            order.append(name)

        # "c" alone would fit the first window, but it arrived after "b"
        await asyncio.gather(reserve("a", 500), reserve("b", 500), reserve("c", 100))

        assert order == ["a", "b", "c"]
        assert fake_clock.sleeps == [pytest.approx(60.0)]

    @pytest.mark.asyncio
    async def test_calls_over_budget_are_spread_across_windows(self, fake_clock):
        limiter = make_limiter(fake_clock)
        window_usage = {}

        for _ in range(6):
            await limiter.reserve(300)
            window = int((fake_clock.now - 1000.0) // 60)
            window_usage[window] = window_usage.get(window, 0) + 300

        assert all(usage <= 800 for usage in window_usage.values())
        assert len(window_usage) == 3

    @pytest.mark.asyncio
    async def test_negative_reservation_rejected(self, fake_clock):
        limiter = make_limiter(fake_clock)

        with pytest.raises(ValueError):
            await limiter.reserve(-1)


class TestStatus:
    """Monitoring snapshot."""

    @pytest.mark.asyncio
    async def test_status_reports_usage_and_remaining(self, fake_clock):
        limiter = make_limiter(fake_clock)
        await limiter.reserve(250)
        fake_clock.advance(10)

        status = limiter.status()

        assert status == {
            "current_token_usage": 250,
            "time_since_reset": pytest.approx(10.0),
            "tokens_per_minute": 1000,
            "remaining_tokens": 750,
        }

    def test_invalid_configuration_rejected(self, fake_clock):
        with pytest.raises(ValueError):
            TokenRateLimiter(tokens_per_minute=0, clock=fake_clock)
        with pytest.raises(ValueError):
            TokenRateLimiter(safety_buffer=1.0, clock=fake_clock)
