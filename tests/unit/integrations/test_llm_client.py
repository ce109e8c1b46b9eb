"""
Unit tests for the rate-limited LLM client.
"""

import logging

import pytest
from unittest.mock import patch

from conftest import ScriptedTransport
from src.email_processing.errors import LLMError, MalformedResponseError
from src.email_processing.rate_limiter import TokenRateLimiter
from src.email_processing.retry import RetryPolicy
from src.integrations.anthropic.client import AnthropicTransport
from src.integrations.llm.client import LLMClient, create_transport, is_retryable_llm_error

PROMPT = "Analyze this email and respond with JSON only."


@pytest.fixture
def limiter(fake_clock):
    return TokenRateLimiter(tokens_per_minute=40000, clock=fake_clock, sleep=fake_clock.sleep)


def make_client(transport, limiter, recording_sleep, max_retries=3):
    policy = RetryPolicy(
        max_retries=max_retries,
        base_delay=60.0,
        is_retryable=is_retryable_llm_error,
        sleep=recording_sleep,
    )
    return LLMClient(transport, limiter, policy, max_tokens=4000)


class TestCall:
    """Raw text calls with budget reservation and retries."""

    @pytest.mark.asyncio
    async def test_returns_transport_text_and_reserves_estimate(self, limiter, recording_sleep):
        transport = ScriptedTransport('{"ok": true}')
        client = make_client(transport, limiter, recording_sleep)

        assert await client.call(PROMPT) == '{"ok": true}'
        assert transport.prompts == [PROMPT]
        assert limiter.tokens_consumed_this_window == TokenRateLimiter.estimate(PROMPT)

    @pytest.mark.asyncio
    async def test_throttling_is_retried_with_backoff(self, limiter, recording_sleep, caplog):
        transport = ScriptedTransport(LLMError(429, "rate limited"), LLMError(529, "overloaded"), "fine")
        client = make_client(transport, limiter, recording_sleep)

        with caplog.at_level(logging.WARNING):
            assert await client.call(PROMPT) == "fine"

        assert recording_sleep.delays == [60.0, 120.0]
        assert "throttled" in caplog.text
        # Every attempt is budgeted like a first attempt
        assert limiter.tokens_consumed_this_window == 3 * TokenRateLimiter.estimate(PROMPT)

    @pytest.mark.asyncio
    async def test_server_and_network_errors_are_retried(self, limiter, recording_sleep):
        transport = ScriptedTransport(LLMError(500, "server error"), LLMError(None, "connection reset"), "ok")
        client = make_client(transport, limiter, recording_sleep)

        assert await client.call(PROMPT) == "ok"
        assert len(transport.prompts) == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_last_error(self, limiter, recording_sleep):
        transport = ScriptedTransport(LLMError(503, "unavailable"))
        client = make_client(transport, limiter, recording_sleep)

        with pytest.raises(LLMError) as excinfo:
            await client.call(PROMPT)

        assert excinfo.value.status == 503
        assert len(transport.prompts) == 4
        assert recording_sleep.delays == [60.0, 120.0, 240.0]


class TestCallJson:
    """JSON calls and malformed output handling."""

    @pytest.mark.asyncio
    async def test_parses_json_reply(self, limiter, recording_sleep):
        client = make_client(ScriptedTransport('[{"index": 1}]'), limiter, recording_sleep)

        assert await client.call_json(PROMPT) == [{"index": 1}]

    @pytest.mark.asyncio
    async def test_repairs_json_reply(self, limiter, recording_sleep):
        client = make_client(ScriptedTransport('Sure! {summary: "x",}'), limiter, recording_sleep)

        assert await client.call_json(PROMPT) == {"summary": "x"}

    @pytest.mark.asyncio
    async def test_malformed_reply_is_not_retried(self, limiter, recording_sleep):
        transport = ScriptedTransport("not json at all")
        client = make_client(transport, limiter, recording_sleep)

        with pytest.raises(MalformedResponseError):
            await client.call_json(PROMPT)

        assert len(transport.prompts) == 1
        assert recording_sleep.delays == []

    def test_rate_limit_status_delegates_to_limiter(self, limiter, recording_sleep):
        client = make_client(ScriptedTransport("x"), limiter, recording_sleep)

        assert client.rate_limit_status()["tokens_per_minute"] == 40000


class TestCreateTransport:
    """Provider selection."""

    def test_anthropic_provider(self):
        transport = create_transport("Anthropic", api_key="sk-test", model="claude-test")

        assert isinstance(transport, AnthropicTransport)
        assert transport.model == "claude-test"

    @patch("src.integrations.groq.client.Groq")
    def test_groq_provider(self, mock_groq):
        transport = create_transport("groq", api_key="gsk-test")

        assert transport.model == "llama-3.3-70b-versatile"
        mock_groq.assert_called_once_with(api_key="gsk-test", max_retries=0, timeout=120.0)

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValueError):
            create_transport("openai", api_key="x")
