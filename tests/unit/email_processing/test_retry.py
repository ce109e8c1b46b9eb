"""
Unit tests for the exponential backoff retry policy.
"""

import pytest
from unittest.mock import AsyncMock

from src.email_processing.errors import LLMError
from src.email_processing.retry import RetryPolicy
from src.integrations.llm.client import is_retryable_llm_error


class TestRetryPolicy:
    """Retry scheduling and error propagation."""

    def test_delay_doubles_per_attempt(self):
        policy = RetryPolicy(base_delay=60.0)

        assert [policy.delay_for(attempt) for attempt in range(3)] == [60.0, 120.0, 240.0]

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, recording_sleep):
        policy = RetryPolicy(sleep=recording_sleep)
        operation = AsyncMock(return_value="ok")

        assert await policy.run(operation) == "ok"
        assert operation.await_count == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_retries_until_success(self, recording_sleep):
        policy = RetryPolicy(max_retries=3, base_delay=60.0, sleep=recording_sleep)
        operation = AsyncMock(side_effect=[LLMError(529, "overloaded"), LLMError(500, "boom"), "done"])

        assert await policy.run(operation) == "done"
        assert operation.await_count == 3
        assert recording_sleep.delays == [60.0, 120.0]

    @pytest.mark.asyncio
    async def test_reraises_last_error_after_exhaustion(self, recording_sleep):
        policy = RetryPolicy(max_retries=3, base_delay=60.0, sleep=recording_sleep)
        errors = [LLMError(429, f"attempt {i}") for i in range(4)]
        operation = AsyncMock(side_effect=errors)

        with pytest.raises(LLMError) as excinfo:
            await policy.run(operation)

        assert excinfo.value is errors[-1]
        assert operation.await_count == 4
        assert recording_sleep.delays == [60.0, 120.0, 240.0]

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates_immediately(self, recording_sleep):
        policy = RetryPolicy(is_retryable=is_retryable_llm_error, sleep=recording_sleep)
        operation = AsyncMock(side_effect=KeyError("bug"))

        with pytest.raises(KeyError):
            await policy.run(operation)

        assert operation.await_count == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_zero_retries_runs_once(self, recording_sleep):
        policy = RetryPolicy(max_retries=0, sleep=recording_sleep)
        operation = AsyncMock(side_effect=LLMError(None, "offline"))

        with pytest.raises(LLMError):
            await policy.run(operation)

        assert operation.await_count == 1

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)
