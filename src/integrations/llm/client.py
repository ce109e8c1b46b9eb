"""
Rate-limited LLM client.

Wraps a provider transport with the token budget and the retry policy. Each
attempt reserves its estimated tokens before the request goes out, so retries
are budgeted like first attempts.

Design Considerations:
- Transports are single-shot and raise LLMError; retrying lives here only
- Every LLMError is retried (throttling, server errors and network failures
  look the same from the caller's side); throttling is logged separately
- Malformed output is a content defect: one repair pass, no network retry
"""

import logging
from typing import Any, Optional, Protocol

from src.email_processing.errors import LLMError
from src.email_processing.json_repair import parse_json_response
from src.email_processing.rate_limiter import TokenRateLimiter
from src.email_processing.retry import RetryPolicy
from src.integrations.anthropic.client import AnthropicTransport
from src.integrations.groq.client import GroqTransport

logger = logging.getLogger(__name__)


class LLMTransport(Protocol):
    """Provider adapter performing exactly one request."""

    async def send(self, prompt: str, max_tokens: int) -> str:
        ...


def is_retryable_llm_error(error: Exception) -> bool:
    """Retry predicate for the LLM client: any provider or network error."""
    return isinstance(error, LLMError)


class LLMClient:
    """
    Gateway for all LLM calls made by the enrichment pipeline.

    Args:
        transport: Provider adapter
        rate_limiter: Shared token budget
        retry_policy: Backoff policy, defaults to 3 retries from a 60s base
        max_tokens: Completion token cap per request
    """

    def __init__(
        self,
        transport: LLMTransport,
        rate_limiter: TokenRateLimiter,
        retry_policy: Optional[RetryPolicy] = None,
        max_tokens: int = 4000,
    ):
        self.transport = transport
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=3, base_delay=60.0, is_retryable=is_retryable_llm_error
        )
        self.max_tokens = max_tokens

    async def call(self, prompt: str) -> str:
        """
        Send a prompt and return the raw response text.

        Raises:
            LLMError: When every attempt failed
        """
        estimated_tokens = self.rate_limiter.estimate(prompt)

        async def attempt() -> str:
            await self.rate_limiter.reserve(estimated_tokens)
            try:
                return await self.transport.send(prompt, self.max_tokens)
            except LLMError as e:
                if e.is_throttled:
                    logger.warning(f"LLM provider throttled the request (status {e.status})")
                raise

        logger.debug(f"Sending LLM request (~{estimated_tokens} tokens estimated)")
        return await self.retry_policy.run(attempt, description="LLM request")

    async def call_json(self, prompt: str) -> Any:
        """
        Send a prompt and parse the reply as JSON.

        Raises:
            LLMError: When every attempt failed
            MalformedResponseError: When the reply is not JSON even after repair
        """
        text = await self.call(prompt)
        return parse_json_response(text)

    def rate_limit_status(self) -> dict:
        return self.rate_limiter.status()


def create_transport(
    provider: str,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    **kwargs,
) -> LLMTransport:
    """
    Build the transport for a configured provider name.

    Args:
        provider: "anthropic" or "groq"
        api_key: Provider key; falls back to the provider's environment variable
        model: Model name; falls back to the transport default

    Raises:
        ValueError: For an unknown provider
    """
    provider = (provider or "").strip().lower()
    if provider == "anthropic":
        return AnthropicTransport(api_key=api_key, model=model, **kwargs)
    if provider == "groq":
        return GroqTransport(api_key=api_key, model=model, **kwargs)
    raise ValueError(f"Unsupported LLM provider: {provider!r}")
