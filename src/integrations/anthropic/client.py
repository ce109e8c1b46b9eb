"""
Anthropic Messages API transport.

Sends one prompt per request and returns the text of the first content block.
Every failure surfaces as ``LLMError`` so the LLM client's retry policy can
treat provider errors uniformly; retries never happen here.
"""

import asyncio
import logging
import os
from typing import Any, Dict, Optional

import aiohttp
from dotenv import load_dotenv

from src.email_processing.errors import LLMError

logger = logging.getLogger(__name__)


class AnthropicTransport:
    """Single-shot transport for the Anthropic Messages API."""

    API_URL = "https://api.anthropic.com/v1/messages"
    API_VERSION = "2023-06-01"
    DEFAULT_MODEL = "claude-3-haiku-20240307"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: float = 120.0,
    ):
        load_dotenv()
        self.api_key = api_key or os.getenv('ANTHROPIC_API_KEY')
        if not self.api_key:
            raise ValueError("ANTHROPIC_API_KEY must be provided either through initialization or environment")

        self.model = model or self.DEFAULT_MODEL
        self.api_url = api_url or self.API_URL
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": self.API_VERSION,
        }

    async def send(self, prompt: str, max_tokens: int) -> str:
        """
        Send a prompt and return the model's text reply.

        Args:
            prompt: User message content
            max_tokens: Completion token cap

        Returns:
            Text of the first content block

        Raises:
            LLMError: On non-200 status, network failure or unexpected body shape
        """
        payload = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.api_url, json=payload, headers=self._headers()) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise LLMError(response.status, error_text[:500] or response.reason or "request failed")

                    data = await response.json(content_type=None)
        except LLMError:
            raise
        except aiohttp.ClientError as e:
            raise LLMError(None, f"Network error: {e}") from e
        except asyncio.TimeoutError as e:
            raise LLMError(None, f"Request timed out after {self.timeout.total:.0f}s") from e
        except ValueError as e:
            raise LLMError(None, f"Anthropic API returned an invalid JSON body: {e}") from e

        return self._extract_text(data)

    @staticmethod
    def _extract_text(data: Any) -> str:
        try:
            text = data["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError(None, f"Unexpected response shape from Anthropic API: {str(data)[:200]}") from e

        if not isinstance(text, str):
            raise LLMError(None, "Anthropic API returned non-text content")

        usage = data.get("usage") if isinstance(data, dict) else None
        if usage:
            logger.debug(
                f"Anthropic usage: input={usage.get('input_tokens')} output={usage.get('output_tokens')}"
            )
        return text
