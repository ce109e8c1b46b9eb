from groq import Groq, APIConnectionError, APIStatusError, APITimeoutError
from typing import Optional
import asyncio
import os
from dotenv import load_dotenv
import logging

from src.email_processing.errors import LLMError

logger = logging.getLogger(__name__)


class GroqTransport:
    """Groq chat completions transport; retries are left to the LLM client."""

    DEFAULT_MODEL = 'llama-3.3-70b-versatile'

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 temperature: float = 0.3, timeout: float = 120.0):
        """Initialize the Groq transport with API key from environment or parameter."""
        load_dotenv()
        self.api_key = api_key or os.getenv('GROQ_API_KEY')
        if not self.api_key:
            raise ValueError("GROQ_API_KEY must be provided either through initialization or environment")

        self.model = model or self.DEFAULT_MODEL
        self.temperature = temperature
        # SDK-level retries would double up with the client's retry policy
        self.client = Groq(api_key=self.api_key, max_retries=0, timeout=timeout)

    async def send(self, prompt: str, max_tokens: int) -> str:
        """Send a single-message chat completion and return its text.

        Args:
            prompt: User message content
            max_tokens: Completion token cap

        Returns:
            Text of the first choice

        Raises:
            LLMError: For any SDK error or empty completion
        """
        params = {
            'model': self.model,
            'messages': [{'role': 'user', 'content': prompt}],
            'temperature': self.temperature,
            'max_completion_tokens': max_tokens,
        }

        try:
            response = await asyncio.to_thread(self.client.chat.completions.create, **params)
        except APIStatusError as e:
            raise LLMError(e.status_code, str(e.message)[:500]) from e
        except APITimeoutError as e:
            raise LLMError(None, "Request to Groq timed out") from e
        except APIConnectionError as e:
            raise LLMError(None, f"Network error: {e}") from e

        if not response.choices or response.choices[0].message.content is None:
            raise LLMError(None, "Groq API returned an empty completion")

        if response.usage:
            logger.debug(
                f"Groq usage: prompt={response.usage.prompt_tokens} "
                f"completion={response.usage.completion_tokens}"
            )
        return response.choices[0].message.content
