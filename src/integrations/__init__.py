from .anthropic.client import AnthropicTransport
from .groq.client import GroqTransport
from .llm.client import LLMClient, create_transport

__all__ = [
    'AnthropicTransport',
    'GroqTransport',
    'LLMClient',
    'create_transport',
]
