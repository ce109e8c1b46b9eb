from .client import LLMClient, LLMTransport, create_transport, is_retryable_llm_error

__all__ = [
    'LLMClient',
    'LLMTransport',
    'create_transport',
    'is_retryable_llm_error',
]
