from .client import AnthropicTransport

__all__ = ['AnthropicTransport']
