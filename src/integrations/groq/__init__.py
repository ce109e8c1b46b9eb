from .client import GroqTransport

__all__ = ['GroqTransport']
