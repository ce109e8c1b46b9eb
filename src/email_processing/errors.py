"""
Enrichment Error Taxonomy

Defines the exception hierarchy shared by the enrichment pipeline so that
callers can tell transient upstream failures apart from content defects and
from inputs that were never valid work units.
"""

from typing import Optional

# Upstream statuses that signal provider-side throttling or overload
THROTTLE_STATUSES = frozenset({429, 529})


class EnrichmentError(Exception):
    """Base class for all enrichment pipeline errors."""
    pass


class LLMError(EnrichmentError):
    """
    Failure reported by (or while reaching) the LLM provider.

    Attributes:
        status: HTTP status returned by the provider, None for network errors
        message: Human-readable error description
    """

    def __init__(self, status: Optional[int], message: str):
        self.status = status
        self.message = message
        super().__init__(f"LLM API error ({status if status is not None else 'network'}): {message}")

    @property
    def is_throttled(self) -> bool:
        """Whether the provider reported rate limiting or overload."""
        return self.status in THROTTLE_STATUSES


class MalformedResponseError(EnrichmentError):
    """LLM returned text that could not be parsed even after repair."""

    def __init__(self, message: str, raw_text: Optional[str] = None):
        self.raw_text = raw_text
        super().__init__(message)


class AdmissionError(EnrichmentError):
    """Input record is missing identity fields and cannot be queued."""
    pass


class EmailNotFoundError(EnrichmentError):
    """Requested email record does not exist in storage."""

    def __init__(self, mailbox_address: str, message_id: str):
        self.mailbox_address = mailbox_address
        self.message_id = message_id
        super().__init__(f"Email {message_id} not found for mailbox {mailbox_address}")
