"""
Shared data models for email enrichment.

Wire payloads (mail-sync input, status broadcasts, API responses) use the
camelCase names of the client protocol; Python code uses snake_case. Both are
accepted on input.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ENRICHMENT_VERSION = "1.0"
DEFAULT_CATEGORY = "Other"
DEFAULT_SUMMARY = "No summary available"


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class Priority(str, Enum):
    """Allowed priority levels."""
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Sentiment(str, Enum):
    """Allowed sentiment values."""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class EnrichmentStatus(str, Enum):
    """Per-item lifecycle states reported to clients."""
    QUEUED = "queued"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    ERROR = "error"
    WAITING = "waiting"


class WireModel(BaseModel):
    """Base model accepting both snake_case and camelCase field names."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    def to_wire(self) -> dict:
        """JSON-safe dictionary using client-facing field names."""
        return self.model_dump(mode="json", by_alias=True)


class EnrichmentResult(WireModel):
    """
    AI-derived metadata attached to an email.

    Either ``error`` is None and the content fields are populated, or
    ``error`` is set and the content fields may be stale or empty.
    """
    summary: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[Priority] = None
    sentiment: Optional[Sentiment] = None
    action_items: List[str] = Field(default_factory=list)
    enriched_at: Optional[datetime] = None
    version: Optional[str] = ENRICHMENT_VERSION
    error: Optional[str] = None

    @classmethod
    def failed(cls, message: str, enriched_at: Optional[datetime] = None) -> "EnrichmentResult":
        """Build an error-tagged result with no content."""
        return cls(error=message, enriched_at=enriched_at or utcnow())

    @property
    def is_successful(self) -> bool:
        return self.error is None and self.enriched_at is not None


class CategoryDefinition(WireModel):
    """A mailbox owner's configured category."""
    name: str = Field(min_length=1)
    label: str = ""
    description: str = ""


class EmailRecord(WireModel):
    """
    Email document as stored by mail-sync.

    Identity is the ``(mailbox_address, id)`` pair where ``id`` is the
    provider message id. ``is_processed`` and ``ai_meta`` are the only
    fields the enrichment pipeline writes.
    """
    id: str = Field(min_length=1)
    mailbox_address: str = Field(min_length=1)
    owner_user_id: str = Field(min_length=1)
    subject: str = "(No Subject)"
    sender: str = Field(default="", alias="from")
    recipients: str = Field(default="", alias="to")
    content: Optional[str] = None
    preview: Optional[str] = None
    timestamp: Optional[datetime] = None
    is_processed: bool = False
    ai_meta: Optional[EnrichmentResult] = None

    @property
    def identity(self) -> Tuple[str, str]:
        return self.mailbox_address, self.id

    @property
    def body(self) -> str:
        """Best available body text."""
        return self.content or self.preview or ""

    @property
    def is_enriched(self) -> bool:
        """Completed without error, so eligible for the idempotent skip."""
        return bool(
            self.ai_meta is not None
            and self.ai_meta.enriched_at is not None
            and not self.ai_meta.error
        )


@dataclass
class QueueItem:
    """In-memory unit of work for the enrichment queue."""
    record: EmailRecord
    force_reprocess: bool = False
    retry_count: int = 0
    status: EnrichmentStatus = EnrichmentStatus.QUEUED
    enqueued_at: datetime = field(default_factory=utcnow)

    @property
    def key(self) -> Tuple[str, str]:
        return self.record.identity

    @property
    def owner_user_id(self) -> str:
        return self.record.owner_user_id

    @property
    def message_id(self) -> str:
        return self.record.id

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            EnrichmentStatus.COMPLETED,
            EnrichmentStatus.ERROR,
            EnrichmentStatus.WAITING,
        )
