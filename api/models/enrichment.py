"""
Enrichment API Models

Request and response bodies for the enrichment endpoints. Field names follow
the client protocol (camelCase); snake_case is accepted on input as well.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EnrichEmailsRequest(CamelModel):
    """
    Request to enrich emails.

    Either ``emails`` (raw mail-sync records) or ``message_ids`` together
    with ``owner_user_id`` and ``mailbox_address`` must be given.
    """
    emails: List[Dict[str, Any]] = Field(default_factory=list, description="Raw email records")
    owner_user_id: Optional[str] = Field(default=None, description="Owner of the stored emails")
    mailbox_address: Optional[str] = Field(default=None, description="Mailbox of the stored emails")
    message_ids: List[str] = Field(default_factory=list, description="Stored message ids to enrich")
    force_reprocess: bool = Field(default=False, description="Analyze again even if already enriched")


class EnrichmentAcceptedResponse(CamelModel):
    """Number of emails admitted to the enrichment queue."""
    status: str = "accepted"
    queued: int = Field(..., ge=0)
    queue_length: int = Field(..., ge=0)


class RateLimitStatus(CamelModel):
    current_token_usage: int
    time_since_reset: float
    tokens_per_minute: int
    remaining_tokens: int


class EnrichmentStatusResponse(CamelModel):
    """Snapshot of the enrichment queue and token budget."""
    queue_length: int
    is_processing: bool
    rate_limit: Optional[RateLimitStatus] = None
