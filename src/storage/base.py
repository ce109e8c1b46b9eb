"""
Storage contract consumed by the enrichment pipeline.

The pipeline treats storage as a document store keyed by
``(mailbox_address, message_id)``. It only needs lookups, an upsert for
records it has not seen, atomic partial updates of its own write surface
(``ai_meta`` and ``is_processed``) and the owner's category list.
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence

from src.email_processing.models import CategoryDefinition, EmailRecord


class EmailStore(Protocol):
    """Asynchronous email document store."""

    async def get_email(self, mailbox_address: str, message_id: str) -> Optional[EmailRecord]:
        ...

    async def find_emails(
        self,
        owner_user_id: Optional[str] = None,
        mailbox_address: Optional[str] = None,
        message_ids: Optional[Sequence[str]] = None,
    ) -> List[EmailRecord]:
        ...

    async def upsert_email(self, record: EmailRecord) -> EmailRecord:
        ...

    async def update_fields(
        self,
        mailbox_address: str,
        message_id: str,
        fields: Dict[str, Any],
    ) -> Optional[EmailRecord]:
        """
        Apply a partial update to one record.

        ``fields`` may contain ``ai_meta`` (whole replacement or None),
        dotted ``ai_meta.<field>`` keys (merged into the stored metadata)
        and ``is_processed``. Returns the updated record, or None if the
        record does not exist.
        """
        ...

    async def get_categories(self, owner_user_id: str, mailbox_address: str) -> List[CategoryDefinition]:
        ...
