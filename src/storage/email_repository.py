"""
Email Repository Implementation

SQLAlchemy-backed implementation of the EmailStore contract used by the
enrichment pipeline.

Design Considerations:
- Repository pattern for data access abstraction
- Blocking database work runs in worker threads so the event loop never stalls
- Methods return pydantic records rather than ORM objects to avoid
  detached-instance issues after the session closes
- Partial updates touch one row inside one transaction
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy.orm import Session, sessionmaker

from src.email_processing.models import CategoryDefinition, EmailRecord, EnrichmentResult
from src.storage.database import session_scope
from src.storage.models import EmailAccount, EmailDocument

logger = logging.getLogger(__name__)

AI_META_PREFIX = "ai_meta."
_SYNC_COLUMNS = ("owner_user_id", "subject", "sender", "recipients", "content", "preview", "timestamp")


def _normalize_address(address: str) -> str:
    return (address or "").strip().lower()


class SQLEmailRepository:
    """
    Email document store on a relational database.

    Args:
        session_factory: SQLAlchemy sessionmaker bound to the target engine
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # Queries

    @staticmethod
    def _find_document(session: Session, mailbox_address: str, message_id: str) -> Optional[EmailDocument]:
        return session.query(EmailDocument).filter(
            EmailDocument.mailbox_address == mailbox_address,
            EmailDocument.message_id == message_id,
        ).first()

    def _get_email(self, mailbox_address: str, message_id: str) -> Optional[EmailRecord]:
        with session_scope(self.session_factory) as session:
            document = self._find_document(session, mailbox_address, message_id)
            return document.to_record() if document else None

    def _find_emails(
        self,
        owner_user_id: Optional[str],
        mailbox_address: Optional[str],
        message_ids: Optional[Sequence[str]],
    ) -> List[EmailRecord]:
        with session_scope(self.session_factory) as session:
            query = session.query(EmailDocument)
            if owner_user_id is not None:
                query = query.filter(EmailDocument.owner_user_id == owner_user_id)
            if mailbox_address is not None:
                query = query.filter(EmailDocument.mailbox_address == mailbox_address)
            if message_ids is not None:
                if not message_ids:
                    return []
                query = query.filter(EmailDocument.message_id.in_(list(message_ids)))

            records = [document.to_record() for document in query.order_by(EmailDocument.id).all()]

        if message_ids is not None:
            # Keep the caller's order
            position = {message_id: i for i, message_id in enumerate(message_ids)}
            records.sort(key=lambda record: position.get(record.id, len(position)))
        return records

    def _get_categories(self, owner_user_id: str, mailbox_address: str) -> List[CategoryDefinition]:
        with session_scope(self.session_factory) as session:
            account = session.query(EmailAccount).filter(
                EmailAccount.owner_user_id == owner_user_id,
                EmailAccount.email_address == _normalize_address(mailbox_address),
            ).first()
            raw_categories = list(account.categories or []) if account else []

        categories = []
        for raw in raw_categories:
            try:
                categories.append(CategoryDefinition.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping invalid category for {mailbox_address}: {e.errors()[0]['msg']}")
        return categories

    # Writes

    def _upsert_email(self, record: EmailRecord) -> EmailRecord:
        with session_scope(self.session_factory) as session:
            document = self._find_document(session, record.mailbox_address, record.id)
            if document is None:
                document = EmailDocument(
                    message_id=record.id,
                    mailbox_address=record.mailbox_address,
                    is_processed=record.is_processed,
                    ai_meta=record.ai_meta.model_dump(mode="json") if record.ai_meta else None,
                )
                session.add(document)
                logger.debug(f"Storing new email {record.id} for mailbox {record.mailbox_address}")

            # Enrichment state is only changed through update_fields
            for column in _SYNC_COLUMNS:
                setattr(document, column, getattr(record, column))

            session.flush()
            return document.to_record()

    def _update_fields(self, mailbox_address: str, message_id: str, fields: Dict[str, Any]) -> Optional[EmailRecord]:
        with session_scope(self.session_factory) as session:
            document = self._find_document(session, mailbox_address, message_id)
            if document is None:
                logger.warning(f"Cannot update missing email {message_id} for mailbox {mailbox_address}")
                return None

            merged_meta = dict(document.ai_meta) if document.ai_meta else None
            meta_touched = False

            for key, value in fields.items():
                if key == "ai_meta":
                    merged_meta = _dump_meta(value)
                    meta_touched = True
                elif key.startswith(AI_META_PREFIX):
                    merged_meta = dict(merged_meta or {})
                    merged_meta[key[len(AI_META_PREFIX):]] = value
                    meta_touched = True
                elif key == "is_processed":
                    document.is_processed = bool(value)
                else:
                    raise ValueError(f"Field {key!r} is not writable by the enrichment pipeline")

            if meta_touched:
                # Validate the merged document so stored metadata keeps its shape
                document.ai_meta = _dump_meta(merged_meta)

            session.flush()
            return document.to_record()

    def _upsert_account(
        self,
        owner_user_id: str,
        email_address: str,
        categories: Sequence[Any],
        provider: Optional[str],
    ) -> Dict[str, Any]:
        validated = [
            category if isinstance(category, CategoryDefinition) else CategoryDefinition.model_validate(category)
            for category in categories
        ]
        address = _normalize_address(email_address)

        with session_scope(self.session_factory) as session:
            account = session.query(EmailAccount).filter(
                EmailAccount.owner_user_id == owner_user_id,
                EmailAccount.email_address == address,
            ).first()
            if account is None:
                account = EmailAccount(owner_user_id=owner_user_id, email_address=address)
                session.add(account)

            account.categories = [category.model_dump() for category in validated]
            if provider is not None:
                account.provider = provider
            session.flush()
            return account.to_dict()

    # Async interface

    async def get_email(self, mailbox_address: str, message_id: str) -> Optional[EmailRecord]:
        return await asyncio.to_thread(self._get_email, mailbox_address, message_id)

    async def find_emails(
        self,
        owner_user_id: Optional[str] = None,
        mailbox_address: Optional[str] = None,
        message_ids: Optional[Sequence[str]] = None,
    ) -> List[EmailRecord]:
        return await asyncio.to_thread(self._find_emails, owner_user_id, mailbox_address, message_ids)

    async def upsert_email(self, record: EmailRecord) -> EmailRecord:
        """Insert a record, or refresh the mail-sync columns of an existing one."""
        return await asyncio.to_thread(self._upsert_email, record)

    async def update_fields(
        self,
        mailbox_address: str,
        message_id: str,
        fields: Dict[str, Any],
    ) -> Optional[EmailRecord]:
        """
        Apply a partial update to the enrichment fields of one email.

        Args:
            mailbox_address: Mailbox part of the identity
            message_id: Provider message id
            fields: ``ai_meta``, ``ai_meta.<field>`` and/or ``is_processed``

        Returns:
            The updated record, or None if it does not exist

        Raises:
            ValueError: For fields outside the enrichment write surface
        """
        return await asyncio.to_thread(self._update_fields, mailbox_address, message_id, fields)

    async def get_categories(self, owner_user_id: str, mailbox_address: str) -> List[CategoryDefinition]:
        return await asyncio.to_thread(self._get_categories, owner_user_id, mailbox_address)

    async def upsert_account(
        self,
        owner_user_id: str,
        email_address: str,
        categories: Sequence[Any] = (),
        provider: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create or update a mailbox account and replace its categories."""
        return await asyncio.to_thread(self._upsert_account, owner_user_id, email_address, categories, provider)


def _dump_meta(value: Any) -> Optional[Dict[str, Any]]:
    if value is None:
        return None
    result = value if isinstance(value, EnrichmentResult) else EnrichmentResult.model_validate(value)
    return result.model_dump(mode="json")
