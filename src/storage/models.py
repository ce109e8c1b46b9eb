"""
Database Models for Email Storage

Defines the email documents written by mail sync and enriched by the AI
pipeline, and the per-mailbox account rows that carry each owner's
configured categories.

Design Considerations:
- Identity of an email is (mailbox_address, message_id), enforced by a unique constraint
- AI metadata lives in a JSON column so its shape can evolve with its version tag
- Rows are converted to pydantic records before leaving the session
"""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base

from src.email_processing.models import EmailRecord

Base = declarative_base()


class EmailDocument(Base):
    """
    Stored email message.

    ``is_processed`` and ``ai_meta`` belong to the enrichment pipeline;
    every other column is owned by mail sync.
    """
    __tablename__ = "emails"

    id = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(String(255), nullable=False)
    mailbox_address = Column(String(255), nullable=False, index=True)
    owner_user_id = Column(String(36), nullable=False, index=True)

    subject = Column(String(998), nullable=False, default="(No Subject)")
    sender = Column(String(500), nullable=False, default="")
    recipients = Column(Text, nullable=False, default="")
    content = Column(Text, nullable=True)
    preview = Column(Text, nullable=True)
    timestamp = Column(DateTime, nullable=True)

    # Enrichment state
    is_processed = Column(Boolean, default=False, nullable=False)
    ai_meta = Column(JSON(none_as_null=True), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("mailbox_address", "message_id", name="uq_emails_mailbox_message"),
    )

    def to_record(self) -> EmailRecord:
        """Convert to the pipeline's record model."""
        return EmailRecord.model_validate({
            "id": self.message_id,
            "mailbox_address": self.mailbox_address,
            "owner_user_id": self.owner_user_id,
            "subject": self.subject,
            "sender": self.sender,
            "recipients": self.recipients,
            "content": self.content,
            "preview": self.preview,
            "timestamp": self.timestamp,
            "is_processed": self.is_processed,
            "ai_meta": self.ai_meta,
        })


class EmailAccount(Base):
    """Connected mailbox with its owner's category configuration."""
    __tablename__ = "email_accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_user_id = Column(String(36), nullable=False, index=True)
    email_address = Column(String(255), nullable=False)
    provider = Column(String(50), nullable=True)  # 'google', 'microsoft'

    # List of {"name", "label", "description"} objects
    categories = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_user_id", "email_address", name="uq_accounts_owner_address"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner_user_id": self.owner_user_id,
            "email_address": self.email_address,
            "provider": self.provider,
            "categories": list(self.categories or []),
        }
