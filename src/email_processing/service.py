"""
Enrichment Service

Public entry points of the enrichment pipeline: the inline single-email path
used when a user opens one email, and the queued paths used after mail sync
and for manual retries.

Design Considerations:
- Components are constructed and wired explicitly, never module singletons
- Every entry point is safe to call redundantly
- Entry points never raise for enrichment failures; those are persisted
"""

import asyncio
import copy
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from src.config.enrichment_config import ENRICHMENT_CONFIG
from src.email_processing.analyzers.batch import BatchAnalyzer
from src.email_processing.broadcaster import ConnectionRegistry, StatusBroadcaster
from src.email_processing.errors import AdmissionError, EmailNotFoundError
from src.email_processing.handlers.content import ContentPreprocessor
from src.email_processing.models import EmailRecord
from src.email_processing.queue import EnrichmentQueue
from src.email_processing.rate_limiter import TokenRateLimiter
from src.email_processing.retry import RetryPolicy
from src.integrations.llm.client import LLMClient, LLMTransport, create_transport, is_retryable_llm_error
from src.storage.base import EmailStore

logger = logging.getLogger(__name__)


class EnrichmentService:
    """
    Facade over the enrichment queue.

    Args:
        queue: Enrichment queue shared by every entry point
        store: Email document store
        rate_limiter: Token budget, reported by ``status``
    """

    def __init__(self, queue: EnrichmentQueue, store: EmailStore, rate_limiter: Optional[TokenRateLimiter] = None):
        self.queue = queue
        self.store = store
        self.rate_limiter = rate_limiter

    async def enrich_email(self, record: Any, force_reprocess: bool = False) -> Optional[EmailRecord]:
        """
        Enrich one email inline, without queue delays.

        Args:
            record: EmailRecord or raw mail-sync payload
            force_reprocess: Analyze again even if already enriched

        Returns:
            The stored record after processing (unchanged when already
            enriched), or None when the record was rejected at admission
        """
        try:
            validated = self.queue.require_record(record)
        except AdmissionError as e:
            logger.warning(f"Rejected email for inline enrichment: {e}")
            return None

        items = await self.queue.admit([validated], force_reprocess)
        if not items:
            if self.queue.is_pending(*validated.identity):
                logger.info(f"Email {validated.id} is already being enriched")
            return await self.store.get_email(*validated.identity)

        await self.queue.process_now(items)
        return await self.store.get_email(*items[0].key)

    async def enrich_batch(self, records: Iterable[Any]) -> int:
        """Queue records for background enrichment."""
        return await self.queue.enqueue(records)

    async def add_to_queue(self, records: Iterable[Any], force_reprocess: bool = False) -> int:
        """
        Queue records for background enrichment.

        Returns:
            Number of records admitted
        """
        return await self.queue.enqueue(records, force_reprocess)

    async def enrich_by_ids(self, owner_user_id: str, mailbox_address: str, message_ids: Sequence[str]) -> int:
        """
        Queue stored emails of one mailbox by message id.

        Unknown ids and emails of other owners are ignored.
        """
        records = await self.store.find_emails(
            owner_user_id=owner_user_id, mailbox_address=mailbox_address, message_ids=list(message_ids)
        )
        if len(records) < len(message_ids):
            logger.info(
                f"{len(message_ids) - len(records)} of {len(message_ids)} requested emails "
                f"not found in {mailbox_address}"
            )
        return await self.queue.enqueue(records)

    async def retry_enrichment(self, mailbox_address: str, message_id: str) -> int:
        """
        Force re-enrichment of one stored email.

        Raises:
            EmailNotFoundError: If the email is not stored
        """
        record = await self.store.get_email(mailbox_address, message_id)
        if record is None:
            raise EmailNotFoundError(mailbox_address, message_id)

        logger.info(f"Retrying enrichment for email {message_id}")
        return await self.queue.enqueue([record], force_reprocess=True)

    async def force_reenrich(self, mailbox_address: str, message_ids: Sequence[str]) -> int:
        """Force re-enrichment of several stored emails of one mailbox."""
        records = await self.store.find_emails(mailbox_address=mailbox_address, message_ids=list(message_ids))
        return await self.queue.enqueue(records, force_reprocess=True)

    def status(self) -> Dict[str, Any]:
        """Queue and rate limit snapshot."""
        return {
            "queue_length": self.queue.length(),
            "is_processing": self.queue.is_processing(),
            "rate_limit": self.rate_limiter.status() if self.rate_limiter else None,
        }


def merge_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Deep-merge overrides into a copy of the default enrichment configuration."""
    merged = copy.deepcopy(ENRICHMENT_CONFIG)

    def merge(target: Dict[str, Any], source: Dict[str, Any]) -> None:
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                merge(target[key], value)
            elif value is not None:
                target[key] = value

    merge(merged, overrides or {})
    return merged


def create_enrichment_service(
    store: EmailStore,
    registry: ConnectionRegistry,
    config: Optional[Dict[str, Any]] = None,
    transport: Optional[LLMTransport] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> EnrichmentService:
    """
    Wire the full enrichment pipeline.

    Args:
        store: Email document store
        registry: Live connection registry for status events
        config: Overrides of ENRICHMENT_CONFIG (same nesting)
        transport: LLM transport; built from the configured provider when omitted
        sleep: Sleep coroutine shared by the limiter, retries and queue delays

    Returns:
        Ready-to-use EnrichmentService
    """
    config = merge_config(config)
    llm_config = config["llm"]
    rate_config = config["rate_limit"]
    queue_config = config["queue"]

    if transport is None:
        provider = llm_config["provider"]
        transport = create_transport(
            provider,
            api_key=llm_config.get("api_key"),
            model=llm_config["models"].get(provider),
            timeout=llm_config["timeout"],
        )

    rate_limiter = TokenRateLimiter(
        tokens_per_minute=rate_config["tokens_per_minute"],
        safety_buffer=rate_config["safety_buffer"],
        window_seconds=rate_config["window_seconds"],
        sleep=sleep,
    )
    retry_policy = RetryPolicy(
        max_retries=llm_config["max_retries"],
        base_delay=llm_config["retry_base_delay"],
        is_retryable=is_retryable_llm_error,
        sleep=sleep,
    )
    llm_client = LLMClient(transport, rate_limiter, retry_policy, max_tokens=llm_config["max_tokens"])
    analyzer = BatchAnalyzer(
        llm_client, ContentPreprocessor(max_words=config["content_processing"]["max_words"])
    )
    queue = EnrichmentQueue(
        analyzer,
        store,
        StatusBroadcaster(registry),
        batch_size=queue_config["batch_size"],
        api_chunk_size=queue_config["api_chunk_size"],
        inter_chunk_delay=queue_config["inter_chunk_delay"],
        inter_batch_delay=queue_config["inter_batch_delay"],
        sleep=sleep,
    )

    logger.info(
        f"Enrichment service ready (provider={llm_config['provider']}, "
        f"batch={queue_config['batch_size']}, chunk={queue_config['api_chunk_size']})"
    )
    return EnrichmentService(queue, store, rate_limiter)
