"""
Enrichment Queue

In-memory FIFO of emails awaiting AI enrichment, drained by a single
background task in batches and LLM-sized chunks.

Design Considerations:
- Per-item state machine queued -> analyzing -> completed | error, plus
  waiting for owners without categories; only terminal states are persisted
- De-duplication by (mailbox_address, message_id) across queued and
  in-flight items, reserved before the first await of an admission
- Idempotent skip of already-enriched records unless forced
- Failures are isolated per item and per chunk; the drain loop never dies
- Inter-chunk and inter-batch delays keep request bursts under provider
  request-count ceilings that the token budget does not model
"""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Optional, Set, Tuple

from pydantic import ValidationError

from src.email_processing.analyzers.batch import BatchAnalyzer
from src.email_processing.broadcaster import StatusBroadcaster
from src.email_processing.errors import AdmissionError, EmailNotFoundError, LLMError
from src.email_processing.models import (
    CategoryDefinition,
    ENRICHMENT_VERSION,
    EmailRecord,
    EnrichmentResult,
    EnrichmentStatus,
    QueueItem,
    utcnow,
)
from src.storage.base import EmailStore

logger = logging.getLogger(__name__)

WAITING_FOR_CATEGORIES_ERROR = "Waiting for user to create categories"
WAITING_FOR_CATEGORIES_MESSAGE = "Please create email categories first to enable AI analysis"
QUEUED_MESSAGE = "Queued for AI analysis"
ANALYZING_MESSAGE = "Analyzing email content..."
COMPLETED_MESSAGE = "Analysis complete"

Key = Tuple[str, str]


class EnrichmentQueue:
    """
    Background enrichment work queue.

    Args:
        analyzer: Batch analyzer used for every chunk
        store: Email document store
        broadcaster: Status event publisher
        batch_size: Items popped per drain pass
        api_chunk_size: Items per LLM call
        inter_chunk_delay: Seconds between chunks of the same batch
        inter_batch_delay: Seconds between batches while work remains
        sleep: Injectable sleep coroutine
    """

    def __init__(
        self,
        analyzer: BatchAnalyzer,
        store: EmailStore,
        broadcaster: StatusBroadcaster,
        batch_size: int = 10,
        api_chunk_size: int = 5,
        inter_chunk_delay: float = 30.0,
        inter_batch_delay: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if batch_size < 1 or api_chunk_size < 1:
            raise ValueError("batch_size and api_chunk_size must be at least 1")

        self.analyzer = analyzer
        self.store = store
        self.broadcaster = broadcaster
        self.batch_size = batch_size
        self.api_chunk_size = api_chunk_size
        self.inter_chunk_delay = inter_chunk_delay
        self.inter_batch_delay = inter_batch_delay
        self._sleep = sleep

        self._queue: Deque[QueueItem] = deque()
        # Keys of items that are admitted, queued or in flight
        self._pending_keys: Set[Key] = set()
        self._processing = False
        self._drain_task: Optional[asyncio.Task] = None
        # Created lazily so the queue can be built outside a running loop
        self._enqueue_lock: Optional[asyncio.Lock] = None

    def is_processing(self) -> bool:
        return self._processing

    def length(self) -> int:
        return len(self._queue)

    def is_pending(self, mailbox_address: str, message_id: str) -> bool:
        return (mailbox_address, message_id) in self._pending_keys

    async def enqueue(self, records: Iterable[Any], force_reprocess: bool = False) -> int:
        """
        Admit records and schedule them for background enrichment.

        Returns once the items are queued; the drain runs in the background.
        Items of a later call are always queued after those of an earlier one.

        Args:
            records: EmailRecord instances or raw mail-sync payloads
            force_reprocess: Clear existing AI metadata and analyze again

        Returns:
            Number of admitted items
        """
        if self._enqueue_lock is None:
            self._enqueue_lock = asyncio.Lock()

        # Admission awaits storage, so calls are serialized to keep arrival order
        async with self._enqueue_lock:
            items = await self.admit(records, force_reprocess)
            if not items:
                return 0

            for item in items:
                await self.broadcaster.item_status(
                    item.owner_user_id, item.message_id, EnrichmentStatus.QUEUED, QUEUED_MESSAGE
                )

            self._queue.extend(items)
            logger.info(f"Queued {len(items)} emails for enrichment (queue length {len(self._queue)})")
            self._ensure_draining()
            return len(items)

    async def admit(self, records: Iterable[Any], force_reprocess: bool = False) -> List[QueueItem]:
        """
        Apply the admission filter and reserve de-duplication keys.

        Drops records missing identity fields, records already queued or in
        flight and, unless forced, records that are already enriched. Unknown
        records are stored first; forced records have their AI metadata
        cleared.
        """
        candidates: List[EmailRecord] = []
        for raw in records:
            try:
                record = self.require_record(raw)
            except AdmissionError as e:
                logger.warning(f"Rejected email at admission: {e}")
                continue
            if record.identity in self._pending_keys:
                logger.debug(f"Email {record.id} is already queued or in flight, skipping")
                continue
            # Reserved before any await so concurrent admissions cannot both pass
            self._pending_keys.add(record.identity)
            candidates.append(record)

        items: List[QueueItem] = []
        for record in candidates:
            try:
                item = await self._prepare(record, force_reprocess)
            except Exception as e:
                logger.error(f"Failed to admit email {record.id}: {e}", exc_info=True)
                item = None

            if item is None:
                self._pending_keys.discard(record.identity)
            else:
                items.append(item)
        return items

    @staticmethod
    def require_record(raw: Any) -> EmailRecord:
        """
        Coerce a mail-sync payload into an EmailRecord.

        Raises:
            AdmissionError: If identity fields are missing or invalid
        """
        if isinstance(raw, EmailRecord):
            return raw
        try:
            return EmailRecord.model_validate(raw)
        except ValidationError as e:
            invalid = sorted({str(error["loc"][0]) for error in e.errors() if error["loc"]})
            raise AdmissionError(f"invalid fields: {', '.join(invalid) or 'unknown'}") from e

    async def _prepare(self, record: EmailRecord, force_reprocess: bool) -> Optional[QueueItem]:
        stored = await self.store.get_email(record.mailbox_address, record.id)
        if stored is None:
            stored = await self.store.upsert_email(record)

        if force_reprocess:
            cleared = await self.store.update_fields(
                record.mailbox_address, record.id, {"ai_meta": None, "is_processed": False}
            )
            stored = cleared or stored
        elif stored.is_enriched:
            logger.debug(f"Email {record.id} already enriched, skipping")
            return None

        working = record.model_copy(update={"ai_meta": stored.ai_meta, "is_processed": stored.is_processed})
        return QueueItem(record=working, force_reprocess=force_reprocess)

    def _ensure_draining(self) -> None:
        if self._processing:
            return
        # Flag set synchronously so a concurrent enqueue cannot start a second loop
        self._processing = True
        self._drain_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._queue:
                batch = [self._queue.popleft() for _ in range(min(self.batch_size, len(self._queue)))]
                logger.info(f"Processing batch of {len(batch)} emails ({len(self._queue)} remaining)")

                chunks = [batch[i:i + self.api_chunk_size] for i in range(0, len(batch), self.api_chunk_size)]
                for index, chunk in enumerate(chunks):
                    try:
                        await self._process_chunk(chunk)
                    except Exception as e:
                        logger.error(f"Unexpected error processing chunk: {e}", exc_info=True)

                    if index < len(chunks) - 1:
                        logger.debug(f"Waiting {self.inter_chunk_delay}s before next chunk")
                        await self._sleep(self.inter_chunk_delay)

                if self._queue:
                    logger.info(f"Waiting {self.inter_batch_delay}s before next batch")
                    await self._sleep(self.inter_batch_delay)
        except Exception as e:
            logger.error(f"Enrichment drain loop failed: {e}", exc_info=True)
        finally:
            self._processing = False
            logger.info("Enrichment queue drained")

    async def process_now(self, items: List[QueueItem]) -> None:
        """Process admitted items inline, without queue delays."""
        for i in range(0, len(items), self.api_chunk_size):
            chunk = items[i:i + self.api_chunk_size]
            try:
                await self._process_chunk(chunk)
            except Exception as e:
                logger.error(f"Unexpected error processing emails inline: {e}", exc_info=True)

    def _release(self, items: Iterable[QueueItem]) -> None:
        for item in items:
            self._pending_keys.discard(item.key)

    async def _process_chunk(self, chunk: List[QueueItem]) -> None:
        try:
            categories_cache: Dict[Key, List[CategoryDefinition]] = {}
            ready: List[Tuple[QueueItem, List[CategoryDefinition]]] = []

            for item in chunk:
                cache_key = (item.owner_user_id, item.record.mailbox_address)
                if cache_key not in categories_cache:
                    categories_cache[cache_key] = await self.store.get_categories(*cache_key)
                categories = categories_cache[cache_key]

                if not categories:
                    await self._mark_waiting(item)
                else:
                    ready.append((item, categories))

            for group_items, categories in _group_by_categories(ready):
                await self._analyze_group(group_items, categories)
        except Exception as e:
            logger.error(f"Unexpected error processing chunk of {len(chunk)} emails: {e}", exc_info=True)
            for item in chunk:
                if not item.is_terminal:
                    await self._complete(item, EnrichmentResult.failed(f"Enrichment failed: {e}"))
        finally:
            self._release(chunk)

    async def _analyze_group(self, items: List[QueueItem], categories: List[CategoryDefinition]) -> None:
        for item in items:
            item.status = EnrichmentStatus.ANALYZING
            item.retry_count += 1
            await self.broadcaster.item_status(
                item.owner_user_id, item.message_id, EnrichmentStatus.ANALYZING, ANALYZING_MESSAGE
            )

        try:
            results = await self.analyzer.analyze_many([item.record for item in items], categories)
        except LLMError as e:
            logger.error(f"LLM analysis failed for {len(items)} emails: {e}")
            enriched_at = utcnow()
            results = [EnrichmentResult.failed(f"AI analysis failed: {e.message}", enriched_at) for _ in items]

        for item, result in zip(items, results):
            await self._complete(item, result)

    async def _complete(self, item: QueueItem, result: EnrichmentResult) -> None:
        """Persist one item's terminal state, then broadcast it."""
        mailbox_address, message_id = item.key
        try:
            if result.error:
                fields = _failure_fields(result.error, result.enriched_at)
            else:
                fields = {"ai_meta": result, "is_processed": True}

            saved = await self.store.update_fields(mailbox_address, message_id, fields)
            if saved is None:
                raise EmailNotFoundError(mailbox_address, message_id)
            item.status = EnrichmentStatus.ERROR if result.error else EnrichmentStatus.COMPLETED
        except Exception as e:
            logger.error(f"Failed to persist enrichment for email {message_id}: {e}", exc_info=True)
            item.status = EnrichmentStatus.ERROR
            await self.broadcaster.item_status(
                item.owner_user_id, message_id, EnrichmentStatus.ERROR, f"Failed to save analysis: {e}"
            )
            return

        if item.status == EnrichmentStatus.COMPLETED:
            logger.info(f"Email {message_id} enriched")
            await self.broadcaster.item_status(
                item.owner_user_id, message_id, EnrichmentStatus.COMPLETED, COMPLETED_MESSAGE, ai_meta=result
            )
        else:
            logger.warning(f"Email {message_id} enrichment failed: {result.error}")
            await self.broadcaster.item_status(
                item.owner_user_id, message_id, EnrichmentStatus.ERROR, result.error
            )

    async def _mark_waiting(self, item: QueueItem) -> None:
        mailbox_address, message_id = item.key
        item.status = EnrichmentStatus.WAITING
        try:
            await self.store.update_fields(
                mailbox_address, message_id, _failure_fields(WAITING_FOR_CATEGORIES_ERROR)
            )
        except Exception as e:
            logger.error(f"Failed to persist waiting state for email {message_id}: {e}", exc_info=True)

        logger.info(f"Email {message_id} waiting for categories of {mailbox_address}")
        await self.broadcaster.item_status(
            item.owner_user_id, message_id, EnrichmentStatus.WAITING, WAITING_FOR_CATEGORIES_MESSAGE
        )

    async def join(self) -> None:
        """Wait until the background drain has finished."""
        while self._drain_task is not None and not self._drain_task.done():
            await self._drain_task


def _failure_fields(message: str, enriched_at=None) -> Dict[str, Any]:
    return {
        "ai_meta.error": message,
        "ai_meta.enriched_at": enriched_at or utcnow(),
        "ai_meta.version": ENRICHMENT_VERSION,
        "is_processed": False,
    }


def _group_by_categories(
    ready: List[Tuple[QueueItem, List[CategoryDefinition]]],
) -> List[Tuple[List[QueueItem], List[CategoryDefinition]]]:
    """Split into consecutive runs that share a category list, keeping order."""
    groups: List[Tuple[List[QueueItem], List[CategoryDefinition]]] = []
    for item, categories in ready:
        if groups and groups[-1][1] is categories:
            groups[-1][0].append(item)
        else:
            groups.append(([item], categories))
    return groups
