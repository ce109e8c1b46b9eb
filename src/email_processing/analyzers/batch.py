"""
BatchAnalyzer: Email Enrichment Analysis

Builds single- and multi-email prompts, sends them through the rate-limited
LLM client and normalizes the returned JSON into EnrichmentResult objects.

Design Considerations:
- Output length and order always match the input
- Content defects never raise; they come back as error-tagged results
- Transport failures (LLMError) propagate so the queue can fail the chunk
- summary/category degrade to defaults, priority/sentiment are strict
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from src.email_processing.errors import MalformedResponseError
from src.email_processing.handlers.content import ContentPreprocessor
from src.email_processing.models import (
    CategoryDefinition,
    DEFAULT_CATEGORY,
    DEFAULT_SUMMARY,
    EmailRecord,
    EnrichmentResult,
    Priority,
    Sentiment,
    utcnow,
)
from src.email_processing.prompts import build_batch_prompt, build_single_prompt
from src.integrations.llm.client import LLMClient

logger = logging.getLogger(__name__)

_PRIORITIES = {p.value: p for p in Priority}
_SENTIMENTS = {s.value: s for s in Sentiment}


class BatchAnalyzer:
    """
    Enrichment analyzer for one email or a chunk of emails sharing an owner.
    """

    def __init__(self, llm_client: LLMClient, preprocessor: Optional[ContentPreprocessor] = None):
        self.llm_client = llm_client
        self.preprocessor = preprocessor or ContentPreprocessor()

    def _prepare_content(self, email: EmailRecord) -> str:
        return self.preprocessor.preprocess_content(email.body).content

    async def analyze_one(
        self,
        email: EmailRecord,
        categories: Sequence[CategoryDefinition],
    ) -> EnrichmentResult:
        """
        Analyze a single email.

        Args:
            email: Record to analyze
            categories: Owner's configured categories

        Returns:
            Normalized result, error-tagged when the response is unusable

        Raises:
            LLMError: When the LLM call failed after retries
        """
        prompt = build_single_prompt(email, categories, self._prepare_content(email))
        logger.info(f"Analyzing email {email.id} from {_mask_email(email.sender)}")

        try:
            raw = await self.llm_client.call_json(prompt)
        except MalformedResponseError as e:
            logger.warning(f"Unusable analysis response for email {email.id}: {e}")
            return EnrichmentResult.failed(f"Malformed LLM response: {e}")

        # Some models wrap a single answer in a one-element array
        if isinstance(raw, list) and len(raw) == 1:
            raw = raw[0]

        return self.normalize(raw, [c.name for c in categories])

    async def analyze_many(
        self,
        emails: Sequence[EmailRecord],
        categories: Sequence[CategoryDefinition],
    ) -> List[EnrichmentResult]:
        """
        Analyze a chunk of emails with one LLM call.

        Args:
            emails: Records to analyze, all owned by the same user
            categories: Owner's configured categories

        Returns:
            One result per input email, in input order

        Raises:
            LLMError: When the LLM call failed after retries
        """
        if not emails:
            return []
        if len(emails) == 1:
            return [await self.analyze_one(emails[0], categories)]

        contents = [self._prepare_content(email) for email in emails]
        prompt = build_batch_prompt(emails, categories, contents)
        logger.info(f"Analyzing batch of {len(emails)} emails")

        try:
            raw = await self.llm_client.call_json(prompt)
        except MalformedResponseError as e:
            logger.warning(f"Unusable batch analysis response for {len(emails)} emails: {e}")
            enriched_at = utcnow()
            return [
                EnrichmentResult.failed(f"Malformed LLM response: {e}", enriched_at=enriched_at)
                for _ in emails
            ]

        entries = self._extract_entries(raw)
        if entries is None:
            logger.warning(f"Batch response is not a list of results: {type(raw).__name__}")
            enriched_at = utcnow()
            return [
                EnrichmentResult.failed("LLM response was not a list of results", enriched_at=enriched_at)
                for _ in emails
            ]

        if len(entries) != len(emails):
            logger.warning(f"Batch response has {len(entries)} entries for {len(emails)} emails")

        aligned = self._align_entries(entries, len(emails))
        category_names = [c.name for c in categories]
        results = []
        for email, entry in zip(emails, aligned):
            if entry is None:
                logger.warning(f"No analysis entry returned for email {email.id}")
                results.append(EnrichmentResult.failed("Missing analysis result for email"))
            else:
                results.append(self.normalize(entry, category_names))
        return results

    @staticmethod
    def _extract_entries(raw: Any) -> Optional[List[Any]]:
        if isinstance(raw, list):
            return raw
        if isinstance(raw, dict):
            for key in ("results", "emails"):
                if isinstance(raw.get(key), list):
                    return raw[key]
        return None

    @staticmethod
    def _align_entries(entries: List[Any], count: int) -> List[Optional[Any]]:
        """
        Map response entries onto input positions.

        Entries are placed by their 1-based "index" field when every entry
        carries a distinct in-range index; otherwise by position.
        """
        indexes = []
        for entry in entries:
            index = entry.get("index") if isinstance(entry, dict) else None
            if isinstance(index, bool) or not isinstance(index, int) or not 1 <= index <= count:
                indexes = None
                break
            indexes.append(index)

        aligned: List[Optional[Any]] = [None] * count
        if indexes is not None and len(set(indexes)) == len(indexes):
            for index, entry in zip(indexes, entries):
                aligned[index - 1] = entry
            return aligned

        for position, entry in enumerate(entries[:count]):
            aligned[position] = entry
        return aligned

    @staticmethod
    def normalize(raw: Any, category_names: Sequence[str]) -> EnrichmentResult:
        """
        Validate one raw analysis object into an EnrichmentResult.

        summary and category fall back to defaults; an invalid priority or
        sentiment marks the whole result as failed.
        """
        enriched_at = utcnow()
        if not isinstance(raw, dict):
            return EnrichmentResult.failed("Malformed analysis entry", enriched_at=enriched_at)

        summary = raw.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            summary = DEFAULT_SUMMARY

        category = _resolve_category(raw.get("category"), category_names)

        action_items = raw.get("actionItems", raw.get("action_items"))
        if isinstance(action_items, list):
            action_items = [item.strip() for item in action_items if isinstance(item, str) and item.strip()]
        else:
            action_items = []

        priority = _enum_member(_PRIORITIES, raw.get("priority"))
        sentiment = _enum_member(_SENTIMENTS, raw.get("sentiment"))

        errors = []
        if priority is None:
            errors.append(f"Invalid priority value: {raw.get('priority')!r}")
        if sentiment is None:
            errors.append(f"Invalid sentiment value: {raw.get('sentiment')!r}")

        if errors:
            logger.warning(f"Rejected analysis result: {'; '.join(errors)}")
            return EnrichmentResult(
                summary=summary,
                category=category,
                action_items=action_items,
                enriched_at=enriched_at,
                error="; ".join(errors),
            )

        return EnrichmentResult(
            summary=summary,
            category=category,
            priority=priority,
            sentiment=sentiment,
            action_items=action_items,
            enriched_at=enriched_at,
        )


def _enum_member(members: Dict[str, Any], value: Any) -> Optional[Any]:
    """Exact, case-sensitive lookup of a lowercase enum value."""
    if not isinstance(value, str):
        return None
    return members.get(value)


def _resolve_category(value: Any, category_names: Sequence[str]) -> str:
    """Map the model's category onto one of the owner's category names."""
    if not isinstance(value, str) or not value.strip():
        return DEFAULT_CATEGORY

    value = value.strip()
    if not category_names:
        return DEFAULT_CATEGORY
    if value in category_names:
        return value

    lowered = {name.lower(): name for name in category_names}
    if value.lower() in lowered:
        return lowered[value.lower()]

    logger.info(f"Category {value!r} is not configured for this owner, using {DEFAULT_CATEGORY!r}")
    return DEFAULT_CATEGORY


def _mask_email(address: str) -> str:
    """Mask the local part of an address for logging."""
    if not address or "@" not in address:
        return address or "<unknown>"
    local, _, domain = address.rpartition("@")
    return f"{local[:2]}***@{domain}"
