"""
Email processing package initialization.
"""

from .models import (
    CategoryDefinition,
    EmailRecord,
    EnrichmentResult,
    EnrichmentStatus,
    Priority,
    QueueItem,
    Sentiment,
)
from .errors import AdmissionError, EmailNotFoundError, EnrichmentError, LLMError, MalformedResponseError
from .rate_limiter import TokenRateLimiter
from .retry import RetryPolicy
from .analyzers.batch import BatchAnalyzer
from .broadcaster import StatusBroadcaster
from .queue import EnrichmentQueue
from .service import EnrichmentService, create_enrichment_service

__all__ = [
    'CategoryDefinition',
    'EmailRecord',
    'EnrichmentResult',
    'EnrichmentStatus',
    'Priority',
    'QueueItem',
    'Sentiment',
    'AdmissionError',
    'EmailNotFoundError',
    'EnrichmentError',
    'LLMError',
    'MalformedResponseError',
    'TokenRateLimiter',
    'RetryPolicy',
    'BatchAnalyzer',
    'StatusBroadcaster',
    'EnrichmentQueue',
    'EnrichmentService',
    'create_enrichment_service',
]
