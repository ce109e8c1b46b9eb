"""
Email enrichment backend.

Subpackages:
- email_processing: queue, batch analyzer, rate limiter and service facade
- integrations: LLM provider transports
- storage: SQLAlchemy email and account store
- utils: logging setup
"""

from . import email_processing
from . import integrations
from . import storage
from . import utils

__all__ = [
    'email_processing',
    'integrations',
    'storage',
    'utils'
]
