"""
Service layer for the partner suggestion batch.
"""

from .batch_scheduler import BatchRunContext, BatchScheduler, yesterday
from .cleanup_service import SuggestionCleanupService

__all__ = [
    "BatchRunContext",
    "BatchScheduler",
    "SuggestionCleanupService",
    "yesterday",
]
