"""
Partner suggestion batch feature package.

This vertical slice keeps every layer of the daily batch co-located (domain
models, repositories, pipeline stages, services, jobs and API router) so the
whole flow from journal entry to generated suggestion can be read in one
place.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as batch_router  # noqa: F401
from .services.batch_scheduler import BatchScheduler  # noqa: F401
from .services.cleanup_service import SuggestionCleanupService  # noqa: F401
from .jobs.daily_batch_job import run_daily_batch_once, start_daily_batch_scheduler  # noqa: F401
from .domain.models import BatchReport, BatchRunState, RelationshipWorkItem  # noqa: F401
