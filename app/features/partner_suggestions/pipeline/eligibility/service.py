"""
Eligibility filter for the daily batch.

Selects the journal entries that may feed cross-partner suggestions for a
calendar date: authored that day, flagged ready for batching, not yet
processed, relationship-scoped, and written by an author with an active
premium entitlement right now.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo

from app.features.partner_suggestions.domain import EligibleEntry
from app.features.partner_suggestions.repository.entitlement_repository import (
    EntitlementRepository,
)
from app.features.partner_suggestions.repository.journal_repository import JournalRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class JournalSource(Protocol):
    async def fetch_batch_candidates(
        self, window_start: datetime, window_end: datetime
    ) -> list[EligibleEntry]: ...


class EntitlementSource(Protocol):
    async def fetch_active_premium_user_ids(self, user_ids) -> set[str]: ...


@dataclass(slots=True)
class EligibilityResult:
    entries: list[EligibleEntry] = field(default_factory=list)
    source_available: bool = True
    candidates_count: int = 0
    excluded_non_premium: int = 0
    error: str | None = None


def day_window(target_date: date, timezone: str) -> tuple[datetime, datetime]:
    """[start, end) of a calendar day in the given timezone."""
    start = datetime.combine(target_date, time.min, tzinfo=ZoneInfo(timezone))
    return start, start + timedelta(days=1)


class EligibilityFilter:
    def __init__(
        self,
        journal_source: JournalSource | None = None,
        entitlement_source: EntitlementSource | None = None,
        timezone: str = "UTC",
    ):
        self.journal_source = journal_source or JournalRepository()
        self.entitlement_source = entitlement_source or EntitlementRepository()
        self.timezone = timezone

    async def find_eligible(self, target_date: date) -> EligibilityResult:
        """
        Return the eligible entries for target_date, in fetch order.

        Never raises: when either data source fails the result is empty and
        marked unavailable so nothing ineligible can be batched.
        """
        window_start, window_end = day_window(target_date, self.timezone)

        try:
            candidates = await self.journal_source.fetch_batch_candidates(
                window_start, window_end
            )
        except Exception as e:
            logger.error(
                "Journal source unavailable, failing closed",
                batch_date=target_date.isoformat(),
                error=str(e),
                error_type=type(e).__name__,
            )
            return EligibilityResult(source_available=False, error=f"Journal source unavailable: {e}")

        # Rows outside the day window or without a relationship never qualify
        candidates = [
            entry
            for entry in candidates
            if entry.relationship_id and window_start <= entry.authored_at < window_end
        ]

        if not candidates:
            return EligibilityResult()

        author_ids = {entry.author_id for entry in candidates}
        try:
            premium_ids = await self.entitlement_source.fetch_active_premium_user_ids(author_ids)
        except Exception as e:
            logger.error(
                "Entitlement source unavailable, failing closed",
                batch_date=target_date.isoformat(),
                author_count=len(author_ids),
                error=str(e),
            )
            return EligibilityResult(
                source_available=False,
                candidates_count=len(candidates),
                error=f"Entitlement source unavailable: {e}",
            )

        eligible = [entry for entry in candidates if entry.author_id in premium_ids]

        logger.info(
            "Eligibility filter applied",
            batch_date=target_date.isoformat(),
            candidates=len(candidates),
            distinct_authors=len(author_ids),
            premium_authors=len(premium_ids & author_ids),
            eligible=len(eligible),
        )

        return EligibilityResult(
            entries=eligible,
            candidates_count=len(candidates),
            excluded_non_premium=len(candidates) - len(eligible),
        )
