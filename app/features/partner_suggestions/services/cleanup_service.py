"""
Partner suggestion cleanup.

Two maintenance operations:
- per-user: mark unread suggestions older than N days as read, with a dry-run
  analysis mode
- global: delete suggestions whose expires_at has passed (run after the daily
  batch)
"""

from datetime import UTC, datetime, timedelta

from app.config import settings
from app.features.partner_suggestions.repository.suggestion_repository import (
    SuggestionRepository,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SAMPLE_SIZE = 3


class SuggestionCleanupService:
    def __init__(self, repository: SuggestionRepository | None = None):
        self.repository = repository or SuggestionRepository()

    async def cleanup_for_user(
        self, user_id: str, days_old: int | None = None, dry_run: bool = False
    ) -> dict:
        days_old = days_old if days_old is not None else settings.SUGGESTION_CLEANUP_DAYS_OLD
        cutoff = datetime.now(UTC) - timedelta(days=days_old)

        logger.info(
            "Cleaning up old partner suggestions",
            user_id=user_id,
            days_old=days_old,
            dry_run=dry_run,
        )

        counts = await self.repository.count_for_recipient(user_id, cutoff)

        if dry_run:
            old_unread = counts["old_unread"]
            return {
                "dry_run": True,
                "user_id": user_id,
                "cutoff_date": cutoff.isoformat(),
                "analysis": {
                    "total_partner_suggestions": counts["total"],
                    "old_suggestions": counts["old"],
                    "old_unread_suggestions": old_unread,
                },
                "recommendation": (
                    f"Would mark {old_unread} old unread suggestions as read"
                    if old_unread > 0
                    else "No old unread suggestions to clean up"
                ),
            }

        marked = await self.repository.mark_old_unread_as_read(user_id, cutoff)

        logger.info("Old partner suggestions marked read", user_id=user_id, marked=len(marked))

        return {
            "success": True,
            "user_id": user_id,
            "cutoff_date": cutoff.isoformat(),
            "results": {
                "marked_as_read": len(marked),
                "total_before": counts["total"],
                "old_suggestions_before": counts["old"],
                "old_unread_before": counts["old_unread"],
            },
            "sample_cleaned": [
                {
                    "id": str(row["id"]),
                    "created_at": _isoformat(row.get("created_at")),
                }
                for row in marked[:SAMPLE_SIZE]
            ],
            "message": f"Successfully marked {len(marked)} old partner suggestions as read",
        }

    async def purge_expired(self) -> int:
        deleted = await self.repository.delete_expired(datetime.now(UTC))
        logger.info("Expired partner suggestions purged", deleted_count=deleted)
        return deleted


def _isoformat(value) -> str | None:
    if value is None:
        return None
    return value.isoformat() if hasattr(value, "isoformat") else str(value)
