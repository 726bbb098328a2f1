"""
Repository helpers for journal entries awaiting the daily batch.

Only reads entry metadata; the single write is setting batch_processed_at.
"""

from datetime import datetime

from app.db.helpers import execute_query, fetch_all, with_db_retry
from app.features.partner_suggestions.domain import EligibleEntry
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def journal_content_ref(entry_id: str) -> str:
    return f"journal_entries/{entry_id}"


class JournalRepository:
    """Raw SQL helpers for journal_entries."""

    @staticmethod
    async def fetch_batch_candidates(
        window_start: datetime, window_end: datetime
    ) -> list[EligibleEntry]:
        """
        Entries authored in [window_start, window_end) that are flagged ready
        for batching, not yet processed and scoped to a relationship.
        """
        rows = await fetch_all(
            """
            SELECT
                id AS entry_id,
                user_id AS author_id,
                relationship_id,
                created_at AS authored_at
            FROM journal_entries
            WHERE created_at >= %s
              AND created_at < %s
              AND ready_for_batch = true
              AND batch_processed_at IS NULL
              AND relationship_id IS NOT NULL
            ORDER BY created_at ASC, id ASC
            """,
            (window_start, window_end),
        )
        return [
            EligibleEntry(
                entry_id=str(row["entry_id"]),
                author_id=str(row["author_id"]),
                relationship_id=str(row["relationship_id"]) if row["relationship_id"] else None,
                content_ref=journal_content_ref(str(row["entry_id"])),
                authored_at=row["authored_at"],
            )
            for row in rows
        ]

    @staticmethod
    @with_db_retry()
    async def mark_batch_processed(entry_ids: list[str]) -> int:
        """Set batch_processed_at once; already processed rows are not touched."""
        if not entry_ids:
            return 0

        marked = await execute_query(
            """
            UPDATE journal_entries
            SET batch_processed_at = NOW()
            WHERE id = ANY(%s::uuid[])
              AND batch_processed_at IS NULL
            """,
            (list(entry_ids),),
        )
        logger.info("Journal entries marked batch processed", requested=len(entry_ids), marked=marked)
        return marked
