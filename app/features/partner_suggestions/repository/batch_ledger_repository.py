"""
Postgres repository for the batch ledger.

batch_processing_log holds one row per (date, relationship) attempt and is
the source of truth for idempotency; batch_run_claims holds the run-level
claim that keeps two triggers for the same date from overlapping.
"""

from datetime import date

from app.db.helpers import execute_query, fetch_all, fetch_one, with_db_retry
from app.features.partner_suggestions.domain import BatchRun, BatchRunStatus
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_ERROR_LENGTH = 500

_RUN_COLUMNS = """
    id, batch_date, relationship_id, entries_processed, suggestions_generated,
    processing_status, error_message, processing_completed_at, created_at
"""


def _row_to_run(row: dict) -> BatchRun:
    return BatchRun(
        id=str(row["id"]),
        batch_date=row["batch_date"],
        relationship_id=str(row["relationship_id"]),
        entries_processed=row.get("entries_processed") or 0,
        suggestions_generated=row.get("suggestions_generated") or 0,
        status=BatchRunStatus(row["processing_status"]),
        error_message=row.get("error_message"),
        completed_at=row.get("processing_completed_at"),
        created_at=row.get("created_at"),
    )


class BatchLedgerRepository:
    """Ledger reads, state transitions and the per-date claim."""

    def __init__(self, claim_stale_after_seconds: int = 3600):
        self.claim_stale_after_seconds = claim_stale_after_seconds

    async def has_completed_run(self, batch_date: date) -> bool:
        row = await fetch_one(
            """
            SELECT EXISTS (
                SELECT 1
                FROM batch_processing_log
                WHERE batch_date = %s
                  AND processing_status = 'completed'
            ) AS completed
            """,
            (batch_date,),
        )
        return bool(row and row["completed"])

    async def claim_date(self, batch_date: date, owner: str) -> bool:
        """
        Take the run-level claim for a date in one statement.

        Succeeds when no claim exists, the previous one was released, or the
        previous owner has held it longer than the stale threshold.
        """
        row = await fetch_one(
            """
            INSERT INTO batch_run_claims (batch_date, owner, claimed_at, released_at)
            VALUES (%s, %s, NOW(), NULL)
            ON CONFLICT (batch_date)
            DO UPDATE SET
                owner = EXCLUDED.owner,
                claimed_at = NOW(),
                released_at = NULL
            WHERE batch_run_claims.released_at IS NOT NULL
               OR batch_run_claims.claimed_at < NOW() - make_interval(secs => %s)
            RETURNING owner
            """,
            (batch_date, owner, self.claim_stale_after_seconds),
        )
        claimed = row is not None
        logger.info(
            "Batch date claim attempted",
            batch_date=batch_date.isoformat(),
            owner=owner,
            claimed=claimed,
        )
        return claimed

    @with_db_retry()
    async def release_claim(self, batch_date: date, owner: str) -> None:
        await execute_query(
            """
            UPDATE batch_run_claims
            SET released_at = NOW()
            WHERE batch_date = %s
              AND owner = %s
              AND released_at IS NULL
            """,
            (batch_date, owner),
        )

    @with_db_retry()
    async def open(self, batch_date: date, relationship_id: str, entries_count: int) -> BatchRun:
        """
        Create a pending row, or return the open row left by an earlier attempt.

        Failed rows from earlier attempts are kept untouched as audit trail.
        """
        row = await fetch_one(
            f"""
            INSERT INTO batch_processing_log (
                batch_date, relationship_id, entries_processed, processing_status
            )
            VALUES (%s, %s, %s, 'pending')
            ON CONFLICT (batch_date, relationship_id)
                WHERE processing_status IN ('pending', 'running')
            DO UPDATE SET
                entries_processed = EXCLUDED.entries_processed,
                updated_at = NOW()
            RETURNING {_RUN_COLUMNS}
            """,
            (batch_date, relationship_id, entries_count),
        )
        return _row_to_run(row)

    @with_db_retry()
    async def mark_running(self, run_id: str) -> None:
        await execute_query(
            """
            UPDATE batch_processing_log
            SET processing_status = 'running',
                processing_started_at = NOW(),
                updated_at = NOW()
            WHERE id = %s
            """,
            (run_id,),
        )

    @with_db_retry()
    async def mark_completed(
        self, run_id: str, suggestions_count: int, error_message: str | None = None
    ) -> None:
        # error_message keeps recipient-level failures of a completed relationship
        await execute_query(
            """
            UPDATE batch_processing_log
            SET processing_status = 'completed',
                suggestions_generated = %s,
                error_message = %s,
                processing_completed_at = NOW(),
                updated_at = NOW()
            WHERE id = %s
            """,
            (suggestions_count, _truncate(error_message), run_id),
        )

    @with_db_retry()
    async def mark_failed(self, run_id: str, error: str) -> None:
        truncated = _truncate(error)
        await execute_query(
            """
            UPDATE batch_processing_log
            SET processing_status = 'failed',
                error_message = %s,
                processing_completed_at = NOW(),
                updated_at = NOW()
            WHERE id = %s
            """,
            (truncated, run_id),
        )
        logger.warning("Batch run marked failed", run_id=run_id, error=truncated)

    async def list_runs(self, batch_date: date) -> list[BatchRun]:
        rows = await fetch_all(
            f"""
            SELECT {_RUN_COLUMNS}
            FROM batch_processing_log
            WHERE batch_date = %s
            ORDER BY created_at ASC
            """,
            (batch_date,),
        )
        return [_row_to_run(row) for row in rows]


def _truncate(message: str | None) -> str | None:
    if message is None:
        return None
    return message[:MAX_ERROR_LENGTH]
