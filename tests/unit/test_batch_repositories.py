from datetime import UTC, date, datetime
from unittest.mock import AsyncMock

import pytest

from app.db.helpers import DatabaseError, with_db_retry
from app.features.partner_suggestions.domain import BatchRunStatus
from app.features.partner_suggestions.repository import (
    batch_ledger_repository,
    entitlement_repository,
    journal_repository,
    relationship_repository,
)
from app.features.partner_suggestions.repository.batch_ledger_repository import (
    BatchLedgerRepository,
)
from app.features.partner_suggestions.repository.journal_repository import JournalRepository
from app.features.partner_suggestions.repository.relationship_repository import (
    RelationshipRepository,
)

BATCH_DATE = date(2025, 3, 1)


def _run_row(**overrides):
    row = {
        "id": "run-1",
        "batch_date": BATCH_DATE,
        "relationship_id": "R-42",
        "entries_processed": 2,
        "suggestions_generated": 0,
        "processing_status": "pending",
        "error_message": None,
        "processing_completed_at": None,
        "created_at": datetime(2025, 3, 2, tzinfo=UTC),
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_claim_date_true_when_row_returned(monkeypatch):
    fetch_one = AsyncMock(return_value={"owner": "owner-1"})
    monkeypatch.setattr(batch_ledger_repository, "fetch_one", fetch_one)

    claimed = await BatchLedgerRepository(claim_stale_after_seconds=900).claim_date(
        BATCH_DATE, "owner-1"
    )

    assert claimed is True
    query, params = fetch_one.await_args.args
    assert "ON CONFLICT (batch_date)" in query
    assert params == (BATCH_DATE, "owner-1", 900)


@pytest.mark.asyncio
async def test_claim_date_false_when_conflict_not_taken_over(monkeypatch):
    monkeypatch.setattr(batch_ledger_repository, "fetch_one", AsyncMock(return_value=None))

    assert await BatchLedgerRepository().claim_date(BATCH_DATE, "owner-2") is False


@pytest.mark.asyncio
async def test_open_maps_row_to_batch_run(monkeypatch):
    monkeypatch.setattr(batch_ledger_repository, "fetch_one", AsyncMock(return_value=_run_row()))

    run = await BatchLedgerRepository().open(BATCH_DATE, "R-42", 2)

    assert run.id == "run-1"
    assert run.status is BatchRunStatus.PENDING
    assert run.entries_processed == 2


@pytest.mark.asyncio
async def test_mark_failed_truncates_error(monkeypatch):
    execute_query = AsyncMock(return_value=1)
    monkeypatch.setattr(batch_ledger_repository, "execute_query", execute_query)

    await BatchLedgerRepository().mark_failed("run-1", "x" * 2000)

    _, params = execute_query.await_args.args
    assert len(params[0]) == 500
    assert params[1] == "run-1"


@pytest.mark.asyncio
async def test_has_completed_run(monkeypatch):
    monkeypatch.setattr(
        batch_ledger_repository, "fetch_one", AsyncMock(return_value={"completed": True})
    )

    assert await BatchLedgerRepository().has_completed_run(BATCH_DATE) is True


@pytest.mark.asyncio
async def test_fetch_batch_candidates_builds_entries(monkeypatch):
    authored = datetime(2025, 3, 1, 9, tzinfo=UTC)
    monkeypatch.setattr(
        journal_repository,
        "fetch_all",
        AsyncMock(
            return_value=[
                {
                    "entry_id": "e1",
                    "author_id": "A",
                    "relationship_id": "R-42",
                    "authored_at": authored,
                }
            ]
        ),
    )

    [entry] = await JournalRepository.fetch_batch_candidates(authored, authored)

    assert entry.entry_id == "e1"
    assert entry.content_ref == "journal_entries/e1"
    assert entry.authored_at == authored


@pytest.mark.asyncio
async def test_mark_batch_processed_skips_empty_input(monkeypatch):
    execute_query = AsyncMock(return_value=0)
    monkeypatch.setattr(journal_repository, "execute_query", execute_query)

    assert await JournalRepository.mark_batch_processed([]) == 0
    execute_query.assert_not_awaited()


@pytest.mark.asyncio
async def test_mark_batch_processed_only_touches_unprocessed_rows(monkeypatch):
    execute_query = AsyncMock(return_value=1)
    monkeypatch.setattr(journal_repository, "execute_query", execute_query)

    marked = await JournalRepository.mark_batch_processed(["e1", "e2"])

    query, params = execute_query.await_args.args
    assert marked == 1
    assert "batch_processed_at IS NULL" in query
    assert params == (["e1", "e2"],)


@pytest.mark.asyncio
async def test_fetch_rosters_groups_members_and_skips_empty(monkeypatch):
    monkeypatch.setattr(
        relationship_repository,
        "fetch_all",
        AsyncMock(
            return_value=[
                {"relationship_id": "R-42", "relationship_name": "Us", "relationship_type": None,
                 "member_id": "A", "role": "partner", "display_name": "Ann"},
                {"relationship_id": "R-42", "relationship_name": "Us", "relationship_type": None,
                 "member_id": "B", "role": "partner", "display_name": None},
                {"relationship_id": "R-9", "relationship_name": "Empty", "relationship_type": None,
                 "member_id": None, "role": None, "display_name": None},
            ]
        ),
    )

    rosters = await RelationshipRepository.fetch_rosters(["R-42", "R-9", "R-42"])

    assert [m.member_id for m in rosters["R-42"].members] == ["A", "B"]
    assert rosters["R-42"].members[1].display_name == "Unknown"
    assert rosters["R-9"].members == []


@pytest.mark.asyncio
async def test_entitlements_single_query(monkeypatch):
    fetch_all = AsyncMock(return_value=[{"user_id": "A"}])
    monkeypatch.setattr(entitlement_repository, "fetch_all", fetch_all)

    premium = await entitlement_repository.EntitlementRepository.fetch_active_premium_user_ids(
        {"A", "B"}
    )

    assert premium == {"A"}
    fetch_all.assert_awaited_once()


@pytest.mark.asyncio
async def test_with_db_retry_retries_recoverable_errors_only():
    attempts = {"count": 0}

    @with_db_retry(max_retries=2, base_delay=0)
    async def flaky():
        attempts["count"] += 1
        if attempts["count"] < 3:
            raise DatabaseError("connection lost", operation="execute", recoverable=True)
        return "ok"

    @with_db_retry(max_retries=2, base_delay=0)
    async def broken():
        attempts["count"] += 1
        raise DatabaseError("syntax error", operation="execute", recoverable=False)

    assert await flaky() == "ok"
    attempts["count"] = 0
    with pytest.raises(DatabaseError):
        await broken()
    assert attempts["count"] == 1
