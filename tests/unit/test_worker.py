from datetime import UTC, date, datetime
from unittest.mock import AsyncMock

import pytest

from app.features.partner_suggestions.domain import BatchReport, BatchRunState
from app.features.partner_suggestions.jobs import daily_batch_job
from app.jobs import worker


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch):
    called = {"ok": False}

    async def dummy_job():
        called["ok"] = True

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    await worker.run_worker("dummy")

    assert called["ok"] is True


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError):
        await worker.run_worker("missing")


def test_daily_batch_jobs_are_registered():
    assert worker.JOB_REGISTRY["daily_batch"] is daily_batch_job.start_daily_batch_scheduler
    assert worker.JOB_REGISTRY["daily_batch_once"] is daily_batch_job.run_daily_batch_once


def test_seconds_until_next_run_same_day():
    now = datetime(2025, 3, 1, 22, 30, tzinfo=UTC)

    assert daily_batch_job.seconds_until_next_run(now, 23) == 1800


def test_seconds_until_next_run_rolls_to_tomorrow():
    now = datetime(2025, 3, 1, 23, 0, tzinfo=UTC)

    assert daily_batch_job.seconds_until_next_run(now, 23) == 86400


@pytest.mark.asyncio
async def test_run_daily_batch_once_runs_batch_and_purge(monkeypatch):
    monkeypatch.setattr(daily_batch_job, "_ensure_pool", AsyncMock())
    scheduler = AsyncMock()
    scheduler.run.return_value = BatchReport(
        batch_date=date(2025, 3, 1), state=BatchRunState.COMPLETED
    )
    cleanup = AsyncMock()
    cleanup.purge_expired.side_effect = RuntimeError("purge failed")

    report = await daily_batch_job.run_daily_batch_once(scheduler, cleanup)

    assert report.state is BatchRunState.COMPLETED
    scheduler.run.assert_awaited_once_with()
    cleanup.purge_expired.assert_awaited_once()


@pytest.mark.asyncio
async def test_scheduler_disabled_returns_immediately(monkeypatch):
    monkeypatch.setattr(daily_batch_job.settings, "BATCH_SCHEDULER_ENABLED", False)
    run_once = AsyncMock()
    monkeypatch.setattr(daily_batch_job, "run_daily_batch_once", run_once)

    await daily_batch_job.start_daily_batch_scheduler()

    run_once.assert_not_awaited()
