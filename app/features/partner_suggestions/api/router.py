"""
Batch trigger and maintenance routes.

Called by the external cron (or an operator) with the cron bearer secret.
The heavy lifting lives in BatchScheduler; these handlers only translate a
BatchReport into the HTTP contract.
"""

import datetime as dt

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from app.auth.verify import cron_auth_dependency
from app.config import settings
from app.db.helpers import DatabaseError
from app.features.partner_suggestions.api.schemas import BatchRunRequest, CleanupRequest
from app.features.partner_suggestions.domain import BatchReport, BatchRunState
from app.features.partner_suggestions.repository.batch_ledger_repository import (
    BatchLedgerRepository,
)
from app.features.partner_suggestions.services import BatchScheduler, SuggestionCleanupService
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/batch",
    tags=["partner-suggestions-batch"],
    dependencies=[Depends(cron_auth_dependency)],
)


def get_batch_scheduler() -> BatchScheduler:
    return BatchScheduler()


def get_batch_ledger() -> BatchLedgerRepository:
    return BatchLedgerRepository(settings.BATCH_CLAIM_STALE_AFTER_SECONDS)


def get_cleanup_service() -> SuggestionCleanupService:
    return SuggestionCleanupService()


def report_to_response(report: BatchReport) -> JSONResponse:
    batch_date = report.batch_date.isoformat()

    if report.already_processed:
        return JSONResponse(
            status_code=200,
            content={
                "success": True,
                "alreadyProcessed": True,
                "batchDate": batch_date,
                "message": report.message,
            },
        )

    if report.in_progress:
        return JSONResponse(
            status_code=409,
            content={
                "success": False,
                "inProgress": True,
                "batchDate": batch_date,
                "message": report.message,
            },
        )

    results = [result.to_dict() for result in report.results]

    if report.state is BatchRunState.FAILED:
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "batchDate": batch_date,
                "state": report.state.value,
                "error": "Batch processing failed",
                "details": report.error,
                "summary": report.summary(),
                "results": results,
            },
        )

    message = report.message or (
        f"Processed {report.relationships_analyzed} relationships, "
        f"generated {report.suggestions_generated} suggestions"
    )
    content = {
        "success": True,
        "batchDate": batch_date,
        "state": report.state.value,
        "summary": report.summary(),
        "results": results,
        "message": message,
    }
    if report.error:
        content["warning"] = report.error
    return JSONResponse(status_code=200, content=content)


@router.post("/run")
async def trigger_batch_run(
    payload: BatchRunRequest | None = None,
    scheduler: BatchScheduler = Depends(get_batch_scheduler),
):
    """Run the daily batch for a date (defaults to yesterday)."""
    payload = payload or BatchRunRequest()
    logger.info(
        "Batch run triggered",
        batch_date=payload.date.isoformat() if payload.date else None,
        force=payload.force,
    )
    report = await scheduler.run(payload.date, force=payload.force)
    return report_to_response(report)


@router.get("/run")
async def trigger_batch_run_get(
    date: dt.date | None = Query(default=None),
    force: bool = Query(default=False),
    scheduler: BatchScheduler = Depends(get_batch_scheduler),
):
    """GET variant for cron providers that can only issue GET requests."""
    logger.info("Batch run triggered", batch_date=date.isoformat() if date else None, force=force)
    report = await scheduler.run(date, force=force)
    return report_to_response(report)


@router.get("/runs")
async def list_batch_runs(
    date: dt.date = Query(...),
    ledger: BatchLedgerRepository = Depends(get_batch_ledger),
):
    """Ledger rows for a date, oldest first."""
    try:
        runs = await ledger.list_runs(date)
    except DatabaseError as e:
        logger.error("Failed to list batch runs", batch_date=date.isoformat(), error=str(e))
        return JSONResponse(
            status_code=500, content={"success": False, "error": "Failed to load batch runs"}
        )

    return {
        "batchDate": date.isoformat(),
        "runs": [
            {
                "id": run.id,
                "relationshipId": run.relationship_id,
                "status": run.status.value,
                "entriesProcessed": run.entries_processed,
                "suggestionsGenerated": run.suggestions_generated,
                "errorMessage": run.error_message,
                "completedAt": run.completed_at.isoformat() if run.completed_at else None,
                "createdAt": run.created_at.isoformat() if run.created_at else None,
            }
            for run in runs
        ],
    }


@router.post("/cleanup/old-suggestions")
async def cleanup_old_suggestions(
    payload: CleanupRequest,
    service: SuggestionCleanupService = Depends(get_cleanup_service),
):
    """Mark a user's old unread suggestions as read (or analyse with dryRun)."""
    try:
        return await service.cleanup_for_user(payload.user_id, payload.days_old, payload.dry_run)
    except DatabaseError as e:
        logger.error("Suggestion cleanup failed", user_id=payload.user_id, error=str(e))
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to mark old suggestions as read", "details": str(e)},
        )


@router.get("/cleanup/old-suggestions")
async def check_old_suggestions(
    user_id: str = Query(..., alias="userId", min_length=1),
    days_old: int = Query(default=30, alias="daysOld", ge=0),
    service: SuggestionCleanupService = Depends(get_cleanup_service),
):
    """Dry-run analysis of what a cleanup would change."""
    try:
        return await service.cleanup_for_user(user_id, days_old, dry_run=True)
    except DatabaseError as e:
        logger.error("Suggestion cleanup check failed", user_id=user_id, error=str(e))
        return JSONResponse(
            status_code=500, content={"error": "Failed to analyse suggestions", "details": str(e)}
        )
