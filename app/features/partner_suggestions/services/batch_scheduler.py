"""
Daily batch scheduler.

Drives one run for a calendar date through
NotStarted -> Running -> Completed | PartiallyFailed | Failed:

1. Skip when the date already has a completed ledger row (unless forced)
2. Take the run-level claim for the date
3. Filter eligible entries, group them by relationship
4. Dispatch each relationship on a bounded worker pool, recording the ledger
   transitions per relationship
5. Mark the entries of every relationship that reached running as processed

run() never raises. Relationship failures leave the run PartiallyFailed;
Failed is kept for fatal errors outside dispatch.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import date, datetime, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo

from app.config import settings
from app.features.partner_suggestions.domain import (
    BatchReport,
    BatchRun,
    BatchRunState,
    BatchRunStatus,
    RelationshipResult,
    RelationshipWorkItem,
)
from app.features.partner_suggestions.pipeline.dispatch import (
    SuggestionDispatcher,
    SuggestionGenerationClient,
    TokenBucketRateLimiter,
)
from app.features.partner_suggestions.pipeline.dispatch.service import GenerationClient
from app.features.partner_suggestions.pipeline.eligibility import EligibilityFilter
from app.features.partner_suggestions.pipeline.grouping import RelationshipGrouper
from app.features.partner_suggestions.repository.batch_ledger_repository import (
    BatchLedgerRepository,
)
from app.features.partner_suggestions.repository.journal_repository import JournalRepository
from app.infrastructure.observability.logging import (
    bind_log_context,
    clear_log_context,
    get_logger,
)

logger = get_logger(__name__)

NOT_STARTED_BEFORE_DEADLINE = "Not started before deadline"


class JournalMarker(Protocol):
    async def mark_batch_processed(self, entry_ids: list[str]) -> int: ...


def yesterday(timezone: str = "UTC") -> date:
    return datetime.now(ZoneInfo(timezone)).date() - timedelta(days=1)


class BatchRunContext:
    """
    Per-run resources: the downstream HTTP client and the shared rate limiter.

    A client passed in is borrowed and left open; one built here is closed
    when the run ends.
    """

    def __init__(self, config: dict, client: GenerationClient | None = None):
        self.config = config
        self._borrowed_client = client
        self.client: GenerationClient | None = None
        self.rate_limiter: TokenBucketRateLimiter | None = None

    async def __aenter__(self) -> BatchRunContext:
        self.rate_limiter = TokenBucketRateLimiter(
            self.config["rate_per_second"], self.config["burst"]
        )
        if self._borrowed_client is not None:
            self.client = self._borrowed_client
        else:
            self.client = SuggestionGenerationClient(
                settings.SUGGESTION_SERVICE_URL,
                settings.SUPABASE_SERVICE_ROLE_KEY,
                timeout_seconds=settings.SUGGESTION_SERVICE_TIMEOUT_SECONDS,
                max_retries=self.config["max_retries"],
                suggestion_ttl_days=self.config["suggestion_ttl_days"],
            )
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._borrowed_client is None and self.client is not None:
            await self.client.close()
        if self.rate_limiter is not None:
            logger.info("Downstream rate limiter stats", **self.rate_limiter.stats())

    def dispatcher(self) -> SuggestionDispatcher:
        return SuggestionDispatcher(
            self.client,
            self.rate_limiter,
            mode=self.config["source_author_mode"],
            recipient_concurrency=self.config["recipient_concurrency"],
            call_timeout_seconds=self.config.get("call_timeout_seconds"),
            timeframe_hours=self.config["timeframe_hours"],
            max_suggestions=self.config["max_suggestions"],
        )


class BatchScheduler:
    def __init__(
        self,
        ledger: BatchLedgerRepository | None = None,
        eligibility: EligibilityFilter | None = None,
        grouper: RelationshipGrouper | None = None,
        journal_marker: JournalMarker | None = None,
        generation_client: GenerationClient | None = None,
        config: dict | None = None,
    ):
        self.config = config or settings.get_batch_config()
        self.ledger = ledger or BatchLedgerRepository(self.config["claim_stale_after_seconds"])
        self.eligibility = eligibility or EligibilityFilter(timezone=self.config["timezone"])
        self.grouper = grouper or RelationshipGrouper()
        self.journal_marker = journal_marker or JournalRepository()
        self.generation_client = generation_client

    async def run(
        self,
        target_date: date | None = None,
        *,
        deadline_seconds: float | None = None,
        force: bool = False,
    ) -> BatchReport:
        batch_date = target_date or yesterday(self.config["timezone"])
        report = BatchReport(batch_date=batch_date)
        deadline = deadline_seconds or self.config.get("run_deadline_seconds")

        bind_log_context(batch_date=batch_date.isoformat())
        started_at = datetime.utcnow()
        logger.info("Starting daily batch run", force=force, deadline_seconds=deadline)

        try:
            await self._run_claimed(report, deadline, force)
        except Exception as e:
            logger.exception("Daily batch run failed", error=str(e), error_type=type(e).__name__)
            report.state = BatchRunState.FAILED
            report.error = str(e)
        finally:
            logger.info(
                "Daily batch run finished",
                state=report.state.value,
                duration_seconds=(datetime.utcnow() - started_at).total_seconds(),
                already_processed=report.already_processed,
                in_progress=report.in_progress,
                **report.summary(),
            )
            clear_log_context("batch_date")

        return report

    async def _run_claimed(self, report: BatchReport, deadline: float | None, force: bool) -> None:
        batch_date = report.batch_date

        if not force and await self.ledger.has_completed_run(batch_date):
            self._mark_already_processed(report)
            return

        owner = str(uuid.uuid4())
        if not await self.ledger.claim_date(batch_date, owner):
            logger.warning("Batch date is claimed by another trigger, skipping")
            report.in_progress = True
            report.message = "Batch already in progress for this date"
            return

        try:
            # Another trigger may have finished between the check and the claim
            if not force and await self.ledger.has_completed_run(batch_date):
                self._mark_already_processed(report)
                return

            report.state = BatchRunState.RUNNING
            await self._execute(report, deadline, force)
        finally:
            try:
                await self.ledger.release_claim(batch_date, owner)
            except Exception as e:
                logger.error("Failed to release batch date claim", owner=owner, error=str(e))

    @staticmethod
    def _mark_already_processed(report: BatchReport) -> None:
        logger.info("Batch already processed for date")
        report.already_processed = True
        report.state = BatchRunState.COMPLETED
        report.message = "Batch already processed for this date"

    async def _execute(self, report: BatchReport, deadline: float | None, force: bool) -> None:
        batch_date = report.batch_date

        eligibility = await self.eligibility.find_eligible(batch_date)
        if not eligibility.source_available:
            report.state = BatchRunState.FAILED
            report.error = eligibility.error or "Eligibility source unavailable"
            return

        if not eligibility.entries:
            logger.info("No journals ready for batch processing")
            report.state = BatchRunState.COMPLETED
            report.message = "No journals ready for batch processing"
            return

        report.journals_processed = len(eligibility.entries)

        grouping = await self.grouper.group(eligibility.entries)
        report.relationships_analyzed = grouping.relationship_count

        for failure in grouping.failures:
            report.results.append(
                await self._record_failure(
                    batch_date, failure.relationship_id, len(failure.entries), failure.error
                )
            )

        work_items = grouping.work_items
        if force and work_items:
            work_items = await self._skip_completed(batch_date, work_items)

        if not work_items:
            if not grouping.failures:
                report.state = BatchRunState.COMPLETED
                report.message = "No relationships left to process"
                return
            report.state = BatchRunState.FAILED
            report.error = "No relationships could be grouped"
            return

        started = await self._dispatch_all(report, work_items, deadline)

        entry_ids = [
            entry_id
            for item in work_items
            if item.relationship_id in started
            for entry_id in item.entry_ids
        ]
        if entry_ids:
            try:
                marked = await self.journal_marker.mark_batch_processed(entry_ids)
                logger.info("Journal entries marked processed", requested=len(entry_ids), marked=marked)
            except Exception as e:
                logger.error("Failed to mark journal entries processed", error=str(e))
                report.error = f"Failed to mark entries processed: {e}"

        report.state = _final_state(report.results)

    async def _skip_completed(
        self, batch_date: date, work_items: list[RelationshipWorkItem]
    ) -> list[RelationshipWorkItem]:
        completed = {
            run.relationship_id
            for run in await self.ledger.list_runs(batch_date)
            if run.status is BatchRunStatus.COMPLETED
        }
        remaining = [item for item in work_items if item.relationship_id not in completed]
        if len(remaining) != len(work_items):
            logger.info(
                "Forced run skipping relationships already completed",
                skipped=len(work_items) - len(remaining),
            )
        return remaining

    async def _dispatch_all(
        self,
        report: BatchReport,
        work_items: list[RelationshipWorkItem],
        deadline: float | None,
    ) -> set[str]:
        """Run every work item on the worker pool. Returns relationships that reached running."""
        batch_date = report.batch_date
        runs: dict[str, BatchRun] = {}
        started: set[str] = set()
        semaphore = asyncio.Semaphore(self.config["max_concurrent_relationships"])

        async with BatchRunContext(self.config, self.generation_client) as context:
            dispatcher = context.dispatcher()

            async def worker(item: RelationshipWorkItem) -> RelationshipResult:
                async with semaphore:
                    return await self._process_item(item, batch_date, dispatcher, runs, started)

            tasks = {asyncio.create_task(worker(item)): item for item in work_items}
            done, pending = await asyncio.wait(tasks, timeout=deadline)

            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning("Run deadline exceeded", deadline_seconds=deadline, cancelled=len(pending))

            for task, item in tasks.items():
                if task in done:
                    report.results.append(task.result())
                    continue

                if item.relationship_id in started:
                    error = f"Run deadline of {deadline}s exceeded"
                else:
                    error = NOT_STARTED_BEFORE_DEADLINE
                report.results.append(
                    await self._record_failure(
                        batch_date,
                        item.relationship_id,
                        len(item.entries),
                        error,
                        run=runs.get(item.relationship_id),
                    )
                )

        return started

    async def _process_item(
        self,
        item: RelationshipWorkItem,
        batch_date: date,
        dispatcher: SuggestionDispatcher,
        runs: dict[str, BatchRun],
        started: set[str],
    ) -> RelationshipResult:
        relationship_id = item.relationship_id
        entries_count = len(item.entries)

        try:
            run = await self.ledger.open(batch_date, relationship_id, entries_count)
            runs[relationship_id] = run
            await self.ledger.mark_running(run.id)
        except Exception as e:
            logger.error("Could not open ledger row", relationship_id=relationship_id, error=str(e))
            return RelationshipResult(
                relationship_id, entries_count, 0, BatchRunStatus.FAILED, f"Ledger error: {e}"
            )
        started.add(relationship_id)

        timeout = self.config["relationship_timeout_seconds"]
        try:
            outcome = await asyncio.wait_for(
                dispatcher.dispatch(item, batch_date, run.id), timeout=timeout
            )
        except TimeoutError:
            return await self._fail_run(run, entries_count, f"Relationship timed out after {timeout}s")
        except Exception as e:
            logger.exception("Relationship dispatch crashed", relationship_id=relationship_id)
            return await self._fail_run(run, entries_count, f"{type(e).__name__}: {e}")

        error_summary = outcome.error_summary()
        if not outcome.succeeded:
            return await self._fail_run(run, entries_count, error_summary or "All calls failed")

        try:
            await self.ledger.mark_completed(run.id, outcome.suggestions_generated, error_summary)
        except Exception as e:
            logger.error("Could not mark run completed", run_id=run.id, error=str(e))
            return RelationshipResult(
                relationship_id,
                entries_count,
                outcome.suggestions_generated,
                BatchRunStatus.FAILED,
                f"Ledger error: {e}",
            )

        return RelationshipResult(
            relationship_id,
            entries_count,
            outcome.suggestions_generated,
            BatchRunStatus.COMPLETED,
            error_summary,
        )

    async def _fail_run(self, run: BatchRun, entries_count: int, error: str) -> RelationshipResult:
        try:
            await self.ledger.mark_failed(run.id, error)
        except Exception as e:
            logger.error("Could not mark run failed", run_id=run.id, error=str(e))
        return RelationshipResult(run.relationship_id, entries_count, 0, BatchRunStatus.FAILED, error)

    async def _record_failure(
        self,
        batch_date: date,
        relationship_id: str,
        entries_count: int,
        error: str,
        run: BatchRun | None = None,
    ) -> RelationshipResult:
        """Write a failed ledger row for a relationship that was never dispatched."""
        try:
            if run is None:
                run = await self.ledger.open(batch_date, relationship_id, entries_count)
            await self.ledger.mark_failed(run.id, error)
        except Exception as e:
            logger.error(
                "Could not record relationship failure",
                relationship_id=relationship_id,
                error=str(e),
            )
        return RelationshipResult(relationship_id, entries_count, 0, BatchRunStatus.FAILED, error)


def _final_state(results: list[RelationshipResult]) -> BatchRunState:
    """Outcome of a run that reached dispatch; relationship failures never fail the run."""
    if any(result.error for result in results):
        return BatchRunState.PARTIALLY_FAILED
    return BatchRunState.COMPLETED
