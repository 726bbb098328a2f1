"""
Suggestion dispatcher.

For one relationship work item, decides which downstream generation calls to
make and runs them with bounded parallelism. Failures are collected per call
so a single bad recipient never aborts its siblings.
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Literal, Protocol

from app.features.partner_suggestions.domain import (
    DispatchCall,
    DispatchOutcome,
    RecipientError,
    RelationshipWorkItem,
    Suggestion,
)
from app.infrastructure.observability.logging import get_logger

from .client import GenerationRequest
from .rate_limiter import TokenBucketRateLimiter

logger = get_logger(__name__)

SourceAuthorMode = Literal["per_author", "representative"]


class GenerationClient(Protocol):
    async def generate(self, request: GenerationRequest) -> list[Suggestion]: ...


def build_calls(item: RelationshipWorkItem, mode: SourceAuthorMode = "per_author") -> list[DispatchCall]:
    """
    Work out the downstream calls for a work item.

    per_author: one call per distinct author, addressed to every other member.
    representative: one call per non-authoring member, all credited to the
    author of the first entry.
    """
    member_ids = [member.member_id for member in item.members]

    if mode == "representative":
        if not item.entries:
            return []
        source = item.representative_author_id
        return [
            DispatchCall(source_author_id=source, recipient_ids=(member.member_id,))
            for member in item.recipients
            if member.member_id != source
        ]

    calls = []
    for author_id in item.author_ids:
        recipients = tuple(member_id for member_id in member_ids if member_id != author_id)
        if recipients:
            calls.append(DispatchCall(source_author_id=author_id, recipient_ids=recipients))
    return calls


class SuggestionDispatcher:
    def __init__(
        self,
        client: GenerationClient,
        rate_limiter: TokenBucketRateLimiter | None = None,
        *,
        mode: SourceAuthorMode = "per_author",
        recipient_concurrency: int = 2,
        call_timeout_seconds: float | None = None,
        timeframe_hours: int = 24,
        max_suggestions: int = 3,
    ):
        self.client = client
        self.rate_limiter = rate_limiter
        self.mode = mode
        self.recipient_concurrency = max(1, recipient_concurrency)
        self.call_timeout_seconds = call_timeout_seconds
        self.timeframe_hours = timeframe_hours
        self.max_suggestions = max_suggestions

    async def dispatch(
        self, item: RelationshipWorkItem, batch_date: date, batch_id: str | None = None
    ) -> DispatchOutcome:
        calls = build_calls(item, self.mode)
        outcome = DispatchOutcome(relationship_id=item.relationship_id, attempted_calls=len(calls))

        if not calls:
            logger.info(
                "No recipients for relationship, nothing to dispatch",
                relationship_id=item.relationship_id,
                member_count=len(item.members),
            )
            return outcome

        semaphore = asyncio.Semaphore(self.recipient_concurrency)

        async def run_call(call: DispatchCall) -> list[Suggestion] | RecipientError:
            async with semaphore:
                if self.rate_limiter is not None:
                    await self.rate_limiter.acquire()
                request = GenerationRequest(
                    relationship_id=item.relationship_id,
                    call=call,
                    timeframe_hours=self.timeframe_hours,
                    max_suggestions=self.max_suggestions,
                    batch_date=batch_date,
                    batch_id=batch_id,
                )
                try:
                    if self.call_timeout_seconds:
                        return await asyncio.wait_for(
                            self.client.generate(request), timeout=self.call_timeout_seconds
                        )
                    return await self.client.generate(request)
                except TimeoutError:
                    return RecipientError(
                        call.source_author_id,
                        call.recipient_ids,
                        f"Timed out after {self.call_timeout_seconds}s",
                    )
                except Exception as e:
                    logger.warning(
                        "Suggestion generation call failed",
                        relationship_id=item.relationship_id,
                        source_author_id=call.source_author_id,
                        recipient_count=len(call.recipient_ids),
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    return RecipientError(call.source_author_id, call.recipient_ids, str(e))

        results = await asyncio.gather(*(run_call(call) for call in calls))

        for call, result in zip(calls, results, strict=True):
            if isinstance(result, RecipientError):
                outcome.errors.append(result)
                continue
            for suggestion in result:
                if suggestion.recipient_id == suggestion.source_author_id:
                    logger.warning(
                        "Dropping self-addressed suggestion",
                        relationship_id=item.relationship_id,
                        source_author_id=call.source_author_id,
                    )
                    continue
                outcome.suggestions.append(suggestion)

        logger.info(
            "Relationship dispatch finished",
            relationship_id=item.relationship_id,
            mode=self.mode,
            calls=len(calls),
            suggestions=outcome.suggestions_generated,
            errors=len(outcome.errors),
        )
        return outcome
