"""
HTTP client for the downstream suggestion generation service.

The service is an opaque capability: given a relationship, a source author
and the recipients, it produces up to maxSuggestions suggestion records and
returns them as {"result": {"suggestions": [...]}}.
"""

import asyncio
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Any

import httpx

from app.features.partner_suggestions.domain import DispatchCall, Suggestion
from app.features.partner_suggestions.errors import SuggestionGenerationError
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

GENERATE_PATH = "/relationships/generate"
BACKOFF_FACTOR = 0.5
# generate writes suggestion rows; only requests that never reached it are retried
RETRY_STATUS_CODES = {429}
RETRY_EXCEPTIONS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)
TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    relationship_id: str
    call: DispatchCall
    timeframe_hours: int
    max_suggestions: int
    batch_date: date
    batch_id: str | None

    def to_payload(self) -> dict[str, Any]:
        return {
            "relationshipId": self.relationship_id,
            "sourceUserId": self.call.source_author_id,
            "recipientUserIds": list(self.call.recipient_ids),
            "timeframeHours": self.timeframe_hours,
            "maxSuggestions": self.max_suggestions,
            "batchMode": True,
            "batchDate": self.batch_date.isoformat(),
            "batchId": self.batch_id,
        }


class SuggestionGenerationClient:
    """
    Thin async wrapper around POST /relationships/generate.

    Constructed per batch run and closed when the run ends.
    """

    def __init__(
        self,
        base_url: str,
        service_role_key: str | None = None,
        *,
        timeout_seconds: float = 60.0,
        max_retries: int = 3,
        suggestion_ttl_days: int = 14,
        transport: httpx.AsyncBaseTransport | None = None,
        backoff_factor: float = BACKOFF_FACTOR,
    ):
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if service_role_key:
            headers["Authorization"] = f"Bearer {service_role_key}"

        self.max_retries = max(1, max_retries)
        self.suggestion_ttl_days = suggestion_ttl_days
        self.backoff_factor = backoff_factor
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SuggestionGenerationClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _post_with_retry(self, payload: dict) -> httpx.Response:
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.post(GENERATE_PATH, json=payload)
            except RETRY_EXCEPTIONS as e:
                if attempt >= self.max_retries:
                    raise SuggestionGenerationError(
                        f"Suggestion service unreachable: {type(e).__name__}: {e}",
                        recoverable=True,
                    ) from e
                backoff = self.backoff_factor * (2 ** (attempt - 1))
                logger.debug(
                    "Suggestion service request error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
                continue
            except httpx.RequestError as e:
                # Delivered or partially delivered; a retry could duplicate suggestions
                raise SuggestionGenerationError(
                    f"Suggestion service request failed: {type(e).__name__}: {e}",
                    recoverable=True,
                ) from e

            if response.status_code in RETRY_STATUS_CODES and attempt < self.max_retries:
                backoff = self.backoff_factor * (2 ** (attempt - 1))
                logger.debug(
                    "Suggestion service retrying request",
                    attempt=attempt,
                    status_code=response.status_code,
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
                continue
            return response

        raise SuggestionGenerationError("Suggestion service retry loop exhausted")

    async def generate(self, request: GenerationRequest) -> list[Suggestion]:
        """
        Request suggestions for one dispatch call.

        Raises:
            SuggestionGenerationError: non-2xx response, unreachable service or
                a body that is not JSON
        """
        response = await self._post_with_retry(request.to_payload())

        if not response.is_success:
            raise SuggestionGenerationError(
                f"Suggestion service returned HTTP {response.status_code}",
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else None,
                recoverable=response.status_code in TRANSIENT_STATUS_CODES,
            )

        try:
            body = response.json() if response.text else {}
        except ValueError as e:
            raise SuggestionGenerationError(
                f"Invalid response format: {e}", status_code=response.status_code
            ) from e

        raw_suggestions = ((body or {}).get("result") or {}).get("suggestions") or []
        return self._parse_suggestions(request, raw_suggestions)

    def _parse_suggestions(
        self, request: GenerationRequest, raw_suggestions: list[dict]
    ) -> list[Suggestion]:
        now = datetime.now(UTC)
        call = request.call
        allowed_recipients = set(call.recipient_ids)
        suggestions: list[Suggestion] = []

        for raw in raw_suggestions:
            recipient_id = raw.get("recipient_user_id")
            if recipient_id is None and len(call.recipient_ids) == 1:
                recipient_id = call.recipient_ids[0]
            source_author_id = raw.get("source_user_id") or call.source_author_id

            if recipient_id not in allowed_recipients or recipient_id == source_author_id:
                logger.warning(
                    "Dropping suggestion with unexpected recipient",
                    relationship_id=request.relationship_id,
                    source_author_id=source_author_id,
                    recipient_id=recipient_id,
                )
                continue

            created_at = _parse_timestamp(raw.get("created_at")) or now
            expires_at = _parse_timestamp(raw.get("expires_at")) or (
                created_at + timedelta(days=self.suggestion_ttl_days)
            )
            suggestions.append(
                Suggestion(
                    suggestion_id=str(raw["id"]) if raw.get("id") else None,
                    recipient_id=str(recipient_id),
                    relationship_id=request.relationship_id,
                    source_author_id=str(source_author_id),
                    suggestion_type=raw.get("suggestion_type") or "general",
                    priority_score=float(raw.get("priority_score") or 0),
                    confidence_score=float(raw.get("confidence_score") or 0),
                    created_at=created_at,
                    batch_id=request.batch_id,
                    expires_at=expires_at,
                )
            )

        return suggestions


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
