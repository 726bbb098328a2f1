"""
Domain models for the daily partner suggestion batch.

These dataclasses describe the rows the pipeline reads and writes and the
transient work units passed between its stages. Apart from a few derived
properties they carry no behaviour, so repositories, pipeline services and
the API layer can share them.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class BatchRunStatus(str, Enum):
    """Ledger status of one (date, relationship) attempt."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BatchRunState(str, Enum):
    """Outcome of a whole scheduler invocation."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"


@dataclass(slots=True)
class BatchRun:
    """Represents a batch_processing_log row."""

    id: str
    batch_date: date
    relationship_id: str
    entries_processed: int
    suggestions_generated: int
    status: BatchRunStatus
    error_message: str | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(slots=True)
class EligibleEntry:
    """A journal write that qualifies for batch inclusion."""

    entry_id: str
    author_id: str
    relationship_id: str | None
    content_ref: str  # journal row reference, never the text itself
    authored_at: datetime


@dataclass(slots=True)
class RelationshipMember:
    member_id: str
    display_name: str
    role: str | None = None


@dataclass(slots=True)
class RelationshipWorkItem:
    """One relationship plus its qualifying entries and member roster."""

    relationship_id: str
    relationship_name: str
    members: list[RelationshipMember]
    entries: list[EligibleEntry]
    relationship_type: str | None = None

    @property
    def author_ids(self) -> list[str]:
        """Distinct entry authors, in entry order."""
        return list(dict.fromkeys(entry.author_id for entry in self.entries))

    @property
    def recipients(self) -> list[RelationshipMember]:
        """Members who authored none of the entries."""
        authors = set(self.author_ids)
        return [member for member in self.members if member.member_id not in authors]

    @property
    def representative_author_id(self) -> str:
        return self.entries[0].author_id

    @property
    def entry_ids(self) -> list[str]:
        return [entry.entry_id for entry in self.entries]


@dataclass(slots=True)
class Suggestion:
    """A generated suggestion delivered to a non-authoring member."""

    recipient_id: str
    relationship_id: str
    source_author_id: str
    suggestion_type: str
    priority_score: float
    confidence_score: float
    created_at: datetime
    batch_id: str | None
    expires_at: datetime | None
    suggestion_id: str | None = None


@dataclass(frozen=True, slots=True)
class DispatchCall:
    """One downstream generation request: a source author and who receives it."""

    source_author_id: str
    recipient_ids: tuple[str, ...]


@dataclass(slots=True)
class RecipientError:
    source_author_id: str
    recipient_ids: tuple[str, ...]
    error: str

    def describe(self) -> str:
        recipients = ", ".join(self.recipient_ids)
        return f"{self.source_author_id} -> [{recipients}]: {self.error}"


@dataclass(slots=True)
class DispatchOutcome:
    """What the dispatcher produced for one work item."""

    relationship_id: str
    suggestions: list[Suggestion] = field(default_factory=list)
    errors: list[RecipientError] = field(default_factory=list)
    attempted_calls: int = 0

    @property
    def suggestions_generated(self) -> int:
        return len(self.suggestions)

    @property
    def succeeded(self) -> bool:
        """True unless every attempted call failed."""
        return not self.errors or len(self.errors) < self.attempted_calls

    def error_summary(self) -> str | None:
        if not self.errors:
            return None
        return "; ".join(error.describe() for error in self.errors)


@dataclass(slots=True)
class RelationshipResult:
    relationship_id: str
    entries_processed: int
    suggestions_generated: int
    status: BatchRunStatus
    error: str | None = None

    def to_dict(self) -> dict:
        payload = {
            "relationshipId": self.relationship_id,
            "entriesProcessed": self.entries_processed,
            "suggestionsGenerated": self.suggestions_generated,
            "status": self.status.value,
        }
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class BatchReport:
    """Aggregate result of one scheduler invocation."""

    batch_date: date
    state: BatchRunState = BatchRunState.NOT_STARTED
    already_processed: bool = False
    in_progress: bool = False
    journals_processed: int = 0
    relationships_analyzed: int = 0
    results: list[RelationshipResult] = field(default_factory=list)
    error: str | None = None
    message: str | None = None

    @property
    def success(self) -> bool:
        return self.state is not BatchRunState.FAILED and not self.in_progress

    @property
    def suggestions_generated(self) -> int:
        return sum(result.suggestions_generated for result in self.results)

    @property
    def successful_batches(self) -> int:
        return sum(1 for result in self.results if result.status is BatchRunStatus.COMPLETED)

    @property
    def failed_batches(self) -> int:
        return sum(1 for result in self.results if result.status is BatchRunStatus.FAILED)

    def summary(self) -> dict:
        return {
            "journalsProcessed": self.journals_processed,
            "relationshipsAnalyzed": self.relationships_analyzed,
            "suggestionsGenerated": self.suggestions_generated,
            "successfulBatches": self.successful_batches,
            "failedBatches": self.failed_batches,
        }
