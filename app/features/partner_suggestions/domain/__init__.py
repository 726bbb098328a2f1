"""
Domain subpackage for the partner suggestion batch.
"""

from .models import (
    BatchReport,
    BatchRun,
    BatchRunState,
    BatchRunStatus,
    DispatchCall,
    DispatchOutcome,
    EligibleEntry,
    RecipientError,
    RelationshipMember,
    RelationshipResult,
    RelationshipWorkItem,
    Suggestion,
)

__all__ = [
    "BatchReport",
    "BatchRun",
    "BatchRunState",
    "BatchRunStatus",
    "DispatchCall",
    "DispatchOutcome",
    "EligibleEntry",
    "RecipientError",
    "RelationshipMember",
    "RelationshipResult",
    "RelationshipWorkItem",
    "Suggestion",
]
