"""
Relationship grouper.

Turns the flat list of eligible entries into one work item per
relationship, each carrying the relationship's roster and only its own
entries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from app.features.partner_suggestions.domain import (
    EligibleEntry,
    RelationshipMember,
    RelationshipWorkItem,
)
from app.features.partner_suggestions.repository.relationship_repository import (
    RelationshipRepository,
    RelationshipRoster,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RosterSource(Protocol):
    async def fetch_rosters(self, relationship_ids) -> dict[str, RelationshipRoster]: ...


@dataclass(slots=True)
class GroupingFailure:
    """A relationship whose roster could not be loaded."""

    relationship_id: str
    entries: list[EligibleEntry]
    error: str


@dataclass(slots=True)
class GroupingResult:
    work_items: list[RelationshipWorkItem] = field(default_factory=list)
    failures: list[GroupingFailure] = field(default_factory=list)

    @property
    def relationship_count(self) -> int:
        return len(self.work_items) + len(self.failures)


class RelationshipGrouper:
    def __init__(self, roster_source: RosterSource | None = None):
        self.roster_source = roster_source or RelationshipRepository()

    async def group(self, entries: list[EligibleEntry]) -> GroupingResult:
        by_relationship: dict[str, list[EligibleEntry]] = {}
        for entry in entries:
            if not entry.relationship_id:
                continue
            by_relationship.setdefault(entry.relationship_id, []).append(entry)

        if not by_relationship:
            logger.info("No relationship-scoped entries to group")
            return GroupingResult()

        try:
            rosters = await self.roster_source.fetch_rosters(list(by_relationship))
        except Exception as e:
            logger.error(
                "Relationship roster lookup failed",
                relationship_count=len(by_relationship),
                error=str(e),
            )
            return GroupingResult(
                failures=[
                    GroupingFailure(rel_id, rel_entries, f"Membership lookup failed: {e}")
                    for rel_id, rel_entries in by_relationship.items()
                ]
            )

        result = GroupingResult()
        for relationship_id, rel_entries in by_relationship.items():
            roster = rosters.get(relationship_id)
            if roster is None:
                result.failures.append(
                    GroupingFailure(relationship_id, rel_entries, "Relationship not found")
                )
                continue

            result.work_items.append(
                RelationshipWorkItem(
                    relationship_id=relationship_id,
                    relationship_name=roster.relationship_name,
                    relationship_type=roster.relationship_type,
                    members=_unique_members(roster.members),
                    entries=rel_entries,
                )
            )

        logger.info(
            "Entries grouped by relationship",
            entries=len(entries),
            work_items=len(result.work_items),
            failures=len(result.failures),
        )
        return result


def _unique_members(members: list[RelationshipMember]) -> list[RelationshipMember]:
    seen: set[str] = set()
    unique = []
    for member in members:
        if member.member_id in seen:
            continue
        seen.add(member.member_id)
        unique.append(member)
    return unique
