"""
Relationship roster lookups for the batch grouper.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from app.db.helpers import fetch_all
from app.features.partner_suggestions.domain import RelationshipMember
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class RelationshipRoster:
    relationship_id: str
    relationship_name: str
    relationship_type: str | None
    members: list[RelationshipMember] = field(default_factory=list)


class RelationshipRepository:
    @staticmethod
    async def fetch_rosters(relationship_ids: Iterable[str]) -> dict[str, RelationshipRoster]:
        """
        Load every requested relationship with its members in one query.

        Relationships that do not exist are absent from the result.
        """
        ids = list(dict.fromkeys(relationship_ids))
        if not ids:
            return {}

        rows = await fetch_all(
            """
            SELECT
                r.id AS relationship_id,
                r.name AS relationship_name,
                r.relationship_type,
                rm.user_id AS member_id,
                rm.role,
                COALESCE(u.full_name, u.email, 'Unknown') AS display_name
            FROM relationships r
            LEFT JOIN relationship_members rm ON rm.relationship_id = r.id
            LEFT JOIN users u ON u.id = rm.user_id
            WHERE r.id = ANY(%s::uuid[])
            ORDER BY r.id, rm.user_id
            """,
            (ids,),
        )

        rosters: dict[str, RelationshipRoster] = {}
        for row in rows:
            relationship_id = str(row["relationship_id"])
            roster = rosters.get(relationship_id)
            if roster is None:
                roster = RelationshipRoster(
                    relationship_id=relationship_id,
                    relationship_name=row.get("relationship_name") or "",
                    relationship_type=row.get("relationship_type"),
                )
                rosters[relationship_id] = roster

            if row.get("member_id") is None:
                continue
            roster.members.append(
                RelationshipMember(
                    member_id=str(row["member_id"]),
                    display_name=row.get("display_name") or "Unknown",
                    role=row.get("role"),
                )
            )

        logger.debug(
            "Relationship rosters loaded",
            requested=len(ids),
            found=len(rosters),
        )
        return rosters
