"""
Partner suggestion maintenance queries.

Suggestions are created by the downstream generation service; this
repository only ages them out.
"""

from datetime import datetime

from app.db.helpers import execute_query, fetch_all, fetch_one


class SuggestionRepository:
    @staticmethod
    async def count_for_recipient(recipient_id: str, cutoff: datetime) -> dict[str, int]:
        row = await fetch_one(
            """
            SELECT
                COUNT(*) AS total,
                COUNT(*) FILTER (WHERE created_at < %s) AS old,
                COUNT(*) FILTER (
                    WHERE created_at < %s
                      AND (read_status IS NULL OR read_status = 'unread')
                ) AS old_unread
            FROM partner_suggestions
            WHERE recipient_user_id = %s
            """,
            (cutoff, cutoff, recipient_id),
        )
        row = row or {}
        return {
            "total": row.get("total") or 0,
            "old": row.get("old") or 0,
            "old_unread": row.get("old_unread") or 0,
        }

    @staticmethod
    async def mark_old_unread_as_read(recipient_id: str, cutoff: datetime) -> list[dict]:
        return await fetch_all(
            """
            UPDATE partner_suggestions
            SET read_status = 'read',
                read_at = NOW()
            WHERE recipient_user_id = %s
              AND (read_status IS NULL OR read_status = 'unread')
              AND created_at < %s
            RETURNING id, created_at
            """,
            (recipient_id, cutoff),
        )

    @staticmethod
    async def delete_expired(now: datetime) -> int:
        return await execute_query(
            """
            DELETE FROM partner_suggestions
            WHERE expires_at IS NOT NULL
              AND expires_at < %s
            """,
            (now,),
        )
