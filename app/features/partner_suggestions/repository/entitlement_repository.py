"""
Premium entitlement lookups.

A user is entitled when their subscription is active or their trial has not
ended yet.
"""

from collections.abc import Iterable

from app.db.helpers import fetch_all


class EntitlementRepository:
    @staticmethod
    async def fetch_active_premium_user_ids(user_ids: Iterable[str]) -> set[str]:
        distinct_ids = sorted(set(user_ids))
        if not distinct_ids:
            return set()

        rows = await fetch_all(
            """
            SELECT DISTINCT user_id
            FROM premium_subscriptions
            WHERE user_id = ANY(%s::uuid[])
              AND (
                  subscription_status = 'active'
                  OR (trial_ends_at IS NOT NULL AND trial_ends_at > NOW())
              )
            """,
            (distinct_ids,),
        )
        return {str(row["user_id"]) for row in rows}
