"""
Notification store.

Creation is idempotent: the unique index on (user_id, event_hash, channel)
decides the single winner of concurrent inserts, and a lost race or a
re-run is reported as created=False rather than as an error.
"""

from datetime import datetime

from app.db.helpers import (
    DatabaseError,
    DuplicateKeyError,
    execute_query,
    fetch_all,
    fetch_one,
    fetch_val,
)
from app.features.concert_alerts.domain import (
    Channel,
    CreateResult,
    NotificationRecord,
    NotificationStatus,
    Tier,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

UNREAD_STATUSES = (NotificationStatus.PENDING.value, NotificationStatus.SENT.value)

# Favorites before music taste
TIER_ORDER_SQL = "CASE tier WHEN 'favorite' THEN 0 ELSE 1 END"


class NotificationRepositoryError(DatabaseError):
    """More specific exception for notification store failures."""


class NotificationRepository:
    NOTIFICATION_SELECT_COLUMNS = """
        id, user_id, event_id, artist_id, artist_name, event_name, event_date,
        venue_name, venue_city, venue_state, ticket_url, distance_miles,
        tier, reason, channel, status, created_at, sent_at, read_at, dismissed_at
    """

    @classmethod
    def _row_to_notification(cls, row: dict) -> NotificationRecord:
        return NotificationRecord(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            event_id=str(row["event_id"]),
            artist_id=str(row["artist_id"]) if row.get("artist_id") else None,
            artist_name=row["artist_name"],
            event_name=row.get("event_name"),
            event_date=row["event_date"],
            venue_name=row.get("venue_name"),
            venue_city=row.get("venue_city"),
            venue_state=row.get("venue_state"),
            ticket_url=row.get("ticket_url"),
            distance_miles=row["distance_miles"],
            tier=Tier(row["tier"]),
            reason=row["reason"],
            channel=Channel(row["channel"]),
            status=NotificationStatus(row["status"]),
            created_at=row.get("created_at"),
            sent_at=row.get("sent_at"),
            read_at=row.get("read_at"),
            dismissed_at=row.get("dismissed_at"),
        )

    @classmethod
    async def create_if_new(cls, record: NotificationRecord) -> CreateResult:
        """Insert unless this (user, event, channel) already has a notification."""
        query = """
            INSERT INTO notifications (
                user_id, event_id, artist_id, event_hash, artist_name, event_name,
                event_date, venue_name, venue_city, venue_state, ticket_url,
                distance_miles, tier, reason, channel, status
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, 'pending')
            ON CONFLICT (user_id, event_hash, channel) DO NOTHING
            RETURNING id
        """
        params = (
            record.user_id,
            record.event_id,
            record.artist_id,
            record.event_hash,
            record.artist_name,
            record.event_name,
            record.event_date,
            record.venue_name,
            record.venue_city,
            record.venue_state,
            record.ticket_url,
            record.distance_miles,
            record.tier.value,
            record.reason,
            record.channel.value,
        )

        try:
            row = await fetch_one(query, params)
        except DuplicateKeyError:
            return CreateResult(created=False)
        except DatabaseError as e:
            raise NotificationRepositoryError(
                f"Failed to create notification: {e}", operation="create_if_new"
            ) from e

        if not row:
            return CreateResult(created=False)
        return CreateResult(created=True, notification_id=str(row["id"]))

    @classmethod
    async def mark_read(cls, notification_id: str, user_id: str | None = None) -> bool:
        query = """
            UPDATE notifications
            SET status = 'read', read_at = NOW()
            WHERE id = %s
              AND status IN ('pending', 'sent')
              AND (%s::uuid IS NULL OR user_id = %s::uuid)
        """
        updated = await execute_query(query, (notification_id, user_id, user_id))
        return updated > 0

    @classmethod
    async def dismiss(cls, notification_id: str, user_id: str | None = None) -> bool:
        query = """
            UPDATE notifications
            SET status = 'dismissed', dismissed_at = NOW()
            WHERE id = %s
              AND status <> 'dismissed'
              AND (%s::uuid IS NULL OR user_id = %s::uuid)
        """
        updated = await execute_query(query, (notification_id, user_id, user_id))
        return updated > 0

    @classmethod
    async def mark_all_read(cls, user_id: str) -> int:
        query = """
            UPDATE notifications
            SET status = 'read', read_at = NOW()
            WHERE user_id = %s AND channel = 'in_app' AND status IN ('pending', 'sent')
        """
        return await execute_query(query, (user_id,))

    @classmethod
    async def mark_sent(cls, notification_ids: list[str]) -> int:
        """Advance delivered digest notifications; only pending rows move."""
        if not notification_ids:
            return 0

        query = """
            UPDATE notifications
            SET status = 'sent', sent_at = NOW()
            WHERE id = ANY(%s::uuid[]) AND status = 'pending'
        """
        try:
            return await execute_query(query, (notification_ids,))
        except DatabaseError as e:
            raise NotificationRepositoryError(
                f"Failed to mark notifications sent: {e}", operation="mark_sent"
            ) from e

    @classmethod
    async def unread_count(cls, user_id: str) -> int:
        query = """
            SELECT COUNT(*)
            FROM notifications
            WHERE user_id = %s AND channel = 'in_app' AND status IN ('pending', 'sent')
        """
        return int(await fetch_val(query, (user_id,)) or 0)

    @classmethod
    async def pending_digest(cls, user_id: str) -> list[NotificationRecord]:
        query = f"""
            SELECT {cls.NOTIFICATION_SELECT_COLUMNS}
            FROM notifications
            WHERE user_id = %s AND channel = 'email' AND status = 'pending'
            ORDER BY {TIER_ORDER_SQL}, event_date ASC
        """
        rows = await fetch_all(query, (user_id,))
        return [cls._row_to_notification(row) for row in rows]

    @classmethod
    async def list_for_user(
        cls,
        user_id: str,
        *,
        status_filter: str = "unread",
        tier: Tier | None = None,
        limit: int = 50,
        page: int = 1,
    ) -> tuple[list[NotificationRecord], int]:
        """
        In-app notifications page plus total count.

        status_filter: "unread" (pending + sent), "read", or "all".
        """
        conditions = ["user_id = %s", "channel = 'in_app'"]
        params: list = [user_id]

        if status_filter == "read":
            conditions.append("status = 'read'")
        elif status_filter != "all":
            conditions.append("status IN ('pending', 'sent')")

        if tier is not None:
            conditions.append("tier = %s")
            params.append(tier.value)

        where = " AND ".join(conditions)
        limit = max(1, limit)
        offset = (max(1, page) - 1) * limit

        rows = await fetch_all(
            f"""
            SELECT {cls.NOTIFICATION_SELECT_COLUMNS}
            FROM notifications
            WHERE {where}
            ORDER BY {TIER_ORDER_SQL}, created_at DESC
            LIMIT %s OFFSET %s
            """,
            (*params, limit, offset),
        )
        total = await fetch_val(f"SELECT COUNT(*) FROM notifications WHERE {where}", tuple(params))
        return [cls._row_to_notification(row) for row in rows], int(total or 0)

    @classmethod
    async def users_with_pending_digest(cls) -> list[str]:
        query = """
            SELECT DISTINCT user_id
            FROM notifications
            WHERE channel = 'email' AND status = 'pending'
        """
        rows = await fetch_all(query)
        return [str(row["user_id"]) for row in rows]

    @classmethod
    async def delete_for_past_events(cls, now: datetime) -> int:
        deleted = await execute_query("DELETE FROM notifications WHERE event_date < %s", (now,))
        logger.info("Notifications for past events deleted", count=deleted)
        return deleted
