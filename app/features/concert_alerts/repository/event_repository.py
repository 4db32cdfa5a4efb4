"""
Persistence for concert events.

Events are unique by (source, source_id): a re-import of the same
external event updates the row in place.
"""

from datetime import datetime

from app.db.helpers import DatabaseError, execute_query, fetch_all, fetch_one
from app.features.concert_alerts.domain import (
    EventRecord,
    ExternalEvent,
    TicketStatus,
    VenueDescriptor,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EventRepositoryError(DatabaseError):
    """More specific exception for event persistence failures."""


class EventRepository:
    EVENT_SELECT_COLUMNS = """
        id, artist_id, name, event_date, venue_name, venue_city, venue_state,
        venue_country, venue_location, ticket_url, ticket_status, source, source_id
    """

    @classmethod
    def _row_to_event(cls, row: dict) -> EventRecord:
        location = row.get("venue_location")
        status = row.get("ticket_status") or TicketStatus.NOT_YET_ON_SALE.value
        return EventRecord(
            id=str(row["id"]),
            artist_id=str(row["artist_id"]),
            name=row["name"],
            event_date=row["event_date"],
            venue=VenueDescriptor(
                name=row["venue_name"],
                city=row.get("venue_city"),
                state=row.get("venue_state"),
                country=row.get("venue_country") or "US",
                location=tuple(location) if location and len(location) == 2 else None,
            ),
            source=row["source"],
            source_id=row["source_id"],
            ticket_url=row.get("ticket_url"),
            ticket_status=TicketStatus(status),
        )

    @classmethod
    async def upcoming_for_artist(cls, artist_id: str, now: datetime) -> list[EventRecord]:
        """Future events of one artist, earliest first."""
        query = f"""
            SELECT {cls.EVENT_SELECT_COLUMNS}
            FROM events
            WHERE artist_id = %s AND event_date >= %s
            ORDER BY event_date ASC
        """
        rows = await fetch_all(query, (artist_id, now))
        return [cls._row_to_event(row) for row in rows]

    @classmethod
    async def upsert_from_source(cls, artist_id: str, event: ExternalEvent) -> bool:
        """
        Insert or update by (source, source_id).

        Returns:
            True when a new row was created, False when an existing row was updated
        """
        query = """
            INSERT INTO events (
                source, source_id, artist_id, name, event_date,
                venue_name, venue_city, venue_state, venue_country, venue_location,
                ticket_url, ticket_status
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (source, source_id) DO UPDATE SET
                name = EXCLUDED.name,
                event_date = EXCLUDED.event_date,
                venue_name = EXCLUDED.venue_name,
                venue_city = EXCLUDED.venue_city,
                venue_state = EXCLUDED.venue_state,
                venue_country = EXCLUDED.venue_country,
                venue_location = COALESCE(EXCLUDED.venue_location, events.venue_location),
                ticket_url = COALESCE(EXCLUDED.ticket_url, events.ticket_url),
                ticket_status = EXCLUDED.ticket_status,
                updated_at = NOW()
            RETURNING id, (xmax = 0) AS inserted
        """
        venue = event.venue
        params = (
            event.source,
            event.source_id,
            artist_id,
            event.name,
            event.event_date,
            venue.name,
            venue.city,
            venue.state,
            venue.country,
            list(venue.location) if venue.location else None,
            event.ticket_url,
            event.ticket_status.value,
        )

        row = await fetch_one(query, params)
        if not row:
            raise EventRepositoryError("Event upsert returned no row", operation="upsert_from_source")
        return bool(row["inserted"])

    @classmethod
    async def delete_older_than(cls, cutoff: datetime) -> int:
        deleted = await execute_query("DELETE FROM events WHERE event_date < %s", (cutoff,))
        logger.info("Old events deleted", cutoff=cutoff.isoformat(), count=deleted)
        return deleted
