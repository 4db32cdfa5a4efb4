"""
Persistence for the canonical artist catalog.

Artists are unique by lower(name) and by each provider id. Records are
created lazily and never hard-deleted.
"""

from typing import Iterable

from app.db.helpers import DatabaseError, fetch_all, fetch_one
from app.features.concert_alerts.domain import ArtistRecord
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# provider name -> column; the only identifiers interpolated into SQL
EXTERNAL_ID_COLUMNS = {
    "ticketmaster": "ticketmaster_id",
    "seatgeek": "seatgeek_id",
    "setlistfm": "setlistfm_id",
    "spotify": "spotify_id",
}


class ArtistRepositoryError(DatabaseError):
    """More specific exception for artist catalog failures."""


class ArtistRepository:
    ARTIST_SELECT_COLUMNS = """
        a.id, a.name, a.ticketmaster_id, a.seatgeek_id, a.setlistfm_id,
        a.spotify_id, a.genres
    """

    @classmethod
    def row_to_artist(cls, row: dict) -> ArtistRecord:
        external_ids = {
            provider: row[column]
            for provider, column in EXTERNAL_ID_COLUMNS.items()
            if row.get(column)
        }
        return ArtistRecord(
            id=str(row["id"]),
            name=row["name"],
            external_ids=external_ids,
            genres=list(row.get("genres") or []),
        )

    @classmethod
    async def find_by_name(cls, name: str) -> ArtistRecord | None:
        """Case-insensitive exact lookup."""
        query = f"""
            SELECT {cls.ARTIST_SELECT_COLUMNS}
            FROM artists a
            WHERE lower(a.name) = lower(%s)
        """
        row = await fetch_one(query, (name.strip(),))
        return cls.row_to_artist(row) if row else None

    @classmethod
    async def find_by_external_id(cls, provider: str, external_id: str) -> ArtistRecord | None:
        column = EXTERNAL_ID_COLUMNS.get(provider)
        if column is None:
            raise ValueError(f"Unknown artist provider '{provider}'")

        query = f"SELECT {cls.ARTIST_SELECT_COLUMNS} FROM artists a WHERE a.{column} = %s"
        row = await fetch_one(query, (external_id,))
        return cls.row_to_artist(row) if row else None

    @classmethod
    async def upsert_from_search(
        cls,
        name: str,
        provider: str,
        external_id: str,
        *,
        genres: Iterable[str] = (),
        image_url: str | None = None,
    ) -> ArtistRecord:
        """
        Create the artist, or fill in a missing provider id on the existing
        row with the same name. Existing ids are never overwritten.
        """
        column = EXTERNAL_ID_COLUMNS.get(provider)
        if column is None:
            raise ValueError(f"Unknown artist provider '{provider}'")

        query = f"""
            INSERT INTO artists AS a (name, {column}, genres, image_url)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT ((lower(name))) DO UPDATE SET
                {column} = COALESCE(a.{column}, EXCLUDED.{column}),
                image_url = COALESCE(a.image_url, EXCLUDED.image_url),
                updated_at = NOW()
            RETURNING {cls.ARTIST_SELECT_COLUMNS}
        """
        row = await fetch_one(query, (name.strip(), external_id, list(genres), image_url))
        if not row:
            raise ArtistRepositoryError("Failed to upsert artist", operation="upsert_from_search")

        logger.info("Artist cached", artist=row["name"], provider=provider, external_id=external_id)
        return cls.row_to_artist(row)

    @classmethod
    async def list_favorited_artists(cls) -> list[ArtistRecord]:
        """Distinct artists favorited by at least one user, most followed first."""
        query = f"""
            SELECT {cls.ARTIST_SELECT_COLUMNS}
            FROM artists a
            JOIN (
                SELECT artist_id, COUNT(*) AS followers
                FROM user_favorite_artists
                GROUP BY artist_id
            ) f ON f.artist_id = a.id
            WHERE a.is_active = true
            ORDER BY f.followers DESC, a.name ASC
        """
        rows = await fetch_all(query)
        return [cls.row_to_artist(row) for row in rows]
