"""
Read access to users, their favorites and their location.

Users are owned by the account layer; this repository only loads what
the matcher and the digest need.
"""

from app.db.helpers import fetch_all, fetch_one
from app.features.concert_alerts.domain import ArtistRecord, GeoPoint, GeoSource, UserProfile
from app.features.concert_alerts.repository.artist_repository import ArtistRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class UserRepository:
    USER_SELECT_COLUMNS = """
        u.id, u.username, u.email, u.first_name, u.city, u.state,
        u.latitude, u.longitude, u.geocoded_from,
        u.email_enabled, u.in_app_enabled, u.sms_enabled
    """

    @classmethod
    def _row_to_profile(
        cls, row: dict, favorites: list[ArtistRecord] | None = None
    ) -> UserProfile:
        coordinates = None
        if row.get("latitude") is not None and row.get("longitude") is not None:
            coordinates = GeoPoint(float(row["latitude"]), float(row["longitude"]))

        geocoded_from = row.get("geocoded_from")
        return UserProfile(
            id=str(row["id"]),
            username=row["username"],
            email=row.get("email"),
            first_name=row.get("first_name"),
            city=row.get("city"),
            state=row.get("state"),
            coordinates=coordinates,
            geocoded_from=GeoSource(geocoded_from) if geocoded_from else None,
            favorite_artists=favorites or [],
            email_enabled=bool(row.get("email_enabled", True)),
            in_app_enabled=bool(row.get("in_app_enabled", True)),
            sms_enabled=bool(row.get("sms_enabled", False)),
        )

    @classmethod
    async def load_profile(cls, user_id: str) -> UserProfile | None:
        """User with favorites populated, or None."""
        query = f"SELECT {cls.USER_SELECT_COLUMNS} FROM users u WHERE u.id = %s"
        row = await fetch_one(query, (user_id,))
        if not row:
            return None

        favorites = await cls.favorite_artists(user_id)
        return cls._row_to_profile(row, favorites)

    @classmethod
    async def favorite_artists(cls, user_id: str) -> list[ArtistRecord]:
        query = f"""
            SELECT {ArtistRepository.ARTIST_SELECT_COLUMNS}
            FROM user_favorite_artists f
            JOIN artists a ON a.id = f.artist_id
            WHERE f.user_id = %s
            ORDER BY f.created_at ASC
        """
        rows = await fetch_all(query, (user_id,))
        return [ArtistRepository.row_to_artist(row) for row in rows]

    @classmethod
    async def list_users_with_location(cls) -> list[UserProfile]:
        """Users with geocoded coordinates or a city + state pair (favorites not loaded)."""
        query = f"""
            SELECT {cls.USER_SELECT_COLUMNS}
            FROM users u
            WHERE (u.latitude IS NOT NULL AND u.longitude IS NOT NULL)
               OR (COALESCE(u.city, '') <> '' AND COALESCE(u.state, '') <> '')
            ORDER BY u.created_at ASC
        """
        rows = await fetch_all(query)
        logger.debug("Users with location loaded", count=len(rows))
        return [cls._row_to_profile(row) for row in rows]
