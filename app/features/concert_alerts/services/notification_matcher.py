"""
Notification matching.

For one user: favorites first (tier 1), then inferred music taste (tier 2)
for artists not already covered by a favorite. Every future event within
the radius yields an email and an in-app notification; the store makes
re-runs idempotent.
"""

import asyncio
from datetime import UTC, datetime

from app.config import settings
from app.features.concert_alerts.domain import (
    ArtistRecord,
    BatchMatchSummary,
    Channel,
    GeoPoint,
    MatchDebugStats,
    MatchResult,
    NotificationRecord,
    Tier,
    UserProfile,
)
from app.features.concert_alerts.domain.geo import (
    distance_between,
    resolve_user_location,
    resolve_venue_location,
)
from app.features.concert_alerts.domain.models import FAVORITE_REASON
from app.features.concert_alerts.repository import (
    EventRepository,
    MusicTasteRepository,
    NotificationRepository,
    UserRepository,
)
from app.features.concert_alerts.services.artist_resolver import ArtistCatalogResolver
from app.infrastructure.observability.logging import get_logger
from app.utils.hashing import normalize_name

logger = get_logger(__name__)

LOCATION_NOT_FOUND = "User location not found - please update address"
USER_NOT_FOUND = "User not found"

CHANNELS = (Channel.EMAIL, Channel.IN_APP)


class LocationUnresolvedError(Exception):
    """The user has neither geocoded coordinates nor a known city."""

    def __init__(self, user: UserProfile):
        super().__init__(f"No coordinates for user {user.username} ({user.city}, {user.state})")
        self.user_id = user.id


def _utcnow() -> datetime:
    return datetime.now(UTC)


class NotificationMatcher:
    def __init__(
        self,
        users=UserRepository,
        events=EventRepository,
        music_taste=MusicTasteRepository,
        notifications=NotificationRepository,
        resolver: ArtistCatalogResolver | None = None,
        *,
        clock=_utcnow,
        sleep=asyncio.sleep,
    ):
        self.users = users
        self.events = events
        self.music_taste = music_taste
        self.notifications = notifications
        self.resolver = resolver or ArtistCatalogResolver()
        self._clock = clock
        self._sleep = sleep

    async def match_user(
        self,
        user_id: str,
        *,
        max_distance_miles: float | None = None,
        dry_run: bool = False,
    ) -> MatchResult:
        """Create the notifications one user is due; see module docstring."""
        max_distance = (
            settings.NOTIFICATION_MAX_DISTANCE_MILES
            if max_distance_miles is None
            else max_distance_miles
        )

        user = await self.users.load_profile(user_id)
        if user is None:
            logger.warning("Notification check skipped - user not found", user_id=user_id)
            return MatchResult(success=False, user_id=user_id, error=USER_NOT_FOUND)

        try:
            origin = self._user_origin(user)
        except LocationUnresolvedError as e:
            logger.warning("Notification check skipped", user_id=user_id, reason=str(e))
            return MatchResult(
                success=False, user_id=user_id, username=user.username, error=LOCATION_NOT_FOUND
            )

        now = self._clock()
        stats = MatchDebugStats()
        missing_venues: set[str] = set()
        candidates: list[NotificationRecord] = []

        # Tier 1: favorites
        for artist in user.favorite_artists:
            candidates.extend(
                await self._candidates_for_artist(
                    user, origin, artist, Tier.FAVORITE, FAVORITE_REASON,
                    now, max_distance, stats, missing_venues,
                )
            )

        # Tier 2: music taste not already covered by a favorite
        covered_names = {normalize_name(artist.name) for artist in user.favorite_artists}
        covered_ids = {artist.id for artist in user.favorite_artists}
        for entry in await self.music_taste.entries_for_user(user.id):
            key = normalize_name(entry.artist_name)
            if key in covered_names:
                continue
            covered_names.add(key)

            artist = await self.resolver.resolve(entry.artist_name)
            if artist is None or artist.id in covered_ids:
                continue
            covered_ids.add(artist.id)

            candidates.extend(
                await self._candidates_for_artist(
                    user, origin, artist, Tier.MUSIC_TASTE, entry.notification_reason(),
                    now, max_distance, stats, missing_venues,
                )
            )

        created = 0
        skipped = 0
        if not dry_run:
            for candidate in candidates:
                result = await self.notifications.create_if_new(candidate)
                if result.created:
                    created += 1
                else:
                    skipped += 1

        stats.venues_missing_coords = sorted(missing_venues)
        total_found = len(candidates) // len(CHANNELS)

        logger.debug(
            "Notification check stats",
            user_id=user.id,
            events_checked=stats.events_checked,
            events_matched=stats.events_matched,
            events_too_far=stats.events_too_far,
            events_no_coords=stats.events_no_coords,
        )
        logger.info(
            "Notification check completed",
            user_id=user.id,
            total_found=total_found,
            created=created,
            skipped=skipped,
            dry_run=dry_run,
        )

        return MatchResult(
            success=True,
            user_id=user.id,
            username=user.username,
            total_found=total_found,
            created=created,
            skipped=skipped,
            dry_run=dry_run,
            debug=stats,
        )

    async def match_all_users(
        self,
        *,
        max_distance_miles: float | None = None,
        dry_run: bool = False,
        user_delay_seconds: float = 0.0,
    ) -> BatchMatchSummary:
        """Run match_user for every user with a location; one failure never stops the batch."""
        users = await self.users.list_users_with_location()
        logger.info("Notification check for all users started", user_count=len(users))

        results: list[MatchResult] = []
        for index, user in enumerate(users):
            if index and user_delay_seconds > 0:
                await self._sleep(user_delay_seconds)
            try:
                result = await self.match_user(
                    user.id, max_distance_miles=max_distance_miles, dry_run=dry_run
                )
            except Exception as e:
                logger.error("Notification check failed", user_id=user.id, error=str(e))
                result = MatchResult(
                    success=False, user_id=user.id, username=user.username, error=str(e)
                )
            results.append(result)

        summary = BatchMatchSummary(
            total_users=len(users),
            successful=sum(1 for r in results if r.success),
            total_notifications=sum(r.created for r in results),
            errors=sum(1 for r in results if not r.success),
            results=results,
        )
        logger.info(
            "Notification check for all users completed",
            total_users=summary.total_users,
            successful=summary.successful,
            total_notifications=summary.total_notifications,
            errors=summary.errors,
        )
        return summary

    def _user_origin(self, user: UserProfile) -> GeoPoint:
        resolved = resolve_user_location(user)
        if resolved is None:
            raise LocationUnresolvedError(user)

        point, provenance = resolved
        logger.debug(
            "User location resolved",
            user_id=user.id,
            provenance=provenance,
            lat=point.lat,
            lon=point.lon,
        )
        return point

    async def _candidates_for_artist(
        self,
        user: UserProfile,
        origin: GeoPoint,
        artist: ArtistRecord,
        tier: Tier,
        reason: str,
        now: datetime,
        max_distance: float,
        stats: MatchDebugStats,
        missing_venues: set[str],
    ) -> list[NotificationRecord]:
        candidates = []
        for event in await self.events.upcoming_for_artist(artist.id, now):
            stats.events_checked += 1

            venue_point = resolve_venue_location(event)
            if venue_point is None:
                stats.events_no_coords += 1
                if event.venue.city and event.venue.state:
                    missing_venues.add(f"{event.venue.city}-{event.venue.state}")
                continue

            distance = distance_between(origin, venue_point)
            if distance > max_distance:
                stats.events_too_far += 1
                continue

            stats.events_matched += 1
            logger.debug(
                "Event matched",
                user_id=user.id,
                artist=artist.name,
                venue=event.venue.name,
                distance_miles=round(distance),
                tier=tier.value,
            )
            for channel in CHANNELS:
                candidates.append(
                    NotificationRecord(
                        user_id=user.id,
                        event_id=event.id,
                        artist_id=artist.id,
                        artist_name=artist.name,
                        event_name=event.name,
                        event_date=event.event_date,
                        venue_name=event.venue.name,
                        venue_city=event.venue.city,
                        venue_state=event.venue.state,
                        ticket_url=event.ticket_url,
                        distance_miles=round(distance),
                        tier=tier,
                        reason=reason,
                        channel=channel,
                    )
                )
        return candidates
