import itertools
from datetime import UTC, datetime, timedelta

import pytest

from app.features.concert_alerts.domain import (
    ArtistRecord,
    Channel,
    CreateResult,
    EventRecord,
    ExternalEvent,
    FetchResult,
    GeoPoint,
    MusicTasteEntry,
    NotificationRecord,
    NotificationStatus,
    SearchResult,
    Tier,
    UserProfile,
    VenueDescriptor,
)
from app.features.concert_alerts.services import (
    ArtistCatalogResolver,
    NotificationMatcher,
    ProgressBroadcaster,
)
from app.utils.hashing import normalize_name

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)

LOS_ANGELES = GeoPoint(34.0522, -118.2437)


class FakeUserStore:
    def __init__(self):
        self.users: dict[str, UserProfile] = {}

    def add(self, user: UserProfile) -> UserProfile:
        self.users[user.id] = user
        return user

    async def load_profile(self, user_id: str) -> UserProfile | None:
        return self.users.get(user_id)

    async def favorite_artists(self, user_id: str) -> list[ArtistRecord]:
        user = self.users.get(user_id)
        return list(user.favorite_artists) if user else []

    async def list_users_with_location(self) -> list[UserProfile]:
        return [
            u for u in self.users.values() if u.coordinates is not None or (u.city and u.state)
        ]


class FakeArtistStore:
    def __init__(self, users: FakeUserStore):
        self.users = users
        self.artists: dict[str, ArtistRecord] = {}
        self._ids = itertools.count(1)

    def add(self, name: str, ticketmaster_id: str | None = None) -> ArtistRecord:
        artist = ArtistRecord(
            id=f"artist-{next(self._ids)}",
            name=name,
            external_ids={"ticketmaster": ticketmaster_id} if ticketmaster_id else {},
        )
        self.artists[artist.id] = artist
        return artist

    async def find_by_name(self, name: str) -> ArtistRecord | None:
        wanted = normalize_name(name)
        return next((a for a in self.artists.values() if normalize_name(a.name) == wanted), None)

    async def find_by_external_id(self, provider: str, external_id: str) -> ArtistRecord | None:
        return next(
            (a for a in self.artists.values() if a.external_ids.get(provider) == external_id),
            None,
        )

    async def upsert_from_search(self, name, provider, external_id, *, genres=None, image_url=None):
        existing = await self.find_by_name(name)
        if existing is not None:
            existing.external_ids.setdefault(provider, external_id)
            return existing
        artist = self.add(name)
        artist.external_ids[provider] = external_id
        artist.genres = list(genres or [])
        return artist

    async def list_favorited_artists(self) -> list[ArtistRecord]:
        seen: dict[str, ArtistRecord] = {}
        for user in self.users.users.values():
            for artist in user.favorite_artists:
                seen.setdefault(artist.id, artist)
        return list(seen.values())


class FakeEventStore:
    def __init__(self):
        self.events: dict[tuple[str, str], EventRecord] = {}
        self._ids = itertools.count(1)

    def add(
        self,
        artist: ArtistRecord,
        *,
        lat: float | None = None,
        lon: float | None = None,
        city: str | None = None,
        state: str | None = None,
        days_ahead: int = 30,
        name: str = "Live",
    ) -> EventRecord:
        event_id = f"event-{next(self._ids)}"
        event = EventRecord(
            id=event_id,
            artist_id=artist.id,
            name=f"{artist.name} {name}",
            event_date=NOW + timedelta(days=days_ahead),
            venue=VenueDescriptor(
                name="The Venue",
                city=city,
                state=state,
                location=(lon, lat) if lat is not None and lon is not None else None,
            ),
            source="ticketmaster",
            source_id=f"tm-{event_id}",
            ticket_url=f"https://tickets.example/{event_id}",
        )
        self.events[(event.source, event.source_id)] = event
        return event

    async def upcoming_for_artist(self, artist_id: str, now: datetime) -> list[EventRecord]:
        events = [e for e in self.events.values() if e.artist_id == artist_id and e.event_date >= now]
        return sorted(events, key=lambda e: e.event_date)

    async def upsert_from_source(self, artist_id: str, event: ExternalEvent) -> bool:
        key = (event.source, event.source_id)
        created = key not in self.events
        record_id = self.events[key].id if not created else f"event-{next(self._ids)}"
        self.events[key] = EventRecord(
            id=record_id,
            artist_id=artist_id,
            name=event.name,
            event_date=event.event_date,
            venue=event.venue,
            source=event.source,
            source_id=event.source_id,
            ticket_url=event.ticket_url,
            ticket_status=event.ticket_status,
        )
        return created

    async def delete_older_than(self, cutoff: datetime) -> int:
        stale = [key for key, e in self.events.items() if e.event_date < cutoff]
        for key in stale:
            del self.events[key]
        return len(stale)


class FakeMusicTasteStore:
    def __init__(self):
        self.entries: dict[str, list[MusicTasteEntry]] = {}

    def add(self, user_id: str, artist_name: str, *sources) -> MusicTasteEntry:
        entry = MusicTasteEntry(artist_name=artist_name, sources=set(sources))
        self.entries.setdefault(user_id, []).append(entry)
        return entry

    async def entries_for_user(self, user_id: str) -> list[MusicTasteEntry]:
        return list(self.entries.get(user_id, []))

    async def list_all_entries(self) -> list[tuple[str, MusicTasteEntry]]:
        return [(user_id, e) for user_id, entries in self.entries.items() for e in entries]


class FakeNotificationStore:
    """Keyed like the unique index: (user_id, event_hash, channel)."""

    def __init__(self):
        self.records: dict[tuple[str, str, Channel], NotificationRecord] = {}
        self._ids = itertools.count(1)
        self.insert_attempts = 0

    async def create_if_new(self, record: NotificationRecord) -> CreateResult:
        self.insert_attempts += 1
        key = (record.user_id, record.event_hash, record.channel)
        if key in self.records:
            return CreateResult(created=False)
        record.id = f"notification-{next(self._ids)}"
        self.records[key] = record
        return CreateResult(created=True, notification_id=record.id)

    def _by_id(self, notification_id: str) -> NotificationRecord | None:
        return next((r for r in self.records.values() if r.id == notification_id), None)

    async def mark_read(self, notification_id: str, user_id: str | None = None) -> bool:
        record = self._by_id(notification_id)
        if record is None or record.status not in (NotificationStatus.PENDING, NotificationStatus.SENT):
            return False
        record.status = NotificationStatus.READ
        record.read_at = NOW
        return True

    async def dismiss(self, notification_id: str, user_id: str | None = None) -> bool:
        record = self._by_id(notification_id)
        if record is None or record.status is NotificationStatus.DISMISSED:
            return False
        record.status = NotificationStatus.DISMISSED
        record.dismissed_at = NOW
        return True

    async def mark_sent(self, notification_ids: list[str]) -> int:
        count = 0
        for notification_id in notification_ids:
            record = self._by_id(notification_id)
            if record is not None and record.status is NotificationStatus.PENDING:
                record.status = NotificationStatus.SENT
                record.sent_at = NOW
                count += 1
        return count

    async def unread_count(self, user_id: str) -> int:
        return sum(
            1
            for r in self.records.values()
            if r.user_id == user_id
            and r.channel is Channel.IN_APP
            and r.status in (NotificationStatus.PENDING, NotificationStatus.SENT)
        )

    async def pending_digest(self, user_id: str) -> list[NotificationRecord]:
        pending = [
            r
            for r in self.records.values()
            if r.user_id == user_id
            and r.channel is Channel.EMAIL
            and r.status is NotificationStatus.PENDING
        ]
        return sorted(pending, key=lambda r: (r.tier is not Tier.FAVORITE, r.event_date))

    async def users_with_pending_digest(self) -> list[str]:
        return sorted(
            {
                r.user_id
                for r in self.records.values()
                if r.channel is Channel.EMAIL and r.status is NotificationStatus.PENDING
            }
        )

    async def delete_for_past_events(self, now: datetime) -> int:
        stale = [key for key, r in self.records.items() if r.event_date < now]
        for key in stale:
            del self.records[key]
        return len(stale)

    def for_user(self, user_id: str) -> list[NotificationRecord]:
        return [r for r in self.records.values() if r.user_id == user_id]


class FakeEventSource:
    provider = "ticketmaster"

    def __init__(self):
        self.events_by_artist: dict[str, list[ExternalEvent]] = {}
        self.failing: set[str] = set()
        self.calls: list[str] = []

    async def fetch_upcoming_events(self, artist_external_id: str) -> FetchResult:
        self.calls.append(artist_external_id)
        if artist_external_id in self.failing:
            return FetchResult(success=False, error="upstream unavailable")
        return FetchResult(success=True, events=list(self.events_by_artist.get(artist_external_id, [])))


class FakeArtistSearch:
    provider = "ticketmaster"

    def __init__(self):
        self.results: dict[str, SearchResult] = {}
        self.calls: list[str] = []

    async def search_artists(self, name: str) -> SearchResult:
        self.calls.append(name)
        return self.results.get(normalize_name(name), SearchResult(success=True))


class FakeEmailSender:
    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, to: str, subject: str, html: str) -> bool:
        if self.succeed:
            self.sent.append((to, subject, html))
        return self.succeed


async def no_sleep(_seconds: float) -> None:
    return None


class ConcertWorld:
    """Fake stores wired together, plus builders for the services under test."""

    def __init__(self):
        self.users = FakeUserStore()
        self.artists = FakeArtistStore(self.users)
        self.events = FakeEventStore()
        self.music_taste = FakeMusicTasteStore()
        self.notifications = FakeNotificationStore()
        self.event_source = FakeEventSource()
        self.search = FakeArtistSearch()
        self.broadcaster = ProgressBroadcaster()

    def add_user(
        self,
        user_id: str = "user-1",
        *,
        coordinates: GeoPoint | None = LOS_ANGELES,
        city: str | None = None,
        state: str | None = None,
        favorites: list[ArtistRecord] | None = None,
        email: str | None = "fan@example.com",
    ) -> UserProfile:
        return self.users.add(
            UserProfile(
                id=user_id,
                username=f"{user_id}-name",
                email=email,
                first_name="Sam",
                city=city,
                state=state,
                coordinates=coordinates,
                favorite_artists=list(favorites or []),
            )
        )

    def resolver(self, **kwargs) -> ArtistCatalogResolver:
        kwargs.setdefault("sleep", no_sleep)
        return ArtistCatalogResolver(
            artists=self.artists, music_taste=self.music_taste, search=self.search, **kwargs
        )

    def matcher(self) -> NotificationMatcher:
        return NotificationMatcher(
            users=self.users,
            events=self.events,
            music_taste=self.music_taste,
            notifications=self.notifications,
            resolver=self.resolver(),
            clock=lambda: NOW,
            sleep=no_sleep,
        )


@pytest.fixture
def world():
    return ConcertWorld()
