"""
Domain models for the concert alerts feature.

Records are lightweight dataclasses shared by the repositories and the
services. Closed vocabularies (tier, channel, status, phase) are enums so
a typo cannot reach the database. Snapshots that leave the process
(progress, run stats) are pydantic models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict

from app.utils.hashing import notification_event_hash


class Tier(str, Enum):
    FAVORITE = "favorite"
    MUSIC_TASTE = "music_taste"


class Channel(str, Enum):
    EMAIL = "email"
    IN_APP = "in_app"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    READ = "read"
    DISMISSED = "dismissed"


class TasteSource(str, Enum):
    LIKED = "liked"
    PLAYLIST = "playlist"


class GeoSource(str, Enum):
    ADDRESS = "address"
    ZIPCODE = "zipcode"
    CITY = "city"


class TicketStatus(str, Enum):
    ON_SALE = "on_sale"
    SOLD_OUT = "sold_out"
    CANCELLED = "cancelled"
    POSTPONED = "postponed"
    RESCHEDULED = "rescheduled"
    NOT_YET_ON_SALE = "not_yet_on_sale"
    FEW_TICKETS_LEFT = "few_tickets_left"


class SyncPhase(str, Enum):
    IDLE = "idle"
    SYNC = "sync"
    SYNC_COMPLETE = "sync_complete"
    NOTIFICATIONS = "notifications"
    COMPLETE = "complete"


FAVORITE_REASON = "One of your favorite artists"
LIKED_REASON = "You've liked a song by"
PLAYLIST_REASON = "On your playlist"
LIBRARY_REASON = "From your music library"


@dataclass(slots=True, frozen=True)
class GeoPoint:
    lat: float
    lon: float


@dataclass(slots=True)
class ArtistRecord:
    """Canonical artist; one external id per integrated provider."""

    id: str
    name: str
    external_ids: dict[str, str] = field(default_factory=dict)
    genres: list[str] = field(default_factory=list)


@dataclass(slots=True)
class UserProfile:
    """The parts of a user the matcher and digest need."""

    id: str
    username: str
    email: str | None = None
    first_name: str | None = None
    city: str | None = None
    state: str | None = None
    coordinates: GeoPoint | None = None
    geocoded_from: GeoSource | None = None
    favorite_artists: list[ArtistRecord] = field(default_factory=list)
    email_enabled: bool = True
    in_app_enabled: bool = True
    sms_enabled: bool = False

    @property
    def display_name(self) -> str:
        return self.first_name or self.username or "there"


@dataclass(slots=True)
class MusicTasteEntry:
    """Inferred affinity of one user for one artist name."""

    artist_name: str
    occurrence_count: int = 1
    sources: set[TasteSource] = field(default_factory=set)
    first_seen: datetime | None = None
    last_seen: datetime | None = None

    def notification_reason(self) -> str:
        if TasteSource.LIKED in self.sources:
            return LIKED_REASON
        if TasteSource.PLAYLIST in self.sources:
            return PLAYLIST_REASON
        return LIBRARY_REASON


@dataclass(slots=True)
class VenueDescriptor:
    name: str
    city: str | None = None
    state: str | None = None
    country: str = "US"
    # GeoJSON order: (longitude, latitude)
    location: tuple[float, float] | None = None


@dataclass(slots=True)
class EventRecord:
    """A stored concert, unique by (source, source_id)."""

    id: str
    artist_id: str
    name: str
    event_date: datetime
    venue: VenueDescriptor
    source: str
    source_id: str
    ticket_url: str | None = None
    ticket_status: TicketStatus = TicketStatus.NOT_YET_ON_SALE


@dataclass(slots=True)
class ExternalEvent:
    """Event as returned by the event-fetch collaborator, before upsert."""

    source_id: str
    name: str
    event_date: datetime
    venue: VenueDescriptor
    ticket_url: str | None = None
    ticket_status: TicketStatus = TicketStatus.NOT_YET_ON_SALE
    source: str = "ticketmaster"


@dataclass(slots=True)
class ArtistCandidate:
    """Search hit from the artist-search collaborator."""

    name: str
    external_id: str
    image_url: str | None = None
    genre: str | None = None


@dataclass(slots=True)
class FetchResult:
    success: bool
    events: list[ExternalEvent] = field(default_factory=list)
    error: str | None = None


@dataclass(slots=True)
class SearchResult:
    success: bool
    candidates: list[ArtistCandidate] = field(default_factory=list)
    error: str | None = None


@dataclass(slots=True)
class NotificationRecord:
    """One notification for one (user, event, channel)."""

    user_id: str
    event_id: str
    artist_id: str | None
    artist_name: str
    event_date: datetime
    distance_miles: int
    tier: Tier
    reason: str
    channel: Channel
    event_name: str | None = None
    venue_name: str | None = None
    venue_city: str | None = None
    venue_state: str | None = None
    ticket_url: str | None = None
    status: NotificationStatus = NotificationStatus.PENDING
    id: str | None = None
    created_at: datetime | None = None
    sent_at: datetime | None = None
    read_at: datetime | None = None
    dismissed_at: datetime | None = None

    @property
    def event_hash(self) -> str:
        return notification_event_hash(self.user_id, self.event_id)


@dataclass(slots=True)
class CreateResult:
    created: bool
    notification_id: str | None = None


@dataclass(slots=True)
class SyncTarget:
    """One artist the sync phase will fetch events for."""

    name: str
    source: Tier
    artist_id: str | None = None
    external_id: str | None = None
    needs_search: bool = False


@dataclass(slots=True)
class ArtistSyncResult:
    success: bool
    found: int = 0
    saved: int = 0
    updated: int = 0
    not_found: bool = False
    no_match: bool = False
    error: str | None = None


class MatchDebugStats(BaseModel):
    events_checked: int = 0
    events_no_coords: int = 0
    events_too_far: int = 0
    events_matched: int = 0
    venues_missing_coords: list[str] = []


class MatchResult(BaseModel):
    """Outcome of matching one user against upcoming events."""

    success: bool
    user_id: str
    username: str | None = None
    total_found: int = 0
    created: int = 0
    skipped: int = 0
    dry_run: bool = False
    error: str | None = None
    debug: MatchDebugStats | None = None


class BatchMatchSummary(BaseModel):
    total_users: int = 0
    successful: int = 0
    total_notifications: int = 0
    errors: int = 0
    results: list[MatchResult] = []


class SyncProgress(BaseModel):
    """Full snapshot broadcast to progress observers (replace semantics)."""

    model_config = ConfigDict(frozen=True)

    is_running: bool = False
    phase: SyncPhase = SyncPhase.IDLE
    current_artist: str = ""
    current_index: int = 0
    total_artists: int = 0
    events_found: int = 0
    events_saved: int = 0
    errors: int = 0
    start_time: datetime | None = None


class SyncStats(BaseModel):
    """Result of one orchestrator run; also kept as the last-run stats."""

    success: bool = True
    error: str | None = None
    last_run: datetime | None = None
    duration_seconds: float = 0.0
    artists_checked: int = 0
    events_found: int = 0
    events_saved: int = 0
    events_updated: int = 0
    errors: int = 0
    taste_artists_searched: int = 0
    taste_artists_found: int = 0
    taste_searches_skipped: int = 0
    notifications: BatchMatchSummary | MatchResult | None = None
