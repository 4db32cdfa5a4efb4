"""
Domain subpackage for the concert alerts feature.
"""

from .geo import distance_miles, resolve_user_location, resolve_venue_location
from .models import (
    ArtistCandidate,
    ArtistRecord,
    ArtistSyncResult,
    BatchMatchSummary,
    Channel,
    CreateResult,
    EventRecord,
    ExternalEvent,
    FetchResult,
    GeoPoint,
    GeoSource,
    MatchDebugStats,
    MatchResult,
    MusicTasteEntry,
    NotificationRecord,
    NotificationStatus,
    SearchResult,
    SyncPhase,
    SyncProgress,
    SyncStats,
    SyncTarget,
    TasteSource,
    TicketStatus,
    Tier,
    UserProfile,
    VenueDescriptor,
)
from .similarity import dice_coefficient, is_acceptable_match, name_similarity

__all__ = [
    "ArtistCandidate",
    "ArtistRecord",
    "ArtistSyncResult",
    "BatchMatchSummary",
    "Channel",
    "CreateResult",
    "EventRecord",
    "ExternalEvent",
    "FetchResult",
    "GeoPoint",
    "GeoSource",
    "MatchDebugStats",
    "MatchResult",
    "MusicTasteEntry",
    "NotificationRecord",
    "NotificationStatus",
    "SearchResult",
    "SyncPhase",
    "SyncProgress",
    "SyncStats",
    "SyncTarget",
    "TasteSource",
    "TicketStatus",
    "Tier",
    "UserProfile",
    "VenueDescriptor",
    "dice_coefficient",
    "distance_miles",
    "is_acceptable_match",
    "name_similarity",
    "resolve_user_location",
    "resolve_venue_location",
]
