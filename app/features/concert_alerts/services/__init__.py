"""
Service layer for the concert alerts feature.
"""

from .artist_resolver import ArtistCatalogResolver, CacheOutcome, CacheStatus
from .collaborators import ArtistSearch, EmailSender, EventSource
from .digest_composer import ComposedDigest, DigestComposer, DigestSection
from .digest_service import DigestBatchSummary, DigestDispatcher, DigestResult
from .notification_matcher import LocationUnresolvedError, NotificationMatcher
from .progress import ProgressBroadcaster, ProgressSubscription
from .sync_orchestrator import SyncAlreadyRunningError, SyncOrchestrator

__all__ = [
    "ArtistCatalogResolver",
    "ArtistSearch",
    "CacheOutcome",
    "CacheStatus",
    "ComposedDigest",
    "DigestBatchSummary",
    "DigestComposer",
    "DigestDispatcher",
    "DigestResult",
    "DigestSection",
    "EmailSender",
    "EventSource",
    "LocationUnresolvedError",
    "NotificationMatcher",
    "ProgressBroadcaster",
    "ProgressSubscription",
    "SyncAlreadyRunningError",
    "SyncOrchestrator",
]
