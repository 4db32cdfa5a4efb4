"""
Repository subpackage for the concert alerts feature.
"""

from .artist_repository import ArtistRepository, ArtistRepositoryError
from .event_repository import EventRepository, EventRepositoryError
from .music_taste_repository import MusicTasteRepository, merge_taste_entries
from .notification_repository import NotificationRepository, NotificationRepositoryError
from .user_repository import UserRepository

__all__ = [
    "ArtistRepository",
    "ArtistRepositoryError",
    "EventRepository",
    "EventRepositoryError",
    "MusicTasteRepository",
    "NotificationRepository",
    "NotificationRepositoryError",
    "UserRepository",
    "merge_taste_entries",
]
