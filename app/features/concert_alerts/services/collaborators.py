"""
Contracts of the external collaborators the concert alerts services call.

Concrete providers (Ticketmaster, SeatGeek, ...) live with the embedding
application; anything with these coroutine signatures can be injected.
"""

from typing import Protocol

from app.features.concert_alerts.domain import FetchResult, SearchResult


class EventSource(Protocol):
    """Upcoming events for one artist, keyed by the provider's artist id."""

    provider: str

    async def fetch_upcoming_events(self, artist_external_id: str) -> FetchResult: ...


class ArtistSearch(Protocol):
    """Free-text artist search on the same provider as the event source."""

    provider: str

    async def search_artists(self, name: str) -> SearchResult: ...


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, html: str) -> bool: ...
