"""
Artist catalog resolution and caching.

The matcher only resolves names that are already in the catalog. Live
searches happen in the sync phase and in the nightly caching job, both of
which go through search_and_cache() and its similarity guard so a loose
search hit never pollutes the catalog.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from app.config import settings
from app.features.concert_alerts.domain import ArtistCandidate, ArtistRecord, name_similarity
from app.features.concert_alerts.repository import ArtistRepository, MusicTasteRepository
from app.features.concert_alerts.services.collaborators import ArtistSearch
from app.infrastructure.observability.logging import get_logger
from app.utils.hashing import normalize_name

logger = get_logger(__name__)


class CacheStatus(str, Enum):
    FOUND = "found"
    ALREADY_CACHED = "already_cached"
    NOT_FOUND = "not_found"
    NO_MATCH = "no_match"
    ERROR = "error"


@dataclass(slots=True)
class CacheOutcome:
    status: CacheStatus
    artist: ArtistRecord | None = None
    similarity: float | None = None
    error: str | None = None


@dataclass(slots=True)
class UncachedArtist:
    name: str
    sources: set[str] = field(default_factory=set)
    user_count: int = 0


@dataclass
class CacheJobStats:
    last_run: datetime | None = None
    duration_seconds: float = 0.0
    artists_processed: int = 0
    artists_found: int = 0
    artists_not_found: int = 0
    artists_already_cached: int = 0
    errors: int = 0


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ArtistCatalogResolver:
    def __init__(
        self,
        artists=ArtistRepository,
        music_taste=MusicTasteRepository,
        search: ArtistSearch | None = None,
        *,
        threshold: float | None = None,
        sleep=asyncio.sleep,
        clock=_utcnow,
    ):
        self.artists = artists
        self.music_taste = music_taste
        self.search = search
        self.threshold = settings.ARTIST_MATCH_THRESHOLD if threshold is None else threshold
        self._sleep = sleep
        self._clock = clock
        self.is_running = False
        self.stats = CacheJobStats()

    async def resolve(self, ref: ArtistRecord | str) -> ArtistRecord | None:
        """Canonical records pass through; names get a case-insensitive exact lookup."""
        if isinstance(ref, ArtistRecord):
            return ref
        if not normalize_name(ref):
            return None
        return await self.artists.find_by_name(ref)

    def pick_candidate(
        self, name: str, candidates: list[ArtistCandidate]
    ) -> tuple[ArtistCandidate | None, float]:
        """
        Exact (case-insensitive) hit first, otherwise the top result.
        Returns (None, score) when the best candidate is below the threshold.
        """
        if not candidates:
            return None, 0.0

        wanted = normalize_name(name)
        best = next((c for c in candidates if normalize_name(c.name) == wanted), candidates[0])
        score = name_similarity(name, best.name)
        if score < self.threshold:
            return None, score
        return best, score

    async def search_and_cache(self, name: str) -> CacheOutcome:
        """Search the provider for a name and add the accepted hit to the catalog."""
        if self.search is None:
            raise RuntimeError("ArtistCatalogResolver has no search collaborator configured")

        result = await self.search.search_artists(name)
        if not result.success:
            logger.warning("Artist search failed", artist=name, error=result.error)
            return CacheOutcome(CacheStatus.ERROR, error=result.error)
        if not result.candidates:
            logger.debug("Artist not found on provider", artist=name)
            return CacheOutcome(CacheStatus.NOT_FOUND)

        candidate, score = self.pick_candidate(name, result.candidates)
        if candidate is None:
            logger.info(
                "Rejected loose artist match",
                artist=name,
                best=result.candidates[0].name,
                similarity=round(score, 2),
                threshold=self.threshold,
            )
            return CacheOutcome(CacheStatus.NO_MATCH, similarity=score)

        provider = self.search.provider
        existing = await self.artists.find_by_external_id(provider, candidate.external_id)
        if existing is not None:
            return CacheOutcome(CacheStatus.ALREADY_CACHED, artist=existing, similarity=score)

        artist = await self.artists.upsert_from_search(
            candidate.name,
            provider,
            candidate.external_id,
            genres=[candidate.genre] if candidate.genre else [],
            image_url=candidate.image_url,
        )
        return CacheOutcome(CacheStatus.FOUND, artist=artist, similarity=score)

    async def find_uncached_taste_artists(self) -> list[UncachedArtist]:
        """Taste artist names missing from the catalog, most shared first."""
        by_name: dict[str, UncachedArtist] = {}
        for _user_id, entry in await self.music_taste.list_all_entries():
            key = normalize_name(entry.artist_name)
            if not key:
                continue
            item = by_name.setdefault(key, UncachedArtist(name=entry.artist_name.strip()))
            item.user_count += 1
            item.sources |= {source.value for source in entry.sources}

        uncached = []
        for item in by_name.values():
            if await self.artists.find_by_name(item.name) is None:
                uncached.append(item)

        uncached.sort(key=lambda item: item.user_count, reverse=True)
        logger.info(
            "Uncached taste artists collected",
            unique_names=len(by_name),
            uncached=len(uncached),
        )
        return uncached

    async def run_cache_job(self, *, limit: int = 100, delay_seconds: float | None = None) -> dict:
        """Search and cache up to `limit` uncached taste artists."""
        if self.is_running:
            logger.warning("Artist cache job already running, skipping")
            return {"success": False, "error": "Already running"}

        self.is_running = True
        started = self._clock()
        delay = settings.sync_delay_for(needs_search=True) if delay_seconds is None else delay_seconds
        stats = CacheJobStats(last_run=started)

        try:
            pending = (await self.find_uncached_taste_artists())[:limit]
            for index, item in enumerate(pending):
                stats.artists_processed += 1
                try:
                    outcome = await self.search_and_cache(item.name)
                except Exception as e:
                    logger.error("Artist cache error", artist=item.name, error=str(e))
                    stats.errors += 1
                else:
                    if outcome.status is CacheStatus.FOUND:
                        stats.artists_found += 1
                    elif outcome.status is CacheStatus.ALREADY_CACHED:
                        stats.artists_already_cached += 1
                    elif outcome.status is CacheStatus.ERROR:
                        stats.errors += 1
                    else:
                        stats.artists_not_found += 1

                if index < len(pending) - 1 and delay > 0:
                    await self._sleep(delay)
        finally:
            stats.duration_seconds = (self._clock() - started).total_seconds()
            self.stats = stats
            self.is_running = False

        logger.info(
            "Artist cache job completed",
            processed=stats.artists_processed,
            found=stats.artists_found,
            not_found=stats.artists_not_found,
            already_cached=stats.artists_already_cached,
            errors=stats.errors,
        )
        return {"success": True, **vars(stats)}
