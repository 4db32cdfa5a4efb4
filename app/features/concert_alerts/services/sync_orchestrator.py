"""
Background sync pipeline: sync -> notifications -> complete.

One orchestrator instance owns the running flag, the last-run stats and
the progress broadcaster. Runs never overlap; a second request while one
is in flight is rejected, not queued.
"""

import asyncio
from datetime import UTC, datetime, timedelta

from app.config import settings
from app.db.helpers import DatabaseError
from app.features.concert_alerts.domain import (
    ArtistRecord,
    ArtistSyncResult,
    SyncPhase,
    SyncProgress,
    SyncStats,
    SyncTarget,
    Tier,
)
from app.features.concert_alerts.repository import (
    ArtistRepository,
    EventRepository,
    MusicTasteRepository,
    UserRepository,
)
from app.features.concert_alerts.services.artist_resolver import (
    ArtistCatalogResolver,
    CacheStatus,
)
from app.features.concert_alerts.services.collaborators import EventSource
from app.features.concert_alerts.services.notification_matcher import NotificationMatcher
from app.features.concert_alerts.services.progress import ProgressBroadcaster
from app.infrastructure.observability.logging import get_logger
from app.utils.hashing import normalize_name

logger = get_logger(__name__)

SYNC_ALREADY_RUNNING = "Sync already running"


class SyncAlreadyRunningError(Exception):
    """A sync run is already in flight on this orchestrator."""

    def __init__(self, started_at: datetime | None = None):
        super().__init__(SYNC_ALREADY_RUNNING)
        self.started_at = started_at


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SyncOrchestrator:
    def __init__(
        self,
        event_source: EventSource,
        resolver: ArtistCatalogResolver,
        matcher: NotificationMatcher,
        *,
        users=UserRepository,
        artists=ArtistRepository,
        music_taste=MusicTasteRepository,
        events=EventRepository,
        broadcaster: ProgressBroadcaster | None = None,
        sleep=asyncio.sleep,
        clock=_utcnow,
    ):
        self.event_source = event_source
        self.resolver = resolver
        self.matcher = matcher
        self.users = users
        self.artists = artists
        self.music_taste = music_taste
        self.events = events
        self.broadcaster = broadcaster or ProgressBroadcaster()
        self._sleep = sleep
        self._clock = clock

        self._running = False
        self._started_at: datetime | None = None
        self._stats = SyncStats()

    @property
    def is_running(self) -> bool:
        return self._running

    def get_stats(self) -> SyncStats:
        return self._stats.model_copy(deep=True)

    def current_progress(self) -> SyncProgress:
        return self.broadcaster.latest

    # =================================================================
    # ARTIST UNIVERSE
    # =================================================================

    async def collect_artists_to_sync(self) -> list[SyncTarget]:
        """Preview of the full-sync artist list (favorites first, then taste)."""
        targets, _ = await self._plan_full_sync()
        return targets

    async def collect_user_artists(self, user_id: str) -> list[SyncTarget]:
        targets, _ = await self._plan_user_sync(user_id)
        return targets

    async def _plan_full_sync(self) -> tuple[list[SyncTarget], int]:
        favorites = await self.artists.list_favorited_artists()
        taste_names = [entry.artist_name for _, entry in await self.music_taste.list_all_entries()]
        return await self._build_targets(favorites, taste_names)

    async def _plan_user_sync(self, user_id: str) -> tuple[list[SyncTarget], int]:
        favorites = await self.users.favorite_artists(user_id)
        taste_names = [entry.artist_name for entry in await self.music_taste.entries_for_user(user_id)]
        return await self._build_targets(favorites, taste_names)

    async def _build_targets(
        self, favorites: list[ArtistRecord], taste_names: list[str]
    ) -> tuple[list[SyncTarget], int]:
        """
        Deduplicate by canonical artist and by lowercased name.

        Taste names missing from the catalog become search targets, capped
        at SYNC_MAX_TASTE_SEARCHES per run.

        Returns:
            (targets, number of taste searches skipped by the cap)
        """
        provider = self.event_source.provider
        targets: list[SyncTarget] = []
        seen_ids: set[str] = set()
        seen_names: set[str] = set()

        for artist in favorites:
            external_id = artist.external_ids.get(provider)
            seen_names.add(normalize_name(artist.name))
            if not external_id or artist.id in seen_ids:
                continue
            seen_ids.add(artist.id)
            targets.append(
                SyncTarget(
                    name=artist.name,
                    source=Tier.FAVORITE,
                    artist_id=artist.id,
                    external_id=external_id,
                )
            )

        searches = 0
        skipped = 0
        for name in taste_names:
            key = normalize_name(name)
            if not key or key in seen_names:
                continue
            seen_names.add(key)

            artist = await self.artists.find_by_name(name)
            if artist is not None:
                external_id = artist.external_ids.get(provider)
                if external_id and artist.id not in seen_ids:
                    seen_ids.add(artist.id)
                    targets.append(
                        SyncTarget(
                            name=artist.name,
                            source=Tier.MUSIC_TASTE,
                            artist_id=artist.id,
                            external_id=external_id,
                        )
                    )
                continue

            if searches >= settings.SYNC_MAX_TASTE_SEARCHES:
                skipped += 1
                continue
            searches += 1
            targets.append(SyncTarget(name=name.strip(), source=Tier.MUSIC_TASTE, needs_search=True))

        logger.info(
            "Sync targets collected",
            total=len(targets),
            favorites=sum(1 for t in targets if t.source is Tier.FAVORITE),
            taste_cached=sum(1 for t in targets if t.source is Tier.MUSIC_TASTE and not t.needs_search),
            taste_searches=searches,
            taste_searches_skipped=skipped,
        )
        return targets, skipped

    # =================================================================
    # PER-ARTIST SYNC
    # =================================================================

    async def sync_artist_events(self, target: SyncTarget) -> ArtistSyncResult:
        """Fetch one artist's upcoming events and upsert them."""
        artist_id = target.artist_id
        external_id = target.external_id

        if target.needs_search:
            outcome = await self.resolver.search_and_cache(target.name)
            if outcome.status is CacheStatus.ERROR:
                return ArtistSyncResult(success=False, error=outcome.error)
            if outcome.status is CacheStatus.NOT_FOUND:
                return ArtistSyncResult(success=True, not_found=True)
            if outcome.status is CacheStatus.NO_MATCH:
                return ArtistSyncResult(success=True, no_match=True)
            artist_id = outcome.artist.id
            external_id = outcome.artist.external_ids.get(self.event_source.provider)

        if not artist_id or not external_id:
            return ArtistSyncResult(success=True, not_found=True)

        fetched = await self.event_source.fetch_upcoming_events(external_id)
        if not fetched.success:
            return ArtistSyncResult(success=False, error=fetched.error)

        result = ArtistSyncResult(success=True, found=len(fetched.events))
        for event in fetched.events:
            try:
                created = await self.events.upsert_from_source(artist_id, event)
            except DatabaseError as e:
                logger.warning(
                    "Event save failed",
                    artist=target.name,
                    source_id=event.source_id,
                    error=str(e),
                )
                continue
            if created:
                result.saved += 1
            else:
                result.updated += 1
        return result

    async def _sync_one(self, target: SyncTarget, stats: SyncStats, verbose: bool) -> None:
        try:
            result = await self.sync_artist_events(target)
        except Exception as e:
            logger.error("Artist sync failed", artist=target.name, error=str(e))
            result = ArtistSyncResult(success=False, error=str(e))

        stats.artists_checked += 1
        if target.needs_search:
            stats.taste_artists_searched += 1
            if result.success and not (result.not_found or result.no_match):
                stats.taste_artists_found += 1

        if result.success:
            stats.events_found += result.found
            stats.events_saved += result.saved
            stats.events_updated += result.updated
        else:
            stats.errors += 1

        log = logger.info if verbose else logger.debug
        log(
            "Artist synced",
            artist=target.name,
            source=target.source.value,
            success=result.success,
            found=result.found,
            saved=result.saved,
            updated=result.updated,
            error=result.error,
        )

        self.broadcaster.update(
            current_artist=target.name,
            current_index=stats.artists_checked,
            events_found=stats.events_found,
            events_saved=stats.events_saved,
            errors=stats.errors,
        )

    async def _sync_targets(self, targets: list[SyncTarget], stats: SyncStats, verbose: bool) -> None:
        concurrency = max(1, settings.SYNC_CONCURRENCY)

        if concurrency == 1:
            for index, target in enumerate(targets):
                await self._sync_one(target, stats, verbose)
                delay = settings.sync_delay_for(target.needs_search)
                if index < len(targets) - 1 and delay > 0:
                    await self._sleep(delay)
            return

        # Each slot waits N x the base delay, keeping the aggregate request rate.
        semaphore = asyncio.Semaphore(concurrency)

        async def worker(target: SyncTarget) -> None:
            async with semaphore:
                await self._sync_one(target, stats, verbose)
                delay = settings.sync_delay_for(target.needs_search) * concurrency
                if delay > 0:
                    await self._sleep(delay)

        await asyncio.gather(*(worker(target) for target in targets))

    # =================================================================
    # RUNS
    # =================================================================

    def _acquire(self) -> None:
        if self._running:
            raise SyncAlreadyRunningError(self._started_at)
        self._running = True
        self._started_at = self._clock()

    def _rejected(self, error: SyncAlreadyRunningError) -> SyncStats:
        logger.warning("Sync rejected", reason=str(error), running_since=error.started_at)
        return SyncStats(success=False, error=str(error))

    async def run_full(self, *, verbose: bool = False, notify: bool = True) -> SyncStats:
        """Sync every artist any user cares about, then match every user."""
        try:
            self._acquire()
        except SyncAlreadyRunningError as e:
            return self._rejected(e)

        async def notify_all():
            if not notify:
                return None
            return await self.matcher.match_all_users(
                user_delay_seconds=settings.SYNC_USER_DELAY_SECONDS
            )

        return await self._run("full", self._plan_full_sync, notify_all, verbose)

    async def run_for_user(self, user_id: str, *, verbose: bool = False) -> SyncStats:
        """Sync one user's artists, then match that user only."""
        try:
            self._acquire()
        except SyncAlreadyRunningError as e:
            return self._rejected(e)

        async def plan():
            return await self._plan_user_sync(user_id)

        async def notify_user():
            return await self.matcher.match_user(user_id)

        return await self._run(f"user:{user_id}", plan, notify_user, verbose)

    async def _run(self, label: str, plan, notify, verbose: bool) -> SyncStats:
        started = self._started_at
        stats = SyncStats(last_run=started)
        logger.info("Sync started", run=label)

        try:
            targets, stats.taste_searches_skipped = await plan()
            self.broadcaster.publish(
                SyncProgress(
                    is_running=True,
                    phase=SyncPhase.SYNC,
                    total_artists=len(targets),
                    start_time=started,
                )
            )

            await self._sync_targets(targets, stats, verbose)
            self.broadcaster.update(phase=SyncPhase.SYNC_COMPLETE)

            self.broadcaster.update(phase=SyncPhase.NOTIFICATIONS, current_artist="")
            stats.notifications = await notify()

            stats.success = True
            stats.duration_seconds = (self._clock() - started).total_seconds()
            self._stats = stats
            self.broadcaster.update(is_running=False, phase=SyncPhase.COMPLETE)
        except Exception as e:
            logger.error("Sync failed", run=label, error=str(e))
            self.broadcaster.update(is_running=False, phase=SyncPhase.IDLE)
            raise
        finally:
            self._running = False
            self._started_at = None

        logger.info(
            "Sync completed",
            run=label,
            duration_seconds=round(stats.duration_seconds, 2),
            artists_checked=stats.artists_checked,
            events_found=stats.events_found,
            events_saved=stats.events_saved,
            events_updated=stats.events_updated,
            errors=stats.errors,
            taste_artists_searched=stats.taste_artists_searched,
            taste_artists_found=stats.taste_artists_found,
        )
        return stats

    async def cleanup_old_events(self, days_old: int | None = None) -> int:
        """Delete events dated more than `days_old` days ago."""
        days = settings.EVENT_RETENTION_DAYS if days_old is None else days_old
        cutoff = self._clock() - timedelta(days=days)
        try:
            return await self.events.delete_older_than(cutoff)
        except DatabaseError as e:
            logger.error("Old event cleanup failed", days_old=days, error=str(e))
            raise
