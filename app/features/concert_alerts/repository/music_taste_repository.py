"""
Persistence for inferred music taste (one row per user and artist name).
"""

from datetime import UTC, datetime
from typing import Iterable

from app.db.helpers import execute_transaction, fetch_all
from app.features.concert_alerts.domain import MusicTasteEntry, TasteSource
from app.infrastructure.observability.logging import get_logger
from app.utils.hashing import normalize_name

logger = get_logger(__name__)


def _parse_sources(values: Iterable[str] | None) -> set[TasteSource]:
    sources = set()
    for value in values or []:
        try:
            sources.add(TasteSource(value))
        except ValueError:
            logger.debug("Ignoring unknown taste source", source=value)
    return sources


def merge_taste_entries(
    existing: list[MusicTasteEntry],
    incoming: list[MusicTasteEntry],
    now: datetime,
) -> list[MusicTasteEntry]:
    """
    Rebuild a user's taste from a fresh scan.

    Only names present in the scan survive. A name seen before keeps its
    first_seen, gets its count bumped, and gets last_seen = now with the
    sources unioned.
    """
    previous = {normalize_name(entry.artist_name): entry for entry in existing}
    merged: dict[str, MusicTasteEntry] = {}

    for entry in incoming:
        key = normalize_name(entry.artist_name)
        if not key:
            continue

        if key in merged:
            current = merged[key]
            current.occurrence_count += entry.occurrence_count or 1
            current.sources |= set(entry.sources)
            continue

        before = previous.get(key)
        if before is not None:
            merged[key] = MusicTasteEntry(
                artist_name=before.artist_name,
                occurrence_count=before.occurrence_count + (entry.occurrence_count or 1),
                sources=set(before.sources) | set(entry.sources),
                first_seen=before.first_seen or now,
                last_seen=now,
            )
        else:
            merged[key] = MusicTasteEntry(
                artist_name=entry.artist_name.strip(),
                occurrence_count=entry.occurrence_count or 1,
                sources=set(entry.sources),
                first_seen=now,
                last_seen=now,
            )

    return list(merged.values())


class MusicTasteRepository:
    @staticmethod
    def _row_to_entry(row: dict) -> MusicTasteEntry:
        return MusicTasteEntry(
            artist_name=row["artist_name"],
            occurrence_count=row.get("occurrence_count") or 1,
            sources=_parse_sources(row.get("sources")),
            first_seen=row.get("first_seen"),
            last_seen=row.get("last_seen"),
        )

    @classmethod
    async def entries_for_user(cls, user_id: str) -> list[MusicTasteEntry]:
        query = """
            SELECT artist_name, occurrence_count, sources, first_seen, last_seen
            FROM user_music_taste
            WHERE user_id = %s
            ORDER BY occurrence_count DESC, artist_name ASC
        """
        rows = await fetch_all(query, (user_id,))
        return [cls._row_to_entry(row) for row in rows]

    @classmethod
    async def list_all_entries(cls) -> list[tuple[str, MusicTasteEntry]]:
        """(user_id, entry) for every user."""
        query = """
            SELECT user_id, artist_name, occurrence_count, sources, first_seen, last_seen
            FROM user_music_taste
            ORDER BY user_id, occurrence_count DESC
        """
        rows = await fetch_all(query)
        return [(str(row["user_id"]), cls._row_to_entry(row)) for row in rows]

    @classmethod
    async def replace_entries(cls, user_id: str, entries: list[MusicTasteEntry]) -> int:
        """Replace the user's taste wholesale with a freshly scanned list."""
        now = datetime.now(UTC)
        existing = await cls.entries_for_user(user_id)
        merged = merge_taste_entries(existing, entries, now)

        insert_query = """
            INSERT INTO user_music_taste (
                user_id, artist_name, occurrence_count, sources, first_seen, last_seen
            )
            VALUES (%s, %s, %s, %s, %s, %s)
        """
        queries = [("DELETE FROM user_music_taste WHERE user_id = %s", (user_id,))]
        queries.extend(
            (
                insert_query,
                (
                    user_id,
                    entry.artist_name,
                    entry.occurrence_count,
                    sorted(source.value for source in entry.sources),
                    entry.first_seen,
                    entry.last_seen,
                ),
            )
            for entry in merged
        )

        await execute_transaction(queries)
        logger.info("Music taste replaced", user_id=user_id, artist_count=len(merged))
        return len(merged)
