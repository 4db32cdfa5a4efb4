from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
from psycopg import errors as pg_errors

from app.db.helpers import DatabaseError, DuplicateKeyError, _translate_error
from app.features.concert_alerts.domain import Channel, NotificationRecord, Tier
from app.features.concert_alerts.repository import NotificationRepository, NotificationRepositoryError

MODULE = "app.features.concert_alerts.repository.notification_repository"


def _record(channel: Channel = Channel.EMAIL) -> NotificationRecord:
    return NotificationRecord(
        user_id="user-1",
        event_id="event-1",
        artist_id="artist-1",
        artist_name="Haim",
        event_date=datetime(2026, 7, 1, tzinfo=UTC),
        distance_miles=3,
        tier=Tier.FAVORITE,
        reason="One of your favorite artists",
        channel=channel,
    )


def _row(**overrides) -> dict:
    row = {
        "id": "n-1",
        "user_id": "user-1",
        "event_id": "event-1",
        "artist_id": "artist-1",
        "artist_name": "Haim",
        "event_name": "Haim Live",
        "event_date": datetime(2026, 7, 1, tzinfo=UTC),
        "venue_name": "The Forum",
        "venue_city": "Inglewood",
        "venue_state": "CA",
        "ticket_url": None,
        "distance_miles": 9,
        "tier": "music_taste",
        "reason": "On your playlist",
        "channel": "in_app",
        "status": "sent",
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_create_if_new_returns_created(monkeypatch):
    fetch_one_mock = AsyncMock(return_value={"id": "n-1"})
    monkeypatch.setattr(f"{MODULE}.fetch_one", fetch_one_mock)

    result = await NotificationRepository.create_if_new(_record())

    assert result.created is True
    assert result.notification_id == "n-1"
    query, params = fetch_one_mock.await_args.args
    assert "ON CONFLICT (user_id, event_hash, channel) DO NOTHING" in query
    assert params[3] == _record().event_hash
    assert params[-1] == "email"


@pytest.mark.asyncio
async def test_conflict_without_row_is_not_created(monkeypatch):
    monkeypatch.setattr(f"{MODULE}.fetch_one", AsyncMock(return_value=None))

    result = await NotificationRepository.create_if_new(_record())

    assert result.created is False


@pytest.mark.asyncio
async def test_duplicate_key_is_not_an_error(monkeypatch):
    monkeypatch.setattr(
        f"{MODULE}.fetch_one",
        AsyncMock(side_effect=DuplicateKeyError("dup", operation="fetch_one")),
    )

    result = await NotificationRepository.create_if_new(_record(Channel.IN_APP))

    assert result.created is False


@pytest.mark.asyncio
async def test_other_database_errors_are_wrapped(monkeypatch):
    monkeypatch.setattr(
        f"{MODULE}.fetch_one",
        AsyncMock(side_effect=DatabaseError("connection lost", operation="fetch_one")),
    )

    with pytest.raises(NotificationRepositoryError) as exc_info:
        await NotificationRepository.create_if_new(_record())

    assert exc_info.value.operation == "create_if_new"
    assert isinstance(exc_info.value.__cause__, DatabaseError)


def test_unique_violation_translates_to_duplicate_key():
    translated = _translate_error(pg_errors.UniqueViolation("duplicate key"), "INSERT", "fetch_one")

    assert isinstance(translated, DuplicateKeyError)
    assert translated.recoverable is False


@pytest.mark.asyncio
async def test_mark_sent_skips_query_for_empty_list(monkeypatch):
    execute_mock = AsyncMock(return_value=0)
    monkeypatch.setattr(f"{MODULE}.execute_query", execute_mock)

    assert await NotificationRepository.mark_sent([]) == 0
    execute_mock.assert_not_awaited()


@pytest.mark.asyncio
async def test_mark_read_reports_transition(monkeypatch):
    monkeypatch.setattr(f"{MODULE}.execute_query", AsyncMock(return_value=1))
    assert await NotificationRepository.mark_read("n-1", "user-1") is True

    monkeypatch.setattr(f"{MODULE}.execute_query", AsyncMock(return_value=0))
    assert await NotificationRepository.dismiss("n-1") is False


@pytest.mark.asyncio
async def test_unread_count_defaults_to_zero(monkeypatch):
    monkeypatch.setattr(f"{MODULE}.fetch_val", AsyncMock(return_value=None))

    assert await NotificationRepository.unread_count("user-1") == 0


@pytest.mark.asyncio
async def test_list_for_user_maps_rows_and_pages(monkeypatch):
    fetch_all_mock = AsyncMock(return_value=[_row()])
    monkeypatch.setattr(f"{MODULE}.fetch_all", fetch_all_mock)
    monkeypatch.setattr(f"{MODULE}.fetch_val", AsyncMock(return_value=7))

    records, total = await NotificationRepository.list_for_user(
        "user-1", status_filter="unread", tier=Tier.MUSIC_TASTE, limit=5, page=2
    )

    assert total == 7
    assert records[0].tier is Tier.MUSIC_TASTE
    assert records[0].channel is Channel.IN_APP
    query, params = fetch_all_mock.await_args.args
    assert "status IN ('pending', 'sent')" in query
    assert params == ("user-1", "music_taste", 5, 5)


@pytest.mark.asyncio
async def test_mark_sent_failure_is_wrapped(monkeypatch):
    monkeypatch.setattr(
        f"{MODULE}.execute_query",
        AsyncMock(side_effect=DatabaseError("timeout", operation="execute")),
    )

    with pytest.raises(NotificationRepositoryError) as exc_info:
        await NotificationRepository.mark_sent(["n-1"])

    assert exc_info.value.operation == "mark_sent"


@pytest.mark.asyncio
async def test_mark_all_read_targets_unread_in_app_rows(monkeypatch):
    execute_mock = AsyncMock(return_value=4)
    monkeypatch.setattr(f"{MODULE}.execute_query", execute_mock)

    modified = await NotificationRepository.mark_all_read("user-1")

    assert modified == 4
    query, params = execute_mock.await_args.args
    assert "SET status = 'read', read_at = NOW()" in query
    assert "channel = 'in_app'" in query
    assert "status IN ('pending', 'sent')" in query
    assert params == ("user-1",)


@pytest.mark.asyncio
async def test_list_for_user_read_filter(monkeypatch):
    fetch_all_mock = AsyncMock(return_value=[_row(status="read")])
    fetch_val_mock = AsyncMock(return_value=1)
    monkeypatch.setattr(f"{MODULE}.fetch_all", fetch_all_mock)
    monkeypatch.setattr(f"{MODULE}.fetch_val", fetch_val_mock)

    records, total = await NotificationRepository.list_for_user("user-1", status_filter="read")

    assert total == 1
    query, params = fetch_all_mock.await_args.args
    assert "status = 'read'" in query
    assert "status IN" not in query
    assert "channel = 'in_app'" in query
    assert params == ("user-1", 50, 0)
    count_query, count_params = fetch_val_mock.await_args.args
    assert "status = 'read'" in count_query
    assert count_params == ("user-1",)


@pytest.mark.asyncio
async def test_list_for_user_all_filter_has_no_status_clause(monkeypatch):
    fetch_all_mock = AsyncMock(return_value=[])
    monkeypatch.setattr(f"{MODULE}.fetch_all", fetch_all_mock)
    monkeypatch.setattr(f"{MODULE}.fetch_val", AsyncMock(return_value=0))

    records, total = await NotificationRepository.list_for_user("user-1", status_filter="all")

    assert (records, total) == ([], 0)
    query, _ = fetch_all_mock.await_args.args
    assert "status" not in query.split("WHERE", 1)[1].split("ORDER BY", 1)[0]


@pytest.mark.asyncio
async def test_list_for_user_tier_filter_is_parameterized(monkeypatch):
    fetch_all_mock = AsyncMock(return_value=[])
    fetch_val_mock = AsyncMock(return_value=0)
    monkeypatch.setattr(f"{MODULE}.fetch_all", fetch_all_mock)
    monkeypatch.setattr(f"{MODULE}.fetch_val", fetch_val_mock)

    await NotificationRepository.list_for_user("user-1", status_filter="all", tier=Tier.FAVORITE)

    query, params = fetch_all_mock.await_args.args
    assert "tier = %s" in query
    assert params == ("user-1", "favorite", 50, 0)
    assert fetch_val_mock.await_args.args[1] == ("user-1", "favorite")


@pytest.mark.asyncio
async def test_mark_read_only_moves_unread_rows(monkeypatch):
    execute_mock = AsyncMock(return_value=1)
    monkeypatch.setattr(f"{MODULE}.execute_query", execute_mock)

    await NotificationRepository.mark_read("n-1", "user-1")

    query, params = execute_mock.await_args.args
    assert "SET status = 'read', read_at = NOW()" in query
    assert "status IN ('pending', 'sent')" in query
    assert params == ("n-1", "user-1", "user-1")


@pytest.mark.asyncio
async def test_dismiss_is_terminal_and_stamped(monkeypatch):
    execute_mock = AsyncMock(return_value=1)
    monkeypatch.setattr(f"{MODULE}.execute_query", execute_mock)

    assert await NotificationRepository.dismiss("n-1") is True

    query, params = execute_mock.await_args.args
    assert "SET status = 'dismissed', dismissed_at = NOW()" in query
    assert "status <> 'dismissed'" in query
    assert params == ("n-1", None, None)


@pytest.mark.asyncio
async def test_unread_count_and_digest_exclude_read_and_dismissed(monkeypatch):
    fetch_val_mock = AsyncMock(return_value=2)
    fetch_all_mock = AsyncMock(return_value=[])
    monkeypatch.setattr(f"{MODULE}.fetch_val", fetch_val_mock)
    monkeypatch.setattr(f"{MODULE}.fetch_all", fetch_all_mock)

    assert await NotificationRepository.unread_count("user-1") == 2
    assert await NotificationRepository.pending_digest("user-1") == []

    count_query, _ = fetch_val_mock.await_args.args
    assert "channel = 'in_app'" in count_query
    assert "status IN ('pending', 'sent')" in count_query
    digest_query, _ = fetch_all_mock.await_args.args
    assert "channel = 'email'" in digest_query
    assert "status = 'pending'" in digest_query
