from unittest.mock import AsyncMock

import pytest

from app.features.concert_alerts.domain import Channel, NotificationStatus, TasteSource, Tier
from app.features.concert_alerts.services import DigestComposer, DigestDispatcher
from app.features.concert_alerts.services.digest_composer import digest_subject
from tests.conftest import FakeEmailSender


async def _seed(world):
    favorite = world.artists.add("Haim", "tm-haim")
    taste = world.artists.add("Alvvays", "tm-alvvays")
    world.add_user(favorites=[favorite])
    world.music_taste.add("user-1", "Alvvays", TasteSource.PLAYLIST)
    world.events.add(taste, lat=34.05, lon=-118.25, days_ahead=5)
    world.events.add(favorite, lat=34.05, lon=-118.25, days_ahead=50)
    world.events.add(favorite, lat=34.05, lon=-118.25, days_ahead=20)
    await world.matcher().match_user("user-1")


def _composer(world) -> DigestComposer:
    return DigestComposer(notifications=world.notifications, users=world.users)


def _dispatcher(world, sender) -> DigestDispatcher:
    return DigestDispatcher(sender, notifications=world.notifications, users=world.users)


def _email_statuses(world) -> set[NotificationStatus]:
    return {r.status for r in world.notifications.for_user("user-1") if r.channel is Channel.EMAIL}


def test_subject_pluralization():
    assert digest_subject(1) == "1 Concert Near You"
    assert digest_subject(3) == "3 Concerts Near You"


@pytest.mark.asyncio
async def test_compose_groups_favorites_first_then_by_date(world):
    await _seed(world)

    digest = await _composer(world).compose_digest("user-1")

    assert digest.subject == "3 Concerts Near You"
    assert [s.tier for s in digest.sections] == [Tier.FAVORITE, Tier.MUSIC_TASTE]
    assert [s.title for s in digest.sections] == ["Your Favorites", "Based on Your Music"]
    favorites = digest.sections[0].items
    assert [n.event_date for n in favorites] == sorted(n.event_date for n in favorites)
    assert len(digest.notification_ids) == 3
    assert "Your Favorites (2)" in digest.rendered_body
    assert "Based on Your Music (1)" in digest.rendered_body
    assert "Hi Sam," in digest.rendered_body


@pytest.mark.asyncio
async def test_compose_has_no_side_effects(world):
    await _seed(world)

    await _composer(world).compose_digest("user-1")

    assert _email_statuses(world) == {NotificationStatus.PENDING}


@pytest.mark.asyncio
async def test_compose_escapes_user_content(world):
    artist = world.artists.add("<script>alert(1)</script>", "tm-x")
    world.add_user(favorites=[artist])
    world.events.add(artist, lat=34.05, lon=-118.25)
    await world.matcher().match_user("user-1")

    digest = await _composer(world).compose_digest("user-1")

    assert "<script>" not in digest.rendered_body
    assert "&lt;script&gt;" in digest.rendered_body


@pytest.mark.asyncio
async def test_compose_empty_and_unknown_user(world):
    world.add_user()
    composer = _composer(world)

    empty = await composer.compose_digest("user-1")

    assert empty.is_empty
    assert await composer.compose_digest("ghost") is None


@pytest.mark.asyncio
async def test_successful_send_marks_sent(world):
    await _seed(world)
    sender = FakeEmailSender()

    result = await _dispatcher(world, sender).send_digest("user-1")

    assert result.success is True
    assert result.sent == 3
    assert result.favorites == 2
    assert result.music_taste == 1
    assert sender.sent[0][0] == "fan@example.com"
    assert _email_statuses(world) == {NotificationStatus.SENT}
    assert await world.notifications.pending_digest("user-1") == []


@pytest.mark.asyncio
async def test_failed_send_leaves_notifications_pending(world):
    await _seed(world)

    result = await _dispatcher(world, FakeEmailSender(succeed=False)).send_digest("user-1")

    assert result.success is False
    assert _email_statuses(world) == {NotificationStatus.PENDING}


@pytest.mark.asyncio
async def test_sender_exception_leaves_notifications_pending(world):
    await _seed(world)
    sender = AsyncMock()
    sender.send.side_effect = ConnectionError("smtp down")

    result = await _dispatcher(world, sender).send_digest("user-1")

    assert result.success is False
    assert "smtp down" in result.error
    assert _email_statuses(world) == {NotificationStatus.PENDING}


@pytest.mark.asyncio
async def test_user_without_email_is_skipped(world):
    world.add_user(email=None)

    result = await _dispatcher(world, FakeEmailSender()).send_digest("user-1")

    assert result.success is False


@pytest.mark.asyncio
async def test_send_all_digests_covers_users_with_pending(world):
    await _seed(world)
    sender = FakeEmailSender()

    summary = await _dispatcher(world, sender).send_all_digests()

    assert summary.total_users == 1
    assert summary.delivered == 1
    assert summary.failed == 0
    assert len(sender.sent) == 1
