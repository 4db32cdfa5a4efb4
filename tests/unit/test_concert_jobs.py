from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from app.features.concert_alerts.domain import BatchMatchSummary
from app.features.concert_alerts.jobs import DigestJob, NotificationCheckJob, NotificationCleanupJob
from app.features.concert_alerts.services import DigestDispatcher
from tests.conftest import NOW, FakeEmailSender


@pytest.mark.asyncio
async def test_notification_check_job_reports_summary():
    matcher = AsyncMock()
    matcher.match_all_users.return_value = BatchMatchSummary(
        total_users=3, successful=2, total_notifications=6, errors=1
    )
    job = NotificationCheckJob(matcher=matcher)

    result = await job.run()

    assert result == {
        "success": True,
        "total_users": 3,
        "successful": 2,
        "total_notifications": 6,
        "errors": 1,
    }
    assert job.is_running is False


@pytest.mark.asyncio
async def test_notification_check_job_survives_failure():
    matcher = AsyncMock()
    matcher.match_all_users.side_effect = RuntimeError("db down")
    job = NotificationCheckJob(matcher=matcher)

    result = await job.run()

    assert result["success"] is False
    assert "db down" in result["error"]
    assert job.is_running is False


@pytest.mark.asyncio
async def test_jobs_skip_when_already_running():
    job = NotificationCheckJob(matcher=AsyncMock())
    job.is_running = True

    assert await job.run() == {"success": False, "error": "Already running"}


@pytest.mark.asyncio
async def test_digest_job_sends_pending(world):
    artist = world.artists.add("Haim", "tm-haim")
    world.add_user(favorites=[artist])
    world.events.add(artist, lat=34.05, lon=-118.25)
    await world.matcher().match_user("user-1")
    sender = FakeEmailSender()
    dispatcher = DigestDispatcher(sender, notifications=world.notifications, users=world.users)

    result = await DigestJob(dispatcher=dispatcher).run()

    assert result == {"success": True, "total_users": 1, "delivered": 1, "failed": 0}


@pytest.mark.asyncio
async def test_cleanup_job_removes_past_notifications_and_old_events(world):
    artist = world.artists.add("Haim", "tm-haim")
    world.add_user(favorites=[artist])
    world.events.add(artist, lat=34.05, lon=-118.25, days_ahead=3)
    world.events.add(artist, days_ahead=-45)
    await world.matcher().match_user("user-1")
    job = NotificationCleanupJob(notifications=world.notifications, events=world.events)

    result = await job.run(now=NOW + timedelta(days=10))

    assert result["success"] is True
    assert result["deleted_notifications"] == 2
    assert result["deleted_events"] == 1
    assert world.notifications.records == {}


@pytest.mark.asyncio
async def test_cleanup_job_records_step_errors():
    notifications = AsyncMock()
    notifications.delete_for_past_events.side_effect = RuntimeError("boom")
    events = AsyncMock()
    events.delete_older_than.return_value = 4
    job = NotificationCleanupJob(notifications=notifications, events=events)

    result = await job.run(now=NOW)

    assert result["success"] is False
    assert result["deleted_events"] == 4
    assert len(result["errors"]) == 1
