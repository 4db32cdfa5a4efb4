"""
Notification cleanup job.

1. Delete notifications whose event date has passed
2. Delete events older than EVENT_RETENTION_DAYS

Each step is independent; a failure in one is recorded and the other
still runs.
"""

import asyncio
from datetime import UTC, datetime, timedelta

from app.config import settings
from app.features.concert_alerts.repository import EventRepository, NotificationRepository
from app.infrastructure.observability.logging import get_logger, log_job_summary

logger = get_logger(__name__)

JOB_NAME = "notification_cleanup"


class NotificationCleanupJob:
    def __init__(self, notifications=NotificationRepository, events=EventRepository):
        self.notifications = notifications
        self.events = events
        self.is_running = False

    async def run(self, *, now: datetime | None = None) -> dict:
        """
        Returns:
            dict: {
                "success": bool,
                "deleted_notifications": int,
                "deleted_events": int,
                "errors": list,
            }
        """
        if self.is_running:
            logger.warning("Notification cleanup already running, skipping")
            return {"success": False, "error": "Already running"}

        self.is_running = True
        now = now or datetime.now(UTC)
        start_time = datetime.now(UTC)

        result = {
            "success": True,
            "deleted_notifications": 0,
            "deleted_events": 0,
            "errors": [],
        }

        try:
            try:
                result["deleted_notifications"] = await self.notifications.delete_for_past_events(now)
            except Exception as e:
                error_msg = f"Failed to delete past-event notifications: {e}"
                logger.error(error_msg)
                result["errors"].append(error_msg)

            try:
                cutoff = now - timedelta(days=settings.EVENT_RETENTION_DAYS)
                result["deleted_events"] = await self.events.delete_older_than(cutoff)
            except Exception as e:
                error_msg = f"Failed to delete old events: {e}"
                logger.error(error_msg)
                result["errors"].append(error_msg)
        finally:
            self.is_running = False

        result["success"] = not result["errors"]
        log_job_summary(
            JOB_NAME,
            result["success"],
            (datetime.now(UTC) - start_time).total_seconds(),
            deleted_notifications=result["deleted_notifications"],
            deleted_events=result["deleted_events"],
            errors=len(result["errors"]),
        )
        return result


async def start_notification_cleanup_scheduler(job: NotificationCleanupJob | None = None) -> None:
    """Sweep every NOTIFICATION_CLEANUP_INTERVAL_HOURS."""
    job = job or NotificationCleanupJob()
    interval_hours = settings.NOTIFICATION_CLEANUP_INTERVAL_HOURS
    logger.info("Notification cleanup scheduler STARTED", interval_hours=interval_hours)

    while True:
        try:
            await job.run()
            await asyncio.sleep(interval_hours * 3600)
        except asyncio.CancelledError:
            logger.info("Notification cleanup scheduler cancelled")
            break
        except Exception as e:
            logger.error("Error in notification cleanup scheduler, will retry", error=str(e))
            await asyncio.sleep(3600)
