"""
Notification check job.

Runs the matcher for every user with a resolvable location on a fixed
interval. Event data is refreshed separately by the sync pipeline; this
job only turns already-stored events into notifications.

Usage:
    import asyncio
    from app.features.concert_alerts.jobs import start_notification_check_scheduler

    asyncio.create_task(start_notification_check_scheduler())
"""

import asyncio
import uuid
from datetime import UTC, datetime

import structlog

from app.config import settings
from app.features.concert_alerts.services.notification_matcher import NotificationMatcher
from app.infrastructure.observability.logging import get_logger, log_job_summary

logger = get_logger(__name__)

JOB_NAME = "notification_check"


class NotificationCheckJob:
    def __init__(self, matcher: NotificationMatcher | None = None):
        self.matcher = matcher or NotificationMatcher()
        self.is_running = False

    async def run(self, *, dry_run: bool = False) -> dict:
        """
        Match every user once.

        Returns:
            dict: {"success", "total_users", "successful", "total_notifications", "errors"}
        """
        if self.is_running:
            logger.warning("Notification check already running, skipping")
            return {"success": False, "error": "Already running"}

        self.is_running = True
        start_time = datetime.now(UTC)
        structlog.contextvars.bind_contextvars(job=JOB_NAME, run_id=uuid.uuid4().hex[:8])

        try:
            summary = await self.matcher.match_all_users(
                dry_run=dry_run,
                user_delay_seconds=settings.SYNC_USER_DELAY_SECONDS,
            )
            result = {"success": True, **summary.model_dump(exclude={"results"})}
        except Exception as e:
            logger.error("Notification check failed", error=str(e))
            result = {"success": False, "error": str(e)}
        finally:
            self.is_running = False

        duration = (datetime.now(UTC) - start_time).total_seconds()
        log_job_summary(
            JOB_NAME,
            result["success"],
            duration,
            **{k: v for k, v in result.items() if k != "success"},
        )
        structlog.contextvars.unbind_contextvars("job", "run_id")
        return result


async def start_notification_check_scheduler(job: NotificationCheckJob | None = None) -> None:
    """Run the notification check every NOTIFICATION_CHECK_INTERVAL_MINUTES."""
    job = job or NotificationCheckJob()
    interval_minutes = settings.NOTIFICATION_CHECK_INTERVAL_MINUTES
    logger.info("Notification check scheduler STARTED", interval_minutes=interval_minutes)

    while True:
        try:
            await job.run()
            await asyncio.sleep(interval_minutes * 60)
        except asyncio.CancelledError:
            logger.info("Notification check scheduler cancelled")
            break
        except Exception as e:
            logger.error(
                "Error in notification check scheduler", error=str(e), error_type=type(e).__name__
            )
            await asyncio.sleep(60)
