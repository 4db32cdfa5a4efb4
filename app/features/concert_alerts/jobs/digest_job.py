"""
Daily digest job: one email per user with pending email notifications.
"""

import asyncio
import uuid
from datetime import UTC, datetime

import structlog

from app.config import settings
from app.features.concert_alerts.services.collaborators import EmailSender
from app.features.concert_alerts.services.digest_service import DigestDispatcher
from app.infrastructure.observability.logging import get_logger, log_job_summary
from app.services.email_service import SendGridEmailSender

logger = get_logger(__name__)

JOB_NAME = "notification_digest"


class DigestJob:
    def __init__(
        self,
        dispatcher: DigestDispatcher | None = None,
        sender: EmailSender | None = None,
    ):
        self.dispatcher = dispatcher or DigestDispatcher(sender or SendGridEmailSender())
        self.is_running = False

    async def run(self) -> dict:
        if self.is_running:
            logger.warning("Digest job already running, skipping")
            return {"success": False, "error": "Already running"}

        self.is_running = True
        start_time = datetime.now(UTC)
        structlog.contextvars.bind_contextvars(job=JOB_NAME, run_id=uuid.uuid4().hex[:8])

        try:
            summary = await self.dispatcher.send_all_digests()
            result = {
                "success": True,
                "total_users": summary.total_users,
                "delivered": summary.delivered,
                "failed": summary.failed,
            }
        except Exception as e:
            logger.error("Digest job failed", error=str(e))
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


async def start_digest_scheduler(job: DigestJob | None = None) -> None:
    """Send digests every DIGEST_INTERVAL_HOURS."""
    job = job or DigestJob()
    interval_hours = settings.DIGEST_INTERVAL_HOURS
    logger.info("Digest scheduler STARTED", interval_hours=interval_hours)

    while True:
        try:
            await job.run()
            await asyncio.sleep(interval_hours * 3600)
        except asyncio.CancelledError:
            logger.info("Digest scheduler cancelled")
            break
        except Exception as e:
            logger.error("Error in digest scheduler, will retry", error=str(e))
            await asyncio.sleep(3600)
