"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable, opens the database pool and delegates to the matching scheduler.

The sync pipeline and the artist caching job need an event source and an
artist search provider, so the embedding application starts those itself.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from app.config import settings
from app.db.pool import db_pool
from app.db.postgres import check_db
from app.features.concert_alerts.jobs import (
    start_digest_scheduler,
    start_notification_check_scheduler,
    start_notification_cleanup_scheduler,
)
from app.infrastructure.observability.logging import get_logger, setup_logging

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[None]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "notification_check": start_notification_check_scheduler,
    "notification_digest": start_digest_scheduler,
    "notification_cleanup": start_notification_cleanup_scheduler,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "notification_check").strip().lower()


async def run_worker(job_name: str | None = None, *, manage_pool: bool = False) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name, environment=settings.environment)

    if not manage_pool:
        await JOB_REGISTRY[name]()
        return

    await db_pool.initialize()
    try:
        status = await check_db()
        if status is not True:
            raise RuntimeError(f"Database unavailable: {status}")
        await JOB_REGISTRY[name]()
    finally:
        await db_pool.close()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(settings.LOG_LEVEL, json_output=settings.environment != "development")
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name, manage_pool=True))


if __name__ == "__main__":
    main()
