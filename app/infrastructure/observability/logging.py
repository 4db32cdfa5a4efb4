"""
Structured logging for the concert alerts backend.

JSON lines in deployed environments, coloured console output locally.
Jobs bind `job` and `run_id` with structlog.contextvars so every line a
run emits can be grouped.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO", *, json_output: bool = True) -> None:
    """
    Configure structlog on top of the stdlib logging module.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_output: False renders human-readable lines for local runs
    """
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    for noisy in ("httpx", "httpcore", "psycopg.pool"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_job_summary(job: str, success: bool, duration_seconds: float, **fields: Any) -> None:
    """One summary line per background job run."""
    logger = get_logger("jobs")
    summary = {"job": job, "success": success, "duration_seconds": round(duration_seconds, 2), **fields}

    if success:
        logger.info("Background job completed", **summary)
    else:
        logger.error("Background job failed", **summary)
