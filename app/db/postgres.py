"""
Startup check run by the worker before it enters a job loop.
"""

from app.db.helpers import DatabaseError, fetch_one
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

REQUIRED_TABLES = ("users", "artists", "events", "notifications", "user_music_taste")


async def check_db():
    """
    True when the database answers and the concert alerts tables exist
    (see app/db/schema.sql), otherwise a description of the problem.
    """
    try:
        row = await fetch_one(
            "SELECT " + ", ".join(f"to_regclass(%s) IS NOT NULL AS {t}" for t in REQUIRED_TABLES),
            REQUIRED_TABLES,
        )
    except DatabaseError as e:
        logger.error("Database check failed", error=str(e))
        return str(e)

    missing = [table for table in REQUIRED_TABLES if not (row or {}).get(table)]
    if missing:
        logger.error("Database schema incomplete", missing_tables=missing)
        return f"Missing tables: {', '.join(missing)}"
    return True
