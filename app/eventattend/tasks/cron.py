import logging
from datetime import date

from ..db.db_client import AsyncPostgresClient

logger = logging.getLogger(__name__)


async def archive_past_events_task(db_client: AsyncPostgresClient, today: date = None) -> int:
    """
    Moves every Approved event whose last date is before today to Archived.
    Runs once at startup and then daily. Errors are logged and swallowed so
    the scheduler keeps running.
    """
    today = today or date.today()
    logger.info(f"Running archive_past_events_task for {today.isoformat()}...")
    try:
        async with db_client.connection() as conn:
            archived = await db_client.archive_past_events(conn, today)
    except Exception as e:
        logger.error(f"Failed to archive past events: {e}", exc_info=True)
        return 0

    if archived:
        logger.info(f"Archived {archived} past events.")
    else:
        logger.info("No past events to archive.")
    return archived
