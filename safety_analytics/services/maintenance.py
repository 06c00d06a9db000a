import asyncio
import logging
from datetime import timedelta

from ..db.directory import DirectoryStore

logger = logging.getLogger(__name__)


async def run_eviction_sweeps(directory: DirectoryStore, interval: float, max_age: float):
    """
    Periodically removes users not seen for more than `max_age` seconds.

    Runs until cancelled. A failing sweep is logged and retried on the next tick.
    """
    max_age_delta = timedelta(seconds=max_age)
    logger.info(f"User cleanup scheduled every {interval}s for entries older than {max_age_delta}")

    while True:
        await asyncio.sleep(interval)
        try:
            removed = directory.evict_older_than(max_age_delta)
            logger.debug(f"Eviction sweep finished: {removed} removed, {directory.count()} remaining")
        except Exception as e:
            logger.error(f"An unexpected error occurred during user cleanup: {e}", exc_info=True)
