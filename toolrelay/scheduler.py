"""Background catalog refresher — re-probes backends and re-lists their tools."""
import asyncio
import logging

from .config import settings
from .pipeline import Orchestrator

logger = logging.getLogger(__name__)


async def refresh_once(orch: Orchestrator) -> int:
    """Probe + refresh, logging instead of raising."""
    try:
        return await orch.refresh_catalog()
    except Exception as e:
        logger.error(f"Catalog refresh error: {e}")
        return len(orch.catalog)


async def start_catalog_refresher(orch: Orchestrator, interval: int = None):
    """Background loop: refresh the catalog every ``interval`` seconds."""
    interval = interval or settings.refresh_interval_s
    logger.info(f"Catalog refresher started (every {interval}s)")

    while True:
        await asyncio.sleep(interval)
        count = await refresh_once(orch)
        logger.debug(f"Catalog refresher: {count} tools")
