"""
ARQ Worker Configuration

Background job processing with Redis-backed task queue.
Handles the periodic reconciler pass and rebuilds enqueued by the API.

Run with:
    arq flatindex.worker.WorkerSettings
"""

import logging
from datetime import datetime
from typing import Any, Optional

from arq import cron

from .config import settings
from .services.job_queue import parse_redis_url
from .services.reconciler import INCREMENTAL, reconciler
from .services.redis_service import redis_service

logger = logging.getLogger(__name__)


# =============================================================================
# Reconciler Jobs
# =============================================================================


async def drain_index_queue(ctx: dict[str, Any]) -> dict[str, Any]:
    """
    Reconcile pending queue entries of every monitored collection.

    Picks up entries whose fire-and-forget attempt was dropped, failed or
    lost a race, so every document converges eventually.

    Returns:
        dict with pass statistics
    """
    logger.debug("Running scheduled reconciler pass...")
    try:
        stats = await reconciler.drain()
    except Exception as e:
        logger.error(f"Error running reconciler pass: {e}", exc_info=True)
        stats = {"processed": 0, "failed": 0, "errors": [{"error": str(e)}]}

    return {**stats, "run_at": datetime.utcnow().isoformat()}


async def rebuild_index_job(
    ctx: dict[str, Any],
    index_name: str,
    mode: str = INCREMENTAL,
    max_docs: Optional[int] = None,
) -> dict[str, Any]:
    """
    Rebuild an index in the background.

    Returns:
        dict with rebuild statistics, or the error that stopped it
    """
    logger.info(f"Running {mode} rebuild job for {index_name}...")
    try:
        return await reconciler.rebuild(index_name, mode=mode, max_docs=max_docs)
    except Exception as e:
        logger.error(f"Rebuild job for {index_name} failed: {e}", exc_info=True)
        return {"indexName": index_name, "mode": mode, "error": str(e)}


# =============================================================================
# Startup/Shutdown Hooks
# =============================================================================

async def startup(ctx: dict[str, Any]) -> None:
    """Initialize resources when worker starts."""
    logger.info("ARQ worker starting up...")

    # Connect to Redis (for rebuild locks)
    try:
        await redis_service.connect()
        logger.info("Redis connected for ARQ worker")
    except Exception as e:
        logger.warning(f"Redis connection failed in ARQ worker: {e}")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Cleanup resources when worker stops."""
    logger.info("ARQ worker shutting down...")

    await redis_service.disconnect()
    logger.info("Redis disconnected")


# =============================================================================
# Schedule Parsing
# =============================================================================

def parse_schedule_set(value: str) -> set[int]:
    """
    Parse a comma-separated string of integers into a set.

    Examples:
        "0,30" -> {0, 30}
        "0,15,30,45" -> {0, 15, 30, 45}
    """
    return {int(x.strip()) for x in value.split(",") if x.strip()}


def get_drain_seconds() -> set[int]:
    """Get reconciler pass seconds from settings (defaults to :00 when empty)."""
    return parse_schedule_set(settings.arq_drain_seconds) or {0}


# =============================================================================
# Worker Settings
# =============================================================================

class WorkerSettings:
    """ARQ worker configuration."""

    # Redis connection
    redis_settings = parse_redis_url(settings.redis_url)

    # Job functions that can be called via arq.enqueue_job()
    functions = [
        drain_index_queue,
        rebuild_index_job,
    ]

    # Scheduled cron jobs (configured via .env)
    # ARQ_DRAIN_SECONDS: comma-separated seconds within each minute (default "0,30")
    cron_jobs = [
        cron(drain_index_queue, second=get_drain_seconds(), unique=True),
    ]

    # Lifecycle hooks
    on_startup = startup
    on_shutdown = shutdown

    # Worker behavior
    max_jobs = 10  # Max concurrent jobs
    job_timeout = 600  # Full rebuilds of large indices
    keep_result = 3600  # Keep results for 1 hour

    # Health check
    health_check_interval = 30
