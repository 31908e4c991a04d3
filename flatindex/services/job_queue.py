"""arq connection helpers for enqueueing background jobs from the API."""

import logging
from typing import Optional
from urllib.parse import urlparse

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from ..config import settings

logger = logging.getLogger(__name__)

REBUILD_JOB = "rebuild_index_job"

_pool: Optional[ArqRedis] = None


# Parse Redis URL into components for ARQ
# Format: redis://host:port/db or redis://:password@host:port/db
def parse_redis_url(url: str) -> RedisSettings:
    """Parse Redis URL into ARQ RedisSettings."""
    parsed = urlparse(url)
    return RedisSettings(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        password=parsed.password,
        database=int(parsed.path.lstrip("/") or 0),
    )


async def get_arq_pool() -> ArqRedis:
    global _pool
    if _pool is None:
        _pool = await create_pool(parse_redis_url(settings.redis_url))
    return _pool


async def close_arq_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


async def enqueue_rebuild(index_name: str, mode: str, max_docs: Optional[int]) -> str:
    """
    Enqueue a rebuild job. One job per index and mode can be queued at a time.

    Returns:
        The arq job id
    """
    job_id = f"rebuild:{index_name}:{mode}"
    pool = await get_arq_pool()
    job = await pool.enqueue_job(REBUILD_JOB, index_name, mode, max_docs, _job_id=job_id)
    if job is None:
        logger.info(f"Rebuild job {job_id} already queued")
    else:
        logger.info(f"Enqueued rebuild job {job_id}")
    return job_id
