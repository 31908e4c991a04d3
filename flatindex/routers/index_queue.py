"""Queue ledger inspection endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.queue import CollectionQueueStats, QueueEntryResponse
from ..services import queue_store

router = APIRouter(prefix="/api/queue", tags=["queue"])


@router.get("/{db_name}/pending", response_model=list[QueueEntryResponse])
async def list_pending_entries(
    db_name: str,
    collection: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Pending entries, oldest version first."""
    entries = await queue_store.list_pending(db, db_name, collection=collection, limit=limit)
    return [QueueEntryResponse.model_validate(entry) for entry in entries]


@router.get("/{db_name}/stats", response_model=dict[str, CollectionQueueStats])
async def get_queue_stats(
    db_name: str,
    db: AsyncSession = Depends(get_db),
):
    """Entry counts per collection."""
    return await queue_store.queue_stats(db, db_name)
