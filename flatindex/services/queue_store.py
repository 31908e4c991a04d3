"""Queue ledger operations.

Every function runs inside the caller's session and never commits, so the
write path can bump the ledger in the same transaction as the document
write. Version bumps are single upsert statements (INSERT .. ON CONFLICT DO
UPDATE with ``update_version = update_version + 1``) which keeps
concurrent writers to the same document strictly serialized by the
database.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.index_queue import IndexQueueEntry, IndexStatus
from ..models.source_document import SourceDocument
from ..utils.time_utils import current_timestamp_ms, current_timezone_offset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueKey:
    """Identity of a queue entry."""

    db_name: str
    collection: str
    doc_id: str

    @classmethod
    def of(cls, entry: IndexQueueEntry) -> "QueueKey":
        return cls(entry.db_name, entry.collection, entry.doc_id)

    def __str__(self) -> str:
        return f"{self.db_name}.{self.collection}/{self.doc_id}"


def _insert_for(db: AsyncSession):
    """Dialect-specific INSERT construct supporting ON CONFLICT."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Unsupported database dialect for queue upserts: {dialect}")


def _key_filter(key: QueueKey):
    return and_(
        IndexQueueEntry.db_name == key.db_name,
        IndexQueueEntry.collection == key.collection,
        IndexQueueEntry.doc_id == key.doc_id,
    )


async def get_entry(db: AsyncSession, key: QueueKey) -> Optional[IndexQueueEntry]:
    """Load the current state of an entry, bypassing the identity map."""
    result = await db.execute(
        select(IndexQueueEntry)
        .where(_key_filter(key))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _bump(
    db: AsyncSession,
    key: QueueKey,
    mongo_id: Optional[str],
    is_deleted: bool,
) -> IndexQueueEntry:
    now = current_timestamp_ms()
    tz = current_timezone_offset()
    insert = _insert_for(db)

    stmt = insert(IndexQueueEntry).values(
        db_name=key.db_name,
        collection=key.collection,
        doc_id=key.doc_id,
        mongo_id=mongo_id,
        update_version=1,
        index_version=0,
        status=int(IndexStatus.PENDING_INDEX),
        create_at=now,
        create_at_time_zone=tz,
        update_at=now,
        update_at_time_zone=tz,
        is_deleted=is_deleted,
    )
    set_ = {
        "update_version": IndexQueueEntry.update_version + 1,
        "status": int(IndexStatus.PENDING_INDEX),
        "is_deleted": is_deleted,
        "update_at": now,
        "update_at_time_zone": tz,
    }
    if mongo_id is not None:
        set_["mongo_id"] = mongo_id
    stmt = stmt.on_conflict_do_update(
        index_elements=["db_name", "collection", "doc_id"],
        set_=set_,
    )
    await db.execute(stmt)

    entry = await get_entry(db, key)
    if entry is None:
        raise RuntimeError(f"Queue entry {key} missing after upsert")
    return entry


async def record_update(
    db: AsyncSession,
    db_name: str,
    collection: str,
    doc_id: str,
    mongo_id: Optional[str] = None,
) -> IndexQueueEntry:
    """
    Record a source write: create the entry at version 1 or bump it by one.

    The entry is always left PendingIndex and un-tombstoned.
    """
    entry = await _bump(db, QueueKey(db_name, collection, doc_id), mongo_id, is_deleted=False)
    logger.debug(f"Queue bump {entry!r}")
    return entry


async def record_delete(
    db: AsyncSession,
    db_name: str,
    collection: str,
    doc_id: str,
    mongo_id: Optional[str] = None,
) -> IndexQueueEntry:
    """Tombstone an entry and bump its version so the delete gets indexed."""
    entry = await _bump(db, QueueKey(db_name, collection, doc_id), mongo_id, is_deleted=True)
    logger.debug(f"Queue tombstone {entry!r}")
    return entry


async def list_pending(
    db: AsyncSession,
    db_name: str,
    collection: Optional[str] = None,
    limit: Optional[int] = None,
) -> list[IndexQueueEntry]:
    """Pending entries of a database, oldest version first."""
    query = select(IndexQueueEntry).where(
        IndexQueueEntry.db_name == db_name,
        IndexQueueEntry.status == int(IndexStatus.PENDING_INDEX),
    )
    if collection is not None:
        query = query.where(IndexQueueEntry.collection == collection)
    query = query.order_by(IndexQueueEntry.update_version, IndexQueueEntry.id)
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query.execution_options(populate_existing=True))
    return list(result.scalars().all())


async def count_pending(
    db: AsyncSession,
    db_name: str,
    collection: Optional[str] = None,
) -> int:
    query = select(func.count(IndexQueueEntry.id)).where(
        IndexQueueEntry.db_name == db_name,
        IndexQueueEntry.status == int(IndexStatus.PENDING_INDEX),
    )
    if collection is not None:
        query = query.where(IndexQueueEntry.collection == collection)
    return (await db.execute(query)).scalar_one()


async def try_mark_indexed(db: AsyncSession, key: QueueKey, committed_version: int) -> bool:
    """
    Mark an entry Indexed at ``committed_version``.

    Single conditional UPDATE: it only applies while the entry still sits
    at that version, so a write that landed meanwhile keeps it pending.
    """
    result = await db.execute(
        update(IndexQueueEntry)
        .where(
            _key_filter(key),
            IndexQueueEntry.update_version == committed_version,
        )
        .values(index_version=committed_version, status=int(IndexStatus.INDEXED))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def reset_for_rebuild(db: AsyncSession, db_name: str, collection: str) -> int:
    """Set every entry of a source back to PendingIndex with index_version 0."""
    result = await db.execute(
        update(IndexQueueEntry)
        .where(
            IndexQueueEntry.db_name == db_name,
            IndexQueueEntry.collection == collection,
        )
        .values(index_version=0, status=int(IndexStatus.PENDING_INDEX))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def backfill_missing(db: AsyncSession, db_name: str, collection: str) -> int:
    """Create entries for source documents that were never recorded."""
    result = await db.execute(
        select(SourceDocument.doc_id, SourceDocument.mongo_id)
        .outerjoin(
            IndexQueueEntry,
            and_(
                IndexQueueEntry.db_name == SourceDocument.db_name,
                IndexQueueEntry.collection == SourceDocument.coll_name,
                IndexQueueEntry.doc_id == SourceDocument.doc_id,
            ),
        )
        .where(
            SourceDocument.db_name == db_name,
            SourceDocument.coll_name == collection,
            IndexQueueEntry.id.is_(None),
        )
    )
    rows = result.all()
    if not rows:
        return 0

    now = current_timestamp_ms()
    tz = current_timezone_offset()
    for doc_id, mongo_id in rows:
        db.add(
            IndexQueueEntry(
                db_name=db_name,
                collection=collection,
                doc_id=doc_id,
                mongo_id=mongo_id,
                update_version=1,
                index_version=0,
                status=int(IndexStatus.PENDING_INDEX),
                create_at=now,
                create_at_time_zone=tz,
                update_at=now,
                update_at_time_zone=tz,
                is_deleted=False,
            )
        )
    await db.flush()
    logger.info(f"Backfilled {len(rows)} queue entries for {db_name}.{collection}")
    return len(rows)


async def queue_stats(db: AsyncSession, db_name: str) -> dict[str, dict[str, int]]:
    """Entry counts per collection: pending, indexed and tombstoned."""
    result = await db.execute(
        select(
            IndexQueueEntry.collection,
            IndexQueueEntry.status,
            IndexQueueEntry.is_deleted,
            func.count(IndexQueueEntry.id),
        )
        .where(IndexQueueEntry.db_name == db_name)
        .group_by(
            IndexQueueEntry.collection,
            IndexQueueEntry.status,
            IndexQueueEntry.is_deleted,
        )
    )
    stats: dict[str, dict[str, int]] = {}
    for collection, status, is_deleted, count in result.all():
        bucket = stats.setdefault(collection, {"pending": 0, "indexed": 0, "deleted": 0})
        if status == IndexStatus.PENDING_INDEX:
            bucket["pending"] += count
        else:
            bucket["indexed"] += count
        if is_deleted:
            bucket["deleted"] += count
    return stats
