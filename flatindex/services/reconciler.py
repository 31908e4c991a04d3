"""Reconciler: drives queue entries to convergence with the search store.

Each attempt works on one entry:
1. Read the current entry and document in a short session (no lock is held
   across search store I/O).
2. Tombstoned or vanished documents are deleted from every search index
   fed by the source; anything else is flattened and written, each write
   carrying the entry's update_version.
3. ``try_mark_indexed`` closes the entry only if no newer write landed
   while the attempt was in flight.

Outcomes never raise for expected races: a lost optimistic write or an
advanced version simply leaves the entry pending for the next pass.
TransientIndexingError propagates so the dispatcher can retry.

Rebuilds:
- full: clear the search index (only this index's sources when another
  definition targets the same search index), backfill and reset every entry
  of the index's sources, then reindex (bounded by max_docs)
- incremental: reindex only pending entries, oldest version first
Both take a per-index Redis lock when Redis is available.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Optional

from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..config import settings
from ..database import async_session_maker
from ..exceptions import MalformedDocument, RebuildInProgress, SourceNotMonitored, VersionConflict
from . import document_store, queue_store
from .flattener import flatten
from .index_registry import IndexRegistry, SourceRef, index_registry as default_registry
from .queue_store import QueueKey
from .redis_service import RedisService, redis_service as default_redis
from .search_store import DocumentRef, SearchStore, search_store as default_search_store

logger = logging.getLogger(__name__)

REBUILD_LOCK_PREFIX = "flatindex:rebuild:"

FULL = "full"
INCREMENTAL = "incremental"
REBUILD_MODES = (FULL, INCREMENTAL)


class ReconcileOutcome(str, Enum):
    INDEXED = "indexed"
    DELETED = "deleted"
    SUPERSEDED = "superseded"  # a newer write landed during the attempt
    CONFLICT = "conflict"  # lost the optimistic write
    MALFORMED = "malformed"
    SKIPPED = "skipped"  # converged, unknown or unmonitored


@dataclass
class PassStats:
    """Counters for one reconciler pass."""

    processed: int = 0
    indexed: int = 0
    deleted: int = 0
    superseded: int = 0
    conflicts: int = 0
    malformed: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def record(self, outcome: ReconcileOutcome) -> None:
        if outcome is ReconcileOutcome.INDEXED:
            self.indexed += 1
        elif outcome is ReconcileOutcome.DELETED:
            self.deleted += 1
        elif outcome is ReconcileOutcome.SUPERSEDED:
            self.superseded += 1
        elif outcome is ReconcileOutcome.CONFLICT:
            self.conflicts += 1
        elif outcome is ReconcileOutcome.MALFORMED:
            self.malformed += 1
        else:
            self.skipped += 1

    def record_failure(self, key: QueueKey, error: Exception) -> None:
        self.failed += 1
        self.errors.append({
            "database": key.db_name,
            "collection": key.collection,
            "docId": key.doc_id,
            "error": str(error),
        })

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "indexed": self.indexed,
            "deleted": self.deleted,
            "superseded": self.superseded,
            "conflicts": self.conflicts,
            "malformed": self.malformed,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": self.errors,
        }


class Reconciler:
    """Background indexing engine."""

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker] = None,
        search_store: Optional[SearchStore] = None,
        registry: Optional[IndexRegistry] = None,
        redis: Optional[RedisService] = None,
    ) -> None:
        self._session_maker = session_maker or async_session_maker
        self._search_store = search_store or default_search_store
        self._registry = registry or default_registry
        self._redis = redis or default_redis

    @property
    def registry(self) -> IndexRegistry:
        return self._registry

    # ---- Single entry ----

    async def reconcile_entry(self, key: QueueKey, force: bool = False) -> ReconcileOutcome:
        """Run one indexing attempt for an entry against its current state."""
        async with self._session_maker() as db:
            entry = await queue_store.get_entry(db, key)
            if entry is None:
                logger.debug(f"No queue entry for {key}, skipping")
                return ReconcileOutcome.SKIPPED
            if not entry.is_pending and not force:
                return ReconcileOutcome.SKIPPED

            version = entry.update_version
            update_at = entry.update_at
            update_at_time_zone = entry.update_at_time_zone
            targets = await self._registry.search_indices_for_source(
                db, key.db_name, key.collection
            )

            content = None
            if not entry.is_deleted:
                document = await document_store.get_document(
                    db, key.db_name, key.collection, key.doc_id
                )
                if document is not None:
                    content = document.content

        if not targets:
            logger.debug(f"{key.db_name}.{key.collection} is not monitored, skipping {key}")
            return ReconcileOutcome.SKIPPED

        ref = DocumentRef(key.db_name, key.collection, key.doc_id)
        try:
            if content is None:
                for search_index in targets:
                    await self._search_store.delete_document(
                        search_index,
                        ref,
                        version,
                        update_at=update_at,
                        update_at_time_zone=update_at_time_zone,
                    )
                outcome = ReconcileOutcome.DELETED
            else:
                try:
                    flat = flatten(content)
                except MalformedDocument as e:
                    logger.warning(f"Skipping malformed document {key} v{version}: {e}")
                    return ReconcileOutcome.MALFORMED
                for search_index in targets:
                    await self._search_store.put_document(
                        search_index,
                        ref,
                        flat,
                        version,
                        update_at=update_at,
                        update_at_time_zone=update_at_time_zone,
                    )
                outcome = ReconcileOutcome.INDEXED
        except VersionConflict as e:
            logger.info(f"Lost indexing race for {key} v{version}: {e}")
            return ReconcileOutcome.CONFLICT

        async with self._session_maker() as db:
            marked = await queue_store.try_mark_indexed(db, key, version)
            await db.commit()

        if not marked:
            logger.info(f"{key} advanced past v{version} during indexing, left pending")
            return ReconcileOutcome.SUPERSEDED

        logger.info(f"{outcome.value.capitalize()} {key} at v{version}")
        return outcome

    # ---- Passes ----

    async def _collect_pending(
        self,
        sources: list[SourceRef],
        limit: Optional[int],
    ) -> list[QueueKey]:
        """Pending keys across sources, ascending update_version, at most ``limit``."""
        candidates = []
        async with self._session_maker() as db:
            for source in sources:
                entries = await queue_store.list_pending(
                    db, source.db_name, source.coll_name, limit=limit
                )
                candidates.extend(
                    (entry.update_version, entry.id, QueueKey.of(entry)) for entry in entries
                )
        candidates.sort(key=lambda candidate: (candidate[0], candidate[1]))
        if limit is not None:
            candidates = candidates[:limit]
        return [key for _, _, key in candidates]

    async def _process(self, keys: list[QueueKey], force: bool = False) -> PassStats:
        stats = PassStats()
        for key in keys:
            stats.processed += 1
            try:
                stats.record(await self.reconcile_entry(key, force=force))
            except Exception as e:
                logger.error(f"Failed to index {key}: {e}", exc_info=True)
                stats.record_failure(key, e)
        return stats

    async def drain(
        self,
        db_name: Optional[str] = None,
        collection: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> dict[str, Any]:
        """Reconcile pending entries of every monitored source (optionally filtered)."""
        self._registry.invalidate()
        async with self._session_maker() as db:
            sources = await self._registry.monitored_sources(db)
        if db_name is not None:
            sources = [s for s in sources if s.db_name == db_name]
        if collection is not None:
            sources = [s for s in sources if s.coll_name == collection]

        keys = await self._collect_pending(sources, limit or settings.reconcile_batch_size)
        stats = await self._process(keys)
        if stats.processed:
            logger.info(
                f"Reconciler pass: {stats.processed} processed, {stats.indexed} indexed, "
                f"{stats.deleted} deleted, {stats.failed} failed"
            )
        return stats.to_dict()

    # ---- Rebuild ----

    @asynccontextmanager
    async def _rebuild_lock(self, index_name: str) -> AsyncIterator[None]:
        key = f"{REBUILD_LOCK_PREFIX}{index_name}"
        token = None
        if self._redis.is_connected:
            try:
                token = await self._redis.acquire_lock(key, settings.rebuild_lock_ttl)
            except RedisError as e:
                logger.warning(f"Rebuild lock unavailable for {index_name}, continuing: {e}")
            else:
                if token is None:
                    raise RebuildInProgress(f"Another rebuild of '{index_name}' is running")
        else:
            logger.warning(f"Redis not connected, rebuilding {index_name} without a lock")
        try:
            yield
        finally:
            if token is not None:
                try:
                    await self._redis.release_lock(key, token)
                except RedisError as e:
                    logger.warning(f"Failed to release rebuild lock for {index_name}: {e}")

    async def rebuild(
        self,
        index_name: str,
        mode: str = INCREMENTAL,
        max_docs: Optional[int] = None,
        source: Optional[SourceRef] = None,
    ) -> dict[str, Any]:
        """
        Rebuild an index, or one of its sources.

        Raises:
            IndexNotFound: unknown index
            SourceNotMonitored: ``source`` is not part of the index
            RebuildInProgress: another rebuild holds the lock
        """
        if mode not in REBUILD_MODES:
            raise ValueError(f"Unknown rebuild mode '{mode}'")

        async with self._rebuild_lock(index_name):
            self._registry.invalidate()
            async with self._session_maker() as db:
                definition = await self._registry.require_index(db, index_name)
                search_index = definition.search_index
                sources = [SourceRef(s.db_name, s.coll_name) for s in definition.sources]
                sharing = await self._registry.indices_for_search_index(db, search_index)

            if source is not None:
                if source not in sources:
                    raise SourceNotMonitored(f"{source} is not monitored by index '{index_name}'")
                sources = [source]

            logger.info(
                f"Starting {mode} rebuild of {index_name} "
                f"({len(sources)} sources, max_docs={max_docs})"
            )
            if mode == FULL:
                # Other definitions writing to the same search index keep their documents
                clear_all = source is None and sharing == [index_name]
                result = await self._rebuild_full(search_index, sources, max_docs, clear_all)
            else:
                result = await self._rebuild_incremental(sources, max_docs)

        result.update(indexName=index_name, mode=mode)
        logger.info(f"Finished {mode} rebuild of {index_name}: {result['indexedDocs']} indexed")
        return result

    async def _rebuild_full(
        self,
        search_index: str,
        sources: list[SourceRef],
        max_docs: Optional[int],
        clear_all: bool,
    ) -> dict[str, Any]:
        if clear_all:
            await self._search_store.clear_index(search_index)
        else:
            for source in sources:
                await self._search_store.clear_source(search_index, source.db_name, source.coll_name)

        total_docs = 0
        async with self._session_maker() as db:
            for source in sources:
                await queue_store.backfill_missing(db, source.db_name, source.coll_name)
                await queue_store.reset_for_rebuild(db, source.db_name, source.coll_name)
                total_docs += await document_store.count_documents(
                    db, source.db_name, source.coll_name
                )
            await db.commit()

        keys = await self._collect_pending(sources, max_docs)
        stats = await self._process(keys)
        return {
            "totalDocs": total_docs,
            "indexedDocs": stats.indexed,
            "deletedDocs": stats.deleted,
            "errors": stats.errors,
        }

    async def _rebuild_incremental(
        self,
        sources: list[SourceRef],
        max_docs: Optional[int],
    ) -> dict[str, Any]:
        async with self._session_maker() as db:
            needing = 0
            for source in sources:
                needing += await queue_store.count_pending(db, source.db_name, source.coll_name)

        keys = await self._collect_pending(sources, max_docs)
        stats = await self._process(keys)
        return {
            "totalDocsNeedingReindex": needing,
            "indexedDocs": stats.indexed,
            "deletedDocs": stats.deleted,
            "errors": stats.errors,
        }

    # ---- Stats ----

    async def index_stats(self, index_name: str) -> dict[str, Any]:
        """Per-source document counts against what the search index holds."""
        async with self._session_maker() as db:
            definition = await self._registry.require_index(db, index_name)
            search_index = definition.search_index
            collections = []
            for source in definition.sources:
                collections.append({
                    "database": source.db_name,
                    "collection": source.coll_name,
                    "docCount": await document_store.count_documents(
                        db, source.db_name, source.coll_name
                    ),
                    "pendingCount": await queue_store.count_pending(
                        db, source.db_name, source.coll_name
                    ),
                })

        for item in collections:
            item["indexedDocCount"] = await self._search_store.count_documents(
                search_index, item["database"], item["collection"]
            )

        return {
            "indexName": index_name,
            "searchIndex": search_index,
            "totalSourceDocsCount": sum(item["docCount"] for item in collections),
            "searchDocsCount": await self._search_store.count_documents(search_index),
            "collections": collections,
        }


# Global singleton instance
reconciler = Reconciler()


async def get_reconciler() -> Reconciler:
    """FastAPI dependency for the reconciler."""
    return reconciler


__all__ = [
    "FULL",
    "INCREMENTAL",
    "PassStats",
    "ReconcileOutcome",
    "Reconciler",
    "get_reconciler",
    "reconciler",
]
