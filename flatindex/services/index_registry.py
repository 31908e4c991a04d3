"""Registry of index definitions.

Maps an index name to its target search index and monitored sources, and
keeps the reverse map (database, collection) -> index names used by the
write path and the reconciler. The reverse map is built lazily and dropped
on every local change; background passes call ``invalidate()`` before
they start so changes made by other processes are picked up.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import IndexAlreadyExists, IndexConfigurationError, IndexNotFound
from ..models.index_definition import IndexDefinition, IndexSource
from . import queue_store
from .search_store import SearchStore, search_store as default_search_store, validate_index_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceRef:
    """A monitored (database, collection) pair."""

    db_name: str
    coll_name: str

    def __str__(self) -> str:
        return f"{self.db_name}.{self.coll_name}"


def _dedupe_sources(sources: Iterable[SourceRef]) -> list[SourceRef]:
    seen: dict[SourceRef, None] = {}
    for source in sources:
        if not source.db_name or not source.coll_name:
            raise IndexConfigurationError("Source database and collection must be non-empty")
        seen.setdefault(source, None)
    return list(seen)


class IndexRegistry:
    """Index definitions plus the cached reverse map."""

    def __init__(self, search_store: Optional[SearchStore] = None) -> None:
        self._search_store = search_store or default_search_store
        # (db_name, coll_name) -> {index name: search index}
        self._source_map: Optional[dict[SourceRef, dict[str, str]]] = None

    def invalidate(self) -> None:
        """Drop the cached reverse map."""
        self._source_map = None

    # ---- CRUD ----

    async def create_index(
        self,
        db: AsyncSession,
        name: str,
        search_index: str,
        sources: Iterable[SourceRef],
    ) -> IndexDefinition:
        """
        Register a new index and create its search index.

        Raises:
            IndexConfigurationError: invalid name or search index name
            IndexAlreadyExists: the name is taken
        """
        if not name:
            raise IndexConfigurationError("Index name must be non-empty")
        validate_index_name(search_index)
        refs = _dedupe_sources(sources)
        if await self.get_index(db, name) is not None:
            raise IndexAlreadyExists(f"Index '{name}' already exists")

        await self._search_store.create_index(search_index)

        definition = IndexDefinition(name=name, search_index=search_index)
        definition.sources = [
            IndexSource(db_name=ref.db_name, coll_name=ref.coll_name) for ref in refs
        ]
        db.add(definition)
        await db.flush()
        self.invalidate()
        logger.info(
            "Registered index %s -> %s monitoring %s",
            name, search_index, [str(ref) for ref in refs],
        )
        return definition

    async def get_index(self, db: AsyncSession, name: str) -> Optional[IndexDefinition]:
        result = await db.execute(select(IndexDefinition).where(IndexDefinition.name == name))
        return result.scalar_one_or_none()

    async def require_index(self, db: AsyncSession, name: str) -> IndexDefinition:
        definition = await self.get_index(db, name)
        if definition is None:
            raise IndexNotFound(f"Index '{name}' not found")
        return definition

    async def list_indexes(self, db: AsyncSession) -> list[IndexDefinition]:
        result = await db.execute(select(IndexDefinition).order_by(IndexDefinition.name))
        return list(result.scalars().all())

    async def update_index(
        self,
        db: AsyncSession,
        name: str,
        sources: Optional[Iterable[SourceRef]] = None,
        search_index: Optional[str] = None,
    ) -> IndexDefinition:
        """
        Replace the monitored sources and/or retarget the search index.

        Sources that start feeding a search index they were not indexed into
        (newly added sources, or every source after a retarget) have their
        queue entries backfilled and reset to pending, so the next reconciler
        pass fills the target. The old search index is left as it is.
        """
        definition = await self.require_index(db, name)
        previous_target = definition.search_index
        previous_sources = {SourceRef(s.db_name, s.coll_name) for s in definition.sources}

        if search_index is not None and search_index != definition.search_index:
            validate_index_name(search_index)
            await self._search_store.create_index(search_index)
            definition.search_index = search_index

        if sources is not None:
            wanted = _dedupe_sources(sources)
            current = {SourceRef(s.db_name, s.coll_name): s for s in definition.sources}
            definition.sources = [
                current.get(ref) or IndexSource(db_name=ref.db_name, coll_name=ref.coll_name)
                for ref in wanted
            ]

        await db.flush()
        self.invalidate()

        retargeted = definition.search_index != previous_target
        stale = [
            ref for ref in (SourceRef(s.db_name, s.coll_name) for s in definition.sources)
            if retargeted or ref not in previous_sources
        ]
        for ref in stale:
            await queue_store.backfill_missing(db, ref.db_name, ref.coll_name)
            await queue_store.reset_for_rebuild(db, ref.db_name, ref.coll_name)

        logger.info(
            "Updated index %s, %d sources queued for reindexing",
            name, len(stale),
        )
        return definition

    async def delete_index(self, db: AsyncSession, name: str, drop_search_index: bool = True) -> None:
        """Remove a definition; its search index is dropped unless still shared."""
        definition = await self.require_index(db, name)
        search_index = definition.search_index

        # The search store commits on its own connection, so drop before
        # this session starts writing.
        if drop_search_index:
            if await self.indices_for_search_index(db, search_index) == [name]:
                await self._search_store.drop_index(search_index)

        await db.delete(definition)
        await db.flush()
        self.invalidate()
        logger.info("Deleted index %s", name)

    async def remove_collection_from_indices(
        self,
        db: AsyncSession,
        db_name: str,
        coll_name: str,
    ) -> list[str]:
        """Stop monitoring a source in every index. Returns the affected index names."""
        self.invalidate()
        affected = sorted(await self.indices_for_source(db, db_name, coll_name))
        if not affected:
            return []
        await db.execute(
            delete(IndexSource).where(
                IndexSource.db_name == db_name,
                IndexSource.coll_name == coll_name,
            )
        )
        await db.flush()
        # Definitions loaded earlier still hold the removed sources
        for definition in await self.list_indexes(db):
            await db.refresh(definition, attribute_names=["sources"])
        self.invalidate()
        logger.info("Removed %s.%s from indices %s", db_name, coll_name, affected)
        return affected

    # ---- Reverse map ----

    async def _load_source_map(self, db: AsyncSession) -> dict[SourceRef, dict[str, str]]:
        if self._source_map is None:
            result = await db.execute(
                select(
                    IndexSource.db_name,
                    IndexSource.coll_name,
                    IndexDefinition.name,
                    IndexDefinition.search_index,
                ).join(IndexDefinition, IndexSource.index_id == IndexDefinition.id)
            )
            source_map: dict[SourceRef, dict[str, str]] = {}
            for db_name, coll_name, index_name, search_index in result.all():
                source_map.setdefault(SourceRef(db_name, coll_name), {})[index_name] = search_index
            self._source_map = source_map
        return self._source_map

    async def indices_for_source(self, db: AsyncSession, db_name: str, coll_name: str) -> set[str]:
        """Names of the indices monitoring a source."""
        source_map = await self._load_source_map(db)
        return set(source_map.get(SourceRef(db_name, coll_name), {}))

    async def search_indices_for_source(
        self,
        db: AsyncSession,
        db_name: str,
        coll_name: str,
    ) -> list[str]:
        """Distinct target search indices fed by a source."""
        source_map = await self._load_source_map(db)
        return sorted(set(source_map.get(SourceRef(db_name, coll_name), {}).values()))

    async def monitored_sources(self, db: AsyncSession) -> list[SourceRef]:
        source_map = await self._load_source_map(db)
        return sorted(source_map, key=lambda ref: (ref.db_name, ref.coll_name))

    async def indices_for_search_index(self, db: AsyncSession, search_index: str) -> list[str]:
        """Names of the definitions writing to a search index."""
        result = await db.execute(
            select(IndexDefinition.name)
            .where(IndexDefinition.search_index == search_index)
            .order_by(IndexDefinition.name)
        )
        return list(result.scalars().all())


# Global singleton instance
index_registry = IndexRegistry()


async def get_index_registry() -> IndexRegistry:
    """FastAPI dependency for the index registry."""
    return index_registry


__all__ = [
    "IndexRegistry",
    "SourceRef",
    "get_index_registry",
    "index_registry",
]
