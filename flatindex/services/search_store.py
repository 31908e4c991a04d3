"""SQL-backed search store for flattened documents.

Provides:
- Index lifecycle: create / clear / drop, with name validation at creation
- Documents keyed by (index, source database, source collection, doc_id),
  so sources sharing an index never overwrite each other
- Conditional writes guarded by a sequence token and a version predicate
- Version-carrying delete tombstones
- Substring candidate lookup over flattened (path, value) pairs

Write protocol (``put_document``):
1. Read the stored document, remembering its ``seq_no``.
2. Stored version newer than the write -> VersionConflict (stale write).
   Stored version equal -> no-op, the content is already there.
3. Replace with ``UPDATE .. WHERE seq_no = :seen AND update_version < :new``.
   Zero rows updated means another writer got there first -> VersionConflict.
   A first insert racing another first insert hits the unique constraint,
   which is reported the same way.

Database failures other than constraint violations surface as
TransientIndexingError so callers can leave the entry pending and retry.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, func, or_, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import search_session_maker
from ..exceptions import (
    IndexConfigurationError,
    IndexingError,
    IndexNotFound,
    TransientIndexingError,
    VersionConflict,
)
from ..models.search_document import SearchDocument, SearchField, SearchIndex
from .flattener import FlatPair

logger = logging.getLogger(__name__)

MAX_INDEX_NAME_LENGTH = 255
INDEX_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_\-.+]*$")


class WriteResult(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    NOOP = "noop"


@dataclass(frozen=True)
class DocumentRef:
    """Identity of a stored document within an index: its source and doc_id."""

    source_db: str
    source_coll: str
    doc_id: str

    @classmethod
    def of(cls, document: SearchDocument) -> "DocumentRef":
        return cls(document.source_db, document.source_coll, document.doc_id)

    def __str__(self) -> str:
        return f"{self.source_db}.{self.source_coll}/{self.doc_id}"


def validate_index_name(name: str) -> None:
    """Reject names the search store cannot host."""
    if not name or len(name.encode("utf-8")) > MAX_INDEX_NAME_LENGTH:
        raise IndexConfigurationError(
            f"Search index name must be 1-{MAX_INDEX_NAME_LENGTH} bytes"
        )
    if name in (".", ".."):
        raise IndexConfigurationError(f"Search index name '{name}' is reserved")
    if not INDEX_NAME_RE.match(name):
        raise IndexConfigurationError(
            f"Invalid search index name '{name}': use lowercase letters, digits, "
            "'_', '-', '.' or '+', starting with a letter or digit"
        )


class SearchStore:
    """Search store backed by the SearchIndexes/SearchDocuments/SearchFields tables."""

    def __init__(self, session_maker: Optional[async_sessionmaker] = None) -> None:
        self._session_maker = session_maker or search_session_maker

    # ---- Index lifecycle ----

    async def create_index(self, name: str) -> bool:
        """Create an index. Returns False if it already existed."""
        validate_index_name(name)
        async with self._session_maker() as session:
            if await session.get(SearchIndex, name) is not None:
                return False
            session.add(SearchIndex(name=name))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False
        logger.info("Created search index %s", name)
        return True

    async def index_exists(self, name: str) -> bool:
        async with self._session_maker() as session:
            return await session.get(SearchIndex, name) is not None

    async def list_indexes(self) -> list[str]:
        async with self._session_maker() as session:
            result = await session.execute(select(SearchIndex.name).order_by(SearchIndex.name))
            return list(result.scalars().all())

    async def clear_index(self, name: str) -> int:
        """Remove every document (tombstones included) from an index."""
        async with self._session_maker() as session:
            await self._require_index(session, name)
            await session.execute(delete(SearchField).where(SearchField.index_name == name))
            result = await session.execute(
                delete(SearchDocument).where(SearchDocument.index_name == name)
            )
            await session.commit()
        logger.info("Cleared search index %s (%d documents)", name, result.rowcount)
        return result.rowcount

    async def clear_source(self, name: str, source_db: str, source_coll: str) -> int:
        """Remove the documents of one source from an index."""
        async with self._session_maker() as session:
            await self._require_index(session, name)
            await session.execute(
                delete(SearchField).where(
                    SearchField.index_name == name,
                    SearchField.source_db == source_db,
                    SearchField.source_coll == source_coll,
                )
            )
            result = await session.execute(
                delete(SearchDocument).where(
                    SearchDocument.index_name == name,
                    SearchDocument.source_db == source_db,
                    SearchDocument.source_coll == source_coll,
                )
            )
            await session.commit()
        logger.info(
            "Cleared %s.%s from search index %s (%d documents)",
            source_db, source_coll, name, result.rowcount,
        )
        return result.rowcount

    async def drop_index(self, name: str) -> bool:
        async with self._session_maker() as session:
            index = await session.get(SearchIndex, name)
            if index is None:
                return False
            await session.execute(delete(SearchField).where(SearchField.index_name == name))
            await session.execute(delete(SearchDocument).where(SearchDocument.index_name == name))
            await session.delete(index)
            await session.commit()
        logger.info("Dropped search index %s", name)
        return True

    # ---- Document writes ----

    async def put_document(
        self,
        index_name: str,
        ref: DocumentRef,
        flat: Sequence[FlatPair],
        update_version: int,
        update_at: Optional[int] = None,
        update_at_time_zone: Optional[int] = None,
    ) -> WriteResult:
        """Write a flattened document unless a version >= update_version is stored."""
        values = {
            "update_version": update_version,
            "update_at": update_at,
            "update_at_time_zone": update_at_time_zone,
            "flat": [[pair.path, pair.value] for pair in flat],
            "deleted": False,
        }
        outcome = await self._conditional_write(index_name, ref, update_version, values)
        if outcome is not WriteResult.NOOP:
            logger.debug("Indexed %s/%s at v%d (%s)", index_name, ref, update_version, outcome.value)
        return outcome

    async def delete_document(
        self,
        index_name: str,
        ref: DocumentRef,
        delete_version: int,
        update_at: Optional[int] = None,
        update_at_time_zone: Optional[int] = None,
    ) -> WriteResult:
        """Replace a document with a tombstone carrying ``delete_version``."""
        values = {
            "update_version": delete_version,
            "update_at": update_at,
            "update_at_time_zone": update_at_time_zone,
            "flat": [],
            "deleted": True,
        }
        outcome = await self._conditional_write(index_name, ref, delete_version, values)
        if outcome is WriteResult.NOOP:
            return outcome
        logger.debug("Deleted %s/%s at v%d", index_name, ref, delete_version)
        return WriteResult.DELETED

    async def _conditional_write(
        self,
        index_name: str,
        ref: DocumentRef,
        version: int,
        values: dict,
    ) -> WriteResult:
        async with self._session_maker() as session:
            try:
                await self._require_index(session, index_name)
                existing = await self._read_document(session, index_name, ref)

                if existing is not None:
                    if existing.update_version > version:
                        raise VersionConflict(index_name, str(ref), version, existing.update_version)
                    if existing.update_version == version:
                        return WriteResult.NOOP

                    result = await session.execute(
                        update(SearchDocument)
                        .where(
                            SearchDocument.id == existing.id,
                            SearchDocument.seq_no == existing.seq_no,
                            SearchDocument.update_version < version,
                        )
                        .values(seq_no=existing.seq_no + 1, **values)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        raise VersionConflict(index_name, str(ref), version, existing.update_version)
                    outcome = WriteResult.UPDATED
                else:
                    session.add(
                        SearchDocument(
                            index_name=index_name,
                            source_db=ref.source_db,
                            source_coll=ref.source_coll,
                            doc_id=ref.doc_id,
                            seq_no=1,
                            **values,
                        )
                    )
                    await session.flush()
                    outcome = WriteResult.CREATED

                await session.execute(
                    delete(SearchField).where(
                        SearchField.index_name == index_name,
                        *_field_ref_filter(ref),
                    )
                )
                session.add_all(
                    SearchField(
                        index_name=index_name,
                        source_db=ref.source_db,
                        source_coll=ref.source_coll,
                        doc_id=ref.doc_id,
                        position=position,
                        path=path,
                        value=value,
                    )
                    for position, (path, value) in enumerate(values["flat"])
                )
                await session.commit()
                return outcome
            except IntegrityError as e:
                await session.rollback()
                raise VersionConflict(index_name, str(ref), version) from e
            except IndexingError:
                raise
            except SQLAlchemyError as e:
                raise TransientIndexingError(
                    f"Search store write failed for {index_name}/{ref}: {e}"
                ) from e

    # ---- Reads ----

    async def get_document(self, index_name: str, ref: DocumentRef) -> Optional[SearchDocument]:
        """Return the live (non-tombstoned) document, if any."""
        async with self._session_maker() as session:
            document = await self._read_document(session, index_name, ref)
            if document is None or document.deleted:
                return None
            return document

    async def get_stored_version(self, index_name: str, ref: DocumentRef) -> Optional[int]:
        """Stored version including tombstones."""
        async with self._session_maker() as session:
            document = await self._read_document(session, index_name, ref)
            return document.update_version if document is not None else None

    async def count_documents(
        self,
        index_name: str,
        source_db: Optional[str] = None,
        source_coll: Optional[str] = None,
    ) -> int:
        query = select(func.count(SearchDocument.id)).where(
            SearchDocument.index_name == index_name,
            SearchDocument.deleted.is_(False),
        )
        if source_db is not None:
            query = query.where(SearchDocument.source_db == source_db)
        if source_coll is not None:
            query = query.where(SearchDocument.source_coll == source_coll)
        async with self._session_maker() as session:
            return (await session.execute(query)).scalar_one()

    async def candidate_refs(
        self,
        index_name: str,
        query: str,
        search_in_paths: bool,
        search_in_values: bool,
    ) -> list[DocumentRef]:
        """
        Documents with a field that may contain ``query``, ordered by doc_id
        and then by source.

        The LIKE prefilter can over-match (SQLite compares ASCII
        case-insensitively); callers verify every candidate exactly.
        """
        conditions = []
        if search_in_paths:
            conditions.append(SearchField.path.contains(query, autoescape=True))
        if search_in_values:
            conditions.append(SearchField.value.contains(query, autoescape=True))
        if not conditions:
            return []

        async with self._session_maker() as session:
            await self._require_index(session, index_name)
            result = await session.execute(
                select(SearchField.source_db, SearchField.source_coll, SearchField.doc_id)
                .where(SearchField.index_name == index_name, or_(*conditions))
                .distinct()
            )
            refs = [DocumentRef(*row) for row in result.all()]
        return sorted(refs, key=lambda ref: (ref.doc_id, ref.source_db, ref.source_coll))

    async def load_documents(
        self,
        index_name: str,
        refs: Iterable[DocumentRef],
    ) -> dict[DocumentRef, SearchDocument]:
        wanted = set(refs)
        if not wanted:
            return {}
        async with self._session_maker() as session:
            result = await session.execute(
                select(SearchDocument).where(
                    SearchDocument.index_name == index_name,
                    SearchDocument.doc_id.in_(sorted({ref.doc_id for ref in wanted})),
                    SearchDocument.deleted.is_(False),
                )
            )
            documents = {DocumentRef.of(document): document for document in result.scalars().all()}
        return {ref: document for ref, document in documents.items() if ref in wanted}

    async def health_check(self) -> dict:
        try:
            async with self._session_maker() as session:
                await session.execute(text("SELECT 1"))
            return {"status": "healthy"}
        except Exception as e:
            return {"status": "error", "error": str(e)}

    # ---- Helpers ----

    @staticmethod
    async def _require_index(session: AsyncSession, index_name: str) -> None:
        if await session.get(SearchIndex, index_name) is None:
            raise IndexNotFound(f"Search index '{index_name}' does not exist")

    @staticmethod
    async def _read_document(
        session: AsyncSession,
        index_name: str,
        ref: DocumentRef,
    ) -> Optional[SearchDocument]:
        result = await session.execute(
            select(SearchDocument)
            .where(
                SearchDocument.index_name == index_name,
                SearchDocument.source_db == ref.source_db,
                SearchDocument.source_coll == ref.source_coll,
                SearchDocument.doc_id == ref.doc_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


def _field_ref_filter(ref: DocumentRef) -> tuple:
    return (
        SearchField.source_db == ref.source_db,
        SearchField.source_coll == ref.source_coll,
        SearchField.doc_id == ref.doc_id,
    )


# Global singleton instance
search_store = SearchStore()


__all__ = [
    "DocumentRef",
    "SearchStore",
    "WriteResult",
    "search_store",
    "validate_index_name",
]
