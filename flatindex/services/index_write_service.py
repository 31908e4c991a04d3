"""Write path for monitored documents.

A document write and its queue bump commit in one transaction; the slow
search store write happens afterwards through the dispatcher. If the
transaction aborts, neither the document change nor the bump is visible.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import DocumentNotFound, SourceNotMonitored, SourceWriteFailure
from ..models.index_definition import IndexDefinition
from . import document_store, queue_store
from .index_registry import IndexRegistry
from .queue_store import QueueKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WriteReceipt:
    """What a committed write reports back to the caller."""

    key: QueueKey
    update_version: int
    update_at: int
    mongo_id: Optional[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "docId": self.key.doc_id,
            "updateAt": self.update_at,
            "updateVersion": self.update_version,
        }


def _require_source(definition: IndexDefinition, db_name: str, coll_name: str) -> None:
    for source in definition.sources:
        if source.db_name == db_name and source.coll_name == coll_name:
            return
    raise SourceNotMonitored(
        f"{db_name}.{coll_name} is not monitored by index '{definition.name}'"
    )


async def _commit(db: AsyncSession, key: QueueKey) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Write transaction for {key} aborted: {e}")
        raise SourceWriteFailure(f"Write for {key} failed") from e


async def update_document(
    db: AsyncSession,
    registry: IndexRegistry,
    index_name: str,
    db_name: str,
    coll_name: str,
    doc_id: str,
    update_dict: dict[str, Any],
) -> WriteReceipt:
    """
    Apply set-field updates to a document and bump its queue entry.

    Raises:
        IndexNotFound: unknown index
        SourceNotMonitored: the collection is not part of the index
        InvalidUpdatePath: an update path does not fit the document shape
        SourceWriteFailure: the transaction aborted
    """
    definition = await registry.require_index(db, index_name)
    _require_source(definition, db_name, coll_name)
    key = QueueKey(db_name, coll_name, doc_id)

    try:
        document = await document_store.upsert_document(db, db_name, coll_name, doc_id, update_dict)
        entry = await queue_store.record_update(db, db_name, coll_name, doc_id, document.mongo_id)
    except SQLAlchemyError as e:
        await db.rollback()
        raise SourceWriteFailure(f"Write for {key} failed: {e}") from e

    receipt = WriteReceipt(key, entry.update_version, entry.update_at, document.mongo_id)
    await _commit(db, key)
    logger.info(f"Updated {key} -> v{receipt.update_version}")
    return receipt


async def delete_document(
    db: AsyncSession,
    registry: IndexRegistry,
    index_name: str,
    db_name: str,
    coll_name: str,
    doc_id: str,
) -> WriteReceipt:
    """Delete a document and tombstone its queue entry."""
    definition = await registry.require_index(db, index_name)
    _require_source(definition, db_name, coll_name)
    key = QueueKey(db_name, coll_name, doc_id)

    try:
        document = await document_store.delete_document(db, db_name, coll_name, doc_id)
        if document is None:
            raise DocumentNotFound(f"Document {key} not found")
        entry = await queue_store.record_delete(db, db_name, coll_name, doc_id, document.mongo_id)
    except SQLAlchemyError as e:
        await db.rollback()
        raise SourceWriteFailure(f"Delete for {key} failed: {e}") from e

    receipt = WriteReceipt(key, entry.update_version, entry.update_at, document.mongo_id)
    await _commit(db, key)
    logger.info(f"Deleted {key} -> v{receipt.update_version}")
    return receipt
