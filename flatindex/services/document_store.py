"""Primary document store operations.

Documents are addressed by (db_name, coll_name, doc_id). Writes apply a
dict of dotted-path assignments, the same way a ``$set`` update does:
- "a.b.c" walks (and creates) nested objects
- numeric segments index into existing arrays ("tags.1")
- assigning one past the end of an array appends

Like the queue store, functions never commit; the caller owns the
transaction.
"""

import copy
import logging
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.source_document import SourceDocument

logger = logging.getLogger(__name__)


class InvalidUpdatePath(ValueError):
    """An update path cannot be applied to the document shape."""


def _set_path(target: Any, segments: list[str], value: Any, full_path: str) -> None:
    head, rest = segments[0], segments[1:]

    if isinstance(target, list):
        if not head.isdigit():
            raise InvalidUpdatePath(f"'{full_path}': '{head}' is not an array index")
        index = int(head)
        if index > len(target):
            raise InvalidUpdatePath(f"'{full_path}': index {index} out of range")
        if not rest:
            if index == len(target):
                target.append(value)
            else:
                target[index] = value
            return
        if index == len(target):
            target.append({})
        if not isinstance(target[index], (dict, list)):
            target[index] = {}
        _set_path(target[index], rest, value, full_path)
        return

    if not isinstance(target, dict):
        raise InvalidUpdatePath(f"'{full_path}': cannot descend into a scalar")

    if not rest:
        target[head] = value
        return
    child = target.get(head)
    if not isinstance(child, (dict, list)):
        child = {}
        target[head] = child
    _set_path(child, rest, value, full_path)


def apply_set_fields(content: dict[str, Any], update_dict: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``content`` with every dotted path in ``update_dict`` assigned."""
    updated = copy.deepcopy(content) if content else {}
    for path, value in update_dict.items():
        segments = path.split(".")
        if not path or any(segment == "" for segment in segments):
            raise InvalidUpdatePath(f"'{path}': empty path segment")
        _set_path(updated, segments, copy.deepcopy(value), path)
    return updated


async def get_document(
    db: AsyncSession,
    db_name: str,
    coll_name: str,
    doc_id: str,
) -> Optional[SourceDocument]:
    result = await db.execute(
        select(SourceDocument)
        .where(
            SourceDocument.db_name == db_name,
            SourceDocument.coll_name == coll_name,
            SourceDocument.doc_id == doc_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def upsert_document(
    db: AsyncSession,
    db_name: str,
    coll_name: str,
    doc_id: str,
    update_dict: dict[str, Any],
) -> SourceDocument:
    """Apply set-field updates, creating the document when it does not exist."""
    document = await get_document(db, db_name, coll_name, doc_id)
    if document is None:
        document = SourceDocument(
            db_name=db_name,
            coll_name=coll_name,
            doc_id=doc_id,
            content=apply_set_fields({}, update_dict),
        )
        db.add(document)
    else:
        # Reassign so the JSON column is flagged dirty
        document.content = apply_set_fields(document.content, update_dict)
    await db.flush()
    return document


async def delete_document(
    db: AsyncSession,
    db_name: str,
    coll_name: str,
    doc_id: str,
) -> Optional[SourceDocument]:
    """Delete a document. Returns the removed row, or None if it did not exist."""
    document = await get_document(db, db_name, coll_name, doc_id)
    if document is None:
        return None
    await db.delete(document)
    await db.flush()
    return document


async def count_documents(db: AsyncSession, db_name: str, coll_name: str) -> int:
    result = await db.execute(
        select(func.count(SourceDocument.mongo_id)).where(
            SourceDocument.db_name == db_name,
            SourceDocument.coll_name == coll_name,
        )
    )
    return result.scalar_one()
