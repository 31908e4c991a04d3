"""Monitored document API endpoints.

Writes commit the document together with its queue bump, then hand the
entry to the indexing dispatcher (fire-and-forget). The response never
waits for the search store.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..exceptions import IndexingError
from ..schemas.document import DocumentResponse, DocumentUpdateRequest, DocumentWriteResponse
from ..services import document_store, index_write_service, queue_store
from ..services.document_store import InvalidUpdatePath
from ..services.index_registry import IndexRegistry, get_index_registry
from ..services.indexing_dispatcher import IndexingDispatcher, get_indexing_dispatcher
from ..services.queue_store import QueueKey
from .errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/indexes/{index_name}/docs", tags=["documents"])


@router.put("/{doc_id}", response_model=DocumentWriteResponse)
async def update_document(
    index_name: str,
    doc_id: str,
    payload: DocumentUpdateRequest,
    database: str = Query(..., alias="db", min_length=1),
    collection: str = Query(..., alias="coll", min_length=1),
    db: AsyncSession = Depends(get_db),
    registry: IndexRegistry = Depends(get_index_registry),
    dispatcher: IndexingDispatcher = Depends(get_indexing_dispatcher),
):
    """Apply set-field updates to a monitored document (created if missing)."""
    try:
        receipt = await index_write_service.update_document(
            db, registry, index_name, database, collection, doc_id, payload.update_dict
        )
    except InvalidUpdatePath as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except IndexingError as e:
        raise to_http_exception(e)

    if payload.update_index:
        dispatcher.submit(receipt.key)

    return DocumentWriteResponse(
        doc_id=doc_id,
        update_at=receipt.update_at,
        update_version=receipt.update_version,
    )


@router.delete("/{doc_id}", response_model=DocumentWriteResponse)
async def delete_document(
    index_name: str,
    doc_id: str,
    database: str = Query(..., alias="db", min_length=1),
    collection: str = Query(..., alias="coll", min_length=1),
    db: AsyncSession = Depends(get_db),
    registry: IndexRegistry = Depends(get_index_registry),
    dispatcher: IndexingDispatcher = Depends(get_indexing_dispatcher),
):
    """Delete a monitored document and schedule its removal from the index."""
    try:
        receipt = await index_write_service.delete_document(
            db, registry, index_name, database, collection, doc_id
        )
    except IndexingError as e:
        raise to_http_exception(e)

    dispatcher.submit(receipt.key)
    return DocumentWriteResponse(
        doc_id=doc_id,
        update_at=receipt.update_at,
        update_version=receipt.update_version,
    )


@router.get("/{doc_id}", response_model=DocumentResponse)
async def get_document(
    index_name: str,
    doc_id: str,
    database: str = Query(..., alias="db", min_length=1),
    collection: str = Query(..., alias="coll", min_length=1),
    db: AsyncSession = Depends(get_db),
    registry: IndexRegistry = Depends(get_index_registry),
):
    """Current source document with its queue state."""
    try:
        await registry.require_index(db, index_name)
    except IndexingError as e:
        raise to_http_exception(e)

    document = await document_store.get_document(db, database, collection, doc_id)
    if document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document {database}.{collection}/{doc_id} not found",
        )
    entry = await queue_store.get_entry(db, QueueKey(database, collection, doc_id))
    return DocumentResponse(
        doc_id=doc_id,
        database=database,
        collection=collection,
        mongo_id=document.mongo_id,
        content=document.content,
        update_version=entry.update_version if entry else None,
        index_version=entry.index_version if entry else None,
        status=entry.status if entry else None,
    )
