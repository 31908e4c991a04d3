"""Index definition API endpoints.

Registers indices, reports their statistics and runs rebuilds, either
inline or as an arq background job.
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..exceptions import IndexingError, IndexNotFound
from ..schemas.index_definition import (
    IndexCreate,
    IndexResponse,
    IndexUpdate,
    SourceRemovalResponse,
)
from ..services.index_registry import IndexRegistry, SourceRef, get_index_registry
from ..services.job_queue import enqueue_rebuild
from ..services.reconciler import Reconciler, get_reconciler
from .errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/indexes", tags=["indexes"])

RebuildMode = Literal["full", "incremental"]


@router.get("", response_model=list[IndexResponse])
async def list_indexes(
    db: AsyncSession = Depends(get_db),
    registry: IndexRegistry = Depends(get_index_registry),
):
    """List all registered indices."""
    definitions = await registry.list_indexes(db)
    return [IndexResponse.from_definition(d) for d in definitions]


@router.post("", response_model=IndexResponse, status_code=status.HTTP_201_CREATED)
async def create_index(
    payload: IndexCreate,
    db: AsyncSession = Depends(get_db),
    registry: IndexRegistry = Depends(get_index_registry),
):
    """Register an index and create its search index."""
    try:
        definition = await registry.create_index(
            db,
            name=payload.name,
            search_index=payload.search_index or payload.name,
            sources=[SourceRef(c.database, c.collection) for c in payload.collections],
        )
        await db.commit()
    except IndexingError as e:
        raise to_http_exception(e)
    return IndexResponse.from_definition(definition)


@router.delete("/sources", response_model=SourceRemovalResponse)
async def remove_source_from_indices(
    database: str = Query(..., min_length=1),
    collection: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    registry: IndexRegistry = Depends(get_index_registry),
):
    """Stop monitoring a collection in every index."""
    affected = await registry.remove_collection_from_indices(db, database, collection)
    await db.commit()
    return SourceRemovalResponse(
        database=database, collection=collection, affected_indices=affected
    )


@router.get("/{index_name}", response_model=IndexResponse)
async def get_index(
    index_name: str,
    db: AsyncSession = Depends(get_db),
    registry: IndexRegistry = Depends(get_index_registry),
):
    definition = await registry.get_index(db, index_name)
    if definition is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Index '{index_name}' not found",
        )
    return IndexResponse.from_definition(definition)


@router.put("/{index_name}", response_model=IndexResponse)
async def update_index(
    index_name: str,
    payload: IndexUpdate,
    db: AsyncSession = Depends(get_db),
    registry: IndexRegistry = Depends(get_index_registry),
):
    """
    Replace monitored collections and/or the target search index.

    Added collections, and every collection after a retarget, are queued for
    reindexing and picked up by the next drain pass.
    """
    sources = None
    if payload.collections is not None:
        sources = [SourceRef(c.database, c.collection) for c in payload.collections]
    try:
        definition = await registry.update_index(
            db, index_name, sources=sources, search_index=payload.search_index
        )
        await db.commit()
    except IndexingError as e:
        raise to_http_exception(e)
    return IndexResponse.from_definition(definition)


@router.delete("/{index_name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_index(
    index_name: str,
    db: AsyncSession = Depends(get_db),
    registry: IndexRegistry = Depends(get_index_registry),
):
    try:
        await registry.delete_index(db, index_name)
        await db.commit()
    except IndexNotFound as e:
        raise to_http_exception(e)


@router.get("/{index_name}/stats")
async def get_index_stats(
    index_name: str,
    reconciler: Reconciler = Depends(get_reconciler),
):
    """Per-collection source document counts against indexed counts."""
    try:
        return await reconciler.index_stats(index_name)
    except IndexingError as e:
        raise to_http_exception(e)


@router.post("/{index_name}/rebuild")
async def rebuild_index(
    index_name: str,
    mode: RebuildMode = Query("incremental"),
    max_docs: Optional[int] = Query(None, alias="maxDocs", ge=1),
    database: Optional[str] = Query(None, description="Restrict to one source database"),
    collection: Optional[str] = Query(None, description="Restrict to one source collection"),
    reconciler: Reconciler = Depends(get_reconciler),
):
    """Run a full or incremental rebuild and report its statistics."""
    source = None
    if database is not None or collection is not None:
        if not (database and collection):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="database and collection must be given together",
            )
        source = SourceRef(database, collection)
    try:
        return await reconciler.rebuild(index_name, mode=mode, max_docs=max_docs, source=source)
    except IndexingError as e:
        raise to_http_exception(e)


@router.post("/{index_name}/rebuild/async", status_code=status.HTTP_202_ACCEPTED)
async def rebuild_index_async(
    index_name: str,
    mode: RebuildMode = Query("incremental"),
    max_docs: Optional[int] = Query(None, alias="maxDocs", ge=1),
    db: AsyncSession = Depends(get_db),
    registry: IndexRegistry = Depends(get_index_registry),
):
    """Enqueue a rebuild on the arq worker."""
    try:
        await registry.require_index(db, index_name)
    except IndexNotFound as e:
        raise to_http_exception(e)

    try:
        job_id = await enqueue_rebuild(index_name, mode, max_docs)
    except Exception as e:
        logger.error(f"Failed to enqueue rebuild of {index_name}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Background jobs unavailable",
        )
    return {"jobId": job_id, "indexName": index_name, "mode": mode}
