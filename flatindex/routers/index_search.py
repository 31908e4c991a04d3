"""Substring search API endpoint."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..exceptions import IndexingError
from ..schemas.search import SearchRequest, SearchResponse
from ..services.index_registry import IndexRegistry, get_index_registry
from ..services.search_matcher import SearchMatcher, get_search_matcher
from .errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/indexes", tags=["search"])


@router.post("/{index_name}/search", response_model=SearchResponse)
async def search_index(
    index_name: str,
    request: SearchRequest,
    db: AsyncSession = Depends(get_db),
    registry: IndexRegistry = Depends(get_index_registry),
    matcher: SearchMatcher = Depends(get_search_matcher),
):
    """Find documents whose flattened paths or values contain the query."""
    try:
        definition = await registry.require_index(db, index_name)
        results = await matcher.search(
            definition.search_index,
            request.query,
            search_in_paths=request.search_in_paths,
            search_in_values=request.search_in_values,
            page=request.page,
            page_size=request.page_size,
            merge=request.merge,
        )
    except IndexingError as e:
        raise to_http_exception(e)

    logger.info(
        "Search: index=%s query=%r total=%d page=%d",
        index_name, request.query, results["total"], request.page,
    )
    return {**results, "index": index_name}
