"""Pydantic schemas for request/response validation."""

from .document import DocumentResponse, DocumentUpdateRequest, DocumentWriteResponse
from .index_definition import (
    IndexCreate,
    IndexResponse,
    IndexSourceSchema,
    IndexUpdate,
    SourceRemovalResponse,
)
from .queue import CollectionQueueStats, QueueEntryResponse
from .search import MatchedKey, MergedMatchedKey, SearchHit, SearchRequest, SearchResponse

__all__ = [
    "CollectionQueueStats",
    "DocumentResponse",
    "DocumentUpdateRequest",
    "DocumentWriteResponse",
    "IndexCreate",
    "IndexResponse",
    "IndexSourceSchema",
    "IndexUpdate",
    "MatchedKey",
    "MergedMatchedKey",
    "QueueEntryResponse",
    "SearchHit",
    "SearchRequest",
    "SearchResponse",
    "SourceRemovalResponse",
]
