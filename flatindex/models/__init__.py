"""SQLAlchemy ORM models package."""

from .index_definition import IndexDefinition, IndexSource
from .index_queue import IndexQueueEntry, IndexStatus
from .search_document import SearchDocument, SearchField, SearchIndex
from .source_document import SourceDocument

__all__ = [
    "IndexDefinition",
    "IndexQueueEntry",
    "IndexSource",
    "IndexStatus",
    "SearchDocument",
    "SearchField",
    "SearchIndex",
    "SourceDocument",
]
