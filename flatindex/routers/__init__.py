"""API routers package."""

from .index_documents import router as index_documents_router
from .index_queue import router as index_queue_router
from .index_search import router as index_search_router
from .indexes import router as indexes_router

__all__ = [
    "index_documents_router",
    "index_queue_router",
    "index_search_router",
    "indexes_router",
]
