"""Domain exceptions raised by the indexing services.

Routers translate these into HTTP responses; the reconciler and the
dispatcher use them to decide whether an entry is retried, skipped or
left pending for the next pass.
"""

from typing import Optional


class IndexingError(Exception):
    """Base class for all flatindex errors."""


class TransientIndexingError(IndexingError):
    """The search store was unreachable or a write failed unexpectedly.

    The queue entry stays pending and the attempt may be retried.
    """


class VersionConflict(IndexingError):
    """An optimistic write lost the race against a concurrent writer."""

    def __init__(
        self,
        search_index: str,
        doc_id: str,
        attempted_version: int,
        existing_version: Optional[int] = None,
    ) -> None:
        self.search_index = search_index
        self.doc_id = doc_id
        self.attempted_version = attempted_version
        self.existing_version = existing_version
        super().__init__(
            f"Version conflict on {search_index}/{doc_id}: "
            f"attempted={attempted_version} existing={existing_version}"
        )


class MalformedDocument(IndexingError):
    """A document could not be flattened."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot flatten value at '{path}': {reason}")


class SourceWriteFailure(IndexingError):
    """The write transaction against the document store aborted."""


class IndexConfigurationError(IndexingError):
    """An index definition or search index name is invalid."""


class IndexAlreadyExists(IndexingError):
    """An index definition with the same name is already registered."""


class IndexNotFound(IndexingError):
    """No index definition is registered under the requested name."""


class DocumentNotFound(IndexingError):
    """The requested source document does not exist."""


class SourceNotMonitored(IndexingError):
    """The (database, collection) pair is not monitored by the index."""


class RebuildInProgress(IndexingError):
    """Another rebuild of the same index holds the rebuild lock."""


__all__ = [
    "IndexingError",
    "TransientIndexingError",
    "VersionConflict",
    "MalformedDocument",
    "SourceWriteFailure",
    "IndexConfigurationError",
    "IndexAlreadyExists",
    "IndexNotFound",
    "DocumentNotFound",
    "SourceNotMonitored",
    "RebuildInProgress",
]
