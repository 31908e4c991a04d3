"""Translate domain exceptions into HTTP errors."""

from fastapi import HTTPException, status

from ..exceptions import (
    DocumentNotFound,
    IndexAlreadyExists,
    IndexConfigurationError,
    IndexingError,
    IndexNotFound,
    RebuildInProgress,
    SourceNotMonitored,
    SourceWriteFailure,
    TransientIndexingError,
)

_STATUS_BY_ERROR = (
    (IndexNotFound, status.HTTP_404_NOT_FOUND),
    (DocumentNotFound, status.HTTP_404_NOT_FOUND),
    (IndexAlreadyExists, status.HTTP_409_CONFLICT),
    (RebuildInProgress, status.HTTP_409_CONFLICT),
    (IndexConfigurationError, status.HTTP_400_BAD_REQUEST),
    (SourceNotMonitored, status.HTTP_400_BAD_REQUEST),
    (TransientIndexingError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (SourceWriteFailure, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def to_http_exception(exc: IndexingError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
