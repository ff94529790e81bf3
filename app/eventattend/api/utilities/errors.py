import logging

from fastapi import HTTPException, status

from ...services.errors import (
    ConflictError, NotFoundError, ServiceError, StateError, StorageError, ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (StateError, status.HTTP_400_BAD_REQUEST),
    (StorageError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def to_http_exception(error: ServiceError) -> HTTPException:
    """Maps a service-layer error onto the HTTP status the API reports for it."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    logger.warning(f"Unmapped service error {type(error).__name__}: {error}")
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
