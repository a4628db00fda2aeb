from fastapi import HTTPException, status

from ..services.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ServiceError,
    TransientError,
    ValidationError,
)

_STATUS_CODES = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    TransientError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def http_error(exc: ServiceError) -> HTTPException:
    code = _STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=code, detail=exc.reason)
