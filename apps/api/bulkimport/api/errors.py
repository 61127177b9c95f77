from fastapi import HTTPException

from bulkimport.services.error_codes import ErrorCode
from bulkimport.services.exceptions import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ServiceError,
    ValidationError,
)


def http_error_from_service(err: ServiceError) -> HTTPException:
    if isinstance(err, NotFoundError):
        status = 404
    elif isinstance(err, ConflictError):
        status = 409
    elif isinstance(err, ValidationError):
        status = 422
    elif isinstance(err, DependencyError):
        status = 502 if err.code == ErrorCode.COMPLETION_BACKEND_FAILED.value else 503
    else:
        status = 500

    return HTTPException(
        status_code=status,
        detail={"code": err.code, "message": err.message},
    )
