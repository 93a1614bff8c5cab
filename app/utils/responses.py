"""
Standardized response utilities
"""

from typing import Any, Optional
from fastapi import HTTPException, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.errors import (
    AdmissionError,
    EventFull,
    EventNotFound,
    InvalidPayload,
    LifecycleError,
    EventAlreadyExists,
    InvalidPartner,
    MissingGuestIdentity,
    OwnerAlreadyExists,
    OwnerCreationRequiresPassword,
    StorageError,
    UploadLimitReached,
)
from app.schemas.common import StandardResponse, ErrorDetails, ErrorResponse

ERROR_STATUS = {
    EventNotFound: status.HTTP_404_NOT_FOUND,
    MissingGuestIdentity: status.HTTP_400_BAD_REQUEST,
    InvalidPayload: status.HTTP_422_UNPROCESSABLE_ENTITY,
    EventFull: status.HTTP_409_CONFLICT,
    UploadLimitReached: status.HTTP_409_CONFLICT,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
    OwnerCreationRequiresPassword: status.HTTP_422_UNPROCESSABLE_ENTITY,
    OwnerAlreadyExists: status.HTTP_409_CONFLICT,
    EventAlreadyExists: status.HTTP_409_CONFLICT,
    InvalidPartner: status.HTTP_403_FORBIDDEN,
}

def success_response(
    message: str,
    data: Any = None,
    status_code: int = 200
) -> JSONResponse:
    """Create standardized success response"""
    response = StandardResponse(
        success=True,
        message=message,
        data=data
    )
    return JSONResponse(
        content=jsonable_encoder(response),
        status_code=status_code
    )

def error_response(
    message: str,
    error_code: Optional[str] = None,
    details: Any = None,
    status_code: int = 400
) -> JSONResponse:
    """Create standardized error response"""
    response = ErrorResponse(
        message=message,
        error_code=error_code,
        details=details
    )
    return JSONResponse(
        content=jsonable_encoder(response),
        status_code=status_code
    )

def domain_error_response(exc: Exception) -> JSONResponse:
    """Map an AdmissionError or LifecycleError onto an error response"""
    details = None
    if isinstance(exc, StorageError):
        details = ErrorDetails(retryable=exc.retryable, reason=exc.reason)
    elif isinstance(exc, AdmissionError):
        details = ErrorDetails(retryable=exc.retryable)
    return error_response(
        message=str(exc),
        error_code=getattr(exc, "code", None),
        details=details,
        status_code=ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    )

def rate_limit_error():
    """Create rate limit error"""
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Please try again later."
    )
