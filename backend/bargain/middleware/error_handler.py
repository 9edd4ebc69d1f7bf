"""
Global error handling middleware.

WHAT: Translate exceptions to appropriate HTTP responses
WHY: Consistent error responses with proper status codes
HOW: FastAPI exception handlers keyed on the business exception taxonomy
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from datetime import datetime

from ..utils.exceptions import (
    BusinessException,
    NotFoundException,
    ForbiddenException,
    InvalidStateException,
    TurnLimitExceededException,
    InvalidOfferException,
    ValidationException,
    AuthenticationException,
    CapacityExceededException,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

STATUS_BY_EXCEPTION = [
    (NotFoundException, status.HTTP_404_NOT_FOUND),
    (ForbiddenException, status.HTTP_403_FORBIDDEN),
    (InvalidStateException, status.HTTP_409_CONFLICT),
    (TurnLimitExceededException, status.HTTP_429_TOO_MANY_REQUESTS),
    (InvalidOfferException, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ValidationException, status.HTTP_400_BAD_REQUEST),
    (AuthenticationException, status.HTTP_401_UNAUTHORIZED),
    (CapacityExceededException, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def _error_body(code: str, message: str, details=None) -> dict:
    return {
        "error": code,
        "message": message,
        "details": details,
        "timestamp": datetime.now().isoformat()
    }


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """
    Handle FastAPI RequestValidationError.

    WHAT: Request validation failed
    WHY: Invalid request payload
    HOW: Return 400 with field errors
    """
    logger.warning(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")

    # ctx may carry the raised ValueError, which is not JSON serializable
    cleaned_errors = []
    for error in exc.errors():
        cleaned_error = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
        }
        if "ctx" in error:
            cleaned_error["ctx"] = {
                k: str(v) if isinstance(v, Exception) else v
                for k, v in error["ctx"].items()
            }
        cleaned_errors.append(cleaned_error)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("VALIDATION_ERROR", "Request validation failed", cleaned_errors)
    )


async def business_exception_handler(request: Request, exc: BusinessException):
    """
    Handle BusinessException and subclasses.

    WHAT: Domain rejection (not found, forbidden, closed session, out of turns, bad offer)
    WHY: Clients branch on the error code, not the message text
    HOW: Status code from STATUS_BY_EXCEPTION; unknown subclasses fall back to 400
    """
    status_code = status.HTTP_400_BAD_REQUEST
    for exc_type, mapped in STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            status_code = mapped
            break

    logger.warning(f"Business exception on {request.method} {request.url.path}: {exc.code} - {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationException) else None
    return JSONResponse(
        status_code=status_code,
        content=_error_body(exc.code, exc.message, exc.details),
        headers=headers
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Handle anything else.

    Logs the traceback and returns a generic body without internals.
    """
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("INTERNAL_ERROR", "An unexpected error occurred")
    )


def register_exception_handlers(app):
    """
    Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(BusinessException, business_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    logger.info("Exception handlers registered")
