"""
Translate service errors into the JSON envelope and HTTP status codes.

Status codes are a transport concern; services only raise typed errors.
"""

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ticketing.core.errors import (
    AccessDenied,
    ConflictError,
    LedgerUnavailable,
    NotFoundError,
    TicketingError,
    UserNotFound,
    ValidationError,
)
from ticketing.core.logging import get_logger
from ticketing.schemas.common import ErrorResponse

logger = get_logger(__name__)

RETRY_AFTER_SECONDS = 1


def status_for(error: TicketingError) -> int:
    # UserNotFound first: an unknown identity is an auth failure, not a 404
    if isinstance(error, UserNotFound):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(error, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, ValidationError):
        return 422
    if isinstance(error, ConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(error, AccessDenied):
        return status.HTTP_403_FORBIDDEN
    if isinstance(error, LedgerUnavailable):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(message: str, errors=None) -> dict:
    return ErrorResponse(message=message, errors=errors).model_dump(by_alias=True)


async def ticketing_error_handler(request: Request, exc: TicketingError) -> JSONResponse:
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None
    return JSONResponse(
        status_code=status_for(exc),
        content=jsonable_encoder(error_body(exc.message, exc.errors)),
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = {}
    for error in exc.errors():
        # loc is ("body", "quantity") or ("query", "page"); report the field
        loc = [str(part) for part in error.get("loc", ()) if not isinstance(part, int)]
        field = loc[1] if len(loc) > 1 else (loc[0] if loc else "body")
        errors.setdefault(field, error.get("msg", "Invalid value."))
    return JSONResponse(
        status_code=422,
        content=error_body("Validation failed.", errors),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def database_unavailable_handler(request: Request, exc: OperationalError) -> JSONResponse:
    # Lock or connection timeouts outside the ledger loop, e.g. on reads
    logger.error("database_unavailable", path=request.url.path, error=str(exc))
    return await ticketing_error_handler(request, LedgerUnavailable())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_error", error=str(exc), exc_info=exc)
    return JSONResponse(status_code=500, content=error_body("Internal server error."))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TicketingError, ticketing_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(OperationalError, database_unavailable_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
