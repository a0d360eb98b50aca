"""
Exceptions and the HTTP boundary translator.

Domain code raises the typed exceptions below; `register_exception_handlers`
maps each one to its status code and a structured error body:

    {status, error, message, timestamp, path, stackTrace?}

Client-induced failures are logged at WARNING, server and database failures
at ERROR with the traceback.
"""
import os
import logging
import traceback
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

# Include stack traces and raw messages in error bodies (development only)
DEBUG_STACKTRACE = os.getenv("APP_DEBUG_STACKTRACE", "false").lower() == "true"


class CustomerServiceException(Exception):
    """Base class for errors that map onto an HTTP status."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    client_error: bool = False

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        if cause is not None:
            self.__cause__ = cause

    @property
    def error(self) -> str:
        return type(self).__name__


class BadRequestException(CustomerServiceException):
    """Malformed or invalid input."""
    status_code = status.HTTP_400_BAD_REQUEST
    client_error = True


class UnauthorizedException(CustomerServiceException):
    """Missing or invalid credentials."""
    status_code = status.HTTP_401_UNAUTHORIZED
    client_error = True


class ForbiddenException(CustomerServiceException):
    """Authenticated, but not allowed to touch this resource."""
    status_code = status.HTTP_403_FORBIDDEN
    client_error = True


class CustomerNotFoundException(CustomerServiceException):
    status_code = status.HTTP_404_NOT_FOUND
    client_error = True


class InternalServerException(CustomerServiceException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class DatabaseException(CustomerServiceException):
    """The persistence layer is unavailable or failing."""
    status_code = status.HTTP_502_BAD_GATEWAY


class ErrorResponse(BaseModel):
    """Error body returned for every failed request."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: int
    error: str
    message: str
    timestamp: datetime
    path: str
    stack_trace: Optional[str] = None


def error_response(
    status_code: int,
    error: str,
    message: str,
    path: str,
    exc: Optional[BaseException] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    """Build the JSON error response. Also used by the auth middleware."""
    body = ErrorResponse(
        status=status_code,
        error=error,
        message=message,
        timestamp=datetime.now(timezone.utc),
        path=path,
        stack_trace=_stack_trace(exc) if DEBUG_STACKTRACE and exc is not None else None,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
        headers=headers,
    )


def _stack_trace(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


async def handle_service_exception(request: Request, exc: CustomerServiceException) -> JSONResponse:
    if exc.client_error:
        logger.warning(f"{exc.error}: {exc.message} | Path: {request.url.path}")
    else:
        logger.error(f"{exc.error}: {exc.message} | Path: {request.url.path}", exc_info=exc)

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedException) else None
    return error_response(exc.status_code, exc.error, exc.message, request.url.path, exc, headers)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else err.get("msg", ""))
    message = "; ".join(messages) or "Invalid request"
    logger.warning(f"BadRequestException: {message} | Path: {request.url.path}")
    return error_response(
        status.HTTP_400_BAD_REQUEST, "BadRequestException", message, request.url.path, exc
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning(f"HTTP {exc.status_code}: {exc.detail} | Path: {request.url.path}")
    return error_response(
        exc.status_code, "HTTPException", str(exc.detail), request.url.path, exc,
        getattr(exc, "headers", None),
    )


async def handle_unknown_exception(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unknown exception occurred: {exc} | Path: {request.url.path}", exc_info=exc)
    message = f"An unexpected error occurred: {exc}" if DEBUG_STACKTRACE else "An unexpected error occurred"
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, type(exc).__name__, message, request.url.path, exc
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the boundary translator on the app."""
    app.add_exception_handler(CustomerServiceException, handle_service_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unknown_exception)
