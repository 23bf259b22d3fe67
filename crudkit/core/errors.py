"""
Centralized error handling.

Every failure leaves the API as ``{"code", "message", "status": "Failed"}``
with the HTTP status equal to ``code``. CRUD operations raise; the handlers
registered here translate whatever reaches them.
"""

import logging
import re
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from crudkit.core.config import settings

logger = logging.getLogger(__name__)

GENERIC_SERVER_MESSAGE = "Something went wrong on server. Please try again."

# PostgreSQL: 'Key (slug)=(books) already exists.'
_PG_DUPLICATE_KEY = re.compile(r"Key \((?P<key>[^)]+)\)=\((?P<value>[^)]*)\) already exists")
# SQLite: 'UNIQUE constraint failed: categories.slug'
_SQLITE_DUPLICATE_KEY = re.compile(r"UNIQUE constraint failed: (?:\w+\.)?(?P<key>\w+)")


class ApiError(HTTPException):
    """
    Application error carrying its own HTTP code.

    Usage:
        raise ApiError.not_found("Product not found.")
    """

    def __init__(self, code: int, message: str):
        super().__init__(status_code=code, detail=message)
        self.code = code
        self.message = message
        self.status = "Failed"

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "status": self.status}

    def __repr__(self) -> str:
        return f"<ApiError(code={self.code}, message='{self.message}')>"

    @classmethod
    def bad_request(cls, message: str) -> "ApiError":
        return cls(400, message)

    @classmethod
    def unauthorized(cls, message: str) -> "ApiError":
        return cls(401, message)

    @classmethod
    def forbidden(cls, message: str) -> "ApiError":
        return cls(403, message)

    @classmethod
    def not_found(cls, message: str) -> "ApiError":
        return cls(404, message)

    @classmethod
    def conflict(cls, message: str) -> "ApiError":
        return cls(409, message)

    @classmethod
    def unprocessable(cls, message: str) -> "ApiError":
        return cls(422, message)

    @classmethod
    def server_error(cls, message: str) -> "ApiError":
        return cls(500, message)

    @classmethod
    def duplicate_field(cls, message: str) -> "ApiError":
        return cls(400, message)

    @classmethod
    def validation_error(cls, message: str) -> "ApiError":
        return cls(400, message)


def to_title_case(value: str) -> str:
    """'full_name' -> 'Full Name'"""
    return value.replace("_", " ").title()


def _is_unique_violation(error: IntegrityError) -> bool:
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == "23505":
        return True
    text = str(orig)
    return "UNIQUE constraint failed" in text or "duplicate key" in text


def duplicate_field_error(error: IntegrityError) -> Optional[ApiError]:
    """
    Translate a uniqueness violation into a DuplicateField error.

    Returns None when the integrity error is not a uniqueness violation.
    """
    if not _is_unique_violation(error):
        return None

    text = str(error.orig)
    match = _PG_DUPLICATE_KEY.search(text)
    if match:
        return ApiError.duplicate_field(
            f"{to_title_case(match.group('key'))} of {match.group('value')} already exists."
        )
    match = _SQLITE_DUPLICATE_KEY.search(text)
    if match:
        return ApiError.duplicate_field(f"{to_title_case(match.group('key'))} already exists.")
    return ApiError.duplicate_field("Duplicate value already exists.")


def _error_response(error: ApiError) -> JSONResponse:
    return JSONResponse(status_code=error.code, content=error.to_dict())


def _log_request(request: Request) -> None:
    if not settings.is_development:
        logger.info(f"Received a {request.method} request for {request.url}")


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    _log_request(request)
    logger.warning(f"{exc.code} {exc.message}")
    return _error_response(exc)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Routing errors raised by Starlette itself (unknown path, wrong method)."""
    _log_request(request)
    error = ApiError(exc.status_code, str(exc.detail))
    response = _error_response(error)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    _log_request(request)
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return _error_response(ApiError.unprocessable("; ".join(messages) or "Validation failed"))


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    _log_request(request)
    logger.error(f"Integrity error: {exc.orig}")
    duplicate = duplicate_field_error(exc)
    if duplicate is not None:
        return _error_response(duplicate)
    return await database_error_handler(request, exc)


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    _log_request(request)
    logger.error(f"Database error: {exc!r}", exc_info=exc)
    if settings.is_development:
        return _error_response(ApiError.server_error("Query Failed Error"))
    return _error_response(ApiError.server_error(GENERIC_SERVER_MESSAGE))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    _log_request(request)
    logger.error(f"Unhandled error: {exc!r}", exc_info=exc)
    if settings.is_development:
        return _error_response(ApiError.server_error(str(exc) or exc.__class__.__name__))
    return _error_response(ApiError.server_error(GENERIC_SERVER_MESSAGE))


def register_exception_handlers(app: FastAPI) -> None:
    """Install the error translators on the application."""
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
