"""Error taxonomy of the library service and the handlers that render it.

Every failure a caller can cause is raised as a ``LibraryError`` subclass
and turned into a ``{"detail": ...}`` JSON body at the request boundary.
Database failures that are not a constraint violation are logged and
reported as a generic internal error.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger("elibrary.errors")


class LibraryError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(LibraryError):
    status_code = 400
    default_message = "Invalid request"


class UnauthorizedError(LibraryError):
    status_code = 401
    default_message = "Unauthorized"


class ForbiddenError(LibraryError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(LibraryError):
    status_code = 404
    default_message = "Not found"


class ConflictError(LibraryError):
    status_code = 409
    default_message = "Conflict"


def _error_response(status_code: int, message) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": message})


async def library_error_handler(request: Request, exc: LibraryError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _error_response(exc.status_code, exc.message)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        errors.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg"))
    return _error_response(400, "; ".join(errors) or "Invalid request")


async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("Integrity violation on %s %s: %s", request.method, request.url.path, exc.orig)
    return _error_response(409, "Request conflicts with existing data")


async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _error_response(500, "Internal server error")


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LibraryError, library_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
