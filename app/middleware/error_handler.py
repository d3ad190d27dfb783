"""
Every failure leaves the API as
``{"success": false, "message": ..., "error": {"code", "details", "field"}}``.
"""
import logging
import traceback

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from app.schemas.common import error_body
from app.utils.exceptions import AppException, ErrorCode

logger = logging.getLogger(__name__)

VALIDATION_MESSAGE = "Validation error. Please check your input."
CONFLICT_MESSAGE = "A record with this data already exists."
INTERNAL_MESSAGE = "An unexpected error occurred. Please try again later."


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    error = exc.detail.get("error") or {"code": ErrorCode.INTERNAL_SERVER_ERROR}
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "error": error},
        headers=exc.headers,
    )


def _field_of(loc) -> str:
    # loc looks like ("body", "email") or ("query", "token")
    parts = [str(p) for p in loc or () if p not in ("body", "query", "path")]
    return ".".join(parts) or "body"


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed input is a 400 listing one {field, message} per problem."""
    details = [
        {"field": _field_of(err.get("loc")), "message": err.get("msg", "Invalid value")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(VALIDATION_MESSAGE, ErrorCode.VALIDATION_ERROR, details=details),
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """A unique or foreign-key violation that no service turned into a ConflictException."""
    logger.warning(f"IntegrityError on {request.method} {request.url.path}: {exc.orig}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=error_body(CONFLICT_MESSAGE, ErrorCode.CONFLICT),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}\n"
        f"{traceback.format_exc()}"
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(INTERNAL_MESSAGE, ErrorCode.INTERNAL_SERVER_ERROR),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
