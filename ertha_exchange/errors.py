# ertha_exchange/errors.py
"""Domain errors and the handlers that turn every failure into the JSON envelope."""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ertha_exchange.config import get_settings
from ertha_exchange.utils.helpers import api_response

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Business-rule failure raised from the service layer."""

    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.data = data


class BadRequestError(AppError):
    status_code = 400


class UnauthorizedError(AppError):
    status_code = 401


class ForbiddenError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


class PaymentGatewayError(AppError):
    status_code = 502


def _envelope(status_code: int, message: str, data: Any = None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=api_response(data=data, message=message, success=False),
        headers=headers,
    )


def _field_name(loc) -> str:
    # drop the "body"/"query"/"path" source marker
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) or "request"


def format_validation_errors(errors) -> list:
    return [{"field": _field_name(err.get("loc", ())), "message": err.get("msg", "Invalid value")}
            for err in errors]


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _envelope(exc.status_code, exc.message, exc.data)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = format_validation_errors(exc.errors())
        message = ", ".join(f"{e['field']}: {e['message']}" for e in errors)
        return _envelope(400, message, {"errors": errors})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = f"Can't find {request.url.path} on this server!"
        else:
            message = str(exc.detail)
        return _envelope(exc.status_code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
        logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
        return _envelope(409, "Resource already exists or violates a constraint")

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
        return _envelope(500, "Database operation failed")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        message = "Internal server error"
        if not get_settings().is_production:
            message = f"{message}: {exc}"
        return _envelope(500, message)
