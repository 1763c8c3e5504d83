"""Application errors and the JSON error envelope.

Every failure leaves the API as::

    {"success": false, "message": "...", "errors": ["..."]}

``errors`` is present only when there is per-field detail to report.
Services and routers raise ``AppError``; request validation, auth guards
and unexpected exceptions are folded into the same shape by the handlers
registered in ``install_error_handlers``.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """A failure with an HTTP status and optional validation detail."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors


class NotFoundError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ConflictError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class BadRequestError(AppError):
    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST, errors)


def error_body(message: str, errors: list[str] | None = None) -> dict:
    body: dict[str, object] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def _describe_validation_error(err: dict) -> str:
    # loc is e.g. ("body", "email") or ("path", "user_id")
    loc = [str(part) for part in err.get("loc", ()) if part not in ("body",)]
    field = ".".join(loc[1:] if loc and loc[0] in ("path", "query") else loc)
    msg = err.get("msg", "Invalid value")
    return f"{field}: {msg}" if field else msg


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning(
            "%s %s rejected (%d): %s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.message,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.errors),
    )


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [_describe_validation_error(e) for e in exc.errors()]
    logger.warning(
        "%s %s validation failed: %s", request.method, request.url.path, errors
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Validation failed", errors),
    )


async def _http_exception_handler(
    request: Request, exc: HTTPException
) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message),
        headers=getattr(exc, "headers", None),
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error"),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(
        RequestValidationError, _validation_error_handler  # type: ignore[arg-type]
    )
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)
