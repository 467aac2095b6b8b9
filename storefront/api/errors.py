"""Error envelope shared by every route: ``{"success": false, "error": ...}``."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.settings import settings

logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    """HTTPException with an optional diagnostic shown only in debug mode."""

    def __init__(self, status_code: int, message: str, diagnostic: Optional[str] = None):
        super().__init__(status_code=status_code, detail=message)
        self.diagnostic = diagnostic


def _envelope(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error, **extra})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Missing or malformed fields are a 400 with one entry per problem."""
    details = []
    for err in exc.errors():
        field = ".".join(str(loc) for loc in err["loc"] if loc != "body") if err.get("loc") else "unknown"
        details.append({"field": field or "body", "message": err["msg"]})
    return _envelope(400, "validation_error", message="Invalid request data", details=details)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    extra = {}
    if settings.DEBUG and getattr(exc, "diagnostic", None):
        extra["detail"] = exc.diagnostic
    message = exc.detail if isinstance(exc.detail, str) else "error"
    return _envelope(exc.status_code, message, **extra)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all: log the traceback, never leak it."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    extra = {"detail": repr(exc)} if settings.DEBUG else {}
    return _envelope(500, "internal_error", **extra)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
