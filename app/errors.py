from __future__ import annotations

import logging
import os
import uuid

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from utils.request_context import clear_request_id, set_request_id


def _get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("x-request-id") or ""


def _envelope(request: Request, **content) -> dict:
    return {**content, "request_id": _get_request_id(request), "revision": os.getenv("K_REVISION") or ""}


def install_request_handling(app: FastAPI, log: logging.Logger) -> None:
    """Request-id middleware plus the JSON error envelope shared by both services."""

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        rid = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = rid
        set_request_id(rid)
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers["X-Request-Id"] = rid
        return response

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        log.warning(
            "http_exception",
            extra={"extra": {"event": "http_exception", "status_code": exc.status_code, "detail": exc.detail,
                             "path": request.url.path, "method": request.method,
                             "request_id": _get_request_id(request)}},
        )
        return JSONResponse(status_code=exc.status_code, content=_envelope(request, detail=exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        log.warning(
            "validation_error",
            extra={"extra": {"event": "validation_error", "path": request.url.path, "method": request.method,
                             "request_id": _get_request_id(request)}},
        )
        # errors() may carry non-JSON ctx values (e.g. the ValueError itself)
        errors = [{k: v for k, v in e.items() if k != "ctx"} for e in exc.errors()]
        return JSONResponse(status_code=422, content=_envelope(request, detail=errors))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        log.error(
            "internal_unhandled_exception",
            extra={"extra": {"event": "internal_unhandled_exception", "error_type": type(exc).__name__,
                             "message": str(exc), "path": request.url.path, "method": request.method,
                             "request_id": _get_request_id(request)}},
            exc_info=True,
        )
        return JSONResponse(status_code=500, content=_envelope(request, error="internal_unhandled_exception"))
