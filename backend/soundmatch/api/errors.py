"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from soundmatch.api.request_id import get_request_id
from soundmatch.domain.matching.exceptions import (
    InvalidMatchAction,
    LocationMissing,
    MatchingError,
    MatchNotFound,
    SelfMatch,
    UpstreamCatalogUnavailable,
)

_LOG = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[MatchingError], int], ...] = (
    (LocationMissing, 400),
    (SelfMatch, 400),
    (MatchNotFound, 404),
    (InvalidMatchAction, 422),
    (UpstreamCatalogUnavailable, 503),
)


def status_for(exc: MatchingError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": exc.detail, "request_id": rid}
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": "validation_error", "errors": jsonable_encoder(exc.errors()), "request_id": rid}
        return JSONResponse(status_code=422, content=payload)

    @app.exception_handler(MatchingError)
    async def matching_exc_handler(request: Request, exc: MatchingError):  # type: ignore[override]
        rid = get_request_id(request)
        status_code = status_for(exc)
        if status_code >= 500:
            _LOG.error("matching.unhandled_error", extra={"reason": exc.reason})
        payload = {
            "detail": exc.reason,
            "message": getattr(exc, "message", None) or exc.reason.replace("_", " "),
            "request_id": rid,
        }
        return JSONResponse(status_code=status_code, content=payload)
