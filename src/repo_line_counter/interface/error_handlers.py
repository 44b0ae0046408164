"""Global exception handlers — translate domain errors to HTTP responses.

Each domain exception maps to a specific HTTP status code and the
``{"error": "..."}`` envelope.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from repo_line_counter.domain.exceptions import (
    EmptyRepositoryError,
    InvalidRepositoryUrlError,
    LineCounterError,
    RateLimitExceededError,
    RepositoryFetchError,
    RepositoryNotFoundError,
    RepositoryTooLargeError,
    ResourceExhaustedError,
)

logger = logging.getLogger(__name__)

_EXCEPTION_STATUS: list[tuple[type[LineCounterError], int]] = [
    (InvalidRepositoryUrlError, 400),
    (RepositoryTooLargeError, 400),
    (RepositoryNotFoundError, 404),
    (EmptyRepositoryError, 422),
    (RateLimitExceededError, 429),
    (RepositoryFetchError, 502),
    (ResourceExhaustedError, 500),
]


def _error_json(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _domain_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        logger.warning("%s: %s", type(exc).__name__, exc)
        return _error_json(status_code, str(exc))

    return handler


def register_error_handlers(app: FastAPI) -> None:
    """Attach exception handlers to the FastAPI application."""

    # ── Domain exceptions ───────────────────────────────────────────────

    for exc_type, code in _EXCEPTION_STATUS:
        app.add_exception_handler(exc_type, _domain_handler(code))

    # ── Pydantic / FastAPI validation errors ────────────────────────────

    @app.exception_handler(RequestValidationError)
    async def request_body_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        fields = {str(err["loc"][-1]) for err in exc.errors() if err.get("loc")}
        logger.info("Rejected request body on %s: %s", request.url.path, exc.errors())
        if "repoUrl" in fields:
            return _error_json(400, "repoUrl must be a string")
        return _error_json(400, "Invalid request body")

    # ── Catch-all for unexpected errors ─────────────────────────────────

    @app.exception_handler(Exception)
    async def generic_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception")
        return _error_json(500, "Failed to process repository")
