"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from repo_line_counter.infrastructure.config import Settings, get_settings
from repo_line_counter.interface.dependencies import shutdown, startup
from repo_line_counter.interface.error_handlers import register_error_handlers
from repo_line_counter.interface.routes import router
from repo_line_counter.interface.security_headers import register_security_headers


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build and wire the FastAPI application."""
    resolved = settings or get_settings()

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Manage startup / shutdown of shared resources."""
        app.state.resources = await startup(resolved)
        yield
        await shutdown(app.state.resources)

    app = FastAPI(
        title="Repository Line Counter",
        version="1.0.0",
        description=(
            "Takes a public repository URL on an allow-listed git host and "
            "returns line counts per language for its default branch."
        ),
        lifespan=_lifespan,
    )

    register_error_handlers(app)
    register_security_headers(app)
    app.include_router(router)

    # ── Health check (simple liveness probe) ────────────────────────────

    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
