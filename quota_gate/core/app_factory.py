"""Application factory for the FastAPI app."""

from __future__ import annotations

from fastapi import FastAPI

from quota_gate.api.routes import health_router, root_router
from quota_gate.core.config import settings
from quota_gate.core.exception_handlers import setup_exception_handlers
from quota_gate.core.logging import configure_logging
from quota_gate.core.middleware import request_id_middleware


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Quota Gate",
        description=(
            "Per-identifier request admission with fixed 1-second windows and a "
            "block penalty, shared across instances through Redis. Requests are "
            "limited by the API_KEY header when present, otherwise by client address."
        ),
        version="0.1.0",
    )

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(root_router)
    app.include_router(health_router)

    return app
