"""Core FastAPI application utilities shared across all services."""

from typing import Any

import fastapi

import common.log

# ---------------------------------------------------------------------------
# Health router
# ---------------------------------------------------------------------------

_health_router = fastapi.APIRouter()


@_health_router.api_route('/health', methods=['GET', 'HEAD'])
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {'status': 'healthy'}


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    title: str, app_logger: str | None = None, **kwargs: Any
) -> fastapi.FastAPI:
    """Create a FastAPI app with health endpoint and logging configured.

    ``app_logger`` names the package logger to configure from LOG_LEVEL.
    Additional keyword arguments are forwarded to FastAPI.__init__ (e.g. lifespan).
    """
    app = fastapi.FastAPI(title=title, **kwargs)
    common.log.configure_logging(app_logger)
    app.include_router(_health_router)
    return app
