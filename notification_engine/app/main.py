"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from notification_engine.app.exception_handlers import configure_exception_handlers
from notification_engine.app.lifespan import lifespan
from notification_engine.app.router import setup_routers
from notification_engine.core.settings import get_app_settings


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    app_settings = get_app_settings()

    app = FastAPI(
        title=app_settings.title,
        description=app_settings.description,
        version=app_settings.version,
        docs_url=app_settings.docs_url,
        openapi_url=app_settings.openapi_url,
        debug=app_settings.debug,
        lifespan=lifespan,
    )

    # Exception handlers first so router setup errors render as problem details
    configure_exception_handlers(app)
    setup_routers(app, app_settings)

    return app


# Application instance for uvicorn
app = create_app()
