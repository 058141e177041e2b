"""FastAPI application setup."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..app import Application
from ..errors import CommonsError
from .responses import commons_error_handler
from .routes import health, messages, registration, sessions


# Global application instance
_app: Application | None = None


def get_app() -> Application:
    """Get the global application instance."""
    global _app
    if not _app:
        _app = Application()
    return _app


def create_fastapi_app(application: Application | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Without an explicit ``application`` the process-wide one from
    ``get_app()`` is used.
    """
    if application is None:
        application = get_app()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifespan."""
        await application.start()
        yield
        await application.stop()

    fastapi_app = FastAPI(
        title="Agora Commons API",
        description="Public append-only message commons with streaming sessions",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Enable CORS
    origins = application.settings.cors_origins
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "Mcp-Session-Id",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
    )

    fastapi_app.add_exception_handler(CommonsError, commons_error_handler)

    # Include routers
    fastapi_app.include_router(health.create_health_router(application))
    fastapi_app.include_router(registration.create_registration_router(application))
    fastapi_app.include_router(messages.create_messages_router(application))
    fastapi_app.include_router(sessions.create_sessions_router(application))

    return fastapi_app
