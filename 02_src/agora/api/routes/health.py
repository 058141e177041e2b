"""Health check route."""

from fastapi import APIRouter

from ...app import Application


def create_health_router(app: Application) -> APIRouter:
    """Create health router."""
    router = APIRouter(tags=["health"])

    @router.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "service": "agora-commons",
            "sessions": len(app.multiplexer),
            "feedConnected": app.consumer.connected,
        }

    return router
