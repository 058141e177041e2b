"""Registration API routes."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ...app import Application
from ...errors import ValidationError
from ...rate_limit import raise_if_denied
from ..responses import rate_limit_headers
from ..sse import client_address


def create_registration_router(app: Application) -> APIRouter:
    """Create registration router."""
    router = APIRouter(prefix="/api", tags=["registration"])

    @router.post("/register")
    async def register(request: Request) -> JSONResponse:
        """Issue an API key for an email, or reactivate the existing one."""
        admission = app.limiter.check_address(client_address(request))
        raise_if_denied(admission)
        headers = rate_limit_headers(app.limiter, admission)

        try:
            body = await request.json()
        except ValueError:  # malformed JSON or undecodable bytes
            raise ValidationError("Request body must be JSON")
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")

        credential, reactivated = await app.registry.register(body.get("email"))

        if reactivated:
            return JSONResponse(
                status_code=200,
                headers=headers,
                content={
                    "key": credential.key,
                    "email": credential.email,
                    "message": "Your existing API key has been reactivated",
                },
            )

        return JSONResponse(
            status_code=201,
            headers=headers,
            content={
                "key": credential.key,
                "email": credential.email,
                "created_at": credential.created_at.isoformat(),
            },
        )

    return router
