"""
Tenant Context Middleware.

Authentication is done by the upstream gateway, which forwards:
    X-Organization-ID   organization the request acts on (UUID)
    X-Actor-ID          who is acting
    X-Actor-Role        viewer | analyst | manager | admin

Requests to the API without a valid organization header are refused here;
every repository query is then filtered by request.state.organization_id.
"""

import uuid

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from riskregister.errors import ValidationError

logger = structlog.get_logger(__name__)

PUBLIC_PATHS = frozenset({
    "/health",
    "/ready",
    "/docs",
    "/openapi.json",
    "/redoc",
})

# Creating an organization happens before there is a tenant to name.
BOOTSTRAP_PATHS = frozenset({
    ("POST", "/api/v1/organizations"),
})


class TenantMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if request.method == "OPTIONS" or path.rstrip("/") in PUBLIC_PATHS:
            return await call_next(request)
        if (request.method, path.rstrip("/")) in BOOTSTRAP_PATHS:
            return await call_next(request)

        raw = request.headers.get("X-Organization-ID", "")
        try:
            organization_id = uuid.UUID(raw)
        except ValueError:
            logger.warning("tenant_header_invalid", path=path, value=raw[:64])
            error = ValidationError(
                "X-Organization-ID header must be a UUID", field="X-Organization-ID"
            )
            body = error.to_response(request_id=getattr(request.state, "request_id", None))
            return JSONResponse(status_code=error.status_code, content=body.model_dump(mode="json"))

        request.state.organization_id = organization_id
        request.state.actor_id = request.headers.get("X-Actor-ID", "").strip() or None
        request.state.actor_role = request.headers.get("X-Actor-Role", "viewer")
        structlog.contextvars.bind_contextvars(
            organization_id=str(organization_id),
            actor_id=request.state.actor_id,
        )
        return await call_next(request)
