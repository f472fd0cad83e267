"""
FastAPI dependencies: database session, tenant context and write checks.
"""

import uuid
from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.auth.rbac import Role, RoleAuthorizer, WriteAuthorizer, check_write
from riskregister.db.engine import get_session_factory
from riskregister.errors import ValidationError


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request; committed on success, rolled back on error."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_organization_id(request: Request) -> uuid.UUID:
    """Extract organization_id from request state (set by TenantMiddleware)."""
    organization_id = getattr(request.state, "organization_id", None)
    if organization_id is None:
        raise ValidationError("missing tenant context", field="X-Organization-ID")
    return organization_id


def get_actor_id(request: Request) -> str:
    actor_id = getattr(request.state, "actor_id", None)
    if not actor_id:
        raise ValidationError("X-Actor-ID header is required for writes", field="X-Actor-ID")
    return actor_id


def get_role(request: Request) -> Role:
    return Role.from_str(getattr(request.state, "actor_role", None))


_authorizer: WriteAuthorizer = RoleAuthorizer()


def get_authorizer() -> WriteAuthorizer:
    return _authorizer


def require_role(minimum: Role):
    """Dependency factory: the acting role must be allowed this write."""

    def dependency(
        organization_id: uuid.UUID = Depends(get_organization_id),
        actor_id: str = Depends(get_actor_id),
        role: Role = Depends(get_role),
        authorizer: WriteAuthorizer = Depends(get_authorizer),
    ) -> str:
        check_write(authorizer, actor_id, organization_id, role, minimum)
        return actor_id

    return dependency


require_write = require_role(Role.ANALYST)
require_manager = require_role(Role.MANAGER)
require_admin = require_role(Role.ADMIN)
