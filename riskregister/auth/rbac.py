"""
Role-Based write authorization.

Authentication happens upstream. The gateway forwards the actor and role in
headers; this module only decides whether that role may write.

Defines:
- Role hierarchy (VIEWER < ANALYST < MANAGER < ADMIN)
- WriteAuthorizer: the collaborator interface the API calls before writes
- RoleAuthorizer: default implementation on the role hierarchy
"""

import uuid
from enum import IntEnum
from typing import Optional, Protocol

import structlog

from riskregister.errors import AuthorizationError

logger = structlog.get_logger(__name__)


class Role(IntEnum):
    """Ordered role hierarchy: higher value = more permissions."""

    VIEWER = 10
    ANALYST = 20
    MANAGER = 30
    ADMIN = 40

    @classmethod
    def from_str(cls, value: Optional[str]) -> "Role":
        """Convert a role name to Role, case-insensitive. Unknown names are VIEWER."""
        return cls.__members__.get((value or "").upper(), cls.VIEWER)


class WriteAuthorizer(Protocol):
    def can_write(
        self, actor_id: str, organization_id: uuid.UUID, role: Role, minimum: Role = Role.ANALYST
    ) -> bool:
        ...


class RoleAuthorizer:
    """Writes need ANALYST; committing a period or approving appetite needs more."""

    def can_write(
        self, actor_id: str, organization_id: uuid.UUID, role: Role, minimum: Role = Role.ANALYST
    ) -> bool:
        return bool(actor_id) and role >= minimum


def check_write(
    authorizer: WriteAuthorizer,
    actor_id: str,
    organization_id: uuid.UUID,
    role: Role,
    minimum: Role = Role.ANALYST,
) -> None:
    """Raise AuthorizationError if the authorizer refuses the write."""
    if not authorizer.can_write(actor_id, organization_id, role, minimum):
        logger.warning(
            "write_denied",
            actor_id=actor_id,
            organization_id=str(organization_id),
            role=role.name,
            required_role=minimum.name,
        )
        raise AuthorizationError(
            f"role {role.name.lower()} may not perform this write; {minimum.name.lower()} required"
        )
