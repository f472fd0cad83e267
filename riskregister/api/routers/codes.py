"""
Identifier API Endpoints.

POST /api/v1/codes   — allocate the next code for an entity kind (CreateEntityCode)
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.api.deps import get_db, get_organization_id, require_write
from riskregister.schemas.register import CodeRequest, CodeResponse
from riskregister.services.codes import create_entity_code
from riskregister.services.register import get_organization

router = APIRouter(prefix="/api/v1/codes", tags=["codes"])


@router.post("", response_model=CodeResponse, status_code=201)
async def allocate_code(
    body: CodeRequest,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    await get_organization(db, organization_id)
    generated = await create_entity_code(db, organization_id, body.entity_kind, body.prefix_parts)
    return CodeResponse(code=generated.code, prefix=generated.prefix, sequence=generated.sequence)
