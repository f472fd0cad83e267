"""
Organization API Endpoints.

POST /api/v1/organizations            — create an organization (no tenant header)
GET  /api/v1/organizations/current    — the organization named by X-Organization-ID
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.api.deps import get_db, get_organization_id
from riskregister.schemas.register import OrganizationCreate, OrganizationResponse
from riskregister.services.register import get_organization, register_service

router = APIRouter(prefix="/api/v1/organizations", tags=["organizations"])


@router.post("", response_model=OrganizationResponse, status_code=201)
async def create_organization(body: OrganizationCreate, db: AsyncSession = Depends(get_db)):
    return await register_service.create_organization(
        db, body.name, body.slug, body.likelihood_scale, body.impact_scale
    )


@router.get("/current", response_model=OrganizationResponse)
async def current_organization(
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await get_organization(db, organization_id)
