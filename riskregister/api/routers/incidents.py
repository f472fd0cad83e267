"""
Incident API Endpoints.

POST /api/v1/incidents   — record a loss event, optionally against a risk
GET  /api/v1/incidents
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.api.deps import get_db, get_organization_id, require_write
from riskregister.db.models import Incident
from riskregister.schemas.register import IncidentCreate, IncidentResponse
from riskregister.services.register import register_service

router = APIRouter(prefix="/api/v1/incidents", tags=["incidents"])


@router.post("", response_model=IncidentResponse, status_code=201)
async def record_incident(
    body: IncidentCreate,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    return await register_service.record_incident(db, organization_id, body)


@router.get("", response_model=list[IncidentResponse])
async def list_incidents(
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    result = await db.execute(
        select(Incident)
        .where(Incident.organization_id == organization_id)
        .order_by(Incident.occurred_at.desc())
        .limit(limit)
    )
    return result.scalars().all()
