"""
Risk Register API Endpoints.

POST   /api/v1/risks                               — create a risk (code generated)
GET    /api/v1/risks                               — list risks
GET    /api/v1/risks/{risk_id}                     — get one risk
GET    /api/v1/risks/{risk_id}/residual            — ComputeResidual
POST   /api/v1/risks/{risk_id}/close               — soft close
DELETE /api/v1/risks/{risk_id}                     — delete a never-snapshotted risk
POST   /api/v1/risks/{risk_id}/controls            — link a control
DELETE /api/v1/risks/{risk_id}/controls/{control_id}
POST   /api/v1/risks/{risk_id}/indicators          — link an indicator
GET    /api/v1/risks/{risk_id}/timeline            — snapshot history
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.api.deps import get_db, get_organization_id, require_write
from riskregister.db.repositories import risk_repo
from riskregister.schemas.enums import RiskStatus
from riskregister.schemas.periods import TimelineEntry
from riskregister.schemas.register import (
    CloseRiskRequest,
    LinkRequest,
    ResidualResponse,
    RiskCreate,
    RiskResponse,
)
from riskregister.services.periods import period_archiver
from riskregister.services.register import register_service

router = APIRouter(prefix="/api/v1/risks", tags=["risks"])


@router.post("", response_model=RiskResponse, status_code=201)
async def create_risk(
    body: RiskCreate,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    return await register_service.create_risk(db, organization_id, body)


@router.get("", response_model=list[RiskResponse])
async def list_risks(
    status: Optional[RiskStatus] = None,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await risk_repo.list(
        db, organization_id, offset=offset, limit=limit, status=status.value if status else None
    )


@router.get("/{risk_id}", response_model=RiskResponse)
async def get_risk(
    risk_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await risk_repo.get_or_404(db, risk_id, organization_id)


@router.get("/{risk_id}/residual", response_model=ResidualResponse)
async def compute_residual(
    risk_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await register_service.compute_residual(db, organization_id, risk_id)


@router.post("/{risk_id}/close", response_model=RiskResponse)
async def close_risk(
    risk_id: uuid.UUID,
    body: CloseRiskRequest,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    return await register_service.close_risk(db, organization_id, risk_id)


@router.delete("/{risk_id}", status_code=204)
async def delete_risk(
    risk_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    await register_service.delete_risk(db, organization_id, risk_id)


@router.post("/{risk_id}/controls", status_code=204)
async def link_control(
    risk_id: uuid.UUID,
    body: LinkRequest,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    await register_service.link_control(db, organization_id, risk_id, body.target_id)


@router.delete("/{risk_id}/controls/{control_id}", status_code=204)
async def unlink_control(
    risk_id: uuid.UUID,
    control_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    await register_service.unlink_control(db, organization_id, risk_id, control_id)


@router.post("/{risk_id}/indicators", status_code=204)
async def link_indicator(
    risk_id: uuid.UUID,
    body: LinkRequest,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    await register_service.link_indicator(db, organization_id, risk_id, body.target_id)


@router.get("/{risk_id}/timeline", response_model=list[TimelineEntry])
async def risk_timeline(
    risk_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await period_archiver.get_risk_timeline(db, organization_id, risk_id)
