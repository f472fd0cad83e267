"""
Indicator Alert API Endpoints.

GET  /api/v1/alerts                         — list alerts (filter by status / indicator)
GET  /api/v1/alerts/{alert_id}
POST /api/v1/alerts/{alert_id}/acknowledge  — OPEN → ACKNOWLEDGED
POST /api/v1/alerts/{alert_id}/resolve      — → RESOLVED
POST /api/v1/alerts/{alert_id}/dismiss      — → DISMISSED

Every transition needs a note; a lost race answers 409 with the current status.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.api.deps import get_db, get_organization_id, require_write
from riskregister.db.repositories import alert_repo
from riskregister.schemas.enums import LifecycleStatus
from riskregister.schemas.indicators import AlertResponse, TransitionRequest
from riskregister.services.indicators import indicator_service

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


@router.get("", response_model=list[AlertResponse])
async def list_alerts(
    status: Optional[LifecycleStatus] = None,
    indicator_id: Optional[uuid.UUID] = None,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await indicator_service.list_alerts(db, organization_id, status, indicator_id, offset, limit)


@router.get("/{alert_id}", response_model=AlertResponse)
async def get_alert(
    alert_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await alert_repo.get_or_404(db, alert_id, organization_id)


@router.post("/{alert_id}/acknowledge", response_model=AlertResponse)
async def acknowledge_alert(
    alert_id: uuid.UUID,
    body: TransitionRequest,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    return await indicator_service.acknowledge_alert(db, organization_id, alert_id, actor_id, body.note)


@router.post("/{alert_id}/resolve", response_model=AlertResponse)
async def resolve_alert(
    alert_id: uuid.UUID,
    body: TransitionRequest,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    return await indicator_service.resolve_alert(db, organization_id, alert_id, actor_id, body.note)


@router.post("/{alert_id}/dismiss", response_model=AlertResponse)
async def dismiss_alert(
    alert_id: uuid.UUID,
    body: TransitionRequest,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    return await indicator_service.dismiss_alert(db, organization_id, alert_id, actor_id, body.note)
