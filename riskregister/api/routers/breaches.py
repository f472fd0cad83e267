"""
Tolerance Breach API Endpoints.

GET  /api/v1/breaches                                — list breaches
GET  /api/v1/breaches/{breach_id}
POST /api/v1/breaches/{breach_id}/acknowledge
POST /api/v1/breaches/{breach_id}/resolve
POST /api/v1/breaches/{breach_id}/dismiss
POST /api/v1/breaches/{breach_id}/accept-exception   — board-accepted exception (ADMIN)
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.api.deps import get_db, get_organization_id, require_admin, require_write
from riskregister.db.repositories import breach_repo
from riskregister.schemas.enums import LifecycleStatus
from riskregister.schemas.indicators import TransitionRequest
from riskregister.schemas.tolerance import AcceptExceptionRequest, BreachResponse
from riskregister.services.tolerance import tolerance_service

router = APIRouter(prefix="/api/v1/breaches", tags=["breaches"])


@router.get("", response_model=list[BreachResponse])
async def list_breaches(
    status: Optional[LifecycleStatus] = None,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await tolerance_service.list_breaches(db, organization_id, status, offset, limit)


@router.get("/{breach_id}", response_model=BreachResponse)
async def get_breach(
    breach_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await breach_repo.get_or_404(db, breach_id, organization_id)


@router.post("/{breach_id}/acknowledge", response_model=BreachResponse)
async def acknowledge_breach(
    breach_id: uuid.UUID,
    body: TransitionRequest,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    return await tolerance_service.acknowledge_breach(db, organization_id, breach_id, actor_id, body.note)


@router.post("/{breach_id}/resolve", response_model=BreachResponse)
async def resolve_breach(
    breach_id: uuid.UUID,
    body: TransitionRequest,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    return await tolerance_service.resolve_breach(db, organization_id, breach_id, actor_id, body.note)


@router.post("/{breach_id}/dismiss", response_model=BreachResponse)
async def dismiss_breach(
    breach_id: uuid.UUID,
    body: TransitionRequest,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    return await tolerance_service.dismiss_breach(db, organization_id, breach_id, actor_id, body.note)


@router.post("/{breach_id}/accept-exception", response_model=BreachResponse)
async def accept_exception(
    breach_id: uuid.UUID,
    body: AcceptExceptionRequest,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_admin),
):
    return await tolerance_service.accept_exception(
        db, organization_id, breach_id, actor_id, body.note, body.expires_at
    )
