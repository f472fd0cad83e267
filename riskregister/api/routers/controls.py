"""
Control API Endpoints.

POST /api/v1/controls                      — create a control (code generated)
GET  /api/v1/controls                      — list controls with effectiveness
GET  /api/v1/controls/{control_id}
PUT  /api/v1/controls/{control_id}/scores  — update DIME scores
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.api.deps import get_db, get_organization_id, require_write
from riskregister.db.models import Control
from riskregister.db.repositories import control_repo
from riskregister.engine.effectiveness import control_effectiveness
from riskregister.schemas.register import ControlCreate, ControlResponse, ControlScoresUpdate
from riskregister.services.register import control_scores, register_service

router = APIRouter(prefix="/api/v1/controls", tags=["controls"])


def _to_response(control: Control) -> ControlResponse:
    response = ControlResponse.model_validate(control)
    response.effectiveness = control_effectiveness(control_scores(control))
    return response


@router.post("", response_model=ControlResponse, status_code=201)
async def create_control(
    body: ControlCreate,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    control = await register_service.create_control(db, organization_id, body)
    return _to_response(control)


@router.get("", response_model=list[ControlResponse])
async def list_controls(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    controls = await control_repo.list(db, organization_id, offset=offset, limit=limit)
    return [_to_response(c) for c in controls]


@router.get("/{control_id}", response_model=ControlResponse)
async def get_control(
    control_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return _to_response(await control_repo.get_or_404(db, control_id, organization_id))


@router.put("/{control_id}/scores", response_model=ControlResponse)
async def update_scores(
    control_id: uuid.UUID,
    body: ControlScoresUpdate,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    control = await register_service.update_control_scores(db, organization_id, control_id, body)
    return _to_response(control)
