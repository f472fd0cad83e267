"""
Tolerance API Endpoints.

POST /api/v1/tolerances                                 — save a configuration (bands validated)
GET  /api/v1/tolerances/{tolerance_id}
PUT  /api/v1/tolerances/{tolerance_id}/thresholds       — replace bands
POST /api/v1/tolerances/{tolerance_id}/deactivate
POST /api/v1/tolerances/{tolerance_id}/evaluate         — EvaluateToleranceMetric (nothing stored)
POST /api/v1/tolerances/{tolerance_id}/observations     — record a direct value
GET  /api/v1/tolerances/{tolerance_id}/status           — current metric status
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.api.deps import get_db, get_organization_id, require_manager, require_write
from riskregister.db.repositories import tolerance_repo
from riskregister.schemas.tolerance import (
    EvaluateRequest,
    EvaluateResponse,
    MetricStatus,
    ObservationCreate,
    ObservationResult,
    ThresholdsUpdate,
    ToleranceCreate,
    ToleranceResponse,
)
from riskregister.services.tolerance import tolerance_service

router = APIRouter(prefix="/api/v1/tolerances", tags=["tolerances"])


@router.post("", response_model=ToleranceResponse, status_code=201)
async def save_tolerance(
    body: ToleranceCreate,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_manager),
):
    return await tolerance_service.save_configuration(db, organization_id, body)


@router.get("/{tolerance_id}", response_model=ToleranceResponse)
async def get_tolerance(
    tolerance_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await tolerance_repo.get_or_404(db, tolerance_id, organization_id)


@router.put("/{tolerance_id}/thresholds", response_model=ToleranceResponse)
async def update_thresholds(
    tolerance_id: uuid.UUID,
    body: ThresholdsUpdate,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_manager),
):
    return await tolerance_service.update_thresholds(db, organization_id, tolerance_id, body)


@router.post("/{tolerance_id}/deactivate", response_model=ToleranceResponse)
async def deactivate_tolerance(
    tolerance_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_manager),
):
    return await tolerance_service.deactivate(db, organization_id, tolerance_id)


@router.post("/{tolerance_id}/evaluate", response_model=EvaluateResponse)
async def evaluate_metric(
    tolerance_id: uuid.UUID,
    body: EvaluateRequest,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    status = await tolerance_service.evaluate_metric(
        db, organization_id, tolerance_id, body.value, body.prior_value
    )
    return EvaluateResponse(tolerance_id=tolerance_id, value=body.value, status=status)


@router.post("/{tolerance_id}/observations", response_model=ObservationResult, status_code=201)
async def record_observation(
    tolerance_id: uuid.UUID,
    body: ObservationCreate,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    return await tolerance_service.record_observation(
        db, organization_id, tolerance_id, body.value, body.observed_at, recorded_by=actor_id
    )


@router.get("/{tolerance_id}/status", response_model=MetricStatus)
async def metric_status(
    tolerance_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    tolerance = await tolerance_repo.get_or_404(db, tolerance_id, organization_id)
    return await tolerance_service.metric_status(db, tolerance)
