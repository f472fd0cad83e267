"""
Indicator API Endpoints.

POST /api/v1/indicators                                  — create an indicator (KRI/KCI code)
GET  /api/v1/indicators                                  — list indicators
POST /api/v1/indicators/{indicator_id}/measurements      — RecordMeasurement
GET  /api/v1/indicators/{indicator_id}/measurements      — measurement history
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.api.deps import get_db, get_organization_id, require_write
from riskregister.db.repositories import indicator_repo
from riskregister.schemas.indicators import MeasurementCreate, MeasurementResponse, MeasurementResult
from riskregister.schemas.register import IndicatorCreate, IndicatorResponse
from riskregister.services.indicators import indicator_service
from riskregister.services.register import register_service

router = APIRouter(prefix="/api/v1/indicators", tags=["indicators"])


@router.post("", response_model=IndicatorResponse, status_code=201)
async def create_indicator(
    body: IndicatorCreate,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    return await register_service.create_indicator(db, organization_id, body)


@router.get("", response_model=list[IndicatorResponse])
async def list_indicators(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await indicator_repo.list(db, organization_id, offset=offset, limit=limit)


@router.post("/{indicator_id}/measurements", response_model=MeasurementResult, status_code=201)
async def record_measurement(
    indicator_id: uuid.UUID,
    body: MeasurementCreate,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    return await indicator_service.record_measurement(
        db, organization_id, indicator_id, body, recorded_by=actor_id
    )


@router.get("/{indicator_id}/measurements", response_model=list[MeasurementResponse])
async def list_measurements(
    indicator_id: uuid.UUID,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await indicator_service.list_measurements(db, organization_id, indicator_id, offset, limit)
