"""
Period API Endpoints.

GET  /api/v1/periods/active                     — the open reporting period
POST /api/v1/periods/commit                     — CommitPeriod (ADMIN)
GET  /api/v1/periods/commits                    — committed periods
GET  /api/v1/periods/{period}/snapshot          — GetHistoricalSnapshot
GET  /api/v1/periods/compare?a=..&b=..          — CompareSnapshots
GET  /api/v1/periods/migrations?a=..&b=..       — residual level band moves
GET  /api/v1/periods/trends                     — per-period counts by status and level

Period labels look like "Q3 2025" (URL-encode the space, or use "Q3-2025").
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.api.deps import get_db, get_organization_id, require_admin
from riskregister.schemas.periods import (
    ActivePeriodResponse,
    CommitRequest,
    CommitResult,
    PeriodCommitResponse,
    PeriodTrend,
    RiskMigration,
    SnapshotComparison,
    SnapshotResponse,
)
from riskregister.services.periods import period_archiver

router = APIRouter(prefix="/api/v1/periods", tags=["periods"])


@router.get("/active", response_model=ActivePeriodResponse)
async def active_period(
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await period_archiver.get_active_period(db, organization_id)


@router.post("/commit", response_model=CommitResult, status_code=201)
async def commit_period(
    body: CommitRequest,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_admin),
):
    return await period_archiver.commit_period(
        db, organization_id, body.period, actor_id, body.note, body.deadline_seconds
    )


@router.get("/commits", response_model=list[PeriodCommitResponse])
async def list_commits(
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await period_archiver.list_commits(db, organization_id)


@router.get("/compare", response_model=SnapshotComparison)
async def compare_snapshots(
    a: str = Query(..., description="earlier period, e.g. Q1-2025"),
    b: str = Query(..., description="later period, e.g. Q2-2025"),
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await period_archiver.compare_snapshots(db, organization_id, a, b)


@router.get("/migrations", response_model=list[RiskMigration])
async def analyze_migrations(
    a: str = Query(...),
    b: str = Query(...),
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await period_archiver.analyze_migrations(db, organization_id, a, b)


@router.get("/trends", response_model=list[PeriodTrend])
async def period_trends(
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await period_archiver.get_period_trends(db, organization_id)


@router.get("/{period}/snapshot", response_model=list[SnapshotResponse])
async def historical_snapshot(
    period: str,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await period_archiver.get_historical_snapshot(db, organization_id, period)
