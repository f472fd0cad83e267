"""
Risk Appetite API Endpoints.

POST /api/v1/appetite/statements                              — new DRAFT statement
GET  /api/v1/appetite/statements
POST /api/v1/appetite/statements/{statement_id}/categories    — set a category's appetite
GET  /api/v1/appetite/statements/{statement_id}/categories
GET  /api/v1/appetite/statements/{statement_id}/validation    — chain gaps
POST /api/v1/appetite/statements/{statement_id}/approve       — DRAFT → APPROVED (ADMIN)
POST /api/v1/appetite/statements/{statement_id}/archive
GET  /api/v1/appetite/status                                  — GetEnterpriseAppetiteStatus
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.api.deps import get_db, get_organization_id, require_admin, require_manager
from riskregister.schemas.tolerance import (
    AppetiteCategoryCreate,
    AppetiteCategoryResponse,
    ChainValidation,
    EnterpriseStatus,
    StatementCreate,
    StatementResponse,
)
from riskregister.services.appetite import appetite_service
from riskregister.services.tolerance import tolerance_service

router = APIRouter(prefix="/api/v1/appetite", tags=["appetite"])


@router.post("/statements", response_model=StatementResponse, status_code=201)
async def create_statement(
    body: StatementCreate,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_manager),
):
    return await appetite_service.create_statement(db, organization_id, body, created_by=actor_id)


@router.get("/statements", response_model=list[StatementResponse])
async def list_statements(
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await appetite_service.list_statements(db, organization_id)


@router.post(
    "/statements/{statement_id}/categories",
    response_model=AppetiteCategoryResponse,
    status_code=201,
)
async def add_category(
    statement_id: uuid.UUID,
    body: AppetiteCategoryCreate,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_manager),
):
    return await appetite_service.add_category(db, organization_id, statement_id, body)


@router.get("/statements/{statement_id}/categories", response_model=list[AppetiteCategoryResponse])
async def list_categories(
    statement_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await appetite_service.list_categories(db, organization_id, statement_id)


@router.get("/statements/{statement_id}/validation", response_model=ChainValidation)
async def validate_chain(
    statement_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await appetite_service.validate_chain(db, organization_id, statement_id)


@router.post("/statements/{statement_id}/approve", response_model=StatementResponse)
async def approve_statement(
    statement_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_admin),
):
    return await appetite_service.approve_statement(db, organization_id, statement_id, approver=actor_id)


@router.post("/statements/{statement_id}/archive", response_model=StatementResponse)
async def archive_statement(
    statement_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_manager),
):
    return await appetite_service.archive_statement(db, organization_id, statement_id)


@router.get("/status", response_model=EnterpriseStatus)
async def enterprise_status(
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await tolerance_service.get_enterprise_status(db, organization_id)
