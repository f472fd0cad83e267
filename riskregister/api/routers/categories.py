"""
Risk Taxonomy API Endpoints.

POST /api/v1/categories   — create a parent category or a subcategory
GET  /api/v1/categories   — list categories
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.api.deps import get_db, get_organization_id, require_manager
from riskregister.db.repositories import category_repo
from riskregister.schemas.register import CategoryCreate, CategoryResponse
from riskregister.services.register import register_service

router = APIRouter(prefix="/api/v1/categories", tags=["taxonomy"])


@router.post("", response_model=CategoryResponse, status_code=201)
async def create_category(
    body: CategoryCreate,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_manager),
):
    return await register_service.create_category(db, organization_id, body)


@router.get("", response_model=list[CategoryResponse])
async def list_categories(
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
):
    return await category_repo.list(db, organization_id, limit=1000, order_by="name", descending=False)
