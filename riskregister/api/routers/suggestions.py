"""
AI Suggestion API Endpoints.

POST /api/v1/suggestions   — submit a suggested risk, control or tolerance

The suggestion is validated and created exactly like a manual submission;
refusals answer with the same error a manual request would get.
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.api.deps import get_db, get_organization_id, require_write
from riskregister.schemas.suggestions import SuggestionIn, SuggestionOutcome
from riskregister.services.suggestions import suggestion_intake

router = APIRouter(prefix="/api/v1/suggestions", tags=["suggestions"])


@router.post("", response_model=SuggestionOutcome, status_code=201)
async def submit_suggestion(
    body: SuggestionIn,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    actor_id: str = Depends(require_write),
):
    return await suggestion_intake.accept(db, organization_id, actor_id, body)
