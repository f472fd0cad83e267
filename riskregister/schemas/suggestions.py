"""Pydantic schemas for AI-suggested drafts."""

import uuid
from typing import Any, Optional

from pydantic import BaseModel, Field

from riskregister.schemas.enums import SuggestionDecision, SuggestionKind


class SuggestionIn(BaseModel):
    """A draft proposed by an external AI provider. Untrusted."""
    kind: SuggestionKind
    payload: dict[str, Any] = Field(default_factory=dict)
    source: Optional[str] = Field(default=None, max_length=100)
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class SuggestionOutcome(BaseModel):
    suggestion_id: uuid.UUID
    decision: SuggestionDecision
    reason: Optional[str] = None
    created_entity_id: Optional[uuid.UUID] = None
    created_entity_code: Optional[str] = None
