"""Pydantic schemas for the register: categories, risks, controls, indicators, codes.

Range rules (scales, DIME 0-3) are enforced by the services so that every
entry path, including AI suggestions, gets the same ValidationError.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from riskregister.schemas.enums import (
    CollectionFrequency,
    ControlTarget,
    ControlType,
    EntityKind,
    IndicatorSignal,
    IndicatorType,
    RiskLevel,
    RiskStatus,
)


# ── Organizations ──────────────────────────────────────────────────────


class OrganizationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9][a-z0-9-]*$")
    likelihood_scale: Optional[int] = None
    impact_scale: Optional[int] = None


class OrganizationResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    likelihood_scale: int
    impact_scale: int
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Codes ──────────────────────────────────────────────────────────────


class CodeRequest(BaseModel):
    entity_kind: EntityKind
    prefix_parts: list[str] = Field(default_factory=list)


class CodeResponse(BaseModel):
    code: str
    prefix: str
    sequence: int


# ── Taxonomy ───────────────────────────────────────────────────────────


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    parent_id: Optional[uuid.UUID] = None
    description: Optional[str] = None


class CategoryResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    parent_id: Optional[uuid.UUID]
    name: str
    description: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Risks ──────────────────────────────────────────────────────────────


class RiskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    category_id: uuid.UUID
    subcategory_id: Optional[uuid.UUID] = None
    owner: Optional[str] = Field(default=None, max_length=255)
    division: str = Field(min_length=1, max_length=100)
    department: Optional[str] = Field(default=None, max_length=100)
    likelihood_inherent: int
    impact_inherent: int
    status: RiskStatus = RiskStatus.OPEN


class RiskResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    code: str
    title: str
    description: Optional[str]
    category_id: uuid.UUID
    subcategory_id: Optional[uuid.UUID]
    owner: Optional[str]
    division: str
    department: Optional[str]
    likelihood_inherent: int
    impact_inherent: int
    status: RiskStatus
    is_active: bool
    closed_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class ResidualResponse(BaseModel):
    risk_id: uuid.UUID
    likelihood_inherent: int
    impact_inherent: int
    inherent_score: int
    likelihood_residual: int
    impact_residual: int
    score: int
    likelihood_effectiveness: float
    impact_effectiveness: float
    control_count: int
    level: RiskLevel


class CloseRiskRequest(BaseModel):
    note: Optional[str] = None


# ── Controls ───────────────────────────────────────────────────────────


class ControlCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    control_type: ControlType
    target: ControlTarget
    design_score: Optional[int] = None
    implementation_score: Optional[int] = None
    monitoring_score: Optional[int] = None
    evaluation_score: Optional[int] = None
    owner: Optional[str] = Field(default=None, max_length=255)


class ControlScoresUpdate(BaseModel):
    design_score: Optional[int] = None
    implementation_score: Optional[int] = None
    monitoring_score: Optional[int] = None
    evaluation_score: Optional[int] = None


class ControlResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    code: str
    name: str
    description: Optional[str]
    control_type: ControlType
    target: ControlTarget
    design_score: Optional[int]
    implementation_score: Optional[int]
    monitoring_score: Optional[int]
    evaluation_score: Optional[int]
    effectiveness: float = 0.0
    owner: Optional[str]
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class LinkRequest(BaseModel):
    target_id: uuid.UUID


# ── Indicators ─────────────────────────────────────────────────────────


class IndicatorCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    indicator_type: IndicatorType
    signal: IndicatorSignal = IndicatorSignal.KRI
    unit: Optional[str] = Field(default=None, max_length=50)
    frequency: CollectionFrequency = CollectionFrequency.MONTHLY


class IndicatorResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    code: str
    name: str
    description: Optional[str]
    indicator_type: IndicatorType
    signal: IndicatorSignal
    unit: Optional[str]
    frequency: CollectionFrequency
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Incidents ──────────────────────────────────────────────────────────


class IncidentCreate(BaseModel):
    risk_id: Optional[uuid.UUID] = None
    title: str = Field(min_length=1, max_length=255)
    severity: str = Field(default="MEDIUM", min_length=1, max_length=20)
    occurred_at: Optional[datetime] = None


class IncidentResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    risk_id: Optional[uuid.UUID]
    title: str
    severity: str
    occurred_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}
