"""Pydantic schemas for appetite statements, tolerance configurations and breaches."""

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from riskregister.schemas.enums import (
    AppetiteLevel,
    BadDirection,
    LifecycleStatus,
    Materiality,
    MetricType,
    StatementStatus,
    ToleranceStatus,
)


# ── Appetite statements ────────────────────────────────────────────────


class StatementCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    body: Optional[str] = None
    effective_from: Optional[date] = None


class StatementResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    version: int
    title: str
    body: Optional[str]
    status: StatementStatus
    effective_from: Optional[date]
    effective_to: Optional[date]
    approved_by: Optional[str]
    approved_at: Optional[datetime]
    created_by: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class AppetiteCategoryCreate(BaseModel):
    category_id: uuid.UUID
    appetite_level: AppetiteLevel
    rationale: Optional[str] = None


class AppetiteCategoryResponse(BaseModel):
    id: uuid.UUID
    statement_id: uuid.UUID
    category_id: uuid.UUID
    appetite_level: AppetiteLevel
    rationale: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class ChainGap(BaseModel):
    severity: str            # CRITICAL blocks approval, WARNING does not
    kind: str
    message: str
    category_id: Optional[uuid.UUID] = None


class ChainValidation(BaseModel):
    statement_id: uuid.UUID
    is_valid: bool
    gaps: list[ChainGap] = Field(default_factory=list)


# ── Tolerance configurations ───────────────────────────────────────────


class ToleranceCreate(BaseModel):
    appetite_category_id: uuid.UUID
    metric_name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    metric_type: MetricType
    unit: Optional[str] = Field(default=None, max_length=50)
    green_min: Optional[float] = None
    green_max: Optional[float] = None
    amber_min: Optional[float] = None
    amber_max: Optional[float] = None
    red_min: Optional[float] = None
    red_max: Optional[float] = None
    allowed_change_pct: Optional[float] = None
    bad_direction: Optional[BadDirection] = None
    warning_fraction: Optional[float] = None
    indicator_id: Optional[uuid.UUID] = None
    materiality: Materiality = Materiality.INTERNAL


class ThresholdsUpdate(BaseModel):
    green_min: Optional[float] = None
    green_max: Optional[float] = None
    amber_min: Optional[float] = None
    amber_max: Optional[float] = None
    red_min: Optional[float] = None
    red_max: Optional[float] = None
    allowed_change_pct: Optional[float] = None
    bad_direction: Optional[BadDirection] = None
    warning_fraction: Optional[float] = None


class ToleranceResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    appetite_category_id: uuid.UUID
    metric_name: str
    description: Optional[str]
    metric_type: MetricType
    unit: Optional[str]
    green_min: Optional[float]
    green_max: Optional[float]
    amber_min: Optional[float]
    amber_max: Optional[float]
    red_min: Optional[float]
    red_max: Optional[float]
    allowed_change_pct: Optional[float]
    bad_direction: Optional[BadDirection]
    warning_fraction: Optional[float]
    indicator_id: Optional[uuid.UUID]
    materiality: Materiality
    is_active: bool
    version: int

    model_config = {"from_attributes": True}


class EvaluateRequest(BaseModel):
    value: float
    prior_value: Optional[float] = None


class EvaluateResponse(BaseModel):
    tolerance_id: uuid.UUID
    value: float
    status: ToleranceStatus


class ObservationCreate(BaseModel):
    value: float
    observed_at: Optional[datetime] = None


class ObservationResult(BaseModel):
    observation_id: uuid.UUID
    status: ToleranceStatus
    breach_id: Optional[uuid.UUID] = None


# ── Status roll-up ─────────────────────────────────────────────────────


class StatusCounts(BaseModel):
    green: int = 0
    amber: int = 0
    red: int = 0
    unknown: int = 0


class MetricStatus(BaseModel):
    tolerance_id: uuid.UUID
    metric_name: str
    metric_type: MetricType
    status: ToleranceStatus
    latest_value: Optional[float] = None
    measured_at: Optional[datetime] = None
    stale: bool = False


class CategoryStatus(BaseModel):
    appetite_category_id: uuid.UUID
    category_id: uuid.UUID
    category_name: Optional[str] = None
    appetite_level: AppetiteLevel
    status: ToleranceStatus
    counts: StatusCounts
    metrics: list[MetricStatus] = Field(default_factory=list)


class EnterpriseStatus(BaseModel):
    organization_id: uuid.UUID
    statement_id: Optional[uuid.UUID]
    statement_version: Optional[int]
    status: ToleranceStatus
    counts: StatusCounts
    per_category: list[CategoryStatus] = Field(default_factory=list)
    evaluated_at: datetime


# ── Breaches ───────────────────────────────────────────────────────────


class AcceptExceptionRequest(BaseModel):
    note: str = Field(min_length=1, max_length=4000)
    expires_at: datetime


class BreachResponse(BaseModel):
    id: uuid.UUID
    tolerance_id: uuid.UUID
    level: ToleranceStatus
    prior_level: Optional[ToleranceStatus]
    status: LifecycleStatus
    measured_value: float
    detected_at: datetime
    escalated_at: Optional[datetime]
    acknowledged_by: Optional[str]
    acknowledged_at: Optional[datetime]
    acknowledged_note: Optional[str]
    closed_by: Optional[str]
    closed_at: Optional[datetime]
    closed_note: Optional[str]
    exception_expires_at: Optional[datetime]
    version: int

    model_config = {"from_attributes": True}
