"""Pydantic schemas for period commits, snapshots and comparisons."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from riskregister.schemas.enums import RiskLevel, RiskStatus


class ActivePeriodResponse(BaseModel):
    organization_id: uuid.UUID
    current_period: str
    previous_period: Optional[str]
    period_started_at: datetime


class CommitRequest(BaseModel):
    period: str = Field(description="Quarter label, e.g. 'Q3 2025'")
    note: Optional[str] = Field(default=None, max_length=4000)
    deadline_seconds: Optional[float] = Field(default=None, gt=0)


class CommitResult(BaseModel):
    commit_id: uuid.UUID
    period: str
    next_period: str
    committed_at: datetime
    committed_by: str
    risks_count: int
    open_risks_count: int
    closed_risks_count: int
    controls_count: int
    indicators_count: int
    incidents_count: int


class PeriodCommitResponse(BaseModel):
    id: uuid.UUID
    period_year: int
    period_quarter: int
    committed_at: datetime
    committed_by: str
    notes: Optional[str]
    risks_count: int
    open_risks_count: int
    closed_risks_count: int
    controls_count: int
    indicators_count: int
    incidents_count: int

    model_config = {"from_attributes": True}


class SnapshotResponse(BaseModel):
    id: uuid.UUID
    commit_id: uuid.UUID
    risk_id: uuid.UUID
    period_year: int
    period_quarter: int
    risk_code: str
    title: str
    category_name: Optional[str]
    subcategory_name: Optional[str]
    owner: Optional[str]
    division: Optional[str]
    department: Optional[str]
    status: RiskStatus
    likelihood_inherent: int
    impact_inherent: int
    inherent_score: int
    likelihood_residual: int
    impact_residual: int
    residual_score: int
    control_count: int
    indicator_count: int
    incident_count: int
    snapshot_data: dict

    model_config = {"from_attributes": True}


class SnapshotRef(BaseModel):
    risk_id: uuid.UUID
    risk_code: str
    title: str
    status: RiskStatus
    residual_score: int


class RiskChange(BaseModel):
    risk_id: uuid.UUID
    risk_code: str
    title: str
    changed_fields: list[str]
    likelihood_inherent: tuple[int, int]
    impact_inherent: tuple[int, int]
    likelihood_residual: tuple[int, int]
    impact_residual: tuple[int, int]
    residual_score: tuple[int, int]
    status: tuple[RiskStatus, RiskStatus]


class ComparisonSummary(BaseModel):
    risks_a: int
    risks_b: int
    avg_inherent_a: float
    avg_inherent_b: float
    avg_residual_a: float
    avg_residual_b: float


class SnapshotComparison(BaseModel):
    period_a: str
    period_b: str
    new: list[SnapshotRef] = Field(default_factory=list)
    closed: list[SnapshotRef] = Field(default_factory=list)
    changed: list[RiskChange] = Field(default_factory=list)
    summary: ComparisonSummary


class TimelineEntry(BaseModel):
    period: str
    status: RiskStatus
    inherent_score: int
    residual_score: int
    level: RiskLevel
    control_count: int
    indicator_count: int
    incident_count: int


class PeriodTrend(BaseModel):
    period: str
    risks_count: int
    by_status: dict[str, int]
    by_level: dict[str, int]
    avg_residual: float


class RiskMigration(BaseModel):
    risk_id: uuid.UUID
    risk_code: str
    title: str
    from_level: RiskLevel
    to_level: RiskLevel
    from_score: int
    to_score: int
    direction: str      # "up" or "down"
