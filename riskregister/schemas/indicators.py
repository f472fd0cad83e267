"""Pydantic schemas for measurements and indicator alerts."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from riskregister.schemas.enums import DataQuality, IndicatorStatus, LifecycleStatus


class MeasurementCreate(BaseModel):
    value: float
    period_label: Optional[str] = Field(default=None, max_length=50)
    data_quality: DataQuality = DataQuality.VERIFIED
    measured_at: Optional[datetime] = None


class MeasurementResult(BaseModel):
    """Outcome of RecordMeasurement."""
    measurement_id: uuid.UUID
    alert_status: Optional[IndicatorStatus]
    alert_id: Optional[uuid.UUID] = None
    alert_escalated: bool = False
    breach_id: Optional[uuid.UUID] = None


class MeasurementResponse(BaseModel):
    id: uuid.UUID
    indicator_id: uuid.UUID
    value: float
    period_label: Optional[str]
    data_quality: DataQuality
    alert_status: Optional[IndicatorStatus]
    tolerance_id: Optional[uuid.UUID]
    tolerance_version: Optional[int]
    thresholds_used: dict
    measured_at: datetime
    recorded_by: Optional[str]

    model_config = {"from_attributes": True}


class TransitionRequest(BaseModel):
    note: str = Field(min_length=1, max_length=4000)


class AlertResponse(BaseModel):
    id: uuid.UUID
    indicator_id: uuid.UUID
    measurement_id: uuid.UUID
    level: IndicatorStatus
    prior_level: Optional[IndicatorStatus]
    status: LifecycleStatus
    measured_value: float
    threshold_value: Optional[float]
    opened_at: datetime
    escalated_at: Optional[datetime]
    acknowledged_by: Optional[str]
    acknowledged_at: Optional[datetime]
    acknowledged_note: Optional[str]
    closed_by: Optional[str]
    closed_at: Optional[datetime]
    closed_note: Optional[str]
    version: int

    model_config = {"from_attributes": True}
