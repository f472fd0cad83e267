"""
Risk Register SQLAlchemy Models.

Uses compatibility types for SQLite (dev) + PostgreSQL (prod). Every table
is scoped by organization_id. Enum-valued columns store the StrEnum value
defined in riskregister.schemas.enums.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from riskregister.db.compat import GUID, JSONType
from riskregister.db.engine import Base


def _genuuid():
    return uuid.uuid4()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the timezone-less DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


# ──────────────────────────────────────────────────────────────────────────────
# 1. Tenant & Taxonomy
# ──────────────────────────────────────────────────────────────────────────────


class Organization(Base):
    __tablename__ = "rr_organizations"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    likelihood_scale: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    impact_scale: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class RiskCategory(Base):
    """Two-level taxonomy. parent_id IS NULL marks a parent-level category."""

    __tablename__ = "rr_risk_categories"
    __table_args__ = (
        UniqueConstraint("organization_id", "parent_id", "name", name="uq_category_name"),
        Index("ix_categories_org", "organization_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("rr_risk_categories.id"))
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    @property
    def is_parent(self) -> bool:
        return self.parent_id is None


# ──────────────────────────────────────────────────────────────────────────────
# 2. Risks, Controls, Links
# ──────────────────────────────────────────────────────────────────────────────


class Risk(Base):
    """Live risk. Soft-closed once it has history; snapshots reference it."""

    __tablename__ = "rr_risks"
    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_risk_code"),
        Index("ix_risks_org_active", "organization_id", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    code: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_risk_categories.id"), nullable=False)
    subcategory_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("rr_risk_categories.id"))
    owner: Mapped[Optional[str]] = mapped_column(String(255))
    division: Mapped[str] = mapped_column(String(100), nullable=False)
    department: Mapped[Optional[str]] = mapped_column(String(100))
    likelihood_inherent: Mapped[int] = mapped_column(Integer, nullable=False)
    impact_inherent: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="OPEN")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class Control(Base):
    """Independent control. Linked to risks only through RiskControl."""

    __tablename__ = "rr_controls"
    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_control_code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    code: Mapped[str] = mapped_column(String(40), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    control_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target: Mapped[str] = mapped_column(String(20), nullable=False)
    design_score: Mapped[Optional[int]] = mapped_column(Integer)
    implementation_score: Mapped[Optional[int]] = mapped_column(Integer)
    monitoring_score: Mapped[Optional[int]] = mapped_column(Integer)
    evaluation_score: Mapped[Optional[int]] = mapped_column(Integer)
    owner: Mapped[Optional[str]] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class RiskControl(Base):
    __tablename__ = "rr_risk_controls"
    __table_args__ = (
        UniqueConstraint("risk_id", "control_id", name="uq_risk_control"),
        Index("ix_risk_controls_control", "control_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    risk_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_risks.id", ondelete="CASCADE"), nullable=False)
    control_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_controls.id", ondelete="RESTRICT"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Incident(Base):
    """Minimal incident record; counted into period snapshots."""

    __tablename__ = "rr_incidents"
    __table_args__ = (
        Index("ix_incidents_risk", "risk_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    risk_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("rr_risks.id", ondelete="SET NULL"))
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="MEDIUM")
    occurred_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


# ──────────────────────────────────────────────────────────────────────────────
# 3. Indicators
# ──────────────────────────────────────────────────────────────────────────────


class IndicatorDefinition(Base):
    """Indicators measure; they carry no thresholds."""

    __tablename__ = "rr_indicators"
    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_indicator_code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    code: Mapped[str] = mapped_column(String(40), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    indicator_type: Mapped[str] = mapped_column(String(20), nullable=False)
    signal: Mapped[str] = mapped_column(String(10), nullable=False, default="KRI")
    unit: Mapped[Optional[str]] = mapped_column(String(50))
    frequency: Mapped[str] = mapped_column(String(20), nullable=False, default="MONTHLY")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class RiskIndicator(Base):
    __tablename__ = "rr_risk_indicators"
    __table_args__ = (
        UniqueConstraint("risk_id", "indicator_id", name="uq_risk_indicator"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    risk_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_risks.id", ondelete="CASCADE"), nullable=False)
    indicator_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_indicators.id", ondelete="RESTRICT"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class IndicatorMeasurement(Base):
    """
    One measurement. alert_status and the thresholds used are frozen at insert.

    NO UPDATE on this table: a later threshold change never rewrites history.
    """

    __tablename__ = "rr_indicator_measurements"
    __table_args__ = (
        Index("ix_measurements_indicator_time", "indicator_id", "measured_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    indicator_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_indicators.id"), nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    period_label: Mapped[Optional[str]] = mapped_column(String(50))
    data_quality: Mapped[str] = mapped_column(String(20), nullable=False, default="VERIFIED")
    alert_status: Mapped[Optional[str]] = mapped_column(String(10))
    tolerance_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("rr_tolerance_configurations.id"))
    tolerance_version: Mapped[Optional[int]] = mapped_column(Integer)
    thresholds_used: Mapped[dict] = mapped_column(JSONType(), nullable=False, default=dict)
    measured_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    recorded_by: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class IndicatorAlert(Base):
    """
    Alert raised by a YELLOW/RED measurement.

    open_key equals indicator_id while the alert is unresolved and NULL
    afterwards, so the unique constraint allows one unresolved alert per
    indicator.
    """

    __tablename__ = "rr_indicator_alerts"
    __table_args__ = (
        UniqueConstraint("open_key", name="uq_alert_open_key"),
        Index("ix_alerts_org_status", "organization_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    indicator_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_indicators.id"), nullable=False)
    measurement_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_indicator_measurements.id"), nullable=False)
    level: Mapped[str] = mapped_column(String(10), nullable=False)
    prior_level: Mapped[Optional[str]] = mapped_column(String(10))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="OPEN")
    measured_value: Mapped[float] = mapped_column(Float, nullable=False)
    threshold_value: Mapped[Optional[float]] = mapped_column(Float)
    opened_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(255))
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    acknowledged_note: Mapped[Optional[str]] = mapped_column(Text)
    closed_by: Mapped[Optional[str]] = mapped_column(String(255))
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    closed_note: Mapped[Optional[str]] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    open_key: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())


# ──────────────────────────────────────────────────────────────────────────────
# 4. Appetite & Tolerance
# ──────────────────────────────────────────────────────────────────────────────


class AppetiteStatement(Base):
    __tablename__ = "rr_appetite_statements"
    __table_args__ = (
        UniqueConstraint("organization_id", "version", name="uq_statement_version"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")
    effective_from: Mapped[Optional[date]] = mapped_column(Date)
    effective_to: Mapped[Optional[date]] = mapped_column(Date)
    approved_by: Mapped[Optional[str]] = mapped_column(String(255))
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_by: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class AppetiteCategory(Base):
    """Appetite for one parent-level category under one statement version."""

    __tablename__ = "rr_appetite_categories"
    __table_args__ = (
        UniqueConstraint("statement_id", "category_id", name="uq_appetite_category"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    statement_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_appetite_statements.id"), nullable=False)
    category_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_risk_categories.id"), nullable=False)
    appetite_level: Mapped[str] = mapped_column(String(20), nullable=False)
    rationale: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class ToleranceConfiguration(Base):
    """
    Quantitative tolerance. The only place thresholds are stored.

    Band columns are interpreted per metric_type; see
    riskregister.engine.tolerance.validate_thresholds.
    """

    __tablename__ = "rr_tolerance_configurations"
    __table_args__ = (
        Index("ix_tolerances_category", "appetite_category_id"),
        Index("ix_tolerances_indicator", "indicator_id", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    appetite_category_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_appetite_categories.id"), nullable=False)
    metric_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    metric_type: Mapped[str] = mapped_column(String(20), nullable=False)
    unit: Mapped[Optional[str]] = mapped_column(String(50))
    green_min: Mapped[Optional[float]] = mapped_column(Float)
    green_max: Mapped[Optional[float]] = mapped_column(Float)
    amber_min: Mapped[Optional[float]] = mapped_column(Float)
    amber_max: Mapped[Optional[float]] = mapped_column(Float)
    red_min: Mapped[Optional[float]] = mapped_column(Float)
    red_max: Mapped[Optional[float]] = mapped_column(Float)
    allowed_change_pct: Mapped[Optional[float]] = mapped_column(Float)
    warning_fraction: Mapped[Optional[float]] = mapped_column(Float)
    bad_direction: Mapped[Optional[str]] = mapped_column(String(20))
    indicator_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("rr_indicators.id"))
    materiality: Mapped[str] = mapped_column(String(20), nullable=False, default="INTERNAL")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class ToleranceObservation(Base):
    """Direct value for a tolerance that has no indicator. Status frozen at insert."""

    __tablename__ = "rr_tolerance_observations"
    __table_args__ = (
        Index("ix_observations_tolerance_time", "tolerance_id", "observed_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    tolerance_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_tolerance_configurations.id"), nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    observed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    recorded_by: Mapped[Optional[str]] = mapped_column(String(255))


class ToleranceBreach(Base):
    """
    Tolerance breach. Same guarded lifecycle as IndicatorAlert, plus the
    terminal ACCEPTED state whose exception_expires_at suspends detection.
    """

    __tablename__ = "rr_tolerance_breaches"
    __table_args__ = (
        UniqueConstraint("open_key", name="uq_breach_open_key"),
        Index("ix_breaches_tolerance_status", "tolerance_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    tolerance_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_tolerance_configurations.id"), nullable=False)
    level: Mapped[str] = mapped_column(String(10), nullable=False)
    prior_level: Mapped[Optional[str]] = mapped_column(String(10))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="OPEN")
    measured_value: Mapped[float] = mapped_column(Float, nullable=False)
    detected_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(255))
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    acknowledged_note: Mapped[Optional[str]] = mapped_column(Text)
    closed_by: Mapped[Optional[str]] = mapped_column(String(255))
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    closed_note: Mapped[Optional[str]] = mapped_column(Text)
    exception_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    open_key: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())


# ──────────────────────────────────────────────────────────────────────────────
# 5. Shared counters & period pointer
# ──────────────────────────────────────────────────────────────────────────────


class CodeCounter(Base):
    """Per-(organization, prefix) sequence. Written only by CodeGenerator."""

    __tablename__ = "rr_code_counters"
    __table_args__ = (
        UniqueConstraint("organization_id", "prefix", name="uq_code_counter"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    prefix: Mapped[str] = mapped_column(String(30), nullable=False)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class ActivePeriod(Base):
    """One open reporting period per organization. Written only by PeriodArchiver."""

    __tablename__ = "rr_active_periods"

    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), primary_key=True)
    current_year: Mapped[int] = mapped_column(Integer, nullable=False)
    current_quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_year: Mapped[Optional[int]] = mapped_column(Integer)
    previous_quarter: Mapped[Optional[int]] = mapped_column(Integer)
    period_started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


# ──────────────────────────────────────────────────────────────────────────────
# 6. Period history (append-only)
# ──────────────────────────────────────────────────────────────────────────────


class PeriodCommit(Base):
    """
    One row per (organization, year, quarter).

    CRITICAL: NO UPDATE, NO DELETE on this table.
    """

    __tablename__ = "rr_period_commits"
    __table_args__ = (
        UniqueConstraint("organization_id", "period_year", "period_quarter", name="uq_period_commit"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    committed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    committed_by: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    risks_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    open_risks_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    closed_risks_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    controls_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    indicators_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    incidents_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class RiskHistorySnapshot(Base):
    """
    Frozen copy of one risk at commit time.

    CRITICAL: NO UPDATE, NO DELETE on this table.
    """

    __tablename__ = "rr_risk_snapshots"
    __table_args__ = (
        UniqueConstraint("commit_id", "risk_id", name="uq_snapshot_commit_risk"),
        Index("ix_snapshots_org_period", "organization_id", "period_year", "period_quarter"),
        Index("ix_snapshots_risk", "risk_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    commit_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_period_commits.id"), nullable=False)
    risk_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_risks.id"), nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    risk_code: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    category_name: Mapped[Optional[str]] = mapped_column(String(100))
    subcategory_name: Mapped[Optional[str]] = mapped_column(String(100))
    owner: Mapped[Optional[str]] = mapped_column(String(255))
    division: Mapped[Optional[str]] = mapped_column(String(100))
    department: Mapped[Optional[str]] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    likelihood_inherent: Mapped[int] = mapped_column(Integer, nullable=False)
    impact_inherent: Mapped[int] = mapped_column(Integer, nullable=False)
    inherent_score: Mapped[int] = mapped_column(Integer, nullable=False)
    likelihood_residual: Mapped[int] = mapped_column(Integer, nullable=False)
    impact_residual: Mapped[int] = mapped_column(Integer, nullable=False)
    residual_score: Mapped[int] = mapped_column(Integer, nullable=False)
    control_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    indicator_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    incident_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    snapshot_data: Mapped[dict] = mapped_column(JSONType(), nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class HistoryImmutableError(RuntimeError):
    pass


def _reject_history_write(mapper, connection, target):
    raise HistoryImmutableError(f"{type(target).__name__} rows are append-only")


for _model in (PeriodCommit, RiskHistorySnapshot):
    event.listen(_model, "before_update", _reject_history_write)
    event.listen(_model, "before_delete", _reject_history_write)


# ──────────────────────────────────────────────────────────────────────────────
# 7. AI suggestions (audit of untrusted drafts)
# ──────────────────────────────────────────────────────────────────────────────


class AiSuggestion(Base):
    __tablename__ = "rr_ai_suggestions"
    __table_args__ = (
        Index("ix_suggestions_org_created", "organization_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("rr_organizations.id"), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    source: Mapped[Optional[str]] = mapped_column(String(100))
    confidence: Mapped[Optional[float]] = mapped_column(Float)
    payload: Mapped[dict] = mapped_column(JSONType(), nullable=False, default=dict)
    decision: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    created_entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    created_entity_code: Mapped[Optional[str]] = mapped_column(String(40))
    decided_by: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
