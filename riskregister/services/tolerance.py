"""
Tolerance Service: configurations, metric status, roll-up and breaches.

Thresholds are validated when a configuration is saved, never when it is
evaluated. A metric with no data, or data older than
tolerance_stale_after_days, is UNKNOWN: counted separately and never
treated as GREEN.
"""

import uuid
from datetime import datetime, timedelta
from typing import Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.config import settings
from riskregister.db.models import (
    AppetiteCategory,
    AppetiteStatement,
    IndicatorMeasurement,
    RiskCategory,
    ToleranceBreach,
    ToleranceConfiguration,
    ToleranceObservation,
    as_naive_utc,
    utcnow,
)
from riskregister.db.repositories import (
    appetite_category_repo,
    breach_repo,
    indicator_repo,
    tolerance_repo,
)
from riskregister.engine.tolerance import (
    DirectionalConfig,
    ToleranceThresholds,
    evaluate_tolerance,
    rollup,
    validate_thresholds,
)
from riskregister.errors import ConcurrentModification, ValidationError
from riskregister.schemas.enums import (
    AppetiteLevel,
    BadDirection,
    LifecycleStatus,
    MetricType,
    StatementStatus,
    ToleranceStatus,
)
from riskregister.schemas.tolerance import (
    CategoryStatus,
    EnterpriseStatus,
    MetricStatus,
    ObservationResult,
    StatusCounts,
    ThresholdsUpdate,
    ToleranceCreate,
)
from riskregister.services.lifecycle import escalate, require_actor, require_note, transition

logger = structlog.get_logger(__name__)

_BREACH_LEVELS = (ToleranceStatus.AMBER, ToleranceStatus.RED)


def thresholds_from_fields(metric_type: MetricType, fields: dict, warning_fraction_default: float) -> ToleranceThresholds:
    """Build thresholds from request fields; directional settings only when given."""
    directional = None
    allowed = fields.get("allowed_change_pct")
    bad_direction = fields.get("bad_direction")
    if allowed is not None or bad_direction is not None or fields.get("warning_fraction") is not None:
        if allowed is None or bad_direction is None:
            if metric_type == MetricType.DIRECTIONAL:
                raise ValidationError(
                    "directional metrics need allowed_change_pct and bad_direction",
                    field="allowed_change_pct" if allowed is None else "bad_direction",
                )
            raise ValidationError(
                f"{metric_type} metrics take no directional settings", field="allowed_change_pct"
            )
        warning_fraction = fields.get("warning_fraction")
        directional = DirectionalConfig(
            allowed_change_pct=allowed,
            bad_direction=BadDirection(bad_direction),
            warning_fraction=warning_fraction if warning_fraction is not None else warning_fraction_default,
        )
    return ToleranceThresholds(
        green_min=fields.get("green_min"),
        green_max=fields.get("green_max"),
        amber_min=fields.get("amber_min"),
        amber_max=fields.get("amber_max"),
        red_min=fields.get("red_min"),
        red_max=fields.get("red_max"),
        directional=directional,
    )


def _threshold_columns(thresholds: ToleranceThresholds) -> dict:
    directional = thresholds.directional
    return {
        "green_min": thresholds.green_min,
        "green_max": thresholds.green_max,
        "amber_min": thresholds.amber_min,
        "amber_max": thresholds.amber_max,
        "red_min": thresholds.red_min,
        "red_max": thresholds.red_max,
        "allowed_change_pct": directional.allowed_change_pct if directional else None,
        "bad_direction": directional.bad_direction.value if directional else None,
        "warning_fraction": directional.warning_fraction if directional else None,
    }


class ToleranceService:
    """
    Saves tolerance configurations, evaluates them and tracks breaches.

    The single owner of thresholds: indicator evaluation reads them from here.
    """

    def __init__(
        self,
        stale_after_days: Optional[int] = None,
        warning_fraction: Optional[float] = None,
        max_exception_days: Optional[int] = None,
    ):
        self.stale_after = timedelta(
            days=stale_after_days if stale_after_days is not None else settings.tolerance_stale_after_days
        )
        self.warning_fraction = (
            warning_fraction if warning_fraction is not None else settings.directional_warning_fraction
        )
        self.max_exception_days = (
            max_exception_days if max_exception_days is not None else settings.max_exception_days
        )

    # ── Configuration ─────────────────────────────────────────────────

    async def save_configuration(
        self, session: AsyncSession, organization_id: uuid.UUID, data: ToleranceCreate
    ) -> ToleranceConfiguration:
        """Validate the bands and persist a new active configuration."""
        thresholds = thresholds_from_fields(
            data.metric_type, data.model_dump(), self.warning_fraction
        )
        validate_thresholds(data.metric_type, thresholds)

        appetite_category = await appetite_category_repo.get_or_404(
            session, data.appetite_category_id, organization_id
        )
        statement = await session.get(AppetiteStatement, appetite_category.statement_id)
        if statement.status not in (StatementStatus.DRAFT, StatementStatus.APPROVED):
            raise ValidationError(
                f"cannot add tolerances under a {statement.status} appetite statement",
                field="appetite_category_id",
            )
        if data.indicator_id is not None:
            await indicator_repo.get_or_404(session, data.indicator_id, organization_id)
            result = await session.execute(
                select(ToleranceConfiguration.id)
                .join(AppetiteCategory, AppetiteCategory.id == ToleranceConfiguration.appetite_category_id)
                .where(
                    AppetiteCategory.statement_id == statement.id,
                    ToleranceConfiguration.indicator_id == data.indicator_id,
                    ToleranceConfiguration.is_active.is_(True),
                )
            )
            governing_id = result.scalars().first()
            if governing_id is not None:
                raise ValidationError(
                    "indicator is already governed by an active tolerance in this statement",
                    field="indicator_id",
                    details={"tolerance_id": str(governing_id)},
                )

        tolerance = await tolerance_repo.create(
            session,
            organization_id,
            appetite_category_id=appetite_category.id,
            metric_name=data.metric_name,
            description=data.description,
            metric_type=data.metric_type.value,
            unit=data.unit,
            indicator_id=data.indicator_id,
            materiality=data.materiality.value,
            is_active=True,
            version=1,
            **_threshold_columns(thresholds),
        )
        logger.info(
            "tolerance_saved",
            organization_id=str(organization_id),
            tolerance_id=str(tolerance.id),
            metric_type=tolerance.metric_type,
        )
        return tolerance

    async def update_thresholds(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        tolerance_id: uuid.UUID,
        data: ThresholdsUpdate,
    ) -> ToleranceConfiguration:
        """
        Replace the bands of a tolerance under a DRAFT statement.

        Approved bands change only through a new statement version. Stored
        measurement statuses are not recalculated.
        """
        tolerance = await tolerance_repo.get_or_404(session, tolerance_id, organization_id)
        appetite_category = await session.get(AppetiteCategory, tolerance.appetite_category_id)
        statement = await session.get(AppetiteStatement, appetite_category.statement_id)
        if statement.status != StatementStatus.DRAFT:
            raise ValidationError(
                f"thresholds under a {statement.status} appetite statement are frozen",
                field="tolerance_id",
                details={"statement_id": str(statement.id), "statement_status": statement.status},
            )
        metric_type = MetricType(tolerance.metric_type)
        thresholds = thresholds_from_fields(metric_type, data.model_dump(), self.warning_fraction)
        validate_thresholds(metric_type, thresholds)
        for name, value in _threshold_columns(thresholds).items():
            setattr(tolerance, name, value)
        tolerance.version += 1
        await session.flush()
        logger.info("tolerance_thresholds_updated", tolerance_id=str(tolerance.id), version=tolerance.version)
        return tolerance

    async def deactivate(
        self, session: AsyncSession, organization_id: uuid.UUID, tolerance_id: uuid.UUID
    ) -> ToleranceConfiguration:
        tolerance = await tolerance_repo.get_or_404(session, tolerance_id, organization_id)
        tolerance.is_active = False
        await session.flush()
        return tolerance

    async def governing_tolerance(
        self, session: AsyncSession, organization_id: uuid.UUID, indicator_id: uuid.UUID
    ) -> Optional[ToleranceConfiguration]:
        """
        The active tolerance under the APPROVED statement, else under the
        newest DRAFT. Superseded and archived statements govern nothing.
        """
        result = await session.execute(
            select(ToleranceConfiguration, AppetiteStatement.status)
            .join(AppetiteCategory, AppetiteCategory.id == ToleranceConfiguration.appetite_category_id)
            .join(AppetiteStatement, AppetiteStatement.id == AppetiteCategory.statement_id)
            .where(
                ToleranceConfiguration.organization_id == organization_id,
                ToleranceConfiguration.indicator_id == indicator_id,
                ToleranceConfiguration.is_active.is_(True),
                AppetiteStatement.status.in_(
                    [StatementStatus.APPROVED.value, StatementStatus.DRAFT.value]
                ),
            )
            .order_by(AppetiteStatement.version.desc())
        )
        rows = result.all()
        for tolerance, status in rows:
            if status == StatementStatus.APPROVED:
                return tolerance
        return rows[0][0] if rows else None

    # ── Evaluation ────────────────────────────────────────────────────

    async def evaluate_metric(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        tolerance_id: uuid.UUID,
        value: float,
        prior_value: Optional[float] = None,
    ) -> ToleranceStatus:
        """
        EvaluateToleranceMetric: status of a value against a saved configuration.

        Nothing is stored. Directional metrics use prior_value, or the latest
        recorded value when none is supplied.
        """
        tolerance = await tolerance_repo.get_or_404(session, tolerance_id, organization_id)
        metric_type = MetricType(tolerance.metric_type)
        if metric_type == MetricType.DIRECTIONAL and prior_value is None:
            readings = await self.recent_readings(session, tolerance, limit=1)
            prior_value = readings[0][0] if readings else None
        return evaluate_tolerance(
            value, metric_type, ToleranceThresholds.from_model(tolerance), prior_value=prior_value
        )

    async def recent_readings(
        self,
        session: AsyncSession,
        tolerance: ToleranceConfiguration,
        limit: int = 2,
        before: Optional[datetime] = None,
    ) -> list[tuple[float, datetime]]:
        """
        Newest first: from the linked indicator, else direct observations.

        With before, only readings taken strictly earlier count, so a
        backfilled value is compared with the reading that preceded it.
        """
        if tolerance.indicator_id is not None:
            stmt = (
                select(IndicatorMeasurement.value, IndicatorMeasurement.measured_at)
                .where(IndicatorMeasurement.indicator_id == tolerance.indicator_id)
                .order_by(IndicatorMeasurement.measured_at.desc(), IndicatorMeasurement.created_at.desc())
                .limit(limit)
            )
            if before is not None:
                stmt = stmt.where(IndicatorMeasurement.measured_at < before)
        else:
            stmt = (
                select(ToleranceObservation.value, ToleranceObservation.observed_at)
                .where(ToleranceObservation.tolerance_id == tolerance.id)
                .order_by(ToleranceObservation.observed_at.desc())
                .limit(limit)
            )
            if before is not None:
                stmt = stmt.where(ToleranceObservation.observed_at < before)
        result = await session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def metric_status(
        self, session: AsyncSession, tolerance: ToleranceConfiguration, now: Optional[datetime] = None
    ) -> MetricStatus:
        now = now or utcnow()
        readings = await self.recent_readings(session, tolerance, limit=2)
        base = MetricStatus(
            tolerance_id=tolerance.id,
            metric_name=tolerance.metric_name,
            metric_type=MetricType(tolerance.metric_type),
            status=ToleranceStatus.UNKNOWN,
        )
        if not readings:
            return base
        value, measured_at = readings[0]
        base.latest_value = value
        base.measured_at = measured_at
        if now - measured_at > self.stale_after:
            base.stale = True
            return base
        prior_value = readings[1][0] if len(readings) > 1 else None
        base.status = evaluate_tolerance(
            value,
            MetricType(tolerance.metric_type),
            ToleranceThresholds.from_model(tolerance),
            prior_value=prior_value,
        )
        return base

    async def approved_statement(
        self, session: AsyncSession, organization_id: uuid.UUID
    ) -> Optional[AppetiteStatement]:
        result = await session.execute(
            select(AppetiteStatement)
            .where(
                AppetiteStatement.organization_id == organization_id,
                AppetiteStatement.status == StatementStatus.APPROVED.value,
            )
            .order_by(AppetiteStatement.version.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def category_status(
        self, session: AsyncSession, appetite_category: AppetiteCategory, now: Optional[datetime] = None
    ) -> CategoryStatus:
        result = await session.execute(
            select(ToleranceConfiguration)
            .where(
                ToleranceConfiguration.appetite_category_id == appetite_category.id,
                ToleranceConfiguration.is_active.is_(True),
            )
            .order_by(ToleranceConfiguration.metric_name)
        )
        metrics = [await self.metric_status(session, t, now) for t in result.scalars().all()]
        folded = rollup(m.status for m in metrics)
        category = await session.get(RiskCategory, appetite_category.category_id)
        return CategoryStatus(
            appetite_category_id=appetite_category.id,
            category_id=appetite_category.category_id,
            category_name=category.name if category else None,
            appetite_level=AppetiteLevel(appetite_category.appetite_level),
            status=folded.status,
            counts=StatusCounts(**folded.as_counts()),
            metrics=metrics,
        )

    async def get_enterprise_status(
        self, session: AsyncSession, organization_id: uuid.UUID
    ) -> EnterpriseStatus:
        """GetEnterpriseAppetiteStatus: worst category under the approved statement."""
        now = utcnow()
        statement = await self.approved_statement(session, organization_id)
        if statement is None:
            return EnterpriseStatus(
                organization_id=organization_id,
                statement_id=None,
                statement_version=None,
                status=ToleranceStatus.UNKNOWN,
                counts=StatusCounts(),
                evaluated_at=now,
            )
        result = await session.execute(
            select(AppetiteCategory)
            .where(AppetiteCategory.statement_id == statement.id)
            .order_by(AppetiteCategory.created_at)
        )
        per_category = [await self.category_status(session, c, now) for c in result.scalars().all()]
        folded = rollup(c.status for c in per_category)
        logger.info(
            "enterprise_status_evaluated",
            organization_id=str(organization_id),
            status=folded.status.value,
            **folded.as_counts(),
        )
        return EnterpriseStatus(
            organization_id=organization_id,
            statement_id=statement.id,
            statement_version=statement.version,
            status=folded.status,
            counts=StatusCounts(**folded.as_counts()),
            per_category=per_category,
            evaluated_at=now,
        )

    # ── Observations ──────────────────────────────────────────────────

    async def record_observation(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        tolerance_id: uuid.UUID,
        value: float,
        observed_at: Optional[datetime] = None,
        recorded_by: Optional[str] = None,
    ) -> ObservationResult:
        """Direct value for a tolerance with no indicator behind it."""
        tolerance = await tolerance_repo.get_or_404(session, tolerance_id, organization_id)
        if tolerance.indicator_id is not None:
            raise ValidationError(
                "this tolerance is fed by an indicator; record an indicator measurement instead",
                field="tolerance_id",
            )
        if not tolerance.is_active:
            raise ValidationError("tolerance configuration is inactive", field="tolerance_id")
        observed_at = as_naive_utc(observed_at)
        readings = await self.recent_readings(session, tolerance, limit=1, before=observed_at)
        prior_value = readings[0][0] if readings else None
        status = evaluate_tolerance(
            value,
            MetricType(tolerance.metric_type),
            ToleranceThresholds.from_model(tolerance),
            prior_value=prior_value,
        )
        observation = ToleranceObservation(
            organization_id=organization_id,
            tolerance_id=tolerance.id,
            value=value,
            status=status.value,
            observed_at=observed_at or utcnow(),
            recorded_by=recorded_by,
        )
        session.add(observation)
        await session.flush()
        breach = await self.detect_breach(session, tolerance, status, value)
        return ObservationResult(
            observation_id=observation.id,
            status=status,
            breach_id=breach.id if breach else None,
        )

    # ── Breaches ──────────────────────────────────────────────────────

    async def active_exception(
        self, session: AsyncSession, tolerance_id: uuid.UUID, now: Optional[datetime] = None
    ) -> Optional[ToleranceBreach]:
        now = now or utcnow()
        result = await session.execute(
            select(ToleranceBreach)
            .where(
                ToleranceBreach.tolerance_id == tolerance_id,
                ToleranceBreach.status == LifecycleStatus.ACCEPTED.value,
                ToleranceBreach.exception_expires_at > now,
            )
            .order_by(ToleranceBreach.exception_expires_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def detect_breach(
        self,
        session: AsyncSession,
        tolerance: ToleranceConfiguration,
        status: ToleranceStatus,
        value: float,
    ) -> Optional[ToleranceBreach]:
        """
        Open, escalate or leave alone the breach for one evaluated value.

        One unresolved breach per tolerance; AMBER followed by RED escalates
        it in place. An unexpired board-accepted exception suspends detection.
        """
        if status not in _BREACH_LEVELS:
            return None

        exception = await self.active_exception(session, tolerance.id)
        if exception is not None:
            logger.info(
                "breach_suppressed_by_exception",
                tolerance_id=str(tolerance.id),
                exception_id=str(exception.id),
                expires_at=exception.exception_expires_at.isoformat(),
                level=status.value,
            )
            return None

        result = await session.execute(
            select(ToleranceBreach).where(ToleranceBreach.open_key == tolerance.id)
        )
        existing = result.scalar_one_or_none()
        if existing is not None:
            if status == ToleranceStatus.RED and existing.level == ToleranceStatus.AMBER:
                return await escalate(session, ToleranceBreach, "ToleranceBreach", existing, status.value, value)
            return existing

        breach = ToleranceBreach(
            organization_id=tolerance.organization_id,
            tolerance_id=tolerance.id,
            level=status.value,
            status=LifecycleStatus.OPEN.value,
            measured_value=value,
            detected_at=utcnow(),
            open_key=tolerance.id,
        )
        session.add(breach)
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            raise ConcurrentModification("ToleranceBreach", tolerance.id)
        logger.warning(
            "tolerance_breach_opened",
            tolerance_id=str(tolerance.id),
            breach_id=str(breach.id),
            level=status.value,
            value=value,
        )
        return breach

    async def list_breaches(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        status: Optional[LifecycleStatus] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Sequence[ToleranceBreach]:
        return await breach_repo.list(
            session,
            organization_id,
            offset=offset,
            limit=limit,
            order_by="detected_at",
            status=status.value if status else None,
        )

    async def acknowledge_breach(self, session, organization_id, breach_id, actor_id, note):
        return await transition(
            session, ToleranceBreach, "ToleranceBreach", breach_id, organization_id,
            LifecycleStatus.ACKNOWLEDGED, actor_id, note,
        )

    async def resolve_breach(self, session, organization_id, breach_id, actor_id, note):
        return await transition(
            session, ToleranceBreach, "ToleranceBreach", breach_id, organization_id,
            LifecycleStatus.RESOLVED, actor_id, note,
        )

    async def dismiss_breach(self, session, organization_id, breach_id, actor_id, note):
        return await transition(
            session, ToleranceBreach, "ToleranceBreach", breach_id, organization_id,
            LifecycleStatus.DISMISSED, actor_id, note,
        )

    async def accept_exception(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        breach_id: uuid.UUID,
        actor_id: str,
        note: str,
        expires_at: datetime,
    ) -> ToleranceBreach:
        """
        Board-accepted exception: terminal, and suspends detection on the
        tolerance until expires_at.
        """
        require_note(note)
        require_actor(actor_id)
        if expires_at.tzinfo is not None:
            expires_at = as_naive_utc(expires_at)
        now = utcnow()
        if expires_at <= now:
            raise ValidationError("exception expiry must be in the future", field="expires_at")
        if expires_at > now + timedelta(days=self.max_exception_days):
            raise ValidationError(
                f"exceptions may last at most {self.max_exception_days} days",
                field="expires_at",
                details={"max_exception_days": self.max_exception_days},
            )
        breach = await transition(
            session, ToleranceBreach, "ToleranceBreach", breach_id, organization_id,
            LifecycleStatus.ACCEPTED, actor_id, note,
            extra_values={"exception_expires_at": expires_at},
            allow_accept=True,
        )
        logger.warning(
            "tolerance_exception_accepted",
            breach_id=str(breach.id),
            tolerance_id=str(breach.tolerance_id),
            expires_at=expires_at.isoformat(),
            actor_id=actor_id,
        )
        return breach


tolerance_service = ToleranceService()
