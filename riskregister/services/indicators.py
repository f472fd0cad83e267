"""
Indicator Service: RecordMeasurement and the alert lifecycle.

An indicator carries no thresholds of its own. Each measurement is evaluated
against the tolerance configuration that governs the indicator, and the
thresholds actually used are stored on the measurement, so a later change to
the tolerance never rewrites an old status.

At most one unresolved alert exists per indicator. A YELLOW alert that is
followed by a RED reading is escalated in place rather than duplicated.
"""

import uuid
from typing import Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.db.models import IndicatorAlert, IndicatorMeasurement, as_naive_utc, utcnow
from riskregister.db.repositories import alert_repo, indicator_repo
from riskregister.engine.indicator import (
    breached_threshold,
    evaluate,
    evaluate_directional,
    thresholds_from_tolerance,
)
from riskregister.engine.tolerance import ToleranceThresholds
from riskregister.errors import ConcurrentModification, ThresholdNotConfigured, ValidationError
from riskregister.schemas.enums import (
    DataQuality,
    IndicatorStatus,
    LifecycleStatus,
    MetricType,
    ToleranceStatus,
)
from riskregister.schemas.indicators import MeasurementCreate, MeasurementResult
from riskregister.services.lifecycle import escalate, transition
from riskregister.services.tolerance import ToleranceService, tolerance_service

logger = structlog.get_logger(__name__)

_TO_TOLERANCE = {
    IndicatorStatus.GREEN: ToleranceStatus.GREEN,
    IndicatorStatus.YELLOW: ToleranceStatus.AMBER,
    IndicatorStatus.RED: ToleranceStatus.RED,
}


class IndicatorService:
    def __init__(self, tolerances: Optional[ToleranceService] = None):
        self.tolerances = tolerances or tolerance_service

    async def record_measurement(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        indicator_id: uuid.UUID,
        data: MeasurementCreate,
        recorded_by: Optional[str] = None,
    ) -> MeasurementResult:
        """
        RecordMeasurement: store a value, classify it, raise or escalate alerts.

        Raises:
            NotFoundError: no such indicator
            ThresholdNotConfigured: no active tolerance governs the indicator
            ValidationError: value is not a finite number, or indicator inactive
            ConcurrentModification: a concurrent measurement opened the alert first
        """
        indicator = await indicator_repo.get_or_404(session, indicator_id, organization_id)
        if not indicator.is_active:
            raise ValidationError("indicator is inactive", field="indicator_id")

        tolerance = await self.tolerances.governing_tolerance(session, organization_id, indicator.id)
        if tolerance is None:
            raise ThresholdNotConfigured(indicator.id)

        metric_type = MetricType(tolerance.metric_type)
        band = ToleranceThresholds.from_model(tolerance)
        thresholds = thresholds_from_tolerance(metric_type, band)
        measured_at = as_naive_utc(data.measured_at)
        if thresholds is None:
            readings = await self.tolerances.recent_readings(session, tolerance, limit=1, before=measured_at)
            prior_value = readings[0][0] if readings else None
            status = evaluate_directional(data.value, band, prior_value)
            thresholds_used = {**band.as_dict(), "prior_value": prior_value}
            threshold_value = None
        else:
            status = evaluate(data.value, thresholds)
            thresholds_used = thresholds.as_dict()
            threshold_value = breached_threshold(data.value, thresholds, status)

        measurement = IndicatorMeasurement(
            organization_id=organization_id,
            indicator_id=indicator.id,
            value=data.value,
            period_label=data.period_label,
            data_quality=DataQuality(data.data_quality).value,
            alert_status=status.value if status else None,
            tolerance_id=tolerance.id,
            tolerance_version=tolerance.version,
            thresholds_used=thresholds_used,
            measured_at=measured_at or utcnow(),
            recorded_by=recorded_by,
        )
        session.add(measurement)
        await session.flush()

        logger.info(
            "measurement_recorded",
            organization_id=str(organization_id),
            indicator_id=str(indicator.id),
            measurement_id=str(measurement.id),
            value=data.value,
            alert_status=measurement.alert_status,
        )

        result = MeasurementResult(measurement_id=measurement.id, alert_status=status)
        if status in (IndicatorStatus.YELLOW, IndicatorStatus.RED):
            alert, escalated = await self._raise_alert(
                session, measurement, status, threshold_value
            )
            result.alert_id = alert.id
            result.alert_escalated = escalated
        if status is not None:
            breach = await self.tolerances.detect_breach(
                session, tolerance, _TO_TOLERANCE[status], data.value
            )
            result.breach_id = breach.id if breach else None
        return result

    async def _raise_alert(
        self,
        session: AsyncSession,
        measurement: IndicatorMeasurement,
        status: IndicatorStatus,
        threshold_value: Optional[float],
    ) -> tuple[IndicatorAlert, bool]:
        result = await session.execute(
            select(IndicatorAlert).where(IndicatorAlert.open_key == measurement.indicator_id)
        )
        existing = result.scalar_one_or_none()
        if existing is not None:
            if status == IndicatorStatus.RED and existing.level == IndicatorStatus.YELLOW:
                alert = await escalate(
                    session, IndicatorAlert, "IndicatorAlert", existing, status.value, measurement.value
                )
                alert.threshold_value = threshold_value
                alert.measurement_id = measurement.id
                await session.flush()
                return alert, True
            return existing, False

        alert = IndicatorAlert(
            organization_id=measurement.organization_id,
            indicator_id=measurement.indicator_id,
            measurement_id=measurement.id,
            level=status.value,
            status=LifecycleStatus.OPEN.value,
            measured_value=measurement.value,
            threshold_value=threshold_value,
            opened_at=utcnow(),
            open_key=measurement.indicator_id,
        )
        session.add(alert)
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            raise ConcurrentModification("IndicatorAlert", measurement.indicator_id)
        logger.warning(
            "indicator_alert_opened",
            indicator_id=str(measurement.indicator_id),
            alert_id=str(alert.id),
            level=status.value,
            value=measurement.value,
        )
        return alert, False

    # ── Queries ───────────────────────────────────────────────────────

    async def list_measurements(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        indicator_id: uuid.UUID,
        offset: int = 0,
        limit: int = 50,
    ) -> Sequence[IndicatorMeasurement]:
        await indicator_repo.get_or_404(session, indicator_id, organization_id)
        result = await session.execute(
            select(IndicatorMeasurement)
            .where(IndicatorMeasurement.indicator_id == indicator_id)
            .order_by(IndicatorMeasurement.measured_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return result.scalars().all()

    async def list_alerts(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        status: Optional[LifecycleStatus] = None,
        indicator_id: Optional[uuid.UUID] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Sequence[IndicatorAlert]:
        return await alert_repo.list(
            session,
            organization_id,
            offset=offset,
            limit=limit,
            order_by="opened_at",
            status=status.value if status else None,
            indicator_id=indicator_id,
        )

    # ── Alert lifecycle ───────────────────────────────────────────────

    async def acknowledge_alert(self, session, organization_id, alert_id, actor_id, note):
        return await transition(
            session, IndicatorAlert, "IndicatorAlert", alert_id, organization_id,
            LifecycleStatus.ACKNOWLEDGED, actor_id, note,
        )

    async def resolve_alert(self, session, organization_id, alert_id, actor_id, note):
        return await transition(
            session, IndicatorAlert, "IndicatorAlert", alert_id, organization_id,
            LifecycleStatus.RESOLVED, actor_id, note,
        )

    async def dismiss_alert(self, session, organization_id, alert_id, actor_id, note):
        return await transition(
            session, IndicatorAlert, "IndicatorAlert", alert_id, organization_id,
            LifecycleStatus.DISMISSED, actor_id, note,
        )


indicator_service = IndicatorService()
