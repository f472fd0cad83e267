"""
Tolerance Service Tests.

Covers:
- Validation when a configuration is saved
- One active tolerance per indicator
- Metric status: no data and stale data are UNKNOWN
- Category and enterprise roll-up under the approved statement
- Direct observations and breach detection / escalation
- Board-accepted exceptions
"""

from datetime import timedelta

import pytest
import pytest_asyncio

from riskregister.db.models import ToleranceBreach, utcnow
from riskregister.errors import (
    InvalidThresholdConfiguration,
    InvalidTransition,
    ValidationError,
)
from riskregister.schemas.enums import (
    BadDirection,
    LifecycleStatus,
    MetricType,
    ToleranceStatus,
)
from riskregister.schemas.indicators import MeasurementCreate
from riskregister.services.appetite import appetite_service
from riskregister.services.indicators import indicator_service
from riskregister.services.tolerance import ToleranceService, tolerance_service


@pytest_asyncio.fixture
async def appetite_category(make):
    return await make.appetite_category()


@pytest_asyncio.fixture
async def direct(make, appetite_category):
    """Observation-fed MAXIMUM tolerance: GREEN <= 70 < AMBER <= 90 < RED."""
    return await make.tolerance(appetite_category.id, metric_name="Open audit findings")


async def _observe(db, org, tolerance, value, **kwargs):
    return await tolerance_service.record_observation(db, org.id, tolerance.id, value, **kwargs)


# ── Configuration ──────────────────────────────────────────────────────


class TestSaveConfiguration:
    async def test_saved_active_at_version_one(self, direct):
        assert direct.is_active is True
        assert direct.version == 1
        assert direct.metric_type == MetricType.MAXIMUM

    async def test_invalid_bands_rejected(self, make, appetite_category):
        with pytest.raises(InvalidThresholdConfiguration):
            await make.tolerance(appetite_category.id, green_max=90.0, amber_max=70.0)

    async def test_directional_needs_both_settings(self, make, appetite_category):
        with pytest.raises(ValidationError) as exc:
            await make.tolerance(appetite_category.id, metric_type=MetricType.DIRECTIONAL, allowed_change_pct=10.0)
        assert exc.value.field == "bad_direction"

    async def test_directional_gets_default_warning_fraction(self, make, appetite_category):
        tolerance = await make.tolerance(
            appetite_category.id,
            metric_type=MetricType.DIRECTIONAL,
            allowed_change_pct=10.0,
            bad_direction=BadDirection.DECREASING,
        )
        assert tolerance.warning_fraction == 0.5

    async def test_indicator_governed_once(self, make, appetite_category):
        indicator = await make.indicator()
        first = await make.tolerance(appetite_category.id, indicator_id=indicator.id)
        with pytest.raises(ValidationError) as exc:
            await make.tolerance(appetite_category.id, indicator_id=indicator.id, metric_name="Second")
        assert exc.value.details["tolerance_id"] == str(first.id)

    async def test_update_bumps_version(self, db, org, direct):
        from riskregister.schemas.tolerance import ThresholdsUpdate

        updated = await tolerance_service.update_thresholds(
            db, org.id, direct.id, ThresholdsUpdate(green_max=60.0, amber_max=80.0)
        )
        assert updated.version == 2
        assert updated.green_max == 60.0

    async def test_update_validates(self, db, org, direct):
        from riskregister.schemas.tolerance import ThresholdsUpdate

        with pytest.raises(InvalidThresholdConfiguration):
            await tolerance_service.update_thresholds(
                db, org.id, direct.id, ThresholdsUpdate(green_max=60.0)
            )
        assert direct.version == 1

    async def test_approved_thresholds_are_frozen(self, db, org, appetite_category, direct):
        from riskregister.schemas.tolerance import ThresholdsUpdate

        await appetite_service.approve_statement(db, org.id, appetite_category.statement_id, "board")
        with pytest.raises(ValidationError) as exc:
            await tolerance_service.update_thresholds(
                db, org.id, direct.id, ThresholdsUpdate(green_max=60.0, amber_max=80.0)
            )
        assert exc.value.field == "tolerance_id"
        assert exc.value.details["statement_status"] == "APPROVED"
        assert direct.version == 1
        assert direct.green_max == 70.0


# ── Metric status & roll-up ────────────────────────────────────────────


class TestMetricStatus:
    async def test_no_data_is_unknown(self, db, direct):
        status = await tolerance_service.metric_status(db, direct)
        assert status.status == ToleranceStatus.UNKNOWN
        assert status.latest_value is None

    async def test_latest_value_decides(self, db, org, direct):
        await _observe(db, org, direct, 95, observed_at=utcnow() - timedelta(days=2))
        await _observe(db, org, direct, 50)
        status = await tolerance_service.metric_status(db, direct)
        assert status.status == ToleranceStatus.GREEN
        assert status.latest_value == 50

    async def test_stale_data_is_unknown(self, db, org, direct):
        await _observe(db, org, direct, 50, observed_at=utcnow() - timedelta(days=200))
        status = await tolerance_service.metric_status(db, direct)
        assert status.status == ToleranceStatus.UNKNOWN
        assert status.stale is True
        assert status.latest_value == 50

    async def test_stale_window_is_configurable(self, db, org, direct):
        await _observe(db, org, direct, 50, observed_at=utcnow() - timedelta(days=10))
        strict = ToleranceService(stale_after_days=7)
        assert (await strict.metric_status(db, direct)).stale is True
        assert (await tolerance_service.metric_status(db, direct)).status == ToleranceStatus.GREEN

    async def test_evaluate_metric_stores_nothing(self, db, org, direct):
        status = await tolerance_service.evaluate_metric(db, org.id, direct.id, 95)
        assert status == ToleranceStatus.RED
        assert (await tolerance_service.recent_readings(db, direct)) == []


class TestEnterpriseStatus:
    async def test_no_approved_statement_is_unknown(self, db, org, direct):
        await _observe(db, org, direct, 50)
        status = await tolerance_service.get_enterprise_status(db, org.id)
        assert status.status == ToleranceStatus.UNKNOWN
        assert status.statement_id is None

    async def test_worst_category_wins(self, db, org, make, appetite_category, direct):
        await make.tolerance(appetite_category.id, metric_name="Phishing click rate")
        await _observe(db, org, direct, 95)
        await appetite_service.approve_statement(db, org.id, appetite_category.statement_id, "board")

        status = await tolerance_service.get_enterprise_status(db, org.id)
        assert status.status == ToleranceStatus.RED
        assert status.counts.red == 1
        category = status.per_category[0]
        assert category.category_name == "Operational"
        assert category.counts.red == 1
        assert category.counts.unknown == 1

    async def test_all_unknown_never_green(self, db, org, appetite_category, direct):
        await appetite_service.approve_statement(db, org.id, appetite_category.statement_id, "board")
        status = await tolerance_service.get_enterprise_status(db, org.id)
        assert status.status == ToleranceStatus.UNKNOWN
        assert status.counts.unknown == 1
        assert status.counts.green == 0


# ── Observations & breaches ────────────────────────────────────────────


class TestObservations:
    async def test_green_observation_has_no_breach(self, db, org, direct):
        result = await _observe(db, org, direct, 20, recorded_by="auditor")
        assert result.status == ToleranceStatus.GREEN
        assert result.breach_id is None

    async def test_indicator_fed_tolerance_rejects_observations(self, db, org, make, appetite_category):
        indicator = await make.indicator()
        tolerance = await make.tolerance(appetite_category.id, indicator_id=indicator.id)
        with pytest.raises(ValidationError):
            await _observe(db, org, tolerance, 50)

    async def test_inactive_tolerance_rejects_observations(self, db, org, direct):
        await tolerance_service.deactivate(db, org.id, direct.id)
        with pytest.raises(ValidationError):
            await _observe(db, org, direct, 50)

    async def test_directional_uses_previous_observation(self, db, org, make, appetite_category):
        tolerance = await make.tolerance(
            appetite_category.id,
            metric_type=MetricType.DIRECTIONAL,
            metric_name="Customer complaints",
            allowed_change_pct=20.0,
            bad_direction=BadDirection.INCREASING,
        )
        first = await _observe(db, org, tolerance, 100, observed_at=utcnow() - timedelta(days=30))
        second = await _observe(db, org, tolerance, 115)
        assert first.status == ToleranceStatus.UNKNOWN
        assert second.status == ToleranceStatus.AMBER

    async def test_backfilled_observation_compares_with_earlier_reading(self, db, org, make, appetite_category):
        tolerance = await make.tolerance(
            appetite_category.id,
            metric_type=MetricType.DIRECTIONAL,
            metric_name="Capital ratio",
            allowed_change_pct=20.0,
            bad_direction=BadDirection.DECREASING,
        )
        now = utcnow()
        await _observe(db, org, tolerance, 100, observed_at=now - timedelta(days=60))
        await _observe(db, org, tolerance, 200, observed_at=now - timedelta(days=2))

        backfill = await _observe(db, org, tolerance, 105, observed_at=now - timedelta(days=30))
        assert backfill.status == ToleranceStatus.GREEN
        assert backfill.breach_id is None


class TestBreaches:
    async def test_amber_then_red_escalates_in_place(self, db, org, direct):
        amber = await _observe(db, org, direct, 80)
        red = await _observe(db, org, direct, 99)
        assert amber.breach_id == red.breach_id

        breach = await db.get(ToleranceBreach, red.breach_id)
        assert breach.level == ToleranceStatus.RED
        assert breach.prior_level == ToleranceStatus.AMBER
        assert breach.escalated_at is not None

    async def test_persisting_breach_not_duplicated(self, db, org, direct):
        first = await _observe(db, org, direct, 99)
        second = await _observe(db, org, direct, 120)
        assert first.breach_id == second.breach_id
        assert len(await tolerance_service.list_breaches(db, org.id)) == 1

    async def test_indicator_measurement_feeds_breach(self, db, org, make, appetite_category):
        indicator = await make.indicator()
        tolerance = await make.tolerance(appetite_category.id, indicator_id=indicator.id)
        result = await indicator_service.record_measurement(db, org.id, indicator.id, MeasurementCreate(value=95))
        breach = await db.get(ToleranceBreach, result.breach_id)
        assert breach.tolerance_id == tolerance.id
        assert breach.level == ToleranceStatus.RED

    async def test_breach_lifecycle(self, db, org, direct):
        result = await _observe(db, org, direct, 99)
        breach = await tolerance_service.acknowledge_breach(db, org.id, result.breach_id, "cro", "reviewing")
        assert breach.status == LifecycleStatus.ACKNOWLEDGED
        breach = await tolerance_service.resolve_breach(db, org.id, result.breach_id, "cro", "remediated")
        assert breach.status == LifecycleStatus.RESOLVED

        again = await _observe(db, org, direct, 99)
        assert again.breach_id != result.breach_id

    async def test_plain_transition_cannot_accept(self, db, org, direct):
        from riskregister.services.lifecycle import transition

        result = await _observe(db, org, direct, 99)
        with pytest.raises(InvalidTransition):
            await transition(
                db, ToleranceBreach, "ToleranceBreach", result.breach_id, org.id,
                LifecycleStatus.ACCEPTED, "cro", "sneaky",
            )


class TestExceptions:
    async def test_exception_suppresses_detection_until_expiry(self, db, org, direct):
        result = await _observe(db, org, direct, 99)
        expires = utcnow() + timedelta(days=90)
        breach = await tolerance_service.accept_exception(
            db, org.id, result.breach_id, "board", "accepted for FY", expires
        )
        assert breach.status == LifecycleStatus.ACCEPTED
        assert breach.exception_expires_at == expires
        assert breach.open_key is None

        during = await _observe(db, org, direct, 99)
        assert during.status == ToleranceStatus.RED
        assert during.breach_id is None

    async def test_expired_exception_stops_suppressing(self, db, org, direct):
        result = await _observe(db, org, direct, 99)
        await tolerance_service.accept_exception(
            db, org.id, result.breach_id, "board", "short", utcnow() + timedelta(days=1)
        )
        breach = await db.get(ToleranceBreach, result.breach_id)
        breach.exception_expires_at = utcnow() - timedelta(minutes=1)
        await db.flush()

        after = await _observe(db, org, direct, 99)
        assert after.breach_id is not None
        assert after.breach_id != result.breach_id

    async def test_expiry_must_be_in_future(self, db, org, direct):
        result = await _observe(db, org, direct, 99)
        with pytest.raises(ValidationError) as exc:
            await tolerance_service.accept_exception(
                db, org.id, result.breach_id, "board", "late", utcnow() - timedelta(days=1)
            )
        assert exc.value.field == "expires_at"

    async def test_expiry_is_capped(self, db, org, direct):
        result = await _observe(db, org, direct, 99)
        with pytest.raises(ValidationError) as exc:
            await tolerance_service.accept_exception(
                db, org.id, result.breach_id, "board", "forever", utcnow() + timedelta(days=400)
            )
        assert exc.value.details["max_exception_days"] == 365

    async def test_note_required(self, db, org, direct):
        result = await _observe(db, org, direct, 99)
        with pytest.raises(ValidationError):
            await tolerance_service.accept_exception(
                db, org.id, result.breach_id, "board", "", utcnow() + timedelta(days=30)
            )
