"""
Alert / Breach Lifecycle Tests.

Covers:
- OPEN -> ACKNOWLEDGED -> RESOLVED with actor, timestamp and note recorded
- A note and an actor are required
- The second of two identical transitions loses with the winner's status
- Terminal states accept no further transitions
"""

import pytest
import pytest_asyncio

from riskregister.errors import ConcurrentModification, InvalidTransition, NotFoundError, ValidationError
from riskregister.schemas.enums import LifecycleStatus
from riskregister.schemas.indicators import MeasurementCreate
from riskregister.services.indicators import indicator_service


@pytest_asyncio.fixture
async def alert_id(db, org, make):
    indicator = await make.indicator()
    appetite_category = await make.appetite_category()
    await make.tolerance(appetite_category.id, indicator_id=indicator.id)
    result = await indicator_service.record_measurement(db, org.id, indicator.id, MeasurementCreate(value=85))
    return result.alert_id


class TestHappyPath:
    async def test_acknowledge_then_resolve(self, db, org, alert_id):
        alert = await indicator_service.acknowledge_alert(db, org.id, alert_id, "alice", "looking into it")
        assert alert.status == LifecycleStatus.ACKNOWLEDGED
        assert alert.acknowledged_by == "alice"
        assert alert.acknowledged_note == "looking into it"
        assert alert.acknowledged_at is not None
        assert alert.version == 2

        alert = await indicator_service.resolve_alert(db, org.id, alert_id, "bob", "lockout policy tightened")
        assert alert.status == LifecycleStatus.RESOLVED
        assert alert.closed_by == "bob"
        assert alert.open_key is None
        assert alert.version == 3

    async def test_dismiss_straight_from_open(self, db, org, alert_id):
        alert = await indicator_service.dismiss_alert(db, org.id, alert_id, "alice", "test data")
        assert alert.status == LifecycleStatus.DISMISSED
        assert alert.acknowledged_at is None


class TestRequiredFields:
    @pytest.mark.parametrize("note", ["", "   ", None])
    async def test_note_required(self, db, org, alert_id, note):
        with pytest.raises(ValidationError) as exc:
            await indicator_service.acknowledge_alert(db, org.id, alert_id, "alice", note)
        assert exc.value.field == "note"

    async def test_actor_required(self, db, org, alert_id):
        with pytest.raises(ValidationError) as exc:
            await indicator_service.acknowledge_alert(db, org.id, alert_id, "", "note")
        assert exc.value.field == "actor_id"


class TestGuards:
    async def test_second_acknowledge_loses(self, db, org, alert_id):
        await indicator_service.acknowledge_alert(db, org.id, alert_id, "alice", "mine")
        with pytest.raises(ConcurrentModification) as exc:
            await indicator_service.acknowledge_alert(db, org.id, alert_id, "bob", "no, mine")
        assert exc.value.current_status == LifecycleStatus.ACKNOWLEDGED
        assert exc.value.details["current_status"] == "ACKNOWLEDGED"

    async def test_resolved_is_terminal(self, db, org, alert_id):
        await indicator_service.resolve_alert(db, org.id, alert_id, "alice", "fixed")
        with pytest.raises(InvalidTransition):
            await indicator_service.acknowledge_alert(db, org.id, alert_id, "bob", "late")

    async def test_other_organization_cannot_see_alert(self, db, other_org, alert_id):
        with pytest.raises(NotFoundError):
            await indicator_service.acknowledge_alert(db, other_org.id, alert_id, "eve", "peek")

    async def test_resolved_alert_frees_the_indicator(self, db, org, alert_id, make):
        alert = await indicator_service.resolve_alert(db, org.id, alert_id, "alice", "fixed")
        result = await indicator_service.record_measurement(
            db, org.id, alert.indicator_id, MeasurementCreate(value=88)
        )
        assert result.alert_id != alert_id
