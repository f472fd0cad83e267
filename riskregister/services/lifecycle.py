"""
Guarded lifecycle transitions for indicator alerts and tolerance breaches.

    OPEN ──► ACKNOWLEDGED ──► RESOLVED | DISMISSED
      └────────────────────► RESOLVED | DISMISSED
    (breaches only)  OPEN | ACKNOWLEDGED ──► ACCEPTED

Every transition needs an actor and a non-empty note. The write is a single
compare-and-swap UPDATE on (id, status, version); if another caller got
there first, zero rows match and the loser gets ConcurrentModification
carrying the status the winner left behind.
"""

import uuid
from typing import Any, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.db.models import utcnow
from riskregister.errors import (
    ConcurrentModification,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from riskregister.schemas.enums import UNRESOLVED_STATUSES, LifecycleStatus

logger = structlog.get_logger(__name__)

_TERMINAL = frozenset({
    LifecycleStatus.RESOLVED,
    LifecycleStatus.DISMISSED,
    LifecycleStatus.ACCEPTED,
})

_TRANSITIONS: dict[LifecycleStatus, frozenset[LifecycleStatus]] = {
    LifecycleStatus.OPEN: frozenset({
        LifecycleStatus.ACKNOWLEDGED,
        LifecycleStatus.RESOLVED,
        LifecycleStatus.DISMISSED,
        LifecycleStatus.ACCEPTED,
    }),
    LifecycleStatus.ACKNOWLEDGED: frozenset({
        LifecycleStatus.RESOLVED,
        LifecycleStatus.DISMISSED,
        LifecycleStatus.ACCEPTED,
    }),
}


def require_note(note: Optional[str]) -> str:
    note = (note or "").strip()
    if not note:
        raise ValidationError("a note is required for every status change", field="note")
    return note


def require_actor(actor_id: Optional[str]) -> str:
    actor_id = (actor_id or "").strip()
    if not actor_id:
        raise ValidationError("an actor is required for every status change", field="actor_id")
    return actor_id


async def transition(
    session: AsyncSession,
    model,
    resource: str,
    record_id: uuid.UUID,
    organization_id: uuid.UUID,
    to_status: LifecycleStatus,
    actor_id: Optional[str],
    note: Optional[str],
    extra_values: Optional[dict[str, Any]] = None,
    allow_accept: bool = False,
):
    """
    Move an alert or breach to to_status.

    Raises:
        ValidationError: missing actor or note
        NotFoundError: no such record in this organization
        ConcurrentModification: already in to_status, or lost the race
        InvalidTransition: to_status is not reachable from the current status
    """
    to_status = LifecycleStatus(to_status)
    note = require_note(note)
    actor_id = require_actor(actor_id)

    result = await session.execute(
        select(model)
        .where(model.id == record_id, model.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise NotFoundError(resource, record_id)

    current = LifecycleStatus(record.status)
    if current == to_status:
        raise ConcurrentModification(resource, record_id, current_status=current.value)
    allowed = _TRANSITIONS.get(current, frozenset())
    if not allow_accept:
        allowed = allowed - {LifecycleStatus.ACCEPTED}
    if to_status not in allowed:
        raise InvalidTransition(resource, current.value, to_status.value)

    now = utcnow()
    values: dict[str, Any] = {"status": to_status.value, "version": record.version + 1}
    if to_status == LifecycleStatus.ACKNOWLEDGED:
        values.update(acknowledged_by=actor_id, acknowledged_at=now, acknowledged_note=note)
    else:
        values.update(closed_by=actor_id, closed_at=now, closed_note=note)
    if to_status in _TERMINAL:
        values["open_key"] = None
    if extra_values:
        values.update(extra_values)

    outcome = await session.execute(
        update(model)
        .where(
            model.id == record_id,
            model.status == current.value,
            model.version == record.version,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount == 0:
        latest = await session.execute(select(model.status).where(model.id == record_id))
        latest_status = latest.scalar_one_or_none()
        logger.warning(
            "lifecycle_transition_lost_race",
            resource=resource,
            record_id=str(record_id),
            requested=to_status.value,
            current_status=latest_status,
        )
        raise ConcurrentModification(resource, record_id, current_status=latest_status)

    await session.refresh(record)
    logger.info(
        "lifecycle_transition",
        resource=resource,
        record_id=str(record_id),
        from_status=current.value,
        to_status=to_status.value,
        actor_id=actor_id,
    )
    return record


async def escalate(session: AsyncSession, model, resource: str, record, level: str, measured_value: float):
    """Raise an unresolved record's level in place, guarded like a transition."""
    previous_level = record.level
    outcome = await session.execute(
        update(model)
        .where(
            model.id == record.id,
            model.version == record.version,
            model.status.in_([s.value for s in UNRESOLVED_STATUSES]),
        )
        .values(
            level=level,
            prior_level=previous_level,
            measured_value=measured_value,
            escalated_at=utcnow(),
            version=record.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount == 0:
        raise ConcurrentModification(resource, record.id)
    await session.refresh(record)
    logger.info(
        "lifecycle_escalated",
        resource=resource,
        record_id=str(record.id),
        from_level=previous_level,
        to_level=level,
    )
    return record
