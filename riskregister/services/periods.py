"""
Period Archiver: quarterly commits and the history built from them.

CommitPeriod freezes every active risk into an immutable snapshot row and
advances the organization's active period, in one transaction:

    1. AlreadyCommitted if the period has a commit (nothing written)
    2. period must be the active one (the first commit sets the pointer)
    3. residuals recomputed from the links in place at that instant
    4. PeriodCommit + one RiskHistorySnapshot per active risk
    5. ActivePeriod advanced by compare-and-swap

Any failure rolls the whole transaction back. Live risk rows are read, never
modified. Snapshot rows are never updated or deleted afterwards.
"""

import asyncio
import uuid
from collections import Counter
from typing import Optional, Sequence

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.config import settings
from riskregister.db.models import (
    ActivePeriod,
    Control,
    Incident,
    IndicatorDefinition,
    PeriodCommit,
    Risk,
    RiskCategory,
    RiskHistorySnapshot,
    RiskIndicator,
    utcnow,
)
from riskregister.db.repositories import risk_repo
from riskregister.engine.effectiveness import control_effectiveness, risk_level
from riskregister.engine.periods import Period
from riskregister.errors import (
    AlreadyCommitted,
    ConcurrentModification,
    DeadlineExceeded,
    NotFoundError,
    ValidationError,
)
from riskregister.schemas.enums import RiskLevel, RiskStatus
from riskregister.schemas.periods import (
    ActivePeriodResponse,
    CommitResult,
    ComparisonSummary,
    PeriodTrend,
    RiskChange,
    RiskMigration,
    SnapshotComparison,
    SnapshotRef,
    TimelineEntry,
)
from riskregister.services.register import control_scores, get_organization, residual_for

logger = structlog.get_logger(__name__)

_COMPARED_FIELDS = (
    "likelihood_inherent",
    "impact_inherent",
    "likelihood_residual",
    "impact_residual",
    "status",
)

_LEVEL_ORDER = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2, RiskLevel.EXTREME: 3}


def level_for(score: int) -> RiskLevel:
    return risk_level(
        score,
        settings.level_extreme_min,
        settings.level_high_min,
        settings.level_medium_min,
    )


def _as_period(value) -> Period:
    return value if isinstance(value, Period) else Period.parse(value)


def _ref(snapshot: RiskHistorySnapshot) -> SnapshotRef:
    return SnapshotRef(
        risk_id=snapshot.risk_id,
        risk_code=snapshot.risk_code,
        title=snapshot.title,
        status=RiskStatus(snapshot.status),
        residual_score=snapshot.residual_score,
    )


def _average(values: Sequence[int]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


async def _count(session: AsyncSession, stmt) -> int:
    result = await session.execute(stmt)
    return result.scalar_one()


class PeriodArchiver:
    """Commits reporting periods and answers questions about them."""

    def __init__(self, commit_timeout_seconds: Optional[float] = None):
        self.commit_timeout_seconds = (
            commit_timeout_seconds
            if commit_timeout_seconds is not None
            else settings.period_commit_timeout_seconds
        )

    # ── Active period ─────────────────────────────────────────────────

    async def _pointer(self, session: AsyncSession, organization_id: uuid.UUID) -> Optional[ActivePeriod]:
        result = await session.execute(
            select(ActivePeriod)
            .where(ActivePeriod.organization_id == organization_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_active_period(
        self, session: AsyncSession, organization_id: uuid.UUID
    ) -> ActivePeriodResponse:
        """The open period; the calendar quarter if nothing was ever committed."""
        await get_organization(session, organization_id)
        pointer = await self._pointer(session, organization_id)
        if pointer is None:
            now = utcnow()
            return ActivePeriodResponse(
                organization_id=organization_id,
                current_period=str(Period.containing(now)),
                previous_period=None,
                period_started_at=Period.containing(now).bounds()[0],
            )
        previous = None
        if pointer.previous_year is not None:
            previous = str(Period(pointer.previous_year, pointer.previous_quarter))
        return ActivePeriodResponse(
            organization_id=organization_id,
            current_period=str(Period(pointer.current_year, pointer.current_quarter)),
            previous_period=previous,
            period_started_at=pointer.period_started_at,
        )

    # ── Commit ────────────────────────────────────────────────────────

    async def find_commit(
        self, session: AsyncSession, organization_id: uuid.UUID, period: Period
    ) -> Optional[PeriodCommit]:
        result = await session.execute(
            select(PeriodCommit).where(
                PeriodCommit.organization_id == organization_id,
                PeriodCommit.period_year == period.year,
                PeriodCommit.period_quarter == period.quarter,
            )
        )
        return result.scalar_one_or_none()

    async def commit_period(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        period,
        actor_id: str,
        note: Optional[str] = None,
        deadline_seconds: Optional[float] = None,
    ) -> CommitResult:
        """
        CommitPeriod. Commits the session on success.

        Raises:
            AlreadyCommitted: period already has a commit (callers may treat as a no-op)
            ValidationError: malformed period, or not the active period
            DeadlineExceeded: did not finish within deadline_seconds; nothing written
        """
        period = _as_period(period)
        if not (actor_id or "").strip():
            raise ValidationError("an actor is required to commit a period", field="actor_id")
        timeout = deadline_seconds if deadline_seconds is not None else self.commit_timeout_seconds
        try:
            return await asyncio.wait_for(
                self._commit(session, organization_id, period, actor_id, note),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            await session.rollback()
            logger.error(
                "period_commit_deadline_exceeded",
                organization_id=str(organization_id),
                period=str(period),
                deadline_seconds=timeout,
            )
            raise DeadlineExceeded("CommitPeriod", timeout)

    async def _commit(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        period: Period,
        actor_id: str,
        note: Optional[str],
    ) -> CommitResult:
        await get_organization(session, organization_id)
        existing = await self.find_commit(session, organization_id, period)
        if existing is not None:
            raise AlreadyCommitted(str(period), existing.id)

        pointer = await self._pointer(session, organization_id)
        if pointer is not None:
            active = Period(pointer.current_year, pointer.current_quarter)
            if period != active:
                raise ValidationError(
                    f"only the active period {active} can be committed",
                    field="period",
                    details={"active_period": str(active), "requested": str(period)},
                )

        try:
            # History rows are insert-only, so everything is computed before
            # the commit row is written.
            commit_id = uuid.uuid4()
            snapshots = await self._snapshot_risks(session, organization_id, commit_id, period)
            start, end = period.bounds()
            commit = PeriodCommit(
                id=commit_id,
                organization_id=organization_id,
                period_year=period.year,
                period_quarter=period.quarter,
                committed_at=utcnow(),
                committed_by=actor_id,
                notes=note,
                risks_count=len(snapshots),
                open_risks_count=sum(1 for s in snapshots if s.status != RiskStatus.CLOSED),
                closed_risks_count=await _count(
                    session,
                    select(func.count()).select_from(Risk).where(
                        Risk.organization_id == organization_id,
                        Risk.status == RiskStatus.CLOSED.value,
                    ),
                ),
                controls_count=await _count(
                    session,
                    select(func.count()).select_from(Control).where(
                        Control.organization_id == organization_id, Control.is_active.is_(True)
                    ),
                ),
                indicators_count=await _count(
                    session,
                    select(func.count()).select_from(IndicatorDefinition).where(
                        IndicatorDefinition.organization_id == organization_id,
                        IndicatorDefinition.is_active.is_(True),
                    ),
                ),
                incidents_count=await _count(
                    session,
                    select(func.count()).select_from(Incident).where(
                        Incident.organization_id == organization_id,
                        Incident.occurred_at >= start,
                        Incident.occurred_at < end,
                    ),
                ),
            )
            session.add(commit)
            try:
                await session.flush()
            except IntegrityError:
                await session.rollback()
                raise AlreadyCommitted(str(period))

            session.add_all(snapshots)
            await session.flush()

            await self._advance_pointer(session, organization_id, pointer, period)
            await session.commit()
        except AlreadyCommitted:
            raise
        except Exception:
            await session.rollback()
            raise

        logger.info(
            "period_committed",
            organization_id=str(organization_id),
            period=str(period),
            commit_id=str(commit.id),
            risks=commit.risks_count,
            actor_id=actor_id,
        )
        return CommitResult(
            commit_id=commit.id,
            period=str(period),
            next_period=str(period.next()),
            committed_at=commit.committed_at,
            committed_by=commit.committed_by,
            risks_count=commit.risks_count,
            open_risks_count=commit.open_risks_count,
            closed_risks_count=commit.closed_risks_count,
            controls_count=commit.controls_count,
            indicators_count=commit.indicators_count,
            incidents_count=commit.incidents_count,
        )

    async def _snapshot_risks(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        commit_id: uuid.UUID,
        period: Period,
    ) -> list[RiskHistorySnapshot]:
        """Unsaved snapshot rows; the caller adds them once the commit row exists."""
        result = await session.execute(
            select(Risk)
            .where(Risk.organization_id == organization_id, Risk.is_active.is_(True))
            .order_by(Risk.code)
        )
        risks = result.scalars().all()
        names = await self._category_names(session, organization_id)

        snapshots = []
        for risk in risks:
            residual, controls = await residual_for(session, risk)
            indicator_codes = (await session.execute(
                select(IndicatorDefinition.code)
                .join(RiskIndicator, RiskIndicator.indicator_id == IndicatorDefinition.id)
                .where(RiskIndicator.risk_id == risk.id)
                .order_by(IndicatorDefinition.code)
            )).scalars().all()
            incident_count = await _count(
                session,
                select(func.count()).select_from(Incident).where(Incident.risk_id == risk.id),
            )
            snapshot = RiskHistorySnapshot(
                organization_id=organization_id,
                commit_id=commit_id,
                risk_id=risk.id,
                period_year=period.year,
                period_quarter=period.quarter,
                risk_code=risk.code,
                title=risk.title,
                category_name=names.get(risk.category_id),
                subcategory_name=names.get(risk.subcategory_id),
                owner=risk.owner,
                division=risk.division,
                department=risk.department,
                status=risk.status,
                likelihood_inherent=residual.likelihood_inherent,
                impact_inherent=residual.impact_inherent,
                inherent_score=residual.inherent_score,
                likelihood_residual=residual.likelihood_residual,
                impact_residual=residual.impact_residual,
                residual_score=residual.score,
                control_count=len(controls),
                indicator_count=len(indicator_codes),
                incident_count=incident_count,
                snapshot_data={
                    "description": risk.description,
                    "likelihood_effectiveness": residual.likelihood_effectiveness,
                    "impact_effectiveness": residual.impact_effectiveness,
                    "controls": [
                        {
                            "code": c.code,
                            "name": c.name,
                            "target": c.target,
                            "effectiveness": control_effectiveness(control_scores(c)),
                        }
                        for c in controls
                    ],
                    "indicators": list(indicator_codes),
                },
            )
            snapshots.append(snapshot)
        return snapshots

    async def _category_names(self, session: AsyncSession, organization_id: uuid.UUID) -> dict:
        result = await session.execute(
            select(RiskCategory.id, RiskCategory.name).where(RiskCategory.organization_id == organization_id)
        )
        return {row[0]: row[1] for row in result.all()}

    async def _advance_pointer(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        pointer: Optional[ActivePeriod],
        period: Period,
    ) -> None:
        following = period.next()
        if pointer is None:
            session.add(ActivePeriod(
                organization_id=organization_id,
                current_year=following.year,
                current_quarter=following.quarter,
                previous_year=period.year,
                previous_quarter=period.quarter,
                period_started_at=utcnow(),
                version=1,
            ))
            try:
                await session.flush()
            except IntegrityError:
                raise ConcurrentModification("ActivePeriod", organization_id)
            return

        outcome = await session.execute(
            update(ActivePeriod)
            .where(
                ActivePeriod.organization_id == organization_id,
                ActivePeriod.current_year == period.year,
                ActivePeriod.current_quarter == period.quarter,
                ActivePeriod.version == pointer.version,
            )
            .values(
                current_year=following.year,
                current_quarter=following.quarter,
                previous_year=period.year,
                previous_quarter=period.quarter,
                period_started_at=utcnow(),
                version=pointer.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if outcome.rowcount == 0:
            raise ConcurrentModification("ActivePeriod", organization_id)

    async def list_commits(
        self, session: AsyncSession, organization_id: uuid.UUID
    ) -> Sequence[PeriodCommit]:
        result = await session.execute(
            select(PeriodCommit)
            .where(PeriodCommit.organization_id == organization_id)
            .order_by(PeriodCommit.period_year.desc(), PeriodCommit.period_quarter.desc())
        )
        return result.scalars().all()

    # ── History ───────────────────────────────────────────────────────

    async def get_historical_snapshot(
        self, session: AsyncSession, organization_id: uuid.UUID, period
    ) -> Sequence[RiskHistorySnapshot]:
        """GetHistoricalSnapshot: the frozen risks of a committed period."""
        period = _as_period(period)
        commit = await self.find_commit(session, organization_id, period)
        if commit is None:
            raise NotFoundError("PeriodCommit", str(period))
        result = await session.execute(
            select(RiskHistorySnapshot)
            .where(RiskHistorySnapshot.commit_id == commit.id)
            .order_by(RiskHistorySnapshot.risk_code)
        )
        return result.scalars().all()

    async def compare_snapshots(
        self, session: AsyncSession, organization_id: uuid.UUID, period_a, period_b
    ) -> SnapshotComparison:
        """
        CompareSnapshots between two committed periods.

        new: only in B. closed: only in A, or CLOSED in B but not in A.
        changed: in both, with a different inherent or residual dimension or
        status (risks already listed as closed are not repeated).
        """
        period_a, period_b = _as_period(period_a), _as_period(period_b)
        snaps_a = await self.get_historical_snapshot(session, organization_id, period_a)
        snaps_b = await self.get_historical_snapshot(session, organization_id, period_b)
        by_risk_a = {s.risk_id: s for s in snaps_a}
        by_risk_b = {s.risk_id: s for s in snaps_b}

        new = [_ref(s) for s in snaps_b if s.risk_id not in by_risk_a]
        closed = [_ref(s) for s in snaps_a if s.risk_id not in by_risk_b]
        changed = []
        for risk_id, b in by_risk_b.items():
            a = by_risk_a.get(risk_id)
            if a is None:
                continue
            if b.status == RiskStatus.CLOSED and a.status != RiskStatus.CLOSED:
                closed.append(_ref(b))
                continue
            fields = [f for f in _COMPARED_FIELDS if getattr(a, f) != getattr(b, f)]
            if fields:
                changed.append(RiskChange(
                    risk_id=risk_id,
                    risk_code=b.risk_code,
                    title=b.title,
                    changed_fields=fields,
                    likelihood_inherent=(a.likelihood_inherent, b.likelihood_inherent),
                    impact_inherent=(a.impact_inherent, b.impact_inherent),
                    likelihood_residual=(a.likelihood_residual, b.likelihood_residual),
                    impact_residual=(a.impact_residual, b.impact_residual),
                    residual_score=(a.residual_score, b.residual_score),
                    status=(RiskStatus(a.status), RiskStatus(b.status)),
                ))

        return SnapshotComparison(
            period_a=str(period_a),
            period_b=str(period_b),
            new=new,
            closed=closed,
            changed=changed,
            summary=ComparisonSummary(
                risks_a=len(snaps_a),
                risks_b=len(snaps_b),
                avg_inherent_a=_average([s.inherent_score for s in snaps_a]),
                avg_inherent_b=_average([s.inherent_score for s in snaps_b]),
                avg_residual_a=_average([s.residual_score for s in snaps_a]),
                avg_residual_b=_average([s.residual_score for s in snaps_b]),
            ),
        )

    async def get_risk_timeline(
        self, session: AsyncSession, organization_id: uuid.UUID, risk_id: uuid.UUID
    ) -> list[TimelineEntry]:
        await risk_repo.get_or_404(session, risk_id, organization_id)
        result = await session.execute(
            select(RiskHistorySnapshot)
            .where(
                RiskHistorySnapshot.organization_id == organization_id,
                RiskHistorySnapshot.risk_id == risk_id,
            )
            .order_by(RiskHistorySnapshot.period_year, RiskHistorySnapshot.period_quarter)
        )
        return [
            TimelineEntry(
                period=str(Period(s.period_year, s.period_quarter)),
                status=RiskStatus(s.status),
                inherent_score=s.inherent_score,
                residual_score=s.residual_score,
                level=level_for(s.residual_score),
                control_count=s.control_count,
                indicator_count=s.indicator_count,
                incident_count=s.incident_count,
            )
            for s in result.scalars().all()
        ]

    async def get_period_trends(
        self, session: AsyncSession, organization_id: uuid.UUID
    ) -> list[PeriodTrend]:
        result = await session.execute(
            select(RiskHistorySnapshot)
            .where(RiskHistorySnapshot.organization_id == organization_id)
            .order_by(RiskHistorySnapshot.period_year, RiskHistorySnapshot.period_quarter)
        )
        grouped: dict[Period, list[RiskHistorySnapshot]] = {}
        for snapshot in result.scalars().all():
            grouped.setdefault(Period(snapshot.period_year, snapshot.period_quarter), []).append(snapshot)
        return [
            PeriodTrend(
                period=str(period),
                risks_count=len(snaps),
                by_status=dict(Counter(s.status for s in snaps)),
                by_level=dict(Counter(level_for(s.residual_score).value for s in snaps)),
                avg_residual=_average([s.residual_score for s in snaps]),
            )
            for period, snaps in sorted(grouped.items())
        ]

    async def analyze_migrations(
        self, session: AsyncSession, organization_id: uuid.UUID, period_a, period_b
    ) -> list[RiskMigration]:
        """Risks whose residual level band moved between two committed periods."""
        snaps_a = await self.get_historical_snapshot(session, organization_id, period_a)
        snaps_b = await self.get_historical_snapshot(session, organization_id, period_b)
        by_risk_a = {s.risk_id: s for s in snaps_a}
        migrations = []
        for b in snaps_b:
            a = by_risk_a.get(b.risk_id)
            if a is None:
                continue
            from_level, to_level = level_for(a.residual_score), level_for(b.residual_score)
            if from_level == to_level:
                continue
            migrations.append(RiskMigration(
                risk_id=b.risk_id,
                risk_code=b.risk_code,
                title=b.title,
                from_level=from_level,
                to_level=to_level,
                from_score=a.residual_score,
                to_score=b.residual_score,
                direction="up" if _LEVEL_ORDER[to_level] > _LEVEL_ORDER[from_level] else "down",
            ))
        return migrations


period_archiver = PeriodArchiver()
