"""
Period Archiver Tests.

Covers:
- Period labels and quarter arithmetic
- CommitPeriod: snapshots match live residuals, live rows untouched
- AlreadyCommitted on a second or racing commit, active-period pointer advances
- Deadline expiry leaves nothing behind
- History rows cannot be updated or deleted
- CompareSnapshots, timeline, trends and level migrations
"""

import asyncio
from datetime import datetime

import pytest
import pytest_asyncio

from riskregister.db.models import HistoryImmutableError, Risk, utcnow
from riskregister.engine.periods import Period
from riskregister.errors import AlreadyCommitted, DeadlineExceeded, NotFoundError, ValidationError
from riskregister.schemas.enums import ControlTarget, RiskStatus
from riskregister.schemas.register import CategoryCreate, RiskCreate
from riskregister.services.periods import PeriodArchiver, period_archiver
from riskregister.services.register import register_service

Q1, Q2, Q3 = "Q1 2026", "Q2 2026", "Q3 2026"


class TestPeriod:
    @pytest.mark.parametrize("label", ["Q3 2025", "Q3-2025", "q3 2025", " Q3  2025 "])
    def test_parse(self, label):
        assert Period.parse(label) == Period(2025, 3)

    @pytest.mark.parametrize("label", ["Q5 2025", "2025 Q3", "", "Q3"])
    def test_parse_rejects(self, label):
        with pytest.raises(ValidationError):
            Period.parse(label)

    def test_wraps_year(self):
        assert Period(2025, 4).next() == Period(2026, 1)
        assert Period(2026, 1).previous() == Period(2025, 4)

    def test_containing(self):
        assert Period.containing(datetime(2026, 10, 18)) == Period(2026, 4)

    def test_bounds(self):
        assert Period(2025, 4).bounds() == (datetime(2025, 10, 1), datetime(2026, 1, 1))


@pytest_asyncio.fixture
async def register(make):
    """Two risks; the first mitigated by a 0.75 likelihood control (residual 2 x 5)."""
    mitigated = await make.risk(title="Payment fraud")
    bare = await make.risk(title="Vendor outage", likelihood=3, impact=3)
    control = await make.control()
    await register_service.link_control(make.session, make.organization_id, mitigated.id, control.id)
    return mitigated, bare, control


async def _commit(db, org, period, **kwargs):
    return await period_archiver.commit_period(db, org.id, period, "cfo", **kwargs)


class TestCommit:
    async def test_snapshot_matches_live_residual(self, db, org, register):
        mitigated, _, _ = register
        result = await _commit(db, org, Q1, note="quarter close")
        assert result.period == "Q1 2026"
        assert result.next_period == "Q2 2026"
        assert result.risks_count == 2
        assert result.open_risks_count == 2
        assert result.controls_count == 1

        snapshots = await period_archiver.get_historical_snapshot(db, org.id, Q1)
        frozen = next(s for s in snapshots if s.risk_id == mitigated.id)
        live = await register_service.compute_residual(db, org.id, mitigated.id)
        assert (frozen.likelihood_residual, frozen.impact_residual) == (live.likelihood_residual, live.impact_residual)
        assert frozen.residual_score == live.score == 10
        assert frozen.inherent_score == 20
        assert frozen.control_count == 1
        assert frozen.category_name == "Operational"
        assert frozen.snapshot_data["controls"][0]["code"] == "CTRL-001"

    async def test_live_risks_untouched(self, db, org, register):
        mitigated, _, _ = register
        before = (mitigated.updated_at, mitigated.status, mitigated.likelihood_inherent)
        await _commit(db, org, Q1)
        risk = await db.get(Risk, mitigated.id, populate_existing=True)
        assert (risk.updated_at, risk.status, risk.likelihood_inherent) == before

    async def test_second_commit_is_already_committed(self, db, org, register):
        first = await _commit(db, org, Q1)
        with pytest.raises(AlreadyCommitted) as exc:
            await _commit(db, org, Q1)
        assert exc.value.details["commit_id"] == str(first.commit_id)
        assert len(await period_archiver.list_commits(db, org.id)) == 1

    async def test_pointer_advances(self, db, org, register):
        await _commit(db, org, Q1)
        active = await period_archiver.get_active_period(db, org.id)
        assert active.current_period == Q2
        assert active.previous_period == Q1

    async def test_only_active_period_can_be_committed(self, db, org, register):
        await _commit(db, org, Q1)
        with pytest.raises(ValidationError) as exc:
            await _commit(db, org, Q3)
        assert exc.value.details["active_period"] == Q2

    async def test_no_pointer_reports_calendar_quarter(self, db, org):
        active = await period_archiver.get_active_period(db, org.id)
        assert active.current_period == str(Period.containing(utcnow()))
        assert active.previous_period is None

    async def test_closed_risks_not_snapshotted(self, db, org, register):
        _, bare, _ = register
        await register_service.close_risk(db, org.id, bare.id)
        result = await _commit(db, org, Q1)
        assert result.risks_count == 1
        assert result.closed_risks_count == 1

    async def test_actor_required(self, db, org):
        with pytest.raises(ValidationError):
            await period_archiver.commit_period(db, org.id, Q1, "  ")

    async def test_uncommitted_period_not_found(self, db, org):
        with pytest.raises(NotFoundError):
            await period_archiver.get_historical_snapshot(db, org.id, Q1)


class TestDeadline:
    async def test_deadline_leaves_nothing(self, db, org, register, monkeypatch):
        archiver = PeriodArchiver()

        async def slow_snapshot(*args, **kwargs):
            await asyncio.sleep(5)
            return []

        await db.commit()
        monkeypatch.setattr(archiver, "_snapshot_risks", slow_snapshot)
        with pytest.raises(DeadlineExceeded) as exc:
            await archiver.commit_period(db, org.id, Q1, "cfo", deadline_seconds=0.05)
        assert exc.value.status_code == 504

        assert await period_archiver.list_commits(db, org.id) == []
        result = await _commit(db, org, Q1)
        assert result.risks_count == 2


class TestConcurrentCommit:
    async def test_racing_commits_write_one_history(self, file_session_factory):
        async with file_session_factory() as session:
            organization = await register_service.create_organization(session, "Gamma", "gamma")
            category = await register_service.create_category(
                session, organization.id, CategoryCreate(name="Operational")
            )
            for title, likelihood in (("Payment fraud", 4), ("Vendor outage", 3)):
                await register_service.create_risk(
                    session,
                    organization.id,
                    RiskCreate(
                        title=title,
                        category_id=category.id,
                        division="Finance",
                        likelihood_inherent=likelihood,
                        impact_inherent=3,
                    ),
                )
            await session.commit()

        async def commit(actor: str):
            async with file_session_factory() as session:
                return await period_archiver.commit_period(session, organization.id, Q1, actor)

        outcomes = await asyncio.gather(commit("cfo"), commit("cro"), return_exceptions=True)
        committed = [o for o in outcomes if not isinstance(o, BaseException)]
        refused = [o for o in outcomes if isinstance(o, BaseException)]
        assert len(committed) == 1
        assert len(refused) == 1
        assert isinstance(refused[0], AlreadyCommitted)

        async with file_session_factory() as session:
            assert len(await period_archiver.list_commits(session, organization.id)) == 1
            snapshots = await period_archiver.get_historical_snapshot(session, organization.id, Q1)
            assert len(snapshots) == committed[0].risks_count == 2
            active = await period_archiver.get_active_period(session, organization.id)
            assert active.current_period == Q2


class TestImmutability:
    async def test_snapshot_cannot_be_updated(self, db, org, register):
        await _commit(db, org, Q1)
        snapshot = (await period_archiver.get_historical_snapshot(db, org.id, Q1))[0]
        snapshot.residual_score = 1
        with pytest.raises(HistoryImmutableError):
            await db.flush()

    async def test_commit_cannot_be_deleted(self, db, org, register):
        await _commit(db, org, Q1)
        commit = (await period_archiver.list_commits(db, org.id))[0]
        await db.delete(commit)
        with pytest.raises(HistoryImmutableError):
            await db.flush()

    async def test_snapshotted_risk_cannot_be_deleted(self, db, org, register):
        mitigated, _, _ = register
        await _commit(db, org, Q1)
        with pytest.raises(ValidationError):
            await register_service.delete_risk(db, org.id, mitigated.id)

    async def test_unsnapshotted_risk_can_be_deleted(self, db, org, register):
        _, bare, _ = register
        await register_service.delete_risk(db, org.id, bare.id)
        assert await db.get(Risk, bare.id) is None


# ── History queries ────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def two_quarters(db, org, make, register):
    """
    Q1: fraud (10), outage (9). Between the commits a new risk is added,
    the outage is closed and fraud loses its control. Q2: fraud (20), breach (6).
    """
    mitigated, bare, control = register
    await _commit(db, org, Q1)
    added = await make.risk(title="Data breach", likelihood=2, impact=3)
    await register_service.close_risk(db, org.id, bare.id)
    await register_service.unlink_control(db, org.id, mitigated.id, control.id)
    await _commit(db, org, Q2)
    return mitigated, bare, added


class TestHistory:
    async def test_compare(self, db, org, two_quarters):
        mitigated, bare, added = two_quarters
        comparison = await period_archiver.compare_snapshots(db, org.id, Q1, Q2)
        assert [r.risk_id for r in comparison.new] == [added.id]
        assert [r.risk_id for r in comparison.closed] == [bare.id]
        assert len(comparison.changed) == 1
        change = comparison.changed[0]
        assert change.risk_id == mitigated.id
        assert change.changed_fields == ["likelihood_residual"]
        assert change.residual_score == (10, 20)
        assert comparison.summary.risks_a == 2
        assert comparison.summary.avg_residual_a == 9.5
        assert comparison.summary.avg_residual_b == 13.0

    async def test_compare_needs_both_commits(self, db, org, register):
        await _commit(db, org, Q1)
        with pytest.raises(NotFoundError):
            await period_archiver.compare_snapshots(db, org.id, Q1, Q2)

    async def test_timeline(self, db, org, two_quarters):
        mitigated, _, _ = two_quarters
        timeline = await period_archiver.get_risk_timeline(db, org.id, mitigated.id)
        assert [(t.period, t.residual_score) for t in timeline] == [(Q1, 10), (Q2, 20)]
        assert timeline[0].status == RiskStatus.OPEN

    async def test_trends(self, db, org, two_quarters):
        trends = await period_archiver.get_period_trends(db, org.id)
        assert [t.period for t in trends] == [Q1, Q2]
        assert trends[0].risks_count == 2
        assert trends[1].by_level["EXTREME"] == 1

    async def test_migrations(self, db, org, two_quarters):
        mitigated, _, _ = two_quarters
        migrations = await period_archiver.analyze_migrations(db, org.id, Q1, Q2)
        assert [(m.risk_id, m.from_level, m.to_level, m.direction) for m in migrations] == [
            (mitigated.id, "HIGH", "EXTREME", "up")
        ]


class TestIsolation:
    async def test_other_organization_history_is_separate(self, db, org, other_org, register):
        await _commit(db, org, Q1)
        assert await period_archiver.list_commits(db, other_org.id) == []
        with pytest.raises(NotFoundError):
            await period_archiver.get_historical_snapshot(db, other_org.id, Q1)


async def test_snapshot_uses_links_at_commit_time(db, org, make):
    risk = await make.risk(likelihood=5, impact=5)
    control = await make.control(target=ControlTarget.BOTH, scores=(3, 3, 3, 3))
    await register_service.link_control(db, org.id, risk.id, control.id)
    await _commit(db, org, Q1)
    snapshot = (await period_archiver.get_historical_snapshot(db, org.id, Q1))[0]
    assert snapshot.residual_score == 1
