"""
Identifier Generator Tests.

Covers:
- Prefix rules per entity kind
- Sequential, zero-padded codes per (organization, prefix)
- Imported codes are skipped, and the retry budget ends in GenerationExhausted
- Concurrent allocation never hands out the same code twice, even on first use
"""

import asyncio

import pytest
from sqlalchemy import select

from riskregister.db.models import CodeCounter, Control
from riskregister.errors import GenerationExhausted, ValidationError
from riskregister.schemas.enums import EntityKind
from riskregister.services.codes import CodeGenerator, build_prefix, code_generator, create_entity_code
from riskregister.services.register import register_service


class TestPrefix:
    def test_risk_prefix_from_division_and_category(self):
        assert build_prefix(EntityKind.RISK, ("Finance", "Operational")) == "FIN-OPE"

    def test_risk_prefix_drops_non_letters(self):
        assert build_prefix(EntityKind.RISK, ("I.T. 2", "cyber-security")) == "IT-CYB"

    def test_risk_prefix_needs_two_parts(self):
        with pytest.raises(ValidationError):
            build_prefix(EntityKind.RISK, ("Finance",))

    def test_risk_prefix_part_needs_letters(self):
        with pytest.raises(ValidationError) as exc:
            build_prefix(EntityKind.RISK, ("123", "Operational"))
        assert exc.value.field == "division"

    def test_control_prefix(self):
        assert build_prefix(EntityKind.CONTROL, ()) == "CTRL"

    def test_indicator_prefix(self):
        assert build_prefix(EntityKind.INDICATOR, ()) == "KRI"
        assert build_prefix(EntityKind.INDICATOR, ("kci",)) == "KCI"
        with pytest.raises(ValidationError):
            build_prefix(EntityKind.INDICATOR, ("XYZ",))


class TestSequence:
    async def test_sequential_codes(self, db, org):
        codes = [
            (await create_entity_code(db, org.id, EntityKind.CONTROL)).code
            for _ in range(3)
        ]
        assert codes == ["CTRL-001", "CTRL-002", "CTRL-003"]

    async def test_counters_are_per_prefix(self, db, org):
        await create_entity_code(db, org.id, EntityKind.RISK, ("Finance", "Operational"))
        second = await create_entity_code(db, org.id, EntityKind.RISK, ("Finance", "Operational"))
        other = await create_entity_code(db, org.id, EntityKind.RISK, ("Legal", "Operational"))
        assert second.code == "FIN-OPE-002"
        assert other.code == "LEG-OPE-001"

    async def test_counters_are_per_organization(self, db, org, other_org):
        await create_entity_code(db, org.id, EntityKind.CONTROL)
        generated = await create_entity_code(db, other_org.id, EntityKind.CONTROL)
        assert generated.code == "CTRL-001"

    async def test_created_entities_get_codes(self, make):
        risk = await make.risk()
        control = await make.control()
        indicator = await make.indicator()
        assert risk.code == "FIN-OPE-001"
        assert control.code == "CTRL-001"
        assert indicator.code == "KRI-001"

    async def test_wide_padding(self, db, org):
        generator = CodeGenerator(pad_width=5)
        generated = await generator.next_code(db, org.id, EntityKind.CONTROL)
        assert generated.code == "CTRL-00001"


class TestCollisions:
    async def test_first_use_starts_after_imported_codes(self, db, org):
        db.add(Control(organization_id=org.id, code="CTRL-007", name="Imported", control_type="PREVENTIVE", target="BOTH"))
        await db.flush()
        generated = await create_entity_code(db, org.id, EntityKind.CONTROL)
        assert generated.code == "CTRL-008"

    async def test_taken_code_is_skipped(self, db, org):
        await create_entity_code(db, org.id, EntityKind.CONTROL)
        db.add(Control(organization_id=org.id, code="CTRL-002", name="Imported", control_type="PREVENTIVE", target="BOTH"))
        await db.flush()
        generated = await create_entity_code(db, org.id, EntityKind.CONTROL)
        assert generated.code == "CTRL-003"

    async def test_exhausted_after_retry_budget(self, db, org):
        generator = CodeGenerator(max_retries=2)
        await generator.next_code(db, org.id, EntityKind.CONTROL)
        for n in (2, 3):
            db.add(Control(organization_id=org.id, code=f"CTRL-00{n}", name="Imported",
                           control_type="PREVENTIVE", target="BOTH"))
        await db.flush()
        with pytest.raises(GenerationExhausted) as exc:
            await generator.next_code(db, org.id, EntityKind.CONTROL)
        assert exc.value.details["transient"] is True


class TestConcurrency:
    async def test_parallel_callers_get_distinct_codes(self, file_session_factory):
        async with file_session_factory() as session:
            organization = await register_service.create_organization(session, "Gamma", "gamma")
            await session.commit()
        async with file_session_factory() as session:
            await code_generator.next_code(session, organization.id, EntityKind.CONTROL)
            await session.commit()

        async def allocate() -> str:
            async with file_session_factory() as session:
                generated = await code_generator.next_code(session, organization.id, EntityKind.CONTROL)
                await session.commit()
                return generated.code

        codes = await asyncio.gather(*(allocate() for _ in range(10)))
        assert len(set(codes)) == 10
        assert sorted(codes) == [f"CTRL-{n:03d}" for n in range(2, 12)]

        async with file_session_factory() as session:
            counter = (await session.execute(
                select(CodeCounter).where(CodeCounter.organization_id == organization.id)
            )).scalar_one()
            assert counter.last_value == 11

    async def test_parallel_first_use_creates_one_counter(self, file_session_factory):
        async with file_session_factory() as session:
            organization = await register_service.create_organization(session, "Delta", "delta")
            await session.commit()

        async def allocate() -> str:
            async with file_session_factory() as session:
                generated = await code_generator.next_code(session, organization.id, EntityKind.INDICATOR)
                await session.commit()
                return generated.code

        codes = await asyncio.gather(*(allocate() for _ in range(8)))
        assert sorted(codes) == [f"KRI-{n:03d}" for n in range(1, 9)]

        async with file_session_factory() as session:
            counters = (await session.execute(
                select(CodeCounter).where(CodeCounter.organization_id == organization.id)
            )).scalars().all()
            assert [(c.prefix, c.last_value) for c in counters] == [("KRI", 8)]
