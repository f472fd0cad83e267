"""
Identifier Generator.

Produces PREFIX-NNN codes (RISK: DIV-CAT-001, CONTROL: CTRL-001,
INDICATOR: KRI-001 / KCI-001) from a per-(organization, prefix) counter.

The counter is advanced by one atomic statement:
    UPDATE ... SET last_value = last_value + 1 RETURNING last_value
and, for the first code of a prefix,
    INSERT ... ON CONFLICT (organization_id, prefix)
        DO UPDATE SET last_value = last_value + 1 RETURNING last_value
so two concurrent callers can never read the same value. Imported rows that
already hold a code are skipped, up to max_retries, then GenerationExhausted.
"""

import re
import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.config import settings
from riskregister.db.models import CodeCounter, Control, IndicatorDefinition, Risk
from riskregister.errors import GenerationExhausted, ValidationError
from riskregister.schemas.enums import EntityKind, IndicatorSignal

logger = structlog.get_logger(__name__)

CONTROL_PREFIX = "CTRL"
_NON_LETTERS = re.compile(r"[^A-Za-z]")

_ENTITY_MODELS = {
    EntityKind.RISK: Risk,
    EntityKind.CONTROL: Control,
    EntityKind.INDICATOR: IndicatorDefinition,
}


@dataclass(frozen=True)
class GeneratedCode:
    code: str
    prefix: str
    sequence: int


def _abbreviate(part: str, field: str) -> str:
    letters = _NON_LETTERS.sub("", part or "")
    if not letters:
        raise ValidationError(f"{field} must contain at least one letter", field=field)
    return letters[:3].upper()


def build_prefix(kind: EntityKind, prefix_parts: Sequence[str]) -> str:
    """Deterministic prefix for an entity kind."""
    kind = EntityKind(kind)
    if kind == EntityKind.RISK:
        if len(prefix_parts) != 2:
            raise ValidationError(
                "risk codes need a division and a category",
                field="prefix_parts",
                details={"prefix_parts": list(prefix_parts)},
            )
        division, category = prefix_parts
        return f"{_abbreviate(division, 'division')}-{_abbreviate(category, 'category')}"
    if kind == EntityKind.CONTROL:
        return CONTROL_PREFIX
    if not prefix_parts:
        return IndicatorSignal.KRI.value
    signal = str(prefix_parts[0]).upper()
    if signal not in IndicatorSignal.__members__:
        raise ValidationError(
            "indicator codes take KRI or KCI as prefix",
            field="prefix_parts",
            details={"prefix_parts": list(prefix_parts)},
        )
    return signal


def _dialect_insert(session: AsyncSession):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"code counters need upsert support, not available on {dialect}")
    return insert


class CodeGenerator:
    """
    Allocates sequential, collision-free entity codes.

    The only writer of CodeCounter rows.
    """

    def __init__(self, max_retries: Optional[int] = None, pad_width: Optional[int] = None):
        self.max_retries = max_retries if max_retries is not None else settings.code_max_retries
        self.pad_width = pad_width if pad_width is not None else settings.code_pad_width

    def format(self, prefix: str, sequence: int) -> str:
        return f"{prefix}-{sequence:0{self.pad_width}d}"

    async def next_code(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        kind: EntityKind,
        prefix_parts: Sequence[str] = (),
    ) -> GeneratedCode:
        """
        Allocate the next code for (organization, prefix).

        Raises:
            ValidationError: prefix parts unusable
            GenerationExhausted: every allocated number was already taken
        """
        kind = EntityKind(kind)
        prefix = build_prefix(kind, prefix_parts)
        model = _ENTITY_MODELS[kind]

        for attempt in range(1, self.max_retries + 1):
            sequence = await self._advance(session, organization_id, prefix, model)
            code = self.format(prefix, sequence)
            if not await self._code_taken(session, model, organization_id, code):
                logger.info(
                    "code_generated",
                    organization_id=str(organization_id),
                    kind=kind.value,
                    code=code,
                    attempt=attempt,
                )
                return GeneratedCode(code=code, prefix=prefix, sequence=sequence)
            logger.warning("code_collision_skipped", code=code, attempt=attempt)

        logger.error("code_generation_exhausted", prefix=prefix, attempts=self.max_retries)
        raise GenerationExhausted(prefix, self.max_retries)

    async def _advance(self, session: AsyncSession, organization_id: uuid.UUID, prefix: str, model) -> int:
        result = await session.execute(
            update(CodeCounter)
            .where(
                CodeCounter.organization_id == organization_id,
                CodeCounter.prefix == prefix,
            )
            .values(last_value=CodeCounter.last_value + 1)
            .returning(CodeCounter.last_value)
            .execution_options(synchronize_session=False)
        )
        value = result.scalar_one_or_none()
        if value is not None:
            return value

        # First use of this prefix: start after any legacy codes already stored.
        seed = await self._highest_existing(session, model, organization_id, prefix)
        insert = _dialect_insert(session)
        stmt = insert(CodeCounter).values(
            id=uuid.uuid4(),
            organization_id=organization_id,
            prefix=prefix,
            last_value=seed + 1,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[CodeCounter.organization_id, CodeCounter.prefix],
            set_={"last_value": CodeCounter.last_value + 1},
        ).returning(CodeCounter.last_value)
        result = await session.execute(stmt)
        return result.scalar_one()

    async def _highest_existing(self, session: AsyncSession, model, organization_id: uuid.UUID, prefix: str) -> int:
        result = await session.execute(
            select(model.code).where(
                model.organization_id == organization_id,
                model.code.like(f"{prefix}-%"),
            )
        )
        highest = 0
        for code in result.scalars():
            suffix = code[len(prefix) + 1:]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return highest

    async def _code_taken(self, session: AsyncSession, model, organization_id: uuid.UUID, code: str) -> bool:
        result = await session.execute(
            select(model.id).where(model.organization_id == organization_id, model.code == code).limit(1)
        )
        return result.first() is not None


code_generator = CodeGenerator()


async def create_entity_code(
    session: AsyncSession,
    organization_id: uuid.UUID,
    kind: EntityKind,
    prefix_parts: Sequence[str] = (),
) -> GeneratedCode:
    """CreateEntityCode: allocate a code without creating the entity."""
    return await code_generator.next_code(session, organization_id, kind, prefix_parts)
