"""
Suggestion Intake: AI-proposed drafts enter through the manual path.

A suggestion is untrusted input. It is parsed with the same pydantic schemas
as a hand-written request, any code it carries is discarded, and creation
runs through the register and tolerance services so identifier generation
and threshold validation apply unchanged. Every decision is recorded.
"""

import uuid
from typing import Any, Optional

import pydantic
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.db.models import AiSuggestion
from riskregister.errors import RiskRegisterError, ValidationError
from riskregister.schemas.enums import SuggestionDecision, SuggestionKind
from riskregister.schemas.register import ControlCreate, RiskCreate
from riskregister.schemas.suggestions import SuggestionIn, SuggestionOutcome
from riskregister.schemas.tolerance import ToleranceCreate
from riskregister.services.register import RegisterService, register_service
from riskregister.services.tolerance import ToleranceService, tolerance_service

logger = structlog.get_logger(__name__)

_SCHEMAS = {
    SuggestionKind.RISK: RiskCreate,
    SuggestionKind.CONTROL: ControlCreate,
    SuggestionKind.TOLERANCE: ToleranceCreate,
}

# Fields a suggestion may not decide for itself.
_SERVER_OWNED = ("id", "code", "organization_id", "version", "created_at")


def parse_payload(kind: SuggestionKind, payload: dict[str, Any]):
    """Validate a payload as the manual request schema, minus server-owned fields."""
    cleaned = {k: v for k, v in payload.items() if k not in _SERVER_OWNED}
    try:
        return _SCHEMAS[kind].model_validate(cleaned)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(
            f"suggested {kind.value.lower()} is invalid: {first.get('msg')}",
            field=field,
            details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
        )


class SuggestionIntake:
    def __init__(
        self,
        register: Optional[RegisterService] = None,
        tolerances: Optional[ToleranceService] = None,
    ):
        self.register = register or register_service
        self.tolerances = tolerances or tolerance_service

    async def accept(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        actor_id: str,
        suggestion: SuggestionIn,
    ) -> SuggestionOutcome:
        """
        Create the suggested entity, or record why it was refused.

        A refused suggestion is committed as REJECTED and the domain error is
        re-raised, exactly as a manual submission would see it. Anything the
        attempt wrote is rolled back first.
        """
        try:
            data = parse_payload(suggestion.kind, suggestion.payload)
            entity_id, entity_code = await self._create(session, organization_id, suggestion.kind, data)
        except RiskRegisterError as exc:
            await session.rollback()
            record = self._record(
                organization_id, actor_id, suggestion,
                SuggestionDecision.REJECTED, reason=f"{exc.kind}: {exc.message}",
            )
            session.add(record)
            await session.commit()
            logger.info(
                "suggestion_rejected",
                organization_id=str(organization_id),
                suggestion_id=str(record.id),
                kind=suggestion.kind.value,
                error_kind=exc.kind,
            )
            raise

        record = self._record(
            organization_id, actor_id, suggestion, SuggestionDecision.ACCEPTED,
            created_entity_id=entity_id, created_entity_code=entity_code,
        )
        session.add(record)
        await session.flush()
        logger.info(
            "suggestion_accepted",
            organization_id=str(organization_id),
            suggestion_id=str(record.id),
            kind=suggestion.kind.value,
            entity_code=entity_code,
        )
        return SuggestionOutcome(
            suggestion_id=record.id,
            decision=SuggestionDecision.ACCEPTED,
            created_entity_id=entity_id,
            created_entity_code=entity_code,
        )

    async def _create(self, session, organization_id, kind: SuggestionKind, data):
        if kind == SuggestionKind.RISK:
            risk = await self.register.create_risk(session, organization_id, data)
            return risk.id, risk.code
        if kind == SuggestionKind.CONTROL:
            control = await self.register.create_control(session, organization_id, data)
            return control.id, control.code
        tolerance = await self.tolerances.save_configuration(session, organization_id, data)
        return tolerance.id, None

    @staticmethod
    def _record(
        organization_id: uuid.UUID,
        actor_id: str,
        suggestion: SuggestionIn,
        decision: SuggestionDecision,
        reason: Optional[str] = None,
        created_entity_id: Optional[uuid.UUID] = None,
        created_entity_code: Optional[str] = None,
    ) -> AiSuggestion:
        return AiSuggestion(
            id=uuid.uuid4(),
            organization_id=organization_id,
            kind=suggestion.kind.value,
            source=suggestion.source,
            confidence=suggestion.confidence,
            payload=suggestion.payload,
            decision=decision.value,
            reason=reason,
            created_entity_id=created_entity_id,
            created_entity_code=created_entity_code,
            decided_by=actor_id,
        )


suggestion_intake = SuggestionIntake()
