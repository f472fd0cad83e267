"""
Register Service: risks, controls, indicators and their links.

The thin domain layer the CRUD surface calls. Every create goes through the
identifier generator, every score through the effectiveness calculator's
validation, and residuals are recomputed from live links on each request.
"""

import uuid
from typing import Optional, Sequence

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.config import settings
from riskregister.db.models import (
    Control,
    Incident,
    IndicatorDefinition,
    Organization,
    Risk,
    RiskCategory,
    RiskControl,
    RiskHistorySnapshot,
    RiskIndicator,
    utcnow,
)
from riskregister.db.repositories import (
    category_repo,
    control_repo,
    indicator_repo,
    risk_repo,
)
from riskregister.engine.effectiveness import (
    ControlScores,
    ResidualResult,
    compute_residual,
    risk_level,
    validate_dime,
    validate_inherent,
)
from riskregister.errors import NotFoundError, ValidationError
from riskregister.schemas.enums import ControlTarget, EntityKind, RiskStatus
from riskregister.schemas.register import (
    CategoryCreate,
    ControlCreate,
    ControlScoresUpdate,
    IncidentCreate,
    IndicatorCreate,
    ResidualResponse,
    RiskCreate,
)
from riskregister.services.codes import CodeGenerator, code_generator

logger = structlog.get_logger(__name__)


def control_scores(control: Control) -> ControlScores:
    return ControlScores(
        target=ControlTarget(control.target),
        design=control.design_score,
        implementation=control.implementation_score,
        monitoring=control.monitoring_score,
        evaluation=control.evaluation_score,
        is_active=control.is_active,
    )


async def get_organization(session: AsyncSession, organization_id: uuid.UUID) -> Organization:
    organization = await session.get(Organization, organization_id)
    if organization is None:
        raise NotFoundError("Organization", organization_id)
    return organization


async def linked_controls(session: AsyncSession, risk_id: uuid.UUID) -> Sequence[Control]:
    """Controls linked to a risk right now."""
    result = await session.execute(
        select(Control)
        .join(RiskControl, RiskControl.control_id == Control.id)
        .where(RiskControl.risk_id == risk_id)
        .order_by(Control.code)
    )
    return result.scalars().all()


async def residual_for(session: AsyncSession, risk: Risk) -> tuple[ResidualResult, Sequence[Control]]:
    controls = await linked_controls(session, risk.id)
    result = compute_residual(
        risk.likelihood_inherent,
        risk.impact_inherent,
        [control_scores(c) for c in controls],
    )
    return result, controls


class RegisterService:
    """Entity creation and residual calculation for one organization at a time."""

    def __init__(self, codes: Optional[CodeGenerator] = None):
        self.codes = codes or code_generator

    # ── Organizations & taxonomy ──────────────────────────────────────

    async def create_organization(
        self,
        session: AsyncSession,
        name: str,
        slug: str,
        likelihood_scale: Optional[int] = None,
        impact_scale: Optional[int] = None,
    ) -> Organization:
        likelihood_scale = likelihood_scale or settings.default_likelihood_scale
        impact_scale = impact_scale or settings.default_impact_scale
        for field, scale in (("likelihood_scale", likelihood_scale), ("impact_scale", impact_scale)):
            if scale not in (5, 6):
                raise ValidationError("risk scales are 1-5 or 1-6", field=field, details={"value": scale})
        taken = await session.execute(select(Organization.id).where(Organization.slug == slug))
        if taken.first() is not None:
            raise ValidationError("slug already in use", field="slug", details={"slug": slug})
        organization = Organization(
            name=name, slug=slug, likelihood_scale=likelihood_scale, impact_scale=impact_scale
        )
        session.add(organization)
        await session.flush()
        logger.info("organization_created", organization_id=str(organization.id), slug=slug)
        return organization

    async def create_category(
        self, session: AsyncSession, organization_id: uuid.UUID, data: CategoryCreate
    ) -> RiskCategory:
        if data.parent_id is not None:
            parent = await category_repo.get_or_404(session, data.parent_id, organization_id)
            if not parent.is_parent:
                raise ValidationError(
                    "the taxonomy has two levels; a subcategory cannot have children",
                    field="parent_id",
                )
        return await category_repo.create(
            session,
            organization_id,
            name=data.name,
            parent_id=data.parent_id,
            description=data.description,
        )

    # ── Risks ─────────────────────────────────────────────────────────

    async def create_risk(
        self, session: AsyncSession, organization_id: uuid.UUID, data: RiskCreate
    ) -> Risk:
        organization = await get_organization(session, organization_id)
        validate_inherent(
            data.likelihood_inherent,
            data.impact_inherent,
            organization.likelihood_scale,
            organization.impact_scale,
        )
        category = await category_repo.get_or_404(session, data.category_id, organization_id)
        if not category.is_parent:
            raise ValidationError("category must be a parent-level category", field="category_id")
        if data.subcategory_id is not None:
            subcategory = await category_repo.get_or_404(session, data.subcategory_id, organization_id)
            if subcategory.parent_id != category.id:
                raise ValidationError(
                    "subcategory must belong to the selected category", field="subcategory_id"
                )
        if data.status == RiskStatus.CLOSED:
            raise ValidationError("a new risk cannot start closed", field="status")

        generated = await self.codes.next_code(
            session, organization_id, EntityKind.RISK, (data.division, category.name)
        )
        risk = await risk_repo.create(
            session,
            organization_id,
            code=generated.code,
            title=data.title,
            description=data.description,
            category_id=category.id,
            subcategory_id=data.subcategory_id,
            owner=data.owner,
            division=data.division,
            department=data.department,
            likelihood_inherent=data.likelihood_inherent,
            impact_inherent=data.impact_inherent,
            status=data.status.value,
            is_active=True,
        )
        logger.info("risk_created", organization_id=str(organization_id), code=risk.code)
        return risk

    async def compute_residual(
        self, session: AsyncSession, organization_id: uuid.UUID, risk_id: uuid.UUID
    ) -> ResidualResponse:
        """ComputeResidual: always from the controls linked right now."""
        risk = await risk_repo.get_or_404(session, risk_id, organization_id)
        result, _ = await residual_for(session, risk)
        return ResidualResponse(
            risk_id=risk.id,
            likelihood_inherent=result.likelihood_inherent,
            impact_inherent=result.impact_inherent,
            inherent_score=result.inherent_score,
            likelihood_residual=result.likelihood_residual,
            impact_residual=result.impact_residual,
            score=result.score,
            likelihood_effectiveness=round(result.likelihood_effectiveness, 4),
            impact_effectiveness=round(result.impact_effectiveness, 4),
            control_count=result.control_count,
            level=risk_level(
                result.score,
                settings.level_extreme_min,
                settings.level_high_min,
                settings.level_medium_min,
            ),
        )

    async def close_risk(
        self, session: AsyncSession, organization_id: uuid.UUID, risk_id: uuid.UUID
    ) -> Risk:
        """Soft close: the row stays so history keeps pointing at it."""
        risk = await risk_repo.get_or_404(session, risk_id, organization_id)
        if risk.status != RiskStatus.CLOSED:
            risk.status = RiskStatus.CLOSED.value
            risk.is_active = False
            risk.closed_at = utcnow()
            await session.flush()
            logger.info("risk_closed", organization_id=str(organization_id), code=risk.code)
        return risk

    async def delete_risk(
        self, session: AsyncSession, organization_id: uuid.UUID, risk_id: uuid.UUID
    ) -> None:
        """
        Physically delete a risk that has never been snapshotted.

        Links go with it; linked controls and indicators are untouched.
        """
        risk = await risk_repo.get_or_404(session, risk_id, organization_id)
        snapshots = await session.execute(
            select(func.count()).select_from(RiskHistorySnapshot).where(RiskHistorySnapshot.risk_id == risk.id)
        )
        if snapshots.scalar_one() > 0:
            raise ValidationError(
                "risk has period history; close it instead of deleting",
                field="risk_id",
                details={"code": risk.code},
            )
        await session.execute(delete(RiskControl).where(RiskControl.risk_id == risk.id))
        await session.execute(delete(RiskIndicator).where(RiskIndicator.risk_id == risk.id))
        await session.delete(risk)
        await session.flush()
        logger.info("risk_deleted", organization_id=str(organization_id), code=risk.code)

    # ── Controls ──────────────────────────────────────────────────────

    async def create_control(
        self, session: AsyncSession, organization_id: uuid.UUID, data: ControlCreate
    ) -> Control:
        await get_organization(session, organization_id)
        validate_dime(
            data.design_score,
            data.implementation_score,
            data.monitoring_score,
            data.evaluation_score,
        )
        generated = await self.codes.next_code(session, organization_id, EntityKind.CONTROL)
        control = await control_repo.create(
            session,
            organization_id,
            code=generated.code,
            name=data.name,
            description=data.description,
            control_type=data.control_type.value,
            target=data.target.value,
            design_score=data.design_score,
            implementation_score=data.implementation_score,
            monitoring_score=data.monitoring_score,
            evaluation_score=data.evaluation_score,
            owner=data.owner,
            is_active=True,
        )
        logger.info("control_created", organization_id=str(organization_id), code=control.code)
        return control

    async def update_control_scores(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        control_id: uuid.UUID,
        data: ControlScoresUpdate,
    ) -> Control:
        control = await control_repo.get_or_404(session, control_id, organization_id)
        changes = data.model_dump(exclude_unset=True)
        merged = {
            "design_score": control.design_score,
            "implementation_score": control.implementation_score,
            "monitoring_score": control.monitoring_score,
            "evaluation_score": control.evaluation_score,
            **changes,
        }
        validate_dime(
            merged["design_score"],
            merged["implementation_score"],
            merged["monitoring_score"],
            merged["evaluation_score"],
        )
        for name, value in changes.items():
            setattr(control, name, value)
        await session.flush()
        return control

    async def link_control(
        self, session: AsyncSession, organization_id: uuid.UUID, risk_id: uuid.UUID, control_id: uuid.UUID
    ) -> RiskControl:
        risk = await risk_repo.get_or_404(session, risk_id, organization_id)
        control = await control_repo.get_or_404(session, control_id, organization_id)
        existing = await session.execute(
            select(RiskControl).where(RiskControl.risk_id == risk.id, RiskControl.control_id == control.id)
        )
        link = existing.scalar_one_or_none()
        if link is None:
            link = RiskControl(organization_id=organization_id, risk_id=risk.id, control_id=control.id)
            session.add(link)
            await session.flush()
        return link

    async def unlink_control(
        self, session: AsyncSession, organization_id: uuid.UUID, risk_id: uuid.UUID, control_id: uuid.UUID
    ) -> None:
        await risk_repo.get_or_404(session, risk_id, organization_id)
        await session.execute(
            delete(RiskControl).where(RiskControl.risk_id == risk_id, RiskControl.control_id == control_id)
        )
        await session.flush()

    # ── Indicators ────────────────────────────────────────────────────

    async def create_indicator(
        self, session: AsyncSession, organization_id: uuid.UUID, data: IndicatorCreate
    ) -> IndicatorDefinition:
        await get_organization(session, organization_id)
        generated = await self.codes.next_code(
            session, organization_id, EntityKind.INDICATOR, (data.signal.value,)
        )
        indicator = await indicator_repo.create(
            session,
            organization_id,
            code=generated.code,
            name=data.name,
            description=data.description,
            indicator_type=data.indicator_type.value,
            signal=data.signal.value,
            unit=data.unit,
            frequency=data.frequency.value,
            is_active=True,
        )
        logger.info("indicator_created", organization_id=str(organization_id), code=indicator.code)
        return indicator

    async def link_indicator(
        self, session: AsyncSession, organization_id: uuid.UUID, risk_id: uuid.UUID, indicator_id: uuid.UUID
    ) -> RiskIndicator:
        risk = await risk_repo.get_or_404(session, risk_id, organization_id)
        indicator = await indicator_repo.get_or_404(session, indicator_id, organization_id)
        existing = await session.execute(
            select(RiskIndicator).where(
                RiskIndicator.risk_id == risk.id, RiskIndicator.indicator_id == indicator.id
            )
        )
        link = existing.scalar_one_or_none()
        if link is None:
            link = RiskIndicator(organization_id=organization_id, risk_id=risk.id, indicator_id=indicator.id)
            session.add(link)
            await session.flush()
        return link

    # ── Incidents ─────────────────────────────────────────────────────

    async def record_incident(
        self, session: AsyncSession, organization_id: uuid.UUID, data: IncidentCreate
    ) -> Incident:
        if data.risk_id is not None:
            await risk_repo.get_or_404(session, data.risk_id, organization_id)
        incident = Incident(
            organization_id=organization_id,
            risk_id=data.risk_id,
            title=data.title,
            severity=data.severity,
            occurred_at=data.occurred_at or utcnow(),
        )
        session.add(incident)
        await session.flush()
        return incident


register_service = RegisterService()
