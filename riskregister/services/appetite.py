"""
Appetite Service: versioned appetite statements and their categories.

    DRAFT ──approve──► APPROVED ──(next approval)──► SUPERSEDED
      └──────archive──────────────────────────────────► ARCHIVED

Only one statement per organization is APPROVED at a time; enterprise
status is always evaluated under it. Approving a new version retires the
tolerances of the statement it supersedes, so indicators fall under the
new version's bands.
"""

import uuid
from datetime import date
from typing import Optional, Sequence

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.db.models import AppetiteCategory, AppetiteStatement, ToleranceConfiguration, utcnow
from riskregister.db.repositories import appetite_category_repo, category_repo, statement_repo
from riskregister.errors import ConcurrentModification, InvalidTransition, ValidationError
from riskregister.schemas.enums import AppetiteLevel, StatementStatus
from riskregister.schemas.tolerance import (
    AppetiteCategoryCreate,
    ChainGap,
    ChainValidation,
    StatementCreate,
)

logger = structlog.get_logger(__name__)


class AppetiteService:

    async def create_statement(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        data: StatementCreate,
        created_by: Optional[str] = None,
    ) -> AppetiteStatement:
        result = await session.execute(
            select(func.max(AppetiteStatement.version)).where(
                AppetiteStatement.organization_id == organization_id
            )
        )
        version = (result.scalar_one_or_none() or 0) + 1
        statement = await statement_repo.create(
            session,
            organization_id,
            version=version,
            title=data.title,
            body=data.body,
            status=StatementStatus.DRAFT.value,
            effective_from=data.effective_from,
            created_by=created_by,
        )
        logger.info("appetite_statement_created", statement_id=str(statement.id), version=version)
        return statement

    async def list_statements(
        self, session: AsyncSession, organization_id: uuid.UUID
    ) -> Sequence[AppetiteStatement]:
        return await statement_repo.list(session, organization_id, order_by="version", limit=500)

    async def add_category(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        statement_id: uuid.UUID,
        data: AppetiteCategoryCreate,
    ) -> AppetiteCategory:
        statement = await statement_repo.get_or_404(session, statement_id, organization_id)
        if statement.status != StatementStatus.DRAFT:
            raise ValidationError(
                f"categories can only be added to a DRAFT statement, not {statement.status}",
                field="statement_id",
            )
        category = await category_repo.get_or_404(session, data.category_id, organization_id)
        if not category.is_parent:
            raise ValidationError(
                "appetite is set on parent-level categories only",
                field="category_id",
                details={"parent_id": str(category.parent_id)},
            )
        existing = await session.execute(
            select(AppetiteCategory.id).where(
                AppetiteCategory.statement_id == statement.id,
                AppetiteCategory.category_id == category.id,
            )
        )
        if existing.first() is not None:
            raise ValidationError("category already has an appetite in this statement", field="category_id")
        return await appetite_category_repo.create(
            session,
            organization_id,
            statement_id=statement.id,
            category_id=category.id,
            appetite_level=AppetiteLevel(data.appetite_level).value,
            rationale=data.rationale,
        )

    async def list_categories(
        self, session: AsyncSession, organization_id: uuid.UUID, statement_id: uuid.UUID
    ) -> Sequence[AppetiteCategory]:
        await statement_repo.get_or_404(session, statement_id, organization_id)
        result = await session.execute(
            select(AppetiteCategory)
            .where(AppetiteCategory.statement_id == statement_id)
            .order_by(AppetiteCategory.created_at)
        )
        return result.scalars().all()

    async def validate_chain(
        self, session: AsyncSession, organization_id: uuid.UUID, statement_id: uuid.UUID
    ) -> ChainValidation:
        """
        Check the statement -> category -> tolerance chain.

        CRITICAL gaps block approval: no categories at all, or a category
        with no active tolerance. A category with no indicator-backed
        tolerance is only a WARNING.
        """
        categories = await self.list_categories(session, organization_id, statement_id)
        gaps: list[ChainGap] = []
        if not categories:
            gaps.append(ChainGap(
                severity="CRITICAL",
                kind="NO_CATEGORIES",
                message="statement sets no category appetite",
            ))
        for appetite_category in categories:
            result = await session.execute(
                select(ToleranceConfiguration.indicator_id).where(
                    ToleranceConfiguration.appetite_category_id == appetite_category.id,
                    ToleranceConfiguration.is_active.is_(True),
                )
            )
            indicator_ids = list(result.scalars().all())
            if not indicator_ids:
                gaps.append(ChainGap(
                    severity="CRITICAL",
                    kind="NO_TOLERANCE",
                    message="category has no active tolerance configuration",
                    category_id=appetite_category.category_id,
                ))
            elif all(i is None for i in indicator_ids):
                gaps.append(ChainGap(
                    severity="WARNING",
                    kind="NO_INDICATOR",
                    message="no tolerance in this category is fed by an indicator",
                    category_id=appetite_category.category_id,
                ))
        return ChainValidation(
            statement_id=statement_id,
            is_valid=not any(g.severity == "CRITICAL" for g in gaps),
            gaps=gaps,
        )

    async def approve_statement(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        statement_id: uuid.UUID,
        approver: str,
    ) -> AppetiteStatement:
        statement = await statement_repo.get_or_404(session, statement_id, organization_id)
        if statement.status != StatementStatus.DRAFT:
            raise InvalidTransition("AppetiteStatement", statement.status, StatementStatus.APPROVED.value)

        chain = await self.validate_chain(session, organization_id, statement_id)
        if not chain.is_valid:
            raise ValidationError(
                "appetite chain has critical gaps",
                field="statement_id",
                details={"gaps": [g.model_dump(mode="json") for g in chain.gaps]},
            )

        today = date.today()
        approved_ids = select(AppetiteStatement.id).where(
            AppetiteStatement.organization_id == organization_id,
            AppetiteStatement.status == StatementStatus.APPROVED.value,
        )
        retired = await session.execute(
            update(ToleranceConfiguration)
            .where(
                ToleranceConfiguration.is_active.is_(True),
                ToleranceConfiguration.appetite_category_id.in_(
                    select(AppetiteCategory.id).where(AppetiteCategory.statement_id.in_(approved_ids))
                ),
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        await session.execute(
            update(AppetiteStatement)
            .where(
                AppetiteStatement.organization_id == organization_id,
                AppetiteStatement.status == StatementStatus.APPROVED.value,
            )
            .values(status=StatementStatus.SUPERSEDED.value, effective_to=today)
            .execution_options(synchronize_session=False)
        )
        outcome = await session.execute(
            update(AppetiteStatement)
            .where(
                AppetiteStatement.id == statement.id,
                AppetiteStatement.status == StatementStatus.DRAFT.value,
            )
            .values(
                status=StatementStatus.APPROVED.value,
                approved_by=approver,
                approved_at=utcnow(),
                effective_from=statement.effective_from or today,
            )
            .execution_options(synchronize_session=False)
        )
        if outcome.rowcount == 0:
            raise ConcurrentModification("AppetiteStatement", statement.id)
        await session.refresh(statement)
        logger.info(
            "appetite_statement_approved",
            statement_id=str(statement.id),
            version=statement.version,
            approver=approver,
            tolerances_retired=retired.rowcount,
        )
        return statement

    async def archive_statement(
        self, session: AsyncSession, organization_id: uuid.UUID, statement_id: uuid.UUID
    ) -> AppetiteStatement:
        statement = await statement_repo.get_or_404(session, statement_id, organization_id)
        if statement.status not in (StatementStatus.DRAFT, StatementStatus.SUPERSEDED):
            raise InvalidTransition("AppetiteStatement", statement.status, StatementStatus.ARCHIVED.value)
        statement.status = StatementStatus.ARCHIVED.value
        await session.flush()
        return statement


appetite_service = AppetiteService()
