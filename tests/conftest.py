"""
Test fixtures for the risk register.

Provides:
- Async DB session fixture (SQLite in-memory for speed)
- A file-backed SQLite engine for tests that need several real connections
- Organization / category fixtures and a small entity factory
- FastAPI test client with the DB dependency overridden
"""

import uuid
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from riskregister.db.engine import Base, enable_sqlite_foreign_keys
from riskregister.db.models import (  # noqa: F401  register all models
    AiSuggestion,
    IndicatorAlert,
    Organization,
    RiskCategory,
    ToleranceBreach,
)
from riskregister.schemas.enums import (
    AppetiteLevel,
    ControlTarget,
    ControlType,
    IndicatorType,
    MetricType,
)
from riskregister.schemas.register import ControlCreate, IndicatorCreate, RiskCreate
from riskregister.schemas.tolerance import (
    AppetiteCategoryCreate,
    StatementCreate,
    ToleranceCreate,
)
from riskregister.services.appetite import appetite_service
from riskregister.services.register import register_service
from riskregister.services.tolerance import tolerance_service

# In-memory SQLite for fast, isolated tests
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database with all tables, one per test."""
    eng = create_async_engine(TEST_DB_URL, echo=False)
    enable_sqlite_foreign_keys(eng)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a clean DB session per test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """
    Session factory over a SQLite file, so concurrent sessions get their
    own connections and SQLite's locking applies.
    """
    eng = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'register.db'}",
        connect_args={"timeout": 30},
    )
    enable_sqlite_foreign_keys(eng)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
    await eng.dispose()


# ── Organization Fixtures ────────────────────────────────────────────────


async def _create_organization(session_factory, name: str) -> Organization:
    async with session_factory() as session:
        organization = await register_service.create_organization(
            session, name, f"{name.lower()}-{uuid.uuid4().hex[:8]}"
        )
        await session.commit()
        return organization


@pytest_asyncio.fixture
async def org(session_factory) -> Organization:
    return await _create_organization(session_factory, "Alpha")


@pytest_asyncio.fixture
async def other_org(session_factory) -> Organization:
    return await _create_organization(session_factory, "Beta")


@pytest_asyncio.fixture
async def category(session_factory, org) -> RiskCategory:
    async with session_factory() as session:
        cat = RiskCategory(organization_id=org.id, name="Operational")
        session.add(cat)
        await session.commit()
        return cat


# ── Entity Factory ───────────────────────────────────────────────────────


class Factory:
    """Builds register entities through the services, as a request would."""

    def __init__(self, session: AsyncSession, organization_id: uuid.UUID, category_id: uuid.UUID):
        self.session = session
        self.organization_id = organization_id
        self.category_id = category_id

    async def risk(self, likelihood: int = 4, impact: int = 5, division: str = "Finance", **kwargs):
        data = RiskCreate(
            title=kwargs.pop("title", "Payment fraud"),
            category_id=kwargs.pop("category_id", self.category_id),
            division=division,
            likelihood_inherent=likelihood,
            impact_inherent=impact,
            **kwargs,
        )
        return await register_service.create_risk(self.session, self.organization_id, data)

    async def control(
        self,
        target: ControlTarget = ControlTarget.LIKELIHOOD,
        scores: tuple = (3, 3, 3, 0),
        name: str = "Dual approval",
    ):
        design, implementation, monitoring, evaluation = scores
        data = ControlCreate(
            name=name,
            control_type=ControlType.PREVENTIVE,
            target=target,
            design_score=design,
            implementation_score=implementation,
            monitoring_score=monitoring,
            evaluation_score=evaluation,
        )
        return await register_service.create_control(self.session, self.organization_id, data)

    async def indicator(self, name: str = "Failed logins", **kwargs):
        data = IndicatorCreate(name=name, indicator_type=IndicatorType.LEADING, **kwargs)
        return await register_service.create_indicator(self.session, self.organization_id, data)

    async def appetite_category(self, level: AppetiteLevel = AppetiteLevel.LOW):
        statement = await appetite_service.create_statement(
            self.session, self.organization_id, StatementCreate(title="FY appetite"), created_by="cro"
        )
        return await appetite_service.add_category(
            self.session,
            self.organization_id,
            statement.id,
            AppetiteCategoryCreate(category_id=self.category_id, appetite_level=level),
        )

    async def tolerance(
        self,
        appetite_category_id: uuid.UUID,
        metric_type: MetricType = MetricType.MAXIMUM,
        indicator_id: Optional[uuid.UUID] = None,
        **bands,
    ):
        metric_name = bands.pop("metric_name", "Failed login rate")
        if not bands and metric_type == MetricType.MAXIMUM:
            bands = {"green_max": 70.0, "amber_max": 90.0}
        data = ToleranceCreate(
            appetite_category_id=appetite_category_id,
            metric_name=metric_name,
            metric_type=metric_type,
            indicator_id=indicator_id,
            **bands,
        )
        return await tolerance_service.save_configuration(self.session, self.organization_id, data)


@pytest.fixture
def make(db, org, category) -> Factory:
    return Factory(db, org.id, category.id)


# ── API Client ───────────────────────────────────────────────────────────


@pytest.fixture
def headers(org):
    """Gateway headers for org; headers(role="viewer") for a weaker actor."""

    def _headers(role: str = "admin", actor: str = "alice", organization_id: Optional[uuid.UUID] = None) -> dict:
        return {
            "X-Organization-ID": str(organization_id or org.id),
            "X-Actor-ID": actor,
            "X-Actor-Role": role,
        }

    return _headers


@pytest_asyncio.fixture
async def client(session_factory):
    """Async test client with DB dependency override. No tenant headers set."""
    from riskregister.api.deps import get_db
    from riskregister.main import app

    async def _override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
