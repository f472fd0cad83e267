"""
Risk Register: FastAPI Application.

Run: uvicorn riskregister.main:app --host 0.0.0.0 --port 8001 --reload

  - /api/v1/codes, /risks, /controls, /indicators, /alerts   ← register + KRIs
  - /api/v1/appetite, /tolerances, /breaches                 ← appetite governance
  - /api/v1/periods                                          ← quarterly commits + history
  - /api/v1/suggestions                                      ← AI-suggested drafts
  - GET /health, /ready                                      ← probes
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from riskregister.api.routers.alerts import router as alerts_router
from riskregister.api.routers.appetite import router as appetite_router
from riskregister.api.routers.breaches import router as breaches_router
from riskregister.api.routers.categories import router as categories_router
from riskregister.api.routers.codes import router as codes_router
from riskregister.api.routers.controls import router as controls_router
from riskregister.api.routers.incidents import router as incidents_router
from riskregister.api.routers.indicators import router as indicators_router
from riskregister.api.routers.organizations import router as organizations_router
from riskregister.api.routers.periods import router as periods_router
from riskregister.api.routers.risks import router as risks_router
from riskregister.api.routers.suggestions import router as suggestions_router
from riskregister.api.routers.tolerances import router as tolerances_router
from riskregister.config import settings
from riskregister.db.engine import close_db, get_engine, init_db
from riskregister.logging_config import configure_logging
from riskregister.middleware.error_handler import ErrorHandlerMiddleware, register_exception_handlers
from riskregister.middleware.request_context import RequestContextMiddleware
from riskregister.middleware.tenant import TenantMiddleware

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("riskregister_starting", version=settings.app_version, environment=settings.environment)
    await init_db()
    yield
    await close_db()
    logger.info("riskregister_shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Enterprise risk register: residual scoring, key risk indicators, "
            "appetite and tolerance governance, quarterly period history.\n\n"
            "Requests carry `X-Organization-ID`, `X-Actor-ID` and `X-Actor-Role` "
            "headers set by the upstream gateway."
        ),
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # ── Middleware (last added = outermost) ───────────────────────────
    app.add_middleware(TenantMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    # ── Routes ────────────────────────────────────────────────────────
    app.include_router(organizations_router)
    app.include_router(categories_router)
    app.include_router(codes_router)
    app.include_router(risks_router)
    app.include_router(controls_router)
    app.include_router(indicators_router)
    app.include_router(incidents_router)
    app.include_router(alerts_router)
    app.include_router(appetite_router)
    app.include_router(tolerances_router)
    app.include_router(breaches_router)
    app.include_router(periods_router)
    app.include_router(suggestions_router)

    @app.get("/health", tags=["health"])
    async def health():
        """Liveness probe. Does NOT check dependencies; use /ready for that."""
        return {"status": "ok", "version": settings.app_version, "service": "riskregister"}

    @app.get("/ready", tags=["health"])
    async def readiness():
        """Readiness probe: the database is the only hard dependency."""
        checks: dict = {"api": "ok"}
        try:
            async with get_engine().connect() as conn:
                await asyncio.wait_for(
                    conn.execute(text("SELECT 1")),
                    timeout=settings.health_check_timeout_seconds,
                )
            checks["database"] = "ok"
        except Exception as exc:
            logger.warning("readiness_database_unavailable", error=str(exc))
            checks["database"] = "unavailable"

        db_ok = checks["database"] == "ok"
        return JSONResponse(
            status_code=200 if db_ok else 503,
            content={
                "status": "ok" if db_ok else "unavailable",
                "version": settings.app_version,
                "environment": settings.environment,
                "checks": checks,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    return app


app = create_app()
