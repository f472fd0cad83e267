"""Risk register schema: register, indicators, appetite, period history.

Creates the rr_* tables for PostgreSQL. History tables (rr_period_commits,
rr_risk_snapshots) are append-only: triggers refuse UPDATE and DELETE.

Revision ID: rr_schema_001
Revises:
Create Date: 2026-10-18
"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "rr_schema_001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ──────────────────────────────────────────────────────────────────────
    # 1. Organizations & taxonomy
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_organizations (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        name                VARCHAR(255) NOT NULL,
        slug                VARCHAR(100) UNIQUE NOT NULL,
        likelihood_scale    INTEGER NOT NULL DEFAULT 5 CHECK (likelihood_scale IN (5, 6)),
        impact_scale        INTEGER NOT NULL DEFAULT 5 CHECK (impact_scale IN (5, 6)),
        created_at          TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc')
    )
    """)

    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_risk_categories (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES rr_organizations(id),
        parent_id           UUID REFERENCES rr_risk_categories(id),
        name                VARCHAR(100) NOT NULL,
        description         TEXT,
        created_at          TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc'),
        CONSTRAINT uq_category_name UNIQUE (organization_id, parent_id, name)
    )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_categories_org ON rr_risk_categories(organization_id)")

    # ──────────────────────────────────────────────────────────────────────
    # 2. Risks, controls, links, incidents
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_risks (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES rr_organizations(id),
        code                VARCHAR(40) NOT NULL,
        title               VARCHAR(255) NOT NULL,
        description         TEXT,
        category_id         UUID NOT NULL REFERENCES rr_risk_categories(id),
        subcategory_id      UUID REFERENCES rr_risk_categories(id),
        owner               VARCHAR(255),
        division            VARCHAR(100) NOT NULL,
        department          VARCHAR(100),
        likelihood_inherent INTEGER NOT NULL,
        impact_inherent     INTEGER NOT NULL,
        status              VARCHAR(20) NOT NULL DEFAULT 'OPEN',
        is_active           BOOLEAN NOT NULL DEFAULT TRUE,
        closed_at           TIMESTAMP,
        created_at          TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc'),
        updated_at          TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc'),
        CONSTRAINT uq_risk_code UNIQUE (organization_id, code)
    )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_risks_org_active ON rr_risks(organization_id, is_active)")

    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_controls (
        id                      UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id         UUID NOT NULL REFERENCES rr_organizations(id),
        code                    VARCHAR(40) NOT NULL,
        name                    VARCHAR(255) NOT NULL,
        description             TEXT,
        control_type            VARCHAR(20) NOT NULL,
        target                  VARCHAR(20) NOT NULL,
        design_score            INTEGER CHECK (design_score BETWEEN 0 AND 3),
        implementation_score    INTEGER CHECK (implementation_score BETWEEN 0 AND 3),
        monitoring_score        INTEGER CHECK (monitoring_score BETWEEN 0 AND 3),
        evaluation_score        INTEGER CHECK (evaluation_score BETWEEN 0 AND 3),
        owner                   VARCHAR(255),
        is_active               BOOLEAN NOT NULL DEFAULT TRUE,
        created_at              TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc'),
        updated_at              TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc'),
        CONSTRAINT uq_control_code UNIQUE (organization_id, code)
    )
    """)

    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_risk_controls (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES rr_organizations(id),
        risk_id             UUID NOT NULL REFERENCES rr_risks(id) ON DELETE CASCADE,
        control_id          UUID NOT NULL REFERENCES rr_controls(id) ON DELETE RESTRICT,
        created_at          TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc'),
        CONSTRAINT uq_risk_control UNIQUE (risk_id, control_id)
    )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_risk_controls_control ON rr_risk_controls(control_id)")

    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_incidents (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES rr_organizations(id),
        risk_id             UUID REFERENCES rr_risks(id) ON DELETE SET NULL,
        title               VARCHAR(255) NOT NULL,
        severity            VARCHAR(20) NOT NULL DEFAULT 'MEDIUM',
        occurred_at         TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc'),
        created_at          TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc')
    )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_incidents_risk ON rr_incidents(risk_id)")

    # ──────────────────────────────────────────────────────────────────────
    # 3. Indicators, measurements, alerts
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_indicators (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES rr_organizations(id),
        code                VARCHAR(40) NOT NULL,
        name                VARCHAR(255) NOT NULL,
        description         TEXT,
        indicator_type      VARCHAR(20) NOT NULL,
        signal              VARCHAR(10) NOT NULL DEFAULT 'KRI',
        unit                VARCHAR(50),
        frequency           VARCHAR(20) NOT NULL DEFAULT 'MONTHLY',
        is_active           BOOLEAN NOT NULL DEFAULT TRUE,
        created_at          TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc'),
        CONSTRAINT uq_indicator_code UNIQUE (organization_id, code)
    )
    """)

    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_risk_indicators (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES rr_organizations(id),
        risk_id             UUID NOT NULL REFERENCES rr_risks(id) ON DELETE CASCADE,
        indicator_id        UUID NOT NULL REFERENCES rr_indicators(id) ON DELETE RESTRICT,
        created_at          TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc'),
        CONSTRAINT uq_risk_indicator UNIQUE (risk_id, indicator_id)
    )
    """)

    # ──────────────────────────────────────────────────────────────────────
    # 4. Appetite & tolerance
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_appetite_statements (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES rr_organizations(id),
        version             INTEGER NOT NULL,
        title               VARCHAR(255) NOT NULL,
        body                TEXT,
        status              VARCHAR(20) NOT NULL DEFAULT 'DRAFT',
        effective_from      DATE,
        effective_to        DATE,
        approved_by         VARCHAR(255),
        approved_at         TIMESTAMP,
        created_by          VARCHAR(255),
        created_at          TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc'),
        CONSTRAINT uq_statement_version UNIQUE (organization_id, version)
    )
    """)

    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_appetite_categories (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES rr_organizations(id),
        statement_id        UUID NOT NULL REFERENCES rr_appetite_statements(id),
        category_id         UUID NOT NULL REFERENCES rr_risk_categories(id),
        appetite_level      VARCHAR(20) NOT NULL,
        rationale           TEXT,
        created_at          TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc'),
        CONSTRAINT uq_appetite_category UNIQUE (statement_id, category_id)
    )
    """)

    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_tolerance_configurations (
        id                      UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id         UUID NOT NULL REFERENCES rr_organizations(id),
        appetite_category_id    UUID NOT NULL REFERENCES rr_appetite_categories(id),
        metric_name             VARCHAR(255) NOT NULL,
        description             TEXT,
        metric_type             VARCHAR(20) NOT NULL,
        unit                    VARCHAR(50),
        green_min               DOUBLE PRECISION,
        green_max               DOUBLE PRECISION,
        amber_min               DOUBLE PRECISION,
        amber_max               DOUBLE PRECISION,
        red_min                 DOUBLE PRECISION,
        red_max                 DOUBLE PRECISION,
        allowed_change_pct      DOUBLE PRECISION,
        warning_fraction        DOUBLE PRECISION,
        bad_direction           VARCHAR(20),
        indicator_id            UUID REFERENCES rr_indicators(id),
        materiality             VARCHAR(20) NOT NULL DEFAULT 'INTERNAL',
        is_active               BOOLEAN NOT NULL DEFAULT TRUE,
        version                 INTEGER NOT NULL DEFAULT 1,
        created_at              TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc'),
        updated_at              TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc')
    )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_tolerances_category ON rr_tolerance_configurations(appetite_category_id)"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_tolerances_indicator ON rr_tolerance_configurations(indicator_id, is_active)"
    )

    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_indicator_measurements (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES rr_organizations(id),
        indicator_id        UUID NOT NULL REFERENCES rr_indicators(id),
        value               DOUBLE PRECISION NOT NULL,
        period_label        VARCHAR(50),
        data_quality        VARCHAR(20) NOT NULL DEFAULT 'VERIFIED',
        alert_status        VARCHAR(10),
        tolerance_id        UUID REFERENCES rr_tolerance_configurations(id),
        tolerance_version   INTEGER,
        thresholds_used     JSONB NOT NULL DEFAULT '{}',
        measured_at         TIMESTAMP NOT NULL DEFAULT (NOW() AT TIME ZONE 'utc'),
        recorded_by         VARCHAR(255),
        created_at          TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc')
    )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_measurements_indicator_time "
        "ON rr_indicator_measurements(indicator_id, measured_at)"
    )

    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_indicator_alerts (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES rr_organizations(id),
        indicator_id        UUID NOT NULL REFERENCES rr_indicators(id),
        measurement_id      UUID NOT NULL REFERENCES rr_indicator_measurements(id),
        level               VARCHAR(10) NOT NULL,
        prior_level         VARCHAR(10),
        status              VARCHAR(20) NOT NULL DEFAULT 'OPEN',
        measured_value      DOUBLE PRECISION NOT NULL,
        threshold_value     DOUBLE PRECISION,
        opened_at           TIMESTAMP NOT NULL DEFAULT (NOW() AT TIME ZONE 'utc'),
        escalated_at        TIMESTAMP,
        acknowledged_by     VARCHAR(255),
        acknowledged_at     TIMESTAMP,
        acknowledged_note   TEXT,
        closed_by           VARCHAR(255),
        closed_at           TIMESTAMP,
        closed_note         TEXT,
        version             INTEGER NOT NULL DEFAULT 1,
        open_key            UUID,
        CONSTRAINT uq_alert_open_key UNIQUE (open_key)
    )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_alerts_org_status ON rr_indicator_alerts(organization_id, status)")

    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_tolerance_observations (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES rr_organizations(id),
        tolerance_id        UUID NOT NULL REFERENCES rr_tolerance_configurations(id),
        value               DOUBLE PRECISION NOT NULL,
        status              VARCHAR(10) NOT NULL,
        observed_at         TIMESTAMP NOT NULL DEFAULT (NOW() AT TIME ZONE 'utc'),
        recorded_by         VARCHAR(255)
    )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_observations_tolerance_time "
        "ON rr_tolerance_observations(tolerance_id, observed_at)"
    )

    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_tolerance_breaches (
        id                      UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id         UUID NOT NULL REFERENCES rr_organizations(id),
        tolerance_id            UUID NOT NULL REFERENCES rr_tolerance_configurations(id),
        level                   VARCHAR(10) NOT NULL,
        prior_level             VARCHAR(10),
        status                  VARCHAR(20) NOT NULL DEFAULT 'OPEN',
        measured_value          DOUBLE PRECISION NOT NULL,
        detected_at             TIMESTAMP NOT NULL DEFAULT (NOW() AT TIME ZONE 'utc'),
        escalated_at            TIMESTAMP,
        acknowledged_by         VARCHAR(255),
        acknowledged_at         TIMESTAMP,
        acknowledged_note       TEXT,
        closed_by               VARCHAR(255),
        closed_at               TIMESTAMP,
        closed_note             TEXT,
        exception_expires_at    TIMESTAMP,
        version                 INTEGER NOT NULL DEFAULT 1,
        open_key                UUID,
        CONSTRAINT uq_breach_open_key UNIQUE (open_key)
    )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_breaches_tolerance_status ON rr_tolerance_breaches(tolerance_id, status)"
    )

    # ──────────────────────────────────────────────────────────────────────
    # 5. Codes & periods
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_code_counters (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES rr_organizations(id),
        prefix              VARCHAR(30) NOT NULL,
        last_value          INTEGER NOT NULL DEFAULT 0,
        updated_at          TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc'),
        CONSTRAINT uq_code_counter UNIQUE (organization_id, prefix)
    )
    """)

    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_active_periods (
        organization_id     UUID PRIMARY KEY REFERENCES rr_organizations(id),
        current_year        INTEGER NOT NULL,
        current_quarter     INTEGER NOT NULL CHECK (current_quarter BETWEEN 1 AND 4),
        previous_year       INTEGER,
        previous_quarter    INTEGER,
        period_started_at   TIMESTAMP NOT NULL DEFAULT (NOW() AT TIME ZONE 'utc'),
        version             INTEGER NOT NULL DEFAULT 1
    )
    """)

    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_period_commits (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES rr_organizations(id),
        period_year         INTEGER NOT NULL,
        period_quarter      INTEGER NOT NULL CHECK (period_quarter BETWEEN 1 AND 4),
        committed_at        TIMESTAMP NOT NULL DEFAULT (NOW() AT TIME ZONE 'utc'),
        committed_by        VARCHAR(255) NOT NULL,
        notes               TEXT,
        risks_count         INTEGER NOT NULL DEFAULT 0,
        open_risks_count    INTEGER NOT NULL DEFAULT 0,
        closed_risks_count  INTEGER NOT NULL DEFAULT 0,
        controls_count      INTEGER NOT NULL DEFAULT 0,
        indicators_count    INTEGER NOT NULL DEFAULT 0,
        incidents_count     INTEGER NOT NULL DEFAULT 0,
        CONSTRAINT uq_period_commit UNIQUE (organization_id, period_year, period_quarter)
    )
    """)

    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_risk_snapshots (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES rr_organizations(id),
        commit_id           UUID NOT NULL REFERENCES rr_period_commits(id),
        risk_id             UUID NOT NULL REFERENCES rr_risks(id),
        period_year         INTEGER NOT NULL,
        period_quarter      INTEGER NOT NULL,
        risk_code           VARCHAR(40) NOT NULL,
        title               VARCHAR(255) NOT NULL,
        category_name       VARCHAR(100),
        subcategory_name    VARCHAR(100),
        owner               VARCHAR(255),
        division            VARCHAR(100),
        department          VARCHAR(100),
        status              VARCHAR(20) NOT NULL,
        likelihood_inherent INTEGER NOT NULL,
        impact_inherent     INTEGER NOT NULL,
        inherent_score      INTEGER NOT NULL,
        likelihood_residual INTEGER NOT NULL,
        impact_residual     INTEGER NOT NULL,
        residual_score      INTEGER NOT NULL,
        control_count       INTEGER NOT NULL DEFAULT 0,
        indicator_count     INTEGER NOT NULL DEFAULT 0,
        incident_count      INTEGER NOT NULL DEFAULT 0,
        snapshot_data       JSONB NOT NULL DEFAULT '{}',
        created_at          TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc'),
        CONSTRAINT uq_snapshot_commit_risk UNIQUE (commit_id, risk_id)
    )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_snapshots_org_period "
        "ON rr_risk_snapshots(organization_id, period_year, period_quarter)"
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_snapshots_risk ON rr_risk_snapshots(risk_id)")

    # History is append-only
    op.execute("""
    CREATE OR REPLACE FUNCTION rr_reject_history_change() RETURNS TRIGGER AS $$
    BEGIN
        RAISE EXCEPTION '% rows are immutable', TG_TABLE_NAME;
    END;
    $$ LANGUAGE plpgsql
    """)
    for table in ("rr_period_commits", "rr_risk_snapshots"):
        op.execute(f"""
        CREATE TRIGGER {table}_immutable
            BEFORE UPDATE OR DELETE ON {table}
            FOR EACH ROW EXECUTE FUNCTION rr_reject_history_change()
        """)

    # ──────────────────────────────────────────────────────────────────────
    # 6. AI suggestions
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS rr_ai_suggestions (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES rr_organizations(id),
        kind                VARCHAR(20) NOT NULL,
        source              VARCHAR(100),
        confidence          DOUBLE PRECISION,
        payload             JSONB NOT NULL DEFAULT '{}',
        decision            VARCHAR(20) NOT NULL,
        reason              TEXT,
        created_entity_id   UUID,
        created_entity_code VARCHAR(40),
        decided_by          VARCHAR(255),
        created_at          TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc')
    )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_suggestions_org_created ON rr_ai_suggestions(organization_id, created_at)"
    )


def downgrade() -> None:
    for table in ("rr_period_commits", "rr_risk_snapshots"):
        op.execute(f"DROP TRIGGER IF EXISTS {table}_immutable ON {table}")
    op.execute("DROP FUNCTION IF EXISTS rr_reject_history_change()")
    for table in (
        "rr_ai_suggestions",
        "rr_risk_snapshots",
        "rr_period_commits",
        "rr_active_periods",
        "rr_code_counters",
        "rr_tolerance_breaches",
        "rr_tolerance_observations",
        "rr_indicator_alerts",
        "rr_indicator_measurements",
        "rr_tolerance_configurations",
        "rr_appetite_categories",
        "rr_appetite_statements",
        "rr_risk_indicators",
        "rr_indicators",
        "rr_incidents",
        "rr_risk_controls",
        "rr_controls",
        "rr_risks",
        "rr_risk_categories",
        "rr_organizations",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table}")
