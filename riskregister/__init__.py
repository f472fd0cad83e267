"""
Risk Register Engine: risk quantification and governance thresholds.

Architecture:
    riskregister/
    ├── api/             # FastAPI routers (HTTP layer)
    ├── auth/            # Write-authorization collaborator, role hierarchy
    ├── db/              # SQLAlchemy models, engine, repositories
    ├── middleware/      # Tenant context, request context, error handling
    ├── schemas/         # Pydantic request/response models
    ├── engine/          # Pure calculators (effectiveness, indicator, tolerance, periods)
    └── services/        # Stateful operations (codes, measurements, breaches, period commit)

Module Boundaries:
    - Indicators measure, tolerance configurations govern: thresholds live
      only on ToleranceConfiguration
    - Calculators in engine/ are pure and never touch the database
    - Identifier counters and the active-period pointer are written only by
      services/codes.py and services/periods.py
    - Risk history snapshots are append-only

Data Flow:
    Control scores → Effectiveness → Residual
    Measurement → Tolerance → Indicator status / Breach → Category → Enterprise
    Active risks → Residual (recomputed) → Snapshot → Period pointer advance

Version: 1.0.0
"""
