"""Organization-scoped repositories, one per aggregate the services load by id."""

from riskregister.db.models import (
    AppetiteCategory,
    AppetiteStatement,
    Control,
    IndicatorAlert,
    IndicatorDefinition,
    Risk,
    RiskCategory,
    ToleranceBreach,
    ToleranceConfiguration,
)
from riskregister.db.repositories.base import BaseRepository

category_repo = BaseRepository(RiskCategory, "RiskCategory")
risk_repo = BaseRepository(Risk, "Risk")
control_repo = BaseRepository(Control, "Control")
indicator_repo = BaseRepository(IndicatorDefinition, "Indicator")
alert_repo = BaseRepository(IndicatorAlert, "IndicatorAlert")
statement_repo = BaseRepository(AppetiteStatement, "AppetiteStatement")
appetite_category_repo = BaseRepository(AppetiteCategory, "AppetiteCategory")
tolerance_repo = BaseRepository(ToleranceConfiguration, "ToleranceConfiguration")
breach_repo = BaseRepository(ToleranceBreach, "ToleranceBreach")

__all__ = [
    "BaseRepository",
    "alert_repo",
    "appetite_category_repo",
    "breach_repo",
    "category_repo",
    "control_repo",
    "indicator_repo",
    "risk_repo",
    "statement_repo",
    "tolerance_repo",
]
