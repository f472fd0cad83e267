"""
Control Effectiveness & Residual Risk Calculator.

DIME scoring: Design, Implementation, Monitoring, Evaluation, each 0-3.
  effectiveness = (D + I + M + E) / 12
  effectiveness = 0 whenever D = 0 or I = 0 (or either is unassessed)

Residual per dimension uses only the strongest control targeting it:
  residual = max(1, inherent - round((inherent - 1) * max_effectiveness))

Pure functions; recomputed on every call, never cached.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from riskregister.errors import ValidationError
from riskregister.schemas.enums import ControlTarget, RiskLevel

DIME_MAX = 3
DIME_TOTAL = 4 * DIME_MAX


@dataclass(frozen=True)
class ControlScores:
    """The slice of a control the calculator needs."""
    target: ControlTarget
    design: Optional[int] = None
    implementation: Optional[int] = None
    monitoring: Optional[int] = None
    evaluation: Optional[int] = None
    is_active: bool = True


@dataclass(frozen=True)
class ResidualResult:
    likelihood_inherent: int
    impact_inherent: int
    likelihood_residual: int
    impact_residual: int
    likelihood_effectiveness: float
    impact_effectiveness: float
    control_count: int

    @property
    def inherent_score(self) -> int:
        return self.likelihood_inherent * self.impact_inherent

    @property
    def score(self) -> int:
        return self.likelihood_residual * self.impact_residual


def _check_score(name: str, value: Optional[int]) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= DIME_MAX:
        raise ValidationError(
            f"{name} score must be an integer between 0 and {DIME_MAX}",
            field=f"{name}_score",
            details={"value": value},
        )


def validate_dime(
    design: Optional[int],
    implementation: Optional[int],
    monitoring: Optional[int],
    evaluation: Optional[int],
) -> None:
    for name, value in (
        ("design", design),
        ("implementation", implementation),
        ("monitoring", monitoring),
        ("evaluation", evaluation),
    ):
        _check_score(name, value)


def effectiveness(
    design: Optional[int],
    implementation: Optional[int],
    monitoring: Optional[int] = None,
    evaluation: Optional[int] = None,
) -> float:
    """Effectiveness ratio in [0, 1]."""
    validate_dime(design, implementation, monitoring, evaluation)
    if not design or not implementation:
        return 0.0
    return (design + implementation + (monitoring or 0) + (evaluation or 0)) / DIME_TOTAL


def control_effectiveness(control: ControlScores) -> float:
    if not control.is_active:
        return 0.0
    return effectiveness(
        control.design, control.implementation, control.monitoring, control.evaluation
    )


def round_half_up(value: float) -> int:
    """Round .5 away from zero; Python's round() would give 2 for 2.5."""
    return int(Decimal(repr(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def residual_dimension(inherent: int, effectivenesses: Iterable[float]) -> int:
    """Residual for one dimension given the effectiveness of every control targeting it."""
    strongest = max(effectivenesses, default=0.0)
    if not 0.0 <= strongest <= 1.0:
        raise ValidationError("effectiveness must lie in [0, 1]", details={"value": strongest})
    return max(1, inherent - round_half_up((inherent - 1) * strongest))


def validate_inherent(likelihood: int, impact: int, likelihood_scale: int = 5, impact_scale: int = 5) -> None:
    if not isinstance(likelihood, int) or not 1 <= likelihood <= likelihood_scale:
        raise ValidationError(
            f"likelihood must be between 1 and {likelihood_scale}",
            field="likelihood_inherent",
            details={"value": likelihood},
        )
    if not isinstance(impact, int) or not 1 <= impact <= impact_scale:
        raise ValidationError(
            f"impact must be between 1 and {impact_scale}",
            field="impact_inherent",
            details={"value": impact},
        )


def compute_residual(likelihood: int, impact: int, controls: Iterable[ControlScores]) -> ResidualResult:
    """
    Residual likelihood, impact and score for a risk.

    LIKELIHOOD controls feed likelihood, IMPACT controls feed impact,
    BOTH feeds both. Controls do not stack.
    """
    controls = list(controls)
    likelihood_effs = [
        control_effectiveness(c) for c in controls
        if c.target in (ControlTarget.LIKELIHOOD, ControlTarget.BOTH)
    ]
    impact_effs = [
        control_effectiveness(c) for c in controls
        if c.target in (ControlTarget.IMPACT, ControlTarget.BOTH)
    ]
    return ResidualResult(
        likelihood_inherent=likelihood,
        impact_inherent=impact,
        likelihood_residual=residual_dimension(likelihood, likelihood_effs),
        impact_residual=residual_dimension(impact, impact_effs),
        likelihood_effectiveness=max(likelihood_effs, default=0.0),
        impact_effectiveness=max(impact_effs, default=0.0),
        control_count=len(controls),
    )


def risk_level(score: int, extreme_min: int = 15, high_min: int = 10, medium_min: int = 5) -> RiskLevel:
    if score >= extreme_min:
        return RiskLevel.EXTREME
    if score >= high_min:
        return RiskLevel.HIGH
    if score >= medium_min:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW
