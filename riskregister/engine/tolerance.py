"""
Tolerance Evaluator.

Evaluates a value against a board-approved tolerance band and rolls metric
statuses up to category and enterprise level.

Band semantics per metric type:
  MAXIMUM      green <= green_max < amber <= amber_max < red
  MINIMUM      green >= green_min > amber >= amber_min > red
  RANGE        green inside [green_min, green_max]; amber inside the optional
               outer band [amber_min, amber_max]; red outside both
  DIRECTIONAL  percentage change vs. the prior value, signed by bad_direction;
               red above allowed_change_pct, amber above
               warning_fraction * allowed_change_pct

Roll-up is a pure fold (GREEN < AMBER < RED). UNKNOWN is never folded in;
it is counted separately and only returned when nothing is known.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from riskregister.errors import InvalidThresholdConfiguration, ValidationError
from riskregister.schemas.enums import BadDirection, MetricType, ToleranceStatus

_SEVERITY = {
    ToleranceStatus.GREEN: 0,
    ToleranceStatus.AMBER: 1,
    ToleranceStatus.RED: 2,
}

BAND_FIELDS = ("green_min", "green_max", "amber_min", "amber_max", "red_min", "red_max")


@dataclass(frozen=True)
class DirectionalConfig:
    allowed_change_pct: float
    bad_direction: BadDirection
    warning_fraction: float = 0.5


@dataclass(frozen=True)
class ToleranceThresholds:
    green_min: Optional[float] = None
    green_max: Optional[float] = None
    amber_min: Optional[float] = None
    amber_max: Optional[float] = None
    red_min: Optional[float] = None
    red_max: Optional[float] = None
    directional: Optional[DirectionalConfig] = None

    def as_dict(self) -> dict:
        data = {name: getattr(self, name) for name in BAND_FIELDS}
        if self.directional is not None:
            data["allowed_change_pct"] = self.directional.allowed_change_pct
            data["bad_direction"] = self.directional.bad_direction.value
            data["warning_fraction"] = self.directional.warning_fraction
        return data

    @classmethod
    def from_model(cls, model) -> "ToleranceThresholds":
        """Build from a ToleranceConfiguration row (or anything with the same attributes)."""
        directional = None
        if model.allowed_change_pct is not None and model.bad_direction is not None:
            directional = DirectionalConfig(
                allowed_change_pct=model.allowed_change_pct,
                bad_direction=BadDirection(model.bad_direction),
                warning_fraction=model.warning_fraction if model.warning_fraction is not None else 0.5,
            )
        return cls(
            green_min=model.green_min,
            green_max=model.green_max,
            amber_min=model.amber_min,
            amber_max=model.amber_max,
            red_min=model.red_min,
            red_max=model.red_max,
            directional=directional,
        )


# ── Validation ─────────────────────────────────────────────────────────


def _invalid(message: str, field: str, thresholds: ToleranceThresholds) -> InvalidThresholdConfiguration:
    return InvalidThresholdConfiguration(message, field=field, details=thresholds.as_dict())


def _require(thresholds: ToleranceThresholds, *names: str) -> None:
    for name in names:
        value = getattr(thresholds, name)
        if value is None:
            raise _invalid(f"{name} is required", name, thresholds)
        if not math.isfinite(value):
            raise _invalid(f"{name} must be finite", name, thresholds)


def _forbid(thresholds: ToleranceThresholds, metric_type: MetricType, *names: str) -> None:
    for name in names:
        if getattr(thresholds, name) is not None:
            raise _invalid(f"{name} is not used by {metric_type} metrics", name, thresholds)


def _boundary(thresholds: ToleranceThresholds, name: str, expected: float, zone: str) -> None:
    """An optional zone edge must coincide with the neighbouring zone's edge."""
    value = getattr(thresholds, name)
    if value is None:
        return
    if value != expected:
        problem = "gap" if _is_gap(name, value, expected) else "overlap"
        raise _invalid(
            f"{name}={value} leaves a {problem} against the {zone} zone boundary {expected}",
            name,
            thresholds,
        )


def _is_gap(name: str, value: float, expected: float) -> bool:
    # Lower edges (*_min) above the previous zone leave a gap; upper edges
    # (*_max) below the previous zone leave a gap.
    if name.endswith("_min"):
        return value > expected
    return value < expected


def validate_thresholds(metric_type: MetricType, thresholds: ToleranceThresholds) -> None:
    """
    Reject non-monotonic, gapped or overlapping zones.

    Raises:
        InvalidThresholdConfiguration naming the offending field.
    """
    metric_type = MetricType(metric_type)

    if metric_type == MetricType.MAXIMUM:
        _require(thresholds, "green_max", "amber_max")
        if not thresholds.green_max < thresholds.amber_max:
            raise _invalid("green_max must be below amber_max", "amber_max", thresholds)
        _boundary(thresholds, "amber_min", thresholds.green_max, "green")
        _boundary(thresholds, "red_min", thresholds.amber_max, "amber")
        if thresholds.green_min is not None and thresholds.green_min > thresholds.green_max:
            raise _invalid("green_min must not exceed green_max", "green_min", thresholds)
        if thresholds.red_max is not None and thresholds.red_max < thresholds.amber_max:
            raise _invalid("red_max must not be below amber_max", "red_max", thresholds)
        _forbid_directional(metric_type, thresholds)

    elif metric_type == MetricType.MINIMUM:
        _require(thresholds, "green_min", "amber_min")
        if not thresholds.green_min > thresholds.amber_min:
            raise _invalid("green_min must be above amber_min", "amber_min", thresholds)
        _boundary(thresholds, "amber_max", thresholds.green_min, "green")
        _boundary(thresholds, "red_max", thresholds.amber_min, "amber")
        if thresholds.green_max is not None and thresholds.green_max < thresholds.green_min:
            raise _invalid("green_max must not be below green_min", "green_max", thresholds)
        if thresholds.red_min is not None and thresholds.red_min > thresholds.amber_min:
            raise _invalid("red_min must not exceed amber_min", "red_min", thresholds)
        _forbid_directional(metric_type, thresholds)

    elif metric_type == MetricType.RANGE:
        _require(thresholds, "green_min", "green_max")
        if not thresholds.green_min < thresholds.green_max:
            raise _invalid("green_min must be below green_max", "green_max", thresholds)
        has_lower = thresholds.amber_min is not None
        has_upper = thresholds.amber_max is not None
        if has_lower != has_upper:
            missing = "amber_max" if has_lower else "amber_min"
            raise _invalid("a warning band needs both amber_min and amber_max", missing, thresholds)
        if has_lower:
            _require(thresholds, "amber_min", "amber_max")
            if thresholds.amber_min > thresholds.green_min:
                raise _invalid("amber_min must not exceed green_min", "amber_min", thresholds)
            if thresholds.amber_max < thresholds.green_max:
                raise _invalid("amber_max must not be below green_max", "amber_max", thresholds)
        _forbid(thresholds, metric_type, "red_min", "red_max")
        _forbid_directional(metric_type, thresholds)

    else:
        directional = thresholds.directional
        if directional is None:
            raise _invalid("directional metrics need allowed_change_pct and bad_direction",
                           "allowed_change_pct", thresholds)
        if not math.isfinite(directional.allowed_change_pct) or directional.allowed_change_pct <= 0:
            raise _invalid("allowed_change_pct must be positive", "allowed_change_pct", thresholds)
        if not 0 < directional.warning_fraction < 1:
            raise _invalid("warning_fraction must lie strictly between 0 and 1",
                           "warning_fraction", thresholds)
        _forbid(thresholds, metric_type, *BAND_FIELDS)


def _forbid_directional(metric_type: MetricType, thresholds: ToleranceThresholds) -> None:
    if thresholds.directional is not None:
        raise _invalid(f"{metric_type} metrics take no directional settings",
                       "allowed_change_pct", thresholds)


# ── Evaluation ─────────────────────────────────────────────────────────


def percent_change(value: float, prior_value: Optional[float]) -> Optional[float]:
    """Signed percentage change, or None when there is no usable baseline."""
    if prior_value is None or prior_value == 0:
        return None
    return (value - prior_value) / abs(prior_value) * 100.0


def evaluate_tolerance(
    value: float,
    metric_type: MetricType,
    thresholds: ToleranceThresholds,
    prior_value: Optional[float] = None,
) -> ToleranceStatus:
    """Status of one value. Thresholds are assumed validated."""
    if value is None or not math.isfinite(value):
        raise ValidationError("value must be a finite number", field="value", details={"value": value})
    metric_type = MetricType(metric_type)

    if metric_type == MetricType.MAXIMUM:
        if value <= thresholds.green_max:
            return ToleranceStatus.GREEN
        if value <= thresholds.amber_max:
            return ToleranceStatus.AMBER
        return ToleranceStatus.RED

    if metric_type == MetricType.MINIMUM:
        if value >= thresholds.green_min:
            return ToleranceStatus.GREEN
        if value >= thresholds.amber_min:
            return ToleranceStatus.AMBER
        return ToleranceStatus.RED

    if metric_type == MetricType.RANGE:
        if thresholds.green_min <= value <= thresholds.green_max:
            return ToleranceStatus.GREEN
        if (
            thresholds.amber_min is not None
            and thresholds.amber_max is not None
            and thresholds.amber_min <= value <= thresholds.amber_max
        ):
            return ToleranceStatus.AMBER
        return ToleranceStatus.RED

    directional = thresholds.directional
    change = percent_change(value, prior_value)
    if change is None:
        return ToleranceStatus.UNKNOWN
    adverse = change if directional.bad_direction == BadDirection.INCREASING else -change
    if adverse > directional.allowed_change_pct:
        return ToleranceStatus.RED
    if adverse > directional.warning_fraction * directional.allowed_change_pct:
        return ToleranceStatus.AMBER
    return ToleranceStatus.GREEN


# ── Roll-up ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RollupResult:
    status: ToleranceStatus
    green: int = 0
    amber: int = 0
    red: int = 0
    unknown: int = 0

    @property
    def known(self) -> int:
        return self.green + self.amber + self.red

    def as_counts(self) -> dict:
        return {"green": self.green, "amber": self.amber, "red": self.red, "unknown": self.unknown}


def worst(statuses: Iterable[ToleranceStatus]) -> ToleranceStatus:
    """Worst known status; UNKNOWN only when no status is known."""
    known = [ToleranceStatus(s) for s in statuses if ToleranceStatus(s) != ToleranceStatus.UNKNOWN]
    if not known:
        return ToleranceStatus.UNKNOWN
    return max(known, key=_SEVERITY.__getitem__)


def rollup(statuses: Iterable[ToleranceStatus]) -> RollupResult:
    """Fold child statuses into one, keeping per-status counts."""
    statuses = [ToleranceStatus(s) for s in statuses]
    return RollupResult(
        status=worst(statuses),
        green=statuses.count(ToleranceStatus.GREEN),
        amber=statuses.count(ToleranceStatus.AMBER),
        red=statuses.count(ToleranceStatus.RED),
        unknown=statuses.count(ToleranceStatus.UNKNOWN),
    )
