"""
Indicator Threshold Evaluator.

Turns a measurement into GREEN / YELLOW / RED:
  ABOVE_IS_BAD  red if value > upper, yellow if value > lower
  BELOW_IS_BAD  red if value < lower, yellow if value < upper
  BETWEEN       red if value < lower or value > upper; yellow only when a
                warning band [warning_lower, warning_upper] is configured and
                the value falls outside it

Indicators carry no thresholds of their own. The thresholds used here are
always derived from the tolerance configuration governing the indicator.
"""

import math
from dataclasses import dataclass
from typing import Optional

from riskregister.engine.tolerance import ToleranceThresholds, evaluate_tolerance
from riskregister.errors import InvalidThresholdConfiguration, ValidationError
from riskregister.schemas.enums import (
    IndicatorStatus,
    MetricType,
    ThresholdDirection,
    ToleranceStatus,
)


@dataclass(frozen=True)
class IndicatorThresholds:
    direction: ThresholdDirection
    lower: float
    upper: float
    warning_lower: Optional[float] = None
    warning_upper: Optional[float] = None

    @property
    def has_warning_band(self) -> bool:
        return self.warning_lower is not None and self.warning_upper is not None

    def as_dict(self) -> dict:
        return {
            "direction": self.direction.value,
            "lower": self.lower,
            "upper": self.upper,
            "warning_lower": self.warning_lower,
            "warning_upper": self.warning_upper,
        }


def validate_indicator_thresholds(thresholds: IndicatorThresholds) -> None:
    if thresholds.lower > thresholds.upper:
        raise InvalidThresholdConfiguration(
            "lower threshold must not exceed upper threshold",
            field="lower",
            details=thresholds.as_dict(),
        )
    if thresholds.has_warning_band and not (
        thresholds.lower <= thresholds.warning_lower <= thresholds.warning_upper <= thresholds.upper
    ):
        raise InvalidThresholdConfiguration(
            "warning band must sit inside the hard bounds",
            field="warning_lower",
            details=thresholds.as_dict(),
        )


def evaluate(value: float, thresholds: IndicatorThresholds) -> IndicatorStatus:
    if value is None or not math.isfinite(value):
        raise ValidationError("value must be a finite number", field="value", details={"value": value})

    if thresholds.direction == ThresholdDirection.ABOVE_IS_BAD:
        if value > thresholds.upper:
            return IndicatorStatus.RED
        if value > thresholds.lower:
            return IndicatorStatus.YELLOW
        return IndicatorStatus.GREEN

    if thresholds.direction == ThresholdDirection.BELOW_IS_BAD:
        if value < thresholds.lower:
            return IndicatorStatus.RED
        if value < thresholds.upper:
            return IndicatorStatus.YELLOW
        return IndicatorStatus.GREEN

    if value < thresholds.lower or value > thresholds.upper:
        return IndicatorStatus.RED
    if thresholds.has_warning_band and (
        value < thresholds.warning_lower or value > thresholds.warning_upper
    ):
        return IndicatorStatus.YELLOW
    return IndicatorStatus.GREEN


def thresholds_from_tolerance(
    metric_type: MetricType, tolerance: ToleranceThresholds
) -> Optional[IndicatorThresholds]:
    """
    Map a validated tolerance band onto indicator thresholds.

    Returns None for DIRECTIONAL tolerances, which need the prior value and
    are evaluated with evaluate_directional instead.
    """
    metric_type = MetricType(metric_type)
    if metric_type == MetricType.MAXIMUM:
        return IndicatorThresholds(
            direction=ThresholdDirection.ABOVE_IS_BAD,
            lower=tolerance.green_max,
            upper=tolerance.amber_max,
        )
    if metric_type == MetricType.MINIMUM:
        return IndicatorThresholds(
            direction=ThresholdDirection.BELOW_IS_BAD,
            lower=tolerance.amber_min,
            upper=tolerance.green_min,
        )
    if metric_type == MetricType.RANGE:
        if tolerance.amber_min is not None and tolerance.amber_max is not None:
            return IndicatorThresholds(
                direction=ThresholdDirection.BETWEEN,
                lower=tolerance.amber_min,
                upper=tolerance.amber_max,
                warning_lower=tolerance.green_min,
                warning_upper=tolerance.green_max,
            )
        return IndicatorThresholds(
            direction=ThresholdDirection.BETWEEN,
            lower=tolerance.green_min,
            upper=tolerance.green_max,
        )
    return None


_FROM_TOLERANCE = {
    ToleranceStatus.GREEN: IndicatorStatus.GREEN,
    ToleranceStatus.AMBER: IndicatorStatus.YELLOW,
    ToleranceStatus.RED: IndicatorStatus.RED,
}


def evaluate_directional(
    value: float, tolerance: ToleranceThresholds, prior_value: Optional[float]
) -> Optional[IndicatorStatus]:
    """Directional status, or None when there is no usable baseline yet."""
    status = evaluate_tolerance(value, MetricType.DIRECTIONAL, tolerance, prior_value=prior_value)
    return _FROM_TOLERANCE.get(status)


def breached_threshold(value: float, thresholds: IndicatorThresholds, status: IndicatorStatus) -> Optional[float]:
    """The boundary the value crossed, for the alert record."""
    if status == IndicatorStatus.GREEN:
        return None
    if thresholds.direction == ThresholdDirection.ABOVE_IS_BAD:
        return thresholds.upper if status == IndicatorStatus.RED else thresholds.lower
    if thresholds.direction == ThresholdDirection.BELOW_IS_BAD:
        return thresholds.lower if status == IndicatorStatus.RED else thresholds.upper
    if status == IndicatorStatus.RED:
        return thresholds.lower if value < thresholds.lower else thresholds.upper
    return thresholds.warning_lower if value < thresholds.warning_lower else thresholds.warning_upper
