"""
Indicator Threshold Evaluator Tests.

Covers:
- GREEN / YELLOW / RED for each threshold direction
- Deriving indicator thresholds from a tolerance band
- The boundary recorded on an alert
- A worse value never improves the colour
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from riskregister.engine.indicator import (
    IndicatorThresholds,
    breached_threshold,
    evaluate,
    evaluate_directional,
    thresholds_from_tolerance,
    validate_indicator_thresholds,
)
from riskregister.engine.tolerance import DirectionalConfig, ToleranceThresholds
from riskregister.errors import InvalidThresholdConfiguration, ValidationError
from riskregister.schemas.enums import BadDirection, IndicatorStatus, MetricType, ThresholdDirection

GREEN, YELLOW, RED = IndicatorStatus.GREEN, IndicatorStatus.YELLOW, IndicatorStatus.RED

ABOVE = IndicatorThresholds(direction=ThresholdDirection.ABOVE_IS_BAD, lower=70.0, upper=90.0)
BELOW = IndicatorThresholds(direction=ThresholdDirection.BELOW_IS_BAD, lower=90.0, upper=95.0)
BETWEEN = IndicatorThresholds(
    direction=ThresholdDirection.BETWEEN, lower=0.5, upper=3.0, warning_lower=1.0, warning_upper=2.0
)


class TestEvaluate:
    @pytest.mark.parametrize("value,expected", [(50, GREEN), (70, GREEN), (85, YELLOW), (90, YELLOW), (95, RED)])
    def test_above_is_bad(self, value, expected):
        assert evaluate(value, ABOVE) == expected

    @pytest.mark.parametrize("value,expected", [(99, GREEN), (95, GREEN), (92, YELLOW), (89, RED)])
    def test_below_is_bad(self, value, expected):
        assert evaluate(value, BELOW) == expected

    @pytest.mark.parametrize("value,expected", [(1.5, GREEN), (2.5, YELLOW), (0.7, YELLOW), (0.1, RED), (4, RED)])
    def test_between_with_warning_band(self, value, expected):
        assert evaluate(value, BETWEEN) == expected

    def test_between_without_warning_band_has_no_yellow(self):
        bare = IndicatorThresholds(direction=ThresholdDirection.BETWEEN, lower=1.0, upper=2.0)
        assert evaluate(1.0, bare) == GREEN
        assert evaluate(2.5, bare) == RED

    def test_nan_rejected(self):
        with pytest.raises(ValidationError):
            evaluate(float("nan"), ABOVE)


_RANK = {GREEN: 0, YELLOW: 1, RED: 2}
_values = st.floats(min_value=-1e6, max_value=1e6, allow_nan=False)


class TestMonotonic:
    @given(_values, _values)
    def test_above_is_bad_worsens_as_value_rises(self, a, b):
        low, high = sorted((a, b))
        assert _RANK[evaluate(low, ABOVE)] <= _RANK[evaluate(high, ABOVE)]

    @given(_values, _values)
    def test_below_is_bad_worsens_as_value_falls(self, a, b):
        low, high = sorted((a, b))
        assert _RANK[evaluate(high, BELOW)] <= _RANK[evaluate(low, BELOW)]

    @given(st.floats(min_value=0, max_value=1e6), st.floats(min_value=0, max_value=1e6), st.sampled_from([-1, 1]))
    def test_between_worsens_moving_outward(self, a, b, side):
        near, far = sorted((a, b))
        assert _RANK[evaluate(1.5 + side * near, BETWEEN)] <= _RANK[evaluate(1.5 + side * far, BETWEEN)]


class TestValidation:
    def test_inverted_bounds(self):
        with pytest.raises(InvalidThresholdConfiguration):
            validate_indicator_thresholds(
                IndicatorThresholds(direction=ThresholdDirection.ABOVE_IS_BAD, lower=90.0, upper=70.0)
            )

    def test_warning_band_outside_bounds(self):
        with pytest.raises(InvalidThresholdConfiguration):
            validate_indicator_thresholds(
                IndicatorThresholds(
                    direction=ThresholdDirection.BETWEEN, lower=1.0, upper=2.0, warning_lower=0.5, warning_upper=1.5
                )
            )


class TestFromTolerance:
    def test_maximum_maps_to_above_is_bad(self):
        derived = thresholds_from_tolerance(MetricType.MAXIMUM, ToleranceThresholds(green_max=70.0, amber_max=90.0))
        assert derived == ABOVE

    def test_minimum_maps_to_below_is_bad(self):
        derived = thresholds_from_tolerance(MetricType.MINIMUM, ToleranceThresholds(green_min=95.0, amber_min=90.0))
        assert derived == BELOW

    def test_range_with_warning_band(self):
        derived = thresholds_from_tolerance(
            MetricType.RANGE,
            ToleranceThresholds(green_min=1.0, green_max=2.0, amber_min=0.5, amber_max=3.0),
        )
        assert derived == BETWEEN

    def test_directional_has_no_static_thresholds(self):
        band = ToleranceThresholds(
            directional=DirectionalConfig(allowed_change_pct=10.0, bad_direction=BadDirection.INCREASING)
        )
        assert thresholds_from_tolerance(MetricType.DIRECTIONAL, band) is None
        assert evaluate_directional(120, band, prior_value=100) == RED
        assert evaluate_directional(120, band, prior_value=None) is None

    def test_same_value_same_colour_both_ways(self):
        """A tolerance-governed indicator agrees with the tolerance itself."""
        band = ToleranceThresholds(green_max=70.0, amber_max=90.0)
        derived = thresholds_from_tolerance(MetricType.MAXIMUM, band)
        assert [evaluate(v, derived) for v in (60, 80, 100)] == [GREEN, YELLOW, RED]


class TestBreachedThreshold:
    def test_green_has_none(self):
        assert breached_threshold(50, ABOVE, GREEN) is None

    def test_above_is_bad(self):
        assert breached_threshold(85, ABOVE, YELLOW) == 70.0
        assert breached_threshold(95, ABOVE, RED) == 90.0

    def test_between_picks_the_side_crossed(self):
        assert breached_threshold(0.1, BETWEEN, RED) == 0.5
        assert breached_threshold(2.5, BETWEEN, YELLOW) == 2.0
