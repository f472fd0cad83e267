"""
Effectiveness Calculator Tests.

Covers:
- DIME effectiveness ratio and the design/implementation gate
- Residual per dimension (strongest control only, floor of 1)
- Half-up rounding
- Level bands

Includes property-based tests via Hypothesis.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from riskregister.engine.effectiveness import (
    ControlScores,
    compute_residual,
    effectiveness,
    residual_dimension,
    risk_level,
    round_half_up,
    validate_inherent,
)
from riskregister.errors import ValidationError
from riskregister.schemas.enums import ControlTarget, RiskLevel

dime = st.integers(min_value=0, max_value=3)


class TestEffectiveness:
    def test_full_marks(self):
        assert effectiveness(3, 3, 3, 3) == 1.0

    def test_ratio_of_twelve(self):
        assert effectiveness(3, 3, 3, 0) == pytest.approx(0.75)
        assert effectiveness(2, 1, 0, 0) == pytest.approx(0.25)

    def test_zero_design_gates_everything(self):
        assert effectiveness(0, 3, 3, 3) == 0.0

    def test_zero_implementation_gates_everything(self):
        assert effectiveness(3, 0, 3, 3) == 0.0

    def test_unassessed_design_is_zero(self):
        assert effectiveness(None, 3, 3, 3) == 0.0

    def test_unassessed_monitoring_counts_as_zero(self):
        assert effectiveness(3, 3, None, None) == pytest.approx(0.5)

    @pytest.mark.parametrize("bad", [-1, 4, 2.5, True])
    def test_out_of_range_score_rejected(self, bad):
        with pytest.raises(ValidationError) as exc:
            effectiveness(3, 3, bad, 0)
        assert exc.value.field == "monitoring_score"

    @given(dime, dime, dime, dime)
    def test_always_a_ratio(self, d, i, m, e):
        assert 0.0 <= effectiveness(d, i, m, e) <= 1.0

    @given(dime, dime, dime, dime)
    def test_gate_property(self, d, i, m, e):
        if d == 0 or i == 0:
            assert effectiveness(d, i, m, e) == 0.0


class TestRounding:
    @pytest.mark.parametrize("value,expected", [(2.25, 2), (2.5, 3), (1.5, 2), (0.49, 0), (3.0, 3)])
    def test_half_up(self, value, expected):
        assert round_half_up(value) == expected


class TestResidualDimension:
    def test_no_controls_keeps_inherent(self):
        assert residual_dimension(4, []) == 4

    def test_strongest_control_wins(self):
        # (5 - 1) * 0.75 = 3 -> 5 - 3 = 2; the weaker control is ignored
        assert residual_dimension(5, [0.25, 0.75]) == 2

    def test_never_below_one(self):
        assert residual_dimension(5, [1.0]) == 1
        assert residual_dimension(1, [1.0]) == 1

    @given(st.integers(min_value=1, max_value=6), st.lists(st.floats(min_value=0, max_value=1), max_size=5))
    def test_bounded_by_inherent(self, inherent, effs):
        residual = residual_dimension(inherent, effs)
        assert 1 <= residual <= inherent

    @given(
        st.integers(min_value=1, max_value=6),
        st.floats(min_value=0, max_value=1),
        st.floats(min_value=0, max_value=1),
    )
    def test_more_effective_never_worse(self, inherent, a, b):
        low, high = sorted((a, b))
        assert residual_dimension(inherent, [high]) <= residual_dimension(inherent, [low])


class TestComputeResidual:
    def test_likelihood_control_scenario(self):
        """L4 / I5 with one 0.75 likelihood control -> 2 x 5 = 10."""
        control = ControlScores(target=ControlTarget.LIKELIHOOD, design=3, implementation=3, monitoring=3, evaluation=0)
        result = compute_residual(4, 5, [control])
        assert result.likelihood_residual == 2
        assert result.impact_residual == 5
        assert result.score == 10
        assert result.inherent_score == 20
        assert result.likelihood_effectiveness == pytest.approx(0.75)
        assert result.impact_effectiveness == 0.0

    def test_both_feeds_both_dimensions(self):
        control = ControlScores(target=ControlTarget.BOTH, design=3, implementation=3, monitoring=3, evaluation=3)
        result = compute_residual(5, 5, [control])
        assert (result.likelihood_residual, result.impact_residual) == (1, 1)

    def test_controls_do_not_stack(self):
        weak = ControlScores(target=ControlTarget.IMPACT, design=1, implementation=1, monitoring=1, evaluation=0)
        result_one = compute_residual(5, 5, [weak])
        result_three = compute_residual(5, 5, [weak, weak, weak])
        assert result_one.impact_residual == result_three.impact_residual

    def test_inactive_control_ignored(self):
        retired = ControlScores(target=ControlTarget.LIKELIHOOD, design=3, implementation=3, is_active=False)
        result = compute_residual(4, 5, [retired])
        assert result.likelihood_residual == 4
        assert result.control_count == 1


class TestInherentValidation:
    def test_six_point_scale_allows_six(self):
        validate_inherent(6, 6, likelihood_scale=6, impact_scale=6)

    @pytest.mark.parametrize("likelihood,impact,field", [(0, 3, "likelihood_inherent"), (3, 6, "impact_inherent")])
    def test_out_of_scale(self, likelihood, impact, field):
        with pytest.raises(ValidationError) as exc:
            validate_inherent(likelihood, impact)
        assert exc.value.field == field


class TestRiskLevel:
    @pytest.mark.parametrize(
        "score,level",
        [(1, RiskLevel.LOW), (4, RiskLevel.LOW), (5, RiskLevel.MEDIUM), (10, RiskLevel.HIGH), (15, RiskLevel.EXTREME)],
    )
    def test_bands(self, score, level):
        assert risk_level(score) == level
