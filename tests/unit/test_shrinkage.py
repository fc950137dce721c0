# tests/unit/test_shrinkage.py
"""Tests for analytical empirical-Bayes shrinkage."""

import pytest
import pandas as pd
from unittest.mock import MagicMock

from catembed.features.aggregation import aggregate
from catembed.features.shrinkage import (
    AnalyticalShrinkage,
    ExternalModelPooling,
    PoolingStrategy,
    between_level_variance,
)
from catembed.utils.exceptions import PoolingError


def _shrinkage(df, config, floor=0.0):
    return AnalyticalShrinkage(aggregate(df, config, binary=False), min_variance_floor=floor)


class TestAnalyticalShrinkage:
    """Closed-form shrinkage toward the global mean."""

    def test_zero_within_variance_trusts_raw_mean(self, three_row_df, numeric_config):
        """Verify B (single row, variance 0) keeps its raw mean exactly."""
        pooling = _shrinkage(three_row_df, numeric_config)
        assert pooling.shrinkage_factor("B") == 1.0
        assert pooling.per_level_estimate("B") == 100.0

    def test_formula_for_three_row_example(self, three_row_df, numeric_config):
        """
        Verify the factor and estimate for A by hand.

        global = 122/3, between = (2*(11-g)^2 + 1*(100-g)^2) / 3,
        factor(A) = between / (between + 1/2).
        """
        g = 122 / 3
        between = (2 * (11 - g) ** 2 + (100 - g) ** 2) / 3
        factor = between / (between + 1.0 / 2)

        pooling = _shrinkage(three_row_df, numeric_config)
        assert pooling.between_variance == pytest.approx(between)
        assert pooling.shrinkage_factor("A") == pytest.approx(factor)
        assert pooling.per_level_estimate("A") == pytest.approx(g + factor * (11 - g))
        assert 11.0 < pooling.per_level_estimate("A") < g

    def test_estimates_within_bounds(self, sample_numeric_df, weighted_config):
        """Verify min(global, raw) <= estimate <= max(global, raw) for every level."""
        aggregation = aggregate(sample_numeric_df, weighted_config, binary=False)
        pooling = AnalyticalShrinkage(aggregation)
        g = aggregation.global_stats.global_mean
        for stats in aggregation.levels:
            estimate = pooling.per_level_estimate(stats.level)
            assert min(g, stats.mean) <= estimate <= max(g, stats.mean), f"Level {stats.level} out of bounds"

    def test_equal_means_collapse_to_global_mean(self, equal_means_df, numeric_config):
        """Verify identical level means give every level exactly the global mean."""
        aggregation = aggregate(equal_means_df, numeric_config, binary=False)
        pooling = AnalyticalShrinkage(aggregation)
        g = aggregation.global_stats.global_mean
        assert pooling.between_variance == 0.0
        for level in aggregation.level_names:
            assert pooling.per_level_estimate(level) == g

    def test_rounded_equal_means_collapse(self, numeric_config):
        """Verify means equal up to float rounding still collapse exactly."""
        df = pd.DataFrame({"category": ["a"] * 3 + ["b"] * 3, "outcome": [0.1, 0.2, 0.3, 0.3, 0.2, 0.1]})
        aggregation = aggregate(df, numeric_config, binary=False)
        pooling = AnalyticalShrinkage(aggregation)
        assert pooling.per_level_estimate("a") == aggregation.global_stats.global_mean
        assert pooling.per_level_estimate("b") == aggregation.global_stats.global_mean

    def test_large_offset_keeps_raw_means(self, numeric_config):
        """Verify a real spread on top of a large offset is not mistaken for equal means."""
        df = pd.DataFrame({"category": ["A", "A", "B", "B"], "outcome": [1e9, 1e9, 1e9 + 100, 1e9 + 100]})
        pooling = _shrinkage(df, numeric_config)
        assert pooling.between_variance == pytest.approx(2500.0)
        assert pooling.shrinkage_factor("A") == 1.0
        assert pooling.per_level_estimate("A") == 1e9
        assert pooling.per_level_estimate("B") == 1e9 + 100

    def test_single_level_collapses(self, numeric_config):
        """Verify one level means zero between-variance and full shrinkage."""
        df = pd.DataFrame({"category": ["only", "only"], "outcome": [1.0, 3.0]})
        pooling = _shrinkage(df, numeric_config)
        assert pooling.shrinkage_factor("only") == 0.0
        assert pooling.per_level_estimate("only") == 2.0

    def test_constant_outcome(self, numeric_config):
        """Verify a constant outcome gives the constant for every level."""
        df = pd.DataFrame({"category": list("aabbc"), "outcome": [5.0] * 5})
        pooling = _shrinkage(df, numeric_config)
        assert all(pooling.per_level_estimate(level) == 5.0 for level in "abc")

    def test_variance_floor_prevents_full_trust(self, three_row_df, numeric_config):
        """Verify min_variance_floor pulls a zero-variance level toward the global mean."""
        pooling = _shrinkage(three_row_df, numeric_config, floor=1000.0)
        assert pooling.shrinkage_factor("B") < 1.0
        assert pooling.per_level_estimate("B") < 100.0

    def test_more_data_means_less_shrinkage(self, numeric_config):
        """Verify a larger level with the same mean and spread shrinks less."""
        df = pd.DataFrame({
            "category": ["small"] * 2 + ["big"] * 8 + ["ref"] * 4,
            "outcome": [9.0, 11.0] + [9.0, 11.0] * 4 + [0.0, 1.0, 0.0, 1.0],
        })
        pooling = _shrinkage(df, numeric_config)
        assert pooling.shrinkage_factor("big") > pooling.shrinkage_factor("small")

    def test_weights_enter_through_statistics_only(self, numeric_config, weighted_config):
        """
        Verify unit weights match the unweighted fit and heavier levels shrink less.

        Weights only reach the formula through n, mean and variance.
        """
        df = pd.DataFrame({
            "category": ["a", "a", "b", "b"],
            "outcome": [1.0, 3.0, 10.0, 14.0],
            "weight": [1.0, 1.0, 1.0, 1.0],
        })
        unweighted = _shrinkage(df, numeric_config)
        weighted = _shrinkage(df, weighted_config)
        assert weighted.per_level_estimate("a") == pytest.approx(unweighted.per_level_estimate("a"))

        heavy = df.assign(weight=[4.0, 4.0, 1.0, 1.0])
        pooling = _shrinkage(heavy, weighted_config)
        assert 0.0 <= pooling.shrinkage_factor("a") <= 1.0
        assert pooling.shrinkage_factor("a") > unweighted.shrinkage_factor("a")

    def test_between_level_variance(self, three_row_df, numeric_config):
        """Verify between-variance is level-size weighted around the global mean."""
        aggregation = aggregate(three_row_df, numeric_config, binary=False)
        g = 122 / 3
        assert between_level_variance(aggregation) == pytest.approx((2 * (11 - g) ** 2 + (100 - g) ** 2) / 3)

    def test_is_pooling_strategy(self, three_row_df, numeric_config):
        """Verify the analytical estimator satisfies the pooling capability."""
        assert isinstance(_shrinkage(three_row_df, numeric_config), PoolingStrategy)


class TestExternalModelPooling:
    """Delegation to externally fitted models."""

    def test_delegates_to_model(self):
        """Verify estimates come from predict_per_level."""
        model = MagicMock()
        model.predict_per_level.side_effect = lambda level: {"a": 1.5, "b": -0.5}[level]
        pooling = ExternalModelPooling(model)
        assert pooling.per_level_estimate("a") == 1.5
        assert pooling.per_level_estimate("b") == -0.5

    def test_vector_estimates(self):
        """Verify vector-valued estimates are returned as arrays."""
        model = MagicMock()
        model.predict_per_level.return_value = [0.1, 0.2]
        estimate = ExternalModelPooling(model).per_level_estimate("a")
        assert list(estimate) == [0.1, 0.2]

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), "text"])
    def test_non_finite_estimates_rejected(self, bad):
        """Verify NaN, Inf and non-numeric model output raise PoolingError."""
        model = MagicMock()
        model.predict_per_level.return_value = bad
        with pytest.raises(PoolingError):
            ExternalModelPooling(model).per_level_estimate("a")

    def test_model_failure_wrapped(self):
        """Verify model exceptions surface as PoolingError."""
        model = MagicMock()
        model.predict_per_level.side_effect = KeyError("a")
        with pytest.raises(PoolingError, match="failed"):
            ExternalModelPooling(model).per_level_estimate("a")

    def test_model_without_capability_rejected(self):
        """Verify objects lacking predict_per_level are refused."""
        with pytest.raises(PoolingError, match="predict_per_level"):
            ExternalModelPooling(object())
