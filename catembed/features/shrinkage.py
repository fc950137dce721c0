"""Per-level pooling strategies.

``AnalyticalShrinkage`` is a closed-form empirical-Bayes (James-Stein type)
estimator computed from aggregated statistics:

    factor(level)   = between / (between + within(level) / n(level))
    estimate(level) = global_mean + factor(level) * (mean(level) - global_mean)

``between`` is the level-size weighted variance of level means around the
global mean. Weights enter through ``n``/``mean``/``variance`` only; the
formula itself does not re-weight.

``ExternalModelPooling`` delegates to any fitted object exposing
``predict_per_level(level)``.
"""

from abc import ABC, abstractmethod
from typing import Dict, Hashable, Union

import numpy as np

from catembed.features.aggregation import AggregationResult, LevelStatistics
from catembed.utils import get_logger
from catembed.utils.exceptions import PoolingError

logger = get_logger(__name__)

# Level means no more than this many ULPs apart count as equal
MEAN_SPREAD_ULPS = 4

Estimate = Union[float, np.ndarray]


class PoolingStrategy(ABC):
    """Capability that yields one estimate per trained level."""

    @abstractmethod
    def per_level_estimate(self, level: Hashable) -> Estimate:
        """Estimate for a trained level."""


def between_level_variance(aggregation: AggregationResult) -> float:
    """Level-size weighted variance of level means around the global mean."""
    global_mean = aggregation.global_stats.global_mean
    n = np.array([s.n for s in aggregation.levels])
    means = np.array([s.mean for s in aggregation.levels])
    return float(np.sum(n * (means - global_mean) ** 2) / np.sum(n))


def _means_coincide(aggregation: AggregationResult) -> bool:
    means = np.array([s.mean for s in aggregation.levels])
    spread = means.max() - means.min()
    scale = max(np.abs(means).max(), np.finfo(float).tiny)
    return spread <= MEAN_SPREAD_ULPS * np.finfo(float).eps * scale


class AnalyticalShrinkage(PoolingStrategy):
    """Empirical-Bayes shrinkage of level means toward the global mean."""

    def __init__(self, aggregation: AggregationResult, min_variance_floor: float = 0.0):
        self.aggregation = aggregation
        self.min_variance_floor = min_variance_floor
        self.global_mean = aggregation.global_stats.global_mean

        between = between_level_variance(aggregation)
        if between == 0.0 or _means_coincide(aggregation):
            between = 0.0
        self.between_variance = between

        self.factors: Dict[Hashable, float] = {
            s.level: self._factor(s) for s in aggregation.levels
        }

        if between == 0.0:
            logger.info("Between-level variance is zero; all levels collapse to the global mean")

    def _factor(self, stats: LevelStatistics) -> float:
        if self.between_variance == 0.0:
            return 0.0
        within = max(stats.variance, self.min_variance_floor)
        if within == 0.0:
            return 1.0
        return self.between_variance / (self.between_variance + within / stats.n)

    def shrinkage_factor(self, level: Hashable) -> float:
        return self.factors[level]

    def per_level_estimate(self, level: Hashable) -> float:
        factor = self.factors[level]
        raw_mean = self.aggregation[level].mean
        if factor == 0.0:
            return self.global_mean
        if factor == 1.0:
            return raw_mean

        estimate = self.global_mean + factor * (raw_mean - self.global_mean)
        lo, hi = sorted((self.global_mean, raw_mean))
        return float(np.clip(estimate, lo, hi))


class ExternalModelPooling(PoolingStrategy):
    """Per-level estimates from an externally fitted model.

    The model only needs ``predict_per_level(level) -> float | sequence``;
    how it was produced is not this class's concern.
    """

    def __init__(self, model):
        if not callable(getattr(model, "predict_per_level", None)):
            raise PoolingError(f"{type(model).__name__} does not provide predict_per_level()")
        self.model = model

    def per_level_estimate(self, level: Hashable) -> Estimate:
        try:
            raw = self.model.predict_per_level(level)
        except Exception as e:
            raise PoolingError(f"External model failed for level {level!r}: {e}") from e

        try:
            value = np.asarray(raw, dtype=float)
        except (TypeError, ValueError) as e:
            raise PoolingError(f"External model returned a non-numeric estimate for level {level!r}") from e
        if value.ndim > 1 or value.size == 0:
            raise PoolingError(f"External model returned shape {value.shape} for level {level!r}")
        if not np.all(np.isfinite(value)):
            raise PoolingError(f"External model returned a non-finite estimate for level {level!r}: {raw}")

        if value.ndim == 0:
            return float(value)
        return value
