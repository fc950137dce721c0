"""Per-level sufficient statistics for categorical encoding."""

from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Optional, Tuple

import numpy as np
import pandas as pd
from pandas.api import types as ptypes

from catembed.utils import EncodingConfig, get_logger
from catembed.utils.exceptions import ConfigurationError

logger = get_logger(__name__)

LEVEL = "level"
OUTCOME = "outcome"
WEIGHT = "weight"

_INFERRED_KINDS = {
    "string": "string",
    "empty": None,
    "integer": "numeric",
    "floating": "numeric",
    "mixed-integer-float": "numeric",
    "decimal": "numeric",
    "boolean": "boolean",
    "datetime": "datetime",
    "datetime64": "datetime",
    "date": "datetime",
}


@dataclass(frozen=True)
class LevelStatistics:
    """Weighted statistics for one trained level.

    For binary outcomes ``mean`` is the weighted event rate and ``variance``
    the matching Bernoulli variance.
    """

    level: Hashable
    n: float
    n_obs: int
    mean: float
    variance: float
    events: float = 0.0
    nonevents: float = 0.0
    class_counts: Dict[Any, float] = field(default_factory=dict)


@dataclass(frozen=True)
class GlobalStatistics:
    """Statistics pooled across every trained level."""

    n: float
    n_levels: int
    global_mean: float
    global_variance: float
    total_events: float = 0.0
    total_nonevents: float = 0.0
    event_class: Optional[Any] = None


@dataclass(frozen=True)
class AggregationResult:
    """Ordered level statistics plus the global record for one column."""

    levels: Tuple[LevelStatistics, ...]
    global_stats: GlobalStatistics
    category_kind: Optional[str]
    binary: bool
    _index: Dict[Hashable, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_index", {stats.level: i for i, stats in enumerate(self.levels)})

    def __getitem__(self, level: Hashable) -> LevelStatistics:
        return self.levels[self._index[level]]

    @property
    def level_names(self) -> List[Hashable]:
        return [stats.level for stats in self.levels]


def infer_category_kind(values: pd.Series) -> Optional[str]:
    """Coarse type of a category column; None when nothing is observed."""
    dtype = values.dtype
    if isinstance(dtype, pd.CategoricalDtype):
        values = pd.Series(dtype.categories)
        dtype = values.dtype

    if ptypes.is_bool_dtype(dtype):
        return "boolean"
    if ptypes.is_datetime64_any_dtype(dtype):
        return "datetime"
    if ptypes.is_numeric_dtype(dtype):
        return "numeric"

    inferred = ptypes.infer_dtype(values, skipna=True)
    return _INFERRED_KINDS.get(inferred, "object")


def _ordered_levels(levels: pd.Index, kind: Optional[str]) -> List[Hashable]:
    if kind == "object":
        return sorted(levels, key=lambda level: (type(level).__name__, str(level)))
    return sorted(levels)


def prepare_observations(observations: pd.DataFrame, config: EncodingConfig) -> Tuple[pd.DataFrame, Optional[str]]:
    """Resolve the configured columns into a (level, outcome, weight) frame.

    Rows with a missing category are ignored. Rows with a missing outcome
    are dropped unless that leaves a level with no outcome at all.
    """

    required = [config.category_column, config.outcome_column]
    if config.weight_column is not None:
        required.append(config.weight_column)
    missing = [c for c in required if c not in observations.columns]
    if missing:
        raise ConfigurationError(f"Columns not found in observations: {missing}")

    categories = observations[config.category_column]
    kind = infer_category_kind(categories)
    if isinstance(categories.dtype, pd.CategoricalDtype):
        categories = categories.astype(object)

    if config.weight_column is None:
        weights = pd.Series(1.0, index=observations.index)
    else:
        try:
            weights = pd.to_numeric(observations[config.weight_column]).astype(float)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Weight column '{config.weight_column}' is not numeric") from e
        if weights.isna().any() or not np.isfinite(weights).all():
            raise ConfigurationError(f"Weight column '{config.weight_column}' has missing or infinite values")
        if (weights <= 0).any():
            raise ConfigurationError(
                f"Weights must be positive, found {int((weights <= 0).sum())} non-positive values"
            )

    frame = pd.DataFrame({
        LEVEL: categories.to_numpy(dtype=object),
        OUTCOME: observations[config.outcome_column].to_numpy(),
        WEIGHT: weights.to_numpy(dtype=float),
    })

    no_level = frame[LEVEL].isna()
    if no_level.any():
        logger.warning(f"Ignoring {int(no_level.sum())} rows with a missing category")
        frame = frame.loc[~no_level]

    no_outcome = frame[OUTCOME].isna()
    if no_outcome.any():
        has_outcome = (~no_outcome).groupby(frame[LEVEL], sort=False).any()
        empty_levels = has_outcome.index[~has_outcome.to_numpy()].tolist()
        if empty_levels:
            raise ConfigurationError(f"Outcome is missing for every row of levels {empty_levels}")
        logger.warning(f"Dropping {int(no_outcome.sum())} rows with a missing outcome")
        frame = frame.loc[~no_outcome]

    if frame.empty:
        raise ConfigurationError("No usable training rows")

    return frame.reset_index(drop=True), kind


def aggregate_numeric(frame: pd.DataFrame, kind: Optional[str]) -> AggregationResult:
    """Weighted count, mean and variance per level for a numeric outcome."""

    if not ptypes.is_numeric_dtype(frame[OUTCOME].infer_objects().dtype):
        raise ConfigurationError("Numeric encoding requires a numeric outcome")
    y = frame[OUTCOME].infer_objects().astype(float)
    if not np.isfinite(y).all():
        raise ConfigurationError("Outcome contains infinite values")

    w = frame[WEIGHT]
    levels = frame[LEVEL]
    grouped = pd.DataFrame({"w": w, "wy": w * y, "y": y}).groupby(levels, sort=False)

    n = grouped["w"].sum()
    mean = grouped["wy"].sum() / n
    level_mean = levels.map(mean).astype(float)
    variance = (w * (y - level_mean) ** 2).groupby(levels, sort=False).sum() / n

    # Constant levels get their exact value and zero spread
    lo = grouped["y"].min()
    hi = grouped["y"].max()
    constant = lo == hi
    mean[constant] = lo[constant]
    variance[constant] = 0.0

    counts = grouped.size().to_dict()
    n_by_level = n.to_dict()
    mean_by_level = mean.to_dict()
    variance_by_level = variance.to_dict()

    total = float(w.sum())
    if y.min() == y.max():
        global_mean = float(y.iloc[0])
        global_variance = 0.0
    else:
        global_mean = float((w * y).sum() / total)
        global_variance = float((w * (y - global_mean) ** 2).sum() / total)

    stats = tuple(
        LevelStatistics(
            level=level,
            n=float(n_by_level[level]),
            n_obs=int(counts[level]),
            mean=float(mean_by_level[level]),
            variance=float(variance_by_level[level]),
        )
        for level in _ordered_levels(n.index, kind)
    )
    global_stats = GlobalStatistics(
        n=total,
        n_levels=len(stats),
        global_mean=global_mean,
        global_variance=global_variance,
    )
    return AggregationResult(levels=stats, global_stats=global_stats, category_kind=kind, binary=False)


def resolve_event_class(outcome: pd.Series, event_class: Optional[Any] = None) -> Tuple[pd.Series, Optional[Any]]:
    """Boolean event indicator for a two-class outcome.

    Numeric outcomes must be coded 0/1 unless ``event_class`` is given.
    Otherwise the larger of the two observed classes is the event; a lone
    non-numeric class counts as the nonevent.
    """

    classes = list(pd.unique(outcome))
    if len(classes) > 2:
        shown = sorted(classes, key=str)[:5]
        raise ConfigurationError(
            f"Binary outcome required, found {len(classes)} classes (e.g. {shown})"
        )

    if event_class is not None:
        if len(classes) == 2 and event_class not in classes:
            raise ConfigurationError(f"event_class {event_class!r} is not one of {classes}")
        return outcome == event_class, event_class

    if ptypes.is_bool_dtype(outcome.dtype):
        return outcome.astype(bool), True

    if ptypes.is_numeric_dtype(outcome.infer_objects().dtype):
        if not set(classes) <= {0, 1}:
            raise ConfigurationError(
                f"Numeric binary outcome must be coded 0/1, found {sorted(classes)}; set event_class"
            )
        return outcome == 1, 1

    ordered = sorted(classes, key=str)
    if len(ordered) < 2:
        return pd.Series(False, index=outcome.index), None
    return outcome == ordered[1], ordered[1]


def aggregate_binary(frame: pd.DataFrame, kind: Optional[str], event_class: Optional[Any] = None) -> AggregationResult:
    """Weighted event and nonevent counts per level for a binary outcome."""

    is_event, event_class = resolve_event_class(frame[OUTCOME], event_class)
    w = frame[WEIGHT]
    levels = frame[LEVEL]

    events = w.where(is_event, 0.0).groupby(levels, sort=False).sum()
    nonevents = w.where(~is_event, 0.0).groupby(levels, sort=False).sum()
    counts = levels.groupby(levels, sort=False).size().to_dict()
    by_class = w.groupby([levels, frame[OUTCOME]], sort=False).sum()

    class_counts: Dict[Hashable, Dict[Any, float]] = {}
    for (level, label), total in by_class.items():
        class_counts.setdefault(level, {})[label] = float(total)

    events_by_level = events.to_dict()
    nonevents_by_level = nonevents.to_dict()

    stats = []
    for level in _ordered_levels(events.index, kind):
        n_events = float(events_by_level[level])
        n_nonevents = float(nonevents_by_level[level])
        rate = n_events / (n_events + n_nonevents)
        stats.append(LevelStatistics(
            level=level,
            n=n_events + n_nonevents,
            n_obs=int(counts[level]),
            mean=rate,
            variance=rate * (1.0 - rate),
            events=n_events,
            nonevents=n_nonevents,
            class_counts=class_counts[level],
        ))

    total_events = float(events.sum())
    total_nonevents = float(nonevents.sum())
    total = total_events + total_nonevents
    rate = total_events / total
    global_stats = GlobalStatistics(
        n=total,
        n_levels=len(stats),
        global_mean=rate,
        global_variance=rate * (1.0 - rate),
        total_events=total_events,
        total_nonevents=total_nonevents,
        event_class=event_class,
    )
    return AggregationResult(levels=tuple(stats), global_stats=global_stats, category_kind=kind, binary=True)


def aggregate(observations: pd.DataFrame, config: EncodingConfig, binary: bool) -> AggregationResult:
    """Validate observations and compute per-level statistics."""
    frame, kind = prepare_observations(observations, config)
    if binary:
        return aggregate_binary(frame, kind, config.event_class)
    return aggregate_numeric(frame, kind)
