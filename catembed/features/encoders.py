"""Fit encoding tables and apply them to DataFrame columns."""

from enum import Enum
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.utils.validation import check_is_fitted

from catembed.features.aggregation import AggregationResult, aggregate
from catembed.features.novel import NOVEL_LEVEL, resolve_novel_value
from catembed.features.shrinkage import AnalyticalShrinkage, ExternalModelPooling
from catembed.features.table import EncodingTable, inspect, transform
from catembed.features.woe import compute_log_odds, compute_woe
from catembed.utils import EncodingConfig, get_logger
from catembed.utils.exceptions import ConfigurationError
from catembed.utils.logger import column_context

logger = get_logger(__name__)


class EncodingMode(Enum):
    """How per-level values are derived from the outcome."""

    ANALYTICAL_SMOOTHING = "analytical_smoothing"
    WOE = "woe"
    UNPOOLED = "unpooled"
    EXTERNAL_MODEL = "external_model"


def _resolve_mode(mode: Union[str, EncodingMode]) -> EncodingMode:
    try:
        return EncodingMode(mode)
    except ValueError as e:
        choices = [m.value for m in EncodingMode]
        raise ConfigurationError(f"Unknown encoding mode {mode!r}; expected one of {choices}") from e


def _outcome_is_binary(observations: pd.DataFrame, config: EncodingConfig) -> bool:
    """Whether unpooled/external modes should treat the outcome as a class label."""
    outcome = observations[config.outcome_column]
    if config.event_class is not None or pd.api.types.is_bool_dtype(outcome.dtype):
        return True
    return not pd.api.types.is_numeric_dtype(outcome.infer_objects().dtype)


def _level_diagnostics(aggregation: AggregationResult) -> Dict[Hashable, Dict[str, float]]:
    diagnostics = {}
    for stats in aggregation.levels:
        row = {"n": stats.n, "n_obs": float(stats.n_obs), "mean": stats.mean}
        if aggregation.binary:
            row.update(events=stats.events, nonevents=stats.nonevents)
        else:
            row["variance"] = stats.variance
        diagnostics[stats.level] = row
    return diagnostics


def fit(
    observations: pd.DataFrame,
    mode: Union[str, EncodingMode],
    config: EncodingConfig,
    level_model: Optional[Any] = None,
) -> EncodingTable:
    """Build an immutable encoding table for one categorical column.

    ``level_model`` is only used with ``external_model`` mode and must expose
    ``predict_per_level(level)``. Every table carries the novel-level entry.
    """

    mode = _resolve_mode(mode)
    if not isinstance(observations, pd.DataFrame):
        raise ConfigurationError(f"Observations must be a DataFrame, got {type(observations).__name__}")
    if config.outcome_column not in observations.columns:
        raise ConfigurationError(f"Outcome column '{config.outcome_column}' not found")
    if mode is EncodingMode.EXTERNAL_MODEL and level_model is None:
        raise ConfigurationError("external_model mode requires a level_model")
    if mode is not EncodingMode.EXTERNAL_MODEL and level_model is not None:
        raise ConfigurationError(f"level_model is only used by external_model mode, not {mode.value}")

    if mode is EncodingMode.WOE:
        binary = True
    elif mode is EncodingMode.ANALYTICAL_SMOOTHING:
        binary = False
    else:
        binary = _outcome_is_binary(observations, config)

    aggregation = aggregate(observations, config, binary=binary)
    glob = aggregation.global_stats
    levels = aggregation.level_names
    diagnostics = _level_diagnostics(aggregation)
    information_value = None

    if mode is EncodingMode.ANALYTICAL_SMOOTHING:
        pooling = AnalyticalShrinkage(aggregation, min_variance_floor=config.min_variance_floor)
        values = [pooling.per_level_estimate(level) for level in levels]
        for level in levels:
            diagnostics[level]["shrinkage_factor"] = pooling.shrinkage_factor(level)

    elif mode is EncodingMode.WOE:
        result = compute_woe(aggregation, config.laplace_alpha)
        values = [result.woe[level] for level in levels]
        for level in levels:
            diagnostics[level].update(p_event=result.p_event[level], p_nonevent=result.p_nonevent[level])
        information_value = result.information_value

    elif mode is EncodingMode.UNPOOLED:
        if binary:
            log_odds = compute_log_odds(aggregation)
            values = [log_odds[level] for level in levels]
        else:
            values = [stats.mean for stats in aggregation.levels]

    else:
        pooling = ExternalModelPooling(level_model)
        values = [pooling.per_level_estimate(level) for level in levels]

    novel = resolve_novel_value(glob, binary=binary)
    values = np.array(values, dtype=float)
    if values.ndim == 2 and values.shape[1] > 1:
        # Vector-valued models: the scalar fallback fills every output
        novel = np.full(values.shape[1], novel)

    table = EncodingTable(
        levels=tuple(levels),
        values=values,
        novel_value=novel,
        mode=mode.value,
        category_kind=aggregation.category_kind,
        diagnostics=diagnostics,
        information_value=information_value,
    )

    logger.info(
        f"Fitted {mode.value} encoding: {len(levels)} levels, "
        f"{glob.n:g} weighted rows, novel value {table.lookup(NOVEL_LEVEL)}"
    )
    return table


# =============================================================================
# SKLEARN TRANSFORMER
# =============================================================================

class LevelEncoder(BaseEstimator, TransformerMixin):
    """Encode categorical columns from a supervised outcome.

    One table is fitted per column; columns are independent and may be
    fitted in parallel with ``n_jobs``. ``level_model_factory`` is called as
    ``factory(categories, y, sample_weight)`` per column in
    ``external_model`` mode and must return an object exposing
    ``predict_per_level``.
    """

    def __init__(
        self,
        columns: Union[str, Sequence[str]],
        mode: str = "analytical_smoothing",
        laplace_alpha: float = 1e-6,
        min_variance_floor: float = 0.0,
        event_class: Optional[Any] = None,
        drop_original: bool = False,
        n_jobs: Optional[int] = None,
        level_model_factory: Optional[Callable[..., Any]] = None,
    ):
        self.columns = columns
        self.mode = mode
        self.laplace_alpha = laplace_alpha
        self.min_variance_floor = min_variance_floor
        self.event_class = event_class
        self.drop_original = drop_original
        self.n_jobs = n_jobs
        self.level_model_factory = level_model_factory

    def _columns(self) -> List[str]:
        if isinstance(self.columns, str):
            return [self.columns]
        return list(self.columns)

    def _fit_column(self, column: str, X: pd.DataFrame, y: pd.Series, weights: Optional[np.ndarray]) -> EncodingTable:
        with column_context(column):
            frame = pd.DataFrame({column: X[column].values, "__outcome__": np.asarray(y)})
            weight_column = None
            if weights is not None:
                frame["__weight__"] = weights
                weight_column = "__weight__"

            config = EncodingConfig.build(
                category_column=column,
                outcome_column="__outcome__",
                weight_column=weight_column,
                laplace_alpha=self.laplace_alpha,
                min_variance_floor=self.min_variance_floor,
                event_class=self.event_class,
            )

            level_model = None
            if _resolve_mode(self.mode) is EncodingMode.EXTERNAL_MODEL:
                if self.level_model_factory is None:
                    raise ConfigurationError("external_model mode requires level_model_factory")
                level_model = self.level_model_factory(frame[column], frame["__outcome__"], weights)

            return fit(frame, self.mode, config, level_model=level_model)

    def fit(self, X: pd.DataFrame, y: Union[pd.Series, np.ndarray], sample_weight: Optional[np.ndarray] = None):
        columns = self._columns()
        missing = [c for c in columns if c not in X.columns]
        if missing:
            raise ConfigurationError(f"Columns not found: {missing}")
        if len(y) != len(X):
            raise ConfigurationError(f"X has {len(X)} rows but y has {len(y)}")
        if sample_weight is not None:
            sample_weight = np.asarray(sample_weight, dtype=float)
            if sample_weight.shape != (len(X),):
                raise ConfigurationError(f"sample_weight must have shape ({len(X)},)")

        tables = Parallel(n_jobs=self.n_jobs)(
            delayed(self._fit_column)(column, X, y, sample_weight) for column in columns
        )
        self.tables_ = dict(zip(columns, tables))
        self.feature_names_in_ = np.asarray(X.columns, dtype=object)
        return self

    def _output_names(self, column: str) -> List[str]:
        table = self.tables_[column]
        if table.n_outputs == 1:
            return [f"{column}_encoded"]
        return [f"{column}_encoded_{i + 1}" for i in range(table.n_outputs)]

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        check_is_fitted(self, "tables_")
        missing = [c for c in self.tables_ if c not in X.columns]
        if missing:
            raise ConfigurationError(f"Columns not found: {missing}")

        X = X.copy()
        for column, table in self.tables_.items():
            with column_context(column):
                encoded = transform(table, X[column])
                names = self._output_names(column)
                if len(names) == 1:
                    X[names[0]] = encoded
                else:
                    for i, name in enumerate(names):
                        X[name] = encoded[:, i]
        if self.drop_original:
            X = X.drop(columns=list(self.tables_))
        return X

    def inspect(self, column: str):
        """(level, value) pairs for one fitted column, novel level last."""
        check_is_fitted(self, "tables_")
        return inspect(self.tables_[column])

    def summary(self, diagnostics: bool = True) -> pd.DataFrame:
        """Tidy frame of every fitted table with a ``column`` key."""
        check_is_fitted(self, "tables_")
        frames = []
        for column, table in self.tables_.items():
            frame = table.to_frame(diagnostics=diagnostics)
            frame.insert(0, "column", column)
            frames.append(frame)
        return pd.concat(frames, ignore_index=True)
