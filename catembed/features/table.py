"""Immutable encoding tables and the stateless applier."""

from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from catembed.features.aggregation import infer_category_kind
from catembed.features.novel import NOVEL_LEVEL
from catembed.utils.exceptions import EncodingError, SchemaError

Value = Union[float, Tuple[float, ...]]


class EncodingEntry(NamedTuple):
    level: Hashable
    value: Value


def _frozen_matrix(values: Any, n_rows: int) -> np.ndarray:
    matrix = np.array(values, dtype=float)
    if matrix.ndim == 1:
        matrix = matrix.reshape(n_rows, -1)
    matrix.flags.writeable = False
    return matrix


@dataclass(frozen=True, eq=False)
class EncodingTable:
    """Level -> value mapping produced once per fit.

    ``values`` has one row per trained level (in ``levels`` order) and one
    column per output; ``novel_value`` is the row used for any other input.
    Instances are never mutated; refitting builds a new table.
    """

    levels: Tuple[Hashable, ...]
    values: np.ndarray
    novel_value: np.ndarray
    mode: str
    category_kind: Optional[str] = None
    diagnostics: Dict[Hashable, Dict[str, float]] = field(default_factory=dict)
    information_value: Optional[float] = None

    def __post_init__(self):
        levels = tuple(self.levels)
        values = _frozen_matrix(self.values, len(levels)) if levels else np.empty((0, np.size(self.novel_value)))
        novel = np.array(self.novel_value, dtype=float).reshape(-1)
        novel.flags.writeable = False
        values.flags.writeable = False

        if len(set(levels)) != len(levels):
            raise EncodingError("Encoding table levels must be unique")
        if any(level is NOVEL_LEVEL for level in levels):
            raise EncodingError("The novel-level marker cannot be a trained level")
        if values.shape != (len(levels), novel.size):
            raise EncodingError(
                f"Values shape {values.shape} does not match {len(levels)} levels x {novel.size} outputs"
            )
        if not np.all(np.isfinite(values)) or not np.all(np.isfinite(novel)):
            raise EncodingError("Encoding table values must be finite")

        object.__setattr__(self, "levels", levels)
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "novel_value", novel)
        object.__setattr__(self, "_index", pd.Index(levels, dtype=object))

    def __reduce__(self):
        return (
            self.__class__,
            (self.levels, np.array(self.values), np.array(self.novel_value), self.mode,
             self.category_kind, self.diagnostics, self.information_value),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EncodingTable):
            return NotImplemented
        return (
            self.levels == other.levels
            and self.mode == other.mode
            and np.array_equal(self.values, other.values)
            and np.array_equal(self.novel_value, other.novel_value)
        )

    def __hash__(self):
        return hash((self.levels, self.mode, self.values.tobytes(), self.novel_value.tobytes()))

    def __len__(self) -> int:
        # Trained levels plus the novel-level entry
        return len(self.levels) + 1

    def __contains__(self, level: object) -> bool:
        return level is NOVEL_LEVEL or level in self.levels

    @property
    def n_outputs(self) -> int:
        return self.novel_value.size

    def _as_value(self, row: np.ndarray) -> Value:
        if row.size == 1:
            return float(row[0])
        return tuple(float(v) for v in row)

    def lookup(self, level: Hashable) -> Value:
        """Encoded value for one level; unseen levels get the novel value."""
        if level is NOVEL_LEVEL or level not in self.levels:
            return self._as_value(self.novel_value)
        return self._as_value(self.values[self.levels.index(level)])

    @property
    def entries(self) -> Tuple[EncodingEntry, ...]:
        rows = [EncodingEntry(level, self._as_value(row)) for level, row in zip(self.levels, self.values)]
        rows.append(EncodingEntry(NOVEL_LEVEL, self._as_value(self.novel_value)))
        return tuple(rows)

    def to_frame(self, diagnostics: bool = False) -> pd.DataFrame:
        """Tidy view: one row per level, novel level last."""
        if self.n_outputs == 1:
            value_cols = ["value"]
        else:
            value_cols = [f"value_{i + 1}" for i in range(self.n_outputs)]

        matrix = np.vstack([self.values, self.novel_value[np.newaxis, :]])
        frame = pd.DataFrame(matrix, columns=value_cols)
        frame.insert(0, "level", list(self.levels) + [NOVEL_LEVEL])

        if diagnostics and self.diagnostics:
            extra = pd.DataFrame([self.diagnostics.get(level, {}) for level in frame["level"]])
            frame = pd.concat([frame, extra], axis=1)
        return frame


def _check_schema(table: EncodingTable, values: pd.Series) -> None:
    if table.category_kind in (None, "object") or values.isna().all():
        return
    kind = infer_category_kind(values)
    if kind is not None and kind != table.category_kind:
        raise SchemaError(
            f"Expected {table.category_kind} categories, got {kind} ({values.dtype})"
        )


def transform(table: EncodingTable, values: Union[Sequence, pd.Series, np.ndarray]) -> np.ndarray:
    """Encode ``values`` through ``table``.

    Values absent from the table (including missing values) take the novel
    entry. Returns a 1-D array for scalar tables, otherwise
    ``(len(values), n_outputs)``.
    """

    if isinstance(values, pd.Series):
        series = values
    elif isinstance(values, np.ndarray):
        series = pd.Series(values)
    else:
        series = pd.Series(list(values), dtype=object)
    _check_schema(table, series)

    if isinstance(series.dtype, pd.CategoricalDtype):
        series = series.astype(object)

    positions = table._index.get_indexer(series.to_numpy(dtype=object))
    matrix = np.vstack([table.values, table.novel_value[np.newaxis, :]])
    encoded = matrix[np.where(positions < 0, len(table.levels), positions)]

    if table.n_outputs == 1:
        return encoded[:, 0]
    return encoded


def inspect(table: EncodingTable) -> List[Tuple[Hashable, Value]]:
    """Ordered (level, value) pairs with the novel-level entry last."""
    return [(entry.level, entry.value) for entry in table.entries]
