"""Weight of evidence and log-odds encodings for a binary outcome."""

from dataclasses import dataclass
from typing import Dict, Hashable

import numpy as np

from catembed.features.aggregation import AggregationResult
from catembed.features.novel import HALDANE_PSEUDO_COUNT
from catembed.utils import get_logger

logger = get_logger(__name__)

# Infinite values are replaced by this multiple of the least extreme finite magnitude
INFINITE_WOE_MULTIPLIER = 1.5

# Magnitudes at or below this are rounding noise around a neutral level
NEUTRAL_WOE_ATOL = 1e-12


@dataclass(frozen=True)
class WoeResult:
    """WOE per level with the distributions it was computed from."""

    woe: Dict[Hashable, float]
    p_event: Dict[Hashable, float]
    p_nonevent: Dict[Hashable, float]
    laplace_alpha: float
    n_adjusted: int

    @property
    def information_value(self) -> float:
        return float(sum(
            (self.p_event[level] - self.p_nonevent[level]) * value
            for level, value in self.woe.items()
        ))


def infinity_cap(values: np.ndarray, total_count: float) -> float:
    """Finite magnitude that stands in for an infinite value.

    ``INFINITE_WOE_MULTIPLIER`` times the least extreme non-neutral finite
    magnitude in ``values``, or times ``ln(1 + total_count)`` when no such
    value exists.
    """

    values = np.asarray(values, dtype=float)
    finite = np.abs(values[np.isfinite(values)])
    finite = finite[finite > NEUTRAL_WOE_ATOL]
    reference = finite.min() if finite.size else np.log1p(total_count)
    return float(INFINITE_WOE_MULTIPLIER * reference)


def adjust_infinities(values: np.ndarray, total_count: float) -> np.ndarray:
    """Replace infinite entries with the finite cap of the same sign.

    Finite entries are untouched.
    """

    values = np.asarray(values, dtype=float).copy()
    infinite = np.isinf(values)
    if infinite.any():
        values[infinite] = np.sign(values[infinite]) * infinity_cap(values, total_count)
    return values


def unsmoothed_woe_cap(aggregation: AggregationResult) -> float:
    """Cap for levels with an empty class cell, taken from the alpha = 0 fit.

    Depends on the counts only, so every alpha clips against the same bound.
    """

    glob = aggregation.global_stats
    if glob.total_events <= 0 or glob.total_nonevents <= 0:
        return float(INFINITE_WOE_MULTIPLIER * np.log1p(glob.n))

    events = np.array([s.events for s in aggregation.levels])
    nonevents = np.array([s.nonevents for s in aggregation.levels])
    with np.errstate(divide="ignore"):
        raw = np.log(events / glob.total_events) - np.log(nonevents / glob.total_nonevents)
    return infinity_cap(raw, glob.n)


def compute_woe(aggregation: AggregationResult, laplace_alpha: float) -> WoeResult:
    """Laplace-smoothed WOE per level.

        p_event(l)    = (events(l) + a_e)    / (total_events + a_e * L)
        p_nonevent(l) = (nonevents(l) + a_n) / (total_nonevents + a_n * L)
        woe(l)        = ln(p_event(l) / p_nonevent(l))

    The ``2 * alpha`` pseudo-observations per level are split between the
    classes in proportion to their totals, so ``a_e = a_n = alpha`` when the
    totals are equal and ``|woe(l)|`` never grows with alpha. Levels with an
    empty class cell are clipped to ``unsmoothed_woe_cap`` at every alpha.

    When one class is absent altogether both classes get the same
    pseudo-count, at least the Haldane value, so no 0/0 cell appears.
    """

    glob = aggregation.global_stats
    n_levels = len(aggregation.levels)
    alpha = float(laplace_alpha)

    events = np.array([s.events for s in aggregation.levels])
    nonevents = np.array([s.nonevents for s in aggregation.levels])

    if glob.total_events <= 0 or glob.total_nonevents <= 0:
        if alpha < HALDANE_PSEUDO_COUNT:
            logger.warning(
                f"Only one outcome class observed (events={glob.total_events:g}, "
                f"nonevents={glob.total_nonevents:g}); using pseudo-count {HALDANE_PSEUDO_COUNT}"
            )
            alpha = HALDANE_PSEUDO_COUNT
        event_prior = nonevent_prior = alpha
    else:
        event_prior = 2.0 * alpha * glob.total_events / glob.n
        nonevent_prior = 2.0 * alpha * glob.total_nonevents / glob.n

    p_event = (events + event_prior) / (glob.total_events + event_prior * n_levels)
    p_nonevent = (nonevents + nonevent_prior) / (glob.total_nonevents + nonevent_prior * n_levels)

    with np.errstate(divide="ignore"):
        raw = np.log(p_event) - np.log(p_nonevent)

    cap = unsmoothed_woe_cap(aggregation)
    clipped = ((events <= 0) | (nonevents <= 0)) & (np.abs(raw) > cap)
    n_adjusted = int(clipped.sum())
    if n_adjusted:
        logger.warning(f"Capping {n_adjusted} WOE values at +/-{cap:.4g}")
    woe = np.where(clipped, np.sign(raw) * cap, raw)

    levels = aggregation.level_names
    return WoeResult(
        woe=dict(zip(levels, woe.tolist())),
        p_event=dict(zip(levels, p_event.tolist())),
        p_nonevent=dict(zip(levels, p_nonevent.tolist())),
        laplace_alpha=alpha,
        n_adjusted=n_adjusted,
    )


def compute_log_odds(aggregation: AggregationResult) -> Dict[Hashable, float]:
    """Unpooled weighted log-odds of the event within each level."""

    events = np.array([s.events for s in aggregation.levels])
    nonevents = np.array([s.nonevents for s in aggregation.levels])

    with np.errstate(divide="ignore"):
        raw = np.log(events) - np.log(nonevents)

    n_adjusted = int(np.isinf(raw).sum())
    if n_adjusted:
        logger.warning(f"Adjusting {n_adjusted} infinite log-odds values")
    log_odds = adjust_infinities(raw, aggregation.global_stats.n)

    return dict(zip(aggregation.level_names, log_odds.tolist()))
