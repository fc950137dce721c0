"""Fallback encoding for categories absent from the training vocabulary."""

from enum import Enum

import numpy as np

from catembed.features.aggregation import GlobalStatistics

# Pseudo-count added to both class totals when one of them is empty
HALDANE_PSEUDO_COUNT = 0.5


class NovelLevel(Enum):
    """Typed marker for the synthetic novel-level entry.

    Compared by identity, so a real category spelled ``"..new"`` never
    collides with it. Enum members pickle by name, which keeps the marker
    a singleton across joblib round-trips.
    """

    TOKEN = "..new"

    def __repr__(self) -> str:
        return "NOVEL_LEVEL"

    def __str__(self) -> str:
        return self.value


NOVEL_LEVEL = NovelLevel.TOKEN


def is_novel_level(level) -> bool:
    return level is NOVEL_LEVEL


def prior_log_odds(global_stats: GlobalStatistics) -> float:
    """Log-odds of the event class over the whole training set.

    Adds the Haldane pseudo-count to both totals when either is zero, so a
    training set holding a single class still yields a finite prior.
    """
    events = global_stats.total_events
    nonevents = global_stats.total_nonevents
    if events <= 0 or nonevents <= 0:
        events += HALDANE_PSEUDO_COUNT
        nonevents += HALDANE_PSEUDO_COUNT
    return float(np.log(events / nonevents))


def resolve_novel_value(global_stats: GlobalStatistics, binary: bool) -> float:
    """Value used for any category not seen during fit.

    ``global_mean`` for numeric outcomes, the prior log-odds for binary ones.
    Never derived from trained-level estimates.
    """
    if binary:
        return prior_log_odds(global_stats)
    return float(global_stats.global_mean)
