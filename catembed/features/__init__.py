"""Encoding engine: aggregation, pooling, WOE, tables and the applier."""

from catembed.features.aggregation import (
    AggregationResult,
    GlobalStatistics,
    LevelStatistics,
    aggregate,
)
from catembed.features.encoders import EncodingMode, LevelEncoder, fit
from catembed.features.external import GLMLevelModel
from catembed.features.novel import NOVEL_LEVEL, NovelLevel
from catembed.features.shrinkage import AnalyticalShrinkage, ExternalModelPooling, PoolingStrategy
from catembed.features.table import EncodingEntry, EncodingTable, inspect, transform
from catembed.features.woe import compute_woe

__all__ = [
    "AggregationResult",
    "GlobalStatistics",
    "LevelStatistics",
    "aggregate",
    "EncodingMode",
    "LevelEncoder",
    "fit",
    "GLMLevelModel",
    "NOVEL_LEVEL",
    "NovelLevel",
    "AnalyticalShrinkage",
    "ExternalModelPooling",
    "PoolingStrategy",
    "EncodingEntry",
    "EncodingTable",
    "inspect",
    "transform",
    "compute_woe",
]
