"""Utility modules."""

from catembed.utils.config import (
    Config,
    EncodingConfig,
    RuntimeSettings,
    load_config,
)
from catembed.utils.exceptions import (
    CatEmbedError,
    ConfigurationError,
    DataLoadError,
    EncodingError,
    PoolingError,
    SchemaError,
)
from catembed.utils.logger import get_logger

__all__ = [
    "Config",
    "EncodingConfig",
    "RuntimeSettings",
    "load_config",
    "get_logger",
    "CatEmbedError",
    "ConfigurationError",
    "SchemaError",
    "PoolingError",
    "EncodingError",
    "DataLoadError",
]
