"""Custom exceptions for categorical encoding."""


class CatEmbedError(Exception):
    """Base exception for all encoding errors."""
    pass


class ConfigurationError(CatEmbedError):
    """Invalid configuration or unusable training input."""
    pass


class SchemaError(CatEmbedError):
    """Input category type does not match the fitted table."""
    pass


class PoolingError(CatEmbedError):
    """External pooling model failed or returned a non-finite estimate."""
    pass


class EncodingError(CatEmbedError):
    """Encoding table invariant violated."""
    pass


class DataLoadError(CatEmbedError):
    """Data loading failed."""
    pass
