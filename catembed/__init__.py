"""Supervised numeric encodings for categorical columns."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("catembed")
except PackageNotFoundError:  # pragma: no cover - running from a source checkout
    __version__ = "0.0.0"

__all__ = ["__version__"]
