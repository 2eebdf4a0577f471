from __future__ import annotations

__all__ = [
    "CodemapError",
    "ConfigurationMissing",
    "ConfigurationInvalid",
    "ExtractionFailure",
]


class CodemapError(Exception):
    """Base class for every error reported by tscodemap."""


class ConfigurationMissing(CodemapError, FileNotFoundError):
    """No ``tsconfig.json`` was found under the project path."""


class ConfigurationInvalid(CodemapError, ValueError):
    """The project configuration exists but could not be parsed."""


class ExtractionFailure(CodemapError, RuntimeError):
    """
    Reading, walking or resolving a source file failed.

    The original exception is always chained as ``__cause__``.
    """
