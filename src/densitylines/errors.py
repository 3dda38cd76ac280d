"""Exceptions and warnings raised by the density-lines pipeline."""

from __future__ import annotations


class DensityLinesError(RuntimeError):
    """Base class for pipeline failures."""


class ResourceLoadError(DensityLinesError):
    """Raised when a source raster or boundary file is missing or unreadable."""


class ConfigurationError(DensityLinesError, ValueError):
    """Raised when a render configuration carries invalid values."""


class NormalizationError(DensityLinesError, ZeroDivisionError):
    """Raised when densities cannot be normalised (zero, missing or negative)."""


class DegenerateInputWarning(UserWarning):
    """Emitted when there is nothing to draw."""
