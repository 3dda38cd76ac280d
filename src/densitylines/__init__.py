"""Population density line maps from gridded population rasters."""

from .errors import (
    ConfigurationError,
    DegenerateInputWarning,
    DensityLinesError,
    NormalizationError,
    ResourceLoadError,
)
from .geodata import Sources, fetch_dataset, fetch_sources, load_boundary, prepare_points, raster_to_points
from .lines import DensityLines, RenderConfig, compute_density_lines, snap
from .plotting import Drawing, render, save_drawing
from .presets import PRESETS, RegionFilter, RegionPreset, get_preset

__all__ = [
    "ConfigurationError",
    "DegenerateInputWarning",
    "DensityLines",
    "DensityLinesError",
    "Drawing",
    "NormalizationError",
    "PRESETS",
    "RegionFilter",
    "RegionPreset",
    "RenderConfig",
    "ResourceLoadError",
    "Sources",
    "compute_density_lines",
    "fetch_dataset",
    "fetch_sources",
    "get_preset",
    "load_boundary",
    "prepare_points",
    "raster_to_points",
    "render",
    "save_drawing",
    "snap",
]
