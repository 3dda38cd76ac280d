"""Grid transform behind the population density line maps.

Point records (``latitude``, ``longitude``, ``density``) are turned into a set of
horizontal scan lines:

* snap every point onto a ``lat_resolution`` x ``lng_resolution`` grid and
  average the density per grid cell
* normalise the cell means by the largest mean in the frame
* split each latitude row into segments wherever the longitude steps by more
  than one grid cell, so lines never cross water or missing data
* lift every cell by ``lat_resolution * height_factor * normalized``

The functions only touch in-memory ``pandas`` objects; drawing lives in
:mod:`densitylines.plotting`.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from .errors import ConfigurationError, DegenerateInputWarning, NormalizationError

logger = logging.getLogger(__name__)

GAP_TOLERANCE = 1.00001
"""Relative slack on ``lng_resolution`` when deciding whether two cells touch."""

DEFAULT_CAPTION = (
    "Data: CIESIN Gridded Population of the World v4 (2020) | Boundaries: GADM 4.1"
)

POINT_COLUMNS = ("latitude", "longitude", "density")
LINE_COLUMNS = ["lat_bucket", "lng_bucket", "density", "normalized", "segment", "x", "y"]


@dataclass(frozen=True)
class RenderConfig:
    """Grid and styling parameters for one density line map."""

    lat_resolution: float
    """Spacing between scan lines, in degrees of latitude."""

    lng_resolution: Optional[float] = None
    """Spacing of points along a line. Defaults to ``lat_resolution``."""

    height_factor: float = 1.0
    """Peak displacement in multiples of ``lat_resolution``."""

    line_width: float = 0.5
    title: str = ""
    subtitle: str = ""
    caption: str = DEFAULT_CAPTION
    line_color: str = "black"
    background: str = "white"
    figsize: Tuple[float, float] = (8.0, 10.0)

    def __post_init__(self) -> None:
        if self.lng_resolution is None:
            object.__setattr__(self, "lng_resolution", self.lat_resolution)
        for name in ("lat_resolution", "lng_resolution", "height_factor", "line_width"):
            value = getattr(self, name)
            if value is None or not np.isfinite(value) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive number, got {value!r}")

    @property
    def gap_threshold(self) -> float:
        return self.lng_resolution * GAP_TOLERANCE


@dataclass
class DensityLines:
    """Ordered grid cells ready to be drawn as poly-lines."""

    cells: pd.DataFrame
    """One row per grid cell with the columns listed in ``LINE_COLUMNS``."""

    config: RenderConfig

    max_density: float = float("nan")
    """Largest cell mean used for normalisation (NaN when there are no cells)."""

    @property
    def n_segments(self) -> int:
        if self.cells.empty:
            return 0
        return int(self.cells["segment"].nunique())

    def segments(self):
        """Yield ``(segment_id, cells)`` pairs with cells ordered by ``x``."""

        for segment_id, cells in self.cells.groupby("segment", sort=True):
            yield int(segment_id), cells.sort_values("x")


def snap(values, resolution: float):
    """Round coordinates to the nearest multiple of ``resolution``."""

    if resolution <= 0:
        raise ConfigurationError(f"resolution must be positive, got {resolution!r}")
    # adding 0.0 folds -0.0 into 0.0 so both land in the same bucket
    return np.round(np.asarray(values, dtype=float) / resolution) * resolution + 0.0


def grid_cells(points: pd.DataFrame, config: RenderConfig) -> pd.DataFrame:
    """Average point densities per ``(lat_bucket, lng_bucket)`` grid cell.

    Points without coordinates are dropped. Missing densities are left out of
    the mean, so a cell whose densities are all missing has a missing mean.
    """

    missing = [col for col in POINT_COLUMNS if col not in points.columns]
    if missing:
        raise KeyError(f"Point records are missing columns: {missing}")

    located = points.dropna(subset=["latitude", "longitude"])
    snapped = pd.DataFrame(
        {
            "lat_bucket": snap(located["latitude"], config.lat_resolution),
            "lng_bucket": snap(located["longitude"], config.lng_resolution),
            "density": located["density"].astype(float).to_numpy(),
        }
    )
    cells = (
        snapped.groupby(["lat_bucket", "lng_bucket"], sort=False)["density"]
        .mean()
        .reset_index()
    )
    return cells


def normalize(density: pd.Series) -> Tuple[pd.Series, float]:
    """Divide densities by their maximum, ignoring missing values."""

    if (density < 0).any():
        raise NormalizationError("Population density must not be negative.")
    max_density = density.max(skipna=True)
    if pd.isna(max_density) or max_density == 0:
        raise NormalizationError(
            "Cannot normalise densities: every grid cell is zero or missing."
        )
    return density / max_density, float(max_density)


def assign_segments(cells: pd.DataFrame, gap_threshold: float) -> pd.Series:
    """Number the contiguous runs of ``cells`` along each latitude row.

    ``cells`` must already be sorted by ``(lat_bucket, lng_bucket)``. A new
    segment starts on a new row, after a longitude step wider than
    ``gap_threshold``, or after a cell without a longitude.
    """

    lat = cells["lat_bucket"]
    lng = cells["lng_bucket"]
    previous_lng = lng.shift()
    breaks = lat.ne(lat.shift()) | previous_lng.isna() | (lng - previous_lng > gap_threshold)
    return breaks.cumsum().astype(int).rename("segment")


def compute_density_lines(points: pd.DataFrame, config: RenderConfig) -> DensityLines:
    """Run the full grid transform on a frame of point records."""

    if points.empty:
        warnings.warn("No points to draw; producing a blank map.", DegenerateInputWarning)
        return DensityLines(pd.DataFrame(columns=LINE_COLUMNS), config)

    cells = grid_cells(points, config)
    normalized, max_density = normalize(cells["density"])
    cells["normalized"] = normalized

    cells = (
        cells.dropna(subset=["density"])
        .sort_values(["lat_bucket", "lng_bucket"])
        .reset_index(drop=True)
    )
    cells["segment"] = assign_segments(cells, config.gap_threshold)
    cells["x"] = cells["lng_bucket"]
    cells["y"] = cells["lat_bucket"] + config.lat_resolution * config.height_factor * cells["normalized"]

    lines = DensityLines(cells[LINE_COLUMNS], config, max_density)
    logger.info(
        "Gridded %d points into %d cells and %d segments (max density %.2f)",
        len(points),
        len(cells),
        lines.n_segments,
        max_density,
    )
    return lines
