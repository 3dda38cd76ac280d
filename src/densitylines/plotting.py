"""Matplotlib rendering of density lines."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.collections import LineCollection
from matplotlib.figure import Figure

from .lines import DensityLines, RenderConfig, compute_density_lines

logger = logging.getLogger(__name__)


@dataclass
class Drawing:
    """A rendered map and the grid cells it was drawn from."""

    figure: Figure
    lines: DensityLines

    @property
    def n_segments(self) -> int:
        return self.lines.n_segments


def equirectangular_aspect(latitudes: pd.Series) -> float:
    """Axes aspect ratio that keeps degrees of longitude and latitude to scale."""

    if latitudes.empty:
        return 1.0
    return 1.0 / np.cos(np.radians(float(latitudes.mean())))


def _decorate(fig: Figure, config: RenderConfig) -> None:
    fig.text(0.05, 0.975, config.title, fontsize=16, fontweight="bold", va="top")
    fig.text(0.05, 0.94, config.subtitle, fontsize=11, style="italic", va="top")
    fig.text(0.95, 0.02, config.caption, fontsize=7, color="dimgray", ha="right", va="bottom")


def draw_lines(lines: DensityLines) -> Figure:
    """Draw one poly-line per segment on a chrome-free equirectangular map."""

    config = lines.config
    fig, ax = plt.subplots(figsize=config.figsize)
    try:
        fig.patch.set_facecolor(config.background)
        ax.set_facecolor(config.background)

        paths = [cells[["x", "y"]].to_numpy() for _, cells in lines.segments()]
        if paths:
            collection = LineCollection(
                paths,
                colors=config.line_color,
                linewidths=config.line_width,
                capstyle="round",
                joinstyle="round",
            )
            ax.add_collection(collection)
            ax.autoscale_view()

        ax.set_aspect(equirectangular_aspect(lines.cells["lat_bucket"]), adjustable="datalim")
        ax.set_axis_off()
        fig.subplots_adjust(left=0.04, right=0.96, top=0.9, bottom=0.06)
        _decorate(fig, config)
    except Exception:
        plt.close(fig)
        raise
    return fig


def render(points: pd.DataFrame, config: RenderConfig) -> Drawing:
    """Grid ``points`` and draw them as population density lines."""

    lines = compute_density_lines(points, config)
    return Drawing(draw_lines(lines), lines)


def save_drawing(
    drawing: Drawing,
    path: Union[str, Path],
    *,
    dpi: int = 300,
    format: Optional[str] = None,
) -> Path:
    """Write ``drawing`` to ``path`` and close its figure.

    The image is written to a temporary sibling first and moved into place
    once complete, so a failed save never leaves a truncated file behind.
    """

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    image_format = format or path.suffix.lstrip(".") or "png"
    partial = path.with_name(f".{path.name}.part")
    try:
        drawing.figure.savefig(
            partial,
            dpi=dpi,
            format=image_format,
            facecolor=drawing.figure.get_facecolor(),
            bbox_inches="tight",
        )
        partial.replace(path)
    finally:
        partial.unlink(missing_ok=True)
        plt.close(drawing.figure)
    logger.info("Saved %s (%d segments, %d dpi)", path, drawing.n_segments, dpi)
    return path
