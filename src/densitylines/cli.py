"""Command-line interface for rendering population density line maps."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Tuple

import pandas as pd
import typer

from .errors import DensityLinesError
from .geodata import DEFAULT_ATTRIBUTES, Sources, fetch_dataset, fetch_sources, prepare_points
from .plotting import render, save_drawing
from .presets import PRESETS, RegionPreset, get_preset

app = typer.Typer(help="Population density line maps from gridded population rasters")

DEFAULT_CACHE_DIR = Path("data")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _select_presets(names: Optional[List[str]]) -> List[RegionPreset]:
    if not names:
        return list(PRESETS)
    try:
        return [get_preset(name) for name in names]
    except KeyError as exc:
        raise typer.BadParameter(str(exc.args[0])) from exc


def _resolve_inputs(
    raster: Optional[Path], boundary: Optional[Path], cache_dir: Path
) -> Tuple[Path, Path]:
    """Use the given files, fetching the default datasets for any left out."""

    for label, path in (("Raster", raster), ("Boundary", boundary)):
        if path is not None and not path.exists():
            raise typer.BadParameter(f"{label} file not found: {path}")

    sources = Sources()
    if raster is None:
        raster = fetch_dataset(sources.raster_url, cache_dir, sources.raster_member)
    if boundary is None:
        boundary = fetch_dataset(sources.boundary_url, cache_dir, sources.boundary_member)
    return raster, boundary


def _render_presets(
    points: pd.DataFrame,
    presets: List[RegionPreset],
    *,
    region_column: str,
    output_dir: Path,
    dpi: int,
    image_format: str,
) -> None:
    for preset in presets:
        subset = replace(preset.filter, column=region_column).apply(points)
        typer.secho(f"\n{preset.config.title or preset.name}", fg=typer.colors.CYAN)
        typer.echo(f"Points: {len(subset):,}")
        drawing = render(subset, preset.config)
        path = save_drawing(drawing, output_dir / f"{preset.stem}.{image_format}", dpi=dpi)
        typer.echo(f"Segments: {drawing.n_segments:,}")
        typer.echo(f"Saved map to {path}")


@app.command()
def fetch(
    cache_dir: Path = typer.Option(DEFAULT_CACHE_DIR, help="Directory for downloaded datasets."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress."),
) -> None:
    """Download and unpack the default population raster and boundaries."""

    _configure_logging(verbose)
    try:
        raster, boundary = fetch_sources(cache_dir)
    except DensityLinesError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Raster: {raster}")
    typer.echo(f"Boundary: {boundary}")


@app.command("presets")
def list_presets() -> None:
    """List the available region presets."""

    for preset in PRESETS:
        config = preset.config
        typer.echo(
            f"{preset.name:<14} lat {config.lat_resolution:g}  lng {config.lng_resolution:g}  "
            f"height {config.height_factor:g}  {config.title}"
        )


@app.command("render")
def render_maps(
    raster: Optional[Path] = typer.Option(
        None, help="Population density raster. Downloaded to the cache when omitted."
    ),
    boundary: Optional[Path] = typer.Option(
        None, help="Administrative boundary file. Downloaded to the cache when omitted."
    ),
    attribute: str = typer.Option(
        DEFAULT_ATTRIBUTES[0], help="Boundary attribute holding the region name."
    ),
    layer: Optional[str] = typer.Option(None, help="Layer to read from a multi-layer boundary file."),
    preset: List[str] = typer.Option(
        None, help="Preset to render. Provide multiple --preset entries; defaults to all."
    ),
    output_dir: Path = typer.Option(Path("figures"), help="Directory where maps are saved."),
    dpi: int = typer.Option(300, min=1, help="Image resolution."),
    image_format: str = typer.Option("png", "--format", help="Image file format."),
    cache_dir: Path = typer.Option(DEFAULT_CACHE_DIR, help="Directory for downloaded datasets."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress."),
) -> None:
    """Clip the raster to the boundary and render one map per preset."""

    _configure_logging(verbose)
    presets = _select_presets(preset)
    try:
        raster_path, boundary_path = _resolve_inputs(raster, boundary, cache_dir)
        points = prepare_points(raster_path, boundary_path, attributes=[attribute], layer=layer)
        typer.echo(f"Prepared {len(points):,} raster cells inside the boundary")
        _render_presets(
            points,
            presets,
            region_column=attribute,
            output_dir=output_dir,
            dpi=dpi,
            image_format=image_format,
        )
    except DensityLinesError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


def main() -> None:
    app()


if __name__ == "__main__":
    main()
