"""Fetch the source datasets and turn a clipped raster into point records."""

from __future__ import annotations

import logging
import shutil
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union
from urllib.parse import urlparse

import geopandas as gpd
import numpy as np
import pandas as pd
import rasterio
import requests
from rasterio.errors import RasterioIOError
from rasterio.transform import xy
from rasterio.windows import Window

from .errors import ResourceLoadError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

GPW_URL = (
    "https://sedac.ciesin.columbia.edu/downloads/data/gpw-v4/"
    "gpw-v4-population-density-rev11/gpw-v4-population-density-rev11_2020_30_sec_tif.zip"
)
GADM_URL = "https://geodata.ucdavis.edu/gadm/gadm4.1/shp/gadm41_PHL_shp.zip"

WGS84 = "EPSG:4326"
DEFAULT_ATTRIBUTES = ("NAME_1",)


@dataclass(frozen=True)
class Sources:
    """Where the population raster and the boundary polygons come from."""

    raster_url: str = GPW_URL
    raster_member: str = "gpw_v4_population_density_rev11_2020_30_sec.tif"
    boundary_url: str = GADM_URL
    boundary_member: str = "gadm41_PHL_1.shp"


def _download(url: str, destination: Path, *, timeout: int = 180) -> None:
    """Stream ``url`` to ``destination`` via a temporary ``.part`` file."""

    partial = destination.with_name(destination.name + ".part")
    logger.info("Downloading %s", url)
    try:
        with requests.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            with open(partial, "wb") as fh:
                for chunk in response.iter_content(chunk_size=1 << 20):
                    if chunk:
                        fh.write(chunk)
        partial.replace(destination)
    except requests.RequestException as exc:
        raise ResourceLoadError(f"Failed to download {url}: {exc}") from exc
    finally:
        partial.unlink(missing_ok=True)
    logger.info("Saved %s", destination)


def _find_cached(cache_dir: Path, expected: str) -> Optional[Path]:
    """First ``expected`` file under ``cache_dir``, skipping unfinished extractions."""

    if not cache_dir.exists():
        return None
    for path in cache_dir.rglob(expected):
        if not any(part.endswith(".part") for part in path.relative_to(cache_dir).parts):
            return path
    return None


def _extract(archive: Path, destination: Path) -> None:
    """Unpack ``archive`` into ``destination`` via a temporary ``.part`` directory."""

    staging = destination.with_name(destination.name + ".part")
    shutil.rmtree(staging, ignore_errors=True)
    try:
        with zipfile.ZipFile(archive) as zf:
            zf.extractall(staging)
        if destination.exists():
            shutil.rmtree(destination)
        staging.replace(destination)
    finally:
        shutil.rmtree(staging, ignore_errors=True)


def fetch_dataset(url: str, cache_dir: PathLike, expected: str) -> Path:
    """Make sure ``expected`` exists under ``cache_dir``, downloading it if needed.

    Zip archives are extracted into a directory named after the archive;
    other files are stored under ``expected`` directly. Nothing is fetched
    when the file is already cached. An archive that cannot be opened is
    deleted so the next call downloads it again.
    """

    cache_dir = Path(cache_dir)
    cached = _find_cached(cache_dir, expected)
    if cached is not None:
        logger.info("Using cached %s", cached)
        return cached

    cache_dir.mkdir(parents=True, exist_ok=True)
    filename = Path(urlparse(url).path).name
    if not filename.lower().endswith(".zip"):
        target = cache_dir / expected
        _download(url, target)
        return target

    archive = cache_dir / filename
    if not archive.exists():
        _download(url, archive)
    logger.info("Extracting %s", archive.name)
    try:
        _extract(archive, cache_dir / archive.stem)
    except zipfile.BadZipFile as exc:
        archive.unlink(missing_ok=True)
        raise ResourceLoadError(f"Corrupt archive {archive}: {exc}") from exc

    extracted = _find_cached(cache_dir, expected)
    if extracted is None:
        raise ResourceLoadError(f"{expected} was not found in {archive.name}")
    return extracted


def fetch_sources(cache_dir: PathLike, sources: Optional[Sources] = None) -> Tuple[Path, Path]:
    """Fetch the default raster and boundary datasets; returns both paths."""

    sources = sources or Sources()
    raster = fetch_dataset(sources.raster_url, cache_dir, sources.raster_member)
    boundary = fetch_dataset(sources.boundary_url, cache_dir, sources.boundary_member)
    return raster, boundary


def load_boundary(path: PathLike, *, layer: Optional[str] = None) -> gpd.GeoDataFrame:
    """Read administrative boundary polygons, repairing invalid geometries."""

    path = Path(path)
    if not path.exists():
        raise ResourceLoadError(f"Boundary file not found: {path}")
    try:
        boundary = gpd.read_file(path, layer=layer) if layer else gpd.read_file(path)
    except Exception as exc:
        raise ResourceLoadError(f"Could not read boundary file {path}: {exc}") from exc

    if boundary.crs is None:
        boundary = boundary.set_crs(WGS84)
    invalid = ~boundary.geometry.is_valid
    if invalid.any():
        logger.info("Repairing %d invalid boundary geometries", int(invalid.sum()))
        boundary["geometry"] = boundary.geometry.make_valid()
    return boundary


def _empty_points(attributes: Sequence[str]) -> pd.DataFrame:
    columns = {"latitude": [], "longitude": [], "density": []}
    frame = pd.DataFrame(columns, dtype=float)
    for attribute in attributes:
        frame[attribute] = pd.Series(dtype=object)
    return frame


def _boundary_window(src, bounds) -> Optional[Window]:
    """Raster window covering ``bounds``, or ``None`` when they do not overlap."""

    minx, miny, maxx, maxy = bounds
    left, bottom, right, top = src.bounds
    left, bottom = max(minx, left), max(miny, bottom)
    right, top = min(maxx, right), min(maxy, top)
    if left >= right or bottom >= top:
        return None

    row_start, col_start = src.index(left, top)
    row_stop, col_stop = src.index(right, bottom)
    row_start, col_start = max(row_start, 0), max(col_start, 0)
    row_stop, col_stop = min(row_stop + 1, src.height), min(col_stop + 1, src.width)
    if row_stop <= row_start or col_stop <= col_start:
        return None
    return Window.from_slices((row_start, row_stop), (col_start, col_stop))


def raster_to_points(
    raster_path: PathLike,
    boundary: gpd.GeoDataFrame,
    *,
    attributes: Sequence[str] = DEFAULT_ATTRIBUTES,
) -> pd.DataFrame:
    """Clip a density raster to ``boundary`` and return one row per cell.

    Parameters
    ----------
    raster_path:
        Population density raster (any format rasterio can open).
    boundary:
        Polygons to clip to. Their ``attributes`` columns are copied onto every
        cell whose centre falls inside them.
    attributes:
        Boundary columns to carry over, e.g. the province name.

    Returns
    -------
    pandas.DataFrame
        Columns ``latitude``, ``longitude``, ``density`` and ``attributes``.
        Nodata and negative cells have a missing density. The frame is empty
        when no cell centre falls inside the boundary.
    """

    raster_path = Path(raster_path)
    attributes = list(attributes)
    missing = [col for col in attributes if col not in boundary.columns]
    if missing:
        raise ResourceLoadError(f"Boundary has no attribute(s) {missing}")
    if not raster_path.exists():
        raise ResourceLoadError(f"Raster file not found: {raster_path}")

    try:
        src = rasterio.open(raster_path)
    except RasterioIOError as exc:
        raise ResourceLoadError(f"Could not read raster {raster_path}: {exc}") from exc

    with src:
        crs = src.crs or WGS84
        if boundary.crs != crs:
            boundary = boundary.to_crs(crs)
        window = _boundary_window(src, boundary.total_bounds)
        if window is None:
            logger.info("Boundary does not overlap %s", raster_path.name)
            return _empty_points(attributes)
        data = src.read(1, window=window, masked=True)
        transform = src.window_transform(window)

    density = data.astype(float).filled(np.nan).ravel()
    density[density < 0] = np.nan
    rows, cols = np.indices(data.shape)
    xs, ys = xy(transform, rows.ravel(), cols.ravel(), offset="center")

    cells = gpd.GeoDataFrame(
        {"density": density},
        geometry=gpd.points_from_xy(np.asarray(xs, dtype=float), np.asarray(ys, dtype=float)),
        crs=crs,
    )
    joined = gpd.sjoin(cells, boundary[attributes + ["geometry"]], how="inner", predicate="within")
    joined = joined[~joined.index.duplicated(keep="first")]
    logger.info("Kept %d of %d raster cells inside the boundary", len(joined), len(cells))
    if joined.empty:
        return _empty_points(attributes)

    joined = joined.to_crs(WGS84)
    points = pd.DataFrame(
        {
            "latitude": joined.geometry.y.to_numpy(),
            "longitude": joined.geometry.x.to_numpy(),
            "density": joined["density"].to_numpy(),
        }
    )
    for attribute in attributes:
        points[attribute] = joined[attribute].to_numpy()
    return points


def prepare_points(
    raster_path: PathLike,
    boundary_path: PathLike,
    *,
    attributes: Sequence[str] = DEFAULT_ATTRIBUTES,
    layer: Optional[str] = None,
) -> pd.DataFrame:
    """Load the boundary file and clip the raster to it."""

    boundary = load_boundary(boundary_path, layer=layer)
    return raster_to_points(raster_path, boundary, attributes=attributes)
