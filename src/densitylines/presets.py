"""Region presets for the Philippine density line maps."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import pandas as pd

from .lines import RenderConfig


@dataclass(frozen=True)
class RegionFilter:
    """Select the point records belonging to a region.

    ``values`` are matched against ``column`` (a boundary attribute such as the
    province name). ``bbox`` optionally narrows the selection to
    ``(min_lng, min_lat, max_lng, max_lat)``. An empty filter keeps everything.
    """

    column: str = "NAME_1"
    values: Tuple[str, ...] = ()
    bbox: Optional[Tuple[float, float, float, float]] = None

    def apply(self, points: pd.DataFrame) -> pd.DataFrame:
        mask = pd.Series(True, index=points.index)
        if self.values:
            if self.column not in points.columns:
                raise KeyError(f"Point records have no {self.column!r} column")
            mask &= points[self.column].isin(self.values)
        if self.bbox is not None:
            min_lng, min_lat, max_lng, max_lat = self.bbox
            mask &= points["longitude"].between(min_lng, max_lng)
            mask &= points["latitude"].between(min_lat, max_lat)
        return points.loc[mask].copy()


@dataclass(frozen=True)
class RegionPreset:
    name: str
    filter: RegionFilter
    config: RenderConfig
    stem: str


BICOL_PROVINCES = (
    "Albay",
    "Camarines Norte",
    "Camarines Sur",
    "Catanduanes",
    "Masbate",
    "Sorsogon",
)

# GADM 4.1 still lists Davao de Oro under its former name.
DAVAO_PROVINCES = (
    "Compostela Valley",
    "Davao de Oro",
    "Davao del Norte",
    "Davao del Sur",
    "Davao Occidental",
    "Davao Oriental",
)

PRESETS: List[RegionPreset] = [
    RegionPreset(
        name="philippines",
        filter=RegionFilter(),
        config=RenderConfig(
            lat_resolution=0.1,
            lng_resolution=0.02,
            height_factor=4.0,
            line_width=0.3,
            title="Philippines",
            subtitle="Population density lines",
        ),
        stem="philippines_density_lines",
    ),
    RegionPreset(
        name="metro_manila",
        filter=RegionFilter(values=("Metropolitan Manila",)),
        config=RenderConfig(
            lat_resolution=0.01,
            lng_resolution=0.0025,
            height_factor=2.5,
            line_width=0.4,
            title="Metro Manila",
            subtitle="Population density lines",
            figsize=(8.0, 9.0),
        ),
        stem="metro_manila_density_lines",
    ),
    RegionPreset(
        name="cebu",
        filter=RegionFilter(values=("Cebu",)),
        config=RenderConfig(
            lat_resolution=0.025,
            lng_resolution=0.01,
            height_factor=3.0,
            line_width=0.35,
            title="Cebu",
            subtitle="Population density lines",
        ),
        stem="cebu_density_lines",
    ),
    RegionPreset(
        name="davao",
        filter=RegionFilter(values=DAVAO_PROVINCES),
        config=RenderConfig(
            lat_resolution=0.03,
            lng_resolution=0.01,
            height_factor=3.0,
            line_width=0.35,
            title="Davao Region",
            subtitle="Population density lines",
            figsize=(8.0, 9.0),
        ),
        stem="davao_density_lines",
    ),
    RegionPreset(
        name="bicol",
        filter=RegionFilter(values=BICOL_PROVINCES),
        config=RenderConfig(
            lat_resolution=0.03,
            lng_resolution=0.01,
            height_factor=3.0,
            line_width=0.35,
            title="Bicol Region",
            subtitle="Population density lines",
            figsize=(10.0, 8.0),
        ),
        stem="bicol_density_lines",
    ),
]

_BY_NAME: Dict[str, RegionPreset] = {preset.name: preset for preset in PRESETS}


def get_preset(name: str) -> RegionPreset:
    try:
        return _BY_NAME[name]
    except KeyError:
        raise KeyError(f"Unknown preset {name!r}; choose from {sorted(_BY_NAME)}") from None
