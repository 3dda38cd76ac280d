import matplotlib

matplotlib.use("Agg")

import geopandas as gpd
import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin
from shapely.geometry import box

NODATA = -9999.0


def write_raster(path, data, *, west=0.0, north=10.0, res=1.0, crs="EPSG:4326", nodata=NODATA):
    profile = {
        "driver": "GTiff",
        "height": data.shape[0],
        "width": data.shape[1],
        "count": 1,
        "dtype": "float32",
        "crs": crs,
        "transform": from_origin(west, north, res, res),
        "nodata": nodata,
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(data.astype("float32"), 1)
    return path


@pytest.fixture
def raster_factory():
    return write_raster


@pytest.fixture
def density_raster(tmp_path):
    """10x10 one-degree raster over lon 0..10, lat 0..10 with values 0..99."""

    data = np.arange(100, dtype="float32").reshape(10, 10)
    data[9, 0] = NODATA  # cell centred on (0.5, 0.5)
    return write_raster(tmp_path / "density.tif", data)


@pytest.fixture
def boundary():
    return gpd.GeoDataFrame(
        {"NAME_1": ["Cebu", "Albay"], "NAME_0": ["Philippines", "Philippines"]},
        geometry=[box(0, 0, 5, 5), box(5, 5, 10, 10)],
        crs="EPSG:4326",
    )


@pytest.fixture
def boundary_file(tmp_path, boundary):
    path = tmp_path / "boundary.geojson"
    boundary.to_file(path, driver="GeoJSON")
    return path
