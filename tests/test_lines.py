import numpy as np
import pandas as pd
import pytest

from densitylines.errors import ConfigurationError, DegenerateInputWarning, NormalizationError
from densitylines.lines import (
    RenderConfig,
    assign_segments,
    compute_density_lines,
    grid_cells,
    snap,
)


def make_points(latitudes, longitudes, densities) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "latitude": np.asarray(latitudes, dtype=float),
            "longitude": np.asarray(longitudes, dtype=float),
            "density": np.asarray(densities, dtype=float),
        }
    )


def make_grid_3x3() -> pd.DataFrame:
    lat, lng = np.meshgrid([0.0, 1.0, 2.0], [0.0, 1.0, 2.0], indexing="ij")
    return make_points(lat.ravel(), lng.ravel(), np.arange(1, 10))


def make_random_points(n: int = 500) -> pd.DataFrame:
    rng = np.random.default_rng(42)
    lat = rng.uniform(5, 19, size=n)
    lng = rng.uniform(117, 126, size=n)
    density = rng.gamma(2.0, 150.0, size=n)
    density[rng.random(n) < 0.05] = np.nan
    return make_points(lat, lng, density)


def test_render_config_defaults_lng_resolution_to_lat_resolution():
    config = RenderConfig(lat_resolution=0.25)
    assert config.lng_resolution == 0.25
    assert config.gap_threshold == pytest.approx(0.25 * 1.00001)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"lat_resolution": 0},
        {"lat_resolution": -0.1},
        {"lat_resolution": 0.1, "lng_resolution": 0},
        {"lat_resolution": 0.1, "height_factor": 0},
        {"lat_resolution": 0.1, "line_width": -1},
        {"lat_resolution": float("nan")},
    ],
)
def test_render_config_rejects_non_positive_values(kwargs):
    with pytest.raises(ConfigurationError):
        RenderConfig(**kwargs)


def test_configuration_error_is_a_value_error():
    with pytest.raises(ValueError):
        RenderConfig(lat_resolution=0)


def test_snap_rounds_to_nearest_multiple():
    snapped = snap([0.12, 0.26, -0.34, 1.0], 0.25)
    np.testing.assert_allclose(snapped, [0.0, 0.25, -0.25, 1.0])


def test_snap_is_idempotent():
    rng = np.random.default_rng(7)
    values = rng.uniform(-180, 180, size=1_000)
    for resolution in (0.01, 0.05, 0.1, 0.3, 1.0):
        once = snap(values, resolution)
        np.testing.assert_array_equal(snap(once, resolution), once)


def test_grid_cells_average_density_ignoring_missing_values():
    points = make_points([0.1, 0.2, 0.0, 5.0], [0.0, 0.1, 0.0, 5.0], [2.0, 4.0, np.nan, np.nan])
    cells = grid_cells(points, RenderConfig(lat_resolution=1.0))
    by_cell = cells.set_index(["lat_bucket", "lng_bucket"])["density"]
    assert by_cell.loc[(0.0, 0.0)] == pytest.approx(3.0)
    assert np.isnan(by_cell.loc[(5.0, 5.0)])


def test_grid_cells_drop_points_without_coordinates():
    points = make_points([0.0, np.nan], [0.0, 1.0], [1.0, 100.0])
    cells = grid_cells(points, RenderConfig(lat_resolution=1.0))
    assert len(cells) == 1


def test_grid_cells_require_point_columns():
    with pytest.raises(KeyError):
        grid_cells(pd.DataFrame({"latitude": [0.0], "longitude": [0.0]}), RenderConfig(lat_resolution=1.0))


def test_three_by_three_grid_gives_one_segment_per_row():
    lines = compute_density_lines(make_grid_3x3(), RenderConfig(lat_resolution=1.0, height_factor=2.0))
    cells = lines.cells

    assert lines.n_segments == 3
    assert lines.max_density == pytest.approx(9.0)
    top = cells.loc[cells["density"].idxmax()]
    assert top["normalized"] == pytest.approx(1.0)
    assert top["density"] == pytest.approx(9.0)
    for _, row in cells.groupby("lat_bucket"):
        ordered = row.sort_values("density")
        assert ordered["y"].is_monotonic_increasing
        assert ordered["y"].diff().dropna().gt(0).all()
    assert cells["y"].iloc[0] == pytest.approx(0.0 + 1.0 * 2.0 * (1 / 9))


def test_cells_are_sorted_by_latitude_then_longitude():
    points = make_grid_3x3().sample(frac=1.0, random_state=3)
    cells = compute_density_lines(points, RenderConfig(lat_resolution=1.0)).cells
    expected = cells.sort_values(["lat_bucket", "lng_bucket"]).reset_index(drop=True)
    pd.testing.assert_frame_equal(cells.reset_index(drop=True), expected)


def test_normalized_density_lies_in_unit_interval():
    lines = compute_density_lines(make_random_points(), RenderConfig(lat_resolution=0.5, lng_resolution=0.25))
    normalized = lines.cells["normalized"]
    assert normalized.between(0, 1).all()
    assert normalized.max() == pytest.approx(1.0)


def test_segments_stay_on_one_row_and_never_bridge_gaps():
    config = RenderConfig(lat_resolution=0.5, lng_resolution=0.25)
    lines = compute_density_lines(make_random_points(), config)
    for _, cells in lines.segments():
        assert cells["lat_bucket"].nunique() == 1
        steps = cells["lng_bucket"].diff().dropna()
        assert (steps <= config.gap_threshold).all()
        assert (steps > 0).all()


def test_gap_wider_than_resolution_splits_segments():
    points = make_points([0.0, 0.0], [0.0, 0.1], [10.0, 20.0])
    lines = compute_density_lines(points, RenderConfig(lat_resolution=0.05, lng_resolution=0.05))
    assert lines.n_segments == 2


def test_adjacent_cells_share_a_segment():
    points = make_points([0.0, 0.0, 0.0], [0.0, 0.05, 0.1], [10.0, 20.0, 30.0])
    lines = compute_density_lines(points, RenderConfig(lat_resolution=0.05, lng_resolution=0.05))
    assert lines.n_segments == 1


def test_missing_cells_break_lines():
    points = make_points([0.0, 0.0, 0.0], [0.0, 1.0, 2.0], [10.0, np.nan, 30.0])
    lines = compute_density_lines(points, RenderConfig(lat_resolution=1.0))
    assert len(lines.cells) == 2
    assert lines.n_segments == 2


def test_assign_segments_breaks_after_missing_longitude():
    cells = pd.DataFrame({"lat_bucket": [0.0, 0.0, 0.0], "lng_bucket": [0.0, np.nan, 1.0]})
    segments = assign_segments(cells, gap_threshold=1.00001)
    assert segments.tolist() == [1, 1, 2]


def test_equal_densities_normalise_to_one():
    lat, lng = np.meshgrid([0.0, 1.0], [0.0, 1.0, 2.0], indexing="ij")
    points = make_points(lat.ravel(), lng.ravel(), np.full(6, 5.0))
    lines = compute_density_lines(points, RenderConfig(lat_resolution=1.0, height_factor=3.0))
    assert (lines.cells["normalized"] == 1.0).all()
    for lat_bucket, row in lines.cells.groupby("lat_bucket"):
        assert row["y"].nunique() == 1
        assert row["y"].iloc[0] == pytest.approx(lat_bucket + 3.0)


@pytest.mark.parametrize("densities", [[0.0, 0.0, 0.0], [np.nan, np.nan, np.nan], [0.0, np.nan, 0.0]])
def test_zero_or_missing_densities_raise(densities):
    points = make_points([0.0, 0.0, 1.0], [0.0, 1.0, 0.0], densities)
    with pytest.raises(NormalizationError):
        compute_density_lines(points, RenderConfig(lat_resolution=1.0))


def test_negative_densities_raise():
    points = make_points([0.0, 0.0], [0.0, 1.0], [-1.0, 4.0])
    with pytest.raises(NormalizationError):
        compute_density_lines(points, RenderConfig(lat_resolution=1.0))


def test_empty_points_give_no_segments():
    empty = make_points([], [], [])
    with pytest.warns(DegenerateInputWarning):
        lines = compute_density_lines(empty, RenderConfig(lat_resolution=1.0))
    assert lines.n_segments == 0
    assert list(lines.segments()) == []


def test_normalisation_uses_the_frame_it_is_given():
    points = make_points([0.0, 0.0, 5.0], [0.0, 1.0, 5.0], [10.0, 20.0, 100.0])
    config = RenderConfig(lat_resolution=1.0)
    full = compute_density_lines(points, config)
    subset = compute_density_lines(points[points["latitude"] < 1], config)
    assert full.max_density == pytest.approx(100.0)
    assert subset.max_density == pytest.approx(20.0)
    assert subset.cells["normalized"].max() == pytest.approx(1.0)
