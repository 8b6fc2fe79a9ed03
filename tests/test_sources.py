# tests/test_sources.py
import numpy as np
import pandas as pd
import pytest
import xarray as xr

from ERA5dsrfPy.raster import Field, Grid
from ERA5dsrfPy.errors import MissingDataError
from ERA5dsrfPy.sources import (
    DatasetHourlySource,
    HourlySource,
    InMemoryHourlySource,
    StaticTerrainSource,
    crop_window,
    grid_from_coords,
)


@pytest.fixture
def grid() -> Grid:
    return Grid(x0=0.0, y0=9000.0, res=1000.0, width=9, height=9)


def test_crop_window(grid):
    sub, rows, cols = crop_window(grid, (1500.0, 2500.0, 4200.0, 6000.0))
    assert (sub.x0, sub.y0, sub.width, sub.height) == (1000.0, 6000.0, 4, 4)
    assert (rows, cols) == (slice(3, 7), slice(1, 5))


def test_crop_window_outside(grid):
    with pytest.raises(MissingDataError):
        crop_window(grid, (20000.0, 20000.0, 30000.0, 30000.0))


def test_static_terrain_is_cropped(grid):
    dem = Field(np.arange(81, dtype=float).reshape(9, 9), "dem", grid)
    out = StaticTerrainSource(dem).elevation((1500.0, 2500.0, 4200.0, 6000.0))
    assert out.band_names == ("elevation",)
    assert out.grid.shape == (4, 4)
    assert out.band("elevation")[0, 0] == 3 * 9 + 1


def test_in_memory_source_satisfies_protocol(grid):
    assert isinstance(InMemoryHourlySource(grid, {}), HourlySource)


def test_grid_from_ascending_coords():
    g, flip_y, flip_x = grid_from_coords(np.array([500.0, 1500.0, 2500.0]), np.array([500.0, 1500.0]))
    assert flip_y and not flip_x
    assert (g.x0, g.y0, g.width, g.height, g.res) == (0.0, 2000.0, 3, 2, 1000.0)


def test_grid_from_irregular_coords():
    with pytest.raises(ValueError):
        grid_from_coords(np.array([0.0, 1.0, 3.0]), np.array([0.0, 1.0]))


@pytest.fixture
def dataset():
    times = pd.date_range("2024-06-14 22:00", periods=28, freq="h")
    x = np.array([500.0, 1500.0, 2500.0])
    y = np.array([500.0, 1500.0])  # ascending, as written by some tools
    t2m = np.empty((times.size, y.size, x.size))
    for i in range(times.size):
        t2m[i] = 280.0 + i + np.array([[0.0, 1.0, 2.0], [10.0, 11.0, 12.0]])
    return xr.Dataset(
        {"temperature_2m": (("time", "y", "x"), t2m)},
        coords={"time": times, "y": y, "x": x},
        attrs={"crs": "EPSG:32717"},
    )


def test_dataset_source_window_and_orientation(dataset):
    src = DatasetHourlySource(dataset)
    assert src.grid.crs == "EPSG:32717"
    start = pd.Timestamp("2024-06-15")
    col = src.fetch("temperature_2m", start, start + pd.Timedelta(days=1), src.grid.bounds)
    assert col.size == 24
    assert col.times[0] == start
    first = next(iter(col))
    # northern row (y=1500) comes first after flipping
    np.testing.assert_allclose(first[0], 282.0 + np.array([10.0, 11.0, 12.0]))


def test_dataset_source_unknown_band(dataset):
    src = DatasetHourlySource(dataset)
    with pytest.raises(MissingDataError):
        src.fetch("total_precipitation", pd.Timestamp("2024-06-15"), pd.Timestamp("2024-06-16"), src.grid.bounds)


def test_grid_from_descending_x():
    g, flip_y, flip_x = grid_from_coords(np.array([2500.0, 1500.0, 500.0]), np.array([1500.0, 500.0]))
    assert flip_x and not flip_y
    assert (g.x0, g.y0) == (0.0, 2000.0)


def test_dataset_source_with_descending_x_is_not_mirrored():
    times = pd.date_range("2024-06-15", periods=3, freq="h")
    x = np.array([2500.0, 1500.0, 500.0])
    y = np.array([1500.0, 500.0])
    values = np.broadcast_to(x, (times.size, y.size, x.size)).copy()
    ds = xr.Dataset(
        {"temperature_2m": (("time", "y", "x"), values)},
        coords={"time": times, "y": y, "x": x},
    )
    src = DatasetHourlySource(ds)
    start = pd.Timestamp("2024-06-15")
    col = src.fetch("temperature_2m", start, start + pd.Timedelta(days=1), src.grid.bounds)
    first = next(iter(col))
    # every pixel holds its own x coordinate, west to east
    np.testing.assert_allclose(first[0], col.grid.x_centers())
    np.testing.assert_allclose(first[1], [500.0, 1500.0, 2500.0])


def test_dataset_source_outside_extent(dataset):
    src = DatasetHourlySource(dataset)
    with pytest.raises(MissingDataError):
        src.fetch(
            "temperature_2m",
            pd.Timestamp("2024-06-15"),
            pd.Timestamp("2024-06-16"),
            (50000.0, 50000.0, 60000.0, 60000.0),
        )


def test_in_memory_source_missing_band_and_extent(grid):
    layers = {"temperature_2m": [(pd.Timestamp("2024-06-15"), np.ones(grid.shape))]}
    src = InMemoryHourlySource(grid, layers)
    start, end = pd.Timestamp("2024-06-15"), pd.Timestamp("2024-06-16")
    with pytest.raises(MissingDataError):
        src.fetch("total_precipitation", start, end, grid.bounds)
    with pytest.raises(MissingDataError):
        src.fetch("temperature_2m", start, end, (20000.0, 20000.0, 30000.0, 30000.0))
    # a day without observations is not an error
    empty = src.fetch("temperature_2m", start + pd.Timedelta(days=1), end + pd.Timedelta(days=1), grid.bounds)
    assert empty.size == 0
