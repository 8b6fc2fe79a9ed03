# tests/conftest.py
import numpy as np
import pandas as pd
import pytest

from ERA5dsrfPy.raster import Field, Grid
from ERA5dsrfPy.roi import RegionOfInterest
from ERA5dsrfPy.sources import (
    InMemoryHourlySource,
    InMemoryVegetationSource,
    StaticLandCoverSource,
    StaticTerrainSource,
)
from ERA5dsrfPy.variables import Variable

CRS = "EPSG:32717"
DAY = pd.Timestamp("2024-06-15")
NOW = "2025-03-10"  # reference "wall clock" for the NDVI month rule

# Base hourly values in source units, per variable
BASE = {
    Variable.T2M: 290.0,
    Variable.D2M: 282.0,
    Variable.U10: 2.0,
    Variable.V10: -1.0,
    Variable.SP: 95000.0,
    Variable.SSR: 4.0e5,
    Variable.STR: -1.5e5,
    Variable.TP: 2.0e-4,
}


# ---------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------


def coarse_pattern(grid: Grid) -> np.ndarray:
    """Smooth west-east / north-south gradient on the coarse grid (0..~1)."""
    xx, yy = grid.centers()
    return (xx - xx.min()) / 1e5 + (yy - yy.min()) / 2e5


def hourly_layers(grid: Grid, day: pd.Timestamp, base: float, amplitude: float):
    """Hourly layers for *day* plus one layer just before and one just after."""
    pattern = coarse_pattern(grid)
    items = []
    for h in range(24):
        t = day + pd.Timedelta(hours=h)
        items.append((t, base + amplitude * (pattern + 0.01 * h)))
    # outside the [day, day + 1) window; must never be aggregated
    items.append((day - pd.Timedelta(hours=1), np.full(grid.shape, 1e6)))
    items.append((day + pd.Timedelta(days=1), np.full(grid.shape, 1e6)))
    return items


def make_hourly(grid: Grid, day: pd.Timestamp = DAY, skip=()) -> InMemoryHourlySource:
    layers = {}
    for var, base in BASE.items():
        if var in skip:
            continue
        layers[var.source_band] = hourly_layers(grid, day, base, amplitude=abs(base) * 0.01)
    return InMemoryHourlySource(grid, layers)


def make_terrain(grid: Grid) -> StaticTerrainSource:
    xx, yy = grid.centers()
    z = 200.0 + 0.01 * xx + 0.005 * yy + 80.0 * np.sin(xx / 3000.0) * np.cos(yy / 4000.0)
    return StaticTerrainSource(Field(z, "elevation", grid))


def make_landcover(grid: Grid, year: int = 2023) -> StaticLandCoverSource:
    xx, yy = grid.centers()
    classes = (np.floor(xx / 5000.0) + np.floor(yy / 5000.0)) % 4 + 10
    return StaticLandCoverSource({year: Field(classes, "LC_Type1", grid)})


def make_vegetation(grid: Grid, months=((2024, 5), (2024, 6), (2025, 2), (2025, 3)), null=False):
    xx, yy = grid.centers()
    scenes = []
    for year, month in months:
        for d, offset in ((1, 0.0), (17, 200.0), (25, -100.0)):
            raw = 5000.0 + 1500.0 * np.sin(xx / 7000.0) * np.cos(yy / 5000.0) + offset
            if null:
                raw = np.full(grid.shape, np.nan)
            scenes.append((pd.Timestamp(year=year, month=month, day=d), raw))
    return InMemoryVegetationSource(grid, scenes)


# ---------------------------------------------------------------------
# Fixtures: small region (18 km x 18 km)
# ---------------------------------------------------------------------


@pytest.fixture
def fine_grid() -> Grid:
    return Grid(x0=0.0, y0=27000.0, res=500.0, width=54, height=54, crs=CRS)


@pytest.fixture
def coarse_grid() -> Grid:
    return Grid(x0=0.0, y0=27000.0, res=9000.0, width=3, height=3, crs=CRS)


@pytest.fixture
def roi() -> RegionOfInterest:
    return RegionOfInterest.from_bounds(1000.0, 1000.0, 19000.0, 19000.0, crs=CRS, name="test")


@pytest.fixture
def hourly(coarse_grid):
    return make_hourly(coarse_grid)


@pytest.fixture
def terrain(fine_grid):
    return make_terrain(fine_grid)


@pytest.fixture
def landcover(fine_grid):
    return make_landcover(fine_grid)


@pytest.fixture
def vegetation(fine_grid):
    return make_vegetation(fine_grid)
