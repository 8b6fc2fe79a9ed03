# src/ERA5dsrfPy/sources.py
# SPDX-License-Identifier: MIT
"""
Data-source interfaces consumed by the pipeline, plus simple implementations.

The pipeline never talks to an archive directly; it asks one of four
collaborators for rasters:

- :class:`HourlySource` — hourly reanalysis bands (ERA5-Land);
- :class:`VegetationSource` — vegetation-index scenes (MODIS NDVI, raw
  integer scale);
- :class:`TerrainSource` — static elevation;
- :class:`LandCoverSource` — yearly land-cover classification.

Implementations provided here
-----------------------------
- :class:`InMemoryHourlySource`, :class:`InMemoryVegetationSource`,
  :class:`StaticTerrainSource`, :class:`StaticLandCoverSource` — arrays held
  in memory (synthetic runs, tests, or data pre-loaded by the caller).
- :class:`DatasetHourlySource` — wraps an :class:`xarray.Dataset` laid out
  like the ERA5-Land hourly NetCDF files (``time, y, x``).

Retries, caching and authentication belong to the implementations, not to
the pipeline.

Missing data
------------
A band the source does not hold, or bounds outside its extent, raise
:class:`~ERA5dsrfPy.errors.MissingDataError`. A time window without
observations is not an error: it yields an empty collection.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np
import pandas as pd
import xarray as xr
from rasterio.windows import Window

from .errors import MissingDataError
from .raster import Bounds, Field, FieldCollection, Grid

TimedLayer = Tuple[Any, np.ndarray]


# ---------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------


@runtime_checkable
class HourlySource(Protocol):
    def fetch(self, band: str, start: pd.Timestamp, end: pd.Timestamp, bounds: Bounds) -> FieldCollection:
        """Hourly layers of *band* with ``start <= t < end`` over *bounds*."""
        ...


@runtime_checkable
class VegetationSource(Protocol):
    def fetch(self, bounds: Bounds, start: pd.Timestamp, end: pd.Timestamp) -> FieldCollection:
        """Vegetation-index layers (raw scale) with ``start <= t < end``."""
        ...


@runtime_checkable
class TerrainSource(Protocol):
    def elevation(self, bounds: Bounds) -> Field:
        """Single-band ``elevation`` field (metres) over *bounds*."""
        ...


@runtime_checkable
class LandCoverSource(Protocol):
    def classification(self, year: int, bounds: Bounds) -> Field:
        """Single-band land-cover class field of *year* over *bounds*."""
        ...


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------


def crop_window(grid: Grid, bounds: Bounds) -> Tuple[Grid, slice, slice]:
    """Sub-grid of *grid* covering *bounds*, with the matching row/col slices.

    Raises
    ------
    MissingDataError
        If *bounds* does not intersect the grid.
    """
    win = grid.window(bounds)
    c0, r0 = max(int(win.col_off), 0), max(int(win.row_off), 0)
    c1 = min(int(win.col_off + win.width), grid.width)
    r1 = min(int(win.row_off + win.height), grid.height)
    if c1 <= c0 or r1 <= r0:
        raise MissingDataError(f"Bounds {bounds} lie outside the source extent {grid.bounds}.")
    sub = grid.subgrid(Window(c0, r0, c1 - c0, r1 - r0))
    return sub, slice(r0, r1), slice(c0, c1)


def crop_field(field: Field, bounds: Bounds) -> Field:
    sub, rows, cols = crop_window(field.grid, bounds)
    return Field(field.data[:, rows, cols], field.band_names, sub, field.properties)


def _in_window(times: Sequence[Any], start: pd.Timestamp, end: pd.Timestamp) -> List[int]:
    stamps = pd.to_datetime(list(times))
    return [i for i, t in enumerate(stamps) if start <= t < end]


def grid_from_coords(
    x: np.ndarray, y: np.ndarray, crs: Optional[str] = None
) -> Tuple[Grid, bool, bool]:
    """Grid described by 1-D pixel-centre coordinates.

    Returns the grid and whether the rows (``y`` ascending) and the columns
    (``x`` descending) must be flipped to lay the data out north-up.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.size < 2 or y.size < 2:
        raise ValueError("At least two coordinates per axis are needed to infer a grid.")
    res = float(abs(x[1] - x[0]))
    if not np.allclose(np.abs(np.diff(x)), res) or not np.allclose(np.abs(np.diff(y)), res):
        raise ValueError("Coordinates must be regularly and equally spaced on both axes.")
    flip_y = bool(y[1] > y[0])
    flip_x = bool(x[1] < x[0])
    grid = Grid(
        x0=float(x.min()) - res / 2.0,
        y0=float(y.max()) + res / 2.0,
        res=res,
        width=int(x.size),
        height=int(y.size),
        crs=crs,
    )
    return grid, flip_y, flip_x


# ---------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------


class InMemoryHourlySource:
    """Hourly layers held in memory.

    Parameters
    ----------
    grid :
        Grid shared by every layer.
    layers :
        Mapping ``source band -> [(timestamp, 2-D array), ...]``.
    """

    def __init__(self, grid: Grid, layers: Mapping[str, Sequence[TimedLayer]]) -> None:
        self.grid = grid
        self._layers: Dict[str, List[TimedLayer]] = {
            band: [(pd.Timestamp(t), np.asarray(a, dtype=float)) for t, a in items]
            for band, items in layers.items()
        }

    def fetch(self, band: str, start: pd.Timestamp, end: pd.Timestamp, bounds: Bounds) -> FieldCollection:
        sub, rows, cols = crop_window(self.grid, bounds)
        if band not in self._layers:
            raise MissingDataError(f"Band {band!r} not held by this source.")
        items = self._layers[band]
        keep = _in_window([t for t, _ in items], start, end)
        return FieldCollection(
            sub,
            band,
            [items[i][1][rows, cols] for i in keep],
            times=[items[i][0] for i in keep],
        )


class InMemoryVegetationSource:
    """Vegetation-index scenes held in memory (band ``NDVI``, raw scale)."""

    band = "NDVI"

    def __init__(self, grid: Grid, scenes: Sequence[TimedLayer]) -> None:
        self.grid = grid
        self._scenes = [(pd.Timestamp(t), np.asarray(a, dtype=float)) for t, a in scenes]

    def fetch(self, bounds: Bounds, start: pd.Timestamp, end: pd.Timestamp) -> FieldCollection:
        sub, rows, cols = crop_window(self.grid, bounds)
        keep = _in_window([t for t, _ in self._scenes], start, end)
        return FieldCollection(
            sub,
            self.band,
            [self._scenes[i][1][rows, cols] for i in keep],
            times=[self._scenes[i][0] for i in keep],
        )


class StaticTerrainSource:
    """Elevation model held in memory."""

    def __init__(self, elevation: Field) -> None:
        if elevation.n_bands != 1:
            raise ValueError("Elevation field must have a single band.")
        self._elevation = elevation.rename("elevation")

    def elevation(self, bounds: Bounds) -> Field:
        return crop_field(self._elevation, bounds)


class StaticLandCoverSource:
    """Yearly land-cover classifications held in memory."""

    def __init__(self, classifications: Mapping[int, Field]) -> None:
        self._by_year = {int(y): f for y, f in classifications.items()}

    def classification(self, year: int, bounds: Bounds) -> Field:
        try:
            field = self._by_year[int(year)]
        except KeyError:
            raise MissingDataError(
                f"No land-cover classification for {year} "
                f"(available: {sorted(self._by_year)})."
            ) from None
        return crop_field(field, bounds)


# ---------------------------------------------------------------------
# xarray-backed hourly source
# ---------------------------------------------------------------------


class DatasetHourlySource:
    """Hourly source backed by an :class:`xarray.Dataset`.

    The dataset holds one data variable per ERA5-Land band
    (``temperature_2m``, ``total_precipitation``, …) on regular
    ``(time, y, x)`` coordinates in a projected CRS. Open files lazily
    (``xr.open_dataset(..., chunks={})``) so only the requested day is read.
    """

    def __init__(
        self,
        dataset: xr.Dataset,
        *,
        crs: Optional[str] = None,
        time_dim: str = "time",
        x_dim: str = "x",
        y_dim: str = "y",
    ) -> None:
        self.dataset = dataset
        self.time_dim = time_dim
        self.x_dim = x_dim
        self.y_dim = y_dim
        crs = crs or dataset.attrs.get("crs")
        self.grid, self._flip_y, self._flip_x = grid_from_coords(
            dataset[x_dim].values, dataset[y_dim].values, crs
        )

    def fetch(self, band: str, start: pd.Timestamp, end: pd.Timestamp, bounds: Bounds) -> FieldCollection:
        if band not in self.dataset.data_vars:
            raise MissingDataError(f"Band {band!r} not found in dataset.")
        sub, rows, cols = crop_window(self.grid, bounds)
        da = self.dataset[band].transpose(self.time_dim, self.y_dim, self.x_dim)
        if self._flip_y:
            da = da.isel({self.y_dim: slice(None, None, -1)})
        if self._flip_x:
            da = da.isel({self.x_dim: slice(None, None, -1)})
        times = pd.to_datetime(da[self.time_dim].values)
        idx = np.flatnonzero((times >= start) & (times < end))
        window = da.isel({self.time_dim: idx, self.y_dim: rows, self.x_dim: cols})
        values = np.asarray(window.values, dtype=float)
        return FieldCollection(sub, band, list(values), times=list(times[idx]))


__all__ = [
    "HourlySource",
    "VegetationSource",
    "TerrainSource",
    "LandCoverSource",
    "InMemoryHourlySource",
    "InMemoryVegetationSource",
    "StaticTerrainSource",
    "StaticLandCoverSource",
    "DatasetHourlySource",
    "crop_window",
    "crop_field",
    "grid_from_coords",
]
