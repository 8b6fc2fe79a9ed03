# src/ERA5dsrfPy/raster.py
# SPDX-License-Identifier: MIT
"""
Eager raster values used throughout the pipeline.

- :class:`Grid` — a north-up regular grid (origin, resolution, shape, CRS).
- :class:`Field` — an immutable multi-band raster on a :class:`Grid`.
  Null pixels are ``NaN``. Every operation returns a new Field.
- :class:`FieldCollection` — a stack of single-band layers (e.g. the hourly
  observations of one day) combined per pixel by sum, mean or median.
- :func:`reduce_region` — the zonal reduction primitive: the mean of each
  band over a polygon at a stated resolution, weighted by the fraction of
  every pixel covered by the polygon.

Grids are described by a rasterio affine transform; windows, resampling
and polygon masks go through rasterio as well.

Resampling rules
----------------
When a Field has to be evaluated on another grid (:meth:`Field.regrid`),
:func:`rasterio.warp.reproject` is used with:

* ``"nearest"`` (``Resampling.nearest``): every target pixel takes the
  source pixel containing its centre;
* ``"mean"`` (``Resampling.average``): area-weighted average of the source
  pixels overlapping the target pixel, nulls ignored;
* ``"auto"``: ``"mean"`` when the target is coarser than the source and
  ``"nearest"`` otherwise.
"""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import shapely
import xarray as xr
from rasterio import Affine
from rasterio.crs import CRS
from rasterio.features import geometry_mask
from rasterio.transform import array_bounds, from_origin
from rasterio.warp import Resampling, reproject
from rasterio.windows import Window, from_bounds
from rasterio.windows import transform as window_transform

Bounds = Tuple[float, float, float, float]

# Tolerance used when snapping coordinates onto a grid.
_EPS = 1e-9

# Grids without a CRS are warped in this metric CRS (source and target
# then share it, so no reprojection happens).
LOCAL_CRS = "EPSG:3857"

_RESAMPLING = {
    "nearest": Resampling.nearest,
    "mean": Resampling.average,
    "average": Resampling.average,
}


# ---------------------------------------------------------------------
# Grid
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class Grid:
    """Regular north-up grid.

    Attributes
    ----------
    x0, y0 :
        Coordinates of the upper-left corner.
    res :
        Pixel size in CRS units (metres); also called *scale*.
    width, height :
        Number of columns and rows.
    crs :
        Coordinate reference system identifier (e.g. ``"EPSG:32717"``).
    """

    x0: float
    y0: float
    res: float
    width: int
    height: int
    crs: Optional[str] = None

    def __post_init__(self) -> None:
        if self.res <= 0:
            raise ValueError("Grid resolution must be positive.")
        if self.width < 1 or self.height < 1:
            raise ValueError("Grid must have at least one row and one column.")

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    @property
    def scale(self) -> float:
        return self.res

    @property
    def transform(self) -> Affine:
        """North-up affine transform (upper-left origin, square pixels)."""
        return from_origin(self.x0, self.y0, self.res, self.res)

    @property
    def bounds(self) -> Bounds:
        return tuple(float(v) for v in array_bounds(self.height, self.width, self.transform))

    @classmethod
    def from_transform(
        cls, transform: Affine, width: int, height: int, crs: Optional[str] = None
    ) -> "Grid":
        """Grid of a north-up *transform* with square pixels."""
        if transform.b != 0 or transform.d != 0:
            raise ValueError("Rotated transforms are not supported.")
        if not math.isclose(transform.a, -transform.e, rel_tol=1e-9):
            raise ValueError("Pixels must be square and rows must run north to south.")
        return cls(
            x0=float(transform.c),
            y0=float(transform.f),
            res=float(transform.a),
            width=int(width),
            height=int(height),
            crs=crs,
        )

    def x_centers(self) -> np.ndarray:
        cols = np.arange(self.width) + 0.5
        xs, _ = self.transform * (cols, np.full(self.width, 0.5))
        return np.asarray(xs, dtype=float)

    def y_centers(self) -> np.ndarray:
        rows = np.arange(self.height) + 0.5
        _, ys = self.transform * (np.full(self.height, 0.5), rows)
        return np.asarray(ys, dtype=float)

    def centers(self) -> Tuple[np.ndarray, np.ndarray]:
        """2-D arrays ``(xx, yy)`` with the pixel-centre coordinates."""
        return np.meshgrid(self.x_centers(), self.y_centers())

    def index_of(self, x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Row/column of the pixels containing ``(x, y)`` and an in-grid mask."""
        fcol, frow = ~self.transform * (np.asarray(x, dtype=float), np.asarray(y, dtype=float))
        col = np.floor(fcol + _EPS).astype(np.int64)
        row = np.floor(frow + _EPS).astype(np.int64)
        inside = (col >= 0) & (col < self.width) & (row >= 0) & (row < self.height)
        return row, col, inside

    def window(self, bounds: Bounds) -> Window:
        """Integer window (possibly outside the grid) covering *bounds*.

        The fractional :func:`rasterio.windows.from_bounds` window is widened
        to whole pixels.
        """
        xmin, ymin, xmax, ymax = bounds
        win = from_bounds(xmin, ymin, xmax, ymax, transform=self.transform)
        c0 = math.floor(win.col_off + _EPS)
        r0 = math.floor(win.row_off + _EPS)
        c1 = math.ceil(win.col_off + win.width - _EPS)
        r1 = math.ceil(win.row_off + win.height - _EPS)
        return Window(c0, r0, max(1, c1 - c0), max(1, r1 - r0))

    def subgrid(self, window: Window) -> "Grid":
        """Grid of the pixels in *window* (offsets may fall outside this grid)."""
        return Grid.from_transform(
            window_transform(window, self.transform),
            int(window.width),
            int(window.height),
            self.crs,
        )

    def pixel_boxes(self) -> np.ndarray:
        """Array of shapely boxes, one per pixel, shaped like the grid."""
        xx, yy = self.centers()
        half = self.res / 2.0
        return shapely.box(xx - half, yy - half, xx + half, yy + half)

    def matches(self, other: "Grid") -> bool:
        """True when both grids describe the same pixels."""
        return (
            self.shape == other.shape
            and math.isclose(self.res, other.res, rel_tol=1e-9)
            and math.isclose(self.x0, other.x0, rel_tol=0.0, abs_tol=1e-6 * self.res)
            and math.isclose(self.y0, other.y0, rel_tol=0.0, abs_tol=1e-6 * self.res)
            and (self.crs is None or other.crs is None or self.crs == other.crs)
        )

    @classmethod
    def covering(
        cls,
        bounds: Bounds,
        res: float,
        *,
        crs: Optional[str] = None,
        anchor: Tuple[float, float] = (0.0, 0.0),
    ) -> "Grid":
        """Smallest grid of resolution *res* covering *bounds*.

        Pixel edges are aligned on *anchor* (typically the origin of another
        grid) so that grids of the same resolution share their pixels.
        """
        ax, ay = anchor
        lattice = cls(x0=float(ax), y0=float(ay), res=float(res), width=1, height=1, crs=crs)
        return lattice.subgrid(lattice.window(bounds))


# ---------------------------------------------------------------------
# Field
# ---------------------------------------------------------------------


class Field:
    """Immutable multi-band raster.

    Parameters
    ----------
    data :
        Array shaped ``(bands, height, width)`` or ``(height, width)``.
        Stored as read-only ``float64``; ``NaN`` marks null pixels.
    band_names :
        One unique name per band (a single string for one band).
    grid :
        Spatial support of the data.
    properties :
        Free metadata (e.g. ``dayProcessed``), exposed read-only.
    """

    __slots__ = ("_data", "_band_names", "_grid", "_properties")

    def __init__(
        self,
        data: np.ndarray,
        band_names: Union[str, Sequence[str]],
        grid: Grid,
        properties: Optional[Mapping[str, Any]] = None,
        *,
        copy: bool = True,
    ) -> None:
        arr = np.array(data, dtype=np.float64, copy=True) if copy else np.asarray(data, dtype=np.float64)
        if arr.ndim == 2:
            arr = arr[np.newaxis, ...]
        if arr.ndim != 3:
            raise ValueError(f"Field data must be 2-D or 3-D, got shape {arr.shape}.")
        if arr.shape[1:] != grid.shape:
            raise ValueError(f"Data shape {arr.shape[1:]} does not match grid shape {grid.shape}.")
        names = (band_names,) if isinstance(band_names, str) else tuple(band_names)
        if len(names) != arr.shape[0]:
            raise ValueError(f"Got {len(names)} band names for {arr.shape[0]} bands.")
        if len(set(names)) != len(names):
            raise ValueError(f"Band names must be unique: {list(names)}")
        arr.setflags(write=False)
        self._data = arr
        self._band_names = names
        self._grid = grid
        self._properties = MappingProxyType(dict(properties or {}))

    # --- accessors -----------------------------------------------------

    @property
    def data(self) -> np.ndarray:
        return self._data

    @property
    def band_names(self) -> Tuple[str, ...]:
        return self._band_names

    @property
    def grid(self) -> Grid:
        return self._grid

    @property
    def scale(self) -> float:
        return self._grid.res

    @property
    def properties(self) -> Mapping[str, Any]:
        return self._properties

    @property
    def n_bands(self) -> int:
        return len(self._band_names)

    def band(self, name: str) -> np.ndarray:
        """Read-only 2-D view of band *name*."""
        try:
            return self._data[self._band_names.index(name)]
        except ValueError:
            raise KeyError(f"Band {name!r} not in {list(self._band_names)}") from None

    def is_null(self) -> bool:
        """True when no pixel of any band holds a value."""
        return not np.isfinite(self._data).any()

    def __repr__(self) -> str:
        return (
            f"Field(bands={list(self._band_names)}, shape={self._grid.shape}, "
            f"scale={self._grid.res:g}, crs={self._grid.crs!r})"
        )

    # --- band algebra --------------------------------------------------

    def _new(self, data: np.ndarray, band_names: Sequence[str], grid: Optional[Grid] = None) -> "Field":
        return Field(data, band_names, grid or self._grid, self._properties, copy=False)

    def select(self, names: Union[str, Sequence[str]]) -> "Field":
        names = [names] if isinstance(names, str) else list(names)
        idx = []
        for n in names:
            if n not in self._band_names:
                raise KeyError(f"Band {n!r} not in {list(self._band_names)}")
            idx.append(self._band_names.index(n))
        return self._new(self._data[idx].copy(), names)

    def rename(self, names: Union[str, Sequence[str]]) -> "Field":
        return self._new(self._data, [names] if isinstance(names, str) else list(names))

    def add_bands(self, other: "Field") -> "Field":
        """Append the bands of *other* (must share the grid)."""
        if not self._grid.matches(other.grid):
            raise ValueError("Cannot add bands from a Field on a different grid; regrid it first.")
        data = np.concatenate([self._data, other.data], axis=0)
        return self._new(data, self._band_names + other.band_names)

    def add(self, value: float) -> "Field":
        return self._new(self._data + value, self._band_names)

    def subtract(self, value: float) -> "Field":
        return self._new(self._data - value, self._band_names)

    def multiply(self, value: float) -> "Field":
        return self._new(self._data * value, self._band_names)

    def with_properties(self, **props: Any) -> "Field":
        merged = dict(self._properties)
        merged.update(props)
        return Field(self._data, self._band_names, self._grid, merged, copy=False)

    # --- resampling ----------------------------------------------------

    def regrid(self, target: Grid, method: str = "auto") -> "Field":
        """Evaluate the field on *target* (see module notes for *method*)."""
        if self._grid.matches(target):
            return self
        if method == "auto":
            method = "mean" if target.res > self._grid.res * (1 + 1e-9) else "nearest"
        try:
            resampling = _RESAMPLING[method]
        except KeyError:
            raise ValueError("method must be 'auto', 'nearest' or 'mean'.") from None
        out = _warp(self._data, self._grid, target, resampling)
        return self._new(out, self._band_names, target)

    # --- constructors / export -----------------------------------------

    @classmethod
    def full(cls, grid: Grid, band_name: str, value: float = np.nan) -> "Field":
        return cls(np.full(grid.shape, value, dtype=np.float64), band_name, grid, copy=False)

    @classmethod
    def cat(cls, fields: Iterable["Field"], properties: Optional[Mapping[str, Any]] = None) -> "Field":
        """Concatenate the bands of several fields sharing one grid."""
        fields = list(fields)
        if not fields:
            raise ValueError("Nothing to concatenate.")
        out = fields[0]
        for f in fields[1:]:
            out = out.add_bands(f)
        return Field(out.data, out.band_names, out.grid, properties, copy=False)

    def to_dataarray(self) -> xr.DataArray:
        """Expose the field as an :class:`xarray.DataArray` (``band, y, x``)."""
        attrs = dict(self._properties)
        attrs["crs"] = self._grid.crs
        attrs["scale"] = self._grid.res
        return xr.DataArray(
            np.array(self._data),
            dims=("band", "y", "x"),
            coords={
                "band": list(self._band_names),
                "y": self._grid.y_centers(),
                "x": self._grid.x_centers(),
            },
            attrs=attrs,
        )


def _warp(data: np.ndarray, src: Grid, dst: Grid, resampling: Resampling) -> np.ndarray:
    """Warp a ``(bands, h, w)`` stack from *src* onto *dst*; outside pixels are NaN."""
    src_crs = CRS.from_user_input(src.crs or dst.crs or LOCAL_CRS)
    dst_crs = CRS.from_user_input(dst.crs or src.crs or LOCAL_CRS)
    out = np.full((data.shape[0],) + dst.shape, np.nan, dtype=np.float64)
    reproject(
        source=np.array(data, dtype=np.float64),
        destination=out,
        src_transform=src.transform,
        src_crs=src_crs,
        dst_transform=dst.transform,
        dst_crs=dst_crs,
        resampling=resampling,
        src_nodata=np.nan,
        dst_nodata=np.nan,
    )
    return out


# ---------------------------------------------------------------------
# Collections of single-band layers
# ---------------------------------------------------------------------


class FieldCollection:
    """Time-ordered stack of single-band layers on one grid.

    The combinations ignore null observations pixel by pixel; a pixel with
    no valid observation (or an empty collection) stays null.
    """

    def __init__(
        self,
        grid: Grid,
        band: str,
        layers: Sequence[np.ndarray] = (),
        times: Optional[Sequence[Any]] = None,
    ) -> None:
        self.grid = grid
        self.band = band
        self._layers: List[np.ndarray] = [np.asarray(a, dtype=np.float64) for a in layers]
        for a in self._layers:
            if a.shape != grid.shape:
                raise ValueError(f"Layer shape {a.shape} does not match grid shape {grid.shape}.")
        self.times = list(times) if times is not None else [None] * len(self._layers)
        if len(self.times) != len(self._layers):
            raise ValueError("times and layers must have the same length.")

    def __len__(self) -> int:
        return len(self._layers)

    def __iter__(self) -> Iterator[np.ndarray]:
        return iter(self._layers)

    @property
    def size(self) -> int:
        return len(self._layers)

    def _stack(self) -> np.ndarray:
        return np.stack(self._layers, axis=0)

    def sum(self) -> Field:
        if not self._layers:
            return Field.full(self.grid, self.band)
        stack = self._stack()
        valid = np.isfinite(stack)
        total = np.where(valid, stack, 0.0).sum(axis=0)
        total[~valid.any(axis=0)] = np.nan
        return Field(total, self.band, self.grid, copy=False)

    def mean(self) -> Field:
        if not self._layers:
            return Field.full(self.grid, self.band)
        stack = self._stack()
        valid = np.isfinite(stack)
        count = valid.sum(axis=0)
        total = np.where(valid, stack, 0.0).sum(axis=0)
        out = np.full(self.grid.shape, np.nan)
        np.divide(total, count, out=out, where=count > 0)
        return Field(out, self.band, self.grid, copy=False)

    def median(self) -> Field:
        if not self._layers:
            return Field.full(self.grid, self.band)
        with warnings.catch_warnings():
            # all-null pixels are expected and stay NaN
            warnings.simplefilter("ignore", category=RuntimeWarning)
            out = np.nanmedian(self._stack(), axis=0)
        return Field(out, self.band, self.grid, copy=False)


# ---------------------------------------------------------------------
# Polygon masks and zonal reduction
# ---------------------------------------------------------------------


def centers_within(grid: Grid, geometry: Any) -> np.ndarray:
    """Boolean mask of the pixels whose centre lies inside *geometry*."""
    return geometry_mask([geometry], out_shape=grid.shape, transform=grid.transform, invert=True)


def coverage_fraction(grid: Grid, geometry: Any) -> np.ndarray:
    """Fraction (0..1) of every pixel covered by *geometry*."""
    boxes = grid.pixel_boxes()
    inter = shapely.intersection(boxes, geometry)
    return shapely.area(inter) / (grid.res * grid.res)


def zonal_summary(field: Field, geometry: Any, scale: float) -> pd.DataFrame:
    """Per-band coverage-weighted mean of *field* over *geometry* at *scale*.

    Returns
    -------
    DataFrame
        Indexed by band name with columns ``mean`` (``NaN`` when no valid
        pixel intersects the geometry), ``valid_fraction`` (share of the
        geometry's pixel weight holding valid values) and ``n_valid``.
    """
    target = Grid.covering(
        shapely.bounds(geometry).tolist(),
        scale,
        crs=field.grid.crs,
        anchor=(field.grid.x0, field.grid.y0),
    )
    values = field.regrid(target).data
    weights = coverage_fraction(target, geometry)
    total_w = float(weights.sum())

    rows = []
    for name, band in zip(field.band_names, values):
        ok = np.isfinite(band) & (weights > 0)
        w = weights[ok]
        wsum = float(w.sum())
        mean = float(np.sum(band[ok] * w) / wsum) if wsum > 0 else np.nan
        rows.append(
            {
                "band": name,
                "mean": mean,
                "valid_fraction": wsum / total_w if total_w > 0 else 0.0,
                "n_valid": int(ok.sum()),
            }
        )
    return pd.DataFrame(rows).set_index("band")


def reduce_region(
    field: Field, geometry: Any, scale: float, reducer: str = "mean"
) -> Dict[str, float]:
    """Zonal reduction: one scalar per band (``NaN`` when undefined)."""
    if reducer != "mean":
        raise ValueError(f"Unsupported reducer {reducer!r}; only 'mean' is available.")
    return zonal_summary(field, geometry, scale)["mean"].to_dict()


__all__ = [
    "Bounds",
    "Grid",
    "Field",
    "FieldCollection",
    "centers_within",
    "coverage_fraction",
    "zonal_summary",
    "reduce_region",
]
