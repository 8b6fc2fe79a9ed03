# src/ERA5dsrfPy/roi.py
# SPDX-License-Identifier: MIT
"""Region of interest: one polygon in a projected (metric) CRS."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

import shapely
from rasterio.crs import CRS
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry

from .raster import Bounds


@dataclass(frozen=True)
class RegionOfInterest:
    """Immutable ROI polygon.

    Coordinates are expected in metres (projected CRS), so that pixel
    scales and :attr:`area_km2` are expressed in the same units.
    """

    geometry: BaseGeometry
    crs: Optional[str] = None
    name: str = "roi"

    def __post_init__(self) -> None:
        if self.geometry.is_empty:
            raise ValueError("ROI geometry is empty.")
        if self.geometry.geom_type not in ("Polygon", "MultiPolygon"):
            raise TypeError(f"ROI must be a (Multi)Polygon, got {self.geometry.geom_type}.")

    @property
    def area_km2(self) -> float:
        return float(self.geometry.area) / 1e6

    @property
    def bounds(self) -> Bounds:
        return tuple(float(v) for v in self.geometry.bounds)

    def check_crs(self, crs: Optional[Any], what: str = "grid") -> None:
        """Raise ``ValueError`` when *crs* and the ROI CRS are both set and differ."""
        if self.crs is None or crs is None:
            return
        if CRS.from_user_input(self.crs) != CRS.from_user_input(crs):
            raise ValueError(
                f"ROI {self.name!r} is in {self.crs} but the {what} is in {crs}; "
                "reproject one of them first."
            )

    @classmethod
    def from_bounds(
        cls, xmin: float, ymin: float, xmax: float, ymax: float, *, crs: Optional[str] = None, name: str = "roi"
    ) -> "RegionOfInterest":
        return cls(box(xmin, ymin, xmax, ymax), crs=crs, name=name)

    @classmethod
    def from_file(
        cls, path: Union[str, Path], *, crs: Optional[Any] = None, name: Optional[str] = None
    ) -> "RegionOfInterest":
        """Load a vector file (shapefile, GeoJSON, GeoPackage…) with geopandas.

        All features are dissolved into one geometry. When *crs* is given the
        layer is reprojected to it; otherwise the layer must already be in a
        projected CRS.
        """
        import geopandas as gpd

        gdf = gpd.read_file(path)
        if gdf.empty:
            raise ValueError(f"No features in {path}.")
        if crs is not None:
            gdf = gdf.to_crs(crs)
        elif gdf.crs is not None and gdf.crs.is_geographic:
            raise ValueError(
                f"{path} is in a geographic CRS ({gdf.crs}); pass a projected `crs` to reproject."
            )
        geom = shapely.union_all(list(gdf.geometry))
        crs_str = gdf.crs.to_string() if gdf.crs is not None else None
        return cls(geom, crs=crs_str, name=name or Path(path).stem)


__all__ = ["RegionOfInterest"]
