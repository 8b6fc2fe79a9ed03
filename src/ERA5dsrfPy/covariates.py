# src/ERA5dsrfPy/covariates.py
# SPDX-License-Identifier: MIT
"""
Covariate stack shared by every variable of a day.

Bands, in order: ``NDVI, elevation, slope, aspect, LandCover``.

- elevation, slope and aspect are static: read once per run and cached by
  :class:`CovariateStore`;
- ``LandCover`` is the classification of a fixed year (2023 by default);
- ``NDVI`` is the monthly composite for the processed day
  (:func:`~ERA5dsrfPy.ndvi.monthly_ndvi`), placed on the terrain grid.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Optional, Union

import numpy as np
import pandas as pd

from .config import DEFAULT_CONFIG, DownscalingConfig
from .ndvi import monthly_ndvi
from .raster import Field
from .roi import RegionOfInterest
from .sources import LandCoverSource, TerrainSource, VegetationSource

logger = logging.getLogger(__name__)

COVARIATE_BANDS = ("NDVI", "elevation", "slope", "aspect", "LandCover")


def terrain_derivatives(elevation: Field) -> Field:
    """Slope and aspect (degrees) from a single-band elevation field.

    Slope is the steepest-descent angle. Aspect is the compass direction
    the slope faces (0 = north, 90 = east), measured clockwise. Gradients
    are central differences, one-sided on the border; null elevations
    propagate to their neighbours.
    """
    z = elevation.data[0]
    res = elevation.scale
    if min(z.shape) < 2:
        raise ValueError("Elevation needs at least 2x2 pixels to derive slope and aspect.")
    dz_drow, dz_dx = np.gradient(z, res)
    dz_dnorth = -dz_drow  # rows grow southwards

    slope = np.degrees(np.arctan(np.hypot(dz_dx, dz_dnorth)))
    aspect = np.degrees(np.arctan2(-dz_dx, -dz_dnorth)) % 360.0
    aspect[(dz_dx == 0) & (dz_dnorth == 0)] = 0.0
    return Field(np.stack([slope, aspect]), ("slope", "aspect"), elevation.grid, copy=False)


class CovariateStore:
    """Static terrain and land-cover layers for one ROI.

    Layers are fetched on first use and then reused for every day and
    variable of the run; concurrent first calls fetch only once.
    """

    def __init__(
        self,
        roi: RegionOfInterest,
        terrain: TerrainSource,
        landcover: LandCoverSource,
        *,
        config: DownscalingConfig = DEFAULT_CONFIG,
    ) -> None:
        self.roi = roi
        self.terrain = terrain
        self.landcover = landcover
        self.config = config
        self._static: Optional[Field] = None
        self._lock = threading.Lock()

    def static_layers(self) -> Field:
        """``elevation, slope, aspect, LandCover`` on the terrain grid."""
        with self._lock:
            if self._static is None:
                self._static = self._load()
            return self._static

    def _load(self) -> Field:
        dem = self.terrain.elevation(self.roi.bounds).rename("elevation")
        self.roi.check_crs(dem.grid.crs, "elevation grid")
        derived = terrain_derivatives(dem)
        lc = self.landcover.classification(self.config.landcover_year, self.roi.bounds)
        self.roi.check_crs(lc.grid.crs, "land-cover grid")
        lc = lc.select(lc.band_names[0]).rename("LandCover").regrid(dem.grid, method="nearest")
        static = dem.add_bands(derived).add_bands(lc)
        logger.info(
            "Static covariates loaded: %s px at %g m (land cover %d)",
            "x".join(map(str, dem.grid.shape)),
            dem.scale,
            self.config.landcover_year,
        )
        return static

    def compose(
        self,
        day: Union[str, pd.Timestamp],
        vegetation: VegetationSource,
        *,
        now: Optional[Union[str, datetime]] = None,
    ) -> Field:
        """Covariate stack for *day* (see :func:`compose_covariates`)."""
        static = self.static_layers()
        ndvi = monthly_ndvi(day, vegetation, self.roi, now=now, config=self.config)
        ndvi = ndvi.regrid(static.grid, method="nearest")
        stack = ndvi.add_bands(static)
        logger.debug("Covariate stack for %s: %s", pd.Timestamp(day).date(), list(stack.band_names))
        return stack


def compose_covariates(
    day: Union[str, pd.Timestamp],
    store: CovariateStore,
    vegetation: VegetationSource,
    *,
    now: Optional[Union[str, datetime]] = None,
) -> Field:
    """Return the ``NDVI, elevation, slope, aspect, LandCover`` stack for *day*."""
    return store.compose(day, vegetation, now=now)


__all__ = ["COVARIATE_BANDS", "terrain_derivatives", "CovariateStore", "compose_covariates"]
