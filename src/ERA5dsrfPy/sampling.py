# src/ERA5dsrfPy/sampling.py
# SPDX-License-Identifier: MIT
"""
Adaptive spatial sampling of the training points.

The number of points follows the ROI area (0.5 points per km²) clamped to
[1000, 8000]: small regions are not over-sampled and large regions keep a
bounded training cost. Points are pixel centres of the combined field
evaluated at the training scale (500 m), drawn inside the ROI with a fixed
seed; rows holding a null in any band are dropped.
"""

from __future__ import annotations

import logging
import math

import numpy as np
import pandas as pd

from .config import DEFAULT_CONFIG, DownscalingConfig
from .raster import Field, Grid, centers_within
from .roi import RegionOfInterest

logger = logging.getLogger(__name__)


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def sample_count(
    roi_area_km2: float,
    *,
    points_per_km2: float = DEFAULT_CONFIG.points_per_km2,
    min_points: int = DEFAULT_CONFIG.min_points,
    max_points: int = DEFAULT_CONFIG.max_points,
) -> int:
    """``clamp(round(area * points_per_km2), min_points, max_points)``.

    Examples
    --------
    >>> sample_count(0), sample_count(3000), sample_count(20000)
    (1000, 1500, 8000)
    """
    area = float(roi_area_km2)
    if not math.isfinite(area) or area <= 0:
        return int(min_points)
    n = _round_half_up(area * points_per_km2)
    return int(min(max(n, min_points), max_points))


def sample_count_for(roi: RegionOfInterest, config: DownscalingConfig = DEFAULT_CONFIG) -> int:
    return sample_count(
        roi.area_km2,
        points_per_km2=config.points_per_km2,
        min_points=config.min_points,
        max_points=config.max_points,
    )


def draw_samples(
    field: Field,
    count: int,
    roi: RegionOfInterest,
    *,
    scale: float = DEFAULT_CONFIG.sample_scale,
    seed: int = DEFAULT_CONFIG.seed,
) -> pd.DataFrame:
    """Draw up to *count* pixels of *field* inside *roi* at *scale*.

    Parameters
    ----------
    field :
        Combined (target + covariates) field.
    count :
        Number of pixels to draw before null rows are dropped. When the ROI
        holds fewer pixels, all of them are used.
    roi :
        Sampling region; a pixel is eligible when its centre lies inside.
    scale :
        Sampling resolution in metres.
    seed :
        Seed of :func:`numpy.random.default_rng`; identical inputs and seed
        give identical samples.

    Returns
    -------
    DataFrame
        Columns ``x, y`` (pixel centre) followed by one column per band,
        without nulls. May be empty.
    """
    if count < 1:
        raise ValueError("count must be >= 1.")
    grid = Grid.covering(roi.bounds, scale, crs=field.grid.crs, anchor=(field.grid.x0, field.grid.y0))
    values = field.regrid(grid, method="nearest").data

    inside = centers_within(grid, roi.geometry)
    rows, cols = np.nonzero(inside)
    n_eligible = rows.size
    rng = np.random.default_rng(seed)
    if n_eligible > count:
        pick = np.sort(rng.choice(n_eligible, size=count, replace=False))
        rows, cols = rows[pick], cols[pick]

    xs = grid.x_centers()[cols]
    ys = grid.y_centers()[rows]
    table = pd.DataFrame({"x": xs, "y": ys})
    for name, band in zip(field.band_names, values):
        table[name] = band[rows, cols]

    n_drawn = len(table)
    table = table.dropna(subset=list(field.band_names)).reset_index(drop=True)
    logger.debug(
        "Sampled %d of %d eligible pixels at %g m; %d rows after dropping nulls",
        n_drawn,
        n_eligible,
        scale,
        len(table),
    )
    return table


__all__ = ["sample_count", "sample_count_for", "draw_samples"]
