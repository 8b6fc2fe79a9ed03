# src/ERA5dsrfPy/ndvi.py
# SPDX-License-Identifier: MIT
"""
Monthly NDVI composite used as a date-dependent covariate.

The vegetation-index product of the running month may still be
incomplete, so a day falling in the current (wall-clock) month uses the
composite of the previous month instead. The composite is the per-pixel
median of the month's scenes, scaled by 0.0001 to physical NDVI.
"""

from __future__ import annotations

import logging
import warnings
from datetime import datetime
from typing import Optional, Tuple, Union

import pandas as pd

from .config import DEFAULT_CONFIG, DownscalingConfig
from .errors import MissingDataWarning
from .raster import Field
from .roi import RegionOfInterest
from .sources import VegetationSource

logger = logging.getLogger(__name__)


def resolve_ndvi_month(
    day: Union[str, pd.Timestamp], now: Optional[Union[str, datetime]] = None
) -> Tuple[int, int]:
    """Return the ``(year, month)`` whose composite serves *day*.

    Same ``(year, month)`` as *now* (default: wall clock) -> previous month;
    any other day -> its own month.
    """
    d = pd.Timestamp(day)
    n = pd.Timestamp(now) if now is not None else pd.Timestamp(datetime.now())
    if (d.year, d.month) == (n.year, n.month):
        prev = d.to_period("M") - 1
        return prev.year, prev.month
    return d.year, d.month


def month_window(year: int, month: int) -> Tuple[pd.Timestamp, pd.Timestamp]:
    start = pd.Timestamp(year=year, month=month, day=1)
    return start, start + pd.offsets.MonthBegin(1)


def monthly_ndvi(
    day: Union[str, pd.Timestamp],
    source: VegetationSource,
    roi: RegionOfInterest,
    *,
    now: Optional[Union[str, datetime]] = None,
    config: DownscalingConfig = DEFAULT_CONFIG,
) -> Field:
    """Median NDVI composite (band ``NDVI``) for the month serving *day*.

    A month without scenes yields an entirely null field and a
    :class:`~ERA5dsrfPy.errors.MissingDataWarning`; it is not an error here.
    """
    year, month = resolve_ndvi_month(day, now)
    start, end = month_window(year, month)
    collection = source.fetch(roi.bounds, start, end)
    logger.info("NDVI for %s: %04d-%02d composite of %d scenes", pd.Timestamp(day).date(), year, month, collection.size)
    if collection.size == 0:
        msg = f"No NDVI scenes for {year:04d}-{month:02d}; NDVI covariate is null."
        logger.warning(msg)
        warnings.warn(msg, MissingDataWarning, stacklevel=2)
    composite = collection.median().multiply(config.ndvi_scale_factor)
    return composite.rename("NDVI").with_properties(ndvi_month=f"{year:04d}-{month:02d}")


__all__ = ["resolve_ndvi_month", "month_window", "monthly_ndvi"]
