# src/ERA5dsrfPy/aggregate.py
# SPDX-License-Identifier: MIT
"""
Daily aggregation of hourly ERA5-Land bands.

A day is the half-open window ``[day 00:00, day + 1 00:00)``. Instantaneous
variables are averaged over the window, accumulated variables are summed,
and ``t2m`` / ``d2m`` are converted from Kelvin to Celsius. The result is a
single-band coarse field named ``<variable>_daily`` or ``<variable>_accum``.
"""

from __future__ import annotations

import logging
import warnings
from typing import Tuple, Union

import pandas as pd

from .config import DEFAULT_CONFIG, DownscalingConfig
from .errors import MissingDataError, MissingDataWarning
from .raster import Field
from .roi import RegionOfInterest
from .sources import HourlySource
from .variables import Variable

logger = logging.getLogger(__name__)


def day_window(day: Union[str, pd.Timestamp]) -> Tuple[pd.Timestamp, pd.Timestamp]:
    """Return ``(start, end)`` of the 24-hour window of *day*."""
    start = pd.Timestamp(day).normalize()
    return start, start + pd.Timedelta(days=1)


def aggregate_daily(
    day: Union[str, pd.Timestamp],
    variable: Union[str, Variable],
    source: HourlySource,
    roi: RegionOfInterest,
    *,
    config: DownscalingConfig = DEFAULT_CONFIG,
) -> Field:
    """Aggregate the hourly observations of *variable* on *day*.

    Parameters
    ----------
    day :
        Calendar day (anything :class:`pandas.Timestamp` accepts); the time
        of day is ignored.
    variable :
        Short name (``"t2m"``) or :class:`~ERA5dsrfPy.variables.Variable`.
    source :
        Hourly data source.
    roi :
        Region of interest; its bounding box limits the query.
    config :
        Supplies the Kelvin offset.

    Returns
    -------
    Field
        Single band ``<name>_accum`` (sum) or ``<name>_daily`` (mean).
        When the source returns no observation the field is entirely null
        and a :class:`~ERA5dsrfPy.errors.MissingDataWarning` is emitted.

    Raises
    ------
    UnknownVariableError
        If *variable* has no source-band mapping (nothing is fetched).
    MissingDataError
        If the source does not hold the band or does not cover the ROI.
    """
    var = Variable.from_name(variable)
    start, end = day_window(day)

    try:
        collection = source.fetch(var.source_band, start, end, roi.bounds)
    except MissingDataError as err:
        err.with_variable(var.short_name)
        raise
    roi.check_crs(collection.grid.crs, f"{var.source_band} grid")
    logger.debug("%s: %d hourly layers of %s in [%s, %s)", var, collection.size, var.source_band, start, end)
    if collection.size == 0:
        msg = f"No hourly {var.source_band} observations for {start.date()}; {var.daily_band} is null."
        logger.warning(msg)
        warnings.warn(msg, MissingDataWarning, stacklevel=2)

    daily = collection.sum() if var.is_accumulated else collection.mean()
    if var.is_kelvin:
        daily = daily.subtract(config.kelvin_offset)
    return daily.rename(var.daily_band)


__all__ = ["day_window", "aggregate_daily"]
