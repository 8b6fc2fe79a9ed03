"""
ERA5dsrfPy
==========

Daily Random-Forest downscaling of ERA5-Land fields (~9 km) to ~500 m.

For one day and one region of interest, each of the eight ERA5-Land
variables (``t2m, d2m, u10, v10, sp, ssr, str, tp``) is

1. aggregated from hourly data into a daily coarse field
   (mean for instantaneous variables, sum for accumulated ones,
   Kelvin -> Celsius for temperatures);
2. regressed on a common covariate stack
   (monthly NDVI, elevation, slope, aspect, land cover) with a
   Random Forest trained on adaptively sampled points;
3. predicted at the covariate resolution and shifted by a single global
   bias so that its areal mean matches the coarse field.

The eight corrected bands are concatenated into one field tagged with the
processed day.

Main entry points
-----------------
- :class:`DownscalingPipeline` / :func:`process_day`
- :func:`aggregate_daily`, :func:`monthly_ndvi`, :class:`CovariateStore`
- :func:`sample_count`, :func:`draw_samples`
- :func:`train`, :func:`predict`, :func:`correct`

Example
-------
    >>> from ERA5dsrfPy import DownscalingPipeline, RegionOfInterest
    >>> roi = RegionOfInterest.from_file("la_libertad.gpkg", crs="EPSG:32717")
    >>> pipe = DownscalingPipeline(roi, hourly, vegetation, terrain, landcover)
    >>> product = pipe.process_day("2025-03-10")
    >>> product.band_names
    ('t2m_corrected', 'd2m_corrected', 'u10_corrected', 'v10_corrected',
     'sp_corrected', 'ssr_corrected', 'str_corrected', 'tp_corrected')
"""

from __future__ import annotations

# Public version (update in sync with pyproject.toml)
__version__ = "0.1.0"

from .errors import (
    DownscalingError,
    UnknownVariableError,
    MissingDataError,
    InsufficientTrainingDataError,
    BiasUndefinedError,
    DayProcessingError,
    MissingDataWarning,
)
from .variables import ALL_VARIABLES, Variable
from .config import DEFAULT_CONFIG, DownscalingConfig, load_config
from .logging_setup import setup_logging
from .raster import Field, FieldCollection, Grid, reduce_region
from .roi import RegionOfInterest

# ---------------------------------------------------------------------------
# Algorithm steps
# ---------------------------------------------------------------------------

from .aggregate import aggregate_daily
from .ndvi import monthly_ndvi, resolve_ndvi_month
from .covariates import CovariateStore, compose_covariates, terrain_derivatives
from .sampling import draw_samples, sample_count
from .model import TrainedModel, predict, train
from .bias import correct, zonal_mean
from .pipeline import DownscalingPipeline, VariableResult, process_day, process_variable

__all__ = [
    "__version__",
    # errors
    "DownscalingError",
    "UnknownVariableError",
    "MissingDataError",
    "InsufficientTrainingDataError",
    "BiasUndefinedError",
    "DayProcessingError",
    "MissingDataWarning",
    # data model / config
    "ALL_VARIABLES",
    "Variable",
    "DEFAULT_CONFIG",
    "DownscalingConfig",
    "load_config",
    "setup_logging",
    "Field",
    "FieldCollection",
    "Grid",
    "reduce_region",
    "RegionOfInterest",
    # steps
    "aggregate_daily",
    "monthly_ndvi",
    "resolve_ndvi_month",
    "CovariateStore",
    "compose_covariates",
    "terrain_derivatives",
    "draw_samples",
    "sample_count",
    "TrainedModel",
    "predict",
    "train",
    "correct",
    "zonal_mean",
    # orchestration
    "DownscalingPipeline",
    "VariableResult",
    "process_day",
    "process_variable",
]
