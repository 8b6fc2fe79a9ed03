# src/ERA5dsrfPy/pipeline.py
# SPDX-License-Identifier: MIT
"""
Daily downscaling of all ERA5-Land variables over one ROI.

For a given day the pipeline

1. builds the covariate stack once (NDVI + elevation, slope, aspect,
   land cover) and the adaptive sample count once (from the ROI area);
2. for each variable, independently:

   - aggregates the hourly source into a daily coarse field,
   - places it on the covariate grid and adds the covariates,
   - draws the training samples,
   - trains a random forest and predicts the fine field,
   - applies the global bias correction;

3. concatenates the eight ``<variable>_corrected`` bands in declared order
   into one field tagged ``dayProcessed``.

Variables can run concurrently (``config.max_workers``); every fatal
per-variable error is collected, and if any variable fails the day fails
with :class:`~ERA5dsrfPy.errors.DayProcessingError`. No partial product is
returned.

Example
-------
    >>> from ERA5dsrfPy import DownscalingPipeline, RegionOfInterest
    >>> pipe = DownscalingPipeline(roi, hourly, vegetation, terrain, landcover)
    >>> day = pipe.process_day("2025-03-10")
    >>> day.band_names[0], day.properties["dayProcessed"]
    ('t2m_corrected', '2025-03-10')
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from dataclasses import field as dc_field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd
from tqdm.auto import tqdm

from .aggregate import aggregate_daily
from .bias import correct
from .config import DEFAULT_CONFIG, DownscalingConfig
from .covariates import CovariateStore
from .errors import DayProcessingError, DownscalingError, MissingDataError
from .model import feature_bands_for, predict, train
from .raster import Field
from .roi import RegionOfInterest
from .sampling import draw_samples, sample_count_for
from .sources import HourlySource, LandCoverSource, TerrainSource, VegetationSource
from .variables import Variable

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# Per-variable sub-pipeline
# ---------------------------------------------------------------------


@dataclass
class VariableResult:
    """Outcome of one variable's sub-pipeline (either a field or an error)."""

    variable: str
    corrected: Optional[Field] = None
    error: Optional[DownscalingError] = None
    n_samples: int = 0
    fit_metrics: Dict[str, float] = dc_field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None and self.corrected is not None

    @property
    def bias(self) -> float:
        if self.corrected is None:
            return math.nan
        return float(self.corrected.properties.get("bias", math.nan))


def combine_with_covariates(lowres: Field, covariates: Field) -> Field:
    """Target band on the covariate grid (nearest neighbour) + covariate bands."""
    return lowres.regrid(covariates.grid, method="nearest").add_bands(covariates)


def process_variable(
    day: Union[str, pd.Timestamp],
    variable: Union[str, Variable],
    covariates: Field,
    n_points: int,
    hourly: HourlySource,
    roi: RegionOfInterest,
    *,
    config: DownscalingConfig = DEFAULT_CONFIG,
) -> VariableResult:
    """Run aggregate -> combine -> sample -> train/predict -> correct for one variable.

    Raises
    ------
    UnknownVariableError, MissingDataError, InsufficientTrainingDataError, BiasUndefinedError
        Tagged with the variable name.
    """
    var = Variable.from_name(variable)
    day_str = pd.Timestamp(day).date().isoformat()

    lowres = aggregate_daily(day, var, hourly, roi, config=config)
    if lowres.is_null():
        raise MissingDataError(
            f"Daily {var.daily_band} for {day_str} has no valid pixel.", variable=var.short_name
        )

    combined = combine_with_covariates(lowres, covariates)
    target = var.daily_band
    features = feature_bands_for(combined, target)
    logger.debug("%s: target=%s features=%s", var, target, features)

    samples = draw_samples(combined, n_points, roi, scale=config.sample_scale, seed=config.seed)
    model = train(samples, target, features, config=config, variable=var.short_name, day=day_str)
    highres = predict(model, combined, features)
    corrected = correct(lowres, highres, roi, var, config=config)

    return VariableResult(
        variable=var.short_name,
        corrected=corrected,
        n_samples=model.n_train_rows,
        fit_metrics=dict(model.fit_metrics),
    )


# ---------------------------------------------------------------------
# Day orchestration
# ---------------------------------------------------------------------


class DownscalingPipeline:
    """Orchestrates the daily downscaling over one ROI.

    Parameters
    ----------
    roi :
        Region of interest (projected CRS, metres).
    hourly, vegetation, terrain, landcover :
        Data sources (see :mod:`ERA5dsrfPy.sources`).
    config :
        Run constants; ``config.variables`` sets the processed variables and
        their output order, ``config.max_workers`` the concurrency.
    now :
        Reference "current date" of the NDVI month rule (default: wall clock).

    Raises
    ------
    ValueError
        If a source exposing a ``grid`` is in another CRS than the ROI
        (terrain, land cover and hourly layers are checked again on load).
    """

    def __init__(
        self,
        roi: RegionOfInterest,
        hourly: HourlySource,
        vegetation: VegetationSource,
        terrain: TerrainSource,
        landcover: LandCoverSource,
        *,
        config: DownscalingConfig = DEFAULT_CONFIG,
        now: Optional[Union[str, datetime]] = None,
    ) -> None:
        for what, source in (("hourly source", hourly), ("vegetation source", vegetation)):
            grid = getattr(source, "grid", None)
            if grid is not None:
                roi.check_crs(grid.crs, what)
        self.roi = roi
        self.hourly = hourly
        self.vegetation = vegetation
        self.config = config
        self.now = now
        self.store = CovariateStore(roi, terrain, landcover, config=config)

    def covariates(self, day: Union[str, pd.Timestamp]) -> Field:
        return self.store.compose(day, self.vegetation, now=self.now)

    def sample_count(self) -> int:
        return sample_count_for(self.roi, self.config)

    def run_variable(
        self,
        day: Union[str, pd.Timestamp],
        variable: Union[str, Variable],
        covariates: Field,
        n_points: int,
    ) -> VariableResult:
        """Like :func:`process_variable` but returns failures as results."""
        try:
            result = process_variable(
                day, variable, covariates, n_points, self.hourly, self.roi, config=self.config
            )
        except DownscalingError as err:
            name = str(variable)
            err.with_variable(name)
            logger.error("%s failed: %s: %s", name, err.kind, err)
            return VariableResult(variable=name, error=err)
        logger.info("%s done: %d samples, bias=%.6g", result.variable, result.n_samples, result.bias)
        return result

    def run_variables(
        self,
        day: Union[str, pd.Timestamp],
        *,
        variables: Optional[Sequence[Union[str, Variable]]] = None,
        progress: bool = False,
    ) -> List[VariableResult]:
        """Run every variable sub-pipeline of *day*; results keep the input order."""
        variables = list(variables) if variables is not None else list(self.config.variables)
        covariates = self.covariates(day)
        n_points = self.sample_count()
        logger.info("ROI %s: %.2f km2 -> %d sample points", self.roi.name, self.roi.area_km2, n_points)

        def _run(v: Union[str, Variable]) -> VariableResult:
            return self.run_variable(day, v, covariates, n_points)

        bar = dict(total=len(variables), desc="Downscaling variables", unit="var", disable=not progress)
        if self.config.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as ex:
                return list(tqdm(ex.map(_run, variables), **bar))
        return [_run(v) for v in tqdm(variables, **bar)]

    def process_day(self, day: Union[str, pd.Timestamp], *, progress: bool = False) -> Field:
        """Downscale every configured variable for *day*.

        Returns
        -------
        Field
            Bands ``<variable>_corrected`` in configured order, with
            ``properties["dayProcessed"]`` set to the ISO date.

        Raises
        ------
        DayProcessingError
            If any variable failed; lists every failed variable and kind.
        """
        day_str = pd.Timestamp(day).date().isoformat()
        logger.info("Processing %s (%d variables)", day_str, len(self.config.variables))

        results = self.run_variables(day, progress=progress)
        failures = {r.variable: r.error for r in results if not r.ok}
        if failures:
            raise DayProcessingError(day_str, failures)

        product = Field.cat([r.corrected for r in results], properties={"dayProcessed": day_str})
        logger.info("Finished %s: %s", day_str, list(product.band_names))
        return product


def process_day(
    day: Union[str, pd.Timestamp],
    roi: RegionOfInterest,
    hourly: HourlySource,
    vegetation: VegetationSource,
    terrain: TerrainSource,
    landcover: LandCoverSource,
    *,
    config: DownscalingConfig = DEFAULT_CONFIG,
    now: Optional[Union[str, datetime]] = None,
    progress: bool = False,
) -> Field:
    """Functional shortcut for :meth:`DownscalingPipeline.process_day`."""
    pipe = DownscalingPipeline(roi, hourly, vegetation, terrain, landcover, config=config, now=now)
    return pipe.process_day(day, progress=progress)


__all__ = [
    "VariableResult",
    "combine_with_covariates",
    "process_variable",
    "DownscalingPipeline",
    "process_day",
]
