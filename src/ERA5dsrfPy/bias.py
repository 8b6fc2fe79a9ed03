# src/ERA5dsrfPy/bias.py
# SPDX-License-Identifier: MIT
"""
Global additive bias correction of the downscaled field.

The forest reproduces fine-scale structure but may drift globally from the
coarse field it was trained on. A single scalar,

    bias = mean(coarse field over ROI at 9000 m) - mean(fine field over ROI at 500 m),

is added to every fine pixel, so the areal mean of the corrected field
equals the coarse areal mean while the spatial pattern is untouched.

Zonal means are weighted by ROI coverage and computed over valid pixels
only. A reduction with no valid pixel makes the bias undefined and raises
:class:`~ERA5dsrfPy.errors.BiasUndefinedError`; a reduction whose valid
pixels cover less than ``config.min_valid_fraction`` of the ROI still
proceeds but emits a :class:`~ERA5dsrfPy.errors.MissingDataWarning`.
"""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass
from typing import Optional, Union

from .config import DEFAULT_CONFIG, DownscalingConfig
from .errors import BiasUndefinedError, MissingDataWarning
from .raster import Field, zonal_summary
from .roi import RegionOfInterest
from .variables import Variable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BiasTerms:
    mean_low: float
    mean_high: float

    @property
    def bias(self) -> float:
        return self.mean_low - self.mean_high


def zonal_mean(
    field: Field,
    roi: RegionOfInterest,
    scale: float,
    *,
    band: Optional[str] = None,
    min_valid_fraction: float = DEFAULT_CONFIG.min_valid_fraction,
    label: str = "field",
) -> float:
    """Coverage-weighted mean of one band of *field* over *roi* at *scale*.

    Raises
    ------
    BiasUndefinedError
        If no valid pixel intersects the ROI.
    """
    band = band or field.band_names[0]
    summary = zonal_summary(field.select(band), roi.geometry, scale).loc[band]
    mean = float(summary["mean"])
    if not math.isfinite(mean):
        raise BiasUndefinedError(f"Zonal mean of {label} ({band}) at {scale:g} m has no valid pixels.")
    frac = float(summary["valid_fraction"])
    if frac < min_valid_fraction:
        msg = (
            f"Zonal mean of {label} ({band}) at {scale:g} m uses valid pixels covering "
            f"only {frac:.1%} of the ROI."
        )
        logger.warning(msg)
        warnings.warn(msg, MissingDataWarning, stacklevel=2)
    return mean


def bias_terms(
    lowres: Field,
    highres: Field,
    roi: RegionOfInterest,
    *,
    config: DownscalingConfig = DEFAULT_CONFIG,
) -> BiasTerms:
    mean_low = zonal_mean(
        lowres, roi, config.coarse_scale, min_valid_fraction=config.min_valid_fraction, label="coarse field"
    )
    mean_high = zonal_mean(
        highres, roi, config.fine_scale, min_valid_fraction=config.min_valid_fraction, label="fine prediction"
    )
    return BiasTerms(mean_low=mean_low, mean_high=mean_high)


def correct(
    lowres: Field,
    highres: Field,
    roi: RegionOfInterest,
    variable: Union[str, Variable],
    *,
    config: DownscalingConfig = DEFAULT_CONFIG,
) -> Field:
    """Shift *highres* by the global bias and name it ``<variable>_corrected``.

    Returns
    -------
    Field
        Single band ``<variable>_corrected`` on the grid of *highres*; its
        properties record ``mean_low``, ``mean_high`` and ``bias``.

    Raises
    ------
    BiasUndefinedError
        If either zonal mean has no valid pixels.
    """
    var = Variable.from_name(variable)
    try:
        terms = bias_terms(lowres, highres, roi, config=config)
    except BiasUndefinedError as err:
        err.with_variable(var.short_name)
        raise
    logger.info(
        "%s: meanLow=%.6g meanHigh=%.6g bias=%.6g", var, terms.mean_low, terms.mean_high, terms.bias
    )
    corrected = highres.add(terms.bias).rename(var.corrected_band)
    return corrected.with_properties(
        mean_low=terms.mean_low, mean_high=terms.mean_high, bias=terms.bias
    )


__all__ = ["BiasTerms", "zonal_mean", "bias_terms", "correct"]
