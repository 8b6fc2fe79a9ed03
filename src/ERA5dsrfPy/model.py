# src/ERA5dsrfPy/model.py
# SPDX-License-Identifier: MIT
"""
Random-forest regression from covariates to a coarse daily field.

A fresh :class:`~sklearn.ensemble.RandomForestRegressor` (80 trees,
``random_state=42``) is trained for every (variable, day): the target is
the aggregated band, the features are every other band of the combined
field. Prediction is a per-pixel function of the covariates, so the output
has the resolution of the covariate stack, not of the coarse target.
Models are never persisted nor reused.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field as dc_field
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestRegressor

from .config import DEFAULT_CONFIG, DownscalingConfig
from .errors import InsufficientTrainingDataError
from .metrics import regression_metrics
from .raster import Field

logger = logging.getLogger(__name__)

PREDICTION_BAND = "highres"


@dataclass
class TrainedModel:
    """A fitted forest bound to one target band.

    Attributes
    ----------
    estimator :
        Fitted :class:`RandomForestRegressor`.
    target :
        Name of the target band (e.g. ``t2m_daily``).
    features :
        Ordered feature band names expected at prediction time.
    n_train_rows :
        Number of sample rows used for fitting.
    fit_metrics :
        In-sample diagnostics (see :func:`~ERA5dsrfPy.metrics.regression_metrics`).
    variable, day :
        Optional labels for logging.
    """

    estimator: RandomForestRegressor
    target: str
    features: List[str]
    n_train_rows: int
    fit_metrics: Dict[str, float] = dc_field(default_factory=dict)
    variable: Optional[str] = None
    day: Optional[str] = None


def feature_bands_for(field_or_names, target_band: str) -> List[str]:
    """All band names except *target_band*, in their original order."""
    names = field_or_names.band_names if isinstance(field_or_names, Field) else field_or_names
    if target_band not in names:
        raise KeyError(f"Target band {target_band!r} not in {list(names)}")
    return [n for n in names if n != target_band]


def train(
    samples: pd.DataFrame,
    target_band: str,
    feature_bands: Sequence[str],
    *,
    config: DownscalingConfig = DEFAULT_CONFIG,
    variable: Optional[str] = None,
    day: Optional[str] = None,
) -> TrainedModel:
    """Fit a random forest predicting *target_band* from *feature_bands*.

    Raises
    ------
    InsufficientTrainingDataError
        If fewer than ``config.min_training_rows`` complete rows remain.
    """
    features = list(feature_bands)
    missing = [c for c in features + [target_band] if c not in samples.columns]
    if missing:
        raise ValueError(f"Sample table is missing columns: {missing}")

    df = samples.dropna(subset=features + [target_band])
    if len(df) < max(1, int(config.min_training_rows)):
        raise InsufficientTrainingDataError(
            f"Only {len(df)} complete sample rows for {target_band} "
            f"(need >= {max(1, int(config.min_training_rows))}).",
            variable=variable,
        )

    # Plain float arrays avoid feature-name warnings at predict time
    X = np.asarray(df[features].to_numpy(copy=False), dtype=float)
    y = np.asarray(df[target_band].to_numpy(copy=False), dtype=float)

    estimator = RandomForestRegressor(**config.rf_params())
    estimator.fit(X, y)

    fit = regression_metrics(y, estimator.predict(X))
    logger.debug(
        "%s: forest fitted on %d rows, %d features; in-sample RMSE=%.4g R2=%.3f",
        variable or target_band,
        len(df),
        len(features),
        fit["RMSE"],
        fit["R2"],
    )
    return TrainedModel(
        estimator=estimator,
        target=target_band,
        features=features,
        n_train_rows=int(len(df)),
        fit_metrics=fit,
        variable=variable,
        day=day,
    )


def predict(model: TrainedModel, field: Field, feature_bands: Optional[Sequence[str]] = None) -> Field:
    """Apply *model* to every pixel of *field*; returns band ``highres``.

    Pixels where any feature is null stay null.
    """
    features = list(feature_bands) if feature_bands is not None else model.features
    if features != model.features:
        raise ValueError(f"Model expects features {model.features}, got {features}.")
    stack = field.select(features).data
    n_feat, h, w = stack.shape
    X = stack.reshape(n_feat, -1).T
    ok = np.isfinite(X).all(axis=1)

    out = np.full(h * w, np.nan)
    if ok.any():
        out[ok] = model.estimator.predict(X[ok])
    return Field(out.reshape(h, w), PREDICTION_BAND, field.grid, copy=False)


__all__ = ["PREDICTION_BAND", "TrainedModel", "feature_bands_for", "train", "predict"]
