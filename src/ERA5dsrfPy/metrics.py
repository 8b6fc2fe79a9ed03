# src/ERA5dsrfPy/metrics.py
# SPDX-License-Identifier: MIT
"""
Fit diagnostics for the per-variable regression models.

The downscaling has no independent reference at 500 m, so these metrics
only describe how well each random forest reproduces its own training
samples (in-sample fit). They are logged and kept on the trained model;
they are not a validation against station observations.

Key design choices
------------------
* Inputs are accepted as any iterable (lists, NumPy arrays, pandas Series).
* Outputs are plain ``float`` or ``numpy.nan`` when the metric is undefined.
* R² is the square of the Pearson correlation between targets and
  predictions, not ``sklearn.metrics.r2_score``.
"""

from __future__ import annotations

from typing import Dict, Iterable, Tuple

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error


def _as_arrays(
    y_true: Iterable[float],
    y_pred: Iterable[float],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert *y_true* and *y_pred* to float arrays of identical shape.

    Raises
    ------
    ValueError
        If the shapes of *y_true* and *y_pred* do not match.
    """
    yt = np.asarray(y_true, dtype=float)
    yp = np.asarray(y_pred, dtype=float)

    if yt.shape != yp.shape:
        raise ValueError(
            f"Shapes of y_true {yt.shape} and y_pred {yp.shape} do not match."
        )
    return yt, yp


def regression_metrics(y_true: Iterable[float], y_pred: Iterable[float]) -> Dict[str, float]:
    """
    MAE, RMSE, R² (squared Pearson correlation) and mean bias.

    Degenerate cases
    ----------------
    * Empty input: every metric is ``np.nan``.
    * Fewer than two points, or zero variance in either series: ``R2`` is
      ``np.nan`` (a constant target, e.g. a uniform coarse field, has no
      variance to explain).
    """
    yt, yp = _as_arrays(y_true, y_pred)

    if yt.size == 0:
        return {"MAE": np.nan, "RMSE": np.nan, "R2": np.nan, "BIAS": np.nan}

    mae = float(mean_absolute_error(yt, yp))
    rmse = float(np.sqrt(mean_squared_error(yt, yp)))
    bias = float(np.mean(yp - yt))

    r2 = np.nan
    if yt.size >= 2:
        std_y = float(np.std(yt, ddof=1))
        std_p = float(np.std(yp, ddof=1))
        if std_y > 0.0 and std_p > 0.0:
            r = float(np.corrcoef(yt, yp)[0, 1])
            r2 = float(r ** 2) if np.isfinite(r) else np.nan

    return {"MAE": mae, "RMSE": rmse, "R2": r2, "BIAS": bias}


__all__ = ["regression_metrics"]
