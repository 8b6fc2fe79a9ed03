# src/ERA5dsrfPy/config.py
# SPDX-License-Identifier: MIT
"""
Run configuration for the daily downscaling.

The defaults reproduce the reference workflow: 0.5 sample points per km²
clamped to [1000, 8000], sampling and fine evaluation at 500 m, coarse
evaluation at 9000 m, an 80-tree random forest and seed 42 everywhere.
A YAML file may override any field, either at top level or under a
``downscaling:`` section.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from .variables import ALL_VARIABLES, Variable


@dataclass(frozen=True)
class DownscalingConfig:
    """Constants of one downscaling run.

    Attributes
    ----------
    points_per_km2, min_points, max_points :
        Adaptive sampling density and its clamp.
    sample_scale :
        Resolution (m) at which training points are drawn.
    coarse_scale, fine_scale :
        Resolutions (m) of the zonal means used by the bias correction.
    seed :
        Seed shared by the sampler and the random forest.
    n_trees, n_jobs :
        :class:`~sklearn.ensemble.RandomForestRegressor` settings.
    landcover_year :
        Year of the static land-cover classification.
    ndvi_scale_factor :
        Multiplier turning stored NDVI integers into physical values.
    kelvin_offset :
        Subtracted from Kelvin temperatures to obtain Celsius.
    min_training_rows :
        Training fails below this number of non-null sample rows.
    min_valid_fraction :
        Share of the ROI that must hold valid pixels before a zonal mean
        emits a :class:`~ERA5dsrfPy.errors.MissingDataWarning`.
    max_workers :
        Number of variables processed concurrently (1 = sequential).
    variables :
        Variables to process, in output order.
    """

    points_per_km2: float = 0.5
    min_points: int = 1000
    max_points: int = 8000
    sample_scale: float = 500.0
    coarse_scale: float = 9000.0
    fine_scale: float = 500.0
    seed: int = 42
    n_trees: int = 80
    n_jobs: Optional[int] = None
    landcover_year: int = 2023
    ndvi_scale_factor: float = 0.0001
    kelvin_offset: float = 273.15
    min_training_rows: int = 1
    min_valid_fraction: float = 0.5
    max_workers: int = 1
    variables: Tuple[Variable, ...] = field(default=ALL_VARIABLES)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "variables", tuple(Variable.from_name(v) for v in self.variables)
        )
        if self.min_points > self.max_points:
            raise ValueError(
                f"min_points ({self.min_points}) exceeds max_points ({self.max_points})."
            )
        for name in ("sample_scale", "coarse_scale", "fine_scale"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive.")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1.")

    def rf_params(self) -> Dict[str, Any]:
        """Keyword arguments for :class:`~sklearn.ensemble.RandomForestRegressor`."""
        return dict(n_estimators=self.n_trees, random_state=self.seed, n_jobs=self.n_jobs)

    def with_overrides(self, **kwargs: Any) -> "DownscalingConfig":
        return replace(self, **kwargs)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DownscalingConfig":
        data = dict(data or {})
        if isinstance(data.get("downscaling"), dict):
            data = dict(data["downscaling"])
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {unknown}")
        if "variables" in data:
            data["variables"] = tuple(data["variables"])
        return cls(**data)


def load_config(path: Union[str, Path]) -> DownscalingConfig:
    """Read a YAML file into a :class:`DownscalingConfig`."""
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return DownscalingConfig.from_dict(data or {})


DEFAULT_CONFIG = DownscalingConfig()

__all__ = ["DownscalingConfig", "DEFAULT_CONFIG", "load_config"]
