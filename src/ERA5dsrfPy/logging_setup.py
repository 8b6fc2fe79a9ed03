# src/ERA5dsrfPy/logging_setup.py
# SPDX-License-Identifier: MIT
"""Logging setup for the downscaling pipeline."""
from __future__ import annotations

import logging
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO", fmt: Optional[str] = None) -> None:
    logger = logging.getLogger()
    if logger.handlers:
        return  # already configured
    lvl = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=lvl, format=fmt or DEFAULT_FORMAT)
    # GDAL environment and scikit-learn workers are chatty at DEBUG
    logging.getLogger("rasterio").setLevel(logging.WARNING)
    logging.getLogger("joblib").setLevel(logging.WARNING)


__all__ = ["setup_logging", "DEFAULT_FORMAT"]
