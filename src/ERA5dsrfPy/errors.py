# src/ERA5dsrfPy/errors.py
# SPDX-License-Identifier: MIT
"""
Error and warning types raised by the downscaling pipeline.

Every fatal condition of a per-variable sub-pipeline derives from
:class:`DownscalingError` and carries the offending variable name and a
short ``kind`` tag, so that :class:`DayProcessingError` can report which
variables failed and why.
"""

from __future__ import annotations

from typing import Dict, Optional


class DownscalingError(Exception):
    """Base class of the fatal per-variable errors."""

    kind: str = "DownscalingError"

    def __init__(self, message: str, *, variable: Optional[str] = None) -> None:
        super().__init__(message)
        self.variable = variable

    def with_variable(self, variable: str) -> "DownscalingError":
        """Attach *variable* if the error was raised without one."""
        if self.variable is None:
            self.variable = variable
        return self


class UnknownVariableError(DownscalingError, KeyError):
    kind = "UnknownVariable"

    def __str__(self) -> str:  # KeyError would quote the message
        return str(self.args[0]) if self.args else self.kind


class MissingDataError(DownscalingError):
    kind = "MissingData"


class InsufficientTrainingDataError(DownscalingError):
    kind = "InsufficientTrainingData"


class BiasUndefinedError(DownscalingError):
    kind = "BiasUndefined"


class DayProcessingError(RuntimeError):
    """Raised when at least one variable of a day failed.

    Attributes
    ----------
    day : str
        ISO date of the day being processed.
    failures : dict
        Variable name -> the :class:`DownscalingError` it raised.
    """

    def __init__(self, day: str, failures: Dict[str, DownscalingError]) -> None:
        self.day = day
        self.failures = dict(failures)
        detail = "; ".join(f"{name}: {err.kind} ({err})" for name, err in self.failures.items())
        super().__init__(f"Processing of {day} failed for {len(self.failures)} variable(s): {detail}")


class MissingDataWarning(UserWarning):
    """Non-fatal missing data (empty source query, partially null reduction)."""


__all__ = [
    "DownscalingError",
    "UnknownVariableError",
    "MissingDataError",
    "InsufficientTrainingDataError",
    "BiasUndefinedError",
    "DayProcessingError",
    "MissingDataWarning",
]
