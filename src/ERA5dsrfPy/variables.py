# src/ERA5dsrfPy/variables.py
# SPDX-License-Identifier: MIT
"""
The eight ERA5-Land variables handled by the daily downscaling.

Each member maps a short name to its ERA5-Land hourly band and declares
how hourly values are combined into a daily value:

- instantaneous quantities (``t2m, d2m, u10, v10, sp``) are averaged;
- flux / accumulated quantities (``ssr, str, tp``) are summed.

Only ``t2m`` and ``d2m`` are converted from Kelvin to Celsius.
"""

from __future__ import annotations

from enum import Enum
from typing import Union

from .errors import UnknownVariableError


class Variable(Enum):
    """Fixed set of downscaled variables, in output band order."""

    T2M = ("t2m", "temperature_2m", False, True)
    D2M = ("d2m", "dewpoint_temperature_2m", False, True)
    U10 = ("u10", "u_component_of_wind_10m", False, False)
    V10 = ("v10", "v_component_of_wind_10m", False, False)
    SP = ("sp", "surface_pressure", False, False)
    SSR = ("ssr", "surface_net_solar_radiation", True, False)
    STR = ("str", "surface_net_thermal_radiation", True, False)
    TP = ("tp", "total_precipitation", True, False)

    def __init__(self, short_name: str, source_band: str, is_accumulated: bool, is_kelvin: bool):
        self.short_name = short_name
        self.source_band = source_band
        self.is_accumulated = is_accumulated
        self.is_kelvin = is_kelvin

    @property
    def daily_band(self) -> str:
        """Band name of the aggregated coarse field (``t2m_daily``, ``tp_accum``)."""
        suffix = "_accum" if self.is_accumulated else "_daily"
        return self.short_name + suffix

    @property
    def corrected_band(self) -> str:
        return self.short_name + "_corrected"

    @classmethod
    def from_name(cls, name: Union[str, "Variable"]) -> "Variable":
        """Resolve a short name (``"t2m"``) or a member to a :class:`Variable`.

        Raises
        ------
        UnknownVariableError
            If *name* has no band mapping.
        """
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower()
        for member in cls:
            if member.short_name == key:
                return member
        raise UnknownVariableError(
            f"No ERA5-Land band mapping for variable {name!r}.", variable=str(name)
        )

    def __str__(self) -> str:
        return self.short_name


#: Declared processing / output order.
ALL_VARIABLES = tuple(Variable)

__all__ = ["Variable", "ALL_VARIABLES"]
