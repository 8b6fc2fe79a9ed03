# tests/test_variables.py
import pytest

from ERA5dsrfPy.errors import UnknownVariableError
from ERA5dsrfPy.variables import ALL_VARIABLES, Variable


def test_declared_order():
    assert [v.short_name for v in ALL_VARIABLES] == [
        "t2m", "d2m", "u10", "v10", "sp", "ssr", "str", "tp"
    ]


def test_aggregation_rules():
    accumulated = {v.short_name for v in Variable if v.is_accumulated}
    kelvin = {v.short_name for v in Variable if v.is_kelvin}
    assert accumulated == {"ssr", "str", "tp"}
    assert kelvin == {"t2m", "d2m"}


def test_band_names():
    assert Variable.T2M.source_band == "temperature_2m"
    assert Variable.TP.source_band == "total_precipitation"
    assert Variable.T2M.daily_band == "t2m_daily"
    assert Variable.TP.daily_band == "tp_accum"
    assert Variable.SSR.corrected_band == "ssr_corrected"


def test_from_name():
    assert Variable.from_name("t2m") is Variable.T2M
    assert Variable.from_name(" SP ") is Variable.SP
    assert Variable.from_name(Variable.STR) is Variable.STR


def test_unknown_variable():
    with pytest.raises(UnknownVariableError) as exc:
        Variable.from_name("rh2m")
    assert exc.value.kind == "UnknownVariable"
    assert exc.value.variable == "rh2m"
    assert "rh2m" in str(exc.value)
