# tests/test_metrics.py

import numpy as np
import pytest

from ERA5dsrfPy.metrics import regression_metrics


def test_perfect_fit():
    y = [1.0, 2.0, 3.0, 4.0]
    m = regression_metrics(y, y)
    assert m["MAE"] == pytest.approx(0.0)
    assert m["RMSE"] == pytest.approx(0.0)
    assert m["R2"] == pytest.approx(1.0)
    assert m["BIAS"] == pytest.approx(0.0)


def test_constant_offset_shows_as_bias():
    y = np.arange(10, dtype=float)
    m = regression_metrics(y, y + 2.0)
    assert m["BIAS"] == pytest.approx(2.0)
    assert m["MAE"] == pytest.approx(2.0)
    assert m["R2"] == pytest.approx(1.0)


def test_constant_target_has_undefined_r2():
    """A uniform coarse field gives a constant target: R2 is NaN, errors are not."""
    m = regression_metrics([5.0, 5.0, 5.0], [5.0, 5.0, 5.0])
    assert np.isnan(m["R2"])
    assert m["RMSE"] == pytest.approx(0.0)


def test_empty_input_returns_nan():
    m = regression_metrics([], [])
    assert all(np.isnan(v) for v in m.values())


def test_shape_mismatch_raises():
    with pytest.raises(ValueError):
        regression_metrics([1.0, 2.0], [1.0])
