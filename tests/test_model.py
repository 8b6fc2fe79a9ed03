# tests/test_model.py
import numpy as np
import pandas as pd
import pytest
from sklearn.ensemble import RandomForestRegressor

from ERA5dsrfPy.config import DownscalingConfig
from ERA5dsrfPy.errors import InsufficientTrainingDataError
from ERA5dsrfPy.model import PREDICTION_BAND, feature_bands_for, predict, train
from ERA5dsrfPy.raster import Field
from ERA5dsrfPy.sampling import draw_samples

BANDS = ["t2m_daily", "NDVI", "elevation", "slope", "aspect", "LandCover"]


@pytest.fixture
def combined(fine_grid):
    xx, yy = fine_grid.centers()
    elevation = 200.0 + 0.02 * xx
    target = 25.0 - 0.0065 * elevation
    ndvi = 0.3 + 0.2 * np.sin(yy / 3000.0)
    slope = np.full(fine_grid.shape, 2.0)
    aspect = (xx / 100.0) % 360.0
    lc = (np.floor(xx / 5000.0) % 3) + 10
    return Field(np.stack([target, ndvi, elevation, slope, aspect, lc]), BANDS, fine_grid)


def test_feature_bands_exclude_target(combined):
    feats = feature_bands_for(combined, "t2m_daily")
    assert feats == ["NDVI", "elevation", "slope", "aspect", "LandCover"]
    with pytest.raises(KeyError):
        feature_bands_for(combined, "tp_accum")


def test_train_uses_fixed_forest(combined, roi):
    samples = draw_samples(combined, 1000, roi)
    model = train(samples, "t2m_daily", feature_bands_for(combined, "t2m_daily"), variable="t2m")
    assert isinstance(model.estimator, RandomForestRegressor)
    assert model.estimator.n_estimators == 80
    assert model.estimator.random_state == 42
    assert model.n_train_rows == len(samples)
    assert model.features == ["NDVI", "elevation", "slope", "aspect", "LandCover"]
    assert set(model.fit_metrics) == {"MAE", "RMSE", "R2", "BIAS"}
    assert model.fit_metrics["R2"] > 0.9


def test_training_is_reproducible(combined, roi):
    feats = feature_bands_for(combined, "t2m_daily")
    samples = draw_samples(combined, 500, roi)
    a = predict(train(samples, "t2m_daily", feats), combined)
    b = predict(train(samples, "t2m_daily", feats), combined)
    np.testing.assert_array_equal(a.data, b.data)


def test_predict_on_covariate_grid(combined, roi):
    feats = feature_bands_for(combined, "t2m_daily")
    model = train(draw_samples(combined, 1000, roi), "t2m_daily", feats)
    out = predict(model, combined, feats)
    assert out.band_names == (PREDICTION_BAND,)
    assert out.grid == combined.grid
    assert np.isfinite(out.data).all()
    # learned the lapse-rate relation well enough
    err = np.abs(out.band("highres") - combined.band("t2m_daily"))
    assert np.median(err) < 0.5


def test_predict_keeps_null_features_null(combined, roi):
    feats = feature_bands_for(combined, "t2m_daily")
    model = train(draw_samples(combined, 500, roi), "t2m_daily", feats)
    data = np.array(combined.data)
    data[1, :5, :5] = np.nan  # NDVI gap
    gappy = Field(data, combined.band_names, combined.grid)
    out = predict(model, gappy)
    assert np.isnan(out.band("highres")[:5, :5]).all()
    assert np.isfinite(out.band("highres")[5:, 5:]).all()


def test_predict_rejects_other_features(combined, roi):
    feats = feature_bands_for(combined, "t2m_daily")
    model = train(draw_samples(combined, 300, roi), "t2m_daily", feats)
    with pytest.raises(ValueError):
        predict(model, combined, ["NDVI", "elevation"])


def test_empty_samples_raise():
    empty = pd.DataFrame(columns=BANDS, dtype=float)
    with pytest.raises(InsufficientTrainingDataError) as exc:
        train(empty, "t2m_daily", BANDS[1:], variable="t2m")
    assert exc.value.kind == "InsufficientTrainingData"
    assert exc.value.variable == "t2m"


def test_null_rows_do_not_count():
    df = pd.DataFrame({b: [1.0, 2.0, 3.0] for b in BANDS})
    df.loc[:, "NDVI"] = np.nan
    with pytest.raises(InsufficientTrainingDataError):
        train(df, "t2m_daily", BANDS[1:])


def test_min_training_rows_is_configurable():
    df = pd.DataFrame({b: np.arange(5, dtype=float) for b in BANDS})
    cfg = DownscalingConfig(min_training_rows=10)
    with pytest.raises(InsufficientTrainingDataError):
        train(df, "t2m_daily", BANDS[1:], config=cfg)
    assert train(df, "t2m_daily", BANDS[1:]).n_train_rows == 5


def test_missing_columns_raise():
    df = pd.DataFrame({"t2m_daily": [1.0]})
    with pytest.raises(ValueError):
        train(df, "t2m_daily", ["NDVI"])
