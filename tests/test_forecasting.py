import os, sys
import logging
import numpy as np
import pandas as pd
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from forecasting import forecast_from_values, forecast_window, forecast_with_tree, mape
from ts_core import ConfigError, DataError, unique_dates
from generate_synthetic_test_data import make_load_table


@pytest.fixture(scope="module")
def load_table():
    return make_load_table(n_days=22, noise=5.0, trend_slope=0.01)


def test_mape_value():
    assert mape([100.0, 200.0], [110.0, 180.0]) == pytest.approx(10.0)
    assert mape([50.0, 50.0], [50.0, 50.0]) == 0.0


def test_mape_negative_actuals_use_absolute_value():
    assert mape([-100.0, -200.0], [-110.0, -180.0]) == pytest.approx(10.0)


def test_mape_zero_actual_is_flagged(caplog):
    with caplog.at_level(logging.WARNING):
        result = mape([0.0, 10.0], [1.0, 10.0])
    assert np.isnan(result)
    assert "MAPE undefined" in caplog.text


def test_mape_length_mismatch():
    with pytest.raises(DataError):
        mape([1.0, 2.0], [1.0])
    with pytest.raises(DataError):
        mape([], [])


@pytest.mark.parametrize("algorithm", ["cart", "ctree"])
def test_end_to_end_three_weeks(load_table, algorithm):
    dates = unique_dates(load_table)
    result = forecast_window(load_table, dates[:21], K=2, period=48, algorithm=algorithm)
    assert list(result.columns) == ["date_time", "value", "forecast"]
    assert len(result) == 48
    assert np.all(np.isfinite(result["forecast"]))
    score = result.attrs["mape"]
    assert np.isfinite(score) and score >= 0
    assert score < 10
    expected = load_table["value"].to_numpy()[21 * 48:]
    np.testing.assert_allclose(result["value"].to_numpy(), expected)


def test_forecast_with_tree_returns_one_day(load_table):
    dates = unique_dates(load_table)
    forecast = forecast_with_tree(load_table, dates[:21], K=2, period=48, algorithm="cart")
    assert isinstance(forecast, np.ndarray)
    assert forecast.shape == (48,)


def test_forecast_matches_values_entry_point(load_table):
    dates = unique_dates(load_table)
    values = load_table["value"].to_numpy()[:21 * 48]
    a = forecast_with_tree(load_table, dates[:21], algorithm="cart", detrend=False)
    b = forecast_from_values(values, algorithm="cart", detrend=False)
    np.testing.assert_allclose(a, b)


@pytest.mark.parametrize("detrend", [False, True])
@pytest.mark.parametrize("algorithm", ["cart", "ctree"])
def test_square_wave_pattern_reproduced(algorithm, detrend):
    data = make_load_table(
        n_days=22, pattern="square", level=200.0, daily_amplitude=50.0,
        weekly_amplitude=0.0, trend_slope=0.0, noise=0.5,
    )
    dates = unique_dates(data)
    result = forecast_window(data, dates[:21], algorithm=algorithm, detrend=detrend)
    assert result.attrs["mape"] < 5


def test_tree_params_override(load_table):
    dates = unique_dates(load_table)
    shallow = forecast_with_tree(load_table, dates[:21], algorithm="cart", detrend=False, minsplit=20, cp=0.5)
    # cp=0.5 keeps at most one split
    assert len(np.unique(shallow)) <= 2


def test_zero_test_value_flagged():
    data = make_load_table(n_days=15, noise=2.0)
    data.loc[14 * 48 + 3, "value"] = 0.0
    dates = unique_dates(data)
    result = forecast_window(data, dates[:14], algorithm="cart")
    assert len(result) == 48
    assert np.isnan(result.attrs["mape"])


def test_short_window_rejected(load_table):
    dates = unique_dates(load_table)
    with pytest.raises(DataError):
        forecast_with_tree(load_table, dates[:13])


def test_partial_day_rejected():
    values = make_load_table(n_days=15, noise=1.0)["value"].to_numpy()[:-5]
    with pytest.raises(DataError):
        forecast_from_values(values)


@pytest.mark.parametrize("kwargs", [{"K": 0}, {"period": 0}, {"algorithm": "svm"}])
def test_invalid_configuration(load_table, kwargs):
    dates = unique_dates(load_table)
    with pytest.raises(ConfigError):
        forecast_with_tree(load_table, dates[:21], **kwargs)


def test_no_test_day(load_table):
    dates = unique_dates(load_table)
    with pytest.raises(DataError):
        forecast_window(load_table, dates[-14:])


def test_test_day_must_follow_training(load_table):
    dates = unique_dates(load_table)
    day = pd.to_datetime(load_table["date"]).dt.normalize()
    data = load_table.loc[~day.isin(dates[14:19])]
    with pytest.raises(DataError):
        forecast_window(data, dates[:14])
