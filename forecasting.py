from __future__ import annotations
from typing import Dict, Iterable, List, Optional, Sequence
import logging

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_percentage_error

from config import CART_DEEP, CTREE_FORECAST, DAILY_PERIOD, FOURIER_HARMONICS, N_DAYS_TRAIN, STL_ROBUST
from decomposition import decompose_stl
from features import build_tree_matrices
from modeling import fit_tree, predict_tree, resolve_algorithm
from trend import fit_trend, forecast_trend
from ts_core import DataError, as_float_array, check_train_length, select_window, split_train_test, unique_dates, validate_settings

logger = logging.getLogger(__name__)

# Tree controls used by the forecasting entry points unless overridden
FORECAST_TREE_PARAMS: Dict[str, Dict] = {
    "cart": dict(CART_DEEP),
    "ctree": dict(CTREE_FORECAST),
}


def mape(real, predicted) -> float:
    """
    Mean Absolute Percentage Error in percent.

    Errors are divided by |real| (scikit-learn's definition), so negative
    actuals still give a non-negative score. Undefined when a real value is exactly zero: returns NaN and logs a warning.
    """
    y_true = np.asarray(real, dtype=float).ravel()
    y_pred = np.asarray(predicted, dtype=float).ravel()
    if len(y_true) != len(y_pred):
        raise DataError(f"Length mismatch: {len(y_true)} real vs {len(y_pred)} predicted values")
    if len(y_true) == 0:
        raise DataError("Cannot compute MAPE of empty sequences")
    if np.any(y_true == 0):
        logger.warning("MAPE undefined: %d real value(s) are zero", int(np.sum(y_true == 0)))
        return float("nan")
    return float(100.0 * mean_absolute_percentage_error(y_true, y_pred))


def forecast_from_values(
    values,
    K: int = FOURIER_HARMONICS,
    period: int = DAILY_PERIOD,
    algorithm: str = "cart",
    detrend: bool = True,
    robust: bool = STL_ROBUST,
    **tree_params,
) -> np.ndarray:
    """
    One-day-ahead forecast (period values) from a training window of raw values.

    STL (weekly cycle) -> Fourier + seasonal-lag features -> tree on the
    detrended target -> plus an ARIMA forecast of the STL trend.
    With detrend=False the tree models the raw values and no trend is added.
    """
    validate_settings(K, period)
    y = as_float_array(values, "series")
    check_train_length(len(y), period)
    key = resolve_algorithm(algorithm)
    params = {**FORECAST_TREE_PARAMS.get(key, {}), **tree_params}

    decomposition = decompose_stl(y, period, robust=robust)
    matrices = build_tree_matrices(y, decomposition, period, K, detrend=detrend)
    model = fit_tree(matrices.train_X, matrices.train_y, key, **params)
    prediction = predict_tree(model, matrices.test_X)

    if not detrend:
        return prediction

    trend_model = fit_trend(decomposition.trend)
    trend_forecast = forecast_trend(trend_model, period)
    if len(trend_forecast) != len(prediction):
        raise DataError(f"Trend forecast length {len(trend_forecast)} does not match tree prediction {len(prediction)}")
    return prediction + trend_forecast


def forecast_with_tree(
    data: pd.DataFrame,
    date_range: Iterable,
    K: int = FOURIER_HARMONICS,
    period: int = DAILY_PERIOD,
    algorithm: str = "cart",
    detrend: bool = True,
    **tree_params,
) -> np.ndarray:
    """Forecast the day after `date_range` from the load table. Returns `period` values."""
    validate_settings(K, period)
    train = select_window(data, date_range, period)
    return forecast_from_values(train["value"], K=K, period=period, algorithm=algorithm, detrend=detrend, **tree_params)


def forecast_window(
    data: pd.DataFrame,
    date_range: Iterable,
    K: int = FOURIER_HARMONICS,
    period: int = DAILY_PERIOD,
    algorithm: str = "cart",
    detrend: bool = True,
    **tree_params,
) -> pd.DataFrame:
    """
    Forecast the test day and compare with the actual load.
    Returns DataFrame ['date_time', 'value', 'forecast']; the MAPE is in .attrs['mape'].
    """
    validate_settings(K, period)
    train, test = split_train_test(data, date_range, period)
    forecast = forecast_from_values(train["value"], K=K, period=period, algorithm=algorithm, detrend=detrend, **tree_params)
    out = pd.DataFrame({
        "date_time": test["date_time"].to_numpy(),
        "value": test["value"].to_numpy(dtype=float),
        "forecast": forecast,
    })
    out.attrs["mape"] = mape(out["value"], out["forecast"])
    return out


def sliding_window_mape(
    data: pd.DataFrame,
    n_days_train: int = N_DAYS_TRAIN,
    K: int = FOURIER_HARMONICS,
    period: int = DAILY_PERIOD,
    algorithms: Sequence[str] = ("cart", "ctree"),
    detrend: Sequence[bool] = (True,),
    n_windows: Optional[int] = None,
    tree_params: Optional[Dict[str, Dict]] = None,
) -> pd.DataFrame:
    """
    Re-run the pipeline for each training window shifted by one day.

    Window i trains on days i..i+n_days_train-1 and is scored on the next day.
    Returns long DataFrame ['window', 'test_date', 'algorithm', 'detrend', 'mape'].
    """
    validate_settings(K, period)
    dates = unique_dates(data)
    total = len(dates) - n_days_train
    if total < 1:
        raise DataError(f"Need more than {n_days_train} days for a sliding window, table has {len(dates)}")
    if n_windows is not None:
        total = min(total, int(n_windows))
    keys = [resolve_algorithm(a) for a in algorithms]
    tree_params = tree_params or {}

    rows: List[Dict] = []
    for i in range(total):
        date_range = dates[i:i + n_days_train]
        for key in keys:
            for flag in detrend:
                result = forecast_window(
                    data, date_range, K=K, period=period, algorithm=key, detrend=flag,
                    **tree_params.get(key, {}),
                )
                rows.append({
                    "window": i,
                    "test_date": dates[i + n_days_train],
                    "algorithm": key,
                    "detrend": bool(flag),
                    "mape": result.attrs["mape"],
                })
        logger.info("Sliding window %d/%d done (test day %s)", i + 1, total, dates[i + n_days_train].date())
    return pd.DataFrame(rows, columns=["window", "test_date", "algorithm", "detrend", "mape"])
