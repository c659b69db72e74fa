from typing import List, NamedTuple, Sequence
import logging

import numpy as np
import pandas as pd

from config import DAYS_PER_WEEK, FOURIER_HARMONICS
from decomposition import DecompositionResult
from ts_core import ConfigError, DataError, as_float_array, validate_settings

logger = logging.getLogger(__name__)

LAG_COLUMN = "lag_seasonal"


class TreeMatrices(NamedTuple):
    train_X: pd.DataFrame
    train_y: np.ndarray
    test_X: pd.DataFrame


def fourier_terms(n: int, periods: Sequence[int], K: int = FOURIER_HARMONICS, start: int = 1) -> pd.DataFrame:
    """
    Sin/cos pairs for harmonics 1..K of every period, at time index start..start+n-1.

    Continuing past a window of length N is fourier_terms(h, periods, K, start=N + 1).
    A sine column that is identically zero (2k == period) is left out.
    """
    if isinstance(K, bool) or not isinstance(K, (int, np.integer)) or K < 1:
        raise ConfigError(f"Harmonic order K must be an integer >= 1, got {K!r}")
    if n < 0:
        raise DataError(f"Number of rows must be non-negative, got {n}")
    t = np.arange(start, start + n, dtype=float)
    cols = {}
    for period in periods:
        if int(period) < 1:
            raise ConfigError(f"Fourier period must be positive, got {period}")
        for k in range(1, int(K) + 1):
            angle = 2.0 * np.pi * k * t / float(period)
            if 2 * k != int(period):
                cols[f"fourier_sin_{int(period)}_{k}"] = np.sin(angle)
            cols[f"fourier_cos_{int(period)}_{k}"] = np.cos(angle)
    return pd.DataFrame(cols, index=pd.RangeIndex(n))


def seasonal_lag(seasonal, period: int):
    """
    One-day lag of the seasonal component.

    Returns (train_lag, test_lag): train_lag[i] is seasonal[i] for the rows
    period..N-1 of the window, test_lag covers the next day and equals the
    seasonal values of the last training day.
    """
    s = as_float_array(seasonal, "seasonal")
    if len(s) <= period:
        raise DataError(f"Seasonal component of length {len(s)} is too short for a lag of {period}")
    return s[: len(s) - period], s[len(s) - period:]


def daily_weekly_periods(period: int) -> List[int]:
    return [int(period), int(period) * DAYS_PER_WEEK]


def build_tree_matrices(
    values,
    decomposition: DecompositionResult,
    period: int,
    K: int = FOURIER_HARMONICS,
    detrend: bool = True,
) -> TreeMatrices:
    """
    Build the training and forecast-horizon feature matrices.

    Training rows are timestamps period..N-1 (the first day has no lag).
    The target is seasonal + remainder when detrending, the raw values otherwise.
    """
    validate_settings(K, period)
    y = as_float_array(values, "series")
    n = len(y)
    if len(decomposition) != n:
        raise DataError(f"Decomposition length {len(decomposition)} does not match series length {n}")

    periods = daily_weekly_periods(period)
    fourier_train = fourier_terms(n, periods, K, start=1)
    fourier_test = fourier_terms(period, periods, K, start=n + 1)
    train_lag, test_lag = seasonal_lag(decomposition.seasonal, period)

    train_X = fourier_train.iloc[period:].reset_index(drop=True)
    train_X[LAG_COLUMN] = train_lag
    test_X = fourier_test.copy()
    test_X[LAG_COLUMN] = test_lag

    target = decomposition.detrended if detrend else y
    train_y = target[period:].copy()

    logger.debug("Feature matrices: train %s, test %s, detrend=%s", train_X.shape, test_X.shape, detrend)
    return TreeMatrices(train_X=train_X, train_y=train_y, test_X=test_X)
