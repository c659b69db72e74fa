from __future__ import annotations
from typing import Iterable, Tuple
import logging
import numbers

import numpy as np
import pandas as pd

from config import REQUIRED_COLUMNS, DAYS_PER_WEEK, MIN_TRAIN_WEEKS

logger = logging.getLogger(__name__)


class DataError(ValueError):
    """Raised for insufficient or malformed input data."""


class ConfigError(ValueError):
    """Raised for invalid pipeline settings."""


def validate_settings(K: int, period: int) -> None:
    """Reject invalid harmonic order and seasonal period up front."""
    if isinstance(period, bool) or not isinstance(period, numbers.Integral) or period < 1:
        raise ConfigError(f"Period must be a positive integer, got {period!r}")
    if isinstance(K, bool) or not isinstance(K, numbers.Integral) or K < 1:
        raise ConfigError(f"Harmonic order K must be an integer >= 1, got {K!r}")
    if 2 * K > period:
        raise ConfigError(f"Harmonic order K={K} is too high for period {period} (need 2*K <= period)")


def check_load_table(data: pd.DataFrame) -> None:
    """Check that the load table has the columns the pipeline reads."""
    if data is None or not isinstance(data, pd.DataFrame):
        raise DataError("Load table must be a pandas DataFrame")
    missing = [c for c in REQUIRED_COLUMNS if c not in data.columns]
    if missing:
        raise DataError(f"Load table is missing columns: {missing}")
    if data.empty:
        raise DataError("Load table is empty")
    if not pd.api.types.is_numeric_dtype(data["value"]):
        raise DataError("Column 'value' must be numeric")


def _as_dates(values) -> pd.DatetimeIndex:
    return pd.DatetimeIndex(pd.to_datetime(list(values))).normalize()


def unique_dates(data: pd.DataFrame) -> pd.DatetimeIndex:
    """Sorted distinct dates present in the table."""
    check_load_table(data)
    return pd.DatetimeIndex(pd.to_datetime(data["date"]).dt.normalize().unique()).sort_values()


def select_window(data: pd.DataFrame, dates: Iterable, period: int) -> pd.DataFrame:
    """
    Return the rows of the requested dates ordered by time.

    Every date must be present with exactly `period` rows and the timestamps
    must be strictly increasing and equally spaced across the whole window.
    """
    check_load_table(data)
    wanted = _as_dates(dates)
    if len(wanted) == 0:
        raise DataError("No dates requested")
    if wanted.has_duplicates:
        raise DataError("Requested dates contain duplicates")

    day = pd.to_datetime(data["date"]).dt.normalize()
    window = data.loc[day.isin(wanted)].copy()
    window["date_time"] = pd.to_datetime(window["date_time"])
    window = window.sort_values("date_time").reset_index(drop=True)

    counts = pd.to_datetime(window["date"]).dt.normalize().value_counts()
    for d in wanted:
        n = int(counts.get(d, 0))
        if n != period:
            raise DataError(f"Date {d.date()} has {n} rows, expected {period}")

    if window["value"].isna().any():
        raise DataError("Window contains missing values")

    steps = window["date_time"].diff().dropna()
    if len(steps) > 0:
        if (steps <= pd.Timedelta(0)).any():
            raise DataError("Timestamps must be strictly increasing")
        if steps.nunique() > 1:
            raise DataError("Timestamps are not equally spaced (gap in window)")
    return window


def next_date(data: pd.DataFrame, date_range: Iterable) -> pd.Timestamp:
    """First date in the table after the last training date."""
    last = _as_dates(date_range).max()
    later = unique_dates(data)
    later = later[later > last]
    if len(later) == 0:
        raise DataError(f"No data after {last.date()} to use as the test day")
    return later[0]


def check_train_length(n_rows: int, period: int) -> None:
    """Training window must hold whole days and at least two weekly cycles."""
    weekly = period * DAYS_PER_WEEK
    if n_rows % period != 0:
        raise DataError(f"Training window of {n_rows} rows is not a whole number of days (period {period})")
    if n_rows < MIN_TRAIN_WEEKS * weekly:
        raise DataError(
            f"Training window too short: {n_rows} rows, need at least {MIN_TRAIN_WEEKS * weekly} "
            f"({MIN_TRAIN_WEEKS} weeks of period {period})"
        )


def split_train_test(data: pd.DataFrame, date_range: Iterable, period: int) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Training rows for `date_range` and the test day directly after it."""
    train = select_window(data, date_range, period)
    check_train_length(len(train), period)
    test = select_window(data, [next_date(data, date_range)], period)
    # the test day must continue the training grid without a gap
    step = train["date_time"].iloc[1] - train["date_time"].iloc[0]
    gap = test["date_time"].iloc[0] - train["date_time"].iloc[-1]
    if gap != step:
        raise DataError(
            f"Test day {test['date_time'].iloc[0].date()} does not directly follow the training window "
            f"(gap {gap}, expected {step})"
        )
    logger.debug(
        "Split %d training rows (%s .. %s) and %d test rows",
        len(train), train["date_time"].iloc[0], train["date_time"].iloc[-1], len(test),
    )
    return train, test


def as_float_array(values, name: str = "values") -> np.ndarray:
    """1-D float array; raises DataError on non-finite entries."""
    arr = np.asarray(values, dtype=float).ravel()
    if not np.all(np.isfinite(arr)):
        raise DataError(f"{name} contains NaN or infinite values")
    return arr
