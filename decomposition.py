"""Seasonal-trend decomposition of the training window (STL, weekly cycle)."""

from __future__ import annotations

from dataclasses import dataclass
import logging

import numpy as np
from statsmodels.tsa.seasonal import STL

from config import DAYS_PER_WEEK, MIN_TRAIN_WEEKS, STL_ROBUST
from ts_core import ConfigError, DataError, as_float_array

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecompositionResult:
    """Additive components aligned with the input window."""

    seasonal: np.ndarray
    trend: np.ndarray
    remainder: np.ndarray

    @property
    def observed(self) -> np.ndarray:
        return self.seasonal + self.trend + self.remainder

    @property
    def detrended(self) -> np.ndarray:
        return self.seasonal + self.remainder

    def __len__(self) -> int:
        return len(self.seasonal)


def _cycle_means(x: np.ndarray, cycle: int) -> np.ndarray:
    pos = np.arange(len(x)) % cycle
    sums = np.bincount(pos, weights=x, minlength=cycle)
    counts = np.bincount(pos, minlength=cycle)
    return (sums / counts)[pos]


def decompose_stl(values, period: int, robust: bool = STL_ROBUST) -> DecompositionResult:
    """
    STL with a weekly cycle (7 * period samples) and a periodic seasonal window.

    A periodic window means the seasonal pattern is the same in every week:
    the seasonal smoother spans the whole series with degree 0, and the
    fitted seasonal values are then averaged per position in the cycle.
    The remainder is recomputed afterwards so that
    seasonal + trend + remainder equals the input exactly.
    """
    if period < 1:
        raise ConfigError(f"Period must be positive, got {period}")
    y = as_float_array(values, "series")
    cycle = int(period) * DAYS_PER_WEEK
    n = len(y)
    if n < MIN_TRAIN_WEEKS * cycle:
        raise DataError(f"STL needs at least {MIN_TRAIN_WEEKS * cycle} samples ({MIN_TRAIN_WEEKS} weekly cycles), got {n}")

    res = STL(
        y,
        period=cycle,
        seasonal=10 * n + 1,
        seasonal_deg=0,
        robust=robust,
    ).fit()

    seasonal = _cycle_means(np.asarray(res.seasonal, dtype=float), cycle)
    trend = np.asarray(res.trend, dtype=float)
    remainder = y - seasonal - trend
    logger.debug("STL on %d samples (cycle %d): trend range %.3f..%.3f", n, cycle, trend.min(), trend.max())
    return DecompositionResult(seasonal=seasonal, trend=trend, remainder=remainder)
