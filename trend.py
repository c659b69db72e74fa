from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple
import itertools
import logging
import warnings

import numpy as np
from statsmodels.tsa.arima.model import ARIMA
from statsmodels.tsa.stattools import kpss

from config import ARIMA_MAX_D, ARIMA_MAX_P, ARIMA_MAX_Q, KPSS_ALPHA
from ts_core import DataError, as_float_array

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrendModel:
    """ARIMA model of the STL trend component.

    `order` is None for the naive fallback (repeat the last trend value),
    in which case `results` is None as well.
    """

    order: Optional[Tuple[int, int, int]]
    aicc: float
    results: Any
    last_value: float

    @property
    def is_fallback(self) -> bool:
        return self.order is None


def select_differencing(y: np.ndarray, max_d: int = ARIMA_MAX_D, alpha: float = KPSS_ALPHA) -> int:
    """Number of differences needed, by repeated KPSS level-stationarity tests."""
    x = np.asarray(y, dtype=float)
    d = 0
    while d < max_d:
        if len(x) < 3 or np.ptp(x) == 0:
            break
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            try:
                _, pvalue, _, _ = kpss(x, regression="c", nlags="auto")
            except Exception as e:
                logger.debug("KPSS failed at d=%d: %s", d, e)
                break
        if pvalue >= alpha:
            break
        x = np.diff(x)
        d += 1
    return d


def _trend_term(d: int) -> str:
    # constant for d=0, drift for d=1, nothing once differenced twice
    if d == 0:
        return "c"
    if d == 1:
        return "t"
    return "n"


def _fit_order(y: np.ndarray, order: Tuple[int, int, int]):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return ARIMA(y, order=order, trend=_trend_term(order[1])).fit()


def fit_trend(
    trend,
    max_p: int = ARIMA_MAX_P,
    max_q: int = ARIMA_MAX_Q,
    max_d: int = ARIMA_MAX_D,
) -> TrendModel:
    """Automatic ARIMA for the trend component.

    - d from KPSS tests (0..max_d)
    - (p, q) from a grid over 0..max_p x 0..max_q, ranked by AICc
    - falls back to ARIMA(0, d, 0), then to a naive last-value model; never raises
    """
    y = as_float_array(trend, "trend")
    if len(y) == 0:
        raise DataError("Trend component is empty")
    last_value = float(y[-1])

    d = select_differencing(y, max_d=max_d)
    best = None
    for p, q in itertools.product(range(max_p + 1), range(max_q + 1)):
        order = (p, d, q)
        try:
            res = _fit_order(y, order)
            aicc = float(res.aicc)
        except Exception as e:
            logger.debug("ARIMA%s failed: %s", order, e)
            continue
        retvals = getattr(res, "mle_retvals", None) or {}
        converged = bool(retvals.get("converged", True))
        if not converged or not np.isfinite(aicc):
            logger.debug("ARIMA%s skipped (converged=%s, aicc=%s)", order, converged, aicc)
            continue
        logger.debug("ARIMA%s aicc=%.3f", order, aicc)
        if best is None or aicc < best[1]:
            best = (order, aicc, res)

    if best is not None:
        order, aicc, res = best
        logger.info("Trend model ARIMA%s (AICc %.2f)", order, aicc)
        return TrendModel(order=order, aicc=aicc, results=res, last_value=last_value)

    order = (0, d, 0)
    logger.warning("ARIMA order search found no usable model, falling back to ARIMA%s", order)
    try:
        res = _fit_order(y, order)
        return TrendModel(order=order, aicc=float(res.aicc), results=res, last_value=last_value)
    except Exception as e:
        logger.warning("ARIMA%s failed (%s), using naive trend forecast", order, e)
        return TrendModel(order=None, aicc=float("nan"), results=None, last_value=last_value)


def forecast_trend(model: TrendModel, steps: int) -> np.ndarray:
    """Deterministic mean forecast `steps` ahead."""
    if steps < 1:
        raise DataError(f"Forecast horizon must be >= 1, got {steps}")
    if model.results is None:
        return np.full(steps, model.last_value, dtype=float)
    try:
        fc = np.asarray(model.results.forecast(steps=steps), dtype=float)
    except Exception as e:
        logger.warning("ARIMA%s forecast failed (%s), using naive trend forecast", model.order, e)
        fc = np.full(steps, np.nan)
    if not np.all(np.isfinite(fc)):
        logger.warning("Non-finite trend forecast from ARIMA%s, using naive trend forecast", model.order)
        return np.full(steps, model.last_value, dtype=float)
    return fc
