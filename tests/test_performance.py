import os, sys
import time
import numpy as np
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from forecasting import sliding_window_mape
from ts_core import DataError
from generate_synthetic_test_data import make_load_table


@pytest.mark.slow
def test_detrending_helps_on_trending_load():
    """Separate trend forecasting beats a tree on the raw trending series."""
    data = make_load_table(n_days=25, noise=5.0, trend_slope=0.1)
    scores = sliding_window_mape(
        data, n_days_train=21, algorithms=("cart", "ctree"), detrend=(True, False), n_windows=3,
    )
    assert len(scores) == 3 * 2 * 2
    assert scores["mape"].notna().all()
    means = scores.groupby(["algorithm", "detrend"])["mape"].mean()
    for algorithm in ("cart", "ctree"):
        assert means[(algorithm, True)] <= means[(algorithm, False)]


@pytest.mark.slow
def test_sliding_window_layout():
    data = make_load_table(n_days=17, noise=3.0, trend_slope=0.01)
    start = time.time()
    scores = sliding_window_mape(data, n_days_train=14, algorithms=("cart",))
    elapsed = time.time() - start
    assert list(scores.columns) == ["window", "test_date", "algorithm", "detrend", "mape"]
    assert scores["window"].tolist() == [0, 1, 2]
    assert scores["test_date"].is_monotonic_increasing
    assert (scores["mape"] >= 0).all()
    # three full pipeline runs
    assert elapsed < 120.0


def test_sliding_window_needs_extra_day():
    data = make_load_table(n_days=21, noise=1.0)
    with pytest.raises(DataError):
        sliding_window_mape(data, n_days_train=21)
