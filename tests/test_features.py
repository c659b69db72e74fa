import os, sys
import numpy as np
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from decomposition import decompose_stl
from features import LAG_COLUMN, build_tree_matrices, fourier_terms, seasonal_lag
from ts_core import ConfigError, DataError
from generate_synthetic_test_data import make_load_table


@pytest.fixture(scope="module")
def window():
    values = make_load_table(n_days=21, noise=5.0, trend_slope=0.03)["value"].to_numpy()
    return values, decompose_stl(values, 48)


def test_fourier_columns():
    terms = fourier_terms(10, [48, 336], K=2)
    assert list(terms.columns) == [
        "fourier_sin_48_1", "fourier_cos_48_1", "fourier_sin_48_2", "fourier_cos_48_2",
        "fourier_sin_336_1", "fourier_cos_336_1", "fourier_sin_336_2", "fourier_cos_336_2",
    ]
    assert len(terms) == 10


@pytest.mark.parametrize("K", [1, 2, 3])
def test_daily_terms_repeat_every_day(K):
    terms = fourier_terms(3 * 48, [48, 336], K=K)
    daily = [c for c in terms.columns if c.endswith(tuple(f"_48_{k}" for k in range(1, K + 1)))]
    assert len(daily) == 2 * K
    values = terms[daily].to_numpy()
    np.testing.assert_allclose(values[:-48], values[48:], atol=1e-9)


def test_weekly_terms_repeat_every_week():
    terms = fourier_terms(2 * 336, [336], K=2)
    values = terms.to_numpy()
    np.testing.assert_allclose(values[:336], values[336:], atol=1e-9)


def test_terms_match_formula():
    terms = fourier_terms(5, [48], K=1, start=1)
    t = np.arange(1, 6)
    np.testing.assert_allclose(terms["fourier_sin_48_1"], np.sin(2 * np.pi * t / 48))
    np.testing.assert_allclose(terms["fourier_cos_48_1"], np.cos(2 * np.pi * t / 48))


def test_horizon_continues_training_terms():
    n = 14 * 48
    full = fourier_terms(n + 48, [48, 336], K=2)
    ahead = fourier_terms(48, [48, 336], K=2, start=n + 1)
    np.testing.assert_allclose(full.iloc[n:].to_numpy(), ahead.to_numpy(), atol=1e-9)


def test_zero_sine_dropped():
    terms = fourier_terms(4, [4], K=2)
    assert list(terms.columns) == ["fourier_sin_4_1", "fourier_cos_4_1", "fourier_cos_4_2"]


@pytest.mark.parametrize("K", [0, -1, 1.5])
def test_fourier_rejects_bad_order(K):
    with pytest.raises(ConfigError):
        fourier_terms(10, [48], K=K)


def test_seasonal_lag_alignment():
    seasonal = np.arange(200, dtype=float)
    train_lag, test_lag = seasonal_lag(seasonal, 48)
    assert len(train_lag) == 152
    for i in range(48, 200):
        assert train_lag[i - 48] == seasonal[i - 48]
    np.testing.assert_array_equal(test_lag, seasonal[-48:])
    with pytest.raises(DataError):
        seasonal_lag(np.arange(48.0), 48)


def test_tree_matrices_shapes(window):
    values, res = window
    m = build_tree_matrices(values, res, 48, K=2)
    n = len(values)
    assert m.train_X.shape == (n - 48, 9)
    assert m.test_X.shape == (48, 9)
    assert len(m.train_y) == n - 48
    assert list(m.train_X.columns) == list(m.test_X.columns)
    assert m.train_X.columns[-1] == LAG_COLUMN


def test_tree_matrices_lag_and_target(window):
    values, res = window
    m = build_tree_matrices(values, res, 48, K=2)
    lag = m.train_X[LAG_COLUMN].to_numpy()
    for row in range(len(lag)):
        i = row + 48
        assert lag[row] == res.seasonal[i - 48]
    np.testing.assert_array_equal(m.test_X[LAG_COLUMN].to_numpy(), res.seasonal[-48:])
    np.testing.assert_allclose(m.train_y, (res.seasonal + res.remainder)[48:])


def test_tree_matrices_raw_target(window):
    values, res = window
    m = build_tree_matrices(values, res, 48, K=1, detrend=False)
    np.testing.assert_allclose(m.train_y, values[48:])
    assert m.train_X.shape[1] == 5


def test_tree_matrices_length_mismatch(window):
    values, res = window
    with pytest.raises(DataError):
        build_tree_matrices(values[:-48], res, 48)
