"""
Configuration constants for the regression-tree load forecasting pipeline.
"""

# Sampling: half-hourly load, daily and weekly seasonality
DAILY_PERIOD = 48  # Samples per day
DAYS_PER_WEEK = 7

# Fourier seasonality
FOURIER_HARMONICS = 2  # Harmonics per period (sin/cos pairs per k=1..K)

# Training window (days) for the sliding window scenario
N_DAYS_TRAIN = 21
MIN_TRAIN_WEEKS = 2  # STL needs at least two full weekly cycles

# STL decomposition
STL_ROBUST = True

# Trend ARIMA order search
ARIMA_MAX_P = 2
ARIMA_MAX_Q = 2
ARIMA_MAX_D = 2
KPSS_ALPHA = 0.05

# Regression trees
RANDOM_STATE = 42

# rpart-like defaults: shallow, underfit tree
CART_DEFAULTS = {"minsplit": 20, "cp": 0.01, "maxdepth": 30}
# Almost no pruning: hundreds of splits, near perfect training fit
CART_DEEP = {"minsplit": 2, "cp": 1e-6, "maxdepth": 30}

CTREE_DEFAULTS = {
    "mincriterion": 0.95,
    "minsplit": 20,
    "minbucket": 7,
    "testtype": "bonferroni",
    "teststat": "quadratic",
}
CTREE_FORECAST = {
    "mincriterion": 0.925,
    "minsplit": 1,
    "minbucket": 1,
    "testtype": "teststatistic",
    # compared against the chi-squared statistic, not |z|
    "teststat": "quadratic",
}

# Input table
REQUIRED_COLUMNS = ["date", "date_time", "value", "week_num"]
