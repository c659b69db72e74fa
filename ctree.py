"""
Conditional inference regression tree.

Recursive partitioning where the split variable is chosen by permutation
tests of independence between each feature and the target, and where a
node is split only when the association is significant. Uses the
asymptotic chi-squared distribution of the quadratic-form statistic of
the linear statistic T = sum(x_i * y_i).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
from scipy.stats import chi2
from sklearn.base import BaseEstimator, RegressorMixin
from sklearn.utils.validation import check_array, check_is_fitted, check_X_y

TEST_TYPES = ("bonferroni", "univariate", "teststatistic")
TEST_STATISTICS = ("quadratic", "maximum")


@dataclass
class _Node:
    value: float
    n_samples: int
    feature: int = -1
    threshold: float = np.nan
    criterion: float = np.nan
    left: Optional["_Node"] = None
    right: Optional["_Node"] = None

    @property
    def is_leaf(self) -> bool:
        return self.left is None


def independence_statistics(X: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Quadratic-form statistic c = (T - mu)^2 / sigma for every column of X.

    mu and sigma are the mean and variance of T = sum(x * y) under all
    permutations of y. Constant columns get 0.
    """
    n = X.shape[0]
    if n < 2:
        return np.zeros(X.shape[1])
    ybar = y.mean()
    v_y = np.mean((y - ybar) ** 2)
    sx = X.sum(axis=0)
    sxx = (X ** 2).sum(axis=0)
    T = X.T @ y
    mu = sx * ybar
    sigma = v_y / (n - 1) * (n * sxx - sx ** 2)
    stat = np.zeros(X.shape[1])
    ok = sigma > 1e-12 * max(1.0, float(np.max(np.abs(sigma))))
    stat[ok] = (T[ok] - mu[ok]) ** 2 / sigma[ok]
    return stat


def best_cut(x: np.ndarray, y: np.ndarray, minbucket: int) -> Tuple[float, float]:
    """Cut point maximising the standardized two-sample statistic of {x <= cut}.

    Returns (threshold, statistic); threshold is NaN when no admissible cut
    leaves at least `minbucket` rows on both sides.
    """
    n = len(x)
    order = np.argsort(x, kind="mergesort")
    xs = x[order]
    ys = y[order]
    ybar = ys.mean()
    v_y = np.mean((ys - ybar) ** 2)
    if v_y <= 0:
        return np.nan, 0.0

    n_left = np.arange(1, n)
    s_left = np.cumsum(ys)[:-1]
    valid = (xs[:-1] < xs[1:]) & (n_left >= minbucket) & (n - n_left >= minbucket)
    if not valid.any():
        return np.nan, 0.0

    sigma = v_y * n_left * (n - n_left) / (n - 1)
    stat = np.where(valid, (s_left - n_left * ybar) ** 2 / sigma, -np.inf)
    i = int(np.argmax(stat))
    cut = (xs[i] + xs[i + 1]) / 2.0
    if not xs[i] <= cut < xs[i + 1]:
        cut = xs[i]
    return float(cut), float(stat[i])


class ConditionalInferenceTree(RegressorMixin, BaseEstimator):
    """Regression tree grown with significance-tested splits.

    Parameters
    ----------
    mincriterion : float
        Value the test criterion must exceed for a split. With
        ``testtype="bonferroni"`` or ``"univariate"`` this is 1 - p-value,
        with ``"teststatistic"`` the statistic itself, on the scale set by
        ``teststat``.
    minsplit : int
        Minimum node size for a split to be attempted.
    minbucket : int
        Minimum number of rows in each child.
    maxdepth : int or None
        Maximum depth; None or 0 means unlimited.
    testtype : {"bonferroni", "univariate", "teststatistic"}
    teststat : {"quadratic", "maximum"}
        "quadratic" is the chi-squared statistic (T - mu)^2 / sigma,
        "maximum" its square root, the absolute standardized statistic |z|.
        p-values are the same for both; only ``"teststatistic"`` sees the
        difference.
    """

    def __init__(self, mincriterion=0.95, minsplit=20, minbucket=7, maxdepth=None, testtype="bonferroni",
                 teststat="quadratic"):
        self.mincriterion = mincriterion
        self.minsplit = minsplit
        self.minbucket = minbucket
        self.maxdepth = maxdepth
        self.testtype = testtype
        self.teststat = teststat

    def _criterion(self, stat: np.ndarray) -> np.ndarray:
        if self.testtype == "teststatistic":
            return np.sqrt(stat) if self.teststat == "maximum" else stat
        pvalues = chi2.sf(stat, df=1)
        if self.testtype == "bonferroni":
            # 1 - (1 - p)^m
            with np.errstate(divide="ignore"):
                pvalues = -np.expm1(len(stat) * np.log1p(-pvalues))
        return 1.0 - pvalues

    def _split(self, X: np.ndarray, y: np.ndarray, depth: int) -> Optional[Tuple[int, float, float]]:
        """(feature, threshold, criterion) for the node, or None when it is a leaf."""
        max_depth = self.maxdepth or 0
        if len(y) < max(2, self.minsplit) or (max_depth > 0 and depth >= max_depth):
            return None
        if np.ptp(y) == 0:
            return None

        crit = self._criterion(independence_statistics(X, y))
        # features are tried in order of association until one has an admissible cut
        for j in np.argsort(-crit, kind="mergesort"):
            if not crit[j] > self.mincriterion:
                break
            threshold, _ = best_cut(X[:, j], y, max(1, self.minbucket))
            if not np.isnan(threshold):
                return int(j), threshold, float(crit[j])
        return None

    def _grow(self, X: np.ndarray, y: np.ndarray) -> _Node:
        root = _Node(value=float(y.mean()), n_samples=len(y))
        stack = [(root, np.arange(len(y)), 0)]
        while stack:
            node, idx, depth = stack.pop()
            split = self._split(X[idx], y[idx], depth)
            if split is None:
                continue
            node.feature, node.threshold, node.criterion = split
            go_left = X[idx, node.feature] <= node.threshold
            left_idx, right_idx = idx[go_left], idx[~go_left]
            node.left = _Node(value=float(y[left_idx].mean()), n_samples=len(left_idx))
            node.right = _Node(value=float(y[right_idx].mean()), n_samples=len(right_idx))
            stack.append((node.left, left_idx, depth + 1))
            stack.append((node.right, right_idx, depth + 1))
        return root

    def fit(self, X, y):
        if self.testtype not in TEST_TYPES:
            raise ValueError(f"testtype must be one of {TEST_TYPES}, got {self.testtype!r}")
        if self.teststat not in TEST_STATISTICS:
            raise ValueError(f"teststat must be one of {TEST_STATISTICS}, got {self.teststat!r}")
        if self.minsplit < 1 or self.minbucket < 1:
            raise ValueError("minsplit and minbucket must be >= 1")
        X, y = check_X_y(X, y, dtype=float, y_numeric=True)
        self.n_features_in_ = X.shape[1]
        self.tree_ = self._grow(X, y.astype(float))
        return self

    def _leaf_values(self, X: np.ndarray) -> np.ndarray:
        out = np.empty(X.shape[0])
        stack: List[Tuple[_Node, np.ndarray]] = [(self.tree_, np.arange(X.shape[0]))]
        while stack:
            node, idx = stack.pop()
            if node.is_leaf:
                out[idx] = node.value
                continue
            go_left = X[idx, node.feature] <= node.threshold
            stack.append((node.left, idx[go_left]))
            stack.append((node.right, idx[~go_left]))
        return out

    def predict(self, X):
        check_is_fitted(self, "tree_")
        X = check_array(X, dtype=float)
        if X.shape[1] != self.n_features_in_:
            raise ValueError(f"X has {X.shape[1]} features, model was fitted with {self.n_features_in_}")
        return self._leaf_values(X)

    def _walk(self):
        stack = [self.tree_]
        while stack:
            node = stack.pop()
            yield node
            if not node.is_leaf:
                stack.extend([node.left, node.right])

    def get_n_leaves(self) -> int:
        check_is_fitted(self, "tree_")
        return sum(1 for node in self._walk() if node.is_leaf)

    def get_n_splits(self) -> int:
        check_is_fitted(self, "tree_")
        return sum(1 for node in self._walk() if not node.is_leaf)

    def get_depth(self) -> int:
        check_is_fitted(self, "tree_")
        deepest = 0
        stack = [(self.tree_, 0)]
        while stack:
            node, depth = stack.pop()
            deepest = max(deepest, depth)
            if not node.is_leaf:
                stack.extend([(node.left, depth + 1), (node.right, depth + 1)])
        return deepest
