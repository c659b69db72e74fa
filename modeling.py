from typing import Callable, Dict, List, Optional
import logging

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator
from sklearn.tree import DecisionTreeRegressor

from config import CART_DEFAULTS, CTREE_DEFAULTS, RANDOM_STATE
from ctree import ConditionalInferenceTree
from ts_core import ConfigError, DataError

logger = logging.getLogger(__name__)

TreeFitter = Callable[..., BaseEstimator]

# -----------------------------
# Tree algorithm registry
# -----------------------------
_TREE_REGISTRY: Dict[str, TreeFitter] = {}
_ALIASES = {"conditional_inference": "ctree", "rpart": "cart"}


def register_tree(name: str, fitter: TreeFitter) -> None:
    """
    Register a tree algorithm under a unique name.
    The fitter is called as fitter(features, target, **params) and returns a fitted estimator.
    """
    _TREE_REGISTRY[name] = fitter


def get_registered_trees() -> List[str]:
    return list(_TREE_REGISTRY)


def resolve_algorithm(name: str) -> str:
    key = _ALIASES.get(str(name).lower(), str(name).lower())
    if key not in _TREE_REGISTRY:
        raise ConfigError(f"Unknown tree algorithm {name!r}; available: {get_registered_trees()}")
    return key


def _check_training_data(features, target):
    X = features.to_numpy(dtype=float) if isinstance(features, pd.DataFrame) else np.asarray(features, dtype=float)
    y = np.asarray(target, dtype=float).ravel()
    if X.ndim != 2 or X.shape[0] == 0 or X.shape[1] == 0:
        raise DataError(f"Feature matrix must be non-empty and 2-D, got shape {X.shape}")
    if X.shape[0] != len(y):
        raise DataError(f"Feature rows ({X.shape[0]}) and target length ({len(y)}) differ")
    if not (np.all(np.isfinite(X)) and np.all(np.isfinite(y))):
        raise DataError("Features and target must be finite")
    return X, y


def fit_cart(
    features,
    target,
    minsplit: int = CART_DEFAULTS["minsplit"],
    cp: float = CART_DEFAULTS["cp"],
    maxdepth: int = CART_DEFAULTS["maxdepth"],
    minbucket: Optional[int] = None,
) -> DecisionTreeRegressor:
    """
    CART regression tree (squared error) with rpart-style controls.

    cp is relative to the root node: a split survives pruning only if it
    lowers the total SSE by at least cp * SSE(root). In scikit-learn's
    cost-complexity units (impurity weighted by sample fraction) that is
    ccp_alpha = cp * var(target).
    """
    if cp < 0:
        raise ConfigError(f"cp must be >= 0, got {cp}")
    if maxdepth is not None and maxdepth < 1:
        raise ConfigError(f"maxdepth must be >= 1, got {maxdepth}")
    if minsplit < 1:
        raise ConfigError(f"minsplit must be >= 1, got {minsplit}")
    X, y = _check_training_data(features, target)
    if minbucket is None:
        minbucket = int(round(minsplit / 3.0))
    model = DecisionTreeRegressor(
        criterion="squared_error",
        min_samples_split=max(2, int(minsplit)),
        min_samples_leaf=max(1, int(minbucket)),
        max_depth=maxdepth,
        ccp_alpha=float(cp) * float(np.var(y)),
        random_state=RANDOM_STATE,
    )
    return model.fit(X, y)


def fit_ctree(
    features,
    target,
    mincriterion: float = CTREE_DEFAULTS["mincriterion"],
    minsplit: int = CTREE_DEFAULTS["minsplit"],
    minbucket: int = CTREE_DEFAULTS["minbucket"],
    testtype: str = CTREE_DEFAULTS["testtype"],
    teststat: str = CTREE_DEFAULTS["teststat"],
    maxdepth: Optional[int] = None,
) -> ConditionalInferenceTree:
    """Conditional inference tree, see ctree.ConditionalInferenceTree."""
    if minsplit < 1 or minbucket < 1:
        raise ConfigError("minsplit and minbucket must be >= 1")
    if testtype not in ("bonferroni", "univariate", "teststatistic"):
        raise ConfigError(f"Unknown testtype {testtype!r}")
    if teststat not in ("quadratic", "maximum"):
        raise ConfigError(f"Unknown teststat {teststat!r}")
    X, y = _check_training_data(features, target)
    model = ConditionalInferenceTree(
        mincriterion=mincriterion,
        minsplit=minsplit,
        minbucket=minbucket,
        maxdepth=maxdepth,
        testtype=testtype,
        teststat=teststat,
    )
    return model.fit(X, y)


register_tree("cart", fit_cart)
register_tree("ctree", fit_ctree)


def fit_tree(features, target, algorithm: str = "cart", **params) -> BaseEstimator:
    """Fit the registered tree `algorithm` on (features, target)."""
    key = resolve_algorithm(algorithm)
    model = _TREE_REGISTRY[key](features, target, **params)
    logger.info("Fitted %s tree: %d splits on %d rows", key, count_splits(model), len(target))
    return model


def predict_tree(model: BaseEstimator, features) -> np.ndarray:
    X = features.to_numpy(dtype=float) if isinstance(features, pd.DataFrame) else np.asarray(features, dtype=float)
    return np.asarray(model.predict(X), dtype=float)


def count_splits(model: BaseEstimator) -> int:
    """Number of internal (split) nodes of a fitted tree."""
    if isinstance(model, DecisionTreeRegressor):
        return int(model.tree_.node_count - model.get_n_leaves())
    if hasattr(model, "get_n_splits"):
        return int(model.get_n_splits())
    raise TypeError(f"Cannot count splits of {type(model).__name__}")
