"""
Numeric helpers shared by the split search, the tree learner and the losses.

References:
- Friedman, J. H. (2001). Greedy function approximation: A gradient boosting machine.
- Hastie, T., Tibshirani, R., & Friedman, J. (2009). The Elements of Statistical
  Learning (2nd ed.), Section 10.10 (loss functions for boosting).
"""

import numpy as np
from sklearn.metrics import (
    mean_squared_error, log_loss, accuracy_score, roc_auc_score
)

# Weights below this value count as zero.
EPSILON = 1e-10


def sigmoid(x: np.ndarray) -> np.ndarray:
    """Numerically stable sigmoid function."""
    x = np.asarray(x, dtype=float)
    out = np.empty_like(x)
    pos = x >= 0
    out[pos] = 1 / (1 + np.exp(-x[pos]))
    ex = np.exp(x[~pos])
    out[~pos] = ex / (1 + ex)
    return out


def softmax(F: np.ndarray) -> np.ndarray:
    """Row-wise softmax of raw scores F, shape (n_samples, n_classes)."""
    shifted = F - np.max(F, axis=1, keepdims=True)
    e = np.exp(shifted)
    return e / np.sum(e, axis=1, keepdims=True)


def safe_ratio(numerator: float, denominator: float) -> float:
    """numerator / denominator, or 0.0 if the denominator vanishes."""
    if abs(denominator) < EPSILON:
        return 0.0
    return float(numerator / denominator)


def derive_seed(rng: np.random.Generator) -> int:
    """Draw an independent child seed from a master generator."""
    return int(rng.integers(0, np.iinfo(np.int64).max))


# ===========================
# Metrics
# ===========================

def compute_metrics_regression(
    y_true: np.ndarray,
    y_pred: np.ndarray
) -> dict:
    """Compute regression metrics."""
    mse = mean_squared_error(y_true, y_pred)
    rmse = np.sqrt(mse)
    mae = np.mean(np.abs(y_true - y_pred))

    return {
        "mse": mse,
        "rmse": rmse,
        "mae": mae
    }


def compute_metrics_classification(
    y_true: np.ndarray,
    y_pred_proba: np.ndarray
) -> dict:
    """
    Compute classification metrics.

    Args:
        y_true: Class indices, shape (n_samples,).
        y_pred_proba: Class probabilities, shape (n_samples, n_classes).

    Returns:
        Dict with accuracy, log_loss and (for two classes) roc_auc.
    """
    y_pred_proba = np.clip(y_pred_proba, 1e-15, 1 - 1e-15)
    y_pred_proba = y_pred_proba / y_pred_proba.sum(axis=1, keepdims=True)
    labels = np.arange(y_pred_proba.shape[1])
    metrics = {
        "accuracy": accuracy_score(y_true, np.argmax(y_pred_proba, axis=1)),
        "log_loss": log_loss(y_true, y_pred_proba, labels=labels),
    }
    if y_pred_proba.shape[1] == 2 and len(np.unique(y_true)) == 2:
        metrics["roc_auc"] = roc_auc_score(y_true, y_pred_proba[:, 1])
    return metrics
