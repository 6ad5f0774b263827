"""
Loss strategies for gradient boosting.

A LossStrategy supplies the loss-specific pieces of Algorithm 10.3 / 10.4 of
ESL: the initial constant, the pseudo-residuals each tree is fitted to and
the closed-form coefficient of a tree node. The driver in ``treeboost.core``
is loss agnostic.

References:
- Friedman, J. H. (2001). Greedy function approximation: A gradient boosting
  machine. Annals of Statistics, 29(5), 1189-1232. Algorithms 2 (LS_Boost),
  3 (LAD/M_TreeBoost), 5 (L2_TreeBoost) and 6 (LK_TreeBoost).
- Hastie, T., Tibshirani, R., & Friedman, J. (2009). ESL, Section 10.10.
"""

from typing import Optional
import numpy as np

from .columns import TreeTargetNominalColumnData, TreeTargetNumericColumnData
from .exceptions import ConfigurationError
from .utils import safe_ratio, sigmoid, softmax


class PseudoResiduals:
    """
    Per-round pseudo-residuals and the statistics leaf coefficients need.

    Attributes:
        values: Pseudo-residuals, shape (n_samples, n_outputs).
        raw_residuals: y - F for regression losses (else None).
        quantile: Huber threshold of the round (else None).
    """

    def __init__(self, values: np.ndarray, raw_residuals: Optional[np.ndarray] = None,
                 quantile: Optional[float] = None):
        self.values = values
        self.raw_residuals = raw_residuals
        self.quantile = quantile


class LossStrategy:
    """Interface of a boosting loss; F always has shape (n_samples, n_outputs)."""

    name = "loss"
    is_classification = False

    def check_target(self, target) -> None:
        """Raise ConfigurationError if the target violates the loss' precondition."""

    def nr_outputs(self, target) -> int:
        return 1

    def target_values(self, target) -> np.ndarray:
        return target.values

    def initial_value(self, target) -> np.ndarray:
        raise NotImplementedError

    def pseudo_residual(self, y: np.ndarray, F: np.ndarray, configuration) -> PseudoResiduals:
        raise NotImplementedError

    def leaf_coefficient(self, residuals: PseudoResiduals, rows: np.ndarray, output_index: int) -> float:
        """Coefficient of a tree node over the (boolean or index) ``rows`` that reach it."""
        raise NotImplementedError

    def loss(self, y: np.ndarray, F: np.ndarray, configuration=None) -> float:
        raise NotImplementedError

    def transform(self, F: np.ndarray) -> np.ndarray:
        """Map raw scores to predictions (probabilities or values)."""
        return F[:, 0]

    def _numeric_target(self, target) -> None:
        if not isinstance(target, TreeTargetNumericColumnData):
            raise ConfigurationError(f"{self.name} loss requires a numeric target")


class LeastSquaresLoss(LossStrategy):
    """L(y, F) = 0.5 (y - F)²; the node coefficient is the mean residual."""

    name = "least squares"

    def check_target(self, target):
        self._numeric_target(target)

    def initial_value(self, target):
        return np.array([np.mean(target.values)])

    def pseudo_residual(self, y, F, configuration=None):
        r = y[:, None] - F
        return PseudoResiduals(r, raw_residuals=r)

    def leaf_coefficient(self, residuals, rows, output_index):
        r = residuals.values[rows, output_index]
        return float(np.mean(r)) if len(r) else 0.0

    def loss(self, y, F, configuration=None):
        return float(0.5 * np.mean((y - F[:, 0]) ** 2))


class L2Loss(LossStrategy):
    """
    Two-class logistic loss L(y, F) = log(1 + exp(-2yF)) with y ∈ {-1, +1}.

    Pseudo-residual 2y / (1 + exp(2yF)); the node coefficient is a single
    Newton step Σ r / Σ |r| (2 - |r|).
    """

    name = "L2"
    is_classification = True

    def check_target(self, target):
        self._numeric_target(target)
        bad = ~np.isin(target.values, (-1.0, 1.0))
        if np.any(bad):
            first = target.values[np.argmax(bad)]
            raise ConfigurationError(
                f"L2 loss requires target values +1 or -1, found {first!r}"
            )

    def initial_value(self, target):
        return np.array([np.mean(target.values)])

    def pseudo_residual(self, y, F, configuration=None):
        margin = np.clip(2.0 * y[:, None] * F, -700.0, 700.0)
        return PseudoResiduals(2.0 * y[:, None] / (1.0 + np.exp(margin)))

    def leaf_coefficient(self, residuals, rows, output_index):
        r = residuals.values[rows, output_index]
        abs_r = np.abs(r)
        return safe_ratio(np.sum(r), np.sum(abs_r * (2.0 - abs_r)))

    def loss(self, y, F, configuration=None):
        return float(np.mean(np.logaddexp(0.0, -2.0 * y * F[:, 0])))

    def transform(self, F):
        """Probability of the +1 class, 1 / (1 + exp(-2F))."""
        return sigmoid(2.0 * F[:, 0])


class LKLoss(LossStrategy):
    """
    K-class logistic loss with softmax probabilities.

    Class k's pseudo-residual is 1[y = k] - p_k; the node coefficient is
    (K - 1) / K · Σ r / Σ |r| (1 - |r|).
    """

    name = "LK"
    is_classification = True

    def check_target(self, target):
        if not isinstance(target, TreeTargetNominalColumnData):
            raise ConfigurationError("LK loss requires a nominal target")
        if target.nr_classes < 2:
            raise ConfigurationError("LK loss requires at least two classes")

    def nr_outputs(self, target):
        return target.nr_classes

    def target_values(self, target):
        return target.codes

    def initial_value(self, target):
        return np.zeros(target.nr_classes)

    def pseudo_residual(self, y, F, configuration=None):
        indicator = np.zeros_like(F)
        indicator[np.arange(len(y)), y] = 1.0
        return PseudoResiduals(indicator - softmax(F))

    def leaf_coefficient(self, residuals, rows, output_index):
        K = residuals.values.shape[1]
        r = residuals.values[rows, output_index]
        abs_r = np.abs(r)
        return (K - 1) / K * safe_ratio(np.sum(r), np.sum(abs_r * (1.0 - abs_r)))

    def loss(self, y, F, configuration=None):
        p = np.clip(softmax(F)[np.arange(len(y)), y], 1e-15, 1.0)
        return float(-np.mean(np.log(p)))

    def transform(self, F):
        return softmax(F)


class HuberLoss(LossStrategy):
    """
    Huber loss with a per-round threshold δ, the α-quantile of |y - F|.

    Pseudo-residuals are y - F clipped to [-δ, δ]. The node coefficient is
    r̃ + mean(sign(r - r̃) · min(δ, |r - r̃|)), r̃ the median raw residual.
    """

    name = "M"

    def check_target(self, target):
        self._numeric_target(target)

    def initial_value(self, target):
        return np.array([target.get_median()])

    def pseudo_residual(self, y, F, configuration):
        r = y[:, None] - F
        quantile = float(np.quantile(np.abs(r), configuration.alpha))
        return PseudoResiduals(np.clip(r, -quantile, quantile), raw_residuals=r, quantile=quantile)

    def leaf_coefficient(self, residuals, rows, output_index):
        r = residuals.raw_residuals[rows, output_index]
        if len(r) == 0:
            return 0.0
        median = np.median(r)
        deviation = r - median
        clipped = np.sign(deviation) * np.minimum(residuals.quantile, np.abs(deviation))
        return float(median + np.mean(clipped))

    def loss(self, y, F, configuration=None):
        r = np.abs(y - F[:, 0])
        delta = float(np.quantile(r, configuration.alpha)) if configuration is not None else 1.0
        quadratic = 0.5 * r ** 2
        linear = delta * (r - 0.5 * delta)
        return float(np.mean(np.where(r <= delta, quadratic, linear)))
