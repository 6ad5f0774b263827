"""
Impurity criteria and target priors (sufficient statistics of a node).

All impurity functions accept class-weight vectors of shape (..., n_classes)
so a whole scan of candidate partitions is evaluated at once.

References:
- Breiman, L., Friedman, J., Olshen, R., & Stone, C. (1984). Classification and
  Regression Trees. Chapters 4 and 8.
- Quinlan, J. R. (1993). C4.5: Programs for Machine Learning (gain ratio).
"""

from typing import Optional
import numpy as np

from .config import SplitCriterion
from .utils import EPSILON


class ImpurityCriterion:
    """Base class; subclasses define the impurity of one partition."""

    def partition_impurity(self, counts: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def post_split_impurity(self, partition_counts) -> np.ndarray:
        """
        Weighted average impurity of the partitions of a split.

        Args:
            partition_counts: Sequence of class-weight arrays, one per child,
                each of shape (..., n_classes).

        Returns:
            Σ w_i * impurity_i / Σ w_i, shape (...).
        """
        weights = [np.sum(c, axis=-1) for c in partition_counts]
        total = np.sum(weights, axis=0)
        weighted = np.sum(
            [w * self.partition_impurity(c) for w, c in zip(weights, partition_counts)],
            axis=0,
        )
        return np.where(total > EPSILON, weighted / np.where(total > EPSILON, total, 1.0), 0.0)

    def gain(self, prior_impurity, post_split_impurity, partition_weights) -> np.ndarray:
        return np.asarray(prior_impurity) - np.asarray(post_split_impurity)


class GiniIndex(ImpurityCriterion):
    """Gini impurity 1 - Σ p_k²."""

    def partition_impurity(self, counts: np.ndarray) -> np.ndarray:
        counts = np.asarray(counts, dtype=float)
        total = np.sum(counts, axis=-1)
        safe_total = np.where(total > EPSILON, total, 1.0)
        p = counts / safe_total[..., None]
        return np.where(total > EPSILON, 1.0 - np.sum(p * p, axis=-1), 0.0)


class InformationGain(ImpurityCriterion):
    """Entropy -Σ p_k log2 p_k."""

    def partition_impurity(self, counts: np.ndarray) -> np.ndarray:
        counts = np.asarray(counts, dtype=float)
        total = np.sum(counts, axis=-1)
        safe_total = np.where(total > EPSILON, total, 1.0)
        p = counts / safe_total[..., None]
        with np.errstate(divide="ignore", invalid="ignore"):
            terms = np.where(p > 0, p * np.log2(np.where(p > 0, p, 1.0)), 0.0)
        return np.where(total > EPSILON, -np.sum(terms, axis=-1), 0.0)


class InformationGainRatio(InformationGain):
    """Information gain normalised by the split information of the partitions."""

    def gain(self, prior_impurity, post_split_impurity, partition_weights) -> np.ndarray:
        raw_gain = super().gain(prior_impurity, post_split_impurity, partition_weights)
        split_info = InformationGain.partition_impurity(self, np.stack(partition_weights, axis=-1))
        safe = np.where(split_info > EPSILON, split_info, 1.0)
        return np.where(split_info > EPSILON, raw_gain / safe, 0.0)


def get_impurity_criterion(split_criterion: SplitCriterion) -> ImpurityCriterion:
    if split_criterion is SplitCriterion.GINI:
        return GiniIndex()
    if split_criterion is SplitCriterion.INFORMATION_GAIN:
        return InformationGain()
    return InformationGainRatio()


class ClassificationPriors:
    """Per-class total weight of the rows in a node."""

    def __init__(self, distribution: np.ndarray, impurity_criterion: ImpurityCriterion,
                 class_values: Optional[tuple] = None):
        self._distribution = np.asarray(distribution, dtype=float)
        self._distribution.setflags(write=False)
        self.impurity_criterion = impurity_criterion
        self.class_values = class_values

    @property
    def distribution(self) -> np.ndarray:
        return self._distribution

    @property
    def nr_classes(self) -> int:
        return len(self._distribution)

    @property
    def total_weight(self) -> float:
        return float(np.sum(self._distribution))

    @property
    def majority_index(self) -> int:
        # argmax returns the first maximum
        return int(np.argmax(self._distribution))

    @property
    def prior_impurity(self) -> float:
        return float(self.impurity_criterion.partition_impurity(self._distribution))

    def __repr__(self):
        return f"ClassificationPriors({self._distribution.tolist()})"


class RegressionPriors:
    """Total weight, weighted target sum and sum of squares of a node."""

    def __init__(self, total_weight: float, y_sum: float, y_sum_squares: float):
        self.total_weight = float(total_weight)
        self.y_sum = float(y_sum)
        self.y_sum_squares = float(y_sum_squares)

    @property
    def mean(self) -> float:
        if self.total_weight < EPSILON:
            return 0.0
        return self.y_sum / self.total_weight

    @property
    def sum_squared_deviation(self) -> float:
        """Σ w (y - mean)², the regression impurity of the node."""
        if self.total_weight < EPSILON:
            return 0.0
        return self.y_sum_squares - self.y_sum * self.y_sum / self.total_weight

    @property
    def prior_criterion(self) -> float:
        """ySum² / w; a split's gain is Σ_children ySum_i² / w_i minus this."""
        if self.total_weight < EPSILON:
            return 0.0
        return self.y_sum * self.y_sum / self.total_weight

    def __repr__(self):
        return (f"RegressionPriors(total_weight={self.total_weight}, "
                f"y_sum={self.y_sum}, y_sum_squares={self.y_sum_squares})")


def regression_gain(child_sums, child_weights, total_sum, total_weight) -> np.ndarray:
    """
    Variance reduction of a split, Σ ySum_i²/w_i - ySum²/w.

    Children with (near) zero weight contribute nothing.
    """
    gain = -(total_sum * total_sum / total_weight) if total_weight > EPSILON else 0.0
    for s, w in zip(child_sums, child_weights):
        w = np.asarray(w, dtype=float)
        safe = np.where(w > EPSILON, w, 1.0)
        gain = gain + np.where(w > EPSILON, np.asarray(s) ** 2 / safe, 0.0)
    return gain
