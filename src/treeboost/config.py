"""
Learner settings for single trees and gradient boosted tree ensembles.
"""

from enum import Enum
from typing import Optional
import math
import os

import numpy as np

from .exceptions import ConfigurationError


class SplitCriterion(Enum):
    """Impurity measure used for classification splits."""
    GINI = "gini"
    INFORMATION_GAIN = "information_gain"
    INFORMATION_GAIN_RATIO = "information_gain_ratio"


class MissingValueHandling(Enum):
    """How rows with a missing attribute value are routed at a split."""
    SURROGATE = "surrogate"
    XGBOOST = "xgboost"


class ColumnSamplingMode(Enum):
    """Strategy to choose the attributes considered for a tree (or node)."""
    NONE = "none"
    LINEAR = "linear"
    SQUARE_ROOT = "square_root"
    ABSOLUTE = "absolute"


class TreeEnsembleLearnerConfiguration:
    """
    Settings shared by all tree learners.

    Row and column sampling draw from the generator handed in by the caller,
    so a run is reproducible given ``seed``.
    """

    def __init__(
        self,
        max_levels: Optional[int] = None,
        min_node_size: Optional[int] = None,
        min_child_size: Optional[int] = None,
        split_criterion: SplitCriterion = SplitCriterion.GINI,
        use_average_split_points: bool = True,
        use_binary_nominal_splits: bool = True,
        missing_value_handling: MissingValueHandling = MissingValueHandling.XGBOOST,
        data_fraction: float = 1.0,
        sample_with_replacement: bool = False,
        column_sampling_mode: ColumnSamplingMode = ColumnSamplingMode.NONE,
        column_fraction: float = 1.0,
        column_absolute: int = 10,
        use_different_attributes_at_each_node: bool = False,
        seed: Optional[int] = None,
    ):
        """
        Args:
            max_levels: Maximum tree depth (root is level 1); None for unlimited.
            min_node_size: Nodes with fewer rows (total weight) are not split.
            min_child_size: Splits creating a smaller child are rejected.
            split_criterion: Impurity measure for classification splits.
            use_average_split_points: Numeric thresholds halfway between values.
            use_binary_nominal_splits: Binary instead of multiway nominal splits.
            missing_value_handling: Surrogate or XGBoost-style routing.
            data_fraction: Fraction of rows drawn for each tree.
            sample_with_replacement: Bootstrap rows instead of subsampling.
            column_sampling_mode: How attributes are sampled.
            column_fraction: Fraction for ColumnSamplingMode.LINEAR.
            column_absolute: Count for ColumnSamplingMode.ABSOLUTE.
            use_different_attributes_at_each_node: Resample attributes per node.
            seed: Master random seed.
        """
        self.max_levels = max_levels
        self.min_node_size = min_node_size
        self.min_child_size = min_child_size
        self.split_criterion = SplitCriterion(split_criterion)
        self.use_average_split_points = use_average_split_points
        self.use_binary_nominal_splits = use_binary_nominal_splits
        self.missing_value_handling = MissingValueHandling(missing_value_handling)
        self.data_fraction = data_fraction
        self.sample_with_replacement = sample_with_replacement
        self.column_sampling_mode = ColumnSamplingMode(column_sampling_mode)
        self.column_fraction = column_fraction
        self.column_absolute = column_absolute
        self.use_different_attributes_at_each_node = use_different_attributes_at_each_node
        self.seed = seed

    @property
    def use_xgboost_missing_values(self) -> bool:
        return self.missing_value_handling is MissingValueHandling.XGBOOST

    def validate(self) -> None:
        """Raise ConfigurationError if any setting is out of range."""
        if self.max_levels is not None and self.max_levels < 1:
            raise ConfigurationError(f"max_levels must be >= 1, got {self.max_levels}")
        if self.min_node_size is not None and self.min_node_size < 1:
            raise ConfigurationError(f"min_node_size must be >= 1, got {self.min_node_size}")
        if self.min_child_size is not None:
            if self.min_child_size < 1:
                raise ConfigurationError(f"min_child_size must be >= 1, got {self.min_child_size}")
            if self.min_node_size is not None and self.min_child_size > self.min_node_size / 2:
                raise ConfigurationError(
                    f"min_child_size ({self.min_child_size}) must not exceed half "
                    f"of min_node_size ({self.min_node_size})"
                )
        if not 0.0 < self.data_fraction <= 1.0:
            raise ConfigurationError(f"data_fraction must be in (0, 1], got {self.data_fraction}")
        if not 0.0 < self.column_fraction <= 1.0:
            raise ConfigurationError(f"column_fraction must be in (0, 1], got {self.column_fraction}")
        if self.column_absolute < 1:
            raise ConfigurationError(f"column_absolute must be >= 1, got {self.column_absolute}")

    def create_random_data(self) -> np.random.Generator:
        """Master generator; fresh entropy if no seed is set."""
        return np.random.default_rng(self.seed)

    def create_row_sample(self, nr_rows: int, rng: np.random.Generator) -> np.ndarray:
        """
        Per-row weights of one row sample.

        Without replacement the chosen rows get weight 1; with replacement the
        weight is the number of times a row was drawn.
        """
        if self.data_fraction >= 1.0 and not self.sample_with_replacement:
            return np.ones(nr_rows)
        nr_sampled = max(1, int(round(self.data_fraction * nr_rows)))
        if self.sample_with_replacement:
            drawn = rng.integers(0, nr_rows, size=nr_sampled)
            return np.bincount(drawn, minlength=nr_rows).astype(float)
        weights = np.zeros(nr_rows)
        weights[rng.choice(nr_rows, size=nr_sampled, replace=False)] = 1.0
        return weights

    def get_nr_sampled_columns(self, nr_columns: int) -> int:
        mode = self.column_sampling_mode
        if mode is ColumnSamplingMode.NONE:
            count = nr_columns
        elif mode is ColumnSamplingMode.LINEAR:
            count = int(round(self.column_fraction * nr_columns))
        elif mode is ColumnSamplingMode.SQUARE_ROOT:
            count = int(round(math.sqrt(nr_columns)))
        else:
            count = self.column_absolute
        return min(max(1, count), nr_columns)

    def create_column_sample(self, nr_columns: int, rng: np.random.Generator) -> np.ndarray:
        """Sorted attribute indices available to a tree (or node)."""
        count = self.get_nr_sampled_columns(nr_columns)
        if count == nr_columns:
            return np.arange(nr_columns)
        return np.sort(rng.choice(nr_columns, size=count, replace=False))


def default_nr_threads() -> int:
    """Worker pool size for parallel tree fits: about 1.5x the available cores."""
    return max(1, int(1.5 * (os.cpu_count() or 1)))


class GradientBoostingLearnerConfiguration(TreeEnsembleLearnerConfiguration):
    """Settings of the gradient boosting driver."""

    def __init__(
        self,
        nr_models: int = 100,
        learning_rate: float = 0.1,
        alpha: float = 0.9,
        max_levels: Optional[int] = 4,
        nr_threads: Optional[int] = None,
        **kwargs
    ):
        """
        Args:
            nr_models: Number of boosting rounds (M).
            learning_rate: Shrinkage ν ∈ (0, 1] applied to every tree contribution.
            alpha: Quantile of absolute residuals used as Huber threshold.
            max_levels: Maximum depth of the individual trees.
            nr_threads: Bound on concurrent tree fits for multi-class boosting.
            **kwargs: Remaining TreeEnsembleLearnerConfiguration settings.
        """
        super().__init__(max_levels=max_levels, **kwargs)
        self.nr_models = nr_models
        self.learning_rate = learning_rate
        self.alpha = alpha
        self.nr_threads = nr_threads if nr_threads is not None else default_nr_threads()

    def validate(self) -> None:
        super().validate()
        if self.nr_models < 1:
            raise ConfigurationError(f"nr_models must be >= 1, got {self.nr_models}")
        if not 0.0 < self.learning_rate <= 1.0:
            raise ConfigurationError(f"learning_rate must be in (0, 1], got {self.learning_rate}")
        if not 0.0 < self.alpha <= 1.0:
            raise ConfigurationError(f"alpha must be in (0, 1], got {self.alpha}")
        if self.nr_threads < 1:
            raise ConfigurationError(f"nr_threads must be >= 1, got {self.nr_threads}")
