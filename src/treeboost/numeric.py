"""
Split search on numeric attributes: a threshold scan over the sorted values.

Candidate thresholds lie between consecutive distinct values. With
``use_average_split_points`` the threshold is the midpoint, otherwise the
lower value. Left child is ``<= threshold``, right child ``> threshold``.
"""

from typing import Callable, List, Sequence
import numpy as np

from .candidates import MissingDirection, NumericSplitCandidate
from .columns import TreeAttributeColumnData, TreeColumnMetaData
from .priors import regression_gain
from .utils import EPSILON


class TreeNumericColumnData(TreeAttributeColumnData):
    """Numeric attribute column; NaN marks missing values, which sort last."""

    def __init__(self, meta: TreeColumnMetaData, values: np.ndarray, configuration):
        super().__init__(meta, configuration)
        values = np.asarray(values, dtype=float)
        values.setflags(write=False)
        self.values = values
        self._order = np.argsort(values, kind="stable")

    @classmethod
    def create(cls, name: str, values: Sequence, configuration,
               attribute_index: int = 0) -> "TreeNumericColumnData":
        values = np.array([np.nan if v is None else v for v in values], dtype=float)
        return cls(TreeColumnMetaData(name, attribute_index), values, configuration)

    def get_nr_rows(self) -> int:
        return len(self.values)

    def get_values(self) -> np.ndarray:
        return self.values

    def contains_missing_values(self) -> bool:
        return bool(np.any(np.isnan(self.values)))

    def get_original_index_in_column_order(self) -> np.ndarray:
        return self._order

    def calc_best_split_classification(self, memberships, target_priors, target_column, rd=None):
        cm = memberships.get_column_memberships(self.attribute_index)
        values = self.values[cm.original_indices]
        present = ~np.isnan(values)
        stats = np.zeros((len(values), target_priors.nr_classes))
        stats[np.arange(len(values)), target_column.codes[cm.original_indices]] = cm.row_weights
        missing_stats = stats[~present].sum(axis=0)
        present_stats = stats[present]

        criterion = target_priors.impurity_criterion
        if self.configuration.use_xgboost_missing_values:
            prior_impurity = criterion.partition_impurity(present_stats.sum(axis=0) + missing_stats)
        else:
            prior_impurity = criterion.partition_impurity(present_stats.sum(axis=0))

        def gain_fn(children: List[np.ndarray]) -> np.ndarray:
            post = criterion.post_split_impurity(children)
            return criterion.gain(prior_impurity, post, [c.sum(axis=-1) for c in children])

        return self._calc_best_threshold(
            memberships, values[present], present_stats, missing_stats,
            gain_fn, lambda s: s.sum(axis=-1))

    def calc_best_split_regression(self, memberships, target_priors, target_column, rd=None):
        cm = memberships.get_column_memberships(self.attribute_index)
        values = self.values[cm.original_indices]
        present = ~np.isnan(values)
        w = cm.row_weights
        y = target_column.values[cm.original_indices]
        # column 0: weight, column 1: weighted target sum
        stats = np.column_stack([w, w * y])
        missing_stats = stats[~present].sum(axis=0)
        present_stats = stats[present]

        if self.configuration.use_xgboost_missing_values:
            total = present_stats.sum(axis=0) + missing_stats
        else:
            total = present_stats.sum(axis=0)

        def gain_fn(children: List[np.ndarray]) -> np.ndarray:
            return regression_gain(
                [c[..., 1] for c in children], [c[..., 0] for c in children], total[1], total[0])

        return self._calc_best_threshold(
            memberships, values[present], present_stats, missing_stats,
            gain_fn, lambda s: s[..., 0])

    def _is_valid_split(self, child_weights: np.ndarray) -> np.ndarray:
        min_child_size = self.configuration.min_child_size
        if min_child_size is None:
            return np.all(child_weights >= EPSILON, axis=-1)
        return np.all(child_weights >= min_child_size, axis=-1)

    def _calc_best_threshold(
        self,
        memberships,
        sorted_values: np.ndarray,
        sorted_stats: np.ndarray,
        missing_stats: np.ndarray,
        gain_fn: Callable,
        weight_fn: Callable,
    ):
        if len(sorted_values) < 2:
            return None
        split_positions = np.flatnonzero(sorted_values[:-1] < sorted_values[1:])
        if len(split_positions) == 0:
            return None
        cumulative = np.cumsum(sorted_stats, axis=0)
        left = cumulative[split_positions]
        right = cumulative[-1] - left

        use_xgb = self.configuration.use_xgboost_missing_values
        if use_xgb and weight_fn(missing_stats) >= EPSILON:
            # per threshold: missing rows left first, then right
            options = [(left + missing_stats, right), (left, right + missing_stats)]
            gains = np.column_stack([gain_fn(list(o)) for o in options])
            valid = np.column_stack([
                self._is_valid_split(np.column_stack([weight_fn(a), weight_fn(b)]))
                for a, b in options
            ])
            gains = np.where(valid, gains, -np.inf)
            best = int(np.argmax(gains))
            split_index, option = divmod(best, 2)
            best_gain = gains[split_index, option]
            direction = MissingDirection.LEFT if option == 0 else MissingDirection.RIGHT
        else:
            gains = gain_fn([left, right])
            valid = self._is_valid_split(np.column_stack([weight_fn(left), weight_fn(right)]))
            gains = np.where(valid, gains, -np.inf)
            split_index = int(np.argmax(gains))
            best_gain = gains[split_index]
            if use_xgb:
                left_weight = weight_fn(left[split_index])
                right_weight = weight_fn(right[split_index])
                direction = MissingDirection.LEFT if left_weight >= right_weight else MissingDirection.RIGHT
            else:
                direction = MissingDirection.NONE

        if not best_gain > 0:
            return None
        position = split_positions[split_index]
        lower, upper = sorted_values[position], sorted_values[position + 1]
        if self.configuration.use_average_split_points:
            split_value = lower + 0.5 * (upper - lower)
        else:
            split_value = lower
        return NumericSplitCandidate(
            self, split_value, float(best_gain), self._missed_rows(memberships), direction)

    def _missed_rows(self, memberships) -> np.ndarray:
        if self.configuration.use_xgboost_missing_values:
            return np.zeros(memberships.get_row_count(), dtype=bool)
        return np.isnan(self.values[memberships.get_original_indices()])
