"""
Split search on nominal (categorical) attributes.

Binary splits
    * regression: categories sorted by mean target, scan of all prefix
      bipartitions (Breiman et al., 1984, Section 4.2.2), exact;
    * two classes: categories sorted by probability of the first class,
      prefix scan, exact by the same ordering argument;
    * three or more classes: ordering by first principal component
      (see ``treeboost.pca``), heuristic.

Multiway splits create one child per category observed in the node.

Missing values are routed either XGBoost-style (every candidate is evaluated
with the missing rows in each child and the better direction is kept) or
left to the tree learner's surrogate mechanism, in which case they take no
part in the gain and are reported as missed rows.
"""

from typing import Callable, List, Optional, Sequence
import logging

import numpy as np

from .candidates import (
    MissingDirection, NominalBinarySplitCandidate, NominalMultiwaySplitCandidate,
)
from .columns import TreeAttributeColumnData, TreeNominalColumnMetaData
from .pca import principal_component_order
from .priors import regression_gain
from .utils import EPSILON

logger = logging.getLogger(__name__)


class TreeNominalColumnData(TreeAttributeColumnData):
    """Nominal attribute column; rows are scanned grouped by category code."""

    def __init__(self, meta: TreeNominalColumnMetaData, codes: np.ndarray, configuration):
        super().__init__(meta, configuration)
        codes = np.asarray(codes, dtype=np.int64)
        codes.setflags(write=False)
        self.codes = codes
        self._order = np.argsort(codes, kind="stable")

    @classmethod
    def create(cls, name: str, values: Sequence, configuration,
               attribute_index: int = 0) -> "TreeNominalColumnData":
        """Column from raw values; None/NaN are missing."""
        meta = TreeNominalColumnMetaData.from_values(name, values, attribute_index)
        return cls(meta, meta.encode(values), configuration)

    def get_nr_rows(self) -> int:
        return len(self.codes)

    def get_values(self) -> np.ndarray:
        return self.codes

    def contains_missing_values(self) -> bool:
        return bool(np.any(self.codes == self.meta.missing_code))

    def get_original_index_in_column_order(self) -> np.ndarray:
        return self._order

    # -----------------------------
    # Split search
    # -----------------------------

    def calc_best_split_classification(self, memberships, target_priors, target_column, rd=None):
        """
        Best split of this column for a nominal target.

        Args:
            memberships: Rows of the node.
            target_priors: ClassificationPriors of the node.
            target_column: TreeTargetNominalColumnData.
            rd: Random generator (unused; ties go to the first candidate).

        Returns:
            SplitCandidate or None if no split improves impurity.
        """
        nr_classes = target_priors.nr_classes
        cm = memberships.get_column_memberships(self.attribute_index)
        stats = np.zeros((self.meta.nr_values + 1, nr_classes))
        np.add.at(stats, (self.codes[cm.original_indices], target_column.codes[cm.original_indices]),
                  cm.row_weights)
        category_stats, missing_stats = stats[:-1], stats[-1]
        valid = np.flatnonzero(category_stats.sum(axis=1) >= EPSILON)
        if len(valid) < 2:
            return None

        criterion = target_priors.impurity_criterion
        use_xgb = self.configuration.use_xgboost_missing_values
        if use_xgb:
            prior_impurity = criterion.partition_impurity(category_stats.sum(axis=0) + missing_stats)
        else:
            prior_impurity = criterion.partition_impurity(category_stats.sum(axis=0))

        def gain_fn(children: List[np.ndarray]) -> np.ndarray:
            post = criterion.post_split_impurity(children)
            return criterion.gain(prior_impurity, post, [c.sum(axis=-1) for c in children])

        def weight_fn(stats_: np.ndarray) -> np.ndarray:
            return stats_.sum(axis=-1)

        if not self.configuration.use_binary_nominal_splits:
            return self._calc_best_multiway_split(
                memberships, valid, category_stats, missing_stats, gain_fn, weight_fn)

        if nr_classes <= 2:
            probabilities = category_stats[valid, 0] / category_stats[valid].sum(axis=1)
            order = np.argsort(probabilities, kind="stable")
            groups = [[int(valid[i])] for i in order]
            group_stats = category_stats[valid[order]]
        else:
            ordered = principal_component_order(category_stats[valid])
            if ordered is None:
                logger.debug("No PCA ordering for column %r", self.attribute_name)
                return None
            local_groups, group_stats = ordered
            groups = [[int(valid[i]) for i in g] for g in local_groups]
        return self._calc_best_binary_split(
            memberships, groups, group_stats, missing_stats, gain_fn, weight_fn)

    def calc_best_split_regression(self, memberships, target_priors, target_column, rd=None):
        """
        Best split of this column for a numeric target.

        Gain is the reduction of the weighted sum of squared deviations,
        Σ ySum_i² / w_i - ySum² / w.
        """
        cm = memberships.get_column_memberships(self.attribute_index)
        codes = self.codes[cm.original_indices]
        w = cm.row_weights
        y = target_column.values[cm.original_indices]
        n = self.meta.nr_values + 1
        # column 0: weight, column 1: weighted target sum
        stats = np.column_stack([
            np.bincount(codes, weights=w, minlength=n),
            np.bincount(codes, weights=w * y, minlength=n),
        ])
        category_stats, missing_stats = stats[:-1], stats[-1]
        valid = np.flatnonzero(category_stats[:, 0] >= EPSILON)
        if len(valid) < 2:
            return None

        if self.configuration.use_xgboost_missing_values:
            total = category_stats.sum(axis=0) + missing_stats
        else:
            total = category_stats.sum(axis=0)
        total_weight, total_sum = total[0], total[1]

        def gain_fn(children: List[np.ndarray]) -> np.ndarray:
            return regression_gain(
                [c[..., 1] for c in children], [c[..., 0] for c in children],
                total_sum, total_weight,
            )

        def weight_fn(stats_: np.ndarray) -> np.ndarray:
            return stats_[..., 0]

        if not self.configuration.use_binary_nominal_splits:
            return self._calc_best_multiway_split(
                memberships, valid, category_stats, missing_stats, gain_fn, weight_fn)

        means = category_stats[valid, 1] / category_stats[valid, 0]
        order = np.argsort(means, kind="stable")
        groups = [[int(valid[i])] for i in order]
        return self._calc_best_binary_split(
            memberships, groups, category_stats[valid[order]], missing_stats, gain_fn, weight_fn)

    # -----------------------------
    # Shared scans
    # -----------------------------

    def _missed_rows(self, memberships) -> np.ndarray:
        if self.configuration.use_xgboost_missing_values:
            return np.zeros(memberships.get_row_count(), dtype=bool)
        return self.codes[memberships.get_original_indices()] == self.meta.missing_code

    def _is_valid_split(self, child_weights: np.ndarray) -> np.ndarray:
        """Whether every child satisfies the minimum child size; evaluated on the last axis."""
        min_child_size = self.configuration.min_child_size
        if min_child_size is None:
            return np.all(child_weights >= EPSILON, axis=-1)
        return np.all(child_weights >= min_child_size, axis=-1)

    def _calc_best_binary_split(
        self,
        memberships,
        groups: List[List[int]],
        group_stats: np.ndarray,
        missing_stats: np.ndarray,
        gain_fn: Callable,
        weight_fn: Callable,
    ) -> Optional[NominalBinarySplitCandidate]:
        """
        Scan the bipartitions {groups[:s+1]} | {groups[s+1:]} for the best gain.

        The side containing the highest category index becomes the mask
        (child 1, IS_IN); the other side is child 0 (IS_NOT_IN).
        """
        nr_groups = len(groups)
        if nr_groups < 2:
            return None
        highest = max(max(g) for g in groups)
        position_of_highest = next(i for i, g in enumerate(groups) if highest in g)

        total = group_stats.sum(axis=0)
        prefix = np.cumsum(group_stats, axis=0)[:-1]
        prefix_has_highest = np.arange(nr_groups - 1) >= position_of_highest
        in_stats = np.where(prefix_has_highest[:, None], prefix, total - prefix)
        out_stats = total - in_stats

        use_xgb = self.configuration.use_xgboost_missing_values
        has_missing = weight_fn(missing_stats) >= EPSILON
        if use_xgb and has_missing:
            # per split point: missing rows in child 0 first, then in child 1
            options = [(out_stats + missing_stats, in_stats), (out_stats, in_stats + missing_stats)]
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
            gains = gain_fn([out_stats, in_stats])
            valid = self._is_valid_split(np.column_stack([weight_fn(out_stats), weight_fn(in_stats)]))
            gains = np.where(valid, gains, -np.inf)
            split_index = int(np.argmax(gains))
            best_gain = gains[split_index]
            if use_xgb:
                out_weight = weight_fn(out_stats[split_index])
                in_weight = weight_fn(in_stats[split_index])
                direction = MissingDirection.LEFT if out_weight >= in_weight else MissingDirection.RIGHT
            else:
                direction = MissingDirection.NONE

        if not best_gain > 0:
            return None
        if prefix_has_highest[split_index]:
            mask_groups = groups[:split_index + 1]
        else:
            mask_groups = groups[split_index + 1:]
        mask = 0
        for g in mask_groups:
            for i in g:
                mask |= 1 << i
        return NominalBinarySplitCandidate(
            self, float(best_gain), mask, self._missed_rows(memberships), direction)

    def _calc_best_multiway_split(
        self,
        memberships,
        valid: np.ndarray,
        category_stats: np.ndarray,
        missing_stats: np.ndarray,
        gain_fn: Callable,
        weight_fn: Callable,
    ) -> Optional[NominalMultiwaySplitCandidate]:
        """One child per observed category; under XGBoost handling the missing rows join one of them."""
        children = category_stats[valid]
        nr_children = len(valid)
        child_weights = weight_fn(children)
        use_xgb = self.configuration.use_xgboost_missing_values
        missing_value_index = None

        if use_xgb and weight_fn(missing_stats) >= EPSILON:
            # option j adds the missing rows to child j
            options = np.repeat(children[None, :, :], nr_children, axis=0)
            options[np.arange(nr_children), np.arange(nr_children)] += missing_stats
            gains = gain_fn([options[:, c] for c in range(nr_children)])
            option_weights = weight_fn(options)
            gains = np.where(self._is_valid_split(option_weights), gains, -np.inf)
            best = int(np.argmax(gains))
            gain = gains[best]
            missing_value_index = int(valid[best])
        else:
            if not self._is_valid_split(child_weights):
                return None
            gain = gain_fn([children[c] for c in range(nr_children)])
            if use_xgb:
                missing_value_index = int(valid[int(np.argmax(child_weights))])

        if not gain > 0:
            return None
        return NominalMultiwaySplitCandidate(
            self, float(gain), valid, self._missed_rows(memberships), missing_value_index)
