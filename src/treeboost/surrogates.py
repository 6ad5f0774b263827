"""
Surrogate splits for rows whose value of the split attribute is missing.

For a binary split that misses rows, every other sampled attribute is asked
for its best split of a synthetic two-class target encoding where the
primary split sends each row ("L" or "R"). A candidate is kept if it
predicts the primary split better than the majority rule, measured by the
association (Breiman et al., 1984, Section 5.3.1)

    λ = (err_majority - (1 - p_agree)) / err_majority

where p_agree is the fraction of rows sent to the same side. Rows missing in
the primary attribute follow the best surrogate that can decide them and
otherwise the majority direction.
"""

from typing import List, Sequence
import logging

import numpy as np

from .columns import TreeNominalColumnMetaData, TreeTargetNominalColumnData
from .conditions import (
    RowSubsetColumns, TreeNodeSurrogateCondition, TreeNodeSurrogateOnlyDefDirCondition,
)
from .utils import EPSILON

logger = logging.getLogger(__name__)

SURROGATE_TARGET_META = TreeNominalColumnMetaData("SurrogateTarget", ["L", "R"])


class SurrogateSplit:
    """Child conditions of a split together with the child membership markers."""

    def __init__(self, conditions: Sequence, child_markers: Sequence[np.ndarray]):
        self.conditions = list(conditions)
        self.child_markers = list(child_markers)


def _evaluate_on_memberships(conditions, memberships, tree_data) -> List[np.ndarray]:
    view = RowSubsetColumns(tree_data.get_column_values(), memberships.get_original_indices())
    return [c.evaluate(view) for c in conditions]


def create_surrogate_split_with_default_direction(memberships, best_split, tree_data) -> SurrogateSplit:
    """Attach only the majority rule: missing values go to the child with more rows."""
    column = best_split.column_data
    conditions = best_split.child_conditions
    markers = [column.update_child_memberships(c, memberships) for c in conditions]
    majority = int(np.argmax([m.sum() for m in markers]))
    surrogate_conditions = [
        TreeNodeSurrogateOnlyDefDirCondition(c, i == majority) for i, c in enumerate(conditions)
    ]
    return SurrogateSplit(
        surrogate_conditions, _evaluate_on_memberships(surrogate_conditions, memberships, tree_data))


def learn_surrogates(memberships, best_split, tree_data, column_sample, configuration, rd) -> SurrogateSplit:
    """
    Learn surrogate splits for a binary ``best_split`` on the other sampled columns.

    Args:
        memberships: Rows of the node being split.
        best_split: Binary split candidate chosen for the node.
        tree_data: Training data.
        column_sample: Attribute indices available at this node.
        configuration: Learner settings (split criterion, missing handling).
        rd: Random generator handed to the split searches.
    """
    best_column = best_split.column_data
    conditions = best_split.child_conditions
    left = best_column.update_child_memberships(conditions[0], memberships)
    right = best_column.update_child_memberships(conditions[1], memberships)
    surrogate_memberships = memberships.create_child_memberships(left | right)

    codes = np.zeros(tree_data.get_nr_rows(), dtype=np.int64)
    codes[memberships.get_original_indices()[right]] = 1
    target = TreeTargetNominalColumnData(SURROGATE_TARGET_META, codes)
    priors = target.get_distribution(surrogate_memberships, configuration)

    candidates = [best_split]
    for attribute_index in column_sample:
        column = tree_data.get_column(attribute_index)
        if column is best_column:
            continue
        candidate = column.calc_best_split_classification(surrogate_memberships, priors, target, rd)
        # surrogates replace a binary decision, multiway candidates cannot stand in
        if candidate is not None and len(candidate.child_conditions) == 2:
            candidates.append(candidate)
    return calculate_surrogates(memberships, candidates, tree_data)


def calculate_surrogates(memberships, candidates, tree_data) -> SurrogateSplit:
    """
    Rank ``candidates[1:]`` as surrogates of ``candidates[0]``.

    Candidates are ranked by association, the complement of a candidate
    (children swapped) is used when it associates better.
    """
    best_split = candidates[0]
    best_conditions = best_split.child_conditions
    if len(best_conditions) != 2:
        raise ValueError("Surrogates can only be calculated for binary splits")
    best_column = best_split.column_data
    left = best_column.update_child_memberships(best_conditions[0], memberships)
    right = best_column.update_child_memberships(best_conditions[1], memberships)

    nr_rows = memberships.get_row_count()
    prob_left = left.sum() / nr_rows
    prob_right = right.sum() / nr_rows
    majority_goes_left = not prob_right > prob_left
    error_majority = prob_right if majority_goes_left else prob_left

    ranked = []
    if error_majority > EPSILON:
        for candidate in candidates[1:]:
            column = candidate.column_data
            cand_conditions = candidate.child_conditions
            cand_left = column.update_child_memberships(cand_conditions[0], memberships)
            cand_right = column.update_child_memberships(cand_conditions[1], memberships)
            agree = ((left & cand_left).sum() + (right & cand_right).sum()) / nr_rows
            agree_complement = ((left & cand_right).sum() + (right & cand_left).sum()) / nr_rows
            association = (error_majority - (1 - agree)) / error_majority
            association_complement = (error_majority - (1 - agree_complement)) / error_majority
            use_complement = association_complement > association
            measure = max(association, association_complement)
            if measure > 0:
                ranked.append((measure, use_complement, candidate))
    # stable: equal associations keep candidate order
    ranked.sort(key=lambda entry: -entry[0])

    if not ranked:
        conditions = [
            TreeNodeSurrogateOnlyDefDirCondition(best_conditions[0], majority_goes_left),
            TreeNodeSurrogateOnlyDefDirCondition(best_conditions[1], not majority_goes_left),
        ]
    else:
        left_conditions = [best_conditions[0]]
        right_conditions = [best_conditions[1]]
        for _, use_complement, candidate in ranked:
            cand_conditions = candidate.child_conditions
            if use_complement:
                left_conditions.append(cand_conditions[1])
                right_conditions.append(cand_conditions[0])
            else:
                left_conditions.append(cand_conditions[0])
                right_conditions.append(cand_conditions[1])
        logger.debug("Using %d surrogate(s) for %r", len(ranked), best_column.attribute_name)
        conditions = [
            TreeNodeSurrogateCondition(left_conditions, majority_goes_left),
            TreeNodeSurrogateCondition(right_conditions, not majority_goes_left),
        ]
    return SurrogateSplit(conditions, _evaluate_on_memberships(conditions, memberships, tree_data))
