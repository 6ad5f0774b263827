"""
Tests for split search on nominal columns.

Coverage:
- Binary splits for two classes (sorted probability scan)
- Binary splits for three or more classes (PCA ordering)
- Multiway splits
- Regression splits (Breiman ordering and multiway)
- XGBoost-style missing value routing
- Surrogate handling (missed rows)
- update_child_memberships for binary and multiway conditions
"""

import numpy as np
import pytest

import sys
from pathlib import Path

# Add src directory to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from treeboost.candidates import NominalBinarySplitCandidate, NominalMultiwaySplitCandidate
from treeboost.columns import TreeData, TreeTargetNominalColumnData, TreeTargetNumericColumnData
from treeboost.conditions import SetLogic, TreeNodeNominalBinaryCondition, TreeNodeNominalCondition
from treeboost.config import MissingValueHandling, SplitCriterion, TreeEnsembleLearnerConfiguration
from treeboost.memberships import DataIndexManager, DataMemberships
from treeboost.nominal import TreeNominalColumnData


TENNIS_ATTRIBUTE = "S,S,O,R,R,R,O,S,S,R,S,O,O,R"
TENNIS_TARGET = "H,H,H,M,C,C,C,M,C,M,M,M,H,M"
TENNIS_REGRESSION_TARGET = [30, 32, 27, 25, 20, 17, 16, 23, 19, 25, 24, 21, 33, 22]


def _config(binary=True, xgboost=False, **kwargs):
    handling = MissingValueHandling.XGBOOST if xgboost else MissingValueHandling.SURROGATE
    return TreeEnsembleLearnerConfiguration(
        use_binary_nominal_splits=binary, missing_value_handling=handling, **kwargs)


def _values(csv):
    return [None if v == "?" else v for v in csv.split(",")]


def _classification(attribute, target, config):
    attribute = _values(attribute) if isinstance(attribute, str) else attribute
    target = target.split(",") if isinstance(target, str) else target
    column = TreeNominalColumnData.create("test-col", attribute, config)
    target_column = TreeTargetNominalColumnData.create("target", target)
    data = TreeData([column], target_column)
    memberships = DataMemberships.create_root(np.ones(len(target)), data, DataIndexManager(data))
    priors = target_column.get_distribution(memberships, config)
    return column, target_column, memberships, priors


def _regression(attribute, target, config):
    attribute = _values(attribute) if isinstance(attribute, str) else attribute
    column = TreeNominalColumnData.create("test-col", attribute, config)
    target_column = TreeTargetNumericColumnData.create("target", target)
    data = TreeData([column], target_column)
    memberships = DataMemberships.create_root(np.ones(len(target)), data, DataIndexManager(data))
    priors = target_column.get_priors(memberships, config)
    return column, target_column, memberships, priors


def _subset(csv, indices):
    values = csv.split(",")
    return [values[i] for i in indices]


# =========================
# Classification, binary
# =========================

class TestBinaryTwoClass:

    def test_tennis_two_class_isolates_r(self):
        """Sorted-probability scan finds {R} on the two-class subset."""
        indices = [0, 1, 2, 3, 7, 9, 10, 11, 12, 13]
        config = _config()
        column, target, memberships, priors = _classification(
            _subset(TENNIS_ATTRIBUTE, indices), _subset(TENNIS_TARGET, indices), config)

        split = column.calc_best_split_classification(memberships, priors, target, None)

        assert isinstance(split, NominalBinarySplitCandidate)
        assert split.gain == pytest.approx(0.1371428, abs=1e-6)
        assert split.can_split_further
        left, right = split.child_conditions
        assert left.set_logic is SetLogic.IS_NOT_IN
        assert right.set_logic is SetLogic.IS_IN
        assert left.values == ["R"]
        assert right.values == ["R"]
        assert not left.accepts_missings
        assert not right.accepts_missings
        assert not split.missed_rows.any()

    def test_two_categories_give_the_only_split(self):
        config = _config()
        column, target, memberships, priors = _classification("a,a,b,b,b", "X,X,Y,Y,X", config)

        split = column.calc_best_split_classification(memberships, priors, target, None)

        # prior 1 - (9 + 4) / 25 = 0.48; children a: 0, b: 4/9 * 3/5
        assert split.gain == pytest.approx(0.48 - 4 / 15, abs=1e-10)
        assert split.child_conditions[1].values == ["b"]

    def test_single_category_gives_no_split(self):
        config = _config()
        column, target, memberships, priors = _classification("a,a,a,a", "X,Y,X,Y", config)
        assert column.calc_best_split_classification(memberships, priors, target, None) is None

    def test_pure_target_gives_no_split(self):
        config = _config()
        column, target, memberships, priors = _classification("a,b,c,a", "X,X,X,X", config)
        assert column.calc_best_split_classification(memberships, priors, target, None) is None

    def test_min_child_size_rejects_small_children(self):
        indices = [0, 1, 2, 3, 7, 9, 10, 11, 12, 13]
        config = _config(min_child_size=4)
        column, target, memberships, priors = _classification(
            _subset(TENNIS_ATTRIBUTE, indices), _subset(TENNIS_TARGET, indices), config)

        split = column.calc_best_split_classification(memberships, priors, target, None)

        # {R} has only 3 rows; the remaining valid bipartition is {R,S} | {O}
        # with |O| = 3 as well, so nothing satisfies the minimum
        assert split is None

    def test_information_gain_criterion(self):
        indices = [0, 1, 2, 3, 7, 9, 10, 11, 12, 13]
        config = _config(split_criterion=SplitCriterion.INFORMATION_GAIN)
        column, target, memberships, priors = _classification(
            _subset(TENNIS_ATTRIBUTE, indices), _subset(TENNIS_TARGET, indices), config)

        split = column.calc_best_split_classification(memberships, priors, target, None)

        def entropy(p):
            p = np.asarray(p, dtype=float)
            p = p[p > 0] / p.sum()
            return -np.sum(p * np.log2(p))

        expected = entropy([4, 6]) - 0.7 * entropy([4, 3])
        assert split.gain == pytest.approx(expected, abs=1e-10)
        assert split.child_conditions[1].values == ["R"]

    def test_gain_ratio_criterion(self):
        indices = [0, 1, 2, 3, 7, 9, 10, 11, 12, 13]
        config = _config(split_criterion=SplitCriterion.INFORMATION_GAIN_RATIO)
        column, target, memberships, priors = _classification(
            _subset(TENNIS_ATTRIBUTE, indices), _subset(TENNIS_TARGET, indices), config)

        split = column.calc_best_split_classification(memberships, priors, target, None)

        def entropy(p):
            p = np.asarray(p, dtype=float)
            p = p[p > 0] / p.sum()
            return -np.sum(p * np.log2(p))

        gain = entropy([4, 6]) - 0.7 * entropy([4, 3])
        assert split.gain == pytest.approx(gain / entropy([7, 3]), abs=1e-10)


class TestBinaryMultiClass:

    def test_tennis_three_classes(self):
        config = _config()
        column, target, memberships, priors = _classification(TENNIS_ATTRIBUTE, TENNIS_TARGET, config)

        split = column.calc_best_split_classification(memberships, priors, target, None)

        assert split.gain == pytest.approx(0.0689342404, abs=1e-8)
        assert split.child_conditions[1].values == ["R"]
        assert split.can_split_further

    def test_tennis_three_classes_children(self):
        """Re-splitting the children of the first split."""
        config = _config()
        column, target, memberships, priors = _classification(TENNIS_ATTRIBUTE, TENNIS_TARGET, config)
        split = column.calc_best_split_classification(memberships, priors, target, None)
        not_r, is_r = split.child_conditions

        left = memberships.create_child_memberships(column.update_child_memberships(not_r, memberships))
        left_split = column.calc_best_split_classification(
            left, target.get_distribution(left, config), target, None)
        assert left_split.gain == pytest.approx(0.0086419753, abs=1e-8)

        right = memberships.create_child_memberships(column.update_child_memberships(is_r, memberships))
        right_split = column.calc_best_split_classification(
            right, target.get_distribution(right, config), target, None)
        assert right_split is None

    def test_pca_grouping_five_categories(self):
        distributions = {
            "A": (40, 10, 10),
            "B": (10, 40, 10),
            "C": (20, 30, 10),
            "D": (20, 15, 25),
            "E": (10, 5, 45),
        }
        attribute, labels = [], []
        for category, counts in distributions.items():
            for label, count in zip("XYZ", counts):
                attribute.extend([category] * count)
                labels.extend([label] * count)
        config = _config()
        column, target, memberships, priors = _classification(attribute, labels, config)

        split = column.calc_best_split_classification(memberships, priors, target, None)

        assert split.gain == pytest.approx(0.0660, abs=1e-3)
        assert split.child_conditions[1].values == ["E"]

    def test_pca_xgboost_without_missing_values(self):
        config = _config(xgboost=True)
        column, target, memberships, priors = _classification(
            "a,a,a,b,b,b,b,c,c", "A,B,B,C,C,C,B,A,B", config)

        split = column.calc_best_split_classification(memberships, priors, target, None)

        assert split.gain == pytest.approx(0.2086, abs=1e-4)
        assert split.value_mask == 0b101
        left, right = split.child_conditions
        # no missing rows in the node: majority child takes them
        assert not left.accepts_missings
        assert right.accepts_missings
        assert not split.missed_rows.any()

    def test_pca_xgboost_with_missing_values(self):
        config = _config(xgboost=True)
        column, target, memberships, priors = _classification(
            "a,a,a,b,b,b,b,c,c,?", "A,B,B,C,C,C,B,A,B,C", config)

        split = column.calc_best_split_classification(memberships, priors, target, None)

        assert split.gain == pytest.approx(0.24, abs=1e-10)
        assert split.value_mask == 0b101
        left, right = split.child_conditions
        assert left.accepts_missings
        assert not right.accepts_missings
        assert not split.missed_rows.any()

    def test_surrogate_reports_missed_rows(self):
        config = _config(xgboost=False)
        column, target, memberships, priors = _classification(
            "a,a,a,b,b,b,b,c,c,?", "A,B,B,C,C,C,B,A,B,C", config)

        split = column.calc_best_split_classification(memberships, priors, target, None)

        left, right = split.child_conditions
        assert not left.accepts_missings
        assert not right.accepts_missings
        np.testing.assert_array_equal(np.flatnonzero(split.missed_rows), [9])
        # gain over the nine non-missing rows only
        assert split.gain == pytest.approx(0.2086, abs=1e-4)


# =========================
# Classification, multiway
# =========================

class TestMultiway:

    def test_tennis_multiway(self):
        config = _config(binary=False)
        column, target, memberships, priors = _classification(TENNIS_ATTRIBUTE, TENNIS_TARGET, config)

        split = column.calc_best_split_classification(memberships, priors, target, None)

        assert isinstance(split, NominalMultiwaySplitCandidate)
        assert split.gain == pytest.approx(0.0744897959, abs=1e-8)
        assert [c.value for c in split.child_conditions] == ["S", "O", "R"]
        assert not split.can_split_further
        assert not any(c.accepts_missings for c in split.child_conditions)

    def test_multiway_xgboost_without_missing_values(self):
        config = _config(binary=False, xgboost=True)
        column, target, memberships, priors = _classification(
            "a,a,a,b,b,b,b,c,c", "A,B,B,C,C,C,B,A,B", config)

        split = column.calc_best_split_classification(memberships, priors, target, None)

        assert split.gain == pytest.approx(0.216049, abs=1e-6)
        assert [c.accepts_missings for c in split.child_conditions] == [False, True, False]

    def test_multiway_xgboost_with_missing_values(self):
        config = _config(binary=False, xgboost=True)
        column, target, memberships, priors = _classification(
            "a,a,a,b,b,b,b,c,c,?", "A,B,B,C,C,C,B,A,B,C", config)

        split = column.calc_best_split_classification(memberships, priors, target, None)

        assert split.gain == pytest.approx(0.246667, abs=1e-6)
        assert [c.accepts_missings for c in split.child_conditions] == [False, True, False]
        assert not split.missed_rows.any()

    def test_min_child_size_rejects_multiway(self):
        config = _config(binary=False, min_child_size=5)
        column, target, memberships, priors = _classification(TENNIS_ATTRIBUTE, TENNIS_TARGET, config)
        # category O has only four rows
        assert column.calc_best_split_classification(memberships, priors, target, None) is None


# =========================
# Regression
# =========================

class TestRegression:

    def test_binary_tennis(self):
        config = _config()
        column, target, memberships, priors = _regression(
            TENNIS_ATTRIBUTE, TENNIS_REGRESSION_TARGET, config)

        split = column.calc_best_split_regression(memberships, priors, target, None)

        assert split.gain == pytest.approx(32.9143, abs=1e-4)
        assert split.child_conditions[1].values == ["R"]

    def test_multiway_tennis(self):
        config = _config(binary=False)
        column, target, memberships, priors = _regression(
            TENNIS_ATTRIBUTE, TENNIS_REGRESSION_TARGET, config)

        split = column.calc_best_split_regression(memberships, priors, target, None)

        assert split.gain == pytest.approx(36.9643, abs=1e-4)
        assert [c.value for c in split.child_conditions] == ["S", "O", "R"]

    def test_binary_xgboost_without_missing_values(self):
        config = _config(xgboost=True)
        column, target, memberships, priors = _regression(
            "A,A,A,B,B,B,B,C,C", [1, 2, 2, 7, 6, 5, 2, 3, 1], config)

        split = column.calc_best_split_regression(memberships, priors, target, None)

        assert split.gain == pytest.approx(22.755556, abs=1e-5)
        assert split.value_mask == 0b101
        left, right = split.child_conditions
        assert not left.accepts_missings
        assert right.accepts_missings

    def test_binary_xgboost_with_missing_values(self):
        config = _config(xgboost=True)
        column, target, memberships, priors = _regression(
            "A,A,A,B,B,B,B,C,C,?", [1, 2, 2, 7, 6, 5, 2, 3, 1, 8], config)

        split = column.calc_best_split_regression(memberships, priors, target, None)

        assert split.gain == pytest.approx(36.1, abs=1e-8)
        assert split.value_mask == 0b101
        left, right = split.child_conditions
        assert left.accepts_missings
        assert not right.accepts_missings
        assert not split.missed_rows.any()

    def test_multiway_xgboost_without_missing_values(self):
        config = _config(binary=False, xgboost=True)
        column, target, memberships, priors = _regression(
            "A,A,A,B,B,B,B,C,C", [1, 2, 2, 7, 6, 5, 2, 3, 1], config)

        split = column.calc_best_split_regression(memberships, priors, target, None)

        assert split.gain == pytest.approx(22.888889, abs=1e-5)
        assert [c.accepts_missings for c in split.child_conditions] == [False, True, False]

    def test_weights_are_respected(self):
        """Doubling every weight leaves the category means and the best grouping unchanged."""
        config = _config()
        column, target, memberships, priors = _regression(
            TENNIS_ATTRIBUTE, TENNIS_REGRESSION_TARGET, config)
        data = TreeData([column], target)
        doubled = DataMemberships.create_root(np.full(14, 2.0), data, DataIndexManager(data))

        split = column.calc_best_split_regression(doubled, target.get_priors(doubled), target, None)

        assert split.gain == pytest.approx(2 * 32.9143, abs=1e-3)
        assert split.child_conditions[1].values == ["R"]


# =========================
# Child memberships
# =========================

class TestUpdateChildMemberships:

    @pytest.fixture
    def column_and_memberships(self):
        config = _config()
        column, target, memberships, priors = _regression(
            "A,A,A,A,B,B,B,C,C,C,?,?", [0.0] * 12, config)
        return column, memberships

    @pytest.mark.parametrize("set_logic, mask, accepts, expected", [
        (SetLogic.IS_IN, 0b010, False, [4, 5, 6]),
        (SetLogic.IS_IN, 0b010, True, [4, 5, 6, 10, 11]),
        (SetLogic.IS_NOT_IN, 0b010, False, [0, 1, 2, 3, 7, 8, 9]),
        (SetLogic.IS_NOT_IN, 0b010, True, [0, 1, 2, 3, 7, 8, 9, 10, 11]),
        (SetLogic.IS_IN, 0b101, False, [0, 1, 2, 3, 7, 8, 9]),
        (SetLogic.IS_NOT_IN, 0b101, True, [4, 5, 6, 10, 11]),
    ])
    def test_binary_condition(self, column_and_memberships, set_logic, mask, accepts, expected):
        column, memberships = column_and_memberships
        condition = TreeNodeNominalBinaryCondition(column.meta, mask, set_logic, accepts)
        in_child = column.update_child_memberships(condition, memberships)
        np.testing.assert_array_equal(np.flatnonzero(in_child), expected)

    @pytest.mark.parametrize("value_index, accepts, expected", [
        (0, False, [0, 1, 2, 3]),
        (0, True, [0, 1, 2, 3, 10, 11]),
        (2, False, [7, 8, 9]),
        (2, True, [7, 8, 9, 10, 11]),
    ])
    def test_multiway_condition(self, column_and_memberships, value_index, accepts, expected):
        column, memberships = column_and_memberships
        condition = TreeNodeNominalCondition(column.meta, value_index, accepts)
        in_child = column.update_child_memberships(condition, memberships)
        np.testing.assert_array_equal(np.flatnonzero(in_child), expected)

    def test_child_membership_local_order(self, column_and_memberships):
        """Markers are aligned with the child's own (local) row order."""
        column, memberships = column_and_memberships
        not_b = TreeNodeNominalBinaryCondition(column.meta, 0b010, SetLogic.IS_NOT_IN, False)
        child = memberships.create_child_memberships(column.update_child_memberships(not_b, memberships))
        is_c = TreeNodeNominalCondition(column.meta, 2, False)

        in_grandchild = column.update_child_memberships(is_c, child)

        np.testing.assert_array_equal(np.flatnonzero(in_grandchild), [4, 5, 6])
        np.testing.assert_array_equal(child.get_original_indices()[in_grandchild], [7, 8, 9])

    @pytest.mark.parametrize("binary, xgboost", [
        (True, True), (True, False), (False, True), (False, False)])
    def test_children_partition_the_node(self, binary, xgboost):
        """Child markers of a split are disjoint and cover every routed row."""
        config = _config(binary=binary, xgboost=xgboost)
        column, target, memberships, priors = _classification(
            "a,a,a,b,b,b,b,c,c,?", "A,B,B,C,C,C,B,A,B,C", config)
        split = column.calc_best_split_classification(memberships, priors, target, None)

        markers = np.array([column.update_child_memberships(c, memberships)
                            for c in split.child_conditions])

        assert np.all(markers.sum(axis=0) <= 1)
        np.testing.assert_array_equal(markers.any(axis=0), ~split.missed_rows)
