"""
Split candidates: the immutable result of a split search on one column.
"""

from enum import Enum
from typing import List, Optional
import numpy as np

from .conditions import (
    NumericOperator, SetLogic, TreeNodeColumnCondition, TreeNodeNominalBinaryCondition,
    TreeNodeNominalCondition, TreeNodeNumericCondition,
)


class MissingDirection(Enum):
    """Child receiving missing values; NONE under surrogate handling."""
    NONE = "none"
    LEFT = "left"
    RIGHT = "right"


class SplitCandidate:
    """
    Best split found on one column.

    Attributes:
        column_data: Column the split is defined on.
        gain: Impurity reduction, higher is better.
        missed_rows: Boolean array over the searched membership flagging rows
            no child condition routes (missing values under surrogate
            handling); all False once missing routing is resolved.
    """

    def __init__(self, column_data, gain: float, missed_rows: np.ndarray):
        self._column_data = column_data
        self._gain = float(gain)
        missed_rows = np.asarray(missed_rows, dtype=bool)
        missed_rows.setflags(write=False)
        self._missed_rows = missed_rows

    @property
    def column_data(self):
        return self._column_data

    @property
    def gain(self) -> float:
        return self._gain

    @property
    def missed_rows(self) -> np.ndarray:
        return self._missed_rows

    @property
    def can_split_further(self) -> bool:
        """Whether the column may be split again below this split."""
        return True

    @property
    def child_conditions(self) -> List[TreeNodeColumnCondition]:
        raise NotImplementedError

    def __repr__(self):
        return (f"{type(self).__name__}({self._column_data.attribute_name!r}, "
                f"gain={self._gain:.6g}, children={self.child_conditions!r})")


class NominalBinarySplitCandidate(SplitCandidate):
    """
    Two-way split of the categories of a nominal column.

    Child 0 is ``IS_NOT_IN(mask)``, child 1 ``IS_IN(mask)``; the mask always
    contains the highest observed category index.
    """

    def __init__(self, column_data, gain: float, value_mask: int, missed_rows,
                 missing_direction: MissingDirection = MissingDirection.NONE):
        super().__init__(column_data, gain, missed_rows)
        self.value_mask = int(value_mask)
        self.missing_direction = MissingDirection(missing_direction)
        meta = column_data.meta
        self._conditions = [
            TreeNodeNominalBinaryCondition(
                meta, self.value_mask, SetLogic.IS_NOT_IN,
                self.missing_direction is MissingDirection.LEFT),
            TreeNodeNominalBinaryCondition(
                meta, self.value_mask, SetLogic.IS_IN,
                self.missing_direction is MissingDirection.RIGHT),
        ]

    @property
    def child_conditions(self):
        return list(self._conditions)


class NominalMultiwaySplitCandidate(SplitCandidate):
    """One child per observed category, in code order."""

    def __init__(self, column_data, gain: float, value_indices, missed_rows,
                 missing_value_index: Optional[int] = None):
        super().__init__(column_data, gain, missed_rows)
        self.value_indices = [int(i) for i in value_indices]
        self.missing_value_index = missing_value_index
        meta = column_data.meta
        self._conditions = [
            TreeNodeNominalCondition(meta, i, i == missing_value_index)
            for i in self.value_indices
        ]

    @property
    def can_split_further(self) -> bool:
        return False

    @property
    def child_conditions(self):
        return list(self._conditions)


class NumericSplitCandidate(SplitCandidate):
    """Threshold split ``<= split_value`` / ``> split_value``."""

    def __init__(self, column_data, split_value: float, gain: float, missed_rows,
                 missing_direction: MissingDirection = MissingDirection.NONE):
        super().__init__(column_data, gain, missed_rows)
        self.split_value = float(split_value)
        self.missing_direction = MissingDirection(missing_direction)
        meta = column_data.meta
        self._conditions = [
            TreeNodeNumericCondition(
                meta, self.split_value, NumericOperator.LESS_THAN_OR_EQUAL,
                self.missing_direction is MissingDirection.LEFT),
            TreeNodeNumericCondition(
                meta, self.split_value, NumericOperator.LARGER_THAN,
                self.missing_direction is MissingDirection.RIGHT),
        ]

    @property
    def child_conditions(self):
        return list(self._conditions)
