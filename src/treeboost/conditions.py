"""
Decision rules attached to the edges of a tree.

Every condition evaluates vectorised over many rows. ``evaluate`` takes the
per-row values of all attributes (a list indexed by attribute index, each
restricted to the same rows) and returns a boolean array. Column conditions
additionally expose ``test`` on the values of their own attribute, which is
what ``update_child_memberships`` uses during learning; prediction goes
through the same code so the learned routing is reproduced exactly.
"""

from enum import Enum
from typing import List, Sequence
import numpy as np

from .exceptions import ConfigurationError


class SetLogic(Enum):
    IS_IN = "is in"
    IS_NOT_IN = "is not in"


class NumericOperator(Enum):
    LESS_THAN_OR_EQUAL = "<="
    LARGER_THAN = ">"


class TreeNodeCondition:
    """Base class of all edge conditions."""

    def evaluate(self, columns: Sequence[np.ndarray]) -> np.ndarray:
        raise NotImplementedError


class TreeNodeTrueCondition(TreeNodeCondition):
    """Condition of the root node."""

    def evaluate(self, columns):
        return np.ones(len(columns[0]) if len(columns) else 0, dtype=bool)

    def __repr__(self):
        return "TRUE"


class TreeNodeColumnCondition(TreeNodeCondition):
    """Condition on a single attribute, with missing values following ``accepts_missings``."""

    def __init__(self, column_meta, accepts_missings: bool):
        self.column_meta = column_meta
        self.accepts_missings = bool(accepts_missings)

    @property
    def attribute_index(self) -> int:
        return self.column_meta.attribute_index

    def is_missing(self, values: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def test_present(self, values: np.ndarray) -> np.ndarray:
        """Outcome for non-missing values; entries for missing values are meaningless."""
        raise NotImplementedError

    def test(self, values: np.ndarray) -> np.ndarray:
        return np.where(self.is_missing(values), self.accepts_missings, self.test_present(values))

    def evaluate(self, columns):
        return self.test(columns[self.attribute_index])

    def _missing_suffix(self) -> str:
        return " or missing" if self.accepts_missings else ""


class TreeNodeNominalCondition(TreeNodeColumnCondition):
    """Multiway edge: the attribute equals one category."""

    def __init__(self, column_meta, value_index: int, accepts_missings: bool = False):
        column_meta.value_at(value_index)
        super().__init__(column_meta, accepts_missings)
        self.value_index = int(value_index)

    @property
    def value(self):
        return self.column_meta.value_at(self.value_index)

    def is_missing(self, values):
        return np.asarray(values) >= self.column_meta.missing_code

    def test_present(self, values):
        return np.asarray(values) == self.value_index

    def __repr__(self):
        return f"{self.column_meta.attribute_name} = {self.value!r}{self._missing_suffix()}"


class TreeNodeNominalBinaryCondition(TreeNodeColumnCondition):
    """Binary edge: the attribute is (or is not) in a set of categories given as a bitmask."""

    def __init__(self, column_meta, value_mask: int, set_logic: SetLogic,
                 accepts_missings: bool = False):
        value_mask = int(value_mask)
        if value_mask <= 0 or value_mask >> column_meta.nr_values:
            raise ConfigurationError(
                f"Mask {value_mask:#b} references categories outside "
                f"the {column_meta.nr_values} values of {column_meta.attribute_name!r}"
            )
        super().__init__(column_meta, accepts_missings)
        self.value_mask = value_mask
        self.set_logic = SetLogic(set_logic)
        # lookup[code] for every code incl. the missing code
        self._in_mask = np.array(
            [bool(value_mask >> i & 1) for i in range(column_meta.nr_values)] + [False]
        )

    @property
    def value_indices(self) -> List[int]:
        return [i for i in range(self.column_meta.nr_values) if self.value_mask >> i & 1]

    @property
    def values(self) -> list:
        return [self.column_meta.value_at(i) for i in self.value_indices]

    def is_missing(self, values):
        return np.asarray(values) >= self.column_meta.missing_code

    def test_present(self, values):
        codes = np.minimum(np.asarray(values), self.column_meta.missing_code)
        in_mask = self._in_mask[codes]
        return in_mask if self.set_logic is SetLogic.IS_IN else ~in_mask

    def __repr__(self):
        return (f"{self.column_meta.attribute_name} {self.set_logic.value} "
                f"{self.values!r}{self._missing_suffix()}")


class TreeNodeNumericCondition(TreeNodeColumnCondition):
    """Numeric edge: ``value <= split`` or ``value > split``."""

    def __init__(self, column_meta, split_value: float, operator: NumericOperator,
                 accepts_missings: bool = False):
        super().__init__(column_meta, accepts_missings)
        self.split_value = float(split_value)
        self.operator = NumericOperator(operator)

    def is_missing(self, values):
        return np.isnan(np.asarray(values, dtype=float))

    def test_present(self, values):
        values = np.asarray(values, dtype=float)
        with np.errstate(invalid="ignore"):
            if self.operator is NumericOperator.LESS_THAN_OR_EQUAL:
                return values <= self.split_value
            return values > self.split_value

    def __repr__(self):
        return (f"{self.column_meta.attribute_name} {self.operator.value} "
                f"{self.split_value:g}{self._missing_suffix()}")


class TreeNodeSurrogateCondition(TreeNodeCondition):
    """
    Primary condition backed by surrogate conditions on other attributes.

    A row is decided by the first condition whose attribute is not missing
    for it; rows missing in all attributes get ``default_response``.
    """

    def __init__(self, conditions: Sequence[TreeNodeColumnCondition], default_response: bool):
        if not conditions:
            raise ConfigurationError("A surrogate condition needs a primary condition")
        self.conditions = list(conditions)
        self.default_response = bool(default_response)

    @property
    def primary_condition(self) -> TreeNodeColumnCondition:
        return self.conditions[0]

    def evaluate(self, columns):
        first = columns[self.primary_condition.attribute_index]
        result = np.zeros(len(first), dtype=bool)
        undecided = np.ones(len(first), dtype=bool)
        for cond in self.conditions:
            values = columns[cond.attribute_index]
            missing = cond.is_missing(values)
            decide = undecided & ~missing
            result[decide] = cond.test_present(values)[decide]
            undecided &= missing
        result[undecided] = self.default_response
        return result

    def __repr__(self):
        surrogates = ", ".join(repr(c) for c in self.conditions[1:])
        return (f"{self.primary_condition!r} [surrogates: {surrogates or '-'}; "
                f"default {self.default_response}]")


class TreeNodeSurrogateOnlyDefDirCondition(TreeNodeSurrogateCondition):
    """Primary condition plus a default direction for missing values."""

    def __init__(self, condition: TreeNodeColumnCondition, default_response: bool):
        super().__init__([condition], default_response)


class RowSubsetColumns:
    """Lazy view of per-row attribute values restricted to ``rows``."""

    def __init__(self, columns: Sequence[np.ndarray], rows: np.ndarray):
        self._columns = columns
        self._rows = rows

    def __getitem__(self, attribute_index: int) -> np.ndarray:
        return self._columns[attribute_index][self._rows]

    def __len__(self):
        return len(self._columns)
