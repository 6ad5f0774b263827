"""
Immutable columnar training data: attribute columns, target columns and
the table holding them.

A nominal column stores one integer code per row. Codes index the ordered
list of distinct values of the column; the code ``nr_values`` (one past the
last value) marks a missing cell. A numeric column stores floats with NaN
for missing cells.
"""

from typing import List, Optional, Sequence
import numpy as np
import pandas as pd

from .exceptions import ConfigurationError
from .priors import ClassificationPriors, RegressionPriors, get_impurity_criterion


def _is_missing(value) -> bool:
    return value is None or (np.ndim(value) == 0 and bool(pd.isna(value)))


class TreeColumnMetaData:
    """Name and position of a column."""

    def __init__(self, attribute_name: str, attribute_index: int = -1):
        self.attribute_name = attribute_name
        self.attribute_index = attribute_index

    def __repr__(self):
        return f"{type(self).__name__}({self.attribute_name!r})"


class TreeNominalColumnMetaData(TreeColumnMetaData):
    """Column meta data with the ordered distinct values of a nominal column."""

    def __init__(self, attribute_name: str, values: Sequence, attribute_index: int = -1):
        super().__init__(attribute_name, attribute_index)
        self.values = tuple(values)
        self._codes = {v: i for i, v in enumerate(self.values)}

    @property
    def nr_values(self) -> int:
        return len(self.values)

    @property
    def missing_code(self) -> int:
        return len(self.values)

    def value_at(self, index: int):
        if not 0 <= index < len(self.values):
            raise ConfigurationError(
                f"Invalid value index {index} for column {self.attribute_name!r} "
                f"with {len(self.values)} values"
            )
        return self.values[index]

    def encode(self, values: Sequence) -> np.ndarray:
        """Codes of ``values``; missing and unknown values map to the missing code."""
        missing = self.missing_code
        return np.array(
            [missing if _is_missing(v) else self._codes.get(v, missing) for v in values],
            dtype=np.int64,
        )

    @classmethod
    def from_values(cls, attribute_name: str, values: Sequence,
                    attribute_index: int = -1) -> "TreeNominalColumnMetaData":
        """Meta data listing the distinct non-missing values in order of appearance."""
        distinct = pd.unique(pd.Series([v for v in values if not _is_missing(v)], dtype=object))
        return cls(attribute_name, list(distinct), attribute_index)


class TreeAttributeColumnData:
    """
    Base class of attribute columns.

    Subclasses implement the split search for classification and regression
    targets and the row routing of the conditions they produce.
    """

    def __init__(self, meta: TreeColumnMetaData, configuration):
        self.meta = meta
        self.configuration = configuration

    @property
    def attribute_index(self) -> int:
        return self.meta.attribute_index

    @property
    def attribute_name(self) -> str:
        return self.meta.attribute_name

    def get_nr_rows(self) -> int:
        raise NotImplementedError

    def contains_missing_values(self) -> bool:
        raise NotImplementedError

    def get_values(self) -> np.ndarray:
        """Per-row values (codes or floats) in original row order."""
        raise NotImplementedError

    def get_original_index_in_column_order(self) -> np.ndarray:
        """Original row indices sorted in the column's scan order."""
        raise NotImplementedError

    def calc_best_split_classification(self, memberships, target_priors, target_column, rd):
        raise NotImplementedError

    def calc_best_split_regression(self, memberships, target_priors, target_column, rd):
        raise NotImplementedError

    def update_child_memberships(self, condition, memberships) -> np.ndarray:
        """
        Rows of ``memberships`` satisfying ``condition``.

        Returns:
            Boolean array aligned with the membership's local row order.
        """
        return condition.test(self.get_values()[memberships.get_original_indices()])


class TreeTargetNominalColumnData:
    """Class labels encoded as codes into ``meta.values``."""

    def __init__(self, meta: TreeNominalColumnMetaData, codes: np.ndarray):
        codes = np.asarray(codes, dtype=np.int64)
        if np.any(codes >= meta.nr_values) or np.any(codes < 0):
            raise ConfigurationError(
                f"Target column {meta.attribute_name!r} contains missing or unknown values"
            )
        codes.setflags(write=False)
        self.meta = meta
        self.codes = codes

    @classmethod
    def create(cls, name: str, values: Sequence,
               class_values: Optional[Sequence] = None) -> "TreeTargetNominalColumnData":
        if class_values is None:
            meta = TreeNominalColumnMetaData.from_values(name, values)
        else:
            meta = TreeNominalColumnMetaData(name, class_values)
        return cls(meta, meta.encode(values))

    def get_nr_rows(self) -> int:
        return len(self.codes)

    @property
    def nr_classes(self) -> int:
        return self.meta.nr_values

    def get_distribution(self, memberships, configuration) -> ClassificationPriors:
        """Class weight totals over the rows of ``memberships``."""
        return self.get_distribution_from_weights(
            memberships.get_original_indices(), memberships.get_row_weights(), configuration
        )

    def get_distribution_from_weights(self, original_indices, weights, configuration):
        counts = np.bincount(
            self.codes[original_indices], weights=weights, minlength=self.nr_classes
        )
        criterion = get_impurity_criterion(configuration.split_criterion)
        return ClassificationPriors(counts, criterion, self.meta.values)


class TreeTargetNumericColumnData:
    """Numeric regression target."""

    def __init__(self, meta: TreeColumnMetaData, values: np.ndarray):
        values = np.asarray(values, dtype=float)
        if np.any(np.isnan(values)):
            raise ConfigurationError(
                f"Target column {meta.attribute_name!r} contains missing values"
            )
        values.setflags(write=False)
        self.meta = meta
        self.values = values

    @classmethod
    def create(cls, name: str, values: Sequence) -> "TreeTargetNumericColumnData":
        return cls(TreeColumnMetaData(name), values)

    def get_nr_rows(self) -> int:
        return len(self.values)

    def get_median(self) -> float:
        return float(np.median(self.values))

    def get_priors(self, memberships, configuration=None) -> RegressionPriors:
        """Weighted sum and sum of squares of the target over ``memberships``."""
        y = self.values[memberships.get_original_indices()]
        w = memberships.get_row_weights()
        return RegressionPriors(np.sum(w), np.dot(w, y), np.dot(w, y * y))


class TreeData:
    """Attribute columns plus one target column over the same rows."""

    def __init__(self, columns: List[TreeAttributeColumnData], target):
        nr_rows = target.get_nr_rows()
        for i, col in enumerate(columns):
            if col.get_nr_rows() != nr_rows:
                raise ConfigurationError(
                    f"Column {col.attribute_name!r} has {col.get_nr_rows()} rows, "
                    f"target has {nr_rows}"
                )
            if col.attribute_index != i:
                raise ConfigurationError(
                    f"Column {col.attribute_name!r} has attribute index "
                    f"{col.attribute_index}, expected {i}"
                )
        self.columns = list(columns)
        self.target = target

    def get_nr_rows(self) -> int:
        return self.target.get_nr_rows()

    def get_nr_attributes(self) -> int:
        return len(self.columns)

    def get_column(self, attribute_index: int) -> TreeAttributeColumnData:
        return self.columns[attribute_index]

    def get_column_values(self) -> List[np.ndarray]:
        """Raw per-row values of all attributes, as consumed by condition evaluation."""
        return [col.get_values() for col in self.columns]

    def get_column_metas(self) -> List[TreeColumnMetaData]:
        return [col.meta for col in self.columns]

    def with_target(self, target) -> "TreeData":
        """Same attribute columns with another target (e.g. pseudo-residuals)."""
        return TreeData(self.columns, target)
