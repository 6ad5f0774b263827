"""
Row memberships: which training rows (and with which weight) reach a tree node.

Nodes never copy column data. A membership is an array of original row
indices plus their weights; children are derived by boolean filtering,
which keeps the parent's order.
"""

import numpy as np

from .utils import EPSILON


class DataIndexManager:
    """
    Per-column scan order of all rows, computed once per learning run.

    For attribute ``a``, ``get_original_index_in_column(a)`` lists the original
    row indices in the column's order and ``get_position_in_column(a)`` is its
    inverse (the position of each original row within that order).
    """

    def __init__(self, tree_data):
        self._original_index_in_column = []
        self._position_in_column = []
        for col in tree_data.columns:
            order = np.asarray(col.get_original_index_in_column_order(), dtype=np.int64)
            position = np.empty_like(order)
            position[order] = np.arange(len(order))
            order.setflags(write=False)
            position.setflags(write=False)
            self._original_index_in_column.append(order)
            self._position_in_column.append(position)

    def get_original_index_in_column(self, attribute_index: int) -> np.ndarray:
        return self._original_index_in_column[attribute_index]

    def get_position_in_column(self, attribute_index: int) -> np.ndarray:
        return self._position_in_column[attribute_index]


class ColumnMemberships:
    """
    The rows of a membership in the scan order of one column.

    Attributes:
        index_in_column: Positions within the column order (ascending).
        original_indices: Original row index of each entry.
        row_weights: Weight of each entry.
        index_in_data_memberships: Local index of each entry in the owning
            DataMemberships, used to map results back to membership order.
    """

    __slots__ = ("index_in_column", "original_indices", "row_weights",
                 "index_in_data_memberships")

    def __init__(self, index_in_column, original_indices, row_weights, index_in_data_memberships):
        self.index_in_column = index_in_column
        self.original_indices = original_indices
        self.row_weights = row_weights
        self.index_in_data_memberships = index_in_data_memberships

    def __len__(self):
        return len(self.original_indices)


class DataMemberships:
    """Rows reaching one tree node, in the root's natural row order."""

    def __init__(self, original_indices: np.ndarray, row_weights: np.ndarray,
                 index_manager: DataIndexManager, row_count_in_root: int):
        self._original_indices = original_indices
        self._row_weights = row_weights
        self._original_indices.setflags(write=False)
        self._row_weights.setflags(write=False)
        self._index_manager = index_manager
        self._row_count_in_root = row_count_in_root

    @classmethod
    def create_root(cls, row_weights, tree_data, index_manager: DataIndexManager) -> "DataMemberships":
        """
        Membership of the root node.

        Args:
            row_weights: One weight per row of ``tree_data`` (e.g. from bagging);
                rows with weight below EPSILON are left out.
            tree_data: The training data.
            index_manager: Column orders of ``tree_data``.
        """
        row_weights = np.asarray(row_weights, dtype=float)
        if len(row_weights) != tree_data.get_nr_rows():
            raise ValueError(
                f"Expected {tree_data.get_nr_rows()} row weights, got {len(row_weights)}"
            )
        included = np.flatnonzero(row_weights >= EPSILON)
        return cls(included, row_weights[included].copy(), index_manager, len(included))

    def get_original_indices(self) -> np.ndarray:
        return self._original_indices

    def get_row_weights(self) -> np.ndarray:
        return self._row_weights

    def get_row_count(self) -> int:
        return len(self._original_indices)

    def get_row_count_in_root(self) -> int:
        return self._row_count_in_root

    def get_index_manager(self) -> DataIndexManager:
        return self._index_manager

    def create_child_memberships(self, in_child: np.ndarray) -> "DataMemberships":
        """Membership over exactly the local rows flagged in ``in_child``."""
        in_child = np.asarray(in_child, dtype=bool)
        if len(in_child) != len(self._original_indices):
            raise ValueError(
                f"Child marker has length {len(in_child)}, membership has "
                f"{len(self._original_indices)} rows"
            )
        return DataMemberships(
            self._original_indices[in_child], self._row_weights[in_child],
            self._index_manager, self._row_count_in_root,
        )

    def get_column_memberships(self, attribute_index: int) -> ColumnMemberships:
        positions = self._index_manager.get_position_in_column(attribute_index)[self._original_indices]
        order = np.argsort(positions, kind="stable")
        return ColumnMemberships(
            positions[order], self._original_indices[order], self._row_weights[order], order,
        )
