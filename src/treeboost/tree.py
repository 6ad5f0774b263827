"""
Regression trees: model and learner.

The learner grows one tree on a (pseudo-residual) numeric target by asking
every sampled attribute column for its best split at each node and keeping
the first candidate with the highest gain. Nodes never copy data; each node
only holds the DataMemberships of the rows reaching it while it is grown.
"""

from typing import List, Optional, Sequence
import logging

import numpy as np

from .conditions import (
    RowSubsetColumns, TreeNodeCondition, TreeNodeSurrogateOnlyDefDirCondition,
    TreeNodeTrueCondition,
)
from .memberships import DataIndexManager, DataMemberships
from .monitor import ExecutionMonitor
from .surrogates import create_surrogate_split_with_default_direction, learn_surrogates
from .utils import EPSILON

logger = logging.getLogger(__name__)


class TreeNodeRegression:
    """
    One node of a regression tree.

    Attributes:
        node_id: Index of the node in TreeModelRegression.nodes.
        condition: Condition on the edge leading to this node.
        mean: Weighted mean target of the training rows in the node.
        total_weight: Total weight of those rows.
        depth: Level of the node, the root is at level 1.
        children: Child nodes, evaluated in order.
    """

    def __init__(self, node_id: int, condition: TreeNodeCondition, mean: float,
                 total_weight: float, depth: int):
        self.node_id = node_id
        self.condition = condition
        self.mean = mean
        self.total_weight = total_weight
        self.depth = depth
        self.children: List["TreeNodeRegression"] = []

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def __repr__(self):
        return (f"TreeNodeRegression(id={self.node_id}, {self.condition!r}, "
                f"mean={self.mean:.6g}, weight={self.total_weight:g})")


class TreeModelRegression:
    """A learned regression tree."""

    def __init__(self, root: TreeNodeRegression, nodes: List[TreeNodeRegression]):
        self.root = root
        self.nodes = nodes

    @property
    def nr_nodes(self) -> int:
        return len(self.nodes)

    @property
    def leaves(self) -> List[TreeNodeRegression]:
        return [n for n in self.nodes if n.is_leaf]

    @property
    def depth(self) -> int:
        return max(n.depth for n in self.nodes)

    def apply(self, columns: Sequence[np.ndarray]) -> np.ndarray:
        """
        Node reached by every row.

        Rows descend into the first child whose condition holds; a row no
        child accepts (e.g. a category unseen below this node) stops at the
        inner node.

        Args:
            columns: Per-row values of every attribute, indexed by attribute
                index (see TreeData.get_column_values).

        Returns:
            Node ids, shape (n_rows,).
        """
        nr_rows = len(columns[0]) if len(columns) else 0
        node_ids = np.full(nr_rows, self.root.node_id, dtype=np.int64)
        stack = [(self.root, np.arange(nr_rows))]
        while stack:
            node, rows = stack.pop()
            node_ids[rows] = node.node_id
            if node.is_leaf or len(rows) == 0:
                continue
            view = RowSubsetColumns(columns, rows)
            remaining = np.ones(len(rows), dtype=bool)
            for child in node.children:
                matches = child.condition.evaluate(view) & remaining
                if matches.any():
                    stack.append((child, rows[matches]))
                    remaining &= ~matches
        return node_ids

    def predict(self, columns: Sequence[np.ndarray]) -> np.ndarray:
        means = np.array([n.mean for n in self.nodes])
        return means[self.apply(columns)]

    def __str__(self):
        lines = []

        def visit(node, indent):
            lines.append(f"{'  ' * indent}{node.condition!r} -> {node.mean:.6g} (w={node.total_weight:g})")
            for child in node.children:
                visit(child, indent + 1)

        visit(self.root, 0)
        return "\n".join(lines)


class TreeLearnerRegression:
    """
    Grows a single regression tree.

    Args:
        configuration: TreeEnsembleLearnerConfiguration.
        data: TreeData with a TreeTargetNumericColumnData target.
        index_manager: Column orders of ``data``.
        row_sample: Per-row weights of the sample the tree is grown on.
        rd: Random generator for column sampling and split search.
    """

    def __init__(self, configuration, data, index_manager: DataIndexManager,
                 row_sample: np.ndarray, rd: np.random.Generator):
        self.configuration = configuration
        self.data = data
        self.index_manager = index_manager
        self.row_sample = row_sample
        self.rd = rd
        self._nodes: List[TreeNodeRegression] = []

    def learn_single_tree(self, monitor: Optional[ExecutionMonitor] = None) -> TreeModelRegression:
        monitor = monitor if monitor is not None else ExecutionMonitor()
        monitor.check_canceled()
        self._nodes = []
        nr_attributes = self.data.get_nr_attributes()
        tree_sample = self.configuration.create_column_sample(nr_attributes, self.rd)
        root_memberships = DataMemberships.create_root(self.row_sample, self.data, self.index_manager)
        root, root_priors = self._create_node(TreeNodeTrueCondition(), root_memberships, depth=1)

        # explicit stack keeps deep trees clear of the recursion limit
        stack = [(root, root_memberships, root_priors, frozenset())]
        while stack:
            monitor.check_canceled()
            node, memberships, priors, exhausted = stack.pop()
            split = self._split_node(node, memberships, priors, tree_sample, exhausted)
            if split is None:
                continue
            conditions, markers, child_exhausted = split
            pending = []
            for condition, in_child in zip(conditions, markers):
                if not in_child.any():
                    continue
                child_memberships = memberships.create_child_memberships(in_child)
                child, child_priors = self._create_node(condition, child_memberships, node.depth + 1)
                node.children.append(child)
                pending.append((child, child_memberships, child_priors, child_exhausted))
            stack.extend(reversed(pending))
        return TreeModelRegression(root, self._nodes)

    def _create_node(self, condition, memberships, depth):
        priors = self.data.target.get_priors(memberships, self.configuration)
        node = TreeNodeRegression(len(self._nodes), condition, priors.mean, priors.total_weight, depth)
        self._nodes.append(node)
        return node, priors

    def _split_node(self, node, memberships, priors, tree_sample, exhausted):
        config = self.configuration
        if config.max_levels is not None and node.depth >= config.max_levels:
            return None
        if config.min_node_size is not None and priors.total_weight < config.min_node_size:
            return None
        if priors.sum_squared_deviation < EPSILON:
            return None

        if config.use_different_attributes_at_each_node:
            column_sample = config.create_column_sample(self.data.get_nr_attributes(), self.rd)
        else:
            column_sample = tree_sample

        best = None
        for attribute_index in column_sample:
            if attribute_index in exhausted:
                continue
            column = self.data.get_column(attribute_index)
            candidate = column.calc_best_split_regression(memberships, priors, self.data.target, self.rd)
            if candidate is not None and (best is None or candidate.gain > best.gain):
                best = candidate
        if best is None:
            return None

        conditions, markers = self._route(best, memberships, column_sample)
        child_exhausted = exhausted
        if not best.can_split_further:
            child_exhausted = exhausted | {best.column_data.attribute_index}
        return conditions, markers, child_exhausted

    def _route(self, best, memberships, column_sample):
        """Child conditions and membership markers, with missing values resolved."""
        column = best.column_data
        conditions = best.child_conditions
        if self.configuration.use_xgboost_missing_values:
            return conditions, [column.update_child_memberships(c, memberships) for c in conditions]
        if len(conditions) == 2:
            if best.missed_rows.any():
                split = learn_surrogates(
                    memberships, best, self.data, column_sample, self.configuration, self.rd)
            else:
                split = create_surrogate_split_with_default_direction(memberships, best, self.data)
            return split.conditions, split.child_markers
        markers = [column.update_child_memberships(c, memberships) for c in conditions]
        weights = memberships.get_row_weights()
        majority = int(np.argmax([weights[m].sum() for m in markers]))
        markers[majority] = markers[majority] | best.missed_rows
        conditions = [
            TreeNodeSurrogateOnlyDefDirCondition(c, i == majority) for i, c in enumerate(conditions)
        ]
        return conditions, markers
