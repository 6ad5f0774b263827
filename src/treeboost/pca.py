"""
Ordering of categories for binary nominal splits with three or more classes.

Finding the best two-way grouping of k categories exactly means checking
2^(k-1) partitions. Instead the categories are projected onto the first
principal component of their class-probability vectors and only the k-1
bipartitions along that ordering are scanned (Coppersmith, Hong & Hosking,
1999, "Partitioning nominal attributes in decision trees"). This is a
heuristic; the best of those bipartitions need not be the global optimum.
"""

from typing import List, Optional, Tuple
import logging

import numpy as np
from scipy import linalg

from .utils import EPSILON

logger = logging.getLogger(__name__)

PROBABILITY_DECIMALS = 8


def group_identical_distributions(
    class_counts: np.ndarray
) -> Tuple[List[List[int]], np.ndarray, np.ndarray]:
    """
    Merge categories with identical class-probability vectors.

    Args:
        class_counts: Class weights per category, shape (n_categories, n_classes).

    Returns:
        (groups, group_counts, group_probabilities): groups lists the row
        indices of ``class_counts`` merged into each group, in order of first
        appearance.
    """
    weights = class_counts.sum(axis=1)
    probabilities = np.round(class_counts / weights[:, None], PROBABILITY_DECIMALS)
    index_of = {}
    groups: List[List[int]] = []
    for i, p in enumerate(probabilities):
        key = tuple(p)
        if key not in index_of:
            index_of[key] = len(groups)
            groups.append([])
        groups[index_of[key]].append(i)
    group_counts = np.array([class_counts[g].sum(axis=0) for g in groups])
    group_probabilities = np.array([probabilities[g[0]] for g in groups])
    return groups, group_counts, group_probabilities


def principal_component_order(
    class_counts: np.ndarray
) -> Optional[Tuple[List[List[int]], np.ndarray]]:
    """
    Sort category groups by their projection on the first principal component.

    Args:
        class_counts: Class weights per category, shape (n_categories, n_classes);
            every category must have positive weight.

    Returns:
        (groups, group_counts) in projection order, or None if fewer than two
        distinct distributions exist or the eigendecomposition fails.
    """
    groups, group_counts, probs = group_identical_distributions(class_counts)
    if len(groups) < 2:
        return None
    weights = group_counts.sum(axis=1)
    total = weights.sum()
    if total < EPSILON:
        return None
    mean = weights @ probs / total
    centered = probs - mean
    covariance = (centered * weights[:, None]).T @ centered / total
    try:
        _, eigenvectors = linalg.eigh(covariance)
    except (linalg.LinAlgError, ValueError) as e:
        logger.debug("Eigendecomposition of category covariance failed: %s", e)
        return None
    component = eigenvectors[:, -1]
    # eigenvectors are defined up to sign; fix it for a reproducible order
    if component[np.argmax(np.abs(component))] < 0:
        component = -component
    order = np.argsort(probs @ component, kind="stable")
    return [groups[i] for i in order], group_counts[order]
