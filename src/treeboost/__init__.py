"""
Tree ensemble learning core: split search on nominal and numeric attributes
and gradient boosted regression trees.

Implements Algorithms 10.3 (Forward Stagewise Additive Modelling) and 10.4
(Gradient Tree Boosting) from "The Elements of Statistical Learning"
by Hastie, Tibshirani, and Friedman, with L2, LK and Huber (M) losses
from Friedman (2001).
"""

from .config import (
    ColumnSamplingMode, GradientBoostingLearnerConfiguration, MissingValueHandling,
    SplitCriterion, TreeEnsembleLearnerConfiguration,
)
from .core import GradientBoostingLearner, GradientBoostingModel
from .data import create_tree_data, encode_frame
from .exceptions import (
    CanceledExecutionError, ConfigurationError, LearnerExecutionError, TreeEnsembleError,
)
from .losses import HuberLoss, L2Loss, LeastSquaresLoss, LKLoss, LossStrategy
from .monitor import ExecutionMonitor

__version__ = "0.1.0"
__all__ = [
    "ColumnSamplingMode", "GradientBoostingLearnerConfiguration", "MissingValueHandling",
    "SplitCriterion", "TreeEnsembleLearnerConfiguration",
    "GradientBoostingLearner", "GradientBoostingModel",
    "create_tree_data", "encode_frame",
    "CanceledExecutionError", "ConfigurationError", "LearnerExecutionError", "TreeEnsembleError",
    "HuberLoss", "L2Loss", "LeastSquaresLoss", "LKLoss", "LossStrategy",
    "ExecutionMonitor",
]
