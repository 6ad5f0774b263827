"""
Gradient boosted regression trees.

Implements Algorithm 10.3 (Forward Stagewise Additive Modelling) and
Algorithm 10.4 (Gradient Tree Boosting) from "The Elements of Statistical
Learning", with the loss supplied as a LossStrategy (see
``treeboost.losses``). For K-class logistic loss the K one-vs-rest trees of
a round are grown in parallel.

References:
- Hastie, T., Tibshirani, R., & Friedman, J. (2009). The Elements of Statistical
  Learning (2nd ed.). Springer. Chapter 10.
- Friedman, J. H. (2001). Greedy function approximation: A gradient boosting machine.
  Annals of Statistics, 29(5), 1189-1232.
- Friedman, J. H. (2002). Stochastic gradient boosting. Computational Statistics
  & Data Analysis, 38(4), 367-378.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import threading

import numpy as np
import pandas as pd

from .columns import TreeData, TreeTargetNumericColumnData, TreeColumnMetaData
from .config import GradientBoostingLearnerConfiguration
from .data import encode_frame
from .exceptions import CanceledExecutionError, LearnerExecutionError
from .losses import LossStrategy, PseudoResiduals
from .memberships import DataIndexManager
from .monitor import ExecutionMonitor
from .tree import TreeLearnerRegression, TreeModelRegression
from .utils import derive_seed

logger = logging.getLogger(__name__)


class GradientBoostingModel:
    """
    Additive model F(x) = f0 + ν Σ_m Σ_j γ_jm I(x ∈ R_jm).

    Attributes:
        f0_: Initial constant per output, shape (n_outputs,).
        estimators_: Trees per round, each a list with one tree per output.
        leaf_values_: Coefficient per reached node id, same nesting as estimators_.
        train_scores_: Training loss after each round.
    """

    def __init__(self, loss: LossStrategy, learning_rate: float, f0: np.ndarray,
                 column_metas: Sequence[TreeColumnMetaData], target_meta,
                 class_values: Optional[tuple] = None):
        self.loss = loss
        self.learning_rate = learning_rate
        self.f0_ = f0
        self.column_metas = list(column_metas)
        self.target_meta = target_meta
        self.class_values = class_values
        self.estimators_: List[List[TreeModelRegression]] = []
        self.leaf_values_: List[List[Dict[int, float]]] = []
        self.train_scores_: List[float] = []

    @property
    def nr_models(self) -> int:
        return len(self.estimators_)

    def _columns(self, X) -> List[np.ndarray]:
        if isinstance(X, TreeData):
            return X.get_column_values()
        if isinstance(X, pd.DataFrame):
            return encode_frame(X, self.column_metas)
        return list(X)

    @staticmethod
    def _tree_contribution(tree: TreeModelRegression, gamma_map: Dict[int, float],
                           columns) -> np.ndarray:
        gammas = np.array([gamma_map.get(i, 0.0) for i in range(tree.nr_nodes)])
        return gammas[tree.apply(columns)]

    def staged_predict_raw(self, X):
        """Yield the raw scores F after each round, shape (n_samples, n_outputs)."""
        columns = self._columns(X)
        nr_rows = len(columns[0]) if columns else 0
        F = np.tile(self.f0_, (nr_rows, 1)).astype(float)
        for trees, gamma_maps in zip(self.estimators_, self.leaf_values_):
            for k, (tree, gamma_map) in enumerate(zip(trees, gamma_maps)):
                F[:, k] += self.learning_rate * self._tree_contribution(tree, gamma_map, columns)
            yield F.copy()

    def predict_raw(self, X, up_to_iteration: Optional[int] = None) -> np.ndarray:
        """
        Raw scores F(x).

        Args:
            X: TreeData, a DataFrame with the training columns, or a list of
                encoded column arrays.
            up_to_iteration: Use only the first k rounds.

        Returns:
            Raw scores, shape (n_samples, n_outputs).
        """
        columns = self._columns(X)
        nr_rows = len(columns[0]) if columns else 0
        F = np.tile(self.f0_, (nr_rows, 1)).astype(float)
        n_rounds = up_to_iteration if up_to_iteration is not None else self.nr_models
        for trees, gamma_maps in zip(self.estimators_[:n_rounds], self.leaf_values_[:n_rounds]):
            for k, (tree, gamma_map) in enumerate(zip(trees, gamma_maps)):
                F[:, k] += self.learning_rate * self._tree_contribution(tree, gamma_map, columns)
        return F

    def predict_proba(self, X) -> np.ndarray:
        """
        Class probabilities, shape (n_samples, n_classes).

        For L2 loss the columns are P(y = -1) and P(y = +1).
        """
        if not self.loss.is_classification:
            raise ValueError(f"{self.loss.name} loss does not predict probabilities")
        p = self.loss.transform(self.predict_raw(X))
        if p.ndim == 1:
            return np.column_stack([1.0 - p, p])
        return p

    def predict(self, X) -> np.ndarray:
        """Predicted values (regression) or class labels (classification)."""
        if not self.loss.is_classification:
            return self.loss.transform(self.predict_raw(X))
        proba = self.predict_proba(X)
        labels = np.asarray(self.class_values, dtype=object)
        return labels[np.argmax(proba, axis=1)]


class _FirstFailure:
    """Holds the first exception raised by any worker; later ones are dropped."""

    def __init__(self):
        self._lock = threading.Lock()
        self._error: Optional[BaseException] = None

    def compare_and_set(self, error: BaseException) -> bool:
        with self._lock:
            if self._error is not None:
                return False
            self._error = error
            return True

    def get(self) -> Optional[BaseException]:
        with self._lock:
            return self._error


class _WorkerMonitor(ExecutionMonitor):
    """Sub monitor that also aborts a worker once a sibling has failed."""

    def __init__(self, parent: ExecutionMonitor, failure: _FirstFailure):
        super().__init__()
        self._cancel_event = parent._cancel_event
        self._failure = failure

    def check_canceled(self) -> None:
        super().check_canceled()
        if self._failure.get() is not None:
            raise CanceledExecutionError("Aborted after failure of a sibling task")


class GradientBoostingLearner:
    """
    Gradient boosting driver.

    Each round computes pseudo-residuals from the running prediction, grows
    one regression tree per output on a seeded row sample, fits one
    coefficient per tree node and adds ``learning_rate * coefficient`` to
    the running prediction of every row reaching the node.

    Args:
        configuration: GradientBoostingLearnerConfiguration.
        data: Training data; the target type must suit ``loss``.
        loss: LossStrategy instance.
        verbose: Log training loss every 10 rounds.
    """

    def __init__(self, configuration: GradientBoostingLearnerConfiguration, data: TreeData,
                 loss: LossStrategy, verbose: bool = False):
        self.configuration = configuration
        self.data = data
        self.loss = loss
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)
        if self.verbose:
            logging.basicConfig(level=logging.INFO)

    def learn(self, monitor: Optional[ExecutionMonitor] = None) -> GradientBoostingModel:
        """
        Run all boosting rounds.

        Raises:
            ConfigurationError: Invalid settings or a target the loss is not
                defined for; raised before any tree is grown.
            CanceledExecutionError: ``monitor`` was canceled.
            LearnerExecutionError: A parallel tree fit failed.
        """
        monitor = monitor if monitor is not None else ExecutionMonitor()
        config = self.configuration
        target = self.data.target
        config.validate()
        self.loss.check_target(target)

        index_manager = DataIndexManager(self.data)
        rd = config.create_random_data()
        nr_rows = self.data.get_nr_rows()
        nr_outputs = self.loss.nr_outputs(target)
        y = self.loss.target_values(target)
        columns = self.data.get_column_values()

        f0 = self.loss.initial_value(target)
        F = np.tile(f0, (nr_rows, 1)).astype(float)
        model = GradientBoostingModel(
            self.loss, config.learning_rate, f0, self.data.get_column_metas(), target.meta,
            class_values=self._class_values(target),
        )
        if self.verbose:
            self.logger.info(f"Initial f_0 = {np.array2string(f0, precision=6)}")

        for m in range(config.nr_models):
            monitor.check_canceled()
            residuals = self.loss.pseudo_residual(y, F, config)
            if nr_outputs == 1:
                seed = derive_seed(rd)
                results = [self._learn_output(
                    0, residuals, seed, index_manager, columns, F, monitor)]
            else:
                seeds = [derive_seed(rd) for _ in range(nr_outputs)]
                results = self._learn_outputs_parallel(
                    residuals, seeds, index_manager, columns, F, monitor)

            model.estimators_.append([tree for tree, _ in results])
            model.leaf_values_.append([gamma_map for _, gamma_map in results])
            train_loss = self.loss.loss(y, F, config)
            model.train_scores_.append(train_loss)

            monitor.set_progress((m + 1) / config.nr_models,
                                 f"Finished level {m + 1}/{config.nr_models}")
            if self.verbose and (m + 1) % 10 == 0:
                self.logger.info(
                    f"Iteration {m+1}/{config.nr_models}: train_loss={train_loss:.6f}"
                )
        return model

    @staticmethod
    def _class_values(target):
        if hasattr(target, "codes"):
            return target.meta.values
        return (-1.0, 1.0)

    def _learn_output(self, k: int, residuals: PseudoResiduals, seed: int,
                      index_manager: DataIndexManager, columns, F: np.ndarray,
                      monitor: ExecutionMonitor) -> Tuple[TreeModelRegression, Dict[int, float]]:
        """Grow the tree of output ``k``, fit its coefficients and update column k of F."""
        config = self.configuration
        rng = np.random.default_rng(seed)
        residual_target = TreeTargetNumericColumnData(
            TreeColumnMetaData("pseudo-residuals"), residuals.values[:, k])
        residual_data = self.data.with_target(residual_target)
        row_sample = config.create_row_sample(self.data.get_nr_rows(), rng)
        learner = TreeLearnerRegression(config, residual_data, index_manager, row_sample, rng)
        tree = learner.learn_single_tree(monitor)

        node_ids = tree.apply(columns)
        gamma_map = {}
        for node_id in np.unique(node_ids):
            gamma_map[int(node_id)] = self.loss.leaf_coefficient(residuals, node_ids == node_id, k)
        gammas = np.array([gamma_map.get(i, 0.0) for i in range(tree.nr_nodes)])
        F[:, k] += config.learning_rate * gammas[node_ids]
        return tree, gamma_map

    def _learn_outputs_parallel(self, residuals, seeds, index_manager, columns, F, monitor):
        """
        Grow the one-vs-rest trees of a round concurrently.

        At most ``nr_threads`` fits are in flight. The first failure is kept;
        siblings notice it through their monitor and stop, and it is raised
        once every started task has finished.
        """
        nr_threads = self.configuration.nr_threads
        semaphore = threading.Semaphore(nr_threads)
        failure = _FirstFailure()
        worker_monitor = _WorkerMonitor(monitor, failure)

        def run(k, seed):
            try:
                worker_monitor.check_canceled()
                return self._learn_output(k, residuals, seed, index_manager, columns, F, worker_monitor)
            except Exception as e:
                failure.compare_and_set(e)
                return None
            finally:
                semaphore.release()

        futures = []
        with ThreadPoolExecutor(max_workers=nr_threads, thread_name_prefix="treeboost") as executor:
            for k, seed in enumerate(seeds):
                if failure.get() is not None or monitor.is_canceled:
                    break
                semaphore.acquire()
                futures.append(executor.submit(run, k, seed))
            results = []
            for future in futures:
                results.append(future.result())
                if failure.get() is not None:
                    # remaining tasks drain via the executor's shutdown
                    break

        error = failure.get()
        if error is None:
            monitor.check_canceled()
        if isinstance(error, CanceledExecutionError):
            raise error
        if error is not None:
            raise LearnerExecutionError(f"Learning a tree failed: {error}") from error
        return results
