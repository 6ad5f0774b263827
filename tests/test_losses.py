"""
Tests for the boosting loss strategies.

Coverage:
- Initial constants (mean, median, zeros)
- Pseudo-residual formulas
- Closed-form node coefficients
- Target preconditions
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# ---------- path setup ----------
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from treeboost.columns import TreeTargetNominalColumnData, TreeTargetNumericColumnData
from treeboost.config import GradientBoostingLearnerConfiguration
from treeboost.exceptions import ConfigurationError
from treeboost.losses import HuberLoss, L2Loss, LeastSquaresLoss, LKLoss
from treeboost.utils import sigmoid, softmax


def _numeric(values):
    return TreeTargetNumericColumnData.create("y", values)


# =============================================================================
# Least squares
# =============================================================================


class TestLeastSquaresLoss:

    def test_initial_value_is_mean(self):
        assert LeastSquaresLoss().initial_value(_numeric([1.0, 2.0, 6.0]))[0] == pytest.approx(3.0)

    def test_residuals_and_coefficient(self):
        loss = LeastSquaresLoss()
        y = np.array([1.0, 2.0, 6.0])
        F = np.full((3, 1), 3.0)
        residuals = loss.pseudo_residual(y, F)
        np.testing.assert_allclose(residuals.values[:, 0], [-2.0, -1.0, 3.0])
        assert loss.leaf_coefficient(residuals, np.array([True, True, False]), 0) == pytest.approx(-1.5)

    def test_rejects_nominal_target(self):
        with pytest.raises(ConfigurationError):
            LeastSquaresLoss().check_target(TreeTargetNominalColumnData.create("t", ["a", "b"]))


# =============================================================================
# L2 (two-class logistic)
# =============================================================================


class TestL2Loss:

    def test_precondition(self):
        loss = L2Loss()
        loss.check_target(_numeric([1.0, -1.0, 1.0]))
        with pytest.raises(ConfigurationError, match="\\+1 or -1"):
            loss.check_target(_numeric([1.0, 0.0, -1.0]))

    def test_initial_value_is_mean(self):
        assert L2Loss().initial_value(_numeric([1.0, 1.0, 1.0, -1.0]))[0] == pytest.approx(0.5)

    def test_pseudo_residual(self):
        loss = L2Loss()
        y = np.array([1.0, -1.0, 1.0])
        F = np.array([[0.0], [0.0], [0.5]])
        r = loss.pseudo_residual(y, F).values[:, 0]
        np.testing.assert_allclose(r, [1.0, -1.0, 2.0 / (1.0 + np.exp(1.0))])

    def test_pseudo_residual_extreme_scores(self):
        loss = L2Loss()
        r = loss.pseudo_residual(np.array([1.0, -1.0]), np.array([[1e6], [1e6]])).values[:, 0]
        assert np.all(np.isfinite(r))
        assert r[0] == pytest.approx(0.0)
        assert r[1] == pytest.approx(-2.0)

    def test_newton_coefficient(self):
        loss = L2Loss()
        residuals = loss.pseudo_residual(np.ones(4), np.zeros((4, 1)))
        # r = 1 everywhere: Σr / Σ|r|(2 - |r|) = 4 / 4
        assert loss.leaf_coefficient(residuals, np.arange(4), 0) == pytest.approx(1.0)

    def test_coefficient_of_empty_denominator(self):
        loss = L2Loss()
        residuals = loss.pseudo_residual(np.array([1.0]), np.array([[1e6]]))
        assert loss.leaf_coefficient(residuals, np.array([0]), 0) == 0.0

    def test_transform(self):
        F = np.array([[0.0], [1.0]])
        np.testing.assert_allclose(L2Loss().transform(F), sigmoid(np.array([0.0, 2.0])))


# =============================================================================
# LK (multi-class logistic)
# =============================================================================


class TestLKLoss:

    def test_precondition(self):
        loss = LKLoss()
        with pytest.raises(ConfigurationError):
            loss.check_target(_numeric([0.0, 1.0]))
        with pytest.raises(ConfigurationError):
            loss.check_target(TreeTargetNominalColumnData.create("t", ["a", "a"]))

    def test_outputs_and_initial_value(self):
        target = TreeTargetNominalColumnData.create("t", ["a", "b", "c", "a"])
        loss = LKLoss()
        assert loss.nr_outputs(target) == 3
        np.testing.assert_array_equal(loss.initial_value(target), np.zeros(3))
        np.testing.assert_array_equal(loss.target_values(target), [0, 1, 2, 0])

    def test_pseudo_residuals_sum_to_zero(self):
        rng = np.random.default_rng(0)
        F = rng.normal(size=(10, 4))
        y = rng.integers(0, 4, size=10)
        r = LKLoss().pseudo_residual(y, F).values
        np.testing.assert_allclose(r.sum(axis=1), 0.0, atol=1e-12)
        np.testing.assert_allclose(r[np.arange(10), y], 1.0 - softmax(F)[np.arange(10), y])

    def test_coefficient(self):
        loss = LKLoss()
        y = np.array([0, 0, 1, 2])
        residuals = loss.pseudo_residual(y, np.zeros((4, 3)))
        # rows of class 0: r = 2/3, so (K-1)/K · (2/3 n) / (n · 2/3 · 1/3) = 2
        assert loss.leaf_coefficient(residuals, np.array([True, True, False, False]), 0) == \
            pytest.approx(2.0)

    def test_loss_at_uniform_scores(self):
        assert LKLoss().loss(np.array([0, 1, 2]), np.zeros((3, 3))) == pytest.approx(np.log(3))


# =============================================================================
# Huber (M)
# =============================================================================


class TestHuberLoss:

    def test_initial_value_is_median(self):
        assert HuberLoss().initial_value(_numeric([1.0, 2.0, 100.0]))[0] == pytest.approx(2.0)

    def test_residuals_clipped_at_quantile(self):
        config = GradientBoostingLearnerConfiguration(alpha=0.5)
        y = np.array([0.0, 1.0, 2.0, 3.0, 100.0])
        residuals = HuberLoss().pseudo_residual(y, np.zeros((5, 1)), config)
        assert residuals.quantile == pytest.approx(2.0)
        np.testing.assert_allclose(residuals.values[:, 0], [0.0, 1.0, 2.0, 2.0, 2.0])
        np.testing.assert_allclose(residuals.raw_residuals[:, 0], y)

    def test_coefficient_is_robust(self):
        config = GradientBoostingLearnerConfiguration(alpha=0.5)
        y = np.array([0.0, 1.0, 2.0, 3.0, 100.0])
        residuals = HuberLoss().pseudo_residual(y, np.zeros((5, 1)), config)
        # median 2, clipped deviations [-2, -1, 0, 1, 2] average to 0
        assert HuberLoss().leaf_coefficient(residuals, np.arange(5), 0) == pytest.approx(2.0)

    def test_loss_is_quadratic_inside_threshold(self):
        config = GradientBoostingLearnerConfiguration(alpha=1.0)
        y = np.array([1.0, -1.0])
        assert HuberLoss().loss(y, np.zeros((2, 1)), config) == pytest.approx(0.5)
