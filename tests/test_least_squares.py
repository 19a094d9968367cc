"""
Tests for the Levenberg-Marquardt solver.
"""
import pytest
import numpy as np
from thruster_controller.least_squares import levenberg_marquardt


def linear(A, b):
    A = np.asarray(A, dtype=float)
    b = np.asarray(b, dtype=float)
    return (lambda x: A @ x - b), (lambda x: A)


def test_minimum_norm_solution():
    """Under-determined systems settle on the pseudo-inverse solution."""
    A = [[1.0, 1.0, 0.0, 2.0],
         [0.0, 1.0, -1.0, 0.5]]
    b = [3.0, -1.0]
    fun, jac = linear(A, b)

    result = levenberg_marquardt(fun, jac, np.zeros(4))

    assert result.converged
    assert np.allclose(result.x, np.linalg.pinv(A) @ b, atol=1e-9)
    assert result.residual_norm < 1e-9


def test_zero_column_untouched():
    """A variable no residual depends on stays at its initial value of zero."""
    fun, jac = linear([[1.0, 0.0, 2.0], [3.0, 0.0, -1.0]], [1.0, 2.0])
    result = levenberg_marquardt(fun, jac, np.zeros(3))
    assert np.isclose(result.x[1], 0.0, atol=1e-12)


def test_inconsistent_system():
    """Over-determined systems converge to the least-squares solution."""
    A = np.array([[1.0], [1.0], [1.0]])
    b = np.array([1.0, 2.0, 6.0])
    fun, jac = linear(A, b)

    result = levenberg_marquardt(fun, jac, np.zeros(1))

    assert result.converged
    assert np.isclose(result.x[0], 3.0)
    assert np.isclose(result.residual_norm, np.linalg.norm(b - 3.0))


def test_nonlinear_residuals():
    def fun(x, target):
        return np.array([x[0] ** 2 - target, x[1] - 1.0])

    def jac(x, target):
        return np.array([[2.0 * x[0], 0.0], [0.0, 1.0]])

    result = levenberg_marquardt(fun, jac, np.array([1.0, 0.0]), args=(4.0,))

    assert result.converged
    assert np.allclose(result.x, [2.0, 1.0], atol=1e-6)


def test_already_at_solution():
    fun, jac = linear([[1.0, 2.0]], [0.0])
    result = levenberg_marquardt(fun, jac, np.zeros(2))
    assert result.converged
    assert result.iterations == 0


def test_zero_jacobian():
    """Nothing can be moved: converged, with the residual left as it is."""
    fun, jac = linear(np.zeros((2, 3)), [1.0, 1.0])
    result = levenberg_marquardt(fun, jac, np.zeros(3))
    assert result.converged
    assert np.allclose(result.x, 0.0)
    assert np.isclose(result.residual_norm, np.sqrt(2.0))


def test_budget_exhausted():
    fun, jac = linear([[1.0, 0.0], [0.0, 0.01]], [1.0, 1.0])
    result = levenberg_marquardt(fun, jac, np.zeros(2), max_iterations=2)
    assert not result.converged
    assert result.iterations == 2
    assert result.residual_norm < np.sqrt(2.0)


def test_bounds_projection():
    fun, jac = linear([[1.0, 1.0]], [10.0])
    result = levenberg_marquardt(fun, jac, np.zeros(2), bounds=(-2.0, 2.0))
    assert np.all(result.x <= 2.0)
    assert np.allclose(result.x, [2.0, 2.0])


@pytest.mark.parametrize("scale", [1e-3, 1.0, 1e3])
def test_badly_scaled(scale):
    fun, jac = linear([[scale, 0.0], [0.0, 1.0]], [scale, 1.0])
    result = levenberg_marquardt(fun, jac, np.zeros(2))
    assert result.converged
    assert np.allclose(result.x, [1.0, 1.0], atol=1e-6)
