"""
Levenberg-Marquardt solver for the small dense problems of the controller.

Damped steps are computed from a truncated SVD of the Jacobian:

    step = -V diag(s / (s^2 + lambda)) U^T r

so every step lies in the row space of the Jacobian. Starting from zero, an
under-determined problem therefore converges to its minimum-norm solution
and directions no residual depends on (zero Jacobian columns) stay at zero.
"""
from dataclasses import dataclass
from typing import Callable, Tuple

import numpy as np


@dataclass(frozen=True)
class LeastSquaresResult:
    x: np.ndarray
    fun: np.ndarray
    iterations: int
    converged: bool
    message: str

    @property
    def residual_norm(self) -> float:
        return float(np.linalg.norm(self.fun))


def levenberg_marquardt(
    fun: Callable[..., np.ndarray],
    jac: Callable[..., np.ndarray],
    x0: np.ndarray,
    args: tuple = (),
    max_iterations: int = 100,
    bounds: Tuple[float, float] = (-np.inf, np.inf),
    ftol: float = 1e-12,
    xtol: float = 1e-12,
    gtol: float = 1e-15,
    atol: float = 1e-12,
    rcond: float = 1e-10,
    damping: float = 1e-3
) -> LeastSquaresResult:
    """
    Minimize 0.5 * ||fun(x, *args)||^2.

    Args:
        fun: Residual function
        jac: Jacobian of `fun`, shape (m, n)
        x0: Initial guess
        args: Extra arguments passed to `fun` and `jac`
        max_iterations: Iteration budget; the last iterate is returned when exhausted
        bounds: (lower, upper) applied by projection after every step
        ftol: Relative cost reduction below which the solve has converged
        xtol: Relative step size below which the solve has converged
        gtol: Gradient infinity norm below which the solve has converged
        atol: Residual norm below which the solve has converged
        rcond: Singular values below rcond * s_max are treated as zero
        damping: Initial damping relative to the largest squared singular value

    Returns:
        LeastSquaresResult; never raises on non-convergence
    """
    lower, upper = bounds
    x = np.clip(np.asarray(x0, dtype=float).copy(), lower, upper)
    r = np.asarray(fun(x, *args), dtype=float)
    cost = 0.5 * float(r @ r)
    lam = None

    for iteration in range(max_iterations + 1):
        J = np.asarray(jac(x, *args), dtype=float)
        if np.linalg.norm(r) <= atol:
            return LeastSquaresResult(x, r, iteration, True, "residual below tolerance")
        if np.max(np.abs(J.T @ r), initial=0.0) <= gtol:
            return LeastSquaresResult(x, r, iteration, True, "gradient below tolerance")
        if iteration == max_iterations:
            break

        U, s, Vt = np.linalg.svd(J, full_matrices=False)
        keep = s > rcond * s[0]
        U, s, Vt = U[:, keep], s[keep], Vt[keep]
        if lam is None:
            lam = damping * s[0] ** 2

        step = -Vt.T @ ((s / (s ** 2 + lam)) * (U.T @ r))
        x_new = np.clip(x + step, lower, upper)
        dx = x_new - x
        if np.linalg.norm(dx) <= xtol * (xtol + np.linalg.norm(x)):
            return LeastSquaresResult(x, r, iteration + 1, True, "step below tolerance")

        r_new = np.asarray(fun(x_new, *args), dtype=float)
        cost_new = 0.5 * float(r_new @ r_new)

        reduction = cost - cost_new
        if reduction > 0.0:
            x, r = x_new, r_new
            cost = cost_new
            lam /= 10.0
        else:
            lam *= 10.0
        # Within rounding of a non-zero minimum
        if abs(reduction) <= ftol * (cost + abs(reduction)):
            return LeastSquaresResult(x, r, iteration + 1, True, "cost reduction below tolerance")

    return LeastSquaresResult(x, r, max_iterations, False, "iteration budget exhausted")
