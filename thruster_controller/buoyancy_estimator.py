"""
Center-of-buoyancy estimation.

Assumes the vehicle is holding station but failing to reach its target
attitude because the buoyancy moment is not yet modelled. The angular
equations are then balanced by the buoyancy moment alone:

    sum(gated thrust moments) + r_cob x (B * R_w2b[:, z]) - gyroscopic = 0

and solved for r_cob. The output only makes physical sense while the vehicle
is roughly stationary and fully submerged (depth and attitude loops holding);
checking that is up to the caller. It is meant for tuning the configured CoB,
not for closed-loop use.
"""
import logging
from dataclasses import dataclass

import numpy as np

from thruster_controller.allocation import AllocationSnapshot, gyroscopic_coupling, thruster_wrench
from thruster_controller.least_squares import levenberg_marquardt


@dataclass(frozen=True)
class BuoyancyEstimate:
    offset: np.ndarray        # [m] CoB relative to the center of mass, body frame
    iterations: int
    residual_norm: float
    converged: bool


def buoyancy_residuals(offset: np.ndarray, forces: np.ndarray, snapshot: AllocationSnapshot) -> np.ndarray:
    """Roll, pitch and yaw moment balance for a candidate CoB offset."""
    _, moment = thruster_wrench(forces, snapshot)
    buoyant_force = snapshot.up_in_body * snapshot.vehicle.buoyancy
    gyro = gyroscopic_coupling(snapshot.angular_velocity, snapshot.inertia)
    return moment + np.cross(offset, buoyant_force) - gyro


def buoyancy_jacobian(snapshot: AllocationSnapshot) -> np.ndarray:
    """d(residuals)/d(offset): c x F = -[F]x c."""
    fx, fy, fz = snapshot.up_in_body * snapshot.vehicle.buoyancy
    return -np.array([
        [0.0, -fz, fy],
        [fz, 0.0, -fx],
        [-fy, fx, 0.0],
    ])


class BuoyancyEstimator:
    """
    Least-squares CoB estimator run after each allocation pass.

    The cross-product Jacobian has rank two, so the offset component along
    the buoyant force is unobservable from a single attitude; starting from
    zero, it stays at zero.
    """

    def __init__(self, max_iterations: int = 50, logger: logging.Logger = None):
        if int(max_iterations) < 1:
            raise ValueError("max_iterations must be at least 1")
        self.max_iterations = int(max_iterations)
        self.logger = logger or logging.getLogger(__name__)

    def estimate(self, forces: np.ndarray, snapshot: AllocationSnapshot) -> BuoyancyEstimate:
        """
        Args:
            forces: Solved thruster forces on the vehicle (not the negated thrust)
            snapshot: The snapshot the forces were solved against
        """
        forces = np.asarray(forces, dtype=float)
        jacobian = buoyancy_jacobian(snapshot)

        result = levenberg_marquardt(
            buoyancy_residuals,
            lambda offset, *args: jacobian,
            np.zeros(3),
            args=(forces, snapshot),
            max_iterations=self.max_iterations,
        )

        estimate = BuoyancyEstimate(
            offset=result.x,
            iterations=result.iterations,
            residual_norm=result.residual_norm,
            converged=result.converged,
        )
        if not estimate.converged:
            self.logger.warning(f"CoB estimate did not converge after {estimate.iterations} iterations")
        self.logger.debug(
            f"CoB estimate: [{estimate.offset[0]:.4f}, {estimate.offset[1]:.4f}, {estimate.offset[2]:.4f}] m, "
            f"residual={estimate.residual_norm:.3e}"
        )
        return estimate
