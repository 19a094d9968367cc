"""
Thrust allocation for an 8-thruster AUV.

Maps a commanded body-frame acceleration (surge, sway, heave, roll, pitch,
yaw) to eight thruster forces by minimizing the residuals of the six rigid
body equations of motion:

Linear axis a:
    ((sum of gated thrust along a) + R_w2b[a, z] * (B - W) * engaged) / m - a_cmd

Angular axis a:
    ((sum of gated thrust moments about a) + (r_cob x B * R_w2b[:, z])_a * engaged
     - gyroscopic_a) / I_aa - alpha_cmd

Eight unknowns against six equations: the problem is under-determined and the
solver settles on the minimum-norm forces that satisfy it.
"""
import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from thruster_controller.environment import EnvironmentState
from thruster_controller.least_squares import levenberg_marquardt
from thruster_controller.vehicle_model import RigidBodyModel, VehiclePhysicalState


@dataclass(frozen=True)
class CommandVector:
    """Commanded body-frame accelerations: linear [m/s^2], angular [rad/s^2]."""
    surge: float = 0.0
    sway: float = 0.0
    heave: float = 0.0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> 'CommandVector':
        values = np.asarray(values, dtype=float).reshape(-1)
        if values.shape[0] != 6:
            raise ValueError("Acceleration command must have 6 components")
        if not np.all(np.isfinite(values)):
            raise ValueError("Acceleration command must be finite")
        return cls(*(float(v) for v in values))

    def as_array(self) -> np.ndarray:
        return np.array([self.surge, self.sway, self.heave, self.roll, self.pitch, self.yaw])

    def __neg__(self) -> 'CommandVector':
        return CommandVector.from_sequence(-self.as_array())


@dataclass(frozen=True)
class AllocationSnapshot:
    """
    Everything a solver pass reads, frozen at the start of the pass.

    `gate` is 1.0 for a thruster that both is active and (for heave
    thrusters) currently available, 0.0 otherwise.
    """
    names: Tuple[str, ...]
    directions: np.ndarray      # (8, 3) thrust unit vectors
    moment_arms: np.ndarray     # (8, 3) r x e per thruster
    gate: np.ndarray            # (8,)
    vehicle: VehiclePhysicalState
    R_w2b: np.ndarray
    angular_velocity: np.ndarray
    buoyancy_engaged: bool

    @classmethod
    def capture(cls, model: RigidBodyModel, environment: EnvironmentState) -> 'AllocationSnapshot':
        gate = model.active_mask * environment.heave_availability()
        arrays = [model.directions.copy(), model.moment_arms.copy(), gate,
                  environment.R_w2b.copy(), environment.angular_velocity.copy()]
        for array in arrays:
            array.setflags(write=False)
        directions, moment_arms, gate, R_w2b, angular_velocity = arrays
        return cls(
            names=model.names,
            directions=directions,
            moment_arms=moment_arms,
            gate=gate,
            vehicle=model.physical_state,
            R_w2b=R_w2b,
            angular_velocity=angular_velocity,
            buoyancy_engaged=bool(environment.buoyancy_engaged),
        )

    @property
    def inertia(self) -> np.ndarray:
        return np.asarray(self.vehicle.inertia, dtype=float)

    @property
    def up_in_body(self) -> np.ndarray:
        """World z axis expressed in the body frame (z column of R_w2b)."""
        return self.R_w2b[:, 2]


# --- Physical terms -------------------------------------------------------

def gyroscopic_coupling(angular_velocity: np.ndarray, inertia: np.ndarray) -> np.ndarray:
    """Rigid-body cross terms w_i * w_j * (I_jj - I_ii) for roll, pitch and yaw."""
    p, q, r = angular_velocity
    Ixx, Iyy, Izz = inertia
    return np.array([
        r * q * (Izz - Iyy),
        p * r * (Ixx - Izz),
        q * p * (Iyy - Ixx),
    ])


def net_buoyancy_force(snapshot: AllocationSnapshot) -> np.ndarray:
    """Buoyancy minus weight in the body frame, zero while buoyancy is disengaged."""
    if not snapshot.buoyancy_engaged:
        return np.zeros(3)
    vehicle = snapshot.vehicle
    return snapshot.up_in_body * (vehicle.buoyancy - vehicle.weight)


def buoyancy_moment(center_of_buoyancy: Sequence[float], snapshot: AllocationSnapshot) -> np.ndarray:
    """Moment of the buoyant force acting at the CoB about the center of mass."""
    force = snapshot.up_in_body * snapshot.vehicle.buoyancy
    return np.cross(np.asarray(center_of_buoyancy, dtype=float), force)


def thruster_wrench(forces: np.ndarray, snapshot: AllocationSnapshot) -> Tuple[np.ndarray, np.ndarray]:
    """Net (force, moment) from the gated thruster forces."""
    gated = forces * snapshot.gate
    return gated @ snapshot.directions, gated @ snapshot.moment_arms


# --- Residual equations ---------------------------------------------------

def allocation_residuals(forces: np.ndarray, command: CommandVector, snapshot: AllocationSnapshot) -> np.ndarray:
    """Six equation-of-motion residuals for the given thruster forces."""
    vehicle = snapshot.vehicle
    cmd = command.as_array()

    force, moment = thruster_wrench(forces, snapshot)
    linear = (force + net_buoyancy_force(snapshot)) / vehicle.mass - cmd[:3]

    buoyant = np.zeros(3)
    if snapshot.buoyancy_engaged:
        buoyant = buoyancy_moment(vehicle.center_of_buoyancy, snapshot)
    gyro = gyroscopic_coupling(snapshot.angular_velocity, snapshot.inertia)
    angular = (moment + buoyant - gyro) / snapshot.inertia - cmd[3:]

    return np.concatenate([linear, angular])


def allocation_jacobian(snapshot: AllocationSnapshot) -> np.ndarray:
    """d(residuals)/d(forces), shape (6, 8). Constant in the forces."""
    scale = np.concatenate([np.full(3, 1.0 / snapshot.vehicle.mass), 1.0 / snapshot.inertia])
    wrench_per_newton = np.hstack([snapshot.directions, snapshot.moment_arms])  # (8, 6)
    return (wrench_per_newton * snapshot.gate[:, None]).T * scale[:, None]


@dataclass(frozen=True)
class SolveResult:
    """
    Outcome of one allocation pass.

    `forces` act on the vehicle; `thrust` is what each thruster is commanded
    to produce (the reaction, i.e. the negated force).
    """
    names: Tuple[str, ...]
    forces: np.ndarray
    iterations: int
    residual_norm: float
    converged: bool
    message: str = ""

    @property
    def thrust(self) -> np.ndarray:
        return -self.forces

    def as_dict(self) -> dict:
        return dict(zip(self.names, self.forces.tolist()))


class ThrustAllocator:
    """
    Nonlinear least-squares thrust allocator.

    Every pass starts from zero forces. Levenberg-Marquardt steps are taken
    in the row space of the Jacobian, so directions the equations do not
    constrain (including inactive or unavailable thrusters) stay at zero.

    Thrust limits are carried but only applied when `enforce_thrust_limits`
    is set; saturation is otherwise left to the thruster driver. Enforced
    limits are applied by projection and clipped thrusters stop contributing
    once they sit on a bound.
    """

    def __init__(
        self,
        max_iterations: int = 100,
        min_thrust: float = -20.0,
        max_thrust: float = 20.0,
        enforce_thrust_limits: bool = False,
        logger: logging.Logger = None
    ):
        """
        Args:
            max_iterations: Iteration budget per solve
            min_thrust: Lower force bound [N]
            max_thrust: Upper force bound [N]
            enforce_thrust_limits: Apply the bounds during the solve
            logger: Optional logger
        """
        if int(max_iterations) < 1:
            raise ValueError("max_iterations must be at least 1")
        if not (min_thrust < 0.0 < max_thrust):
            raise ValueError("Thrust limits must satisfy min_thrust < 0 < max_thrust")

        self.max_iterations = int(max_iterations)
        self.min_thrust = float(min_thrust)
        self.max_thrust = float(max_thrust)
        self.enforce_thrust_limits = bool(enforce_thrust_limits)
        self.logger = logger or logging.getLogger(__name__)

    @property
    def bounds(self) -> Tuple[float, float]:
        if self.enforce_thrust_limits:
            return self.min_thrust, self.max_thrust
        return -np.inf, np.inf

    def solve(self, command: CommandVector, snapshot: AllocationSnapshot) -> SolveResult:
        """
        Solve for the thruster forces that best produce `command`.

        Never raises on non-convergence: the last iterate is returned with
        `converged=False`.
        """
        jacobian = allocation_jacobian(snapshot)

        result = levenberg_marquardt(
            allocation_residuals,
            lambda forces, *args: jacobian,
            np.zeros(len(snapshot.names)),
            args=(command, snapshot),
            max_iterations=self.max_iterations,
            bounds=self.bounds,
        )

        solve = SolveResult(
            names=snapshot.names,
            forces=result.x,
            iterations=result.iterations,
            residual_norm=result.residual_norm,
            converged=result.converged,
            message=result.message,
        )

        if not solve.converged:
            self.logger.warning(
                f"Thrust allocation did not converge after {solve.iterations} iterations "
                f"(residual={solve.residual_norm:.3e}); publishing last iterate"
            )
        else:
            self.logger.debug(
                f"Thrust allocation: iterations={solve.iterations}, residual={solve.residual_norm:.3e}"
            )
        return solve
