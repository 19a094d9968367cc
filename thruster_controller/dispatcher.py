"""
Event dispatcher for the thruster controller.

Owns the vehicle model and the environment tracker and applies inbound
events one at a time. Only acceleration commands trigger a solve; each solve
works on a snapshot taken when the command is handled, so observations that
arrive later only affect the next cycle.

Not thread-safe: drive it from a single-threaded loop (e.g. the default
rclpy executor).
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence, Tuple

import numpy as np

from thruster_controller.allocation import AllocationSnapshot, CommandVector, SolveResult, ThrustAllocator
from thruster_controller.buoyancy_estimator import BuoyancyEstimate, BuoyancyEstimator
from thruster_controller.config import ControllerConfig, build_model
from thruster_controller.environment import EnvironmentTracker
from thruster_controller.vehicle_model import RigidBodyModel


@dataclass(frozen=True)
class ThrustCommand:
    """Signed thrust per thruster, as sent to the thruster driver."""
    stamp: float
    names: Tuple[str, ...]
    thrust: np.ndarray
    solve: SolveResult

    def as_dict(self) -> dict:
        return dict(zip(self.names, self.thrust.tolist()))


@dataclass(frozen=True)
class BuoyancyReport:
    stamp: float
    estimate: BuoyancyEstimate


class ThrusterController:
    """
    Turns acceleration commands into thrust commands.

    Args:
        model: Rigid-body model (geometry and mass properties)
        tracker: Orientation and environment tracker
        allocator: Thrust allocation solver
        estimator: CoB estimator; run after every solve when `calibration` is set
        calibration: Enables the CoB estimator and live reconfiguration
        thrust_publisher: Called with every ThrustCommand
        buoyancy_publisher: Called with every BuoyancyReport
        clock: Timestamp source [s]
        logger: Optional logger
    """

    def __init__(
        self,
        model: RigidBodyModel,
        tracker: EnvironmentTracker,
        allocator: Optional[ThrustAllocator] = None,
        estimator: Optional[BuoyancyEstimator] = None,
        calibration: bool = False,
        thrust_publisher: Optional[Callable[[ThrustCommand], None]] = None,
        buoyancy_publisher: Optional[Callable[[BuoyancyReport], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger = None
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.model = model
        self.tracker = tracker
        self.allocator = allocator or ThrustAllocator(logger=self.logger)
        self.calibration = bool(calibration)
        if self.calibration and estimator is None:
            estimator = BuoyancyEstimator(logger=self.logger)
        self.estimator = estimator
        self.thrust_publisher = thrust_publisher
        self.buoyancy_publisher = buoyancy_publisher
        self.clock = clock

        self.command = CommandVector()
        self.last_thrust: Optional[ThrustCommand] = None
        self.last_buoyancy: Optional[BuoyancyReport] = None

    @classmethod
    def from_config(cls, config: ControllerConfig, geometry=None, logger: logging.Logger = None,
                    **kwargs) -> 'ThrusterController':
        """Build a controller from a validated configuration."""
        model = build_model(config, geometry=geometry, logger=logger)
        tracker = EnvironmentTracker(config.depth_threshold, config.pitch_threshold, logger=logger)
        solver = config.solver
        allocator = ThrustAllocator(
            max_iterations=solver.max_iterations,
            min_thrust=solver.min_thrust,
            max_thrust=solver.max_thrust,
            enforce_thrust_limits=solver.enforce_thrust_limits,
            logger=logger,
        )
        estimator = BuoyancyEstimator(max_iterations=solver.estimator_max_iterations, logger=logger)
        return cls(model, tracker, allocator=allocator, estimator=estimator, logger=logger, **kwargs)

    # --- Observations ---

    def on_orientation(self, euler_rpy_deg: Sequence[float], angular_velocity_deg_s: Sequence[float]):
        self.tracker.update_orientation(euler_rpy_deg, angular_velocity_deg_s)

    def on_depth(self, depth: float):
        self.tracker.update_depth(depth)

    def on_mass_volume(self, mass: float, volume: float):
        self.model.update_mass_volume(mass, volume)

    def on_reconfigure(
        self,
        mass: Optional[float] = None,
        volume: Optional[float] = None,
        center_of_buoyancy: Optional[Sequence[float]] = None,
        active: Optional[Mapping[str, bool]] = None
    ) -> bool:
        """
        Live vehicle-property changes, accepted only in calibration mode.

        Returns:
            True if the changes were applied
        """
        if not self.calibration:
            self.logger.warning("Ignoring vehicle reconfiguration outside calibration mode")
            return False

        self.model.reconfigure(mass=mass, volume=volume, center_of_buoyancy=center_of_buoyancy, active=active)
        return True

    # --- Commands ---

    def snapshot(self) -> AllocationSnapshot:
        return AllocationSnapshot.capture(self.model, self.tracker.state())

    def on_accel_command(self, command) -> ThrustCommand:
        """
        Solve for and publish the thrust realizing `command`.

        Args:
            command: CommandVector or six accelerations
                (surge, sway, heave, roll, pitch, yaw)
        """
        if not isinstance(command, CommandVector):
            command = CommandVector.from_sequence(command)
        self.command = command

        snapshot = self.snapshot()
        solve = self.allocator.solve(command, snapshot)

        thrust = ThrustCommand(stamp=self.clock(), names=snapshot.names, thrust=solve.thrust, solve=solve)
        self.last_thrust = thrust
        if self.thrust_publisher is not None:
            self.thrust_publisher(thrust)

        if self.calibration:
            estimate = self.estimator.estimate(solve.forces, snapshot)
            report = BuoyancyReport(stamp=self.clock(), estimate=estimate)
            self.last_buoyancy = report
            if self.buoyancy_publisher is not None:
                self.buoyancy_publisher(report)

        return thrust
