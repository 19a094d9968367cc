"""
Orientation and environment tracking.

Keeps the latest body/world rotation and angular velocity from the IMU, and
derives the two engagement decisions used by the allocation solver:
whether buoyancy enters the force balance (depth gated) and which heave
thruster pair may be used near the surface (pitch gated).
"""
import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy.spatial.transform import Rotation

from thruster_controller.vehicle_model import HEAVE_AFT, HEAVE_FWD, THRUSTER_NAMES


@dataclass(frozen=True)
class EnvironmentState:
    """Read-only view of the tracked environment at one instant."""
    R_b2w: np.ndarray             # world_vector = R_b2w @ body_vector
    R_w2b: np.ndarray             # body_vector = R_w2b @ world_vector
    angular_velocity: np.ndarray  # [rad/s] body frame
    euler_deg: np.ndarray         # [deg] roll, pitch, yaw
    depth: float                  # [m]
    buoyancy_engaged: bool
    heave_fwd_enabled: bool
    heave_aft_enabled: bool

    def heave_availability(self) -> np.ndarray:
        """Per-thruster availability (1.0 available, 0.0 not) in canonical order."""
        available = np.ones(len(THRUSTER_NAMES))
        for idx, name in enumerate(THRUSTER_NAMES):
            if name in HEAVE_FWD and not self.heave_fwd_enabled:
                available[idx] = 0.0
            elif name in HEAVE_AFT and not self.heave_aft_enabled:
                available[idx] = 0.0
        return available


def rotation_from_rpy(roll: float, pitch: float, yaw: float) -> np.ndarray:
    """
    Body-to-world rotation from roll, pitch, yaw [rad] about the fixed X, Y
    and Z axes, i.e. Rz(yaw) @ Ry(pitch) @ Rx(roll).
    """
    return Rotation.from_euler('xyz', [roll, pitch, yaw]).as_matrix()


class EnvironmentTracker:
    """
    Tracks orientation, angular velocity and depth.

    Buoyancy is engaged once the vehicle is deeper than `depth_threshold`.
    At or above that depth the vehicle is treated as surfaced: buoyancy is
    left out of the force balance and, if the vehicle is trimmed past
    `pitch_threshold`, the heave pair riding high is disabled so it does not
    work against gravity.
    """

    def __init__(self, depth_threshold: float, pitch_threshold: float, logger: logging.Logger = None):
        """
        Args:
            depth_threshold: Depth below which buoyancy is accounted for [m]
            pitch_threshold: Pitch magnitude that disables a heave pair at the surface [deg]
            logger: Optional logger
        """
        if not np.isfinite(depth_threshold):
            raise ValueError("depth_threshold must be finite")
        if not np.isfinite(pitch_threshold) or pitch_threshold < 0.0:
            raise ValueError("pitch_threshold must be finite and >= 0")

        self.depth_threshold = float(depth_threshold)
        self.pitch_threshold = float(pitch_threshold)
        self.logger = logger or logging.getLogger(__name__)

        self.R_b2w = np.eye(3)
        self.R_w2b = np.eye(3)
        self.euler_deg = np.zeros(3)
        self.angular_velocity = np.zeros(3)
        self.depth = 0.0

        self.buoyancy_engaged = False
        self.heave_fwd_enabled = True
        self.heave_aft_enabled = True

    def update_orientation(self, euler_rpy_deg: Sequence[float], angular_velocity_deg_s: Sequence[float]):
        """
        Update attitude from an IMU observation.

        Args:
            euler_rpy_deg: Roll, pitch, yaw [deg]
            angular_velocity_deg_s: Body angular rates [deg/s]
        """
        euler = np.asarray(euler_rpy_deg, dtype=float).reshape(-1)
        rates = np.asarray(angular_velocity_deg_s, dtype=float).reshape(-1)
        if euler.shape[0] != 3 or rates.shape[0] != 3:
            raise ValueError("euler_rpy_deg and angular_velocity_deg_s must be length-3 vectors")
        if not (np.all(np.isfinite(euler)) and np.all(np.isfinite(rates))):
            raise ValueError("Orientation and angular velocity must be finite")

        self.euler_deg = euler
        roll, pitch, yaw = np.radians(euler)
        self.R_b2w = rotation_from_rpy(roll, pitch, yaw)
        self.R_w2b = self.R_b2w.T
        self.angular_velocity = np.radians(rates)

    def update_depth(self, depth: float):
        """Update depth [m] and re-derive buoyancy engagement and heave availability."""
        depth = float(depth)
        if not np.isfinite(depth):
            raise ValueError("depth must be finite")
        self.depth = depth
        was_engaged = self.buoyancy_engaged

        if self.depth > self.depth_threshold:
            self.buoyancy_engaged = True
            self.heave_fwd_enabled = True
            self.heave_aft_enabled = True
        else:
            self.buoyancy_engaged = False
            pitch = self.euler_deg[1]
            if pitch > self.pitch_threshold:
                # Aft riding high
                self.heave_fwd_enabled = True
                self.heave_aft_enabled = False
            elif pitch < -self.pitch_threshold:
                self.heave_fwd_enabled = False
                self.heave_aft_enabled = True
            else:
                self.heave_fwd_enabled = True
                self.heave_aft_enabled = True

        if was_engaged != self.buoyancy_engaged:
            self.logger.debug(
                f"Buoyancy {'engaged' if self.buoyancy_engaged else 'disengaged'} at depth {self.depth:.2f} m"
            )

    def state(self) -> EnvironmentState:
        """Copy of the current environment for one solver pass."""
        return EnvironmentState(
            R_b2w=self.R_b2w.copy(),
            R_w2b=self.R_w2b.copy(),
            angular_velocity=self.angular_velocity.copy(),
            euler_deg=self.euler_deg.copy(),
            depth=self.depth,
            buoyancy_engaged=self.buoyancy_engaged,
            heave_fwd_enabled=self.heave_fwd_enabled,
            heave_aft_enabled=self.heave_aft_enabled,
        )
