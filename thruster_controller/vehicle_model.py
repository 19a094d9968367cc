"""
Rigid-body model of the vehicle.

Holds the thruster layout (mounting position relative to the center of mass,
thrust axis, activation flag) and the mass properties used by the equations
of motion. Geometry and mass properties come from pluggable providers so the
same model serves a vehicle described by static parameters or one whose
thruster positions come from a transform tree and whose mass is updated live.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np


GRAVITY = 9.81           # [m/s^2]
WATER_DENSITY = 1000.0   # [kg/m^3]

# Canonical ordering of the solved force vector
THRUSTER_NAMES = ('SPL', 'SSL', 'SWF', 'SWA', 'HPF', 'HSF', 'HPA', 'HSA')

# Body axis each thruster pushes along: 0 surge, 1 sway, 2 heave
THRUSTER_AXES = {
    'SPL': 0, 'SSL': 0,
    'SWF': 1, 'SWA': 1,
    'HPF': 2, 'HSF': 2, 'HPA': 2, 'HSA': 2,
}

HEAVE_FWD = ('HPF', 'HSF')
HEAVE_AFT = ('HPA', 'HSA')


class ConfigurationError(ValueError):
    """Raised when the vehicle model cannot be fully resolved."""


def _positive(name: str, value: float) -> float:
    value = float(value)
    if not np.isfinite(value) or value <= 0.0:
        raise ValueError(f"{name} must be finite and positive")
    return value


def _vector3(name: str, value: Sequence[float]) -> np.ndarray:
    vec = np.asarray(value, dtype=float).reshape(-1)
    if vec.shape[0] != 3:
        raise ValueError(f"{name} must be a length-3 vector")
    if not np.all(np.isfinite(vec)):
        raise ValueError(f"{name} must be finite")
    return vec


@dataclass
class ThrusterSpec:
    """One physical thruster. Position is fixed, the activation flag is not."""
    name: str
    axis: int
    position: np.ndarray
    active: bool = True

    @property
    def direction(self) -> np.ndarray:
        """Unit vector of positive thrust in the body frame."""
        e = np.zeros(3)
        e[self.axis] = 1.0
        return e

    @property
    def moment_arm(self) -> np.ndarray:
        """Moment about the center of mass per newton of thrust (r x e)."""
        return np.cross(self.position, self.direction)


@dataclass(frozen=True)
class VehiclePhysicalState:
    """
    Mass properties of the vehicle.

    Weight and buoyant force are derived on access so they always follow the
    latest mass and volume.
    """
    mass: float
    volume: float
    inertia: Tuple[float, float, float]
    center_of_buoyancy: Tuple[float, float, float] = (0.0, 0.0, 0.0)

    @property
    def weight(self) -> float:
        return self.mass * GRAVITY

    @property
    def buoyancy(self) -> float:
        return self.volume * WATER_DENSITY * GRAVITY


# --- Geometry providers ---------------------------------------------------

class StaticGeometryProvider:
    """Thruster positions given directly as configuration values."""

    def __init__(self, positions: Mapping[str, Sequence[float]]):
        self._positions = dict(positions)

    def resolve(self) -> Dict[str, np.ndarray]:
        missing = [name for name in THRUSTER_NAMES if name not in self._positions]
        if missing:
            raise ConfigurationError(f"Missing thruster positions: {', '.join(missing)}")
        try:
            return {name: _vector3(f"{name} position", self._positions[name])
                    for name in THRUSTER_NAMES}
        except ValueError as err:
            raise ConfigurationError(str(err)) from err


class TransformGeometryProvider:
    """
    Thruster positions looked up from an external transform source.

    Args:
        lookup: Callable returning the translation [x, y, z] of a frame
            relative to the center-of-mass frame (e.g. a tf2 buffer query)
        frames: Optional mapping from thruster name to frame id. Thruster
            names are used as frame ids when omitted.
    """

    def __init__(self, lookup: Callable[[str], Sequence[float]],
                 frames: Optional[Mapping[str, str]] = None):
        self.lookup = lookup
        self.frames = {name: name for name in THRUSTER_NAMES}
        if frames:
            self.frames.update(frames)

    def resolve(self) -> Dict[str, np.ndarray]:
        positions = {}
        for name in THRUSTER_NAMES:
            frame = self.frames[name]
            try:
                positions[name] = _vector3(f"{name} position", self.lookup(frame))
            except Exception as err:
                raise ConfigurationError(
                    f"Could not resolve transform for thruster {name} (frame '{frame}'): {err}"
                ) from err
        return positions


# --- Mass providers -------------------------------------------------------

class StaticMassProvider:
    """Fixed mass, volume and inertia. Live updates are rejected."""

    live = False

    def __init__(self, mass: float, volume: float, inertia: Sequence[float]):
        inertia = np.asarray(inertia, dtype=float).reshape(-1)
        if inertia.shape[0] != 3:
            raise ValueError("inertia must be (Ixx, Iyy, Izz)")
        self._mass = _positive("mass", mass)
        self._volume = _positive("volume", volume)
        self._inertia = tuple(_positive(axis, value)
                              for axis, value in zip(('Ixx', 'Iyy', 'Izz'), inertia))

    @property
    def mass(self) -> float:
        return self._mass

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def inertia(self) -> Tuple[float, float, float]:
        return self._inertia

    def update(self, mass: float, volume: float):
        raise ConfigurationError("Mass properties are fixed for this vehicle")


class LiveMassProvider(StaticMassProvider):
    """Mass properties that may change at runtime (e.g. after a payload change)."""

    live = True

    def update(self, mass: float, volume: float):
        mass = _positive("mass", mass)
        volume = _positive("volume", volume)
        self._mass = mass
        self._volume = volume


# --- Model store ----------------------------------------------------------

class RigidBodyModel:
    """
    Thruster geometry and mass properties shared by the allocation solver and
    the buoyancy estimator.

    Geometry is resolved once at construction; a model that exists always has
    a position for every thruster.
    """

    def __init__(
        self,
        geometry,
        mass_provider: StaticMassProvider,
        active: Optional[Mapping[str, bool]] = None,
        center_of_buoyancy: Sequence[float] = (0.0, 0.0, 0.0),
        logger: logging.Logger = None
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.mass_provider = mass_provider

        positions = geometry.resolve()
        active = dict(active or {})
        unknown = set(active) - set(THRUSTER_NAMES)
        if unknown:
            raise ConfigurationError(f"Unknown thrusters: {', '.join(sorted(unknown))}")

        self._thrusters = []
        for name in THRUSTER_NAMES:
            position = positions[name].copy()
            position.setflags(write=False)
            self._thrusters.append(ThrusterSpec(
                name=name,
                axis=THRUSTER_AXES[name],
                position=position,
                active=bool(active.get(name, True)),
            ))
        self._center_of_buoyancy = tuple(_vector3("center_of_buoyancy", center_of_buoyancy))

        # Per-thruster constants, fixed for the process lifetime
        self._directions = np.array([t.direction for t in self._thrusters])
        self._moment_arms = np.array([t.moment_arm for t in self._thrusters])
        self._directions.setflags(write=False)
        self._moment_arms.setflags(write=False)

        self.logger.info(
            f"Vehicle model ready: mass={self.mass_provider.mass:.2f} kg, "
            f"volume={self.mass_provider.volume:.5f} m^3, "
            f"active={[t.name for t in self._thrusters if t.active]}"
        )

    @property
    def thrusters(self) -> Tuple[ThrusterSpec, ...]:
        return tuple(self._thrusters)

    @property
    def names(self) -> Tuple[str, ...]:
        return THRUSTER_NAMES

    @property
    def positions(self) -> np.ndarray:
        return np.array([t.position for t in self._thrusters])

    @property
    def directions(self) -> np.ndarray:
        return self._directions

    @property
    def moment_arms(self) -> np.ndarray:
        return self._moment_arms

    @property
    def active_mask(self) -> np.ndarray:
        return np.array([1.0 if t.active else 0.0 for t in self._thrusters])

    @property
    def physical_state(self) -> VehiclePhysicalState:
        return VehiclePhysicalState(
            mass=self.mass_provider.mass,
            volume=self.mass_provider.volume,
            inertia=self.mass_provider.inertia,
            center_of_buoyancy=self._center_of_buoyancy,
        )

    def thruster(self, name: str) -> ThrusterSpec:
        if name not in THRUSTER_AXES:
            raise KeyError(f"Unknown thruster: {name}")
        return self._thrusters[THRUSTER_NAMES.index(name)]

    def update_mass_volume(self, mass: float, volume: float):
        """Set new mass and displaced volume; weight and buoyancy follow immediately."""
        self.mass_provider.update(mass, volume)
        state = self.physical_state
        self.logger.info(
            f"Mass properties updated: mass={state.mass:.2f} kg, volume={state.volume:.5f} m^3, "
            f"weight={state.weight:.2f} N, buoyancy={state.buoyancy:.2f} N"
        )

    def set_active(self, name: str, active: bool):
        thruster = self.thruster(name)
        if thruster.active != bool(active):
            self.logger.info(f"Thruster {name} {'enabled' if active else 'disabled'}")
        thruster.active = bool(active)

    def set_center_of_buoyancy(self, offset: Sequence[float]):
        self._center_of_buoyancy = tuple(_vector3("center_of_buoyancy", offset))

    def reconfigure(
        self,
        mass: Optional[float] = None,
        volume: Optional[float] = None,
        center_of_buoyancy: Optional[Sequence[float]] = None,
        active: Optional[Mapping[str, bool]] = None
    ):
        """
        Apply several property changes at once. Everything is validated
        before anything is changed, so a rejected update leaves the model as
        it was.

        Raises:
            ValueError: If any value is invalid or a thruster name is unknown
            ConfigurationError: If mass properties are fixed for this vehicle
        """
        active = dict(active or {})
        unknown = set(active) - set(THRUSTER_NAMES)
        if unknown:
            raise ValueError(f"Unknown thrusters: {', '.join(sorted(map(str, unknown)))}")

        update_mass = mass is not None or volume is not None
        if update_mass:
            if not self.mass_provider.live:
                raise ConfigurationError("Mass properties are fixed for this vehicle")
            mass = _positive("mass", self.mass_provider.mass if mass is None else mass)
            volume = _positive("volume", self.mass_provider.volume if volume is None else volume)
        if center_of_buoyancy is not None:
            center_of_buoyancy = _vector3("center_of_buoyancy", center_of_buoyancy)

        if update_mass:
            self.update_mass_volume(mass, volume)
        if center_of_buoyancy is not None:
            self.set_center_of_buoyancy(center_of_buoyancy)
        for name, flag in active.items():
            self.set_active(name, flag)

