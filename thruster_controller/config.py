"""
Vehicle and controller configuration.

Parameters are read from a YAML file laid out like the vehicle parameter
namespace the controller runs in:

    buoyancy_depth_thresh: 0.4
    buoyancy_pitch_thresh: 10.0
    SPL: {X: -0.40, Y: 0.20, Z: 0.0, Active: true}
    ...
    Mass: 35.10
    Volume: 0.03371
    Ixx: 0.52607145
    Iyy: 1.50451601
    Izz: 1.62450600
    Buoyancy_X_POS: 0.0
    Buoyancy_Y_POS: 0.0
    Buoyancy_Z_POS: 0.0

Anything missing is fatal: the controller must not start with an unknown
thruster geometry or mass model.
"""
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

import numpy as np
import yaml

from thruster_controller.vehicle_model import (
    THRUSTER_NAMES,
    ConfigurationError,
    LiveMassProvider,
    RigidBodyModel,
    StaticGeometryProvider,
    StaticMassProvider,
)


@dataclass(frozen=True)
class SolverConfig:
    max_iterations: int = 100
    estimator_max_iterations: int = 50
    min_thrust: float = -20.0
    max_thrust: float = 20.0
    enforce_thrust_limits: bool = False


@dataclass(frozen=True)
class ControllerConfig:
    positions: Dict[str, Tuple[float, float, float]]
    active: Dict[str, bool]
    mass: float
    volume: float
    inertia: Tuple[float, float, float]
    center_of_buoyancy: Tuple[float, float, float]
    depth_threshold: float
    pitch_threshold: float
    mass_source: str = 'live'
    solver: SolverConfig = field(default_factory=SolverConfig)


class UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that rejects repeated keys instead of keeping the last one."""

    def construct_mapping(self, node, deep=False):
        seen = set()
        for key_node, _ in node.value:
            if key_node.tag == 'tag:yaml.org,2002:merge':
                continue
            key = self.construct_object(key_node, deep=deep)
            if not isinstance(key, Hashable):
                continue
            if key in seen:
                raise ConfigurationError(f"Duplicated param \"{key}\" {key_node.start_mark}")
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


def _param(key: str, scope: str = "") -> str:
    return f"{scope}/{key}" if scope else key


def _require(raw: Mapping[str, Any], key: str, scope: str = ""):
    if not isinstance(raw, Mapping) or key not in raw or raw[key] is None:
        raise ConfigurationError(
            f"Critical! Param \"{_param(key, scope)}\" does not exist or is not accessed correctly"
        )
    return raw[key]


def _number(raw: Mapping[str, Any], key: str, scope: str = "") -> float:
    value = _require(raw, key, scope)
    if isinstance(value, bool):
        raise ConfigurationError(f"Param \"{_param(key, scope)}\" must be a number, got {value!r}")
    try:
        value = float(value)
    except (TypeError, ValueError) as err:
        raise ConfigurationError(f"Param \"{_param(key, scope)}\" must be a number, got {value!r}") from err
    if not np.isfinite(value):
        raise ConfigurationError(f"Param \"{_param(key, scope)}\" must be finite")
    return value


def _count(raw: Mapping[str, Any], key: str, scope: str = "") -> int:
    value = _number(raw, key, scope)
    if value != int(value) or value < 1:
        raise ConfigurationError(f"Param \"{_param(key, scope)}\" must be a whole number >= 1")
    return int(value)


def _flag(raw: Mapping[str, Any], key: str, scope: str = "") -> bool:
    value = _require(raw, key, scope)
    if not isinstance(value, bool):
        raise ConfigurationError(f"Param \"{_param(key, scope)}\" must be true or false, got {value!r}")
    return value


def _solver(raw: Mapping[str, Any]) -> SolverConfig:
    """Solver block; every key is optional and falls back to SolverConfig()."""
    block = raw.get('solver') or {}
    if not isinstance(block, Mapping):
        raise ConfigurationError("Param \"solver\" must be a mapping")
    unknown = set(block) - set(SolverConfig.__dataclass_fields__)
    if unknown:
        raise ConfigurationError(f"Unknown solver params: {', '.join(sorted(map(str, unknown)))}")

    values = {}
    for key in ('max_iterations', 'estimator_max_iterations'):
        if key in block:
            values[key] = _count(block, key, 'solver')
    for key in ('min_thrust', 'max_thrust'):
        if key in block:
            values[key] = _number(block, key, 'solver')
    if 'enforce_thrust_limits' in block:
        values['enforce_thrust_limits'] = _flag(block, 'enforce_thrust_limits', 'solver')

    solver = SolverConfig(**values)
    if not (solver.min_thrust < 0.0 < solver.max_thrust):
        raise ConfigurationError("Params \"solver/min_thrust\" and \"solver/max_thrust\" "
                                 "must satisfy min_thrust < 0 < max_thrust")
    return solver


def parse_config(raw: Optional[Mapping[str, Any]]) -> ControllerConfig:
    """
    Validate a raw parameter dictionary.

    Raises:
        ConfigurationError: If any required parameter is missing or malformed
    """
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Vehicle configuration must be a mapping")

    positions = {}
    active = {}
    for name in THRUSTER_NAMES:
        block = _require(raw, name)
        positions[name] = tuple(_number(block, axis, name) for axis in ('X', 'Y', 'Z'))
        active[name] = _flag(block, 'Active', name)

    mass_source = str(raw.get('mass_source', 'live')).lower()
    if mass_source not in ('live', 'static'):
        raise ConfigurationError(f"mass_source must be 'live' or 'static', got {mass_source!r}")

    solver = _solver(raw)

    config = ControllerConfig(
        positions=positions,
        active=active,
        mass=_number(raw, 'Mass'),
        volume=_number(raw, 'Volume'),
        inertia=(_number(raw, 'Ixx'), _number(raw, 'Iyy'), _number(raw, 'Izz')),
        center_of_buoyancy=(_number(raw, 'Buoyancy_X_POS'),
                            _number(raw, 'Buoyancy_Y_POS'),
                            _number(raw, 'Buoyancy_Z_POS')),
        depth_threshold=_number(raw, 'buoyancy_depth_thresh'),
        pitch_threshold=_number(raw, 'buoyancy_pitch_thresh'),
        mass_source=mass_source,
        solver=solver,
    )

    for key, value in (('Mass', config.mass), ('Volume', config.volume),
                       ('Ixx', config.inertia[0]), ('Iyy', config.inertia[1]),
                       ('Izz', config.inertia[2])):
        if value <= 0.0:
            raise ConfigurationError(f"Param \"{key}\" must be positive")
    if config.pitch_threshold < 0.0:
        raise ConfigurationError("Param \"buoyancy_pitch_thresh\" must be >= 0")

    return config


def load_config(yaml_path: str) -> ControllerConfig:
    """Load and validate the vehicle configuration from a YAML file."""
    try:
        with open(yaml_path, 'r') as f:
            raw = yaml.load(f, Loader=UniqueKeyLoader)
    except (OSError, yaml.YAMLError) as err:
        raise ConfigurationError(f"Could not read vehicle configuration {yaml_path}: {err}") from err
    return parse_config(raw)


def build_model(config: ControllerConfig, geometry=None, logger=None) -> RigidBodyModel:
    """
    Build the rigid-body model from a configuration.

    Args:
        config: Validated configuration
        geometry: Optional geometry provider overriding the configured
            positions (e.g. a TransformGeometryProvider)
        logger: Optional logger
    """
    if geometry is None:
        geometry = StaticGeometryProvider(config.positions)
    provider_cls = LiveMassProvider if config.mass_source == 'live' else StaticMassProvider
    mass_provider = provider_cls(config.mass, config.volume, config.inertia)
    return RigidBodyModel(
        geometry,
        mass_provider,
        active=config.active,
        center_of_buoyancy=config.center_of_buoyancy,
        logger=logger,
    )
