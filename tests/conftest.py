"""
Shared fixtures: a symmetric 8-thruster vehicle (35.10 kg, 0.03371 m^3).
"""
import copy

import pytest

from thruster_controller.config import build_model, parse_config
from thruster_controller.environment import EnvironmentTracker


VEHICLE = {
    'buoyancy_depth_thresh': 0.4,
    'buoyancy_pitch_thresh': 10.0,
    'SPL': {'X': -0.40, 'Y': 0.20, 'Z': 0.0, 'Active': True},
    'SSL': {'X': -0.40, 'Y': -0.20, 'Z': 0.0, 'Active': True},
    'SWF': {'X': 0.30, 'Y': 0.0, 'Z': 0.0, 'Active': True},
    'SWA': {'X': -0.30, 'Y': 0.0, 'Z': 0.0, 'Active': True},
    'HPF': {'X': 0.25, 'Y': 0.20, 'Z': 0.0, 'Active': True},
    'HSF': {'X': 0.25, 'Y': -0.20, 'Z': 0.0, 'Active': True},
    'HPA': {'X': -0.25, 'Y': 0.20, 'Z': 0.0, 'Active': True},
    'HSA': {'X': -0.25, 'Y': -0.20, 'Z': 0.0, 'Active': True},
    'Mass': 35.10,
    'Volume': 0.03371,
    'Ixx': 0.52607145,
    'Iyy': 1.50451601,
    'Izz': 1.62450600,
    'Buoyancy_X_POS': 0.0,
    'Buoyancy_Y_POS': 0.0,
    'Buoyancy_Z_POS': 0.02,
}


@pytest.fixture
def raw_config():
    """Raw parameter dictionary; safe to mutate per test."""
    return copy.deepcopy(VEHICLE)


@pytest.fixture
def config(raw_config):
    return parse_config(raw_config)


@pytest.fixture
def model(config):
    return build_model(config)


@pytest.fixture
def tracker(config):
    return EnvironmentTracker(config.depth_threshold, config.pitch_threshold)
