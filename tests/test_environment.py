"""
Tests for the orientation and environment tracker.
"""
import pytest
import numpy as np
from thruster_controller.environment import EnvironmentTracker, rotation_from_rpy
from thruster_controller.vehicle_model import THRUSTER_NAMES


def rot_x(a):
    c, s = np.cos(a), np.sin(a)
    return np.array([[1, 0, 0], [0, c, -s], [0, s, c]])


def rot_y(a):
    c, s = np.cos(a), np.sin(a)
    return np.array([[c, 0, s], [0, 1, 0], [-s, 0, c]])


def rot_z(a):
    c, s = np.cos(a), np.sin(a)
    return np.array([[c, -s, 0], [s, c, 0], [0, 0, 1]])


class TestTrackerInitialization:
    """Test tracker defaults and threshold validation."""

    def test_initial_state(self, tracker):
        """Test that the tracker starts level, at rest and surfaced."""
        state = tracker.state()
        assert np.allclose(state.R_b2w, np.eye(3))
        assert np.allclose(state.R_w2b, np.eye(3))
        assert np.allclose(state.angular_velocity, 0.0)
        assert not state.buoyancy_engaged
        assert state.heave_fwd_enabled and state.heave_aft_enabled

    def test_invalid_thresholds(self):
        """Test that non-finite or negative thresholds raise error."""
        with pytest.raises(ValueError):
            EnvironmentTracker(depth_threshold=np.nan, pitch_threshold=10.0)
        with pytest.raises(ValueError):
            EnvironmentTracker(depth_threshold=0.4, pitch_threshold=-1.0)


class TestOrientation:
    """Test rotation matrices and angular velocity."""

    def test_yaw_rotation(self, tracker):
        """Yaw of 90 deg maps body x onto world y."""
        tracker.update_orientation([0.0, 0.0, 90.0], [0.0, 0.0, 0.0])
        assert np.allclose(tracker.R_b2w @ [1.0, 0.0, 0.0], [0.0, 1.0, 0.0])

    def test_fixed_axis_convention(self, tracker):
        """Roll, pitch, yaw about fixed axes: Rz(yaw) Ry(pitch) Rx(roll)."""
        roll, pitch, yaw = 30.0, 20.0, -45.0
        tracker.update_orientation([roll, pitch, yaw], [0.0, 0.0, 0.0])
        expected = rot_z(np.radians(yaw)) @ rot_y(np.radians(pitch)) @ rot_x(np.radians(roll))
        assert np.allclose(tracker.R_b2w, expected)
        assert np.allclose(rotation_from_rpy(*np.radians([roll, pitch, yaw])), expected)

    def test_world_to_body_is_transpose(self, tracker):
        """Test that the world-to-body rotation inverts the body-to-world one."""
        tracker.update_orientation([12.0, -7.0, 100.0], [0.0, 0.0, 0.0])
        assert np.allclose(tracker.R_w2b, tracker.R_b2w.T)
        assert np.allclose(tracker.R_w2b @ tracker.R_b2w, np.eye(3))

    def test_angular_velocity_radians(self, tracker):
        """All three rates are converted from deg/s to rad/s."""
        tracker.update_orientation([0.0, 0.0, 0.0], [90.0, -45.0, 180.0])
        assert np.allclose(tracker.angular_velocity, [np.pi / 2, -np.pi / 4, np.pi])

    def test_invalid_shape(self, tracker):
        """Test that a short orientation vector raises error."""
        with pytest.raises(ValueError):
            tracker.update_orientation([0.0, 0.0], [0.0, 0.0, 0.0])

    @pytest.mark.parametrize("euler, rates", [
        ([np.nan, 0.0, 0.0], [0.0, 0.0, 0.0]),
        ([0.0, 0.0, 0.0], [0.0, np.inf, 0.0]),
    ])
    def test_non_finite_orientation(self, tracker, euler, rates):
        """Test that NaN or inf orientation is rejected and the last attitude kept."""
        tracker.update_orientation([0.0, 0.0, 90.0], [0.0, 0.0, 0.0])
        with pytest.raises(ValueError):
            tracker.update_orientation(euler, rates)
        assert np.all(np.isfinite(tracker.R_b2w))
        assert np.allclose(tracker.R_b2w @ [1.0, 0.0, 0.0], [0.0, 1.0, 0.0])
        assert np.allclose(tracker.angular_velocity, 0.0)

    def test_state_is_a_copy(self, tracker):
        """A taken state does not change with later observations."""
        state = tracker.state()
        tracker.update_orientation([0.0, 0.0, 90.0], [10.0, 0.0, 0.0])
        assert np.allclose(state.R_b2w, np.eye(3))
        assert np.allclose(state.angular_velocity, 0.0)


class TestDepthGating:
    """Test buoyancy engagement and heave availability."""

    def test_buoyancy_engaged_below_threshold(self, tracker):
        """Test that buoyancy engages below the depth threshold."""
        tracker.update_depth(1.0)
        assert tracker.buoyancy_engaged

    def test_buoyancy_disengaged_at_surface(self, tracker):
        """Test that buoyancy is off above the depth threshold."""
        tracker.update_depth(0.2)
        assert not tracker.buoyancy_engaged

    def test_threshold_is_exclusive(self, tracker):
        """Test that buoyancy stays off exactly at the threshold."""
        tracker.update_depth(0.4)
        assert not tracker.buoyancy_engaged

    def test_nose_down_trim_disables_aft(self, tracker):
        """Pitch above +threshold at the surface: aft pair riding high, disabled."""
        tracker.update_orientation([0.0, 15.0, 0.0], [0.0, 0.0, 0.0])
        tracker.update_depth(0.1)
        assert tracker.heave_fwd_enabled
        assert not tracker.heave_aft_enabled

    def test_nose_up_trim_disables_fwd(self, tracker):
        """Test that pitch below -threshold at the surface disables the forward pair."""
        tracker.update_orientation([0.0, -15.0, 0.0], [0.0, 0.0, 0.0])
        tracker.update_depth(0.1)
        assert not tracker.heave_fwd_enabled
        assert tracker.heave_aft_enabled

    def test_pitch_within_band(self, tracker):
        """Test that small trims keep both heave pairs."""
        tracker.update_orientation([0.0, 5.0, 0.0], [0.0, 0.0, 0.0])
        tracker.update_depth(0.1)
        assert tracker.heave_fwd_enabled and tracker.heave_aft_enabled

    def test_submerged_enables_all(self, tracker):
        """Below the depth threshold pitch does not gate heave thrusters."""
        tracker.update_orientation([0.0, 30.0, 0.0], [0.0, 0.0, 0.0])
        tracker.update_depth(0.1)
        assert not tracker.heave_aft_enabled
        tracker.update_depth(2.0)
        assert tracker.heave_fwd_enabled and tracker.heave_aft_enabled

    def test_availability_vector(self, tracker):
        """Test the per-thruster availability vector in canonical order."""
        tracker.update_orientation([0.0, 15.0, 0.0], [0.0, 0.0, 0.0])
        tracker.update_depth(0.0)
        available = dict(zip(THRUSTER_NAMES, tracker.state().heave_availability()))
        assert available['HPA'] == 0.0 and available['HSA'] == 0.0
        assert available['HPF'] == 1.0 and available['HSF'] == 1.0
        assert all(available[name] == 1.0 for name in ('SPL', 'SSL', 'SWF', 'SWA'))

    @pytest.mark.parametrize("depth", [np.nan, np.inf, -np.inf])
    def test_non_finite_depth(self, tracker, depth):
        """Test that a non-finite depth is rejected and buoyancy stays engaged."""
        tracker.update_depth(2.0)
        with pytest.raises(ValueError):
            tracker.update_depth(depth)
        assert tracker.depth == 2.0
        assert tracker.buoyancy_engaged
