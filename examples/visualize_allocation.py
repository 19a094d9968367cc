"""
Visualization script for the thruster controller.
Sweeps commands and vehicle states through the allocator and plots the
resulting thrust per thruster.
"""
import numpy as np
import matplotlib.pyplot as plt
import sys
import os

# Add thruster_controller to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from thruster_controller.allocation import AllocationSnapshot, CommandVector
from thruster_controller.config import load_config
from thruster_controller.dispatcher import ThrusterController
from thruster_controller.vehicle_model import THRUSTER_NAMES

CONFIG_FILE = os.path.join(os.path.dirname(__file__), '..', 'config', 'vehicle_properties.yaml')


def make_controller(**kwargs):
    return ThrusterController.from_config(load_config(CONFIG_FILE), **kwargs)


def plot_axis_sweeps():
    """Thrust per thruster for single-axis commands."""
    print("Generating single-axis sweep plots...")

    controller = make_controller()
    axes_cmd = ['surge', 'sway', 'heave', 'roll', 'pitch', 'yaw']
    units = ['m/s²'] * 3 + ['rad/s²'] * 3
    values = np.linspace(-1.0, 1.0, 41)

    fig, axes = plt.subplots(2, 3, figsize=(18, 10))
    fig.suptitle('Thrust Allocation: Single-Axis Commands (surfaced, level)', fontsize=14, fontweight='bold')

    for ax, axis, unit in zip(axes.flat, axes_cmd, units):
        thrust = np.array([
            controller.on_accel_command(CommandVector(**{axis: float(v)})).thrust
            for v in values
        ])
        for i, name in enumerate(THRUSTER_NAMES):
            if np.any(np.abs(thrust[:, i]) > 1e-6):
                ax.plot(values, thrust[:, i], linewidth=2, label=name)
        ax.axhline(20, color='k', linestyle='--', alpha=0.5, label='Thrust limit')
        ax.axhline(-20, color='k', linestyle='--', alpha=0.5)
        ax.set_xlabel(f'{axis.capitalize()} command [{unit}]')
        ax.set_ylabel('Thrust [N]')
        ax.set_title(axis.capitalize())
        ax.legend(fontsize=8)
        ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig('allocation_axis_sweeps.png', dpi=150, bbox_inches='tight')
    print("  Saved: allocation_axis_sweeps.png")
    plt.close()


def plot_pitch_gating():
    """Heave thrust as the surfaced vehicle trims nose up and down."""
    print("Generating pitch gating plot...")

    controller = make_controller()
    pitch_range = np.linspace(-30.0, 30.0, 121)
    heave = [THRUSTER_NAMES.index(name) for name in ('HPF', 'HSF', 'HPA', 'HSA')]

    surfaced = []
    submerged = []
    for pitch in pitch_range:
        controller.on_orientation([0.0, pitch, 0.0], [0.0, 0.0, 0.0])
        controller.on_depth(0.1)
        surfaced.append(controller.on_accel_command(CommandVector(heave=0.3)).thrust[heave])
        controller.on_depth(2.0)
        submerged.append(controller.on_accel_command(CommandVector(heave=0.3)).thrust[heave])
    surfaced = np.array(surfaced)
    submerged = np.array(submerged)

    threshold = controller.tracker.pitch_threshold
    fig, axes = plt.subplots(1, 2, figsize=(14, 5), sharey=True)
    for ax, data, title in ((axes[0], surfaced, 'Surfaced (depth 0.1 m)'),
                            (axes[1], submerged, 'Submerged (depth 2.0 m)')):
        for column, idx in enumerate(heave):
            ax.plot(pitch_range, data[:, column], linewidth=2, label=THRUSTER_NAMES[idx])
        ax.axvline(threshold, color='k', linestyle=':', alpha=0.6)
        ax.axvline(-threshold, color='k', linestyle=':', alpha=0.6)
        ax.set_xlabel('Pitch [deg]')
        ax.set_title(title)
        ax.legend()
        ax.grid(True, alpha=0.3)
    axes[0].set_ylabel('Heave thrust [N]')
    fig.suptitle('Heave Pair Gating (heave command 0.3 m/s²)', fontsize=14, fontweight='bold')

    plt.tight_layout()
    plt.savefig('allocation_pitch_gating.png', dpi=150, bbox_inches='tight')
    print("  Saved: allocation_pitch_gating.png")
    plt.close()


def plot_hover_and_cob():
    """Hover thrust and the CoB estimate against roll angle while submerged."""
    print("Generating hover / CoB estimate plot...")

    controller = make_controller(calibration=True)
    controller.on_depth(2.0)
    roll_range = np.linspace(-40.0, 40.0, 81)

    thrust = []
    offsets = []
    iterations = []
    for roll in roll_range:
        controller.on_orientation([roll, 0.0, 0.0], [0.0, 0.0, 0.0])
        command = controller.on_accel_command(CommandVector())
        thrust.append(command.thrust)
        offsets.append(controller.last_buoyancy.estimate.offset)
        iterations.append(command.solve.iterations)
    thrust = np.array(thrust)
    offsets = np.array(offsets)

    fig, axes = plt.subplots(1, 3, figsize=(18, 5))

    for i, name in enumerate(THRUSTER_NAMES):
        if np.any(np.abs(thrust[:, i]) > 1e-6):
            axes[0].plot(roll_range, thrust[:, i], linewidth=2, label=name)
    axes[0].set_xlabel('Roll [deg]')
    axes[0].set_ylabel('Thrust [N]')
    axes[0].set_title('Hover Thrust')
    axes[0].legend()
    axes[0].grid(True, alpha=0.3)

    for i, label in enumerate(['x', 'y', 'z']):
        axes[1].plot(roll_range, offsets[:, i] * 1000.0, linewidth=2, label=f'CoB {label}')
    axes[1].set_xlabel('Roll [deg]')
    axes[1].set_ylabel('Offset [mm]')
    axes[1].set_title('CoB Estimate (min-norm component)')
    axes[1].legend()
    axes[1].grid(True, alpha=0.3)

    axes[2].plot(roll_range, iterations, 'b-', linewidth=2)
    axes[2].set_xlabel('Roll [deg]')
    axes[2].set_ylabel('Iterations')
    axes[2].set_title('Solver Iterations')
    axes[2].grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig('allocation_hover_cob.png', dpi=150, bbox_inches='tight')
    print("  Saved: allocation_hover_cob.png")
    plt.close()


def print_snapshot_summary():
    controller = make_controller()
    snapshot: AllocationSnapshot = controller.snapshot()
    vehicle = snapshot.vehicle
    print(f"Vehicle: mass={vehicle.mass:.2f} kg, weight={vehicle.weight:.1f} N, buoyancy={vehicle.buoyancy:.1f} N")
    for name, arm in zip(snapshot.names, snapshot.moment_arms):
        print(f"  {name}: moment arm = [{arm[0]:+.3f}, {arm[1]:+.3f}, {arm[2]:+.3f}] m")


if __name__ == "__main__":
    print("=" * 60)
    print("THRUSTER CONTROLLER - ALLOCATION PLOTS")
    print("=" * 60)
    print_snapshot_summary()
    plot_axis_sweeps()
    plot_pitch_gating()
    plot_hover_and_cob()
    print("Done.")
