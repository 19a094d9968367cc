import rclpy
from rclpy.node import Node
from rclpy.duration import Duration
from rclpy.time import Time
from rcl_interfaces.msg import SetParametersResult
from std_msgs.msg import Float64, Float64MultiArray
from geometry_msgs.msg import Accel, Vector3Stamped
from sensor_msgs.msg import Imu, JointState
from thruster_controller.config import ConfigurationError, load_config
from thruster_controller.dispatcher import ThrusterController
from thruster_controller.vehicle_model import THRUSTER_NAMES, TransformGeometryProvider
import os
import numpy as np
from scipy.spatial.transform import Rotation
from ament_index_python.packages import get_package_share_directory


class ThrusterControllerNode(Node):
    def __init__(self):
        super().__init__('thruster_controller')

        # Declare parameters
        self.declare_parameter('vehicle_file', 'vehicle_properties.yaml')
        self.declare_parameter('debug', False)             # enables CoB estimation + live reconfigure
        self.declare_parameter('geometry_source', 'config')  # 'config' or 'tf'
        self.declare_parameter('base_frame', 'base_link')

        vehicle_file = self.get_parameter('vehicle_file').get_parameter_value().string_value
        debug = self.get_parameter('debug').get_parameter_value().bool_value
        geometry_source = self.get_parameter('geometry_source').get_parameter_value().string_value

        if os.path.isabs(vehicle_file):
            yaml_path = vehicle_file
        else:
            try:
                pkg_dir = get_package_share_directory('thruster_controller')
                yaml_path = os.path.join(pkg_dir, 'config', vehicle_file)
            except LookupError:
                yaml_path = os.path.join(
                    os.path.dirname(__file__), '..', 'config', vehicle_file
                )

        self.get_logger().info(f"Loading vehicle properties from: {yaml_path}")
        try:
            config = load_config(yaml_path)
            geometry = self._tf_geometry() if geometry_source.lower() == 'tf' else None
            self.controller = ThrusterController.from_config(
                config,
                geometry=geometry,
                calibration=debug,
                thrust_publisher=self.publish_thrust,
                buoyancy_publisher=self.publish_buoyancy,
                clock=lambda: self.get_clock().now().nanoseconds * 1e-9,
                logger=self.get_logger(),
            )
        except ConfigurationError as err:
            self.get_logger().fatal(f"Critical! {err}. Shutting down.")
            raise

        # Publishers
        self.thrust_pub = self.create_publisher(JointState, '/command/thrust', 1)
        self.buoyancy_pub = None
        if debug:
            self.buoyancy_pub = self.create_publisher(Vector3Stamped, '/debug/pos_buoyancy', 1)
            self._declare_reconfigure_parameters(config)
            self.add_on_set_parameters_callback(self.reconfigure_callback)

        # Subscribers
        self.create_subscription(Imu, '/state/imu', self.imu_callback, 1)
        self.create_subscription(Float64, '/state/depth', self.depth_callback, 1)
        self.create_subscription(Float64MultiArray, '/state/mass_volume', self.mass_volume_callback, 1)
        self.create_subscription(Accel, '/command/accel', self.accel_callback, 1)

        self.get_logger().info(
            f"Thruster controller running (debug={debug}, geometry={geometry_source})"
        )

    def _tf_geometry(self) -> TransformGeometryProvider:
        """Thruster positions from the transform tree, one frame per thruster."""
        from tf2_ros import Buffer, TransformListener

        base_frame = self.get_parameter('base_frame').get_parameter_value().string_value
        self._tf_buffer = Buffer()
        self._tf_listener = TransformListener(self._tf_buffer, self, spin_thread=True)

        def lookup(frame):
            tform = self._tf_buffer.lookup_transform(
                base_frame, frame, Time(), timeout=Duration(seconds=2.0)
            )
            t = tform.transform.translation
            return [t.x, t.y, t.z]

        return TransformGeometryProvider(lookup)

    def _declare_reconfigure_parameters(self, config):
        """Vehicle properties tunable at runtime (debug mode only)."""
        self.declare_parameter('Mass', config.mass)
        self.declare_parameter('Volume', config.volume)
        for axis, value in zip('XYZ', config.center_of_buoyancy):
            self.declare_parameter(f'Buoyancy_{axis}_POS', value)
        for name in THRUSTER_NAMES:
            self.declare_parameter(f'{name}_active', config.active[name])

    def reconfigure_callback(self, params):
        """ROS 2 parameter updates -> live vehicle reconfiguration."""
        state = self.controller.model.physical_state
        mass, volume = None, None
        cob = list(state.center_of_buoyancy)
        cob_changed = False
        active = {}

        for param in params:
            if param.name == 'Mass':
                mass = param.value
            elif param.name == 'Volume':
                volume = param.value
            elif param.name.startswith('Buoyancy_') and param.name.endswith('_POS'):
                cob['XYZ'.index(param.name[len('Buoyancy_')])] = param.value
                cob_changed = True
            elif param.name.endswith('_active') and param.name[:-len('_active')] in THRUSTER_NAMES:
                active[param.name[:-len('_active')]] = bool(param.value)

        try:
            self.controller.on_reconfigure(
                mass=mass,
                volume=volume,
                center_of_buoyancy=cob if cob_changed else None,
                active=active,
            )
        except ValueError as err:
            return SetParametersResult(successful=False, reason=str(err))
        return SetParametersResult(successful=True)

    def imu_callback(self, msg: Imu):
        """Orientation [deg] and angular velocity [deg/s] from the IMU"""
        q = msg.orientation
        w = msg.angular_velocity
        ang_vel_deg = np.degrees([w.x, w.y, w.z])
        try:
            euler_deg = Rotation.from_quat([q.x, q.y, q.z, q.w]).as_euler('xyz', degrees=True)
            self.controller.on_orientation(euler_deg, ang_vel_deg)
        except ValueError as err:
            self.get_logger().error(f"Rejected IMU observation: {err}")

    def depth_callback(self, msg: Float64):
        try:
            self.controller.on_depth(msg.data)
        except ValueError as err:
            self.get_logger().error(f"Rejected depth observation: {err}")

    def mass_volume_callback(self, msg: Float64MultiArray):
        """Payload change: [mass, volume]"""
        if len(msg.data) != 2:
            self.get_logger().warning(f"Expected [mass, volume], got {len(msg.data)} values")
            return
        try:
            self.controller.on_mass_volume(msg.data[0], msg.data[1])
        except ValueError as err:
            self.get_logger().error(f"Rejected mass/volume update: {err}")

    def accel_callback(self, msg: Accel):
        """New acceleration command -> one allocation pass"""
        try:
            self.controller.on_accel_command([
                msg.linear.x, msg.linear.y, msg.linear.z,
                msg.angular.x, msg.angular.y, msg.angular.z,
            ])
        except ValueError as err:
            self.get_logger().error(f"Rejected acceleration command: {err}")

    def publish_thrust(self, command):
        msg = JointState()
        msg.header.stamp = self.get_clock().now().to_msg()
        msg.name = list(command.names)
        msg.effort = [float(t) for t in command.thrust]
        self.thrust_pub.publish(msg)

    def publish_buoyancy(self, report):
        if self.buoyancy_pub is None:
            return
        msg = Vector3Stamped()
        msg.header.stamp = self.get_clock().now().to_msg()
        offset = report.estimate.offset
        msg.vector.x = float(offset[0])
        msg.vector.y = float(offset[1])
        msg.vector.z = float(offset[2])
        self.buoyancy_pub.publish(msg)


def main(args=None):
    rclpy.init(args=args)
    try:
        node = ThrusterControllerNode()
    except ConfigurationError:
        rclpy.shutdown()
        raise
    rclpy.spin(node)
    node.destroy_node()
    rclpy.shutdown()
