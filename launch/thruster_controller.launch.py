#!/usr/bin/env python3
"""
Launch file for the thruster controller node.
"""
from launch import LaunchDescription
from launch_ros.actions import Node
from launch.actions import DeclareLaunchArgument
from launch.substitutions import LaunchConfiguration


def generate_launch_description():
    # Declare arguments
    vehicle_file_arg = DeclareLaunchArgument(
        'vehicle_file',
        default_value='vehicle_properties.yaml',
        description='Vehicle properties YAML file name'
    )

    debug_arg = DeclareLaunchArgument(
        'debug',
        default_value='false',
        description='Estimate the center of buoyancy and allow live vehicle reconfiguration'
    )

    geometry_source_arg = DeclareLaunchArgument(
        'geometry_source',
        default_value='config',
        description='Thruster positions from the YAML file (config) or the transform tree (tf)'
    )

    base_frame_arg = DeclareLaunchArgument(
        'base_frame',
        default_value='base_link',
        description='Center-of-mass frame used for transform lookups'
    )

    # Controller node
    controller_node = Node(
        package='thruster_controller',
        executable='thruster_controller_node',
        name='thruster_controller',
        output='screen',
        parameters=[{
            'vehicle_file': LaunchConfiguration('vehicle_file'),
            'debug': LaunchConfiguration('debug'),
            'geometry_source': LaunchConfiguration('geometry_source'),
            'base_frame': LaunchConfiguration('base_frame'),
        }]
    )

    return LaunchDescription([
        vehicle_file_arg,
        debug_arg,
        geometry_source_arg,
        base_frame_arg,
        controller_node,
    ])
