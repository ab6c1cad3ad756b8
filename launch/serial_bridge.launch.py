from launch import LaunchDescription
from launch_ros.actions import Node
from launch.substitutions import LaunchConfiguration
from launch.actions import DeclareLaunchArgument
from ament_index_python.packages import get_package_share_directory
import os


def generate_launch_description():
    pkg_share = get_package_share_directory('telemetry_serial_bridge')

    config_file = os.path.join(
        pkg_share,
        'config',
        'serial_bridge.yaml'
    )

    return LaunchDescription([

        # --------------------
        # Launch Arguments
        # --------------------
        DeclareLaunchArgument(
            'config',
            default_value=config_file,
            description='Path to telemetry bridge parameter file'
        ),

        DeclareLaunchArgument(
            'port',
            default_value='/dev/ttyUSB0',
            description='Serial device the field gateway is attached to'
        ),

        DeclareLaunchArgument(
            'log_level',
            default_value='info',
            description='ROS log level of the bridge node'
        ),

        # --------------------
        # Telemetry Bridge Node
        # --------------------
        Node(
            package='telemetry_serial_bridge',
            executable='serial_node',
            name='telemetry_serial_bridge',
            output='screen',
            parameters=[
                LaunchConfiguration('config'),
                {'port': LaunchConfiguration('port')},
            ],
            arguments=['--ros-args', '--log-level', LaunchConfiguration('log_level')]
        ),
    ])
