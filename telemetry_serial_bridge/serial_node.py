#!/usr/bin/env python3

import rclpy
from rclpy.node import Node

from diagnostic_msgs.msg import DiagnosticArray, DiagnosticStatus, KeyValue
from rcl_interfaces.msg import SetParametersResult
from std_msgs.msg import String
from std_srvs.srv import Trigger

import codecs
import logging
import serial
import threading
import time

from .buffer import (
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_MAX_AGE,
    DEFAULT_MAX_SIZE,
    BufferHealth,
    HealthStatus,
    ParserConfig,
)
from .parser import FrameParser, ParserStats
from .protocol import encode_record
from .records import DeviceRecord


_LEVELS = {
    HealthStatus.HEALTHY: DiagnosticStatus.OK,
    HealthStatus.WARNING: DiagnosticStatus.WARN,
    HealthStatus.CRITICAL: DiagnosticStatus.ERROR,
}

_LIMIT_PARAMS = ('max_buffer_size', 'max_buffer_age_ms', 'failure_threshold')


def health_to_diagnostic(health: BufferHealth, stats: ParserStats, hardware_id: str) -> DiagnosticStatus:
    status = DiagnosticStatus()
    status.name = 'telemetry_serial_bridge: frame buffer'
    status.hardware_id = hardware_id
    status.level = _LEVELS[health.status]
    status.message = health.status.value

    values = dict(health.to_dict())
    values.update(stats.to_dict())
    status.values = [KeyValue(key=k, value=str(v)) for k, v in values.items()]
    return status


class SerialBridgeNode(Node):

    def __init__(self):
        super().__init__('telemetry_serial_bridge')

        # ==================== PARAMETERS ====================
        self.declare_parameter('port', '/dev/ttyUSB0')
        self.declare_parameter('baudrate', 9600)
        self.declare_parameter('timeout_ms', 50)
        self.declare_parameter('read_size', 256)

        self.declare_parameter('records_topic', '/telemetry/devices')
        self.declare_parameter('health_pub_hz', 1.0)

        self.declare_parameter('max_buffer_size', DEFAULT_MAX_SIZE)
        self.declare_parameter('max_buffer_age_ms', int(DEFAULT_MAX_AGE * 1000))
        self.declare_parameter('failure_threshold', DEFAULT_FAILURE_THRESHOLD)

        self.declare_parameter('reset_on_startup', True)
        self.declare_parameter('reset_pulse_ms', 100)
        self.declare_parameter('reset_boot_wait_ms', 1500)

        self.declare_parameter('debug', False)

        # ==================== PARAM READ ====================
        self.port = self.get_parameter('port').value
        self.baudrate = self.get_parameter('baudrate').value
        self.timeout_ms = self.get_parameter('timeout_ms').value
        self.read_size = self.get_parameter('read_size').value

        self.records_topic = self.get_parameter('records_topic').value
        self.health_pub_hz = self.get_parameter('health_pub_hz').value

        self.max_buffer_size = self.get_parameter('max_buffer_size').value
        self.max_buffer_age_ms = self.get_parameter('max_buffer_age_ms').value
        self.failure_threshold = self.get_parameter('failure_threshold').value

        self.reset_on_startup = self.get_parameter('reset_on_startup').value
        self.reset_pulse_ms = self.get_parameter('reset_pulse_ms').value
        self.reset_boot_wait_ms = self.get_parameter('reset_boot_wait_ms').value

        self.debug = self.get_parameter('debug').value

        # Parser internals log through the standard logging module
        logging.getLogger(__package__).setLevel(
            logging.DEBUG if self.debug else logging.INFO
        )

        if self.read_size <= 0:
            raise ValueError("read_size must be positive")

        if self.health_pub_hz <= 0:
            raise ValueError("health_pub_hz must be positive")

        # ==================== STATE ====================
        self._running = True

        # Debug
        self._dbg_published = 0
        self._dbg_last_record = None

        # ==================== PARSER ====================
        # Raises ValueError on bad limits, same as the checks above
        self.parser = FrameParser(
            ParserConfig(
                max_size=self.max_buffer_size,
                max_age=self.max_buffer_age_ms / 1000.0,
                failure_threshold=self.failure_threshold,
            ),
            sink=self._publish_record,
        )
        self._parser_lock = threading.Lock()

        # Multi-byte characters may be split across reads
        self._decoder = codecs.getincrementaldecoder('utf-8')(errors='ignore')

        # ==================== SERIAL ====================
        self.ser = None

        self._connect_serial()
        self._reset_mcu()

        # ==================== ROS ====================
        self.records_pub = self.create_publisher(
            String,
            self.records_topic,
            10
        )

        self.diag_pub = self.create_publisher(
            DiagnosticArray,
            '/diagnostics',
            10
        )

        self.reset_srv = self.create_service(
            Trigger,
            '~/reset',
            self.reset_callback
        )

        self.add_on_set_parameters_callback(self._on_set_parameters)

        self.create_timer(1.0 / float(self.health_pub_hz), self._publish_health)

        if self.debug:
            self.create_timer(1.0, self._print_debug_panel)

        self._rx_thread = threading.Thread(
            target=self.serial_rx_loop,
            daemon=True
        )
        self._rx_thread.start()

        self.get_logger().info("telemetry_serial_bridge started")

    # =====================================================
    # SERIAL CONNECT
    # =====================================================
    def _connect_serial(self):
        self.ser = serial.Serial(
            port=self.port,
            baudrate=self.baudrate,
            timeout=self.timeout_ms / 1000.0
        )
        self._reset_session()
        self.get_logger().info(
            f"Serial connected: {self.port} @ {self.baudrate}"
        )

    def _reset_mcu(self):
        if not self.reset_on_startup:
            return

        # The boot banner that follows is stripped by the parser
        self.get_logger().info("Resetting MCU via DTR")
        self.ser.dtr = False
        time.sleep(self.reset_pulse_ms / 1000.0)
        self.ser.dtr = True
        time.sleep(self.reset_boot_wait_ms / 1000.0)

    def _reset_session(self):
        with self._parser_lock:
            self.parser.reset()
            self._decoder.reset()

    # =====================================================
    # MCU → ROS
    # =====================================================
    def serial_rx_loop(self):
        while rclpy.ok() and self._running:
            try:
                raw = self.ser.read(self.read_size)
                if not raw:
                    continue

                decoded = self._decoder.decode(raw)
                with self._parser_lock:
                    self.parser.ingest(decoded)

            except Exception as e:
                self.get_logger().warn(f"RX error: {e}", throttle_duration_sec=5.0)
                time.sleep(0.1)

    def _publish_record(self, record: DeviceRecord):
        self._dbg_published += 1
        self._dbg_last_record = record

        msg = String()
        msg.data = encode_record(record)
        self.records_pub.publish(msg)

    # =====================================================
    # HEALTH
    # =====================================================
    def _publish_health(self):
        with self._parser_lock:
            health = self.parser.health()
            stats = self.parser.stats

            msg = DiagnosticArray()
            msg.header.stamp = self.get_clock().now().to_msg()
            msg.status = [health_to_diagnostic(health, stats, self.port)]

        self.diag_pub.publish(msg)

    # =====================================================
    # SESSION CONTROL
    # =====================================================
    def reset_callback(self, request, response):
        self._reset_session()
        response.success = True
        response.message = "parser buffer cleared"
        return response

    def _on_set_parameters(self, params):
        limits = {
            'max_buffer_size': self.max_buffer_size,
            'max_buffer_age_ms': self.max_buffer_age_ms,
            'failure_threshold': self.failure_threshold,
        }

        changed = [p for p in params if p.name in _LIMIT_PARAMS]
        if not changed:
            return SetParametersResult(successful=True)

        for p in changed:
            limits[p.name] = p.value

        try:
            with self._parser_lock:
                self.parser.configure(
                    limits['max_buffer_size'],
                    limits['max_buffer_age_ms'] / 1000.0,
                    limits['failure_threshold'],
                )
        except (TypeError, ValueError) as e:
            return SetParametersResult(successful=False, reason=str(e))

        self.max_buffer_size = limits['max_buffer_size']
        self.max_buffer_age_ms = limits['max_buffer_age_ms']
        self.failure_threshold = limits['failure_threshold']

        self.get_logger().info(
            f"Buffer limits updated: max_size={self.max_buffer_size} "
            f"max_age_ms={self.max_buffer_age_ms} "
            f"failure_threshold={self.failure_threshold}"
        )
        return SetParametersResult(successful=True)

    # =====================================================
    # DEBUG
    # =====================================================
    def _print_debug_panel(self):
        with self._parser_lock:
            health = self.parser.health()
            stats = self.parser.stats

        last = self._dbg_last_record
        last_line = (
            f"{last.serial} te={last.temperature:.2f} ph={last.ph:.2f}"
            if last else "-"
        )
        buffer_line = f"{health.size}/{health.max_size} {health.status.value}"

        panel = f"""
╔══════════════════════════════════════════════════════╗
║      TELEMETRY SERIAL BRIDGE - DEBUG PANEL           ║
╠══════════════════════════════════════════════════════╣
║ RX bytes          : {stats.bytes_received:<33}║
║ Frames extracted  : {stats.frames_extracted:<33}║
║ Frames rejected   : {stats.frames_rejected:<33}║
║ Records published : {self._dbg_published:<33}║
║ Records dropped   : {stats.records_dropped:<33}║
║ Recoveries        : {stats.recoveries:<33}║
║ Emergency trims   : {stats.emergency_trims:<33}║
║ Age cleanups      : {stats.age_cleanups:<33}║
╠══════════════════════════════════════════════════════╣
║ Buffer            : {buffer_line:<33}║
║ Last record       : {last_line:<33}║
╚══════════════════════════════════════════════════════╝
"""
        self.get_logger().info(panel)

    # =====================================================
    # SHUTDOWN
    # =====================================================
    def destroy_node(self):
        self._running = False
        if self.ser and self.ser.is_open:
            self.ser.close()
        self._reset_session()
        super().destroy_node()


def main(args=None):
    logging.basicConfig(
        level=logging.INFO,
        format='[%(levelname)s] [%(name)s]: %(message)s'
    )
    rclpy.init(args=args)
    node = SerialBridgeNode()
    try:
        rclpy.spin(node)
    except KeyboardInterrupt:
        pass
    finally:
        node.destroy_node()
        rclpy.shutdown()
