"""
Vehicle link module

Abstract vehicle link contract, connection targets and the pymavlink
implementation.
"""

from .base import LinkError, SystemInfo, VehicleLink
from .target import ConnectionTarget, detect_serial_port, list_autopilot_ports
from .mavlink_link import MavlinkLink

__all__ = [
    'LinkError',
    'SystemInfo',
    'VehicleLink',
    'ConnectionTarget',
    'detect_serial_port',
    'list_autopilot_ports',
    'MavlinkLink',
]
