"""
Connection targets

Parses MAVSDK-style connection URIs and maps them onto pymavlink
connection strings. Serial targets can be auto-detected from the USB
devices exposed by pyserial.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import serial.tools.list_ports

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 57600
AUTO_DEVICE = "auto"

# USB vendor IDs of common autopilot boards
AUTOPILOT_USB_VIDS = [
    0x26AC,  # 3D Robotics / PX4
    0x2DAE,  # CubePilot (Hex)
    0x1209,  # ArduPilot (pid.codes)
    0x3162,  # Holybro
    0x0483,  # STMicroelectronics
]

SCHEMES = ("udp", "udpin", "udpout", "tcp", "serial")


@dataclass(frozen=True)
class ConnectionTarget:
    """
    Parsed connection URI

    Supported forms:
        udp://[host]:port        listen for UDP (host defaults to 0.0.0.0)
        udpin://host:port        listen for UDP
        udpout://host:port       send UDP to a remote
        tcp://host:port          TCP client
        serial://device[:baud]   serial port, device may be 'auto'
    """
    uri: str
    scheme: str
    host: str = ""
    port: int = 0
    device: str = ""
    baudrate: int = DEFAULT_BAUDRATE

    @classmethod
    def parse(cls, uri: str) -> 'ConnectionTarget':
        """
        Parse a connection URI

        Raises:
            ValueError: If the URI is empty or malformed
        """
        if not uri or not uri.strip():
            raise ValueError("connection target must not be empty")

        uri = uri.strip()
        scheme, sep, rest = uri.partition("://")
        if not sep:
            raise ValueError(f"missing scheme in '{uri}' (expected e.g. udp://:14540)")

        scheme = scheme.lower()
        if scheme not in SCHEMES:
            raise ValueError(f"unsupported scheme '{scheme}'")

        if scheme == "serial":
            device, baudrate = _split_serial(rest)
            if not device:
                raise ValueError(f"missing serial device in '{uri}'")
            return cls(uri=uri, scheme=scheme, device=device, baudrate=baudrate)

        host, port = _split_host_port(rest, uri)
        if not host:
            if scheme in ("udpout", "tcp"):
                raise ValueError(f"missing host in '{uri}'")
            host = "0.0.0.0"
        return cls(uri=uri, scheme=scheme, host=host, port=port)

    def to_mavutil(self) -> Tuple[str, Dict[str, Any]]:
        """
        Build arguments for pymavlink's mavlink_connection

        Returns:
            Tuple of (device string, extra keyword arguments)

        Raises:
            ValueError: If an auto serial target finds no device
        """
        if self.scheme == "serial":
            device = self.device
            if device == AUTO_DEVICE:
                device = detect_serial_port()
                if device is None:
                    raise ValueError("no autopilot serial device found")
            return device, {"baud": self.baudrate}

        if self.scheme in ("udp", "udpin"):
            return f"udpin:{self.host}:{self.port}", {}
        if self.scheme == "udpout":
            return f"udpout:{self.host}:{self.port}", {}
        return f"tcp:{self.host}:{self.port}", {}


def _split_host_port(rest: str, uri: str) -> Tuple[str, int]:
    host, sep, port_str = rest.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in '{uri}'")
    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"invalid port '{port_str}' in '{uri}'")
    if not (0 < port < 65536):
        raise ValueError(f"port out of range in '{uri}'")
    return host, port


def _split_serial(rest: str) -> Tuple[str, int]:
    device, sep, baud_str = rest.rpartition(":")
    if sep and baud_str.isdigit():
        return device, int(baud_str)
    return rest, DEFAULT_BAUDRATE


def list_autopilot_ports() -> List[str]:
    """List serial devices whose USB vendor matches a known autopilot"""
    ports = []
    for info in serial.tools.list_ports.comports():
        if info.vid in AUTOPILOT_USB_VIDS:
            ports.append(info.device)
    return ports


def detect_serial_port() -> Optional[str]:
    """
    Find the first serial device that looks like an autopilot

    Returns:
        Device path or None
    """
    ports = list_autopilot_ports()
    if not ports:
        logger.warning("No autopilot USB device detected")
        return None

    if len(ports) > 1:
        logger.info(f"Several autopilot devices found {ports}, using {ports[0]}")
    return ports[0]
