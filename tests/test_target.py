"""
Tests for connection target parsing
"""

from types import SimpleNamespace
from unittest.mock import patch

import pytest

from flightctl.link.target import ConnectionTarget, detect_serial_port, list_autopilot_ports


class TestConnectionTarget:
    """Test URI parsing"""

    def test_udp_listen_default_host(self):
        target = ConnectionTarget.parse("udp://:14540")

        assert target.scheme == "udp"
        assert target.host == "0.0.0.0"
        assert target.port == 14540
        assert target.to_mavutil() == ("udpin:0.0.0.0:14540", {})

    def test_udpout(self):
        target = ConnectionTarget.parse("udpout://192.168.1.10:14550")

        assert target.to_mavutil() == ("udpout:192.168.1.10:14550", {})

    def test_tcp(self):
        assert ConnectionTarget.parse("tcp://127.0.0.1:5760").to_mavutil() == ("tcp:127.0.0.1:5760", {})

    def test_serial_with_baud(self):
        target = ConnectionTarget.parse("serial:///dev/ttyACM0:115200")

        assert target.device == "/dev/ttyACM0"
        assert target.baudrate == 115200
        assert target.to_mavutil() == ("/dev/ttyACM0", {"baud": 115200})

    def test_serial_default_baud(self):
        target = ConnectionTarget.parse("serial:///dev/ttyUSB0")

        assert target.baudrate == 57600

    def test_scheme_is_case_insensitive(self):
        assert ConnectionTarget.parse("UDP://:14540").scheme == "udp"

    @pytest.mark.parametrize("uri", [
        "",
        "   ",
        ":14540",
        "http://localhost:80",
        "udp://:port",
        "udp://:70000",
        "udp://localhost",
        "tcp://:5760",
        "udpout://:14550",
        "serial://",
    ])
    def test_invalid(self, uri):
        with pytest.raises(ValueError):
            ConnectionTarget.parse(uri)


class TestSerialDetection:
    """Test autopilot USB detection"""

    PORTS = [
        SimpleNamespace(device="/dev/ttyUSB0", vid=0x0403),
        SimpleNamespace(device="/dev/ttyACM0", vid=0x26AC),
        SimpleNamespace(device="/dev/ttyACM1", vid=0x2DAE),
    ]

    def test_lists_known_vendors(self):
        with patch("serial.tools.list_ports.comports", return_value=self.PORTS):
            assert list_autopilot_ports() == ["/dev/ttyACM0", "/dev/ttyACM1"]

    def test_detect_first(self):
        with patch("serial.tools.list_ports.comports", return_value=self.PORTS):
            assert detect_serial_port() == "/dev/ttyACM0"

    def test_detect_none(self):
        with patch("serial.tools.list_ports.comports", return_value=[]):
            assert detect_serial_port() is None

    def test_auto_target(self):
        target = ConnectionTarget.parse("serial://auto:921600")

        with patch("serial.tools.list_ports.comports", return_value=self.PORTS):
            assert target.to_mavutil() == ("/dev/ttyACM0", {"baud": 921600})

    def test_auto_target_without_device(self):
        target = ConnectionTarget.parse("serial://auto")

        with patch("serial.tools.list_ports.comports", return_value=[]):
            with pytest.raises(ValueError):
                target.to_mavutil()
