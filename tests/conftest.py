"""
Pytest configuration and fixtures
"""

import json
import pytest
import sys
import threading
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from flightctl.config import Config
from flightctl.link.base import LinkError, SystemInfo, VehicleLink
from flightctl.mission.models import MissionProgress, Position
from flightctl.orchestrator.sink import ReportingSink

MAV_AUTOPILOT_PX4 = 12
MAV_AUTOPILOT_INVALID = 8


class FakeLink(VehicleLink):
    """
    Scripted in-memory vehicle link

    Systems in `systems` are announced as soon as an observer registers.
    `health` is consumed one value per poll; the last value repeats.
    Errors are LinkError instances raised by the matching operation.
    """

    def __init__(self, systems=None, health=None, positions=None, progress=None,
                 connect_error=None, rate_error=None, upload_error=None,
                 arm_error=None, start_error=None):
        self.systems = list(systems) if systems is not None else [autopilot_system()]
        self.health = list(health) if health else [True]
        self.positions = list(positions or [])
        self.progress = list(progress or [])
        self.connect_error = connect_error
        self.rate_error = rate_error
        self.upload_error = upload_error
        self.arm_error = arm_error
        self.start_error = start_error

        self.calls = []
        self.target = None
        self.observer = None
        self.observer_history = []
        self.position_cb = None
        self.progress_cb = None
        self.rate_hz = None
        self.uploaded = None
        self.health_polls = 0
        self.close_count = 0
        self.interrupted = threading.Event()
        self._lock = threading.Lock()

    def connect(self, target):
        self.calls.append("connect")
        self.target = target
        if self.connect_error:
            raise self.connect_error

    def subscribe_new_system(self, callback):
        self.calls.append("subscribe_new_system")
        self.observer = callback
        self.observer_history.append(callback)
        if callback is not None:
            for system in self.systems:
                if self.observer is None:
                    break
                callback(system)

    def announce(self, system):
        """Report a new system from another thread"""
        callback = self.observer
        if callback is not None:
            callback(system)

    def has_autopilot(self, system):
        return system.autopilot not in (None, MAV_AUTOPILOT_INVALID)

    def set_position_rate(self, system, rate_hz):
        self.calls.append("set_position_rate")
        self.rate_hz = rate_hz
        if self.rate_error:
            raise self.rate_error

    def subscribe_position(self, system, callback):
        self.calls.append("subscribe_position")
        self.position_cb = callback
        if callback is not None:
            for position in self.positions:
                callback(position)

    def health_all_ok(self, system):
        self.calls.append("health_all_ok")
        with self._lock:
            self.health_polls += 1
            if len(self.health) > 1:
                return self.health.pop(0)
            return self.health[0]

    def arm(self, system):
        self.calls.append("arm")
        if self.arm_error:
            raise self.arm_error

    def upload_mission(self, system, items):
        self.calls.append("upload_mission")
        self.uploaded = list(items)
        if self.upload_error:
            raise self.upload_error

    def start_mission(self, system):
        self.calls.append("start_mission")
        if self.start_error:
            raise self.start_error
        for current, total in self.progress:
            self.emit_progress(current, total)

    def subscribe_mission_progress(self, system, callback):
        self.calls.append("subscribe_mission_progress")
        self.progress_cb = callback

    def emit_progress(self, current, total):
        if self.progress_cb is not None:
            self.progress_cb(MissionProgress.clamped(current, total))

    def close(self):
        self.calls.append("close")
        self.close_count += 1

    def interrupt(self):
        self.calls.append("interrupt")
        self.interrupted.set()


class RecordingSink(ReportingSink):
    """Sink keeping every event in arrival order"""

    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def _add(self, kind, *values):
        with self._lock:
            self.events.append((kind,) + values)

    def log(self, message):
        self._add("log", message)

    def position(self, lat, lon, alt):
        self._add("position", lat, lon, alt)

    def progress(self, current, total):
        self._add("progress", current, total)

    def complete(self):
        self._add("complete")

    def of(self, kind):
        with self._lock:
            return [e[1:] for e in self.events if e[0] == kind]

    @property
    def logs(self):
        return [e[0] for e in self.of("log")]


def autopilot_system(system_id=1):
    return SystemInfo(system_id=system_id, component_id=1, autopilot=MAV_AUTOPILOT_PX4, vehicle_type=2)


def gcs_system(system_id=255):
    return SystemInfo(system_id=system_id, component_id=190, autopilot=MAV_AUTOPILOT_INVALID, vehicle_type=6)


def simple_item(command, lat=0.0, lon=0.0, alt=0.0, frame=3, params=None):
    p = params or [0, 0, 0, None]
    return {
        "type": "SimpleItem",
        "autoContinue": True,
        "command": command,
        "frame": frame,
        "doJumpId": 1,
        "params": list(p) + [lat, lon, alt],
    }


def plan_document(items, home=(47.3977, 8.5456, 488.0)):
    return {
        "fileType": "Plan",
        "version": 1,
        "groundStation": "QGroundControl",
        "geoFence": {"circles": [], "polygons": [], "version": 2},
        "rallyPoints": {"points": [], "version": 2},
        "mission": {
            "version": 2,
            "firmwareType": 12,
            "vehicleType": 2,
            "items": items,
            "plannedHomePosition": list(home),
        },
    }


@pytest.fixture
def fake_link():
    """Healthy vehicle with one autopilot system"""
    return FakeLink()


@pytest.fixture
def sink():
    """Recording sink"""
    return RecordingSink()


@pytest.fixture
def fast_config():
    """Configuration with short readiness polls"""
    config = Config()
    config.readiness.poll_interval_s = 0.01
    config.readiness.max_wait_s = 2.0
    return config


@pytest.fixture
def write_plan(tmp_path):
    """Write a plan document to tmp_path and return its path"""
    def _write(document, name="mission.plan"):
        path = tmp_path / name
        path.write_text(json.dumps(document))
        return path
    return _write


@pytest.fixture
def three_item_plan(write_plan):
    """Takeoff, waypoint, return to launch"""
    return write_plan(plan_document([
        simple_item(22, 47.3977, 8.5456, 10.0),
        simple_item(16, 47.3980, 8.5460, 10.0),
        simple_item(20, frame=2, params=[0, 0, 0, 0]),
    ]))


@pytest.fixture
def empty_plan(write_plan):
    return write_plan(plan_document([]), name="empty.plan")


@pytest.fixture
def sample_positions():
    return [
        Position(47.3977, 8.5456, 0.0),
        Position(47.3977, 8.5456, 2.5),
    ]
