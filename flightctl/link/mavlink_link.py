"""
MAVLink vehicle link

VehicleLink implementation on top of pymavlink. A background reader thread
tracks the systems seen on the connection, relays telemetry to observers
and routes command/mission replies to the requests waiting for them.
"""

import logging
import queue
import struct
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from pymavlink import mavutil

from ..mission.models import MISSION_TYPE_MISSION, MissionItem, MissionProgress, Position
from .base import (
    LinkError,
    NewSystemCallback,
    PositionCallback,
    ProgressCallback,
    SystemInfo,
    VehicleLink,
)
from .target import ConnectionTarget

logger = logging.getLogger(__name__)

mavlink = mavutil.mavlink

# MISSION_CURRENT.total when the vehicle does not know the count
UNKNOWN_TOTAL = 0xFFFF

# GCS heartbeat period
HEARTBEAT_INTERVAL_S = 1.0

# Reply waits wake up this often to check for interruption
WAIT_SLICE_S = 0.1


def _enum_name(enum: str, value: int, prefix: str) -> str:
    entry = mavlink.enums.get(enum, {}).get(value)
    if entry is None:
        return f"{enum}_{value}"
    name = entry.name
    return name[len(prefix):] if name.startswith(prefix) else name


class _Subscription:
    """Queue of incoming messages of some types from one system"""

    def __init__(self, types: Iterable[str], system_id: int):
        self.types = frozenset(types)
        self.system_id = system_id
        self.queue: "queue.Queue[Any]" = queue.Queue()

    def offer(self, msg) -> None:
        if msg.get_type() in self.types and msg.get_srcSystem() == self.system_id:
            self.queue.put(msg)


@dataclass
class _SystemState:
    """Per-system state maintained by the reader thread"""
    info: SystemInfo
    has_autopilot: bool = False
    sensors_ok: Optional[bool] = None
    gps_fix_type: int = 0
    mission_count: int = 0
    last_progress: Optional[MissionProgress] = None
    position_cb: Optional[PositionCallback] = None
    progress_cb: Optional[ProgressCallback] = None


class MavlinkLink(VehicleLink):
    """
    pymavlink based vehicle link

    Implements:
    - GCS HEARTBEAT at 1Hz, so the vehicle learns our address
    - Discovery from HEARTBEAT (one system per MAVLink system id)
    - COMMAND_LONG with COMMAND_ACK and retries
    - Mission upload (MISSION_COUNT / MISSION_REQUEST_INT / MISSION_ITEM_INT / MISSION_ACK)
    - GLOBAL_POSITION_INT, SYS_STATUS, GPS_RAW_INT, MISSION_CURRENT,
      MISSION_ITEM_REACHED telemetry
    """

    def __init__(self,
                 source_system: int = 245,
                 source_component: int = 190,
                 command_timeout_s: float = 1.0,
                 command_retries: int = 3,
                 item_timeout_s: float = 1.5,
                 upload_timeout_s: float = 30.0,
                 connection_factory: Optional[Callable[..., Any]] = None):
        """
        Initialize link

        Args:
            source_system: Our MAVLink system id
            source_component: Our MAVLink component id
            command_timeout_s: Time to wait for each COMMAND_ACK
            command_retries: Send attempts per command / upload step
            item_timeout_s: Time to wait for each mission request
            upload_timeout_s: Overall mission upload limit
            connection_factory: Replacement for mavutil.mavlink_connection
        """
        self.source_system = source_system
        self.source_component = source_component
        self.command_timeout_s = command_timeout_s
        self.command_retries = max(1, command_retries)
        self.item_timeout_s = item_timeout_s
        self.upload_timeout_s = upload_timeout_s
        self._connection_factory = connection_factory or mavutil.mavlink_connection

        self._conn = None
        self._target: Optional[ConnectionTarget] = None

        # pymavlink connections are not thread-safe for sending
        self._send_lock = threading.Lock()
        self._lock = threading.RLock()

        self._systems: Dict[int, _SystemState] = {}
        self._new_system_cb: Optional[NewSystemCallback] = None
        self._subscriptions: List[_Subscription] = []

        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._interrupted = threading.Event()

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    # ==================== Connection ====================

    def connect(self, target: str) -> None:
        if self._conn is not None:
            raise LinkError("CONNECTION_ERROR", "link is already connected")

        try:
            parsed = ConnectionTarget.parse(target)
            device, kwargs = parsed.to_mavutil()
        except ValueError as e:
            raise LinkError("CONNECTION_URL_INVALID", str(e))

        try:
            self._conn = self._connection_factory(
                device,
                source_system=self.source_system,
                source_component=self.source_component,
                **kwargs
            )
        except Exception as e:
            raise LinkError("CONNECTION_ERROR", f"{parsed.uri}: {e}")

        self._target = parsed
        self._running = True
        self._thread = threading.Thread(target=self._run_loop, name="mavlink-reader", daemon=True)
        self._thread.start()

        logger.info(f"MAVLink link open on {device}")

    def interrupt(self) -> None:
        if not self._interrupted.is_set():
            self._interrupted.set()
            logger.info("MAVLink link interrupted")

    def close(self) -> None:
        self._running = False
        self._interrupted.set()

        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        self._thread = None

        with self._lock:
            self._new_system_cb = None
            for state in self._systems.values():
                state.position_cb = None
                state.progress_cb = None

        if self._conn is not None:
            try:
                self._conn.close()
            except OSError as e:
                logger.debug(f"Error closing MAVLink connection: {e}")
            self._conn = None
            logger.info("MAVLink link closed")

    def _run_loop(self):
        """Reader loop"""
        last_heartbeat: Optional[float] = None

        while self._running:
            conn = self._conn
            if conn is None:
                break

            # Send heartbeat at 1Hz
            current_time = time.monotonic()
            if last_heartbeat is None or current_time - last_heartbeat >= HEARTBEAT_INTERVAL_S:
                self._send_heartbeat()
                last_heartbeat = current_time

            try:
                msg = conn.recv_match(blocking=True, timeout=0.1)
            except Exception as e:
                if not self._running:
                    break
                logger.error(f"MAVLink read error: {e}")
                time.sleep(0.1)
                continue

            if msg is not None:
                self._handle_message(msg)

    # ==================== Incoming messages ====================

    def _handle_message(self, msg):
        """Dispatch one incoming message"""
        msg_type = msg.get_type()
        if msg_type == "BAD_DATA":
            return

        with self._lock:
            subscriptions = list(self._subscriptions)
        for sub in subscriptions:
            sub.offer(msg)

        if msg_type == "HEARTBEAT":
            self._handle_heartbeat(msg)
        elif msg_type == "GLOBAL_POSITION_INT":
            self._handle_position(msg)
        elif msg_type == "SYS_STATUS":
            self._handle_sys_status(msg)
        elif msg_type == "GPS_RAW_INT":
            self._handle_gps_raw(msg)
        elif msg_type == "MISSION_CURRENT":
            self._handle_mission_current(msg)
        elif msg_type == "MISSION_ITEM_REACHED":
            self._handle_item_reached(msg)

    def _handle_heartbeat(self, msg):
        system_id = msg.get_srcSystem()
        is_autopilot = msg.autopilot != mavlink.MAV_AUTOPILOT_INVALID
        info = SystemInfo(
            system_id=system_id,
            component_id=msg.get_srcComponent(),
            autopilot=msg.autopilot,
            vehicle_type=msg.type,
        )

        notify = False
        with self._lock:
            state = self._systems.get(system_id)
            if state is None:
                state = _SystemState(info=info, has_autopilot=is_autopilot)
                self._systems[system_id] = state
                notify = True
                logger.info(f"Discovered system {system_id} (autopilot: {is_autopilot})")
            elif is_autopilot and not state.has_autopilot:
                # Autopilot component of a known system showed up
                state.info = info
                state.has_autopilot = True
                notify = True
            callback = self._new_system_cb
            reported = state.info

        if notify and callback is not None:
            self._invoke(callback, reported)

    def _handle_position(self, msg):
        with self._lock:
            state = self._systems.get(msg.get_srcSystem())
            callback = state.position_cb if state else None

        if callback is not None:
            self._invoke(callback, Position(
                lat=msg.lat / 1e7,
                lon=msg.lon / 1e7,
                rel_alt=msg.relative_alt / 1000.0,
            ))

    def _handle_sys_status(self, msg):
        required = msg.onboard_control_sensors_present & msg.onboard_control_sensors_enabled
        healthy = (msg.onboard_control_sensors_health & required) == required
        with self._lock:
            state = self._systems.get(msg.get_srcSystem())
            if state is not None:
                state.sensors_ok = healthy

    def _handle_gps_raw(self, msg):
        with self._lock:
            state = self._systems.get(msg.get_srcSystem())
            if state is not None:
                state.gps_fix_type = msg.fix_type

    def _handle_mission_current(self, msg):
        with self._lock:
            state = self._systems.get(msg.get_srcSystem())
            if state is None:
                return
            total = state.mission_count
            if total == 0:
                reported_total = getattr(msg, "total", 0)
                if not (0 < reported_total < UNKNOWN_TOTAL):
                    return
                total = reported_total
        self._emit_progress(state, MissionProgress.clamped(msg.seq, total))

    def _handle_item_reached(self, msg):
        with self._lock:
            state = self._systems.get(msg.get_srcSystem())
            if state is None or state.mission_count == 0:
                return
            total = state.mission_count
        if msg.seq >= total - 1:
            self._emit_progress(state, MissionProgress(current=total, total=total))

    def _emit_progress(self, state: _SystemState, progress: MissionProgress):
        """Report progress to the observer when it changed"""
        with self._lock:
            if progress == state.last_progress:
                return
            state.last_progress = progress
            callback = state.progress_cb

        if callback is not None:
            self._invoke(callback, progress)

    @staticmethod
    def _invoke(callback: Callable, *args):
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Error in link callback {callback!r}: {e}")

    # ==================== Discovery ====================

    def subscribe_new_system(self, callback: Optional[NewSystemCallback]) -> None:
        with self._lock:
            self._new_system_cb = callback
            known = [s.info for s in self._systems.values()] if callback else []

        # Replay systems that were seen before the observer was registered
        for info in known:
            if self._new_system_cb is not callback:
                break
            self._invoke(callback, info)

    def has_autopilot(self, system: SystemInfo) -> bool:
        with self._lock:
            state = self._systems.get(system.system_id)
            if state is not None:
                return state.has_autopilot
        return system.autopilot not in (None, mavlink.MAV_AUTOPILOT_INVALID)

    def _require(self, system: SystemInfo) -> _SystemState:
        with self._lock:
            state = self._systems.get(system.system_id)
        if state is None:
            raise LinkError("NO_SYSTEM", f"system {system.system_id} not discovered")
        return state

    # ==================== Telemetry ====================

    def set_position_rate(self, system: SystemInfo, rate_hz: float) -> None:
        if rate_hz <= 0:
            raise ValueError("position rate must be positive")

        self._require(system)
        interval_us = int(1e6 / rate_hz)
        self._command(system, mavlink.MAV_CMD_SET_MESSAGE_INTERVAL,
                      mavlink.MAVLINK_MSG_ID_GLOBAL_POSITION_INT, interval_us)

    def subscribe_position(self, system: SystemInfo,
                           callback: Optional[PositionCallback]) -> None:
        state = self._require(system)
        with self._lock:
            state.position_cb = callback

    def health_all_ok(self, system: SystemInfo) -> bool:
        state = self._require(system)
        with self._lock:
            return state.sensors_ok is True and state.gps_fix_type >= 3

    # ==================== Actions ====================

    def arm(self, system: SystemInfo) -> None:
        self._require(system)
        self._command(system, mavlink.MAV_CMD_COMPONENT_ARM_DISARM, 1)

    def start_mission(self, system: SystemInfo) -> None:
        self._require(system)
        self._command(system, mavlink.MAV_CMD_MISSION_START, 0, 0)

    def subscribe_mission_progress(self, system: SystemInfo,
                                   callback: Optional[ProgressCallback]) -> None:
        state = self._require(system)
        with self._lock:
            state.progress_cb = callback

    def _command(self, system: SystemInfo, command: int, *params: float) -> None:
        """
        Send COMMAND_LONG and wait for its acknowledgement

        Raises:
            LinkError: If the command is rejected or never acknowledged
        """
        values = [float(p) for p in params] + [0.0] * (7 - len(params))
        sub = self._open_subscription(["COMMAND_ACK"], system.system_id)

        try:
            for attempt in range(self.command_retries):
                self._send(lambda mav: mav.command_long_send(
                    system.system_id, self._target_component(system),
                    command, attempt, *values))

                deadline = time.monotonic() + self.command_timeout_s
                while True:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    try:
                        ack = self._wait_reply(sub, remaining)
                    except queue.Empty:
                        break

                    if ack.command != command:
                        continue
                    if ack.result == mavlink.MAV_RESULT_IN_PROGRESS:
                        deadline = time.monotonic() + self.command_timeout_s
                        continue
                    if ack.result == mavlink.MAV_RESULT_ACCEPTED:
                        return
                    raise LinkError(
                        _enum_name("MAV_RESULT", ack.result, "MAV_RESULT_"),
                        f"command {command} rejected by system {system.system_id}",
                    )

                logger.debug(f"No ack for command {command} (attempt {attempt + 1})")

            raise LinkError("TIMEOUT", f"no acknowledgement for command {command}")
        finally:
            self._close_subscription(sub)

    # ==================== Mission upload ====================

    def upload_mission(self, system: SystemInfo, items: Sequence[MissionItem]) -> None:
        items = list(items)
        if not items:
            raise LinkError("NO_MISSION_AVAILABLE", "mission is empty")

        state = self._require(system)
        count = len(items)
        target_component = self._target_component(system)

        def send_count(mav):
            mav.mission_count_send(system.system_id, target_component,
                                   count, MISSION_TYPE_MISSION)

        sub = self._open_subscription(
            ["MISSION_REQUEST", "MISSION_REQUEST_INT", "MISSION_ACK"], system.system_id)

        try:
            logger.info(f"Uploading {count} mission items to system {system.system_id}")
            self._send(send_count)
            last_send = send_count
            highest_sent = -1
            attempts = 0
            deadline = time.monotonic() + self.upload_timeout_s

            while True:
                if time.monotonic() > deadline:
                    raise LinkError("TIMEOUT", "mission upload timed out")

                try:
                    msg = self._wait_reply(sub, self.item_timeout_s)
                except queue.Empty:
                    attempts += 1
                    if attempts >= self.command_retries:
                        raise LinkError("TIMEOUT", "vehicle stopped requesting mission items")
                    self._send(last_send)
                    continue

                if getattr(msg, "mission_type", MISSION_TYPE_MISSION) != MISSION_TYPE_MISSION:
                    continue
                attempts = 0

                if msg.get_type() == "MISSION_ACK":
                    if msg.type != mavlink.MAV_MISSION_ACCEPTED:
                        raise LinkError(
                            _enum_name("MAV_MISSION_RESULT", msg.type, "MAV_MISSION_"),
                            "vehicle rejected mission",
                        )
                    if highest_sent != count - 1:
                        raise LinkError("PROTOCOL_ERROR",
                                        f"mission accepted after {highest_sent + 1}/{count} items")
                    break

                seq = msg.seq
                if not (0 <= seq < count):
                    raise LinkError("PROTOCOL_ERROR", f"vehicle requested invalid item {seq}")

                item = items[seq]
                last_send = self._item_sender(system, target_component, item)
                self._send(last_send)
                highest_sent = max(highest_sent, seq)
        finally:
            self._close_subscription(sub)

        with self._lock:
            state.mission_count = count
            state.last_progress = None

        logger.info(f"Mission of {count} items accepted by system {system.system_id}")

    @staticmethod
    def _item_sender(system: SystemInfo, target_component: int, item: MissionItem):
        def send_item(mav):
            mav.mission_item_int_send(
                system.system_id, target_component,
                item.seq, item.frame, item.command,
                item.current, item.autocontinue,
                item.param1, item.param2, item.param3, item.param4,
                item.x, item.y, item.z,
                item.mission_type,
            )
        return send_item

    # ==================== Helpers ====================

    @staticmethod
    def _target_component(system: SystemInfo) -> int:
        return system.component_id or mavlink.MAV_COMP_ID_AUTOPILOT1

    def _send(self, send: Callable[[Any], None]) -> None:
        with self._send_lock:
            if self._conn is None:
                raise LinkError("CONNECTION_ERROR", "link is not connected")
            try:
                send(self._conn.mav)
            except OSError as e:
                raise LinkError("CONNECTION_ERROR", f"send failed: {e}")
            except (struct.error, OverflowError) as e:
                # Field value does not fit its MAVLink type
                raise LinkError("ENCODING_ERROR", f"cannot encode message: {e}")

    def _send_heartbeat(self):
        """Send GCS HEARTBEAT"""
        try:
            self._send(lambda mav: mav.heartbeat_send(
                mavlink.MAV_TYPE_GCS, mavlink.MAV_AUTOPILOT_INVALID,
                0, 0, mavlink.MAV_STATE_ACTIVE))
        except LinkError as e:
            logger.debug(f"Failed to send heartbeat: {e}")

    def _wait_reply(self, sub: _Subscription, timeout: float):
        """
        Next message of a subscription

        Raises:
            queue.Empty: Nothing arrived within timeout
            LinkError: The link was interrupted or closed
        """
        deadline = time.monotonic() + timeout
        while True:
            if self._interrupted.is_set():
                raise LinkError("CANCELLED", "link interrupted")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise queue.Empty
            try:
                return sub.queue.get(timeout=min(remaining, WAIT_SLICE_S))
            except queue.Empty:
                continue

    def _open_subscription(self, types: Iterable[str], system_id: int) -> _Subscription:
        sub = _Subscription(types, system_id)
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def _close_subscription(self, sub: _Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)
