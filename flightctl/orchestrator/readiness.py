"""
Readiness Gate

Sets up position telemetry and blocks until the vehicle reports all
health checks passing.
"""

import logging
import time
from typing import Optional

from ..link.base import LinkError
from ..mission.models import Position
from .cancel import CancellationToken
from .errors import RateConfigFailed, ReadinessTimedOut, RunCancelled
from .handle import VehicleHandle
from .sink import ReportingSink

logger = logging.getLogger(__name__)


class ReadinessGate:
    """Position telemetry setup + health polling"""

    def __init__(self, sink: ReportingSink,
                 position_rate_hz: float = 1.0,
                 poll_interval_s: float = 1.0,
                 max_wait_s: float = 120.0,
                 cancel: Optional[CancellationToken] = None):
        """
        Args:
            sink: Event receiver
            position_rate_hz: Requested position telemetry rate
            poll_interval_s: Time between health polls
            max_wait_s: Give up after this long (0 waits forever)
            cancel: Cancellation token
        """
        self.sink = sink
        self.position_rate_hz = position_rate_hz
        self.poll_interval_s = poll_interval_s
        self.max_wait_s = max_wait_s
        self.cancel = cancel or CancellationToken()

    def wait_ready(self, handle: VehicleHandle) -> int:
        """
        Block until the vehicle is healthy

        Returns:
            Number of polls that found the vehicle not ready

        Raises:
            RateConfigFailed: Position rate was refused
            ReadinessTimedOut: max_wait_s elapsed
            RunCancelled: Cancelled while waiting
        """
        try:
            handle.set_position_rate(self.position_rate_hz)
        except LinkError as e:
            self.sink.log(f"Failed to connect to system: {e}")
            raise RateConfigFailed(str(e))

        self.sink.log("Setting up Position monitoring")
        handle.subscribe_position(self._relay_position)

        started = time.monotonic()
        polls = 0
        while not handle.health_all_ok():
            if self.cancel.cancelled:
                self.sink.log("Readiness wait cancelled")
                raise RunCancelled("cancelled while waiting for health", stage="readiness")

            waited = time.monotonic() - started
            if self.max_wait_s and waited >= self.max_wait_s:
                self.sink.log(f"Vehicle not ready after {waited:.0f}s")
                raise ReadinessTimedOut(f"health checks not passing after {waited:.1f}s")

            self.sink.log("Waiting for vehicle to become ready")
            polls += 1
            self.cancel.wait(self.poll_interval_s)

        logger.info(f"Vehicle ready after {polls} polls")
        self.sink.log("Vehicle is ready")
        return polls

    def _relay_position(self, position: Position):
        self.sink.position(position.lat, position.lon, position.rel_alt)
