"""
Discovery Coordinator

Opens the link and waits, for a bounded time, for the first remote system
that advertises an autopilot.
"""

import logging
import threading
from typing import List, Optional

from ..link.base import LinkError, SystemInfo, VehicleLink
from .cancel import CancellationToken
from .errors import ConnectionFailed, DiscoveryTimedOut, RunCancelled
from .handle import VehicleHandle
from .sink import ReportingSink

logger = logging.getLogger(__name__)

DEFAULT_DISCOVERY_TIMEOUT = 3.0


class DiscoveryCoordinator:
    """
    Turns the link's new-system events into a single VehicleHandle

    The observer registered on the link only wakes the waiting thread;
    it is cleared as soon as a system is accepted, and on timeout or
    cancellation.
    """

    def __init__(self, link: VehicleLink, sink: ReportingSink,
                 timeout: float = DEFAULT_DISCOVERY_TIMEOUT,
                 cancel: Optional[CancellationToken] = None):
        self.link = link
        self.sink = sink
        self.timeout = timeout
        self.cancel = cancel or CancellationToken()

    def discover(self, target: str) -> VehicleHandle:
        """
        Connect and wait for an autopilot

        Args:
            target: Connection URI

        Returns:
            Handle for the accepted system

        Raises:
            ValueError: Empty target or non-positive timeout
            ConnectionFailed: The link could not be opened
            DiscoveryTimedOut: No autopilot within the timeout
            RunCancelled: Cancelled while waiting
        """
        if not target or not target.strip():
            raise ValueError("connection target must not be empty")
        if self.timeout is None or self.timeout <= 0:
            raise ValueError("discovery timeout must be positive")

        if self.cancel.cancelled:
            raise RunCancelled("cancelled before connecting", stage="discovery")

        try:
            self.link.connect(target)
        except LinkError as e:
            self.sink.log(f"Connection failed: {e}")
            raise ConnectionFailed(str(e))

        found = threading.Event()
        lock = threading.Lock()
        accepted: List[SystemInfo] = []
        closed = [False]

        def on_new_system(system: SystemInfo):
            if not self.link.has_autopilot(system):
                logger.debug(f"Ignoring system {system.system_id} without autopilot")
                return
            with lock:
                if accepted or closed[0]:
                    return
                accepted.append(system)
            self.link.subscribe_new_system(None)
            found.set()

        self.sink.log("Waiting to discover system...")
        self.link.subscribe_new_system(on_new_system)

        unregister = self.cancel.register(found.set)
        try:
            found.wait(self.timeout)
        finally:
            unregister()

        with lock:
            closed[0] = True
            system = accepted[0] if accepted else None

        if system is None:
            self.link.subscribe_new_system(None)
            if self.cancel.cancelled:
                self.sink.log("Discovery cancelled")
                raise RunCancelled("cancelled while waiting for a system", stage="discovery")
            # Deliberately not reported on the sink
            logger.error("No autopilot found.")
            raise DiscoveryTimedOut(f"no autopilot within {self.timeout:g}s")

        self.sink.log("Discovered autopilot")
        logger.info(f"Accepted system {system.system_id}")
        return VehicleHandle(self.link, system)
