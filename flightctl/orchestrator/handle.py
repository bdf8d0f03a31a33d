"""
Vehicle handle

Owned resource for one discovered vehicle: the open link and the system
accepted on it.
"""

import logging
from typing import Optional, Sequence

from ..link.base import (
    PositionCallback,
    ProgressCallback,
    SystemInfo,
    VehicleLink,
)
from ..mission.models import MissionItem

logger = logging.getLogger(__name__)


class VehicleHandle:
    """
    Link + accepted system

    Delegates vehicle operations to the link for the bound system.
    release() closes the link; it is safe to call more than once.
    """

    def __init__(self, link: VehicleLink, system: SystemInfo):
        self.link = link
        self.system = system
        self._released = False

    @property
    def system_id(self) -> int:
        return self.system.system_id

    @property
    def released(self) -> bool:
        return self._released

    def set_position_rate(self, rate_hz: float):
        self.link.set_position_rate(self.system, rate_hz)

    def subscribe_position(self, callback: Optional[PositionCallback]):
        self.link.subscribe_position(self.system, callback)

    def health_all_ok(self) -> bool:
        return self.link.health_all_ok(self.system)

    def upload_mission(self, items: Sequence[MissionItem]):
        self.link.upload_mission(self.system, items)

    def arm(self):
        self.link.arm(self.system)

    def subscribe_mission_progress(self, callback: Optional[ProgressCallback]):
        self.link.subscribe_mission_progress(self.system, callback)

    def start_mission(self):
        self.link.start_mission(self.system)

    def release(self):
        """Close the underlying link"""
        if self._released:
            return
        self._released = True
        self.link.close()
        logger.debug(f"Released handle for system {self.system_id}")

    def __enter__(self) -> 'VehicleHandle':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False

    def __repr__(self) -> str:
        return f"VehicleHandle(system_id={self.system_id}, released={self._released})"
