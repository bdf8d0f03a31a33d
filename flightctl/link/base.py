"""
Vehicle link contract

Abstract capability interface the orchestrator uses to talk to a vehicle.
Callbacks registered here are invoked from the link's own I/O thread.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from ..mission.models import MissionItem, MissionProgress, Position


class LinkError(Exception):
    """
    Raised when a link operation does not succeed

    Attributes:
        result: Short result code (e.g. "TIMEOUT", "DENIED")
        detail: Human readable detail
    """

    def __init__(self, result: str, detail: str = ""):
        self.result = result
        self.detail = detail
        super().__init__(f"{result}: {detail}" if detail else result)


@dataclass(frozen=True)
class SystemInfo:
    """A remote MAVLink system seen on the link"""
    system_id: int
    component_id: int = 0
    autopilot: Optional[int] = None     # MAV_AUTOPILOT of the reporting component
    vehicle_type: Optional[int] = None  # MAV_TYPE


NewSystemCallback = Callable[[SystemInfo], None]
PositionCallback = Callable[[Position], None]
ProgressCallback = Callable[[MissionProgress], None]


class VehicleLink(ABC):
    """
    Connection to one or more vehicles

    Operations that fail raise LinkError. Passing None to a subscribe_*
    method clears the corresponding observer.
    """

    @abstractmethod
    def connect(self, target: str) -> None:
        """Open the connection described by a target URI"""
        pass

    @abstractmethod
    def subscribe_new_system(self, callback: Optional[NewSystemCallback]) -> None:
        """Set (or clear) the single new-system observer"""
        pass

    @abstractmethod
    def has_autopilot(self, system: SystemInfo) -> bool:
        """Check if a system advertises an autopilot"""
        pass

    @abstractmethod
    def set_position_rate(self, system: SystemInfo, rate_hz: float) -> None:
        """Set the position telemetry rate"""
        pass

    @abstractmethod
    def subscribe_position(self, system: SystemInfo,
                           callback: Optional[PositionCallback]) -> None:
        """Set (or clear) the position observer of a system"""
        pass

    @abstractmethod
    def health_all_ok(self, system: SystemInfo) -> bool:
        """Check if all health checks of a system pass"""
        pass

    @abstractmethod
    def arm(self, system: SystemInfo) -> None:
        """Arm the vehicle"""
        pass

    @abstractmethod
    def upload_mission(self, system: SystemInfo, items: Sequence[MissionItem]) -> None:
        """Upload the complete mission item sequence"""
        pass

    @abstractmethod
    def start_mission(self, system: SystemInfo) -> None:
        """Start the uploaded mission"""
        pass

    @abstractmethod
    def subscribe_mission_progress(self, system: SystemInfo,
                                   callback: Optional[ProgressCallback]) -> None:
        """Set (or clear) the mission progress observer of a system"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the connection and stop delivering callbacks"""
        pass

    def interrupt(self) -> None:
        """
        Abort pending command and upload waits

        Interrupted operations raise LinkError("CANCELLED"). Safe to call
        from any thread. Links without blocking waits need not override it.
        """
        pass
