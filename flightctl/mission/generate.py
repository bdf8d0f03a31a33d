"""
Formation plan generation

Generates one QGroundControl plan per vehicle so that a group of vehicles
forms a shape (circle, square, line) around a target location.
"""

import json
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

from ..utils.geo import haversine_distance, offset_position

logger = logging.getLogger(__name__)

# MAV_CMD values
CMD_NAV_WAYPOINT = 16
CMD_NAV_RETURN_TO_LAUNCH = 20
CMD_NAV_TAKEOFF = 22

# MAV_FRAME values
FRAME_MISSION = 2
FRAME_GLOBAL_RELATIVE_ALT = 3


@dataclass
class Waypoint:
    """Plan waypoint"""
    lat: float
    lon: float
    alt: float = 0.0       # meters, relative to home
    hold_sec: float = 0.0


class ShapeMission(ABC):
    """
    Base class for formation shapes

    Each generated mission is a list of waypoints whose first entry is the
    vehicle's start location, followed by the shape centre and the
    vehicle's slot in the shape.
    """

    def __init__(self, start_lat: float, start_lon: float,
                 target_lat: float, target_lon: float,
                 target_alt: float, hold_sec: float):
        if target_alt <= 0:
            raise ValueError("target altitude must be positive")
        if hold_sec < 0:
            raise ValueError("hold time cannot be negative")

        self.start = Waypoint(start_lat, start_lon, 0.0, 0.0)
        self.target = Waypoint(target_lat, target_lon, target_alt, 0.0)
        self.hold_sec = hold_sec

    @abstractmethod
    def slot_offsets(self) -> List[tuple]:
        """Return (north, east) offsets in meters, one per vehicle"""
        pass

    def generate_missions(self) -> List[List[Waypoint]]:
        """Generate the waypoint list of every vehicle"""
        missions = []
        for north, east in self.slot_offsets():
            lat, lon = offset_position(self.target.lat, self.target.lon, north, east)
            missions.append([
                self.start,
                self.target,
                Waypoint(lat, lon, self.target.alt, self.hold_sec),
            ])
        return missions

    def generate_plan(self, waypoints: List[Waypoint]) -> Dict[str, Any]:
        """
        Build a QGroundControl plan document

        The first waypoint is the takeoff location; a return to launch
        is appended after the last one.
        """
        takeoff = waypoints[0]
        items = [_takeoff_item(takeoff, self.target.alt)]
        for i, wp in enumerate(waypoints[1:], start=2):
            items.append(_waypoint_item(wp, i))
        items.append(_return_item(len(items) + 1))

        plan = _new_plan(takeoff)
        plan["mission"]["items"] = items
        return plan

    def write_mission_to_disk(self, save_dir) -> List[Path]:
        """
        Write one plan file per vehicle

        Args:
            save_dir: Existing directory for plan_<i>.plan files

        Returns:
            Paths of the written files

        Raises:
            NotADirectoryError: If save_dir is not a directory
        """
        save_dir = Path(save_dir)
        if not save_dir.is_dir():
            raise NotADirectoryError(f"{save_dir} is not a directory")

        paths = []
        for i, mission in enumerate(self.generate_missions()):
            plan_path = save_dir / f"plan_{i}.plan"
            with open(plan_path, "w") as f:
                json.dump(self.generate_plan(mission), f, indent=4)
            slot = mission[-1]
            spacing = haversine_distance(self.target.lat, self.target.lon, slot.lat, slot.lon)
            logger.info(f"Wrote plan {i} to {plan_path} (slot {spacing:.1f} m from target)")
            paths.append(plan_path)

        return paths


class CircleMission(ShapeMission):
    """Place count vehicles evenly on a circle of radius meters"""

    def __init__(self, count: int, radius: float, **kwargs):
        super().__init__(**kwargs)
        if count < 1:
            raise ValueError("circle needs at least one vehicle")
        if radius <= 0:
            raise ValueError("radius must be positive")
        self.count = count
        self.radius = radius

    def slot_offsets(self) -> List[tuple]:
        segment = 2.0 * math.pi / self.count
        return [
            (self.radius * math.sin(segment * i), self.radius * math.cos(segment * i))
            for i in range(self.count)
        ]


class SquareMission(ShapeMission):
    """Place 4 vehicles on the corners of a square with side width meters"""

    def __init__(self, width: float, **kwargs):
        super().__init__(**kwargs)
        if width <= 0:
            raise ValueError("width must be positive")
        self.width = width

    def slot_offsets(self) -> List[tuple]:
        half = self.width / 2.0
        # (east, north) corners, counter-clockwise from north-east
        corners = [(1, 1), (-1, 1), (-1, -1), (1, -1)]
        return [(dn * half, de * half) for de, dn in corners]


class LineMission(ShapeMission):
    """
    Place 3 vehicles on a line of width meters

    angle is in radians, measured from east towards north.
    """

    def __init__(self, width: float, angle: float, **kwargs):
        super().__init__(**kwargs)
        if width <= 0:
            raise ValueError("width must be positive")
        self.width = width
        self.angle = angle

    def slot_offsets(self) -> List[tuple]:
        half = self.width / 2.0
        north = half * math.sin(self.angle)
        east = half * math.cos(self.angle)
        return [(north, east), (-north, -east), (0.0, 0.0)]


def _takeoff_item(location: Waypoint, alt: float) -> Dict[str, Any]:
    return {
        "AMSLAltAboveTerrain": None,
        "Altitude": alt,
        "AltitudeMode": 1,
        "autoContinue": True,
        "command": CMD_NAV_TAKEOFF,
        "doJumpId": 1,
        "frame": FRAME_GLOBAL_RELATIVE_ALT,
        "params": [0, 0, 0, None, location.lat, location.lon, alt],
        "type": "SimpleItem",
    }


def _waypoint_item(location: Waypoint, jump_id: int) -> Dict[str, Any]:
    return {
        "AMSLAltAboveTerrain": None,
        "Altitude": location.alt,
        "AltitudeMode": 1,
        "autoContinue": True,
        "command": CMD_NAV_WAYPOINT,
        "doJumpId": jump_id,
        "frame": FRAME_GLOBAL_RELATIVE_ALT,
        "params": [location.hold_sec, 0, 0, None, location.lat, location.lon, location.alt],
        "type": "SimpleItem",
    }


def _return_item(jump_id: int) -> Dict[str, Any]:
    return {
        "autoContinue": True,
        "command": CMD_NAV_RETURN_TO_LAUNCH,
        "doJumpId": jump_id,
        "frame": FRAME_MISSION,
        "params": [0, 0, 0, 0, 0, 0, 0],
        "type": "SimpleItem",
    }


def _new_plan(home: Waypoint) -> Dict[str, Any]:
    return {
        "fileType": "Plan",
        "geoFence": {"circles": [], "polygons": [], "version": 2},
        "groundStation": "QGroundControl",
        "mission": {
            "cruiseSpeed": 15,
            "firmwareType": 12,
            "globalPlanAltitudeMode": 1,
            "hoverSpeed": 5,
            "items": [],
            "plannedHomePosition": [home.lat, home.lon, home.alt],
            "vehicleType": 2,
            "version": 2,
        },
        "rallyPoints": {"points": [], "version": 2},
        "version": 1,
    }
