"""
Mission models

Raw MAVLink mission items and the telemetry records exchanged with a vehicle.
"""

import math
from dataclasses import dataclass, field
from typing import Iterator, List, Optional


# MAV_FRAME values whose x/y carry latitude/longitude
GLOBAL_FRAMES = frozenset({
    0,   # MAV_FRAME_GLOBAL
    3,   # MAV_FRAME_GLOBAL_RELATIVE_ALT
    5,   # MAV_FRAME_GLOBAL_INT
    6,   # MAV_FRAME_GLOBAL_RELATIVE_ALT_INT
    10,  # MAV_FRAME_GLOBAL_TERRAIN_ALT
    11,  # MAV_FRAME_GLOBAL_TERRAIN_ALT_INT
})

MISSION_TYPE_MISSION = 0

# MISSION_ITEM_INT x/y field bounds
INT32_MIN = -2 ** 31
INT32_MAX = 2 ** 31 - 1


@dataclass(frozen=True)
class MissionItem:
    """
    One raw mission item, as sent in MISSION_ITEM_INT

    For global frames x/y are latitude/longitude in degE7.
    """
    seq: int
    frame: int
    command: int
    current: int = 0
    autocontinue: int = 1
    param1: float = 0.0
    param2: float = 0.0
    param3: float = 0.0
    param4: float = 0.0
    x: int = 0
    y: int = 0
    z: float = 0.0
    mission_type: int = MISSION_TYPE_MISSION

    @property
    def is_global(self) -> bool:
        return self.frame in GLOBAL_FRAMES

    @property
    def lat(self) -> Optional[float]:
        """Latitude in degrees, None for non-global frames"""
        return self.x / 1e7 if self.is_global else None

    @property
    def lon(self) -> Optional[float]:
        """Longitude in degrees, None for non-global frames"""
        return self.y / 1e7 if self.is_global else None

    @classmethod
    def from_params(cls, seq: int, frame: int, command: int,
                    params: List[float], autocontinue: bool = True,
                    current: bool = False) -> 'MissionItem':
        """
        Build an item from the 7-element parameter list used by plan files

        Args:
            seq: Sequence number
            frame: MAV_FRAME value
            command: MAV_CMD value
            params: param1..param7 (x, y, z are params 5-7)
            autocontinue: Continue to next item automatically
            current: Mark as the current item

        Returns:
            MissionItem instance

        Raises:
            ValueError: If params does not hold 7 values, a param is
                infinite, or x/y do not fit the item's frame
        """
        if len(params) != 7:
            raise ValueError(f"expected 7 params, got {len(params)}")

        # NaN marks an unset param
        p = [float("nan") if v is None else float(v) for v in params]
        for i, value in enumerate(p, start=1):
            if math.isinf(value):
                raise ValueError(f"param{i} is not finite")

        if frame in GLOBAL_FRAMES:
            _check_range("latitude", p[4], 90.0)
            _check_range("longitude", p[5], 180.0)
            x = _to_deg_e7(p[4])
            y = _to_deg_e7(p[5])
        else:
            x = 0 if math.isnan(p[4]) else int(p[4])
            y = 0 if math.isnan(p[5]) else int(p[5])
            if not (INT32_MIN <= x <= INT32_MAX and INT32_MIN <= y <= INT32_MAX):
                raise ValueError(f"x/y out of range: {x}, {y}")

        return cls(
            seq=seq,
            frame=frame,
            command=command,
            current=1 if current else 0,
            autocontinue=1 if autocontinue else 0,
            param1=p[0],
            param2=p[1],
            param3=p[2],
            param4=p[3],
            x=x,
            y=y,
            z=p[6],
        )


def _check_range(name: str, value: float, limit: float):
    if not math.isnan(value) and not -limit <= value <= limit:
        raise ValueError(f"{name} {value} outside [-{limit:g}, {limit:g}]")


def _to_deg_e7(value: float) -> int:
    if math.isnan(value):
        return 0
    return int(round(value * 1e7))


@dataclass
class MissionPlan:
    """
    Ordered sequence of mission items imported from a plan file

    Sequence order is execution order.
    """
    items: List[MissionItem] = field(default_factory=list)
    planned_home: Optional['Position'] = None
    source: Optional[str] = None

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[MissionItem]:
        return iter(self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items


@dataclass(frozen=True)
class Position:
    """Vehicle-reported position"""
    lat: float
    lon: float
    rel_alt: float  # meters above home


@dataclass(frozen=True)
class MissionProgress:
    """Mission progress as reported by the vehicle"""
    current: int
    total: int

    def __post_init__(self):
        if self.total < 0 or not (0 <= self.current <= self.total):
            raise ValueError(f"invalid progress {self.current}/{self.total}")

    @classmethod
    def clamped(cls, current: int, total: int) -> 'MissionProgress':
        """Build a progress record, clamping current into [0, total]"""
        total = max(total, 0)
        return cls(current=min(max(current, 0), total), total=total)

    @property
    def finished(self) -> bool:
        return self.total > 0 and self.current >= self.total
