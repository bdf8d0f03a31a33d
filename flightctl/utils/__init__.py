"""
Utility modules
"""

from .geo import offset_position, haversine_distance
from .logger import setup_logging

__all__ = ['offset_position', 'haversine_distance', 'setup_logging']
