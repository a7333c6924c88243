"""
Geodesy Module

WGS-84 positions and Vincenty geodesic solutions.

Components:
    - Position: Latitude/longitude in radians with clamping
    - destination: Vincenty direct problem
    - range_azimuth: Vincenty inverse problem
"""

from .position import Position
from .vincenty import Destination, RangeAzimuth, destination, range_azimuth

__all__ = [
    "Position",
    "Destination",
    "RangeAzimuth",
    "destination",
    "range_azimuth",
]
