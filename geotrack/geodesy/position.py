"""
Geographic Position

Latitude/longitude pair on the WGS-84 ellipsoid, stored in radians.
Latitude is clamped to [-pi/2, pi/2] and longitude to [-pi, pi] on every
mutation.
"""

import math
from typing import BinaryIO

from geotrack.utils import codec

HALF_PI = math.pi / 2.0


def _clamp(value: float, limit: float) -> float:
    return max(-limit, min(limit, float(value)))


def _format_dms(value_deg: float, positive: str, negative: str, degree_width: int) -> str:
    hemisphere = positive if value_deg >= 0.0 else negative
    value_deg = abs(value_deg)

    degrees = int(value_deg)
    minutes_total = (value_deg - degrees) * 60.0
    minutes = int(minutes_total)
    seconds = (minutes_total - minutes) * 60.0

    # Rounding to two decimals can carry into the next minute/degree
    if round(seconds, 2) >= 60.0:
        seconds = 0.0
        minutes += 1
    if minutes >= 60:
        minutes = 0
        degrees += 1

    return f"{degrees:0{degree_width}d}°{minutes:02d}'{seconds:05.2f}\"{hemisphere}"


class Position:
    """
    Geographic position in radians.

    Example:
        >>> p = Position.from_degrees(45.0, -75.0)
        >>> round(p.lat_deg, 6), round(p.lon_deg, 6)
        (45.0, -75.0)
    """

    __slots__ = ("_lat", "_lon")

    def __init__(self, lat_rad: float = 0.0, lon_rad: float = 0.0) -> None:
        self._lat = _clamp(lat_rad, HALF_PI)
        self._lon = _clamp(lon_rad, math.pi)

    @classmethod
    def from_degrees(cls, lat_deg: float, lon_deg: float) -> "Position":
        return cls(math.radians(lat_deg), math.radians(lon_deg))

    @property
    def lat(self) -> float:
        """Latitude [rad]"""
        return self._lat

    @lat.setter
    def lat(self, value: float) -> None:
        self._lat = _clamp(value, HALF_PI)

    @property
    def lon(self) -> float:
        """Longitude [rad]"""
        return self._lon

    @lon.setter
    def lon(self, value: float) -> None:
        self._lon = _clamp(value, math.pi)

    @property
    def lat_deg(self) -> float:
        return math.degrees(self._lat)

    @property
    def lon_deg(self) -> float:
        return math.degrees(self._lon)

    def set(self, lat_rad: float, lon_rad: float) -> None:
        self.lat = lat_rad
        self.lon = lon_rad

    def copy(self) -> "Position":
        return Position(self._lat, self._lon)

    def copy_from(self, other: "Position") -> None:
        self._lat = other._lat
        self._lon = other._lon

    def to_dms_latitude(self) -> str:
        """Latitude as DD°MM'SS.SS"N/S."""
        return _format_dms(self.lat_deg, "N", "S", 2)

    def to_dms_longitude(self) -> str:
        """Longitude as DDD°MM'SS.SS"E/W."""
        return _format_dms(self.lon_deg, "E", "W", 3)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Position):
            return NotImplemented
        return self._lat == other._lat and self._lon == other._lon

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        return f"Position(lat_rad={self._lat!r}, lon_rad={self._lon!r})"

    def __str__(self) -> str:
        return f"{self.to_dms_latitude()} {self.to_dms_longitude()}"

    def write(self, stream: BinaryIO) -> None:
        """Write as [double lat_rad][double lon_rad], big-endian."""
        codec.write_double(stream, self._lat)
        codec.write_double(stream, self._lon)

    @classmethod
    def read(cls, stream: BinaryIO) -> "Position":
        lat = codec.read_double(stream)
        lon = codec.read_double(stream)
        return cls(lat, lon)
