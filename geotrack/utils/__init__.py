"""
GeoTrack Utilities

Low-level helpers shared across packages.
"""

from . import codec

__all__ = ["codec"]
