"""
GeoTrack Simulation Package

Synthetic trajectories and headless replay runners.
"""

from .runner import ReplayResult, ReplayRunner, run_replay
from .trajectory import ConstantVelocityTrajectory, SyntheticRun, generate_observations

__all__ = [
    "ConstantVelocityTrajectory",
    "SyntheticRun",
    "generate_observations",
    "ReplayRunner",
    "ReplayResult",
    "run_replay",
]
