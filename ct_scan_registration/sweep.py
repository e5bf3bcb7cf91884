"""Sweep-scoped state and sweep boundary detection.

A sweep is the run of messages between two rotation-direction reversals of
the scanner. All feature clouds accumulate per sweep and are dropped at the
next boundary by replacing the SweepState, never by clearing it in place.
"""
import math
from typing import Optional

import numpy as np
from dataclasses import dataclass, field

from .types import FEATURE_CLOUD_NAMES, empty_cloud


@dataclass
class SweepState:
    """Rotation direction, start time and accumulated feature clouds."""
    rotation_direction: int = 1
    start_time: Optional[float] = None
    index: int = 0
    clouds: dict = field(
        default_factory=lambda: {name: [] for name in FEATURE_CLOUD_NAMES})

    @classmethod
    def begin(cls, start_time: float, rotation_direction: int,
              index: int) -> 'SweepState':
        """Fresh sweep starting at start_time."""
        return cls(rotation_direction=rotation_direction,
                   start_time=start_time, index=index)

    def append(self, name: str, points: np.ndarray):
        """Append points to one of the accumulated feature clouds."""
        if len(points) > 0:
            self.clouds[name].append(points)

    def cloud(self, name: str) -> np.ndarray:
        """Accumulated (M, 4) cloud for name."""
        chunks = self.clouds[name]
        if not chunks:
            return empty_cloud()
        return np.concatenate(chunks, axis=0)


def unit_bearing(point: np.ndarray) -> np.ndarray:
    """Point direction on the unit sphere."""
    return point / np.linalg.norm(point)


def bearing_angle(first: np.ndarray, last: np.ndarray) -> float:
    """Signed angle between the unit bearings of the last and first points."""
    first_u = unit_bearing(first)
    last_u = unit_bearing(last)
    return math.atan2(last_u[0] - first_u[0], last_u[1] - first_u[1])


def detect_sweep_boundary(first: np.ndarray, last: np.ndarray,
                          timestamp: float, sweep: SweepState,
                          scan_period: float) -> bool:
    """Decide whether a message starts a new sweep.

    A new sweep begins when the bearing angle runs against the current
    rotation direction and more than scan_period has passed since the sweep
    started.

    Args:
        first: (3,) first valid raw point, sensor axes.
        last: (3,) last valid raw point, sensor axes.
        timestamp: Message time in seconds.
        sweep: Current sweep state.
        scan_period: Minimum sweep duration in seconds.
    """
    if sweep.start_time is None:
        return False
    angle = bearing_angle(first, last)
    return (angle * sweep.rotation_direction < 0 and
            timestamp - sweep.start_time > scan_period)
