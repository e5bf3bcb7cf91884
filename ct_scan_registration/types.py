"""Data structures used throughout the scan registration front end.

Point clouds are plain NumPy arrays. A working scan is an (N, 4) float64
array with columns [x, y, z, intensity], where intensity packs
scan_line + scan_period * rel_time.
"""
import functools
from enum import Enum

import numpy as np
from dataclasses import dataclass, field

POINT_COLUMNS = 4

FEATURE_CLOUD_NAMES = (
    'corner_sharp',
    'corner_less_sharp',
    'surface_flat',
    'surface_less_flat',
)


def empty_cloud() -> np.ndarray:
    """(0, 4) cloud."""
    return np.zeros((0, POINT_COLUMNS))


@functools.total_ordering
class FeatureLabel(Enum):
    """Point classification, ordered by rank.

    CORNER_SHARP > CORNER_LESS_SHARP > SURFACE_LESS_FLAT > SURFACE_FLAT.
    Label arrays store ``rank``; compare against ``FeatureLabel.X.rank``.
    """
    CORNER_SHARP = 2
    CORNER_LESS_SHARP = 1
    SURFACE_LESS_FLAT = 0
    SURFACE_FLAT = -1

    @property
    def rank(self) -> int:
        return self.value

    def __lt__(self, other):
        if not isinstance(other, FeatureLabel):
            return NotImplemented
        return self.rank < other.rank


@dataclass
class RawCloud:
    """One raw point message in sensor-native axes."""
    stamp: float = 0.0
    points: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))


@dataclass
class ImuSample:
    """Orientation estimate from the inertial collaborator."""
    timestamp: float = 0.0
    orientation: np.ndarray = field(
        default_factory=lambda: np.array([0.0, 0.0, 0.0, 1.0]))  # [x, y, z, w]
    position: np.ndarray = None


@dataclass
class ScanResult:
    """Everything published for one processed message."""
    stamp: float
    full_cloud: np.ndarray
    corner_sharp: np.ndarray
    corner_less_sharp: np.ndarray
    surface_flat: np.ndarray
    surface_less_flat: np.ndarray
    sweep_index: int = 0
    new_sweep: bool = False

    def clouds(self) -> dict:
        """Name -> cloud, the full scan first."""
        out = {'full_cloud': self.full_cloud}
        for name in FEATURE_CLOUD_NAMES:
            out[name] = getattr(self, name)
        return out
