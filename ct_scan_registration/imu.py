"""Orientation history used for motion compensation.

Buffers the pose estimates of the inertial collaborator and maps a point
captured at a fractional offset within the current message into the
sweep-start frame. Orientations are expected in working axes.
"""
from collections import deque

import numpy as np
from scipy.spatial.transform import Rotation, Slerp

from .types import ImuSample


class ImuOrientationBuffer:
    """Bounded, time-ordered IMU pose history with interpolation."""

    def __init__(self, scan_period: float = 0.1, history_size: int = 200):
        self.scan_period = scan_period
        self.history = deque(maxlen=history_size)
        self.scan_time = None
        self.start_rot = None
        self.start_pos = None

    def add(self, timestamp: float, orientation, position=None):
        """Append a pose sample.

        Args:
            timestamp: Sample time in seconds, strictly increasing.
            orientation: Quaternion [qx, qy, qz, qw].
            position: Optional (3,) position, zero when omitted.
        """
        if self.history and timestamp <= self.history[-1].timestamp:
            raise ValueError(
                f"IMU sample at {timestamp:.6f} is not newer than "
                f"{self.history[-1].timestamp:.6f}")
        pos = np.zeros(3) if position is None else np.asarray(position, dtype=np.float64)
        self.history.append(ImuSample(
            timestamp=timestamp,
            orientation=np.asarray(orientation, dtype=np.float64),
            position=pos,
        ))

    def add_sample(self, sample: ImuSample):
        self.add(sample.timestamp, sample.orientation, sample.position)

    def has_data(self) -> bool:
        return len(self.history) > 0

    def pose_at(self, times):
        """Interpolated poses, clamped to the buffered time range.

        Args:
            times: Scalar or (N,) times in seconds.

        Returns:
            Tuple of (Rotation stack of length N, (N, 3) positions).
        """
        times = np.atleast_1d(np.asarray(times, dtype=np.float64))
        stamps = np.array([s.timestamp for s in self.history])
        quats = np.array([s.orientation for s in self.history])
        positions = np.array([s.position for s in self.history])

        if len(stamps) == 1:
            rots = Rotation.from_quat(np.repeat(quats, len(times), axis=0))
            return rots, np.repeat(positions, len(times), axis=0)

        t = np.clip(times, stamps[0], stamps[-1])
        rots = Slerp(stamps, Rotation.from_quat(quats))(t)
        pos = np.column_stack([
            np.interp(t, stamps, positions[:, dim]) for dim in range(3)
        ])
        return rots, pos

    def begin_scan(self, scan_time: float, sweep_start_time: float):
        """Fix the reference pose at the start of the current sweep."""
        self.scan_time = scan_time
        if not self.has_data():
            self.start_rot = None
            self.start_pos = None
            return
        rots, pos = self.pose_at(sweep_start_time)
        self.start_rot = rots[0]
        self.start_pos = pos[0]

    def transforms_for(self, rel_times: np.ndarray):
        """Per-point transforms into the sweep-start frame.

        A point captured at scan_time + rel_time * scan_period is mapped by
        p_start = R @ p + t with R = R_start^-1 R_point and
        t = R_start^-1 (t_point - t_start).

        Returns:
            Tuple of ((N, 3, 3), (N, 3)) or None without IMU data.
        """
        if self.start_rot is None or self.scan_time is None:
            return None
        times = self.scan_time + np.asarray(rel_times) * self.scan_period
        rots, pos = self.pose_at(times)
        start_inv = self.start_rot.inv()
        rel_rots = (start_inv * rots).as_matrix()
        rel_pos = start_inv.apply(pos - self.start_pos)
        return rel_rots, np.atleast_2d(rel_pos)
