"""Point preprocessing: axis remap, invalid point filter, relative time,
motion compensation.

All operations are vectorized with NumPy and keep the input order.
"""
import numpy as np

# Working axes (x, y, z) taken from sensor axes (y, z, x).
AXIS_PERMUTATION = (1, 2, 0)


def to_working_axes(points_raw: np.ndarray) -> np.ndarray:
    """Permute (N, 3) sensor-native points into the working convention."""
    return points_raw[:, AXIS_PERMUTATION]


def valid_point_mask(points: np.ndarray, min_norm_sq: float) -> np.ndarray:
    """Rows that are finite and not at the sensor origin."""
    finite_mask = np.all(np.isfinite(points), axis=1)
    r2 = np.sum(np.where(finite_mask[:, None], points, 0.0) ** 2, axis=1)
    return finite_mask & (r2 >= min_norm_sq)


class Preprocessor:
    """Turn a raw message into the ordered working scan."""

    def __init__(self, scan_period: float = 0.1, scan_line: int = 0,
                 min_point_norm_sq: float = 0.0001):
        """
        Args:
            scan_period: Sweep period in seconds, scales the packed time.
            scan_line: Scan line index packed into the intensity column.
            min_point_norm_sq: Points with a smaller squared norm are no-echo
                returns and are dropped.
        """
        self.scan_period = scan_period
        self.scan_line = scan_line
        self.min_point_norm_sq = min_point_norm_sq

    def process(self, points_raw: np.ndarray, compensator=None) -> np.ndarray:
        """Filter, remap and compensate one raw message.

        Args:
            points_raw: (N, 3) points in sensor-native axes.
            compensator: Optional object with ``transforms_for(rel_times)``
                returning ``(R (M, 3, 3), t (M, 3))`` that maps each point into
                the sweep-start frame, or None when no estimate is available.

        Returns:
            (M, 4) working scan [x, y, z, intensity], M <= N, input order kept.
        """
        n_raw = len(points_raw)
        if n_raw == 0:
            return np.zeros((0, 4))

        xyz = to_working_axes(np.asarray(points_raw, dtype=np.float64))
        valid_mask = valid_point_mask(xyz, self.min_point_norm_sq)

        # Capture instant from the column position within the message
        rel_time = np.arange(n_raw, dtype=np.float64) / n_raw
        xyz = xyz[valid_mask]
        rel_time = rel_time[valid_mask]

        if compensator is not None and len(xyz) > 0:
            transforms = compensator.transforms_for(rel_time)
            if transforms is not None:
                rots, trans = transforms
                xyz = np.einsum('nij,nj->ni', rots, xyz) + trans

        scan = np.empty((len(xyz), 4))
        scan[:, :3] = xyz
        scan[:, 3] = self.scan_line + self.scan_period * rel_time
        return scan
