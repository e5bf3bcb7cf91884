"""Numba JIT-compiled kernels for the per-scan inner loops.

These functions replace the Python-level loops with machine-code compiled
equivalents via Numba's @njit decorator. Key targets:

1. mark_unreliable_points: occlusion and grazing-incidence pre-pass
2. mark_as_picked: neighbor suppression after a feature is selected

Both take a contiguous (N, 3) float64 xyz array and mutate a (N,) bool mask.
"""
import math
import numpy as np
from numba import njit


# ─────────────────────────────────────────────────────────────
#  Vector helpers
# ─────────────────────────────────────────────────────────────

@njit(cache=True)
def dist_sq_jit(points, i, j):
    """Squared distance between rows i and j."""
    dx = points[i, 0] - points[j, 0]
    dy = points[i, 1] - points[j, 1]
    dz = points[i, 2] - points[j, 2]
    return dx * dx + dy * dy + dz * dz


@njit(cache=True)
def range_jit(points, i):
    """Distance of row i from the sensor origin."""
    return math.sqrt(points[i, 0] * points[i, 0] +
                     points[i, 1] * points[i, 1] +
                     points[i, 2] * points[i, 2])


@njit(cache=True)
def beam_cos_jit(points, i, j):
    """|cos| of the angle between the beam to row i and the segment i -> j."""
    sx = points[j, 0] - points[i, 0]
    sy = points[j, 1] - points[i, 1]
    sz = points[j, 2] - points[i, 2]
    s_norm = math.sqrt(sx * sx + sy * sy + sz * sz)
    b_norm = range_jit(points, i)
    if s_norm == 0.0 or b_norm == 0.0:
        return 0.0
    dot = points[i, 0] * sx + points[i, 1] * sy + points[i, 2] * sz
    return abs(dot) / (s_norm * b_norm)


# ─────────────────────────────────────────────────────────────
#  Unreliable point pre-pass
# ─────────────────────────────────────────────────────────────

@njit(cache=True)
def mark_unreliable_points_jit(points, picked, curvature_region,
                               occlusion_gap_sq, occlusion_ratio, grazing_cos):
    """Pre-mark occluded boundary points and grazing-incidence points.

    Depth discontinuity: when two consecutive points are far apart and the
    beams are nearly parallel after normalising by range, the farther side
    sits behind a foreground edge. Its curvature_region + 1 points are marked.

    Grazing incidence: a point whose beam is nearly parallel to both segments
    towards its neighbors (|cos| above grazing_cos).
    """
    n = points.shape[0]
    for i in range(curvature_region, n - curvature_region - 1):
        diff_next = dist_sq_jit(points, i + 1, i)

        if diff_next > occlusion_gap_sq:
            depth1 = range_jit(points, i)
            depth2 = range_jit(points, i + 1)

            if depth1 > depth2:
                s = depth2 / depth1
                wx = points[i + 1, 0] - points[i, 0] * s
                wy = points[i + 1, 1] - points[i, 1] * s
                wz = points[i + 1, 2] - points[i, 2] * s
                weighted = math.sqrt(wx * wx + wy * wy + wz * wz) / depth2
                if weighted < occlusion_ratio:
                    for k in range(i - curvature_region, i + 1):
                        picked[k] = True
                    continue
            else:
                s = depth1 / depth2
                wx = points[i + 1, 0] * s - points[i, 0]
                wy = points[i + 1, 1] * s - points[i, 1]
                wz = points[i + 1, 2] * s - points[i, 2]
                weighted = math.sqrt(wx * wx + wy * wy + wz * wz) / depth1
                if weighted < occlusion_ratio:
                    for k in range(i + 1, i + curvature_region + 2):
                        picked[k] = True
                    continue

        if (beam_cos_jit(points, i, i - 1) > grazing_cos and
                beam_cos_jit(points, i, i + 1) > grazing_cos):
            picked[i] = True


# ─────────────────────────────────────────────────────────────
#  Neighbor suppression
# ─────────────────────────────────────────────────────────────

@njit(cache=True)
def mark_as_picked_jit(points, picked, index, curvature_region,
                       neighbor_gap_sq, suppression_distance_sq):
    """Mark a selected point and its neighborhood as picked.

    Walks up to curvature_region neighbors in each index direction, stopping
    at the first consecutive gap larger than neighbor_gap_sq, then marks every
    point closer than suppression_distance_sq to the selected one.
    """
    n = points.shape[0]
    picked[index] = True

    for k in range(1, curvature_region + 1):
        j = index + k
        if j >= n or dist_sq_jit(points, j, j - 1) > neighbor_gap_sq:
            break
        picked[j] = True

    for k in range(1, curvature_region + 1):
        j = index - k
        if j < 0 or dist_sq_jit(points, j, j + 1) > neighbor_gap_sq:
            break
        picked[j] = True

    for j in range(n):
        if not picked[j] and dist_sq_jit(points, j, index) < suppression_distance_sq:
            picked[j] = True


def warmup():
    """Pre-compile all JIT functions with dummy data."""
    pts = np.random.randn(16, 3)
    picked = np.zeros(16, dtype=np.bool_)
    dist_sq_jit(pts, 0, 1)
    range_jit(pts, 0)
    beam_cos_jit(pts, 1, 2)
    mark_unreliable_points_jit(pts, picked, 5, 0.1, 0.1, 0.98)
    mark_as_picked_jit(pts, picked, 8, 5, 0.05, 0.05)
