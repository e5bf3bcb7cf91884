"""Curvature scoring and region-partitioned feature selection.

Implements the LOAM feature extraction step for a single working scan:

1. Curvature of every interior point from its curvature_region neighbors on
   each side.
2. Pre-marking of occluded and grazing-incidence points.
3. Per region: greedy corner pass (highest curvature first) and surface pass
   (lowest curvature first) with neighbor suppression after every pick.
4. Collection of all non-corner region points as less flat candidates.
"""
import math
import numpy as np
from dataclasses import dataclass, field

from .config import RegistrationConfig
from .numba_kernels import mark_unreliable_points_jit, mark_as_picked_jit
from .types import FeatureLabel, empty_cloud


@dataclass
class ScanBuffers:
    """Per-scan curvature and neighbor-picked mask."""
    curvature: np.ndarray
    picked: np.ndarray
    labels: np.ndarray


@dataclass
class ScanFeatures:
    """Features extracted from one working scan."""
    corner_sharp: np.ndarray = field(default_factory=empty_cloud)
    corner_less_sharp: np.ndarray = field(default_factory=empty_cloud)
    surface_flat: np.ndarray = field(default_factory=empty_cloud)
    less_flat_candidates: np.ndarray = field(default_factory=empty_cloud)
    buffers: ScanBuffers = None


def compute_curvature(points: np.ndarray, curvature_region: int = 5) -> np.ndarray:
    """Magnitude of the summed neighbor displacement for each point.

    c_i = || sum_{k=1..m} (p_{i-k} - p_i) + (p_{i+k} - p_i) ||

    Args:
        points: (N, >=3) scan, xyz first.
        curvature_region: m, neighbors taken on each side.

    Returns:
        (N,) curvature, NaN on the m-point margins at both ends.
    """
    xyz = points[:, :3]
    n = len(xyz)
    m = curvature_region
    curvature = np.full(n, np.nan)
    if n < 2 * m + 1:
        return curvature

    center = xyz[m:n - m]
    diff = -2.0 * m * center
    for k in range(1, m + 1):
        diff = diff + xyz[m - k:n - m - k] + xyz[m + k:n - m + k]
    curvature[m:n - m] = np.linalg.norm(diff, axis=1)
    return curvature


def mark_unreliable_points(points: np.ndarray, picked: np.ndarray,
                           config: RegistrationConfig) -> np.ndarray:
    """Seed the picked mask with occluded and grazing-incidence points."""
    xyz = np.ascontiguousarray(points[:, :3], dtype=np.float64)
    grazing_cos = math.cos(math.radians(config.grazing_angle))
    mark_unreliable_points_jit(
        xyz, picked, config.curvature_region,
        config.occlusion_gap_sq, config.occlusion_ratio, grazing_cos)
    return picked


def feature_regions(n_points: int, n_regions: int = 4,
                    curvature_region: int = 5) -> list:
    """Split [m, n - m - 1) into n_regions contiguous [start, end) ranges.

    Returns an empty list when no index is left between the margins.
    """
    start = curvature_region
    stop = n_points - curvature_region - 1
    span = stop - start
    if span <= 0:
        return []
    bounds = [start + (span * r) // n_regions for r in range(n_regions + 1)]
    return [(bounds[r], bounds[r + 1]) for r in range(n_regions)]


def select_region_features(xyz: np.ndarray, buffers: ScanBuffers,
                           start: int, end: int, config: RegistrationConfig):
    """Classify one region in place and collect its picks.

    Returns:
        Tuple of index lists (sharp, less_sharp, flat, less_flat).
    """
    labels = buffers.labels
    picked = buffers.picked
    curvature = buffers.curvature
    threshold = config.surface_curvature_threshold

    labels[start:end] = FeatureLabel.SURFACE_LESS_FLAT.rank
    sort_idx = np.argsort(curvature[start:end], kind='stable') + start

    def suppress(idx):
        mark_as_picked_jit(xyz, picked, idx, config.curvature_region,
                           config.neighbor_gap_sq,
                           config.suppression_distance_sq)

    sharp, less_sharp, flat = [], [], []

    # corner pass, highest curvature first
    picked_num = 0
    for idx in sort_idx[::-1]:
        if picked[idx] or curvature[idx] <= threshold:
            continue
        picked_num += 1
        if picked_num <= config.max_corner_sharp:
            labels[idx] = FeatureLabel.CORNER_SHARP.rank
            sharp.append(idx)
        elif picked_num <= config.max_corner_less_sharp:
            labels[idx] = FeatureLabel.CORNER_LESS_SHARP.rank
            less_sharp.append(idx)
        else:
            break
        suppress(idx)

    # surface pass, lowest curvature first
    picked_num = 0
    for idx in sort_idx:
        if picked_num >= config.max_surface_flat:
            break
        if picked[idx] or curvature[idx] >= threshold:
            continue
        picked_num += 1
        labels[idx] = FeatureLabel.SURFACE_FLAT.rank
        flat.append(idx)
        suppress(idx)

    region_labels = labels[start:end]
    less_flat = np.nonzero(
        region_labels <= FeatureLabel.SURFACE_LESS_FLAT.rank)[0] + start

    return sharp, less_sharp, flat, less_flat


def extract_features(scan: np.ndarray, config: RegistrationConfig) -> ScanFeatures:
    """Run curvature scoring and region selection over one working scan.

    Scans with fewer than config.min_scan_size points yield no features.
    """
    n = len(scan)
    if n < config.min_scan_size:
        return ScanFeatures()

    xyz = np.ascontiguousarray(scan[:, :3], dtype=np.float64)
    buffers = ScanBuffers(
        curvature=compute_curvature(xyz, config.curvature_region),
        picked=np.zeros(n, dtype=np.bool_),
        labels=np.full(n, FeatureLabel.SURFACE_LESS_FLAT.rank, dtype=np.int8),
    )
    mark_unreliable_points(xyz, buffers.picked, config)

    sharp, less_sharp, flat, less_flat = [], [], [], []
    for start, end in feature_regions(n, config.n_feature_regions,
                                      config.curvature_region):
        if end <= start:
            continue
        r_sharp, r_less_sharp, r_flat, r_less_flat = select_region_features(
            xyz, buffers, start, end, config)
        sharp.extend(r_sharp)
        less_sharp.extend(r_less_sharp)
        flat.extend(r_flat)
        less_flat.extend(r_less_flat.tolist())

    def take(indices):
        if not indices:
            return empty_cloud()
        return scan[np.asarray(indices, dtype=np.int64)]

    return ScanFeatures(
        corner_sharp=take(sharp),
        corner_less_sharp=take(less_sharp),
        surface_flat=take(flat),
        less_flat_candidates=take(less_flat),
        buffers=buffers,
    )
