"""Voxel grid downsampling using NumPy.

Replaces pcl::VoxelGrid<PointXYZI> for the less flat surface cloud.
"""
import numpy as np


def voxel_grid_downsample(points: np.ndarray, leaf_size: float) -> np.ndarray:
    """Downsample a point cloud using voxel grid filtering.

    Voxels are keyed on the first three columns. For each occupied voxel the
    mean of every column is returned, so intensity is averaged the same way
    PCL averages the extra fields.

    Args:
        points: (N, C) array, C >= 3, xyz first.
        leaf_size: Voxel edge length in meters. Non-positive disables the
            filter.

    Returns:
        (M, C) downsampled points, M <= N, ordered by voxel key.
    """
    if len(points) == 0 or leaf_size <= 0:
        return points.copy()

    # Quantize to voxel indices
    voxel_idx = np.floor(points[:, :3] / leaf_size).astype(np.int64)

    # One row per occupied voxel; inverse maps points to their voxel
    _, inverse = np.unique(voxel_idx, axis=0, return_inverse=True)
    inverse = inverse.reshape(-1)
    n_voxels = inverse.max() + 1

    counts = np.bincount(inverse, minlength=n_voxels).astype(np.float64)
    centroids = np.zeros((n_voxels, points.shape[1]))
    for dim in range(points.shape[1]):
        centroids[:, dim] = np.bincount(
            inverse, weights=points[:, dim], minlength=n_voxels
        ) / counts

    return centroids
