import logging
import time
import numpy as np
from scipy.spatial import KDTree
from typing import Optional, Sequence

from obstacle_detection.point_cloud import as_cloud

logger = logging.getLogger(__name__)


def voxel_downsample(points: np.ndarray, voxel_size: float = 0.1) -> np.ndarray:
    """
    Downsample point cloud using voxel grid filtering.
    Every occupied voxel is replaced by the centroid of its points.
    """
    if voxel_size <= 0:
        raise ValueError(f"voxel_size must be positive, got {voxel_size}")

    xyz = as_cloud(points)
    if len(xyz) == 0:
        return np.zeros((0, 3))

    voxel_indices = np.floor(xyz / voxel_size).astype(np.int64)
    _, inverse = np.unique(voxel_indices, axis=0, return_inverse=True)
    inverse = inverse.reshape(-1)

    counts = np.bincount(inverse)
    centroids = np.zeros((len(counts), 3))
    for dim in range(3):
        centroids[:, dim] = np.bincount(inverse, weights=xyz[:, dim]) / counts

    return centroids


def crop_box(
    points: np.ndarray,
    min_point: Sequence[float],
    max_point: Sequence[float],
) -> np.ndarray:
    """
    Keep the points inside an axis-aligned region of interest (bounds inclusive).
    """
    lo = np.asarray(min_point, dtype=np.float64)[:3]
    hi = np.asarray(max_point, dtype=np.float64)[:3]
    if np.any(lo > hi):
        raise ValueError(f"Crop box min {lo} exceeds max {hi}")

    xyz = as_cloud(points)
    inside = np.all((xyz >= lo) & (xyz <= hi), axis=1)
    return xyz[inside]


def radial_outlier_removal(
    points: np.ndarray,
    radius_scale: float = 0.03,
    min_neighbors: int = 5
) -> np.ndarray:
    """
    Remove outlier points using radius from sensor. Search radius scales with distance.
    """
    xyz = as_cloud(points)
    if len(xyz) == 0:
        return np.zeros((0, 3))

    # Clamp so points at the sensor still get a usable radius
    radial_distances = np.maximum(np.linalg.norm(xyz, axis=1), 0.1)

    tree = KDTree(xyz)
    counts = tree.query_ball_point(xyz, radius_scale * radial_distances, return_length=True)

    # Each point finds itself
    return xyz[counts - 1 >= min_neighbors]


def filter_cloud(
    points: np.ndarray,
    voxel_size: Optional[float] = 0.1,
    min_point: Optional[Sequence[float]] = None,
    max_point: Optional[Sequence[float]] = None,
) -> np.ndarray:
    """
    Voxel downsample then crop to the region of interest.
    Either step is skipped when its parameters are None.
    """
    start = time.perf_counter()
    cloud = as_cloud(points)
    raw_count = len(cloud)

    if voxel_size is not None:
        cloud = voxel_downsample(cloud, voxel_size)

    if min_point is not None or max_point is not None:
        lo = min_point if min_point is not None else (-np.inf,) * 3
        hi = max_point if max_point is not None else (np.inf,) * 3
        cloud = crop_box(cloud, lo, hi)

    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.debug(f"Filtering took {elapsed_ms:.1f} ms: {raw_count} -> {len(cloud)} points")

    return as_cloud(cloud)
