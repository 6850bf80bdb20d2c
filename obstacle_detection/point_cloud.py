import numpy as np
from typing import Sequence, Tuple, Union

IndexArray = Union[np.ndarray, Sequence[int]]


def as_cloud(points) -> np.ndarray:
    """
    Normalise input to an (N, 3) float64 read-only array.
    Extra columns such as KITTI reflectance are dropped.
    """
    arr = np.asarray(points, dtype=np.float64)

    if arr.size == 0:
        cloud = np.zeros((0, 3))
        cloud.setflags(write=False)
        return cloud

    if arr.ndim != 2 or arr.shape[1] < 3:
        raise ValueError(f"Expected an (N, 3) point array, got shape {arr.shape}")

    # Copy so freezing never touches the caller's buffer
    cloud = np.array(arr[:, :3], copy=True)
    if not np.all(np.isfinite(cloud)):
        raise ValueError("Point cloud contains NaN or Inf values")

    cloud.setflags(write=False)
    return cloud


def separate_clouds(cloud: np.ndarray, inliers: IndexArray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split a cloud into (plane, obstacle) parts by inlier index.
    Both parts keep the original point order.
    """
    n = len(cloud)
    inliers = np.asarray(inliers, dtype=np.int64)

    if inliers.size and (inliers.min() < 0 or inliers.max() >= n):
        raise IndexError(f"Inlier index out of range for cloud of {n} points")

    mask = np.zeros(n, dtype=bool)
    mask[inliers] = True

    return cloud[mask], cloud[~mask]
