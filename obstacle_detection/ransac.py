import logging
import time
import numpy as np
from dataclasses import dataclass
from typing import Optional, Tuple

from obstacle_detection.errors import InsufficientPointsError
from obstacle_detection.point_cloud import as_cloud, separate_clouds

logger = logging.getLogger(__name__)

# Below this normal length the three samples are treated as collinear
DEGENERATE_NORM = 1e-10


@dataclass
class PlaneModel:
    """
    Ground plane hypothesis a*x + b*y + c*z + d = 0 with (a, b, c) of unit length,
    so distances come out in the cloud's units.
    """
    normal: np.ndarray
    d: float

    def distance_to_points(self, points: np.ndarray) -> np.ndarray:
        return np.abs(np.dot(points[:, :3], self.normal) + self.d)

    @property
    def coefficients(self) -> Tuple[float, float, float, float]:
        a, b, c = (float(v) for v in self.normal)
        return a, b, c, float(self.d)

    @property
    def equation_string(self) -> str:
        return f"{self.normal[0]:.4f}x + {self.normal[1]:.4f}y + {self.normal[2]:.4f}z + {self.d:.4f} = 0"


@dataclass
class LineModel:
    """
    Represents a 2D line: normal * (x, y) + c = 0
    """
    normal: np.ndarray
    c: float

    def distance_to_points(self, points: np.ndarray) -> np.ndarray:
        return np.abs(np.dot(points[:, :2], self.normal) + self.c)

    @property
    def equation_string(self) -> str:
        return f"{self.normal[0]:.4f}x + {self.normal[1]:.4f}y + {self.c:.4f} = 0"


@dataclass
class SegmentationResult:
    """Ground/obstacle split of one cloud."""
    plane: Optional[PlaneModel]
    inliers: np.ndarray
    plane_cloud: np.ndarray
    obstacle_cloud: np.ndarray

    @property
    def is_degenerate(self) -> bool:
        """No plane could be formed, so nothing was removed as ground."""
        return self.plane is None


def fit_plane_from_points(p1: np.ndarray, p2: np.ndarray, p3: np.ndarray) -> PlaneModel:
    """
    Plane through three points. The normal is the cross product of the two
    edges leaving p1, scaled to unit length, and d puts p1 on the plane.
    """
    normal = np.cross(p2 - p1, p3 - p1)
    length = float(np.linalg.norm(normal))
    if length < DEGENERATE_NORM:
        raise ValueError(f"Samples are collinear (normal length {length:.3g})")

    unit = normal / length
    return PlaneModel(normal=unit, d=-float(unit @ p1))


def fit_line_from_points(p1: np.ndarray, p2: np.ndarray) -> LineModel:
    """
    Fit a 2D line through two points, using only x and y.
    """
    a = p1[1] - p2[1]
    b = p2[0] - p1[0]
    c = p1[0] * p2[1] - p2[0] * p1[1]

    norm = np.hypot(a, b)
    if norm < DEGENERATE_NORM:
        raise ValueError("Points coincide")

    return LineModel(normal=np.array([a, b]) / norm, c=float(c / norm))


def _check_ransac_args(max_iterations: int, distance_tolerance: float):
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be positive, got {max_iterations}")
    if distance_tolerance < 0:
        raise ValueError(f"distance_tolerance must be non-negative, got {distance_tolerance}")


def ransac_plane(
    points: np.ndarray,
    max_iterations: int = 100,
    distance_tolerance: float = 0.2,
    rng: Optional[np.random.Generator] = None,
    normal_threshold: Optional[float] = None,
) -> Tuple[Optional[PlaneModel], np.ndarray]:
    """
    Find the plane with the most inliers using RANSAC.

    Each iteration samples three distinct points, fits a plane through them
    and counts every point within distance_tolerance of it. The sampled
    points always count. Only a strictly larger inlier set replaces the best
    one, so the first hypothesis found wins ties.

    A sample with a zero-length normal scores zero inliers. If every sample
    is degenerate the returned plane is None and no indices are inliers.

    Args:
        points: Nx3 array (extra columns ignored)
        max_iterations: Number of hypotheses to try
        distance_tolerance: Max point-to-plane distance for an inlier
        rng: Random source; a fresh unseeded generator when None
        normal_threshold: If set, reject planes whose |normal z| is below it

    Returns:
        (best plane or None, sorted inlier indices)
    """
    xyz = as_cloud(points)
    n_points = len(xyz)

    if n_points < 3:
        raise InsufficientPointsError(3, n_points, "Plane segmentation")
    _check_ransac_args(max_iterations, distance_tolerance)

    if rng is None:
        rng = np.random.default_rng()

    best_plane = None
    best_inlier_count = 0
    best_inlier_mask = np.zeros(n_points, dtype=bool)
    degenerate = 0

    for _ in range(max_iterations):
        sample_indices = rng.choice(n_points, 3, replace=False)
        p1, p2, p3 = xyz[sample_indices]

        try:
            plane = fit_plane_from_points(p1, p2, p3)
        except ValueError:
            degenerate += 1
            continue

        if normal_threshold is not None and abs(plane.normal[2]) < normal_threshold:
            continue

        distances = plane.distance_to_points(xyz)
        inlier_mask = distances <= distance_tolerance
        inlier_mask[sample_indices] = True
        inlier_count = int(np.count_nonzero(inlier_mask))

        if inlier_count > best_inlier_count:
            best_inlier_count = inlier_count
            best_plane = plane
            best_inlier_mask = inlier_mask

    if degenerate:
        logger.debug(f"{degenerate}/{max_iterations} RANSAC samples were collinear")

    return best_plane, np.flatnonzero(best_inlier_mask)


def ransac_line(
    points: np.ndarray,
    max_iterations: int = 100,
    distance_tolerance: float = 0.2,
    rng: Optional[np.random.Generator] = None,
) -> Tuple[Optional[LineModel], np.ndarray]:
    """
    2D line version of ransac_plane, fitted on the x and y columns.
    """
    xy = np.asarray(points, dtype=np.float64)
    if xy.size == 0:
        xy = np.zeros((0, 2))
    if xy.ndim != 2 or xy.shape[1] < 2:
        raise ValueError(f"Expected an (N, 2) point array, got shape {xy.shape}")
    xy = xy[:, :2]
    n_points = len(xy)

    if n_points < 2:
        raise InsufficientPointsError(2, n_points, "Line fitting")
    _check_ransac_args(max_iterations, distance_tolerance)

    if rng is None:
        rng = np.random.default_rng()

    best_line = None
    best_inlier_count = 0
    best_inlier_mask = np.zeros(n_points, dtype=bool)

    for _ in range(max_iterations):
        sample_indices = rng.choice(n_points, 2, replace=False)

        try:
            line = fit_line_from_points(xy[sample_indices[0]], xy[sample_indices[1]])
        except ValueError:
            continue

        inlier_mask = line.distance_to_points(xy) <= distance_tolerance
        inlier_mask[sample_indices] = True
        inlier_count = int(np.count_nonzero(inlier_mask))

        if inlier_count > best_inlier_count:
            best_inlier_count = inlier_count
            best_line = line
            best_inlier_mask = inlier_mask

    return best_line, np.flatnonzero(best_inlier_mask)


def segment_plane(
    points: np.ndarray,
    max_iterations: int = 100,
    distance_tolerance: float = 0.2,
    rng: Optional[np.random.Generator] = None,
    normal_threshold: Optional[float] = None,
) -> SegmentationResult:
    """
    Split a cloud into ground plane points and obstacle points.
    """
    start = time.perf_counter()
    cloud = as_cloud(points)

    plane, inliers = ransac_plane(
        cloud,
        max_iterations=max_iterations,
        distance_tolerance=distance_tolerance,
        rng=rng,
        normal_threshold=normal_threshold,
    )
    plane_cloud, obstacle_cloud = separate_clouds(cloud, inliers)

    if plane is None:
        logger.warning(
            f"Could not estimate a plane from {len(cloud)} points, keeping all as obstacles"
        )
    else:
        logger.debug(f"Ground plane: {plane.equation_string}")

    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.debug(
        f"Plane segmentation took {elapsed_ms:.1f} ms: "
        f"{len(plane_cloud)} ground, {len(obstacle_cloud)} obstacle points"
    )

    return SegmentationResult(
        plane=plane,
        inliers=inliers,
        plane_cloud=plane_cloud,
        obstacle_cloud=obstacle_cloud,
    )
