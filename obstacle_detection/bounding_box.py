import numpy as np
from dataclasses import dataclass
from typing import Iterable, List

from obstacle_detection.errors import EmptyClusterError, InsufficientPointsError
from obstacle_detection.point_cloud import IndexArray


@dataclass(frozen=True)
class BoundingBox:
    x_min: float
    y_min: float
    z_min: float
    x_max: float
    y_max: float
    z_max: float

    @property
    def min_point(self) -> np.ndarray:
        return np.array([self.x_min, self.y_min, self.z_min])

    @property
    def max_point(self) -> np.ndarray:
        return np.array([self.x_max, self.y_max, self.z_max])

    @property
    def center(self) -> np.ndarray:
        return (self.min_point + self.max_point) / 2

    @property
    def dimensions(self) -> np.ndarray:
        return self.max_point - self.min_point

    @property
    def volume(self) -> float:
        return float(np.prod(self.dimensions))

    def contains(self, point) -> bool:
        p = np.asarray(point, dtype=np.float64)[:3]
        return bool(np.all(p >= self.min_point) and np.all(p <= self.max_point))

    def as_tuple(self):
        return (self.x_min, self.y_min, self.z_min, self.x_max, self.y_max, self.z_max)


def _box_from_points(xyz: np.ndarray) -> BoundingBox:
    lo = xyz.min(axis=0)
    hi = xyz.max(axis=0)
    return BoundingBox(
        float(lo[0]), float(lo[1]), float(lo[2]),
        float(hi[0]), float(hi[1]), float(hi[2]),
    )


def points_bounding_box(points: np.ndarray) -> BoundingBox:
    """Axis-aligned box around every point of a cloud."""
    xyz = np.asarray(points, dtype=np.float64)
    if len(xyz) == 0:
        raise InsufficientPointsError(1, 0, "Bounding box")
    return _box_from_points(xyz[:, :3])


def bounding_box(cluster: IndexArray, cloud: np.ndarray) -> BoundingBox:
    """
    Axis-aligned box around the cloud points a cluster refers to.
    """
    indices = np.asarray(cluster, dtype=np.int64)
    if indices.size == 0:
        raise EmptyClusterError("Cannot build a bounding box for an empty cluster")
    return _box_from_points(np.asarray(cloud)[indices, :3])


def bounding_boxes(clusters: Iterable[IndexArray], cloud: np.ndarray) -> List[BoundingBox]:
    return [bounding_box(cluster, cloud) for cluster in clusters]
