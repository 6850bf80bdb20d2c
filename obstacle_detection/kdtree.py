import numpy as np
from dataclasses import dataclass
from typing import List, Optional, Tuple

from obstacle_detection.errors import InsufficientPointsError
from obstacle_detection.point_cloud import as_cloud


@dataclass
class KdNode:
    """
    A node covers the slice [start, end) of the tree's permuted index array.
    Leaves have no children; internal nodes split on axis at split.
    """
    start: int
    end: int
    axis: int = -1
    split: float = 0.0
    left: Optional[int] = None
    right: Optional[int] = None

    @property
    def is_leaf(self) -> bool:
        return self.left is None


class KdTree:
    """
    Balanced 3D k-d tree for radius and nearest neighbour queries.

    Built once by median partitioning on the axis of widest spread, then
    read-only. Nodes are kept in a flat list and refer to slices of one
    permuted index array, so no point data is duplicated.
    """

    def __init__(self, points: np.ndarray, leaf_size: int = 16):
        if leaf_size < 1:
            raise ValueError(f"leaf_size must be positive, got {leaf_size}")

        self.points = as_cloud(points)
        self.leaf_size = leaf_size
        self._order = np.arange(len(self.points), dtype=np.int64)
        self._nodes: List[KdNode] = []

        if len(self.points) > 0:
            self._build(0, len(self.points))

        self._order.setflags(write=False)

    def __len__(self) -> int:
        return len(self.points)

    @property
    def depth(self) -> int:
        if not self._nodes:
            return 0
        best = 0
        stack = [(0, 1)]
        while stack:
            node_id, d = stack.pop()
            node = self._nodes[node_id]
            best = max(best, d)
            if not node.is_leaf:
                stack.append((node.left, d + 1))
                stack.append((node.right, d + 1))
        return best

    def _build(self, start: int, end: int) -> int:
        node_id = len(self._nodes)
        self._nodes.append(KdNode(start=start, end=end))

        if end - start <= self.leaf_size:
            return node_id

        idx = self._order[start:end]
        xyz = self.points[idx]
        spread = xyz.max(axis=0) - xyz.min(axis=0)
        axis = int(np.argmax(spread))

        # All points coincide, nothing to split on
        if spread[axis] == 0.0:
            return node_id

        mid = (end - start) // 2
        part = np.argpartition(xyz[:, axis], mid)
        self._order[start:end] = idx[part]
        split = float(self.points[self._order[start + mid], axis])

        left = self._build(start, start + mid)
        right = self._build(start + mid, end)

        node = self._nodes[node_id]
        node.axis = axis
        node.split = split
        node.left = left
        node.right = right
        return node_id

    def query_radius(self, point, radius: float) -> np.ndarray:
        """
        Return indices of all points within radius (inclusive) of point,
        sorted ascending.
        """
        if radius < 0:
            raise ValueError(f"radius must be non-negative, got {radius}")
        if not self._nodes:
            return np.zeros(0, dtype=np.int64)

        q = np.asarray(point, dtype=np.float64)[:3]
        r2 = radius * radius
        found = []

        stack = [0]
        while stack:
            node = self._nodes[stack.pop()]

            if node.is_leaf:
                idx = self._order[node.start:node.end]
                diff = self.points[idx] - q
                d2 = np.einsum("ij,ij->i", diff, diff)
                hits = idx[d2 <= r2]
                if hits.size:
                    found.append(hits)
                continue

            # Left holds coords <= split, right holds coords >= split
            delta = q[node.axis] - node.split
            if delta - radius <= 0:
                stack.append(node.left)
            if delta + radius >= 0:
                stack.append(node.right)

        if not found:
            return np.zeros(0, dtype=np.int64)
        return np.sort(np.concatenate(found))

    def query_nearest(self, point) -> Tuple[int, float]:
        if not self._nodes:
            raise InsufficientPointsError(1, 0, "nearest neighbour query")

        q = np.asarray(point, dtype=np.float64)[:3]
        best_index = -1
        best_d2 = np.inf

        # (node id, lower bound on squared distance to anything below it)
        stack = [(0, 0.0)]
        while stack:
            node_id, bound = stack.pop()
            if bound > best_d2:
                continue
            node = self._nodes[node_id]

            if node.is_leaf:
                idx = self._order[node.start:node.end]
                diff = self.points[idx] - q
                d2 = np.einsum("ij,ij->i", diff, diff)
                leaf_best = d2.min()
                # Lowest index wins on equal distance
                leaf_index = int(idx[d2 == leaf_best].min())
                if leaf_best < best_d2 or (leaf_best == best_d2 and leaf_index < best_index):
                    best_d2 = float(leaf_best)
                    best_index = leaf_index
                continue

            delta = q[node.axis] - node.split
            near, far = (node.left, node.right) if delta <= 0 else (node.right, node.left)
            stack.append((far, max(bound, delta * delta)))
            stack.append((near, bound))

        return best_index, float(np.sqrt(best_d2))


def build_kdtree(points: np.ndarray, leaf_size: int = 16) -> KdTree:
    return KdTree(points, leaf_size=leaf_size)
