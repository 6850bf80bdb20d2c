import logging
import time
import numpy as np
from dataclasses import dataclass, field
from typing import List
from collections import deque

from obstacle_detection.kdtree import KdTree
from obstacle_detection.point_cloud import as_cloud

logger = logging.getLogger(__name__)


@dataclass
class ClusterResult:
    # Index arrays into the clustered cloud, in seed order
    clusters: List[np.ndarray] = field(default_factory=list)
    # Cluster id per point, -1 for points whose cluster was dropped
    labels: np.ndarray = field(default_factory=lambda: np.array([], dtype=int))
    num_clusters: int = 0
    cluster_sizes: List[int] = field(default_factory=list)
    noise_count: int = 0


def euclidean_cluster(
    points: np.ndarray,
    tolerance: float = 0.5,
    min_size: int = 10,
    max_size: int = 25000,
) -> ClusterResult:
    """
    Group points into clusters of spatially connected neighbours.

    Any two points within tolerance of each other end up in the same
    cluster, transitively. Clusters are grown breadth first from the first
    unprocessed point; a point is marked processed as soon as it is queued,
    so every point is visited exactly once. Clusters whose size falls
    outside [min_size, max_size] are dropped and their points are not
    reassigned.
    """
    if tolerance < 0:
        raise ValueError(f"tolerance must be non-negative, got {tolerance}")
    if min_size < 1:
        raise ValueError(f"min_size must be at least 1, got {min_size}")
    if max_size < min_size:
        raise ValueError(f"max_size ({max_size}) is smaller than min_size ({min_size})")

    xyz = as_cloud(points)
    n = len(xyz)
    if n == 0:
        return ClusterResult()

    start = time.perf_counter()
    tree = KdTree(xyz)

    processed = np.zeros(n, dtype=bool)
    labels = np.full(n, -1, dtype=int)
    clusters = []
    dropped = 0

    for i in range(n):
        if processed[i]:
            continue

        processed[i] = True
        queue = deque([i])
        members = []

        while queue:
            j = queue.popleft()
            members.append(j)

            for k in tree.query_radius(xyz[j], tolerance):
                if not processed[k]:
                    processed[k] = True
                    queue.append(int(k))

        if min_size <= len(members) <= max_size:
            labels[members] = len(clusters)
            clusters.append(np.array(members, dtype=np.int64))
        else:
            dropped += 1

    cluster_sizes = [len(c) for c in clusters]
    noise_count = int((labels == -1).sum())

    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.debug(
        f"Clustering took {elapsed_ms:.1f} ms and found {len(clusters)} clusters "
        f"({dropped} dropped by size, {noise_count} points unassigned)"
    )

    return ClusterResult(
        clusters=clusters,
        labels=labels,
        num_clusters=len(clusters),
        cluster_sizes=cluster_sizes,
        noise_count=noise_count,
    )


def extract_clusters(
    points: np.ndarray,
    tolerance: float = 0.5,
    min_size: int = 10,
    max_size: int = 25000,
) -> List[np.ndarray]:
    return euclidean_cluster(points, tolerance, min_size, max_size).clusters
