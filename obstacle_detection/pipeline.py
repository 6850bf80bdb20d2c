import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union
import numpy as np

from obstacle_detection.bounding_box import BoundingBox, bounding_boxes
from obstacle_detection.clustering import euclidean_cluster
from obstacle_detection.data_loader import discover_frames, load_points
from obstacle_detection.errors import InsufficientPointsError
from obstacle_detection.point_cloud import as_cloud
from obstacle_detection.preprocessing import filter_cloud, radial_outlier_removal
from obstacle_detection.ransac import PlaneModel, segment_plane

logger = logging.getLogger(__name__)

Vector3 = Tuple[float, float, float]


@dataclass
class PipelineParams:
    """Parameters for the obstacle detection pipeline."""
    # Filtering, None disables a step
    voxel_size: Optional[float] = 0.1
    crop_min: Optional[Vector3] = None
    crop_max: Optional[Vector3] = None
    remove_outliers: bool = False
    radius_scale: float = 0.03
    min_neighbors: int = 5
    # RANSAC
    max_iterations: int = 100
    distance_tolerance: float = 0.2
    normal_threshold: Optional[float] = None
    # Clustering
    cluster_tolerance: float = 0.5
    min_cluster_size: int = 10
    max_cluster_size: int = 25000
    # Random source for RANSAC
    seed: Optional[int] = None

    def __post_init__(self):
        if self.voxel_size is not None and self.voxel_size <= 0:
            raise ValueError(f"voxel_size must be positive, got {self.voxel_size}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be positive, got {self.max_iterations}")
        if self.distance_tolerance < 0:
            raise ValueError(f"distance_tolerance must be non-negative, got {self.distance_tolerance}")
        if self.cluster_tolerance < 0:
            raise ValueError(f"cluster_tolerance must be non-negative, got {self.cluster_tolerance}")
        if self.min_cluster_size < 1:
            raise ValueError(f"min_cluster_size must be at least 1, got {self.min_cluster_size}")
        if self.max_cluster_size < self.min_cluster_size:
            raise ValueError(
                f"max_cluster_size ({self.max_cluster_size}) is smaller than "
                f"min_cluster_size ({self.min_cluster_size})"
            )

    def make_rng(self) -> np.random.Generator:
        return np.random.default_rng(self.seed)


@dataclass
class FrameResult:
    """Result of processing a single frame."""
    # Raw/filtering
    raw_count: int
    filtered_points: np.ndarray

    # Ground segmentation
    plane_model: Optional[PlaneModel]
    ground_points: np.ndarray
    obstacle_points: np.ndarray

    # Clustering, indices refer to obstacle_points
    clusters: List[np.ndarray]
    cluster_labels: np.ndarray
    noise_count: int

    boxes: List[BoundingBox] = field(default_factory=list)
    source: Optional[str] = None

    @property
    def filtered_count(self) -> int:
        return len(self.filtered_points)

    @property
    def num_clusters(self) -> int:
        return len(self.clusters)

    @property
    def ground_removed(self) -> bool:
        return self.plane_model is not None


def process_frame(
    points: np.ndarray,
    params: PipelineParams,
    rng: Optional[np.random.Generator] = None,
) -> FrameResult:
    """
    Run filter -> plane segmentation -> clustering -> boxes on one frame.
    Raises InsufficientPointsError if filtering leaves fewer than 3 points.
    """
    start = time.perf_counter()
    if rng is None:
        rng = params.make_rng()

    raw = as_cloud(points)

    filtered = filter_cloud(
        raw,
        voxel_size=params.voxel_size,
        min_point=params.crop_min,
        max_point=params.crop_max,
    )
    if params.remove_outliers:
        filtered = as_cloud(radial_outlier_removal(
            filtered,
            radius_scale=params.radius_scale,
            min_neighbors=params.min_neighbors,
        ))

    segmentation = segment_plane(
        filtered,
        max_iterations=params.max_iterations,
        distance_tolerance=params.distance_tolerance,
        rng=rng,
        normal_threshold=params.normal_threshold,
    )
    obstacles = segmentation.obstacle_cloud

    cluster_result = euclidean_cluster(
        obstacles,
        tolerance=params.cluster_tolerance,
        min_size=params.min_cluster_size,
        max_size=params.max_cluster_size,
    )
    boxes = bounding_boxes(cluster_result.clusters, obstacles)

    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.debug(f"Frame processed in {elapsed_ms:.1f} ms: {len(boxes)} obstacles")

    return FrameResult(
        raw_count=len(raw),
        filtered_points=filtered,
        plane_model=segmentation.plane,
        ground_points=segmentation.plane_cloud,
        obstacle_points=obstacles,
        clusters=cluster_result.clusters,
        cluster_labels=cluster_result.labels,
        noise_count=cluster_result.noise_count,
        boxes=boxes,
    )


def run_frame_pipeline(
    points_path: Union[str, Path],
    params: PipelineParams,
    rng: Optional[np.random.Generator] = None,
) -> FrameResult:
    """
    Load one frame from disk and run the full pipeline on it.
    """
    result = process_frame(load_points(points_path), params, rng=rng)
    result.source = str(points_path)
    return result


def run_sequence_pipeline(
    seq_dir: Union[str, Path],
    params: PipelineParams,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> list[FrameResult]:
    """
    Process all frames in a directory in chronological order.
    Frames with too few points to segment, or that cannot be parsed,
    are logged and skipped.
    """
    frames = discover_frames(seq_dir)
    if not frames:
        logger.warning(f"No point cloud frames found in {seq_dir}")
        return []

    rng = params.make_rng()
    results = []

    for i, frame in enumerate(frames):
        if progress_callback:
            progress_callback(i, len(frames))

        try:
            result = run_frame_pipeline(frame, params, rng=rng)
        except InsufficientPointsError as e:
            logger.warning(f"Skipping {frame}: {e}")
            continue
        except ValueError as e:
            logger.warning(f"Skipping unreadable frame {frame}: {e}")
            continue

        results.append(result)

    if progress_callback:
        progress_callback(len(frames), len(frames))

    return results
