"""
LiDAR obstacle detection: RANSAC ground removal, Euclidean clustering and
bounding boxes for a single point cloud frame.
"""

from .errors import ObstacleDetectionError, InsufficientPointsError, EmptyClusterError
from .point_cloud import as_cloud, separate_clouds
from .kdtree import KdTree, build_kdtree
from .ransac import PlaneModel, LineModel, SegmentationResult, ransac_plane, ransac_line, segment_plane
from .clustering import ClusterResult, euclidean_cluster, extract_clusters
from .bounding_box import BoundingBox, bounding_box, bounding_boxes
from .preprocessing import voxel_downsample, crop_box, radial_outlier_removal, filter_cloud
from .data_loader import load_points, load_pcd, save_pcd, load_kitti_txt, load_kitti_bin
from .pipeline import PipelineParams, FrameResult, process_frame

__version__ = "0.1.0"
