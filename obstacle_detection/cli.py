import argparse
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from obstacle_detection.pipeline import (
    FrameResult,
    PipelineParams,
    run_frame_pipeline,
    run_sequence_pipeline,
)

logger = logging.getLogger(__name__)


def non_negative_float(value: str) -> float:
    number = float(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be non-negative, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lidar-obstacles",
        description="Detect obstacles in LiDAR frames: RANSAC ground removal, "
                    "Euclidean clustering and axis-aligned bounding boxes.",
    )
    parser.add_argument("input", type=Path,
                        help="Frame file (.txt, .bin, .pcd) or a directory of frames")

    filtering = parser.add_argument_group("filtering")
    filtering.add_argument("--voxel-size", type=non_negative_float, default=0.1,
                           help="Voxel grid size in meters, 0 disables downsampling")
    filtering.add_argument("--crop-min", type=float, nargs=3, metavar=("X", "Y", "Z"),
                           help="Lower corner of the region of interest")
    filtering.add_argument("--crop-max", type=float, nargs=3, metavar=("X", "Y", "Z"),
                           help="Upper corner of the region of interest")
    filtering.add_argument("--remove-outliers", action="store_true",
                           help="Drop isolated points before segmentation")

    ransac = parser.add_argument_group("ground segmentation")
    ransac.add_argument("--max-iterations", type=int, default=100)
    ransac.add_argument("--distance-tolerance", type=float, default=0.2)
    ransac.add_argument("--normal-threshold", type=float, default=None,
                        help="Reject planes whose |normal z| is below this value")

    clustering = parser.add_argument_group("clustering")
    clustering.add_argument("--cluster-tolerance", type=float, default=0.5)
    clustering.add_argument("--min-cluster-size", type=int, default=10)
    clustering.add_argument("--max-cluster-size", type=int, default=25000)

    parser.add_argument("--seed", type=int, default=None, help="Seed for RANSAC sampling")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log per-stage timings")
    return parser


def params_from_args(args: argparse.Namespace) -> PipelineParams:
    return PipelineParams(
        voxel_size=args.voxel_size if args.voxel_size > 0 else None,
        crop_min=tuple(args.crop_min) if args.crop_min else None,
        crop_max=tuple(args.crop_max) if args.crop_max else None,
        remove_outliers=args.remove_outliers,
        max_iterations=args.max_iterations,
        distance_tolerance=args.distance_tolerance,
        normal_threshold=args.normal_threshold,
        cluster_tolerance=args.cluster_tolerance,
        min_cluster_size=args.min_cluster_size,
        max_cluster_size=args.max_cluster_size,
        seed=args.seed,
    )


def format_result(result: FrameResult) -> str:
    lines = [
        f"{result.source}: {result.filtered_count} points, "
        f"{len(result.ground_points)} ground, {result.num_clusters} obstacles"
    ]
    if result.plane_model is not None:
        lines.append(f"  ground: {result.plane_model.equation_string}")
    else:
        lines.append("  ground: not found, all points kept as obstacles")
    for i, box in enumerate(result.boxes):
        lines.append(
            f"  box {i}: min ({box.x_min:.2f}, {box.y_min:.2f}, {box.z_min:.2f}) "
            f"max ({box.x_max:.2f}, {box.y_max:.2f}, {box.z_max:.2f})"
        )
    return "\n".join(lines)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        params = params_from_args(args)
    except ValueError as e:
        logger.error(str(e))
        return 2

    if args.input.is_dir():
        with tqdm(desc="frames", unit="frame", disable=args.verbose) as bar:
            def progress(done: int, total: int):
                bar.total = total
                bar.n = done
                bar.refresh()

            results = run_sequence_pipeline(args.input, params, progress_callback=progress)
        for result in results:
            print(format_result(result))
        return 0

    try:
        result = run_frame_pipeline(args.input, params)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    except ValueError as e:
        # InsufficientPointsError and unreadable frames
        logger.error(f"{args.input}: {e}")
        return 1
    print(format_result(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
