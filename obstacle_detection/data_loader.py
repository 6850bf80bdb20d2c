import logging
import numpy as np
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _existing(file_path: PathLike) -> Path:
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Point cloud file not found: {file_path}")
    return file_path


def load_kitti_txt(file_path: PathLike) -> np.ndarray:
    """
    Load a KITTI LiDAR point cloud from a .txt file (x y z reflectance per line)
    """
    file_path = _existing(file_path)
    points = np.loadtxt(file_path, dtype=np.float32, ndmin=2)
    logger.debug(f"Loaded {len(points)} points from {file_path}")
    return points


def load_kitti_bin(file_path: PathLike) -> np.ndarray:
    """
    Load a KITTI velodyne .bin scan: packed float32 x, y, z, reflectance.
    """
    file_path = _existing(file_path)
    raw = np.fromfile(file_path, dtype=np.float32)
    if raw.size % 4:
        raise ValueError(f"{file_path} is not a KITTI scan: {raw.size} floats is not a multiple of 4")
    points = raw.reshape(-1, 4)
    logger.debug(f"Loaded {len(points)} points from {file_path}")
    return points


def load_pcd(file_path: PathLike) -> np.ndarray:
    """
    Load the x, y, z fields of an ASCII PCD file into an Nx3 array.
    """
    file_path = _existing(file_path)
    header = {}

    with open(file_path, "r") as f:
        lines = f.read().splitlines()

    body_start = len(lines)
    for i, line in enumerate(lines):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition(" ")
        header[key.upper()] = value.split()
        if key.upper() == "DATA":
            body_start = i + 1
            break
    body = lines[body_start:]

    data = header.get("DATA", [""])[0].lower()
    if data != "ascii":
        raise ValueError(f"Only ASCII PCD files are supported, {file_path} has DATA {data or 'missing'}")

    fields = [name.lower() for name in header.get("FIELDS", [])]
    counts = [int(c) for c in header.get("COUNT", ["1"] * len(fields))]
    missing = [axis for axis in "xyz" if axis not in fields]
    if missing:
        raise ValueError(f"{file_path} has no {', '.join(missing)} field")

    # Column position of each field once multi-count fields are expanded
    offsets = np.concatenate([[0], np.cumsum(counts)[:-1]])
    columns = [int(offsets[fields.index(axis)]) for axis in "xyz"]

    rows = [row.split() for row in body if row.strip()]
    if not rows:
        return np.zeros((0, 3))

    table = np.array(rows, dtype=np.float64)
    points = table[:, columns]
    logger.debug(f"Loaded {len(points)} points from {file_path}")
    return points


def save_pcd(file_path: PathLike, points: np.ndarray) -> Path:
    """
    Write an Nx3 cloud as an ASCII PCD v0.7 file.
    """
    file_path = Path(file_path)
    xyz = np.asarray(points, dtype=np.float64)
    xyz = xyz.reshape(0, 3) if xyz.size == 0 else xyz[:, :3]
    n = len(xyz)

    header = "\n".join([
        "# .PCD v0.7 - Point Cloud Data file format",
        "VERSION 0.7",
        "FIELDS x y z",
        "SIZE 4 4 4",
        "TYPE F F F",
        "COUNT 1 1 1",
        f"WIDTH {n}",
        "HEIGHT 1",
        "VIEWPOINT 0 0 0 1 0 0 0",
        f"POINTS {n}",
        "DATA ascii",
    ])

    with open(file_path, "w") as f:
        f.write(header + "\n")
        for x, y, z in xyz:
            f.write(f"{x:.8g} {y:.8g} {z:.8g}\n")

    logger.debug(f"Saved {n} points to {file_path}")
    return file_path


def stream_pcd(data_dir: PathLike) -> list[Path]:
    """
    List the .pcd files of a directory in ascending order so playback is chronological.
    """
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
        raise FileNotFoundError(f"Point cloud directory not found: {data_dir}")
    return sorted(data_dir.glob("*.pcd"))


def load_points(file_path: PathLike) -> np.ndarray:
    """
    Load a point cloud frame, picking the reader from the file extension.
    """
    suffix = Path(file_path).suffix.lower()
    if suffix == ".txt":
        return load_kitti_txt(file_path)
    if suffix == ".bin":
        return load_kitti_bin(file_path)
    if suffix == ".pcd":
        return load_pcd(file_path)
    raise ValueError(f"Unsupported point cloud format: {suffix or file_path}")


def discover_kitti_sequence(sequence_dir: PathLike) -> list[dict]:
    """
    Scans of a raw KITTI drive (velodyne_points/data, .txt or .bin), each
    paired with its left colour camera image when one was recorded.
    """
    drive = Path(sequence_dir)
    scans = [p for p in (drive / "velodyne_points" / "data").glob("*") if p.suffix in (".txt", ".bin")]
    images = drive / "image_02" / "data"

    def image_for(scan: Path):
        png = images / f"{scan.stem}.png"
        return png if png.exists() else None

    return [{"points": scan, "image": image_for(scan)} for scan in sorted(scans)]


def discover_frames(data_dir: PathLike) -> list[Path]:
    """
    Frame files of either a KITTI drive or a flat directory of .pcd scans.
    """
    frames = discover_kitti_sequence(data_dir)
    if frames:
        return [frame["points"] for frame in frames]
    return stream_pcd(data_dir)
