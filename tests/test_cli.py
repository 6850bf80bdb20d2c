import numpy as np
import pytest

from obstacle_detection.cli import build_parser, main, params_from_args
from obstacle_detection.data_loader import save_pcd

SCENE_ARGS = [
    "--voxel-size", "0",
    "--seed", "0",
    "--cluster-tolerance", "0.6",
    "--min-cluster-size", "5",
]


def test_single_frame(tmp_path, highway_scene, capsys):
    points, _ = highway_scene
    path = save_pcd(tmp_path / "frame.pcd", points)

    assert main([str(path)] + SCENE_ARGS) == 0

    out = capsys.readouterr().out
    assert "2 obstacles" in out
    assert out.count("box ") == 2


def test_directory(tmp_path, highway_scene, capsys):
    points, _ = highway_scene
    save_pcd(tmp_path / "0000.pcd", points)
    save_pcd(tmp_path / "0001.pcd", points)

    assert main([str(tmp_path)] + SCENE_ARGS) == 0
    assert capsys.readouterr().out.count("2 obstacles") == 2


def test_frame_too_small(tmp_path):
    path = save_pcd(tmp_path / "frame.pcd", np.array([[0.0, 0.0, 0.0]]))
    assert main([str(path)] + SCENE_ARGS) == 1


def test_flags_map_onto_params():
    args = build_parser().parse_args([
        "in.pcd", "--voxel-size", "0.2",
        "--crop-min", "-10", "-5", "-2", "--crop-max", "30", "5", "1",
        "--normal-threshold", "0.9",
    ])
    params = params_from_args(args)

    assert params.voxel_size == 0.2
    assert params.crop_min == (-10.0, -5.0, -2.0)
    assert params.crop_max == (30.0, 5.0, 1.0)
    assert params.normal_threshold == 0.9
    assert params.seed is None


def test_ground_plane_is_reported(tmp_path, highway_scene, capsys):
    points, _ = highway_scene
    path = save_pcd(tmp_path / "frame.pcd", points)

    assert main([str(path)] + SCENE_ARGS) == 0
    assert "ground: " in capsys.readouterr().out


def test_missing_frame(tmp_path):
    assert main([str(tmp_path / "nope.pcd")] + SCENE_ARGS) == 1


def test_unreadable_frame(tmp_path):
    binary = tmp_path / "frame.pcd"
    binary.write_text("VERSION 0.7\nFIELDS x y z\nPOINTS 0\nDATA binary\n")
    assert main([str(binary)] + SCENE_ARGS) == 1

    unknown = tmp_path / "frame.ply"
    unknown.write_text("ply\n")
    assert main([str(unknown)] + SCENE_ARGS) == 1


def test_negative_voxel_size_is_rejected():
    with pytest.raises(SystemExit) as info:
        build_parser().parse_args(["in.pcd", "--voxel-size", "-0.5"])
    assert info.value.code == 2
