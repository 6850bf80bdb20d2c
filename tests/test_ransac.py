import logging

import numpy as np
import pytest

from conftest import ScriptedRng
from obstacle_detection.errors import InsufficientPointsError
from obstacle_detection.ransac import (
    fit_line_from_points,
    fit_plane_from_points,
    ransac_line,
    ransac_plane,
    segment_plane,
)


def test_fit_plane_through_three_points():
    plane = fit_plane_from_points(
        np.array([0.0, 0.0, 2.0]), np.array([1.0, 0.0, 2.0]), np.array([0.0, 1.0, 2.0])
    )
    assert np.allclose(plane.normal, [0.0, 0.0, 1.0])
    assert plane.d == pytest.approx(-2.0)
    assert plane.coefficients == pytest.approx((0.0, 0.0, 1.0, -2.0))
    assert np.allclose(plane.distance_to_points(np.array([[3.0, 4.0, 5.0]])), [3.0])


def test_fit_plane_rejects_collinear_points():
    with pytest.raises(ValueError):
        fit_plane_from_points(np.zeros(3), np.array([1.0, 1.0, 1.0]), np.array([2.0, 2.0, 2.0]))


def test_too_few_points():
    with pytest.raises(InsufficientPointsError) as info:
        ransac_plane(np.zeros((2, 3)))
    assert info.value.required == 3
    assert info.value.actual == 2
    with pytest.raises(ValueError):
        segment_plane(np.zeros((0, 3)))


def test_invalid_arguments(rng):
    points = rng.normal(size=(10, 3))
    with pytest.raises(ValueError):
        ransac_plane(points, max_iterations=0)
    with pytest.raises(ValueError):
        ransac_plane(points, distance_tolerance=-0.1)


def test_noise_free_plane_is_all_inliers(rng):
    xy = rng.uniform(-10, 10, size=(200, 2))
    z = 0.5 * xy[:, 0] + 0.2 * xy[:, 1] + 1.0
    points = np.column_stack([xy, z])

    plane, inliers = ransac_plane(points, max_iterations=50, distance_tolerance=1e-6, rng=rng)

    assert plane is not None
    assert inliers.tolist() == list(range(200))


def test_generous_tolerance_partitions_cloud(rng):
    points = rng.normal(size=(60, 3))
    result = segment_plane(points, max_iterations=20, distance_tolerance=100.0, rng=rng)

    assert len(result.plane_cloud) >= 3
    assert len(result.plane_cloud) + len(result.obstacle_cloud) == len(points)
    assert len(np.unique(result.inliers)) == len(result.inliers)

    mask = np.zeros(len(points), dtype=bool)
    mask[result.inliers] = True
    assert np.array_equal(result.plane_cloud, points[mask])
    assert np.array_equal(result.obstacle_cloud, points[~mask])


def test_first_plane_wins_ties():
    lower = [[0, 0, 0], [1, 0, 0], [0, 1, 0], [1, 1, 0]]
    upper = [[0, 0, 10], [1, 0, 10], [0, 1, 10], [1, 1, 10]]
    points = np.array(lower + upper, dtype=float)

    _, inliers = ransac_plane(points, 2, 0.1, rng=ScriptedRng([[0, 1, 2], [4, 5, 6]]))
    assert inliers.tolist() == [0, 1, 2, 3]

    _, inliers = ransac_plane(points, 2, 0.1, rng=ScriptedRng([[4, 5, 6], [0, 1, 2]]))
    assert inliers.tolist() == [4, 5, 6, 7]


def test_larger_plane_replaces_earlier_one():
    lower = [[0, 0, 0], [1, 0, 0], [0, 1, 0]]
    upper = [[0, 0, 10], [1, 0, 10], [0, 1, 10], [1, 1, 10]]
    points = np.array(lower + upper, dtype=float)

    _, inliers = ransac_plane(points, 2, 0.1, rng=ScriptedRng([[0, 1, 2], [3, 4, 5]]))
    assert inliers.tolist() == [3, 4, 5, 6]


def test_collinear_cloud_is_degenerate(rng, caplog):
    points = np.column_stack([np.arange(20.0), np.arange(20.0), np.zeros(20)])

    with caplog.at_level(logging.WARNING, logger="obstacle_detection.ransac"):
        result = segment_plane(points, max_iterations=30, distance_tolerance=0.5, rng=rng)

    assert result.is_degenerate
    assert result.inliers.size == 0
    assert len(result.plane_cloud) == 0
    assert np.array_equal(result.obstacle_cloud, points)
    assert "Could not estimate a plane" in caplog.text


def test_normal_threshold_rejects_walls(rng):
    # Vertical wall x = 3
    yz = rng.uniform(-5, 5, size=(50, 2))
    wall = np.column_stack([np.full(50, 3.0), yz])

    plane, inliers = ransac_plane(wall, 20, 0.1, rng=rng, normal_threshold=0.9)
    assert plane is None
    assert inliers.size == 0

    plane, inliers = ransac_plane(wall, 20, 0.1, rng=rng)
    assert plane is not None
    assert len(inliers) == 50


def test_ground_recovered_among_outliers():
    recovered = []
    rejected = []

    for seed in range(10):
        data_rng = np.random.default_rng(1000 + seed)
        # Ten points scattered along the line y = x on the ground
        i = np.arange(-5, 5)
        scatter = 0.6 * data_rng.uniform(-1, 1, size=(10, 2))
        ground = np.column_stack([i + scatter[:, 0], i + scatter[:, 1], np.zeros(10)])
        # Ten outliers above the ground
        outliers = np.column_stack([
            data_rng.uniform(-5, 5, size=(10, 2)),
            data_rng.uniform(2, 5, size=10),
        ])
        points = np.vstack([ground, outliers])

        _, inliers = ransac_plane(points, 100, 0.2, rng=np.random.default_rng(seed))

        recovered.append(np.count_nonzero(inliers < 10) / 10)
        rejected.append(1 - np.count_nonzero(inliers >= 10) / 10)

    assert np.mean(recovered) >= 0.8
    assert np.mean(rejected) >= 0.7


def test_seeded_runs_are_reproducible(rng):
    points = rng.normal(size=(100, 3))
    _, first = ransac_plane(points, 30, 0.3, rng=np.random.default_rng(7))
    _, second = ransac_plane(points, 30, 0.3, rng=np.random.default_rng(7))
    assert np.array_equal(first, second)


def test_fit_line():
    line = fit_line_from_points(np.array([0.0, 1.0]), np.array([1.0, 3.0]))
    assert np.allclose(line.distance_to_points(np.array([[2.0, 5.0], [0.0, 0.0]])),
                       [0.0, 1.0 / np.sqrt(5.0)])
    with pytest.raises(ValueError):
        fit_line_from_points(np.array([1.0, 1.0]), np.array([1.0, 1.0]))


def test_ransac_line_finds_line(rng):
    x = np.arange(10.0)
    line_points = np.column_stack([x, 2 * x + 1])
    outliers = np.array([[0.0, 10.0], [5.0, -10.0], [9.0, 30.0]])
    points = np.vstack([line_points, outliers])

    line, inliers = ransac_line(points, max_iterations=100, distance_tolerance=0.01, rng=rng)

    assert line is not None
    assert inliers.tolist() == list(range(10))


def test_ransac_line_needs_two_points():
    with pytest.raises(InsufficientPointsError):
        ransac_line(np.array([[1.0, 2.0]]))


@pytest.mark.parametrize("samples", [
    [[0, 1, 2], [3, 4, 5]],
    [[3, 4, 5], [0, 1, 2]],
])
def test_collinear_sample_scores_nothing_among_valid_ones(samples):
    # Indices 0-2 lie on the z axis, 3-6 on the ground
    points = np.array([
        [0.0, 0.0, 5.0], [0.0, 0.0, 6.0], [0.0, 0.0, 7.0],
        [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [1.0, 1.0, 0.0], [3.0, 2.0, 0.0],
    ])

    plane, inliers = ransac_plane(points, 2, 0.1, rng=ScriptedRng(samples))

    assert np.allclose(np.abs(plane.normal), [0.0, 0.0, 1.0])
    assert inliers.tolist() == [3, 4, 5, 6]


def test_plane_equation_string():
    plane = fit_plane_from_points(
        np.array([0.0, 0.0, 1.0]), np.array([1.0, 0.0, 1.0]), np.array([0.0, 1.0, 1.0])
    )
    assert plane.equation_string == "0.0000x + 0.0000y + 1.0000z + -1.0000 = 0"
