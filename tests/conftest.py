import numpy as np
import pytest


class ScriptedRng:
    """Stands in for numpy's Generator, handing out fixed RANSAC samples."""

    def __init__(self, samples):
        self._samples = iter(samples)

    def choice(self, n, size, replace=False):
        return np.array(next(self._samples))


def _box_points(center, half_extent, z_range, step=0.25):
    cx, cy = center
    xs = np.arange(cx - half_extent, cx + half_extent + 1e-9, step)
    ys = np.arange(cy - half_extent, cy + half_extent + 1e-9, step)
    zs = np.arange(z_range[0], z_range[1] + 1e-9, step)
    grid = np.meshgrid(xs, ys, zs, indexing="ij")
    return np.stack([g.ravel() for g in grid], axis=1)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def highway_scene():
    """
    Flat ground on z = 0 plus two car-sized blocks of points standing on it.
    Returns (points, car_centers).
    """
    xs = np.arange(-10.0, 10.0 + 1e-9, 0.5)
    gx, gy = np.meshgrid(xs, xs, indexing="ij")
    ground = np.stack([gx.ravel(), gy.ravel(), np.zeros(gx.size)], axis=1)

    car1 = _box_points((5.0, 0.0), 1.0, (0.5, 1.5))
    car2 = _box_points((-5.0, 5.0), 1.0, (0.5, 1.5))

    points = np.vstack([ground, car1, car2])
    return points, [(5.0, 0.0, 1.0), (-5.0, 5.0, 1.0)]
