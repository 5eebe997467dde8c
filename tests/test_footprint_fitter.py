import math
import unittest

import numpy as np

from contact_collector import ContactSample
from footprint_fitter import (
    FITTERS,
    compute_aabb,
    compute_footprint_box,
    compute_hybrid,
    compute_ombb,
    fit_at_angle,
)
from load_config import FootprintConfig
from math_utils import rotate_points_2d


def to_samples(xz, y=0.0):
    return [ContactSample(float(x), y, float(z)) for x, z in xz]


def quarter_turn_offset(theta, expected):
    # distance between theta and expected modulo the box symmetry
    r = math.fmod(abs(theta - expected), math.pi / 2)
    return min(r, math.pi / 2 - r)


class TestRotatedSquare(unittest.TestCase):
    """Four corners of a unit square rotated by 30 degrees."""

    def setUp(self):
        corners = np.array([[-0.5, -0.5], [0.5, -0.5], [0.5, 0.5], [-0.5, 0.5]])
        self.points = to_samples(rotate_points_2d(corners, math.radians(30)) + [2.0, -1.0])

    def test_hybrid_recovers_angle(self):
        box = compute_footprint_box(self.points, 'hybrid')
        self.assertLess(quarter_turn_offset(box.theta, math.radians(30)), 1e-3)
        self.assertAlmostEqual(box.width, 1.0, places=3)
        self.assertAlmostEqual(box.height, 1.0, places=3)
        self.assertAlmostEqual(box.area, 1.0, places=3)
        np.testing.assert_allclose(box.center, [2.0, 0.0, -1.0], atol=1e-6)

    def test_ombb_exact(self):
        box = compute_footprint_box(self.points, 'ombb')
        self.assertLess(quarter_turn_offset(box.theta, math.radians(30)), 1e-9)
        self.assertAlmostEqual(box.area, 1.0)

    def test_aabb_is_larger(self):
        box = compute_footprint_box(self.points, 'aabb')
        self.assertEqual(box.theta, 0.0)
        self.assertGreater(box.area, 1.8)


class TestOutlierTrim(unittest.TestCase):
    """50 points in a 2x1 rectangle plus 5 far outliers."""

    def setUp(self):
        xs, zs = np.meshgrid(np.linspace(-1.0, 1.0, 10), np.linspace(-0.5, 0.5, 5))
        grid = np.column_stack([xs.ravel(), zs.ravel()])
        outliers = np.array([[-12.0, 0.0], [-10.0, 0.1], [10.0, 0.0], [11.0, -0.1], [0.0, 6.0]])
        self.points = to_samples(np.vstack([grid, outliers]))

    def test_aabb_dominated_by_outliers(self):
        box = compute_footprint_box(self.points, 'aabb')
        self.assertGreater(box.area, 50 * 2.0)

    def test_hybrid_trims(self):
        box = compute_footprint_box(self.points, 'hybrid')
        self.assertLess(quarter_turn_offset(box.theta, 0.0), 1e-6)
        short, long = sorted([box.width, box.height])
        self.assertLess(abs(long - 2.0), 0.2)
        self.assertLess(abs(short - 1.0), 0.1)


class TestStrategies(unittest.TestCase):
    def setUp(self):
        rng = np.random.default_rng(42)
        self.config = FootprintConfig(hybrid_quantile=0.0)
        local = rng.uniform([-0.6, -0.2], [0.6, 0.2], size=(40, 2))
        self.points = rotate_points_2d(local, 0.7)

    def test_area_dominance(self):
        aabb = compute_aabb(self.points, self.config).area
        hybrid = compute_hybrid(self.points, self.config).area
        ombb = compute_ombb(self.points, self.config).area
        self.assertLessEqual(hybrid, aabb + 1e-12)
        self.assertLessEqual(ombb, hybrid + 1e-9)

    def test_every_strategy_covers_points(self):
        for name, fitter in FITTERS.items():
            with self.subTest(algorithm=name):
                box = fitter(self.points, self.config)
                local = rotate_points_2d(self.points - [box.center_x, box.center_z], -box.theta)
                self.assertTrue(np.all(np.abs(local[:, 0]) <= box.width / 2 + 1e-9))
                self.assertTrue(np.all(np.abs(local[:, 1]) <= box.height / 2 + 1e-9))

    def test_refinement_respects_size_floor(self):
        # thin segment just off the axis: turning to its true angle only shrinks the clamped side
        t = np.linspace(-0.5, 0.5, 20)
        a = math.radians(0.5)
        segment = np.column_stack([t * math.cos(a), t * math.sin(a)])
        aabb = compute_aabb(segment, self.config)
        hybrid = compute_hybrid(segment, self.config)
        self.assertLessEqual(hybrid.area, aabb.area + 1e-12)
        self.assertEqual(hybrid.theta, 0.0)

    def test_min_size(self):
        box = fit_at_angle([[0.0, 0.0], [0.01, 0.0]], 0.0, 0.0, 0.05)
        self.assertEqual(box.width, 0.05)
        self.assertEqual(box.height, 0.05)

    def test_degenerate_inputs(self):
        for name, fitter in FITTERS.items():
            with self.subTest(algorithm=name):
                box = fitter([[1.0, 2.0]], self.config)
                self.assertEqual(box.width, self.config.min_contact_size)
                self.assertAlmostEqual(box.center_x, 1.0)


class TestComputeFootprintBox(unittest.TestCase):
    def setUp(self):
        self.points = to_samples([(0, 0), (1, 0), (1, 0.5), (0, 0.5)], y=0.02)

    def test_unknown_algorithm(self):
        with self.assertRaises(ValueError):
            compute_footprint_box(self.points, 'convex')

    def test_empty(self):
        self.assertIsNone(compute_footprint_box([], 'hybrid'))

    def test_frame(self):
        box = compute_footprint_box(self.points, 'aabb', contact_height=0.0)
        self.assertEqual(box.center[1], 0.0)
        self.assertEqual(box.depth, FootprintConfig().obb_depth)
        np.testing.assert_allclose(np.cross(box.e1, box.e2), box.n, atol=1e-12)

        box = compute_footprint_box(self.points, 'aabb')
        self.assertAlmostEqual(box.center[1], 0.02)

    def test_array_input(self):
        xyz = np.array([[p.x, p.y, p.z] for p in self.points])
        box = compute_footprint_box(xyz, 'aabb')
        self.assertAlmostEqual(box.width, 1.0)
        self.assertAlmostEqual(box.height, 0.5)

    def test_slow_body_keeps_previous_angle(self):
        first = compute_footprint_box(self.points, 'hybrid')
        rotated = to_samples(rotate_points_2d([[p.x, p.z] for p in self.points], 0.6))
        box = compute_footprint_box(rotated, 'hybrid', first, None, first.theta,
                                    velocity=(0.01, 0.0, 0.0), angular_velocity=(0.0, 0.0, 0.0))
        self.assertEqual(box.theta, first.theta)

        moving = compute_footprint_box(rotated, 'hybrid', first, None, first.theta,
                                       velocity=(1.0, 0.0, 0.0))
        self.assertLess(quarter_turn_offset(moving.theta, 0.6), 1e-3)

    def test_previous_velocity_used_when_unknown(self):
        first = compute_footprint_box(self.points, 'hybrid')
        rotated = to_samples(rotate_points_2d([[p.x, p.z] for p in self.points], 0.6))
        box = compute_footprint_box(rotated, 'hybrid', first, (0.0, 0.0, 0.01), first.theta)
        self.assertEqual(box.theta, first.theta)

    def test_align_to_velocity(self):
        config = FootprintConfig(align_to_velocity=True)
        box = compute_footprint_box(self.points, 'hybrid', velocity=(1.0, 0.0, 1.0), config=config)
        self.assertAlmostEqual(box.theta, math.pi / 4)


if __name__ == "__main__":
    unittest.main(verbosity=2, failfast=True)
