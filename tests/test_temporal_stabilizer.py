import math
import unittest

import numpy as np

from contact_collector import ContactSample
from load_config import ContactParams
from temporal_stabilizer import (
    NO_CONTACTS,
    SPARSE,
    VERTICAL_SPREAD,
    ContactState,
    TemporalStabilizer,
    centroid_of,
)


def patch(cx=0.0, cz=0.0, n=8, y=0.0):
    return [ContactSample(cx + 0.1 * math.cos(a), y, cz + 0.1 * math.sin(a))
            for a in np.linspace(0, 2 * math.pi, n, endpoint=False)]


class TestQualityGates(unittest.TestCase):
    def setUp(self):
        self.stabilizer = TemporalStabilizer(ContactParams())

    def test_good_set(self):
        flags = self.stabilizer.evaluate_quality(patch())
        self.assertEqual(flags.reasons, [])
        self.assertFalse(flags.degraded or flags.rejected)

    def test_sparse_is_degraded(self):
        flags = self.stabilizer.evaluate_quality(patch(n=3))
        self.assertEqual(flags.reasons, [SPARSE])
        self.assertTrue(flags.degraded)
        self.assertFalse(flags.rejected)

    def test_vertical_spread_rejected(self):
        points = patch(n=4) + [ContactSample(0.0, 0.05, 0.0), ContactSample(0.0, -0.05, 0.0)]
        flags = self.stabilizer.evaluate_quality(points)
        self.assertIn(VERTICAL_SPREAD, flags.reasons)
        self.assertTrue(flags.rejected)

    def test_empty_always_flagged(self):
        flags = TemporalStabilizer(ContactParams.for_soft_body()).evaluate_quality([])
        self.assertEqual(flags.reasons, [NO_CONTACTS])
        self.assertTrue(flags.rejected)


class TestStabilize(unittest.TestCase):
    def setUp(self):
        self.params = ContactParams()
        self.stabilizer = TemporalStabilizer(self.params)
        self.state = ContactState()

    def test_first_frame_unsmoothed(self):
        result = self.stabilizer.stabilize(patch(1.0, 2.0), self.state)
        np.testing.assert_allclose(result.centroid, [1.0, 0.0, 2.0], atol=1e-12)
        np.testing.assert_allclose(self.state.prev_centroid, result.centroid)

    def test_ema(self):
        self.stabilizer.stabilize(patch(0.0, 0.0), self.state)
        result = self.stabilizer.stabilize(patch(1.0, 0.0), self.state)
        np.testing.assert_allclose(result.centroid, [0.5, 0.0, 0.0], atol=1e-12)

        # points themselves are not smoothed
        np.testing.assert_allclose(centroid_of(result.points), [1.0, 0.0, 0.0], atol=1e-12)

    def test_time_constant(self):
        params = ContactParams(tau_centroid=0.1)
        stabilizer = TemporalStabilizer(params)
        self.assertAlmostEqual(stabilizer.smoothing_factor(0.1), math.exp(-1.0))
        self.assertEqual(stabilizer.smoothing_factor(None), params.alpha_centroid)

    def test_hold_last(self):
        good = patch(1.0, 1.0)
        accepted = self.stabilizer.stabilize(good, self.state)

        held = self.stabilizer.stabilize([], self.state)
        self.assertTrue(held.flags.held)
        self.assertEqual(held.points, accepted.points)
        np.testing.assert_array_equal(held.centroid, accepted.centroid)

        # bounded by n_hold
        for _ in range(self.params.n_hold - 1):
            self.assertTrue(self.stabilizer.stabilize([], self.state).flags.held)
        exhausted = self.stabilizer.stabilize([], self.state)
        self.assertFalse(exhausted.flags.held)
        self.assertEqual(exhausted.points, [])
        # centroid falls back to the last one
        np.testing.assert_array_equal(exhausted.centroid, accepted.centroid)
        # an empty baseline is never held
        self.assertFalse(self.stabilizer.stabilize([], self.state).flags.held)

    def test_hold_rejected_spread(self):
        accepted = self.stabilizer.stabilize(patch(), self.state)
        noisy = patch(n=4) + [ContactSample(0.0, 0.05, 0.0), ContactSample(0.0, -0.05, 0.0)]
        result = self.stabilizer.stabilize(noisy, self.state)
        self.assertTrue(result.flags.held)
        self.assertEqual(result.points, accepted.points)

    def test_no_hold_without_history(self):
        result = self.stabilizer.stabilize([], self.state)
        self.assertFalse(result.flags.held)
        np.testing.assert_array_equal(result.centroid, np.zeros(3))

    def test_hold_disabled(self):
        stabilizer = TemporalStabilizer(ContactParams(enable_hold_last=False))
        stabilizer.stabilize(patch(), self.state)
        result = stabilizer.stabilize([], self.state)
        self.assertFalse(result.flags.held)
        self.assertEqual(result.points, [])

    def test_reset(self):
        self.stabilizer.stabilize(patch(), self.state)
        self.state.reset()
        self.assertIsNone(self.state.prev_centroid)
        self.assertIsNone(self.state.prev_accepted_points)
        self.assertEqual(self.state.hold_frames, 0)


if __name__ == "__main__":
    unittest.main(verbosity=2, failfast=True)
