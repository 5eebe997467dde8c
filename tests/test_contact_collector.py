import unittest

import numpy as np

from contact_collector import ContactCandidateCollector, body_velocity
from load_config import SOFT, ContactParams
from physics_engine import Capability, InMemoryEngine, Manifold, ManifoldPoint, SoftNode


def contact(x, z, y=0.0, distance=0.0, normal=(0.0, 1.0, 0.0)):
    return ManifoldPoint((x, y, z), (x, y, z), normal, distance)


class TestRigidCollection(unittest.TestCase):
    def setUp(self):
        self.params = ContactParams()

    def test_distance_filter(self):
        engine = InMemoryEngine(manifolds=[
            Manifold('ground', 'box', (contact(0, 0, distance=0.001),
                                       contact(1, 0, distance=0.02),
                                       contact(2, 0, distance=None))),
        ])
        result = ContactCandidateCollector(self.params).collect(engine, 'box')
        self.assertEqual([p.x for p in result.candidates], [0.0, 2.0])
        self.assertEqual(result.manifold_contacts, 2)

        unfiltered = ContactCandidateCollector(ContactParams(enable_distance_filter=False))
        self.assertEqual(len(unfiltered.collect(engine, 'box').candidates), 3)

    def test_only_tracked_body(self):
        engine = InMemoryEngine(manifolds=[
            Manifold('ground', 'other', (contact(5, 5),)),
            Manifold('box', 'ground', (contact(1, 1),)),
        ])
        result = ContactCandidateCollector(self.params).collect(engine, 'box')
        self.assertEqual(len(result.candidates), 1)
        self.assertEqual(result.candidates[0].x, 1.0)

    def test_limits(self):
        points = tuple(contact(i * 0.01, 0) for i in range(10))
        engine = InMemoryEngine(manifolds=[Manifold('ground', 'box', points)] * 3)

        capped = ContactCandidateCollector(ContactParams(n_target=4)).collect(engine, 'box')
        self.assertEqual(len(capped.candidates), 4)

        one_manifold = ContactCandidateCollector(ContactParams(max_manifolds=1)).collect(engine, 'box')
        self.assertEqual(len(one_manifold.candidates), 10)

    def test_subset_of_engine_positions(self):
        rng = np.random.default_rng(42)
        points = tuple(contact(x, z, y=y, distance=d)
                       for x, y, z, d in rng.uniform(-0.01, 0.01, size=(30, 4)))
        engine = InMemoryEngine(manifolds=[Manifold('ground', 'box', points)])
        reported = {p.position_on_b for p in points}

        result = ContactCandidateCollector(self.params).collect(engine, 'box')
        self.assertGreater(len(result.candidates), 0)
        for p in result.candidates:
            self.assertIn((p.x, p.y, p.z), reported)

    def test_average_normal(self):
        engine = InMemoryEngine(manifolds=[
            Manifold('ground', 'box', (contact(0, 0, normal=(0.0, -1.0, 0.0)),
                                       contact(1, 0, normal=(0.0, -1.0, 0.0)))),
        ])
        result = ContactCandidateCollector(self.params).collect(engine, 'box')
        np.testing.assert_allclose(result.average_normal(self.params.ground_normal), [0.0, 1.0, 0.0])
        np.testing.assert_allclose(result.average_position(), [0.5, 0.0, 0.0])

        empty = ContactCandidateCollector(self.params).collect(InMemoryEngine(), 'box')
        np.testing.assert_allclose(empty.average_normal(self.params.ground_normal), [0.0, 1.0, 0.0])


class TestSoftCollection(unittest.TestCase):
    def setUp(self):
        self.params = ContactParams(body_kind=SOFT, enable_velocity_gate=False)
        self.nodes = [
            SoftNode((0.0, 0.003, 0.0)),
            SoftNode((0.1, 0.007, 0.0)),
            SoftNode((0.2, 0.020, 0.0), velocity=(0.0, -0.1, 0.0)),
        ]

    def test_signed_distance(self):
        engine = InMemoryEngine(soft_nodes={'blob': self.nodes})
        result = ContactCandidateCollector(self.params).collect(engine, 'blob')
        self.assertEqual([p.x for p in result.candidates], [0.0])
        np.testing.assert_allclose(result.signed_distances, [0.003, 0.007, 0.020])
        self.assertEqual(result.node_contacts, 1)

    def test_hysteresis_drops_node_inside_exit_band(self):
        # d_enter < sd <= d_exit is not a contact, even if it was one last frame
        engine = InMemoryEngine(soft_nodes={'blob': [SoftNode((0.0, 0.008, 0.0))]})
        result = ContactCandidateCollector(self.params).collect(engine, 'blob', np.array([0.003]))
        self.assertEqual(len(result.candidates), 0)

        engine = InMemoryEngine(soft_nodes={'blob': self.nodes})
        prev = np.array([0.003, 0.003, 0.003])
        result = ContactCandidateCollector(self.params).collect(engine, 'blob', prev)
        self.assertEqual([p.x for p in result.candidates], [0.0])

        # mismatched history is ignored
        result = ContactCandidateCollector(self.params).collect(engine, 'blob', np.zeros(5))
        self.assertEqual(len(result.candidates), 1)

    def test_velocity_gate(self):
        params = ContactParams(body_kind=SOFT)
        engine = InMemoryEngine(soft_nodes={'blob': self.nodes})
        result = ContactCandidateCollector(params).collect(engine, 'blob')
        self.assertEqual([p.x for p in result.candidates], [0.0, 0.2])

        # no node velocities: gate is skipped
        limited = InMemoryEngine(soft_nodes={'blob': self.nodes},
                                 capabilities=[Capability.NODE_NORMAL, Capability.CONTACT_DISTANCE])
        result = ContactCandidateCollector(params).collect(limited, 'blob')
        self.assertEqual([p.x for p in result.candidates], [0.0])

    def test_rigid_body_ignores_nodes(self):
        engine = InMemoryEngine(soft_nodes={'blob': self.nodes})
        result = ContactCandidateCollector(ContactParams()).collect(engine, 'blob')
        self.assertEqual(result.candidates, [])
        self.assertIsNone(result.signed_distances)


class TestBodyVelocity(unittest.TestCase):
    def test_rigid_and_soft(self):
        nodes = [SoftNode((0, 0, 0), velocity=(1.0, 0.0, 0.0)), SoftNode((0, 0, 0), velocity=(3.0, 0.0, 0.0))]
        engine = InMemoryEngine(soft_nodes={'blob': nodes}, linear_velocities={'box': (0.0, 0.0, 2.0)})
        np.testing.assert_allclose(body_velocity(engine, 'blob', True), [2.0, 0.0, 0.0])
        np.testing.assert_allclose(body_velocity(engine, 'box', False), [0.0, 0.0, 2.0])
        self.assertIsNone(body_velocity(engine, 'missing', False))

        limited = InMemoryEngine(linear_velocities={'box': (0.0, 0.0, 2.0)}, capabilities=[])
        self.assertIsNone(body_velocity(limited, 'box', False))


if __name__ == "__main__":
    unittest.main(verbosity=2, failfast=True)
