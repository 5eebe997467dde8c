import unittest

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
from matplotlib.patches import Rectangle

from footprint_tracker import FootprintTracker
from load_config import ContactParams, TrackerConfig
from physics_engine import InMemoryEngine
from scenarios import rigid_grazing
from visualization import FootprintVisualizer


class TestFootprintVisualizer(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        scenario = rigid_grazing(num_frames=3)
        tracker = FootprintTracker(scenario.body, TrackerConfig(params=ContactParams.for_kind(scenario.body_kind)))
        cls.results = [tracker.step(engine, scenario.dt) for engine in scenario.frames]

    def tearDown(self):
        plt.close('all')

    def test_frame(self):
        visualizer = FootprintVisualizer()
        fig = visualizer.visualize_frame(self.results[-1], show=False)
        self.assertIs(fig, visualizer.fig)

        boxes = [p for p in visualizer.ax.patches if isinstance(p, Rectangle)]
        self.assertEqual(len(boxes), 1)
        labels = [t.get_label() for t in visualizer.ax.collections]
        self.assertTrue(any(label.startswith('synthetic') for label in labels))
        self.assertTrue(any(label.startswith('contacts') for label in labels))

    def test_info_text(self):
        text = FootprintVisualizer().info_text(self.results[0])
        self.assertIn('real / synthetic: 1 /', text)
        self.assertIn('sparse', text)

    def test_frame_without_box(self):
        result = FootprintTracker('box').step(InMemoryEngine())
        visualizer = FootprintVisualizer()
        visualizer.visualize_frame(result, show=False)
        self.assertEqual(len(visualizer.ax.patches), 1)  # centroid marker only

    def test_track(self):
        fig = FootprintVisualizer().plot_track(self.results, show=False)
        self.assertEqual(len(fig.axes), 2)


if __name__ == "__main__":
    unittest.main(verbosity=2, failfast=True)
