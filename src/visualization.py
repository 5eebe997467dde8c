import math
from typing import Optional, Sequence

import matplotlib.pyplot as plt
from matplotlib.patches import Circle, Rectangle
from matplotlib.transforms import Affine2D
import numpy as np

from footprint_fitter import OBB
from footprint_tracker import FrameResult


class FootprintVisualizer:
    """Top-down (x, z) view of one frame: contacts, centroid and footprint box."""

    def __init__(self):
        self.fig = None
        self.ax = None

    def create_box_patch(self, box: OBB, color='lightblue', edgecolor='black'):
        cx, cz = box.center[0], box.center[2]
        patch = Rectangle((cx - box.width / 2, cz - box.height / 2), box.width, box.height,
                          linewidth=2, edgecolor=edgecolor, facecolor=color, alpha=0.35, zorder=3)

        # rotate around the box center
        transform = Affine2D().rotate_around(cx, cz, box.theta) + self.ax.transData
        patch.set_transform(transform)
        return patch

    def draw_heading(self, box: OBB, color='navy'):
        # e1 axis from the center to the box edge
        cx, cz = box.center[0], box.center[2]
        length = box.width / 2
        self.ax.arrow(cx, cz, box.e1[0] * length, box.e1[2] * length,
                      head_width=0.02 * max(box.width, box.height), length_includes_head=True,
                      fc=color, ec=color, linewidth=1.5, zorder=6)

    def draw_points(self, result: FrameResult):
        real = result.sample.real_points
        synthetic = result.sample.synthetic_points
        if real:
            self.ax.scatter([p.x for p in real], [p.z for p in real], s=18, color='green',
                            zorder=8, label=f'contacts ({len(real)})')
        if synthetic:
            self.ax.scatter([p.x for p in synthetic], [p.z for p in synthetic], s=18, marker='x',
                            color='darkorange', zorder=8, label=f'synthetic ({len(synthetic)})')

    def draw_centroid(self, centroid: np.ndarray, radius: float):
        marker = Circle((centroid[0], centroid[2]), radius=radius, color='red', alpha=0.9, zorder=10)
        self.ax.add_patch(marker)

    def calculate_display_bounds(self, result: FrameResult, margin: float = 0.25):
        xs, zs = [], []
        for p in result.sample.points:
            xs.append(p.x)
            zs.append(p.z)
        if result.box is not None:
            corners = result.box.corners_xz()
            xs.extend(corners[:, 0])
            zs.extend(corners[:, 1])
        if not xs:
            c = result.sample.centroid
            return c[0] - 1, c[0] + 1, c[2] - 1, c[2] + 1

        span = max(max(xs) - min(xs), max(zs) - min(zs), 0.1)
        pad = span * margin
        return min(xs) - pad, max(xs) + pad, min(zs) - pad, max(zs) + pad

    def info_text(self, result: FrameResult) -> str:
        diag = result.sample.diagnostics
        flags = result.sample.flags
        text = f"frame: {result.frame}\n"
        text += f"method: {diag.contact_method}\n"
        text += f"candidates: {diag.candidate_count}\n"
        text += f"real / synthetic: {diag.real_contact_count} / {diag.synthetic_count}\n"
        if result.box is not None:
            text += f"\nbox: {result.box.width:.3f} x {result.box.height:.3f}\n"
            text += f"theta: {math.degrees(result.box.theta):.1f} deg\n"
            text += f"area: {result.box.area:.4f}"
        if flags.reasons:
            text += "\n\nflags: " + ", ".join(flags.reasons)
            if flags.held:
                text += " (held)"
        return text

    def visualize_frame(self, result: FrameResult, title: Optional[str] = None, show: bool = True,
                        save_path=None, show_info: bool = True, show_grid: bool = True):
        self.fig, self.ax = plt.subplots(1, 1, figsize=(10, 8))

        x_min, x_max, z_min, z_max = self.calculate_display_bounds(result)

        if result.box is not None:
            self.ax.add_patch(self.create_box_patch(result.box))
            self.draw_heading(result.box)

        self.draw_points(result)
        self.draw_centroid(result.sample.centroid, radius=0.01 * max(x_max - x_min, z_max - z_min))

        self.ax.set_aspect('equal')
        self.ax.set_xlabel('x', fontsize=12)
        self.ax.set_ylabel('z', fontsize=12)
        self.ax.set_title(title or f'contact footprint, frame {result.frame}', fontsize=14, fontweight='bold')
        self.ax.set_xlim(x_min, x_max)
        self.ax.set_ylim(z_min, z_max)

        if show_info:
            self.ax.text(0.02, 0.98, self.info_text(result), transform=self.ax.transAxes,
                         verticalalignment='top', bbox=dict(boxstyle='round', facecolor='wheat', alpha=0.8),
                         fontsize=9, zorder=20)
        if result.sample.points:
            self.ax.legend(loc='upper right', fontsize=8)
        if show_grid:
            self.ax.grid(True, alpha=0.3)

        plt.tight_layout()
        if save_path:
            self.fig.savefig(save_path)
        if show:
            plt.show()
        return self.fig

    def plot_track(self, results: Sequence[FrameResult], title: Optional[str] = None, show: bool = True):
        """Box width, height and angle over time."""
        boxed = [r for r in results if r.box is not None]
        self.fig, axes = plt.subplots(2, 1, figsize=(10, 6), sharex=True)
        self.ax = axes[0]

        frames = [r.frame for r in boxed]
        axes[0].plot(frames, [r.box.width for r in boxed], label='width')
        axes[0].plot(frames, [r.box.height for r in boxed], label='height')
        axes[0].set_ylabel('extent')
        axes[0].legend(fontsize=8)
        axes[0].grid(True, alpha=0.3)

        axes[1].plot(frames, [math.degrees(r.box.theta) for r in boxed], color='navy')
        held = [r for r in boxed if r.sample.flags.held]
        if held:
            axes[1].scatter([r.frame for r in held], [math.degrees(r.box.theta) for r in held],
                            color='red', s=12, zorder=5, label='held contacts')
            axes[1].legend(fontsize=8)
        axes[1].set_xlabel('frame')
        axes[1].set_ylabel('theta (deg)')
        axes[1].grid(True, alpha=0.3)

        self.fig.suptitle(title or 'footprint track', fontsize=14, fontweight='bold')
        plt.tight_layout()
        if show:
            plt.show()
        return self.fig
