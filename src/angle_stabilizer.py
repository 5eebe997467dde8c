"""
Orientation hysteresis for footprint boxes.

A minimum-area rectangle is only defined up to quarter turns, and for
near-square or slow-moving footprints the fitted angle jumps between
equivalent axes from frame to frame. The stabilizer keeps the last accepted
angle unless the body is moving and the new fit differs from it by more than
the stability threshold away from every quarter-turn multiple.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from load_config import FootprintConfig
from math_utils import angle_difference, normalize_vector, wrap_to_pi

logger = logging.getLogger(__name__)

BOX_SYMMETRY = math.pi / 2

HELD_LOW_MOTION = 'low_motion'
HELD_SMALL_DELTA = 'within_threshold'
ACCEPTED = 'accepted'


def symmetry_residual(delta: float, symmetry: float = BOX_SYMMETRY) -> float:
    # distance of |delta| to the nearest multiple of the box symmetry
    r = math.fmod(abs(delta), symmetry)
    return min(r, symmetry - r)


def orthonormal_frame(theta: float, normal=None) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Right-handed frame (e1, e2, n) with e1 along the box heading.

    The heading (cos theta, 0, sin theta) is made orthogonal to n by
    Gram-Schmidt and e2 = n x e1, so e1 x e2 = n. On flat ground e2 is
    (sin theta, 0, -cos theta), the negative of the box height axis used by
    rotate_points_2d and OBB.corners_xz.
    """
    n = normalize_vector(normal if normal is not None else (0.0, 1.0, 0.0))
    if not n.any():
        n = np.array([0.0, 1.0, 0.0])

    heading = np.array([math.cos(theta), 0.0, math.sin(theta)])
    e1 = heading - (heading @ n) * n
    if np.linalg.norm(e1) < 1e-9:
        # heading parallel to the normal
        fallback = np.array([1.0, 0.0, 0.0]) if abs(n[0]) < 0.9 else np.array([0.0, 0.0, 1.0])
        e1 = fallback - (fallback @ n) * n
    e1 = normalize_vector(e1)
    e2 = normalize_vector(np.cross(n, e1))
    return e1, e2, n


@dataclass
class AngleDecision:
    theta: float
    held: bool
    reason: str
    delta: float = 0.0


class OBBAngleStabilizer:
    def __init__(self, threshold: float = math.radians(25.0), min_motion_speed: float = 0.05,
                 min_angular_speed: float = 0.5, symmetry: float = BOX_SYMMETRY):
        self.threshold = threshold
        self.min_motion_speed = min_motion_speed
        self.min_angular_speed = min_angular_speed
        self.symmetry = symmetry

    @classmethod
    def from_config(cls, config: FootprintConfig, threshold: Optional[float] = None) -> 'OBBAngleStabilizer':
        return cls(
            threshold=config.angle_stability_threshold if threshold is None else threshold,
            min_motion_speed=config.min_motion_speed,
            min_angular_speed=config.min_angular_speed,
        )

    def is_slow(self, speed: Optional[float], angular_speed: Optional[float]) -> bool:
        # unknown velocities do not count as evidence either way
        known = [
            value < floor
            for value, floor in ((speed, self.min_motion_speed), (angular_speed, self.min_angular_speed))
            if value is not None
        ]
        return bool(known) and all(known)

    def decide(self, new_theta: float, previous_theta: float,
               speed: Optional[float] = None, angular_speed: Optional[float] = None) -> AngleDecision:
        previous_theta = wrap_to_pi(previous_theta)
        delta = angle_difference(new_theta, previous_theta)

        if self.is_slow(speed, angular_speed):
            return AngleDecision(previous_theta, True, HELD_LOW_MOTION, delta)

        if symmetry_residual(delta, self.symmetry) <= self.threshold:
            if abs(delta) > 1e-12:
                logger.debug(f"angle held: delta {math.degrees(delta):.1f} deg within "
                             f"{math.degrees(self.threshold):.1f} deg of a box symmetry")
            return AngleDecision(previous_theta, True, HELD_SMALL_DELTA, delta)

        return AngleDecision(wrap_to_pi(new_theta), False, ACCEPTED, delta)
