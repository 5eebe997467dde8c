# math_utils.py

import math
from typing import List, Sequence, Tuple

import numpy as np

TWO_PI = 2.0 * math.pi


def wrap_to_pi(angle: float) -> float:
    """
    Wraps an angle to the half-open interval (-pi, pi].

    Values already inside the interval are returned unchanged, so the
    function is idempotent.
    """
    angle = float(angle)
    if -math.pi < angle <= math.pi:
        return angle
    wrapped = math.fmod(angle + math.pi, TWO_PI)
    if wrapped <= 0.0:
        wrapped += TWO_PI
    return wrapped - math.pi


def angle_difference(a: float, b: float) -> float:
    """Shortest signed difference a - b, wrapped to (-pi, pi]."""
    return wrap_to_pi(a - b)


def rotation_matrix(angle: float) -> np.ndarray:
    """
    2x2 rotation matrix in the XZ plane.

    Parameters:
        angle (float): rotation angle in radians, counterclockwise from +X towards +Z.
    """
    c = np.cos(angle)
    s = np.sin(angle)
    return np.array([
        [c, -s],
        [s, c]
    ])


def rotate_points_2d(points: np.ndarray, angle: float) -> np.ndarray:
    # rotates an (n, 2) array of (x, z) rows
    points = np.asarray(points, dtype=float).reshape(-1, 2)
    return points @ rotation_matrix(angle).T


def project_bbox(points: np.ndarray, theta: float) -> Tuple[float, float, float, float, float]:
    """
    Axis-aligned box of the points in a frame rotated by theta.

    Returns (width, height, center_x, center_z, area); the center is in the
    original (unrotated) frame.
    """
    rotated = rotate_points_2d(points, -theta)
    min_x, min_z = rotated.min(axis=0)
    max_x, max_z = rotated.max(axis=0)
    width = float(max_x - min_x)
    height = float(max_z - min_z)
    center = rotation_matrix(theta) @ np.array([(min_x + max_x) / 2, (min_z + max_z) / 2])
    return width, height, float(center[0]), float(center[1]), width * height


def normalize_vector(v, tolerance: float = 1e-10) -> np.ndarray:
    """Normalizes a vector; returns a zero vector when it is too short."""
    v = np.asarray(v, dtype=float)
    norm = np.linalg.norm(v)
    if norm < tolerance:
        return np.zeros_like(v)
    return v / norm


def convex_hull_2d(points: Sequence[Tuple[float, float]]) -> List[Tuple[float, float]]:
    """
    Convex hull by Andrew's monotone chain.

    Returns the hull vertices counterclockwise without repeating the first
    vertex. Collinear points are dropped. Fewer than 3 distinct, non-collinear
    input points give an empty list.
    """
    pts = sorted(set((float(p[0]), float(p[1])) for p in points))
    if len(pts) < 3:
        return []

    def cross(o, a, b):
        return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])

    lower = []
    for p in pts:
        while len(lower) >= 2 and cross(lower[-2], lower[-1], p) <= 0:
            lower.pop()
        lower.append(p)

    upper = []
    for p in reversed(pts):
        while len(upper) >= 2 and cross(upper[-2], upper[-1], p) <= 0:
            upper.pop()
        upper.append(p)

    hull = lower[:-1] + upper[:-1]
    if len(hull) < 3:
        return []
    return hull


class Plane:
    """Plane through point p0 with unit normal n; sd(p) = p . n - p0 . n."""

    def __init__(self, normal, point):
        self.normal = normalize_vector(normal)
        if not self.normal.any():
            self.normal = np.array([0.0, 1.0, 0.0])
        self.p0 = np.asarray(point, dtype=float)
        self.offset = float(self.p0 @ self.normal)

    @classmethod
    def from_normal_offset(cls, normal, offset: float) -> 'Plane':
        n = normalize_vector(normal)
        if not n.any():
            n = np.array([0.0, 1.0, 0.0])
        return cls(n, n * offset)

    def signed_distance(self, points) -> np.ndarray:
        # positive above the plane (along the normal)
        points = np.asarray(points, dtype=float)
        return points @ self.normal - self.offset
