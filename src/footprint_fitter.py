"""
Footprint box fitting: oriented rectangles around 2D contact projections.

All strategies take an (n, 2) array of (x, z) rows and return a Box2D whose
center is in the same frame as the input points. compute_footprint_box wraps
a strategy with centering, orientation stabilization and the 3D frame.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence

import numpy as np

from angle_stabilizer import OBBAngleStabilizer, orthonormal_frame
from contact_collector import ContactSample, samples_to_array
from load_config import FootprintConfig
from math_utils import convex_hull_2d, project_bbox, rotate_points_2d, rotation_matrix, wrap_to_pi

logger = logging.getLogger(__name__)

INV_PHI = (math.sqrt(5.0) - 1.0) / 2.0


@dataclass
class Box2D:
    width: float
    height: float
    center_x: float
    center_z: float
    theta: float

    @property
    def area(self) -> float:
        return self.width * self.height


@dataclass
class OBB:
    center: np.ndarray
    width: float
    height: float
    theta: float
    e1: np.ndarray
    e2: np.ndarray
    n: np.ndarray
    depth: float

    @property
    def area(self) -> float:
        return self.width * self.height

    def corners_xz(self) -> np.ndarray:
        # corners counterclockwise in the ground plane
        hw, hh = self.width / 2, self.height / 2
        local = np.array([
            [-hw, -hh],
            [ hw, -hh],
            [ hw,  hh],
            [-hw,  hh]
        ])
        return rotate_points_2d(local, self.theta) + self.center[[0, 2]]


def _as_points_2d(points) -> np.ndarray:
    return np.asarray(points, dtype=float).reshape(-1, 2)


def compute_aabb(points, config: FootprintConfig) -> Box2D:
    pts = _as_points_2d(points)
    if len(pts) == 0:
        return Box2D(config.min_contact_size, config.min_contact_size, 0.0, 0.0, 0.0)
    min_x, min_z = pts.min(axis=0)
    max_x, max_z = pts.max(axis=0)
    return Box2D(
        width=max(config.min_contact_size, float(max_x - min_x)),
        height=max(config.min_contact_size, float(max_z - min_z)),
        center_x=float(min_x + max_x) / 2,
        center_z=float(min_z + max_z) / 2,
        theta=0.0,
    )


def fit_at_angle(points, theta: float, quantile: float, min_size: float) -> Box2D:
    """
    Box with the given orientation around the points.

    Extents are taken after an index-based quantile trim on each rotated axis
    (quantile=0 keeps every point).
    """
    pts = _as_points_2d(points)
    rotated = rotate_points_2d(pts, -theta)
    xs = np.sort(rotated[:, 0])
    zs = np.sort(rotated[:, 1])

    n = len(pts)
    lo = max(0, int(math.floor(n * quantile)))
    hi = min(n - 1, int(math.ceil(n * (1.0 - quantile))) - 1)
    if hi < lo:
        lo, hi = 0, n - 1

    min_x, max_x = xs[lo], xs[hi]
    min_z, max_z = zs[lo], zs[hi]
    center = rotation_matrix(theta) @ np.array([(min_x + max_x) / 2, (min_z + max_z) / 2])
    return Box2D(
        width=max(min_size, float(max_x - min_x)),
        height=max(min_size, float(max_z - min_z)),
        center_x=float(center[0]),
        center_z=float(center[1]),
        theta=wrap_to_pi(theta),
    )


def _refine_angle(pts: np.ndarray, theta: float, area: float, half_width: float, iterations: int):
    # golden-section search around the coarse winner; only strict improvements count
    def area_at(t):
        return project_bbox(pts, t)[4]

    a, b = theta - half_width, theta + half_width
    c = b - INV_PHI * (b - a)
    d = a + INV_PHI * (b - a)
    fc, fd = area_at(c), area_at(d)
    for _ in range(iterations):
        if fc < fd:
            b, d, fd = d, c, fc
            c = b - INV_PHI * (b - a)
            fc = area_at(c)
        else:
            a, c, fc = c, d, fd
            d = a + INV_PHI * (b - a)
            fd = area_at(d)

    best, best_area = (c, fc) if fc < fd else (d, fd)
    if best_area < area * (1.0 - 1e-9):
        return wrap_to_pi(best), best_area
    return theta, area


def compute_hybrid(points, config: FootprintConfig) -> Box2D:
    """
    Quantized minimum-area search with quantile-trimmed extents.

    1. k candidate angles pi*i/k; the smallest axis-aligned area after
       rotating by -theta wins, ties going to the lowest index.
    2. Golden-section refinement within one step of the winner.
    3. Extents at the winning angle ignore the lowest and highest
       `hybrid_quantile` fraction of points on each axis.
    """
    pts = _as_points_2d(points)
    if len(pts) < 2:
        logger.debug("hybrid fit needs 2 points, using aabb")
        return compute_aabb(pts, config)

    k = config.hybrid_k
    best_theta = 0.0
    best_area = math.inf
    for i in range(k):
        theta = wrap_to_pi(math.pi * i / k)
        area = project_bbox(pts, theta)[4]
        if area < best_area:
            best_area = area
            best_theta = theta

    box = fit_at_angle(pts, best_theta, config.hybrid_quantile, config.min_contact_size)
    if config.refine_iterations > 0:
        refined_theta, _ = _refine_angle(pts, best_theta, best_area, math.pi / k, config.refine_iterations)
        refined = fit_at_angle(pts, refined_theta, config.hybrid_quantile, config.min_contact_size)
        # the size floor can make a thinner raw box come out larger
        if refined.area < box.area:
            box = refined
    return box


def compute_pca(points, config: FootprintConfig) -> Box2D:
    # box aligned with the principal axis of the point cloud
    pts = _as_points_2d(points)
    if len(pts) < 2:
        return compute_aabb(pts, config)

    cov = np.cov(pts.T, bias=True)
    eigvals, eigvecs = np.linalg.eigh(cov)
    major = eigvecs[:, int(np.argmax(eigvals))]
    if abs(cov[0, 1]) <= 1e-12:
        major = np.array([1.0, 0.0]) if cov[0, 0] >= cov[1, 1] else np.array([0.0, 1.0])
    theta = math.atan2(major[1], major[0])
    return fit_at_angle(pts, theta, 0.0, config.min_contact_size)


def compute_ombb(points, config: FootprintConfig) -> Box2D:
    """Exact minimum-area box by testing every convex hull edge direction."""
    pts = _as_points_2d(points)
    if len(pts) < 3:
        return compute_aabb(pts, config)

    hull = np.array(convex_hull_2d(pts))
    if len(hull) < 3:
        return compute_aabb(pts, config)

    best_theta = 0.0
    best_area = math.inf
    for i in range(len(hull)):
        dx, dz = hull[(i + 1) % len(hull)] - hull[i]
        theta = math.atan2(dz, dx)
        area = project_bbox(hull, theta)[4]
        if area < best_area:
            best_area = area
            best_theta = theta
    return fit_at_angle(pts, best_theta, 0.0, config.min_contact_size)


def compute_kdop(points, config: FootprintConfig) -> Box2D:
    # best of kdop_k quantized orientations, no trimming
    pts = _as_points_2d(points)
    if len(pts) < 2:
        return compute_aabb(pts, config)

    best_theta = 0.0
    best_area = math.inf
    for i in range(config.kdop_k):
        theta = math.pi * i / config.kdop_k
        area = project_bbox(pts, theta)[4]
        if area < best_area:
            best_area = area
            best_theta = theta
    return fit_at_angle(pts, best_theta, 0.0, config.min_contact_size)


FITTERS: Dict[str, Callable[..., Box2D]] = {
    'aabb': compute_aabb,
    'hybrid': compute_hybrid,
    'pca': compute_pca,
    'ombb': compute_ombb,
    'kdop8': compute_kdop,
}


def _planar_speed(velocity) -> Optional[float]:
    if velocity is None:
        return None
    v = np.asarray(velocity, dtype=float)
    return float(math.hypot(v[0], v[2]))


def compute_footprint_box(points: Sequence[ContactSample], algorithm: str = 'hybrid',
                          previous_box: Optional[OBB] = None, previous_velocity=None,
                          previous_angle: Optional[float] = None,
                          stability_threshold: Optional[float] = None, *,
                          velocity=None, angular_velocity=None, normal=None,
                          contact_height: Optional[float] = None,
                          config: Optional[FootprintConfig] = None) -> Optional[OBB]:
    """
    Fits the footprint box for one frame.

    Parameters:
        points: contact samples (or an (n, 3) array of positions).
        algorithm: one of FITTERS.
        previous_box, previous_angle: last accepted box and angle; the angle
            stabilizer runs only when both are given.
        previous_velocity: used for the motion gate when the current velocity
            is unknown.
        stability_threshold: overrides config.angle_stability_threshold.
        velocity, angular_velocity: current body velocities, None if unknown.
        normal: averaged contact normal; +Y when None.
        contact_height: y of the box center; mean point height when None.

    Returns:
        OBB, or None for an empty point set.
    """
    config = config or FootprintConfig()
    if algorithm not in FITTERS:
        raise ValueError(f"unknown box algorithm '{algorithm}', expected one of {sorted(FITTERS)}")

    if isinstance(points, np.ndarray):
        xyz = np.asarray(points, dtype=float).reshape(-1, 3)
    else:
        xyz = samples_to_array(list(points))
    if len(xyz) == 0:
        return None

    # fit around the centroid for numerical stability
    xz = xyz[:, [0, 2]]
    centroid = xz.mean(axis=0)
    local = xz - centroid

    if velocity is None:
        velocity = previous_velocity
    speed = _planar_speed(velocity)
    angular_speed = None if angular_velocity is None else float(np.linalg.norm(angular_velocity))
    quantile = config.hybrid_quantile if algorithm == 'hybrid' else 0.0

    if config.align_to_velocity and speed is not None and speed > config.velocity_align_speed:
        heading = math.atan2(velocity[2], velocity[0])
        box = fit_at_angle(local, heading, 0.0, config.min_contact_size)
    else:
        box = FITTERS[algorithm](local, config)

    if previous_box is not None and previous_angle is not None:
        stabilizer = OBBAngleStabilizer.from_config(config, stability_threshold)
        decision = stabilizer.decide(box.theta, previous_angle, speed, angular_speed)
        if decision.held and decision.theta != box.theta:
            box = fit_at_angle(local, decision.theta, quantile, config.min_contact_size)

    e1, e2, n = orthonormal_frame(box.theta, normal)
    y = float(xyz[:, 1].mean()) if contact_height is None else float(contact_height)
    center = np.array([centroid[0] + box.center_x, y, centroid[1] + box.center_z])

    return OBB(
        center=center,
        width=box.width,
        height=box.height,
        theta=box.theta,
        e1=e1,
        e2=e2,
        n=n,
        depth=config.obb_depth,
    )
