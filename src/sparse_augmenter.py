import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from contact_collector import ContactSample
from math_utils import convex_hull_2d

logger = logging.getLogger(__name__)

SILHOUETTE_BAND = 0.5
SAMPLES_PER_EDGE = 2
RING_RADIUS = 0.12
RING_COUNT = 6


def silhouette_hull(vertices: Optional[np.ndarray], plane_height: float,
                    band: float = SILHOUETTE_BAND) -> List[Tuple[float, float]]:
    """
    Convex hull, in XZ, of the mesh vertices lying within band of the contact
    plane height. Returns an empty list when fewer than 3 usable vertices exist.
    """
    if vertices is None:
        return []
    vertices = np.asarray(vertices, dtype=float).reshape(-1, 3)
    near = vertices[np.abs(vertices[:, 1] - plane_height) < band]
    if len(near) < 3:
        return []
    return convex_hull_2d(near[:, [0, 2]])


def augment_sparse_set(points: Sequence[ContactSample], centroid, plane_height: float,
                       mesh_vertices: Optional[np.ndarray] = None,
                       samples_per_edge: int = SAMPLES_PER_EDGE,
                       ring_radius: float = RING_RADIUS,
                       ring_count: int = RING_COUNT) -> Tuple[List[ContactSample], int]:
    """
    Adds synthetic support points to a set too small for a stable box fit.

    Parameters:
        points: stabilized contact samples, kept as they are.
        centroid: contact centroid (x, y, z); the ring is centred on it.
        plane_height: height of the contact plane; synthetic points lie on it.
        mesh_vertices: world-space vertices of the body, or None.

    Returns:
        (augmented points, number of hull vertices used)
    """
    augmented = list(points)

    hull = silhouette_hull(mesh_vertices, plane_height)
    for i in range(len(hull)):
        x1, z1 = hull[i]
        x2, z2 = hull[(i + 1) % len(hull)]
        for j in range(samples_per_edge):
            t = j / samples_per_edge
            augmented.append(ContactSample(
                x1 * (1 - t) + x2 * t,
                plane_height,
                z1 * (1 - t) + z2 * t,
                is_synthetic=True,
            ))

    cx, cz = float(centroid[0]), float(centroid[2])
    for i in range(ring_count):
        angle = 2.0 * math.pi * i / ring_count
        augmented.append(ContactSample(
            cx + math.cos(angle) * ring_radius,
            plane_height,
            cz + math.sin(angle) * ring_radius,
            is_synthetic=True,
        ))

    logger.debug(f"augmented {len(points)} contacts with {len(augmented) - len(points)} synthetic points "
                 f"({len(hull)} hull vertices)")
    return augmented, len(hull)
