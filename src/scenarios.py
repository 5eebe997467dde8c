"""
Synthetic scenes for replaying the contact pipeline without a physics engine.

Each builder returns a Scenario: one InMemoryEngine snapshot per frame for a
single tracked body, with measurement noise, spurious separated contacts,
height outliers and dropped frames mixed in the way a real engine reports
them.
"""

import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List

import numpy as np

from load_config import RIGID, SOFT
from physics_engine import InMemoryEngine, Manifold, ManifoldPoint, SoftNode

GROUND = 'ground'
FRAME_DT = 1.0 / 60.0


@dataclass
class Scenario:
    name: str
    body: str
    body_kind: str
    frames: List[InMemoryEngine] = field(default_factory=list)
    dt: float = FRAME_DT


def box_vertices(center_x: float, center_z: float, yaw: float, width: float, depth: float,
                 height: float) -> np.ndarray:
    """8 corners of a box resting on the ground, in world coordinates."""
    hw, hd = width / 2, depth / 2
    c, s = math.cos(yaw), math.sin(yaw)
    vertices = []
    for y in (0.0, height):
        for lx, lz in ((-hw, -hd), (hw, -hd), (hw, hd), (-hw, hd)):
            vertices.append((center_x + c * lx - s * lz, y, center_z + s * lx + c * lz))
    return np.array(vertices)


def rigid_slide(num_frames: int = 60, speed: float = 0.02, heading: float = 0.3, yaw: float = 0.4,
                width: float = 1.0, depth: float = 0.6, contacts_per_frame: int = 24,
                noise: float = 0.0005, dropout_every: int = 17, seed: int = 42) -> Scenario:
    """
    A rigid box sliding slowly along a straight line.

    Parameters:
        speed: linear speed (m/s) along heading (rad)
        yaw: constant box orientation (rad)
        dropout_every: every n-th frame reports no contacts (0 disables)
    """
    rng = np.random.default_rng(seed)
    body = 'box'
    scenario = Scenario('rigid_slide', body, RIGID)
    direction = np.array([math.cos(heading), math.sin(heading)])
    c, s = math.cos(yaw), math.sin(yaw)

    for frame in range(num_frames):
        cx, cz = direction * speed * FRAME_DT * frame
        points = []
        if not (dropout_every and frame > 0 and frame % dropout_every == 0):
            local = rng.uniform([-width / 2, -depth / 2], [width / 2, depth / 2], size=(contacts_per_frame, 2))
            for lx, lz in local:
                x = cx + c * lx - s * lz
                z = cz + s * lx + c * lz
                y = rng.normal(0.0, noise)
                points.append(ManifoldPoint(
                    position_on_a=(x, y, z),
                    position_on_b=(x, y, z),
                    normal_on_b=(0.0, 1.0, 0.0),
                    distance=float(rng.uniform(-0.003, 0.003)),
                ))
            # separated contact the distance filter should drop
            points.append(ManifoldPoint((cx, 0.02, cz), (cx, 0.02, cz), (0.0, 1.0, 0.0), 0.02))
            # height spike the IQR stage should drop
            if frame % 5 == 0:
                points.append(ManifoldPoint((cx + 0.1, 0.05, cz), (cx + 0.1, 0.05, cz), (0.0, 1.0, 0.0), 0.0))

        velocity = (direction[0] * speed, 0.0, direction[1] * speed)
        scenario.frames.append(InMemoryEngine(
            manifolds=[Manifold(GROUND, body, tuple(points))],
            linear_velocities={body: velocity},
            angular_velocities={body: (0.0, 0.0, 0.0)},
            meshes={body: box_vertices(cx, cz, yaw, width, depth, 0.5)},
        ))
    return scenario


def rigid_grazing(num_frames: int = 30, yaw: float = 0.6, width: float = 0.8, depth: float = 0.5,
                  seed: int = 7) -> Scenario:
    # a tilted box touching the ground with a single corner
    rng = np.random.default_rng(seed)
    body = 'box'
    scenario = Scenario('rigid_grazing', body, RIGID)
    corner = box_vertices(0.0, 0.0, yaw, width, depth, 0.5)[0]

    for _ in range(num_frames):
        x = corner[0] + rng.normal(0.0, 0.0005)
        z = corner[2] + rng.normal(0.0, 0.0005)
        point = ManifoldPoint((x, 0.0, z), (x, 0.0, z), (0.0, 1.0, 0.0), -0.001)
        vertices = box_vertices(0.0, 0.0, yaw, width, depth, 0.5)
        vertices[:, 1] += 0.1  # lifted except for the touching corner
        vertices[0, 1] = 0.0
        scenario.frames.append(InMemoryEngine(
            manifolds=[Manifold(body, GROUND, (point,))],
            linear_velocities={body: (0.0, 0.0, 0.0)},
            angular_velocities={body: (0.0, 0.0, 0.0)},
            meshes={body: vertices},
        ))
    return scenario


def blob_nodes(center, radius: float, squash: float, rings: int = 8, segments: int = 16) -> np.ndarray:
    """Nodes of a sphere flattened against the ground plane y=0."""
    nodes = [(0.0, radius, 0.0), (0.0, -radius, 0.0)]
    for i in range(1, rings):
        phi = math.pi * i / rings
        for j in range(segments):
            t = 2.0 * math.pi * j / segments
            nodes.append((radius * math.sin(phi) * math.cos(t),
                          radius * math.cos(phi),
                          radius * math.sin(phi) * math.sin(t)))
    nodes = np.array(nodes) + np.asarray(center, dtype=float)
    # flatten everything pushed below the ground
    below = nodes[:, 1] < squash
    nodes[below, 1] = squash + (nodes[below, 1] - squash) * 0.1
    return nodes


def soft_blob(num_frames: int = 60, speed: float = 0.1, radius: float = 0.3, noise: float = 0.002,
              seed: int = 3) -> Scenario:
    """A deformable blob rolling slowly along +X, flattened where it meets the ground."""
    rng = np.random.default_rng(seed)
    body = 'blob'
    scenario = Scenario('soft_blob', body, SOFT)

    for frame in range(num_frames):
        center = np.array([speed * FRAME_DT * frame, radius - 0.04, 0.0])
        positions = blob_nodes(center, radius, squash=0.0)
        positions += rng.normal(0.0, noise, size=positions.shape)
        normals = positions - center
        normals /= np.linalg.norm(normals, axis=1, keepdims=True)
        nodes = [
            SoftNode(position=tuple(p), normal=tuple(n), velocity=(speed, 0.0, 0.0))
            for p, n in zip(positions, normals)
        ]
        scenario.frames.append(InMemoryEngine(
            soft_nodes={body: nodes},
            meshes={body: positions},
        ))
    return scenario


SCENARIOS: Dict[str, Callable[..., Scenario]] = {
    'rigid_slide': rigid_slide,
    'rigid_grazing': rigid_grazing,
    'soft_blob': soft_blob,
}


def build_scenario(name: str, num_frames: int, seed: int = None) -> Scenario:
    try:
        builder = SCENARIOS[name]
    except KeyError:
        raise ValueError(f"unknown scenario '{name}', expected one of {sorted(SCENARIOS)}")
    kwargs = {'num_frames': num_frames}
    if seed is not None:
        kwargs['seed'] = seed
    return builder(**kwargs)
