"""
Physics engine interface consumed by the contact pipeline.

The engine is an external collaborator. Optional features are advertised
through supports(Capability) and the matching accessors return None when a
feature is missing, so callers never rely on exceptions to detect them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

import numpy as np

Vec3 = Tuple[float, float, float]


class Capability(Enum):
    CONTACT_DISTANCE = 'contact_distance'
    CONTACT_NORMAL = 'contact_normal'
    NODE_NORMAL = 'node_normal'
    NODE_VELOCITY = 'node_velocity'
    LINEAR_VELOCITY = 'linear_velocity'
    ANGULAR_VELOCITY = 'angular_velocity'
    MESH_VERTICES = 'mesh_vertices'


@dataclass(frozen=True)
class ManifoldPoint:
    # one contact between the two bodies of a manifold
    position_on_a: Vec3
    position_on_b: Vec3
    normal_on_b: Optional[Vec3] = None
    distance: Optional[float] = None  # separation, negative = penetration


@dataclass(frozen=True)
class Manifold:
    body0: Hashable
    body1: Hashable
    points: Tuple[ManifoldPoint, ...] = ()

    def involves(self, body: Hashable) -> bool:
        return self.body0 == body or self.body1 == body


@dataclass(frozen=True)
class SoftNode:
    position: Vec3
    normal: Optional[Vec3] = None
    velocity: Optional[Vec3] = None


class PhysicsEngine(ABC):
    """Read-only view of the engine for one simulation frame."""

    @abstractmethod
    def supports(self, capability: Capability) -> bool:
        ...

    @abstractmethod
    def num_manifolds(self) -> int:
        ...

    @abstractmethod
    def manifold(self, index: int) -> Manifold:
        ...

    @abstractmethod
    def nodes(self, body: Hashable) -> Sequence[SoftNode]:
        """Nodes of a deformable body; empty for rigid bodies."""

    def linear_velocity(self, body: Hashable) -> Optional[Vec3]:
        return None

    def angular_velocity(self, body: Hashable) -> Optional[Vec3]:
        return None

    def mesh_vertices(self, body: Hashable) -> Optional[np.ndarray]:
        """World-space render mesh vertices as an (n, 3) array."""
        return None


@dataclass
class InMemoryEngine(PhysicsEngine):
    """
    Engine snapshot held in plain Python containers.

    Used to replay synthetic scenes and in tests. Capabilities default to
    everything; pass a smaller set to emulate a limited engine binding.
    """
    manifolds: List[Manifold] = field(default_factory=list)
    soft_nodes: Dict[Hashable, List[SoftNode]] = field(default_factory=dict)
    linear_velocities: Dict[Hashable, Vec3] = field(default_factory=dict)
    angular_velocities: Dict[Hashable, Vec3] = field(default_factory=dict)
    meshes: Dict[Hashable, np.ndarray] = field(default_factory=dict)
    capabilities: Iterable[Capability] = tuple(Capability)

    def __post_init__(self):
        self.capabilities = frozenset(self.capabilities)

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def num_manifolds(self) -> int:
        return len(self.manifolds)

    def manifold(self, index: int) -> Manifold:
        m = self.manifolds[index]
        if self.supports(Capability.CONTACT_DISTANCE) and self.supports(Capability.CONTACT_NORMAL):
            return m
        # strip what this binding cannot report
        points = tuple(
            ManifoldPoint(
                position_on_a=p.position_on_a,
                position_on_b=p.position_on_b,
                normal_on_b=p.normal_on_b if self.supports(Capability.CONTACT_NORMAL) else None,
                distance=p.distance if self.supports(Capability.CONTACT_DISTANCE) else None,
            )
            for p in m.points
        )
        return Manifold(m.body0, m.body1, points)

    def nodes(self, body: Hashable) -> Sequence[SoftNode]:
        nodes = self.soft_nodes.get(body, [])
        if self.supports(Capability.NODE_VELOCITY) and self.supports(Capability.NODE_NORMAL):
            return nodes
        return [
            SoftNode(
                position=n.position,
                normal=n.normal if self.supports(Capability.NODE_NORMAL) else None,
                velocity=n.velocity if self.supports(Capability.NODE_VELOCITY) else None,
            )
            for n in nodes
        ]

    def linear_velocity(self, body: Hashable) -> Optional[Vec3]:
        if not self.supports(Capability.LINEAR_VELOCITY):
            return None
        return self.linear_velocities.get(body)

    def angular_velocity(self, body: Hashable) -> Optional[Vec3]:
        if not self.supports(Capability.ANGULAR_VELOCITY):
            return None
        return self.angular_velocities.get(body)

    def mesh_vertices(self, body: Hashable) -> Optional[np.ndarray]:
        if not self.supports(Capability.MESH_VERTICES):
            return None
        vertices = self.meshes.get(body)
        if vertices is None:
            return None
        return np.asarray(vertices, dtype=float).reshape(-1, 3)
