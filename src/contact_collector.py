import logging
from dataclasses import dataclass, field
from typing import Hashable, List, Optional, Sequence

import numpy as np

from load_config import ContactParams
from math_utils import Plane, normalize_vector
from physics_engine import Capability, Manifold, PhysicsEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContactSample:
    # contact point in world coordinates
    x: float
    y: float
    z: float
    is_synthetic: bool = False


def samples_to_array(points: Sequence[ContactSample]) -> np.ndarray:
    # (n, 3) array of positions
    if not points:
        return np.zeros((0, 3))
    return np.array([(p.x, p.y, p.z) for p in points], dtype=float)


@dataclass
class CandidateSet:
    # raw contacts for one body and one frame
    candidates: List[ContactSample] = field(default_factory=list)
    normal_sum: np.ndarray = field(default_factory=lambda: np.zeros(3))
    position_sum: np.ndarray = field(default_factory=lambda: np.zeros(3))
    raw_count: int = 0
    manifold_contacts: int = 0
    node_contacts: int = 0
    signed_distances: Optional[np.ndarray] = None  # per soft node, for hysteresis next frame

    def average_normal(self, ground_normal) -> np.ndarray:
        ground = np.asarray(ground_normal, dtype=float)
        if self.raw_count == 0:
            return ground.copy()
        n = self.normal_sum / self.raw_count
        # normal faces away from the ground
        if n @ ground < 0:
            n = -n
        n = normalize_vector(n, tolerance=1e-6)
        if not n.any():
            return ground.copy()
        return n

    def average_position(self) -> np.ndarray:
        if self.raw_count == 0:
            return np.zeros(3)
        return self.position_sum / self.raw_count


class ContactCandidateCollector:
    """
    Pulls raw contact candidates for one tracked body from the engine.

    Rigid bodies are read from contact manifolds only. Soft bodies add a
    per-node signed-distance test against the ground plane. The collector
    reads engine data and returns it; it never writes to the engine or to
    the per-body state.
    """

    def __init__(self, params: ContactParams):
        self.params = params
        self.plane = Plane.from_normal_offset(params.ground_normal, params.ground_offset)

    def collect(self, engine: PhysicsEngine, body: Hashable,
                prev_signed_distances: Optional[np.ndarray] = None) -> CandidateSet:
        result = CandidateSet()
        self._collect_manifold_contacts(engine, body, result)
        if self.params.is_soft:
            self._collect_node_contacts(engine, body, prev_signed_distances, result)
        return result

    def _accept_manifold_point(self, distance: Optional[float]) -> bool:
        if not self.params.enable_distance_filter:
            return True
        # engines without separation distances report touching contacts only
        if distance is None:
            return True
        return distance <= self.params.d_max

    def _collect_manifold_contacts(self, engine: PhysicsEngine, body: Hashable, result: CandidateSet):
        params = self.params
        n_manifolds = min(engine.num_manifolds(), params.max_manifolds)

        for i in range(n_manifolds):
            if len(result.candidates) >= params.n_target:
                break
            manifold: Manifold = engine.manifold(i)
            if not manifold.involves(body):
                continue

            for point in manifold.points:
                if len(result.candidates) >= params.n_target:
                    break
                if not self._accept_manifold_point(point.distance):
                    continue

                if point.normal_on_b is not None:
                    result.normal_sum += point.normal_on_b
                p = point.position_on_b
                result.candidates.append(ContactSample(float(p[0]), float(p[1]), float(p[2])))
                result.position_sum += p
                result.raw_count += 1
                result.manifold_contacts += 1

    def _collect_node_contacts(self, engine: PhysicsEngine, body: Hashable,
                               prev_signed_distances: Optional[np.ndarray], result: CandidateSet):
        params = self.params
        nodes = engine.nodes(body)
        if not nodes:
            result.signed_distances = np.zeros(0)
            return

        positions = np.array([node.position for node in nodes], dtype=float)
        sd = self.plane.signed_distance(positions)
        result.signed_distances = sd

        keep = sd <= params.d_enter

        if params.enable_hysteresis and prev_signed_distances is not None \
                and len(prev_signed_distances) == len(sd):
            keep |= (prev_signed_distances > params.d_exit) & (sd <= params.d_enter)

        if params.enable_velocity_gate and engine.supports(Capability.NODE_VELOCITY):
            for i, node in enumerate(nodes):
                if node.velocity is not None and np.dot(node.velocity, self.plane.normal) < -params.v_min:
                    keep[i] = True

        for i in np.flatnonzero(keep):
            if len(result.candidates) >= params.n_target:
                break
            node = nodes[i]
            p = positions[i]
            result.candidates.append(ContactSample(float(p[0]), float(p[1]), float(p[2])))
            result.position_sum += p
            if node.normal is not None:
                result.normal_sum += node.normal
            result.raw_count += 1
            result.node_contacts += 1

        logger.debug(f"soft body {body}: {result.node_contacts} node contacts, "
                     f"{result.manifold_contacts} manifold contacts")


def body_velocity(engine: PhysicsEngine, body: Hashable, is_soft: bool) -> Optional[np.ndarray]:
    """Rigid linear velocity, or the node-averaged velocity of a soft body."""
    if is_soft:
        if not engine.supports(Capability.NODE_VELOCITY):
            return None
        velocities = [n.velocity for n in engine.nodes(body) if n.velocity is not None]
        if not velocities:
            return None
        return np.mean(np.asarray(velocities, dtype=float), axis=0)

    v = engine.linear_velocity(body)
    if v is None:
        return None
    return np.asarray(v, dtype=float)


def body_angular_velocity(engine: PhysicsEngine, body: Hashable) -> Optional[np.ndarray]:
    w = engine.angular_velocity(body)
    if w is None:
        return None
    return np.asarray(w, dtype=float)
