import logging
from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Optional

import numpy as np

from contact_collector import ContactCandidateCollector, ContactSample
from load_config import ContactParams
from noise_filter import NoiseControlFilter
from physics_engine import PhysicsEngine
from sparse_augmenter import augment_sparse_set
from temporal_stabilizer import ContactState, QualityFlags, TemporalStabilizer

logger = logging.getLogger(__name__)


@dataclass
class SampleDiagnostics:
    is_soft_body: bool
    candidate_count: int = 0
    filtered_count: int = 0
    final_count: int = 0
    real_contact_count: int = 0
    synthetic_count: int = 0
    hull_vertex_count: int = 0
    manifold_contacts: int = 0
    node_contacts: int = 0
    removed: Dict[str, int] = field(default_factory=dict)
    augmented: bool = False

    @property
    def contact_method(self) -> str:
        return 'manifold + signed distance' if self.is_soft_body else 'manifold'


@dataclass
class SampleResult:
    points: List[ContactSample]
    centroid: np.ndarray
    avg_normal: np.ndarray
    avg_position: np.ndarray
    flags: QualityFlags
    diagnostics: SampleDiagnostics

    @property
    def real_points(self) -> List[ContactSample]:
        return [p for p in self.points if not p.is_synthetic]

    @property
    def synthetic_points(self) -> List[ContactSample]:
        return [p for p in self.points if p.is_synthetic]


def sample_contacts(engine: PhysicsEngine, body: Hashable, params: ContactParams,
                    state: ContactState, dt: Optional[float] = None) -> SampleResult:
    """
    Acquires the stabilized contact set of one body for the current frame.

    Runs collection, noise control, temporal stabilization and, when the
    result is sparse, augmentation from the body silhouette. `state` is
    updated in place and must belong to this body only.
    """
    candidates = ContactCandidateCollector(params).collect(engine, body, state.prev_signed_distances)
    if candidates.signed_distances is not None:
        state.prev_signed_distances = candidates.signed_distances

    report = NoiseControlFilter(params).apply(candidates.candidates)
    stabilized = TemporalStabilizer(params).stabilize(report.points, state, dt)

    diagnostics = SampleDiagnostics(
        is_soft_body=params.is_soft,
        candidate_count=len(candidates.candidates),
        filtered_count=len(stabilized.points),
        manifold_contacts=candidates.manifold_contacts,
        node_contacts=candidates.node_contacts,
        removed=report.removed,
    )

    points = stabilized.points
    if params.enable_augmentation and 0 < len(points) <= params.min_contacts_for_stable_box:
        plane_height = float(stabilized.centroid[1])
        points, diagnostics.hull_vertex_count = augment_sparse_set(
            points, stabilized.centroid, plane_height, engine.mesh_vertices(body))
        diagnostics.augmented = True

    diagnostics.final_count = len(points)
    diagnostics.synthetic_count = sum(1 for p in points if p.is_synthetic)
    diagnostics.real_contact_count = diagnostics.final_count - diagnostics.synthetic_count

    if stabilized.flags.reasons:
        logger.debug(f"body {body}: flags {stabilized.flags.reasons} held={stabilized.flags.held}")

    return SampleResult(
        points=points,
        centroid=stabilized.centroid,
        avg_normal=candidates.average_normal(params.ground_normal),
        avg_position=candidates.average_position(),
        flags=stabilized.flags,
        diagnostics=diagnostics,
    )
