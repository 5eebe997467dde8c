import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from contact_collector import ContactSample, samples_to_array
from load_config import ContactParams

logger = logging.getLogger(__name__)

SPARSE_LIMIT = 4

SPARSE = 'sparse'
VERTICAL_SPREAD = 'vertical_spread'
NO_CONTACTS = 'no_contacts'


@dataclass
class QualityFlags:
    degraded: bool = False
    rejected: bool = False
    held: bool = False
    reasons: List[str] = field(default_factory=list)

    def flag(self, reason: str, rejected: bool = False):
        self.reasons.append(reason)
        if rejected:
            self.rejected = True
        else:
            self.degraded = True


@dataclass
class ContactState:
    """Temporal memory of one tracked body; owned by its tracker."""
    prev_signed_distances: Optional[np.ndarray] = None
    prev_centroid: Optional[np.ndarray] = None
    prev_accepted_points: Optional[Tuple[ContactSample, ...]] = None
    hold_frames: int = 0

    def reset(self):
        self.prev_signed_distances = None
        self.prev_centroid = None
        self.prev_accepted_points = None
        self.hold_frames = 0


@dataclass
class StabilizedSet:
    points: List[ContactSample]
    centroid: np.ndarray
    flags: QualityFlags


def centroid_of(points: Sequence[ContactSample]) -> Optional[np.ndarray]:
    if not points:
        return None
    return samples_to_array(points).mean(axis=0)


class TemporalStabilizer:
    """
    Centroid smoothing, quality gates and hold-last-good fallback.

    The caller always receives a point set and a centroid; failures show up
    only in the returned flags.
    """

    def __init__(self, params: ContactParams):
        self.params = params

    def smoothing_factor(self, dt: Optional[float]) -> float:
        # frame-rate independent when a time constant is configured
        if self.params.tau_centroid is not None and dt is not None and dt > 0:
            return math.exp(-dt / self.params.tau_centroid)
        return self.params.alpha_centroid

    def evaluate_quality(self, points: Sequence[ContactSample]) -> QualityFlags:
        flags = QualityFlags()
        if self.params.enable_quality_gates:
            if len(points) < SPARSE_LIMIT:
                flags.flag(SPARSE)
            if len(points) > 1:
                spread = float(np.std([p.y for p in points]))
                if spread > self.params.y_max:
                    flags.flag(VERTICAL_SPREAD, rejected=True)
        # empty frames are flagged even with the gates off
        if not points:
            flags.flag(NO_CONTACTS, rejected=True)
        return flags

    def stabilize(self, filtered: Sequence[ContactSample], state: ContactState,
                  dt: Optional[float] = None) -> StabilizedSet:
        params = self.params
        points = list(filtered)

        centroid = centroid_of(points)
        if centroid is not None and params.enable_ema_smoothing and state.prev_centroid is not None:
            alpha = self.smoothing_factor(dt)
            centroid = alpha * state.prev_centroid + (1.0 - alpha) * centroid

        flags = self.evaluate_quality(points)

        can_hold = (
            params.enable_hold_last
            and flags.rejected
            and bool(state.prev_accepted_points)
            and state.prev_centroid is not None
            and state.hold_frames < params.n_hold
        )
        if can_hold:
            state.hold_frames += 1
            flags.held = True
            logger.debug(f"holding last good set ({state.hold_frames}/{params.n_hold}): {flags.reasons}")
            return StabilizedSet(
                points=list(state.prev_accepted_points),
                centroid=state.prev_centroid.copy(),
                flags=flags,
            )

        state.hold_frames = 0
        state.prev_accepted_points = tuple(points)
        if centroid is not None:
            state.prev_centroid = centroid.copy()
        elif state.prev_centroid is not None:
            centroid = state.prev_centroid.copy()
        else:
            centroid = np.zeros(3)

        return StabilizedSet(points=points, centroid=centroid, flags=flags)
