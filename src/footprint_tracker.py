from dataclasses import dataclass
from typing import Hashable, Optional

import numpy as np

from contact_collector import body_angular_velocity, body_velocity
from contact_sampler import SampleResult, sample_contacts
from footprint_fitter import OBB, compute_footprint_box
from load_config import TrackerConfig
from physics_engine import PhysicsEngine
from temporal_stabilizer import ContactState


@dataclass
class FrameResult:
    frame: int
    sample: SampleResult
    box: Optional[OBB]
    velocity: Optional[np.ndarray] = None


class FootprintTracker:
    """
    Contact footprint pipeline for one tracked body.

    Owns the body's ContactState together with the previous box, angle and
    velocity used by the orientation stabilizer. One tracker per body; call
    step() once per simulation frame and reset() when the body respawns.
    """

    def __init__(self, body: Hashable, config: Optional[TrackerConfig] = None):
        self.body = body
        self.config = config or TrackerConfig()
        self.state = ContactState()
        self.previous_box: Optional[OBB] = None
        self.previous_velocity: Optional[np.ndarray] = None
        self.previous_angle: Optional[float] = None
        self.frame = 0

    def reset(self):
        self.state.reset()
        self.previous_box = None
        self.previous_velocity = None
        self.previous_angle = None
        self.frame = 0

    def step(self, engine: PhysicsEngine, dt: Optional[float] = None) -> FrameResult:
        params = self.config.params
        footprint = self.config.footprint

        sample = sample_contacts(engine, self.body, params, self.state, dt)
        velocity = body_velocity(engine, self.body, params.is_soft)
        angular_velocity = None if params.is_soft else body_angular_velocity(engine, self.body)

        box = None
        if sample.points:
            # held frames carry no fresh candidates, so use the held centroid height
            if sample.diagnostics.candidate_count > 0:
                contact_height = float(sample.avg_position[1])
            else:
                contact_height = float(sample.centroid[1])
            box = compute_footprint_box(
                sample.points,
                self.config.algorithm,
                self.previous_box,
                self.previous_velocity,
                self.previous_angle,
                footprint.angle_stability_threshold,
                velocity=velocity,
                angular_velocity=angular_velocity,
                normal=sample.avg_normal,
                contact_height=contact_height,
                config=footprint,
            )

        if box is not None:
            self.previous_box = box
            self.previous_angle = box.theta
        if velocity is not None:
            self.previous_velocity = velocity

        result = FrameResult(frame=self.frame, sample=sample, box=box, velocity=velocity)
        self.frame += 1
        return result
