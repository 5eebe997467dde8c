import json
import math
import os
from dataclasses import dataclass, field, fields
from typing import Dict, Optional, Tuple

import numpy as np

RIGID = 'rigid'
SOFT = 'soft'
BODY_KINDS = (RIGID, SOFT)

ALGORITHMS = ('aabb', 'hybrid', 'pca', 'ombb', 'kdop8')


def normalize_ground_normal(normal) -> Tuple[float, float, float]:
    # unit ground normal, +Y when degenerate
    n = np.asarray(normal, dtype=float).reshape(3)
    mag = float(np.linalg.norm(n))
    if mag <= 1e-9:
        return (0.0, 1.0, 0.0)
    return tuple(float(c) for c in n / mag)


@dataclass(frozen=True)
class ContactParams:
    """Per-body contact acquisition settings.

    Distances are in metres, velocities in m/s. The instance is created once
    per tracked body and is read-only afterwards; invalid values raise
    ValueError here rather than in the frame loop.
    """
    # thresholds
    d_enter: float = 0.004
    d_exit: float = 0.010
    d_max: float = 0.005

    # spatial filtering
    grid_cell_xz: float = 0.004
    y_max: float = 0.008

    # velocity gate
    v_min: float = 0.02

    # neighbor support (soft bodies)
    r_n: float = 0.015
    k: int = 2

    # temporal smoothing
    alpha_centroid: float = 0.5
    tau_centroid: Optional[float] = None
    n_hold: int = 2

    # limits
    n_target: int = 48
    max_manifolds: int = 32
    min_contacts_for_stable_box: int = 4

    ground_normal: Tuple[float, float, float] = (0.0, 1.0, 0.0)
    ground_offset: float = 0.0
    body_kind: str = RIGID

    enable_distance_filter: bool = True
    enable_hysteresis: bool = True
    enable_velocity_gate: bool = True
    enable_grid_dedupe: bool = True
    enable_iqr_outlier: bool = True
    enable_neighbor_support: bool = True
    enable_ema_smoothing: bool = True
    enable_hold_last: bool = True
    enable_quality_gates: bool = True
    enable_augmentation: bool = True

    def __post_init__(self):
        object.__setattr__(self, 'ground_normal', normalize_ground_normal(self.ground_normal))
        self.validate()

    def validate(self):
        if self.body_kind not in BODY_KINDS:
            raise ValueError(f"unknown body_kind '{self.body_kind}', expected one of {BODY_KINDS}")
        if self.n_hold < 0:
            raise ValueError(f"n_hold must be >= 0, got {self.n_hold}")
        if self.k <= 0:
            raise ValueError(f"k must be > 0, got {self.k}")
        if self.n_target <= 0:
            raise ValueError(f"n_target must be > 0, got {self.n_target}")
        if self.max_manifolds <= 0:
            raise ValueError(f"max_manifolds must be > 0, got {self.max_manifolds}")
        if self.min_contacts_for_stable_box < 0:
            raise ValueError(f"min_contacts_for_stable_box must be >= 0, got {self.min_contacts_for_stable_box}")
        if self.grid_cell_xz <= 0:
            raise ValueError(f"grid_cell_xz must be > 0, got {self.grid_cell_xz}")
        if self.r_n <= 0:
            raise ValueError(f"r_n must be > 0, got {self.r_n}")
        if not 0.0 <= self.alpha_centroid < 1.0:
            raise ValueError(f"alpha_centroid must be in [0, 1), got {self.alpha_centroid}")
        if self.tau_centroid is not None and self.tau_centroid <= 0:
            raise ValueError(f"tau_centroid must be > 0, got {self.tau_centroid}")
        if self.d_exit < self.d_enter:
            raise ValueError(f"d_exit ({self.d_exit}) must be >= d_enter ({self.d_enter})")
        if self.y_max < 0 or self.v_min < 0 or self.d_max < 0:
            raise ValueError("y_max, v_min and d_max must be non-negative")

    @property
    def is_soft(self) -> bool:
        return self.body_kind == SOFT

    @classmethod
    def for_soft_body(cls, **overrides) -> 'ContactParams':
        # deformable contact is diffuse: wider bands, most gates off
        preset = dict(
            d_enter=0.050,
            d_exit=0.080,
            d_max=0.100,
            r_n=0.050,
            k=1,
            y_max=0.100,
            v_min=0.005,
            grid_cell_xz=0.010,
            n_target=128,
            max_manifolds=64,
            body_kind=SOFT,
            enable_neighbor_support=False,
            enable_velocity_gate=False,
            enable_hysteresis=False,
            enable_grid_dedupe=False,
            enable_iqr_outlier=False,
            enable_ema_smoothing=True,
            enable_hold_last=True,
            enable_quality_gates=False,
            enable_distance_filter=False,
        )
        preset.update(overrides)
        return cls(**preset)

    @classmethod
    def for_kind(cls, body_kind: str, **overrides) -> 'ContactParams':
        if body_kind == SOFT:
            return cls.for_soft_body(**overrides)
        return cls(body_kind=body_kind, **overrides)

    @classmethod
    def from_dict(cls, config_dict: Dict, body_kind: str = RIGID) -> 'ContactParams':
        known = {f.name for f in fields(cls)}
        unknown = set(config_dict) - known
        if unknown:
            raise ValueError(f"unknown contact parameters: {sorted(unknown)}")
        overrides = dict(config_dict)
        if 'ground_normal' in overrides:
            overrides['ground_normal'] = tuple(overrides['ground_normal'])
        kind = overrides.pop('body_kind', body_kind)
        return cls.for_kind(kind, **overrides)


@dataclass(frozen=True)
class FootprintConfig:
    """Box fitting and orientation stabilization settings (angles in radians)."""
    min_contact_size: float = 0.05
    obb_depth: float = 2.5
    angle_stability_threshold: float = math.radians(25.0)
    hybrid_k: int = 16
    hybrid_quantile: float = 0.05
    refine_iterations: int = 24
    kdop_k: int = 8
    min_motion_speed: float = 0.05
    min_angular_speed: float = 0.5
    align_to_velocity: bool = False
    velocity_align_speed: float = 0.5

    def __post_init__(self):
        if self.min_contact_size <= 0:
            raise ValueError(f"min_contact_size must be > 0, got {self.min_contact_size}")
        if self.hybrid_k <= 0 or self.kdop_k <= 0:
            raise ValueError("hybrid_k and kdop_k must be > 0")
        if not 0.0 <= self.hybrid_quantile < 0.5:
            raise ValueError(f"hybrid_quantile must be in [0, 0.5), got {self.hybrid_quantile}")
        if self.refine_iterations < 0:
            raise ValueError(f"refine_iterations must be >= 0, got {self.refine_iterations}")
        if not 0.0 <= self.angle_stability_threshold <= math.pi / 4:
            raise ValueError("angle_stability_threshold must be in [0, pi/4]")
        if self.min_motion_speed < 0 or self.min_angular_speed < 0:
            raise ValueError("motion floors must be non-negative")

    @classmethod
    def from_dict(cls, config_dict: Dict) -> 'FootprintConfig':
        overrides = dict(config_dict)
        # json carries the threshold in degrees
        if 'angle_stability_threshold_deg' in overrides:
            overrides['angle_stability_threshold'] = math.radians(overrides.pop('angle_stability_threshold_deg'))
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"unknown footprint parameters: {sorted(unknown)}")
        return cls(**overrides)


@dataclass(frozen=True)
class TrackerConfig:
    # settings for one tracked body
    params: ContactParams = field(default_factory=ContactParams)
    footprint: FootprintConfig = field(default_factory=FootprintConfig)
    algorithm: str = 'hybrid'

    def __post_init__(self):
        if self.algorithm not in ALGORITHMS:
            raise ValueError(f"unknown algorithm '{self.algorithm}', expected one of {ALGORITHMS}")

    @classmethod
    def from_dict(cls, config_dict: Dict) -> 'TrackerConfig':
        body_kind = config_dict.get('body_kind', RIGID)
        return cls(
            params=ContactParams.from_dict(config_dict.get('contact', {}), body_kind=body_kind),
            footprint=FootprintConfig.from_dict(config_dict.get('footprint', {})),
            algorithm=config_dict.get('algorithm', 'hybrid'),
        )


def load_config_from_file(filename: str) -> TrackerConfig:
    # load from a json file
    if not os.path.exists(filename):
        raise FileNotFoundError(f"file '{filename}' not found")

    with open(filename, 'r') as f:
        try:
            config_dict = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid json in '{filename}': {e}")

    if not isinstance(config_dict, dict):
        raise ValueError(f"'{filename}' must contain a json object")

    return TrackerConfig.from_dict(config_dict)
