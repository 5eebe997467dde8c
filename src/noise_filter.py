"""
Noise control for raw contact candidates.

Each stage is a pure function from a list of samples to a subset of it, so
stages can be tested and toggled on their own. NoiseControlFilter composes
the enabled stages in a fixed order:

1. grid dedupe on quantized (x, z) cells
2. IQR rejection of height outliers
3. neighbor-density support (soft bodies only)
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Sequence, Tuple

import numpy as np

from contact_collector import ContactSample
from load_config import ContactParams

logger = logging.getLogger(__name__)

MIN_IQR_POINTS = 5
IQR_FLOOR = 1e-6
IQR_FENCE = 1.5

Stage = Callable[[List[ContactSample]], List[ContactSample]]


def grid_dedupe(points: Sequence[ContactSample], cell_size: float) -> List[ContactSample]:
    # first point seen in each XZ cell wins
    seen = set()
    kept = []
    inv = 1.0 / cell_size
    for p in points:
        key = (math.floor(p.x * inv), math.floor(p.z * inv))
        if key not in seen:
            seen.add(key)
            kept.append(p)
    return kept


def iqr_reject(points: Sequence[ContactSample]) -> List[ContactSample]:
    """
    Drops points whose height lies outside the Tukey fences of the y values.

    Quartiles are taken by index on the sorted heights. Sets with fewer than
    MIN_IQR_POINTS points are returned unchanged.
    """
    points = list(points)
    n = len(points)
    if n < MIN_IQR_POINTS:
        return points

    ys = np.sort(np.array([p.y for p in points]))
    q25 = ys[int(math.floor(n * 0.25))]
    q75 = ys[int(math.floor(n * 0.75))]
    iqr = max(IQR_FLOOR, q75 - q25)
    lo = q25 - IQR_FENCE * iqr
    hi = q75 + IQR_FENCE * iqr
    return [p for p in points if lo <= p.y <= hi]


class SpatialGrid:
    """Hash grid over the XZ plane for fixed-radius neighbor counts."""

    def __init__(self, cell_size: float):
        self.cell_size = cell_size
        self.cells: Dict[Tuple[int, int], List[int]] = defaultdict(list)
        self.points: List[ContactSample] = []

    def _key(self, x: float, z: float) -> Tuple[int, int]:
        return (math.floor(x / self.cell_size), math.floor(z / self.cell_size))

    def insert(self, point: ContactSample):
        self.cells[self._key(point.x, point.z)].append(len(self.points))
        self.points.append(point)

    def count_neighbors(self, index: int, radius: float) -> int:
        # 3x3 block of cells is enough while radius <= cell_size
        p = self.points[index]
        cx, cz = self._key(p.x, p.z)
        r2 = radius * radius
        count = 0
        for dx in (-1, 0, 1):
            for dz in (-1, 0, 1):
                for j in self.cells.get((cx + dx, cz + dz), ()):
                    if j == index:
                        continue
                    q = self.points[j]
                    if (p.x - q.x) ** 2 + (p.z - q.z) ** 2 <= r2:
                        count += 1
        return count


def neighbor_support(points: Sequence[ContactSample], radius: float, k: int) -> List[ContactSample]:
    """
    Keeps points with at least k other points within radius in XZ.

    Fails open: if fewer than k points would survive, the input is returned.
    """
    points = list(points)
    if len(points) <= k:
        return points

    grid = SpatialGrid(radius)
    for p in points:
        grid.insert(p)
    kept = [p for i, p in enumerate(points) if grid.count_neighbors(i, radius) >= k]

    if len(kept) < k:
        return points
    return kept


@dataclass
class FilterReport:
    points: List[ContactSample]
    removed: Dict[str, int] = field(default_factory=dict)


class NoiseControlFilter:
    def __init__(self, params: ContactParams):
        self.params = params
        self.stages = self._build_stages()

    def _build_stages(self) -> List[Tuple[str, Stage]]:
        params = self.params
        stages = []
        if params.enable_grid_dedupe:
            stages.append(('grid_dedupe', lambda pts: grid_dedupe(pts, params.grid_cell_xz)))
        if params.enable_iqr_outlier:
            stages.append(('iqr', iqr_reject))
        if params.enable_neighbor_support and params.is_soft:
            stages.append(('neighbor_support', lambda pts: neighbor_support(pts, params.r_n, params.k)))
        return stages

    def apply(self, points: Sequence[ContactSample]) -> FilterReport:
        filtered = list(points)
        removed = {}
        for name, stage in self.stages:
            if not filtered:
                break
            before = len(filtered)
            filtered = stage(filtered)
            removed[name] = before - len(filtered)

        if removed:
            logger.debug(f"noise filter: {len(points)} -> {len(filtered)} {removed}")
        return FilterReport(points=filtered, removed=removed)
