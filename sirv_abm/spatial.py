"""Proximity queries over agent positions.

The transmission engine asks "which agents are within radius r of agent i?"
many times per tick while positions may change mid-pass (teleports to a
point of interest, a department or quarantine). ProximityIndex wraps a
scipy cKDTree over the ground-plane positions and rebuilds it lazily
whenever the population's positions_version has moved on, so every query
sees the positions as they are at that moment of the sequential pass.

Results are agent ids only, sorted ascending (population order). Nothing
but agents is ever indexed, so callers never have to filter foreign
objects out of a result.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

import numpy as np
from scipy.spatial import cKDTree

from sirv_abm.population import Population


class ProximityIndex:
    """Lazily rebuilt k-d tree over a Population's positions."""

    def __init__(self, population: Population):
        self.population = population
        self._tree: Optional[cKDTree] = None
        self._version = -1
        self._size = -1
        self.rebuilds = 0

    def _ensure_current(self) -> None:
        pop = self.population
        if self._version == pop.positions_version and self._size == len(pop):
            return
        if len(pop) == 0:
            self._tree = None
        else:
            self._tree = cKDTree(pop.positions())
        self._version = pop.positions_version
        self._size = len(pop)
        self.rebuilds += 1

    def query_radius(self, point: Tuple[float, float], radius: float) -> List[int]:
        """Ids of all agents within `radius` (inclusive) of `point`.

        Args:
            point: Ground-plane (x, y).
            radius: Search radius (> 0).

        Returns:
            Agent ids in ascending population order. Empty for an empty
            population.
        """
        self._ensure_current()
        if self._tree is None:
            return []
        ids = self._tree.query_ball_point(np.asarray(point, dtype=np.float64),
                                          r=radius, return_sorted=True)
        return [int(i) for i in ids]

    def neighbors_of(self, i: int, radius: float) -> List[int]:
        """Agents within radius of agent i, excluding i itself."""
        return [j for j in self.query_radius(self.population.position(i), radius) if j != i]


def distance(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    """Euclidean ground-plane distance."""
    return float(np.hypot(a[0] - b[0], a[1] - b[1]))
