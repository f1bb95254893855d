"""Population container.

Handles: ordered storage of agents in spawn order, batch growth, position
writes (with a version counter for the proximity index), and aggregate
counts by compartment.

The row index of an agent is both its stable id and its position in the
population order. Agents are never removed individually; only a full
reset (a new Population) clears them.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from sirv_abm.types import N_STATES, State, allocate_agents


class Population:
    """Growable, insertion-ordered agent array.

    `agents` is a view of the live rows only; it must be re-read after any
    call to `spawn()`, which may reallocate the backing array.
    """

    def __init__(self, capacity: int = 128):
        self._buffer = allocate_agents(max(1, capacity))
        self._n = 0
        self.positions_version = 0

    def __len__(self) -> int:
        return self._n

    @property
    def agents(self) -> np.ndarray:
        return self._buffer[:self._n]

    def spawn(self, positions: np.ndarray) -> np.ndarray:
        """Append one agent per row of positions, in order.

        Args:
            positions: Array of shape (k, 2) with ground-plane coordinates.

        Returns:
            Indices (ids) of the new agents.
        """
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 2)
        k = len(positions)
        if k == 0:
            return np.empty(0, dtype=np.int64)
        needed = self._n + k
        if needed > len(self._buffer):
            capacity = len(self._buffer)
            while capacity < needed:
                capacity *= 2
            grown = allocate_agents(capacity)
            grown[:self._n] = self._buffer[:self._n]
            self._buffer = grown
        ids = np.arange(self._n, needed)
        self._buffer['x'][ids] = positions[:, 0]
        self._buffer['y'][ids] = positions[:, 1]
        self._n = needed
        self.positions_version += 1
        return ids

    def position(self, i: int) -> Tuple[float, float]:
        return float(self._buffer['x'][i]), float(self._buffer['y'][i])

    def positions(self) -> np.ndarray:
        """(n, 2) copy of all ground-plane positions."""
        return np.column_stack((self.agents['x'], self.agents['y']))

    def set_position(self, i: int, point: Tuple[float, float]) -> None:
        self._buffer['x'][i] = point[0]
        self._buffer['y'][i] = point[1]
        self.positions_version += 1

    def set_positions(self, ids: np.ndarray, points: np.ndarray) -> None:
        """Bulk position write, e.g. a host syncing physical movement."""
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        self._buffer['x'][ids] = points[:, 0]
        self._buffer['y'][ids] = points[:, 1]
        self.positions_version += 1

    def counts(self) -> np.ndarray:
        """Agents per compartment, indexed by State. All zero when empty."""
        return np.bincount(self.agents['state'], minlength=N_STATES)[:N_STATES]

    def count(self, state: State) -> int:
        return int(np.count_nonzero(self.agents['state'] == state))
