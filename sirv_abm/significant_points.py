"""Significant-point detection over aggregate counts.

Three one-shot latches, evaluated after each tick's aggregation:
  - BREAKING: first tick where infectious > susceptible
  - RECOVERY: first tick where recovered > infectious
  - SURVIVAL: first tick where infectious == 0 and tick > recovery_ticks

Each fires at most once per run; re-crossing a threshold later does
nothing. Only a full reset (a new detector, or reset()) re-arms them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from sirv_abm.types import SignificantPointEvent, SignificantPointKind, State

logger = logging.getLogger(__name__)


@dataclass
class SignificantPointDetector:
    """Latched detectors. `reached` maps kind → tick it fired at."""
    reached: Dict[SignificantPointKind, int] = field(default_factory=dict)

    def is_reached(self, kind: SignificantPointKind) -> bool:
        return kind in self.reached

    def tick_of(self, kind: SignificantPointKind) -> Optional[int]:
        return self.reached.get(kind)

    def evaluate(
        self,
        counts: np.ndarray,
        tick: int,
        recovery_ticks: int,
    ) -> List[SignificantPointEvent]:
        """Check all three thresholds and latch any first crossing.

        Args:
            counts: Agents per compartment, indexed by State.
            tick: Tick counter after this tick's increment.
            recovery_ticks: Current recovery_ticks parameter.

        Returns:
            Events that fired on this call, in BREAKING, RECOVERY, SURVIVAL
            order (usually empty).
        """
        n_S = int(counts[State.SUSCEPTIBLE])
        n_I = int(counts[State.INFECTIOUS])
        n_R = int(counts[State.RECOVERED])

        conditions = (
            (SignificantPointKind.BREAKING, n_I > n_S),
            (SignificantPointKind.RECOVERY, n_R > n_I),
            (SignificantPointKind.SURVIVAL, n_I == 0 and tick > recovery_ticks),
        )
        fired = []
        for kind, crossed in conditions:
            if crossed and kind not in self.reached:
                self.reached[kind] = tick
                fired.append(SignificantPointEvent(kind=kind, tick=tick))
                logger.info("%s point reached at tick %d", kind.value.capitalize(), tick)
        return fired

    def reset(self) -> None:
        self.reached.clear()
