"""Host-side orchestrator: owns the state and paces ticks.

SimulationClock wires a ParameterStore, the random source, a movement
backend and the SimulationState together. Each tick() takes one parameter
snapshot and calls the pure step in model.py, so a parameter written
through `clock.parameters` mid-run is first seen by the next tick.

Real-time pacing (one tick per tick_length_seconds of wall-clock time)
happens between ticks in run(), never inside a tick.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Type

from sirv_abm.backend import MovementBackend, RectangularWorld
from sirv_abm.config import ParameterStore, SimulationConfig
from sirv_abm.events import EventQueue
from sirv_abm.model import (
    SimulationState,
    advance_one_tick,
    initialize_simulation,
    reset_simulation,
)
from sirv_abm.rng import create_rng
from sirv_abm.types import TickReport

logger = logging.getLogger(__name__)


class SimulationClock:
    """Drive a simulation tick by tick.

    Args:
        config: Initial parameters (defaults if None).
        backend: Movement backend (a RectangularWorld if None).
        seed: Overrides config.simulation.seed when given.
        record_state_changes: Queue StateChanged events for the host.

    Example:
        >>> clock = SimulationClock(seed=7)
        >>> clock.parameters.set('quarantine.enabled', True)
        >>> report = clock.tick()
        >>> events = clock.drain_events()
    """

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        backend: Optional[MovementBackend] = None,
        seed: Optional[int] = None,
        record_state_changes: bool = True,
    ):
        self.parameters = ParameterStore(config)
        snapshot = self.parameters.snapshot()
        self.seed = seed if seed is not None else snapshot.simulation.seed
        self.rng = create_rng(self.seed)
        self.backend = backend if backend is not None else RectangularWorld(snapshot.world)
        self.state: SimulationState = initialize_simulation(
            snapshot, self.rng, self.backend, EventQueue(record_state_changes))
        self.last_report: Optional[TickReport] = None

    @property
    def current_tick(self) -> int:
        return self.state.tick

    @property
    def population_size(self) -> int:
        """Live size, including reinfection arrivals. The population_size
        parameter stays the size a reset respawns."""
        return self.state.population_size

    @property
    def events(self) -> EventQueue:
        return self.state.events

    def tick(self) -> TickReport:
        """Advance exactly one tick with a fresh parameter snapshot."""
        config = self.parameters.snapshot()
        self.state, report = advance_one_tick(self.state, config, self.rng, self.backend)
        self.last_report = report
        return report

    def reset(self) -> None:
        """Respawn the population from the current parameters at tick 0."""
        self.state = reset_simulation(self.state, self.parameters.snapshot(),
                                      self.rng, self.backend)
        self.last_report = None

    def drain_events(self, kind: Optional[Type] = None) -> List[object]:
        return self.state.events.drain(kind)

    def run(
        self,
        n_ticks: int,
        realtime: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        on_report: Optional[Callable[[TickReport], None]] = None,
    ) -> List[TickReport]:
        """Run n_ticks ticks, optionally paced to wall-clock time.

        Between ticks the backend's physical movement (if it has an
        ``advance`` method) is stepped by tick_length_seconds. With
        realtime=True the remainder of each tick's time slot is slept.

        Args:
            n_ticks: Number of ticks.
            realtime: Pace ticks at tick_length_seconds each.
            sleep: Sleep function (injectable for tests).
            on_report: Called with each TickReport as soon as it exists.

        Returns:
            The reports, in tick order.
        """
        reports = []
        advance = getattr(self.backend, 'advance', None)
        for _ in range(n_ticks):
            started = time.monotonic()
            report = self.tick()
            reports.append(report)
            if on_report is not None:
                on_report(report)

            seconds = self.parameters.get('simulation.tick_length_seconds')
            if advance is not None:
                advance(self.state.population, seconds)
            if realtime:
                remaining = seconds - (time.monotonic() - started)
                if remaining > 0:
                    sleep(remaining)

        logger.info("Ran %d ticks (now at tick %d)", n_ticks, self.state.tick)
        return reports
