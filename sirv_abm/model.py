"""Simulation state and the per-tick step.

advance_one_tick is a pure step over an explicit SimulationState: it reads
one parameter snapshot, mutates the state in a fixed order and returns a
TickReport. It never sleeps or paces itself; real-time pacing belongs to
the host (see clock.SimulationClock).

Tick order:
  0. Apply global toggle changes found in the parameter snapshot
  1. External reinfection (every reinfection_interval_ticks)
  2. Vaccination (once tick ≥ delay_ticks)
  3. Per-agent pass, in population order:
       resusceptibility → POI travel → department travel →
       department reassignment → destination decision →
       transmission, then quarantine check (Infectious only)
  4. tick += 1
  5. Aggregate counts, evaluate significant points, emit the report
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np

from sirv_abm.backend import MovementBackend, RectangularWorld
from sirv_abm.config import SimulationConfig, default_config, validate_config
from sirv_abm.disease import (
    check_resusceptibility,
    seed_initial_infections,
    transmission_impulse,
)
from sirv_abm.events import EventQueue
from sirv_abm.interventions import (
    DepartmentsUnavailableError,
    administer_vaccine,
    apply_social_distancing_amount,
    check_for_quarantine,
    departments_travel,
    determine_department,
    external_reinfection,
    point_of_interest_travel,
    select_social_distancing_non_abiders,
    set_departments_enabled,
    set_point_of_interest_enabled,
    set_quarantine_enabled,
)
from sirv_abm.movement import random_positions, spawn_half_extent, update_destination
from sirv_abm.population import Population
from sirv_abm.rng import create_rng
from sirv_abm.significant_points import SignificantPointDetector
from sirv_abm.spatial import ProximityIndex
from sirv_abm.types import (
    NO_DEPARTMENT,
    InterventionFailed,
    SignificantPointKind,
    State,
    TickReport,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# STATE
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationState:
    """Everything that changes while a run advances.

    The *_active fields record which global toggles have actually been
    applied; the step compares them with each new parameter snapshot.
    departments_requested can differ from departments_active when the
    backend has no department zones.
    """
    population: Population
    index: ProximityIndex
    events: EventQueue
    detector: SignificantPointDetector = field(default_factory=SignificantPointDetector)
    tick: int = 0
    departments_active: bool = False
    departments_requested: bool = False
    quarantine_active: bool = False
    poi_active: bool = False
    social_distancing_amount: float = 0.5

    @property
    def population_size(self) -> int:
        """Live population size; grows by each external-reinfection batch."""
        return len(self.population)


def _report_departments_failure(sim: SimulationState, exc: DepartmentsUnavailableError) -> None:
    logger.error("Departments unavailable at tick %d: %s", sim.tick, exc)
    sim.events.append(InterventionFailed(feature='departments', message=str(exc), tick=sim.tick))


def _deactivate_departments(sim: SimulationState, backend: MovementBackend) -> None:
    sim.departments_active = False
    agents = sim.population.agents
    agents['departments_enabled'][:] = False
    agents['department'][:] = NO_DEPARTMENT
    backend.rebuild_navigation_surfaces(departments=False, quarantine=sim.quarantine_active)


# ═══════════════════════════════════════════════════════════════════════
# INITIALIZATION
# ═══════════════════════════════════════════════════════════════════════

def initialize_simulation(
    config: SimulationConfig,
    rng: np.random.Generator,
    backend: MovementBackend,
    events: Optional[EventQueue] = None,
    detector: Optional[SignificantPointDetector] = None,
) -> SimulationState:
    """Spawn a fresh population and seed the first infections.

    Steps: build navigation surfaces for the configured topology, spawn
    population_size agents uniformly over the ground (or departments)
    square, copy the global toggles onto every agent, assign departments,
    select social-distancing non-abiders, then infect the first
    round(n × infectious_on_start) agents.

    Args:
        config: Validated configuration.
        rng: The simulation's random source.
        backend: Movement backend.
        events: Queue to reuse (a new one is created if None).
        detector: Significant-point detector to reuse (a new one if None).

    Returns:
        A SimulationState at tick 0.
    """
    pop = Population(capacity=config.simulation.population_size)
    sim = SimulationState(
        population=pop,
        index=ProximityIndex(pop),
        events=events if events is not None else EventQueue(),
        detector=detector if detector is not None else SignificantPointDetector(),
        quarantine_active=config.quarantine.enabled,
        poi_active=config.point_of_interest.enabled,
        departments_requested=config.departments.enabled,
        social_distancing_amount=config.social_distancing.amount,
    )

    departments = config.departments.enabled
    if departments and not backend.department_zones():
        _report_departments_failure(sim, DepartmentsUnavailableError(
            "Departments requested but the movement backend defines no department zones"))
        departments = False
    sim.departments_active = departments
    backend.rebuild_navigation_surfaces(departments=departments,
                                        quarantine=sim.quarantine_active)

    half = spawn_half_extent(config.world, departments)
    ids = pop.spawn(random_positions(rng, config.simulation.population_size, half))
    agents = pop.agents
    agents['poi_enabled'][:] = sim.poi_active
    agents['departments_enabled'][:] = departments
    for i in ids:
        backend.place_agent(int(i), pop.position(int(i)))
        determine_department(sim, int(i), backend)

    select_social_distancing_non_abiders(sim, config)
    seed_initial_infections(sim, config, rng, backend)

    logger.info("Initialized %d agents (%d infectious, departments=%s)",
                len(pop), pop.count(State.INFECTIOUS), departments)
    return sim


def reset_simulation(
    sim: SimulationState,
    config: SimulationConfig,
    rng: np.random.Generator,
    backend: MovementBackend,
) -> SimulationState:
    """Full reset: new population, tick 0, re-armed significant points.

    The event queue and detector objects are kept (emptied) so that host
    references stay valid. The random source continues from its current
    state.
    """
    sim.events.clear()
    sim.detector.reset()
    logger.info("Resetting simulation at tick %d", sim.tick)
    return initialize_simulation(config, rng, backend, events=sim.events,
                                 detector=sim.detector)


# ═══════════════════════════════════════════════════════════════════════
# TICK
# ═══════════════════════════════════════════════════════════════════════

def _apply_parameter_changes(
    sim: SimulationState,
    config: SimulationConfig,
    rng: np.random.Generator,
    backend: MovementBackend,
) -> None:
    """Sweep global toggles that differ from what was last applied."""
    if config.quarantine.enabled != sim.quarantine_active:
        set_quarantine_enabled(sim, config.quarantine.enabled, config, rng, backend)

    if config.departments.enabled != sim.departments_requested:
        sim.departments_requested = config.departments.enabled
        # skipped when an earlier failed request never activated departments
        if config.departments.enabled != sim.departments_active:
            try:
                set_departments_enabled(sim, config.departments.enabled, config, rng, backend)
            except DepartmentsUnavailableError as exc:
                _report_departments_failure(sim, exc)

    if config.point_of_interest.enabled != sim.poi_active:
        set_point_of_interest_enabled(sim, config.point_of_interest.enabled)

    if config.social_distancing.amount != sim.social_distancing_amount:
        apply_social_distancing_amount(sim, config.social_distancing.amount)


def _agent_step(
    sim: SimulationState,
    i: int,
    config: SimulationConfig,
    rng: np.random.Generator,
    backend: MovementBackend,
) -> None:
    if config.disease.resusceptibility:
        check_resusceptibility(sim, i, config, rng, backend)

    if sim.poi_active:
        point_of_interest_travel(sim, i, config, rng, backend)

    if sim.departments_active:
        try:
            departments_travel(sim, i, config, rng, backend)
        except DepartmentsUnavailableError as exc:
            _report_departments_failure(sim, exc)
            _deactivate_departments(sim, backend)
        else:
            determine_department(sim, i, backend)

    update_destination(sim, i, config, rng, backend)

    if sim.population.agents['state'][i] == State.INFECTIOUS:
        transmission_impulse(sim, i, config, rng, backend)
        if sim.quarantine_active:
            check_for_quarantine(sim, i, config, backend)


def advance_one_tick(
    sim: SimulationState,
    config: SimulationConfig,
    rng: np.random.Generator,
    backend: MovementBackend,
) -> Tuple[SimulationState, TickReport]:
    """Advance the simulation by exactly one tick.

    Args:
        sim: State to advance (mutated in place).
        config: Parameter snapshot taken at the start of this tick.
        rng: The simulation's random source.
        backend: Movement backend.

    Returns:
        (sim, report) where report holds the counts after the tick.
    """
    _apply_parameter_changes(sim, config, rng, backend)

    if config.disease.external_reinfection:
        external_reinfection(sim, config, rng, backend)

    if config.vaccination.enabled and sim.tick >= config.vaccination.delay_ticks:
        administer_vaccine(sim, config, rng, backend)

    # Nobody spawns during the pass, so the length is fixed here
    for i in range(len(sim.population)):
        _agent_step(sim, i, config, rng, backend)

    sim.tick += 1

    counts = sim.population.counts()
    report = TickReport.from_counts(sim.tick, counts)
    sim.events.append(report)
    for event in sim.detector.evaluate(counts, sim.tick, config.disease.recovery_ticks):
        sim.events.append(event)

    logger.debug("Tick %d: S=%d I=%d R=%d V=%d", report.tick, report.susceptible,
                 report.infectious, report.recovered, report.vaccinated)
    return sim, report


# ═══════════════════════════════════════════════════════════════════════
# HEADLESS RUNS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationResult:
    """Per-tick time series from a headless run."""
    n_ticks: int = 0
    seed: int = 0
    # Per-tick timeseries (length = n_ticks); index t holds counts after tick t+1
    ticks: Optional[np.ndarray] = None
    susceptible: Optional[np.ndarray] = None
    infectious: Optional[np.ndarray] = None
    recovered: Optional[np.ndarray] = None
    vaccinated: Optional[np.ndarray] = None
    population: Optional[np.ndarray] = None
    # Significant points (None = never reached)
    breaking_tick: Optional[int] = None
    recovery_tick: Optional[int] = None
    survival_tick: Optional[int] = None
    # Summary
    initial_population: int = 0
    final_population: int = 0
    peak_infectious: int = 0
    peak_infectious_tick: int = 0

    def as_dict(self) -> Dict[str, object]:
        """JSON-friendly copy (arrays become lists)."""
        out: Dict[str, object] = {}
        for key, value in self.__dict__.items():
            out[key] = value.tolist() if isinstance(value, np.ndarray) else value
        return out


def run_simulation(
    config: Optional[SimulationConfig] = None,
    n_ticks: int = 200,
    seed: Optional[int] = None,
    backend: Optional[MovementBackend] = None,
) -> SimulationResult:
    """Run a simulation headless for n_ticks and collect its time series.

    Parameters stay fixed for the whole run. When the backend can simulate
    physical movement (it has an ``advance`` method, like RectangularWorld),
    agents walk for tick_length_seconds between ticks.

    Args:
        config: Configuration (defaults if None).
        n_ticks: Number of ticks to run.
        seed: Overrides config.simulation.seed when given.
        backend: Movement backend (a RectangularWorld if None).

    Returns:
        SimulationResult with per-tick counts and significant-point ticks.
    """
    if config is None:
        config = default_config()
    validate_config(config)
    if seed is None:
        seed = config.simulation.seed
    rng = create_rng(seed)
    if backend is None:
        backend = RectangularWorld(config.world)

    sim = initialize_simulation(config, rng, backend,
                                EventQueue(record_state_changes=False))
    initial_population = len(sim.population)

    counts = np.zeros((n_ticks, 4), dtype=np.int64)
    advance = getattr(backend, 'advance', None)
    for t in range(n_ticks):
        sim, report = advance_one_tick(sim, config, rng, backend)
        counts[t] = (report.susceptible, report.infectious,
                     report.recovered, report.vaccinated)
        sim.events.clear()
        if advance is not None:
            advance(sim.population, config.simulation.tick_length_seconds)

    infectious = counts[:, State.INFECTIOUS]
    peak_t = int(np.argmax(infectious)) if n_ticks > 0 else 0
    detector = sim.detector
    return SimulationResult(
        n_ticks=n_ticks,
        seed=seed,
        ticks=np.arange(1, n_ticks + 1),
        susceptible=counts[:, State.SUSCEPTIBLE].copy(),
        infectious=infectious.copy(),
        recovered=counts[:, State.RECOVERED].copy(),
        vaccinated=counts[:, State.VACCINATED].copy(),
        population=counts.sum(axis=1),
        breaking_tick=detector.tick_of(SignificantPointKind.BREAKING),
        recovery_tick=detector.tick_of(SignificantPointKind.RECOVERY),
        survival_tick=detector.tick_of(SignificantPointKind.SURVIVAL),
        initial_population=initial_population,
        final_population=len(sim.population),
        peak_infectious=int(infectious[peak_t]) if n_ticks > 0 else 0,
        peak_infectious_tick=peak_t + 1 if n_ticks > 0 else 0,
    )
