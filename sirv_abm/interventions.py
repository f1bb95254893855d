"""Intervention policies.

Per-agent policies (called from the per-agent pass):
  - check_for_quarantine:      isolate an infectious agent after a delay
  - point_of_interest_travel:  Bernoulli teleport to the point of interest
  - departments_travel:        Bernoulli teleport to another department
  - determine_department:      reassign the department containing the agent

Population-level policies (called once per tick or on a toggle change):
  - external_reinfection:      periodic batch of new infectious agents
  - administer_vaccine:        first-come vaccination of susceptibles
  - select_social_distancing_non_abiders / apply_social_distancing_amount
  - set_quarantine_enabled, set_point_of_interest_enabled,
    set_departments_enabled: global toggle sweeps

All "take the first K" selections use population order, never random
sampling, so runs replay exactly.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from sirv_abm.config import SimulationConfig
from sirv_abm.disease import change_state
from sirv_abm.movement import (
    quarantine_point,
    random_positions,
    release_from_quarantine,
    spawn_half_extent,
    teleport,
)
from sirv_abm.types import NO_DEPARTMENT, State

if TYPE_CHECKING:
    from sirv_abm.backend import MovementBackend
    from sirv_abm.model import SimulationState

logger = logging.getLogger(__name__)


class DepartmentsUnavailableError(RuntimeError):
    """Departments were requested but the backend defines no department zones."""


# ═══════════════════════════════════════════════════════════════════════
# QUARANTINE
# ═══════════════════════════════════════════════════════════════════════

def enter_quarantine(
    sim: "SimulationState",
    i: int,
    config: SimulationConfig,
    backend: "MovementBackend",
) -> None:
    """Isolate agent i: minimal radius, short walks, inside the quarantine zone."""
    agents = sim.population.agents
    agents['quarantined'][i] = True
    agents['avoidance_radius'][i] = config.world.min_radius
    teleport(sim, i, quarantine_point(config.world, sim.departments_active), backend)


def check_for_quarantine(
    sim: "SimulationState",
    i: int,
    config: SimulationConfig,
    backend: "MovementBackend",
) -> bool:
    """Quarantine agent i once it has been infectious for delay_ticks.

    Only agents still INFECTIOUS qualify; an agent that recovered earlier
    in this tick is left alone.

    Returns:
        True if the agent entered quarantine on this call.
    """
    agents = sim.population.agents
    if agents['state'][i] != State.INFECTIOUS or agents['quarantined'][i]:
        return False
    if agents['ticks_infectious'][i] >= config.quarantine.delay_ticks:
        enter_quarantine(sim, i, config, backend)
        return True
    return False


def release_all_quarantined(
    sim: "SimulationState",
    config: SimulationConfig,
    rng: np.random.Generator,
    backend: "MovementBackend",
) -> int:
    """Release every quarantined agent (in population order). Returns count."""
    ids = np.flatnonzero(sim.population.agents['quarantined'])
    for i in ids:
        release_from_quarantine(sim, int(i), config, rng, backend)
    return len(ids)


def set_quarantine_enabled(sim, enabled: bool, config, rng, backend) -> None:
    """Global quarantine toggle: rebuild navigation; on disable, release all."""
    sim.quarantine_active = enabled
    backend.rebuild_navigation_surfaces(departments=sim.departments_active,
                                        quarantine=enabled)
    if not enabled:
        n = release_all_quarantined(sim, config, rng, backend)
        logger.info("Quarantine disabled at tick %d; released %d agents", sim.tick, n)
    else:
        logger.info("Quarantine enabled at tick %d", sim.tick)


# ═══════════════════════════════════════════════════════════════════════
# VACCINATION
# ═══════════════════════════════════════════════════════════════════════

def administer_vaccine(
    sim: "SimulationState",
    config: SimulationConfig,
    rng: np.random.Generator,
    backend: "MovementBackend",
) -> np.ndarray:
    """Vaccinate up to round(population_size × fraction) susceptibles.

    Selects the first susceptibles in population order. Called once per
    tick once the introduction delay has elapsed.

    Returns:
        Ids vaccinated on this call.
    """
    pop = sim.population
    n_doses = round(sim.population_size * config.vaccination.fraction)
    susceptible = np.flatnonzero(pop.agents['state'] == State.SUSCEPTIBLE)
    chosen = susceptible[:n_doses]
    for i in chosen:
        change_state(sim, int(i), State.VACCINATED, config, rng, backend)
    return chosen


# ═══════════════════════════════════════════════════════════════════════
# SOCIAL DISTANCING
# ═══════════════════════════════════════════════════════════════════════

def select_social_distancing_non_abiders(sim, config: SimulationConfig) -> int:
    """Mark the first round(n × (1 − abiding)) agents as non-abiding.

    Non-abiders keep min_radius; everyone else keeps the social distancing
    amount. Run once, right after spawning.

    Returns:
        Number of non-abiders.
    """
    agents = sim.population.agents
    n_not_abiding = round(len(agents) * (1.0 - config.social_distancing.abiding))
    agents['social_distancing'][:] = True
    agents['avoidance_radius'][:] = sim.social_distancing_amount
    agents['social_distancing'][:n_not_abiding] = False
    agents['avoidance_radius'][:n_not_abiding] = config.world.min_radius
    # quarantined agents keep their isolation radius
    agents['avoidance_radius'][agents['quarantined']] = config.world.min_radius
    return min(n_not_abiding, len(agents))


def apply_social_distancing_amount(sim, amount: float) -> int:
    """Rescale the radius of every abiding, non-quarantined agent."""
    sim.social_distancing_amount = amount
    agents = sim.population.agents
    mask = agents['social_distancing'] & ~agents['quarantined']
    agents['avoidance_radius'][mask] = amount
    return int(mask.sum())


# ═══════════════════════════════════════════════════════════════════════
# POINT OF INTEREST
# ═══════════════════════════════════════════════════════════════════════

def set_point_of_interest_enabled(sim, enabled: bool) -> None:
    sim.poi_active = enabled
    sim.population.agents['poi_enabled'][:] = enabled


def point_of_interest_travel(
    sim: "SimulationState",
    i: int,
    config: SimulationConfig,
    rng: np.random.Generator,
    backend: "MovementBackend",
) -> bool:
    """With probability travel_probability, teleport agent i to the POI."""
    agents = sim.population.agents
    if not agents['poi_enabled'][i] or agents['quarantined'][i]:
        return False
    if rng.random() <= config.point_of_interest.travel_probability:
        poi = config.world.point_of_interest
        teleport(sim, i, (float(poi[0]), float(poi[1])), backend)
        return True
    return False


# ═══════════════════════════════════════════════════════════════════════
# DEPARTMENTS
# ═══════════════════════════════════════════════════════════════════════

def determine_department(sim, i: int, backend: "MovementBackend") -> int:
    """Reassign agent i to the zone containing it (NO_DEPARTMENT if none)."""
    agents = sim.population.agents
    if not agents['departments_enabled'][i]:
        return int(agents['department'][i])
    zone = backend.zone_containing(sim.population.position(i))
    agents['department'][i] = NO_DEPARTMENT if zone is None else zone
    return int(agents['department'][i])


def departments_travel(
    sim: "SimulationState",
    i: int,
    config: SimulationConfig,
    rng: np.random.Generator,
    backend: "MovementBackend",
) -> bool:
    """With probability travel_probability, teleport to another department.

    The target is drawn uniformly among all departments except the current
    one. Agents with no department are ineligible and draw nothing.

    Raises:
        DepartmentsUnavailableError: If the backend has no department zones.
    """
    agents = sim.population.agents
    if not agents['departments_enabled'][i] or agents['quarantined'][i]:
        return False
    current = int(agents['department'][i])
    if current == NO_DEPARTMENT:
        return False
    if rng.random() > config.departments.travel_probability:
        return False

    departments = backend.department_zones()
    if not departments:
        raise DepartmentsUnavailableError("No department zones defined")
    candidates = [z for z in departments if z != current]
    if not candidates:
        return False
    target = candidates[int(rng.integers(len(candidates)))]
    teleport(sim, i, backend.zone_center(target), backend)
    determine_department(sim, i, backend)
    return True


def set_departments_enabled(
    sim: "SimulationState",
    enabled: bool,
    config: SimulationConfig,
    rng: np.random.Generator,
    backend: "MovementBackend",
) -> None:
    """Switch between the shared ground and the department partition.

    The zone topology changes, so navigation surfaces are rebuilt before
    returning. Enabling reassigns every agent's department; disabling
    clears assignments and moves every free agent to a random point on the
    shared ground. Quarantined agents follow the quarantine zone, which
    sits further out while departments are on.

    Raises:
        DepartmentsUnavailableError: If enabling and the backend defines no
            department zones. Nothing is changed in that case.
    """
    if enabled and not backend.department_zones():
        raise DepartmentsUnavailableError(
            "Departments requested but the movement backend defines no department zones"
        )

    sim.departments_active = enabled
    backend.rebuild_navigation_surfaces(departments=enabled,
                                        quarantine=sim.quarantine_active)
    agents = sim.population.agents
    agents['departments_enabled'][:] = enabled
    agents['department'][:] = NO_DEPARTMENT

    q_point = quarantine_point(config.world, enabled)
    for i in range(len(sim.population)):
        if agents['quarantined'][i]:
            teleport(sim, i, q_point, backend)
        elif not enabled:
            x, y = random_positions(rng, 1, config.world.ground_half_extent)[0]
            teleport(sim, i, (float(x), float(y)), backend)
        else:
            determine_department(sim, i, backend)

    logger.info("Departments %s at tick %d", "enabled" if enabled else "disabled", sim.tick)


# ═══════════════════════════════════════════════════════════════════════
# EXTERNAL REINFECTION
# ═══════════════════════════════════════════════════════════════════════

def is_reinfection_tick(tick: int, interval: int) -> bool:
    """Every interval ticks, counting from tick 0."""
    return tick % interval == 0


def external_reinfection(
    sim: "SimulationState",
    config: SimulationConfig,
    rng: np.random.Generator,
    backend: "MovementBackend",
) -> np.ndarray:
    """Spawn round(population_size × infectious_on_start) infectious agents.

    All arrivals share one random position. They copy the current global
    toggles, abide by social distancing, and enter the population at its
    end, so the population grows by exactly the batch size.

    Returns:
        Ids of the new agents (empty when this is not a reinfection tick).
    """
    if not is_reinfection_tick(sim.tick, config.disease.reinfection_interval_ticks):
        return np.empty(0, dtype=np.int64)

    pop = sim.population
    n_new = round(sim.population_size * config.simulation.infectious_on_start)
    if n_new == 0:
        return np.empty(0, dtype=np.int64)

    half = spawn_half_extent(config.world, sim.departments_active)
    point = random_positions(rng, 1, half)[0]
    ids = pop.spawn(np.repeat(point[None, :], n_new, axis=0))

    agents = pop.agents
    agents['avoidance_radius'][ids] = sim.social_distancing_amount
    agents['poi_enabled'][ids] = sim.poi_active
    agents['departments_enabled'][ids] = sim.departments_active
    for i in ids:
        backend.place_agent(int(i), (float(point[0]), float(point[1])))
        determine_department(sim, int(i), backend)
        change_state(sim, int(i), State.INFECTIOUS, config, rng, backend)

    logger.info("External reinfection at tick %d: %d new agents (population %d)",
                sim.tick, n_new, len(pop))
    return ids
