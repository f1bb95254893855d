"""Movement decisions: where agents walk, teleport and get released to.

The engine never moves agents physically; it picks destinations and asks
the movement backend whether they are reachable. Rules:

  - An agent with no destination samples a walk point uniformly in
    ±walk_point_range per axis around itself (±quarantine_walk_point_range
    while quarantined).
  - The point is accepted if the backend reports it reachable and, for an
    agent following departments, it lies inside the agent's own
    department. Otherwise the agent stays put and samples again next tick.
  - Within arrival_tolerance of the destination, the destination is
    cleared and a new one is sampled on a later tick.
  - Teleports (point of interest, department travel, quarantine in/out)
    set the position at once and clear any pending destination.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from sirv_abm.config import SimulationConfig, WorldSection
from sirv_abm.spatial import distance
from sirv_abm.types import NO_DEPARTMENT, Point

if TYPE_CHECKING:
    from sirv_abm.backend import MovementBackend
    from sirv_abm.model import SimulationState

# The shared ground zone is centred on the origin
GROUND_CENTER: Point = (0.0, 0.0)


# ═══════════════════════════════════════════════════════════════════════
# GEOMETRY HELPERS
# ═══════════════════════════════════════════════════════════════════════

def random_positions(rng: np.random.Generator, n: int, half_extent: float) -> np.ndarray:
    """n uniform points in the square [-half_extent, half_extent]², shape (n, 2)."""
    return rng.uniform(-half_extent, half_extent, size=(n, 2))


def spawn_half_extent(world: WorldSection, departments_active: bool) -> float:
    return world.departments_half_extent if departments_active else world.ground_half_extent


def quarantine_point(world: WorldSection, departments_active: bool) -> Point:
    """Where quarantined agents are placed; shifted clear of departments."""
    x, y = world.quarantine_center
    if departments_active:
        x += world.quarantine_department_offset
    return (float(x), float(y))


def walk_point_range(sim: "SimulationState", i: int, world: WorldSection) -> float:
    if sim.population.agents['quarantined'][i]:
        return world.quarantine_walk_point_range
    return world.walk_point_range


# ═══════════════════════════════════════════════════════════════════════
# TELEPORTS
# ═══════════════════════════════════════════════════════════════════════

def teleport(sim: "SimulationState", i: int, point: Point,
             backend: "MovementBackend") -> None:
    """Place agent i at point immediately, dropping any pending destination."""
    sim.population.set_position(i, point)
    sim.population.agents['has_destination'][i] = False
    backend.place_agent(int(i), point)


def release_from_quarantine(
    sim: "SimulationState",
    i: int,
    config: SimulationConfig,
    rng: np.random.Generator,
    backend: "MovementBackend",
) -> None:
    """Return agent i to the normal zone with its normal walk range and radius.

    Released agents land on the ground centre, or on the centre of a random
    department when departments are active.
    """
    agents = sim.population.agents
    agents['quarantined'][i] = False

    departments = backend.department_zones() if sim.departments_active else []
    if departments:
        zone = departments[int(rng.integers(len(departments)))]
        point = backend.zone_center(zone)
    else:
        point = GROUND_CENTER
    teleport(sim, i, point, backend)

    if agents['social_distancing'][i]:
        agents['avoidance_radius'][i] = sim.social_distancing_amount
    else:
        agents['avoidance_radius'][i] = config.world.min_radius


# ═══════════════════════════════════════════════════════════════════════
# DESTINATION SAMPLING
# ═══════════════════════════════════════════════════════════════════════

def sample_walk_point(position: Point, walk_range: float,
                      rng: np.random.Generator) -> Point:
    dx, dy = rng.uniform(-walk_range, walk_range, size=2)
    return (position[0] + float(dx), position[1] + float(dy))


def is_acceptable_destination(
    sim: "SimulationState",
    i: int,
    point: Point,
    backend: "MovementBackend",
) -> bool:
    """Reachable, and inside the agent's department when it follows departments.

    An agent following departments but with no assigned department accepts
    nothing until it is reassigned.
    """
    agents = sim.population.agents
    quarantined = bool(agents['quarantined'][i])
    if not backend.is_reachable(point, quarantined=quarantined):
        return False
    if agents['departments_enabled'][i] and not quarantined:
        department = int(agents['department'][i])
        if department == NO_DEPARTMENT:
            return False
        return backend.zone_containing(point) == department
    return True


def update_destination(
    sim: "SimulationState",
    i: int,
    config: SimulationConfig,
    rng: np.random.Generator,
    backend: "MovementBackend",
) -> bool:
    """One tick of the random-walk policy for agent i.

    Returns:
        True if a new destination was issued to the backend this tick.
    """
    agents = sim.population.agents
    world = config.world
    issued = False

    if not agents['has_destination'][i]:
        point = sample_walk_point(sim.population.position(i),
                                  walk_point_range(sim, i, world), rng)
        if is_acceptable_destination(sim, i, point, backend):
            agents['has_destination'][i] = True
            agents['dest_x'][i] = point[0]
            agents['dest_y'][i] = point[1]
            backend.move_agent_to(int(i), point)
            issued = True

    if agents['has_destination'][i]:
        dest = (float(agents['dest_x'][i]), float(agents['dest_y'][i]))
        if distance(sim.population.position(i), dest) < world.arrival_tolerance:
            agents['has_destination'][i] = False

    return issued
