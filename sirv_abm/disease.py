"""Disease dynamics: compartment state machine and proximity transmission.

State machine (one state per agent at all times):
  S → I   transmission, initial seeding, external reinfection
  S → V   vaccination (V is terminal)
  I → R   ticks_infectious ≥ recovery_ticks, checked at the start of the
          agent's transmission step (a recovering agent does not transmit)
  R → S   only with resusceptibility on, exactly at resusceptible_at

Entering R while quarantined releases the agent in the same transition.
Every transition appends a StateChanged event for the host's
representation layer.

Transmission (per infectious agent, per tick):
  1. Recovery check (may end the step)
  2. ticks_infectious += 1
  3. Query every agent within the effective radius (transmission_radius,
     or min_radius while quarantined)
  4. For each SUSCEPTIBLE neighbour, draw U(0,1); infect if ≤ p

The pass is sequential: an agent infected earlier in the pass transmits
when its own turn comes in the same tick.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, FrozenSet, Tuple

import numpy as np

from sirv_abm.config import SimulationConfig
from sirv_abm.movement import release_from_quarantine
from sirv_abm.types import NEVER, State, StateChanged

if TYPE_CHECKING:
    from sirv_abm.backend import MovementBackend
    from sirv_abm.model import SimulationState


# ═══════════════════════════════════════════════════════════════════════
# STATE MACHINE
# ═══════════════════════════════════════════════════════════════════════

ALLOWED_TRANSITIONS: FrozenSet[Tuple[State, State]] = frozenset({
    (State.SUSCEPTIBLE, State.INFECTIOUS),
    (State.SUSCEPTIBLE, State.VACCINATED),
    (State.INFECTIOUS, State.RECOVERED),
    (State.RECOVERED, State.SUSCEPTIBLE),
})


def change_state(
    sim: "SimulationState",
    i: int,
    new_state: State,
    config: SimulationConfig,
    rng: np.random.Generator,
    backend: "MovementBackend",
) -> None:
    """Move agent i to new_state, applying the edge's side effects.

    Raises:
        ValueError: If the edge is not part of the state machine.
    """
    agents = sim.population.agents
    old = State(int(agents['state'][i]))
    if (old, new_state) not in ALLOWED_TRANSITIONS:
        raise ValueError(f"Illegal transition {old.name} → {new_state.name} for agent {i}")

    agents['state'][i] = new_state
    if new_state == State.INFECTIOUS:
        agents['ticks_infectious'][i] = 0
    elif new_state == State.RECOVERED:
        if agents['quarantined'][i]:
            release_from_quarantine(sim, i, config, rng, backend)
        agents['resusceptible_at'][i] = sim.tick + config.disease.ticks_until_resusceptibility
    elif new_state == State.SUSCEPTIBLE:
        agents['ticks_infectious'][i] = 0
        agents['resusceptible_at'][i] = NEVER

    sim.events.append(StateChanged(agent_id=int(i), old=old, new=new_state, tick=sim.tick))


def check_recovery(sim, i, config, rng, backend) -> bool:
    """I → R once ticks_infectious reaches recovery_ticks. True if recovered."""
    agents = sim.population.agents
    if agents['ticks_infectious'][i] >= config.disease.recovery_ticks:
        change_state(sim, i, State.RECOVERED, config, rng, backend)
        return True
    return False


def check_resusceptibility(sim, i, config, rng, backend) -> bool:
    """R → S exactly when the tick counter equals resusceptible_at."""
    agents = sim.population.agents
    if (agents['state'][i] == State.RECOVERED
            and agents['resusceptible_at'][i] == sim.tick):
        change_state(sim, i, State.SUSCEPTIBLE, config, rng, backend)
        return True
    return False


# ═══════════════════════════════════════════════════════════════════════
# TRANSMISSION
# ═══════════════════════════════════════════════════════════════════════

def effective_transmission_radius(sim: "SimulationState", i: int,
                                  config: SimulationConfig) -> float:
    """Quarantine isolates: its radius is min_radius, never larger."""
    if sim.population.agents['quarantined'][i]:
        return config.world.min_radius
    return config.disease.transmission_radius


def transmission_impulse(
    sim: "SimulationState",
    i: int,
    config: SimulationConfig,
    rng: np.random.Generator,
    backend: "MovementBackend",
) -> int:
    """One tick of transmission from infectious agent i.

    Args:
        sim: Simulation state (population, proximity index, events).
        i: Id of an INFECTIOUS agent.
        config: Parameter snapshot for this tick.
        rng: The simulation's random source.
        backend: Movement backend (used if recovery releases quarantine).

    Returns:
        Number of neighbours infected (0 if the agent recovered instead).
    """
    if check_recovery(sim, i, config, rng, backend):
        return 0

    agents = sim.population.agents
    agents['ticks_infectious'][i] += 1

    p = config.disease.transmission_probability
    radius = effective_transmission_radius(sim, i, config)
    n_infected = 0
    for j in sim.index.neighbors_of(i, radius):
        if agents['state'][j] != State.SUSCEPTIBLE:
            continue
        if rng.random() <= p:
            change_state(sim, j, State.INFECTIOUS, config, rng, backend)
            n_infected += 1
    return n_infected


# ═══════════════════════════════════════════════════════════════════════
# SEEDING
# ═══════════════════════════════════════════════════════════════════════

def seed_initial_infections(sim, config, rng, backend) -> np.ndarray:
    """Infect the first round(n × infectious_on_start) susceptibles.

    Selection is by population order, not random sampling.

    Returns:
        Ids of the seeded agents.
    """
    pop = sim.population
    n_seed = round(len(pop) * config.simulation.infectious_on_start)
    susceptible = np.flatnonzero(pop.agents['state'] == State.SUSCEPTIBLE)
    chosen = susceptible[:n_seed]
    for i in chosen:
        change_state(sim, int(i), State.INFECTIOUS, config, rng, backend)
    return chosen
