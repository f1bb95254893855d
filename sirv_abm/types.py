"""Core data types for SIRV-ABM.

This module is the SINGLE SOURCE OF TRUTH for:
  - AGENT_DTYPE: NumPy structured array dtype for individual agents
  - State and SignificantPointKind enumerations
  - Sentinel values (NEVER, NO_DEPARTMENT)
  - Report and event records emitted to the host (TickReport,
    SignificantPointEvent, StateChanged, InterventionFailed)

All modules import these types from here. No other module defines agent fields.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Dict, Tuple

import numpy as np


Point = Tuple[float, float]


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class State(IntEnum):
    """Compartmental states.

    S → I  (transmission, initial seeding, external reinfection)
    S → V  (vaccination; V is terminal)
    I → R  (ticks_infectious ≥ recovery_ticks)
    R → S  (resusceptibility, exactly at resusceptible_at)
    """
    SUSCEPTIBLE = 0
    INFECTIOUS  = 1
    RECOVERED   = 2
    VACCINATED  = 3


N_STATES = len(State)


class SignificantPointKind(str, Enum):
    """Aggregate-count threshold crossings, each latched once per run."""
    BREAKING = "breaking"   # infectious > susceptible
    RECOVERY = "recovery"   # recovered > infectious
    SURVIVAL = "survival"   # infectious == 0 after recovery_ticks


# ═══════════════════════════════════════════════════════════════════════
# SENTINELS
# ═══════════════════════════════════════════════════════════════════════

NEVER = -1           # resusceptible_at when no reversion is scheduled
NO_DEPARTMENT = -1   # department when the agent is outside every zone


# ═══════════════════════════════════════════════════════════════════════
# AGENT_DTYPE — Canonical structured array for individual agents
# ═══════════════════════════════════════════════════════════════════════

AGENT_DTYPE = np.dtype([
    # --- Spatial (ground plane; height is not modelled) ---
    ('x',                  np.float64),
    ('y',                  np.float64),
    ('has_destination',    np.bool_),
    ('dest_x',             np.float64),
    ('dest_y',             np.float64),
    ('avoidance_radius',   np.float32),   # personal-space radius for the backend

    # --- Disease ---
    ('state',              np.int8),      # State enum
    ('ticks_infectious',   np.int32),     # reset on (re-)entry to INFECTIOUS
    ('resusceptible_at',   np.int32),     # tick of R → S reversion, NEVER if unset

    # --- Interventions ---
    ('quarantined',        np.bool_),
    ('social_distancing',  np.bool_),     # False = non-abider
    ('poi_enabled',        np.bool_),     # per-agent copy of the global toggle
    ('departments_enabled', np.bool_),    # per-agent copy of the global toggle
    ('department',         np.int16),     # zone id, NO_DEPARTMENT if unset
])


def allocate_agents(max_n: int) -> np.ndarray:
    """Allocate an agent array with every field at its spawn default.

    Args:
        max_n: Array capacity.

    Returns:
        Structured array of shape (max_n,) with AGENT_DTYPE. Agents start
        SUSCEPTIBLE, abiding by social distancing, with no destination,
        no department and no scheduled reversion.
    """
    agents = np.zeros(max_n, dtype=AGENT_DTYPE)
    agents['state'] = State.SUSCEPTIBLE
    agents['resusceptible_at'] = NEVER
    agents['social_distancing'] = True
    agents['department'] = NO_DEPARTMENT
    return agents


# ═══════════════════════════════════════════════════════════════════════
# REPORTS & EVENTS (core → host)
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TickReport:
    """Population counts at the end of one tick."""
    tick: int
    susceptible: int
    infectious: int
    recovered: int
    vaccinated: int

    @property
    def total(self) -> int:
        return self.susceptible + self.infectious + self.recovered + self.vaccinated

    @classmethod
    def from_counts(cls, tick: int, counts: np.ndarray) -> "TickReport":
        """Build from a bincount indexed by State."""
        return cls(
            tick=tick,
            susceptible=int(counts[State.SUSCEPTIBLE]),
            infectious=int(counts[State.INFECTIOUS]),
            recovered=int(counts[State.RECOVERED]),
            vaccinated=int(counts[State.VACCINATED]),
        )

    def as_dict(self) -> Dict[str, int]:
        return {
            'tick': self.tick,
            'susceptible': self.susceptible,
            'infectious': self.infectious,
            'recovered': self.recovered,
            'vaccinated': self.vaccinated,
        }


@dataclass(frozen=True)
class SignificantPointEvent:
    """A significant point reached for the first time in this run."""
    kind: SignificantPointKind
    tick: int

    def as_dict(self) -> Dict[str, object]:
        return {'kind': self.kind.value, 'tick': self.tick}


@dataclass(frozen=True)
class StateChanged:
    """Representation hook: one agent changed compartment."""
    agent_id: int
    old: State
    new: State
    tick: int


@dataclass(frozen=True)
class InterventionFailed:
    """An intervention could not be applied; the simulation continues."""
    feature: str
    message: str
    tick: int
