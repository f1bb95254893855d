"""Movement backend: protocol and a reference implementation.

The engine decides THAT and WHERE an agent moves; a movement backend
decides HOW it gets there (navigation meshes, physics, animation). The
engine only uses the MovementBackend protocol below.

RectangularWorld is an in-process backend built from axis-aligned square
zones (a shared ground plane, four department planes and a
quarantine plane). Every zone is convex, so straight-line movement between
two reachable points in the same zone is a valid path. It lets the model
run headless and is what the test-suite drives.

Zone ids:
  0            shared ground
  1            quarantine
  2 .. 2+k-1   departments (k = department_grid²)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Protocol

import numpy as np

from sirv_abm.config import WorldSection
from sirv_abm.population import Population
from sirv_abm.types import Point

logger = logging.getLogger(__name__)

GROUND_ZONE = 0
QUARANTINE_ZONE = 1
FIRST_DEPARTMENT_ZONE = 2


# ═══════════════════════════════════════════════════════════════════════
# PROTOCOL
# ═══════════════════════════════════════════════════════════════════════

class MovementBackend(Protocol):
    """What the engine consumes from the physical-movement layer."""

    def is_reachable(self, point: Point, quarantined: bool = False) -> bool:
        """Whether an agent (in or out of quarantine) can walk to point."""

    def zone_containing(self, point: Point) -> Optional[int]:
        """Walkable zone whose footprint contains point, or None."""

    def department_zones(self) -> List[int]:
        """Ids of all department zones (empty if the scene has none)."""

    def zone_center(self, zone_id: int) -> Point:
        """Centre of a zone's footprint."""

    def move_agent_to(self, agent_id: int, point: Point) -> None:
        """Start walking agent towards point."""

    def place_agent(self, agent_id: int, point: Point) -> None:
        """Teleport agent to point, cancelling any walk in progress."""

    def rebuild_navigation_surfaces(self, *, departments: bool, quarantine: bool) -> None:
        """Rebuild walkable surfaces for a new zone topology (blocking)."""


# ═══════════════════════════════════════════════════════════════════════
# REFERENCE BACKEND
# ═══════════════════════════════════════════════════════════════════════

class ZoneKind(str, Enum):
    GROUND = "ground"
    QUARANTINE = "quarantine"
    DEPARTMENT = "department"


@dataclass(frozen=True)
class Zone:
    """Axis-aligned square zone."""
    zone_id: int
    kind: ZoneKind
    center: Point
    half_extent: float

    def contains(self, point: Point) -> bool:
        return (abs(point[0] - self.center[0]) <= self.half_extent
                and abs(point[1] - self.center[1]) <= self.half_extent)

    def shifted(self, dx: float) -> "Zone":
        return Zone(self.zone_id, self.kind,
                    (self.center[0] + dx, self.center[1]), self.half_extent)


class RectangularWorld:
    """Reference MovementBackend made of square zones.

    Args:
        world: Scene geometry.
        department_grid: Departments tile the departments square as a
            department_grid × department_grid grid. 0 = no departments.
        departments: Initial topology (department planes active).
        quarantine: Initial quarantine plane state.
    """

    def __init__(
        self,
        world: Optional[WorldSection] = None,
        department_grid: int = 2,
        departments: bool = False,
        quarantine: bool = False,
    ):
        self.world = world if world is not None else WorldSection()
        w = self.world
        self.ground = Zone(GROUND_ZONE, ZoneKind.GROUND, (0.0, 0.0), w.ground_half_extent)
        self._quarantine_home = Zone(QUARANTINE_ZONE, ZoneKind.QUARANTINE,
                                     tuple(w.quarantine_center), w.quarantine_half_extent)
        self.departments: List[Zone] = []
        if department_grid > 0:
            half = w.departments_half_extent / department_grid
            origin = -w.departments_half_extent + half
            for row in range(department_grid):
                for col in range(department_grid):
                    zone_id = FIRST_DEPARTMENT_ZONE + row * department_grid + col
                    center = (origin + 2.0 * half * col, origin + 2.0 * half * row)
                    self.departments.append(
                        Zone(zone_id, ZoneKind.DEPARTMENT, center, half))

        self.departments_active = False
        self.quarantine_active = False
        self.rebuild_count = 0
        self.targets: Dict[int, Point] = {}
        self.n_placements = 0
        self._apply_topology(departments, quarantine)

    # ── Topology ─────────────────────────────────────────────────────

    def _apply_topology(self, departments: bool, quarantine: bool) -> None:
        self.departments_active = departments
        self.quarantine_active = quarantine
        offset = self.world.quarantine_department_offset if departments else 0.0
        self.quarantine = self._quarantine_home.shifted(offset)

    def rebuild_navigation_surfaces(self, *, departments: bool, quarantine: bool) -> None:
        self._apply_topology(departments, quarantine)
        self.rebuild_count += 1
        logger.info("Navigation rebuilt (departments=%s, quarantine=%s)",
                    departments, quarantine)

    def walkable_zones(self) -> List[Zone]:
        return self.departments if self.departments_active else [self.ground]

    def zone(self, zone_id: int) -> Zone:
        if zone_id == GROUND_ZONE:
            return self.ground
        if zone_id == QUARANTINE_ZONE:
            return self.quarantine
        for dep in self.departments:
            if dep.zone_id == zone_id:
                return dep
        raise KeyError(f"Unknown zone id {zone_id}")

    # ── Queries ──────────────────────────────────────────────────────

    def is_reachable(self, point: Point, quarantined: bool = False) -> bool:
        if quarantined:
            return self.quarantine_active and self.quarantine.contains(point)
        return any(z.contains(point) for z in self.walkable_zones())

    def zone_containing(self, point: Point) -> Optional[int]:
        for z in self.walkable_zones():
            if z.contains(point):
                return z.zone_id
        return None

    def department_zones(self) -> List[int]:
        return [z.zone_id for z in self.departments]

    def zone_center(self, zone_id: int) -> Point:
        return self.zone(zone_id).center

    # ── Commands ─────────────────────────────────────────────────────

    def move_agent_to(self, agent_id: int, point: Point) -> None:
        self.targets[agent_id] = (float(point[0]), float(point[1]))

    def place_agent(self, agent_id: int, point: Point) -> None:
        self.targets.pop(agent_id, None)
        self.n_placements += 1

    # ── Physical movement (host side, between ticks) ─────────────────

    def advance(self, population: Population, seconds: float) -> None:
        """Walk every agent with a target straight towards it.

        Agents cover at most agent_speed × seconds; those that would
        overshoot stop exactly on their target. Positions are written back
        into the population in one bulk update.

        Args:
            population: Population whose positions are updated in place.
            seconds: Wall-clock time represented by this step.
        """
        if not self.targets or len(population) == 0:
            return
        ids = np.fromiter((i for i in self.targets if i < len(population)), dtype=np.int64)
        if len(ids) == 0:
            return
        targets = np.array([self.targets[int(i)] for i in ids], dtype=np.float64)
        agents = population.agents
        pos = np.column_stack((agents['x'][ids], agents['y'][ids]))

        delta = targets - pos
        dist = np.hypot(delta[:, 0], delta[:, 1])
        step = self.world.agent_speed * seconds
        scale = np.where(dist > step, step / np.maximum(dist, 1e-12), 1.0)
        new_pos = pos + delta * scale[:, None]
        population.set_positions(ids, new_pos)
