"""Configuration system for SIRV-ABM.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → runtime overrides

Every parameter is range-checked here, at the configuration boundary; the
tick loop assumes validated parameters. At runtime the host mutates
parameters through a ParameterStore, and the clock takes one snapshot per
tick so that changes apply from the next tick boundary on.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Population size, tick pacing, seeding and the master seed."""
    population_size: int = 100          # agents spawned on (re-)initialization
    tick_length_seconds: float = 1.0    # host pacing only; the core is not time-aware
    infectious_on_start: float = 0.01   # fraction seeded infectious (also reinfection batch)
    seed: int = 42


@dataclass
class DiseaseSection:
    """Transmission, recovery and reinfection parameters (1 tick = 1 day)."""
    transmission_radius: float = 3.0
    transmission_probability: float = 0.2
    recovery_ticks: int = 25
    resusceptibility: bool = False
    ticks_until_resusceptibility: int = 20
    external_reinfection: bool = False
    reinfection_interval_ticks: int = 60


@dataclass
class SocialDistancingSection:
    """amount is the personal-space radius kept by abiding agents."""
    amount: float = 0.5
    abiding: float = 0.9


@dataclass
class PointOfInterestSection:
    enabled: bool = False
    travel_probability: float = 0.04


@dataclass
class VaccinationSection:
    """fraction is of the current population size, administered each tick."""
    enabled: bool = False
    fraction: float = 0.05
    delay_ticks: int = 10


@dataclass
class QuarantineSection:
    enabled: bool = False
    delay_ticks: int = 4


@dataclass
class DepartmentsSection:
    enabled: bool = False
    travel_probability: float = 0.02


@dataclass
class WorldSection:
    """Scene geometry shared by the engine and the reference backend.

    The ground is a square of half-width ground_half_extent centred on the
    origin. With departments on, four department squares tile the larger
    square of half-width departments_half_extent, and the quarantine zone is
    shifted by quarantine_department_offset along x so it stays clear.
    """
    ground_half_extent: float = 25.0
    departments_half_extent: float = 52.0
    walk_point_range: float = 20.0
    quarantine_walk_point_range: float = 5.0
    arrival_tolerance: float = 2.5
    min_radius: float = 0.1
    point_of_interest: Tuple[float, float] = (0.0, 0.0)
    quarantine_center: Tuple[float, float] = (-40.0, 0.0)
    quarantine_half_extent: float = 8.0
    quarantine_department_offset: float = -30.0
    agent_speed: float = 3.5            # units/s, reference backend only


@dataclass
class SimulationConfig:
    """Complete simulation configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    disease: DiseaseSection = field(default_factory=DiseaseSection)
    social_distancing: SocialDistancingSection = field(default_factory=SocialDistancingSection)
    point_of_interest: PointOfInterestSection = field(default_factory=PointOfInterestSection)
    vaccination: VaccinationSection = field(default_factory=VaccinationSection)
    quarantine: QuarantineSection = field(default_factory=QuarantineSection)
    departments: DepartmentsSection = field(default_factory=DepartmentsSection)
    world: WorldSection = field(default_factory=WorldSection)


_SECTION_MAP = {
    'simulation': SimulationSection,
    'disease': DiseaseSection,
    'social_distancing': SocialDistancingSection,
    'point_of_interest': PointOfInterestSection,
    'vaccination': VaccinationSection,
    'quarantine': QuarantineSection,
    'departments': DepartmentsSection,
    'world': WorldSection,
}

# World fields given as [x, y] lists in YAML
_POINT_FIELDS = ('point_of_interest', 'quarantine_center')


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Args:
        base: Base dictionary (modified in place).
        override: Override dictionary.

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    sections = {}
    for key, cls in _SECTION_MAP.items():
        if key in data and isinstance(data[key], dict):
            section_data = dict(data[key])  # don't mutate original
            if key == 'world':
                for name in _POINT_FIELDS:
                    if isinstance(section_data.get(name), list):
                        section_data[name] = tuple(section_data[name])
            sections[key] = _dict_to_section(cls, section_data)
        else:
            sections[key] = cls()
    return SimulationConfig(**sections)


def config_to_dict(config: SimulationConfig) -> Dict[str, Dict[str, Any]]:
    """Plain nested dict of a config, with points as lists (YAML-friendly)."""
    data = dataclasses.asdict(config)
    for name in _POINT_FIELDS:
        data['world'][name] = list(data['world'][name])
    return data


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def _check_range(section: str, name: str, value, lo: float, hi: float) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{section}.{name} must be a number, got {value!r}")
    if not (lo <= value <= hi):
        raise ValueError(
            f"{section}.{name} must be in [{lo}, {hi}], got {value}"
        )


def _check_int(section: str, name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{section}.{name} must be an integer, got {value!r}")


def _check_bool(section: str, name: str, value) -> None:
    if not isinstance(value, bool):
        raise ValueError(f"{section}.{name} must be true/false, got {value!r}")


def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    Checks every tunable against its declared range, integer-valued tick
    counts, boolean toggles, and the world geometry.
    """
    s = config.simulation
    _check_int('simulation', 'population_size', s.population_size)
    _check_range('simulation', 'population_size', s.population_size, 10, 500)
    _check_range('simulation', 'tick_length_seconds', s.tick_length_seconds, 1.0, 10.0)
    _check_range('simulation', 'infectious_on_start', s.infectious_on_start, 0.0, 1.0)
    _check_int('simulation', 'seed', s.seed)
    if s.seed < 0:
        raise ValueError("simulation.seed must be non-negative")

    d = config.disease
    _check_range('disease', 'transmission_radius', d.transmission_radius, 1.0, 20.0)
    _check_range('disease', 'transmission_probability', d.transmission_probability, 0.0, 1.0)
    _check_int('disease', 'recovery_ticks', d.recovery_ticks)
    _check_range('disease', 'recovery_ticks', d.recovery_ticks, 0, 60)
    _check_bool('disease', 'resusceptibility', d.resusceptibility)
    _check_int('disease', 'ticks_until_resusceptibility', d.ticks_until_resusceptibility)
    _check_range('disease', 'ticks_until_resusceptibility',
                 d.ticks_until_resusceptibility, 10, 30)
    _check_bool('disease', 'external_reinfection', d.external_reinfection)
    _check_int('disease', 'reinfection_interval_ticks', d.reinfection_interval_ticks)
    _check_range('disease', 'reinfection_interval_ticks',
                 d.reinfection_interval_ticks, 30, 120)

    sd = config.social_distancing
    _check_range('social_distancing', 'amount', sd.amount, 0.1, 2.0)
    _check_range('social_distancing', 'abiding', sd.abiding, 0.0, 1.0)

    poi = config.point_of_interest
    _check_bool('point_of_interest', 'enabled', poi.enabled)
    _check_range('point_of_interest', 'travel_probability', poi.travel_probability, 0.0, 1.0)

    v = config.vaccination
    _check_bool('vaccination', 'enabled', v.enabled)
    _check_range('vaccination', 'fraction', v.fraction, 0.0, 1.0)
    _check_int('vaccination', 'delay_ticks', v.delay_ticks)
    _check_range('vaccination', 'delay_ticks', v.delay_ticks, 0, 120)

    q = config.quarantine
    _check_bool('quarantine', 'enabled', q.enabled)
    _check_int('quarantine', 'delay_ticks', q.delay_ticks)
    _check_range('quarantine', 'delay_ticks', q.delay_ticks, 0, 20)

    dep = config.departments
    _check_bool('departments', 'enabled', dep.enabled)
    _check_range('departments', 'travel_probability', dep.travel_probability, 0.0, 1.0)

    w = config.world
    for name in ('ground_half_extent', 'departments_half_extent',
                 'walk_point_range', 'quarantine_walk_point_range',
                 'arrival_tolerance', 'min_radius',
                 'quarantine_half_extent', 'agent_speed'):
        value = getattr(w, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ValueError(f"world.{name} must be positive, got {value!r}")
    for name in _POINT_FIELDS:
        point = getattr(w, name)
        if len(point) != 2:
            raise ValueError(f"world.{name} must be an (x, y) pair, got {point!r}")
    if w.departments_half_extent < w.ground_half_extent:
        raise ValueError(
            f"world.departments_half_extent ({w.departments_half_extent}) must be "
            f">= ground_half_extent ({w.ground_half_extent})"
        )


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML (skipped if missing).
        overrides: Optional dict of parameter overrides.

    Returns:
        Validated SimulationConfig.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)
        else:
            logger.warning("Scenario file %s not found; using base only", scenario_path)

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config


# ═══════════════════════════════════════════════════════════════════════
# RUNTIME PARAMETER STORE
# ═══════════════════════════════════════════════════════════════════════

class ParameterStore:
    """Host-facing get/set for every parameter, by dotted path.

    Writes are validated immediately and rejected whole if any value is out
    of range. The clock reads `snapshot()` once at the start of each tick,
    so a write made between (or during) ticks is first seen by the next one.

    Example:
        >>> store = ParameterStore()
        >>> store.set('disease.transmission_radius', 5.0)
        >>> store.get('disease.transmission_radius')
        5.0
    """

    def __init__(self, config: Optional[SimulationConfig] = None):
        config = copy.deepcopy(config) if config is not None else SimulationConfig()
        validate_config(config)
        self._config = config

    @staticmethod
    def _split(path: str) -> Tuple[str, str]:
        section, _, name = path.partition('.')
        if section not in _SECTION_MAP or not name:
            raise KeyError(f"Unknown parameter '{path}'")
        valid_fields = {f.name for f in dataclasses.fields(_SECTION_MAP[section])}
        if name not in valid_fields:
            raise KeyError(f"Unknown parameter '{path}'")
        return section, name

    def get(self, path: str) -> Any:
        section, name = self._split(path)
        return getattr(getattr(self._config, section), name)

    def set(self, path: str, value: Any) -> None:
        """Set one parameter. Raises KeyError or ValueError on bad input."""
        self.update({path: value})

    def update(self, values: Dict[str, Any]) -> None:
        """Set several parameters atomically."""
        candidate = copy.deepcopy(self._config)
        for path, value in values.items():
            section, name = self._split(path)
            if name in _POINT_FIELDS and isinstance(value, list):
                value = tuple(value)
            setattr(getattr(candidate, section), name, value)
        validate_config(candidate)
        self._config = candidate
        logger.debug("Parameters updated: %s", values)

    def snapshot(self) -> SimulationConfig:
        """Independent copy of the current parameters."""
        return copy.deepcopy(self._config)
