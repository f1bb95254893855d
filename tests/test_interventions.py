"""Tests for sirv_abm.interventions.

Tests:
  1. Quarantine entry after the delay, release on disable
  2. Vaccination takes the first susceptibles, round(n × fraction) per call
  3. Social-distancing non-abiders and amount rescaling
  4. Point-of-interest and department travel
  5. Department toggling and unavailable departments
  6. External reinfection batch size, timing and placement
"""

import numpy as np
import pytest

from sirv_abm.backend import RectangularWorld
from sirv_abm.config import default_config
from sirv_abm.events import EventQueue
from sirv_abm.interventions import (
    DepartmentsUnavailableError,
    administer_vaccine,
    apply_social_distancing_amount,
    check_for_quarantine,
    departments_travel,
    determine_department,
    external_reinfection,
    is_reinfection_tick,
    point_of_interest_travel,
    select_social_distancing_non_abiders,
    set_departments_enabled,
    set_point_of_interest_enabled,
    set_quarantine_enabled,
)
from sirv_abm.model import SimulationState
from sirv_abm.population import Population
from sirv_abm.rng import create_rng
from sirv_abm.spatial import ProximityIndex
from sirv_abm.types import NO_DEPARTMENT, State, StateChanged


def _make_sim(points, backend=None, **flags):
    config = default_config()
    pop = Population()
    pop.spawn(np.asarray(points, dtype=np.float64))
    sim = SimulationState(
        population=pop,
        index=ProximityIndex(pop),
        events=EventQueue(),
        social_distancing_amount=config.social_distancing.amount,
        **flags,
    )
    if backend is None:
        backend = RectangularWorld(config.world,
                                   departments=sim.departments_active,
                                   quarantine=sim.quarantine_active)
    return sim, config, create_rng(11), backend


# ═══════════════════════════════════════════════════════════════════════
# QUARANTINE
# ═══════════════════════════════════════════════════════════════════════

class TestQuarantine:
    def test_enters_after_delay(self):
        sim, config, rng, backend = _make_sim([[5.0, 5.0]], quarantine_active=True)
        agents = sim.population.agents
        agents['state'][0] = State.INFECTIOUS
        agents['ticks_infectious'][0] = config.quarantine.delay_ticks - 1
        assert not check_for_quarantine(sim, 0, config, backend)
        agents['ticks_infectious'][0] = config.quarantine.delay_ticks
        assert check_for_quarantine(sim, 0, config, backend)
        assert agents['quarantined'][0]
        assert sim.population.position(0) == (-40.0, 0.0)
        assert agents['avoidance_radius'][0] == pytest.approx(config.world.min_radius)

    def test_quarantine_goes_further_out_with_departments(self):
        sim, config, rng, backend = _make_sim([[5.0, 5.0]], quarantine_active=True,
                                              departments_active=True)
        agents = sim.population.agents
        agents['state'][0] = State.INFECTIOUS
        agents['ticks_infectious'][0] = 10
        check_for_quarantine(sim, 0, config, backend)
        assert sim.population.position(0) == (-70.0, 0.0)

    def test_zero_delay(self):
        sim, config, rng, backend = _make_sim([[5.0, 5.0]], quarantine_active=True)
        config.quarantine.delay_ticks = 0
        sim.population.agents['state'][0] = State.INFECTIOUS
        assert check_for_quarantine(sim, 0, config, backend)

    def test_non_infectious_never_quarantined(self):
        sim, config, rng, backend = _make_sim([[5.0, 5.0]], quarantine_active=True)
        agents = sim.population.agents
        agents['state'][0] = State.RECOVERED
        agents['ticks_infectious'][0] = 20
        assert not check_for_quarantine(sim, 0, config, backend)

    def test_disable_releases_everyone(self):
        sim, config, rng, backend = _make_sim(
            [[-40.0, 0.0], [-41.0, 1.0], [3.0, 3.0]], quarantine_active=True)
        agents = sim.population.agents
        agents['quarantined'][:2] = True
        set_quarantine_enabled(sim, False, config, rng, backend)
        assert not sim.quarantine_active
        assert not np.any(agents['quarantined'])
        assert sim.population.position(0) == (0.0, 0.0)
        assert sim.population.position(1) == (0.0, 0.0)
        assert sim.population.position(2) == (3.0, 3.0)
        assert backend.rebuild_count == 1

    def test_enable_rebuilds_navigation(self):
        sim, config, rng, backend = _make_sim([[0.0, 0.0]])
        set_quarantine_enabled(sim, True, config, rng, backend)
        assert backend.quarantine_active
        assert backend.rebuild_count == 1


# ═══════════════════════════════════════════════════════════════════════
# VACCINATION
# ═══════════════════════════════════════════════════════════════════════

class TestVaccination:
    def test_five_of_hundred_in_population_order(self):
        sim, config, rng, backend = _make_sim(np.zeros((100, 2)))
        agents = sim.population.agents
        agents['state'][:20] = State.RECOVERED
        chosen = administer_vaccine(sim, config, rng, backend)
        np.testing.assert_array_equal(chosen, [20, 21, 22, 23, 24])
        assert sim.population.count(State.VACCINATED) == 5
        assert sim.population.count(State.SUSCEPTIBLE) == 75

    def test_capped_by_available_susceptibles(self):
        sim, config, rng, backend = _make_sim(np.zeros((100, 2)))
        agents = sim.population.agents
        agents['state'][:98] = State.INFECTIOUS
        chosen = administer_vaccine(sim, config, rng, backend)
        np.testing.assert_array_equal(chosen, [98, 99])

    def test_repeated_calls_take_next_susceptibles(self):
        sim, config, rng, backend = _make_sim(np.zeros((100, 2)))
        administer_vaccine(sim, config, rng, backend)
        chosen = administer_vaccine(sim, config, rng, backend)
        np.testing.assert_array_equal(chosen, [5, 6, 7, 8, 9])

    def test_emits_state_changes(self):
        sim, config, rng, backend = _make_sim(np.zeros((20, 2)))
        config.vaccination.fraction = 0.1
        administer_vaccine(sim, config, rng, backend)
        changes = sim.events.drain(StateChanged)
        assert [e.agent_id for e in changes] == [0, 1]
        assert all(e.new == State.VACCINATED for e in changes)


# ═══════════════════════════════════════════════════════════════════════
# SOCIAL DISTANCING
# ═══════════════════════════════════════════════════════════════════════

class TestSocialDistancing:
    def test_first_agents_do_not_abide(self):
        sim, config, rng, backend = _make_sim(np.zeros((100, 2)))
        n = select_social_distancing_non_abiders(sim, config)
        agents = sim.population.agents
        assert n == 10
        assert not np.any(agents['social_distancing'][:10])
        assert np.all(agents['social_distancing'][10:])
        np.testing.assert_allclose(agents['avoidance_radius'][:10], 0.1, rtol=1e-6)
        np.testing.assert_allclose(agents['avoidance_radius'][10:], 0.5, rtol=1e-6)

    def test_amount_rescales_abiding_only(self):
        sim, config, rng, backend = _make_sim(np.zeros((10, 2)))
        select_social_distancing_non_abiders(sim, config)
        sim.population.agents['quarantined'][9] = True
        sim.population.agents['avoidance_radius'][9] = 0.1
        changed = apply_social_distancing_amount(sim, 1.5)
        agents = sim.population.agents
        assert changed == 8
        assert sim.social_distancing_amount == 1.5
        assert agents['avoidance_radius'][0] == pytest.approx(0.1)
        assert agents['avoidance_radius'][5] == pytest.approx(1.5)
        assert agents['avoidance_radius'][9] == pytest.approx(0.1)


# ═══════════════════════════════════════════════════════════════════════
# POINT OF INTEREST
# ═══════════════════════════════════════════════════════════════════════

class TestPointOfInterest:
    def test_toggle_copies_flag(self):
        sim, config, rng, backend = _make_sim(np.zeros((5, 2)))
        set_point_of_interest_enabled(sim, True)
        assert sim.poi_active
        assert np.all(sim.population.agents['poi_enabled'])

    def test_certain_travel_teleports(self):
        sim, config, rng, backend = _make_sim([[10.0, 10.0]])
        set_point_of_interest_enabled(sim, True)
        config.point_of_interest.travel_probability = 1.0
        assert point_of_interest_travel(sim, 0, config, rng, backend)
        assert sim.population.position(0) == (0.0, 0.0)

    def test_disabled_agent_consumes_no_draw(self):
        sim, config, rng, backend = _make_sim([[10.0, 10.0]])
        config.point_of_interest.travel_probability = 1.0
        state = rng.bit_generator.state
        assert not point_of_interest_travel(sim, 0, config, rng, backend)
        assert rng.bit_generator.state == state

    def test_quarantined_agents_do_not_travel(self):
        sim, config, rng, backend = _make_sim([[-40.0, 0.0]])
        set_point_of_interest_enabled(sim, True)
        sim.population.agents['quarantined'][0] = True
        config.point_of_interest.travel_probability = 1.0
        assert not point_of_interest_travel(sim, 0, config, rng, backend)


# ═══════════════════════════════════════════════════════════════════════
# DEPARTMENTS
# ═══════════════════════════════════════════════════════════════════════

class TestDepartments:
    def test_enable_assigns_containing_zone(self):
        sim, config, rng, backend = _make_sim([[-10.0, -10.0], [10.0, 10.0]])
        set_departments_enabled(sim, True, config, rng, backend)
        agents = sim.population.agents
        assert sim.departments_active
        assert backend.departments_active
        np.testing.assert_array_equal(agents['department'], [2, 5])
        assert np.all(agents['departments_enabled'])

    def test_enable_without_zones_raises_and_changes_nothing(self):
        world = RectangularWorld(department_grid=0)
        sim, config, rng, backend = _make_sim([[0.0, 0.0]], backend=world)
        with pytest.raises(DepartmentsUnavailableError):
            set_departments_enabled(sim, True, config, rng, backend)
        assert not sim.departments_active
        assert backend.rebuild_count == 0

    def test_disable_returns_everyone_to_ground(self):
        sim, config, rng, backend = _make_sim(
            [[40.0, 40.0], [-45.0, 30.0], [-70.0, 0.0]],
            departments_active=True, quarantine_active=True)
        agents = sim.population.agents
        agents['departments_enabled'][:] = True
        agents['department'][:2] = [5, 4]
        agents['quarantined'][2] = True
        set_departments_enabled(sim, False, config, rng, backend)
        assert not sim.departments_active
        assert np.all(agents['department'] == NO_DEPARTMENT)
        assert not np.any(agents['departments_enabled'])
        for i in (0, 1):
            x, y = sim.population.position(i)
            assert abs(x) <= 25.0 and abs(y) <= 25.0
        assert sim.population.position(2) == (-40.0, 0.0)
        assert backend.rebuild_count == 1

    def test_travel_moves_to_another_department(self):
        sim, config, rng, backend = _make_sim([[-26.0, -26.0]], departments_active=True)
        determine = sim.population.agents
        determine['departments_enabled'][0] = True
        determine_department(sim, 0, backend)
        assert determine['department'][0] == 2
        config.departments.travel_probability = 1.0
        assert departments_travel(sim, 0, config, rng, backend)
        assert determine['department'][0] in (3, 4, 5)
        assert sim.population.position(0) == backend.zone_center(int(determine['department'][0]))

    def test_unassigned_agent_is_ineligible(self):
        sim, config, rng, backend = _make_sim([[0.0, 0.0]], departments_active=True)
        sim.population.agents['departments_enabled'][0] = True
        config.departments.travel_probability = 1.0
        state = rng.bit_generator.state
        assert not departments_travel(sim, 0, config, rng, backend)
        assert rng.bit_generator.state == state

    def test_travel_without_zones_raises(self):
        world = RectangularWorld(department_grid=0)
        sim, config, rng, backend = _make_sim([[0.0, 0.0]], backend=world,
                                              departments_active=True)
        agents = sim.population.agents
        agents['departments_enabled'][0] = True
        agents['department'][0] = 2
        config.departments.travel_probability = 1.0
        with pytest.raises(DepartmentsUnavailableError):
            departments_travel(sim, 0, config, rng, backend)


# ═══════════════════════════════════════════════════════════════════════
# EXTERNAL REINFECTION
# ═══════════════════════════════════════════════════════════════════════

class TestExternalReinfection:
    def test_schedule(self):
        assert is_reinfection_tick(0, 60)
        assert not is_reinfection_tick(1, 60)
        assert not is_reinfection_tick(59, 60)
        assert is_reinfection_tick(60, 60)
        assert is_reinfection_tick(120, 60)

    def test_hundred_agents_at_tick_sixty(self):
        sim, config, rng, backend = _make_sim(np.zeros((100, 2)))
        sim.tick = 60
        ids = external_reinfection(sim, config, rng, backend)
        np.testing.assert_array_equal(ids, [100])
        assert len(sim.population) == 101
        assert sim.population.agents['state'][100] == State.INFECTIOUS
        assert sim.population.counts().sum() == 101

    def test_first_batch_at_tick_zero(self):
        sim, config, rng, backend = _make_sim(np.zeros((100, 2)))
        ids = external_reinfection(sim, config, rng, backend)
        np.testing.assert_array_equal(ids, [100])
        assert sim.population_size == 101

    def test_off_schedule_does_nothing(self):
        sim, config, rng, backend = _make_sim(np.zeros((100, 2)))
        sim.tick = 61
        assert len(external_reinfection(sim, config, rng, backend)) == 0
        assert len(sim.population) == 100

    def test_batch_shares_one_position(self):
        sim, config, rng, backend = _make_sim(np.zeros((200, 2)), poi_active=True)
        config.simulation.infectious_on_start = 0.02
        sim.tick = 60
        ids = external_reinfection(sim, config, rng, backend)
        assert len(ids) == 4
        pts = sim.population.positions()[ids]
        assert np.all(pts == pts[0])
        assert np.all(np.abs(pts) <= 25.0)
        agents = sim.population.agents
        assert np.all(agents['poi_enabled'][ids])
        assert np.all(agents['social_distancing'][ids])
        np.testing.assert_allclose(agents['avoidance_radius'][ids], 0.5, rtol=1e-6)

    def test_arrivals_get_a_department(self):
        sim, config, rng, backend = _make_sim(np.zeros((100, 2)), departments_active=True)
        sim.tick = 60
        ids = external_reinfection(sim, config, rng, backend)
        agents = sim.population.agents
        assert agents['departments_enabled'][ids[0]]
        assert agents['department'][ids[0]] in backend.department_zones()
