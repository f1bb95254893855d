"""Tests for sirv_abm.clock — host orchestration and pacing."""

import numpy as np
import pytest

from sirv_abm.backend import RectangularWorld
from sirv_abm.clock import SimulationClock
from sirv_abm.config import default_config
from sirv_abm.types import StateChanged, TickReport


class TestTicking:
    def test_tick_advances_and_reports(self):
        clock = SimulationClock(seed=3)
        report = clock.tick()
        assert report.tick == 1
        assert clock.current_tick == 1
        assert clock.last_report == report
        assert report.total == 100

    def test_parameter_change_applies_on_next_tick(self):
        clock = SimulationClock(seed=3)
        clock.tick()
        clock.parameters.set('quarantine.enabled', True)
        assert not clock.state.quarantine_active
        clock.tick()
        assert clock.state.quarantine_active
        assert clock.backend.quarantine_active

    def test_invalid_parameter_rejected(self):
        clock = SimulationClock(seed=3)
        with pytest.raises(ValueError):
            clock.parameters.set('disease.recovery_ticks', 100)
        assert clock.parameters.get('disease.recovery_ticks') == 25

    def test_same_seed_same_reports(self):
        a = SimulationClock(seed=9).run(30)
        b = SimulationClock(seed=9).run(30)
        assert a == b

    def test_population_size_counts_reinfection_arrivals(self):
        clock = SimulationClock(seed=3)
        clock.parameters.set('disease.external_reinfection', True)
        clock.tick()
        assert clock.population_size == 101
        assert clock.parameters.get('simulation.population_size') == 100

    def test_seed_falls_back_to_config(self):
        config = default_config()
        config.simulation.seed = 123
        assert SimulationClock(config).seed == 123


class TestEvents:
    def test_drain_reports(self):
        clock = SimulationClock(seed=3)
        clock.run(4)
        reports = clock.drain_events(TickReport)
        assert [r.tick for r in reports] == [1, 2, 3, 4]
        assert clock.drain_events(TickReport) == []

    def test_state_changes_recorded_by_default(self):
        clock = SimulationClock(seed=3)
        changes = clock.drain_events(StateChanged)
        assert len(changes) == 1
        assert changes[0].agent_id == 0

    def test_state_changes_can_be_disabled(self):
        clock = SimulationClock(seed=3, record_state_changes=False)
        clock.run(5)
        assert clock.drain_events(StateChanged) == []


class TestRun:
    def test_run_returns_reports_in_order(self):
        clock = SimulationClock(seed=4)
        seen = []
        reports = clock.run(5, on_report=seen.append)
        assert [r.tick for r in reports] == [1, 2, 3, 4, 5]
        assert seen == reports

    def test_no_sleep_without_realtime(self):
        sleeps = []
        SimulationClock(seed=4).run(3, sleep=sleeps.append)
        assert sleeps == []

    def test_realtime_sleeps_remaining_slot(self):
        sleeps = []
        config = default_config()
        config.simulation.tick_length_seconds = 2.0
        SimulationClock(config, seed=4).run(3, realtime=True, sleep=sleeps.append)
        assert len(sleeps) == 3
        assert all(0.0 < s <= 2.0 for s in sleeps)

    def test_backend_moves_agents_between_ticks(self):
        backend = RectangularWorld()
        clock = SimulationClock(seed=4, backend=backend)
        before = clock.state.population.positions()
        clock.run(3)
        assert not np.array_equal(before, clock.state.population.positions())


class TestReset:
    def test_reset_uses_current_parameters(self):
        clock = SimulationClock(seed=5)
        clock.run(3)
        clock.parameters.set('simulation.population_size', 200)
        clock.reset()
        assert clock.current_tick == 0
        assert len(clock.state.population) == 200
        assert clock.last_report is None
        assert clock.drain_events(TickReport) == []
        np.testing.assert_array_equal(clock.state.population.counts(), [198, 2, 0, 0])
