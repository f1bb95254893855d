"""Tests for sirv_abm.significant_points and sirv_abm.events."""

import numpy as np

from sirv_abm.events import EventQueue
from sirv_abm.significant_points import SignificantPointDetector
from sirv_abm.types import (
    InterventionFailed,
    SignificantPointEvent,
    SignificantPointKind,
    State,
    StateChanged,
    TickReport,
)

B = SignificantPointKind.BREAKING
R = SignificantPointKind.RECOVERY
S = SignificantPointKind.SURVIVAL


def _counts(s, i, r, v=0):
    return np.array([s, i, r, v])


class TestDetector:
    def test_nothing_at_start(self):
        det = SignificantPointDetector()
        assert det.evaluate(_counts(99, 1, 0), tick=1, recovery_ticks=25) == []

    def test_breaking_fires_once(self):
        det = SignificantPointDetector()
        fired = det.evaluate(_counts(40, 60, 0), tick=10, recovery_ticks=25)
        assert fired == [SignificantPointEvent(B, 10)]
        # drop below then re-cross
        det.evaluate(_counts(70, 30, 0), tick=11, recovery_ticks=25)
        assert det.evaluate(_counts(40, 60, 0), tick=12, recovery_ticks=25) == []
        assert det.tick_of(B) == 10

    def test_recovery_point(self):
        det = SignificantPointDetector()
        fired = det.evaluate(_counts(20, 30, 50), tick=40, recovery_ticks=25)
        assert [e.kind for e in fired] == [B, R]
        assert det.is_reached(R)

    def test_survival_needs_tick_past_recovery(self):
        det = SignificantPointDetector()
        assert det.evaluate(_counts(100, 0, 0), tick=25, recovery_ticks=25) == []
        fired = det.evaluate(_counts(100, 0, 0), tick=26, recovery_ticks=25)
        assert fired == [SignificantPointEvent(S, 26)]

    def test_all_three_in_order(self):
        det = SignificantPointDetector()
        # R > I and I == 0, but I > S is false
        fired = det.evaluate(_counts(10, 0, 90), tick=30, recovery_ticks=25)
        assert [e.kind for e in fired] == [R, S]

    def test_reset_rearms(self):
        det = SignificantPointDetector()
        det.evaluate(_counts(0, 10, 0), tick=5, recovery_ticks=25)
        det.reset()
        assert not det.is_reached(B)
        assert det.evaluate(_counts(0, 10, 0), tick=6, recovery_ticks=25)[0].tick == 6


class TestEventQueue:
    def test_fifo_drain(self):
        q = EventQueue()
        q.append(TickReport(1, 1, 0, 0, 0))
        q.append(SignificantPointEvent(B, 1))
        assert len(q) == 2
        drained = q.drain()
        assert isinstance(drained[0], TickReport)
        assert len(q) == 0

    def test_drain_by_kind_keeps_others(self):
        q = EventQueue()
        q.append(TickReport(1, 1, 0, 0, 0))
        q.append(InterventionFailed('departments', 'none', 1))
        q.append(TickReport(2, 1, 0, 0, 0))
        reports = q.drain(TickReport)
        assert [r.tick for r in reports] == [1, 2]
        assert len(q.peek()) == 1
        assert isinstance(q.peek()[0], InterventionFailed)

    def test_state_changes_can_be_dropped(self):
        q = EventQueue(record_state_changes=False)
        q.append(StateChanged(0, State.SUSCEPTIBLE, State.INFECTIOUS, 0))
        q.append(TickReport(1, 0, 1, 0, 0))
        assert len(q) == 1

    def test_clear(self):
        q = EventQueue()
        q.append(TickReport(1, 1, 0, 0, 0))
        q.clear()
        assert q.drain() == []
