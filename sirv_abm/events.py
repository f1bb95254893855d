"""Event/report queue between the engine and its host.

The engine never calls into presentation code. It appends records here
(TickReport, SignificantPointEvent, StateChanged, InterventionFailed) and
the host drains them at its own pace, e.g. to recolor agents, update a
chart or log significant points.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, List, Optional, Type, TypeVar

from sirv_abm.types import StateChanged

T = TypeVar('T')


class EventQueue:
    """FIFO of engine events.

    When `record_state_changes` is False, StateChanged events are dropped
    on append; headless batch runs use this to keep memory flat.
    """

    def __init__(self, record_state_changes: bool = True):
        self.record_state_changes = record_state_changes
        self._events: Deque[object] = deque()

    def __len__(self) -> int:
        return len(self._events)

    def append(self, event: object) -> None:
        if not self.record_state_changes and isinstance(event, StateChanged):
            return
        self._events.append(event)

    def drain(self, kind: Optional[Type[T]] = None) -> List[object]:
        """Remove and return queued events, oldest first.

        Args:
            kind: If given, only events of this type are removed and
                returned; others stay queued in order.
        """
        if kind is None:
            drained = list(self._events)
            self._events.clear()
            return drained
        drained = [e for e in self._events if isinstance(e, kind)]
        kept = [e for e in self._events if not isinstance(e, kind)]
        self._events = deque(kept)
        return drained

    def peek(self) -> List[object]:
        return list(self._events)

    def clear(self) -> None:
        self._events.clear()
