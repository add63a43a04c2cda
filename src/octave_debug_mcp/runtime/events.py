"""Event dispatch for the secondary (stderr) stream.

Octave prints asynchronous notifications, such as stopping at a breakpoint,
on stderr at arbitrary times. Those lines never belong to a queued command,
so they are matched against registered predicates instead.
"""

from __future__ import annotations

from collections.abc import Callable

from .diagnostics import DiagnosticsSink

__all__ = ["EventDispatcher", "EventPredicate"]

EventPredicate = Callable[[str], bool]


class EventDispatcher:
    """Offers each stderr line to predicates in registration order.

    The first predicate returning True consumes the line; later predicates
    do not see it. A line nobody consumes is logged as a warning.
    """

    def __init__(self, sink: DiagnosticsSink) -> None:
        self.sink = sink
        self._predicates: list[EventPredicate] = []

    def __len__(self) -> int:
        return len(self._predicates)

    def register(self, predicate: EventPredicate) -> None:
        self._predicates.append(predicate)

    def clear(self) -> None:
        self._predicates = []

    def dispatch(self, line: str) -> bool:
        """Route one line. Returns True if a predicate consumed it."""
        for predicate in list(self._predicates):
            if predicate(line):
                return True
        self.sink.warn(line)
        return False
