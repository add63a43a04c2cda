"""Ordered handler queue for the primary (stdout) stream.

Every command whose output matters gets a handler pushed on the queue and
is followed by an echo-marker. Because writes are ordered and the REPL runs
serially, the lines for each command arrive contiguously and in command
order, so only the handler at the front of the queue ever sees a line:

1. Empty queue: the line is unclassified and goes to diagnostics.
2. Front handler recognises its end line: pop it, flush the diagnostics
   buffer, then resolve it.
3. Otherwise the line is content for the front handler, which stays put.

Handlers resolve strictly in push order and at most once. After
``abandon()`` no handler resolves ever again.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable

from .diagnostics import DiagnosticsSink
from .errors import SessionClosedError
from .sync import SyncProtocol

__all__ = [
    "EvaluateHandler",
    "Handler",
    "HandlerQueue",
    "InputPredicate",
    "IsFunctionHandler",
    "PredicateHandler",
    "SyncHandler",
    "TokenHandler",
]

logger = logging.getLogger(__name__)

InputPredicate = Callable[[str], bool]


class Handler(ABC):
    """A stateful consumer of primary-stream lines."""

    @abstractmethod
    def is_complete(self, line: str) -> bool:
        """Return True when ``line`` ends this handler's output."""

    def accept(self, line: str) -> None:
        """Consume a content line."""

    def resolve(self) -> None:
        """Deliver the result. Called exactly once, after removal."""


class PredicateHandler(Handler):
    """Wraps a raw upstream predicate.

    The predicate sees every line while the handler is at the front and
    returns True once it is done; it keeps any state it needs itself.
    """

    def __init__(self, predicate: InputPredicate) -> None:
        self.predicate = predicate

    def is_complete(self, line: str) -> bool:
        return bool(self.predicate(line))


class TokenHandler(Handler):
    """A handler that ends on the marker line for its own token.

    The token is fixed at construction, so the matcher exists before any
    command output can possibly arrive.
    """

    def __init__(self, sync: SyncProtocol, token: int) -> None:
        self.sync = sync
        self.token = token

    def is_complete(self, line: str) -> bool:
        return self.sync.matches(line, self.token)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(token={self.token})"


class SyncHandler(TokenHandler):
    """Calls back once everything written before its marker has been printed."""

    def __init__(self, sync: SyncProtocol, token: int, callback: Callable[[], None]) -> None:
        super().__init__(sync, token)
        self.callback = callback

    def resolve(self) -> None:
        self.callback()


class EvaluateHandler(TokenHandler):
    """Accumulates a command's printed output."""

    def __init__(self, sync: SyncProtocol, token: int, callback: Callable[[str], None]) -> None:
        super().__init__(sync, token)
        self.callback = callback
        self.lines: list[str] = []

    def accept(self, line: str) -> None:
        text = self.sync.clean(line)
        if text:
            self.lines.append(text)

    @property
    def value(self) -> str:
        return "\n".join(self.lines)

    def resolve(self) -> None:
        self.callback(self.value)


class IsFunctionHandler(TokenHandler):
    """Scans ``which`` output for a function descriptor.

    Resolves with the first line shaped like
    ``'<name>' is a [built-in ]function from the file <path>`` or with
    None when no such line was printed.
    """

    def __init__(
        self,
        sync: SyncProtocol,
        token: int,
        name: str,
        callback: Callable[[str | None], None],
    ) -> None:
        super().__init__(sync, token)
        self.name = name
        self.callback = callback
        self.descriptor: str | None = None
        self._pattern = re.compile(
            rf"^.*'{re.escape(name)}' is a (?:\S+ )?function from the file .*$"
        )

    def accept(self, line: str) -> None:
        if self.descriptor is None and self._pattern.match(line):
            self.descriptor = self.sync.clean(line)

    def resolve(self) -> None:
        self.callback(self.descriptor)


class HandlerQueue:
    """FIFO of handlers fed by the single stdout reader."""

    def __init__(self, sync: SyncProtocol, sink: DiagnosticsSink) -> None:
        self.sync = sync
        self.sink = sink
        self._handlers: deque[Handler] = deque()
        self._abandoned = False

    def __len__(self) -> int:
        return len(self._handlers)

    @property
    def front(self) -> Handler | None:
        return self._handlers[0] if self._handlers else None

    @property
    def abandoned(self) -> bool:
        return self._abandoned

    def push(self, handler: Handler) -> None:
        if self._abandoned:
            raise SessionClosedError("Handler queue was abandoned; the session has ended")
        self._handlers.append(handler)

    def clear(self) -> None:
        """Drop all queued handlers without resolving them."""
        self._handlers.clear()

    def abandon(self) -> int:
        """Drop all handlers for good. Returns how many were pending."""
        count = len(self._handlers)
        self._handlers.clear()
        self._abandoned = True
        if count:
            logger.debug(f"Abandoned {count} pending handler(s)")
        return count

    def feed(self, line: str) -> None:
        """Route one primary-stream line."""
        if self._abandoned:
            self.sink.debug(line)
            return

        if not self._handlers:
            if self.sync.is_marker(line):
                self.sink.debug(line)
            else:
                self.sink.unclassified(line)
            return

        handler = self._handlers[0]
        if handler.is_complete(line):
            self._handlers.popleft()
            self.sink.flush()
            handler.resolve()
        else:
            handler.accept(line)
            self.sink.buffer(line)
