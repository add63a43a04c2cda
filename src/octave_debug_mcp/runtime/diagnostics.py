"""Diagnostics passthrough for REPL output nobody asked for."""

from __future__ import annotations

import logging
import sys

__all__ = ["DiagnosticsSink"]

logger = logging.getLogger(__name__)


class DiagnosticsSink:
    """Collects and logs raw REPL output.

    Lines consumed by a handler are held in an output buffer and emitted at
    DEBUG once that handler resolves. Lines nobody claimed are emitted at
    WARNING right away. With ``echo`` enabled every message is also mirrored
    to stderr.
    """

    def __init__(self, echo: bool = False) -> None:
        self.echo = echo
        self._buffer: list[str] = []

    @property
    def pending(self) -> list[str]:
        """Buffered lines not flushed yet."""
        return list(self._buffer)

    def buffer(self, line: str) -> None:
        self._buffer.append(line)

    def flush(self) -> None:
        """Emit and clear the output buffer."""
        if not self._buffer:
            return
        text = "\n".join(self._buffer)
        self._buffer.clear()
        self.debug(text)

    def unclassified(self, line: str) -> None:
        """Handle a line that arrived with no handler waiting for it."""
        self.warn(line)

    def debug(self, message: str) -> None:
        self._mirror(message)
        logger.debug(message)

    def warn(self, message: str) -> None:
        self._mirror(message)
        logger.warning(message)

    def _mirror(self, message: str) -> None:
        if self.echo:
            print(message, file=sys.stderr, flush=True)
