"""Injected-marker synchronisation.

The REPL has no response framing. It is single-threaded and executes input
strictly in arrival order, so writing an echo-marker command right after a
command guarantees the marker line is printed only after all of that
command's own output. The marker therefore acts as an end-of-response
delimiter that the REPL itself never provides.
"""

from __future__ import annotations

import re

from .dialect import OctaveDialect

__all__ = ["DEFAULT_NAMESPACE", "SyncProtocol"]

DEFAULT_NAMESPACE = "octave_debug_mcp"

# printf and Octave string escaping leave these characters untouched
_SAFE_NAMESPACE = re.compile(r"^[A-Za-z0-9_:]+$")


class SyncProtocol:
    """Issues tokens and recognises the marker lines that echo them.

    Tokens are strictly increasing per instance and never reused. A marker
    line is ``<namespace>::<token>``, optionally preceded by any number of
    prompt repetitions.
    """

    def __init__(
        self,
        dialect: OctaveDialect | None = None,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        if not _SAFE_NAMESPACE.match(namespace):
            raise ValueError(f"Unsafe marker namespace: {namespace!r}")

        self.dialect = dialect or OctaveDialect()
        self.namespace = namespace
        self._last_token = 0
        self._any_marker = re.compile(rf"^{re.escape(namespace)}::\d+$")

    @property
    def prompt(self) -> str:
        return self.dialect.prompt

    @property
    def last_token(self) -> int:
        return self._last_token

    def next_token(self) -> int:
        self._last_token += 1
        return self._last_token

    def marker_text(self, token: int) -> str:
        return f"{self.namespace}::{token}"

    def echo_command(self, token: int) -> str:
        """Command that makes the REPL print exactly ``marker_text(token)``."""
        return self.dialect.echo(self.marker_text(token))

    def strip_prompt(self, line: str) -> str:
        """Remove any number of leading prompt repetitions."""
        prompt = self.prompt
        if not prompt:
            return line
        while line.startswith(prompt):
            line = line[len(prompt):]
        return line

    def clean(self, line: str) -> str:
        """Normalise a content line: no prompt prefix, no surrounding blanks."""
        return self.strip_prompt(line).strip()

    def matches(self, line: str, token: int) -> bool:
        return self.strip_prompt(line) == self.marker_text(token)

    def is_marker(self, line: str) -> bool:
        """True for a marker line carrying any token."""
        return self._any_marker.match(self.strip_prompt(line)) is not None
