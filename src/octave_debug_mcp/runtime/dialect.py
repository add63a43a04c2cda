"""Command grammar spoken to the REPL.

The engine never builds command text itself; everything it writes comes
from a dialect so that the synchronisation machinery stays independent of
the language running in the subprocess.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath

__all__ = ["OctaveDialect", "function_from_path"]

DEFAULT_PROMPT = "debug> "


def function_from_path(path: str) -> str:
    """Return the callable name of a script or function file.

    Octave resolves a file on its search path by its stem, so
    ``/work/src/main.m`` is invoked as ``main``.
    """
    return PurePath(path).stem


@dataclass(frozen=True)
class OctaveDialect:
    """Commands understood by GNU Octave (and, for the subset used, MATLAB).

    Attributes:
        prompt: Prompt prefix the REPL prints before interactive output
    """

    prompt: str = DEFAULT_PROMPT

    def set_prompt(self) -> str:
        """Command that makes the REPL use ``prompt``."""
        quoted = self.prompt.replace("'", "''")
        return f"PS1('{quoted}')"

    def echo(self, text: str) -> str:
        """Command that prints ``text`` verbatim as one line.

        ``text`` must not contain characters printf would interpret.
        """
        return f'printf("{text}\\n")'

    def add_path(self, folder: str) -> str:
        """Command that extends the search path with ``folder``."""
        quoted = folder.replace("'", "''")
        return f"addpath('{quoted}')"

    def which(self, name: str) -> str:
        """Command that reports where ``name`` resolves."""
        return f"which {name}"

    def stop_in(self, function: str) -> str:
        """Command that sets a breakpoint on the first line of ``function``."""
        return f"dbstop in {function}"

    def quit(self) -> str:
        return "quit"
