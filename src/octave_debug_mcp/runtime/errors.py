"""Error types raised by the runtime engine."""

from __future__ import annotations

__all__ = [
    "RuntimeBridgeError",
    "LaunchFailure",
    "UnexpectedExit",
    "SessionClosedError",
]


class RuntimeBridgeError(Exception):
    """Base class for runtime engine errors."""


class LaunchFailure(RuntimeBridgeError):
    """The REPL executable could not be found or started."""

    def __init__(self, executable: str, reason: str) -> None:
        self.executable = executable
        self.reason = reason
        super().__init__(f"Could not start '{executable}': {reason}")


class UnexpectedExit(RuntimeBridgeError):
    """The REPL terminated while work was still pending."""

    def __init__(self, name: str, returncode: int | None) -> None:
        self.name = name
        self.returncode = returncode
        super().__init__(f"Process '{name}' exited with code: {returncode}")


class SessionClosedError(RuntimeBridgeError):
    """The session has exited or errored and can no longer accept commands."""
