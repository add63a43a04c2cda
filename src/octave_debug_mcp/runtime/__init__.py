"""Runtime module for REPL process communication and synchronisation.

This module turns a long-lived interactive REPL, which has no response
framing of its own, into an ordered command/response channel by injecting
echo-markers after each command.
"""

from __future__ import annotations

from .dialect import OctaveDialect, function_from_path
from .engine import Runtime
from .errors import LaunchFailure, RuntimeBridgeError, SessionClosedError, UnexpectedExit
from .process_session import ProcessSession, ProcessSpec, SessionState
from .sync import SyncProtocol

__all__ = [
    "LaunchFailure",
    "OctaveDialect",
    "ProcessSession",
    "ProcessSpec",
    "Runtime",
    "RuntimeBridgeError",
    "SessionClosedError",
    "SessionState",
    "SyncProtocol",
    "UnexpectedExit",
    "function_from_path",
]
