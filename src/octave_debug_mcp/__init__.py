"""Octave Debug MCP - ordered command/response access to a live Octave REPL.

Environment variables:
    ODM_EXECUTABLE: REPL executable (default octave-cli)
    ODM_SOURCE_FOLDER: Folder put on the search path at startup
    ODM_LOG: Mirror REPL diagnostics to stderr
    ODM_TIMEOUT: Per-call timeout in seconds

Usage:
    uvx octave-debug-mcp
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
