"""Octave Debug MCP entry point.

Supports: python -m octave_debug_mcp
"""

from .app import main

if __name__ == "__main__":
    main()
