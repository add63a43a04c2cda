"""Tool schema definitions.

Tool descriptions, argument schemas and the schema factory.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "SUPPORTED_TOOLS",
    "TOOL_DESCRIPTIONS",
    "create_tool_schema",
]

# Tool names in listing order
SUPPORTED_TOOLS = [
    "evaluate",
    "is_function",
    "run_program",
    "add_folder",
    "runtime_status",
    "disconnect",
]

TOOL_DESCRIPTIONS = {
    "evaluate": """Evaluate an expression or statement in the Octave session.

Returns everything the statement printed, prompt-stripped, as one block.
Statements ending in ';' print nothing and return an empty answer.

WATCH MODE (default):
- If the text names a function, its "function from the file" descriptor is
  returned instead of calling it.

CONSOLE MODE (console=true):
- The first character is treated as the console prefix and dropped; the
  rest is executed as typed.""",

    "is_function": """Check whether a name resolves to a function.

Returns the "'<name>' is a function from the file <path>" line, or an empty
answer when the name is not a function.""",

    "run_program": """Run an Octave script or function file by name.

The file's folder is added to the search path first. With stop_on_entry the
session stops on the first line of the program.""",

    "add_folder": "Add a folder to the Octave search path.",

    "runtime_status": "Report the state of the Octave session (pid, state, command count, pending requests).",

    "disconnect": "Ask the Octave session to quit. The next request starts a fresh session.",
}

_PROPERTIES: dict[str, dict[str, Any]] = {
    "evaluate": {
        "expression": {
            "type": "string",
            "description": "Expression or statement to evaluate.",
        },
        "console": {
            "type": "boolean",
            "default": False,
            "description": "Console mode: drop the leading prefix character and always execute.",
        },
    },
    "is_function": {
        "name": {
            "type": "string",
            "description": "Symbol name to resolve, e.g. 'sin'.",
        },
    },
    "run_program": {
        "program": {
            "type": "string",
            "description": "Absolute path of the .m file to run.",
        },
        "stop_on_entry": {
            "type": "boolean",
            "default": False,
            "description": "Set a breakpoint on the program's first line before running it.",
        },
    },
    "add_folder": {
        "folder": {
            "type": "string",
            "description": "Absolute folder path.",
        },
    },
}

_REQUIRED: dict[str, list[str]] = {
    "evaluate": ["expression"],
    "is_function": ["name"],
    "run_program": ["program"],
    "add_folder": ["folder"],
}


def create_tool_schema(tool_name: str) -> dict[str, Any]:
    """Create the JSON Schema for a tool's arguments.

    Raises:
        ValueError: Unknown tool name
    """
    if tool_name not in TOOL_DESCRIPTIONS:
        raise ValueError(f"Unknown tool: {tool_name}")

    return {
        "type": "object",
        "properties": dict(_PROPERTIES.get(tool_name, {})),
        "required": list(_REQUIRED.get(tool_name, [])),
    }
