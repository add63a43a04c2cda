"""Octave Debug MCP Server.

Exposes one long-lived Octave session as MCP tools.

Environment variables:
    ODM_EXECUTABLE: REPL executable (default octave-cli)
    ODM_SOURCE_FOLDER: Folder put on the search path at startup
    ODM_TIMEOUT: Per-call timeout; on expiry the session is terminated

Usage:
    uvx octave-debug-mcp
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import anyio
from mcp.server import Server
from mcp.types import TextContent, Tool

from .config import Config, get_config
from .expression import evaluate_expression_async
from .response_formatter import format_error_response, format_response
from .runtime import OctaveDialect, Runtime, RuntimeBridgeError
from .tool_schema import SUPPORTED_TOOLS, TOOL_DESCRIPTIONS, create_tool_schema

__all__ = ["RuntimeManager", "create_server", "handle_tool"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Grace period for a requested quit before the session is killed
SHUTDOWN_GRACE = 2.0


class RuntimeManager:
    """Owns the current Octave session for the server.

    A session that has exited or errored is never revived; the next request
    launches a new one instead.
    """

    def __init__(self, config: Config | None = None) -> None:
        self.config = config or get_config()
        self._runtime: Runtime | None = None
        self._launch_lock = asyncio.Lock()

    @property
    def current(self) -> Runtime | None:
        return self._runtime

    async def get_runtime(self) -> Runtime:
        async with self._launch_lock:
            runtime = self._runtime
            if runtime is not None and runtime.is_running:
                return runtime
            if runtime is not None:
                logger.info(
                    f"Previous session ended (state={runtime.state.value}), starting a new one"
                )
            self._runtime = await Runtime.launch(
                self.config.executable,
                self.config.source_folder,
                args=self.config.args,
                log=self.config.log,
                dialect=OctaveDialect(prompt=self.config.prompt),
            )
            logger.info(f"Started '{self.config.executable}' pid={self._runtime.pid}")
            return self._runtime

    async def call(self, operation: Callable[[Runtime], Awaitable[T]]) -> T:
        """Run ``operation`` against the session within the configured timeout.

        On timeout the session is terminated, which abandons every pending
        request on it, and TimeoutError is raised.
        """
        runtime = await self.get_runtime()
        try:
            with anyio.fail_after(self.config.timeout):
                return await operation(runtime)
        except TimeoutError:
            logger.warning(
                f"No answer from '{runtime.name}' within {self.config.timeout}s, terminating session"
            )
            await runtime.terminate()
            raise

    def disconnect(self) -> bool:
        runtime = self._runtime
        if runtime is None or not runtime.is_running:
            return False
        runtime.disconnect()
        return True

    async def shutdown(self) -> None:
        """Quit the session, killing it if it does not exit in time."""
        runtime = self._runtime
        if runtime is None or not runtime.is_running:
            return
        runtime.disconnect()
        with anyio.move_on_after(SHUTDOWN_GRACE):
            await runtime.wait_closed()
        if runtime.is_running:
            await runtime.terminate()


def _status(manager: RuntimeManager) -> dict[str, str]:
    runtime = manager.current
    if runtime is None:
        return {"state": "not started", "executable": manager.config.executable}
    return {
        "state": runtime.state.value,
        "executable": runtime.name,
        "pid": str(runtime.pid),
        "commands": str(runtime.command_count),
        "pending": str(runtime.pending_handlers),
    }


async def handle_tool(
    name: str,
    arguments: dict[str, Any],
    manager: RuntimeManager,
) -> list[TextContent]:
    """Execute one tool call. Failures become error responses."""
    try:
        if name == "evaluate":
            value = await manager.call(
                lambda rt: evaluate_expression_async(
                    arguments["expression"],
                    rt,
                    bool(arguments.get("console", False)),
                )
            )
            return format_response(value or "")

        if name == "is_function":
            descriptor = await manager.call(lambda rt: rt.is_function_async(arguments["name"]))
            return format_response(descriptor or "")

        if name == "run_program":
            program = arguments["program"]

            async def run(rt: Runtime) -> None:
                rt.start(program, bool(arguments.get("stop_on_entry", False)))
                await rt.wait_sync_async()

            await manager.call(run)
            return format_response(f"Started {program}")

        if name == "add_folder":
            folder = arguments["folder"]

            async def add(rt: Runtime) -> None:
                rt.add_folder(folder)
                await rt.wait_sync_async()

            await manager.call(add)
            return format_response(f"Added {folder}")

        if name == "runtime_status":
            return format_response(status=_status(manager))

        if name == "disconnect":
            if manager.disconnect():
                return format_response("Quit requested")
            return format_response("No running session")

        return format_error_response(f"Unknown tool '{name}'")

    except KeyError as e:
        return format_error_response(f"Missing argument {e} for tool '{name}'")
    except TimeoutError:
        return format_error_response(
            f"Timed out after {manager.config.timeout}s; the session was terminated"
        )
    except RuntimeBridgeError as e:
        return format_error_response(str(e))
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"Tool '{name}' error: {e}", exc_info=True)
        return format_error_response(str(e))


def create_server(manager: RuntimeManager | None = None) -> Server:
    """Create the MCP Server instance."""
    manager = manager or RuntimeManager()
    server = Server("octave-debug-mcp")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        tools = [
            Tool(
                name=tool_name,
                description=TOOL_DESCRIPTIONS[tool_name],
                inputSchema=create_tool_schema(tool_name),
            )
            for tool_name in SUPPORTED_TOOLS
        ]
        logger.debug(f"[MCP] list_tools returning {[t.name for t in tools]}")
        return tools

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        logger.debug(
            f"[MCP] call_tool request: {name} "
            f"{json.dumps(arguments, ensure_ascii=False, default=str)}"
        )
        try:
            return await handle_tool(name, arguments, manager)
        except asyncio.CancelledError:
            logger.info(f"Tool '{name}' cancelled")
            raise

    return server


@contextlib.asynccontextmanager
async def managed_runtime(config: Config | None = None):
    """Yield a RuntimeManager that is shut down on exit."""
    manager = RuntimeManager(config)
    try:
        yield manager
    finally:
        await manager.shutdown()
