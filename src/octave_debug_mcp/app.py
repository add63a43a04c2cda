"""Octave Debug MCP application entry.

Server lifecycle management and the main entry point.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys

from mcp.server.stdio import stdio_server

from .config import get_config
from .server import create_server, managed_runtime

__all__ = ["run_server", "main"]

logger = logging.getLogger(__name__)


async def run_server() -> None:
    """Run the MCP server over stdio.

    SIGTERM cancels the server task; the Octave session is asked to quit
    (and killed if it lingers) before returning.
    """
    config = get_config()
    logger.info(f"Starting Octave Debug MCP Server: {config}")

    async with managed_runtime(config) as manager:
        server = create_server(manager)

        async def _run_server_impl() -> None:
            async with stdio_server() as (read_stream, write_stream):
                await server.run(
                    read_stream,
                    write_stream,
                    server.create_initialization_options(),
                )
            logger.debug("MCP server completed normally")

        server_task = asyncio.create_task(_run_server_impl(), name="mcp-server")

        loop = asyncio.get_running_loop()
        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGTERM, server_task.cancel)

        try:
            await server_task
        except asyncio.CancelledError:
            logger.info("Server task cancelled by shutdown signal")
        finally:
            if sys.platform != "win32":
                with contextlib.suppress(Exception):
                    loop.remove_signal_handler(signal.SIGTERM)
            logger.info("run_server: shutting down Octave session")

    logger.info("run_server: cleanup completed")


def main() -> None:
    """Main entry point."""
    config = get_config()

    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG mode: write to a temp file
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        # Default: stderr (stdout carries the MCP protocol)
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # Third-party libraries stay at WARNING to keep noise down
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("octave_debug_mcp").setLevel(log_level)

    asyncio.run(run_server())


if __name__ == "__main__":
    main()
