"""Long-lived REPL process session.

octave-debug-mcp runtime module

This module provides:
- Subprocess spawn in an isolated process group/session
- Line consumption of stdout (primary stream) and stderr (secondary stream)
- Ordered, single-writer command input
- One-shot terminal signals (exit or error) observed by every dependent
- Forced termination (SIGTERM -> timeout -> SIGKILL) for callers that
  layer their own timeout on top of the engine

Key design points:
- Exactly one reader task per stream; line consumers run on the event loop
  one line at a time, so they never run concurrently with themselves
- Exit is signalled only after both streams reach EOF and the process is
  reaped, so every line printed before exit is routed first
- Once a terminal signal fired, late lines are logged and dropped
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from .errors import LaunchFailure, SessionClosedError

__all__ = [
    "ProcessSession",
    "ProcessSpec",
    "SessionState",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL

# Large matrices print as very long lines; asyncio's default limit is 64 KiB
STREAM_LIMIT = 2**20

LineConsumer = Callable[[str], None]
ExitListener = Callable[[int | None], None]
ErrorListener = Callable[[BaseException], None]


class SessionState(str, Enum):
    """Lifecycle of a process session.

    STARTING -> RUNNING -> EXITED | ERRORED. Both terminal states are final.
    """

    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    ERRORED = "errored"


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for the REPL subprocess.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process
        env: Environment variables (None = inherit parent)
    """

    argv: list[str]
    cwd: Path
    env: Mapping[str, str] | None = None


class ProcessSession:
    """Owns one REPL subprocess for its whole lifetime.

    The session writes commands to stdin and hands every stdout line to
    ``on_stdout`` and every stderr line to ``on_stderr``. It knows nothing
    about what the lines mean.

    Example:
        session = ProcessSession(
            ProcessSpec(argv=["octave-cli", "--quiet"], cwd=Path("/work")),
            on_stdout=queue.feed,
            on_stderr=dispatcher.dispatch,
        )
        session.add_exit_listener(lambda code: print("exited", code))
        await session.start()
        session.write("x = 1 + 1")
    """

    def __init__(
        self,
        spec: ProcessSpec,
        *,
        on_stdout: LineConsumer,
        on_stderr: LineConsumer,
        quit_command: str = "quit",
        term_timeout: float = DEFAULT_TERM_TIMEOUT,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
    ) -> None:
        self.spec = spec
        self.quit_command = quit_command
        self.term_timeout = term_timeout
        self.kill_timeout = kill_timeout

        self._on_stdout = on_stdout
        self._on_stderr = on_stderr

        self._state = SessionState.STARTING
        self._command_count = 0
        self._process: asyncio.subprocess.Process | None = None
        self._reader_tasks: list[asyncio.Task[None]] = []
        self._watch_task: asyncio.Task[None] | None = None

        self._exit_listeners: list[ExitListener] = []
        self._error_listeners: list[ErrorListener] = []
        self._returncode: int | None = None
        self._error: BaseException | None = None
        self._closed = asyncio.Event()

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def name(self) -> str:
        """Executable name as given in the spec."""
        return self.spec.argv[0]

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SessionState.RUNNING

    @property
    def command_count(self) -> int:
        """Number of commands written so far."""
        return self._command_count

    @property
    def returncode(self) -> int | None:
        return self._returncode

    @property
    def error(self) -> BaseException | None:
        return self._error

    # =========================================================================
    # Terminal signal listeners
    # =========================================================================

    def add_exit_listener(self, listener: ExitListener) -> None:
        """Register a callback for the exit signal.

        A listener added after the session already exited is called at once.
        """
        if self._state is SessionState.EXITED:
            self._call_listener(listener, self._returncode)
            return
        self._exit_listeners.append(listener)

    def add_error_listener(self, listener: ErrorListener) -> None:
        """Register a callback for the error signal.

        A listener added after the session already errored is called at once.
        """
        if self._state is SessionState.ERRORED and self._error is not None:
            self._call_listener(listener, self._error)
            return
        self._error_listeners.append(listener)

    def remove_exit_listener(self, listener: ExitListener) -> None:
        if listener in self._exit_listeners:
            self._exit_listeners.remove(listener)

    def remove_error_listener(self, listener: ErrorListener) -> None:
        if listener in self._error_listeners:
            self._error_listeners.remove(listener)

    async def wait_closed(self) -> None:
        """Wait until the session has exited or errored."""
        await self._closed.wait()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Spawn the subprocess and begin consuming both streams.

        Raises:
            LaunchFailure: If the executable cannot be found or started
            SessionClosedError: If the session was already started
        """
        if self._state is not SessionState.STARTING:
            raise SessionClosedError(
                f"Session for '{self.name}' was already started (state={self._state.value})"
            )

        logger.debug(f"Runtime: connecting to '{self.name}'.")
        kwargs = self._build_subprocess_kwargs()

        try:
            process = await asyncio.create_subprocess_exec(
                *self.spec.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.spec.cwd,
                limit=STREAM_LIMIT,
                **kwargs,
            )
        except OSError as e:
            failure = LaunchFailure(self.name, str(e))
            self._signal_error(failure)
            raise failure from e

        self._attach(process)

    def write(self, command: str) -> None:
        """Write one command line to the subprocess.

        The write is synchronous with respect to the event loop, so commands
        reach the subprocess in exactly the order ``write`` was called.

        Raises:
            SessionClosedError: If the session is not running
        """
        process = self._process
        if self._state is not SessionState.RUNNING or process is None or process.stdin is None:
            raise SessionClosedError(
                f"Process '{self.name}' is not running (state={self._state.value})"
            )

        self._command_count += 1
        logger.debug(f"{self.name}:{self._command_count}> {command}")
        process.stdin.write(f"{command}\n".encode("utf-8"))

    async def flush(self) -> None:
        """Wait until buffered input has been handed to the subprocess.

        Raises:
            SessionClosedError: If the input pipe is already closed
        """
        process = self._process
        if process is None or process.stdin is None:
            return
        try:
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise SessionClosedError(f"Input pipe of '{self.name}' is closed") from e

    def stop(self) -> None:
        """Ask the subprocess to quit.

        Termination is observed asynchronously through the exit signal.
        """
        if self._state is not SessionState.RUNNING:
            logger.debug(f"Runtime: '{self.name}' already stopped ({self._state.value}).")
            return
        logger.debug("Runtime: quitting.")
        self.write(self.quit_command)

    async def terminate(self) -> None:
        """Forcefully terminate the subprocess and wait for the exit signal."""
        process = self._process
        if process is not None and process.returncode is None:
            await self._terminate_process(process)
        if self._process is not None:
            await self.wait_closed()

    # =========================================================================
    # Stream consumption
    # =========================================================================

    def _attach(self, process: asyncio.subprocess.Process) -> None:
        self._process = process
        self._state = SessionState.RUNNING

        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={self.spec.argv[0]} cwd={self.spec.cwd}"
        )

        assert process.stdout is not None and process.stderr is not None
        self._reader_tasks = [
            asyncio.create_task(
                self._read_lines(process.stdout, self._on_stdout, "stdout"),
                name=f"{self.name}-stdout",
            ),
            asyncio.create_task(
                self._read_lines(process.stderr, self._on_stderr, "stderr"),
                name=f"{self.name}-stderr",
            ),
        ]
        self._watch_task = asyncio.create_task(
            self._watch_exit(process),
            name=f"{self.name}-watch",
        )

    async def _read_lines(
        self,
        stream: asyncio.StreamReader,
        consumer: LineConsumer,
        label: str,
    ) -> None:
        """Feed each line of ``stream`` to ``consumer`` until EOF."""
        while True:
            raw = await stream.readline()
            if not raw:
                return

            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")

            if self._state is not SessionState.RUNNING:
                logger.debug(f"{self.name} [{label}] after close: {line}")
                continue

            try:
                consumer(line)
            except Exception:
                # The consumer already advanced its own state; keep reading
                logger.exception(f"Error while handling {label} line {line!r}")

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> None:
        try:
            await asyncio.gather(*self._reader_tasks)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Stream reader for '{self.name}' failed: {e}")
            self._signal_error(e)
            if process.returncode is None:
                await self._terminate_process(process)
            return

        returncode = await process.wait()
        self._signal_exit(returncode)

    # =========================================================================
    # Terminal signals
    # =========================================================================

    def _signal_exit(self, returncode: int | None) -> None:
        if self._state in (SessionState.EXITED, SessionState.ERRORED):
            return

        self._state = SessionState.EXITED
        self._returncode = returncode
        self._closed.set()
        logger.debug(f"Runtime: {self.name} exited with code: {returncode}")

        listeners, self._exit_listeners = self._exit_listeners, []
        for listener in listeners:
            self._call_listener(listener, returncode)

    def _signal_error(self, error: BaseException) -> None:
        if self._state in (SessionState.EXITED, SessionState.ERRORED):
            return

        message = str(error)
        if self._process is None:
            message += f"\nCould not connect to '{self.name}'."
        elif self._process.returncode is not None and self._process.returncode < 0:
            message += f"\nProcess '{self.name}' was killed."
        logger.debug(message)

        self._state = SessionState.ERRORED
        self._error = error
        self._closed.set()

        listeners, self._error_listeners = self._error_listeners, []
        for listener in listeners:
            self._call_listener(listener, error)

    @staticmethod
    def _call_listener(listener: Callable[[Any], None], payload: Any) -> None:
        try:
            listener(payload)
        except Exception:
            logger.exception("Error in session terminal listener")

    # =========================================================================
    # Platform specifics
    # =========================================================================

    def _build_subprocess_kwargs(self) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs.

        Returns:
            Dict of kwargs for asyncio.create_subprocess_exec
        """
        kwargs: dict[str, Any] = {}

        if self.spec.env is not None:
            kwargs["env"] = dict(self.spec.env)

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            # POSIX: start_new_session (equivalent to setsid)
            kwargs["start_new_session"] = True

        return kwargs

    async def _terminate_process(self, process: asyncio.subprocess.Process) -> None:
        """Terminate subprocess gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM (or CTRL_BREAK_EVENT on Windows)
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL (or kill() on Windows)
        4. Wait up to kill_timeout for forced exit
        """
        pid = process.pid
        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            if IS_WINDOWS:
                self._windows_terminate(process)
            else:
                self._posix_signal(process, signal.SIGTERM)

            try:
                await asyncio.wait_for(process.wait(), timeout=self.term_timeout)
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return
            except asyncio.TimeoutError:
                pass

            logger.debug(f"Force killing subprocess pid={pid}")
            if IS_WINDOWS:
                process.kill()
            else:
                self._posix_signal(process, signal.SIGKILL)

            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
                logger.debug(
                    f"Subprocess killed pid={pid} returncode={process.returncode}"
                )
            except asyncio.TimeoutError:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")

        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")
        except OSError as e:
            logger.warning(f"Error terminating subprocess pid={pid}: {e}")
            self._signal_error(e)

    @staticmethod
    def _posix_signal(process: asyncio.subprocess.Process, sig: signal.Signals) -> None:
        """Send ``sig`` to the process group, falling back to the process."""
        try:
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            process.send_signal(sig)

    @staticmethod
    def _windows_terminate(process: asyncio.subprocess.Process) -> None:
        try:
            # Works because the process was created with CREATE_NEW_PROCESS_GROUP
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            process.terminate()
