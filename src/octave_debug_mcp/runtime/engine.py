"""Runtime facade over one REPL session.

Wires a ProcessSession to a HandlerQueue (stdout) and an EventDispatcher
(stderr) and exposes the operations the debugging layer builds on.

All state lives on the Runtime instance, so independent runtimes never
share counters or handler lists.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, TypeVar

from .diagnostics import DiagnosticsSink
from .dialect import OctaveDialect, function_from_path
from .errors import SessionClosedError, UnexpectedExit
from .events import EventDispatcher, EventPredicate
from .handlers import (
    EvaluateHandler,
    Handler,
    HandlerQueue,
    InputPredicate,
    IsFunctionHandler,
    PredicateHandler,
    SyncHandler,
)
from .process_session import (
    ErrorListener,
    ExitListener,
    ProcessSession,
    ProcessSpec,
    SessionState,
)
from .sync import DEFAULT_NAMESPACE, SyncProtocol

__all__ = ["Runtime"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Runtime:
    """Synchronous-looking command/response protocol over a REPL.

    Commands may be issued back to back without waiting; their callbacks
    fire in issue order. When the process exits or errors, pending
    callbacks are abandoned and never fire.

    Example:
        runtime = await Runtime.launch("octave-cli", "/work/src")
        runtime.evaluate("x = 1 + 1", print)        # prints "x = 2"
        runtime.is_function("sin", print)
        runtime.disconnect()
        await runtime.wait_closed()
    """

    def __init__(
        self,
        executable: str,
        source_folder: str | os.PathLike[str],
        *,
        args: Sequence[str] = (),
        log: bool = False,
        dialect: OctaveDialect | None = None,
        namespace: str = DEFAULT_NAMESPACE,
        env: dict[str, str] | None = None,
    ) -> None:
        self.dialect = dialect or OctaveDialect()
        self.source_folder = str(source_folder)

        self._sink = DiagnosticsSink(echo=log)
        self._sync = SyncProtocol(self.dialect, namespace)
        self._queue = HandlerQueue(self._sync, self._sink)
        self._events = EventDispatcher(self._sink)
        self._session = ProcessSession(
            ProcessSpec(argv=[executable, *args], cwd=Path(self.source_folder), env=env),
            on_stdout=self._queue.feed,
            on_stderr=self._events.dispatch,
            quit_command=self.dialect.quit(),
        )
        # Registered first so the queue is dropped before anyone else reacts
        self._session.add_exit_listener(self._on_exit)
        self._session.add_error_listener(self._on_error)

    @classmethod
    async def launch(
        cls,
        executable: str,
        source_folder: str | os.PathLike[str],
        **kwargs: Any,
    ) -> "Runtime":
        """Create a runtime and connect it."""
        runtime = cls(executable, source_folder, **kwargs)
        await runtime.connect()
        return runtime

    async def connect(self) -> None:
        """Start the REPL, set its prompt and register the source folder.

        Raises:
            LaunchFailure: If the executable cannot be started
        """
        await self._session.start()
        if self.dialect.prompt:
            self.send(self.dialect.set_prompt())
        self.add_folder(self.source_folder)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def name(self) -> str:
        return self._session.name

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def is_running(self) -> bool:
        return self._session.is_running

    @property
    def pid(self) -> int | None:
        return self._session.pid

    @property
    def command_count(self) -> int:
        return self._session.command_count

    @property
    def pending_handlers(self) -> int:
        return len(self._queue)

    @property
    def sync_protocol(self) -> SyncProtocol:
        return self._sync

    @property
    def log(self) -> bool:
        """Whether diagnostics are mirrored to stderr."""
        return self._sink.echo

    @log.setter
    def log(self, value: bool) -> None:
        self._sink.echo = value

    def set_log(self, log: bool) -> None:
        self.log = log

    def get_log(self) -> bool:
        return self.log

    @property
    def returncode(self) -> int | None:
        return self._session.returncode

    def add_exit_listener(self, listener: ExitListener) -> None:
        self._session.add_exit_listener(listener)

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._session.add_error_listener(listener)

    def remove_exit_listener(self, listener: ExitListener) -> None:
        self._session.remove_exit_listener(listener)

    def remove_error_listener(self, listener: ErrorListener) -> None:
        self._session.remove_error_listener(listener)

    async def wait_closed(self) -> None:
        await self._session.wait_closed()

    # =========================================================================
    # Raw commands
    # =========================================================================

    def send(self, command: str) -> None:
        self._session.write(command)

    def add_folder(self, folder: str) -> None:
        """Register ``folder`` so code in it can be called by name."""
        self.send(self.dialect.add_path(folder))

    def sync(self) -> int:
        """Write an echo-marker for a fresh token and return the token.

        The marker is claimed by a no-op handler so it never reaches the
        output of a request queued behind it.
        """
        return self._submit(None, lambda token: SyncHandler(self._sync, token, lambda: None))

    def wait_sync(self, callback: Callable[[], None]) -> None:
        """Call back once everything written so far has been processed."""
        self._submit(None, lambda token: SyncHandler(self._sync, token, callback))

    def wait_send(self, command: str, callback: Callable[[], None]) -> None:
        """Write ``command`` and call back once it has been processed."""
        self._submit(command, lambda token: SyncHandler(self._sync, token, callback))

    # =========================================================================
    # Queries
    # =========================================================================

    def evaluate(self, expression: str, callback: Callable[[str], None]) -> None:
        """Run ``expression`` and deliver its printed output as one string.

        The value is the non-empty, prompt-stripped output lines joined
        with newlines, or "" when nothing was printed.
        """
        self._submit(expression, lambda token: EvaluateHandler(self._sync, token, callback))

    def is_function(self, name: str, callback: Callable[[str | None], None]) -> None:
        """Deliver the "function from the file" descriptor of ``name``, or None."""
        self._submit(
            self.dialect.which(name),
            lambda token: IsFunctionHandler(self._sync, token, name, callback),
        )

    def _submit(self, command: str | None, make_handler: Callable[[int], Handler]) -> int:
        if not self._session.is_running:
            raise SessionClosedError(
                f"Process '{self.name}' is not running (state={self.state.value})"
            )
        # Handler goes on the queue before anything is written
        token = self._sync.next_token()
        self._queue.push(make_handler(token))
        if command is not None:
            self.send(command)
        self.send(self._sync.echo_command(token))
        return token

    # =========================================================================
    # Execution control
    # =========================================================================

    def start(self, program: str, stop_on_entry: bool = False) -> None:
        """Run ``program`` by name after registering its directory."""
        function = function_from_path(program)
        self.add_folder(os.path.dirname(os.path.abspath(program)))
        if stop_on_entry:
            self.send(self.dialect.stop_in(function))
        self.send(function)

    def disconnect(self) -> None:
        """Ask the REPL to quit; exit is observed through the listeners."""
        self._session.stop()

    async def terminate(self) -> None:
        """Kill the REPL, abandoning everything still pending."""
        await self._session.terminate()

    # =========================================================================
    # Low-level hooks
    # =========================================================================

    def add_input_handler(self, predicate: InputPredicate) -> None:
        """Queue a raw stdout predicate; it leaves the queue once it returns True."""
        self._queue.push(PredicateHandler(predicate))

    def add_event_handler(self, predicate: EventPredicate) -> None:
        """Register a raw stderr predicate; returning True consumes the line."""
        self._events.register(predicate)

    def clear_input_handlers(self) -> None:
        self._queue.clear()

    def clear_event_handlers(self) -> None:
        self._events.clear()

    # =========================================================================
    # Awaitable conveniences
    # =========================================================================

    async def evaluate_async(self, expression: str) -> str:
        return await self._await_result(lambda done: self.evaluate(expression, done))

    async def is_function_async(self, name: str) -> str | None:
        return await self._await_result(lambda done: self.is_function(name, done))

    async def wait_sync_async(self) -> None:
        await self._await_result(lambda done: self.wait_sync(lambda: done(None)))

    async def _await_result(self, issue: Callable[[Callable[[T], None]], None]) -> T:
        """Bridge one callback-style request into a coroutine.

        The future fails with UnexpectedExit if the session ends first; the
        abandoned handler itself still never fires.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()

        def done(value: T) -> None:
            if not future.done():
                future.set_result(value)

        def on_closed(_payload: object) -> None:
            if not future.done():
                future.set_exception(UnexpectedExit(self.name, self._session.returncode))

        issue(done)
        self._session.add_exit_listener(on_closed)
        self._session.add_error_listener(on_closed)
        try:
            await self._session.flush()
            return await future
        finally:
            self._session.remove_exit_listener(on_closed)
            self._session.remove_error_listener(on_closed)

    # =========================================================================
    # Terminal signals
    # =========================================================================

    def _on_exit(self, returncode: int | None) -> None:
        self._abandon(f"exited with code: {returncode}")

    def _on_error(self, error: BaseException) -> None:
        self._abandon(f"failed: {error}")

    def _abandon(self, reason: str) -> None:
        self._sink.flush()
        count = self._queue.abandon()
        if count:
            logger.warning(f"Runtime: {self.name} {reason}; dropped {count} pending request(s)")
        else:
            logger.debug(f"Runtime: {self.name} {reason}")
