"""Runtime integration tests against the fake REPL.

Test coverage:
- Connect sets the prompt and registers the source folder
- Evaluate and is_function results, prompt-stripped
- Back-to-back requests resolve in issue order
- Stderr events reach registered predicates
- Exit abandons pending callbacks and fails awaitables
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import pytest

from octave_debug_mcp.runtime import (
    LaunchFailure,
    Runtime,
    SessionClosedError,
    SessionState,
    UnexpectedExit,
)

pytestmark = pytest.mark.integration


async def launch(source_folder: Path, runtime_kwargs: dict, **kwargs) -> Runtime:
    return await Runtime.launch(sys.executable, source_folder, **runtime_kwargs, **kwargs)


# =============================================================================
# Queries
# =============================================================================


class TestQueries:
    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_evaluate_prints_value(self, source_folder, runtime_kwargs):
        runtime = await launch(source_folder, runtime_kwargs)
        try:
            assert await runtime.evaluate_async("1+1") == "ans = 2"
        finally:
            await runtime.terminate()

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_silent_statement_is_empty(self, source_folder, runtime_kwargs):
        runtime = await launch(source_folder, runtime_kwargs)
        try:
            assert await runtime.evaluate_async("x = 5;") == ""
            assert await runtime.evaluate_async("x") == "x = 5"
        finally:
            await runtime.terminate()

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_is_function_builtin(self, source_folder, runtime_kwargs):
        runtime = await launch(source_folder, runtime_kwargs)
        try:
            descriptor = await runtime.is_function_async("sin")
            assert descriptor == (
                "'sin' is a built-in function from the file libinterp/corefcn/mappers.cc"
            )
        finally:
            await runtime.terminate()

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_is_function_on_source_folder(self, source_folder, runtime_kwargs):
        runtime = await launch(source_folder, runtime_kwargs)
        try:
            descriptor = await runtime.is_function_async("square")
            assert descriptor == f"'square' is a function from the file {source_folder / 'square.m'}"
        finally:
            await runtime.terminate()

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_is_function_not_a_function(self, source_folder, runtime_kwargs):
        runtime = await launch(source_folder, runtime_kwargs)
        try:
            await runtime.evaluate_async("v = 3;")
            assert await runtime.is_function_async("v") is None
            assert await runtime.is_function_async("nothing_here") is None
        finally:
            await runtime.terminate()


# =============================================================================
# Ordering
# =============================================================================


class TestOrdering:
    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_callbacks_fire_in_issue_order(self, source_folder, runtime_kwargs):
        runtime = await launch(source_folder, runtime_kwargs)
        try:
            results: list[tuple[str, object]] = []
            done = asyncio.Event()

            runtime.evaluate("2*3", lambda v: results.append(("eval", v)))
            runtime.is_function("sin", lambda v: results.append(("fn", v is not None)))
            runtime.evaluate("a = 10", lambda v: results.append(("assign", v)))
            runtime.wait_sync(lambda: (results.append(("sync", None)), done.set()))

            await done.wait()

            assert results == [
                ("eval", "ans = 6"),
                ("fn", True),
                ("assign", "a = 10"),
                ("sync", None),
            ]
            assert runtime.pending_handlers == 0
        finally:
            await runtime.terminate()

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_concurrent_awaitables(self, source_folder, runtime_kwargs):
        runtime = await launch(source_folder, runtime_kwargs)
        try:
            values = await asyncio.gather(
                *(runtime.evaluate_async(f"{n} + 1") for n in range(10))
            )
            assert values == [f"ans = {n + 1}" for n in range(10)]
        finally:
            await runtime.terminate()

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_wait_send_runs_after_command(self, source_folder, runtime_kwargs):
        runtime = await launch(source_folder, runtime_kwargs)
        try:
            done = asyncio.Event()
            runtime.wait_send("q = 9;", done.set)
            await done.wait()

            assert await runtime.evaluate_async("q") == "q = 9"
        finally:
            await runtime.terminate()

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_sync_tokens_increase(self, source_folder, runtime_kwargs):
        runtime = await launch(source_folder, runtime_kwargs)
        try:
            first = runtime.sync()
            second = runtime.sync()
            assert second == first + 1
            await runtime.wait_sync_async()
        finally:
            await runtime.terminate()

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_raw_sync_marker_not_in_next_result(self, source_folder, runtime_kwargs):
        runtime = await launch(source_folder, runtime_kwargs)
        try:
            runtime.sync()
            assert await runtime.evaluate_async("1+1") == "ans = 2"

            values = await asyncio.gather(
                runtime.evaluate_async("2+2"),
                runtime.evaluate_async("3+3"),
            )
            assert values == ["ans = 4", "ans = 6"]
        finally:
            await runtime.terminate()


# =============================================================================
# Program execution and events
# =============================================================================


class TestExecution:
    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_stop_on_entry_event(self, source_folder, runtime_kwargs):
        runtime = await launch(source_folder, runtime_kwargs)
        try:
            stops: list[str] = []

            def on_stop(line: str) -> bool:
                if line.startswith("stopped"):
                    stops.append(line)
                    return True
                return False

            runtime.add_event_handler(on_stop)

            runtime.start(str(source_folder / "main.m"), stop_on_entry=True)
            await runtime.wait_sync_async()
            # stderr may trail stdout by a little
            for _ in range(50):
                if stops:
                    break
                await asyncio.sleep(0.02)

            assert stops and stops[0].startswith("stopped in main")
        finally:
            await runtime.terminate()

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_program_output_reaches_diagnostics(self, source_folder, runtime_kwargs, caplog):
        runtime = await launch(source_folder, runtime_kwargs)
        try:
            with caplog.at_level(logging.DEBUG, logger="octave_debug_mcp"):
                runtime.start(str(source_folder / "main.m"))
                await runtime.wait_sync_async()

            assert "hello from main" in caplog.text
            assert await runtime.evaluate_async("z") == "z = 42"
        finally:
            await runtime.terminate()

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_input_handler_sees_raw_lines(self, source_folder, runtime_kwargs):
        runtime = await launch(source_folder, runtime_kwargs)
        try:
            seen: list[str] = []
            done = asyncio.Event()

            def predicate(line: str) -> bool:
                seen.append(line)
                if "raw-end" in line:
                    done.set()
                    return True
                return False

            runtime.add_input_handler(predicate)
            runtime.send("disp('raw-begin')")
            runtime.send("disp('raw-end')")
            await done.wait()

            assert any("raw-begin" in line for line in seen)
        finally:
            await runtime.terminate()

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_log_flag(self, source_folder, runtime_kwargs):
        runtime = Runtime(sys.executable, source_folder, log=True, **runtime_kwargs)
        assert runtime.get_log() is True

        runtime.set_log(False)
        assert runtime.log is False


# =============================================================================
# Termination
# =============================================================================


class TestTermination:
    @pytest.mark.asyncio
    async def test_launch_failure(self, source_folder):
        with pytest.raises(LaunchFailure):
            await Runtime.launch("/nonexistent/octave-cli", source_folder)

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_exit_abandons_pending(self, source_folder, runtime_kwargs):
        runtime = await launch(source_folder, runtime_kwargs)
        fired: list[str] = []
        exits: list[int | None] = []
        runtime.add_exit_listener(exits.append)

        runtime.send("crash(3)")
        runtime.evaluate("1+1", fired.append)
        await runtime.wait_closed()

        assert fired == []
        assert exits == [3]
        assert runtime.pending_handlers == 0
        assert runtime.state is SessionState.EXITED

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_awaitable_fails_on_exit(self, source_folder, runtime_kwargs):
        runtime = await launch(source_folder, runtime_kwargs)
        runtime.send("crash(5)")

        with pytest.raises(UnexpectedExit) as exc_info:
            await runtime.evaluate_async("1+1")

        assert exc_info.value.returncode == 5

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_requests_after_exit_raise(self, source_folder, runtime_kwargs):
        runtime = await launch(source_folder, runtime_kwargs)
        runtime.disconnect()
        await runtime.wait_closed()

        with pytest.raises(SessionClosedError):
            runtime.evaluate("1+1", lambda v: None)
        with pytest.raises(SessionClosedError):
            runtime.send("disp('late')")

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_independent_runtimes(self, source_folder, runtime_kwargs):
        first = await launch(source_folder, runtime_kwargs)
        second = await launch(source_folder, runtime_kwargs)
        try:
            await first.evaluate_async("w = 1;")
            assert await second.evaluate_async("w") == ""
            assert second.sync_protocol.last_token == 1
        finally:
            await first.terminate()
            await second.terminate()
