"""Expression evaluation for watch and console requests.

A watch/hover expression that names a function is answered with the
function's descriptor instead of being executed, since calling it could
have side effects. Anything else is evaluated and its printed output
returned. Console input is always executed as typed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from .runtime import Runtime, UnexpectedExit

__all__ = [
    "EvaluationState",
    "ExpressionEvaluation",
    "evaluate_expression",
    "evaluate_expression_async",
]

logger = logging.getLogger(__name__)

ResultCallback = Callable[[str | None], None]


class EvaluationState(str, Enum):
    PENDING = "pending"
    CHECKING_SYMBOL = "checking_symbol"
    EVALUATING = "evaluating"
    DONE = "done"


class ExpressionEvaluation:
    """One expression request moving through its states.

    PENDING -> CHECKING_SYMBOL -> (EVALUATING ->) DONE for watch requests,
    PENDING -> EVALUATING -> DONE for console requests. The callback fires
    exactly once, on entering DONE.

    Attributes:
        expression: Expression text as received
        is_console: Console input carries a one-character prefix that is
            dropped before execution
    """

    def __init__(
        self,
        runtime: Runtime,
        expression: str,
        is_console: bool,
        callback: ResultCallback,
    ) -> None:
        self.runtime = runtime
        self.expression = expression
        self.is_console = is_console
        self.callback = callback
        self.state = EvaluationState.PENDING
        self.result: str | None = None

    def begin(self) -> None:
        if self.state is not EvaluationState.PENDING:
            raise RuntimeError(f"Evaluation already started (state={self.state.value})")

        if self.is_console:
            self._evaluate(self.expression[1:])
        else:
            self.state = EvaluationState.CHECKING_SYMBOL
            self.runtime.is_function(self.expression, self._on_symbol)

    def _on_symbol(self, descriptor: str | None) -> None:
        if descriptor is None:
            self._evaluate(self.expression)
        else:
            self._finish(descriptor)

    def _evaluate(self, command: str) -> None:
        self.state = EvaluationState.EVALUATING
        self.runtime.evaluate(command, self._finish)

    def _finish(self, result: str | None) -> None:
        if self.state is EvaluationState.DONE:
            logger.warning(f"Ignoring second result for {self.expression!r}")
            return
        self.state = EvaluationState.DONE
        self.result = result
        self.callback(result)


def evaluate_expression(
    expression: str,
    runtime: Runtime,
    is_console: bool,
    callback: ResultCallback,
) -> ExpressionEvaluation:
    """Start evaluating ``expression`` and return the running evaluation."""
    evaluation = ExpressionEvaluation(runtime, expression, is_console, callback)
    evaluation.begin()
    return evaluation


async def evaluate_expression_async(
    expression: str,
    runtime: Runtime,
    is_console: bool = False,
) -> str | None:
    """Coroutine form of :func:`evaluate_expression`.

    Raises:
        UnexpectedExit: If the REPL ends before the evaluation is done
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[str | None] = loop.create_future()

    def done(value: str | None) -> None:
        if not future.done():
            future.set_result(value)

    def closed(_payload: object) -> None:
        if not future.done():
            future.set_exception(UnexpectedExit(runtime.name, runtime.returncode))

    evaluate_expression(expression, runtime, is_console, done)
    runtime.add_exit_listener(closed)
    runtime.add_error_listener(closed)
    try:
        return await future
    finally:
        runtime.remove_exit_listener(closed)
        runtime.remove_error_listener(closed)
