"""
Tool execution for the orchestrator's dispatch phase.

``ToolExecutor`` resolves a ``ToolCall`` to its channel handler, runs it under
an optional timeout and always returns a ``ToolResult``: handler exceptions
and timeouts become ``ToolResult(success=False)`` so the model can observe the
failure and recover. The one exception that escapes is
``NoHandlerForChannelError``, which is a configuration error.

The ``on_tool_execute`` / ``on_tool_error`` observers are best-effort: each is
called inside its own failure boundary and cannot affect the turn.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from receptionist.errors import NoHandlerForChannelError, ToolNotFoundError
from receptionist.models import (
    ExecutionContext,
    ToolCall,
    ToolErrorEvent,
    ToolExecutionEvent,
    ToolResult,
)
from receptionist.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def notify(observer: Callable[[Any], None] | None, event: Any) -> None:
    """Invoke *observer* with *event*, logging and suppressing any exception."""
    if observer is None:
        return
    try:
        observer(event)
    except Exception as exc:
        logger.warning(
            "Observer %r raised %s: %s; ignoring",
            getattr(observer, "__name__", observer),
            type(exc).__name__,
            exc,
        )


class ToolExecutor:
    """Runs tool calls against a ``ToolRegistry``.

    Attributes:
        registry: Source of tools and handlers.
        timeout: Maximum seconds per handler call; ``None`` disables it.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        timeout: float | None = 15.0,
        on_tool_execute: Callable[[ToolExecutionEvent], None] | None = None,
        on_tool_error: Callable[[ToolErrorEvent], None] | None = None,
    ) -> None:
        self.registry = registry
        self.timeout = timeout
        self.on_tool_execute = on_tool_execute
        self.on_tool_error = on_tool_error

    async def execute(self, call: ToolCall, context: ExecutionContext) -> ToolResult:
        """Run one tool call and return its result.

        Raises:
            NoHandlerForChannelError: If the tool exists but cannot run on
                ``context.channel``.
        """
        try:
            handler = self.registry.resolve_handler(call.name, context.channel)
        except ToolNotFoundError as exc:
            logger.warning("Unknown tool requested: %r", call.name)
            self._report_error(call, context, exc)
            return ToolResult.failure(f"Unknown tool: {call.name!r}")
        except NoHandlerForChannelError:
            logger.error(
                "Tool %r has no handler for channel %s", call.name, context.channel.value
            )
            raise

        logger.debug("Dispatching tool: %s(%s)", call.name, call.parameters)
        t0 = time.monotonic()
        try:
            if self.timeout is not None:
                result = await asyncio.wait_for(
                    handler(call.parameters, context), timeout=self.timeout
                )
            else:
                result = await handler(call.parameters, context)
        except asyncio.TimeoutError as exc:
            logger.error("Tool %r timed out after %.1fs", call.name, self.timeout)
            self._report_error(call, context, exc)
            return ToolResult.failure(f"Tool {call.name!r} timed out")
        except Exception as exc:
            logger.error("Tool %r failed: %s", call.name, exc, exc_info=True)
            self._report_error(call, context, exc)
            return ToolResult.failure(str(exc) or type(exc).__name__)

        if not isinstance(result, ToolResult):
            logger.error(
                "Tool %r returned %s instead of ToolResult", call.name, type(result).__name__
            )
            error = TypeError(f"Tool {call.name!r} returned an invalid result")
            self._report_error(call, context, error)
            return ToolResult.failure(str(error))

        duration = time.monotonic() - t0
        logger.debug(
            "Tool %r finished in %.3fs (success=%s)", call.name, duration, result.success
        )
        notify(
            self.on_tool_execute,
            ToolExecutionEvent(
                tool_name=call.name,
                parameters=call.parameters,
                result=result,
                duration=duration,
                channel=context.channel,
            ),
        )
        return result

    def _report_error(
        self, call: ToolCall, context: ExecutionContext, error: BaseException
    ) -> None:
        notify(
            self.on_tool_error,
            ToolErrorEvent(
                tool_name=call.name,
                parameters=call.parameters,
                error=error,
                channel=context.channel,
            ),
        )
