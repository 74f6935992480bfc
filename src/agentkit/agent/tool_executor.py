"""Dispatches tool calls against a :class:`~agentkit.tools.ToolRegistry` and wraps errors."""

import asyncio
import inspect
import json
import logging
import time
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
)

from agentkit.agent.approval import ApprovalGate
from agentkit.common import call_hook
from agentkit.core.cancel import AbortedError
from agentkit.core.schema import (
    AgentStatus,
    ApprovalRequest,
    ToolCall,
    ToolCallEvent,
    ToolResultMessage,
)
from agentkit.tools import ToolRegistry

logger = logging.getLogger(__name__)

OnToolEvent = Callable[[ToolCallEvent], None]
OnStatus = Callable[[AgentStatus], None]


class ToolExecutionError(RuntimeError):
    """Raised when a requested tool cannot run or fails."""


def execute_tool(registry: ToolRegistry, name: str, args: Dict[str, Any] | None = None) -> Any:
    """
    Look up *name* in *registry* and invoke it synchronously with *args*.

    Parameters
    ----------
    registry:
        Where to look the tool up.
    name:
        The registered tool name.
    args:
        Argument object passed verbatim to the handler.  If *None*, an empty dict is assumed.

    Returns
    -------
    Any
        Whatever the handler returns.

    Raises
    ------
    ToolExecutionError
        If the tool is missing, is a coroutine function, or its invocation raises an exception.
    """

    if args is None:
        args = {}

    entry = registry.get(name)
    if entry is None:
        raise ToolExecutionError(f"Tool '{name}' is not registered.")
    if inspect.iscoroutinefunction(entry.handler):
        raise ToolExecutionError(f"Tool '{name}' is asynchronous; dispatch it with ToolExecutor.")

    try:
        logger.debug("Executing tool '%s' with args=%s", name, args)
        return entry.handler(args)
    except (TypeError, ValueError) as exc:
        logger.exception("Argument error while executing tool '%s'", name)
        raise ToolExecutionError(f"Invalid arguments for tool '{name}': {exc}") from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled error in tool '%s'", name)
        raise ToolExecutionError(f"Tool '{name}' raised an error: {exc}") from exc


def _error(message: str) -> str:
    return json.dumps({"error": message})


def _parse_arguments(raw: str) -> Dict[str, Any]:
    if not raw.strip():
        return {}
    args = json.loads(raw)
    if not isinstance(args, dict):
        raise ValueError(f"expected a JSON object, got {type(args).__name__}")
    return args


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------
class ToolExecutor:
    """
    Runs the tool calls of one model turn.

    Every call ends up as a JSON string: ``{"result": ...}`` on success, ``{"error": "..."}`` for
    unknown tools, bad arguments, denials and handler failures.  Nothing raised by a handler
    propagates.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        gate: Optional[ApprovalGate] = None,
        on_event: Optional[OnToolEvent] = None,
        on_status: Optional[OnStatus] = None,
    ) -> None:
        self.registry = registry
        self.gate = gate or ApprovalGate()
        self.on_event = on_event
        self.on_status = on_status

    async def execute(self, call: ToolCall) -> str:
        """Run one call and return its JSON-encoded outcome."""
        entry = self.registry.get(call.name)
        if entry is None:
            logger.warning("Model requested unknown tool '%s'", call.name)
            return self._reject(call, _error(f"Unknown tool: {call.name}"))

        try:
            args = _parse_arguments(call.arguments)
        except ValueError as exc:  # json.JSONDecodeError is a ValueError
            logger.warning("Invalid arguments for tool '%s': %s", call.name, exc)
            return self._reject(call, _error(f"Invalid arguments for tool '{call.name}': {exc}"))

        if self.gate.requires_approval(call.name) and self.gate.source is not None:
            call_hook(self.on_status, AgentStatus(phase="approval", name=call.name))
        try:
            decision = await self.gate.decide(
                ApprovalRequest(tool_call_id=call.id, name=call.name, args=args)
            )
        except AbortedError:
            raise
        except Exception:  # noqa: BLE001
            logger.exception("Approval source failed for tool '%s'; treating as denied", call.name)
            decision = "deny_once"
        if not self.gate.is_allowed(decision):
            logger.info("Tool '%s' denied (%s)", call.name, decision)
            call_hook(
                self.on_event,
                ToolCallEvent(status="denied", tool_call_id=call.id, name=call.name, args=args),
            )
            return _error(f"Tool '{call.name}' was denied by the user")

        call_hook(self.on_status, AgentStatus(phase="tool", name=call.name))
        call_hook(
            self.on_event,
            ToolCallEvent(status="started", tool_call_id=call.id, name=call.name, args=args),
        )

        started = time.perf_counter()
        try:
            logger.debug("Executing tool '%s' with args=%s", call.name, args)
            if inspect.iscoroutinefunction(entry.handler):
                value = await entry.handler(args)
            else:
                value = await asyncio.to_thread(entry.handler, args)
            content = json.dumps({"result": value}, default=str)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error in tool '%s'", call.name)
            content = _error(str(exc) or exc.__class__.__name__)
        duration = time.perf_counter() - started

        call_hook(
            self.on_event,
            ToolCallEvent(
                status="completed",
                tool_call_id=call.id,
                name=call.name,
                args=args,
                duration=duration,
                result=content,
            ),
        )
        return content

    def _reject(self, call: ToolCall, content: str) -> str:
        """Report a call that never reached its handler as started and completed with *content*."""
        call_hook(
            self.on_event,
            ToolCallEvent(status="started", tool_call_id=call.id, name=call.name),
        )
        call_hook(
            self.on_event,
            ToolCallEvent(
                status="completed",
                tool_call_id=call.id,
                name=call.name,
                duration=0.0,
                result=content,
            ),
        )
        return content

    async def execute_all(self, calls: Sequence[ToolCall]) -> List[ToolResultMessage]:
        """Run *calls* concurrently; the results come back in call order."""
        contents = await asyncio.gather(*(self.execute(call) for call in calls))
        return [
            ToolResultMessage(tool_call_id=call.id, content=content)
            for call, content in zip(calls, contents)
        ]
