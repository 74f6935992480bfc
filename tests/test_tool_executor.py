"""
Sanity tests for the tool dispatcher.

Run with:
$ pytest -q
"""

import asyncio
import json
from typing import (
    Any,
    Dict,
    List,
)

import pytest
from fakes import call

from agentkit.agent.approval import ApprovalGate
from agentkit.agent.tool_executor import (
    ToolExecutionError,
    ToolExecutor,
    execute_tool,
)
from agentkit.core.schema import (
    AgentStatus,
    ApprovalRequest,
    ToolCallEvent,
)
from agentkit.tools import (
    ToolRegistry,
    object_schema,
)
from agentkit.tools.math_tools import register_math_tools


def _registry() -> ToolRegistry:
    registry = register_math_tools(ToolRegistry())

    # Stub tools for testing purposes.
    @registry.register("boom", "Always fails")
    def _boom(args: Dict[str, Any]) -> None:
        raise RuntimeError("kaboom")

    @registry.register("echo", "Echo the arguments back", object_schema({}, required=[]))
    async def _echo(args: Dict[str, Any]) -> Dict[str, Any]:
        return args

    @registry.register("write", "Pretend to write a file")
    def _write(args: Dict[str, Any]) -> str:
        return "written"

    return registry


# ---------------------------------------------------------------------------
# execute_tool helper
# ---------------------------------------------------------------------------
def test_execute_tool_success() -> None:
    """Executor should return the correct value when the tool is valid."""

    assert execute_tool(_registry(), "add", {"numbers": [2, 3]}) == 5


def test_execute_tool_missing() -> None:
    """Executor should raise *ToolExecutionError* for an unknown tool."""

    with pytest.raises(ToolExecutionError, match="not_a_tool"):
        execute_tool(_registry(), "not_a_tool", {})


def test_execute_tool_bad_args() -> None:
    """Executor should raise *ToolExecutionError* for wrong arguments."""

    with pytest.raises(ToolExecutionError, match="Invalid arguments"):
        execute_tool(_registry(), "add", {"numbers": [2]})


def test_execute_tool_rejects_async_handler() -> None:
    """Coroutine handlers cannot be run by the synchronous helper."""

    with pytest.raises(ToolExecutionError, match="asynchronous"):
        execute_tool(_registry(), "echo", {})


# ---------------------------------------------------------------------------
# ToolExecutor
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_execute_wraps_result() -> None:
    """A successful sync handler result is returned as {"result": value}."""

    executor = ToolExecutor(_registry())
    content = await executor.execute(call("c1", "multiply", {"numbers": [6, 7]}))
    assert json.loads(content) == {"result": 42}


@pytest.mark.asyncio
async def test_execute_unknown_tool() -> None:
    executor = ToolExecutor(_registry())
    content = await executor.execute(call("c1", "nope"))
    assert json.loads(content) == {"error": "Unknown tool: nope"}


@pytest.mark.asyncio
async def test_empty_arguments_mean_empty_object() -> None:
    executor = ToolExecutor(_registry())
    content = await executor.execute(call("c1", "echo", ""))
    assert json.loads(content) == {"result": {}}


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["{not json", "[1, 2]", "42"])
async def test_malformed_or_non_object_arguments(raw: str) -> None:
    """Invalid JSON and non-object JSON both become a per-call error."""

    executor = ToolExecutor(_registry())
    content = json.loads(await executor.execute(call("c1", "echo", raw)))
    assert "Invalid arguments for tool 'echo'" in content["error"]


@pytest.mark.asyncio
@pytest.mark.parametrize("name, raw", [("nope", "{}"), ("echo", "{not json")])
async def test_rejected_calls_still_emit_lifecycle_events(name: str, raw: str) -> None:
    """Calls that never reach a handler are still visible to the host."""

    events: List[ToolCallEvent] = []
    executor = ToolExecutor(_registry(), on_event=events.append)
    content = await executor.execute(call("c1", name, raw))

    assert [e.status for e in events] == ["started", "completed"]
    assert all(e.tool_call_id == "c1" and e.name == name for e in events)
    assert events[1].result == content
    assert "error" in json.loads(content)


@pytest.mark.asyncio
async def test_handler_exception_becomes_error() -> None:
    executor = ToolExecutor(_registry())
    content = await executor.execute(call("c1", "boom"))
    assert json.loads(content) == {"error": "kaboom"}


@pytest.mark.asyncio
async def test_lifecycle_events() -> None:
    """started precedes completed, which carries the duration and result text."""

    events: List[ToolCallEvent] = []
    statuses: List[AgentStatus] = []
    executor = ToolExecutor(_registry(), on_event=events.append, on_status=statuses.append)

    content = await executor.execute(call("c1", "add", {"numbers": [1, 2]}))

    assert [e.status for e in events] == ["started", "completed"]
    assert events[0].args == {"numbers": [1, 2]}
    assert events[1].result == content
    assert events[1].duration is not None and events[1].duration >= 0
    assert [s.phase for s in statuses] == ["tool"]


@pytest.mark.asyncio
async def test_denied_call_is_not_executed() -> None:
    """A denial yields the denial error and a 'denied' event, without running the handler."""

    async def deny(request: ApprovalRequest) -> str:
        return "deny_once"

    events: List[ToolCallEvent] = []
    statuses: List[AgentStatus] = []
    executor = ToolExecutor(
        _registry(), gate=ApprovalGate(deny), on_event=events.append, on_status=statuses.append
    )

    content = await executor.execute(call("c1", "write", {}))

    assert json.loads(content) == {"error": "Tool 'write' was denied by the user"}
    assert [e.status for e in events] == ["denied"]
    assert [s.phase for s in statuses] == ["approval"]


@pytest.mark.asyncio
async def test_failing_approval_source_denies() -> None:
    async def broken(request: ApprovalRequest) -> str:
        raise RuntimeError("no terminal")

    executor = ToolExecutor(_registry(), gate=ApprovalGate(broken))
    content = await executor.execute(call("c1", "write", {}))
    assert "denied" in json.loads(content)["error"]


@pytest.mark.asyncio
async def test_execute_all_runs_concurrently_and_keeps_order() -> None:
    """The first call can only finish once the second has started, and results keep call order."""

    registry = ToolRegistry()
    second_started = asyncio.Event()

    @registry.register("first", "Waits for the second call")
    async def _first(args: Dict[str, Any]) -> str:
        await asyncio.wait_for(second_started.wait(), timeout=1.0)
        return "first"

    @registry.register("second", "Signals the first call")
    async def _second(args: Dict[str, Any]) -> str:
        second_started.set()
        return "second"

    executor = ToolExecutor(registry)
    results = await executor.execute_all([call("a", "first"), call("b", "second")])

    assert [r.tool_call_id for r in results] == ["a", "b"]
    assert [json.loads(r.content)["result"] for r in results] == ["first", "second"]
