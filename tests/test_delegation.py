"""Tests for the ``task`` sub-agent tool."""

import logging
from typing import Any

import pytest
from fakes import (
    ScriptedProvider,
    call,
    text_response,
    tool_response,
    tool_results,
)

from agentkit.agent.agent_loop import (
    COMPLETION_TOOL_NAME,
    Agent,
    LoopConfig,
)
from agentkit.agent.delegation import (
    DEFAULT_SUBAGENT_SYSTEM_PROMPT,
    TASK_TOOL_NAME,
    with_task_tool,
)
from agentkit.providers import ProviderError
from agentkit.tools import ToolRegistry
from agentkit.tools.math_tools import register_math_tools


def _parent(provider: Any) -> Agent:
    registry = with_task_tool(register_math_tools(ToolRegistry()), provider)
    return Agent(provider, registry, LoopConfig(system_prompt="parent"))


@pytest.mark.asyncio
async def test_unknown_tool_names_are_skipped(caplog: pytest.LogCaptureFixture) -> None:
    """Unmatched names are warned about; the sub-agent runs with the valid subset."""

    provider = ScriptedProvider(
        [
            tool_response(
                call(
                    "t1",
                    TASK_TOOL_NAME,
                    {
                        "prompt": "add 40 and 2",
                        "description": "adder",
                        "tools": ["add", "does_not_exist"],
                        "system_prompt": None,
                    },
                )
            ),
            tool_response(call("s1", COMPLETION_TOOL_NAME, {"result": "42"})),
            text_response("The sub-agent says 42."),
        ]
    )

    with caplog.at_level(logging.WARNING, logger="agentkit.agent.delegation"):
        result = await _parent(provider).run("delegate")

    assert result.answer == "The sub-agent says 42."
    assert "does_not_exist" in caplog.text

    sub_request = provider.requests[1]
    assert sub_request["tools"] == ["add", COMPLETION_TOOL_NAME]
    assert sub_request["tool_choice"] == "required"
    assert sub_request["messages"][0].content == DEFAULT_SUBAGENT_SYSTEM_PROMPT

    payload = tool_results(result.messages)["t1"]["result"]
    assert payload["result"] == "42"
    assert payload["metadata"]["description"] == "adder"
    assert payload["metadata"]["iterations"] == 1
    assert payload["metadata"]["elapsed_seconds"] >= 0


@pytest.mark.asyncio
async def test_null_tools_give_full_registry_including_task() -> None:
    provider = ScriptedProvider(
        [
            tool_response(
                call(
                    "t1",
                    TASK_TOOL_NAME,
                    {"prompt": "p", "description": None, "tools": None, "system_prompt": "custom"},
                )
            ),
            tool_response(call("s1", COMPLETION_TOOL_NAME, {"result": "ok"})),
            text_response("done"),
        ]
    )
    await _parent(provider).run("delegate")

    sub_request = provider.requests[1]
    assert sub_request["tools"] == ["add", "multiply", TASK_TOOL_NAME, COMPLETION_TOOL_NAME]
    assert sub_request["messages"][0].content == "custom"


@pytest.mark.asyncio
async def test_sub_agent_failure_is_scoped() -> None:
    """A provider failure inside the sub-agent becomes its answer; the parent carries on."""

    provider = ScriptedProvider(
        [
            tool_response(
                call(
                    "t1",
                    TASK_TOOL_NAME,
                    {"prompt": "p", "description": None, "tools": None, "system_prompt": None},
                )
            ),
            ProviderError("upstream down"),
            text_response("handled"),
        ]
    )
    result = await _parent(provider).run("delegate")

    assert result.status == "completed"
    assert result.answer == "handled"
    payload = tool_results(result.messages)["t1"]["result"]
    assert payload["result"] == "Error: upstream down"


@pytest.mark.asyncio
async def test_missing_prompt_is_a_tool_error() -> None:
    provider = ScriptedProvider(
        [
            tool_response(call("t1", TASK_TOOL_NAME, {"prompt": ""})),
            text_response("ok"),
        ]
    )
    result = await _parent(provider).run("delegate")
    assert "prompt" in tool_results(result.messages)["t1"]["error"]
