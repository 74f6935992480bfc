"""
Sub-agent delegation.

The ``task`` tool lets a model hand an independent piece of work to a fresh :class:`Agent` that
shares the provider client but owns its conversation, its tool subset and its approval caches.
Whatever happens inside the sub-agent is reported back as the tool result; it never breaks the
parent's loop.
"""

import itertools
import logging
import time
from typing import (
    Any,
    Callable,
    Dict,
    Optional,
)

from agentkit.agent.agent_loop import (
    Agent,
    AgentHooks,
    LoopConfig,
)
from agentkit.agent.approval import ApprovalSource
from agentkit.core.cancel import CancelSignal
from agentkit.providers import ProviderClient
from agentkit.tools import (
    ToolEntry,
    ToolRegistry,
    ToolSchema,
    object_schema,
)

logger = logging.getLogger(__name__)

TASK_TOOL_NAME = "task"

DEFAULT_SUBAGENT_SYSTEM_PROMPT = (
    "You are a focused sub-agent. Complete the task you are given thoroughly using your tools. "
    "When you are done, call the attempt_completion tool with your result."
)

TASK_TOOL_SCHEMA = ToolSchema(
    name=TASK_TOOL_NAME,
    description=(
        "Spawn a sub-agent to handle a task autonomously. The sub-agent runs its own tool-use loop "
        "and returns the result. Use this to delegate independent subtasks that can run in "
        "parallel or to isolate complex work. You can specify which tools the sub-agent has "
        "access to, and optionally provide a custom system prompt."
    ),
    parameters=object_schema(
        {
            "prompt": {
                "type": "string",
                "description": "The task instruction for the sub-agent. Be specific about what it "
                "should do and what information it should return.",
            },
            "description": {
                "type": ["string", "null"],
                "description": "A short label describing the task. Null if not needed.",
            },
            "tools": {
                "type": ["array", "null"],
                "items": {"type": "string"},
                "description": "Tool names the sub-agent may use. Null to give it every available "
                "tool, including this one.",
            },
            "system_prompt": {
                "type": ["string", "null"],
                "description": "Custom system prompt for the sub-agent. Null to use the default.",
            },
        }
    ),
)


def create_task_tool(
    provider: ProviderClient,
    get_registry: Callable[[], ToolRegistry],
    *,
    config: Optional[LoopConfig] = None,
    approval_source: Optional[ApprovalSource] = None,
    cancel: Optional[CancelSignal] = None,
    hooks: Optional[AgentHooks] = None,
) -> ToolEntry:
    """
    Build the ``task`` tool.

    Parameters
    ----------
    provider:
        Shared with every sub-agent.
    get_registry:
        Returns the full registry at call time, so a registry that contains the task tool itself
        can be offered to sub-agents.
    config:
        Template for sub-agent loop settings.  Sub-agents default to the ``completion_tool``
        termination discipline.
    approval_source:
        Asked for gated tools inside sub-agents.  Each sub-agent has its own gate.
    cancel:
        Parent cancellation signal, threaded into every sub-agent run.
    hooks:
        Observers for sub-agent activity.
    """
    base_config = config or LoopConfig(termination="completion_tool")
    counter = itertools.count(1)

    async def run_task(args: Dict[str, Any]) -> Dict[str, Any]:
        prompt = args.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValueError("'prompt' must be a non-empty string")
        description = args.get("description")
        requested = args.get("tools")
        label = description or f"subagent-{next(counter)}"

        full = get_registry()
        if requested:
            registry, missing = full.subset(requested)
            if missing:
                logger.warning("[%s] Requested tools not found: %s", label, ", ".join(missing))
            logger.info("[%s] Tools: %s", label, registry.names())
        else:
            registry = full
            logger.info("[%s] Tools: ALL (%d tools)", label, len(full))

        sub_config = base_config.model_copy(
            update={
                "system_prompt": args.get("system_prompt") or DEFAULT_SUBAGENT_SYSTEM_PROMPT,
                "label": label,
            }
        )
        agent = Agent(
            provider, registry, sub_config, hooks=hooks, approval_source=approval_source
        )

        started = time.perf_counter()
        try:
            result = await agent.run(prompt, cancel=cancel)
            answer, iterations = result.answer, result.iterations
            if result.status != "completed":
                logger.warning("[%s] Sub-agent ended with status %s", label, result.status)
        except Exception as exc:  # noqa: BLE001
            logger.exception("[%s] Sub-agent failed", label)
            answer, iterations = f"Error: {exc}", 0
        elapsed = round(time.perf_counter() - started, 1)

        return {
            "result": answer,
            "metadata": {
                "description": description,
                "iterations": iterations,
                "elapsed_seconds": elapsed,
            },
        }

    return ToolEntry(TASK_TOOL_SCHEMA, run_task)


def with_task_tool(registry: ToolRegistry, provider: ProviderClient, **kwargs: Any) -> ToolRegistry:
    """Return a copy of *registry* extended with a ``task`` tool that can see the whole copy."""
    extended = registry.copy()
    extended.add(create_task_tool(provider, lambda: extended, **kwargs))
    return extended
