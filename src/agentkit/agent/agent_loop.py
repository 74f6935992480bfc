"""
Main orchestration loop for agentkit.

One :meth:`Agent.run` is one conversation turn: the model is asked for the next step, the tool calls
it requests are executed (concurrently, behind the approval gate), the results are fed back, and
this repeats until the model answers or the iteration budget runs out.
"""

import json
import logging
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Literal,
    Optional,
    Sequence,
)

from pydantic import (
    BaseModel,
    Field,
)

from agentkit.agent.approval import (
    SAFE_TOOLS,
    ApprovalGate,
    ApprovalSource,
)
from agentkit.agent.context_budget import ContextBudget
from agentkit.agent.heuristics import (
    UnexecutedWorkPredicate,
    looks_like_unexecuted_work,
)
from agentkit.agent.tool_executor import ToolExecutor
from agentkit.common import call_hook
from agentkit.config import settings
from agentkit.core.cancel import (
    AbortedError,
    CancelSignal,
)
from agentkit.core.schema import (
    AgentResult,
    AgentStatus,
    AssistantMessage,
    Message,
    RunStatus,
    SystemMessage,
    TokenUsage,
    ToolCall,
    ToolCallEvent,
    UserMessage,
)
from agentkit.providers import (
    ProviderClient,
    ProviderError,
    get_context_window,
)
from agentkit.providers.base import ToolChoice
from agentkit.tools import (
    ToolEntry,
    ToolRegistry,
    ToolSchema,
    object_schema,
)

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """You are a coding agent working inside a local project.

Use tools proactively before asking clarifying questions.
- First inspect the project structure and identify the correct files and paths.
- If a path is ambiguous, discover it with available tools instead of guessing.
- Read relevant files before editing and apply minimal targeted changes.
- Only ask the user a question after tool-based investigation if a real blocker remains.

Always verify assumptions about the project using tools."""

CONTINUE_PROMPT = "Your previous response was cut off. Continue exactly where you left off."
NUDGE_PROMPT = (
    "You described work without doing it. Do not describe the changes or paste code: "
    "use the available tools to carry them out now."
)
COMPLETION_REMINDER = (
    "Do not reply with plain text. Keep working with your tools, and when the task is done call "
    "the attempt_completion tool with your final result."
)
MAX_ITERATIONS_ANSWER = "Error: Max iterations reached"
ABORTED_ANSWER = "Request aborted by user"
NO_CHOICES_ANSWER = "Error: Provider returned no choices"
EMPTY_ANSWER = "No response"

COMPLETION_TOOL_NAME = "attempt_completion"

AGENT_SAFE_TOOLS = SAFE_TOOLS | {COMPLETION_TOOL_NAME}
"""Safe set for gates handed to an :class:`Agent`; hosts building their own gate should use it."""

COMPLETION_TOOL = ToolEntry(
    ToolSchema(
        name=COMPLETION_TOOL_NAME,
        description=(
            "Call this when the task is complete. The result is returned to whoever assigned the "
            "task, so make it self-contained."
        ),
        parameters=object_schema(
            {"result": {"type": "string", "description": "The final result of the task"}}
        ),
    ),
    lambda args: args.get("result", ""),
)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
class LoopConfig(BaseModel):
    """Per-agent knobs for :class:`Agent`."""

    system_prompt: str = Field(
        default_factory=lambda: settings.SYSTEM_PROMPT or DEFAULT_SYSTEM_PROMPT
    )
    max_iterations: int = Field(default_factory=lambda: settings.MAX_ITERATIONS, ge=1)
    max_nudges: int = Field(2, ge=0, description="Corrective nudges allowed per run")
    termination: Literal["answer", "completion_tool"] = Field(
        "answer",
        description="'answer': a plain-text reply ends the run; "
        "'completion_tool': only an attempt_completion call does",
    )
    context_window: Optional[int] = Field(
        None, description="Override for the model's context window (tokens)"
    )
    label: str = Field("agent", description="Name used in log lines")


@dataclass
class AgentHooks:
    """Optional observers; exceptions they raise are logged and ignored."""

    on_tool_event: Optional[Callable[[ToolCallEvent], None]] = None
    on_text_chunk: Optional[Callable[[str], None]] = None
    on_retry: Optional[Callable[[int, int, str], None]] = None
    on_status: Optional[Callable[[AgentStatus], None]] = None


@dataclass
class _RunState:
    messages: List[Message]
    executor: ToolExecutor
    budget: ContextBudget
    cancel: CancelSignal
    usage: TokenUsage = field(default_factory=TokenUsage)
    iterations: int = 0
    nudges: int = 0
    partial: List[str] = field(default_factory=list)  # text of length-truncated replies


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------
class Agent:
    """
    Drives one model through tool use until it produces an answer.

    Parameters
    ----------
    provider:
        Backend client used for every completion.
    registry:
        Tools the model may call.  It is only read, never modified.
    config:
        Loop settings; defaults come from :data:`agentkit.config.settings`.
    hooks:
        Observers for streaming text, tool lifecycle, retries and status changes.
    approval_source:
        Asked for gated tools.  Ignored when *gate* is given.
    gate:
        Approval gate shared across runs (e.g. one per host session).  By default every run gets
        a fresh gate, so "always" decisions last for that run only.
    budget:
        Context budget shared across runs.  By default every run gets a fresh one.
    unexecuted_work:
        Predicate deciding whether a plain-text reply deserves a corrective nudge.
    """

    def __init__(
        self,
        provider: ProviderClient,
        registry: ToolRegistry,
        config: Optional[LoopConfig] = None,
        *,
        hooks: Optional[AgentHooks] = None,
        approval_source: Optional[ApprovalSource] = None,
        gate: Optional[ApprovalGate] = None,
        budget: Optional[ContextBudget] = None,
        unexecuted_work: UnexecutedWorkPredicate = looks_like_unexecuted_work,
    ) -> None:
        self.provider = provider
        self.registry = registry
        self.config = config or LoopConfig()
        self.hooks = hooks or AgentHooks()
        self.approval_source = approval_source
        self.gate = gate
        self.budget = budget
        self.unexecuted_work = unexecuted_work

    @property
    def completion_mode(self) -> bool:
        return self.config.termination == "completion_tool"

    @property
    def context_window(self) -> int:
        return (
            self.config.context_window
            or settings.CONTEXT_WINDOW
            or get_context_window(self.provider.model)
        )

    def _tools(self) -> ToolRegistry:
        if not self.completion_mode or COMPLETION_TOOL_NAME in self.registry:
            return self.registry
        tools = self.registry.copy()
        tools.add(COMPLETION_TOOL)
        return tools

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def run(
        self,
        prompt: str,
        history: Optional[Sequence[Message]] = None,
        *,
        cancel: Optional[CancelSignal] = None,
    ) -> AgentResult:
        """
        Run the loop for *prompt* on top of *history*.

        Never raises for provider failures, tool failures or cancellation; the outcome is reported
        through :attr:`AgentResult.status`.
        """
        tools = self._tools()
        state = _RunState(
            messages=[
                SystemMessage(content=self.config.system_prompt),
                *(history or []),
                UserMessage(content=prompt),
            ],
            executor=ToolExecutor(
                tools,
                gate=self.gate or ApprovalGate(self.approval_source, safe_tools=AGENT_SAFE_TOOLS),
                on_event=self.hooks.on_tool_event,
                on_status=self.hooks.on_status,
            ),
            budget=self.budget or ContextBudget(self.context_window),
            cancel=cancel or CancelSignal(),
        )
        logger.info(
            "[%s] Run started (%d tools, %d history messages)",
            self.config.label,
            len(tools),
            len(history or []),
        )

        try:
            answer, status = await self._loop(state, tools)
        except AbortedError:
            logger.info("[%s] Run aborted after %d iterations", self.config.label, state.iterations)
            answer, status = ABORTED_ANSWER, "aborted"
        except ProviderError as exc:
            logger.error("[%s] Provider failure: %s", self.config.label, exc)
            answer, status = f"Error: {exc}", "error"
        finally:
            call_hook(self.hooks.on_status, AgentStatus(phase="idle"))

        logger.info(
            "[%s] Run finished: status=%s iterations=%d tokens=%d",
            self.config.label,
            status,
            state.iterations,
            state.usage.total_tokens,
        )
        return AgentResult(
            answer=answer,
            iterations=state.iterations,
            usage=state.usage,
            status=status,
            messages=state.messages[1:],
        )

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    async def _loop(self, state: _RunState, tools: ToolRegistry) -> tuple[str, RunStatus]:
        schemas = tools.schemas()
        tool_choice: ToolChoice = "required" if self.completion_mode else "auto"
        on_text_chunk = self._on_text_chunk if self.hooks.on_text_chunk is not None else None

        while state.iterations < self.config.max_iterations:
            state.cancel.raise_if_cancelled()
            state.iterations += 1

            if state.budget.should_compact(state.messages):
                state.messages = state.budget.compact(state.messages)

            call_hook(self.hooks.on_status, AgentStatus(phase="thinking"))
            response = await self.provider.complete(
                state.messages,
                schemas,
                on_text_chunk,
                cancel=state.cancel,
                on_retry=self._on_retry,
                tool_choice=tool_choice,
            )
            if response.usage is not None:
                state.usage = state.usage.add(response.usage)
                state.budget.record_usage(response.usage)

            if not response.choices:
                logger.error("[%s] Provider returned no choices", self.config.label)
                return NO_CHOICES_ANSWER, "error"

            choice = response.choices[0]
            message = choice.message

            if choice.finish_reason == "length":
                # Truncated tool calls are dropped: they would have no results to pair with.
                text = message.content or ""
                logger.info("[%s] Reply truncated, asking the model to continue", self.config.label)
                if text:
                    state.partial.append(text)
                    state.messages.append(AssistantMessage(content=text))
                state.messages.append(UserMessage(content=CONTINUE_PROMPT))
                continue

            if message.tool_calls and choice.finish_reason == "tool_calls":
                logger.info(
                    "[%s] Model requested %d tool calls: %s",
                    self.config.label,
                    len(message.tool_calls),
                    [call.name for call in message.tool_calls],
                )
                state.messages.append(message)
                state.messages.extend(await state.executor.execute_all(message.tool_calls))
                completion = self._completion_result(message.tool_calls)
                if completion is not None:
                    return completion, "completed"
                continue

            text = "".join(state.partial) + (message.content or "")
            state.partial.clear()
            state.messages.append(AssistantMessage(content=message.content))

            if self.completion_mode:
                state.messages.append(UserMessage(content=COMPLETION_REMINDER))
                continue

            if schemas and state.nudges < self.config.max_nudges and self.unexecuted_work(text):
                state.nudges += 1
                logger.info(
                    "[%s] Reply describes unexecuted work, nudging (%d/%d)",
                    self.config.label,
                    state.nudges,
                    self.config.max_nudges,
                )
                state.messages.append(UserMessage(content=NUDGE_PROMPT))
                continue

            return text or EMPTY_ANSWER, "completed"

        logger.warning(
            "[%s] Max iterations (%d) reached", self.config.label, self.config.max_iterations
        )
        return MAX_ITERATIONS_ANSWER, "max_iterations"

    def _completion_result(self, calls: Sequence[ToolCall]) -> Optional[str]:
        """The ``result`` of the first well-formed attempt_completion call, in completion mode."""
        if not self.completion_mode:
            return None
        for call in calls:
            if call.name != COMPLETION_TOOL_NAME:
                continue
            try:
                args: Dict[str, Any] = json.loads(call.arguments or "{}")
            except json.JSONDecodeError:
                continue
            if isinstance(args, dict):
                return str(args.get("result", ""))
        return None

    def _on_text_chunk(self, chunk: str) -> None:
        call_hook(self.hooks.on_text_chunk, chunk)

    def _on_retry(self, attempt: int, max_retries: int, error: str) -> None:
        call_hook(
            self.hooks.on_status,
            AgentStatus(phase="retrying", attempt=attempt, max_retries=max_retries),
        )
        call_hook(self.hooks.on_retry, attempt, max_retries, error)
