"""
Schema definitions for provider <-> agent loop <-> tool messages.

These data models are the contract between the provider adapters, the orchestration loop, the tool
dispatcher and the hosts.  We keep them separate from runtime logic so they can be imported anywhere
without side-effects.
"""

from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    Field,
    TypeAdapter,
)

FinishReason = Literal["stop", "tool_calls", "length", "content_filter"]
ApprovalDecision = Literal["allow_once", "allow_always", "deny_once", "deny_always"]
RunStatus = Literal["completed", "max_iterations", "error", "aborted"]


# ---------------------------------------------------------------------------
# Conversation messages
# ---------------------------------------------------------------------------
class ToolCall(BaseModel):
    """A call that the model wants the agent to execute."""

    id: str = Field(..., description="Provider-assigned call id")
    name: str = Field(..., description="Registered tool name")
    arguments: str = Field("", description="Raw JSON-encoded arguments, parsed by the dispatcher")


class SystemMessage(BaseModel):
    """Instruction text that frames the conversation."""

    role: Literal["system"] = "system"
    content: str


class UserMessage(BaseModel):
    """Text typed by the user (or injected by the loop on the user's behalf)."""

    role: Literal["user"] = "user"
    content: str


class AssistantMessage(BaseModel):
    """Model output: optional text plus the ordered tool calls it requested."""

    role: Literal["assistant"] = "assistant"
    content: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)


class ToolResultMessage(BaseModel):
    """The outcome of one tool call, fed back to the model."""

    role: Literal["tool"] = "tool"
    tool_call_id: str = Field(..., description="Id of the originating ToolCall")
    content: str


Message = Annotated[
    Union[SystemMessage, UserMessage, AssistantMessage, ToolResultMessage],
    Field(discriminator="role"),
]

MessageList = TypeAdapter(List[Message])
"""Validates / dumps whole conversations (e.g. history received by the API)."""


# ---------------------------------------------------------------------------
# Provider responses
# ---------------------------------------------------------------------------
class TokenUsage(BaseModel):
    """Token counts, either for one completion or accumulated over a run."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    latest_prompt_tokens: int = Field(
        0, description="Context size of the most recent request (compared to the window)"
    )

    @classmethod
    def from_counts(cls, prompt_tokens: int, completion_tokens: int) -> "TokenUsage":
        """Usage of a single completion; its prompt size is also the latest context size."""
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            latest_prompt_tokens=prompt_tokens,
        )

    def add(self, other: "TokenUsage") -> "TokenUsage":
        """Accumulate *other* into a new value; the latest prompt size is replaced, not summed."""
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            latest_prompt_tokens=other.latest_prompt_tokens,
        )


class Choice(BaseModel):
    """One candidate completion."""

    message: AssistantMessage
    finish_reason: FinishReason = "stop"


class ChatResponse(BaseModel):
    """Backend-independent completion result produced by every provider adapter."""

    id: str = ""
    model: str = ""
    choices: List[Choice] = Field(default_factory=list)
    usage: Optional[TokenUsage] = None


# ---------------------------------------------------------------------------
# Approval, lifecycle events and results
# ---------------------------------------------------------------------------
class ApprovalRequest(BaseModel):
    """A gated tool invocation waiting for a decision."""

    tool_call_id: str
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)


class ToolCallEvent(BaseModel):
    """Lifecycle notification for one tool call (for UI / telemetry)."""

    status: Literal["started", "completed", "denied"]
    tool_call_id: str
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    duration: Optional[float] = Field(None, description="Seconds spent in the handler")
    result: Optional[str] = None


class AgentStatus(BaseModel):
    """Discrete phase of a running agent, for host-side spinners and status lines."""

    phase: Literal["thinking", "tool", "approval", "retrying", "idle"]
    name: Optional[str] = None
    attempt: Optional[int] = None
    max_retries: Optional[int] = None


class AgentResult(BaseModel):
    """What a single ``Agent.run`` hands back to its caller."""

    answer: str
    iterations: int = 0
    usage: TokenUsage = Field(default_factory=TokenUsage)
    status: RunStatus = "completed"
    messages: List[Message] = Field(
        default_factory=list, description="Conversation after the run, without the system prompt"
    )
