"""Scripted stand-ins shared by the agent, delegation and host tests."""

import json
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Union,
)

from agentkit.core.cancel import CancelSignal
from agentkit.core.schema import (
    AssistantMessage,
    ChatResponse,
    Choice,
    FinishReason,
    Message,
    TokenUsage,
    ToolCall,
)

Scripted = Union[ChatResponse, Exception, Callable[[Sequence[Message]], ChatResponse]]


def text_response(
    text: Optional[str],
    finish_reason: FinishReason = "stop",
    prompt_tokens: int = 10,
    completion_tokens: int = 5,
) -> ChatResponse:
    return ChatResponse(
        id="resp",
        model="scripted-model",
        choices=[Choice(message=AssistantMessage(content=text), finish_reason=finish_reason)],
        usage=TokenUsage.from_counts(prompt_tokens, completion_tokens),
    )


def tool_response(*calls: ToolCall, text: Optional[str] = None) -> ChatResponse:
    return ChatResponse(
        id="resp",
        model="scripted-model",
        choices=[
            Choice(
                message=AssistantMessage(content=text, tool_calls=list(calls)),
                finish_reason="tool_calls",
            )
        ],
        usage=TokenUsage.from_counts(10, 5),
    )


def call(call_id: str, name: str, args: Any = None) -> ToolCall:
    """Tool call with *args* JSON-encoded; pass a str to send raw (possibly broken) arguments."""
    arguments = args if isinstance(args, str) else json.dumps(args or {})
    return ToolCall(id=call_id, name=name, arguments=arguments)


class ScriptedProvider:
    """Replays a fixed list of responses (or raises scripted exceptions) in order."""

    model = "scripted-model"

    def __init__(self, script: Sequence[Scripted]) -> None:
        self.script: List[Scripted] = list(script)
        self.requests: List[Dict[str, Any]] = []
        self.closed = False

    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[Any],
        on_text_chunk: Optional[Callable[[str], None]] = None,
        *,
        cancel: Optional[CancelSignal] = None,
        on_retry: Optional[Callable[[int, int, str], None]] = None,
        tool_choice: str = "auto",
    ) -> ChatResponse:
        self.requests.append(
            {
                "messages": list(messages),
                "tools": [t["name"] for t in tools],
                "tool_choice": tool_choice,
            }
        )
        if cancel is not None:
            cancel.raise_if_cancelled()
        if not self.script:
            raise AssertionError("ScriptedProvider ran out of responses")

        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            item = item(messages)
        if on_text_chunk is not None and item.choices and item.choices[0].message.content:
            on_text_chunk(item.choices[0].message.content)
        return item

    async def aclose(self) -> None:
        self.closed = True


def tool_results(messages: Sequence[Message]) -> Dict[str, Any]:
    """Map tool_call_id -> decoded tool result payload."""
    return {m.tool_call_id: json.loads(m.content) for m in messages if m.role == "tool"}
