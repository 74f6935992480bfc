"""Flat chat-array backend (OpenAI ``/chat/completions`` and compatible gateways such as Copilot)."""

import logging
from typing import (
    Any,
    AsyncIterator,
    Dict,
    List,
    Optional,
    Sequence,
)

from agentkit.core.schema import (
    AssistantMessage,
    ChatResponse,
    Choice,
    Message,
    TokenUsage,
    ToolCall,
)
from agentkit.providers import register_provider
from agentkit.providers.base import (
    OnTextChunk,
    ProviderClient,
    ToolChoice,
    collect_text,
    normalize_finish_reason,
)
from agentkit.providers.sse import ServerSentEvent
from agentkit.tools import ToolSchema

logger = logging.getLogger(__name__)


def _message_to_wire(message: Message) -> Dict[str, Any]:
    if message.role == "tool":
        return {"role": "tool", "tool_call_id": message.tool_call_id, "content": message.content}
    if message.role == "assistant":
        wire: Dict[str, Any] = {"role": "assistant", "content": message.content}
        if message.tool_calls:
            wire["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in message.tool_calls
            ]
        return wire
    return {"role": message.role, "content": message.content}


def _tool_to_wire(schema: ToolSchema) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": schema["name"],
            "description": schema["description"],
            "parameters": schema["parameters"],
        },
    }


def _usage(raw: Optional[Dict[str, Any]]) -> Optional[TokenUsage]:
    if not raw:
        return None
    return TokenUsage.from_counts(raw.get("prompt_tokens") or 0, raw.get("completion_tokens") or 0)


@register_provider("chat_completions")
class ChatCompletionsClient(ProviderClient):
    """OpenAI-style chat completions; streams only when the caller wants text chunks."""

    label = "Chat completions"
    default_model = "gpt-4.1"
    default_endpoint = "https://api.openai.com/v1/chat/completions"
    always_stream = False
    api_key_setting = "OPENAI_API_KEY"
    endpoint_setting = "OPENAI_ENDPOINT"

    def build_request(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolSchema],
        *,
        tool_choice: ToolChoice,
        stream: bool,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": [_message_to_wire(m) for m in messages],
        }
        if tools:
            body["tools"] = [_tool_to_wire(t) for t in tools]
            body["tool_choice"] = tool_choice
        if stream:
            body["stream"] = True
            body["stream_options"] = {"include_usage": True}
        return body

    def parse_response(self, data: Dict[str, Any]) -> ChatResponse:
        choices: List[Choice] = []
        for raw in data.get("choices") or []:
            if not isinstance(raw, dict):
                continue
            message = raw.get("message") if isinstance(raw.get("message"), dict) else {}
            calls = [
                ToolCall(
                    id=tc.get("id", ""),
                    name=(tc.get("function") or {}).get("name", ""),
                    arguments=(tc.get("function") or {}).get("arguments") or "",
                )
                for tc in message.get("tool_calls") or []
                if isinstance(tc, dict)
            ]
            choices.append(
                Choice(
                    message=AssistantMessage(content=message.get("content"), tool_calls=calls),
                    finish_reason=normalize_finish_reason(raw.get("finish_reason"), bool(calls)),
                )
            )
        return ChatResponse(
            id=data.get("id", ""),
            model=data.get("model", self.model),
            choices=choices,
            usage=_usage(data.get("usage")),
        )

    async def parse_stream(
        self,
        events: AsyncIterator[ServerSentEvent],
        on_text_chunk: Optional[OnTextChunk],
    ) -> ChatResponse:
        response_id = ""
        model = self.model
        text_parts: List[str] = []
        calls: Dict[int, Dict[str, str]] = {}
        finish_reason: Optional[str] = None
        usage: Optional[TokenUsage] = None

        async for event in events:
            if event.is_done:
                break
            payload = event.json()
            if not isinstance(payload, dict):
                continue

            response_id = payload.get("id") or response_id
            model = payload.get("model") or model
            usage = _usage(payload.get("usage")) or usage

            choices = payload.get("choices") or []
            if not choices:
                continue
            choice = choices[0]
            if not isinstance(choice, dict):
                continue
            finish_reason = choice.get("finish_reason") or finish_reason

            delta = choice.get("delta") or {}
            if delta.get("content"):
                text_parts.append(delta["content"])
                if on_text_chunk is not None:
                    on_text_chunk(delta["content"])

            # Argument fragments arrive keyed by call index; the id and name come with the first one.
            for fragment in delta.get("tool_calls") or []:
                if not isinstance(fragment, dict):
                    continue
                slot = calls.setdefault(
                    fragment.get("index") or 0, {"id": "", "name": "", "arguments": ""}
                )
                if fragment.get("id"):
                    slot["id"] = fragment["id"]
                function = fragment.get("function") or {}
                if function.get("name"):
                    slot["name"] = function["name"]
                if function.get("arguments"):
                    slot["arguments"] += function["arguments"]

        tool_calls = [ToolCall(**calls[index]) for index in sorted(calls)]
        return ChatResponse(
            id=response_id or "chat-completions-response",
            model=model,
            choices=[
                Choice(
                    message=AssistantMessage(content=collect_text(text_parts), tool_calls=tool_calls),
                    finish_reason=normalize_finish_reason(finish_reason, bool(tool_calls)),
                )
            ],
            usage=usage,
        )
