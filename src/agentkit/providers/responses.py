"""
Structured "input items" backend (OpenAI Responses API, as used by Codex).

Key differences from chat completions:
- The first system message becomes the top-level ``instructions``; later ones are ``developer`` items.
- Assistant text and tool calls are separate input items (``message`` / ``function_call``).
- Tool results are ``function_call_output`` items keyed by ``call_id``.
- The stream ends with ``response.completed``, which carries the authoritative output and usage.
"""

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
    FinishReason,
    Message,
    TokenUsage,
    ToolCall,
)
from agentkit.providers import register_provider
from agentkit.providers.base import (
    OnTextChunk,
    ProtocolError,
    ProviderClient,
    ProviderError,
    ToolChoice,
)
from agentkit.providers.sse import ServerSentEvent
from agentkit.tools import ToolSchema

logger = logging.getLogger(__name__)

DEFAULT_INSTRUCTIONS = "You are a helpful assistant."


def _text_item(role: str, kind: str, text: str) -> Dict[str, Any]:
    return {"type": "message", "role": role, "content": [{"type": kind, "text": text}]}


@register_provider("responses")
class ResponsesClient(ProviderClient):
    """Responses API client; always streams."""

    label = "Responses"
    default_model = "gpt-5.3-codex"
    default_endpoint = "https://chatgpt.com/backend-api/codex/responses"
    api_key_setting = "RESPONSES_API_KEY"
    endpoint_setting = "RESPONSES_ENDPOINT"

    def build_request(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolSchema],
        *,
        tool_choice: ToolChoice,
        stream: bool,
    ) -> Dict[str, Any]:
        instructions: Optional[str] = None
        items: List[Dict[str, Any]] = []

        for msg in messages:
            if msg.role == "system":
                if instructions is None:
                    instructions = msg.content
                else:
                    items.append(_text_item("developer", "input_text", msg.content))
            elif msg.role == "user":
                items.append(_text_item("user", "input_text", msg.content))
            elif msg.role == "assistant":
                if msg.content or not msg.tool_calls:
                    items.append(_text_item("assistant", "output_text", msg.content or ""))
                for call in msg.tool_calls:
                    items.append(
                        {
                            "type": "function_call",
                            "call_id": call.id,
                            "name": call.name,
                            "arguments": call.arguments,
                        }
                    )
            else:
                items.append(
                    {"type": "function_call_output", "call_id": msg.tool_call_id, "output": msg.content}
                )

        return {
            "model": self.model,
            "instructions": instructions or DEFAULT_INSTRUCTIONS,
            "input": items,
            "tools": [
                {
                    "type": "function",
                    "name": t["name"],
                    "description": t["description"],
                    "parameters": t["parameters"],
                }
                for t in tools
            ],
            "tool_choice": tool_choice,
            "parallel_tool_calls": True,
            "store": False,
            "stream": stream,
        }

    def parse_response(self, data: Dict[str, Any]) -> ChatResponse:
        return self._normalize(data, streamed_calls={})

    async def parse_stream(
        self,
        events: AsyncIterator[ServerSentEvent],
        on_text_chunk: Optional[OnTextChunk],
    ) -> ChatResponse:
        final: Optional[Dict[str, Any]] = None
        # output_index -> function call assembled from argument deltas
        streamed_calls: Dict[int, Dict[str, str]] = {}

        async for event in events:
            if event.is_done:
                break
            payload = event.json()
            if not isinstance(payload, dict):
                continue
            kind = payload.get("type") or event.event

            if kind == "response.output_text.delta":
                delta = payload.get("delta")
                if delta and on_text_chunk is not None:
                    on_text_chunk(delta)
            elif kind == "response.output_item.added":
                item = payload.get("item") or {}
                if item.get("type") == "function_call":
                    streamed_calls[payload.get("output_index") or 0] = {
                        "id": item.get("call_id", ""),
                        "name": item.get("name", ""),
                        "arguments": item.get("arguments") or "",
                    }
            elif kind == "response.function_call_arguments.delta":
                slot = streamed_calls.get(payload.get("output_index") or 0)
                if slot is not None:
                    slot["arguments"] += payload.get("delta") or ""
            elif kind in ("response.completed", "response.incomplete"):
                final = dict(payload.get("response") or {})
                if kind == "response.incomplete":
                    final.setdefault("status", "incomplete")
                break
            elif kind in ("response.failed", "error"):
                error = payload.get("error") or (payload.get("response") or {}).get("error") or {}
                raise ProviderError(f"{self.label} stream failed: {error.get('message') or error}")

        if final is None:
            raise ProtocolError("No response.completed event found in stream")
        return self._normalize(final, streamed_calls)

    def _normalize(
        self, data: Dict[str, Any], streamed_calls: Dict[int, Dict[str, str]]
    ) -> ChatResponse:
        text = ""
        tool_calls: List[ToolCall] = []

        for item in data.get("output") or []:
            if not isinstance(item, dict):
                continue
            if item.get("type") == "message" and item.get("role") == "assistant":
                for part in item.get("content") or []:
                    if isinstance(part, dict) and part.get("type") == "output_text":
                        text += part.get("text", "")
            elif item.get("type") == "function_call":
                tool_calls.append(
                    ToolCall(
                        id=item.get("call_id", ""),
                        name=item.get("name", ""),
                        arguments=item.get("arguments") or "",
                    )
                )

        if not tool_calls and streamed_calls:
            # Some gateways send an abbreviated final response; fall back to the streamed calls.
            tool_calls = [ToolCall(**streamed_calls[index]) for index in sorted(streamed_calls)]

        finish_reason: FinishReason = "tool_calls" if tool_calls else "stop"
        if data.get("status") == "incomplete":
            reason = (data.get("incomplete_details") or {}).get("reason")
            finish_reason = "content_filter" if reason == "content_filter" else "length"

        raw_usage = data.get("usage")
        usage = (
            TokenUsage.from_counts(
                raw_usage.get("input_tokens") or 0, raw_usage.get("output_tokens") or 0
            )
            if raw_usage
            else None
        )
        return ChatResponse(
            id=data.get("id") or "responses-response",
            model=data.get("model") or self.model,
            choices=[
                Choice(
                    message=AssistantMessage(content=text or None, tool_calls=tool_calls),
                    finish_reason=finish_reason,
                )
            ],
            usage=usage,
        )
