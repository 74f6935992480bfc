"""
Role-tagged content-block backend (Anthropic Messages API).

Key differences from the OpenAI-style backends:
- System prompt is a separate ``system`` parameter, not a message.
- Strict user/assistant alternation is required; consecutive same-role messages are merged and the
  conversation must open with a user turn.
- Tool calls are ``tool_use`` blocks with parsed ``input``; tool results travel inside a ``user``
  message as ``tool_result`` blocks.
"""

import json
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
    collect_text,
)
from agentkit.providers.sse import ServerSentEvent
from agentkit.tools import ToolSchema

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
MAX_TOKENS = 16384

_STOP_REASONS: Dict[str, FinishReason] = {
    "tool_use": "tool_calls",
    "max_tokens": "length",
    "refusal": "content_filter",
}

_TOOL_CHOICE = {"auto": "auto", "required": "any", "none": "none"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _parse_input(arguments: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(arguments) if arguments.strip() else {}
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _as_blocks(content: Any) -> List[Dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}] if content else []
    return list(content)


def _ensure_alternation(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Merge consecutive same-role messages and make sure the first turn is the user's."""
    merged: List[Dict[str, Any]] = []
    for msg in messages:
        if merged and merged[-1]["role"] == msg["role"]:
            prev = merged[-1]
            prev["content"] = _as_blocks(prev["content"]) + _as_blocks(msg["content"])
        else:
            merged.append(dict(msg))
    if merged and merged[0]["role"] != "user":
        merged.insert(0, {"role": "user", "content": "(conversation continues)"})
    return merged


def _finish_reason(stop_reason: Optional[str], has_tool_calls: bool) -> FinishReason:
    reason = _STOP_REASONS.get(stop_reason or "", "stop")
    if reason in ("length", "content_filter"):
        return reason
    return "tool_calls" if has_tool_calls else reason


@register_provider("anthropic")
class AnthropicMessagesClient(ProviderClient):
    """Anthropic Messages client; always streams."""

    label = "Anthropic"
    default_model = "claude-sonnet-4-6"
    default_endpoint = "https://api.anthropic.com/v1/messages"
    api_key_setting = "ANTHROPIC_API_KEY"
    endpoint_setting = "ANTHROPIC_ENDPOINT"
    max_tokens = MAX_TOKENS

    def build_headers(self) -> Dict[str, str]:
        headers = super().build_headers()
        headers["anthropic-version"] = ANTHROPIC_VERSION
        return headers

    def build_request(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolSchema],
        *,
        tool_choice: ToolChoice,
        stream: bool,
    ) -> Dict[str, Any]:
        system: List[Dict[str, Any]] = []
        out: List[Dict[str, Any]] = []

        for msg in messages:
            if msg.role == "system":
                system.append({"type": "text", "text": msg.content})
            elif msg.role == "user":
                out.append({"role": "user", "content": msg.content})
            elif msg.role == "assistant":
                if not msg.tool_calls:
                    out.append({"role": "assistant", "content": msg.content or ""})
                    continue
                blocks: List[Dict[str, Any]] = []
                if msg.content:
                    blocks.append({"type": "text", "text": msg.content})
                for call in msg.tool_calls:
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": call.id,
                            "name": call.name,
                            "input": _parse_input(call.arguments),
                        }
                    )
                out.append({"role": "assistant", "content": blocks})
            else:
                # Consecutive tool results collapse into one user turn via _ensure_alternation.
                out.append(
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "tool_result",
                                "tool_use_id": msg.tool_call_id,
                                "content": msg.content,
                            }
                        ],
                    }
                )

        body: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": _ensure_alternation(out),
            "stream": stream,
        }
        if system:
            body["system"] = system
        if tools:
            body["tools"] = [
                {"name": t["name"], "description": t["description"], "input_schema": t["parameters"]}
                for t in tools
            ]
            body["tool_choice"] = {"type": _TOOL_CHOICE[tool_choice]}
        return body

    def parse_response(self, data: Dict[str, Any]) -> ChatResponse:
        text_parts: List[str] = []
        tool_calls: List[ToolCall] = []
        for block in data.get("content") or []:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "text":
                text_parts.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                tool_calls.append(
                    ToolCall(
                        id=block.get("id", ""),
                        name=block.get("name", ""),
                        arguments=json.dumps(block.get("input") or {}),
                    )
                )

        raw_usage = data.get("usage") or {}
        return self._build(
            data.get("id") or "anthropic-response",
            data.get("model") or self.model,
            text_parts,
            tool_calls,
            data.get("stop_reason"),
            self._input_tokens(raw_usage) if raw_usage else None,
            raw_usage.get("output_tokens") or 0,
        )

    async def parse_stream(
        self,
        events: AsyncIterator[ServerSentEvent],
        on_text_chunk: Optional[OnTextChunk],
    ) -> ChatResponse:
        response_id = ""
        model = self.model
        text_parts: List[str] = []
        blocks: Dict[int, Dict[str, str]] = {}  # content-block index -> tool_use being assembled
        stop_reason: Optional[str] = None
        input_tokens: Optional[int] = None
        output_tokens = 0
        finished = False

        async for event in events:
            payload = event.json()
            if not isinstance(payload, dict):
                continue
            kind = payload.get("type") or event.event

            if kind == "message_start":
                message = payload.get("message") or {}
                response_id = message.get("id") or response_id
                model = message.get("model") or model
                if message.get("usage"):
                    input_tokens = self._input_tokens(message["usage"])
            elif kind == "content_block_start":
                block = payload.get("content_block") or {}
                if block.get("type") == "tool_use":
                    blocks[payload.get("index") or 0] = {
                        "id": block.get("id", ""),
                        "name": block.get("name", ""),
                        "arguments": "",
                    }
            elif kind == "content_block_delta":
                delta = payload.get("delta") or {}
                if delta.get("type") == "text_delta":
                    text_parts.append(delta.get("text", ""))
                    if on_text_chunk is not None:
                        on_text_chunk(delta.get("text", ""))
                elif delta.get("type") == "input_json_delta":
                    slot = blocks.get(payload.get("index") or 0)
                    if slot is not None:
                        slot["arguments"] += delta.get("partial_json", "")
                # thinking / signature deltas are not surfaced
            elif kind == "message_delta":
                stop_reason = (payload.get("delta") or {}).get("stop_reason") or stop_reason
                output_tokens = (payload.get("usage") or {}).get("output_tokens") or output_tokens
            elif kind == "message_stop":
                finished = True
                break
            elif kind == "error":
                error = payload.get("error") or {}
                raise ProviderError(f"{self.label} stream failed: {error.get('message') or error}")

        if not finished:
            raise ProtocolError("Stream ended before message_stop")

        tool_calls = [ToolCall(**blocks[index]) for index in sorted(blocks)]
        return self._build(
            response_id or "anthropic-response",
            model,
            text_parts,
            tool_calls,
            stop_reason,
            input_tokens,
            output_tokens,
        )

    @staticmethod
    def _input_tokens(usage: Dict[str, Any]) -> int:
        # Cached prompt segments still occupy the context window.
        return (
            (usage.get("input_tokens") or 0)
            + (usage.get("cache_read_input_tokens") or 0)
            + (usage.get("cache_creation_input_tokens") or 0)
        )

    def _build(
        self,
        response_id: str,
        model: str,
        text_parts: List[str],
        tool_calls: List[ToolCall],
        stop_reason: Optional[str],
        input_tokens: Optional[int],
        output_tokens: int,
    ) -> ChatResponse:
        for call in tool_calls:
            if not call.arguments:
                call.arguments = "{}"
        return ChatResponse(
            id=response_id,
            model=model,
            choices=[
                Choice(
                    message=AssistantMessage(content=collect_text(text_parts), tool_calls=tool_calls),
                    finish_reason=_finish_reason(stop_reason, bool(tool_calls)),
                )
            ],
            usage=(
                TokenUsage.from_counts(input_tokens, output_tokens)
                if input_tokens is not None
                else None
            ),
        )
