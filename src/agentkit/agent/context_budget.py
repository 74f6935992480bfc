"""
Context budget manager.

The prompt size the backend reports for the most recent request is the real size of the context.
Once it crosses :data:`COMPACT_THRESHOLD` of the model's window, older turns are folded into one
synthetic system message with a one-line digest per dropped message.
"""

import logging
from typing import (
    List,
    Sequence,
)

from agentkit.core.schema import (
    Message,
    SystemMessage,
    TokenUsage,
)

logger = logging.getLogger(__name__)

COMPACT_THRESHOLD = 0.8
CRITICAL_THRESHOLD = 0.9
KEEP_RECENT = 20
KEEP_RECENT_CRITICAL = 12
DIGEST_CLIP = 200

SUMMARY_HEADER = (
    "Earlier conversation was compacted to fit the context window. Digest of the dropped messages "
    "(preserve the facts and decisions they record):"
)


def _digest(message: Message) -> str:
    if message.role == "assistant":
        text = message.content or ""
        if message.tool_calls:
            calls = ", ".join(call.name for call in message.tool_calls)
            text = f"{text} [called: {calls}]".strip()
    else:
        text = message.content
    text = " ".join(text.split())
    if len(text) > DIGEST_CLIP:
        text = text[: DIGEST_CLIP - 3] + "..."
    return f"- {message.role}: {text}"


class ContextBudget:
    """Tracks usage against one model's context window and compacts history when it runs low."""

    def __init__(self, context_window: int) -> None:
        if context_window <= 0:
            raise ValueError("context_window must be positive")
        self.context_window = context_window
        self.usage = TokenUsage()

    def record_usage(self, usage: TokenUsage) -> None:
        self.usage = self.usage.add(usage)

    @property
    def utilization(self) -> float:
        """Latest context size as a fraction of the window."""
        return self.usage.latest_prompt_tokens / self.context_window

    @property
    def is_warning(self) -> bool:
        return self.utilization >= COMPACT_THRESHOLD

    def _keep_count(self) -> int:
        return KEEP_RECENT_CRITICAL if self.utilization >= CRITICAL_THRESHOLD else KEEP_RECENT

    def should_compact(self, history: Sequence[Message]) -> bool:
        if not self.is_warning:
            return False
        return sum(1 for m in history if m.role != "system") > self._keep_count()

    def compact(self, history: List[Message]) -> List[Message]:
        """
        Fold older messages into a digest.

        System messages are always kept.  Of the rest, the most recent ones survive; the cut is
        moved back so the kept tail never opens with tool results whose call was dropped.  When
        nothing would be dropped the same list object is returned.
        """
        if not self.should_compact(history):
            return history

        systems = [m for m in history if m.role == "system"]
        rest = [m for m in history if m.role != "system"]

        cut = len(rest) - self._keep_count()
        while cut > 0 and rest[cut].role == "tool":
            cut -= 1
        if cut <= 0:
            return history

        dropped, kept = rest[:cut], rest[cut:]
        summary = SystemMessage(content="\n".join([SUMMARY_HEADER, *(_digest(m) for m in dropped)]))
        logger.info(
            "Compacted context: dropped %d messages, kept %d (%.0f%% of %d tokens used)",
            len(dropped),
            len(kept),
            self.utilization * 100,
            self.context_window,
        )
        return [*systems, summary, *kept]

    def format_tokens(self) -> str:
        """Human-readable latest context size, e.g. ``"12.3k tokens"``; empty before any usage."""
        tokens = self.usage.latest_prompt_tokens
        if tokens == 0:
            return ""
        if tokens >= 1000:
            return f"{tokens / 1000:.1f}k tokens"
        return f"{tokens} tokens"

    def reset(self) -> None:
        self.usage = TokenUsage()
