"""Tests for the context budget manager."""

from typing import List

import pytest

from agentkit.agent.context_budget import (
    SUMMARY_HEADER,
    ContextBudget,
)
from agentkit.core.schema import (
    AssistantMessage,
    Message,
    SystemMessage,
    TokenUsage,
    ToolCall,
    ToolResultMessage,
    UserMessage,
)

WINDOW = 100_000


def _budget(prompt_tokens: int) -> ContextBudget:
    budget = ContextBudget(WINDOW)
    budget.record_usage(TokenUsage.from_counts(prompt_tokens, 100))
    return budget


def _chat(turns: int) -> List[Message]:
    history: List[Message] = [SystemMessage(content="You are helpful.")]
    for i in range(turns):
        history.append(UserMessage(content=f"question {i}"))
        history.append(AssistantMessage(content=f"answer {i}"))
    return history


def test_below_threshold_is_a_no_op() -> None:
    """Under 80% of the window the very same list comes back."""

    history = _chat(30)
    budget = _budget(79_999)
    assert not budget.should_compact(history)
    assert budget.compact(history) is history


def test_compaction_keeps_systems_and_recent_messages() -> None:
    history = _chat(30)
    compacted = _budget(85_000).compact(history)

    assert compacted[0] == history[0]
    assert compacted[1].role == "system"
    assert compacted[1].content.startswith(SUMMARY_HEADER)
    assert "- user: question 0" in compacted[1].content
    assert compacted[2:] == history[-20:]


def test_critical_usage_keeps_fewer_messages() -> None:
    history = _chat(30)
    compacted = _budget(95_000).compact(history)
    assert compacted[2:] == history[-12:]


def test_compaction_is_monotonic_and_idempotent() -> None:
    """Compaction never grows the history and a second pass drops nothing."""

    history = _chat(30)
    budget = _budget(90_000)

    once = budget.compact(history)
    assert len(once) <= len(history)
    assert budget.compact(once) is once


def test_kept_tail_never_starts_with_tool_results() -> None:
    """The cut moves back to the assistant message that issued the calls."""

    history: List[Message] = _chat(15)  # 30 non-system messages
    calls = [ToolCall(id=f"t{i}", name="read", arguments="{}") for i in range(3)]
    history.append(AssistantMessage(content=None, tool_calls=calls))
    history.extend(ToolResultMessage(tool_call_id=c.id, content="{}") for c in calls)
    for i in range(9):
        history.append(UserMessage(content=f"later {i}"))
        history.append(AssistantMessage(content=f"reply {i}"))

    compacted = _budget(85_000).compact(history)
    kept = compacted[2:]

    assert kept[0].role == "assistant"
    assert kept[0].tool_calls == calls
    issued = {c.id for m in kept if m.role == "assistant" for c in m.tool_calls}
    assert {m.tool_call_id for m in kept if m.role == "tool"} <= issued


def test_short_history_is_left_alone() -> None:
    history = _chat(5)
    assert _budget(99_000).compact(history) is history


def test_usage_tracks_latest_prompt_size() -> None:
    budget = ContextBudget(WINDOW)
    budget.record_usage(TokenUsage.from_counts(50_000, 100))
    budget.record_usage(TokenUsage.from_counts(12_345, 100))

    assert budget.usage.prompt_tokens == 62_345
    assert budget.utilization == pytest.approx(0.12345)
    assert not budget.is_warning
    assert budget.format_tokens() == "12.3k tokens"


def test_format_tokens_and_reset() -> None:
    budget = ContextBudget(WINDOW)
    assert budget.format_tokens() == ""
    budget.record_usage(TokenUsage.from_counts(999, 1))
    assert budget.format_tokens() == "999 tokens"
    budget.reset()
    assert budget.format_tokens() == ""


def test_invalid_window() -> None:
    with pytest.raises(ValueError):
        ContextBudget(0)
