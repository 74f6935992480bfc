"""
Detect replies that describe work instead of doing it.

Models sometimes answer "I'll now edit the file..." or paste a large code block without calling
any tool.  The agent loop uses :func:`looks_like_unexecuted_work` to decide whether to nudge the
model back to its tools.  The predicate is pluggable: pass another callable to
:class:`~agentkit.agent.agent_loop.Agent` to change the policy.
"""

import re
from typing import Callable

UnexecutedWorkPredicate = Callable[[str], bool]

CODE_BLOCK_MIN_LINES = 15

_INTENT_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b(?:i'll|i will|let me|i'm going to|i am going to)\s+(?:now\s+)?"
        r"(?:create|write|edit|update|modify|run|execute|add|fix|implement|read|check|search)\b",
        r"\bhere(?:'s| is) the (?:updated|modified|new|complete) (?:file|code|version)\b",
        r"\b(?:next|now),? i(?:'ll| will)\b",
    )
]

_FENCE = re.compile(r"```[^\n]*\n(.*?)```", re.DOTALL)


def _has_large_code_block(text: str) -> bool:
    return any(block.count("\n") >= CODE_BLOCK_MIN_LINES for block in _FENCE.findall(text))


def looks_like_unexecuted_work(text: str) -> bool:
    """True if *text* announces an action or carries a large code block instead of a tool call."""
    if not text:
        return False
    return _has_large_code_block(text) or any(p.search(text) for p in _INTENT_PATTERNS)
