"""
Approval gate for tool execution.

Read-only tools run without asking.  Everything else goes through an external approval source (a
terminal prompt, a web dialog, a policy engine...).  Decisions of the "always" kind are remembered
for the lifetime of the gate, so the scope of that memory is simply where the gate is created: one
per run (the default inside :class:`~agentkit.agent.agent_loop.Agent`) or one per host session.
"""

import asyncio
import logging
from typing import (
    AbstractSet,
    Awaitable,
    Callable,
    Optional,
    Set,
)

from agentkit.core.schema import (
    ApprovalDecision,
    ApprovalRequest,
)

logger = logging.getLogger(__name__)

ApprovalSource = Callable[[ApprovalRequest], Awaitable[ApprovalDecision]]

SAFE_TOOLS: frozenset[str] = frozenset(
    {"read", "glob", "grep", "search", "web_fetch", "fetch", "todo_read"}
)

_SHELL_TOOLS = frozenset({"bash", "shell"})
_NETWORK_TOOLS = frozenset({"web_fetch", "fetch"})
_FILESYSTEM_TOOLS = frozenset({"write", "edit", "todo_write"})


def risk_label(name: str) -> str:
    """Coarse risk class of a tool (``shell``, ``network``, ``filesystem`` or ``safe``) for display."""
    if name in _SHELL_TOOLS:
        return "shell"
    if name in _NETWORK_TOOLS:
        return "network"
    if name in _FILESYSTEM_TOOLS:
        return "filesystem"
    return "safe"


class ApprovalGate:
    """
    Decides whether a tool call may run.

    Parameters
    ----------
    source:
        Async callable asked for a decision on every gated call that is not already cached.  When
        *None*, every call is allowed once.
    safe_tools:
        Names that never need approval.
    """

    def __init__(
        self,
        source: Optional[ApprovalSource] = None,
        safe_tools: AbstractSet[str] = SAFE_TOOLS,
    ) -> None:
        self.source = source
        self.safe_tools = frozenset(safe_tools)
        self._allowed: Set[str] = set()
        self._denied: Set[str] = set()
        # asyncio.Lock wakes waiters in FIFO order, so prompts are shown in request order.
        self._lock = asyncio.Lock()

    def requires_approval(self, name: str) -> bool:
        return name not in self.safe_tools

    def is_allowed(self, decision: ApprovalDecision) -> bool:
        return decision in ("allow_once", "allow_always")

    def _cached(self, name: str) -> Optional[ApprovalDecision]:
        if name in self._allowed:
            return "allow_always"
        if name in self._denied:
            return "deny_always"
        return None

    async def decide(self, request: ApprovalRequest) -> ApprovalDecision:
        """Return the decision for *request*, asking the source at most once at a time."""
        if not self.requires_approval(request.name) or self.source is None:
            return "allow_once"

        cached = self._cached(request.name)
        if cached is not None:
            return cached

        async with self._lock:
            # A request queued behind an "always" answer for the same tool must not be shown.
            cached = self._cached(request.name)
            if cached is not None:
                return cached

            decision = await self.source(request)
            logger.debug("Approval for '%s' (%s): %s", request.name, request.tool_call_id, decision)
            if decision == "allow_always":
                self._allowed.add(request.name)
            elif decision == "deny_always":
                self._denied.add(request.name)
            return decision

    def clear(self) -> None:
        """Forget every "always" decision."""
        self._allowed.clear()
        self._denied.clear()
