"""Interactive terminal host: streams replies, asks for tool approval on stdin."""

import asyncio
import logging
import signal
from typing import (
    List,
    Optional,
    Tuple,
)

from agentkit.agent.agent_loop import (
    AGENT_SAFE_TOOLS,
    Agent,
    AgentHooks,
)
from agentkit.agent.approval import (
    ApprovalGate,
    risk_label,
)
from agentkit.agent.context_budget import ContextBudget
from agentkit.agent.delegation import with_task_tool
from agentkit.common import (
    AnsiColors,
    colored_print,
)
from agentkit.core.cancel import (
    CancelSignal,
    race,
)
from agentkit.core.schema import (
    AgentResult,
    ApprovalDecision,
    ApprovalRequest,
    Message,
    ToolCallEvent,
)
from agentkit.providers import (
    ProviderClient,
    load_provider,
)
from agentkit.tools import ToolRegistry
from agentkit.tools.math_tools import register_math_tools

logger = logging.getLogger(__name__)

_APPROVAL_KEYS: dict[str, ApprovalDecision] = {
    "y": "allow_once",
    "a": "allow_always",
    "n": "deny_once",
    "d": "deny_always",
}


# ---------------------------------------------------------------------------
# Input helpers
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def parse_approval(answer: str) -> ApprovalDecision:
    """Map a typed answer to a decision; anything unrecognised denies once."""
    return _APPROVAL_KEYS.get(answer.strip().lower()[:1], "deny_once")


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------
class CliSession:
    """
    One terminal conversation.

    The approval gate and the context budget live as long as the session, so "always" answers
    and the token display carry over between prompts until ``/clear``.
    """

    def __init__(self, provider: ProviderClient, tools: Optional[ToolRegistry] = None) -> None:
        self.provider = provider
        self.tools = tools if tools is not None else register_math_tools(ToolRegistry())
        self.history: List[Message] = []
        self.gate = ApprovalGate(self.ask_approval, safe_tools=AGENT_SAFE_TOOLS)
        self.hooks = AgentHooks(
            on_tool_event=self.on_tool_event,
            on_text_chunk=self.on_text_chunk,
            on_retry=self.on_retry,
        )
        self.budget: Optional[ContextBudget] = None
        self._streaming = False
        self._received_text = False
        self._cancel: Optional[CancelSignal] = None

    # -- observers ------------------------------------------------------------
    def on_text_chunk(self, chunk: str) -> None:
        if not self._streaming:
            colored_print("\n🤖 ", AnsiColors.YELLOW, end="")
            self._streaming = True
        self._received_text = True
        print(chunk, end="", flush=True)

    def on_tool_event(self, event: ToolCallEvent) -> None:
        self._end_stream()
        if event.status == "started":
            colored_print(f"  → {event.name}({event.args})", AnsiColors.GREY)
        elif event.status == "completed":
            colored_print(
                f"  ✓ {event.name} [{event.duration or 0:.2f}s] {event.result}", AnsiColors.GREEN
            )
        else:
            colored_print(f"  ✗ {event.name} denied", AnsiColors.RED)

    def on_retry(self, attempt: int, max_retries: int, error: str) -> None:
        self._end_stream()
        colored_print(f"⚠️ Retrying ({attempt}/{max_retries}): {error}", AnsiColors.RED)

    def _end_stream(self) -> None:
        if self._streaming:
            print()
            self._streaming = False

    async def ask_approval(self, request: ApprovalRequest) -> ApprovalDecision:
        """Approval source: prompt on stdin; Ctrl+C while waiting aborts the run."""
        self._end_stream()
        colored_print(
            f"\n🔐 Allow {request.name} [{risk_label(request.name)}] with {request.args}? "
            "[y]es / [a]lways / [n]o / [d]eny always: ",
            AnsiColors.BLUE,
            end="",
        )
        answer, ok = await race(asyncio.to_thread(get_user_message), self._cancel)
        return parse_approval(answer) if ok else "deny_once"

    # -- commands -------------------------------------------------------------
    def show_tokens(self) -> None:
        if self.budget is None or not self.budget.format_tokens():
            colored_print("No token usage yet.", AnsiColors.GREY)
            return
        color = AnsiColors.RED if self.budget.is_warning else AnsiColors.GREY
        colored_print(
            f"Context: {self.budget.format_tokens()} "
            f"({self.budget.utilization:.0%} of {self.budget.context_window})",
            color,
        )

    def clear(self) -> None:
        self.history = []
        self.gate.clear()
        if self.budget is not None:
            self.budget.reset()
        colored_print("Conversation cleared.", AnsiColors.GREY)

    # -- runs -----------------------------------------------------------------
    async def send(self, user_msg: str) -> AgentResult:
        """Run the agent on *user_msg*; Ctrl+C while it runs cancels the run."""
        self._received_text = False
        cancel = self._cancel = CancelSignal()
        registry = with_task_tool(
            self.tools, self.provider, approval_source=self.ask_approval, cancel=cancel
        )
        agent = Agent(self.provider, registry, hooks=self.hooks, gate=self.gate, budget=self.budget)
        if self.budget is None:
            self.budget = agent.budget = ContextBudget(agent.context_window)

        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, cancel.cancel)
        try:
            result = await agent.run(user_msg, self.history, cancel=cancel)
        finally:
            loop.remove_signal_handler(signal.SIGINT)
            self._cancel = None
            self._end_stream()

        self.history = result.messages
        if result.status != "completed":
            colored_print(result.answer, AnsiColors.RED)
        elif not self._received_text:
            colored_print(result.answer, AnsiColors.YELLOW)
        return result


async def _repl(session: CliSession) -> None:
    colored_print("\n🔮 agentkit shell - type 'exit' or 'quit' (or Ctrl+D) to exit", AnsiColors.GREEN)
    colored_print("Commands: /tokens, /clear", AnsiColors.GREY)
    try:
        while True:
            colored_print("\n🧑 You: ", AnsiColors.BLUE, end="")
            user_msg, ok = await asyncio.to_thread(get_user_message)
            if not ok or user_msg.lower() in {"exit", "quit"}:
                break
            if not user_msg:
                continue
            if user_msg == "/tokens":
                session.show_tokens()
            elif user_msg == "/clear":
                session.clear()
            else:
                await session.send(user_msg)
    finally:
        await session.provider.aclose()


def run_cli(provider: Optional[ProviderClient] = None) -> None:
    """Run the interactive shell in the current process."""
    session = CliSession(provider or load_provider())
    try:
        asyncio.run(_repl(session))
    except KeyboardInterrupt:
        colored_print("\nBye.", AnsiColors.GREY)


if __name__ == "__main__":
    run_cli()
