"""Tests for the terminal host."""

import asyncio
import threading
from typing import Tuple

import pytest
from fakes import (
    ScriptedProvider,
    call,
    text_response,
    tool_response,
)

from agentkit.client import cli
from agentkit.core.cancel import (
    AbortedError,
    CancelSignal,
)
from agentkit.core.schema import ApprovalRequest


@pytest.mark.parametrize(
    "answer, decision",
    [
        ("y", "allow_once"),
        ("Always", "allow_always"),
        ("n", "deny_once"),
        ("d", "deny_always"),
        ("", "deny_once"),
        ("maybe", "deny_once"),
    ],
)
def test_parse_approval(answer: str, decision: str) -> None:
    assert cli.parse_approval(answer) == decision


@pytest.mark.asyncio
async def test_ask_approval_reads_stdin(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "get_user_message", lambda: ("a", True))
    session = cli.CliSession(ScriptedProvider([]))  # type: ignore[arg-type]

    decision = await session.ask_approval(ApprovalRequest(tool_call_id="c1", name="bash"))
    assert decision == "allow_always"


@pytest.mark.asyncio
async def test_cancel_while_waiting_for_approval(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ctrl+C at the approval prompt aborts the run without waiting for Enter."""

    released = threading.Event()

    def blocked_read() -> Tuple[str, bool]:
        released.wait(5)
        return "y", True

    monkeypatch.setattr(cli, "get_user_message", blocked_read)
    session = cli.CliSession(ScriptedProvider([]))  # type: ignore[arg-type]
    session._cancel = CancelSignal()

    pending = asyncio.ensure_future(
        session.ask_approval(ApprovalRequest(tool_call_id="c1", name="bash"))
    )
    await asyncio.sleep(0.05)
    session._cancel.cancel()
    try:
        with pytest.raises(AbortedError):
            await asyncio.wait_for(pending, 1)
    finally:
        released.set()


@pytest.mark.asyncio
async def test_send_streams_and_keeps_history(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(cli, "get_user_message", lambda: ("y", True))
    provider = ScriptedProvider(
        [tool_response(call("c1", "multiply", {"numbers": [6, 7]})), text_response("42")]
    )
    session = cli.CliSession(provider)  # type: ignore[arg-type]

    result = await session.send("6 * 7?")

    assert result.answer == "42"
    assert [m.role for m in session.history] == ["user", "assistant", "tool", "assistant"]
    out = capsys.readouterr().out
    assert "multiply" in out and "42" in out

    session.show_tokens()
    assert "10 tokens" in capsys.readouterr().out

    session.clear()
    assert session.history == []
