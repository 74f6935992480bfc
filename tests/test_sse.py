"""Tests for the incremental server-sent-event decoder."""

from typing import (
    AsyncIterator,
    List,
)

import pytest

from agentkit.providers.sse import (
    ServerSentEvent,
    SSEDecoder,
    iter_sse_events,
)


def test_event_split_across_chunks() -> None:
    decoder = SSEDecoder()
    assert decoder.feed('data: {"a"') == []
    assert decoder.feed(": 1}\n") == []
    events = decoder.feed("\n")
    assert [e.json() for e in events] == [{"a": 1}]


def test_multiple_events_in_one_chunk() -> None:
    decoder = SSEDecoder()
    events = decoder.feed("event: ping\ndata: one\n\ndata: two\n\n")
    assert events == [ServerSentEvent(data="one", event="ping"), ServerSentEvent(data="two")]


def test_multiline_data_comments_and_crlf() -> None:
    decoder = SSEDecoder()
    events = decoder.feed(": keep-alive\r\ndata: line1\r\ndata: line2\r\n\r\n")
    assert [e.data for e in events] == ["line1\nline2"]


def test_flush_dispatches_unterminated_event() -> None:
    decoder = SSEDecoder()
    assert decoder.feed("data: [DONE]") == []
    events = decoder.flush()
    assert len(events) == 1 and events[0].is_done


def test_malformed_json_payload() -> None:
    assert ServerSentEvent(data="{broken").json() is None


@pytest.mark.asyncio
async def test_iter_sse_events() -> None:
    async def chunks() -> AsyncIterator[str]:
        for piece in ["da", "ta: 1\n", "\ndata: 2\n\n", "data: 3"]:
            yield piece

    seen: List[str] = [event.data async for event in iter_sse_events(chunks())]
    assert seen == ["1", "2", "3"]
