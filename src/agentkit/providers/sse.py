"""
Incremental decoder for ``text/event-stream`` bodies.

All three backends stream server-sent events.  The decoder keeps the partial-line buffer and the
event being assembled as instance state, so one decoder belongs to exactly one response stream.
"""

import json
import logging
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterator,
    List,
    Optional,
)

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


@dataclass
class ServerSentEvent:
    """One dispatched event: its ``data`` lines joined by newlines and the optional ``event`` name."""

    data: str
    event: Optional[str] = None

    @property
    def is_done(self) -> bool:
        """True for the ``data: [DONE]`` terminator used by OpenAI-style streams."""
        return self.data.strip() == DONE_SENTINEL

    def json(self) -> Optional[Any]:
        """Decode the payload, or return None for malformed JSON (which streams are allowed to skip)."""
        try:
            return json.loads(self.data)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed event payload: %.200s", self.data)
            return None


class SSEDecoder:
    """Turns arbitrary text chunks into complete :class:`ServerSentEvent` objects."""

    def __init__(self) -> None:
        self._buffer = ""
        self._data_lines: List[str] = []
        self._event: Optional[str] = None

    def feed(self, chunk: str) -> List[ServerSentEvent]:
        """Consume *chunk* and return the events it completed (possibly none)."""
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()  # trailing partial line waits for the next chunk

        events: List[ServerSentEvent] = []
        for line in lines:
            event = self._process_line(line.rstrip("\r"))
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> List[ServerSentEvent]:
        """Dispatch whatever is left once the stream has ended."""
        events: List[ServerSentEvent] = []
        if self._buffer:
            line, self._buffer = self._buffer, ""
            event = self._process_line(line.rstrip("\r"))
            if event is not None:
                events.append(event)
        event = self._dispatch()
        if event is not None:
            events.append(event)
        return events

    def _process_line(self, line: str) -> Optional[ServerSentEvent]:
        if not line:
            return self._dispatch()
        if line.startswith(":"):  # comment / keep-alive
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            self._data_lines.append(value)
        elif field == "event":
            self._event = value
        return None

    def _dispatch(self) -> Optional[ServerSentEvent]:
        if not self._data_lines:
            self._event = None
            return None
        event = ServerSentEvent(data="\n".join(self._data_lines), event=self._event)
        self._data_lines = []
        self._event = None
        return event


async def iter_sse_events(chunks: AsyncIterator[str]) -> AsyncIterator[ServerSentEvent]:
    """Pull text chunks from *chunks* and yield events as they complete.

    *chunks* is usually ``response.aiter_text()``.
    """
    decoder = SSEDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.flush():
        yield event
