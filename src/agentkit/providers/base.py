"""
Provider adapter base class.

Every backend speaks a different wire protocol, but the agent loop only ever sees
:class:`~agentkit.core.schema.ChatResponse`.  Subclasses implement request shaping and response
parsing; this module owns the transport concerns they share: bearer auth, streaming vs. plain JSON,
retry with exponential backoff, and cooperative cancellation.
"""

import asyncio
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    ClassVar,
    Dict,
    List,
    Literal,
    Optional,
    Sequence,
    TypeVar,
)

import httpx

from agentkit.core.cancel import (
    CancelSignal,
    race,
)
from agentkit.core.schema import (
    ChatResponse,
    FinishReason,
    Message,
)
from agentkit.providers.sse import (
    ServerSentEvent,
    iter_sse_events,
)
from agentkit.tools import ToolSchema

logger = logging.getLogger(__name__)

OnTextChunk = Callable[[str], None]
OnRetry = Callable[[int, int, str], None]
ToolChoice = Literal["auto", "required", "none"]

T = TypeVar("T")

_FINISH_REASONS = {
    "stop": "stop",
    "tool_calls": "tool_calls",
    "function_call": "tool_calls",
    "length": "length",
    "content_filter": "content_filter",
}


class ProviderError(RuntimeError):
    """Raised when a completion cannot be obtained (after retries, for transport failures)."""


class ProtocolError(ProviderError):
    """The backend answered, but not in a shape we can use.  Never retried."""


def normalize_finish_reason(raw: Optional[str], has_tool_calls: bool) -> FinishReason:
    """Map a backend finish reason onto the internal vocabulary."""
    reason = _FINISH_REASONS.get(raw or "", "stop")
    if has_tool_calls and reason == "stop":
        # Some gateways report "stop" even when the message carries tool calls.
        return "tool_calls"
    return reason  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class ProviderClient(ABC):
    """Abstract backend client that converts internal messages -> one normalized completion."""

    label: ClassVar[str] = "Provider"
    default_model: ClassVar[str] = ""
    default_endpoint: ClassVar[str] = ""
    always_stream: ClassVar[bool] = True

    # Names of the settings fields that hold this backend's credentials / endpoint override.
    api_key_setting: ClassVar[str] = ""
    endpoint_setting: ClassVar[str] = ""

    def __init__(
        self,
        model: Optional[str] = None,
        *,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        timeout: float = 600.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.model = model or self.default_model
        self.api_key = api_key
        self.endpoint = endpoint or self.default_endpoint
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()

    # ------------------------------------------------------------------ #
    # Backend-specific hooks
    # ------------------------------------------------------------------ #
    @abstractmethod
    def build_request(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolSchema],
        *,
        tool_choice: ToolChoice,
        stream: bool,
    ) -> Dict[str, Any]:
        """Return the JSON body for one completion request."""

    @abstractmethod
    def parse_response(self, data: Dict[str, Any]) -> ChatResponse:
        """Normalize a non-streaming JSON response body."""

    @abstractmethod
    async def parse_stream(
        self,
        events: AsyncIterator[ServerSentEvent],
        on_text_chunk: Optional[OnTextChunk],
    ) -> ChatResponse:
        """Consume a server-sent-event stream, forwarding text deltas as they arrive."""

    def build_headers(self) -> Dict[str, str]:
        """Headers sent with every request (subclasses add protocol-version headers)."""
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def wants_stream(self, on_text_chunk: Optional[OnTextChunk]) -> bool:
        """Whether to request a streaming response."""
        return self.always_stream or on_text_chunk is not None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolSchema],
        on_text_chunk: Optional[OnTextChunk] = None,
        *,
        cancel: Optional[CancelSignal] = None,
        on_retry: Optional[OnRetry] = None,
        tool_choice: ToolChoice = "auto",
    ) -> ChatResponse:
        """
        Request one completion.

        Parameters
        ----------
        messages:
            The full conversation in internal form.
        tools:
            Tool schemas to advertise to the model.
        on_text_chunk:
            Called with every text delta as soon as it is decoded.
        cancel:
            Aborts the in-flight request (and any remaining retries) once raised.
        on_retry:
            Called with ``(attempt, max_retries, error_text)`` before each backoff sleep.
        tool_choice:
            ``"auto"``, ``"required"`` or ``"none"``.

        Raises
        ------
        AbortedError
            If *cancel* was raised before or during the call.
        ProtocolError
            If the backend returned something that cannot be normalized.
        ProviderError
            If every attempt failed with a transport error.
        """
        stream = self.wants_stream(on_text_chunk)
        body = self.build_request(messages, tools, tool_choice=tool_choice, stream=stream)

        for attempt in range(self.max_retries):
            if cancel is not None:
                cancel.raise_if_cancelled()
            try:
                return await self._race(self._send(body, stream, on_text_chunk), cancel)
            except ProtocolError:
                raise
            except (httpx.HTTPError, httpx.StreamError, ProviderError) as exc:
                error_text = str(exc) or exc.__class__.__name__
                if attempt == self.max_retries - 1:
                    raise ProviderError(
                        f"Failed to get chat completion after {self.max_retries} attempts: "
                        f"{error_text}"
                    ) from exc

                delay = self.retry_base_delay * (2**attempt)
                logger.info(
                    "%s request failed, retrying in %.1f seconds (attempt %d/%d): %s",
                    self.label,
                    delay,
                    attempt + 1,
                    self.max_retries,
                    error_text,
                )
                if on_retry is not None:
                    on_retry(attempt + 1, self.max_retries, error_text)
                await self._race(asyncio.sleep(delay), cancel)

        raise ProviderError("Failed to get chat completion after max retries")  # pragma: no cover

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    async def _send(
        self, body: Dict[str, Any], stream: bool, on_text_chunk: Optional[OnTextChunk]
    ) -> ChatResponse:
        headers = self.build_headers()
        if stream:
            headers["Accept"] = "text/event-stream"
            async with self._client.stream("POST", self.endpoint, json=body, headers=headers) as resp:
                if not resp.is_success:
                    detail = (await resp.aread()).decode("utf-8", errors="replace")
                    raise ProviderError(f"{self.label} API error {resp.status_code}: {detail}")
                return await self.parse_stream(iter_sse_events(resp.aiter_text()), on_text_chunk)

        resp = await self._client.post(self.endpoint, json=body, headers=headers)
        if not resp.is_success:
            raise ProviderError(f"{self.label} API error {resp.status_code}: {resp.text}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProtocolError(f"{self.label} returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise ProtocolError(f"{self.label} returned a JSON body that is not an object")
        return self.parse_response(data)

    @staticmethod
    async def _race(work: Awaitable[T], cancel: Optional[CancelSignal]) -> T:
        """Await *work*, abandoning it as soon as *cancel* is raised."""
        return await race(work, cancel)


def collect_text(parts: List[str]) -> Optional[str]:
    """Join streamed text fragments; ``None`` when the model produced no text."""
    text = "".join(parts)
    return text or None
