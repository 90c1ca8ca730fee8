"""Stream decoding and reply assembly.

A ``ReplyAssembler`` is bound to one provider tag. Each ``assemble()`` call
pulls events from an open ``EventSource`` in order, hands every text fragment
to the sink before reading the next event, and returns an ``AssembledReply``
once the stream ends.

State machine::

    IDLE -> OPEN -> CLOSED_SUCCESS
                 -> CLOSED_ERROR

Per-chunk decode failures are logged and skipped. A transport error recorded
on the source is raised only after the last event has been consumed. The
source is closed on every exit path.
"""

from __future__ import annotations

from enum import Enum
import logging
from typing import TYPE_CHECKING, Any, Protocol

from bedrock_chat.errors import DecodeError, InternalError
from bedrock_chat.payload import decode_json
from bedrock_chat.providers import get_codec
from bedrock_chat.providers.base import ConversationStyle, ProviderTag
from bedrock_chat.providers.models import (
    AssembledReply,
    ChunkEvent,
    ContentDeltaEvent,
    ControlEvent,
    Message,
    MessageStartEvent,
    Role,
    TextBlock,
    UnknownEvent,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from bedrock_chat.errors import TransportError
    from bedrock_chat.providers.models import StreamEvent

log = logging.getLogger(__name__)

_METRICS_KEY = "amazon-bedrock-invocationMetrics"


class DecoderState(str, Enum):
    """Lifecycle of one decode pass."""

    IDLE = "idle"
    OPEN = "open"
    CLOSED_SUCCESS = "closed-success"
    CLOSED_ERROR = "closed-error"


class EventStream(Protocol):
    """The decoder's view of an event source."""

    error: TransportError | None

    def __iter__(self) -> Iterator[StreamEvent]: ...

    def close(self) -> None: ...


def _discard(_text: str) -> None:
    return None


class ReplyAssembler:
    """Consume one event stream per turn and assemble the reply."""

    def __init__(
        self,
        tag: ProviderTag | str,
        sink: Callable[[str], None] | None = None,
    ) -> None:
        self.codec = get_codec(tag)
        self.tag = ProviderTag(tag)
        self.sink = sink or _discard
        self.state = DecoderState.IDLE
        self._parts: list[str] = []
        self._decode_errors: list[str] = []
        self._unknown_events = 0
        self._role = Role.ASSISTANT
        self._usage: dict[str, int] = {}

    def reset(self) -> None:
        """Drop accumulated state and return to IDLE."""
        if self.state is DecoderState.OPEN:
            raise InternalError("Cannot reset a decoder while its stream is open")
        self._parts = []
        self._decode_errors = []
        self._unknown_events = 0
        self._role = Role.ASSISTANT
        self._usage = {}
        self.state = DecoderState.IDLE

    def assemble(self, source: EventStream) -> AssembledReply:
        """Drain *source* into an AssembledReply.

        Raises:
            TransportError: If the source recorded a transport failure.
            InternalError: If called while another stream is open.
        """
        if self.state is DecoderState.OPEN:
            raise InternalError("Decoder is already consuming a stream")
        self.reset()
        self.state = DecoderState.OPEN
        try:
            for event in source:
                self._handle(event)
        except BaseException:
            self.state = DecoderState.CLOSED_ERROR
            raise
        finally:
            source.close()

        if source.error is not None:
            self.state = DecoderState.CLOSED_ERROR
            raise source.error

        self.state = DecoderState.CLOSED_SUCCESS
        return self._build_reply()

    def assemble_body(self, body: bytes) -> AssembledReply:
        """Build a reply from a complete non-streaming response body.

        The whole text is handed to the sink in a single call. Unlike a
        stream chunk, an undecodable body is fatal for the turn.
        """
        self.reset()
        try:
            text = self.codec.decode_response(decode_json(body))
        except DecodeError:
            self.state = DecoderState.CLOSED_ERROR
            raise
        self._emit(text)
        self.state = DecoderState.CLOSED_SUCCESS
        return self._build_reply()

    # --- event handling ---

    def _handle(self, event: StreamEvent | Any) -> None:
        if isinstance(event, ChunkEvent):
            self._handle_chunk(event.data)
        elif isinstance(event, ContentDeltaEvent):
            self._emit(event.text)
        elif isinstance(event, MessageStartEvent):
            self._role = event.role
        elif isinstance(event, ControlEvent):
            if event.tag == "metadata" and isinstance(event.payload, dict):
                self._record_usage(event.payload.get("usage"))
        elif isinstance(event, UnknownEvent):
            self._passthrough(event.raw)
        else:
            self._passthrough(event)

    def _handle_chunk(self, data: bytes) -> None:
        try:
            payload = decode_json(data)
            result = self.codec.decode_chunk(payload)
        except DecodeError as e:
            log.warning("unable to decode response chunk: %s", e)
            self._decode_errors.append(str(e))
            return

        self._record_metrics(payload.get(_METRICS_KEY))
        if result.role is not None:
            self._role = result.role
        if result.text:
            self._emit(result.text)

    def _emit(self, text: str) -> None:
        self._parts.append(text)
        self.sink(text)

    def _passthrough(self, raw: Any) -> None:
        self._unknown_events += 1
        if isinstance(raw, str):
            text = raw
        elif isinstance(raw, (bytes, bytearray)):
            text = bytes(raw).decode("utf-8", errors="replace")
        else:
            text = str(raw)
        log.debug("passing through unrecognized stream event: %r", raw)
        self.sink(text)

    def _record_metrics(self, metrics: Any) -> None:
        if not isinstance(metrics, dict):
            return
        input_tokens = metrics.get("inputTokenCount")
        output_tokens = metrics.get("outputTokenCount")
        if isinstance(input_tokens, int) and isinstance(output_tokens, int):
            self._usage = {
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "total_tokens": input_tokens + output_tokens,
            }

    def _record_usage(self, usage: Any) -> None:
        if not isinstance(usage, dict):
            return
        self._record_metrics(
            {
                "inputTokenCount": usage.get("inputTokens"),
                "outputTokenCount": usage.get("outputTokens"),
            }
        )

    def _build_reply(self) -> AssembledReply:
        text = "".join(self._parts)
        message = None
        if self.codec.style is ConversationStyle.MESSAGES:
            message = Message(self._role, (TextBlock(text),))
        return AssembledReply(
            text=text,
            provider=self.tag.value,
            message=message,
            decode_errors=tuple(self._decode_errors),
            unknown_events=self._unknown_events,
            usage=dict(self._usage),
        )
