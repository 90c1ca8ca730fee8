"""Transport invoker: Bedrock runtime calls and the live event source.

The boto3 client is created lazily so that importing this module (and
constructing a transport in tests) never touches AWS configuration.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

from bedrock_chat.errors import InternalError, TransportError
from bedrock_chat.providers._errors import (
    STREAM_EXCEPTION_STATUS,
    stream_exception_error,
    wrap_transport_error,
)
from bedrock_chat.providers.models import (
    ChunkEvent,
    ContentDeltaEvent,
    ControlEvent,
    MessageStartEvent,
    Role,
    UnknownEvent,
)
from bedrock_chat.retry import RetryPolicy, retry_call

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from bedrock_chat.providers.base import ProviderTag
    from bedrock_chat.providers.models import StreamEvent

log = logging.getLogger(__name__)

_ACCEPT = "*/*"
_CONTENT_TYPE = "application/json"

_CONTROL_TAGS = frozenset(
    {"messageStop", "contentBlockStart", "contentBlockStop", "metadata"}
)


class EventSource:
    """Single-consumer iterator of stream events over an SDK event stream.

    Transport failures never escape iteration: they end the stream and are
    recorded on ``error`` for the consumer to check once the last event has
    been read. ``close()`` is idempotent and releases the underlying stream.
    """

    def __init__(self, frames: Iterable[Any], *, provider: str = "bedrock") -> None:
        self._frames = frames
        self._provider = provider
        self._claimed = False
        self.closed = False
        self.error: TransportError | None = None

    def __iter__(self) -> Iterator[StreamEvent]:
        if self._claimed:
            raise InternalError("EventSource already has a consumer")
        self._claimed = True
        return self._events()

    def _events(self) -> Iterator[StreamEvent]:
        try:
            for frame in self._frames:
                if self.closed:
                    return
                if isinstance(frame, dict) and len(frame) == 1:
                    tag, raw = next(iter(frame.items()))
                    if tag in STREAM_EXCEPTION_STATUS:
                        self.error = stream_exception_error(
                            tag, raw, provider=self._provider
                        )
                        return
                    yield to_stream_event(tag, raw)
                elif isinstance(frame, dict):
                    yield UnknownEvent("frame", frame)
                else:
                    # Already-typed events pass through unchanged.
                    yield frame
        except Exception as e:
            self.error = wrap_transport_error(
                e, provider=self._provider, phase="stream"
            )

    def close(self) -> None:
        """Release the underlying stream; safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        closer = getattr(self._frames, "close", None)
        if callable(closer):
            closer()


def to_stream_event(tag: str, raw: Any) -> StreamEvent:
    """Map one SDK stream frame onto a typed stream event."""
    if tag == "chunk":
        data = raw.get("bytes") if isinstance(raw, dict) else None
        if isinstance(data, (bytes, bytearray)):
            return ChunkEvent(bytes(data))
        if isinstance(data, str):
            return ChunkEvent(data.encode("utf-8"))
        return UnknownEvent(tag, raw)
    if tag == "messageStart":
        role = raw.get("role") if isinstance(raw, dict) else None
        try:
            return MessageStartEvent(Role(role))
        except ValueError:
            return UnknownEvent(tag, raw)
    if tag == "contentBlockDelta":
        delta = raw.get("delta") if isinstance(raw, dict) else None
        text = delta.get("text") if isinstance(delta, dict) else None
        if isinstance(text, str):
            return ContentDeltaEvent(text)
        return ControlEvent(tag, raw)
    if tag in _CONTROL_TAGS:
        return ControlEvent(tag, raw)
    return UnknownEvent(tag, raw)


class Transport(Protocol):
    """What the session and the CLI need from a transport."""

    def invoke(
        self,
        tag: ProviderTag,
        model_id: str,
        body: bytes,
        *,
        streaming: bool,
    ) -> EventSource | bytes:
        """Send *body* to *model_id*; return an event source or the full body."""
        ...

    def list_foundation_models(self) -> list[dict[str, Any]]:
        """Return the model summaries the hosting service offers."""
        ...


class BedrockTransport:
    """Amazon Bedrock runtime transport."""

    def __init__(
        self,
        region: str,
        *,
        profile: str | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        """Initialize with the region (and optional named profile) to call."""
        self.region = region
        self.profile = profile
        self.retry = retry or RetryPolicy()
        self._session: Any = None
        self._runtime: Any = None
        self._control: Any = None

    def _get_session(self) -> Any:
        if self._session is None:
            try:
                import boto3
            except ImportError as e:
                raise TransportError(
                    "boto3 package not installed",
                    hint="pip install boto3",
                ) from e
            self._session = boto3.Session(
                profile_name=self.profile, region_name=self.region
            )
        return self._session

    def _get_runtime(self) -> Any:
        """Lazily initialize and return the ``bedrock-runtime`` client."""
        if self._runtime is None:
            self._runtime = self._get_session().client("bedrock-runtime")
        return self._runtime

    def _get_control(self) -> Any:
        """Lazily initialize and return the ``bedrock`` control-plane client."""
        if self._control is None:
            self._control = self._get_session().client("bedrock")
        return self._control

    def invoke(
        self,
        tag: ProviderTag,
        model_id: str,
        body: bytes,
        *,
        streaming: bool,
    ) -> EventSource | bytes:
        """Invoke a model, streaming or not.

        Returns:
            An ``EventSource`` owned by the caller when *streaming*, else the
            complete response body.

        Raises:
            TransportError: If the call cannot be established.
        """
        provider = tag.value
        kwargs = {
            "modelId": model_id,
            "body": body,
            "accept": _ACCEPT,
            "contentType": _CONTENT_TYPE,
        }
        log.debug("Invoking %s (streaming=%s, %d bytes)", model_id, streaming, len(body))

        def _call() -> Any:
            client = self._get_runtime()
            try:
                if streaming:
                    return client.invoke_model_with_response_stream(**kwargs)
                return client.invoke_model(**kwargs)
            except TransportError:
                raise
            except Exception as e:
                raise wrap_transport_error(
                    e,
                    provider=provider,
                    phase="invoke",
                    message=f"Error from Bedrock invoking {model_id}",
                ) from e

        response = retry_call(_call, policy=self.retry)

        if streaming:
            return EventSource(response["body"], provider=provider)

        stream = response["body"]
        try:
            return stream.read()
        except Exception as e:
            raise wrap_transport_error(e, provider=provider, phase="read") from e
        finally:
            stream.close()

    def list_foundation_models(self) -> list[dict[str, Any]]:
        """Return the model summaries the hosting service offers in this region."""
        try:
            response = self._get_control().list_foundation_models()
        except TransportError:
            raise
        except Exception as e:
            raise wrap_transport_error(
                e, provider="bedrock", phase="list_models"
            ) from e
        summaries = response.get("modelSummaries", [])
        return [s for s in summaries if isinstance(s, dict)]
