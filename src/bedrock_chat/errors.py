"""Exception hierarchy for bedrock-chat."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class ChatError(Exception):
    """Base exception for all bedrock-chat errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(ChatError):
    """Configuration validation or model selection failed."""


class UnsupportedProviderError(ConfigurationError):
    """A provider tag has no registered payload codec."""


class StreamingUnsupportedError(ConfigurationError):
    """Streaming was requested for a model that cannot stream."""


class VisionUnsupportedError(ConfigurationError):
    """An image was attached for a model without vision support."""


class InternalError(ChatError):
    """A bedrock-chat internal error (bug) or invariant violation."""


class DecodeError(ChatError):
    """A single response chunk or body could not be decoded."""


class FileIOError(ChatError):
    """Transcript or image file could not be read or written."""


class TransportError(ChatError):
    """Call to the hosting service failed.

    The transport attaches retry metadata so callers can decide on bounded
    retries without brittle substring matching.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        error_code: str | None = None,
        provider: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.error_code = error_code
        self.provider = provider
        self.phase = phase


class ThrottlingError(TransportError):
    """Request rate exceeded (HTTP 429 / ThrottlingException)."""


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
