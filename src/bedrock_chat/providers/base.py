"""Provider protocol: one encode and one decode function per provider tag."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from bedrock_chat.errors import StreamingUnsupportedError

if TYPE_CHECKING:
    from bedrock_chat.providers.models import ChunkResult, Message


class ProviderTag(str, Enum):
    """Model family whose request/response JSON shape we must speak."""

    CLAUDE_LEGACY = "claude-legacy"
    CLAUDE_MESSAGES = "claude-messages"
    COMMAND = "command"
    JURASSIC = "jurassic"
    LLAMA = "llama"
    TITAN = "titan"
    STABILITY_IMAGE = "stability-image"


class ConversationStyle(str, Enum):
    """How turn history is threaded into the next request."""

    LEGACY = "legacy"  # one growing string with role markers
    MESSAGES = "messages"  # ordered role-tagged message list
    NONE = "none"  # single-shot only


@runtime_checkable
class ProviderCodec(Protocol):
    """Minimal codec protocol: encode a request, decode chunks and bodies."""

    tag: ProviderTag
    style: ConversationStyle

    def encode(
        self,
        prompt: str | list[Message],
        params: Any,
        *,
        streaming: bool = False,
    ) -> dict[str, Any]:
        """Build the provider-specific request body."""
        ...

    def decode_chunk(self, payload: dict[str, Any]) -> ChunkResult:
        """Extract the text fragment from one decoded stream chunk."""
        ...

    def decode_response(self, payload: dict[str, Any]) -> str:
        """Extract the full reply text from a non-streaming response body."""
        ...


class NonStreamingCodec:
    """Mixin for providers that only support the request/response path."""

    tag: ProviderTag

    def decode_chunk(self, payload: dict[str, Any]) -> ChunkResult:
        """Raise because this provider never produces stream chunks."""
        _ = payload
        raise StreamingUnsupportedError(
            f"Provider {self.tag.value!r} does not support streaming",
            hint="Use --no-stream with this model.",
        )


def prompt_text(prompt: str | list[Message]) -> str:
    """Collapse a prompt argument into the single string legacy bodies need."""
    if isinstance(prompt, str):
        return prompt
    return "\n\n".join(m.text for m in prompt if m.text)
