"""Domain models shared by the payload, transport and stream layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Speaker of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class GenerationParams:
    """Sampling parameters attached to a single request.

    Values are passed through to the hosting service untouched; range checks
    are the service's job.
    """

    temperature: float
    top_p: float
    max_tokens: int
    top_k: int | None = None
    stop_sequences: tuple[str, ...] = ()


@dataclass(frozen=True)
class ImageParams:
    """Parameters for single-shot image generation."""

    scale: float = 10.0
    steps: int = 10
    seed: int = 0


@dataclass(frozen=True)
class TextBlock:
    """A text content block."""

    text: str


@dataclass(frozen=True)
class ImageBlock:
    """An inline image content block."""

    data: bytes
    mime_type: str


ContentBlock = TextBlock | ImageBlock


@dataclass(frozen=True)
class Message:
    """A role-tagged conversational message."""

    role: Role
    content: tuple[ContentBlock, ...] = ()

    @classmethod
    def user(cls, text: str, *, image: ImageBlock | None = None) -> Message:
        """Build a user message with optional image attachment."""
        blocks: list[ContentBlock] = []
        if image is not None:
            blocks.append(image)
        blocks.append(TextBlock(text))
        return cls(Role.USER, tuple(blocks))

    @classmethod
    def assistant(cls, text: str) -> Message:
        """Build an assistant message holding a single text block."""
        return cls(Role.ASSISTANT, (TextBlock(text),))

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks."""
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))


# --- Stream events ---


@dataclass(frozen=True)
class ChunkEvent:
    """A provider-encoded JSON fragment."""

    data: bytes


@dataclass(frozen=True)
class MessageStartEvent:
    """Start of a role-tagged message."""

    role: Role


@dataclass(frozen=True)
class ContentDeltaEvent:
    """An already-decoded text fragment."""

    text: str


@dataclass(frozen=True)
class ControlEvent:
    """A recognized frame that carries no text (stop markers, metadata)."""

    tag: str
    payload: Any = None


@dataclass(frozen=True)
class UnknownEvent:
    """A frame the decoder does not recognize; passed through verbatim."""

    tag: str
    raw: Any = None


StreamEvent = ChunkEvent | MessageStartEvent | ContentDeltaEvent | ControlEvent | UnknownEvent


@dataclass(frozen=True)
class ChunkResult:
    """What a provider codec extracted from one chunk.

    ``text`` is None for chunks that carry no text (e.g. stop markers).
    """

    text: str | None = None
    role: Role | None = None


@dataclass(frozen=True)
class AssembledReply:
    """Terminal output of one decode pass."""

    text: str
    provider: str
    message: Message | None = None
    decode_errors: tuple[str, ...] = ()
    unknown_events: int = 0
    usage: dict[str, int] = field(default_factory=dict)
