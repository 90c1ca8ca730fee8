"""Provider codecs, one per provider tag."""

from __future__ import annotations

from bedrock_chat.errors import UnsupportedProviderError

from .ai21 import JurassicCodec
from .amazon import TitanCodec
from .anthropic import ClaudeLegacyCodec, ClaudeMessagesCodec
from .base import ConversationStyle, ProviderCodec, ProviderTag
from .cohere import CohereCommandCodec
from .meta import LlamaCodec
from .stability import StabilityImageCodec

_CODECS: dict[ProviderTag, type[ProviderCodec]] = {
    ProviderTag.CLAUDE_LEGACY: ClaudeLegacyCodec,
    ProviderTag.CLAUDE_MESSAGES: ClaudeMessagesCodec,
    ProviderTag.COMMAND: CohereCommandCodec,
    ProviderTag.JURASSIC: JurassicCodec,
    ProviderTag.LLAMA: LlamaCodec,
    ProviderTag.TITAN: TitanCodec,
    ProviderTag.STABILITY_IMAGE: StabilityImageCodec,
}


def get_codec(tag: ProviderTag | str, *, system: str | None = None) -> ProviderCodec:
    """Return a fresh codec for *tag*.

    *system* is the system prompt for the Messages API; other request styles
    have no slot for it and ignore it.

    Raises:
        UnsupportedProviderError: If *tag* is not a known provider tag.
    """
    try:
        key = ProviderTag(tag)
    except ValueError:
        raise UnsupportedProviderError(
            f"Unknown provider tag: {tag!r}",
            hint=f"Supported: {', '.join(t.value for t in ProviderTag)}",
        ) from None
    codec_cls = _CODECS.get(key)
    if codec_cls is None:
        raise UnsupportedProviderError(f"No codec registered for {key.value!r}")
    if key is ProviderTag.CLAUDE_MESSAGES:
        return ClaudeMessagesCodec(system=system)
    return codec_cls()


__all__ = [
    "ClaudeLegacyCodec",
    "ClaudeMessagesCodec",
    "CohereCommandCodec",
    "ConversationStyle",
    "JurassicCodec",
    "LlamaCodec",
    "ProviderCodec",
    "ProviderTag",
    "StabilityImageCodec",
    "TitanCodec",
    "get_codec",
]
