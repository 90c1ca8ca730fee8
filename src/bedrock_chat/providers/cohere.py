"""Cohere Command codec."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from bedrock_chat.errors import DecodeError
from bedrock_chat.providers.base import ConversationStyle, ProviderTag, prompt_text
from bedrock_chat.providers.models import ChunkResult

if TYPE_CHECKING:
    from bedrock_chat.providers.models import GenerationParams, Message


class CohereCommandCodec:
    """Cohere Command text generation (``generations[0].text``)."""

    tag = ProviderTag.COMMAND
    style = ConversationStyle.LEGACY

    def encode(
        self,
        prompt: str | list[Message],
        params: GenerationParams,
        *,
        streaming: bool = False,
    ) -> dict[str, Any]:
        """Build a Command body; ``stream`` must match the invoke path."""
        return {
            "prompt": prompt_text(prompt),
            "temperature": params.temperature,
            "p": params.top_p,
            "k": params.top_k if params.top_k is not None else 0,
            "max_tokens": params.max_tokens,
            "stop_sequences": list(params.stop_sequences),
            "return_likelihoods": "NONE",
            "stream": streaming,
        }

    def decode_chunk(self, payload: dict[str, Any]) -> ChunkResult:
        return ChunkResult(text=_first_generation(payload))

    def decode_response(self, payload: dict[str, Any]) -> str:
        return _first_generation(payload)


def _first_generation(payload: dict[str, Any]) -> str:
    generations = payload.get("generations")
    if not isinstance(generations, list) or not generations:
        raise DecodeError("command payload has no 'generations'")
    first = generations[0]
    text = first.get("text") if isinstance(first, dict) else None
    if not isinstance(text, str):
        raise DecodeError("command generation has no 'text' string")
    return text
