"""Meta Llama codec."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from bedrock_chat.errors import DecodeError
from bedrock_chat.providers.base import ConversationStyle, ProviderTag, prompt_text
from bedrock_chat.providers.models import ChunkResult

if TYPE_CHECKING:
    from bedrock_chat.providers.models import GenerationParams, Message


class LlamaCodec:
    """Meta Llama 2 chat (``generation``)."""

    tag = ProviderTag.LLAMA
    style = ConversationStyle.LEGACY

    def encode(
        self,
        prompt: str | list[Message],
        params: GenerationParams,
        *,
        streaming: bool = False,
    ) -> dict[str, Any]:
        _ = streaming
        return {
            "prompt": prompt_text(prompt),
            "temperature": params.temperature,
            "top_p": params.top_p,
            "max_gen_len": params.max_tokens,
        }

    def decode_chunk(self, payload: dict[str, Any]) -> ChunkResult:
        return ChunkResult(text=_generation(payload))

    def decode_response(self, payload: dict[str, Any]) -> str:
        return _generation(payload)


def _generation(payload: dict[str, Any]) -> str:
    generation = payload.get("generation")
    if not isinstance(generation, str):
        raise DecodeError("llama payload has no 'generation' string")
    return generation
