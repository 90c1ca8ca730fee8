"""AI21 Jurassic codec (request/response only)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from bedrock_chat.errors import DecodeError
from bedrock_chat.providers.base import (
    ConversationStyle,
    NonStreamingCodec,
    ProviderTag,
    prompt_text,
)

if TYPE_CHECKING:
    from bedrock_chat.providers.models import GenerationParams, Message


class JurassicCodec(NonStreamingCodec):
    """AI21 Jurassic-2 completions."""

    tag = ProviderTag.JURASSIC
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
            "topP": params.top_p,
            "maxTokens": params.max_tokens,
            "stopSequences": list(params.stop_sequences),
        }

    def decode_response(self, payload: dict[str, Any]) -> str:
        try:
            text = payload["completions"][0]["data"]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise DecodeError(f"jurassic response missing completion text: {e}") from e
        if not isinstance(text, str):
            raise DecodeError("jurassic completion text is not a string")
        return text
