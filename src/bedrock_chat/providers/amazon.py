"""Amazon Titan text codec (request/response only)."""

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


class TitanCodec(NonStreamingCodec):
    """Amazon Titan Text (``results[0].outputText``)."""

    tag = ProviderTag.TITAN
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
            "inputText": prompt_text(prompt),
            "textGenerationConfig": {
                "temperature": params.temperature,
                "topP": params.top_p,
                "maxTokenCount": params.max_tokens,
                "stopSequences": list(params.stop_sequences),
            },
        }

    def decode_response(self, payload: dict[str, Any]) -> str:
        results = payload.get("results")
        if not isinstance(results, list) or not results:
            raise DecodeError("titan response has no 'results'")
        first = results[0]
        text = first.get("outputText") if isinstance(first, dict) else None
        if not isinstance(text, str):
            raise DecodeError("titan result has no 'outputText' string")
        return text
