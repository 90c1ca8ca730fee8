"""Stability AI image generation codec (single-shot, non-streaming)."""

from __future__ import annotations

import base64
import binascii
from typing import TYPE_CHECKING, Any

from bedrock_chat.errors import DecodeError
from bedrock_chat.providers.base import (
    ConversationStyle,
    NonStreamingCodec,
    ProviderTag,
    prompt_text,
)

if TYPE_CHECKING:
    from bedrock_chat.providers.models import ImageParams, Message


class StabilityImageCodec(NonStreamingCodec):
    """Stable Diffusion XL text-to-image."""

    tag = ProviderTag.STABILITY_IMAGE
    style = ConversationStyle.NONE

    def encode(
        self,
        prompt: str | list[Message],
        params: ImageParams,
        *,
        streaming: bool = False,
    ) -> dict[str, Any]:
        _ = streaming
        return {
            "text_prompts": [{"text": prompt_text(prompt)}],
            "cfg_scale": params.scale,
            "steps": params.steps,
            "seed": params.seed,
        }

    def decode_response(self, payload: dict[str, Any]) -> str:
        """Return the first artifact's base64 string."""
        artifacts = payload.get("artifacts")
        if not isinstance(artifacts, list) or not artifacts:
            raise DecodeError("stability response has no 'artifacts'")
        first = artifacts[0]
        encoded = first.get("base64") if isinstance(first, dict) else None
        if not isinstance(encoded, str):
            raise DecodeError("stability artifact has no 'base64' string")
        return encoded

    def decode_image(self, payload: dict[str, Any]) -> bytes:
        """Decode the first artifact into raw image bytes."""
        encoded = self.decode_response(payload)
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"stability artifact is not valid base64: {e}") from e
