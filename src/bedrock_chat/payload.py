"""Payload encoding and non-streaming response decoding.

Both directions are pure functions of their inputs; the provider tag selects
the codec.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from bedrock_chat.errors import DecodeError
from bedrock_chat.providers import get_codec

if TYPE_CHECKING:
    from bedrock_chat.providers.base import ProviderTag
    from bedrock_chat.providers.models import GenerationParams, ImageParams, Message


def encode(
    tag: ProviderTag | str,
    prompt: str | list[Message],
    params: GenerationParams | ImageParams,
    *,
    streaming: bool = False,
    system: str | None = None,
) -> bytes:
    """Produce the provider-specific JSON request body.

    *system* is forwarded as the Messages API system prompt.

    Raises:
        UnsupportedProviderError: If *tag* is not a known provider tag.
    """
    body = get_codec(tag, system=system).encode(prompt, params, streaming=streaming)
    return json.dumps(body).encode("utf-8")


def decode_json(data: bytes | str) -> dict[str, Any]:
    """Parse a JSON object, mapping every failure onto ``DecodeError``."""
    try:
        payload = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"unable to decode response: {e}") from e
    if not isinstance(payload, dict):
        raise DecodeError(f"expected a JSON object, got {type(payload).__name__}")
    return payload


def decode_response(tag: ProviderTag | str, body: bytes) -> str:
    """Extract the full reply text from a non-streaming response body."""
    return get_codec(tag).decode_response(decode_json(body))
