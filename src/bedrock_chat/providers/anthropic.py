"""Anthropic Claude codecs: legacy text completions and the Messages API."""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING, Any

from bedrock_chat.errors import DecodeError
from bedrock_chat.providers.base import ConversationStyle, ProviderTag, prompt_text
from bedrock_chat.providers.models import (
    ChunkResult,
    ImageBlock,
    Message,
    Role,
    TextBlock,
)

if TYPE_CHECKING:
    from bedrock_chat.providers.models import GenerationParams

# Vendor prompting convention for text completions. The exact bytes matter to
# the remote model.
LEGACY_PROMPT_PREFIX = "Human: \n\nHuman: "
LEGACY_PROMPT_SUFFIX = "\n\nAssistant:"
LEGACY_STOP_SEQUENCE = "\n\nHuman:"

BEDROCK_ANTHROPIC_VERSION = "bedrock-2023-05-31"


class ClaudeLegacyCodec:
    """Claude text completions (``prompt`` / ``completion``)."""

    tag = ProviderTag.CLAUDE_LEGACY
    style = ConversationStyle.LEGACY

    def encode(
        self,
        prompt: str | list[Message],
        params: GenerationParams,
        *,
        streaming: bool = False,
    ) -> dict[str, Any]:
        """Frame the prompt with Human/Assistant markers."""
        _ = streaming
        text = prompt_text(prompt)
        return {
            "prompt": LEGACY_PROMPT_PREFIX + text + LEGACY_PROMPT_SUFFIX,
            "max_tokens_to_sample": params.max_tokens,
            "temperature": params.temperature,
            "top_k": params.top_k if params.top_k is not None else 250,
            "top_p": params.top_p,
            "stop_sequences": list(params.stop_sequences or (LEGACY_STOP_SEQUENCE,)),
        }

    def decode_chunk(self, payload: dict[str, Any]) -> ChunkResult:
        completion = payload.get("completion")
        if not isinstance(completion, str):
            raise DecodeError("claude chunk has no 'completion' string")
        return ChunkResult(text=completion)

    def decode_response(self, payload: dict[str, Any]) -> str:
        completion = payload.get("completion")
        if not isinstance(completion, str):
            raise DecodeError("claude response has no 'completion' string")
        return completion


class ClaudeMessagesCodec:
    """Claude Messages API (role-tagged content blocks)."""

    tag = ProviderTag.CLAUDE_MESSAGES
    style = ConversationStyle.MESSAGES

    def __init__(self, system: str | None = None) -> None:
        self.system = system

    def encode(
        self,
        prompt: str | list[Message],
        params: GenerationParams,
        *,
        streaming: bool = False,
    ) -> dict[str, Any]:
        """Serialize the message list as Anthropic content blocks."""
        _ = streaming
        history = [Message.user(prompt)] if isinstance(prompt, str) else prompt

        messages: list[dict[str, Any]] = []
        for item in history:
            _append_message(
                messages,
                {
                    "role": item.role.value,
                    "content": [_encode_block(b) for b in item.content],
                },
            )

        body: dict[str, Any] = {
            "anthropic_version": BEDROCK_ANTHROPIC_VERSION,
            "max_tokens": params.max_tokens,
            "messages": messages,
            "temperature": params.temperature,
            "top_p": params.top_p,
        }
        if params.top_k is not None:
            body["top_k"] = params.top_k
        if params.stop_sequences:
            body["stop_sequences"] = list(params.stop_sequences)
        if self.system:
            body["system"] = self.system
        return body

    def decode_chunk(self, payload: dict[str, Any]) -> ChunkResult:
        """Only ``content_block_delta`` chunks carry text.

        A ``message_start`` chunk reports the role of the reply; every other
        chunk type is a control marker.
        """
        chunk_type = payload.get("type")
        if chunk_type == "content_block_delta":
            delta = payload.get("delta")
            text = delta.get("text") if isinstance(delta, dict) else None
            if not isinstance(text, str):
                raise DecodeError("content_block_delta chunk has no delta.text")
            return ChunkResult(text=text)
        if chunk_type == "message_start":
            message = payload.get("message")
            role = message.get("role") if isinstance(message, dict) else None
            return ChunkResult(role=_parse_role(role))
        if not isinstance(chunk_type, str):
            raise DecodeError("messages chunk has no 'type'")
        return ChunkResult()

    def decode_response(self, payload: dict[str, Any]) -> str:
        content = payload.get("content")
        if not isinstance(content, list):
            raise DecodeError("messages response has no 'content' list")
        text_parts = [
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        return "\n\n".join(text_parts)


def _parse_role(role: Any) -> Role | None:
    if role is None:
        return None
    try:
        return Role(role)
    except ValueError:
        return None


def _encode_block(block: TextBlock | ImageBlock) -> dict[str, Any]:
    if isinstance(block, ImageBlock):
        return {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": block.mime_type,
                "data": base64.b64encode(block.data).decode("ascii"),
            },
        }
    return {"type": "text", "text": block.text}


def _append_message(messages: list[dict[str, Any]], msg: dict[str, Any]) -> None:
    """Append *msg*, merging into the previous message when roles match.

    Anthropic requires strict user/assistant alternation, so consecutive
    same-role messages (e.g. a reloaded history followed by a new prompt)
    are merged into a single message.
    """
    if messages and messages[-1]["role"] == msg["role"]:
        messages[-1]["content"] = messages[-1]["content"] + msg["content"]
    else:
        messages.append(msg)
