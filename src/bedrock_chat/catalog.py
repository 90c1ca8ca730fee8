"""Static model capability table.

Maps a Bedrock model identifier to its provider tag and the features the
client gates on (streaming, vision, image output).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from bedrock_chat.errors import (
    ConfigurationError,
    StreamingUnsupportedError,
    VisionUnsupportedError,
)
from bedrock_chat.providers.base import ProviderTag
from bedrock_chat.providers.models import GenerationParams, ImageParams

ContentType = Literal["text", "image"]


@dataclass(frozen=True)
class ModelInfo:
    """Capability record for one hosted model."""

    model_id: str
    family: ProviderTag
    shorthand: str
    content_type: ContentType = "text"
    base_model: bool = False
    supports_streaming: bool = True
    supports_vision: bool = False

    def require_streaming(self) -> None:
        """Fail fast when this model cannot stream."""
        if not self.supports_streaming:
            raise StreamingUnsupportedError(
                f"Model {self.model_id} does not support streaming",
                hint="Re-run with --no-stream.",
            )

    def require_vision(self) -> None:
        """Fail fast when this model cannot accept image attachments."""
        if not self.supports_vision:
            raise VisionUnsupportedError(
                f"Model {self.model_id} does not accept image attachments",
                hint="Pick a vision model, e.g. anthropic.claude-3-sonnet-20240229-v1:0.",
            )


MODELS: tuple[ModelInfo, ...] = (
    ModelInfo(
        "anthropic.claude-3-sonnet-20240229-v1:0",
        ProviderTag.CLAUDE_MESSAGES,
        "claude3",
        supports_vision=True,
    ),
    ModelInfo(
        "anthropic.claude-3-haiku-20240307-v1:0",
        ProviderTag.CLAUDE_MESSAGES,
        "claude3",
        base_model=True,
        supports_vision=True,
    ),
    ModelInfo("anthropic.claude-v2:1", ProviderTag.CLAUDE_LEGACY, "claude"),
    ModelInfo("anthropic.claude-v2", ProviderTag.CLAUDE_LEGACY, "claude"),
    ModelInfo(
        "anthropic.claude-instant-v1",
        ProviderTag.CLAUDE_LEGACY,
        "claude",
        base_model=True,
    ),
    ModelInfo(
        "ai21.j2-mid-v1",
        ProviderTag.JURASSIC,
        "jurassic",
        base_model=True,
        supports_streaming=False,
    ),
    ModelInfo(
        "ai21.j2-ultra-v1",
        ProviderTag.JURASSIC,
        "jurassic",
        supports_streaming=False,
    ),
    ModelInfo(
        "cohere.command-light-text-v14",
        ProviderTag.COMMAND,
        "command",
        base_model=True,
    ),
    ModelInfo("cohere.command-text-v14", ProviderTag.COMMAND, "command"),
    ModelInfo(
        "meta.llama2-13b-chat-v1",
        ProviderTag.LLAMA,
        "llama",
        base_model=True,
    ),
    ModelInfo("meta.llama2-70b-chat-v1", ProviderTag.LLAMA, "llama"),
    ModelInfo(
        "amazon.titan-text-lite-v1",
        ProviderTag.TITAN,
        "titan",
        base_model=True,
        supports_streaming=False,
    ),
    ModelInfo(
        "amazon.titan-text-express-v1",
        ProviderTag.TITAN,
        "titan",
        supports_streaming=False,
    ),
    ModelInfo(
        "stability.stable-diffusion-xl-v1",
        ProviderTag.STABILITY_IMAGE,
        "stability",
        content_type="image",
        base_model=True,
        supports_streaming=False,
    ),
    ModelInfo(
        "stability.stable-diffusion-xl-v0",
        ProviderTag.STABILITY_IMAGE,
        "stability",
        content_type="image",
        supports_streaming=False,
    ),
)

DEFAULT_PARAMS: dict[ProviderTag, GenerationParams] = {
    ProviderTag.CLAUDE_LEGACY: GenerationParams(
        temperature=1.0, top_p=0.999, max_tokens=500, top_k=250
    ),
    ProviderTag.CLAUDE_MESSAGES: GenerationParams(
        temperature=1.0, top_p=0.999, max_tokens=500, top_k=250
    ),
    ProviderTag.JURASSIC: GenerationParams(temperature=1.0, top_p=0.999, max_tokens=500),
    ProviderTag.COMMAND: GenerationParams(
        temperature=0.75, top_p=0.01, max_tokens=400, top_k=0
    ),
    ProviderTag.LLAMA: GenerationParams(temperature=0.5, top_p=0.9, max_tokens=512),
    ProviderTag.TITAN: GenerationParams(temperature=0.0, top_p=0.9, max_tokens=512),
}

DEFAULT_IMAGE_PARAMS = ImageParams()


def get_model(model_id: str) -> ModelInfo:
    """Look up a model by exact id, or by family shorthand (its base model).

    Raises:
        ConfigurationError: If neither an id nor a shorthand matches.
    """
    for info in MODELS:
        if info.model_id == model_id:
            return info
    for info in MODELS:
        if info.shorthand == model_id and info.base_model:
            return info
    raise ConfigurationError(
        f"Model id not currently supported: {model_id}",
        hint="Run `chat-cli models` to see supported ids and shorthands.",
    )


def default_params(tag: ProviderTag) -> GenerationParams:
    """Per-family defaults used when configuration leaves a field unset."""
    try:
        return DEFAULT_PARAMS[tag]
    except KeyError:
        raise ConfigurationError(
            f"Provider {tag.value!r} does not take text generation parameters"
        ) from None
