"""Configuration: one frozen Config built at startup and passed explicitly.

Resolution order (later wins):
    defaults < home TOML file < environment (``BEDROCK_CHAT_*``) < overrides

Example:
    config = resolve_config({"model_id": "claude3", "stream": False})
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
import tomllib
from typing import TYPE_CHECKING, Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from bedrock_chat.catalog import DEFAULT_IMAGE_PARAMS, default_params
from bedrock_chat.errors import ConfigurationError
from bedrock_chat.providers.models import GenerationParams, ImageParams
from bedrock_chat.retry import RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Mapping

    from bedrock_chat.providers.base import ProviderTag

log = logging.getLogger(__name__)

ENV_PREFIX = "BEDROCK_CHAT_"
CONFIG_TABLE = "chat-cli"
DEFAULT_CONFIG_PATH = Path("~/.config/chat-cli/config.toml")

# Meta/control variables that steer resolution but aren't config fields
_META_ENV_FIELDS = {"config"}


class Settings(BaseModel):
    """Schema for configuration validation and defaults.

    Generation parameters are type-checked only. Out-of-range values are
    forwarded and rejected by the hosting service.
    """

    model_id: str = Field(default="anthropic.claude-v2", min_length=1)
    region: str = Field(default="us-east-1", min_length=1)
    profile: str | None = None
    stream: bool = True

    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    max_tokens: int | None = None
    stop_sequences: list[str] | None = None
    system: str | None = None

    scale: float | None = None
    steps: int | None = None
    seed: int | None = None

    chats_dir: str = "chats"
    output_dir: str = "."
    abort_on_stream_error: bool = True
    max_attempts: int = Field(default=1, ge=1)

    model_config = {"extra": "ignore"}

    @field_validator("model_id", "region", mode="before")
    @classmethod
    def strip_identifiers(cls, v: Any) -> Any:
        """Trim surrounding whitespace on identifiers."""
        if isinstance(v, str):
            return v.strip()
        return v


@dataclass(frozen=True)
class Config:
    """Immutable configuration passed into the encoder, transport and session."""

    model_id: str = "anthropic.claude-v2"
    region: str = "us-east-1"
    profile: str | None = None
    stream: bool = True
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    max_tokens: int | None = None
    stop_sequences: tuple[str, ...] | None = None
    #: System prompt sent with Messages API requests.
    system: str | None = None
    scale: float | None = None
    steps: int | None = None
    seed: int | None = None
    chats_dir: Path = Path("chats")
    output_dir: Path = Path()
    #: When False, a failed stream aborts only the current turn.
    abort_on_stream_error: bool = True
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def generation_params(self, tag: ProviderTag) -> GenerationParams:
        """Overlay configured values on the provider family's defaults."""
        base = default_params(tag)
        return GenerationParams(
            temperature=self.temperature if self.temperature is not None else base.temperature,
            top_p=self.top_p if self.top_p is not None else base.top_p,
            max_tokens=self.max_tokens if self.max_tokens is not None else base.max_tokens,
            top_k=self.top_k if self.top_k is not None else base.top_k,
            stop_sequences=(
                self.stop_sequences
                if self.stop_sequences is not None
                else base.stop_sequences
            ),
        )

    def image_params(self) -> ImageParams:
        """Overlay configured values on the image generation defaults."""
        base = DEFAULT_IMAGE_PARAMS
        return ImageParams(
            scale=self.scale if self.scale is not None else base.scale,
            steps=self.steps if self.steps is not None else base.steps,
            seed=self.seed if self.seed is not None else base.seed,
        )


# --- Loaders ---


def load_env() -> dict[str, Any]:
    """Read ``BEDROCK_CHAT_*`` variables plus the standard AWS region/profile."""
    config: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX) :].lower()
        if name in _META_ENV_FIELDS:
            continue
        if name == "stop_sequences":
            config[name] = [s for s in value.split(",") if s]
        else:
            config[name] = value

    if "region" not in config:
        region = os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")
        if region:
            config["region"] = region
    if "profile" not in config and os.environ.get("AWS_PROFILE"):
        config["profile"] = os.environ["AWS_PROFILE"]
    return config


def load_file(path: Path | None = None) -> dict[str, Any]:
    """Load the ``[chat-cli]`` table from a TOML config file.

    A missing file is not an error. A file that exists but cannot be parsed
    raises ``ConfigurationError``.
    """
    if path is None:
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
    path = path.expanduser()
    if not path.exists():
        return {}
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(
            f"Unable to read config file {path}: {e}",
            hint="Fix the TOML syntax or pass --config with another file.",
        ) from e
    log.debug("Using config file: %s", path)
    table = data.get(CONFIG_TABLE, {})
    return dict(table) if isinstance(table, dict) else {}


def resolve_config(
    overrides: Mapping[str, Any] | None = None,
    *,
    config_path: Path | None = None,
) -> Config:
    """Merge all configuration layers and validate them into a Config.

    ``None`` values in *overrides* are ignored so unset CLI flags don't mask
    lower layers.
    """
    load_dotenv()

    merged: dict[str, Any] = {}
    merged.update(load_file(config_path))
    merged.update(load_env())
    if overrides:
        merged.update({k: v for k, v in overrides.items() if v is not None})

    try:
        settings = Settings.model_validate(merged)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
        raise ConfigurationError(
            f"Invalid configuration: {fields or e}",
            hint="Check BEDROCK_CHAT_* variables, the config file and CLI flags.",
        ) from e

    return Config(
        model_id=settings.model_id,
        region=settings.region,
        profile=settings.profile,
        stream=settings.stream,
        temperature=settings.temperature,
        top_p=settings.top_p,
        top_k=settings.top_k,
        max_tokens=settings.max_tokens,
        stop_sequences=(
            tuple(settings.stop_sequences)
            if settings.stop_sequences is not None
            else None
        ),
        system=settings.system or None,
        scale=settings.scale,
        steps=settings.steps,
        seed=settings.seed,
        chats_dir=Path(settings.chats_dir),
        output_dir=Path(settings.output_dir),
        abort_on_stream_error=settings.abort_on_stream_error,
        retry=RetryPolicy(max_attempts=settings.max_attempts),
    )
