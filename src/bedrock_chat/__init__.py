"""bedrock-chat: chat with foundation models hosted on Amazon Bedrock.

Public API:
    - ChatSession: One conversation with one hosted model
    - ReplyAssembler: Turn a model's event stream into a reply
    - resolve_config(): Layered configuration (overrides, env, file)
"""

from __future__ import annotations

import logging

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("bedrock-chat-cli")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("bedrock_chat").addHandler(logging.NullHandler())

from bedrock_chat.catalog import MODELS, ModelInfo, get_model  # noqa: E402
from bedrock_chat.config import Config, resolve_config  # noqa: E402
from bedrock_chat.errors import (  # noqa: E402
    ChatError,
    ConfigurationError,
    DecodeError,
    FileIOError,
    InternalError,
    StreamingUnsupportedError,
    ThrottlingError,
    TransportError,
    UnsupportedProviderError,
    VisionUnsupportedError,
)
from bedrock_chat.providers.base import ProviderTag  # noqa: E402
from bedrock_chat.providers.models import AssembledReply, Message  # noqa: E402
from bedrock_chat.retry import RetryPolicy  # noqa: E402
from bedrock_chat.session import ChatSession  # noqa: E402
from bedrock_chat.stream import DecoderState, ReplyAssembler  # noqa: E402
from bedrock_chat.transport import BedrockTransport, EventSource  # noqa: E402

__all__ = [
    "MODELS",
    "AssembledReply",
    "BedrockTransport",
    "ChatError",
    "ChatSession",
    "Config",
    "ConfigurationError",
    "DecodeError",
    "DecoderState",
    "EventSource",
    "FileIOError",
    "InternalError",
    "Message",
    "ModelInfo",
    "ProviderTag",
    "ReplyAssembler",
    "RetryPolicy",
    "StreamingUnsupportedError",
    "ThrottlingError",
    "TransportError",
    "UnsupportedProviderError",
    "VisionUnsupportedError",
    "__version__",
    "get_model",
    "resolve_config",
]
