"""Per-turn orchestration.

A ``ChatSession`` binds one model (and therefore one provider tag) to a
configuration, a transport and a reply assembler. Capability gates run
before any payload is encoded or any transport call is made.
"""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
import time
from typing import TYPE_CHECKING

from bedrock_chat.catalog import ModelInfo, get_model
from bedrock_chat.conversation import (
    Conversation,
    conversation_for,
    load_transcript,
    save_transcript,
    transcript_path,
)
from bedrock_chat.errors import ConfigurationError, FileIOError, InternalError
from bedrock_chat.payload import decode_json, encode
from bedrock_chat.providers import get_codec
from bedrock_chat.providers.base import ConversationStyle
from bedrock_chat.providers.models import ImageBlock, Message
from bedrock_chat.providers.stability import StabilityImageCodec
from bedrock_chat.stream import ReplyAssembler
from bedrock_chat.transport import BedrockTransport

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import date

    from bedrock_chat.config import Config
    from bedrock_chat.providers.models import AssembledReply
    from bedrock_chat.transport import Transport

log = logging.getLogger(__name__)

SUPPORTED_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})


def attach_document(prompt: str, document: str | None) -> str:
    """Append a piped document to the prompt inside ``<document>`` tags."""
    if not document:
        return prompt
    return f"{prompt}\n\n<document>\n\n{document}\n\n</document>"


def load_image(path: Path) -> ImageBlock:
    """Read an image attachment from disk.

    Raises:
        FileIOError: If the file cannot be read.
        ConfigurationError: If the file type is not a supported image.
    """
    mime_type, _ = mimetypes.guess_type(str(path))
    if mime_type not in SUPPORTED_IMAGE_TYPES:
        raise ConfigurationError(
            f"Unsupported image type for {path}: {mime_type or 'unknown'}",
            hint=f"Supported: {', '.join(sorted(SUPPORTED_IMAGE_TYPES))}",
        )
    try:
        data = path.read_bytes()
    except OSError as e:
        raise FileIOError(f"Unable to read image {path}: {e}") from e
    return ImageBlock(data=data, mime_type=mime_type)


def write_image(data: bytes, output_dir: Path, *, timestamp: int | None = None) -> Path:
    """Write generated image bytes to ``output-<unix-timestamp>.jpg``.

    Raises:
        FileIOError: If the file cannot be written.
    """
    ts = int(time.time()) if timestamp is None else timestamp
    path = Path(output_dir) / f"output-{ts}.jpg"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as e:
        raise FileIOError(f"Error writing image to {path}: {e}") from e
    log.info("image written to file %s", path)
    return path


class ChatSession:
    """Conversation with one hosted model."""

    def __init__(
        self,
        config: Config,
        *,
        transport: Transport | None = None,
        sink: Callable[[str], None] | None = None,
        model: ModelInfo | None = None,
    ) -> None:
        self.config = config
        self.model = model or get_model(config.model_id)
        self.tag = self.model.family
        self.codec = get_codec(self.tag, system=config.system)
        self.transport: Transport = transport or BedrockTransport(
            config.region, profile=config.profile, retry=config.retry
        )
        self.assembler = ReplyAssembler(self.tag, sink)
        self._conversation: Conversation | None = None

    @property
    def conversation(self) -> Conversation:
        """Conversation state, created on first use."""
        if self._conversation is None:
            self._conversation = conversation_for(self.tag, self.codec.style)
        return self._conversation

    # --- gates ---

    def _check_text_turn(self, *, image: ImageBlock | None, streaming: bool) -> None:
        if self.model.content_type != "text":
            raise ConfigurationError(
                f"Model {self.model.model_id} generates images, not text",
                hint="Use the `image` command.",
            )
        if image is not None:
            self.model.require_vision()
        if streaming:
            self.model.require_streaming()

    # --- turns ---

    def ask(
        self,
        prompt: str,
        *,
        image: ImageBlock | None = None,
        document: str | None = None,
    ) -> AssembledReply:
        """Run one conversational turn and append it to the conversation.

        On any failure the conversation is rolled back to its state before
        the turn, so it never ends on an unanswered user message.
        """
        streaming = self.config.stream
        self._check_text_turn(image=image, streaming=streaming)

        conversation = self.conversation
        mark = conversation.checkpoint()
        conversation.append_user(attach_document(prompt, document), image=image)
        try:
            reply = self._complete(conversation.prompt(), streaming=streaming)
        except BaseException:
            conversation.rollback(mark)
            raise
        conversation.append_reply(reply)
        return reply

    def prompt_once(
        self,
        prompt: str,
        *,
        image: ImageBlock | None = None,
        document: str | None = None,
    ) -> AssembledReply:
        """Run a single prompt without touching the conversation."""
        streaming = self.config.stream
        self._check_text_turn(image=image, streaming=streaming)

        text = attach_document(prompt, document)
        if self.codec.style is ConversationStyle.MESSAGES:
            return self._complete([Message.user(text, image=image)], streaming=streaming)
        return self._complete(text, streaming=streaming)

    def _complete(self, prompt: str | list[Message], *, streaming: bool) -> AssembledReply:
        params = self.config.generation_params(self.tag)
        body = encode(
            self.tag, prompt, params, streaming=streaming, system=self.config.system
        )
        result = self.transport.invoke(
            self.tag, self.model.model_id, body, streaming=streaming
        )
        if streaming:
            if isinstance(result, (bytes, bytearray)):
                raise InternalError("Streaming invoke did not return an event source")
            return self.assembler.assemble(result)
        if not isinstance(result, (bytes, bytearray)):
            raise InternalError("Non-streaming invoke did not return a response body")
        return self.assembler.assemble_body(bytes(result))

    def generate_image(self, prompt: str, *, document: str | None = None) -> bytes:
        """Single-shot image generation; returns the decoded image bytes."""
        if not isinstance(self.codec, StabilityImageCodec):
            raise ConfigurationError(
                f"Model {self.model.model_id} does not support image generation",
                hint="Use an image model, e.g. stability.stable-diffusion-xl-v1.",
            )
        text = prompt
        if document:
            text = f"<document>\n\n{document}\n\n</document>\n\n{prompt}"
        body = encode(self.tag, text, self.config.image_params())
        result = self.transport.invoke(
            self.tag, self.model.model_id, body, streaming=False
        )
        if not isinstance(result, (bytes, bytearray)):
            raise InternalError("Non-streaming invoke did not return a response body")
        return self.codec.decode_image(decode_json(bytes(result)))

    # --- conversation control ---

    def reset(self) -> None:
        """Forget the conversation (the ``clear`` control word)."""
        self.conversation.reset()
        self.assembler.reset()

    def save(self, day: date | None = None) -> Path:
        """Persist the conversation to today's transcript file."""
        return save_transcript(
            self.conversation, transcript_path(self.config.chats_dir, day)
        )

    def load(self, day: date | None = None) -> Conversation:
        """Restore the conversation from today's transcript file."""
        load_transcript(self.conversation, transcript_path(self.config.chats_dir, day))
        return self.conversation
