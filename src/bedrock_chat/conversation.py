"""Conversation state threaded through successive turns.

Two shapes exist:

- ``LegacyTranscript``: one growing string with literal role markers, for
  providers that take a single prompt string.
- ``MessageHistory``: an ordered list of role-tagged messages, for the
  Messages API.

Both persist to plain files under ``chats/YYYY-MM-DD.txt``.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from datetime import date
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from bedrock_chat.errors import (
    ConfigurationError,
    DecodeError,
    FileIOError,
    InternalError,
)
from bedrock_chat.providers.base import ConversationStyle, ProviderTag
from bedrock_chat.providers.models import (
    ImageBlock,
    Message,
    Role,
    TextBlock,
)

if TYPE_CHECKING:
    from bedrock_chat.providers.models import AssembledReply

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleMarkers:
    """Literal substrings inserted before each turn in a legacy buffer."""

    human: str
    assistant: str


# The exact bytes are meaningful to the remote models.
ROLE_MARKERS: dict[ProviderTag, RoleMarkers] = {
    ProviderTag.CLAUDE_LEGACY: RoleMarkers("\n\nHuman: ", "\n\nAssistant: "),
    ProviderTag.JURASSIC: RoleMarkers("\n\n", ""),
    ProviderTag.COMMAND: RoleMarkers("\n\n", ""),
    ProviderTag.LLAMA: RoleMarkers("", ""),
    ProviderTag.TITAN: RoleMarkers("\n\nUser: ", "\n\nBot: "),
}


class Conversation(Protocol):
    """Operations the chat loop performs on conversation state."""

    def append_user(self, text: str, *, image: ImageBlock | None = None) -> None: ...

    def append_reply(self, reply: AssembledReply) -> None: ...

    def prompt(self) -> str | list[Message]: ...

    def reset(self) -> None: ...

    def render(self) -> Any: ...

    def save(self) -> bytes: ...

    def restore(self, data: bytes) -> None: ...

    def checkpoint(self) -> Any: ...

    def rollback(self, mark: Any) -> None: ...

    def __bool__(self) -> bool: ...


class LegacyTranscript:
    """Single accumulating prompt string with alternating role markers."""

    def __init__(self, markers: RoleMarkers, buffer: str = "") -> None:
        self.markers = markers
        self._buffer = buffer
        self._last_role: Role | None = Role.ASSISTANT if buffer else None

    @property
    def buffer(self) -> str:
        return self._buffer

    def __bool__(self) -> bool:
        return bool(self._buffer)

    def append(self, role: Role, text: str) -> None:
        """Concatenate the role marker plus *text* onto the buffer.

        Raises:
            InternalError: If roles would not alternate Human -> Assistant.
        """
        expected = Role.USER if self._last_role in (None, Role.ASSISTANT) else Role.ASSISTANT
        if role is not expected:
            raise InternalError(
                f"Legacy transcript expected a {expected.value} turn, got {role.value}"
            )
        marker = self.markers.human if role is Role.USER else self.markers.assistant
        self._buffer += marker + text
        self._last_role = role

    def append_user(self, text: str, *, image: ImageBlock | None = None) -> None:
        if image is not None:
            raise InternalError("Legacy transcripts cannot carry image attachments")
        self.append(Role.USER, text)

    def append_reply(self, reply: AssembledReply) -> None:
        self.append(Role.ASSISTANT, reply.text)

    def prompt(self) -> str:
        return self._buffer

    def reset(self) -> None:
        self._buffer = ""
        self._last_role = None

    def render(self) -> str:
        return self._buffer

    def save(self) -> bytes:
        return self._buffer.encode("utf-8")

    def restore(self, data: bytes) -> None:
        """Replace the buffer with previously saved bytes."""
        try:
            self._buffer = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"transcript is not valid UTF-8: {e}") from e
        self._last_role = Role.ASSISTANT if self._buffer else None

    def checkpoint(self) -> tuple[str, Role | None]:
        return self._buffer, self._last_role

    def rollback(self, mark: tuple[str, Role | None]) -> None:
        self._buffer, self._last_role = mark


class MessageHistory:
    """Ordered list of role-tagged messages (Messages API)."""

    def __init__(self, messages: list[Message] | None = None) -> None:
        self.messages: list[Message] = list(messages or [])

    def __bool__(self) -> bool:
        return bool(self.messages)

    def append(self, message: Message) -> None:
        """Push *message*; roles must alternate starting with the user."""
        last = self.messages[-1].role if self.messages else Role.ASSISTANT
        if message.role is last:
            raise InternalError(
                f"Message history cannot hold two consecutive {last.value} messages"
            )
        self.messages.append(message)

    def append_user(self, text: str, *, image: ImageBlock | None = None) -> None:
        self.append(Message.user(text, image=image))

    def append_reply(self, reply: AssembledReply) -> None:
        """Record the assistant's reply to the pending user message.

        The Messages API rejects blank text blocks, so an empty reply is not
        stored. The unanswered user message is dropped with it to keep the
        history alternating.
        """
        if not reply.text.strip():
            log.warning("Model returned an empty reply; the turn is not kept in history")
            if self.messages and self.messages[-1].role is Role.USER:
                self.messages.pop()
            return
        message = reply.message or Message.assistant(reply.text)
        if message.role is not Role.ASSISTANT:
            message = Message(Role.ASSISTANT, message.content)
        self.append(message)

    def prompt(self) -> list[Message]:
        """Return the messages for the next call; the last must be the user's."""
        if not self.messages or self.messages[-1].role is not Role.USER:
            raise InternalError("Message history must end in a user message before a call")
        return list(self.messages)

    def reset(self) -> None:
        self.messages = []

    def render(self) -> list[dict[str, Any]]:
        """Serializable form; images are inlined as base64."""
        rendered: list[dict[str, Any]] = []
        for message in self.messages:
            blocks: list[dict[str, Any]] = []
            for block in message.content:
                if isinstance(block, ImageBlock):
                    blocks.append(
                        {
                            "type": "image",
                            "mime_type": block.mime_type,
                            "data": base64.b64encode(block.data).decode("ascii"),
                        }
                    )
                else:
                    blocks.append({"type": "text", "text": block.text})
            rendered.append({"role": message.role.value, "content": blocks})
        return rendered

    def save(self) -> bytes:
        return json.dumps(self.render(), indent=2).encode("utf-8")

    def restore(self, data: bytes) -> None:
        """Replace the history with previously saved bytes."""
        try:
            raw = json.loads(data)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError(f"transcript is not a saved message history: {e}") from e
        if not isinstance(raw, list):
            raise DecodeError("saved message history must be a JSON list")
        messages = [_parse_message(item) for item in raw]
        _check_alternation(messages)
        self.messages = messages

    def checkpoint(self) -> int:
        return len(self.messages)

    def rollback(self, mark: int) -> None:
        del self.messages[mark:]


def _check_alternation(messages: list[Message]) -> None:
    """A saved history starts with the user, alternates, and ends answered."""
    if not messages:
        return
    for index, message in enumerate(messages):
        expected = Role.USER if index % 2 == 0 else Role.ASSISTANT
        if message.role is not expected:
            raise DecodeError(
                f"saved message {index} has role {message.role.value}, "
                f"expected {expected.value}"
            )
    if messages[-1].role is not Role.ASSISTANT:
        raise DecodeError("saved message history ends with an unanswered user message")


def _parse_message(item: Any) -> Message:
    if not isinstance(item, dict):
        raise DecodeError("saved message must be an object")
    try:
        role = Role(item.get("role"))
    except ValueError as e:
        raise DecodeError(f"saved message has an invalid role: {e}") from e
    blocks: list[TextBlock | ImageBlock] = []
    for block in item.get("content") or []:
        if not isinstance(block, dict):
            continue
        if block.get("type") == "image":
            try:
                data = base64.b64decode(str(block.get("data", "")), validate=True)
            except (binascii.Error, ValueError) as e:
                raise DecodeError(f"saved image block is not valid base64: {e}") from e
            blocks.append(ImageBlock(data, str(block.get("mime_type", ""))))
        else:
            blocks.append(TextBlock(str(block.get("text", ""))))
    return Message(role, tuple(blocks))


def conversation_for(tag: ProviderTag, style: ConversationStyle) -> Conversation:
    """Create empty conversation state matching a provider's request style."""
    if style is ConversationStyle.MESSAGES:
        return MessageHistory()
    if style is ConversationStyle.LEGACY:
        markers = ROLE_MARKERS.get(tag)
        if markers is None:
            raise InternalError(f"No role markers defined for {tag.value!r}")
        return LegacyTranscript(markers)
    raise ConfigurationError(
        f"Provider {tag.value!r} does not support conversations",
        hint="Use the `image` command for image models.",
    )


# --- Persistence ---


def transcript_path(chats_dir: Path, day: date | None = None) -> Path:
    """Path of the transcript file for *day* (default: today)."""
    day = day or date.today()
    return Path(chats_dir) / f"{day.isoformat()}.txt"


def save_transcript(conversation: Conversation, path: Path) -> Path:
    """Write the conversation to *path*, creating its directory.

    Raises:
        FileIOError: If the file cannot be written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(conversation.save())
    except OSError as e:
        raise FileIOError(f"Unable to save transcript to {path}: {e}") from e
    log.debug("Saved transcript to %s", path)
    return path


def load_transcript(conversation: Conversation, path: Path) -> None:
    """Replace *conversation* with the transcript stored at *path*.

    Raises:
        FileIOError: If the file cannot be read or is not a valid transcript.
    """
    try:
        data = path.read_bytes()
    except FileNotFoundError as e:
        raise FileIOError(
            f"No transcript at {path}",
            hint="Use `save` first; transcripts are stored per calendar day.",
        ) from e
    except OSError as e:
        raise FileIOError(f"Unable to open transcript {path}: {e}") from e
    try:
        conversation.restore(data)
    except DecodeError as e:
        raise FileIOError(f"Transcript {path} is unreadable: {e}") from e
    log.debug("Loaded transcript from %s", path)
