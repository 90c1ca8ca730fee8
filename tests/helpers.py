"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: it exists to prevent test suites from
growing lots of one-off transports and sources as coverage expands.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from typing import Any

from bedrock_chat.transport import EventSource


def chunk(payload: dict[str, Any]) -> dict[str, Any]:
    """One SDK stream frame carrying a JSON-encoded chunk."""
    return {"chunk": {"bytes": json.dumps(payload).encode("utf-8")}}


def raw_chunk(data: bytes) -> dict[str, Any]:
    """One SDK stream frame carrying arbitrary chunk bytes."""
    return {"chunk": {"bytes": data}}


class ClosingFrames:
    """Iterable over frames that records whether it was closed.

    An exception instance in *frames* is raised when iteration reaches it.
    """

    def __init__(self, frames: list[Any]) -> None:
        self.frames = list(frames)
        self.closed = False
        self.consumed = 0

    def __iter__(self):
        for frame in self.frames:
            if isinstance(frame, BaseException):
                raise frame
            self.consumed += 1
            yield frame

    def close(self) -> None:
        self.closed = True


def make_source(frames: list[Any], *, provider: str = "bedrock") -> EventSource:
    """EventSource over scripted SDK frames."""
    return EventSource(ClosingFrames(frames), provider=provider)


def text_frames(tag: str, parts: list[str]) -> list[dict[str, Any]]:
    """Frames a streaming model of family *tag* would send for *parts*."""
    frames: list[dict[str, Any]] = []
    for part in parts:
        if tag == "claude-legacy":
            frames.append(chunk({"completion": part}))
        elif tag == "claude-messages":
            frames.append(
                chunk({"type": "content_block_delta", "delta": {"text": part}})
            )
        elif tag == "command":
            frames.append(chunk({"generations": [{"text": part}]}))
        elif tag == "llama":
            frames.append(chunk({"generation": part}))
        else:
            raise ValueError(f"no streaming frames for {tag}")
    return frames


@dataclass
class RecordingSink:
    """Sink that records every fragment it receives."""

    parts: list[str] = field(default_factory=list)
    fail_on: int | None = None

    def __call__(self, text: str) -> None:
        if self.fail_on is not None and len(self.parts) == self.fail_on:
            raise RuntimeError("sink failed")
        self.parts.append(text)


@dataclass
class SpyTransport:
    """Transport double that records invocations and replays scripted results.

    Each scripted item is either a list of SDK frames (wrapped in an
    EventSource for streaming calls), raw response bytes, or an exception to
    raise.
    """

    script: list[Any] = field(default_factory=list)
    invocations: list[dict[str, Any]] = field(default_factory=list)
    sources: list[EventSource] = field(default_factory=list)
    models: list[dict[str, Any]] = field(default_factory=list)

    def invoke(self, tag, model_id, body, *, streaming):
        self.invocations.append(
            {
                "tag": tag,
                "model_id": model_id,
                "body": json.loads(body),
                "streaming": streaming,
            }
        )
        if not self.script:
            raise AssertionError("SpyTransport has no scripted result left")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, (bytes, bytearray)):
            return bytes(item)
        source = make_source(item, provider=tag.value)
        self.sources.append(source)
        return source

    def list_foundation_models(self):
        return list(self.models)
