"""Command-line entry point: ``chat-cli``.

Commands:
    chat      Interactive chat session (control words: quit, save, load, clear)
    prompt    One-shot prompt; piped stdin is attached as a document
    image     Generate an image and save it to disk
    models    Show supported models, or list the service's models with --list
    version   Print the version
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import platform
import sys
from typing import TYPE_CHECKING, TextIO

from bedrock_chat import __version__
from bedrock_chat.catalog import MODELS
from bedrock_chat.config import resolve_config
from bedrock_chat.conversation import LegacyTranscript, MessageHistory
from bedrock_chat.errors import ChatError, FileIOError, TransportError
from bedrock_chat.session import ChatSession, load_image, write_image
from bedrock_chat.transport import BedrockTransport

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from bedrock_chat.config import Config
    from bedrock_chat.transport import Transport

log = logging.getLogger(__name__)

GREETING = "Hi there. You can ask me stuff!"
PROMPT_LABEL = "> "
DEFAULT_IMAGE_MODEL = "stability.stable-diffusion-xl-v1"
CONTROL_WORDS = frozenset({"quit", "save", "load", "clear"})


def _writer(stream: TextIO) -> Callable[[str], None]:
    def sink(text: str) -> None:
        stream.write(text)
        stream.flush()

    return sink


def build_parser() -> argparse.ArgumentParser:
    """Build the ``chat-cli`` argument parser."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-m", "--model-id", help="model id or family shorthand")
    common.add_argument("--region", help="AWS region of the Bedrock endpoint")
    common.add_argument(
        "--stream",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="use the streaming API (default: on)",
    )
    common.add_argument("--temperature", type=float)
    common.add_argument("--top-p", type=float)
    common.add_argument("--top-k", type=int)
    common.add_argument("--max-tokens", type=int)
    common.add_argument("--system", help="system prompt (Messages API models)")
    common.add_argument(
        "--keep-going",
        action="store_true",
        help="report a failed turn and continue instead of exiting",
    )

    parser = argparse.ArgumentParser(
        "chat-cli", description="Chat with LLMs from Amazon Bedrock!"
    )
    parser.add_argument("--config", type=Path, help="path to a TOML config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("chat", parents=[common], help="start an interactive chat session")

    prompt = sub.add_parser("prompt", parents=[common], help="send a one-line prompt")
    prompt.add_argument("text")
    prompt.add_argument("--image", type=Path, help="attach an image (vision models)")

    image = sub.add_parser("image", parents=[common], help="generate an image")
    image.add_argument("text")
    image.add_argument("--scale", type=float)
    image.add_argument("--steps", type=int)
    image.add_argument("--seed", type=int)

    models = sub.add_parser("models", parents=[common], help="show models")
    models.add_argument(
        "-l",
        "--list",
        action="store_true",
        help="list all foundation models available in the region",
    )

    sub.add_parser("version", help="print the current version")
    return parser


def _overrides(args: argparse.Namespace) -> dict[str, object]:
    overrides: dict[str, object] = {
        "model_id": getattr(args, "model_id", None),
        "region": getattr(args, "region", None),
        "stream": getattr(args, "stream", None),
        "temperature": getattr(args, "temperature", None),
        "top_p": getattr(args, "top_p", None),
        "top_k": getattr(args, "top_k", None),
        "max_tokens": getattr(args, "max_tokens", None),
        "system": getattr(args, "system", None),
        "scale": getattr(args, "scale", None),
        "steps": getattr(args, "steps", None),
        "seed": getattr(args, "seed", None),
    }
    if getattr(args, "keep_going", False):
        overrides["abort_on_stream_error"] = False
    if args.cmd == "image" and overrides["model_id"] is None:
        overrides["model_id"] = DEFAULT_IMAGE_MODEL
    return overrides


def _read_document(stdin: TextIO) -> str | None:
    """Return piped stdin content, or None when stdin is a terminal."""
    if stdin.isatty():
        return None
    return stdin.read() or None


def _render_transcript(session: ChatSession) -> str:
    conversation = session.conversation
    if isinstance(conversation, LegacyTranscript):
        return conversation.render()
    if isinstance(conversation, MessageHistory):
        lines = [f"{m.role.value}: {m.text}" for m in conversation.messages]
        return "\n".join(lines)
    return ""


def run_chat(session: ChatSession, stdin: TextIO, stdout: TextIO, stderr: TextIO) -> int:
    """Interactive tty loop. Returns the process exit code.

    Configuration errors and (by default) transport errors propagate to the
    caller; file errors are reported and the loop continues.
    """
    stdout.write(GREETING + "\n")
    while True:
        stderr.write(PROMPT_LABEL)
        stderr.flush()
        line = stdin.readline()
        if not line:
            return 0

        word = line.strip()
        if not word:
            continue
        if word in CONTROL_WORDS:
            if word == "quit":
                return 0
            if word == "save":
                try:
                    session.save()
                except FileIOError as e:
                    _report(stderr, e)
                    continue
                stdout.write("chat transcript saved to file\n")
            elif word == "load":
                try:
                    session.load()
                except FileIOError as e:
                    _report(stderr, e)
                    continue
                stdout.write(_render_transcript(session) + "\n")
            else:
                session.reset()
                stdout.write("Conversation cleared.\n\n")
            continue

        try:
            session.ask(line.rstrip("\n"))
        except TransportError as e:
            if session.config.abort_on_stream_error:
                raise
            stdout.write("\n")
            _report(stderr, e)
            continue
        stdout.write("\n")


def run_prompt(
    session: ChatSession,
    text: str,
    *,
    image: Path | None,
    stdin: TextIO,
    stdout: TextIO,
) -> int:
    document = _read_document(stdin)
    if session.model.content_type == "image":
        data = session.generate_image(text, document=document)
        path = write_image(data, session.config.output_dir)
        stdout.write(f"image written to file {path}\n")
        return 0
    attachment = load_image(image) if image is not None else None
    session.prompt_once(text, image=attachment, document=document)
    stdout.write("\n")
    return 0


def run_image(session: ChatSession, text: str, *, stdin: TextIO, stdout: TextIO) -> int:
    data = session.generate_image(text, document=_read_document(stdin))
    path = write_image(data, session.config.output_dir)
    stdout.write(f"image written to file {path}\n")
    return 0


def run_models(
    config: Config, *, remote: bool, transport: Transport | None, stdout: TextIO
) -> int:
    if remote:
        lister: Transport = transport if transport is not None else BedrockTransport(
            config.region, profile=config.profile, retry=config.retry
        )
        stdout.write("listing models\n")
        for summary in lister.list_foundation_models():
            model_id = summary.get("modelId", "")
            provider = summary.get("providerName", "")
            outputs = ",".join(summary.get("outputModalities", []) or [])
            stdout.write(f"{model_id}\t{provider}\t{outputs}\n")
        return 0
    for info in MODELS:
        flags = []
        if info.supports_streaming:
            flags.append("streaming")
        if info.supports_vision:
            flags.append("vision")
        if info.base_model:
            flags.append(f"default for '{info.shorthand}'")
        stdout.write(f"{info.model_id}\t{info.family.value}\t{', '.join(flags)}\n")
    return 0


def _report(stderr: TextIO, err: ChatError) -> None:
    stderr.write(f"error: {err}\n")
    if err.hint:
        stderr.write(f"hint: {err.hint}\n")
    stderr.flush()


def main(
    argv: Sequence[str] | None = None,
    *,
    transport: Transport | None = None,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    """Run ``chat-cli``; returns the process exit code."""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=stderr,
    )

    if args.cmd == "version":
        stdout.write(
            f"chat-cli {__version__}, {platform.system().lower()}/{platform.machine()}\n"
        )
        return 0

    try:
        config = resolve_config(_overrides(args), config_path=args.config)
        if args.cmd == "models":
            return run_models(config, remote=args.list, transport=transport, stdout=stdout)

        session = ChatSession(config, transport=transport, sink=_writer(stdout))
        if args.cmd == "chat":
            _ = session.conversation  # fail fast for models that cannot chat
            return run_chat(session, stdin, stdout, stderr)
        if args.cmd == "prompt":
            return run_prompt(
                session, args.text, image=args.image, stdin=stdin, stdout=stdout
            )
        return run_image(session, args.text, stdin=stdin, stdout=stdout)
    except ChatError as e:
        _report(stderr, e)
        return 1
    except KeyboardInterrupt:
        stderr.write("\n")
        return 130


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
