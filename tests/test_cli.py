"""End-to-end CLI behavior against a spy transport."""

from __future__ import annotations

import base64
from datetime import date
import io
import json

import pytest

from bedrock_chat.cli import GREETING, main
from bedrock_chat.errors import TransportError
from tests.helpers import SpyTransport, text_frames

pytestmark = pytest.mark.contract


class Run:
    """Captured result of one ``main()`` invocation."""

    def __init__(self, code: int, stdout: str, stderr: str) -> None:
        self.code = code
        self.stdout = stdout
        self.stderr = stderr


def run(argv: list[str], *, stdin: str = "", spy: SpyTransport | None = None) -> Run:
    out, err = io.StringIO(), io.StringIO()
    code = main(
        argv,
        transport=spy or SpyTransport(),
        stdin=io.StringIO(stdin),
        stdout=out,
        stderr=err,
    )
    return Run(code, out.getvalue(), err.getvalue())


@pytest.fixture(autouse=True)
def _dirs(tmp_path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("BEDROCK_CHAT_CHATS_DIR", str(tmp_path / "chats"))
    monkeypatch.setenv("BEDROCK_CHAT_OUTPUT_DIR", str(tmp_path / "out"))


# --- chat loop ---


@pytest.mark.parametrize("line", ["quit\n", "  quit \n", "quit"])
def test_quit_exits_cleanly_without_transport_calls(line: str) -> None:
    spy = SpyTransport()
    result = run(["chat"], stdin=line, spy=spy)

    assert result.code == 0
    assert GREETING in result.stdout
    assert spy.invocations == []


def test_end_of_input_exits_cleanly() -> None:
    assert run(["chat"], stdin="").code == 0


def test_clear_does_not_encode_or_invoke() -> None:
    spy = SpyTransport()
    result = run(["chat"], stdin="clear\nquit\n", spy=spy)

    assert result.code == 0
    assert "Conversation cleared." in result.stdout
    assert spy.invocations == []


def test_chat_turn_streams_reply_to_stdout() -> None:
    spy = SpyTransport(script=[text_frames("claude-legacy", [" Hello", "!"])])
    result = run(["chat", "--temperature", "0.3"], stdin="hi\nquit\n", spy=spy)

    assert result.code == 0
    assert " Hello!\n" in result.stdout
    assert spy.invocations[0]["body"]["temperature"] == 0.3


def test_save_then_load_restores_transcript(tmp_path) -> None:
    spy = SpyTransport(script=[text_frames("claude-legacy", [" Sure"])])
    result = run(["chat"], stdin="remember me\nsave\nclear\nload\nquit\n", spy=spy)

    path = tmp_path / "chats" / f"{date.today().isoformat()}.txt"
    assert result.code == 0
    assert "chat transcript saved to file" in result.stdout
    assert path.read_text() == "\n\nHuman: remember me\n\nAssistant:  Sure"
    assert "Human: remember me" in result.stdout.split("Conversation cleared.")[1]


def test_load_failure_is_reported_and_loop_continues() -> None:
    result = run(["chat"], stdin="load\nquit\n")

    assert result.code == 0
    assert "error: No transcript" in result.stderr
    assert "hint:" in result.stderr


def test_transport_error_aborts_by_default() -> None:
    spy = SpyTransport(script=[TransportError("service down", hint="try later")])
    result = run(["chat"], stdin="hi\nhi again\nquit\n", spy=spy)

    assert result.code == 1
    assert "error: service down" in result.stderr
    assert "hint: try later" in result.stderr
    assert len(spy.invocations) == 1


def test_keep_going_reports_and_continues() -> None:
    spy = SpyTransport(
        script=[
            TransportError("service down"),
            text_frames("claude-legacy", [" back"]),
        ]
    )
    result = run(["chat", "--keep-going"], stdin="hi\nhi again\nquit\n", spy=spy)

    assert result.code == 0
    assert "error: service down" in result.stderr
    assert " back" in result.stdout
    assert len(spy.invocations) == 2
    # the failed turn left no trace in the transcript
    assert spy.invocations[1]["body"]["prompt"].count("Human:") == 3


def test_streaming_unsupported_model_fails_fast() -> None:
    spy = SpyTransport()
    result = run(["chat", "-m", "titan"], stdin="hi\nquit\n", spy=spy)

    assert result.code == 1
    assert "--no-stream" in result.stderr
    assert spy.invocations == []


def test_image_model_cannot_start_chat() -> None:
    result = run(["chat", "-m", "stability"], stdin="quit\n")
    assert result.code == 1
    assert GREETING not in result.stdout


# --- one-shot commands ---


def test_prompt_attaches_piped_document() -> None:
    spy = SpyTransport(script=[text_frames("llama", ["Summary."])])
    result = run(["prompt", "summarize", "-m", "llama"], stdin="the doc", spy=spy)

    assert result.code == 0
    assert result.stdout == "Summary.\n"
    assert spy.invocations[0]["body"]["prompt"] == (
        "summarize\n\n<document>\n\nthe doc\n\n</document>"
    )


def test_prompt_with_no_stream() -> None:
    body = json.dumps({"completions": [{"data": {"text": "42"}}]}).encode()
    spy = SpyTransport(script=[body])
    result = run(["prompt", "answer?", "-m", "jurassic", "--no-stream"], spy=spy)

    assert result.code == 0
    assert result.stdout == "42\n"
    assert spy.invocations[0]["streaming"] is False


def test_prompt_with_image_on_text_only_model(tmp_path) -> None:
    image = tmp_path / "pic.png"
    image.write_bytes(b"png")
    spy = SpyTransport()

    result = run(["prompt", "what?", "--image", str(image)], spy=spy)

    assert result.code == 1
    assert spy.invocations == []


def test_image_command_writes_file(tmp_path) -> None:
    art = base64.b64encode(b"jpeg").decode("ascii")
    spy = SpyTransport(script=[json.dumps({"artifacts": [{"base64": art}]}).encode()])

    result = run(["image", "a fox", "--steps", "20", "--seed", "7"], spy=spy)

    assert result.code == 0
    assert "image written to file" in result.stdout
    call = spy.invocations[0]
    assert call["model_id"] == "stability.stable-diffusion-xl-v1"
    assert call["body"]["steps"] == 20
    assert call["body"]["seed"] == 7
    (written,) = (tmp_path / "out").glob("output-*.jpg")
    assert written.read_bytes() == b"jpeg"


def test_unknown_model_exits_with_error() -> None:
    result = run(["prompt", "hi", "-m", "vendor.unknown"])
    assert result.code == 1
    assert "chat-cli models" in result.stderr


def test_models_lists_local_table() -> None:
    result = run(["models"])
    assert result.code == 0
    assert "anthropic.claude-3-haiku-20240307-v1:0" in result.stdout
    assert "default for 'claude3'" in result.stdout


def test_models_list_queries_service() -> None:
    spy = SpyTransport(
        models=[
            {
                "modelId": "meta.llama3-8b-instruct-v1:0",
                "providerName": "Meta",
                "outputModalities": ["TEXT"],
            }
        ]
    )
    result = run(["models", "--list"], spy=spy)

    assert result.code == 0
    assert "meta.llama3-8b-instruct-v1:0\tMeta\tTEXT" in result.stdout


def test_version() -> None:
    result = run(["version"])
    assert result.code == 0
    assert result.stdout.startswith("chat-cli ")
    assert "/" in result.stdout


def test_system_flag_is_sent_to_messages_models() -> None:
    spy = SpyTransport(script=[text_frames("claude-messages", ["Oui."])])
    result = run(
        ["prompt", "hello", "-m", "claude3", "--system", "Answer in French."], spy=spy
    )

    assert result.code == 0
    assert spy.invocations[0]["body"]["system"] == "Answer in French."


def test_loading_an_unanswered_history_is_reported_and_chat_continues(tmp_path) -> None:
    chats = tmp_path / "chats"
    chats.mkdir()
    (chats / f"{date.today().isoformat()}.txt").write_text(
        json.dumps([{"role": "user", "content": [{"type": "text", "text": "a"}]}])
    )
    spy = SpyTransport(script=[text_frames("claude-messages", ["fine"])])

    result = run(["chat", "-m", "claude3"], stdin="load\nnext\nquit\n", spy=spy)

    assert result.code == 0
    assert "unanswered user message" in result.stderr
    assert "fine" in result.stdout
    assert [m["role"] for m in spy.invocations[0]["body"]["messages"]] == ["user"]
