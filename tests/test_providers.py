"""Provider codecs: request shapes and response extraction per provider tag."""

from __future__ import annotations

import base64
import json

import pytest

from bedrock_chat.catalog import DEFAULT_IMAGE_PARAMS, default_params
from bedrock_chat.errors import (
    DecodeError,
    StreamingUnsupportedError,
    UnsupportedProviderError,
)
from bedrock_chat.payload import decode_json, decode_response, encode
from bedrock_chat.providers import get_codec
from bedrock_chat.providers.anthropic import ClaudeMessagesCodec
from bedrock_chat.providers.base import ProviderTag
from bedrock_chat.providers.models import (
    GenerationParams,
    ImageBlock,
    Message,
    Role,
)

pytestmark = pytest.mark.unit

REQUIRED_FIELDS = {
    "claude-legacy": {
        "prompt",
        "max_tokens_to_sample",
        "temperature",
        "top_k",
        "top_p",
        "stop_sequences",
    },
    "claude-messages": {
        "anthropic_version",
        "max_tokens",
        "messages",
        "temperature",
        "top_p",
    },
    "command": {"prompt", "temperature", "p", "k", "max_tokens", "stop_sequences"},
    "jurassic": {"prompt", "temperature", "topP", "maxTokens", "stopSequences"},
    "llama": {"prompt", "temperature", "top_p", "max_gen_len"},
    "titan": {"inputText", "textGenerationConfig"},
}


def _body(tag: str, prompt="hello", **kwargs) -> dict:
    params = default_params(ProviderTag(tag))
    return json.loads(encode(tag, prompt, params, **kwargs))


@pytest.mark.parametrize("tag", sorted(REQUIRED_FIELDS))
def test_encoded_body_has_required_fields(tag: str) -> None:
    body = _body(tag)
    assert REQUIRED_FIELDS[tag] <= set(body)


def test_claude_legacy_prompt_framing_is_exact() -> None:
    body = _body("claude-legacy", "hello")

    assert body["prompt"] == "Human: \n\nHuman: hello\n\nAssistant:"
    assert body["stop_sequences"] == ["\n\nHuman:"]
    assert body["max_tokens_to_sample"] == 500
    assert body["top_k"] == 250


def test_configured_stop_sequences_replace_the_legacy_default() -> None:
    params = GenerationParams(
        temperature=0.2, top_p=0.5, max_tokens=10, stop_sequences=("END",)
    )
    body = json.loads(encode("claude-legacy", "x", params))
    assert body["stop_sequences"] == ["END"]
    assert body["temperature"] == 0.2


def test_command_stream_flag_follows_invoke_path() -> None:
    assert _body("command", streaming=True)["stream"] is True
    assert _body("command", streaming=False)["stream"] is False


def test_titan_generation_config_shape() -> None:
    config = _body("titan")["textGenerationConfig"]
    assert config == {
        "temperature": 0.0,
        "topP": 0.9,
        "maxTokenCount": 512,
        "stopSequences": [],
    }


def test_messages_body_serializes_history_and_images() -> None:
    image = ImageBlock(b"\x89PNG", "image/png")
    history = [
        Message.user("first"),
        Message.assistant("reply"),
        Message.user("look", image=image),
    ]

    body = _body("claude-messages", history)

    assert body["anthropic_version"] == "bedrock-2023-05-31"
    assert [m["role"] for m in body["messages"]] == ["user", "assistant", "user"]
    last = body["messages"][-1]["content"]
    assert last[0] == {
        "type": "image",
        "source": {
            "type": "base64",
            "media_type": "image/png",
            "data": base64.b64encode(b"\x89PNG").decode("ascii"),
        },
    }
    assert last[1] == {"type": "text", "text": "look"}


def test_messages_body_merges_consecutive_same_role_messages() -> None:
    history = [Message.user("a"), Message.user("b")]
    body = _body("claude-messages", history)
    assert len(body["messages"]) == 1
    assert [b["text"] for b in body["messages"][0]["content"]] == ["a", "b"]


def test_messages_system_prompt_is_optional() -> None:
    params = default_params(ProviderTag.CLAUDE_MESSAGES)
    assert "system" not in ClaudeMessagesCodec().encode("hi", params)
    assert ClaudeMessagesCodec(system="be brief").encode("hi", params)["system"] == "be brief"


def test_system_prompt_reaches_only_the_messages_body() -> None:
    assert _body("claude-messages", "hi", system="be brief")["system"] == "be brief"
    assert "system" not in _body("claude-legacy", "hi", system="be brief")
    assert "system" not in _body("llama", "hi", system="be brief")


def test_stability_body_shape() -> None:
    body = json.loads(encode("stability-image", "a red fox", DEFAULT_IMAGE_PARAMS))
    assert body == {
        "text_prompts": [{"text": "a red fox"}],
        "cfg_scale": 10.0,
        "steps": 10,
        "seed": 0,
    }


def test_unknown_tag_is_rejected() -> None:
    with pytest.raises(UnsupportedProviderError):
        get_codec("gpt")
    with pytest.raises(UnsupportedProviderError):
        encode("gpt", "hi", default_params(ProviderTag.LLAMA))


# --- decoding ---


@pytest.mark.parametrize(
    ("tag", "payload", "expected"),
    [
        ("claude-legacy", {"completion": " hi"}, " hi"),
        ("command", {"generations": [{"text": "hi"}]}, "hi"),
        ("llama", {"generation": "hi"}, "hi"),
        ("claude-messages", {"type": "content_block_delta", "delta": {"text": "hi"}}, "hi"),
    ],
)
def test_chunk_text_extraction(tag: str, payload: dict, expected: str) -> None:
    assert get_codec(tag).decode_chunk(payload).text == expected


def test_messages_control_chunks_carry_no_text() -> None:
    codec = get_codec("claude-messages")
    assert codec.decode_chunk({"type": "message_stop"}).text is None
    start = codec.decode_chunk({"type": "message_start", "message": {"role": "assistant"}})
    assert start.role is Role.ASSISTANT
    with pytest.raises(DecodeError):
        codec.decode_chunk({"delta": {"text": "no type"}})


@pytest.mark.parametrize(
    ("tag", "payload"),
    [
        ("claude-legacy", {"text": "hi"}),
        ("command", {"generations": []}),
        ("llama", {"generation": 3}),
    ],
)
def test_chunk_missing_expected_field_fails(tag: str, payload: dict) -> None:
    with pytest.raises(DecodeError):
        get_codec(tag).decode_chunk(payload)


@pytest.mark.parametrize("tag", ["jurassic", "titan", "stability-image"])
def test_non_streaming_providers_reject_chunks(tag: str) -> None:
    with pytest.raises(StreamingUnsupportedError):
        get_codec(tag).decode_chunk({})


@pytest.mark.parametrize(
    ("tag", "payload", "expected"),
    [
        ("claude-legacy", {"completion": "done"}, "done"),
        (
            "claude-messages",
            {"content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]},
            "a\n\nb",
        ),
        ("command", {"generations": [{"text": "done"}]}, "done"),
        ("jurassic", {"completions": [{"data": {"text": "done"}}]}, "done"),
        ("llama", {"generation": "done"}, "done"),
        ("titan", {"results": [{"outputText": "done"}]}, "done"),
    ],
)
def test_full_response_extraction(tag: str, payload: dict, expected: str) -> None:
    assert decode_response(tag, json.dumps(payload).encode()) == expected


def test_stability_image_decoding() -> None:
    codec = get_codec("stability-image")
    encoded = base64.b64encode(b"jpegbytes").decode("ascii")

    assert codec.decode_image({"artifacts": [{"base64": encoded}]}) == b"jpegbytes"
    with pytest.raises(DecodeError):
        codec.decode_image({"artifacts": [{"base64": "***"}]})
    with pytest.raises(DecodeError):
        codec.decode_image({"artifacts": []})


@pytest.mark.parametrize("data", [b"", b"not json", b"[1, 2]", b"\xff\xfe"])
def test_decode_json_maps_failures_to_decode_error(data: bytes) -> None:
    with pytest.raises(DecodeError):
        decode_json(data)
