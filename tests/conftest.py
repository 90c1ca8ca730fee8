"""Pytest configuration and fixtures.

Provides environment isolation and logging configuration. All fixtures here
are autouse unless noted.
"""

from __future__ import annotations

from contextlib import suppress
import logging
import os

import pytest

from bedrock_chat.config import Config

# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "bedrock_chat.config.load_dotenv",
            lambda *_args, **_kwargs: False,
            raising=False,
        )


@pytest.fixture(autouse=True)
def isolate_env(request, monkeypatch, tmp_path):
    """Ensure a clean configuration environment for each test.

    Clears BEDROCK_CHAT_* and AWS_* variables and points the home config
    file at an empty temp location.
    Opt-out: @pytest.mark.allow_env_pollution
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return

    for key in list(os.environ.keys()):
        if key.startswith(("BEDROCK_CHAT_", "AWS_")):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("BEDROCK_CHAT_CONFIG", str(tmp_path / "no-config.toml"))


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture
def config(tmp_path) -> Config:
    """Config with transcript and image output under a temp directory."""
    return Config(
        model_id="anthropic.claude-v2",
        chats_dir=tmp_path / "chats",
        output_dir=tmp_path / "out",
    )
