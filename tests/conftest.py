"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, marker handling,
and automatic API test skipping. All fixtures here are autouse unless noted.
"""

from __future__ import annotations

from contextlib import suppress
import logging
import os

import pytest

from bedrock_chat.config import ChatConfig
from bedrock_chat.profiles import ProfileEntry, StaticProfileSource
from bedrock_chat.retry import RetryPolicy

MODEL_ID = "anthropic.claude-3-haiku-20240307-v1:0"

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
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_aws_env(request, monkeypatch, tmp_path):
    """Ensure a clean AWS environment for each test.

    Clears AWS_* and BEDROCK_CHAT_* env vars and points the shared config
    files at empty temp paths so a developer's ~/.aws never leaks in.
    Opt-out: @pytest.mark.api
    """
    if "api" in request.node.keywords:
        return

    for key in list(os.environ.keys()):
        if key.startswith(("AWS_", "BEDROCK_CHAT_")):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("AWS_CONFIG_FILE", str(tmp_path / "aws_config"))
    monkeypatch.setenv("AWS_SHARED_CREDENTIALS_FILE", str(tmp_path / "aws_credentials"))
    monkeypatch.setenv("AWS_EC2_METADATA_DISABLED", "true")


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def _api_tests_enabled() -> bool:
    return bool(os.getenv("ENABLE_API_TESTS"))


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if _api_tests_enabled():
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)


# =============================================================================
# Shared fixtures (opt-in)
# =============================================================================


@pytest.fixture
def model_id() -> str:
    """Return the model id used across tests."""
    return MODEL_ID


@pytest.fixture
def chat_config(model_id: str) -> ChatConfig:
    """Config with a zero-delay retry policy so retry tests stay fast."""
    return ChatConfig(
        model_id=model_id,
        retry=RetryPolicy(max_attempts=3, initial_delay_s=0.0, jitter=False),
    )


@pytest.fixture
def profiles() -> StaticProfileSource:
    """Two configured profiles, one without a region."""
    return StaticProfileSource(
        (
            ProfileEntry(name="default", region="us-east-1"),
            ProfileEntry(name="work", region=None),
        )
    )


@pytest.fixture
def bedrock_api_region() -> str:
    """Return the region for API tests or skip when unset."""
    region = os.getenv("AWS_REGION")
    if not region:
        pytest.skip("AWS_REGION not set")
    return region
