"""Shared fixtures for the outlook-mcp test suite."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from outlook_mcp.utils.environment import AuthSettings

NOW = 1_700_000_000.0
NOW_MS = 1_700_000_000_000
TOKEN_ENDPOINT = "https://login.example.test/common/oauth2/v2.0/token"
AUTH_ENDPOINT = "https://login.example.test/common/oauth2/v2.0/authorize"


def pytest_addoption(parser):
    """Add the --integration option to pytest."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests against the real Microsoft identity platform",
    )


def fake_clock_factory(now: float) -> Callable[[], float]:
    """Return a callable clock that always returns *now*."""
    return lambda now=now: now


class MutableClock:
    """Clock whose reading can be moved forward by tests."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def write_tokens(path: Path, data: Any) -> None:
    """Write *data* to *path* the way the store does."""
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def token_path(tmp_path: Path) -> Path:
    return tmp_path / "outlook-mcp-tokens.json"


@pytest.fixture
def settings(token_path: Path) -> AuthSettings:
    return AuthSettings(
        client_id="client-123",
        client_secret="secret-value",
        token_store_path=token_path,
        token_endpoint=TOKEN_ENDPOINT,
        auth_endpoint=AUTH_ENDPOINT,
        state_secret="unit-test-state-secret",
    )
