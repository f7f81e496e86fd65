"""Shared test fixtures."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import jwt
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from lynx_fm.auth import CredentialStore, Session


@asynccontextmanager
async def _serve(app: web.Application) -> AsyncIterator[str]:
    """Run an aiohttp application on a local port, yielding its base URL."""
    server = TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url("/")).rstrip("/")
    finally:
        await server.close()


@pytest.fixture
def serve():
    """Factory: ``async with serve(app) as base_url: ...``"""
    return _serve


@pytest.fixture(autouse=True)
def lynx_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep every test away from the real ~/.lynx-fm."""
    home = tmp_path / "lynx-home"
    monkeypatch.setenv("LYNX_FM_HOME", str(home))
    for var in (
        "LYNX_FM_LOG_LEVEL",
        "LYNX_FM_AUDIO_DEVICE",
        "LYNX_FM_VOLUME",
        "LYNX_FM_PREFETCH_DIR",
        "LYNX_FM_PREFETCH_CONCURRENCY",
        "LYNX_FM_HTTP_TIMEOUT",
        "LYNX_FM_REFRESH_MARGIN",
    ):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def store(tmp_path: Path) -> CredentialStore:
    return CredentialStore(tmp_path / "state" / "session.json")


@pytest.fixture
def configured_session() -> Session:
    return Session(
        server_url="https://music.example",
        provider_url="https://auth.example",
        provider_key="anon-key",
    )


def make_jwt(claims: dict, secret: str = "test-signing-key-the-client-never-sees") -> str:
    """HS256 JWT with the given payload, signed with a key the client never sees."""
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def jwt_factory():
    return make_jwt
