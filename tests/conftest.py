# tests/conftest.py
import logging
import os

import anyio
import pytest
from starlette.responses import PlainTextResponse
from starlette.types import Receive, Scope, Send

from mcpgate.server.runtime.auth.keys import build_signing_key
from mcpgate.server.runtime.auth.tokens import TokenCodec
from mcpgate.server.runtime.server import Settings
from mcpgate.server.runtime.sessions.registry import Session

TEST_SECRET = "mcpgate-test-secret-0123456789abcdef"

# ------------------------------------------------------------------------------
# 1. Global Configuration
# ------------------------------------------------------------------------------


@pytest.fixture(scope="session")
def anyio_backend():
    """
    Tells pytest to use 'asyncio' as the backend for anyio tests.
    The gateway relies on anyio throughout, and this keeps httpx and uvicorn happy.
    """
    return "asyncio"


@pytest.fixture(autouse=True)
def setup_test_logging(caplog):
    """
    Automatically captures logging at DEBUG level for every test.
    If a test fails, pytest will show the logs.
    """
    caplog.set_level(logging.DEBUG)


@pytest.fixture(autouse=True)
def clean_gateway_env(monkeypatch):
    """Keep MCPGATE_* variables of the developer's shell out of the tests."""
    for key in list(os.environ):
        if key.startswith("MCPGATE_"):
            monkeypatch.delenv(key, raising=False)


# ------------------------------------------------------------------------------
# 2. Tokens and settings
# ------------------------------------------------------------------------------


@pytest.fixture
def signing_secret() -> str:
    return TEST_SECRET


@pytest.fixture
def codec(signing_secret) -> TokenCodec:
    return TokenCodec(build_signing_key(signing_secret, "HS256"))


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, signing_key=TEST_SECRET, jwt_algorithm="HS256")


# ------------------------------------------------------------------------------
# 3. Fake session transports
# ------------------------------------------------------------------------------


class FakeTransport:
    """
    In-memory stand-in for a session transport.

    Records every POST it is handed and every close call. Close hooks fire once,
    like the real SSE transport.
    """

    def __init__(
        self,
        session_id: str,
        *,
        fail_before_response: Exception | None = None,
        fail_after_response: Exception | None = None,
        fail_close: Exception | None = None,
        hang_on_close: bool = False,
    ):
        self.session_id = session_id
        self.posts: list[bytes] = []
        self.close_calls = 0
        self._callbacks = []
        self._fail_before_response = fail_before_response
        self._fail_after_response = fail_after_response
        self._fail_close = fail_close
        self._hang_on_close = hang_on_close
        self._closed = False

    def on_close(self, callback) -> None:
        self._callbacks.append(callback)

    async def handle_post_message(self, scope: Scope, receive: Receive, send: Send) -> None:
        self.posts.append(scope.get("query_string", b""))
        if self._fail_before_response:
            raise self._fail_before_response
        await PlainTextResponse("Accepted", status_code=202)(scope, receive, send)
        if self._fail_after_response:
            raise self._fail_after_response

    async def close(self) -> None:
        self.close_calls += 1
        if self._hang_on_close:
            await anyio.sleep_forever()
        if self._fail_close:
            raise self._fail_close
        if self._closed:
            return
        self._closed = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()


@pytest.fixture
def fake_transport():
    """The FakeTransport class, for tests that build their own sessions."""
    return FakeTransport


@pytest.fixture
def make_session(codec):
    """Build a Session around a FakeTransport for `user`."""

    def _make(session_id: str, user: str = "alice", **transport_kwargs) -> Session:
        transport = FakeTransport(session_id, **transport_kwargs)
        return Session(id=session_id, transport=transport, identity_token=codec.sign_user(user))

    return _make
