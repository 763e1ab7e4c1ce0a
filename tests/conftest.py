"""Shared test fixtures for loopauth.

Provides a scripted token endpoint backed by :class:`httpx.MockTransport`,
a service wired to it, helpers for talking to the real loopback listener,
and isolation of config directories and the global output manager.
These fixtures are discovered by pytest automatically.
"""

from __future__ import annotations

import socket
from http.client import HTTPConnection
from pathlib import Path
from typing import Any, Callable, Iterator, Optional
from urllib.parse import parse_qsl

import httpx
import pytest

from loopauth.emitter import EVENT_ERROR, EVENT_TOKEN, ResultEmitter
from loopauth.exchange import TokenExchangeClient
from loopauth.models import LoopauthConfig
from loopauth.output import reset_output
from loopauth.service import OAuthService

TOKEN_URL = "https://oauth.example.test/token"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> Iterator[None]:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time; CliRunner swaps those streams per invocation.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Token endpoint
# ---------------------------------------------------------------------------


class TokenEndpoint:
    """A scripted token endpoint that records every request it receives.

    Args:
        status_code: Status of every response.
        json_body: JSON body of every response.
        content: Raw body; takes precedence over *json_body*.
        exc: If set, raised instead of answering (simulates transport errors).
    """

    def __init__(
        self,
        status_code: int = 200,
        json_body: Optional[Any] = None,
        content: Optional[bytes] = None,
        exc: Optional[Exception] = None,
    ) -> None:
        self.status_code = status_code
        self.json_body = json_body if json_body is not None else {
            "access_token": "tok",
            "expires_in": 3600,
            "token_type": "Bearer",
        }
        self.content = content
        self.exc = exc
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        if self.content is not None:
            return httpx.Response(self.status_code, content=self.content)
        return httpx.Response(self.status_code, json=self.json_body)

    @property
    def forms(self) -> list[dict[str, str]]:
        """Form bodies of all received requests, decoded."""
        return [dict(parse_qsl(r.content.decode("ascii"))) for r in self.requests]

    def client(self) -> TokenExchangeClient:
        return TokenExchangeClient(
            token_url=TOKEN_URL, transport=httpx.MockTransport(self.handler)
        )


@pytest.fixture
def token_endpoint() -> TokenEndpoint:
    """A token endpoint answering with a valid Bearer token."""
    return TokenEndpoint()


@pytest.fixture
def make_endpoint() -> type[TokenEndpoint]:
    """The :class:`TokenEndpoint` class, for tests scripting their own answers."""
    return TokenEndpoint


@pytest.fixture
def token_url() -> str:
    return TOKEN_URL


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class EventRecorder:
    """Collects every notification emitted on a :class:`ResultEmitter`."""

    def __init__(self, emitter: ResultEmitter) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []
        emitter.on(EVENT_TOKEN, lambda payload: self.events.append((EVENT_TOKEN, payload)))
        emitter.on(EVENT_ERROR, lambda payload: self.events.append((EVENT_ERROR, payload)))

    def of(self, event: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]


@pytest.fixture
def record_events() -> type[EventRecorder]:
    """The :class:`EventRecorder` class; call it with an emitter to start recording."""
    return EventRecorder


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


@pytest.fixture
def make_service(
    token_endpoint: TokenEndpoint,
) -> Iterator[Callable[..., tuple[OAuthService, EventRecorder]]]:
    """Factory for services talking to *token_endpoint*.

    Keyword arguments override :class:`LoopauthConfig` fields. Every
    service created is shut down after the test.
    """
    created: list[OAuthService] = []

    def _make(**config_overrides: Any) -> tuple[OAuthService, EventRecorder]:
        config = LoopauthConfig(token_url=TOKEN_URL, **config_overrides)
        service = OAuthService(config, exchange_client=token_endpoint.client())
        created.append(service)
        return service, EventRecorder(service.emitter)

    yield _make
    for service in created:
        service.shutdown()


# ---------------------------------------------------------------------------
# Loopback helpers
# ---------------------------------------------------------------------------


def _find_free_port() -> int:
    """Find a free TCP port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def _send_callback(port: int, path: str) -> tuple[int, str, dict[str, str]]:
    """Send a GET to the local listener and return status, body and headers."""
    conn = HTTPConnection("127.0.0.1", port, timeout=5)
    try:
        conn.request("GET", path)
        response = conn.getresponse()
        body = response.read().decode("utf-8")
        headers = {k.lower(): v for k, v in response.getheaders()}
        return response.status, body, headers
    finally:
        conn.close()


@pytest.fixture
def free_port() -> int:
    return _find_free_port()


@pytest.fixture
def find_free_port() -> Callable[[], int]:
    """Picks another free port on each call."""
    return _find_free_port


@pytest.fixture
def send_callback() -> Callable[[int, str], tuple[int, str, dict[str, str]]]:
    return _send_callback


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG directories at *tmp_path*, forces XDG path resolution,
    and clears all ``LOOPAUTH_*`` environment variables.
    """
    monkeypatch.setattr("loopauth.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in [
        "LOOPAUTH_TOKEN_URL",
        "LOOPAUTH_AUTHORIZATION_URL",
        "LOOPAUTH_CALLBACK_TIMEOUT",
        "LOOPAUTH_PORT",
        "LOOPAUTH_CLIENT_ID",
        "LOOPAUTH_REFRESH_TOKEN",
    ]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path
