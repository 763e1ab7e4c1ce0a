"""Tests for OAuthService: starting, replacing and refreshing flows."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from loopauth.callback import FlowOutcome
from loopauth.emitter import EVENT_ERROR, EVENT_TOKEN
from loopauth.exceptions import (
    ExchangeStatusError,
    ExchangeTransportError,
    InvalidUsageError,
    NoPendingRequestError,
)
from loopauth.models import LoopauthConfig, RefreshedToken
from loopauth.request import CallbackRequest
from loopauth.service import OAuthService

MakeService = Callable[..., tuple[OAuthService, Any]]


def _uri(port: int) -> str:
    return f"http://127.0.0.1:{port}/callback"


class TestStartFlow:
    def test_worked_example(
        self,
        make_service: MakeService,
        token_endpoint: Any,
        free_port: int,
        send_callback: Any,
    ) -> None:
        service, events = make_service()

        handle = service.start_flow(
            "abc123", free_port, "verifier1", "client1", "", _uri(free_port)
        )
        assert service.store.snapshot().expected_state == "abc123"
        assert service.active_flow is handle

        status, _, _ = send_callback(free_port, "/callback?code=xyz&state=abc123")
        result = handle.wait(5)

        assert status == 200
        assert result is not None and result.ok
        assert events.of(EVENT_TOKEN) == [
            {"access_token": "tok", "expires_in": 3600, "refresh_token": None}
        ]
        assert token_endpoint.forms == [
            {
                "code": "xyz",
                "client_id": "client1",
                "code_verifier": "verifier1",
                "redirect_uri": _uri(free_port),
                "grant_type": "authorization_code",
            }
        ]

    def test_client_secret_forwarded(
        self,
        make_service: MakeService,
        token_endpoint: Any,
        free_port: int,
        send_callback: Any,
    ) -> None:
        service, _ = make_service()
        handle = service.start_flow(
            "abc123", free_port, "verifier1", "client1", "s3cret", _uri(free_port)
        )
        send_callback(free_port, "/callback?code=xyz&state=abc123")
        handle.wait(5)
        assert token_endpoint.forms[0]["client_secret"] == "s3cret"

    def test_late_callback_after_completion(
        self, make_service: MakeService, free_port: int, send_callback: Any
    ) -> None:
        service, events = make_service()
        handle = service.start_flow(
            "abc123", free_port, "verifier1", "client1", "", _uri(free_port)
        )
        send_callback(free_port, "/callback?code=xyz&state=abc123")
        handle.wait(5)

        _, result = service.processor.handle(
            CallbackRequest("GET", "/callback?code=xyz&state=abc123", "HTTP/1.1")
        )

        assert isinstance(result.error, NoPendingRequestError)
        assert events.of(EVENT_ERROR) == [{"message": "No pending OAuth request"}]

    def test_second_start_replaces_first(
        self,
        make_service: MakeService,
        token_endpoint: Any,
        free_port: int,
        send_callback: Any,
    ) -> None:
        service, events = make_service()
        first = service.start_flow("s1", free_port, "v1", "client1", "", _uri(free_port))
        second = service.start_flow("s2", free_port, "v2", "client1", "", _uri(free_port))

        assert first.done
        assert first.result is not None
        assert first.result.outcome is FlowOutcome.CANCELLED
        assert service.store.snapshot().expected_state == "s2"

        status, body, _ = send_callback(free_port, "/callback?code=xyz&state=s1")

        assert status == 400
        assert "State mismatch" in body
        second.wait(5)
        assert events.events == [(EVENT_ERROR, {"message": "State mismatch"})]
        assert token_endpoint.requests == []

    def test_second_start_on_other_port(
        self,
        make_service: MakeService,
        token_endpoint: Any,
        find_free_port: Any,
        send_callback: Any,
    ) -> None:
        service, events = make_service()
        port_a = find_free_port()
        port_b = find_free_port()
        service.start_flow("s1", port_a, "v1", "client1", "", _uri(port_a))
        second = service.start_flow("s2", port_b, "v2", "client1", "", _uri(port_b))

        send_callback(port_b, "/callback?code=xyz&state=s2")
        second.wait(5)

        assert events.of(EVENT_TOKEN) != []
        assert token_endpoint.forms[0]["code_verifier"] == "v2"

    @pytest.mark.parametrize("port", [0, 80, 1023, 65536, -1])
    def test_port_out_of_range(self, make_service: MakeService, port: int) -> None:
        service, _ = make_service()
        with pytest.raises(InvalidUsageError, match="between 1024 and 65535"):
            service.start_flow("abc123", port, "verifier1", "client1", "", _uri(17342))
        assert not service.store.is_pending

    @pytest.mark.parametrize(
        "field", ["state", "code_verifier", "client_id", "redirect_uri"]
    )
    def test_empty_required_argument(
        self, make_service: MakeService, free_port: int, field: str
    ) -> None:
        service, _ = make_service()
        args = {
            "state": "abc123",
            "port": free_port,
            "code_verifier": "verifier1",
            "client_id": "client1",
            "client_secret": "",
            "redirect_uri": _uri(free_port),
        }
        args[field] = ""
        with pytest.raises(InvalidUsageError, match=field):
            service.start_flow(**args)
        assert not service.store.is_pending
        assert service.active_flow is None


class TestRefreshToken:
    def test_refresh(self, make_endpoint: Any) -> None:
        endpoint = make_endpoint(
            json_body={"access_token": "fresh", "expires_in": 1200, "token_type": "Bearer"}
        )
        with OAuthService(exchange_client=endpoint.client()) as service:
            refreshed = service.refresh_token("rt", "client1", "")
        assert refreshed == RefreshedToken(access_token="fresh", expires_in=1200)
        assert endpoint.forms == [
            {"refresh_token": "rt", "client_id": "client1", "grant_type": "refresh_token"}
        ]

    def test_refresh_independent_of_flow(
        self, make_service: MakeService, token_endpoint: Any, free_port: int
    ) -> None:
        service, events = make_service()
        service.start_flow("abc123", free_port, "verifier1", "client1", "", _uri(free_port))

        refreshed = service.refresh_token("rt", "client1", "")

        assert refreshed.access_token == "tok"
        assert service.store.is_pending
        assert events.events == []

    def test_refresh_status_error(self, make_endpoint: Any) -> None:
        endpoint = make_endpoint(status_code=401, json_body={"error": "invalid_client"})
        with OAuthService(exchange_client=endpoint.client()) as service:
            with pytest.raises(ExchangeStatusError) as exc_info:
                service.refresh_token("rt", "client1", "")
        assert exc_info.value.status_code == 401

    def test_refresh_transport_error(self, make_endpoint: Any) -> None:
        endpoint = make_endpoint(exc=httpx.ConnectError("unreachable"))
        with OAuthService(exchange_client=endpoint.client()) as service:
            with pytest.raises(ExchangeTransportError):
                service.refresh_token("rt", "client1", "")


class TestShutdown:
    def test_shutdown_cancels_active_flow(
        self, token_endpoint: Any, record_events: Any, free_port: int
    ) -> None:
        service = OAuthService(exchange_client=token_endpoint.client())
        events = record_events(service.emitter)
        handle = service.start_flow(
            "abc123", free_port, "verifier1", "client1", "", _uri(free_port)
        )

        service.shutdown()

        assert handle.done
        assert handle.result is not None
        assert handle.result.outcome is FlowOutcome.CANCELLED
        assert service.active_flow is None
        assert not service.store.is_pending
        assert events.events == []

    def test_start_flow_after_shutdown(
        self, make_service: MakeService, token_endpoint: Any, free_port: int
    ) -> None:
        service, events = make_service()
        service.shutdown()

        with pytest.raises(InvalidUsageError, match="shut down"):
            service.start_flow("abc123", free_port, "verifier1", "client1", "", _uri(free_port))

        assert not service.store.is_pending
        assert service.active_flow is None
        assert events.events == []
        assert token_endpoint.requests == []

    def test_refresh_after_shutdown(
        self, make_service: MakeService, token_endpoint: Any
    ) -> None:
        service, _ = make_service()
        service.shutdown()

        with pytest.raises(InvalidUsageError, match="shut down"):
            service.refresh_token("rt", "client1", "")
        assert token_endpoint.requests == []

    def test_shutdown_twice(self, token_endpoint: Any) -> None:
        service = OAuthService(exchange_client=token_endpoint.client())
        service.shutdown()
        service.shutdown()
        with pytest.raises(InvalidUsageError):
            service.refresh_token("rt", "client1", "")

    def test_default_config(self) -> None:
        with OAuthService() as service:
            assert service.config == LoopauthConfig()
            assert service.config.default_port == 17548
