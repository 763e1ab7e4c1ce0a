"""Token endpoint client for the authorization-code and refresh-token grants.

Both grants POST ``application/x-www-form-urlencoded`` bodies to the same
token endpoint and expect JSON back. ``client_secret`` is only sent when it
is non-empty, so public PKCE clients (no secret) and confidential clients
share one code path.

Failures map onto three exceptions:

* :class:`~loopauth.exceptions.ExchangeTransportError` -- the endpoint was
  not reachable.
* :class:`~loopauth.exceptions.ExchangeStatusError` -- non-2xx status. The
  message carries only the status; the body goes to the local log.
* :class:`~loopauth.exceptions.ExchangeDecodeError` -- 2xx with a body that
  is not valid token JSON.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from loopauth.exceptions import (
    ExchangeDecodeError,
    ExchangeStatusError,
    ExchangeTransportError,
)
from loopauth.models import RefreshedToken, TokenSet

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_URL = "https://oauth2.googleapis.com/token"


class TokenExchangeClient:
    """Performs code->token and refresh->token exchanges.

    Wraps a single :class:`httpx.Client` which is safe to share between
    the host thread (refresh) and a flow worker (code exchange).

    Args:
        token_url: The provider's token endpoint.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`
            in tests.

    Example::

        with TokenExchangeClient() as client:
            refreshed = client.refresh_token(rt, client_id, "")
    """

    def __init__(
        self,
        token_url: str = DEFAULT_TOKEN_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._token_url = token_url
        self._client = httpx.Client(timeout=timeout, transport=transport)

    @property
    def token_url(self) -> str:
        return self._token_url

    def __enter__(self) -> TokenExchangeClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def exchange_code(
        self,
        code: str,
        code_verifier: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
    ) -> TokenSet:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the callback.
            code_verifier: PKCE verifier matching the challenge sent in the
                authorization request.
            client_id: OAuth client identifier.
            client_secret: Client secret, or ``""`` for public clients.
            redirect_uri: The exact redirect URI used in the authorization
                request.

        Returns:
            The decoded :class:`~loopauth.models.TokenSet`.

        Raises:
            ExchangeTransportError: The endpoint could not be reached.
            ExchangeStatusError: The endpoint returned a non-2xx status.
            ExchangeDecodeError: The body is not valid token JSON.
        """
        data: dict[str, str] = {
            "code": code,
            "client_id": client_id,
            "code_verifier": code_verifier,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        }
        if client_secret:
            data["client_secret"] = client_secret

        payload = self._post(data, "Token exchange")
        try:
            return TokenSet.model_validate(payload)
        except ValidationError as exc:
            raise ExchangeDecodeError(
                f"Failed to parse token response: {_first_error(exc)}"
            ) from exc

    def refresh_token(
        self,
        refresh_token: str,
        client_id: str,
        client_secret: str,
    ) -> RefreshedToken:
        """Obtain a new access token from a stored refresh token.

        Independent of any pending flow; may be called at any time from any
        thread.

        Raises:
            ExchangeTransportError: The endpoint could not be reached.
            ExchangeStatusError: The endpoint returned a non-2xx status.
            ExchangeDecodeError: The body is not valid token JSON.
        """
        data: dict[str, str] = {
            "refresh_token": refresh_token,
            "client_id": client_id,
            "grant_type": "refresh_token",
        }
        if client_secret:
            data["client_secret"] = client_secret

        payload = self._post(data, "Token refresh")
        try:
            return RefreshedToken.model_validate(payload)
        except ValidationError as exc:
            raise ExchangeDecodeError(
                f"Failed to parse token response: {_first_error(exc)}"
            ) from exc

    def _post(self, data: dict[str, str], action: str) -> Any:
        """POST *data* form-encoded and return the decoded JSON body."""
        try:
            response = self._client.post(
                self._token_url,
                data=data,
                headers={"Accept": "application/json"},
            )
        # RuntimeError: the client was already closed
        except (httpx.HTTPError, httpx.InvalidURL, RuntimeError) as exc:
            logger.error("%s request to %s failed: %s", action, self._token_url, exc)
            raise ExchangeTransportError(f"Request failed: {exc}") from exc

        if not response.is_success:
            logger.error(
                "%s failed: %s - %s", action, response.status_code, response.text
            )
            status = f"{response.status_code} {response.reason_phrase}".strip()
            raise ExchangeStatusError(
                f"{action} failed: {status}", status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError as exc:
            raise ExchangeDecodeError(
                f"Failed to parse token response: {exc}"
            ) from exc


def _first_error(exc: ValidationError) -> str:
    """Summarise a pydantic validation error as ``field: message``."""
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "body"
    return f"{location}: {first.get('msg', 'invalid')}"
