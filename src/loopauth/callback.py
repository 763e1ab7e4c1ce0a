"""Validation and dispatch of one OAuth callback request.

:class:`CallbackProcessor` turns a parsed request head into the page to send
back and the outcome of the flow. It does no socket I/O, which keeps it
usable from tests and from listeners other than
:class:`~loopauth.listener.CallbackListener`.

For a request on the callback path the steps are strictly ordered:

1. Read the pending request (without consuming it).
2. Compare ``state`` with the stored value before ``code`` is looked at.
3. Forward a provider ``error`` verbatim, or exchange ``code`` for tokens.
4. Notify the host.
5. Remove the pending request.

Requests for any other path get the generic invalid-request page; the host
is not notified about them.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from loopauth.emitter import ResultEmitter
from loopauth.exceptions import (
    CallbackError,
    ExchangeError,
    LoopauthError,
    MalformedCallbackError,
    NoPendingRequestError,
    ProviderError,
    StateMismatchError,
)
from loopauth.exchange import TokenExchangeClient
from loopauth.models import CallbackQuery, PendingOAuthRequest, TokenSet
from loopauth.render import HttpResponse, ResponseRenderer
from loopauth.request import CallbackRequest, parse_query
from loopauth.store import PendingRequestStore

logger = logging.getLogger(__name__)

INVALID_REQUEST_MESSAGE = "Invalid request"


class FlowOutcome(str, enum.Enum):
    """How a flow ended."""

    TOKEN = "token"
    ERROR = "error"
    INVALID = "invalid"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class FlowResult:
    """Final state of a flow, as reported by :class:`~loopauth.listener.FlowHandle`."""

    outcome: FlowOutcome
    tokens: Optional[TokenSet] = None
    error: Optional[LoopauthError] = None

    @property
    def ok(self) -> bool:
        return self.outcome is FlowOutcome.TOKEN

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error is not None else None


class CallbackProcessor:
    """Validates a callback request and drives the token exchange.

    Args:
        store: The shared pending-request store.
        exchange_client: Client used for the code exchange.
        emitter: Channel the outcome is reported on.
        renderer: Page builder; a default one is created if omitted.
        callback_path: Path the provider redirects to.
    """

    def __init__(
        self,
        store: PendingRequestStore,
        exchange_client: TokenExchangeClient,
        emitter: ResultEmitter,
        renderer: Optional[ResponseRenderer] = None,
        callback_path: str = "/callback",
    ) -> None:
        self._store = store
        self._exchange_client = exchange_client
        self._emitter = emitter
        self._renderer = renderer or ResponseRenderer()
        self._callback_prefix = f"{callback_path}?"

    def handle(self, request: CallbackRequest) -> tuple[HttpResponse, FlowResult]:
        """Process a parsed callback request.

        Returns:
            The response to write to the browser and the flow result.
        """
        if not request.target.startswith(self._callback_prefix):
            logger.info("Ignoring non-callback request for %s", request.path)
            return self.reject(MalformedCallbackError(INVALID_REQUEST_MESSAGE))

        logger.debug("OAuth callback received on %s", request.path)
        query = CallbackQuery.from_params(
            parse_query(request.target[len(self._callback_prefix):])
        )

        pending = self._store.snapshot()
        if pending is None:
            logger.error("No stored OAuth state")
            return self._fail(NoPendingRequestError())

        try:
            return self._complete(query, pending)
        finally:
            self._store.clear_if(pending)

    def reject(self, exc: MalformedCallbackError) -> tuple[HttpResponse, FlowResult]:
        """Answer an unusable request with the generic invalid-request page."""
        return (
            self._renderer.failure(INVALID_REQUEST_MESSAGE),
            FlowResult(FlowOutcome.INVALID, error=exc),
        )

    def _complete(
        self, query: CallbackQuery, pending: PendingOAuthRequest
    ) -> tuple[HttpResponse, FlowResult]:
        if query.state != pending.expected_state:
            logger.error("OAuth state mismatch")
            return self._fail(StateMismatchError())

        if query.error is not None:
            logger.error("OAuth error from provider: %s", query.error)
            return self._fail(ProviderError(query.error))

        if query.code is None:
            logger.error("OAuth callback carried neither code nor error")
            return self._fail(CallbackError("Missing authorization code"))

        logger.info("Got authorization code, exchanging for tokens")
        try:
            tokens = self._exchange_client.exchange_code(
                query.code,
                pending.code_verifier,
                pending.client_id,
                pending.client_secret,
                pending.redirect_uri,
            )
        except ExchangeError as exc:
            logger.error("Token exchange failed: %s", exc)
            return self._fail(exc)
        except Exception as exc:
            logger.exception("Unexpected error during token exchange")
            return self._fail(ExchangeError(f"Token exchange failed: {exc}"))

        logger.info("Token exchange successful")
        self._emitter.emit_token(tokens)
        return self._renderer.success(), FlowResult(FlowOutcome.TOKEN, tokens=tokens)

    def _fail(self, exc: LoopauthError) -> tuple[HttpResponse, FlowResult]:
        self._emitter.emit_error(exc.message)
        return self._renderer.failure(exc.message), FlowResult(FlowOutcome.ERROR, error=exc)
