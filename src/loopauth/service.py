"""The two operations a host application calls: start a flow, refresh a token.

:class:`OAuthService` owns the pending-request store, the token client, the
notification emitter and the currently running :class:`FlowHandle`, and
wires them together. Only one flow runs at a time: starting a new one
cancels the previous flow and waits for its worker before the new request
overwrites the store and the port is bound again.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from loopauth.callback import CallbackProcessor
from loopauth.emitter import ResultEmitter
from loopauth.exceptions import InvalidUsageError, PortBindError
from loopauth.exchange import TokenExchangeClient
from loopauth.listener import CallbackListener, FlowHandle
from loopauth.models import LoopauthConfig, PendingOAuthRequest, RefreshedToken
from loopauth.render import ResponseRenderer
from loopauth.store import PendingRequestStore

logger = logging.getLogger(__name__)

_CANCEL_JOIN_TIMEOUT = 5.0


class OAuthService:
    """Loopback OAuth backend for one host application.

    Args:
        config: Effective configuration; defaults are used if omitted.
        exchange_client: Token client; built from *config* if omitted.
        emitter: Notification channel; a fresh one is created if omitted.
        store: Pending-request store; a fresh one is created if omitted.
        app_name: Shown on the browser pages.

    Example::

        with OAuthService() as service:
            service.emitter.on(EVENT_TOKEN, on_token)
            handle = service.start_flow(state, 17548, verifier, cid, "", uri)
            handle.wait()
    """

    def __init__(
        self,
        config: Optional[LoopauthConfig] = None,
        exchange_client: Optional[TokenExchangeClient] = None,
        emitter: Optional[ResultEmitter] = None,
        store: Optional[PendingRequestStore] = None,
        app_name: str = "the application",
    ) -> None:
        self._config = config or LoopauthConfig()
        self._exchange_client = exchange_client or TokenExchangeClient(
            token_url=self._config.token_url,
            timeout=self._config.request_timeout,
        )
        self._emitter = emitter or ResultEmitter()
        self._store = store or PendingRequestStore()
        self._processor = CallbackProcessor(
            self._store,
            self._exchange_client,
            self._emitter,
            renderer=ResponseRenderer(app_name),
            callback_path=self._config.callback_path,
        )
        self._listener = CallbackListener(
            self._store, self._processor, self._emitter, self._config
        )
        self._flow_lock = threading.Lock()
        self._active: Optional[FlowHandle] = None
        self._closed = False

    @property
    def config(self) -> LoopauthConfig:
        return self._config

    @property
    def emitter(self) -> ResultEmitter:
        return self._emitter

    @property
    def store(self) -> PendingRequestStore:
        return self._store

    @property
    def processor(self) -> CallbackProcessor:
        return self._processor

    @property
    def active_flow(self) -> Optional[FlowHandle]:
        return self._active

    def __enter__(self) -> OAuthService:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    def start_flow(
        self,
        state: str,
        port: int,
        code_verifier: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
    ) -> FlowHandle:
        """Store the flow's verification material and start listening.

        Returns as soon as the port is bound. The flow later emits exactly
        one ``oauth-token`` or ``oauth-error`` notification unless it is
        cancelled first.

        Args:
            state: Anti-CSRF value sent in the authorization request.
            port: Loopback port named in *redirect_uri*; 1024-65535.
            code_verifier: PKCE verifier for the exchange.
            client_id: OAuth client identifier.
            client_secret: Client secret, or ``""`` for public clients.
            redirect_uri: Redirect URI sent in the authorization request.

        Returns:
            A :class:`~loopauth.listener.FlowHandle` for the running flow.

        Raises:
            InvalidUsageError: A required argument is empty, the port is
                out of range, or the service has been shut down.
            PortBindError: The port could not be bound; no worker started.
        """
        self._check_open()
        if not 1024 <= port <= 65535:
            raise InvalidUsageError(
                f"Callback port must be between 1024 and 65535, got {port}"
            )
        for name, value in (
            ("state", state),
            ("code_verifier", code_verifier),
            ("client_id", client_id),
            ("redirect_uri", redirect_uri),
        ):
            if not value:
                raise InvalidUsageError(f"'{name}' must not be empty")

        request = PendingOAuthRequest(
            expected_state=state,
            code_verifier=code_verifier,
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
        )

        with self._flow_lock:
            self._check_open()
            self._cancel_active()
            self._store.set(request)
            try:
                server = self._listener.bind(port)
            except PortBindError:
                self._store.clear_if(request)
                raise
            self._active = self._listener.start(server, request)
            return self._active

    def refresh_token(
        self, refresh_token: str, client_id: str, client_secret: str
    ) -> RefreshedToken:
        """Exchange a stored refresh token for a new access token.

        Synchronous and independent of any running flow.

        Raises:
            ExchangeError: Transport, status or decode failure.
            InvalidUsageError: The service has been shut down.
        """
        self._check_open()
        return self._exchange_client.refresh_token(refresh_token, client_id, client_secret)

    def shutdown(self) -> None:
        """Cancel the running flow, if any, and close the token client.

        Calling it again is a no-op.
        """
        with self._flow_lock:
            if self._closed:
                return
            self._closed = True
            self._cancel_active()
        self._exchange_client.close()

    def _check_open(self) -> None:
        if self._closed:
            raise InvalidUsageError("OAuth service has been shut down")

    def _cancel_active(self) -> None:
        active = self._active
        self._active = None
        if active is None or active.done:
            return
        logger.info("Cancelling OAuth flow on port %d", active.port)
        active.cancel()
        if active.wait(_CANCEL_JOIN_TIMEOUT) is None:
            logger.warning(
                "Previous OAuth flow on port %d is still finishing its exchange",
                active.port,
            )
