"""Single-shot loopback listener for the OAuth redirect.

:meth:`CallbackListener.bind` claims ``127.0.0.1:<port>`` synchronously so
that a busy port is reported to the caller straight away.
:meth:`CallbackListener.start` then hands the bound socket to a
:class:`FlowHandle`, whose worker thread accepts exactly one connection,
reads and answers one request, and closes both sockets.

The accept wait polls in short slices (like
:meth:`socketserver.BaseServer.serve_forever`) so the worker notices a
deadline or a :meth:`FlowHandle.cancel` promptly.
"""

from __future__ import annotations

import logging
import os
import socket
import threading
import time
from typing import Optional

from loopauth.callback import CallbackProcessor, FlowOutcome, FlowResult
from loopauth.emitter import ResultEmitter
from loopauth.exceptions import FlowTimeoutError, MalformedCallbackError, PortBindError
from loopauth.models import LoopauthConfig, PendingOAuthRequest
from loopauth.request import parse_request_head, read_request_head
from loopauth.store import PendingRequestStore

logger = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"
POLL_INTERVAL = 0.2


class FlowHandle:
    """Handle on one running flow's worker thread.

    Returned by :meth:`CallbackListener.start` (and
    :meth:`~loopauth.service.OAuthService.start_flow`). The flow ends when a
    callback has been answered, when the deadline passes, or when
    :meth:`cancel` is called. Whatever the ending, the listening socket is
    closed and the flow's pending request is removed from the store.

    Args:
        server: A bound, listening socket. Ownership passes to the handle.
        request: The pending request this flow stored.
        store: The shared pending-request store.
        processor: Callback validation and exchange.
        emitter: Used to report a timeout to the host.
        config: Supplies the callback deadline, read timeout and head limit.
    """

    def __init__(
        self,
        server: socket.socket,
        request: PendingOAuthRequest,
        store: PendingRequestStore,
        processor: CallbackProcessor,
        emitter: ResultEmitter,
        config: LoopauthConfig,
    ) -> None:
        self._server = server
        self._request = request
        self._store = store
        self._processor = processor
        self._emitter = emitter
        self._config = config
        self._port: int = server.getsockname()[1]
        self._cancelled = threading.Event()
        self._finished = threading.Event()
        self._result: Optional[FlowResult] = None
        self._thread = threading.Thread(
            target=self._run,
            name=f"loopauth-callback-{self._port}",
            daemon=True,
        )

    @property
    def port(self) -> int:
        return self._port

    @property
    def request(self) -> PendingOAuthRequest:
        return self._request

    @property
    def done(self) -> bool:
        return self._finished.is_set()

    @property
    def result(self) -> Optional[FlowResult]:
        """The flow result, or ``None`` while the flow is still running."""
        return self._result

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        """Ask the worker to stop waiting for a connection.

        Has no effect once a connection has been accepted; an exchange that
        is already running completes normally.
        """
        self._cancelled.set()

    def wait(self, timeout: Optional[float] = None) -> Optional[FlowResult]:
        """Block until the flow ends or *timeout* seconds pass.

        Returns:
            The flow result, or ``None`` if the flow is still running.
        """
        self._finished.wait(timeout)
        return self._result

    def _run(self) -> None:
        try:
            conn = self._accept()
            if conn is not None:
                with conn:
                    self._serve(conn)
        except OSError as exc:
            logger.error("OAuth callback listener on port %d failed: %s", self._port, exc)
            message = f"Callback listener failed: {exc}"
            self._emitter.emit_error(message)
            self._result = FlowResult(FlowOutcome.ERROR, error=MalformedCallbackError(message))
        finally:
            self._server.close()
            if self._store.clear_if(self._request):
                logger.debug("Cleared pending OAuth request for port %d", self._port)
            self._finished.set()

    def _accept(self) -> Optional[socket.socket]:
        """Wait for one connection, honouring the deadline and cancellation."""
        deadline = time.monotonic() + self._config.callback_timeout
        while not self._cancelled.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning(
                    "No OAuth callback on port %d within %.0f seconds",
                    self._port,
                    self._config.callback_timeout,
                )
                error = FlowTimeoutError("Timed out waiting for OAuth callback")
                self._emitter.emit_error(error.message)
                self._result = FlowResult(FlowOutcome.TIMEOUT, error=error)
                return None
            self._server.settimeout(min(POLL_INTERVAL, remaining))
            try:
                conn, _addr = self._server.accept()
            except socket.timeout:
                continue
            return conn

        logger.info("OAuth flow on port %d cancelled", self._port)
        self._result = FlowResult(FlowOutcome.CANCELLED)
        return None

    def _serve(self, conn: socket.socket) -> None:
        try:
            head = read_request_head(
                conn, self._config.max_request_bytes, self._config.read_timeout
            )
            request = parse_request_head(head)
        except MalformedCallbackError as exc:
            logger.warning("Rejected callback request: %s", exc)
            response, result = self._processor.reject(exc)
        else:
            response, result = self._processor.handle(request)

        try:
            conn.sendall(response.to_bytes())
        except OSError as exc:
            logger.warning("Failed to write callback response: %s", exc)
        self._result = result


class CallbackListener:
    """Binds loopback sockets and launches flow workers.

    Args:
        store: The shared pending-request store.
        processor: Callback validation and exchange.
        emitter: Host notification channel.
        config: Timeouts and limits for the workers.
    """

    def __init__(
        self,
        store: PendingRequestStore,
        processor: CallbackProcessor,
        emitter: ResultEmitter,
        config: LoopauthConfig,
    ) -> None:
        self._store = store
        self._processor = processor
        self._emitter = emitter
        self._config = config

    def bind(self, port: int) -> socket.socket:
        """Bind and listen on ``127.0.0.1:<port>``.

        Raises:
            PortBindError: The port is in use or otherwise unavailable.
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            if os.name == "posix":
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((LOOPBACK_HOST, port))
            sock.listen(1)
        except OSError as exc:
            sock.close()
            raise PortBindError(port, exc.strerror or str(exc)) from exc
        logger.info("OAuth server listening on %s:%d", LOOPBACK_HOST, port)
        return sock

    def start(self, server: socket.socket, request: PendingOAuthRequest) -> FlowHandle:
        """Start the worker for a bound socket and return its handle."""
        handle = FlowHandle(
            server, request, self._store, self._processor, self._emitter, self._config
        )
        handle.start()
        return handle
