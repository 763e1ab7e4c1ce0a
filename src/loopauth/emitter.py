"""Host notification channel for flow results.

A flow ends with exactly one notification: ``oauth-token`` carrying the
token payload, or ``oauth-error`` carrying ``{"message": ...}``. Handlers
run on the flow's worker thread, after the browser page has been decided
and before the pending request is cleared. A host that needs the result on
its UI thread should hand it over from inside the handler.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from loopauth.models import TokenSet

logger = logging.getLogger(__name__)

EVENT_TOKEN = "oauth-token"
EVENT_ERROR = "oauth-error"

Handler = Callable[[dict[str, Any]], None]


class ResultEmitter:
    """Fan-out of named events to subscribed handlers.

    Example::

        emitter = ResultEmitter()
        unsubscribe = emitter.on(EVENT_TOKEN, lambda payload: save(payload))
        ...
        unsubscribe()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[str, list[Handler]] = {}

    def on(self, event: str, handler: Handler) -> Callable[[], None]:
        """Subscribe *handler* to *event*.

        Returns:
            A callable that removes the subscription.
        """
        with self._lock:
            self._handlers.setdefault(event, []).append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event, [])
                if handler in handlers:
                    handlers.remove(handler)

        return _unsubscribe

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        """Deliver *payload* to every handler subscribed to *event*.

        A failing handler is logged and does not prevent delivery to the
        remaining handlers or the rest of the flow.
        """
        with self._lock:
            handlers = list(self._handlers.get(event, []))
        if not handlers:
            logger.debug("No handler subscribed to '%s'", event)
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler for '%s' raised", event)

    def emit_token(self, tokens: TokenSet) -> None:
        self.emit(EVENT_TOKEN, tokens.to_payload())

    def emit_error(self, message: str) -> None:
        self.emit(EVENT_ERROR, {"message": message})
