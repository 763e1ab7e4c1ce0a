"""loopauth -- loopback OAuth 2.0 Authorization Code + PKCE for desktop apps.

Desktop applications cannot register a stable HTTPS redirect URI, so this
package opens a short-lived HTTP listener on ``127.0.0.1`` to catch the
identity provider's browser redirect, checks the anti-CSRF ``state``,
exchanges the authorization code for tokens, and hands the result back to
the host application through an event emitter.

Typical use from a host application::

    service = OAuthService()
    service.emitter.on(EVENT_TOKEN, save_tokens)
    service.emitter.on(EVENT_ERROR, show_error)
    service.start_flow(state, port, verifier, client_id, "", redirect_uri)

Modules:
    service: :class:`~loopauth.service.OAuthService` facade.
    listener: Single-shot loopback listener and :class:`FlowHandle`.
    callback: Callback request validation and dispatch.
    exchange: Token endpoint client (code exchange and refresh).
    store: Pending-request store.
    render: HTML pages returned to the browser.
    emitter: Host notification channel.
    app: Typer CLI entry point.
"""

import logging

from loopauth.emitter import EVENT_ERROR, EVENT_TOKEN, ResultEmitter
from loopauth.service import OAuthService

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "EVENT_ERROR",
    "EVENT_TOKEN",
    "OAuthService",
    "ResultEmitter",
    "__version__",
]
