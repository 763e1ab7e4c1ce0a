"""Exception hierarchy for loopauth.

All exceptions inherit from :class:`LoopauthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`loopauth.exit_codes`.
The CLI entry point :func:`loopauth.app.main` catches ``LoopauthError`` and
exits with that code. Inside a running flow the same exceptions are never
propagated out of the worker thread; their message is rendered into the
browser page and forwarded to the host as an ``oauth-error`` notification.

Subclass hierarchy::

    LoopauthError (exit 1)
    +-- InvalidUsageError            (exit 2)
    +-- ConfigError                  (exit 1)
    +-- PortBindError                (exit 4)
    +-- CallbackError                (exit 3)
    |   +-- MalformedCallbackError
    |   |   +-- RequestTooLargeError
    |   +-- NoPendingRequestError
    |   +-- StateMismatchError
    |   +-- ProviderError
    |   +-- FlowTimeoutError         (exit 7)
    +-- ExchangeError                (exit 5)
        +-- ExchangeTransportError   (exit 6)
        +-- ExchangeStatusError
        +-- ExchangeDecodeError
"""

from __future__ import annotations

from loopauth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_EXCHANGE_FAILURE,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_PORT_UNAVAILABLE,
    EXIT_TIMEOUT,
)


class LoopauthError(Exception):
    """Base exception for all loopauth errors.

    Args:
        message: Human-readable error description. For callback and
            exchange errors this is exactly the text delivered to the host.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code

    @property
    def message(self) -> str:
        """The error text without any exception-class decoration."""
        return str(self)


class InvalidUsageError(LoopauthError):
    """Raised for invalid CLI arguments or start parameters."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(LoopauthError):
    """Raised for configuration problems (invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class PortBindError(LoopauthError):
    """Raised synchronously when the loopback callback port cannot be bound.

    No worker is started when this is raised, so the host never receives a
    notification for the failed start.
    """

    exit_code = EXIT_PORT_UNAVAILABLE

    def __init__(self, port: int, reason: str):
        super().__init__(f"Failed to bind to port {port}: {reason}")
        self.port = port
        self.reason = reason


class CallbackError(LoopauthError):
    """Base class for problems with the browser redirect itself."""

    exit_code = EXIT_AUTH_FAILURE


class MalformedCallbackError(CallbackError):
    """The inbound request is not a parseable callback request.

    Ends the flow with the generic invalid-request page. The host is not
    notified.
    """


class RequestTooLargeError(MalformedCallbackError):
    """The request head exceeded the configured byte limit."""

    def __init__(self, limit: int):
        super().__init__(f"Request exceeds {limit} bytes")
        self.limit = limit


class NoPendingRequestError(CallbackError):
    """A callback arrived while no flow was pending."""

    def __init__(self) -> None:
        super().__init__("No pending OAuth request")


class StateMismatchError(CallbackError):
    """The callback's ``state`` differs from the pending request's."""

    def __init__(self) -> None:
        super().__init__("State mismatch")


class ProviderError(CallbackError):
    """The provider redirected back with an ``error`` parameter.

    The message is the provider's value, forwarded verbatim.
    """


class FlowTimeoutError(CallbackError):
    """No callback arrived before the flow deadline."""

    exit_code = EXIT_TIMEOUT


class ExchangeError(LoopauthError):
    """Base class for token endpoint failures (code exchange or refresh)."""

    exit_code = EXIT_EXCHANGE_FAILURE


class ExchangeTransportError(ExchangeError):
    """The token endpoint could not be reached."""

    exit_code = EXIT_CONNECTION_ERROR


class ExchangeStatusError(ExchangeError):
    """The token endpoint answered with a non-2xx status.

    Only the status is carried in the message; the response body is logged
    locally and never surfaced to the host.
    """

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class ExchangeDecodeError(ExchangeError):
    """The token endpoint answered 2xx with a body that is not token JSON."""
