"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to an error category and is referenced by the matching
:class:`~loopauth.exceptions.LoopauthError` subclass, so scripts driving
``loopauth login`` or ``loopauth refresh`` can tell failures apart without
parsing stderr.

Example::

    $ loopauth refresh --refresh-token "$RT" --client-id "$CID"
    $ echo $?
    5   # EXIT_EXCHANGE_FAILURE -- the token endpoint rejected the request
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_AUTH_FAILURE = 3
"""The authorization callback was rejected (state mismatch, provider error)."""

EXIT_PORT_UNAVAILABLE = 4
"""The loopback callback port could not be bound."""

EXIT_EXCHANGE_FAILURE = 5
"""The token endpoint returned an error status or an unreadable body."""

EXIT_CONNECTION_ERROR = 6
"""The token endpoint could not be reached (timeout, DNS, connection refused)."""

EXIT_TIMEOUT = 7
"""No callback arrived before the flow deadline."""
