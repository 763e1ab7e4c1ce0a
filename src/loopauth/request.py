"""Bounded HTTP/1.1 request-head reader and parser for the callback socket.

The callback listener only ever needs the request line (for the path and
query string), so this module reads the request head up to the blank line
that terminates it and stops there. Anything larger than the configured
limit is rejected with :class:`~loopauth.exceptions.RequestTooLargeError`
instead of being truncated, and a peer that connects but never finishes
its head is cut off by the socket read timeout.
"""

from __future__ import annotations

import socket
from dataclasses import dataclass, field
from urllib.parse import unquote_plus

from loopauth.exceptions import MalformedCallbackError, RequestTooLargeError

_HEAD_TERMINATOR = b"\r\n\r\n"
_RECV_CHUNK = 1024


@dataclass(frozen=True)
class CallbackRequest:
    """A parsed request head."""

    method: str
    target: str
    version: str
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def path(self) -> str:
        return self.target.split("?", 1)[0]


def read_request_head(sock: socket.socket, max_bytes: int, timeout: float) -> bytes:
    """Read from *sock* until the end of the request head.

    Args:
        sock: A connected socket.
        max_bytes: Largest accepted head, terminator included.
        timeout: Seconds to wait for each chunk.

    Returns:
        The raw head bytes, terminator included. Any body bytes already
        received are discarded.

    Raises:
        RequestTooLargeError: The head exceeds *max_bytes*.
        MalformedCallbackError: The peer closed or reset the connection, or
            stalled, before the head was complete.
    """
    sock.settimeout(timeout)
    buffer = bytearray()
    while True:
        end = buffer.find(_HEAD_TERMINATOR)
        if end != -1:
            head_length = end + len(_HEAD_TERMINATOR)
            if head_length > max_bytes:
                raise RequestTooLargeError(max_bytes)
            return bytes(buffer[:head_length])
        if len(buffer) >= max_bytes:
            raise RequestTooLargeError(max_bytes)

        try:
            chunk = sock.recv(min(_RECV_CHUNK, max_bytes + len(_HEAD_TERMINATOR) - len(buffer)))
        except socket.timeout as exc:
            raise MalformedCallbackError("Timed out reading request") from exc
        except OSError as exc:
            raise MalformedCallbackError(f"Connection error while reading request: {exc}") from exc
        if not chunk:
            raise MalformedCallbackError("Connection closed before request was complete")
        buffer.extend(chunk)


def parse_request_head(head: bytes) -> CallbackRequest:
    """Parse a request head into method, target, version and headers.

    Header names are lower-cased. Repeated headers keep the last value.

    Raises:
        MalformedCallbackError: The request line or a header line is not
            valid HTTP/1.x.
    """
    text = head.decode("iso-8859-1")
    lines = text.split("\r\n")
    request_line = lines[0]

    parts = request_line.split(" ")
    if len(parts) != 3:
        raise MalformedCallbackError(f"Invalid request line: {request_line!r}")
    method, target, version = parts
    if not method.isalpha() or not method.isupper():
        raise MalformedCallbackError(f"Invalid request method: {method!r}")
    if not version.startswith("HTTP/1."):
        raise MalformedCallbackError(f"Unsupported protocol version: {version!r}")
    if not target.startswith("/"):
        raise MalformedCallbackError(f"Invalid request target: {target!r}")

    headers: dict[str, str] = {}
    for line in lines[1:]:
        if not line:
            continue
        name, sep, value = line.partition(":")
        if not sep or not name or name != name.strip():
            raise MalformedCallbackError(f"Invalid header line: {line!r}")
        headers[name.lower()] = value.strip()

    return CallbackRequest(method=method, target=target, version=version, headers=headers)


def parse_query(query: str) -> dict[str, str]:
    """Split a query string into a parameter dict.

    Pairs are separated by ``&`` and split on the first ``=``; entries
    without ``=`` are dropped. Keys and values are percent-decoded. A
    repeated key keeps its last value.
    """
    params: dict[str, str] = {}
    for pair in query.split("&"):
        key, sep, value = pair.partition("=")
        if not sep:
            continue
        params[unquote_plus(key)] = unquote_plus(value)
    return params
