"""Pending-request store for the single in-flight OAuth flow.

The store holds at most one :class:`~loopauth.models.PendingOAuthRequest`.
Writes overwrite rather than queue, so starting a second flow silently
replaces the first one's verification material. The host thread (starting
flows) and the listener worker (reading and clearing) share one instance;
every operation takes a short lock and never performs I/O while holding it.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from loopauth.models import PendingOAuthRequest

logger = logging.getLogger(__name__)


class PendingRequestStore:
    """Thread-safe holder for at most one pending OAuth request.

    Example::

        store = PendingRequestStore()
        store.set(request)
        pending = store.snapshot()   # still stored
        store.clear()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._request: Optional[PendingOAuthRequest] = None

    def set(self, request: PendingOAuthRequest) -> None:
        """Replace the pending request unconditionally."""
        with self._lock:
            replaced = self._request is not None
            self._request = request
        if replaced:
            logger.debug("Replaced an unfinished pending OAuth request")

    def snapshot(self) -> Optional[PendingOAuthRequest]:
        """Return the pending request without removing it.

        The exchange step still needs the verifier and client credentials
        after the state check, so reading must not consume the entry.
        """
        with self._lock:
            return self._request

    def clear(self) -> None:
        """Remove the pending request, if any."""
        with self._lock:
            self._request = None

    def clear_if(self, request: PendingOAuthRequest) -> bool:
        """Remove the pending request only if it is still the *request* object.

        A worker finishing after a newer flow has overwritten the store
        uses this so it cannot wipe the newer flow's request.

        Returns:
            ``True`` if the entry was removed.
        """
        with self._lock:
            if self._request is not request:
                return False
            self._request = None
            return True

    @property
    def is_pending(self) -> bool:
        with self._lock:
            return self._request is not None
