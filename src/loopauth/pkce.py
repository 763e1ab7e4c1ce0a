"""PKCE and authorization-URL helpers for hosts starting a flow.

The backend never builds the authorization URL itself; these helpers exist
for hosts (including the bundled CLI) that need a verifier, a challenge, a
state value, and the URL to open in the browser.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from urllib.parse import urlencode


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A tuple of ``(code_verifier, code_challenge)``.
    """
    # RFC 7636: 43-128 characters from unreserved character set
    code_verifier = secrets.token_urlsafe(64)[:128]
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    code_challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return code_verifier, code_challenge


def generate_state() -> str:
    """Return an unguessable anti-CSRF ``state`` value."""
    return secrets.token_urlsafe(32)


def loopback_redirect_uri(port: int, callback_path: str = "/callback") -> str:
    return f"http://127.0.0.1:{port}{callback_path}"


def build_authorization_url(
    authorization_url: str,
    client_id: str,
    redirect_uri: str,
    state: str,
    code_challenge: str,
    scopes: list[str] | None = None,
    offline: bool = True,
) -> str:
    """Build the provider URL the browser is sent to.

    Args:
        authorization_url: The provider's authorization endpoint.
        client_id: OAuth client identifier.
        redirect_uri: Loopback redirect URI the listener is bound to.
        state: Anti-CSRF value; the callback must echo it.
        code_challenge: S256 challenge derived from the verifier.
        scopes: Space-joined into ``scope`` when given.
        offline: Ask for a refresh token (``access_type=offline`` with
            ``prompt=consent``, as Google requires).

    Returns:
        The full authorization URL.
    """
    params: dict[str, str] = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    if scopes:
        params["scope"] = " ".join(scopes)
    if offline:
        params["access_type"] = "offline"
        params["prompt"] = "consent"

    separator = "&" if "?" in authorization_url else "?"
    return f"{authorization_url}{separator}{urlencode(params)}"
