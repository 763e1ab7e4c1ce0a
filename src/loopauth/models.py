"""Pydantic models shared across loopauth modules.

**Flow models** -- the data that moves through one OAuth round trip:
    :class:`PendingOAuthRequest`, :class:`CallbackQuery`, :class:`TokenSet`,
    :class:`RefreshedToken`.

**Configuration model** -- serialised as JSON in the user's config
directory: :class:`LoopauthConfig`.

Token models use ``extra="ignore"`` so that providers adding fields (for
example ``scope`` or ``id_token``) do not break decoding.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Flow models ---


class PendingOAuthRequest(BaseModel):
    """Verification material for the one flow currently awaiting its callback.

    Instances are immutable; the store hands out the same frozen object to
    every reader, which makes each read an independent copy in practice.

    Example::

        PendingOAuthRequest(
            expected_state="abc123",
            code_verifier="verifier1",
            client_id="client1",
            redirect_uri="http://127.0.0.1:17342/callback",
        )
    """

    model_config = ConfigDict(frozen=True)

    expected_state: str
    code_verifier: str
    client_id: str
    client_secret: str = Field(
        default="", description="Empty for public PKCE clients"
    )
    redirect_uri: str


class CallbackQuery(BaseModel):
    """The query parameters of a callback request that matter to the flow."""

    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_params(cls, params: dict[str, str]) -> CallbackQuery:
        return cls(
            code=params.get("code"),
            state=params.get("state"),
            error=params.get("error"),
        )


class TokenSet(BaseModel):
    """Token endpoint response to an ``authorization_code`` grant."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    expires_in: int
    refresh_token: Optional[str] = None
    token_type: str

    def to_payload(self) -> dict[str, object]:
        """Return the ``oauth-token`` notification payload.

        ``token_type`` is not part of the payload; ``refresh_token`` is
        always present and ``None`` when the provider sent none.
        """
        return {
            "access_token": self.access_token,
            "expires_in": self.expires_in,
            "refresh_token": self.refresh_token,
        }


class RefreshedToken(BaseModel):
    """Result of a ``refresh_token`` grant."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    expires_in: int


# --- Configuration ---


class LoopauthConfig(BaseModel):
    """Effective configuration for flows, the token client, and the CLI.

    Persisted as ``config.json`` in the config directory and overridable by
    ``LOOPAUTH_*`` environment variables and CLI flags (see
    :func:`loopauth.config.resolve_config`).
    """

    token_url: str = Field(
        default="https://oauth2.googleapis.com/token",
        description="Provider token endpoint (form-encoded POST)",
    )
    authorization_url: str = Field(
        default="https://accounts.google.com/o/oauth2/v2/auth",
        description="Provider authorization endpoint opened by `loopauth login`",
    )
    callback_path: str = Field(
        default="/callback", description="Path the provider redirects to"
    )
    default_port: int = Field(default=17548, ge=1024, le=65535)
    callback_timeout: float = Field(
        default=300.0,
        gt=0,
        description="Seconds to wait for the browser redirect before giving up",
    )
    read_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds to wait for the request head once connected",
    )
    max_request_bytes: int = Field(
        default=4096, ge=256, description="Upper bound on the callback request head"
    )
    request_timeout: float = Field(
        default=30.0, gt=0, description="HTTP timeout for token endpoint calls"
    )
    scopes: list[str] = Field(default_factory=list)
