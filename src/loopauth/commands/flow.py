"""Flow commands -- run a browser login or refresh a token from the shell.

``loopauth login`` acts as the host application: it generates the PKCE
pair and state, starts the loopback flow, opens the browser, waits for the
result, and prints the tokens to stdout. ``loopauth refresh`` performs a
single refresh-token grant.

Typical workflow::

    loopauth login --client-id "$CID" --scope https://www.googleapis.com/auth/drive.file
    loopauth refresh --client-id "$CID" --refresh-token "$RT"
"""

from __future__ import annotations

import webbrowser
from typing import Optional

import typer

from loopauth.callback import FlowOutcome
from loopauth.config import resolve_config, resolve_credential
from loopauth.exceptions import LoopauthError
from loopauth.models import LoopauthConfig
from loopauth.output import error, format_response, info, success, suggest, warning
from loopauth.pkce import (
    build_authorization_url,
    generate_pkce_pair,
    generate_state,
    loopback_redirect_uri,
)
from loopauth.service import OAuthService


def _build_service(config: LoopauthConfig) -> OAuthService:
    return OAuthService(config, app_name="loopauth")


def login_command(
    client_id: str = typer.Option(
        ..., "--client-id", envvar="LOOPAUTH_CLIENT_ID", help="OAuth client ID."
    ),
    client_secret_source: Optional[str] = typer.Option(
        None,
        "--client-secret-source",
        help="Client secret source: env:VAR, file:/path, prompt. Omit for public clients.",
    ),
    port: Optional[int] = typer.Option(
        None, "--port", help="Loopback callback port (default from config)."
    ),
    scopes: Optional[list[str]] = typer.Option(
        None, "--scope", "-s", help="Scope to request; repeatable."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Seconds to wait for the browser redirect."
    ),
    token_url: Optional[str] = typer.Option(None, "--token-url", help="Token endpoint."),
    authorization_url: Optional[str] = typer.Option(
        None, "--auth-url", help="Authorization endpoint."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the authorization URL instead of opening it."
    ),
) -> None:
    """Sign in through the browser and print the resulting tokens.

    Raises:
        typer.Exit: With the failing error's exit code when the flow does
            not produce tokens.

    Example::

        loopauth login --client-id my-client --scope openid --json
    """
    try:
        config = resolve_config(
            token_url=token_url,
            authorization_url=authorization_url,
            callback_timeout=timeout,
            default_port=port,
        )
        client_secret = resolve_credential(client_secret_source) if client_secret_source else ""
    except LoopauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    code_verifier, code_challenge = generate_pkce_pair()
    state = generate_state()
    redirect_uri = loopback_redirect_uri(config.default_port, config.callback_path)

    with _build_service(config) as service:
        try:
            handle = service.start_flow(
                state,
                config.default_port,
                code_verifier,
                client_id,
                client_secret,
                redirect_uri,
            )
        except LoopauthError as exc:
            error(str(exc))
            suggest("Free the port or choose another one with --port.")
            raise typer.Exit(code=exc.exit_code) from None

        auth_url = build_authorization_url(
            config.authorization_url,
            client_id,
            redirect_uri,
            state,
            code_challenge,
            scopes=scopes or config.scopes,
        )
        if no_browser or not webbrowser.open(auth_url):
            if not no_browser:
                warning("Could not open a browser.")
            info("Open this URL to continue:")
            info(auth_url)
        else:
            info("Opened the authorization page in your browser.")
        info(f"Waiting for the redirect on {redirect_uri} ...")

        result = handle.wait()

    if result is not None and result.ok and result.tokens is not None:
        format_response(result.tokens.to_payload())
        success("Signed in.")
        return

    if result is None or result.error is None:
        outcome = result.outcome if result is not None else FlowOutcome.CANCELLED
        error(f"Sign-in did not complete ({outcome.value}).")
        raise typer.Exit(code=1)
    error(result.error.message)
    raise typer.Exit(code=result.error.exit_code)


def refresh_command(
    refresh_token: str = typer.Option(
        ..., "--refresh-token", envvar="LOOPAUTH_REFRESH_TOKEN", help="Stored refresh token."
    ),
    client_id: str = typer.Option(
        ..., "--client-id", envvar="LOOPAUTH_CLIENT_ID", help="OAuth client ID."
    ),
    client_secret_source: Optional[str] = typer.Option(
        None,
        "--client-secret-source",
        help="Client secret source: env:VAR, file:/path, prompt. Omit for public clients.",
    ),
    token_url: Optional[str] = typer.Option(None, "--token-url", help="Token endpoint."),
) -> None:
    """Exchange a refresh token for a new access token.

    Prints ``access_token`` and ``expires_in``.

    Example::

        loopauth refresh --client-id my-client --refresh-token "$RT" --json
    """
    try:
        config = resolve_config(token_url=token_url)
        client_secret = resolve_credential(client_secret_source) if client_secret_source else ""
        with _build_service(config) as service:
            refreshed = service.refresh_token(refresh_token, client_id, client_secret)
    except LoopauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    format_response(refreshed.model_dump())
