"""Config commands -- view and modify the loopauth configuration file.

Provides the ``loopauth config`` sub-command group. Settings live in
``config.json`` in the loopauth config directory and supply defaults for
the token endpoint, callback port, and timeouts.
"""

from __future__ import annotations

import typer

from loopauth.exceptions import LoopauthError
from loopauth.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration (file, environment, defaults).

    Example::

        loopauth config show --json
    """
    from loopauth.config import config_path, resolve_config

    try:
        config = resolve_config()
    except LoopauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    info(f"Config file: {config_path()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key, e.g. 'token_url' or 'default_port'."),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    The value is validated against the field's type before saving.

    Example::

        loopauth config set default_port 17342
        loopauth config set scopes "openid email"
    """
    from loopauth.config import set_config_value

    try:
        set_config_value(key, value)
    except LoopauthError as exc:
        error(str(exc))
        raise typer.Exit(code=2) from None
    success(f"Set {key} = {value}")
