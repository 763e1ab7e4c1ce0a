"""Typer application and console-script entry point.

``loopauth login`` and ``loopauth refresh`` live in
:mod:`loopauth.commands.flow`; ``loopauth config`` in
:mod:`loopauth.commands.config`. The root callback installs the
:class:`~loopauth.output.OutputManager` and, with ``--verbose``, sends the
package's log records to stderr through Rich.

:func:`main` turns a stray :class:`~loopauth.exceptions.LoopauthError` into
its exit code and writes anything else to a crash log under the data
directory.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler

from loopauth import __version__
from loopauth.commands.config import config_app
from loopauth.commands.flow import login_command, refresh_command
from loopauth.exit_codes import EXIT_GENERIC_FAILURE
from loopauth.output import OutputFormat, OutputManager, set_output

_EXIT_INTERRUPTED = 130

app = typer.Typer(
    name="loopauth",
    help="Loopback OAuth 2.0 + PKCE sign-in for desktop apps.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("login")(login_command)
app.command("refresh")(refresh_command)
app.add_typer(config_app, name="config", help="Show or change the config file.")


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"loopauth {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_print_version,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="Print tokens as JSON."),
    plain_output: bool = typer.Option(
        False, "--plain", help="Print tokens as tab-separated key/value lines."
    ),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colour."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Only print tokens, warnings and errors."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log the flow step by step to stderr."
    ),
) -> None:
    """Loopback OAuth 2.0 + PKCE sign-in for desktop apps."""
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        fmt = OutputFormat.AUTO

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    if output.is_verbose:
        _enable_debug_logging(output.stderr_console)


def _enable_debug_logging(console: Console) -> None:
    """Route ``loopauth.*`` records at DEBUG and above to *console*.

    Any handler left by an earlier invocation in the same process is
    replaced, so repeated runs do not duplicate lines.
    """
    package_logger = logging.getLogger("loopauth")
    for existing in [h for h in package_logger.handlers if isinstance(h, RichHandler)]:
        package_logger.removeHandler(existing)

    handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG)


def _on_sigint(signum: int, frame: Any) -> None:
    sys.stderr.write("\nCancelled.\n")
    sys.exit(_EXIT_INTERRUPTED)


def _write_crash_log() -> Path:
    """Save the active traceback under ``<data dir>/logs`` and return the path."""
    from loopauth.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    path = logs_dir / f"crash-{datetime.now():%Y%m%d-%H%M%S}.log"
    path.write_text(traceback.format_exc(), encoding="utf-8")
    return path


def main() -> None:
    """Entry point of the ``loopauth`` console script.

    Raises:
        SystemExit: Always; Typer exits on its own, every other ending is
            mapped to an exit code here.
    """
    from loopauth.exceptions import LoopauthError
    from loopauth.output import error

    signal.signal(signal.SIGINT, _on_sigint)
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(_EXIT_INTERRUPTED)
    except LoopauthError as exc:
        error(exc.message)
        sys.exit(exc.exit_code)
    except Exception:
        error(f"Unexpected error. Debug log: {_write_crash_log()}")
        sys.exit(EXIT_GENERIC_FAILURE)
