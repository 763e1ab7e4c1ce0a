"""Console output for the loopauth CLI.

Tokens and configuration are the only things written to stdout, so
``loopauth login --json > tokens.json`` captures nothing but the payload.
Everything a person reads while a flow runs (the authorization URL, the
waiting notice, warnings and errors) goes to stderr.

Colour is dropped for ``--no-color``, ``NO_COLOR`` (any value) and
``TERM=dumb``. ``--quiet`` silences the informational lines but never
warnings or errors.

Commands call the module-level helpers (:func:`info`, :func:`error`, ...);
they delegate to the :class:`OutputManager` installed by
:func:`~loopauth.app.main_callback`.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax


class OutputFormat(str, Enum):
    """How stdout payloads are rendered.

    ``AUTO`` becomes ``RICH`` on an interactive, colour-capable terminal
    and ``PLAIN`` everywhere else.
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Routes payloads to stdout and diagnostics to stderr.

    Args:
        format: Rendering for stdout payloads.
        no_color: Disable colour and Rich markup.
        quiet: Drop info, success and suggestion lines.
        verbose: Read back through :attr:`is_verbose` by
            :mod:`loopauth.app`, which turns on debug logging.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose

        if format == OutputFormat.AUTO:
            rich_ok = _is_tty() and not self._no_color
            format = OutputFormat.RICH if rich_ok else OutputFormat.PLAIN
        self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=format == OutputFormat.RICH,
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    @property
    def stderr_console(self) -> Console:
        """Console for diagnostics; the ``--verbose`` log handler writes here too."""
        return self._stderr

    # --- stdout ---

    def format_response(self, data: Any) -> None:
        """Write a payload (usually a token dict) to stdout."""
        if self._format == OutputFormat.PLAIN:
            if isinstance(data, dict):
                for key, value in data.items():
                    self.print_data(f"{key}\t{'' if value is None else value}")
            else:
                self.print_data(str(data))
            return

        text = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        if self._format == OutputFormat.JSON:
            self.print_data(text)
        else:
            self._stdout.print(Syntax(text, "json", theme="monokai", word_wrap=True))

    def print_data(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    # --- stderr ---

    def info(self, message: str) -> None:
        self._diagnostic(message, optional=True)

    def success(self, message: str) -> None:
        self._diagnostic(message, markup="green", optional=True)

    def warning(self, message: str) -> None:
        self._diagnostic(message, label="Warning:", markup="yellow")

    def error(self, message: str) -> None:
        self._diagnostic(message, label="Error:", markup="bold red")

    def suggest(self, message: str) -> None:
        self._diagnostic(f"→ {message}", markup="dim", optional=True)

    def _diagnostic(
        self,
        message: str,
        label: Optional[str] = None,
        markup: Optional[str] = None,
        optional: bool = False,
    ) -> None:
        """Write one stderr line; *optional* lines are dropped under ``--quiet``.

        With colour, *markup* styles the label when there is one and the
        whole message otherwise.
        """
        if optional and self._quiet:
            return
        if self._no_color:
            line = f"{label} {message}" if label else message
            print(line, file=sys.stderr, flush=True)
        elif label:
            self._stderr.print(f"[{markup}]{label}[/{markup}] {escape(message)}")
        elif markup:
            self._stderr.print(f"[{markup}]{escape(message)}[/{markup}]")
        else:
            self._stderr.print(escape(message))


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is set to anything or ``TERM`` is ``dumb``."""
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


# --- global instance ---

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed :class:`OutputManager`, creating a default lazily."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager; tests call this between CLI runs."""
    global _output
    _output = None


def format_response(data: Any) -> None:
    get_output().format_response(data)


def info(message: str) -> None:
    get_output().info(message)


def error(message: str) -> None:
    get_output().error(message)


def success(message: str) -> None:
    get_output().success(message)


def warning(message: str) -> None:
    get_output().warning(message)


def suggest(message: str) -> None:
    get_output().suggest(message)
