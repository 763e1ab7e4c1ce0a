"""Where loopauth keeps its settings and how the effective values are chosen.

Settings are a single :class:`~loopauth.models.LoopauthConfig` stored as
``config.json``:

* Linux and BSD: ``$XDG_CONFIG_HOME/loopauth/`` (``~/.config/loopauth/``).
* macOS and Windows: ``~/.loopauth/``.

Crash logs go to the matching data directory. :func:`resolve_config`
layers defaults, the file, ``LOOPAUTH_*`` environment variables and CLI
flags, in that order. Client secrets never live in the file;
:func:`resolve_credential` reads them from an environment variable, a
file, or a prompt at the moment they are needed.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from loopauth.exceptions import ConfigError
from loopauth.models import LoopauthConfig

_APP_NAME = "loopauth"
_CONFIG_FILENAME = "config.json"

# Environment variable -> LoopauthConfig field
_ENV_OVERRIDES: dict[str, str] = {
    "LOOPAUTH_TOKEN_URL": "token_url",
    "LOOPAUTH_AUTHORIZATION_URL": "authorization_url",
    "LOOPAUTH_CALLBACK_TIMEOUT": "callback_timeout",
    "LOOPAUTH_PORT": "default_port",
}

# XDG variable and its default below $HOME, per directory kind
_XDG_DIRS: dict[str, tuple[str, tuple[str, ...]]] = {
    "config": ("XDG_CONFIG_HOME", (".config",)),
    "data": ("XDG_DATA_HOME", (".local", "share")),
}


# --- Directories ---


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _app_dir(kind: str) -> Path:
    """Return (and create) the loopauth directory of *kind* ("config" or "data")."""
    if _is_xdg_platform():
        env_var, fallback = _XDG_DIRS[kind]
        root = os.environ.get(env_var)
        base = Path(root) if root else Path.home().joinpath(*fallback)
        path = base / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    return _app_dir("config")


def get_data_dir() -> Path:
    return _app_dir("data")


def _atomic_write(path: Path, data: str) -> None:
    """Replace *path* with *data* without ever leaving a half-written file.

    The content goes to a temporary sibling first, is fsynced, and then
    renamed over *path*. The temporary file is removed if anything fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_path = Path(tmp.name)
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)
        raise


# --- Config file ---


def config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_config() -> LoopauthConfig:
    """Read ``config.json``, or return defaults when there is none.

    Raises:
        ConfigError: The file is not JSON or does not validate.
    """
    path = config_path()
    if not path.is_file():
        return LoopauthConfig()
    try:
        return LoopauthConfig.model_validate_json(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: LoopauthConfig) -> None:
    _atomic_write(config_path(), config.model_dump_json(indent=2) + "\n")


def set_config_value(key: str, value: str) -> LoopauthConfig:
    """Change one field of ``config.json`` and return the saved config.

    *value* is the raw command-line string; pydantic coerces it to the
    field's type. ``scopes`` takes a comma- or space-separated list.

    Raises:
        ConfigError: Unknown key, or a value the field rejects. The file
            is left untouched in both cases.
    """
    if key not in LoopauthConfig.model_fields:
        known = ", ".join(sorted(LoopauthConfig.model_fields))
        raise ConfigError(f"Unknown config key '{key}' (known keys: {known})")

    parsed: Any = value.replace(",", " ").split() if key == "scopes" else value
    fields = load_config().model_dump()
    fields[key] = parsed
    try:
        config = LoopauthConfig.model_validate(fields)
    except ValidationError as exc:
        raise ConfigError(f"Invalid value for '{key}': {value}") from exc
    save_config(config)
    return config


# --- Effective configuration ---


def resolve_config(**cli_overrides: Any) -> LoopauthConfig:
    """Build the configuration a command runs with.

    Later layers win: defaults, ``config.json``, non-empty ``LOOPAUTH_*``
    variables, then *cli_overrides* whose value is not ``None``.

    Raises:
        ConfigError: The file is invalid or an override fails validation.
    """
    fields = load_config().model_dump()
    fields.update(
        {field: os.environ[var] for var, field in _ENV_OVERRIDES.items() if os.environ.get(var)}
    )
    fields.update({name: value for name, value in cli_overrides.items() if value is not None})
    try:
        return LoopauthConfig.model_validate(fields)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration override: {exc}") from exc


# --- Client secrets ---


def resolve_credential(source: str) -> str:
    """Read a client secret from *source*.

    ``env:NAME`` reads an environment variable (an empty value is allowed),
    ``file:PATH`` reads a file and strips surrounding whitespace, and
    ``prompt`` asks on the terminal.

    Raises:
        ConfigError: The variable is unset, the file is missing or
            unreadable, stdin is not a TTY, or the format is unknown.
    """
    kind, _, target = source.partition(":")

    if kind == "env" and target:
        if target not in os.environ:
            raise ConfigError(
                f"Environment variable '{target}' is not set (source: {source})"
            )
        return os.environ[target]

    if kind == "file" and target:
        path = Path(target).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigError("Cannot prompt for the client secret: stdin is not a TTY")
        return getpass.getpass("Client secret: ")

    raise ConfigError(f"Unknown credential source format: {source}")
