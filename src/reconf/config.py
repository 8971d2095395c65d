"""Launcher deployment settings, read from the ``[launcher]`` TOML table.

These are static per-deployment knobs, for example whether the
reconfiguration check runs at all. They are distinct from the user's
configuration *source*, which is a Python file compiled into a custom
executable.

Values are layered, later layers winning key by key::

    LauncherConfig defaults
    ~/.config/reconf/config.toml    global (user-wide)
    <root>/.reconf/config.toml      local  (root defaults to the cwd)

A value of the wrong type in either file is logged and skipped rather
than failing the launch; ``set_value`` refuses to write one.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import pathlib
import tomllib
import typing
from typing import Any

import tomli_w

logger = logging.getLogger("reconf.config")

SECTION = "launcher"

DEFAULT = "default"
GLOBAL = "global"
LOCAL = "local"


@dataclasses.dataclass
class LauncherConfig:
    # False skips the whole engine and always runs the main program
    config_check: bool = True

    # File inside the config directory that switches to build-script mode;
    # empty disables build scripts
    build_script_name: str = "build"

    # Interpreter used for builds and hand-off; empty means sys.executable
    interpreter: str = ""

    # Suppress routine status lines ("Launching custom binary ...")
    quiet: bool = False


_FIELD_TYPES: dict[str, type] = typing.get_type_hints(LauncherConfig)


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------

def _global_path() -> pathlib.Path:
    base = os.environ.get("XDG_CONFIG_HOME")
    root = pathlib.Path(base) if base else pathlib.Path.home() / ".config"
    return root / "reconf" / "config.toml"


def _local_path(root: pathlib.Path | None) -> pathlib.Path:
    if root is None:
        root = pathlib.Path.cwd()
    return root / ".reconf" / "config.toml"


def _scope_path(scope: str, root: pathlib.Path | None) -> pathlib.Path:
    if scope == GLOBAL:
        return _global_path()
    if scope == LOCAL:
        return _local_path(root)
    raise ValueError(f"Unknown scope: {scope!r} (expected {GLOBAL!r} or {LOCAL!r})")


def _read_table(path: pathlib.Path) -> dict[str, Any]:
    """Return the ``[launcher]`` table of *path*, or ``{}``."""
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return {}
    table = data.get(SECTION, {})
    return table if isinstance(table, dict) else {}


def _rewrite_table(path: pathlib.Path, table: dict[str, Any]) -> None:
    """Replace the ``[launcher]`` table of *path*, keeping other tables."""
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        data = {}
    if table:
        data[SECTION] = table
    else:
        data.pop(SECTION, None)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(tomli_w.dumps(data), encoding="utf-8")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off")


def _field_type(key: str) -> type:
    try:
        return _FIELD_TYPES[key]
    except KeyError:
        raise KeyError(f"Unknown key: {SECTION}.{key}") from None


def _coerce(value: str, target_type: type) -> Any:
    """Parse a command-line string as *target_type*."""
    if target_type is bool:
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ValueError(f"Expected a boolean, got {value!r}")
    return target_type(value)


def _check_value(key: str, value: Any) -> None:
    """Raise ValueError unless *value* is acceptable for *key*."""
    expected = _field_type(key)
    if type(value) is not expected:
        raise ValueError(
            f"{SECTION}.{key} must be {expected.__name__}, got {type(value).__name__}"
        )
    if key == "build_script_name" and value:
        if pathlib.PurePath(value).name != value or value in (".", ".."):
            raise ValueError(
                f"{SECTION}.build_script_name must be a bare file name, got {value!r}"
            )
    if key == "interpreter" and value != value.strip():
        raise ValueError(f"{SECTION}.interpreter has surrounding whitespace: {value!r}")


# ---------------------------------------------------------------------------
# Core API
# ---------------------------------------------------------------------------

def _layers(root: pathlib.Path | None) -> list[tuple[str, dict[str, Any]]]:
    return [
        (GLOBAL, _read_table(_global_path())),
        (LOCAL, _read_table(_local_path(root))),
    ]


def sources(root: pathlib.Path | None = None) -> dict[str, str]:
    """Map each setting to the layer its effective value comes from."""
    origin = dict.fromkeys(_FIELD_TYPES, DEFAULT)
    for scope, table in _layers(root):
        for key, value in table.items():
            if key not in _FIELD_TYPES:
                continue
            try:
                _check_value(key, value)
            except ValueError:
                continue
            origin[key] = scope
    return origin


def load(root: pathlib.Path | None = None) -> LauncherConfig:
    """Return the effective launcher settings."""
    merged: dict[str, Any] = {}
    for scope, table in _layers(root):
        for key, value in table.items():
            if key not in _FIELD_TYPES:
                logger.debug("Unknown %s setting %r in %s file", SECTION, key, scope)
                continue
            try:
                _check_value(key, value)
            except ValueError as exc:
                logger.warning("Ignoring %s setting: %s", scope, exc)
                continue
            merged[key] = value
    return LauncherConfig(**merged)


def get_value(key: str, root: pathlib.Path | None = None) -> Any:
    _field_type(key)
    return getattr(load(root), key)


def set_value(
    key: str,
    value: Any,
    *,
    scope: str = LOCAL,
    root: pathlib.Path | None = None,
) -> None:
    """Validate *value* and write it to the *scope* settings file.

    Strings are parsed to the setting's type first, so command-line
    input such as ``"off"`` is accepted for booleans.
    """
    target_type = _field_type(key)
    if isinstance(value, str) and target_type is not str:
        value = _coerce(value, target_type)
    _check_value(key, value)

    path = _scope_path(scope, root)
    table = _read_table(path)
    table[key] = value
    _rewrite_table(path, table)


def reset_value(
    key: str,
    *,
    scope: str = LOCAL,
    root: pathlib.Path | None = None,
) -> bool:
    """Drop the *scope* override for *key*. Returns False if there was none."""
    _field_type(key)
    path = _scope_path(scope, root)
    table = _read_table(path)
    if key not in table:
        return False
    del table[key]
    _rewrite_table(path, table)
    return True
