"""CLI for the launcher deployment settings.

Usage:
    reconf config show                         Effective values and where they come from
    reconf config get <key>                    Print one effective value
    reconf config set [--global] <key> <value> Validate and write a value
    reconf config reset [--global] <key>       Drop an override

Keys are the ``[launcher]`` fields, optionally written as ``launcher.<key>``.
"""

from __future__ import annotations

import argparse
import dataclasses
import sys
from pathlib import Path

import reconf.config


def _field_name(key: str) -> str:
    prefix = f"{reconf.config.SECTION}."
    return key[len(prefix):] if key.startswith(prefix) else key


def _scope(global_flag: bool) -> str:
    return reconf.config.GLOBAL if global_flag else reconf.config.LOCAL


def cmd_show(root: Path) -> int:
    settings = reconf.config.load(root)
    origin = reconf.config.sources(root)
    print(f"[{reconf.config.SECTION}]")
    for f in dataclasses.fields(settings):
        value = getattr(settings, f.name)
        print(f"  {f.name} = {value!r}  ({origin[f.name]})")
    return 0


def cmd_get(key: str, root: Path) -> int:
    try:
        value = reconf.config.get_value(_field_name(key), root)
    except KeyError as exc:
        print(exc.args[0], file=sys.stderr)
        return 1
    print(value)
    return 0


def cmd_set(key: str, value: str, *, global_flag: bool, root: Path) -> int:
    scope = _scope(global_flag)
    try:
        reconf.config.set_value(_field_name(key), value, scope=scope, root=root)
    except KeyError as exc:
        print(exc.args[0], file=sys.stderr)
        return 1
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1
    print(f"Set {key} = {value} ({scope})")
    return 0


def cmd_reset(key: str, *, global_flag: bool, root: Path) -> int:
    scope = _scope(global_flag)
    try:
        removed = reconf.config.reset_value(_field_name(key), scope=scope, root=root)
    except KeyError as exc:
        print(exc.args[0], file=sys.stderr)
        return 1
    if removed:
        print(f"Reset {key} ({scope})")
    else:
        print(f"No {scope} override for {key}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for ``reconf config``."""
    parser = argparse.ArgumentParser(
        prog="reconf config",
        description="Launcher deployment settings.",
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--path", type=Path, default=None, help="Project root")
    sub = parser.add_subparsers(dest="subcmd")

    sub.add_parser("show", parents=[common], help="Effective values and their source")

    p_get = sub.add_parser("get", parents=[common], help="Print one effective value")
    p_get.add_argument("key")

    p_set = sub.add_parser("set", parents=[common], help="Validate and write a value")
    p_set.add_argument("key")
    p_set.add_argument("value")
    p_set.add_argument("--global", dest="global_flag", action="store_true")

    p_reset = sub.add_parser("reset", parents=[common], help="Drop an override")
    p_reset.add_argument("key")
    p_reset.add_argument("--global", dest="global_flag", action="store_true")

    args = parser.parse_args(argv)

    if args.subcmd == "show":
        return cmd_show(args.path)
    if args.subcmd == "get":
        return cmd_get(args.key, args.path)
    if args.subcmd == "set":
        return cmd_set(
            args.key, args.value, global_flag=args.global_flag, root=args.path
        )
    if args.subcmd == "reset":
        return cmd_reset(args.key, global_flag=args.global_flag, root=args.path)
    parser.print_help()
    return 1
