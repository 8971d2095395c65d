"""reconf CLI — inspect and manage an application's custom build.

Usage:
    reconf paths <app> [opts]   Show the resolved config, cache and binary paths
    reconf status <app> [opts]  Show whether the next launch would rebuild
    reconf build <app> [opts]   Rebuild the custom executable now
    reconf errors <app> [opts]  Print the last build's diagnostics
    reconf clean <app> [opts]   Remove the cached executable and artifacts
    reconf config <cmd>         Launcher deployment settings (show/get/set/reset)

Options for the per-app commands:
    --debug             Use the working directory for config and cache
    --config-dir DIR    Override the configuration directory
    --cache-dir DIR     Override the cache directory
    --build-script NAME Build-script file name (default: build)
"""

from __future__ import annotations

import argparse
import logging
import pathlib
import shutil
import sys

import reconf.compile
import reconf.config
import reconf.launch
import reconf.paths


def _app_parser(prog: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=f"reconf {prog}")
    parser.add_argument("app", help="Application name")
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--config-dir", type=pathlib.Path, default=None)
    parser.add_argument("--cache-dir", type=pathlib.Path, default=None)
    parser.add_argument("--build-script", default=None)
    parser.add_argument(
        "--executable",
        type=pathlib.Path,
        default=None,
        help="Master executable to compare against (default: the app on PATH)",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def _resolve(args: argparse.Namespace) -> reconf.paths.PathsConfig:
    settings = reconf.config.load()
    build_script = args.build_script or settings.build_script_name or None
    running = args.executable
    if running is None:
        found = shutil.which(args.app)
        running = pathlib.Path(found) if found else reconf.paths.current_executable()
    return reconf.paths.resolve_paths(
        args.app,
        config_dir=args.config_dir,
        cache_dir=args.cache_dir,
        build_script_name=build_script,
        debug=args.debug,
        running_executable=running,
    )


def _parse(prog: str, argv: list[str]) -> argparse.Namespace:
    args = _app_parser(prog).parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )
    return args


def _cmd_paths(argv: list[str]) -> int:
    """Print the five resolved paths."""
    paths = _resolve(_parse("paths", argv))
    method = type(paths.config_method).__name__
    print(f"running executable: {paths.running_executable}")
    print(f"custom executable:  {paths.custom_executable}")
    print(f"config ({method}): {paths.config_file}")
    print(f"libs directory:     {paths.libs_directory}")
    print(f"cache directory:    {paths.cache_directory}")
    return 0


def _cmd_status(argv: list[str]) -> int:
    """Report what the next launch would do."""
    paths = _resolve(_parse("status", argv))
    settings = reconf.config.load()

    config_exists = paths.config_file.is_file()
    stale = reconf.paths.needs_rebuild(paths) if config_exists else False
    decision = reconf.launch.decide(
        config_check=settings.config_check,
        config_exists=config_exists,
        deny_reconf=False,
        force_reconf=False,
        is_stale=lambda: stale,
    )
    error = reconf.compile.read_error_blob(paths)

    print(f"config:   {paths.config_file} ({'present' if config_exists else 'absent'})")
    custom_state = "present" if paths.custom_executable.is_file() else "absent"
    print(f"custom:   {paths.custom_executable} ({custom_state})")
    print(f"stale:    {'yes' if stale else 'no'}")
    print(f"decision: {decision.value}")
    if error:
        print("last build failed (see `reconf errors`)")
    return 0


def _cmd_build(argv: list[str]) -> int:
    """Build the custom executable unconditionally."""
    paths = _resolve(_parse("build", argv))
    if not paths.config_file.is_file():
        print(f"No configuration at {paths.config_file}", file=sys.stderr)
        return 1
    settings = reconf.config.load()
    result = reconf.compile.build(
        paths,
        interpreter=settings.interpreter or None,
        status_out=print,
    )
    if not result.ok:
        print(result.output, file=sys.stderr)
        return 1
    return 0


def _cmd_errors(argv: list[str]) -> int:
    """Print the stored build diagnostics, if any."""
    paths = _resolve(_parse("errors", argv))
    error = reconf.compile.read_error_blob(paths)
    if error is None:
        print("No build errors recorded.")
        return 0
    print(error, end="" if error.endswith("\n") else "\n")
    return 1


def _cmd_clean(argv: list[str]) -> int:
    """Remove cached artifacts."""
    paths = _resolve(_parse("clean", argv))
    removed = reconf.compile.clean(paths)
    if not removed:
        print(f"Nothing to remove in {paths.cache_directory}")
        return 0
    for path in removed:
        print(f"removed {path}")
    return 0


def _cmd_config(argv: list[str]) -> int:
    """Launcher deployment settings."""
    import reconf.config_cli

    return reconf.config_cli.main(argv)


_COMMANDS = {
    "paths": _cmd_paths,
    "status": _cmd_status,
    "build": _cmd_build,
    "errors": _cmd_errors,
    "clean": _cmd_clean,
    "config": _cmd_config,
}


def main() -> None:
    args = sys.argv[1:]
    if not args or args[0] not in _COMMANDS:
        print(__doc__)
        sys.exit(1)

    sys.exit(_COMMANDS[args[0]](args[1:]))


if __name__ == "__main__":
    main()
