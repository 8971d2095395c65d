"""Startup routing: rebuild the custom executable if needed, then run it.

``wrap_main`` is the single entry point. An application wraps its real
entry point once::

    def main(cfg: Config = Config()) -> None:
        params = reconf.launch.new_params("myapp", real_main, show_error)
        reconf.launch.wrap_main(params, cfg)

and the user's ``~/.config/myapp/myapp.py`` calls the same function with
a customised ``Config``. On every start the launcher decides whether the
cached custom executable must be rebuilt, and then either hands the
process over to it or runs ``real_main`` directly, passing any build
errors through ``show_error``.
"""

from __future__ import annotations

import contextlib
import dataclasses
import enum
import logging
import pathlib
import sys
from collections.abc import Callable, Generator, Sequence
from typing import Generic, TypeVar

import reconf.compile
import reconf.config
import reconf.handoff
import reconf.options
import reconf.paths
import reconf.runtime_flags

logger = logging.getLogger("reconf.launch")

C = TypeVar("C")
R = TypeVar("R")


def _status_to_stderr(message: str) -> None:
    print(message, file=sys.stderr)


@dataclasses.dataclass
class Params(Generic[C, R]):
    """How the launcher behaves for one application.

    *real_main* receives the (possibly error-annotated) configuration;
    *show_error* folds a build error into a configuration and returns the
    new one.
    """

    project_name: str
    real_main: Callable[[C], R]
    show_error: Callable[[C, str], C]
    config_check: bool = True
    config_dir: pathlib.Path | None = None
    cache_dir: pathlib.Path | None = None
    build_script_name: str | None = "build"
    include_dirs: list[pathlib.Path] = dataclasses.field(default_factory=list)
    hidden_modules: list[str] = dataclasses.field(default_factory=list)
    # Interpreter options for the build's syntax check
    extra_flags: list[str] = dataclasses.field(default_factory=list)
    interpreter: str | None = None
    status_out: Callable[[str], None] = _status_to_stderr
    runtime_flags: reconf.runtime_flags.RuntimeFlagPolicy = dataclasses.field(
        default_factory=reconf.runtime_flags.AppendTo
    )


def new_params(
    project_name: str,
    real_main: Callable[[C], R],
    show_error: Callable[[C, str], C],
    *,
    root: pathlib.Path | None = None,
) -> Params[C, R]:
    """Build ``Params`` with deployment defaults from the ``[launcher]`` section."""
    settings = reconf.config.load(root)
    params: Params[C, R] = Params(
        project_name=project_name,
        real_main=real_main,
        show_error=show_error,
        config_check=settings.config_check,
        build_script_name=settings.build_script_name or None,
        interpreter=settings.interpreter or None,
    )
    if settings.quiet:
        params.status_out = lambda _msg: None
    return params


# ---------------------------------------------------------------------------
# Decision state machine
# ---------------------------------------------------------------------------

class Decision(enum.Enum):
    SKIP = "skip"
    REBUILD = "rebuild"
    NO_REBUILD = "no-rebuild"


def decide(
    *,
    config_check: bool,
    config_exists: bool,
    deny_reconf: bool,
    force_reconf: bool,
    is_stale: Callable[[], bool],
) -> Decision:
    """Decide whether to rebuild. *is_stale* is only called when it matters."""
    if not config_check:
        return Decision.SKIP
    if not config_exists:
        return Decision.NO_REBUILD
    if deny_reconf:
        return Decision.NO_REBUILD
    if force_reconf:
        return Decision.REBUILD
    return Decision.REBUILD if is_stale() else Decision.NO_REBUILD


# ---------------------------------------------------------------------------
# Launch router
# ---------------------------------------------------------------------------

class Route(enum.Enum):
    RUN_MAIN = "run-main"
    HAND_OFF = "hand-off"


@dataclasses.dataclass(frozen=True)
class LaunchPlan:
    route: Route
    error: str | None = None


def _same_file(a: pathlib.Path, b: pathlib.Path) -> bool:
    """Compare after resolving symlinks. Raises OSError if either is gone."""
    return a.resolve(strict=True) == b.resolve(strict=True)


def route_launch(
    paths: reconf.paths.PathsConfig,
    *,
    config_exists: bool,
    error: str | None,
) -> LaunchPlan:
    if not config_exists:
        # No configuration: ignore any leftover custom executable and errors
        return LaunchPlan(Route.RUN_MAIN)

    if not paths.custom_executable.is_file():
        return LaunchPlan(Route.RUN_MAIN, error)

    try:
        we_are_custom = _same_file(paths.running_executable, paths.custom_executable)
    except OSError:
        logger.debug("Custom executable vanished while resolving", exc_info=True)
        return LaunchPlan(Route.RUN_MAIN, error)

    if we_are_custom:
        return LaunchPlan(Route.RUN_MAIN, error)
    return LaunchPlan(Route.HAND_OFF, error)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

@contextlib.contextmanager
def _with_args(args: Sequence[str]) -> Generator[None]:
    """Show the main program *args* as ``sys.argv[1:]`` for the duration."""
    saved = sys.argv[:]
    sys.argv[1:] = list(args)
    try:
        yield
    finally:
        sys.argv[:] = saved


def _enter_main(params: Params[C, R], cfg: C, error: str | None) -> R:
    if error is not None:
        cfg = params.show_error(cfg, error)
    return params.real_main(cfg)


def handoff_args(
    params: Params,
    options: reconf.options.Options,
    *,
    error: str | None,
) -> list[str]:
    """Arguments for the custom executable, runtime flags rewritten."""
    args = reconf.runtime_flags.rewrite_runtime_args(
        options.full_args, options.args, params.runtime_flags
    )
    if error is not None:
        # The build already failed; the custom executable must not retry it
        args.insert(0, reconf.options.DENY_RECONF)
    if options.debug:
        args.insert(0, reconf.options.DEBUG)
    return args


def wrap_main(
    params: Params[C, R],
    cfg: C,
    argv: Sequence[str] | None = None,
    *,
    store: reconf.options.TransientStore | None = None,
) -> R:
    """Run the application, rebuilding and handing off as required.

    Returns whatever ``real_main`` returns when this process ends up
    running the main program; does not return after a hand-off.
    """
    options = reconf.options.parse_options(sys.argv[1:] if argv is None else argv)
    if store is None:
        store = reconf.options.TransientStore()

    with _with_args(options.args):
        if not params.config_check:
            return params.real_main(cfg)

        paths = reconf.paths.resolve_paths(
            params.project_name,
            config_dir=params.config_dir,
            cache_dir=params.cache_dir,
            build_script_name=params.build_script_name,
            debug=options.debug,
        )
        reconf.options.record_master_binary(store, options, paths.running_executable)

        config_exists = paths.config_file.is_file()
        decision = decide(
            config_check=params.config_check,
            config_exists=config_exists,
            deny_reconf=options.deny_reconf,
            force_reconf=options.force_reconf,
            is_stale=lambda: reconf.paths.needs_rebuild(paths),
        )
        logger.debug("Reconfiguration decision for %s: %s", paths.config_file, decision)

        if decision is Decision.REBUILD:
            reconf.compile.build(
                paths,
                include_dirs=params.include_dirs,
                hidden_modules=params.hidden_modules,
                extra_flags=params.extra_flags,
                interpreter=params.interpreter,
                status_out=params.status_out,
            )

        plan = route_launch(
            paths,
            config_exists=config_exists,
            error=reconf.compile.read_error_blob(paths),
        )
        if plan.route is Route.HAND_OFF:
            reconf.handoff.custom_exec(
                paths.custom_executable,
                handoff_args(params, options, error=plan.error),
                store=store,
                interpreter=params.interpreter,
                status_out=params.status_out,
            )

        store.clear(reconf.options.STORE_NAMESPACE)
        return _enter_main(params, cfg, plan.error)
