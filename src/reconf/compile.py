"""Build the custom executable from the user's configuration.

A source-file configuration is syntax-checked out of process with
``py_compile``, staged together with ``lib/`` and a generated bootstrap
under ``<cache>/build``, and packed into an executable zip application.
A build-script configuration delegates all of that to the user's script.

Either way the new executable is written to a staging name first and
only moved onto the cached name with ``os.replace`` once the build has
succeeded, so a failed build never clobbers the previous custom
executable. Diagnostics of a failed build go to ``<cache>/errors.log``,
from where the launcher hands them to the main program.
"""

from __future__ import annotations

import dataclasses
import glob
import logging
import os
import pathlib
import shutil
import subprocess
import sys
import zipapp
from collections.abc import Callable, Sequence

import reconf.paths

logger = logging.getLogger("reconf.compile")

INTERPRETER_ENV = "RECONF_PYTHON"
CONFIG_MODULE = "_reconf_config"

_BOOTSTRAP = '''\
import runpy
import sys

sys.path[1:1] = {include_dirs!r}
for _name in {hidden_modules!r}:
    sys.modules[_name] = None

runpy.run_module({module!r}, run_name="__main__")
'''


@dataclasses.dataclass
class BuildResult:
    ok: bool
    output: str = ""
    executable: pathlib.Path | None = None


def resolve_interpreter(explicit: str | None = None) -> str:
    """``$RECONF_PYTHON``, else *explicit*, else the running interpreter."""
    return os.environ.get(INTERPRETER_ENV) or explicit or sys.executable


def _staging_output(custom: pathlib.Path) -> pathlib.Path:
    return custom.with_name(f"{custom.name}.{os.getpid()}.part")


# ---------------------------------------------------------------------------
# Error blob
# ---------------------------------------------------------------------------

def read_error_blob(paths: reconf.paths.PathsConfig) -> str | None:
    """Return the last build's diagnostics, or None if it succeeded."""
    try:
        text = paths.error_file.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    return text or None


def _write_error_blob(paths: reconf.paths.PathsConfig, text: str) -> None:
    paths.error_file.parent.mkdir(parents=True, exist_ok=True)
    paths.error_file.write_text(text, encoding="utf-8")


def clean(paths: reconf.paths.PathsConfig) -> list[pathlib.Path]:
    """Remove the cached executable, error blob and build artifacts."""
    removed: list[pathlib.Path] = []
    custom = paths.custom_executable
    leftovers = sorted(custom.parent.glob(f"{glob.escape(custom.name)}.*.part"))
    for path in (custom, *leftovers, paths.error_file):
        if path.is_file():
            path.unlink()
            removed.append(path)
    if paths.build_directory.is_dir():
        shutil.rmtree(paths.build_directory)
        removed.append(paths.build_directory)
    return removed


# ---------------------------------------------------------------------------
# Source-file builds
# ---------------------------------------------------------------------------

def _check_sources(
    sources: Sequence[pathlib.Path],
    *,
    interpreter: str,
    extra_flags: Sequence[str],
    paths: reconf.paths.PathsConfig,
) -> subprocess.CompletedProcess[str]:
    env = dict(os.environ)
    env["PYTHONPYCACHEPREFIX"] = str(paths.build_directory / "pycache")
    cmd = [interpreter, *extra_flags, "-m", "py_compile", *map(str, sources)]
    logger.debug("Checking sources: %s", cmd)
    return subprocess.run(
        cmd,
        capture_output=True,
        text=True,
        errors="replace",
        cwd=paths.config_directory,
        env=env,
    )


def _stage(
    paths: reconf.paths.PathsConfig,
    lib_files: Sequence[pathlib.Path],
    *,
    include_dirs: Sequence[pathlib.Path],
    hidden_modules: Sequence[str],
) -> pathlib.Path:
    """Lay out the zip app contents under ``<cache>/build/app``."""
    app_dir = paths.build_directory / "app"
    if app_dir.exists():
        shutil.rmtree(app_dir)
    app_dir.mkdir(parents=True)

    for lib in lib_files:
        target = app_dir / lib.relative_to(paths.libs_directory)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(lib, target)

    shutil.copy2(paths.config_file, app_dir / f"{CONFIG_MODULE}.py")
    (app_dir / "__main__.py").write_text(
        _BOOTSTRAP.format(
            include_dirs=[str(d) for d in include_dirs],
            hidden_modules=list(hidden_modules),
            module=CONFIG_MODULE,
        )
    )
    return app_dir


def _build_source_file(
    paths: reconf.paths.PathsConfig,
    output: pathlib.Path,
    *,
    interpreter: str,
    include_dirs: Sequence[pathlib.Path],
    hidden_modules: Sequence[str],
    extra_flags: Sequence[str],
) -> BuildResult:
    lib_files = reconf.paths.find_source_files(paths.libs_directory)
    check = _check_sources(
        [paths.config_file, *lib_files],
        interpreter=interpreter,
        extra_flags=extra_flags,
        paths=paths,
    )
    diagnostics = (check.stderr or "") + (check.stdout or "")
    if check.returncode != 0:
        return BuildResult(ok=False, output=diagnostics or "py_compile failed")

    app_dir = _stage(
        paths, lib_files, include_dirs=include_dirs, hidden_modules=hidden_modules
    )
    zipapp.create_archive(app_dir, target=output, interpreter=interpreter)
    return BuildResult(ok=True, output=diagnostics)


# ---------------------------------------------------------------------------
# Build-script builds
# ---------------------------------------------------------------------------

def _build_script(
    paths: reconf.paths.PathsConfig,
    output: pathlib.Path,
    *,
    interpreter: str,
    extra_flags: Sequence[str],
) -> BuildResult:
    script = paths.config_file
    if os.access(script, os.X_OK):
        cmd = [str(script), str(output)]
    else:
        cmd = [interpreter, *extra_flags, str(script), str(output)]
    logger.debug("Running build script: %s", cmd)
    try:
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            errors="replace",
            cwd=paths.config_directory,
        )
    except OSError as exc:
        return BuildResult(ok=False, output=f"{script}: {exc}")

    diagnostics = (proc.stderr or "") + (proc.stdout or "")
    if proc.returncode != 0:
        return BuildResult(
            ok=False,
            output=diagnostics or f"{script} exited with status {proc.returncode}",
        )
    if not output.is_file():
        return BuildResult(ok=False, output=f"{script} did not produce {output}")
    return BuildResult(ok=True, output=diagnostics)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build(
    paths: reconf.paths.PathsConfig,
    *,
    include_dirs: Sequence[pathlib.Path] = (),
    hidden_modules: Sequence[str] = (),
    extra_flags: Sequence[str] = (),
    interpreter: str | None = None,
    status_out: Callable[[str], None] | None = None,
) -> BuildResult:
    """Build and publish the custom executable for *paths*.

    Blocks until the build finishes. On failure the diagnostics are
    persisted to the error blob and the cached executable is left as it
    was; on success the error blob is emptied.
    """
    status = status_out or (lambda _msg: None)
    python = resolve_interpreter(interpreter)
    custom = paths.custom_executable
    output = _staging_output(custom)

    status(f"Configuration '{paths.config_file}' changed. Recompiling.")
    paths.cache_directory.mkdir(parents=True, exist_ok=True)
    if output.exists():
        output.unlink()

    try:
        if isinstance(paths.config_method, reconf.paths.BuildScript):
            result = _build_script(
                paths, output, interpreter=python, extra_flags=extra_flags
            )
        else:
            result = _build_source_file(
                paths,
                output,
                interpreter=python,
                include_dirs=include_dirs,
                hidden_modules=hidden_modules,
                extra_flags=extra_flags,
            )
    except OSError as exc:
        logger.debug("Build raised", exc_info=True)
        result = BuildResult(ok=False, output=f"{type(exc).__name__}: {exc}")

    if not result.ok:
        logger.warning("Build of %s failed", paths.config_file)
        _write_error_blob(paths, result.output)
        if output.exists():
            output.unlink()
        status("Error occurred while loading configuration file.")
        return result

    output.chmod(0o755)
    os.replace(output, custom)
    _write_error_blob(paths, "")
    logger.info("Published %s", custom)
    status("Program reconfiguration successful.")
    return dataclasses.replace(result, executable=custom)
