"""File paths of interest to the launcher, and the staleness check over them.

Every value here is recomputed on each process start. Nothing is cached
across runs: the paths depend on the application name, the user's
overrides and the debug flag, and the staleness answer depends on
modification times that can change between any two launches.

Layout::

    <configDir>/<app>.py          configuration source   (SourceFile)
    <configDir>/build             user build script      (BuildScript)
    <configDir>/lib/**.py         auxiliary modules
    <cacheDir>/<app>-<os>-<arch>.tmp<ext>
                                  cached custom executable
    <cacheDir>/errors.log         last build's diagnostics
    <cacheDir>/build/             compiler intermediate artifacts
"""

from __future__ import annotations

import dataclasses
import logging
import os
import pathlib
import platform
import stat
import sys

logger = logging.getLogger("reconf.paths")

SOURCE_EXTENSION = ".py"
SOURCE_SUFFIXES = (".py", ".pyw")
LIBS_DIRNAME = "lib"
ERRORS_FILENAME = "errors.log"
BUILD_DIRNAME = "build"
CUSTOM_INFIX = ".tmp"


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class SourceFile:
    """Configuration supplied as a single Python source file."""

    path: pathlib.Path


@dataclasses.dataclass(frozen=True)
class BuildScript:
    """Configuration supplied as a user build script that emits the binary."""

    path: pathlib.Path


ConfigMethod = SourceFile | BuildScript


@dataclasses.dataclass(frozen=True)
class PathsConfig:
    running_executable: pathlib.Path
    custom_executable: pathlib.Path
    config_method: ConfigMethod
    libs_directory: pathlib.Path
    cache_directory: pathlib.Path

    @property
    def config_file(self) -> pathlib.Path:
        return self.config_method.path

    @property
    def config_directory(self) -> pathlib.Path:
        return self.libs_directory.parent

    @property
    def error_file(self) -> pathlib.Path:
        return self.cache_directory / ERRORS_FILENAME

    @property
    def build_directory(self) -> pathlib.Path:
        return self.cache_directory / BUILD_DIRNAME


# ---------------------------------------------------------------------------
# Platform directories
# ---------------------------------------------------------------------------

def _user_config_dir(app_name: str) -> pathlib.Path:
    if os.name == "nt" and os.environ.get("APPDATA"):
        return pathlib.Path(os.environ["APPDATA"]) / app_name
    base = os.environ.get("XDG_CONFIG_HOME")
    root = pathlib.Path(base) if base else pathlib.Path.home() / ".config"
    return root / app_name


def _user_cache_dir(app_name: str) -> pathlib.Path:
    if os.name == "nt" and os.environ.get("LOCALAPPDATA"):
        return pathlib.Path(os.environ["LOCALAPPDATA"]) / app_name / "cache"
    base = os.environ.get("XDG_CACHE_HOME")
    root = pathlib.Path(base) if base else pathlib.Path.home() / ".cache"
    return root / app_name


def current_executable() -> pathlib.Path:
    """Return the absolute path of the program that is running now.

    For console scripts and zip apps this is ``sys.argv[0]``. Interactive
    sessions and ``python -c`` have no script, so the interpreter stands in.
    """
    argv0 = sys.argv[0] if sys.argv else ""
    if not argv0 or argv0 == "-c":
        return pathlib.Path(sys.executable).absolute()
    return pathlib.Path(argv0).absolute()


def platform_tag() -> str:
    """``<os>-<arch>``, e.g. ``linux-x86_64`` or ``darwin-arm64``."""
    machine = platform.machine().lower() or "unknown"
    return f"{sys.platform}-{machine}"


def custom_executable_name(app_name: str, running: pathlib.Path) -> str:
    """``<app>-<os>-<arch>.tmp<ext>``, where *ext* is the running binary's.

    The custom executable resolves its own name through here too, so a
    trailing ``.tmp`` is the infix and not an extension.
    """
    ext = "" if running.suffix == CUSTOM_INFIX else running.suffix
    return f"{app_name}-{platform_tag()}{CUSTOM_INFIX}{ext}"


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def resolve_paths(
    app_name: str,
    *,
    config_dir: pathlib.Path | None = None,
    cache_dir: pathlib.Path | None = None,
    build_script_name: str | None = "build",
    debug: bool = False,
    running_executable: pathlib.Path | None = None,
    cwd: pathlib.Path | None = None,
) -> PathsConfig:
    """Compute the five paths for *app_name*.

    Debug mode confines everything to the working directory (config in
    ``<cwd>``, cache in ``<cwd>/cache``) and ignores the overrides.
    """
    if running_executable is None:
        running_executable = current_executable()
    if cwd is None:
        cwd = pathlib.Path.cwd()

    if debug:
        cache = cwd / "cache"
        conf = cwd
    else:
        cache = cache_dir if cache_dir is not None else _user_cache_dir(app_name)
        conf = config_dir if config_dir is not None else _user_config_dir(app_name)

    method: ConfigMethod
    if build_script_name and (conf / build_script_name).is_file():
        method = BuildScript(conf / build_script_name)
    else:
        method = SourceFile(conf / f"{app_name}{SOURCE_EXTENSION}")

    return PathsConfig(
        running_executable=running_executable,
        custom_executable=cache / custom_executable_name(app_name, running_executable),
        config_method=method,
        libs_directory=conf / LIBS_DIRNAME,
        cache_directory=cache,
    )


# ---------------------------------------------------------------------------
# Source discovery
# ---------------------------------------------------------------------------

def find_source_files(root: pathlib.Path) -> list[pathlib.Path]:
    """Recursively list Python sources under *root*.

    Files come before the contents of subdirectories; within a directory
    entries are ordered by name. Symlinked directories are not descended
    into. A missing *root* yields an empty list.
    """
    if not root.is_dir():
        return []

    try:
        entries = sorted(os.scandir(root), key=lambda e: e.name)
    except OSError:
        logger.debug("Cannot list %s", root, exc_info=True)
        return []

    files: list[pathlib.Path] = []
    subdirs: list[pathlib.Path] = []
    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            subdirs.append(pathlib.Path(entry.path))
        elif entry.is_file() and entry.name.endswith(SOURCE_SUFFIXES):
            files.append(pathlib.Path(entry.path))

    for sub in subdirs:
        files.extend(find_source_files(sub))
    return files


# ---------------------------------------------------------------------------
# Staleness
# ---------------------------------------------------------------------------

def mod_time(path: pathlib.Path) -> int | None:
    """Modification time in nanoseconds, or ``None`` if *path* is not a file."""
    try:
        st = path.stat()
    except OSError:
        return None
    if not stat.S_ISREG(st.st_mode):
        return None
    return st.st_mtime_ns


def is_older(a: int | None, b: int | None) -> bool:
    """``a < b`` where an absent timestamp is older than any present one."""
    if b is None:
        return False
    if a is None:
        return True
    return a < b


def needs_rebuild(paths: PathsConfig) -> bool:
    """Return True when the cached custom executable is out of date.

    It is stale if the configuration, the running executable, or any
    library source is newer than it. A missing custom executable is
    older than everything and therefore always stale.
    """
    conf_time = mod_time(paths.config_file)

    lib_files = find_source_files(paths.libs_directory)
    if isinstance(paths.config_method, BuildScript):
        # A build script may pull in anything in the project tree
        lib_files += find_source_files(paths.libs_directory.parent)

    this_time = mod_time(paths.running_executable)
    temp_time = mod_time(paths.custom_executable)

    if is_older(temp_time, conf_time):
        logger.debug("%s is newer than the custom executable", paths.config_file)
        return True
    if is_older(temp_time, this_time):
        logger.debug("%s is newer than the custom executable", paths.running_executable)
        return True
    for lib in lib_files:
        if is_older(temp_time, mod_time(lib)):
            logger.debug("%s is newer than the custom executable", lib)
            return True
    return False
