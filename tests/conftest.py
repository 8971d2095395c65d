"""Shared test fixtures for reconf tests."""

from __future__ import annotations

import dataclasses
import os
import pathlib

import pytest

import reconf.config
import reconf.paths

# Master executable mtime used by the ``app`` fixture
MASTER_MTIME = 1_700_000_001_000_000_000


def _touch(path: pathlib.Path, mtime_ns: int, content: str = "") -> pathlib.Path:
    """Create *path* (and parents) with *content* and an exact mtime."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        path.write_text(content)
    os.utime(path, ns=(mtime_ns, mtime_ns))
    return path


@dataclasses.dataclass
class AppLayout:
    root: pathlib.Path
    config_dir: pathlib.Path
    cache_dir: pathlib.Path
    master: pathlib.Path

    def paths(self, **kwargs) -> reconf.paths.PathsConfig:
        kwargs.setdefault("config_dir", self.config_dir)
        kwargs.setdefault("cache_dir", self.cache_dir)
        kwargs.setdefault("running_executable", self.master)
        kwargs.setdefault("cwd", self.root)
        return reconf.paths.resolve_paths("demo", **kwargs)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch):
    """Keep the user's real ~/.config/reconf/config.toml out of tests."""
    global_toml = tmp_path / "global-settings" / "config.toml"
    monkeypatch.setattr(reconf.config, "_global_path", lambda: global_toml)
    monkeypatch.delenv("RECONF_PYTHON", raising=False)
    return global_toml


@pytest.fixture
def app(tmp_path: pathlib.Path) -> AppLayout:
    """A config dir, cache dir and master executable for an app named ``demo``."""
    root = tmp_path / "work"
    master = _touch(root / "bin" / "demo", MASTER_MTIME)
    return AppLayout(
        root=root,
        config_dir=root / "config",
        cache_dir=root / "cache-home",
        master=master,
    )


@pytest.fixture
def touch():
    """Factory: ``touch(path, mtime_ns, content="")`` with an exact mtime."""
    return _touch
