"""Tests for the top-level ``reconf`` CLI in reconf.__main__."""

from __future__ import annotations

import pathlib
import sys

import pytest

import reconf.__main__ as cli


@pytest.fixture
def app_argv(app, monkeypatch: pytest.MonkeyPatch) -> list[str]:
    monkeypatch.chdir(app.root)
    return [
        "demo",
        "--config-dir",
        str(app.config_dir),
        "--cache-dir",
        str(app.cache_dir),
        "--executable",
        str(app.master),
    ]


def test_paths_lists_resolved_locations(
    app, app_argv: list[str], capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli._cmd_paths(app_argv) == 0

    out = capsys.readouterr().out
    custom = app.paths().custom_executable
    assert f"custom executable:  {custom}" in out
    assert f"config (SourceFile): {app.config_dir / 'demo.py'}" in out
    assert f"cache directory:    {app.cache_dir}" in out


def test_status_without_config(
    app_argv: list[str], capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli._cmd_status(app_argv) == 0
    out = capsys.readouterr().out
    assert "(absent)" in out
    assert "stale:    no" in out
    assert "decision: no-rebuild" in out


def test_status_stale_config(
    app, app_argv: list[str], capsys: pytest.CaptureFixture[str]
) -> None:
    app.config_dir.mkdir(parents=True)
    (app.config_dir / "demo.py").write_text("print('hi')\n")

    cli._cmd_status(app_argv)

    out = capsys.readouterr().out
    assert "stale:    yes" in out
    assert "decision: rebuild" in out


def test_build_then_clean(
    app, app_argv: list[str], capsys: pytest.CaptureFixture[str]
) -> None:
    app.config_dir.mkdir(parents=True)
    (app.config_dir / "demo.py").write_text("print('hi')\n")
    custom = app.paths().custom_executable

    assert cli._cmd_build(app_argv) == 0
    assert custom.is_file()
    assert "Program reconfiguration successful." in capsys.readouterr().out

    assert cli._cmd_errors(app_argv) == 0
    assert "No build errors recorded." in capsys.readouterr().out

    assert cli._cmd_clean(app_argv) == 0
    assert f"removed {custom}" in capsys.readouterr().out
    assert not custom.exists()


def test_build_failure_reported(
    app, app_argv: list[str], capsys: pytest.CaptureFixture[str]
) -> None:
    app.config_dir.mkdir(parents=True)
    (app.config_dir / "demo.py").write_text("if True print('hi')\n")

    assert cli._cmd_build(app_argv) == 1
    assert "SyntaxError" in capsys.readouterr().err

    assert cli._cmd_errors(app_argv) == 1
    assert "SyntaxError" in capsys.readouterr().out


def test_build_without_config(
    app_argv: list[str], capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli._cmd_build(app_argv) == 1
    assert "No configuration at" in capsys.readouterr().err


def test_clean_empty_cache(
    app_argv: list[str], capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli._cmd_clean(app_argv) == 0
    assert "Nothing to remove" in capsys.readouterr().out


def test_executable_defaults_to_path_lookup(
    tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    found = tmp_path / "bin" / "demo"
    monkeypatch.setattr(cli.shutil, "which", lambda name: str(found))
    args = cli._parse("paths", ["demo", "--cache-dir", str(tmp_path)])
    assert cli._resolve(args).running_executable == found


def test_main_unknown_command(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(sys, "argv", ["reconf", "frobnicate"])
    with pytest.raises(SystemExit) as excinfo:
        cli.main()
    assert excinfo.value.code == 1
    assert "reconf paths <app>" in capsys.readouterr().out


def test_main_dispatches_config(
    tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(
        sys,
        "argv",
        ["reconf", "config", "set", "launcher.quiet", "true", "--path", str(tmp_path)],
    )
    with pytest.raises(SystemExit) as excinfo:
        cli.main()
    assert excinfo.value.code == 0
    assert (tmp_path / ".reconf" / "config.toml").is_file()

