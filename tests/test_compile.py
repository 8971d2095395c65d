"""Tests for reconf.compile — building the custom executable."""

from __future__ import annotations

import os
import pathlib
import subprocess
import sys

import pytest

import reconf.compile
import reconf.paths


def _run(executable: pathlib.Path, *args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, str(executable), *args],
        capture_output=True,
        text=True,
        timeout=60,
    )


@pytest.fixture
def source_app(app):
    """An app with a config that prints a message from a lib module."""
    app.config_dir.mkdir(parents=True)
    (app.config_dir / "demo.py").write_text(
        "import sys\n"
        "import greeting\n"
        "print(greeting.message(), *sys.argv[1:])\n"
    )
    lib = app.config_dir / "lib"
    lib.mkdir()
    (lib / "greeting.py").write_text(
        "from palette import NAME\n"
        "def message():\n"
        "    return 'custom-' + NAME\n"
    )
    (lib / "palette").mkdir()
    (lib / "palette" / "__init__.py").write_text("NAME = 'a'\n")
    return app


class TestSourceFileBuild:
    def test_builds_runnable_zip_app(self, source_app) -> None:
        paths = source_app.paths()
        messages: list[str] = []

        result = reconf.compile.build(paths, status_out=messages.append)

        assert result.ok, result.output
        assert result.executable == paths.custom_executable
        assert paths.custom_executable.is_file()
        assert os.access(paths.custom_executable, os.X_OK)
        proc = _run(paths.custom_executable, "x", "y")
        assert proc.returncode == 0, proc.stderr
        assert proc.stdout.strip() == "custom-a x y"
        assert messages == [
            f"Configuration '{paths.config_file}' changed. Recompiling.",
            "Program reconfiguration successful.",
        ]

    def test_success_clears_error_blob(self, source_app) -> None:
        paths = source_app.paths()
        paths.cache_directory.mkdir(parents=True)
        paths.error_file.write_text("old failure")

        reconf.compile.build(paths)

        assert paths.error_file.read_text() == ""
        assert reconf.compile.read_error_blob(paths) is None

    def test_intermediates_stay_in_cache(self, source_app) -> None:
        paths = source_app.paths()
        reconf.compile.build(paths)
        assert not (source_app.config_dir / "__pycache__").exists()
        assert not (source_app.config_dir / "lib" / "__pycache__").exists()
        assert (paths.build_directory / "app" / "__main__.py").is_file()

    def test_include_dirs_and_hidden_modules(self, app, tmp_path: pathlib.Path) -> None:
        extra = tmp_path / "extra"
        extra.mkdir()
        (extra / "vendored.py").write_text("VALUE = 'from-include-dir'\n")
        app.config_dir.mkdir(parents=True)
        (app.config_dir / "demo.py").write_text(
            "import vendored\n"
            "try:\n"
            "    import sqlite3\n"
            "except ImportError:\n"
            "    print(vendored.VALUE, 'hidden')\n"
            "else:\n"
            "    print(vendored.VALUE, 'visible')\n"
        )
        paths = app.paths()

        result = reconf.compile.build(
            paths, include_dirs=[extra], hidden_modules=["sqlite3"]
        )

        assert result.ok, result.output
        assert _run(paths.custom_executable).stdout.strip() == "from-include-dir hidden"

    def test_syntax_error_recorded(self, source_app) -> None:
        paths = source_app.paths()
        paths.config_file.write_text("def broken(:\n")
        messages: list[str] = []

        result = reconf.compile.build(paths, status_out=messages.append)

        assert result.ok is False
        assert "SyntaxError" in result.output
        assert "SyntaxError" in (reconf.compile.read_error_blob(paths) or "")
        assert not paths.custom_executable.exists()
        assert messages[-1] == "Error occurred while loading configuration file."

    def test_error_in_lib_recorded(self, source_app) -> None:
        paths = source_app.paths()
        (paths.libs_directory / "greeting.py").write_text("return 1 +\n")
        result = reconf.compile.build(paths)
        assert result.ok is False
        assert "greeting.py" in result.output

    def test_failed_build_keeps_previous_executable(self, source_app) -> None:
        paths = source_app.paths()
        assert reconf.compile.build(paths).ok
        before = paths.custom_executable.read_bytes()

        paths.config_file.write_text("def oops(:\n")
        assert reconf.compile.build(paths).ok is False

        assert paths.custom_executable.read_bytes() == before
        assert list(paths.cache_directory.glob("*.part")) == []

    def test_import_errors_only_surface_at_run_time(self, app) -> None:
        app.config_dir.mkdir(parents=True)
        (app.config_dir / "demo.py").write_text("import no_such_module_for_reconf\n")
        paths = app.paths()

        result = reconf.compile.build(paths)

        assert result.ok, result.output
        assert reconf.compile.read_error_blob(paths) is None
        proc = _run(paths.custom_executable)
        assert proc.returncode != 0
        assert "ModuleNotFoundError" in proc.stderr


class TestBuildScript:
    def _script(self, app, body: str) -> reconf.paths.PathsConfig:
        app.config_dir.mkdir(parents=True, exist_ok=True)
        (app.config_dir / "build").write_text(body)
        paths = app.paths()
        assert isinstance(paths.config_method, reconf.paths.BuildScript)
        return paths

    def test_script_output_published(self, app) -> None:
        paths = self._script(
            app,
            "import pathlib, sys\n"
            "assert pathlib.Path.cwd().name == 'config'\n"
            "pathlib.Path(sys.argv[1]).write_text('built')\n",
        )
        result = reconf.compile.build(paths)
        assert result.ok, result.output
        assert paths.custom_executable.read_text() == "built"

    def test_script_failure(self, app) -> None:
        paths = self._script(
            app, "import sys\nprint('linker exploded', file=sys.stderr)\nsys.exit(3)\n"
        )
        result = reconf.compile.build(paths)
        assert result.ok is False
        assert "linker exploded" in (reconf.compile.read_error_blob(paths) or "")

    def test_script_without_output(self, app) -> None:
        paths = self._script(app, "pass\n")
        result = reconf.compile.build(paths)
        assert result.ok is False
        assert "did not produce" in result.output

    def test_undecodable_output_recorded(self, app) -> None:
        paths = self._script(
            app,
            "import sys\n"
            "sys.stderr.buffer.write(b'bad \\xff byte\\n')\n"
            "sys.exit(1)\n",
        )
        result = reconf.compile.build(paths)
        assert result.ok is False
        assert "bad \ufffd byte" in result.output
        assert "bad \ufffd byte" in (reconf.compile.read_error_blob(paths) or "")


class TestHelpers:
    def test_interpreter_env_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RECONF_PYTHON", "/opt/py/bin/python3")
        assert reconf.compile.resolve_interpreter("python3.12") == "/opt/py/bin/python3"

    def test_interpreter_explicit_then_default(self) -> None:
        assert reconf.compile.resolve_interpreter("python3.12") == "python3.12"
        assert reconf.compile.resolve_interpreter() == sys.executable

    def test_read_error_blob_missing(self, app) -> None:
        assert reconf.compile.read_error_blob(app.paths()) is None

    def test_clean(self, source_app) -> None:
        paths = source_app.paths()
        reconf.compile.build(paths)

        removed = reconf.compile.clean(paths)

        assert paths.custom_executable in removed
        assert not paths.custom_executable.exists()
        assert not paths.build_directory.exists()
        assert reconf.compile.clean(paths) == []

    def test_clean_removes_abandoned_staging(self, app) -> None:
        paths = app.paths()
        paths.cache_directory.mkdir(parents=True)
        part = paths.cache_directory / f"{paths.custom_executable.name}.4242.part"
        part.write_bytes(b"half")

        assert reconf.compile.clean(paths) == [part]
