"""Tests for the command-line interface."""

import json
import logging
import shlex
import sys

import pytest
from typer.testing import CliRunner

from depgen import __version__, cli
from depgen.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_logging(monkeypatch, tmp_path_factory):
    """Keep the log file out of the user's state dir and restore root handlers."""
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path_factory.mktemp("state")))
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_generate_writes_manifest(workspace, tmp_path):
    root = workspace({
        "package.json": json.dumps({"dependencies": {"react": "18"}}),
        "app/main.ts": 'import React from "react";\nimport { f } from "../lib/f";\n',
        "lib/f.ts": "export const f = 1;\n",
    })
    output = tmp_path / "out.json"

    result = runner.invoke(app, ["generate", str(root), "--output", str(output)])

    assert result.exit_code == 0, result.stdout
    data = json.loads(output.read_text())
    labels = {unit["label"]: unit["deps"] for unit in data["units"]}
    assert labels == {
        "//app:app": ["//:node_modules/react", "//lib:lib"],
        "//lib:lib": [],
    }


def test_generate_fails_on_invalid_import(workspace, tmp_path):
    """Test that nothing is written when resolution is fatal."""
    root = workspace({"app/main.ts": 'import x from "./nowhere";\n'})
    output = tmp_path / "out.json"

    result = runner.invoke(app, ["generate", str(root), "-o", str(output)])

    assert result.exit_code == 1
    assert not output.exists()


def test_generate_with_resolve_option(workspace, tmp_path):
    root = workspace({"app/main.ts": 'import x from "@gen/api";\n'})
    output = tmp_path / "out.json"

    result = runner.invoke(app, ["generate", str(root), "-o", str(output), "--resolve", "@gen/api=//gen:api"])

    assert result.exit_code == 0, result.stdout
    assert json.loads(output.read_text())["units"][0]["deps"] == ["//gen:api"]


@pytest.mark.parametrize("value", ["no-separator", "=//a:b", "x=not-a-label"])
def test_generate_rejects_bad_resolve_option(workspace, value):
    root = workspace({"a.ts": ""})
    result = runner.invoke(app, ["generate", str(root), "--resolve", value])
    assert result.exit_code == 1


def test_generate_configuration_error(workspace):
    root = workspace({"BUILD": "# depgen:ts_generation sometimes\n", "a.ts": ""})

    result = runner.invoke(app, ["generate", str(root)])

    assert result.exit_code == 1
    assert "Configuration error" in result.stdout


def test_generate_undecodable_build_file(workspace):
    """Test that a build file that is not UTF-8 is reported, not a traceback."""
    root = workspace({"lib/a.ts": ""})
    (root / "lib" / "BUILD").write_bytes(b"# \xff\xfe bad\n")

    result = runner.invoke(app, ["generate", str(root)])

    assert result.exit_code == 1
    assert result.exception is None or isinstance(result.exception, SystemExit)
    assert "Configuration error" in result.stdout


def test_generate_invalid_path(tmp_path):
    result = runner.invoke(app, ["generate", str(tmp_path / "missing")])
    assert result.exit_code == 1


def test_generate_with_external_parser(workspace, tmp_path):
    """Test generation through the parse server process."""
    root = workspace({"lib/a.ts": 'import { b } from "./b";\n', "lib/b.ts": ""})
    output = tmp_path / "out.json"
    command = f"{shlex.quote(sys.executable)} -m depgen.parse_server"

    result = runner.invoke(app, ["generate", str(root), "-o", str(output), "--parser-command", command])

    assert result.exit_code == 0, result.stdout
    assert json.loads(output.read_text())["units"][0]["srcs"] == ["a.ts", "b.ts"]


def test_directives(monkeypatch):
    monkeypatch.setattr(cli.console, "width", 200)
    result = runner.invoke(app, ["directives"])
    assert result.exit_code == 0
    assert "# depgen:ts_generation_mode" in result.stdout
    assert "# depgen:resolve" in result.stdout
