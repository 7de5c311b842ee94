"""CLI commands, run against a filesystem data root in tmp_path."""

from __future__ import annotations

import asyncio
import json

import pytest
from click.testing import CliRunner

from requestbench.backends.filesystem import FileSystemBackend
from requestbench.cli import main
from requestbench.models.collection import Folder, HttpRequest


async def _seed(data_root) -> None:
    fs = FileSystemBackend(data_root)
    await fs.load_workspaces()
    await fs.create_workspace("team", "Team", variables={"port": "9"})
    folder_locator = await fs.create_folder("team", Folder(id="folder_users", name="Users"))
    await fs.create_request(
        "team",
        HttpRequest(id="req_ping", name="Ping", url="http://127.0.0.1:{{port}}/{{path}}"),
        folder_locator,
    )


@pytest.fixture
def runner(tmp_path, monkeypatch) -> CliRunner:
    monkeypatch.setenv("BENCH_DATA_ROOT", str(tmp_path))
    monkeypatch.setenv("BENCH_BACKEND", "filesystem")
    monkeypatch.setenv("BENCH_LOG_LEVEL", "ERROR")
    asyncio.run(_seed(tmp_path))
    return CliRunner()


def test_workspaces(runner: CliRunner) -> None:
    result = runner.invoke(main, ["workspaces"])

    assert result.exit_code == 0, result.output
    assert "* default\tMy Workspace" in result.output
    assert "team\tTeam\t1 vars" in result.output


def test_tree(runner: CliRunner) -> None:
    result = runner.invoke(main, ["tree", "--workspace", "team"])

    assert result.exit_code == 0, result.output
    assert result.output.splitlines() == ["Users/", "  GET     Ping  [req_ping]"]


def test_tree_unknown_workspace(runner: CliRunner) -> None:
    result = runner.invoke(main, ["tree", "--workspace", "nope"])

    assert result.exit_code == 1
    assert "Unknown workspace 'nope'" in result.output


def test_send_reports_network_error(runner: CliRunner) -> None:
    # Port 9 (discard) is closed on test hosts, so the connection is refused.
    result = runner.invoke(main, ["send", "req_ping", "--workspace", "team", "--var", "path=x"])

    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["status"] == 0
    assert payload["status_text"] == "Network Error"


def test_send_unknown_request(runner: CliRunner) -> None:
    result = runner.invoke(main, ["send", "req_missing"])

    assert result.exit_code == 1
    assert "Request 'req_missing' not found" in result.output


def test_send_rejects_malformed_var(runner: CliRunner) -> None:
    result = runner.invoke(main, ["send", "req_ping", "--var", "novalue"])

    assert result.exit_code == 2
    assert "Expected key=value" in result.output
