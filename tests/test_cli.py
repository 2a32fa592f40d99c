"""Tests for the command-line entry point and its exit codes.

The service adapters are replaced by the in-memory fakes from conftest;
logging setup and .env loading are patched out so tests never touch the
developer's environment.
"""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from raindrop_notebooklm_sync import __version__
from raindrop_notebooklm_sync.cli import (
    EXIT_FATAL,
    EXIT_ITEM_FAILURES,
    EXIT_OK,
    EXIT_UNREACHABLE,
    main,
)
from raindrop_notebooklm_sync.errors import AdapterError, AuthError, NetworkError


@pytest.fixture(autouse=True)
def cli_env(tmp_path, monkeypatch):
    for name in (
        "RAINDROP_COLLECTION_ID",
        "SYNC_PROPAGATE_DELETES",
        "RAINDROP_SYNC_CONFIG",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("RAINDROP_TOKEN", "rt")
    monkeypatch.setenv("NOTEBOOKLM_URL", "https://nb.example.com/api")
    monkeypatch.setenv("NOTEBOOKLM_NOTEBOOK_ID", "nb1")
    monkeypatch.setenv("NOTEBOOKLM_TOKEN", "nt")
    monkeypatch.setenv("SYNC_STATE_FILE", str(tmp_path / "state.json"))
    with patch("raindrop_notebooklm_sync.cli.setup_logging"), patch(
        "raindrop_notebooklm_sync.cli.load_dotenv"
    ):
        yield tmp_path


@pytest.fixture
def fakes(bookmarks, notebook):
    with patch(
        "raindrop_notebooklm_sync.cli.build_adapters",
        return_value=(bookmarks, notebook),
    ):
        yield bookmarks, notebook


class TestNoCommand:
    def test_lists_commands(self, capsys):
        assert main([]) == EXIT_OK
        out = capsys.readouterr().out
        assert "Available commands:" in out
        assert "sync" in out
        assert "status" in out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["--version"])
        assert excinfo.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestSyncCommand:
    def test_success(self, fakes, cli_env, capsys):
        bookmarks, notebook = fakes
        bookmarks.add("b1", "A", "https://a.example")

        assert main(["sync"]) == EXIT_OK

        assert "Sync report" in capsys.readouterr().out
        assert (cli_env / "state.json").exists()
        assert len(notebook.items) == 1

    def test_json_output(self, fakes, capsys):
        bookmarks, _ = fakes
        bookmarks.add("b1", "A", "https://a.example")

        assert main(["sync", "--json"]) == EXIT_OK

        data = json.loads(capsys.readouterr().out)
        assert data["counts"]["created"] == 1
        assert data["dry_run"] is False

    def test_dry_run_changes_nothing(self, fakes, cli_env, capsys):
        bookmarks, notebook = fakes
        bookmarks.add("b1", "A", "https://a.example")

        assert main(["sync", "--dry-run"]) == EXIT_OK

        assert "DRY RUN" in capsys.readouterr().out
        assert notebook.items == {}
        assert not (cli_env / "state.json").exists()

    def test_item_failure_exit_code(self, fakes):
        bookmarks, notebook = fakes
        bookmarks.add("b1", "A", "https://a.example")
        notebook.fail_ids["b1"] = AdapterError("rejected")

        assert main(["sync"]) == EXIT_ITEM_FAILURES

    def test_unreachable_exit_code(self, fakes):
        _, notebook = fakes
        notebook.list_error = NetworkError("down")

        assert main(["sync"]) == EXIT_UNREACHABLE

    def test_auth_error_is_fatal(self, fakes, capsys):
        bookmarks, _ = fakes
        bookmarks.list_error = AuthError("bad token", status_code=401)

        assert main(["sync"]) == EXIT_FATAL
        assert "Error: bad token" in capsys.readouterr().err

    def test_corrupt_state_is_fatal(self, fakes, cli_env):
        (cli_env / "state.json").write_text("{oops", encoding="utf-8")

        assert main(["sync"]) == EXIT_FATAL

    def test_missing_config_is_fatal(self, monkeypatch, capsys):
        monkeypatch.delenv("RAINDROP_TOKEN")

        assert main(["sync"]) == EXIT_FATAL
        assert "RAINDROP_TOKEN" in capsys.readouterr().err


class TestStatusCommand:
    def test_reports_services_and_state(self, fakes, capsys):
        assert main(["status"]) == EXIT_OK

        out = capsys.readouterr().out
        assert "bookmark (fake-bookmark): OK" in out
        assert "Links: 0" in out
        assert "Last sync: never" in out

    def test_unreachable_service(self, fakes, capsys):
        _, notebook = fakes
        notebook.health_error = NetworkError("down")

        assert main(["status"]) == EXIT_UNREACHABLE
        assert "notebook (fake-notebook): UNREACHABLE - down" in capsys.readouterr().out


class TestResetStateCommand:
    def test_requires_confirmation(self, cli_env):
        (cli_env / "state.json").write_text("{}", encoding="utf-8")

        assert main(["reset-state"]) == EXIT_FATAL
        assert (cli_env / "state.json").exists()

    def test_moves_state_aside(self, cli_env, capsys):
        (cli_env / "state.json").write_text("{}", encoding="utf-8")

        assert main(["reset-state", "--yes"]) == EXIT_OK

        assert not (cli_env / "state.json").exists()
        assert "State moved to" in capsys.readouterr().out

    def test_without_credentials(self, cli_env, monkeypatch, capsys):
        monkeypatch.delenv("RAINDROP_TOKEN")

        assert main(["reset-state", "--yes"]) == EXIT_OK
        assert "No state file" in capsys.readouterr().out
