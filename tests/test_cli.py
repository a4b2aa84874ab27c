"""Summary: Tests for the TaskFlow CLI.

Importance: Operators bootstrap users and inspect sync state from the command line.
Alternatives: Exercise the commands manually.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from taskflow.cli import run_cli


REPO_DEFAULTS = Path(__file__).resolve().parents[1] / "config" / "defaults.json"


@pytest.fixture()
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "defaults.json").write_text(
        REPO_DEFAULTS.read_text(encoding="utf-8"), encoding="utf-8"
    )
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TASKFLOW_DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "cli-client")
    return tmp_path


def test_create_and_list_api_keys(workdir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    run_cli(["create-api-key", "user-1", "--label", "laptop"])
    created = capsys.readouterr().out
    assert "Created API key 1 for user-1." in created
    assert "Token (shown once): " in created
    run_cli(["list-api-keys", "user-1"])
    assert "1: laptop" in capsys.readouterr().out


def test_calendar_status_and_authorize_url(workdir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    run_cli(["calendar-status", "user-1"])
    assert capsys.readouterr().out.strip() == "not connected"
    run_cli(["authorize-url", "user-1", "--return-to", "/app"])
    url = capsys.readouterr().out.strip()
    assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
    assert "client_id=cli-client" in url
