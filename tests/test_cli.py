from __future__ import annotations

import sys
from unittest.mock import AsyncMock

import pytest

from assignbot import cli
from assignbot.adapters.storage.sqlite import SqliteStorage
from assignbot.core.models import Issue


def _write_config(tmp_path) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(
        f"""
runtime:
  data_dir: {tmp_path / "data"}
  bot_username: assignbot
github:
  org: rust-lang
  token: t
teams:
  members:
    compiler: [alice, bob]
assign:
  users_on_vacation: [carol]
""",
        encoding="utf-8",
    )
    return str(path)


def _main(monkeypatch, *argv: str) -> int:
    monkeypatch.setattr(sys, "argv", ["assignbot", *argv])
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    with pytest.raises(SystemExit) as excinfo:
        cli.main()
    return excinfo.value.code


def test_resolve_excludes_author(tmp_path, monkeypatch, capsys) -> None:
    config = _write_config(tmp_path)
    code = _main(
        monkeypatch, "--config", config, "resolve", "compiler", "--repo", "rust-lang/rust", "--author", "alice"
    )
    assert code == 0
    captured = capsys.readouterr()
    assert captured.out.splitlines() == ["bob"]
    assert "capacity is checked against zero" in captured.err


def test_resolve_reports_reason(tmp_path, monkeypatch, capsys) -> None:
    config = _write_config(tmp_path)
    code = _main(
        monkeypatch, "--config", config, "resolve", "carol", "--repo", "rust-lang/rust", "--author", "alice"
    )
    assert code == 1
    assert "`carol` is not on the review rotation" in capsys.readouterr().out


def test_prefs_set_and_show(tmp_path, monkeypatch, capsys) -> None:
    config = _write_config(tmp_path)
    assert _main(monkeypatch, "--config", config, "prefs", "set", "Alice", "--capacity", "2") == 0
    assert _main(monkeypatch, "--config", config, "prefs", "set", "alice", "--rotation", "off") == 0
    capsys.readouterr()

    assert _main(monkeypatch, "--config", config, "prefs", "show") == 0
    assert capsys.readouterr().out.strip() == "alice: capacity=2 rotation=off"


def test_prefs_capacity_then_resolve(tmp_path, monkeypatch, capsys) -> None:
    config = _write_config(tmp_path)
    _main(monkeypatch, "--config", config, "prefs", "set", "bob", "--capacity", "0")
    capsys.readouterr()
    code = _main(
        monkeypatch, "--config", config, "resolve", "compiler", "--repo", "rust-lang/rust", "--author", "alice"
    )
    assert code == 1
    assert "No reviewers could be found" in capsys.readouterr().out


def test_missing_config_exits_with_error(tmp_path, monkeypatch) -> None:
    assert _main(monkeypatch, "--config", str(tmp_path / "nope.yaml"), "prefs", "show") == 1


def _fake_tracker(monkeypatch, issue: Issue | None = None, open_prs=()) -> AsyncMock:
    tracker = AsyncMock()
    tracker.__aenter__.return_value = tracker
    tracker.get_issue.return_value = issue
    tracker.get_pr_diff.return_value = []
    tracker.list_open_pr_assignments.return_value = list(open_prs)
    monkeypatch.setattr(cli, "GitHubRestAdapter", lambda **kwargs: tracker)
    return tracker


def test_resolve_with_loaded_workqueue_checks_capacity(tmp_path, monkeypatch, capsys) -> None:
    config = _write_config(tmp_path)
    _main(monkeypatch, "--config", config, "prefs", "set", "bob", "--capacity", "1")
    _fake_tracker(monkeypatch, open_prs=[(3, ["Bob"])])
    capsys.readouterr()

    code = _main(
        monkeypatch,
        "--config", config,
        "resolve", "compiler",
        "--repo", "rust-lang/rust",
        "--author", "alice",
        "--load-workqueue",
    )

    assert code == 1
    assert "No reviewers could be found" in capsys.readouterr().out


def test_command_claim_on_issue(tmp_path, monkeypatch, capsys) -> None:
    config = _write_config(tmp_path)
    issue = Issue("rust-lang", "rust", 5, "reporter", is_pr=False)
    tracker = _fake_tracker(monkeypatch, issue)

    code = _main(
        monkeypatch,
        "--config", config,
        "command", "@assignbot claim",
        "--repo", "rust-lang/rust",
        "--number", "5",
        "--requester", "newbie",
    )

    assert code == 0
    tracker.set_assignee.assert_awaited_once_with(issue, "newbie")
    assert capsys.readouterr().out.strip() == "assign newbie"
    storage = SqliteStorage(str(tmp_path / "data"))
    assert storage.get_tracked_assignee("rust-lang/rust", 5) == "newbie"


def test_command_team_review_request_on_pr(tmp_path, monkeypatch, capsys) -> None:
    """Open assignments are loaded, so a reviewer at capacity is skipped."""
    config = _write_config(tmp_path)
    _main(monkeypatch, "--config", config, "prefs", "set", "alice", "--capacity", "1")
    issue = Issue("rust-lang", "rust", 9, "carol", is_pr=True)
    tracker = _fake_tracker(monkeypatch, issue, open_prs=[(4, ["alice"])])
    capsys.readouterr()

    code = _main(
        monkeypatch,
        "--config", config,
        "command", "r? T-compiler",
        "--repo", "rust-lang/rust",
        "--number", "9",
        "--requester", "carol",
    )

    assert code == 0
    tracker.add_labels.assert_awaited_once_with(issue, ["T-compiler"])
    tracker.set_assignee.assert_awaited_once_with(issue, "bob")
    assert capsys.readouterr().out.strip() == "assign bob"


def test_command_without_command_text(tmp_path, monkeypatch, capsys) -> None:
    config = _write_config(tmp_path)
    tracker = _fake_tracker(monkeypatch)

    code = _main(
        monkeypatch,
        "--config", config,
        "command", "looks good to me",
        "--repo", "rust-lang/rust",
        "--number", "5",
        "--requester", "newbie",
    )

    assert code == 1
    assert "No assignment command found" in capsys.readouterr().out
    tracker.get_issue.assert_not_awaited()


def test_dry_run_respects_existing_assignee(tmp_path, monkeypatch, capsys) -> None:
    config = _write_config(tmp_path)
    issue = Issue("rust-lang", "rust", 9, "carol", ("dave",), is_pr=True)
    tracker = _fake_tracker(monkeypatch, issue)

    code = _main(
        monkeypatch,
        "--config", config,
        "assign-pr",
        "--repo", "rust-lang/rust",
        "--number", "9",
        "--dry-run",
    )

    assert code == 0
    assert capsys.readouterr().out.startswith("Skipped")
    tracker.get_pr_diff.assert_not_awaited()
    tracker.set_assignee.assert_not_awaited()
