from __future__ import annotations

from datetime import datetime

import pytest

from fleetwarden.inventory import SessionInventory, SessionListError, TmuxSessionManager
from fleetwarden.tmux import FakeTmuxRunner, TmuxExecutionResult, TmuxRunnerError, TmuxTimeoutError

NOW = datetime.fromisoformat("2025-01-01T00:00:00+00:00")


def result(stdout: str = "", *, returncode: int = 0, stderr: str = "") -> TmuxExecutionResult:
    return TmuxExecutionResult(args=(), returncode=returncode, stdout=stdout, stderr=stderr)


def test_list_sessions_parses_names() -> None:
    runner = FakeTmuxRunner({"list-sessions": [result("gt-acme-witness\nscratch\n")]})

    assert TmuxSessionManager(runner).list_sessions() == ["gt-acme-witness", "scratch"]


@pytest.mark.parametrize(
    "stderr",
    [
        "no server running on /tmp/tmux-1000/default",
        "error connecting to /tmp/tmux-1000/default (No such file or directory)",
    ],
)
def test_no_server_means_no_sessions(stderr: str) -> None:
    runner = FakeTmuxRunner({"list-sessions": [result(returncode=1, stderr=stderr)]})

    assert TmuxSessionManager(runner).list_sessions() == []


def test_other_failures_raise() -> None:
    runner = FakeTmuxRunner({"list-sessions": [result(returncode=1, stderr="permission denied")]})

    with pytest.raises(SessionListError, match="permission denied"):
        TmuxSessionManager(runner).list_sessions()


def test_runner_timeout_surfaces_as_session_list_error() -> None:
    runner = FakeTmuxRunner({"list-sessions": [TmuxTimeoutError("tmux list-sessions timed out")]})

    with pytest.raises(SessionListError, match="timed out"):
        TmuxSessionManager(runner).list_sessions()


def test_kill_session_failure_raises_runner_error() -> None:
    runner = FakeTmuxRunner({"kill-session": [result(returncode=1, stderr="can't find session")]})

    with pytest.raises(TmuxRunnerError, match="can't find session"):
        TmuxSessionManager(runner).kill_session("gt-acme-nux")


def test_snapshot_collects_pane_pids_and_errors() -> None:
    runner = FakeTmuxRunner(
        {
            "list-sessions": [result("gt-acme-witness\ngt-acme-nux\nscratch\n")],
            "list-panes": [
                result("100\n101\n"),
                result(returncode=1, stderr="can't find session"),
                result("300\n"),
            ],
        }
    )
    inventory = SessionInventory(TmuxSessionManager(runner), clock=lambda: NOW)

    snapshot = inventory.snapshot(include_panes=True)

    assert snapshot.names == ["gt-acme-witness", "gt-acme-nux", "scratch"]
    assert snapshot.fleet_sessions() == ["gt-acme-witness", "gt-acme-nux"]
    assert snapshot.pane_pids == {"gt-acme-witness": (100, 101), "scratch": (300,)}
    assert snapshot.pane_errors == {"gt-acme-nux": "can't find session"}
    assert snapshot.taken_at == NOW


def test_snapshot_without_panes_skips_pane_queries() -> None:
    runner = FakeTmuxRunner({"list-sessions": [result("gt-acme-witness\n")]})

    snapshot = SessionInventory(TmuxSessionManager(runner)).snapshot()

    assert snapshot.pane_pids == {}
    assert all(call[0] != "list-panes" for call in runner.invocations)
