from __future__ import annotations

import argparse
import importlib.util
import json
from datetime import datetime
from pathlib import Path

import pytest

from fleetwarden.doctor import FleetReconciler
from fleetwarden.inventory import ProcessEntry, ProcessInventory, SessionInventory
from fleetwarden.queues import InMemoryWorkItemStore, QueueCoordinator, QueueDefinition, QueueLoadError
from fleetwarden.rigs import Rig
from fleetwarden.storage import AuditEvent, ChromaUnavailableError


def load_cli():
    module_path = Path(__file__).resolve().parents[1] / "scripts" / "fleet_doctor.py"
    spec = importlib.util.spec_from_file_location("fleet_doctor_test_module", module_path)
    assert spec and spec.loader
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class StubSessionManager:
    def __init__(self, sessions: list[str]) -> None:
        self.sessions = sessions

    def list_sessions(self) -> list[str]:
        return list(self.sessions)

    def list_pane_pids(self, session: str) -> list[int]:
        return []

    def kill_session(self, session: str) -> None:
        raise AssertionError("report-only runs must not kill")


class StubProcessTable:
    def snapshot(self) -> list[ProcessEntry]:
        return []

    def parent_of(self, pid: int) -> int:
        return 1

    def kill(self, pid: int) -> None:
        raise AssertionError("report-only runs must not kill")


def stub_reconciler(town_root: Path) -> FleetReconciler:
    return FleetReconciler(
        town_root=town_root,
        mayor_session="gt-hq-mayor",
        deacon_session="gt-hq-deacon",
        sessions=SessionInventory(StubSessionManager(["gt-hq-mayor", "gt-gone-witness"])),
        processes=ProcessInventory(StubProcessTable()),
        rig_finder=lambda root: [Rig(name="acme", path=root / "acme")],
    )


def health_args(**overrides) -> argparse.Namespace:
    values = {"fix": False, "json": False, "watch": False, "interval": 2.0}
    values.update(overrides)
    return argparse.Namespace(**values)


def test_health_rejects_bad_interval(capsys) -> None:
    cli = load_cli()

    exit_code = cli.cmd_health(health_args(watch=True, interval=0))

    assert exit_code == 2
    assert "interval must be positive" in capsys.readouterr().err


def test_health_rejects_json_with_watch(capsys) -> None:
    cli = load_cli()

    exit_code = cli.cmd_health(health_args(watch=True, json=True))

    assert exit_code == 2
    assert "cannot be used together" in capsys.readouterr().err


def test_health_json_output(monkeypatch, capsys, tmp_path: Path) -> None:
    cli = load_cli()
    monkeypatch.setattr(cli, "build_reconciler", lambda _settings: stub_reconciler(tmp_path))

    exit_code = cli.cmd_health(health_args(json=True))

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert payload["status"] == "warning"
    assert payload["orphan_sessions"] == ["gt-gone-witness"]


def test_health_text_output_includes_fix_hint(monkeypatch, capsys, tmp_path: Path) -> None:
    cli = load_cli()
    monkeypatch.setattr(cli, "build_reconciler", lambda _settings: stub_reconciler(tmp_path))

    cli.cmd_health(health_args())

    out = capsys.readouterr().out
    assert "[warn] orphan-sessions: Found 1 orphaned session(s)" in out
    assert "Orphan: gt-gone-witness" in out
    assert "health --fix" in out


def test_health_watch_repeats_until_stopped(monkeypatch, capsys, tmp_path: Path) -> None:
    cli = load_cli()
    monkeypatch.setattr(cli, "build_reconciler", lambda _settings: stub_reconciler(tmp_path))
    sleeps: list[float] = []

    exit_code = cli.cmd_health(
        health_args(watch=True, interval=0.5), sleep=sleeps.append, max_iterations=3
    )

    assert exit_code == 0
    assert sleeps == [0.5, 0.5]
    assert capsys.readouterr().out.count("orphan-sessions") == 3


def test_health_fix_requires_chroma(monkeypatch, capsys, tmp_path: Path) -> None:
    cli = load_cli()
    monkeypatch.setattr(cli, "build_reconciler", lambda _settings: stub_reconciler(tmp_path))

    def unavailable(_settings):
        raise ChromaUnavailableError("chromadb package is not installed")

    monkeypatch.setattr(cli, "load_store", unavailable)

    exit_code = cli.cmd_health(health_args(fix=True))

    assert exit_code == 1
    assert "Chroma unavailable" in capsys.readouterr().err


def test_events_lists_latest_session_deaths(monkeypatch, capsys) -> None:
    cli = load_cli()

    class StubStore:
        def __init__(self) -> None:
            self.calls: list[dict] = []

        def events(self, *, subject_id=None, event_type=None, limit=None):
            self.calls.append({"subject_id": subject_id, "event_type": event_type, "limit": limit})
            return [
                AuditEvent(
                    id=f"session_death:gt-old-witness:{index}",
                    event_type="session_death",
                    subject_id="gt-old-witness",
                    sequence=index,
                    recorded_at=datetime.fromisoformat(f"2025-01-01T00:00:0{index}+00:00"),
                    payload={"reason": "orphan cleanup", "caller": "fleet health pass"},
                )
                for index in (1, 2)
            ]

    stub = StubStore()
    monkeypatch.setattr(cli, "load_store", lambda _settings: stub)

    args = cli.build_parser().parse_args(["events", "--subject", "gt-old-witness", "--limit", "2"])
    exit_code = cli.cmd_events(args)

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert stub.calls == [{"subject_id": "gt-old-witness", "event_type": "session_death", "limit": 2}]
    assert [entry["event_id"] for entry in payload] == [
        "session_death:gt-old-witness:1",
        "session_death:gt-old-witness:2",
    ]
    assert payload[0]["reason"] == "orphan cleanup"
    assert payload[1]["sequence"] == 2


def test_events_without_subject_lists_every_session_death(monkeypatch, capsys) -> None:
    cli = load_cli()
    calls: list[dict] = []

    class StubStore:
        def events(self, **kwargs):
            calls.append(kwargs)
            return []

    monkeypatch.setattr(cli, "load_store", lambda _settings: StubStore())

    assert cli.cmd_events(cli.build_parser().parse_args(["events"])) == 0
    assert calls == [{"subject_id": None, "event_type": "session_death", "limit": None}]
    assert json.loads(capsys.readouterr().out) == []


def test_claim_and_release_commands(monkeypatch, capsys) -> None:
    cli = load_cli()
    coordinator = QueueCoordinator(
        InMemoryWorkItemStore(),
        {"work/acme": QueueDefinition(name="work/acme", workers=["acme/polecats/*"])},
    )
    coordinator.enqueue("w-1", "Fix the build", "work/acme")
    monkeypatch.setattr(cli, "load_coordinator", lambda _settings: coordinator)

    assert cli.cmd_claim(argparse.Namespace(queue="work/acme", caller="acme/polecats/nux", item_id=None)) == 0
    claimed = json.loads(capsys.readouterr().out)
    assert claimed["assignee"] == "acme/polecats/nux"

    assert cli.cmd_release(argparse.Namespace(item_id="w-1", caller="acme/polecats/slit")) == 1
    assert "was claimed by acme/polecats/nux" in capsys.readouterr().err

    assert cli.cmd_release(argparse.Namespace(item_id="w-1", caller="acme/polecats/nux")) == 0
    assert json.loads(capsys.readouterr().out)["assignee"] == "queue:work/acme"


def test_main_exits_non_zero_on_failure(monkeypatch) -> None:
    cli = load_cli()

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["health", "--watch", "--interval", "-1"])

    assert excinfo.value.code == 2


def test_claim_and_release_report_queue_load_errors(monkeypatch, capsys) -> None:
    cli = load_cli()

    def broken_loader(_settings):
        raise QueueLoadError("Queue validation error in broken.yml: name: Field required")

    monkeypatch.setattr(cli, "load_coordinator", broken_loader)

    assert cli.cmd_claim(argparse.Namespace(queue="work/acme", caller="acme/polecats/nux", item_id=None)) == 1
    assert "Error: Queue validation error in broken.yml" in capsys.readouterr().err

    assert cli.cmd_release(argparse.Namespace(item_id="w-1", caller="acme/polecats/nux")) == 1
    assert "Error: Queue validation error in broken.yml" in capsys.readouterr().err
