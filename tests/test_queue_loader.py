from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest

from fleetwarden.queues import QueueLoadError, QueueLoader, load_queues


def write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dedent(text), encoding="utf-8")


def test_loads_single_and_list_documents(tmp_path: Path) -> None:
    write(
        tmp_path / "queues" / "gastown.yml",
        """
        name: work/gastown
        description: Gastown build queue
        workers:
          - gastown/polecats/*
          - gastown/witness
        """,
    )
    write(
        tmp_path / "queues" / "shared.yaml",
        """
        queues:
          - name: work/shared
            workers: "*"
          - name: work/locked
        """,
    )

    queues = QueueLoader([tmp_path / "queues"]).load_all()

    assert sorted(queues) == ["work/gastown", "work/locked", "work/shared"]
    assert queues["work/gastown"].workers == ["gastown/polecats/*", "gastown/witness"]
    assert queues["work/shared"].workers == ["*"]
    assert queues["work/locked"].workers == []


def test_later_paths_override_earlier(tmp_path: Path) -> None:
    write(tmp_path / "base" / "q.yml", "name: work/acme\nworkers: [acme/witness]\n")
    write(tmp_path / "local" / "q.yml", "name: work/acme\nworkers: [acme/polecats/*]\n")

    queues = load_queues([tmp_path / "base", tmp_path / "local"])

    assert queues["work/acme"].workers == ["acme/polecats/*"]


def test_missing_paths_yield_no_queues(tmp_path: Path) -> None:
    assert QueueLoader([tmp_path / "absent"]).load_all() == {}


def test_invalid_definitions_are_aggregated(tmp_path: Path) -> None:
    write(tmp_path / "queues" / "a.yml", "name: '   '\n")
    write(tmp_path / "queues" / "b.yml", "description: no name\n")

    with pytest.raises(QueueLoadError) as excinfo:
        QueueLoader([tmp_path / "queues"]).load_all()

    message = str(excinfo.value)
    assert "a.yml" in message
    assert "b.yml" in message
