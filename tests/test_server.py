from __future__ import annotations

from pathlib import Path

import pytest

from fleetwarden import server as server_module
from fleetwarden.config import FleetSettings
from fleetwarden.storage import ChromaUnavailableError


class UnavailableAuditStore:
    def __init__(self, path, **kwargs) -> None:
        self.path = path

    def ping(self) -> bool:
        raise ChromaUnavailableError("chromadb package is not installed")


def make_settings(tmp_path: Path) -> FleetSettings:
    return FleetSettings(
        town_root=tmp_path,
        town_name="hq",
        chroma_persist_path=tmp_path / "chroma",
        queue_paths=(tmp_path / "queues",),
        work_item_store_path=tmp_path / "items.json",
    )


def test_create_server_loads_queues_and_tolerates_missing_chroma(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    (tmp_path / "queues").mkdir()
    (tmp_path / "queues" / "acme.yml").write_text(
        "name: work/acme\nworkers: [acme/polecats/*]\n", encoding="utf-8"
    )
    monkeypatch.setattr(server_module, "ChromaAuditStore", UnavailableAuditStore)

    server = server_module.create_server(make_settings(tmp_path))

    assert sorted(server.coordinator.queues) == ["work/acme"]
    assert server.chroma_store is None
    assert server.chroma_metadata["available"] is False
    assert "not installed" in server.chroma_metadata["error"]
    assert server.tool_handles.health_state == {}


def test_create_server_survives_bad_queue_files(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    (tmp_path / "queues").mkdir()
    (tmp_path / "queues" / "broken.yml").write_text("description: missing name\n", encoding="utf-8")
    monkeypatch.setattr(server_module, "ChromaAuditStore", UnavailableAuditStore)

    server = server_module.create_server(make_settings(tmp_path))

    assert server.coordinator.queues == {}
