"""Queue definition loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml
from pydantic import ValidationError

from .models import QueueDefinition
from .protocol import QueueError


class QueueLoadError(QueueError):
    """Raised when one or more queue files cannot be parsed."""


class QueueLoader:
    """Loads queue definitions from YAML files on disk.

    A file holds either a single queue mapping or a ``queues:`` list.
    """

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        paths = [Path(path) for path in (search_paths or [])]
        self._search_paths: list[Path] = [path for path in paths if path.exists()]

    @property
    def search_paths(self) -> list[Path]:
        return list(self._search_paths)

    def load_all(self) -> dict[str, QueueDefinition]:
        """Load queues from all configured search paths.

        Later search paths override earlier ones when queue names collide.
        """

        if not self._search_paths:
            return {}

        queues: dict[str, QueueDefinition] = {}
        errors: list[str] = []

        for base in self._search_paths:
            for path in sorted(base.glob("*.yml")) + sorted(base.glob("*.yaml")):
                try:
                    document = yaml.safe_load(path.read_text(encoding="utf-8"))
                except yaml.YAMLError as exc:  # pragma: no cover - library type
                    errors.append(f"Failed to parse YAML in {path}: {exc}")
                    continue

                if document is None:
                    continue

                if isinstance(document, dict) and "queues" in document:
                    entries = document.get("queues") or []
                else:
                    entries = [document]

                for entry in entries:
                    try:
                        queue = QueueDefinition.model_validate(entry)
                    except ValidationError as exc:
                        errors.append(f"Queue validation error in {path}: {exc}")
                        continue
                    queues[queue.name] = queue

        if errors:
            raise QueueLoadError("; ".join(errors))

        return queues


def load_queues(search_paths: Iterable[Path] | None = None) -> dict[str, QueueDefinition]:
    """Convenience wrapper for loading queues from the provided paths."""

    return QueueLoader(search_paths).load_all()


__all__ = ["QueueLoadError", "QueueLoader", "load_queues"]
