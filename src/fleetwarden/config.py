"""Configuration management for fleetwarden."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_WORKER_EXECUTABLES = ("claude", "claude-code", "codex")


class FleetSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    town_root: Path = Field(default=Path("."), validation_alias="FLEET_TOWN_ROOT")
    town_name: str | None = Field(default=None, validation_alias="FLEET_TOWN_NAME")
    session_prefix: str = Field(default="gt", validation_alias="FLEET_SESSION_PREFIX")
    managed_flag: str = Field(
        default="--dangerously-skip-permissions", validation_alias="FLEET_MANAGED_FLAG"
    )
    worker_executables: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_WORKER_EXECUTABLES, validation_alias="FLEET_WORKER_EXECUTABLES"
    )
    tmux_path: str | None = Field(default=None, validation_alias="TMUX_PATH")
    tmux_timeout_seconds: float = Field(default=5.0, validation_alias="FLEET_TMUX_TIMEOUT")
    classification_max_age_seconds: float = Field(
        default=60.0, validation_alias="FLEET_CLASSIFICATION_MAX_AGE"
    )
    chroma_persist_path: Path = Field(
        default=Path("./storage/chroma"), validation_alias="CHROMA_PERSIST_PATH"
    )
    queue_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(Path("queues"),), validation_alias="FLEET_QUEUE_PATHS"
    )
    work_item_store_path: Path = Field(
        default=Path("./storage/work_items.json"), validation_alias="FLEET_WORK_ITEMS"
    )
    log_level: str = Field(default="INFO", validation_alias="FLEET_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "FLEET_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("session_prefix", "managed_flag")
    @classmethod
    def _require_non_empty(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("session prefix and managed flag must not be empty")
        return normalized

    @field_validator("worker_executables", mode="before")
    @classmethod
    def _parse_worker_executables(cls, value):
        if value is None or value == "":
            return DEFAULT_WORKER_EXECUTABLES
        if isinstance(value, (list, tuple)):
            return tuple(str(item).strip() for item in value if str(item).strip())
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(",") if part.strip()]
            return tuple(parts) or DEFAULT_WORKER_EXECUTABLES
        raise TypeError("FLEET_WORKER_EXECUTABLES must be a list or a comma-separated string")

    @field_validator("queue_paths", mode="before")
    @classmethod
    def _parse_queue_paths(cls, value):
        if value is None or value == "":
            return (Path("queues"),)
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts) or (Path("queues"),)
        raise TypeError("FLEET_QUEUE_PATHS must be a list of paths or a path-separated string")

    @field_validator("tmux_timeout_seconds")
    @classmethod
    def _validate_tmux_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("FLEET_TMUX_TIMEOUT must be > 0")
        return value

    @field_validator("classification_max_age_seconds")
    @classmethod
    def _validate_classification_max_age(cls, value: float) -> float:
        if value < 1:
            raise ValueError("FLEET_CLASSIFICATION_MAX_AGE must be >= 1")
        return value

    @property
    def resolved_town_name(self) -> str:
        """Town name used to derive the mayor and deacon session names."""

        if self.town_name:
            return self.town_name
        return self.town_root.expanduser().resolve().name


@lru_cache(maxsize=1)
def get_settings() -> FleetSettings:
    """Return cached settings instance."""

    settings = FleetSettings()
    settings.town_root = settings.town_root.expanduser().resolve()
    settings.chroma_persist_path = settings.chroma_persist_path.expanduser().resolve()
    settings.work_item_store_path = settings.work_item_store_path.expanduser().resolve()
    settings.queue_paths = tuple(path.expanduser().resolve() for path in settings.queue_paths)
    return settings


__all__ = ["DEFAULT_WORKER_EXECUTABLES", "FleetSettings", "get_settings"]
