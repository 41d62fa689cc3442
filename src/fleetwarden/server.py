"""FastMCP server bootstrap for fleetwarden."""

import json
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import FleetSettings, get_settings
from .doctor import FleetReconciler, build_reconciler
from .queues import JsonFileWorkItemStore, QueueCoordinator, QueueLoadError, QueueLoader
from .rigs import discover_rigs
from .storage import DEFAULT_COLLECTION, ChromaAuditStore, ChromaUnavailableError
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the fleetwarden server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def create_server(
    settings: Optional[FleetSettings] = None,
    *,
    reconciler_factory: Callable[[], FleetReconciler] | None = None,
    coordinator: QueueCoordinator | None = None,
    chroma_store: ChromaAuditStore | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with fleet health and queue tools."""

    settings = settings or get_settings()

    queue_error: str | None = None
    if coordinator is None:
        try:
            queues = QueueLoader(settings.queue_paths).load_all()
        except QueueLoadError as exc:
            queue_error = str(exc)
            queues = {}
        coordinator = QueueCoordinator(JsonFileWorkItemStore(settings.work_item_store_path), queues)

    chroma_metadata = {
        "available": False,
        "path": str(settings.chroma_persist_path),
        "collection": DEFAULT_COLLECTION,
        "error": None,
    }

    if chroma_store is None:
        try:
            chroma_store = ChromaAuditStore(settings.chroma_persist_path)
            chroma_store.ping()
        except ChromaUnavailableError as exc:
            chroma_metadata["error"] = str(exc)
            chroma_store = None
    chroma_metadata["available"] = chroma_store is not None

    if reconciler_factory is None:

        def reconciler_factory() -> FleetReconciler:
            return build_reconciler(settings)

    server = FastMCP(
        name="fleetwarden",
        version=__version__,
        instructions=(
            "fleetwarden checks a town of tmux-hosted agent sessions for orphans and "
            "coordinates claim/release of queue-managed work items. Workers identify "
            "themselves by their rig/role/name address."
        ),
    )

    handles = register_tools(
        server,
        settings=settings,
        reconciler_factory=reconciler_factory,
        coordinator=coordinator,
        chroma_store=chroma_store,
    )

    @server.resource(
        "resource://fleetwarden/status",
        name="fleetwarden_status",
        title="fleetwarden status",
        description="Town layout, configured queues and the last health pass.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing the town and the last health pass."""

        rigs = discover_rigs(settings.town_root)
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "town": {
                "root": str(settings.town_root),
                "name": settings.resolved_town_name,
                "rigs": [
                    {
                        "name": rig.name,
                        "roles": sorted(role.value for role in rig.roles_present),
                        "disabled_roles": sorted(role.value for role in rig.disabled_roles),
                    }
                    for rig in rigs
                ],
            },
            "queues": {
                "names": sorted(coordinator.queues),
                "error": queue_error,
            },
            "storage": {"chroma": chroma_metadata},
            "health": dict(handles.health_state),
            "request_id": getattr(context, "request_id", None),
        }
        return json.dumps(payload)

    setattr(server, "coordinator", coordinator)
    setattr(server, "chroma_store", chroma_store)
    setattr(server, "chroma_metadata", chroma_metadata)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the fleetwarden MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching fleetwarden MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "town_root": str(settings.town_root),
            "chroma_available": getattr(server, "chroma_metadata", {}).get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
