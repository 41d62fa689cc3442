"""Tool registration for the fleetwarden MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from fastmcp import Context, FastMCP

from ..config import FleetSettings
from ..doctor import (
    FleetReconciler,
    HealthCheckOptions,
    HealthPassInProgressError,
    StaleClassificationError,
    build_executor,
    run_health_pass,
)
from ..queues import QueueCoordinator, QueueError, WorkItem
from ..storage import ChromaAuditStore, ChromaEventFeed

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    fleet_health: Any
    queue_list: Any
    queue_claim: Any
    queue_release: Any
    health_state: dict[str, Any]


def _item_summary(item: WorkItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "title": item.title,
        "assignee": item.assignee,
        "queue": item.queue_name,
        "status": item.status,
    }


def register_tools(
    server: FastMCP,
    *,
    settings: FleetSettings,
    reconciler_factory: Callable[[], FleetReconciler],
    coordinator: QueueCoordinator,
    chroma_store: ChromaAuditStore | None,
) -> ToolHandles:
    """Register fleetwarden's MCP tools on the server."""

    health_state: dict[str, Any] = {}

    def _fleet_health(fix: bool = False, context: Context | None = None) -> dict[str, Any]:
        """Report orphaned sessions and processes, optionally killing them."""

        options = HealthCheckOptions(fix=fix)
        reconciler = reconciler_factory()
        executor = None
        if fix:
            if chroma_store is None:
                raise RuntimeError("Chroma store is unavailable; enable persistence before using fix")
            executor = build_executor(settings, reconciler, ChromaEventFeed(chroma_store))

        try:
            result = run_health_pass(reconciler, options, executor)
        except (HealthPassInProgressError, StaleClassificationError) as exc:
            raise RuntimeError(str(exc)) from exc

        payload = result.to_dict()
        health_state.update(
            {
                "last_pass_id": payload["pass_id"],
                "last_status": payload["status"],
                "last_run_at": datetime.now(timezone.utc).isoformat(),
                "fixed": fix,
            }
        )
        _emit_log(
            context,
            "info",
            "Fleet health pass finished",
            extra={"pass_id": payload["pass_id"], "status": payload["status"], "fix": fix},
        )
        return payload

    def _queue_list(queue_name: str, context: Context | None = None) -> list[dict[str, Any]]:
        """List items still unclaimed in a queue."""

        items = coordinator.list_unclaimed(queue_name)
        _emit_log(context, "debug", "Listed queue", extra={"queue": queue_name, "count": len(items)})
        return [_item_summary(item) for item in items]

    def _queue_claim(
        queue_name: str,
        caller: str,
        item_id: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Claim a specific item, or the next unclaimed item in a queue."""

        try:
            if item_id:
                item = coordinator.claim(item_id, caller, queue_name=queue_name)
            else:
                item = coordinator.claim_next(queue_name, caller)
        except QueueError as exc:
            raise ValueError(str(exc)) from exc

        if item is None:
            _emit_log(context, "info", "Queue drained", extra={"queue": queue_name, "caller": caller})
            return {"claimed": False, "queue": queue_name}

        _emit_log(context, "info", "Claimed work item", extra={"item_id": item.id, "caller": caller})
        return {"claimed": True, "item": _item_summary(item)}

    def _queue_release(item_id: str, caller: str, context: Context | None = None) -> dict[str, Any]:
        """Return a claimed item to its queue. Only the current holder may release."""

        try:
            item = coordinator.release(item_id, caller)
        except QueueError as exc:
            raise ValueError(str(exc)) from exc

        _emit_log(context, "info", "Released work item", extra={"item_id": item.id, "caller": caller})
        return {"released": True, "item": _item_summary(item)}

    tool_health = server.tool(
        name="fleet_health",
        description=(
            "Classify tmux sessions and worker processes as valid or orphaned. With fix=true, "
            "kill orphaned sessions (never crew) and orphaned managed processes."
        ),
        annotations={
            "destructiveHint": True,
        },
    )(_fleet_health)

    tool_list = server.tool(
        name="queue_list",
        description="List unclaimed work items in a queue.",
    )(_queue_list)

    tool_claim = server.tool(
        name="queue_claim",
        description="Claim the next unclaimed item in a queue, or a specific item by id.",
    )(_queue_claim)

    tool_release = server.tool(
        name="queue_release",
        description="Release a claimed work item back to its queue.",
    )(_queue_release)

    return ToolHandles(
        fleet_health=tool_health,
        queue_list=tool_list,
        queue_claim=tool_claim,
        queue_release=tool_release,
        health_state=health_state,
    )


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)


__all__ = ["ToolHandles", "register_tools"]
