"""fleetwarden operator CLI: health passes, audit events and queue operations."""

from __future__ import annotations

import argparse
import json
import sys
import time
from typing import Callable

from pydantic import ValidationError

from fleetwarden.config import FleetSettings
from fleetwarden.doctor import (
    CheckStatus,
    HealthCheckOptions,
    HealthPassInProgressError,
    HealthPassResult,
    StaleClassificationError,
    build_executor,
    build_reconciler,
    run_health_pass,
)
from fleetwarden.doctor.remediation import SESSION_DEATH_EVENT
from fleetwarden.queues import (
    JsonFileWorkItemStore,
    QueueCoordinator,
    QueueError,
    QueueLoader,
)
from fleetwarden.server import configure_logging
from fleetwarden.storage import ChromaAuditStore, ChromaEventFeed, ChromaUnavailableError

_STATUS_MARKERS = {
    CheckStatus.OK: "[ok]",
    CheckStatus.WARNING: "[warn]",
    CheckStatus.ERROR: "[fail]",
}


def load_store(settings: FleetSettings) -> ChromaAuditStore:
    store = ChromaAuditStore(settings.chroma_persist_path)
    store.ping()
    return store


def load_coordinator(settings: FleetSettings) -> QueueCoordinator:
    queues = QueueLoader(settings.queue_paths).load_all()
    return QueueCoordinator(JsonFileWorkItemStore(settings.work_item_store_path), queues)


def render_text(result: HealthPassResult) -> str:
    lines: list[str] = []
    for check in result.report.results:
        lines.append(f"{_STATUS_MARKERS[check.status]} {check.name}: {check.message}")
        lines.extend(f"    {detail}" for detail in check.details)
        if check.fix_hint and result.outcome is None:
            lines.append(f"    -> {check.fix_hint}")
    outcome = result.outcome
    if outcome is not None:
        lines.append(
            f"Fixed: {len(outcome.killed_sessions)} session(s), {len(outcome.killed_pids)} process(es)"
        )
        for target, error in outcome.failures:
            lines.append(f"    failed to kill {target}: {error}")
    return "\n".join(lines)


def _options_from_args(args: argparse.Namespace) -> HealthCheckOptions:
    return HealthCheckOptions(
        fix=args.fix,
        json_output=args.json,
        watch=args.watch,
        interval=args.interval,
    )


def cmd_health(
    args: argparse.Namespace,
    *,
    sleep: Callable[[float], None] = time.sleep,
    max_iterations: int | None = None,
) -> int:
    try:
        options = _options_from_args(args)
    except ValidationError as exc:
        message = "; ".join(error["msg"] for error in exc.errors())
        print(f"Invalid options: {message}", file=sys.stderr)
        return 2

    settings = FleetSettings()
    reconciler = build_reconciler(settings)

    executor = None
    if options.fix:
        try:
            store = load_store(settings)
        except ChromaUnavailableError as exc:
            print(f"Chroma unavailable: {exc}", file=sys.stderr)
            return 1
        executor = build_executor(settings, reconciler, ChromaEventFeed(store))

    iteration = 0
    while True:
        try:
            result = run_health_pass(reconciler, options, executor)
        except (HealthPassInProgressError, StaleClassificationError) as exc:
            print(str(exc), file=sys.stderr)
            return 1

        if options.json_output:
            print(json.dumps(result.to_dict(), indent=2))
        else:
            print(render_text(result))

        iteration += 1
        if not options.watch or (max_iterations is not None and iteration >= max_iterations):
            break
        try:
            sleep(options.interval)
        except KeyboardInterrupt:
            break
        print()

    if result.outcome is not None and not result.outcome.ok:
        return 1
    return 0


def cmd_events(args: argparse.Namespace) -> int:
    settings = FleetSettings()
    try:
        store = load_store(settings)
        events = store.events(
            subject_id=args.subject,
            event_type=SESSION_DEATH_EVENT,
            limit=args.limit,
        )
    except ChromaUnavailableError as exc:
        print(f"Chroma unavailable: {exc}", file=sys.stderr)
        return 1

    print(json.dumps([event.to_dict() for event in events], indent=2))
    return 0


def cmd_claim(args: argparse.Namespace) -> int:
    try:
        coordinator = load_coordinator(FleetSettings())
        if args.item_id:
            item = coordinator.claim(args.item_id, args.caller, queue_name=args.queue)
        else:
            item = coordinator.claim_next(args.queue, args.caller)
    except QueueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if item is None:
        print(f"No unclaimed items in {args.queue}")
        return 0
    print(json.dumps(item.to_dict(), indent=2))
    return 0


def cmd_release(args: argparse.Namespace) -> int:
    try:
        coordinator = load_coordinator(FleetSettings())
        item = coordinator.release(args.item_id, args.caller)
    except QueueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(item.to_dict(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="fleetwarden operator tools")
    sub = parser.add_subparsers(dest="cmd")

    p_health = sub.add_parser("health", help="Check for orphaned sessions and processes")
    p_health.add_argument("--fix", action="store_true", help="Kill orphans after reporting")
    p_health.add_argument("--json", action="store_true", help="Output JSON")
    p_health.add_argument("--watch", action="store_true", help="Re-run the report periodically")
    p_health.add_argument("--interval", type=float, default=2.0, help="Seconds between watch refreshes")
    p_health.set_defaults(func=cmd_health)

    p_events = sub.add_parser("events", help="List recorded session-death audit events")
    p_events.add_argument("--subject", default=None, help="Only events for this session name or pid-N")
    p_events.add_argument("--limit", type=int, default=None, help="Show only the latest N events")
    p_events.set_defaults(func=cmd_events)

    p_claim = sub.add_parser("claim", help="Claim a work item from a queue")
    p_claim.add_argument("queue")
    p_claim.add_argument("--caller", required=True, help="Worker identity, e.g. rig/polecats/name")
    p_claim.add_argument("--item-id", help="Claim this item instead of the next unclaimed one")
    p_claim.set_defaults(func=cmd_claim)

    p_release = sub.add_parser("release", help="Release a claimed work item")
    p_release.add_argument("item_id")
    p_release.add_argument("--caller", required=True, help="Worker identity that holds the item")
    p_release.set_defaults(func=cmd_release)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    configure_logging(FleetSettings().log_level)
    exit_code = args.func(args)
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
