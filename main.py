#!/usr/bin/env python3
"""digestctl: control surface for a remote research-digest agent pipeline.

This CLI tool manages the research topics and recipient address of a
weekly paper digest, runs the remote multi-agent pipeline on demand, and
observes and controls the recurring schedule that runs it automatically.

Commands:
    run         Run the digest pipeline once and record the result
    topics      List, add, rename, remove or bulk-import research topics
    email       Show or set the digest recipient address
    history     Show, filter or clear past digest runs
    schedule    Show, pause, resume, toggle or trigger the recurring schedule
    status      Show configuration and stored state

Examples:
    python main.py topics add "Large Language Models"
    python main.py email me@example.com
    python main.py run --date-from 2026-10-10 --date-to 2026-10-17
    python main.py history --filter transformers
    python main.py schedule pause
    python main.py schedule trigger

Environment:
    AGENT_API_URL, MANAGER_AGENT_ID: Required for 'run'
    SCHEDULER_API_URL, SCHEDULE_ID: Required for 'schedule'
    See config.py for all configuration options
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date

from config import REQUIRE_AGENT, REQUIRE_SCHEDULER, Config
from errors import DigestError
from observability.logging import setup_logging
from observability.tracing import setup_tracing
from state import AppState
from store import SlotStore

logger = logging.getLogger(__name__)


def _open_state(config: Config) -> tuple[SlotStore, AppState]:
    """Open the store and load application state, reporting fallbacks."""
    store = SlotStore(config.store_path)
    state = AppState(store)
    report = state.load()
    for key in report.fallbacks:
        print(f"Warning: stored '{key}' was unreadable and has been reset", file=sys.stderr)
    if report.skipped_records:
        print(f"Warning: skipped {report.skipped_records} unreadable history record(s)", file=sys.stderr)
    return store, state


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}' - expected YYYY-MM-DD")


# =============================================================================
# run
# =============================================================================


def cmd_run(args: argparse.Namespace, config: Config) -> int:
    """Run the digest pipeline once.

    Args:
        args: Parsed command line arguments
        config: Application configuration

    Returns:
        Exit code (0 for success)
    """
    from clients import AgentClient
    from orchestrator import DigestOrchestrator, default_window

    default_from, default_to = default_window(config.date_window_days)
    date_from = args.date_from or default_from
    date_to = args.date_to or default_to
    if date_from > date_to:
        print("Error: --date-from must not be after --date-to", file=sys.stderr)
        return 1

    store, state = _open_state(config)
    try:
        topics = args.topic or state.topics
        client = AgentClient(config.agent_api_url, config.agent_api_key)
        orchestrator = DigestOrchestrator(config, client, state)

        async def run_with_activity():
            task = asyncio.create_task(
                orchestrator.run_digest_pipeline(topics, state.recipient, date_from, date_to)
            )
            await asyncio.sleep(0)
            if orchestrator.run_in_flight:
                for agent, working in orchestrator.agent_activity():
                    print(f"  {agent.name}: {'working' if working else 'idle'} ({agent.role})")
            return await task

        print(f"Running digest pipeline for {len(topics)} topic(s)... this can take a few minutes.")
        try:
            result = asyncio.run(run_with_activity())
        except DigestError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        record = result.record
        print(f"\n=== Digest {record.timestamp} ===\n")
        print(f"Topics: {', '.join(record.topics)}")
        print(f"Papers found: {record.paper_count}")
        print(f"Status: {record.workflow_status}")
        if record.recipient:
            print(f"Delivered to {record.recipient}: {'yes' if record.delivered else 'no'}")
        else:
            print("Preview only (no recipient set)")

        statuses = record.agent_statuses
        if statuses.search:
            print(f"Search agent: {statuses.search.status or '-'} ({statuses.search.papers_found} papers)")
        if statuses.delivery:
            print(f"Delivery agent: {statuses.delivery.status or '-'}")

        if record.summary_text:
            print(f"\n{record.summary_text}")
        return 0
    finally:
        store.close()


# =============================================================================
# topics / email
# =============================================================================


def cmd_topics(args: argparse.Namespace, config: Config) -> int:
    """List or edit the research topics."""
    store, state = _open_state(config)
    try:
        action = args.topics_command or "list"

        if action == "list":
            if not state.topics:
                print("No topics yet. Add one with: topics add \"<topic>\"")
            for i, topic in enumerate(state.topics, 1):
                print(f"{i}. {topic}")
            return 0

        if action == "add":
            if not state.add_topic(args.topic):
                print(f"Error: topic is blank or already present: '{args.topic}'", file=sys.stderr)
                return 1
            print(f"Added: {args.topic.strip()}")
            return 0

        if action == "rename":
            if not state.rename_topic(args.old, args.new):
                print(f"Error: cannot rename '{args.old}' to '{args.new}'", file=sys.stderr)
                return 1
            print(f"Renamed: {args.old} -> {args.new.strip()}")
            return 0

        if action == "remove":
            if not state.remove_topic(args.topic):
                print(f"Error: no such topic: '{args.topic}'", file=sys.stderr)
                return 1
            print(f"Removed: {args.topic}")
            return 0

        # import
        added = state.import_topics(args.text)
        print(f"Imported {added} topic(s)")
        return 0
    finally:
        store.close()


def cmd_email(args: argparse.Namespace, config: Config) -> int:
    """Show or set the recipient address."""
    store, state = _open_state(config)
    try:
        if args.address is None:
            print(state.recipient or "(not set: runs are preview-only)")
            return 0
        try:
            state.set_recipient(args.address)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(f"Recipient: {state.recipient}" if state.recipient else "Recipient cleared")
        return 0
    finally:
        store.close()


# =============================================================================
# history
# =============================================================================


def cmd_history(args: argparse.Namespace, config: Config) -> int:
    """Show, filter or clear past digest runs."""
    store, state = _open_state(config)
    try:
        if args.clear:
            removed = state.clear_history()
            print(f"Cleared {removed} record(s)")
            return 0

        records = state.filter_history(args.filter or "")
        if not records:
            print("No matching digests." if args.filter else "No digests yet.")
            return 0

        print(f"\n=== Digest History ({len(records)}) ===\n")
        for record in records:
            delivered = "delivered" if record.delivered else "not delivered"
            print(f"📄 {record.timestamp}  [{record.workflow_status}]")
            print(f"   Topics: {', '.join(record.topics)}")
            print(f"   Papers: {record.paper_count} | {delivered}"
                  + (f" to {record.recipient}" if record.recipient else ""))
            if record.summary_text:
                summary = record.summary_text
                if len(summary) > 200:
                    summary = summary[:200] + "..."
                print(f"   Summary: {summary}")
            print()
        return 0
    finally:
        store.close()


# =============================================================================
# schedule
# =============================================================================


def _print_schedule(view) -> None:
    schedule = view.schedule
    print(f"State: {view.state.value.upper()}")
    if schedule:
        print(f"Schedule: {schedule.description}"
              + (f" ({schedule.timezone})" if schedule.timezone else ""))
        if schedule.next_run_time:
            print(f"Next run: {schedule.next_run_time.isoformat()}")
        if schedule.last_run_at:
            print(f"Last run: {schedule.last_run_at.isoformat()}")
    if view.error:
        print(f"Warning: {view.error}", file=sys.stderr)


def _print_logs(view) -> None:
    if not view.logs:
        print("No executions recorded.")
        return
    print(f"\n=== Recent Executions ({len(view.logs)}) ===\n")
    for entry in view.logs:
        when = entry.executed_at.strftime("%Y-%m-%d %H:%M") if entry.executed_at else "-"
        result = "ok" if entry.success else f"failed: {entry.error_message}"
        print(f"{when}  attempt {entry.attempt}/{entry.max_attempts}  {result}")


def cmd_schedule(args: argparse.Namespace, config: Config) -> int:
    """Observe or control the recurring digest schedule."""
    from clients import SchedulerClient
    from schedule import ScheduleController

    client = SchedulerClient(
        config.scheduler_api_url,
        config.scheduler_api_key,
        timeout=config.request_timeout_seconds,
    )
    controller = ScheduleController(client, config.schedule_id, log_limit=config.log_limit)
    action = args.schedule_command or "status"

    async def run_action():
        if action == "logs":
            controller.view.logs = await controller.fetch_execution_log()
            return None
        await controller.load()
        if action == "pause":
            return await controller.set_active(False)
        if action == "resume":
            return await controller.set_active(True)
        if action == "toggle":
            return await controller.toggle()
        if action == "trigger":
            return await controller.trigger_now()
        return None

    try:
        outcome = asyncio.run(run_action())
    except DigestError as e:
        print(f"Error: {e}", file=sys.stderr)
        if action != "logs":
            _print_schedule(controller.view)
        return 1

    if action == "logs":
        _print_logs(controller.view)
        return 0

    if outcome is not None:
        print(outcome.message)

    _print_schedule(controller.view)
    if action == "status":
        _print_logs(controller.view)

    # A status read that could not reach the service is a failure
    if outcome is None and controller.view.schedule is None:
        return 1
    return 0


# =============================================================================
# status
# =============================================================================


def cmd_status(args: argparse.Namespace, config: Config) -> int:
    """Display configuration and stored state."""
    from orchestrator import agent_roster

    store, state = _open_state(config)
    try:
        status = {
            "config": {
                "agent_api_url": config.agent_api_url or None,
                "agents": [
                    {"id": agent.id, "name": agent.name, "role": agent.role}
                    for agent in agent_roster(config)
                ],
                "scheduler_api_url": config.scheduler_api_url or None,
                "schedule_id": config.schedule_id or None,
                "date_window_days": config.date_window_days,
                "enable_logfire": config.enable_logfire,
            },
            "store": {
                "path": str(config.store_path),
                "topics": len(state.topics),
                "recipient": state.recipient or None,
                "history_records": len(state.history),
                "last_run": state.history[0].timestamp if state.history else None,
            },
        }
        print(json.dumps(status, indent=2))
        return 0
    finally:
        store.close()


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all commands."""
    parser = argparse.ArgumentParser(
        description="digestctl: research digest pipeline control",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run command
    run_parser = subparsers.add_parser("run", help="Run the digest pipeline once")
    run_parser.add_argument(
        "--date-from",
        type=_parse_date,
        help="Start of the preferred window, YYYY-MM-DD (default: DATE_WINDOW_DAYS ago)",
    )
    run_parser.add_argument(
        "--date-to",
        type=_parse_date,
        help="End of the preferred window, YYYY-MM-DD (default: today)",
    )
    run_parser.add_argument(
        "--topic",
        action="append",
        help="Topic to research instead of the stored topics (repeatable)",
    )

    # topics command
    topics_parser = subparsers.add_parser("topics", help="Manage research topics")
    topics_sub = topics_parser.add_subparsers(dest="topics_command")
    topics_sub.add_parser("list", help="List topics")
    add_parser = topics_sub.add_parser("add", help="Add a topic")
    add_parser.add_argument("topic")
    rename_parser = topics_sub.add_parser("rename", help="Rename a topic in place")
    rename_parser.add_argument("old")
    rename_parser.add_argument("new")
    remove_parser = topics_sub.add_parser("remove", help="Remove a topic")
    remove_parser.add_argument("topic")
    import_parser = topics_sub.add_parser("import", help="Add comma-separated topics")
    import_parser.add_argument("text")

    # email command
    email_parser = subparsers.add_parser("email", help="Show or set the recipient address")
    email_parser.add_argument(
        "address",
        nargs="?",
        help="New recipient address (empty string clears it)",
    )

    # history command
    history_parser = subparsers.add_parser("history", help="Show past digest runs")
    history_parser.add_argument(
        "--filter",
        help="Only show runs whose topics or summary contain this text",
    )
    history_parser.add_argument(
        "--clear",
        action="store_true",
        help="Delete all history records",
    )

    # schedule command
    schedule_parser = subparsers.add_parser("schedule", help="Observe or control the schedule")
    schedule_parser.add_argument(
        "schedule_command",
        nargs="?",
        choices=["status", "pause", "resume", "toggle", "trigger", "logs"],
        default="status",
    )

    # status command
    subparsers.add_parser("status", help="Show configuration and stored state")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    # Load configuration
    try:
        config = Config.load()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    # Setup logging and optional tracing
    setup_logging(config, verbose=args.verbose)
    setup_tracing(config.enable_logfire, "digestctl", config.logfire_token)

    # Validate configuration for the services the command needs
    require = {
        "run": (REQUIRE_AGENT,),
        "schedule": (REQUIRE_SCHEDULER,),
    }.get(args.command, ())
    error = config.validate(require=require)
    if error:
        print(f"Configuration error: {error}", file=sys.stderr)
        return 1

    # Route to command handler
    commands = {
        "run": cmd_run,
        "topics": cmd_topics,
        "email": cmd_email,
        "history": cmd_history,
        "schedule": cmd_schedule,
        "status": cmd_status,
    }

    if args.command in commands:
        try:
            return commands[args.command](args, config)
        except KeyboardInterrupt:
            logger.info("Stopped by user (Ctrl+C)")
            return 130  # Standard exit code for SIGINT
        except Exception as e:
            logger.error("Command failed | cmd=%s error=%s", args.command, e, exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
