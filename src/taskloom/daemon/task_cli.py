"""Terminal commands for managing scheduled tasks."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from src.taskloom.core.scheduler_service import SchedulerService, get_scheduler_service

_DAY_NAMES = {"sun": 0, "mon": 1, "tue": 2, "wed": 3, "thu": 4, "fri": 5, "sat": 6}


def _parse_hh_mm(raw: str) -> tuple[int, int]:
    try:
        hour_str, minute_str = raw.strip().split(":", 1)
        return int(hour_str), int(minute_str)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected HH:MM, got `{raw}`.") from exc


def _parse_day(raw: str) -> int:
    token = raw.strip().lower()
    if token[:3] in _DAY_NAMES:
        return _DAY_NAMES[token[:3]]
    try:
        return int(token)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Unknown day `{raw}`.") from exc


def schedule_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Translate CLI flags into the schedule wire shape."""
    if args.every is not None:
        return {"type": "Interval", "minutes": args.every}
    if args.hourly_at is not None:
        return {"type": "Hourly", "at_minute": args.hourly_at}
    if args.weekly_on is not None:
        hour, minute = _parse_hh_mm(args.at or "09:00")
        return {"type": "Weekly", "day": _parse_day(args.weekly_on), "at_hour": hour, "at_minute": minute}
    if args.daily_at is not None:
        hour, minute = _parse_hh_mm(args.daily_at)
        return {"type": "Daily", "at_hour": hour, "at_minute": minute}
    raise argparse.ArgumentTypeError("One of --every, --hourly-at, --daily-at or --weekly-on is required.")


def _emit(payload: dict[str, Any]) -> int:
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0 if payload.get("success") else 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage Taskloom scheduled tasks.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List tasks in creation order.")
    sub.add_parser("agents", help="List available agents.")

    create = sub.add_parser("create", help="Create a scheduled task.")
    create.add_argument("name")
    create.add_argument("--agent", required=True, dest="agent_id")
    create.add_argument("--prompt", required=True, help="Prompt template; supports {date}, {time}, {datetime}.")
    create.add_argument("--every", type=int, help="Interval in minutes.")
    create.add_argument("--hourly-at", type=int, help="Minute past each hour.")
    create.add_argument("--daily-at", help="Daily time as HH:MM.")
    create.add_argument("--weekly-on", help="Weekday name or 0-6 (0 = Sunday).")
    create.add_argument("--at", help="Time as HH:MM for --weekly-on.")

    delete = sub.add_parser("delete", help="Delete a task.")
    delete.add_argument("task_id")

    enable = sub.add_parser("enable", help="Enable a task.")
    enable.add_argument("task_id")

    disable = sub.add_parser("disable", help="Disable a task.")
    disable.add_argument("task_id")

    results = sub.add_parser("results", help="Show recent execution results, newest first.")
    results.add_argument("--limit", type=int, default=10)

    run = sub.add_parser("run", help="Execute a task once now and wait for it.")
    run.add_argument("task_id")
    run.add_argument("--wait-sec", type=float, default=600.0)
    return parser


def main(argv: list[str] | None = None, *, service: SchedulerService | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    scheduler = service or get_scheduler_service()

    if args.command == "list":
        return _emit(scheduler.list_tasks())
    if args.command == "agents":
        return _emit(scheduler.list_agents())
    if args.command == "create":
        try:
            schedule = schedule_from_args(args)
        except argparse.ArgumentTypeError as exc:
            print(str(exc), file=sys.stderr)
            return 2
        return _emit(
            scheduler.create_task(
                name=args.name,
                agent_id=args.agent_id,
                prompt_template=args.prompt,
                schedule_type=schedule,
            )
        )
    if args.command == "delete":
        return _emit(scheduler.delete_task(task_id=args.task_id))
    if args.command in {"enable", "disable"}:
        return _emit(scheduler.toggle_task(task_id=args.task_id, enabled=args.command == "enable"))
    if args.command == "results":
        return _emit(scheduler.get_task_results(limit=args.limit))
    if args.command == "run":
        out = scheduler.run_task_now(task_id=args.task_id)
        if not out.get("success"):
            return _emit(out)
        if not scheduler.wait_idle(timeout_sec=args.wait_sec):
            print("Execution still running; check `results` later.", file=sys.stderr)
            return 1
        latest = [item for item in scheduler.get_task_results(limit=50)["data"] if item["task_id"] == args.task_id]
        if not latest:
            return _emit({"success": False, "data": None, "error": "No result recorded for this task."})
        return _emit({"success": True, "data": latest[0], "error": None})
    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
