"""
webstack · Cron-Verwaltung -- Entry Point.

Usage: webstack cron add "0 2 * * *" "webstack backup create --all" -d "Nightly backup"
       webstack cron list [--webstack-only]
       webstack cron edit 1 --schedule "30 3 * * *"
       webstack cron delete 1 [--force]
       webstack cron run 1
       webstack cron enable|disable 1
       webstack cron status
       webstack cron logs [-n 50] [-f PATTERN]
       python -m webstack ...
"""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Callable, Sequence
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from webstack import __version__
from webstack.core.errors import ConfigError, WebstackError
from webstack.cron.service import CronService
from webstack.cron.status import DEFAULT_LOG_LINES
from webstack.utils.logging import bind_context, clear_context, get_logger

log = get_logger("webstack")

# Farben
COLOR_OK = "bold green"
COLOR_ERROR = "bold red"
COLOR_WARN = "bold yellow"

MAX_COMMAND_DISPLAY = 55


def build_parser() -> argparse.ArgumentParser:
    """Kommandozeilen-Parser mit der `cron`-Befehlsgruppe."""
    parser = argparse.ArgumentParser(
        prog="webstack",
        description="WebStack · Server management -- scheduled job administration",
    )
    parser.add_argument("--version", action="version", version=f"webstack v{__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Pfad zur config.yaml (Default: /etc/webstack/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log-Level überschreiben",
    )

    groups = parser.add_subparsers(dest="group", required=True)
    cron = groups.add_parser("cron", help="Manage scheduled cron jobs")
    sub = cron.add_subparsers(dest="action", required=True)

    p = sub.add_parser("add", help="Add a new cron job")
    p.add_argument("schedule", help='Crontab schedule, e.g. "0 2 * * *"')
    p.add_argument("command", help="Command to execute")
    p.add_argument("-d", "--description", default="", help="Description for the cron job")

    p = sub.add_parser("list", help="List all cron jobs")
    p.add_argument(
        "-w", "--webstack-only", action="store_true", help="Show only WebStack cron jobs",
    )

    p = sub.add_parser("edit", help="Edit a cron job")
    p.add_argument("job_id", type=int)
    p.add_argument("-s", "--schedule", default="", help="New crontab schedule")
    p.add_argument("-c", "--command", default="", help="New command to execute")
    p.add_argument("-d", "--description", default=None, help="New description")

    p = sub.add_parser("delete", help="Delete a cron job")
    p.add_argument("job_id", type=int)
    p.add_argument("-f", "--force", action="store_true", help="Skip confirmation prompt")

    for name, text in (
        ("run", "Run a cron job immediately"),
        ("enable", "Enable a disabled cron job"),
        ("disable", "Disable a cron job"),
    ):
        p = sub.add_parser(name, help=text)
        p.add_argument("job_id", type=int)

    sub.add_parser("status", help="Show cron system status")

    p = sub.add_parser("logs", help="Show recent cron job logs")
    p.add_argument("-n", "--lines", type=int, default=DEFAULT_LOG_LINES, help="Number of log lines")
    p.add_argument("-f", "--filter", default="", help="Filter logs by pattern")

    return parser


# ============================================================================
# Befehle
# ============================================================================


def _job_type(service: CronService, command: str) -> str:
    return "webstack" if service.app_name in command else "custom"


def cmd_add(service: CronService, args: argparse.Namespace, console: Console) -> int:
    job = service.create_job(args.schedule, args.command, args.description)
    console.print(f"[{COLOR_OK}]Cron job added successfully[/]")
    console.print(f"   ID: {job.id}")
    console.print(f"   Schedule: {job.schedule}")
    console.print(f"   Command: {job.command}", markup=False)
    if job.description:
        console.print(f"   Description: {job.description}", markup=False)
    return 0


def cmd_list(service: CronService, args: argparse.Namespace, console: Console) -> int:
    jobs = service.list_jobs(app_only=args.webstack_only)
    if not jobs:
        console.print("No cron jobs found")
        return 0

    table = Table(title="Scheduled Cron Jobs")
    table.add_column("ID", justify="right")
    table.add_column("Schedule")
    table.add_column("Type")
    table.add_column("Source")
    table.add_column("Command", overflow="ellipsis", max_width=MAX_COMMAND_DISPLAY)
    table.add_column("Status", justify="center")
    for job in jobs:
        table.add_row(
            str(job.id),
            job.schedule,
            _job_type(service, job.command),
            job.source,
            job.command,
            "✓" if job.enabled else "⊘",
        )
    console.print(table)

    app_count = sum(1 for job in jobs if service.app_name in job.command)
    console.print(f"Total: {len(jobs)} cron jobs")
    console.print(f"  - WebStack: {app_count}")
    console.print(f"  - Custom: {len(jobs) - app_count}")
    return 0


def cmd_edit(service: CronService, args: argparse.Namespace, console: Console) -> int:
    if not args.schedule and not args.command and args.description is None:
        console.print("Use --schedule, --command, or --description to update")
        return 0
    job = service.update_job(
        args.job_id,
        schedule=args.schedule or None,
        command=args.command or None,
        description=args.description,
    )
    console.print(f"[{COLOR_OK}]Cron job {job.id} updated[/]")
    console.print(f"   New schedule: {job.schedule}")
    console.print(f"   New command: {job.command}", markup=False)
    return 0


def cmd_delete(service: CronService, args: argparse.Namespace, console: Console) -> int:
    job = service.get_job(args.job_id)
    if not args.force:
        console.print(f"[{COLOR_WARN}]This will delete cron job: {job.id}[/]")
        console.print(f"   Schedule: {job.schedule}")
        console.print(f"   Command: {job.command}", markup=False)
        answer = console.input("Type 'yes' to confirm: ")
        if answer.strip() != "yes":
            console.print("Delete cancelled")
            return 0
    service.delete_job(job.id)
    console.print(f"[{COLOR_OK}]Cron job {job.id} deleted[/]")
    return 0


def cmd_run(service: CronService, args: argparse.Namespace, console: Console) -> int:
    job = service.get_job(args.job_id)
    console.print(f"Running cron job {job.id}...")
    console.print(f"   Schedule: {job.schedule}")
    console.print(f"   Command: {job.command}\n", markup=False)
    result = service.run_job(job.id)
    if result.output:
        console.print(result.output.rstrip("\n"), markup=False, highlight=False)
    if result.timed_out:
        console.print(f"[{COLOR_ERROR}]Cron job {job.id} timed out[/]")
        return 1
    color = COLOR_OK if result.success else COLOR_ERROR
    console.print(f"\n[{color}]Cron job {job.id} completed[/]")
    console.print(f"   Exit code: {result.exit_code}")
    return 0 if result.success else 1


def cmd_enable(service: CronService, args: argparse.Namespace, console: Console) -> int:
    service.enable_job(args.job_id)
    console.print(f"[{COLOR_OK}]Cron job {args.job_id} enabled[/]")
    return 0


def cmd_disable(service: CronService, args: argparse.Namespace, console: Console) -> int:
    service.disable_job(args.job_id)
    console.print(f"[{COLOR_OK}]Cron job {args.job_id} disabled[/]")
    return 0


def cmd_status(service: CronService, args: argparse.Namespace, console: Console) -> int:
    status = service.get_status()
    table = Table(title="Cron Scheduler Status", show_header=False)
    table.add_column("Key")
    table.add_column("Value")
    table.add_row("Total Jobs", str(status.total_jobs))
    table.add_row("WebStack Jobs", str(status.app_jobs))
    table.add_row("Custom Jobs", str(status.custom_jobs))
    table.add_row("Enabled", str(status.enabled_jobs))
    table.add_row("Disabled", str(status.disabled_jobs))
    table.add_row("System Status", "✓ Running" if status.daemon_running else "⊘ Not running")
    if status.last_job_time is not None:
        table.add_row("Last Job Run", status.last_job_time.strftime("%Y-%m-%d %H:%M:%S"))
    console.print(table)
    return 0


def cmd_logs(service: CronService, args: argparse.Namespace, console: Console) -> int:
    lines = service.get_logs(lines=args.lines, pattern=args.filter)
    if not lines:
        console.print("No cron logs found")
        return 0
    console.print(f"Recent Cron Logs (last {args.lines} lines):")
    for line in lines:
        console.print(line, markup=False, highlight=False)
    return 0


COMMANDS: dict[str, Callable[[CronService, argparse.Namespace, Console], int]] = {
    "add": cmd_add,
    "list": cmd_list,
    "edit": cmd_edit,
    "delete": cmd_delete,
    "run": cmd_run,
    "enable": cmd_enable,
    "disable": cmd_disable,
    "status": cmd_status,
    "logs": cmd_logs,
}


# ============================================================================
# Main
# ============================================================================


def main(argv: Sequence[str] | None = None, console: Console | None = None) -> int:
    """Haupteintrittspunkt für `webstack`."""
    args = build_parser().parse_args(argv)
    console = console or Console()

    from dotenv import load_dotenv

    from webstack.config import DEFAULT_CONFIG_PATH, ensure_directory_structure, load_config
    from webstack.utils.logging import setup_logging

    # WEBSTACK_*-Overrides aus der .env neben der config.yaml
    config_path = args.config or DEFAULT_CONFIG_PATH
    load_dotenv(config_path.parent / ".env", override=False)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        console.print(f"[{COLOR_ERROR}]configuration error:[/] {escape(str(exc))}", highlight=False)
        return 1

    setup_logging(
        level=args.log_level or config.logging.level,
        log_dir=config.logging.log_dir,
        json_logs=config.logging.json_logs,
        console=config.logging.console,
    )

    if config.cron.require_root and os.geteuid() != 0:
        console.print("This command requires root privileges (use sudo)")
        return 1

    bind_context(operation=args.action)
    if getattr(args, "job_id", None) is not None:
        bind_context(job_id=args.job_id)
    try:
        for path in ensure_directory_structure(config):
            log.info("created_path", path=path)
        service = CronService.from_config(config)
        return COMMANDS[args.action](service, args, console)
    except WebstackError as exc:
        log.debug("command_failed", error_code=exc.error_code)
        console.print(f"[{COLOR_ERROR}]cron {args.action} failed:[/] {escape(str(exc))}", highlight=False)
        return 1
    finally:
        clear_context()


if __name__ == "__main__":
    sys.exit(main())
