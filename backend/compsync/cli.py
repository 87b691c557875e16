"""
CompSync CLI - thin entrypoint for operator commands.

Commands:
- serve:   run the HTTP backend
- check:   run startup checks and print the report
- recover: run crash recovery (``--yes`` re-encodes orphaned recordings)
- jobs:    list the persisted job queue

Exit Codes:
===========
- 0: Success
- 1: Checks reported warnings
- 2: Execution error (jobs failed during recovery)
- 4: System error (unreadable files, permissions, etc.)
"""

import argparse
import json
import sys
from pathlib import Path
from typing import NoReturn, Optional

from . import __version__
from .jobs.models import JobStatus
from .jobs.queue import QUEUE_FILE, JobQueue
from .logging_setup import configure_logging
from .settings.provider import JsonSettingsProvider, get_app_home


def _home(args: argparse.Namespace) -> Path:
    return Path(args.home).expanduser() if args.home else get_app_home()


def cmd_serve(args: argparse.Namespace) -> NoReturn:
    import uvicorn

    from .main import create_app

    home = _home(args)
    configure_logging(home / "logs", debug=args.debug)
    app = create_app(home=home)
    uvicorn.run(app, host=args.host, port=args.port, log_level="debug" if args.debug else "info")
    sys.exit(0)


def cmd_check(args: argparse.Namespace) -> NoReturn:
    from .services.startup import run_startup_checks

    home = _home(args)
    configure_logging(home / "logs", debug=args.debug)
    settings = JsonSettingsProvider(home / "settings.json").get_settings()
    queue = JobQueue(home / QUEUE_FILE)
    queue.load(reset_running=False)

    report = run_startup_checks(settings, queue)
    print(json.dumps(report.model_dump(mode="json"), indent=2))
    for warning in report.warnings:
        print(f"WARNING: {warning}", file=sys.stderr)
    sys.exit(1 if report.warnings else 0)


def cmd_recover(args: argparse.Namespace) -> NoReturn:
    from .main import build_pipeline
    from .recovery.crash import run_crash_recovery

    home = _home(args)
    configure_logging(home / "logs", debug=args.debug)
    try:
        pipeline = build_pipeline(home=home, background=False)
    except OSError as e:
        print(f"FATAL: Could not initialise pipeline: {e}", file=sys.stderr)
        sys.exit(4)

    def confirm(orphans) -> bool:
        for orphan in orphans:
            print(f"  {orphan.file_name} ({orphan.size // (1024 * 1024)}MB)")
        return args.yes

    try:
        report = run_crash_recovery(pipeline.supervisor, pipeline.pid_file, confirm=confirm)
        processed = pipeline.supervisor.run_pending()
    finally:
        pipeline.shutdown()

    print(f"Stale encoder killed: {'yes' if report.stale_encoder_killed else 'no'}")
    print(f"Jobs resumed: {report.resumed_jobs}")
    print(f"Temp videos removed: {report.temp_files_removed}")
    print(f"Orphaned recordings: {len(report.orphans)} (queued: {report.orphans_recovered})")
    print(f"Jobs processed: {processed}")

    failed = pipeline.context.job_queue.get_failed()
    if failed:
        print(f"{len(failed)} jobs failed", file=sys.stderr)
        sys.exit(2)
    sys.exit(0)


def cmd_jobs(args: argparse.Namespace) -> NoReturn:
    home = _home(args)
    queue = JobQueue(home / QUEUE_FILE)
    queue.load(reset_running=False)

    status: Optional[JobStatus] = JobStatus(args.status) if args.status else None
    jobs = [j for j in queue.get_all() if status is None or j.status == status]
    if args.json:
        print(json.dumps([j.model_dump(mode="json") for j in jobs], indent=2))
        sys.exit(0)

    if not jobs:
        print("No jobs")
        sys.exit(0)
    for job in jobs:
        line = (
            f"{job.id}  {job.status.value:<8} {job.routine_id:<20} "
            f"attempts {job.attempts}/{job.max_attempts}"
        )
        if job.error:
            line += f"  error: {job.error}"
        print(line)
    sys.exit(0)


def main(argv=None) -> NoReturn:
    """
    Main CLI entrypoint.

    Parses arguments and dispatches to subcommands.
    """
    parser = argparse.ArgumentParser(
        prog="compsync",
        description="CompSync capture backend - recording & encoding pipeline",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--home", default=None, help="Application data directory (default: ~/.compsync)")
    parser.add_argument("--debug", action="store_true", help="Verbose console logging")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to execute")

    parser_serve = subparsers.add_parser("serve", help="Run the HTTP backend")
    parser_serve.add_argument("--host", default="127.0.0.1")
    parser_serve.add_argument("--port", type=int, default=8085)
    parser_serve.set_defaults(func=cmd_serve)

    parser_check = subparsers.add_parser("check", help="Run startup checks")
    parser_check.set_defaults(func=cmd_check)

    parser_recover = subparsers.add_parser("recover", help="Run crash recovery and drain the queue")
    parser_recover.add_argument(
        "--yes",
        action="store_true",
        help="Re-encode orphaned recordings without asking",
    )
    parser_recover.set_defaults(func=cmd_recover)

    parser_jobs = subparsers.add_parser("jobs", help="List the job queue")
    parser_jobs.add_argument("--status", choices=[s.value for s in JobStatus], default=None)
    parser_jobs.add_argument("--json", action="store_true", help="Print jobs as JSON")
    parser_jobs.set_defaults(func=cmd_jobs)

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
