# src/auditor/app.py
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from auditor.errors import AuditorError
from auditor.managers.audit_run_manager import AuditRunManager
from auditor.managers.config_manager import config_manager
from auditor.managers.progress_manager import ProgressManager
from auditor.model import AuditResult, Failed
from auditor.services.report_service import ReportService
from auditor.utils.configure_logging import configure_logger

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="a11y-audit",
        description="Audit a web page for WCAG accessibility and BFSI compliance issues."
    )
    parser.add_argument("url", nargs="?", default="", help="URL to audit")
    parser.add_argument("--file", type=Path, help="Audit a local HTML file instead of fetching the URL")
    parser.add_argument("--filter", choices=["all", "high", "bfsi"], default="all", help="Violations to list")
    parser.add_argument("--json", action="store_true", help="Print the full report as JSON")
    parser.add_argument("--workers", type=int, help="Rule evaluation threads (overrides engine.workers)")
    parser.add_argument(
        "--set",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a setting for this run, e.g. --set acquisition.time_out=10"
    )
    parser.add_argument("--no-progress", action="store_true", help="Hide the progress bar")
    return parser


def _print_report(result: AuditResult, mode: str) -> None:
    summary = ReportService().summary(result)
    print("\n" + "=" * 60)
    print(f"  {result.url}")
    print(f"  Compliance score: {result.compliance_score}% ({summary['status']})")
    print(f"  Elements: {result.total_elements}  WCAG violations: {result.generic_violation_count}  "
          f"BFSI flags: {result.domain_flag_count}")
    print("=" * 60)

    for v in result.filter_violations(mode):
        tag = " [BFSI]" if v.is_domain_specific else ""
        print(f"[{v.severity.value:<6}] {v.criterion}{tag}")
        print(f"         {v.issue}")
        print(f"         at {v.element_selector}")
        print(f"         fix: {v.fix}")


async def _run(args: argparse.Namespace, file: Optional[bytes]) -> int:
    manager = AuditRunManager(workers=args.workers)
    handle = manager.start_audit(args.url, file)
    progress = ProgressManager(desc="Audit", disable=args.no_progress, file=sys.stderr)
    follower = asyncio.ensure_future(progress.follow(manager.subscribe(handle)))

    try:
        outcome = await manager.wait(handle)
    except asyncio.CancelledError:
        manager.cancel(handle)
        await manager.wait(handle)
        raise
    finally:
        await follower

    if isinstance(outcome, AuditResult):
        if args.json:
            print(json.dumps(outcome.to_report(), indent=2))
        else:
            _print_report(outcome, args.filter)
        return EXIT_OK

    if isinstance(outcome, Failed):
        print(f"Audit {outcome.stage.value.lower() if outcome.stage else 'failed'}: [{outcome.code}] {outcome.reason}",
              file=sys.stderr)
        return EXIT_CANCELLED if outcome.code == "CANCELLED" else EXIT_FAILED
    return EXIT_FAILED


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    for override in args.set:
        key, sep, value = override.partition("=")
        if not sep:
            parser.error(f"--set expects KEY=VALUE, got {override!r}")
        config_manager.set_nested(key.strip(), value.strip())

    configure_logger(
        config_manager.get_nested("debug.level", "INFO"),
        silenced_loggers={"asyncio": "WARNING", "aiohttp": "WARNING"}
    )

    file = None
    if args.file is not None:
        try:
            file = args.file.read_bytes()
        except OSError as e:
            parser.error(f"Cannot read {args.file}: {e}")
        if not args.url:
            args.url = args.file.name

    try:
        return asyncio.run(_run(args, file))
    except AuditorError as e:
        logger.error(e.message)
        return EXIT_USAGE
    except KeyboardInterrupt:
        print("\nAudit cancelled.", file=sys.stderr)
        return EXIT_CANCELLED


if __name__ == "__main__":
    sys.exit(main())
