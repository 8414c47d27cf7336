#!/usr/bin/env python3
"""Command-line interface for the tuition ledger.

Operates on ledger snapshot JSON files (the same shape the remote store
exchanges: users, representatives, payments and fees).

Usage:
    tuition-ledger merge ledger.json feed.json --write
    tuition-ledger balance ledger.json V-12345678
    tuition-ledger accrue ledger.json --month 2025-03 --write
    tuition-ledger daily-report ledger.json --day 2025-03-14 --format text
    tuition-ledger pull ledger.json --write
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from typing import Any, Optional

from .accounting import LedgerSnapshot
from .config import LedgerSettings
from .exceptions import LedgerError
from .reconciliation import ReportGenerator, daily_closing_text
from .services import LedgerService
from .sync import SyncManager
from .transport import get_remote_store

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def load_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_service(path: str, settings: LedgerSettings) -> LedgerService:
    """Build a LedgerService from a snapshot file."""
    snapshot = LedgerSnapshot.model_validate(load_json(path))
    return LedgerService(snapshot=snapshot, settings=settings)


def save_service(service: LedgerService, path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(service.snapshot().to_wire(), f, indent=2, ensure_ascii=False)
    logger.info(f"Snapshot written to {path}")


def emit(output: str, output_file: Optional[str] = None) -> None:
    if output_file:
        with open(output_file, "w", encoding="utf-8") as f:
            f.write(output)
        logger.info(f"Report written to {output_file}")
    else:
        print(output)


def cmd_merge(args: argparse.Namespace, settings: LedgerSettings) -> int:
    service = load_service(args.snapshot, settings)
    feed = load_json(args.feed)
    if isinstance(feed, dict):
        feed = feed.get("payments", feed.get("data", []))
    if not isinstance(feed, list):
        logger.error("External feed must be a JSON list of records")
        return 1

    result = service.apply_external(feed)
    generator = ReportGenerator(result)
    if args.format == "csv":
        output = generator.to_csv()
    elif args.format == "text":
        output = generator.to_detailed_text()
    else:
        output = generator.to_json(include_details=not args.summary_only)
    emit(output, args.output)

    if args.write:
        save_service(service, args.snapshot)
    return 0


def cmd_balance(args: argparse.Namespace, settings: LedgerSettings) -> int:
    service = load_service(args.snapshot, settings)
    rep = service.find_representative(args.cedula)
    summary = service.compute_balance(args.cedula)
    emit(json.dumps({
        "cedula": rep.cedula,
        "name": rep.full_name,
        "verified_total": float(summary.verified_total),
        "in_transit_total": float(summary.in_transit_total),
        "outstanding": float(summary.outstanding),
    }, indent=2, ensure_ascii=False))
    return 0


def cmd_accrue(args: argparse.Namespace, settings: LedgerSettings) -> int:
    service = load_service(args.snapshot, settings)
    charges = service.run_monthly_accrual(args.month)
    emit(json.dumps({cedula: float(amount) for cedula, amount in charges.items()}, indent=2))
    if args.write:
        save_service(service, args.snapshot)
    return 0


def cmd_daily_report(args: argparse.Namespace, settings: LedgerSettings) -> int:
    service = load_service(args.snapshot, settings)
    day = date.fromisoformat(args.day) if args.day else None
    closing = service.daily_closing(day)
    if args.format == "text":
        output = daily_closing_text(closing)
    else:
        output = closing.model_dump_json(indent=2, by_alias=True)
    emit(output, args.output)
    return 0


async def pull_async(service: LedgerService, settings: LedgerSettings) -> int:
    store = get_remote_store(settings.remote_url, timeout=settings.request_timeout)
    if store is None:
        logger.error("LEDGER_REMOTE_URL is not configured")
        return 1
    try:
        result = await SyncManager(service, store).pull_external()
    finally:
        await store.close()
    if result is None:
        return 1
    print(ReportGenerator(result).to_summary_text())
    return 0


def cmd_pull(args: argparse.Namespace, settings: LedgerSettings) -> int:
    service = load_service(args.snapshot, settings)
    code = asyncio.run(pull_async(service, settings))
    if code == 0 and args.write:
        save_service(service, args.snapshot)
    return code


COMMANDS = {
    "merge": cmd_merge,
    "balance": cmd_balance,
    "accrue": cmd_accrue,
    "daily-report": cmd_daily_report,
    "pull": cmd_pull,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="tuition-ledger",
        description="Tuition payment ledger and reconciliation tools.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    merge_parser = subparsers.add_parser("merge", help="Merge an external payments feed")
    merge_parser.add_argument("snapshot", help="Ledger snapshot JSON file")
    merge_parser.add_argument("feed", help="JSON list of raw external payment records")
    merge_parser.add_argument("--write", action="store_true", help="Save the merged ledger back")
    merge_parser.add_argument("--output", "-o", help="Output file path (default: stdout)")
    merge_parser.add_argument(
        "--format", "-f",
        choices=["json", "csv", "text"],
        default="json",
        help="Report format (default: json)",
    )
    merge_parser.add_argument(
        "--summary-only",
        action="store_true",
        help="Only include counters in the JSON report",
    )

    balance_parser = subparsers.add_parser("balance", help="Show a representative's balance")
    balance_parser.add_argument("snapshot", help="Ledger snapshot JSON file")
    balance_parser.add_argument("cedula", help="Representative identification")

    accrue_parser = subparsers.add_parser("accrue", help="Run the monthly accrual")
    accrue_parser.add_argument("snapshot", help="Ledger snapshot JSON file")
    accrue_parser.add_argument("--month", "-m", help="Month to charge, YYYY-MM (default: current)")
    accrue_parser.add_argument("--write", action="store_true", help="Save the charged ledger back")

    daily_parser = subparsers.add_parser("daily-report", help="Daily cash register closing")
    daily_parser.add_argument("snapshot", help="Ledger snapshot JSON file")
    daily_parser.add_argument("--day", "-d", help="Day to close, YYYY-MM-DD (default: today)")
    daily_parser.add_argument("--output", "-o", help="Output file path (default: stdout)")
    daily_parser.add_argument(
        "--format", "-f",
        choices=["json", "text"],
        default="json",
        help="Output format (default: json)",
    )

    pull_parser = subparsers.add_parser(
        "pull", help="Fetch and merge virtual-office payments from LEDGER_REMOTE_URL"
    )
    pull_parser.add_argument("snapshot", help="Ledger snapshot JSON file")
    pull_parser.add_argument("--write", action="store_true", help="Save the merged ledger back")

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Optional list of command-line arguments (for testing).

    Returns:
        Exit code: 0 on success, 1 on usage or data errors.
    """
    parser = create_parser()
    parsed_args = parser.parse_args(args)
    configure_logging(parsed_args.verbose)

    if not parsed_args.command:
        parser.print_help()
        return 1

    settings = LedgerSettings.from_env()
    try:
        return COMMANDS[parsed_args.command](parsed_args, settings)
    except (OSError, ValueError, LedgerError) as e:
        logger.error(f"{parsed_args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
