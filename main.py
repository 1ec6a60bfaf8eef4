#!/usr/bin/env python3
"""
Date-Swap Reconciler — Command Line
===================================

Finds and repairs stored dates whose day and month were transposed, using
each record's creation timestamp as the source of truth.

Usage:
    python main.py analyze                  # Read-only: counts + sample swaps
    python main.py fix --limit 5000         # Apply corrections
    python main.py verify                   # Exit 1 if any swap remains
    python main.py count --date 2026-02-05  # Records stored on one date
    python main.py analyze --json           # Machine-readable output

Configuration comes from the environment (or a .env file):
    SWAP_STORE_URL / SWAP_STORE_KEY  (Supabase VITE_* names also accepted)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from typing import List, Optional

from dotenv import load_dotenv

from swap_reconciler.config import load_settings
from swap_reconciler.driver import ReconciliationDriver
from swap_reconciler.exceptions import ConfigurationError, SourceUnavailable
from swap_reconciler.models import AnalyzeReport, FixReport, VerifyReport
from swap_reconciler.postgrest import PostgrestRecordSource

EXIT_OK = 0
EXIT_INCOMPLETE = 1  # Fix had write failures, or verify found remaining swaps
EXIT_ABORTED = 2  # Phase could not run at all


# ─── ANSI Color Constants ───────────────────────────────────────────

_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"
_BOLD = "\033[1m"
_RESET = "\033[0m"
_WIDTH = 72


# ─── Pretty Printers ────────────────────────────────────────────────


def _header(title: str, scanned: int) -> None:
    print(f"\n{'=' * _WIDTH}")
    print(f"{_BOLD}{_CYAN}  {title}{_RESET}")
    print(f"{'=' * _WIDTH}")
    print(f"  Records scanned: {scanned}")
    print(f"{'─' * _WIDTH}")


def print_analyze(report: AnalyzeReport) -> int:
    """Print counts and the sample table. Analysis always exits 0."""
    _header("DATE SWAP ANALYSIS", report.records_scanned)
    print(f"  Matched dates (correct):   {report.match_count}")
    print(f"  Potential swaps detected:  {_BOLD}{report.swap_count}{_RESET}")
    print(f"  Unrelated mismatches:      {report.unrelated_count}")
    print(f"  {_DIM}Missing/unparseable:       {report.incomplete_count}{_RESET}")

    if report.samples:
        print(f"\n  {_YELLOW}{_BOLD}SAMPLE SWAPS ({len(report.samples)}){_RESET}")
        print(f"  {'Code':<14} {'Stored':<12} {'Created':<12} {'Proposed':<12}")
        for s in report.samples:
            print(
                f"  {s.code:<14} {s.stored_date.isoformat():<12} "
                f"{s.trusted_date.isoformat():<12} {s.corrected_date.isoformat():<12}"
            )
            print(f"    {_DIM}{s.reason}{_RESET}")
    print(f"{'=' * _WIDTH}\n")
    return EXIT_OK


def print_fix(report: FixReport) -> int:
    """Print every applied correction and failure.

    Returns:
        0 if every write succeeded, 1 otherwise.
    """
    _header("DATE SWAP FIX", report.records_scanned)
    for item in report.fixed_records:
        print(
            f"  {_GREEN}[FIX]{_RESET} {item.code}: "
            f"{item.old_date.isoformat()} {_DIM}→{_RESET} {item.new_date.isoformat()}"
        )
    for failure in report.failures:
        print(f"  {_RED}[FAIL]{_RESET} {failure.code} (id={failure.id}): {failure.error}")

    print(f"{'─' * _WIDTH}")
    print(f"  Fixed:   {report.fix_count}")
    print(f"  Failed:  {report.fail_count}")
    print(f"  Skipped: {report.skipped_count} {_DIM}(changed since read){_RESET}")
    print(f"{'=' * _WIDTH}\n")
    return EXIT_OK if report.fail_count == 0 else EXIT_INCOMPLETE


def print_verify(report: VerifyReport) -> int:
    """Print remaining swaps.

    Returns:
        0 if none remain, 1 otherwise.
    """
    _header("DATE SWAP VERIFICATION", report.records_scanned)
    for item in report.remaining:
        print(
            f"  {_RED}[STILL WRONG]{_RESET} {item.code}: {item.stored_date.isoformat()} "
            f"(Created Month/Day: {item.trusted_month_day})"
        )
    print(f"{'=' * _WIDTH}")
    if report.clean:
        print(f"  {_GREEN}{_BOLD}CLEANUP VERIFIED: no swapped dates found{_RESET}")
    else:
        print(
            f"  {_RED}{_BOLD}CLEANUP INCOMPLETE  --  "
            f"{report.remaining_swap_count} record(s) still swapped{_RESET}"
        )
    print(f"{'=' * _WIDTH}\n")
    return EXIT_OK if report.clean else EXIT_INCOMPLETE


# ─── Argument Parsing ───────────────────────────────────────────────


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got '{value}'")
    if parsed < 1:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return parsed


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got '{value}'")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="swap-reconciler",
        description="Detect and repair day/month swapped dates.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log each record action")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    sub = parser.add_subparsers(dest="phase", required=True)

    for phase, help_text in (
        ("analyze", "Count matches and swaps (read-only)"),
        ("fix", "Correct every detected swap"),
        ("verify", "Check that no swaps remain (read-only)"),
    ):
        phase_parser = sub.add_parser(phase, help=help_text)
        phase_parser.add_argument(
            "--limit",
            type=_positive_int,
            default=None,
            help="Most recent N records to scan (default: SWAP_BATCH_LIMIT or 2000)",
        )

    count_parser = sub.add_parser("count", help="Count records stored on one date")
    count_parser.add_argument("--date", type=_iso_date, required=True, help="YYYY-MM-DD")
    return parser.parse_args(argv)


# ─── Phase Dispatch ─────────────────────────────────────────────────


def run(args: argparse.Namespace, driver: ReconciliationDriver, default_limit: int) -> int:
    """Run the requested phase and print its report. Returns the exit code."""
    if args.phase == "count":
        total = driver.count_on_date(args.date)
        if args.json:
            print(json.dumps({"date": args.date.isoformat(), "count": total}))
        else:
            print(f"  {args.date.isoformat()}: {total} record(s)")
        return EXIT_OK

    limit = args.limit or default_limit
    phases = {
        "analyze": (driver.analyze, print_analyze),
        "fix": (driver.fix, print_fix),
        "verify": (driver.verify, print_verify),
    }
    execute, printer = phases[args.phase]
    report = execute(limit)

    if not args.json:
        return printer(report)

    print(json.dumps({"phase": args.phase, **report.model_dump(mode="json")}, indent=2))
    if isinstance(report, FixReport):
        return EXIT_OK if report.fail_count == 0 else EXIT_INCOMPLETE
    if isinstance(report, VerifyReport):
        return EXIT_OK if report.clean else EXIT_INCOMPLETE
    return EXIT_OK


# ─── Main ────────────────────────────────────────────────────────────


def main(argv: Optional[List[str]] = None) -> None:
    """Parse arguments, connect to the store, run one phase, exit."""
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings()
        with PostgrestRecordSource.from_settings(settings) as source:
            driver = ReconciliationDriver(
                source, sample_size=settings.sample_size, tz=settings.zone()
            )
            exit_code = run(args, driver, settings.batch_limit)
    except (ConfigurationError, SourceUnavailable) as exc:
        print(f"{_RED}{_BOLD}[{exc.code}]{_RESET} {exc}", file=sys.stderr)
        for key, value in exc.details.items():
            print(f"  {_DIM}{key}: {value}{_RESET}", file=sys.stderr)
        sys.exit(EXIT_ABORTED)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
