#!/usr/bin/env python3
"""Leave jobs runner — monthly accrual, year-end carry-over, carry-over expiry.

Purpose: Run the scheduled balance jobs from cron. Every job is idempotent:
re-running the same period is a no-op, so a missed or repeated run is safe.

Usage:
    python -m scripts.run_leave_jobs accrual --year 2025 --month 3
    python -m scripts.run_leave_jobs carry-over --from-year 2024
    python -m scripts.run_leave_jobs expire                      # as of today
    python -m scripts.run_leave_jobs expire --as-of 2025-07-01
    python -m scripts.run_leave_jobs seed-holidays --year 2025

Requires in .env (project root):
    DATABASE_URL, JWT_SECRET
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path

from dotenv import load_dotenv

# ── Path setup ────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Load .env from project root before settings are read
env_path = PROJECT_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)

from leave_engine.database import async_session_factory, engine  # noqa: E402
from leave_engine.leave.entitlements import get_leave_year, month_of_leave_year  # noqa: E402
from leave_engine.leave.jobs import JobSummary, LeaveJobs  # noqa: E402
from leave_engine.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger("leave_jobs")


def _print_summary(summary: JobSummary) -> None:
    print(f"""
{'=' * 60}
  {summary.job.upper()}
  Processed : {summary.processed}
  Succeeded : {summary.succeeded}
  Failed    : {summary.failed}
  Days      : {summary.total_days}
{'=' * 60}
""")
    for key, error in summary.errors.items():
        print(f"   • {key}: {error}")


async def _run(args: argparse.Namespace) -> int:
    jobs = LeaveJobs(async_session_factory)
    today = date.today()
    try:
        if args.command == "accrual":
            year = args.year or get_leave_year(today)
            month = args.month or month_of_leave_year(today)
            summary = await jobs.run_monthly_accrual(year, month)
        elif args.command == "carry-over":
            from_year = args.from_year or get_leave_year(today) - 1
            summary = await jobs.run_carry_over(from_year, args.to_year)
        elif args.command == "expire":
            as_of = date.fromisoformat(args.as_of) if args.as_of else today
            summary = await jobs.run_carry_over_expiry(as_of)
        else:
            created = await jobs.seed_holidays(args.year or today.year)
            logger.info("Seeded %d holidays", created)
            return 0
    finally:
        await engine.dispose()

    _print_summary(summary)
    return 1 if summary.failed else 0


def main():
    parser = argparse.ArgumentParser(
        description="Leave engine scheduled jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s accrual --year 2025 --month 3      # accrue March of leave year 2025
  %(prog)s carry-over --from-year 2024        # roll 2024 into 2025
  %(prog)s expire --as-of 2025-07-01          # expire carry-over past its date
  %(prog)s seed-holidays --year 2025          # insert recurring public holidays
        """,
    )
    parser.add_argument("--log-level", type=str, default=None,
                        help="Override LOG_LEVEL (debug, info, warning)")
    sub = parser.add_subparsers(dest="command", required=True)

    accrual = sub.add_parser("accrual", help="Monthly accrual for monthly-accruing leave types")
    accrual.add_argument("--year", type=int, help="Leave year (default: current)")
    accrual.add_argument("--month", type=int, help="Month of the leave year, 1-12 (default: current)")

    carry = sub.add_parser("carry-over", help="Year-end carry-over of unused days")
    carry.add_argument("--from-year", type=int, help="Source leave year (default: previous)")
    carry.add_argument("--to-year", type=int, help="Target leave year (default: from-year + 1)")

    expire = sub.add_parser("expire", help="Expire unused carry-over past its expiry date")
    expire.add_argument("--as-of", type=str, help="Reference date YYYY-MM-DD (default: today)")

    seed = sub.add_parser("seed-holidays", help="Insert recurring public holidays for a year")
    seed.add_argument("--year", type=int, help="Calendar year (default: current)")

    args = parser.parse_args()
    setup_logging(args.log_level)
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
