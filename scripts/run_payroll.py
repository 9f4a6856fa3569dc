#!/usr/bin/env python3
"""
Close a month of partner payroll ("pró-labore"), or inspect it.

Usage:
    python3 scripts/run_payroll.py --tenant-id <uuid> <command> [options]

Examples:
    # Close March 2025, creating tables on a fresh database
    python3 scripts/run_payroll.py --tenant-id <uuid> --create-tables generate --month 3 --year 2025

    # Was March generated? Show its snapshots
    python3 scripts/run_payroll.py --tenant-id <uuid> status --month 3 --year 2025

    # Year-to-date snapshots and totals
    python3 scripts/run_payroll.py --tenant-id <uuid> history --year 2025

    # Projected net pay before closing
    python3 scripts/run_payroll.py --tenant-id <uuid> overview --month 3 --year 2025

The database URL comes from --db-url or the BACKOFFICE_DATABASE_URL
environment variable; settings come from --config (YAML, optional).
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from uuid import UUID, uuid4

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = os.environ.get("BACKOFFICE_DATABASE_URL", "sqlite:///backoffice.db")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate or inspect partner payroll for a month.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--tenant-id", required=True, type=UUID, help="Tenant UUID.")
    parser.add_argument(
        "--actor-id",
        type=UUID,
        default=None,
        help="Actor UUID for audit (default: RUN_PAYROLL_ACTOR_ID env or new UUID).",
    )
    parser.add_argument("--db-url", default=DB_URL, help=f"Database URL (default: {DB_URL!r}).")
    parser.add_argument("--config", type=Path, default=None, help="Settings override YAML.")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before running.",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    for name in ("generate", "status", "overview"):
        cmd = sub.add_parser(name)
        cmd.add_argument("--month", required=True, type=int)
        cmd.add_argument("--year", required=True, type=int)
    history = sub.add_parser("history")
    history.add_argument("--year", required=True, type=int)
    history.add_argument("--partner-id", type=UUID, default=None)
    return parser.parse_args(argv)


def _print_snapshot(snapshot) -> None:
    paid = "paid" if snapshot.is_paid else "pending"
    print(
        f"  {snapshot.period_month:02d}/{snapshot.period_year}  {snapshot.partner_name:<30} "
        f"base={snapshot.base_pay:>12.2f}  deductions={snapshot.total_deductions:>12.2f}  "
        f"net={snapshot.net_pay:>12.2f}  [{paid}]"
    )


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    actor_id = args.actor_id or UUID(os.environ.get("RUN_PAYROLL_ACTOR_ID", str(uuid4())))

    # Lazy imports so we fail fast on args first
    from backoffice_kernel.db.engine import get_session, init_engine_from_url
    from backoffice_kernel.domain.dates import month_bounds
    from backoffice_kernel.domain.values import TenantContext
    from backoffice_kernel.exceptions import BackofficeError
    from backoffice_modules._orm_registry import create_all_tables
    from backoffice_modules.payroll import (
        PartnerCompensation,
        PayrollConfig,
        PayrollSnapshotter,
    )

    try:
        config = PayrollConfig.load(args.config)
    except (OSError, ValueError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    try:
        init_engine_from_url(args.db_url)
        if args.create_tables:
            create_all_tables()
    except Exception as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        return 1

    context = TenantContext(tenant_id=args.tenant_id, actor_id=actor_id)
    session = get_session()
    try:
        snapshotter = PayrollSnapshotter(session, context, config=config)

        if args.command == "generate":
            result = snapshotter.generate(args.month, args.year)
            print(f"Generated {result.generated_count} snapshot(s) for {args.month:02d}/{args.year}")
            for snapshot in result.snapshots:
                _print_snapshot(snapshot)
            for failure in result.errors:
                print(f"  FAILED {failure.partner_name}: [{failure.error_code}] {failure.message}")
            return 0 if result.is_complete else 2

        if args.command == "status":
            status = snapshotter.status(args.month, args.year)
            state = "generated" if status.generated else "not generated"
            print(f"{args.month:02d}/{args.year}: {state}")
            for snapshot in status.snapshots:
                _print_snapshot(snapshot)
            return 0

        if args.command == "history":
            history = snapshotter.history(args.year, args.partner_id)
            for snapshot in history.snapshots:
                _print_snapshot(snapshot)
            print(
                f"Total {args.year}: base={history.total_base_pay:.2f} "
                f"deductions={history.total_deductions:.2f} net={history.total_net_pay:.2f}"
            )
            return 0

        compensation = PartnerCompensation(session, context.tenant_id, config.decimal_places)
        start, end = month_bounds(args.year, args.month)
        print(f"Projected net pay {start.isoformat()} .. {end.isoformat()}")
        for breakdown in compensation.overview(args.month, args.year):
            flag = " (degraded)" if breakdown.degraded else ""
            print(
                f"  {breakdown.partner_code:<15} base={breakdown.base_pay:>12.2f}  "
                f"deductions={breakdown.total_deductions:>12.2f}  net={breakdown.net_pay:>12.2f}{flag}"
            )
        return 0
    except BackofficeError as e:
        session.rollback()
        print(f"ERROR [{e.code}]: {e}", file=sys.stderr)
        return 1
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
