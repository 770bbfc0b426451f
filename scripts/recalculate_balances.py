#!/usr/bin/env python3
"""
Recompute stored running balances and cached account balances.

Operator tool for repairing accounts after historical edits, backdated
inserts or data corrections.  Every account is recomputed in its own
transaction; a failing account is reported and the rest still run.

Usage:
    python3 scripts/recalculate_balances.py [--config PATH] [--db-url URL] <command>

Examples:
    # One account
    python3 scripts/recalculate_balances.py account 3f6c...e1

    # Every account of a tenant, four at a time
    python3 scripts/recalculate_balances.py all --tenant 9a1b...07 --workers 4

    # Only accounts flagged by the write path
    python3 scripts/recalculate_balances.py all --tenant 9a1b...07 --only-pending

    # Re-derive the cached balance without touching movements
    python3 scripts/recalculate_balances.py sync 3f6c...e1

Exit status is 1 when any account failed, 0 otherwise.
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from uuid import UUID

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a UUID: {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Recompute ledger running balances and cached account balances.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML settings file (values under a 'ledger:' key).",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (overrides the settings file and LEDGER_DATABASE_URL).",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    account = sub.add_parser("account", help="Recompute a single account.")
    account.add_argument("account_id", type=_uuid)

    fleet = sub.add_parser("all", help="Recompute every account of a tenant.")
    fleet.add_argument("--tenant", type=_uuid, default=None, help="Tenant UUID (default: all tenants).")
    fleet.add_argument(
        "--only-pending",
        action="store_true",
        help="Only accounts flagged for recompute by the write path.",
    )
    fleet.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Accounts recomputed in parallel (default: fleet_max_workers setting).",
    )

    sync = sub.add_parser("sync", help="Re-derive an account's cached balance.")
    sync.add_argument("account_id", type=_uuid)

    return parser


def _print_report(report) -> None:
    print(f"Accounts processed: {len(report.outcomes)}")
    print(f"Succeeded:          {len(report.succeeded)}")
    print(f"Accounts fixed:     {report.accounts_fixed}")
    print(f"Rows updated:       {report.total_rows_updated}")
    print(f"Duration:           {report.duration_ms} ms")
    if report.failed:
        print(f"Failed:             {len(report.failed)}")
        for outcome in report.failed:
            print(f"  {outcome.account_id}  {outcome.error_code}  {outcome.error_message}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # Lazy imports so we fail fast on args first
    from ledger_kernel.config import load_settings
    from ledger_kernel.exceptions import LedgerKernelError
    from ledger_kernel.logging_config import configure_logging
    from ledger_kernel.orchestrator import LedgerOrchestrator

    try:
        settings = load_settings(args.config)
        if args.db_url:
            settings = replace(settings, database_url=args.db_url)
    except LedgerKernelError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    configure_logging(level=settings.log_level)
    orchestrator = LedgerOrchestrator.from_settings(settings)

    if args.command == "all":
        if args.workers is not None and args.workers < 1:
            print("ERROR: --workers must be at least 1", file=sys.stderr)
            return 1
        report = orchestrator.recalculate_all_accounts(
            tenant_id=args.tenant,
            only_pending=args.only_pending,
            max_workers=args.workers,
        )
        _print_report(report)
        return 0 if report.is_complete else 1

    try:
        if args.command == "account":
            result = orchestrator.recalculate_account(args.account_id)
            print(f"Account:        {result.account_id}")
            print(f"Movements:      {result.movement_count}")
            print(f"Rows updated:   {result.updated_count}")
            print(f"Balance fixed:  {'yes' if result.balance_corrected else 'no'}")
            print(f"Final balance:  {result.final_balance}")
        else:
            balance = orchestrator.sync_current_balance(args.account_id)
            print(f"Account:        {args.account_id}")
            print(f"Cached balance: {balance}")
    except LedgerKernelError as e:
        print(f"ERROR [{e.code}]: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
