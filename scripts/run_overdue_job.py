#!/usr/bin/env python3
"""
Mark sent and partially paid invoices past their due date as overdue.

Meant for a daily scheduler (cron, a CI schedule, a container job).  The
engine never runs this on its own.

Usage:
    python3 scripts/run_overdue_job.py --actor-id <uuid> [--as-of 2024-02-15]
        [--database-url URL] [--config path/to/engine.yaml]

The database URL defaults to MARKET_DATABASE_URL.
"""

import argparse
import os
import sys
from datetime import date
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Mark overdue invoices")
    p.add_argument("--actor-id", required=True, type=UUID, help="System actor recorded on each change")
    p.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help="Invoices due before this date are overdue (default: today, UTC)",
    )
    p.add_argument(
        "--database-url",
        default=os.environ.get("MARKET_DATABASE_URL"),
        help="SQLAlchemy URL (default: MARKET_DATABASE_URL)",
    )
    p.add_argument("--config", default=None, help="Engine config YAML (default: packaged defaults)")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    if not args.database_url:
        print("  ERROR: no database URL; pass --database-url or set MARKET_DATABASE_URL", file=sys.stderr)
        return 2

    from market_config import get_active_config
    from market_kernel.db.engine import init_engine_from_url, session_scope
    from market_kernel.domain.clock import SystemClock
    from market_modules.invoicing.jobs import mark_overdue_invoices

    init_engine_from_url(args.database_url)
    config = get_active_config(args.config)
    clock = SystemClock()
    as_of = args.as_of or clock.today()

    with session_scope() as session:
        marked = mark_overdue_invoices(session, as_of, args.actor_id, config=config, clock=clock)

    for invoice in marked:
        print(f"  {invoice.invoice_number}  due {invoice.due_date}  {invoice.total_amount}")
    print(f"  {len(marked)} invoice(s) marked overdue as of {as_of}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
