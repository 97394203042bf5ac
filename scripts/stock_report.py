#!/usr/bin/env python3
"""
Stock reconciliation from the command line.

Reads configuration through ``stock_config.get_active_config()`` (honours
STOCK_CONFIG_PATH and DATABASE_URL) and prints reconciliation views.

Usage:
    python3 scripts/stock_report.py init
    python3 scripts/stock_report.py summary AGENCY [--attention-only]
    python3 scripts/stock_report.py history AGENCY [--limit N]
    python3 scripts/stock_report.py pending [--agency AGENCY]
"""

import argparse
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def print_summary(lines, attention_only: bool) -> None:
    header = f"  {'Product key':<40} {'Name':<24} {'IN':>7} {'OUT':>7} {'Calc':>7} {'Stock':>7} {'Var':>6}"
    print(header)
    print("  " + "-" * (len(header) - 2))
    for line in lines:
        if attention_only and not line.needs_attention:
            continue
        agg = line.aggregate
        flag = " !" if line.needs_attention else ""
        print(
            f"  {agg.product_key.code:<40} {(line.product_name or '')[:24]:<24} "
            f"{agg.stock_in:>7} {agg.stock_out:>7} {agg.calculated_balance:>7} "
            f"{agg.current_stock:>7} {agg.variance:>6}{flag}"
        )
    flagged = sum(1 for line in lines if line.needs_attention)
    print(f"\n  {len(lines)} items, {flagged} need attention")


def print_history(entries) -> None:
    for entry in entries:
        print(
            f"  #{entry.seq:<6} {entry.occurred_at:%Y-%m-%d %H:%M} "
            f"{entry.transaction_type.value:<17} {entry.quantity:>6}  "
            f"{entry.product_key.code:<40} {entry.actor_name}"
        )


def print_pending(queue) -> None:
    for group in queue.batches:
        print(
            f"  Batch {group.batch_name!r} by {group.requested_by_name} "
            f"({group.total_items} items, net {group.net_delta:+d})"
        )
        for request in group.requests:
            print(
                f"      {request.product_key.code:<40} "
                f"{request.current_stock_at_request:>6} -> {request.target_stock:<6} "
                f"{request.reason}"
            )
    for request in queue.individual:
        print(
            f"  {request.product_key.code:<40} "
            f"{request.current_stock_at_request:>6} -> {request.target_stock:<6} "
            f"{request.reason} ({request.requested_by_name})"
        )
    print(f"\n  {queue.total} pending requests")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Stock reconciliation reports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Path to a configuration YAML file")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create tables and seed adjustment reasons")

    summary = sub.add_parser("summary", help="Reconciliation summary for an agency")
    summary.add_argument("agency")
    summary.add_argument("--attention-only", action="store_true")

    history = sub.add_parser("history", help="Recent movements at an agency")
    history.add_argument("agency")
    history.add_argument("--limit", type=int, default=50)

    pending = sub.add_parser("pending", help="Pending adjustment requests")
    pending.add_argument("--agency")

    args = parser.parse_args()

    from stock_config import build_policy, engine_options, get_active_config, reason_seed
    from stock_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from stock_kernel.exceptions import StockKernelError
    from stock_kernel.logging_config import configure_logging
    from stock_kernel.selectors import AdjustmentSelector, ReconciliationReporter
    from stock_kernel.services import ReasonService

    config = get_active_config(args.config)
    configure_logging(level=config.log_level, stream=sys.stderr)
    policy = build_policy(config)
    init_engine_from_url(config.database.url, **engine_options(config))

    try:
        with session_scope() as session:
            if args.command == "init":
                create_tables()
                added = ReasonService(session).seed(reason_seed(config))
                print(f"  Tables ready; {len(added)} reasons added")
            elif args.command == "summary":
                reporter = ReconciliationReporter(session, policy)
                print_summary(reporter.summary_by_agency(args.agency), args.attention_only)
            elif args.command == "history":
                reporter = ReconciliationReporter(session, policy)
                print_history(reporter.history(args.agency, args.limit))
            elif args.command == "pending":
                print_pending(AdjustmentSelector(session).pending_queue(args.agency))
    except StockKernelError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
