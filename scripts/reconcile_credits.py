#!/usr/bin/env python3
"""
Credit Ledger Reconciliation

Two jobs:

1. Drift report: replay credits_history for every customer and list those
   whose stored balance disagrees (balance edited outside the ledger).
   With --apply, the missing history row is appended; balances are untouched.

2. Missed charges: a delivered PDF whose charge failed is logged as
   ``credit_accounting_failed`` with its user_id and amount. Pass those users
   with --charge-missed to charge them now (skipped when they have no
   credits left).

Usage:
    # Report drift (exit code 1 when any is found)
    python3 scripts/reconcile_credits.py

    # Customers start with 3 signup credits that have no history row
    python3 scripts/reconcile_credits.py --initial-balance 3

    # Record the missing history rows
    python3 scripts/reconcile_credits.py --apply

    # Charge users from credit_accounting_failed log lines
    python3 scripts/reconcile_credits.py --charge-missed USER_ID --charge-missed USER_ID
"""

import argparse
import asyncio
import json
import sys

from namegen.db.session import close_engine, get_session
from namegen.exceptions import NameGenError
from namegen.models.domain import BalanceDrift, ChargeIntent
from namegen.observability.logging import get_logger, setup_logging
from namegen.services.ledger import EntitlementLedger

logger = get_logger("scripts.reconcile_credits")

RECONCILIATION_DESCRIPTION = "ledger_reconciliation"
MISSED_CHARGE_DESCRIPTION = "pdf_generation"


async def report_drift(
    ledger: EntitlementLedger, initial_balance: int, apply: bool
) -> list[BalanceDrift]:
    """Log every drifting customer; with ``apply`` record the explaining row."""
    drifts = await ledger.find_balance_drift(initial_balance=initial_balance)

    for drift in drifts:
        logger.warning(
            "balance_drift_found",
            user_id=drift.user_id,
            customer_id=str(drift.customer_id),
            stored_credits=drift.stored_credits,
            replayed_credits=drift.replayed_credits,
            difference=drift.difference,
        )
        if apply:
            await ledger.record_adjustment(
                drift,
                RECONCILIATION_DESCRIPTION,
                metadata={"operation": RECONCILIATION_DESCRIPTION},
            )
    return drifts


async def charge_missed(ledger: EntitlementLedger, user_ids: list[str]) -> int:
    """Charge one credit per listed user; returns how many charges landed."""
    charged = 0
    for user_id in user_ids:
        intent = ChargeIntent(
            user_id=user_id,
            amount=1,
            description=MISSED_CHARGE_DESCRIPTION,
            metadata={"operation": MISSED_CHARGE_DESCRIPTION, "reconciled": True},
        )
        try:
            await ledger.charge(intent)
        except NameGenError as exc:
            logger.error("missed_charge_not_applied", user_id=user_id, error=str(exc))
            continue
        charged += 1
    return charged


async def run(args: argparse.Namespace) -> dict[str, object]:
    async with get_session() as session:
        ledger = EntitlementLedger(session)
        charged = await charge_missed(ledger, args.charge_missed)
        drifts = await report_drift(ledger, args.initial_balance, args.apply)

    await close_engine()
    return {
        "customers_with_drift": len(drifts),
        "total_difference": sum(d.difference for d in drifts),
        "drift_recorded": args.apply,
        "missed_charges_applied": charged,
    }


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Replay credits_history against customers.credits",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--initial-balance",
        type=int,
        default=0,
        help="Balance customers start with before any history row (default: 0)",
    )
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Append a history row for each drifting customer",
    )
    parser.add_argument(
        "--charge-missed",
        action="append",
        default=[],
        metavar="USER_ID",
        help="Charge 1 credit for a credit_accounting_failed event (repeatable)",
    )
    args = parser.parse_args()

    setup_logging()
    summary = asyncio.run(run(args))
    print(json.dumps(summary))
    sys.exit(1 if summary["customers_with_drift"] and not args.apply else 0)


if __name__ == "__main__":
    main()
