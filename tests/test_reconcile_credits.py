"""
Tests for the ledger reconciliation script.
"""

from unittest.mock import AsyncMock
from uuid import uuid4

from namegen.exceptions import InsufficientCreditsError
from namegen.models.domain import BalanceDrift
from namegen.services.ledger import EntitlementLedger
from scripts.reconcile_credits import (
    MISSED_CHARGE_DESCRIPTION,
    RECONCILIATION_DESCRIPTION,
    charge_missed,
    report_drift,
)


def make_ledger(drifts: list[BalanceDrift] | None = None) -> AsyncMock:
    ledger = AsyncMock(spec=EntitlementLedger)
    ledger.find_balance_drift = AsyncMock(return_value=drifts or [])
    return ledger


class TestReportDrift:
    async def test_report_only(self):
        drift = BalanceDrift(uuid4(), "user-b", stored_credits=5, replayed_credits=2)
        ledger = make_ledger([drift])

        found = await report_drift(ledger, initial_balance=3, apply=False)

        assert found == [drift]
        ledger.find_balance_drift.assert_awaited_once_with(initial_balance=3)
        ledger.record_adjustment.assert_not_called()

    async def test_apply_records_adjustment(self):
        drift = BalanceDrift(uuid4(), "user-b", stored_credits=1, replayed_credits=2)
        ledger = make_ledger([drift])

        await report_drift(ledger, initial_balance=0, apply=True)

        ledger.record_adjustment.assert_awaited_once_with(
            drift,
            RECONCILIATION_DESCRIPTION,
            metadata={"operation": RECONCILIATION_DESCRIPTION},
        )


class TestChargeMissed:
    async def test_charges_each_user_once(self):
        ledger = make_ledger()

        charged = await charge_missed(ledger, ["user-a", "user-b"])

        assert charged == 2
        intents = [call.args[0] for call in ledger.charge.await_args_list]
        assert [intent.user_id for intent in intents] == ["user-a", "user-b"]
        assert all(intent.amount == 1 for intent in intents)
        assert intents[0].description == MISSED_CHARGE_DESCRIPTION
        assert intents[0].metadata["reconciled"] is True

    async def test_users_without_credits_are_skipped(self):
        ledger = make_ledger()
        ledger.charge.side_effect = [InsufficientCreditsError(balance=0, required=1), None]

        assert await charge_missed(ledger, ["broke", "user-b"]) == 1
