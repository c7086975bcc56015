"""
Entitlement Ledger - Credit checks, charges and grants.

The balance on ``customers.credits`` is a materialized view of
``credits_history``. Every mutation is a single conditional UPDATE ...
RETURNING followed by the history insert in the same transaction, so two
concurrent charges can never both spend the last credit.
"""

import time
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from namegen.db.models import CreditHistory, Customer
from namegen.exceptions import (
    CustomerNotFoundError,
    DatabaseError,
    InsufficientCreditsError,
)
from namegen.models.api import CreditTransactionType
from namegen.models.domain import (
    BalanceDrift,
    ChargeIntent,
    CreditTransactionData,
    CustomerData,
    GrantIntent,
)
from namegen.observability.metrics import metrics

logger = get_logger(__name__)


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class EntitlementLedger:
    """
    Credit accounting for paid operations.

    Protocol per paid operation:
    1. ensure_entitled() - fail closed when the balance cannot cover the cost
    2. caller performs the side effect
    3. charge() - atomic conditional decrement plus history row
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger with database session."""
        self.session = session

    async def get_customer(self, user_id: str) -> CustomerData:
        """
        Get the customer row for a user.

        Raises:
            CustomerNotFoundError: No customer provisioned for this user
        """
        customer = await self._find_customer(user_id)
        if customer is None:
            raise CustomerNotFoundError(user_id)
        return self._customer_to_domain(customer)

    async def ensure_entitled(self, user_id: str, required: int = 1) -> CustomerData:
        """
        Check that the user can pay ``required`` credits.

        A missing customer is treated as a zero balance. This is a hard
        deny: there is no retry on insufficient balance.

        Raises:
            InsufficientCreditsError: Balance below ``required``
        """
        customer = await self._find_customer(user_id)
        balance = customer.credits if customer is not None else 0

        if customer is None or balance < required:
            logger.info(
                "entitlement_denied",
                user_id=user_id,
                has_customer=customer is not None,
                credits=balance,
                required=required,
            )
            raise InsufficientCreditsError(balance=balance, required=required)

        return self._customer_to_domain(customer)

    async def charge(self, intent: ChargeIntent) -> CreditTransactionData:
        """
        Deduct credits after a successful side effect.

        Raises:
            InsufficientCreditsError: Balance dropped below the amount
                (e.g. a concurrent request spent it first); nothing is written
            DatabaseError: The update or history insert failed
        """
        start = time.perf_counter()
        try:
            stmt = (
                update(Customer)
                .where(Customer.user_id == intent.user_id, Customer.credits >= intent.amount)
                .values(credits=Customer.credits - intent.amount, updated_at=_utc_now())
                .returning(Customer.id, Customer.credits)
                .execution_options(synchronize_session=False)
            )
            result = await self.session.execute(stmt)
            row = result.one_or_none()

            if row is None:
                await self.session.rollback()
                customer = await self._find_customer(intent.user_id)
                balance = customer.credits if customer is not None else 0
                metrics.record_charge(
                    False, intent.amount, time.perf_counter() - start, "insufficient_credits"
                )
                raise InsufficientCreditsError(balance=balance, required=intent.amount)

            credits_after = row.credits
            credits_before = credits_after + intent.amount
            transaction = await self._append_history(
                customer_id=row.id,
                amount=intent.amount,
                transaction_type=CreditTransactionType.SUBTRACT,
                description=intent.description,
                metadata=intent.metadata,
                credits_before=credits_before,
                credits_after=credits_after,
            )
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            metrics.record_charge(
                False, intent.amount, time.perf_counter() - start, type(exc).__name__
            )
            logger.error("credit_charge_db_error", user_id=intent.user_id, error=str(exc))
            raise DatabaseError(str(exc)) from exc

        metrics.record_charge(True, intent.amount, time.perf_counter() - start)
        logger.info(
            "credits_charged",
            user_id=intent.user_id,
            amount=intent.amount,
            credits_before=credits_before,
            credits_after=credits_after,
            description=intent.description,
        )
        return transaction

    async def grant(self, intent: GrantIntent) -> CreditTransactionData:
        """
        Add credits to an existing customer.

        Raises:
            CustomerNotFoundError: No customer provisioned for this user
            DatabaseError: The update or history insert failed
        """
        try:
            stmt = (
                update(Customer)
                .where(Customer.user_id == intent.user_id)
                .values(credits=Customer.credits + intent.amount, updated_at=_utc_now())
                .returning(Customer.id, Customer.credits)
                .execution_options(synchronize_session=False)
            )
            result = await self.session.execute(stmt)
            row = result.one_or_none()

            if row is None:
                await self.session.rollback()
                raise CustomerNotFoundError(intent.user_id)

            credits_after = row.credits
            transaction = await self._append_history(
                customer_id=row.id,
                amount=intent.amount,
                transaction_type=CreditTransactionType.ADD,
                description=intent.description,
                metadata=intent.metadata,
                credits_before=credits_after - intent.amount,
                credits_after=credits_after,
            )
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("credit_grant_db_error", user_id=intent.user_id, error=str(exc))
            raise DatabaseError(str(exc)) from exc

        logger.info(
            "credits_granted",
            user_id=intent.user_id,
            amount=intent.amount,
            credits_after=credits_after,
            description=intent.description,
        )
        return transaction

    async def replay_balance(self, customer_id: UUID, initial_balance: int = 0) -> int:
        """Rebuild a balance from credits_history (add = +amount, subtract = -amount)."""
        signed_amount = case(
            (CreditHistory.type == CreditTransactionType.ADD.value, CreditHistory.amount),
            else_=-CreditHistory.amount,
        )
        stmt = select(func.coalesce(func.sum(signed_amount), 0)).where(
            CreditHistory.customer_id == customer_id
        )
        result = await self.session.execute(stmt)
        return initial_balance + int(result.scalar_one())

    async def find_balance_drift(self, initial_balance: int = 0) -> list[BalanceDrift]:
        """
        Compare every stored balance with its history replay.

        Drift means the balance was changed outside this ledger, e.g. by a
        manual edit or a fulfilment path that skipped credits_history.
        """
        signed_amount = case(
            (CreditHistory.type == CreditTransactionType.ADD.value, CreditHistory.amount),
            else_=-CreditHistory.amount,
        )
        replayed = func.coalesce(func.sum(signed_amount), 0)
        stmt = (
            select(Customer.id, Customer.user_id, Customer.credits, replayed)
            .outerjoin(CreditHistory, CreditHistory.customer_id == Customer.id)
            .group_by(Customer.id, Customer.user_id, Customer.credits)
        )
        result = await self.session.execute(stmt)

        drift: list[BalanceDrift] = []
        for customer_id, user_id, credits, history_total in result.all():
            expected = initial_balance + int(history_total)
            if credits != expected:
                drift.append(
                    BalanceDrift(
                        customer_id=customer_id,
                        user_id=user_id,
                        stored_credits=credits,
                        replayed_credits=expected,
                    )
                )
        return drift

    async def record_adjustment(
        self, drift: BalanceDrift, description: str, metadata: dict[str, Any] | None = None
    ) -> CreditTransactionData:
        """
        Append the history row that explains a drifting balance.

        The stored balance is left as is: positive drift becomes an ``add``
        row, negative drift a ``subtract`` row.
        """
        if drift.difference == 0:
            raise ValueError(f"No drift to record for customer {drift.customer_id}")

        transaction_type = (
            CreditTransactionType.ADD if drift.difference > 0 else CreditTransactionType.SUBTRACT
        )
        try:
            transaction = await self._append_history(
                customer_id=drift.customer_id,
                amount=abs(drift.difference),
                transaction_type=transaction_type,
                description=description,
                metadata=metadata or {},
                credits_before=drift.replayed_credits,
                credits_after=drift.stored_credits,
            )
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("ledger_adjustment_db_error", user_id=drift.user_id, error=str(exc))
            raise DatabaseError(str(exc)) from exc

        logger.info(
            "ledger_adjusted",
            user_id=drift.user_id,
            type=transaction_type.value,
            amount=abs(drift.difference),
        )
        return transaction

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _find_customer(self, user_id: str) -> Customer | None:
        """Find customer by identity-provider user id."""
        stmt = select(Customer).where(Customer.user_id == user_id)
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("customer_lookup_failed", user_id=user_id, error=str(exc))
            raise DatabaseError(str(exc)) from exc
        return result.scalar_one_or_none()

    async def _append_history(
        self,
        customer_id: UUID,
        amount: int,
        transaction_type: CreditTransactionType,
        description: str,
        metadata: dict[str, Any],
        credits_before: int,
        credits_after: int,
    ) -> CreditTransactionData:
        """Insert one credits_history row; caller owns the transaction."""
        row_metadata = {
            **metadata,
            "credits_before": credits_before,
            "credits_after": credits_after,
        }
        entry = CreditHistory(
            id=uuid4(),
            customer_id=customer_id,
            amount=amount,
            type=transaction_type.value,
            description=description,
            metadata_=row_metadata,
            created_at=_utc_now(),
        )
        self.session.add(entry)
        await self.session.flush()

        return CreditTransactionData(
            transaction_id=entry.id,
            customer_id=customer_id,
            amount=amount,
            type=transaction_type,
            description=description,
            metadata=row_metadata,
            credits_before=credits_before,
            credits_after=credits_after,
            created_at=entry.created_at,
        )

    def _customer_to_domain(self, customer: Customer) -> CustomerData:
        """Convert ORM customer to domain model."""
        return CustomerData(
            customer_id=customer.id,
            user_id=customer.user_id,
            credits=customer.credits,
            updated_at=customer.updated_at,
        )
