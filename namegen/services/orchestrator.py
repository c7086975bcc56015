"""
Request Orchestrator - The uniform shape of every credit-gated endpoint.

    UNAUTHENTICATED -> AUTHENTICATED -> ENTITLED -> SIDE_EFFECT_IN_PROGRESS
        -> COMPLETED | SIDE_EFFECT_FAILED | ACCOUNTING_FAILED

ENTITLEMENT_DENIED ends the request at the check, or after the side effect
when a concurrent request spent the last credit first; the result is then
discarded. DEPENDENCY_UNAVAILABLE ends it before or during the side effect.

The check happens before the side effect and the charge after it, strictly
in that order. Nothing here retries; clients retry based on the
``retryable`` flag of the returned error.
"""

import asyncio
import dataclasses
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from structlog import get_logger

from namegen.exceptions import DependencyUnavailableError, InsufficientCreditsError
from namegen.models.domain import AppError, AuthenticatedUser, ChargeIntent, CreditTransactionData
from namegen.observability.metrics import metrics
from namegen.observability.tracing import trace_operation
from namegen.services.error_classifier import classify
from namegen.services.ledger import EntitlementLedger

logger = get_logger(__name__)

T = TypeVar("T")


class OrchestrationState(str, Enum):
    """Lifecycle of one paid request."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    ENTITLED = "entitled"
    SIDE_EFFECT_IN_PROGRESS = "side_effect_in_progress"
    COMPLETED = "completed"
    SIDE_EFFECT_FAILED = "side_effect_failed"
    ACCOUNTING_FAILED = "accounting_failed"
    ENTITLEMENT_DENIED = "entitlement_denied"
    DEPENDENCY_UNAVAILABLE = "dependency_unavailable"


_DELIVERED = frozenset({OrchestrationState.COMPLETED, OrchestrationState.ACCOUNTING_FAILED})


@dataclass
class PaidOperationOutcome(Generic[T]):
    """Terminal state of a paid operation plus whatever it produced."""

    state: OrchestrationState
    result: T | None = None
    transaction: CreditTransactionData | None = None
    error: AppError | None = None
    credits_required: int | None = None
    current_credits: int | None = None
    history: list[OrchestrationState] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        """True when the side effect succeeded and its result must be returned."""
        return self.state in _DELIVERED


class RequestOrchestrator:
    """
    Runs auth -> entitlement -> side effect -> charge for one request.

    Args:
        ledger: Ledger bound to the request's database session
        operation: Label used in logs and metrics (e.g. "pdf_generation")
    """

    def __init__(self, ledger: EntitlementLedger, operation: str) -> None:
        self.ledger = ledger
        self.operation = operation

    async def run_paid_operation(
        self,
        user: AuthenticatedUser | None,
        cost: int,
        side_effect: Callable[[], Awaitable[T]],
        description: str,
        metadata: dict[str, Any] | None = None,
        timeout: float = 30.0,
        availability_check: Callable[[], Awaitable[bool]] | None = None,
    ) -> PaidOperationOutcome[T]:
        """
        Execute one paid operation.

        Errors raised by the entitlement lookup itself (database down) are not
        a state of this machine and propagate to the caller.
        """
        history: list[OrchestrationState] = []

        if user is None:
            return self._finish(OrchestrationState.UNAUTHENTICATED, history)
        history.append(OrchestrationState.AUTHENTICATED)

        try:
            customer = await self.ledger.ensure_entitled(user.id, required=cost)
        except InsufficientCreditsError as exc:
            return self._finish(
                OrchestrationState.ENTITLEMENT_DENIED,
                history,
                credits_required=exc.required,
                current_credits=exc.balance,
            )
        history.append(OrchestrationState.ENTITLED)

        if availability_check is not None and not await availability_check():
            logger.warning("side_effect_dependency_unavailable", operation=self.operation)
            return self._finish(
                OrchestrationState.DEPENDENCY_UNAVAILABLE,
                history,
                current_credits=customer.credits,
            )

        history.append(OrchestrationState.SIDE_EFFECT_IN_PROGRESS)
        start = time.perf_counter()
        try:
            with trace_operation(self.operation, user_id=user.id, cost=cost):
                result = await asyncio.wait_for(side_effect(), timeout=timeout)
        except asyncio.TimeoutError:
            error = classify(TimeoutError(f"{self.operation} timeout after {timeout}s"))
            logger.error(
                "side_effect_timeout",
                operation=self.operation,
                user_id=user.id,
                timeout_seconds=timeout,
            )
            return self._side_effect_failed(error, history)
        except DependencyUnavailableError as exc:
            logger.warning(
                "side_effect_dependency_lost",
                operation=self.operation,
                user_id=user.id,
                error=str(exc),
            )
            return self._finish(
                OrchestrationState.DEPENDENCY_UNAVAILABLE,
                history,
                current_credits=customer.credits,
            )
        except Exception as exc:
            error = classify(exc, context=self.operation)
            logger.error(
                "side_effect_failed",
                operation=self.operation,
                user_id=user.id,
                error=str(exc),
                error_type=error.type.value,
            )
            return self._side_effect_failed(error, history)

        logger.info(
            "side_effect_completed",
            operation=self.operation,
            user_id=user.id,
            duration_seconds=round(time.perf_counter() - start, 3),
        )

        intent = ChargeIntent(
            user_id=user.id,
            amount=cost,
            description=description,
            metadata={"operation": self.operation, **(metadata or {})},
        )
        try:
            transaction = await self.ledger.charge(intent)
        except InsufficientCreditsError as exc:
            logger.warning(
                "credit_race_lost",
                operation=self.operation,
                user_id=user.id,
                required=exc.required,
                balance=exc.balance,
            )
            return self._finish(
                OrchestrationState.ENTITLEMENT_DENIED,
                history,
                credits_required=exc.required,
                current_credits=exc.balance,
            )
        except Exception as exc:
            # Artifact is already produced; the missing charge is left for
            # scripts/reconcile_credits.py.
            metrics.record_accounting_failure(self.operation)
            logger.error(
                "credit_accounting_failed",
                operation=self.operation,
                user_id=user.id,
                amount=cost,
                error=str(exc),
                error_class=type(exc).__name__,
            )
            return self._finish(
                OrchestrationState.ACCOUNTING_FAILED,
                history,
                result=result,
                error=classify(exc, context="database"),
                credits_required=cost,
                current_credits=customer.credits,
            )

        return self._finish(
            OrchestrationState.COMPLETED,
            history,
            result=result,
            transaction=transaction,
            credits_required=cost,
            current_credits=transaction.credits_after,
        )

    def _side_effect_failed(
        self, error: AppError, history: list[OrchestrationState]
    ) -> PaidOperationOutcome[Any]:
        # Nothing was charged, so retrying is always safe.
        if not error.retryable:
            error = dataclasses.replace(error, retryable=True)
        return self._finish(OrchestrationState.SIDE_EFFECT_FAILED, history, error=error)

    def _finish(
        self,
        state: OrchestrationState,
        history: list[OrchestrationState],
        **fields: Any,
    ) -> PaidOperationOutcome[Any]:
        history.append(state)
        metrics.record_paid_operation(self.operation, state.value)
        return PaidOperationOutcome(state=state, history=history, **fields)
