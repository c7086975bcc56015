"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - Core data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from namegen.models.api import CreditTransactionType, ErrorSeverity, ErrorType


@dataclass(frozen=True)
class AuthenticatedUser:
    """User resolved from the identity provider's session token."""

    id: str
    email: str | None = None

    def __post_init__(self) -> None:
        """Validate user identity."""
        if not self.id:
            raise ValueError("User id cannot be empty")


@dataclass(frozen=True)
class CustomerData:
    """Immutable customer balance snapshot."""

    customer_id: UUID
    user_id: str
    credits: int
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        """Validate balance constraints."""
        if self.credits < 0:
            raise ValueError(f"Credits cannot be negative: {self.credits}")


@dataclass(frozen=True)
class ChargeIntent:
    """Credit deduction requested after a successful side effect."""

    user_id: str
    amount: int
    description: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate charge constraints."""
        if self.amount <= 0:
            raise ValueError(f"Charge amount must be positive: {self.amount}")
        if not self.description:
            raise ValueError("Description cannot be empty")
        if not self.user_id:
            raise ValueError("user_id cannot be empty")


@dataclass(frozen=True)
class GrantIntent:
    """Credit addition (purchase fulfilment, manual adjustment)."""

    user_id: str
    amount: int
    description: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate grant constraints."""
        if self.amount <= 0:
            raise ValueError(f"Grant amount must be positive: {self.amount}")
        if not self.description:
            raise ValueError("Description cannot be empty")
        if not self.user_id:
            raise ValueError("user_id cannot be empty")


@dataclass(frozen=True)
class CreditTransactionData:
    """Immutable credits_history row after persistence."""

    transaction_id: UUID
    customer_id: UUID
    amount: int
    type: CreditTransactionType
    description: str
    metadata: dict[str, Any]
    credits_before: int
    credits_after: int
    created_at: datetime | None = None


@dataclass(frozen=True)
class AppError:
    """Classified failure ready to be rendered as an error response."""

    type: ErrorType
    severity: ErrorSeverity
    message: str
    user_message: str
    retryable: bool
    code: str | None = None
    details: Any | None = None
    suggestions: tuple[str, ...] = ()


@dataclass(frozen=True)
class PDFMargins:
    """CSS margins passed to the renderer."""

    top: str = "0.5cm"
    right: str = "0.5cm"
    bottom: str = "0.5cm"
    left: str = "0.5cm"


@dataclass(frozen=True)
class PDFOptions:
    """Page setup for document rendering."""

    format: str = "A4"
    margin: PDFMargins = field(default_factory=PDFMargins)

    def __post_init__(self) -> None:
        """Validate page format."""
        if self.format not in ("A4", "Letter"):
            raise ValueError(f"Unsupported page format: {self.format}")


@dataclass(frozen=True)
class BalanceDrift:
    """Customer whose stored balance disagrees with its history replay."""

    customer_id: UUID
    user_id: str
    stored_credits: int
    replayed_credits: int

    @property
    def difference(self) -> int:
        """Positive when the customer holds more credits than history explains."""
        return self.stored_credits - self.replayed_credits
