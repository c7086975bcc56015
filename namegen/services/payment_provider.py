"""
Payment Provider Protocol - Provider-agnostic checkout interface.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from typing import Protocol

from namegen.models.api import ProductType


@dataclass(frozen=True)
class CheckoutRequest:
    """
    Provider-agnostic hosted checkout request.

    ``credits_amount`` is forwarded as metadata so fulfilment knows how many
    credits to grant for a credits purchase.
    """

    product_id: str
    customer_email: str
    user_id: str
    product_type: ProductType
    credits_amount: int | None = None
    discount_code: str | None = None

    def __post_init__(self) -> None:
        """Validate checkout request."""
        if not self.product_id:
            raise ValueError("Product ID required")
        if not self.customer_email:
            raise ValueError("Customer email required")
        if not self.user_id:
            raise ValueError("User ID required")
        if self.credits_amount is not None and self.credits_amount <= 0:
            raise ValueError(f"Credits amount must be positive: {self.credits_amount}")


class PaymentProvider(Protocol):
    """
    Payment provider protocol.

    The checkout route depends only on this interface; Creem is the
    production implementation.
    """

    async def create_checkout_session(self, request: CheckoutRequest) -> str:
        """
        Create a hosted checkout session.

        Returns:
            URL the client is redirected to

        Raises:
            PaymentProviderError: If the provider rejects the request or is unreachable
        """
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...
