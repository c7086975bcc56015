"""
Creem Payment Provider Implementation.

Hosted checkout over the Creem REST API.
"""

from typing import Any

import httpx
from structlog import get_logger

from namegen.exceptions import PaymentProviderError
from namegen.services.payment_provider import CheckoutRequest

logger = get_logger(__name__)


class CreemProvider:
    """
    Creem payment provider.

    Implements the PaymentProvider protocol.
    """

    def __init__(
        self,
        api_key: str,
        api_url: str,
        base_url: str,
        timeout: float = 15.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize Creem provider.

        Args:
            api_key: Creem secret API key
            api_url: Creem API base URL (test or live)
            base_url: Public URL of this application, used for redirects
            timeout: Per-request timeout in seconds
            http_client: Injected client (tests)
        """
        if not api_key or not api_url:
            raise PaymentProviderError("Missing CREEM_API_URL or CREEM_API_KEY")
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    def build_payload(self, request: CheckoutRequest) -> dict[str, Any]:
        """Request body for POST /checkouts."""
        metadata: dict[str, Any] = {
            "user_id": request.user_id,
            "product_type": request.product_type.value,
        }
        if request.credits_amount is not None:
            metadata["credits"] = request.credits_amount

        payload: dict[str, Any] = {
            "product_id": request.product_id,
            "customer": {"email": request.customer_email},
            "success_url": f"{self.base_url}/dashboard",
            "metadata": metadata,
        }
        if request.discount_code:
            payload["discount_code"] = request.discount_code
        return payload

    async def create_checkout_session(self, request: CheckoutRequest) -> str:
        """
        Create a Creem checkout session.

        Returns:
            Hosted checkout URL

        Raises:
            PaymentProviderError: Creem rejected the request, timed out or
                answered without a checkout URL
        """
        logger.info(
            "creating_creem_checkout",
            user_id=request.user_id,
            product_id=request.product_id,
            product_type=request.product_type.value,
            credits_amount=request.credits_amount,
        )

        try:
            response = await self.http_client.post(
                f"{self.api_url}/checkouts",
                json=self.build_payload(request),
                headers={"x-api-key": self.api_key},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "creem_checkout_rejected",
                status=exc.response.status_code,
                text=exc.response.text[:500],
            )
            raise PaymentProviderError(
                f"Creem checkout failed with status {exc.response.status_code}"
            ) from exc
        except httpx.TimeoutException as exc:
            logger.error("creem_checkout_timeout", timeout_seconds=self.timeout)
            raise PaymentProviderError(f"Creem checkout timeout after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            logger.error("creem_checkout_error", error=str(exc), error_type=type(exc).__name__)
            raise PaymentProviderError(f"Creem checkout request failed: {exc}") from exc
        except ValueError as exc:
            logger.error("creem_checkout_invalid_json", error=str(exc))
            raise PaymentProviderError("Creem returned a non-JSON response") from exc

        checkout_url = body.get("checkout_url") if isinstance(body, dict) else None
        if not checkout_url:
            logger.error("creem_checkout_missing_url", response_keys=list(body or {}))
            raise PaymentProviderError("Creem response did not include a checkout_url")

        logger.info(
            "creem_checkout_created",
            user_id=request.user_id,
            checkout_id=body.get("id"),
        )
        return str(checkout_url)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
