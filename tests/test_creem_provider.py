"""
Tests for the Creem payment provider.

HTTP is served by httpx.MockTransport; nothing leaves the process.
"""

import json

import httpx
import pytest

from namegen.exceptions import PaymentProviderError
from namegen.models.api import ProductType
from namegen.services.creem_provider import CreemProvider
from namegen.services.payment_provider import CheckoutRequest

API_URL = "https://test-api.creem.io/v1"


def make_provider(handler) -> CreemProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CreemProvider(
        api_key="creem_test_key",
        api_url=f"{API_URL}/",
        base_url="https://names.example.com/",
        http_client=client,
    )


def credits_request(**overrides) -> CheckoutRequest:
    fields = {
        "product_id": "prod_standard_credits",
        "customer_email": "user@example.com",
        "user_id": "user-123",
        "product_type": ProductType.CREDITS,
        "credits_amount": 6,
    }
    fields.update(overrides)
    return CheckoutRequest(**fields)


class TestCreateCheckoutSession:
    """Tests for create_checkout_session."""

    async def test_posts_checkout_and_returns_url(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"id": "ch_1", "checkout_url": "https://checkout.creem.io/ch_1"}
            )

        provider = make_provider(handler)

        url = await provider.create_checkout_session(credits_request(discount_code="SPRING"))

        assert url == "https://checkout.creem.io/ch_1"
        (request,) = seen
        assert str(request.url) == f"{API_URL}/checkouts"
        assert request.headers["x-api-key"] == "creem_test_key"
        assert json.loads(request.content) == {
            "product_id": "prod_standard_credits",
            "customer": {"email": "user@example.com"},
            "success_url": "https://names.example.com/dashboard",
            "metadata": {"user_id": "user-123", "product_type": "credits", "credits": 6},
            "discount_code": "SPRING",
        }

    async def test_subscription_payload_has_no_credits(self):
        provider = make_provider(lambda request: httpx.Response(200, json={}))

        payload = provider.build_payload(
            credits_request(product_type=ProductType.SUBSCRIPTION, credits_amount=None)
        )

        assert payload["metadata"] == {"user_id": "user-123", "product_type": "subscription"}
        assert "discount_code" not in payload

    async def test_error_status(self):
        provider = make_provider(lambda request: httpx.Response(500, text="upstream down"))

        with pytest.raises(PaymentProviderError, match="status 500"):
            await provider.create_checkout_session(credits_request())

    async def test_missing_checkout_url(self):
        provider = make_provider(lambda request: httpx.Response(200, json={"id": "ch_1"}))

        with pytest.raises(PaymentProviderError, match="checkout_url"):
            await provider.create_checkout_session(credits_request())

    async def test_non_json_response(self):
        provider = make_provider(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(PaymentProviderError, match="non-JSON"):
            await provider.create_checkout_session(credits_request())

    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        provider = make_provider(handler)

        with pytest.raises(PaymentProviderError, match="timeout after 15.0s"):
            await provider.create_checkout_session(credits_request())

    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = make_provider(handler)

        with pytest.raises(PaymentProviderError, match="request failed"):
            await provider.create_checkout_session(credits_request())


class TestLifecycle:
    def test_credentials_required(self):
        with pytest.raises(PaymentProviderError, match="CREEM_API_KEY"):
            CreemProvider(api_key="", api_url=API_URL, base_url="https://names.example.com")

    async def test_close_releases_client(self):
        provider = CreemProvider(
            api_key="creem_test_key", api_url=API_URL, base_url="https://names.example.com"
        )
        client = provider.http_client

        await provider.close()

        assert client.is_closed
        assert provider._http_client is None

    async def test_close_without_client(self):
        provider = make_provider(lambda request: httpx.Response(200, json={}))
        provider._http_client = None

        await provider.close()


class TestCheckoutRequest:
    def test_non_positive_credits_rejected(self):
        with pytest.raises(ValueError, match="must be positive"):
            credits_request(credits_amount=0)

    def test_email_required(self):
        with pytest.raises(ValueError, match="email"):
            credits_request(customer_email="")
