"""
Tests for API Dependencies.

Tests session identity (Supabase access tokens) and service lookups.
"""

import time
from unittest.mock import MagicMock

import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from starlette.requests import Request

from namegen.api.dependencies import (
    ACCESS_TOKEN_COOKIE,
    decode_access_token,
    get_cache,
    get_catalog,
    get_current_user,
    get_optional_user,
    get_payment_provider,
    get_renderer,
)
from namegen.config import settings
from namegen.exceptions import AuthenticationError
from namegen.models.domain import AuthenticatedUser
from namegen.services.cache import MemoryCache, NullCache
from namegen.services.product_catalog import ProductCatalog


def make_token(
    secret: str | None = None,
    expires_in: int = 3600,
    **claims,
) -> str:
    payload = {
        "sub": "user-123",
        "email": "user@example.com",
        "aud": "authenticated",
        "exp": int(time.time()) + expires_in,
        **claims,
    }
    payload = {key: value for key, value in payload.items() if value is not None}
    return jwt.encode(payload, secret or settings.supabase_jwt_secret, algorithm="HS256")


def make_request(cookies: dict[str, str] | None = None, state: dict | None = None) -> Request:
    headers = []
    if cookies:
        cookie = "; ".join(f"{name}={value}" for name, value in cookies.items())
        headers.append((b"cookie", cookie.encode()))
    app = MagicMock()
    app.state = MagicMock(spec=[])
    for key, value in (state or {}).items():
        setattr(app.state, key, value)
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/api/generation-history",
            "headers": headers,
            "query_string": b"",
            "app": app,
        }
    )


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestDecodeAccessToken:
    """Tests for decode_access_token."""

    def test_valid_token(self):
        user = decode_access_token(make_token())

        assert user == AuthenticatedUser(id="user-123", email="user@example.com")

    def test_token_without_email(self):
        user = decode_access_token(make_token(email=None))

        assert user.email is None

    def test_expired_token(self):
        with pytest.raises(AuthenticationError, match="expired"):
            decode_access_token(make_token(expires_in=-60))

    def test_wrong_secret(self):
        with pytest.raises(AuthenticationError, match="Invalid token"):
            decode_access_token(make_token(secret="another-secret-that-is-long-enough-too"))

    def test_wrong_audience(self):
        with pytest.raises(AuthenticationError):
            decode_access_token(make_token(aud="anon"))

    def test_missing_subject(self):
        with pytest.raises(AuthenticationError, match="no subject"):
            decode_access_token(make_token(sub=None))

    def test_garbage(self):
        with pytest.raises(AuthenticationError):
            decode_access_token("not-a-jwt")


class TestGetOptionalUser:
    """Tests for get_optional_user."""

    async def test_bearer_token(self):
        user = await get_optional_user(make_request(), bearer(make_token()))

        assert user is not None
        assert user.id == "user-123"

    async def test_cookie_token(self):
        request = make_request(cookies={ACCESS_TOKEN_COOKIE: make_token(sub="user-789")})

        user = await get_optional_user(request, None)

        assert user is not None
        assert user.id == "user-789"

    async def test_bearer_wins_over_cookie(self):
        request = make_request(cookies={ACCESS_TOKEN_COOKIE: make_token(sub="cookie-user")})

        user = await get_optional_user(request, bearer(make_token(sub="header-user")))

        assert user.id == "header-user"

    async def test_no_token(self):
        assert await get_optional_user(make_request(), None) is None

    async def test_invalid_token_is_anonymous(self):
        """A bad token is treated as no session, not as an error."""
        assert await get_optional_user(make_request(), bearer("not-a-jwt")) is None


class TestGetCurrentUser:
    """Tests for get_current_user."""

    async def test_user_passes_through(self, user: AuthenticatedUser):
        assert await get_current_user(user) is user

    async def test_missing_user_is_401(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(None)

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Unauthorized"
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}


class TestServiceLookups:
    """Tests for the app.state service dependencies."""

    def test_cache_from_state(self):
        cache = MemoryCache()

        assert get_cache(make_request(state={"cache": cache})) is cache

    def test_empty_cache_is_still_used(self):
        """An empty MemoryCache is falsy but must not be replaced."""
        cache = MemoryCache()
        assert len(cache) == 0

        assert get_cache(make_request(state={"cache": cache})) is cache

    def test_cache_falls_back_to_null_cache(self):
        assert isinstance(get_cache(make_request()), NullCache)

    def test_missing_renderer_and_provider(self):
        request = make_request()

        assert get_renderer(request) is None
        assert get_payment_provider(request) is None

    def test_catalog_built_on_demand(self):
        assert isinstance(get_catalog(make_request()), ProductCatalog)
