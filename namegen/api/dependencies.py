"""
FastAPI Dependencies - Session identity and injected service instances.

NO DICTIONARIES - All dependencies return typed objects.
"""

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from namegen.config import settings
from namegen.db.session import get_db
from namegen.exceptions import AuthenticationError
from namegen.models.domain import AuthenticatedUser
from namegen.services.cache import Cache, NullCache
from namegen.services.ledger import EntitlementLedger
from namegen.services.payment_provider import PaymentProvider
from namegen.services.pdf_renderer import DocumentRenderer
from namegen.services.product_catalog import ProductCatalog, build_catalog

logger = get_logger(__name__)

# Cookie set by the Supabase auth helpers in the web client
ACCESS_TOKEN_COOKIE = "sb-access-token"
JWT_ALGORITHMS = ["HS256"]

bearer_scheme = HTTPBearer(auto_error=False)


# ============================================================================
# Identity (Supabase access tokens)
# ============================================================================


def decode_access_token(token: str) -> AuthenticatedUser:
    """
    Verify a Supabase access token and return the user it names.

    Raises:
        AuthenticationError: Token missing claims, expired, or badly signed
    """
    if not settings.supabase_jwt_secret:
        raise AuthenticationError("SUPABASE_JWT_SECRET is not configured")

    try:
        claims = jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=JWT_ALGORITHMS,
            audience=settings.supabase_jwt_audience,
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError(f"Invalid token: {exc}") from exc

    subject = claims.get("sub")
    if not subject:
        raise AuthenticationError("Token has no subject")

    return AuthenticatedUser(id=str(subject), email=claims.get("email") or None)


def _token_from_request(
    request: Request, credentials: HTTPAuthorizationCredentials | None
) -> str | None:
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(ACCESS_TOKEN_COOKIE) or None


async def get_optional_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthenticatedUser | None:
    """
    Resolve the session user, or None when there is no valid session.

    Accepts: Authorization: Bearer {supabase_access_token}
             or the sb-access-token cookie
    """
    token = _token_from_request(request, credentials)
    if token is None:
        return None

    try:
        return decode_access_token(token)
    except AuthenticationError as exc:
        logger.info("access_token_rejected", reason=exc.message, path=request.url.path)
        return None


async def get_current_user(
    user: AuthenticatedUser | None = Depends(get_optional_user),
) -> AuthenticatedUser:
    """
    Require a session user.

    Raises:
        HTTPException 401 if no valid session
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


# ============================================================================
# Service instances (created in the application lifespan)
# ============================================================================


def get_cache(request: Request) -> Cache:
    """Process cache, or a NullCache when none was started."""
    cache = getattr(request.app.state, "cache", None)
    return cache if cache is not None else NullCache()


def get_renderer(request: Request) -> DocumentRenderer | None:
    return getattr(request.app.state, "renderer", None)


def get_payment_provider(request: Request) -> PaymentProvider | None:
    """Configured payment provider, or None when credentials are missing."""
    return getattr(request.app.state, "payment_provider", None)


def get_catalog(request: Request) -> ProductCatalog:
    catalog = getattr(request.app.state, "catalog", None)
    return catalog if catalog is not None else build_catalog()


async def get_ledger(db: AsyncSession = Depends(get_db)) -> EntitlementLedger:
    """Ledger bound to the request's database session."""
    return EntitlementLedger(db)
