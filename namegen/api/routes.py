"""
API Routes - Certificate export, checkout, generation history and analytics.

Expected outcomes (no session, missing fields, no credits, renderer down) are
answered here with explicit bodies; anything else propagates to the
application-level handler, which classifies it.
"""

from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from namegen.api.dependencies import (
    get_cache,
    get_catalog,
    get_current_user,
    get_ledger,
    get_optional_user,
    get_payment_provider,
    get_renderer,
)
from namegen.config import settings
from namegen.db.session import get_db
from namegen.exceptions import DatabaseError, PaymentProviderError
from namegen.models.api import (
    AnalyticsPayload,
    AnalyticsPayloadType,
    AnalyticsResponse,
    CheckoutResponse,
    CreateCheckoutRequest,
    GeneratePdfRequest,
    GenerationHistoryResponse,
    InsufficientCreditsResponse,
    SimpleErrorResponse,
)
from namegen.models.domain import AuthenticatedUser
from namegen.observability.metrics import metrics
from namegen.services.analytics import AnalyticsIngestor, client_ip_from_headers
from namegen.services.cache import Cache, invalidate_user_data
from namegen.services.certificate import (
    CERTIFICATE_PDF_OPTIONS,
    certificate_file_name,
    generate_certificate_html,
)
from namegen.services.history import GenerationHistoryService
from namegen.services.ledger import EntitlementLedger
from namegen.services.orchestrator import OrchestrationState, RequestOrchestrator
from namegen.services.payment_provider import CheckoutRequest, PaymentProvider
from namegen.services.pdf_renderer import DocumentRenderer
from namegen.services.product_catalog import ProductCatalog

logger = get_logger(__name__)

router = APIRouter(prefix="/api")

PDF_GENERATION_COST = 1
PDF_OPERATION = "pdf_generation"

# Characters encodeURIComponent leaves unescaped besides [A-Za-z0-9_.-~]
URI_COMPONENT_SAFE = "!*'()"


def _error(status_code: int, message: str, details: str | None = None) -> JSONResponse:
    """Plain {error, details?} body; details are dropped in production."""
    body = SimpleErrorResponse(
        error=message, details=None if settings.is_production else details
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def _read_json(request: Request) -> Any:
    """Request body as JSON, or None when it is empty or malformed."""
    try:
        return await request.json()
    except ValueError:
        return None


def content_disposition(file_name: str) -> str:
    """attachment header with the file name percent-encoded like encodeURIComponent."""
    return f'attachment; filename="{quote(file_name, safe=URI_COMPONENT_SAFE)}"'


# ============================================================================
# PDF certificate export (1 credit)
# ============================================================================


@router.post("/generate-pdf", response_model=None)
async def generate_pdf(
    request: Request,
    user: AuthenticatedUser | None = Depends(get_optional_user),
    ledger: EntitlementLedger = Depends(get_ledger),
    renderer: DocumentRenderer | None = Depends(get_renderer),
    cache: Cache = Depends(get_cache),
) -> Response:
    """
    Render the name certificate and charge one credit for it.

    401 no session, 400 missing nameData/userData, 503 renderer unavailable,
    403 insufficient credits, 500 render failure, 200 application/pdf.
    """
    if user is None:
        return _error(status.HTTP_401_UNAUTHORIZED, "Authentication required for PDF generation")

    body = await _read_json(request)
    try:
        pdf_request = GeneratePdfRequest.model_validate(body if isinstance(body, dict) else {})
    except ValidationError as exc:
        logger.info("pdf_request_invalid", user_id=user.id, errors=exc.error_count())
        return _error(status.HTTP_400_BAD_REQUEST, "Missing required data: nameData and userData")

    name_data, user_data = pdf_request.name_data, pdf_request.user_data
    if name_data is None or user_data is None:
        return _error(status.HTTP_400_BAD_REQUEST, "Missing required data: nameData and userData")

    if renderer is None:
        return _error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "PDF generation service is currently unavailable. Please try again later.",
        )

    async def render() -> bytes:
        html = generate_certificate_html(name_data, user_data)
        return await renderer.render_document(html, CERTIFICATE_PDF_OPTIONS)

    orchestrator = RequestOrchestrator(ledger, operation=PDF_OPERATION)
    try:
        outcome = await orchestrator.run_paid_operation(
            user=user,
            cost=PDF_GENERATION_COST,
            side_effect=render,
            description=PDF_OPERATION,
            metadata={
                "chinese_name": name_data.chinese,
                "english_name": user_data.english_name,
                "generated_at": datetime.now(UTC).isoformat(),
            },
            timeout=settings.pdf_render_timeout_seconds,
            availability_check=renderer.is_available,
        )
    except DatabaseError as exc:
        logger.error("pdf_credit_lookup_failed", user_id=user.id, error=str(exc))
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Unable to verify user credits")

    if outcome.state == OrchestrationState.ENTITLEMENT_DENIED:
        denied = InsufficientCreditsResponse(
            error="Insufficient credits. PDF generation requires 1 credit.",
            credits_required=outcome.credits_required or PDF_GENERATION_COST,
            current_credits=outcome.current_credits or 0,
        )
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content=denied.model_dump(by_alias=True, mode="json"),
        )

    if outcome.state == OrchestrationState.DEPENDENCY_UNAVAILABLE:
        return _error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "PDF generation service is currently unavailable. Please try again later.",
        )

    if not outcome.delivered or outcome.result is None:
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to generate PDF certificate. Please try again.",
            details=outcome.error.message if outcome.error else "Unknown error",
        )

    invalidate_user_data(cache, user.id)

    pdf_bytes: bytes = outcome.result
    file_name = certificate_file_name(name_data)
    logger.info(
        "pdf_certificate_delivered",
        user_id=user.id,
        state=outcome.state.value,
        size_bytes=len(pdf_bytes),
        credits_after=outcome.current_credits,
    )
    return Response(
        content=pdf_bytes,
        status_code=status.HTTP_200_OK,
        media_type="application/pdf",
        headers={
            "Content-Disposition": content_disposition(file_name),
            "Content-Length": str(len(pdf_bytes)),
        },
    )


# ============================================================================
# Checkout
# ============================================================================


@router.post("/creem/create-checkout", response_model=CheckoutResponse)
async def create_checkout(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    catalog: ProductCatalog = Depends(get_catalog),
    provider: PaymentProvider | None = Depends(get_payment_provider),
) -> CheckoutResponse | JSONResponse:
    """
    Start a hosted checkout for a subscription tier or credit pack.

    The product is resolved from productId, then tierId, then productType;
    see ProductCatalog.resolve.
    """
    body = await _read_json(request)
    try:
        checkout = CreateCheckoutRequest.model_validate(body if isinstance(body, dict) else {})
    except ValidationError as exc:
        logger.info("checkout_request_invalid", user_id=user.id, errors=exc.error_count())
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid checkout request")

    resolved = catalog.resolve(
        product_id=checkout.product_id,
        tier_id=checkout.tier_id,
        product_type=checkout.product_type,
        credits_amount=checkout.credits_amount,
    )

    if provider is None:
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Missing CREEM_API_URL or CREEM_API_KEY. Please set them in your environment.",
        )

    if not user.email:
        return _error(
            status.HTTP_400_BAD_REQUEST,
            "User email not available. Please ensure the user has a valid email.",
        )

    try:
        checkout_url = await provider.create_checkout_session(
            CheckoutRequest(
                product_id=resolved.product_id,
                customer_email=user.email,
                user_id=user.id,
                product_type=resolved.product_type,
                credits_amount=resolved.credits_amount,
                discount_code=checkout.discount_code,
            )
        )
    except PaymentProviderError as exc:
        metrics.record_checkout(resolved.product_type.value, success=False)
        logger.error("checkout_failed", user_id=user.id, error=exc.message)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to create checkout session",
            details=exc.message,
        )

    metrics.record_checkout(resolved.product_type.value, success=True)
    return CheckoutResponse(checkout_url=checkout_url)


# ============================================================================
# Generation history
# ============================================================================


@router.get("/generation-history", response_model=GenerationHistoryResponse)
async def generation_history(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
) -> GenerationHistoryResponse | JSONResponse:
    """Last 20 generation sessions with aggregate stats (cached briefly per user)."""
    service = GenerationHistoryService(db, cache)
    try:
        return await service.get_history(user.id)
    except DatabaseError:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to fetch generation history")


# ============================================================================
# Analytics ingestion (no authentication)
# ============================================================================


@router.post("/analytics", response_model=AnalyticsResponse)
async def ingest_analytics(request: Request) -> AnalyticsResponse | JSONResponse:
    """Accept a batch of client events or page views."""
    body = await _read_json(request)
    if (
        not isinstance(body, dict)
        or not body.get("type")
        or not isinstance(body.get("data"), list)
    ):
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid analytics payload")

    if not isinstance(body["type"], str) or body["type"] not in {
        kind.value for kind in AnalyticsPayloadType
    }:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid analytics type")

    try:
        payload = AnalyticsPayload.model_validate(body)
    except ValidationError:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid analytics payload")

    client_ip = client_ip_from_headers(request.headers)
    await AnalyticsIngestor().ingest(payload, client_ip)
    return AnalyticsResponse(success=True)


@router.get("/analytics")
async def analytics_health() -> dict[str, str]:
    """Liveness of the analytics endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "version": settings.api_version,
    }
