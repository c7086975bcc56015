"""
API Models - Pydantic models for request/response validation.

Field aliases keep the camelCase wire format the web client already speaks.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorType(str, Enum):
    """Closed taxonomy of failure kinds exposed to clients."""

    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    RATE_LIMIT = "rate_limit"
    PAYMENT = "payment"
    EXTERNAL_SERVICE = "external_service"
    DATABASE = "database"
    NETWORK = "network"
    INTERNAL = "internal"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


class ErrorSeverity(str, Enum):
    """Severity attached to every classified error."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class CreditTransactionType(str, Enum):
    """Direction of a credits_history row."""

    ADD = "add"
    SUBTRACT = "subtract"


class ProductType(str, Enum):
    """Checkout product kinds understood by the payment provider."""

    SUBSCRIPTION = "subscription"
    CREDITS = "credits"


class AnalyticsPayloadType(str, Enum):
    """Batch kinds accepted by the analytics endpoint."""

    EVENTS = "events"
    PAGE_VIEWS = "page_views"


class _CamelModel(BaseModel):
    """Base model accepting both field names and camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Error Models
# ============================================================================


class ErrorResponse(_CamelModel):
    """Body of every classified error response."""

    error: str
    user_message: str = Field(..., alias="userMessage")
    type: ErrorType
    code: str | None = None
    details: Any | None = None
    suggestions: list[str] = Field(default_factory=list)
    retryable: bool
    timestamp: str
    request_id: str | None = Field(None, alias="requestId")


# ============================================================================
# PDF Certificate Models
# ============================================================================


class NameCharacter(_CamelModel):
    """One character of a generated Chinese name."""

    character: str
    pinyin: str
    meaning: str = ""
    explanation: str = ""


class NameData(_CamelModel):
    """Generated name rendered onto the certificate."""

    chinese: str = Field(..., min_length=1)
    pinyin: str = ""
    characters: list[NameCharacter] = Field(default_factory=list)
    meaning: str = ""
    cultural_notes: str = Field("", alias="culturalNotes")
    personality_match: str = Field("", alias="personalityMatch")
    style: str = ""


class UserData(_CamelModel):
    """Requesting user's details printed on the certificate."""

    english_name: str = Field("", alias="englishName")
    gender: str = ""


class GeneratePdfRequest(_CamelModel):
    """POST /api/generate-pdf request body."""

    name_data: NameData | None = Field(None, alias="nameData")
    user_data: UserData | None = Field(None, alias="userData")


class InsufficientCreditsResponse(_CamelModel):
    """403 body returned when the balance cannot cover the operation."""

    error: str
    credits_required: int = Field(..., alias="creditsRequired")
    current_credits: int = Field(..., alias="currentCredits")


class SimpleErrorResponse(BaseModel):
    """Plain {error, details?} body for route-level failures."""

    error: str
    details: str | None = None


# ============================================================================
# Checkout Models
# ============================================================================


class CreateCheckoutRequest(_CamelModel):
    """POST /api/creem/create-checkout request body."""

    product_id: str | None = Field(None, alias="productId")
    tier_id: str | None = Field(None, alias="tierId")
    product_type: str | None = Field(None, alias="productType")
    credits_amount: int | None = Field(None, gt=0)
    quantity: int | None = None  # deprecated; accepted for older clients
    discount_code: str | None = Field(None, alias="discountCode")


class CheckoutResponse(_CamelModel):
    """POST /api/creem/create-checkout response."""

    checkout_url: str = Field(..., alias="checkoutUrl")


# ============================================================================
# Generation History Models
# ============================================================================


class GenerationLogItem(BaseModel):
    """One name generation session with derived flags."""

    id: str
    user_id: str
    plan_type: str | None = None
    credits_used: int = 0
    names_generated: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    has_personality_traits: bool = False
    has_name_preferences: bool = False


class GenerationStats(BaseModel):
    """Aggregates over the returned generation logs."""

    total_generations: int = 0
    total_credits_used: int = 0
    total_names_generated: int = 0
    avg_per_session: float = 0.0


class GenerationHistoryResponse(BaseModel):
    """GET /api/generation-history response."""

    logs: list[GenerationLogItem] = Field(default_factory=list)
    stats: GenerationStats = Field(default_factory=GenerationStats)


# ============================================================================
# Analytics Models
# ============================================================================


class AnalyticsEvent(_CamelModel):
    """Client-side behavioural event."""

    event: str = Field(..., min_length=1)
    properties: dict[str, Any] = Field(default_factory=dict)
    timestamp: str | None = None
    session_id: str | None = Field(None, alias="sessionId")
    user_id: str | None = Field(None, alias="userId")
    page: str | None = None
    referrer: str | None = None
    user_agent: str | None = Field(None, alias="userAgent")


class PageView(_CamelModel):
    """Client-side page view."""

    page: str
    title: str = ""
    timestamp: str | None = None
    session_id: str | None = Field(None, alias="sessionId")
    user_id: str | None = Field(None, alias="userId")
    referrer: str | None = None
    utm_source: str | None = Field(None, alias="utmSource")
    utm_medium: str | None = Field(None, alias="utmMedium")
    utm_campaign: str | None = Field(None, alias="utmCampaign")


class AnalyticsPayload(BaseModel):
    """POST /api/analytics request body."""

    type: AnalyticsPayloadType
    data: list[Any]
    timestamp: str | None = None


class AnalyticsResponse(BaseModel):
    """POST /api/analytics response."""

    success: bool = True
