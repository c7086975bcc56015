"""
Error Classifier - Maps arbitrary failures onto the closed ErrorType taxonomy.

Classification is an ordered rule table evaluated first-match-wins over the
lowercased failure message and an optional caller-supplied context string.
The order and the per-type defaults are part of the client contract: clients
branch on ``type`` and ``retryable`` only.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from namegen.exceptions import AppErrorException
from namegen.models.api import ErrorResponse, ErrorSeverity, ErrorType
from namegen.models.domain import AppError

_DEFAULT_SEVERITY: dict[ErrorType, ErrorSeverity] = {
    ErrorType.VALIDATION: ErrorSeverity.LOW,
    ErrorType.RATE_LIMIT: ErrorSeverity.MEDIUM,
    ErrorType.NETWORK: ErrorSeverity.MEDIUM,
    ErrorType.EXTERNAL_SERVICE: ErrorSeverity.MEDIUM,
    ErrorType.AUTHENTICATION: ErrorSeverity.HIGH,
    ErrorType.AUTHORIZATION: ErrorSeverity.HIGH,
    ErrorType.PAYMENT: ErrorSeverity.HIGH,
    ErrorType.DATABASE: ErrorSeverity.HIGH,
}

_NOT_RETRYABLE = frozenset(
    {ErrorType.VALIDATION, ErrorType.AUTHENTICATION, ErrorType.AUTHORIZATION}
)

_STATUS_CODES: dict[ErrorType, int] = {
    ErrorType.VALIDATION: 400,
    ErrorType.AUTHENTICATION: 401,
    ErrorType.AUTHORIZATION: 403,
    ErrorType.NOT_FOUND: 404,
    ErrorType.CONFLICT: 409,
    ErrorType.RATE_LIMIT: 429,
}

_USER_MESSAGES: dict[ErrorType, str] = {
    ErrorType.VALIDATION: (
        "Please check your input and ensure all required fields are filled correctly."
    ),
    ErrorType.AUTHENTICATION: "Please sign in to continue with this action.",
    ErrorType.AUTHORIZATION: "You don't have permission to perform this action.",
    ErrorType.RATE_LIMIT: "You've reached the usage limit. Please wait before trying again.",
    ErrorType.PAYMENT: "Payment failed. Please check your payment details and try again.",
    ErrorType.EXTERNAL_SERVICE: (
        "External service is temporarily unavailable. Please try again later."
    ),
    ErrorType.DATABASE: "Data operation failed. Please try again.",
    ErrorType.NETWORK: "Connection problem. Please check your internet and try again.",
    ErrorType.NOT_FOUND: "The requested resource was not found.",
    ErrorType.CONFLICT: "This action conflicts with existing data. Please refresh and try again.",
}


def default_severity(error_type: ErrorType) -> ErrorSeverity:
    """Default severity for an error type (internal and unlisted types are critical)."""
    return _DEFAULT_SEVERITY.get(error_type, ErrorSeverity.CRITICAL)


def default_retryable(error_type: ErrorType) -> bool:
    """Validation, authentication and authorization failures are never retryable."""
    return error_type not in _NOT_RETRYABLE


def status_code_for(error_type: ErrorType) -> int:
    """HTTP status for an error type."""
    return _STATUS_CODES.get(error_type, 500)


def error_type_for_status(status_code: int) -> ErrorType:
    """Inverse of status_code_for; unknown statuses are internal."""
    for error_type, code in _STATUS_CODES.items():
        if code == status_code:
            return error_type
    return ErrorType.INTERNAL


def user_message_for(error_type: ErrorType) -> str:
    """Generic user-facing message for an error type."""
    return _USER_MESSAGES.get(error_type, "An unexpected error occurred. Please try again.")


def create_error(
    error_type: ErrorType,
    user_message: str,
    technical_message: str | None = None,
    *,
    code: str | None = None,
    details: Any | None = None,
    suggestions: Sequence[str] = (),
    retryable: bool | None = None,
    severity: ErrorSeverity | None = None,
) -> AppError:
    """Build an AppError, filling severity and retryable from the type defaults."""
    return AppError(
        type=error_type,
        severity=severity or default_severity(error_type),
        message=technical_message or user_message,
        user_message=user_message,
        code=code,
        details=details,
        suggestions=tuple(suggestions),
        retryable=default_retryable(error_type) if retryable is None else retryable,
    )


@dataclass(frozen=True)
class ClassificationRule:
    """One row of the classification table."""

    error_type: ErrorType
    message_terms: tuple[str, ...]
    user_message: str
    code: str
    context_terms: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()

    def matches(self, message: str, context: str) -> bool:
        """True if any context term is in the context or any message term is in the message."""
        if any(term in context for term in self.context_terms):
            return True
        return any(term in message for term in self.message_terms)

    def build(self, technical_message: str) -> AppError:
        """Produce the AppError for a failure matched by this rule."""
        return create_error(
            self.error_type,
            self.user_message,
            technical_message,
            code=self.code,
            suggestions=self.suggestions,
        )


CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        error_type=ErrorType.AUTHENTICATION,
        message_terms=("unauthorized", "authentication", "invalid token", "jwt"),
        user_message="Please sign in to continue.",
        code="AUTH_REQUIRED",
        suggestions=("Sign in to your account", "Check if your session has expired"),
    ),
    ClassificationRule(
        error_type=ErrorType.AUTHORIZATION,
        message_terms=("forbidden", "access denied", "insufficient permissions"),
        user_message="You don't have permission to perform this action.",
        code="ACCESS_DENIED",
    ),
    ClassificationRule(
        error_type=ErrorType.RATE_LIMIT,
        message_terms=("rate limit", "too many requests", "quota exceeded"),
        user_message=(
            "You've made too many requests. Please wait a moment before trying again."
        ),
        code="RATE_LIMIT_EXCEEDED",
        suggestions=(
            "Wait a few minutes before trying again",
            "Consider upgrading your plan for higher limits",
        ),
    ),
    ClassificationRule(
        error_type=ErrorType.PAYMENT,
        message_terms=("payment", "billing", "creem"),
        context_terms=("payment", "checkout"),
        user_message=(
            "Payment processing failed. Please check your payment details and try again."
        ),
        code="PAYMENT_FAILED",
        suggestions=(
            "Check your payment method details",
            "Ensure you have sufficient funds",
            "Try a different payment method",
        ),
    ),
    ClassificationRule(
        error_type=ErrorType.VALIDATION,
        message_terms=("validation", "invalid", "required", "bad request"),
        user_message="Please check your input and try again.",
        code="VALIDATION_ERROR",
        suggestions=(
            "Double-check all form fields",
            "Ensure all required fields are filled",
            "Check for any invalid characters",
        ),
    ),
    ClassificationRule(
        error_type=ErrorType.NETWORK,
        message_terms=("network", "fetch", "connection", "timeout"),
        user_message=(
            "Connection problem. Please check your internet connection and try again."
        ),
        code="NETWORK_ERROR",
        suggestions=(
            "Check your internet connection",
            "Try refreshing the page",
            "Wait a moment and try again",
        ),
    ),
    ClassificationRule(
        error_type=ErrorType.DATABASE,
        message_terms=("database", "constraint", "duplicate"),
        context_terms=("database", "supabase"),
        user_message="Data storage error. Please try again.",
        code="DATABASE_ERROR",
    ),
    ClassificationRule(
        error_type=ErrorType.EXTERNAL_SERVICE,
        message_terms=("openai", "ai", "api"),
        context_terms=("openai", "generation"),
        user_message=(
            "AI service is temporarily unavailable. Please try again in a few moments."
        ),
        code="EXTERNAL_SERVICE_ERROR",
        suggestions=(
            "Wait a few minutes and try again",
            "Try refreshing the page",
            "Contact support if the problem persists",
        ),
    ),
)


def classify(error: object, context: str | None = None) -> AppError:
    """
    Convert any failure into an AppError.

    Already-typed errors pass through unchanged. Values that are not
    exceptions at all become a fixed internal error without consulting the
    table. Exceptions are matched against CLASSIFICATION_RULES in order; the
    first matching rule wins and unmatched failures become critical internal
    errors.
    """
    if isinstance(error, AppError):
        return error
    if isinstance(error, AppErrorException):
        return error.app_error
    if not isinstance(error, BaseException):
        return create_error(
            ErrorType.INTERNAL,
            "An unexpected error occurred. Please try again.",
            f"Unknown error: {error}",
            severity=ErrorSeverity.HIGH,
            retryable=True,
            suggestions=(
                "Refresh the page and try again",
                "Check your internet connection",
            ),
        )

    technical_message = str(error)
    message = technical_message.lower()
    context_lower = (context or "").lower()

    for rule in CLASSIFICATION_RULES:
        if rule.matches(message, context_lower):
            return rule.build(technical_message)

    return create_error(
        ErrorType.INTERNAL,
        "Something went wrong. Please try again.",
        technical_message,
    )


def to_error_response(
    app_error: AppError,
    request_id: str | None = None,
    include_details: bool = False,
) -> ErrorResponse:
    """Render an AppError as the wire-level error body."""
    return ErrorResponse(
        error=app_error.user_message,
        user_message=app_error.user_message,
        type=app_error.type,
        code=app_error.code,
        details=app_error.details if include_details else None,
        suggestions=list(app_error.suggestions),
        retryable=app_error.retryable,
        timestamp=datetime.now(UTC).isoformat(),
        request_id=request_id,
    )


# ============================================================================
# Factory helpers for common cases
# ============================================================================


def validation_error(message: str, details: Any | None = None) -> AppError:
    """Client input was rejected."""
    return create_error(ErrorType.VALIDATION, message, details=details, code="VALIDATION_ERROR")


def authentication_error(message: str | None = None) -> AppError:
    """No valid session."""
    return create_error(
        ErrorType.AUTHENTICATION,
        message or "Please sign in to continue.",
        code="AUTH_REQUIRED",
    )


def rate_limit_error(limit: int | None = None, window: str | None = None) -> AppError:
    """Caller exceeded a request budget."""
    if limit:
        user_message = (
            f"You can make {limit} requests per {window or 'minute'}. "
            "Please wait before trying again."
        )
    else:
        user_message = "Rate limit exceeded. Please wait before trying again."
    return create_error(
        ErrorType.RATE_LIMIT,
        user_message,
        code="RATE_LIMIT_EXCEEDED",
        suggestions=(
            "Wait a moment before trying again",
            "Consider upgrading your plan for higher limits",
        ),
    )


def external_service_error(service: str, message: str | None = None) -> AppError:
    """A named upstream dependency failed or is unavailable."""
    return create_error(
        ErrorType.EXTERNAL_SERVICE,
        f"{service} is temporarily unavailable. Please try again later.",
        message,
        code="EXTERNAL_SERVICE_ERROR",
        suggestions=("Wait a few minutes and try again", "Try refreshing the page"),
    )
