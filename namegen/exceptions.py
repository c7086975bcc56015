"""
Service exceptions. Every one carries typed attributes, never a payload dict.
"""

from namegen.models.domain import AppError


class NameGenError(Exception):
    """Base exception for all service errors."""

    pass


class AppErrorException(NameGenError):
    """Carries an already-classified AppError through the call stack."""

    def __init__(self, app_error: AppError) -> None:
        self.app_error = app_error
        super().__init__(app_error.message)


class InsufficientCreditsError(NameGenError):
    """Raised when customer has insufficient credits for an operation."""

    def __init__(self, balance: int, required: int) -> None:
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient credits. Balance: {balance}, Required: {required}")


class CustomerNotFoundError(NameGenError):
    """Raised when no customer row exists for a user."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"Customer not found for user {user_id}")


class DatabaseError(NameGenError):
    """Raised when database operation fails unexpectedly."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Database error: {message}")


class DependencyUnavailableError(NameGenError):
    """A dependency a paid side effect needs is down; nothing was attempted."""

    label = "Dependency unavailable"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"{self.label}: {message}")


class RendererUnavailableError(DependencyUnavailableError):
    """Raised when the document renderer cannot be started at all."""

    label = "Document renderer unavailable"


class DocumentRenderError(NameGenError):
    """Raised when rendering a specific document fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Document render failed: {message}")


class PaymentProviderError(NameGenError):
    """Raised when payment provider operation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Payment provider error: {message}")


class AuthenticationError(NameGenError):
    """Raised when the session token is missing or invalid."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")
