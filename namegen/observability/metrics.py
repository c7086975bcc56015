"""
Prometheus metrics, scraped from GET /metrics.

HTTP series are labelled by route template, never by raw path. The
accounting-failure counter is the one to alert on: each increment is a
delivered PDF with no matching charge.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from namegen.config import settings


class MetricLabels(str, Enum):
    """Label names shared across series."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"
    PRODUCT_TYPE = "product_type"


class NameGenMetrics:
    """
    Centralized metrics for the name generator API.

    Covers:
    - HTTP requests (rate, duration, in-flight)
    - PDF renders (outcome, duration)
    - Credit charges and accounting failures
    - Checkout sessions
    - Cache lookups and analytics ingestion
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "namegen_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "namegen_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "namegen_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        self.http_requests_in_progress = Gauge(
            "namegen_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.METHOD],
        )

        # ====================================================================
        # Paid Operation Metrics
        # ====================================================================
        self.paid_operations_total = Counter(
            "namegen_paid_operations_total",
            "Paid operations by final orchestration state",
            [MetricLabels.OPERATION, "state"],
        )

        self.pdf_renders_total = Counter(
            "namegen_pdf_renders_total",
            "PDF render attempts",
            [MetricLabels.OUTCOME],
        )

        self.pdf_render_duration_seconds = Histogram(
            "namegen_pdf_render_duration_seconds",
            "PDF render duration in seconds",
            buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0),
        )

        # ====================================================================
        # Credit Metrics
        # ====================================================================
        self.charges_total = Counter(
            "namegen_charges_total",
            "Credit charge attempts",
            ["success", MetricLabels.ERROR_TYPE],
        )

        self.credits_charged_total = Counter(
            "namegen_credits_charged_total",
            "Total credits deducted from customers",
        )

        self.charge_duration_seconds = Histogram(
            "namegen_charge_duration_seconds",
            "Credit charge duration in seconds",
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
        )

        self.credit_accounting_failures_total = Counter(
            "namegen_credit_accounting_failures_total",
            "Side effects delivered without a recorded charge (needs reconciliation)",
            [MetricLabels.OPERATION],
        )

        # ====================================================================
        # Checkout Metrics
        # ====================================================================
        self.checkout_sessions_total = Counter(
            "namegen_checkout_sessions_total",
            "Checkout sessions requested from the payment provider",
            [MetricLabels.PRODUCT_TYPE, "success"],
        )

        # ====================================================================
        # Cache / Analytics Metrics
        # ====================================================================
        self.cache_lookups_total = Counter(
            "namegen_cache_lookups_total",
            "Read-through cache lookups",
            ["result"],
        )

        self.analytics_events_total = Counter(
            "namegen_analytics_events_total",
            "Analytics records ingested",
            ["kind", "event"],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "namegen_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Count and time one request under its route template."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_paid_operation(self, operation: str, state: str) -> None:
        """Record the terminal state of a paid operation."""
        self.paid_operations_total.labels(operation=operation, state=state).inc()

    def record_pdf_render(self, outcome: str, duration: float | None = None) -> None:
        """Record a PDF render attempt (success, failed, timeout, unavailable)."""
        self.pdf_renders_total.labels(outcome=outcome).inc()
        if duration is not None:
            self.pdf_render_duration_seconds.observe(duration)

    def record_charge(
        self, success: bool, amount: int, duration: float, error_type: str | None = None
    ) -> None:
        """Record credit charge metrics."""
        self.charges_total.labels(success=str(success), error_type=error_type or "none").inc()
        if success:
            self.credits_charged_total.inc(amount)
        self.charge_duration_seconds.observe(duration)

    def record_accounting_failure(self, operation: str) -> None:
        """Record a delivered side effect whose charge could not be written."""
        self.credit_accounting_failures_total.labels(operation=operation).inc()

    def record_checkout(self, product_type: str, success: bool) -> None:
        """Record a checkout session request."""
        self.checkout_sessions_total.labels(product_type=product_type, success=str(success)).inc()

    def record_cache_lookup(self, hit: bool) -> None:
        """Record a read-through cache hit or miss."""
        self.cache_lookups_total.labels(result="hit" if hit else "miss").inc()

    def record_analytics(self, kind: str, event: str) -> None:
        """Record one ingested analytics record."""
        self.analytics_events_total.labels(kind=kind, event=event).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Count an error classified at an outer boundary."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


metrics = NameGenMetrics()
