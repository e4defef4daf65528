"""
Metrics Collection with Prometheus.

Exposes entitlement, billing and chat relay metrics for monitoring.
"""

import time
from collections.abc import Callable
from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    ERROR_TYPE = "error_type"
    MODEL = "model"
    OUTCOME = "outcome"


class EntitlementMetrics:
    """
    Centralized metrics for the entitlements API.

    Covers:
    - HTTP requests (rate, duration, in flight)
    - Ledger debits (rate, token amounts, monthly resets)
    - Admission decisions
    - Subscription lifecycle events
    - LLM relay calls (rate, duration, fallbacks)
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "entitlements_service",
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
            "entitlements_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "entitlements_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
        )

        self.http_requests_in_progress = Gauge(
            "entitlements_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Ledger Metrics
        # ====================================================================
        self.debits_total = Counter(
            "entitlements_debits_total",
            "Total ledger debits",
            ["source", "success"],
        )

        self.debit_tokens = Histogram(
            "entitlements_debit_tokens",
            "Tokens debited per call",
            buckets=(10, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 50000),
        )

        self.monthly_resets_total = Counter(
            "entitlements_monthly_resets_total",
            "Monthly quota rollovers applied",
        )

        self.accounts_created_total = Counter(
            "entitlements_accounts_created_total",
            "Total accounts created",
        )

        self.admission_checks_total = Counter(
            "entitlements_admission_checks_total",
            "Admission decisions",
            ["allowed"],
        )

        self.db_write_verifications_total = Counter(
            "entitlements_db_write_verifications_total",
            "Total write verification checks",
            ["success"],
        )

        # ====================================================================
        # Subscription Metrics
        # ====================================================================
        self.subscription_events_total = Counter(
            "entitlements_subscription_events_total",
            "Subscription lifecycle events",
            ["action", MetricLabels.OUTCOME],
        )

        # ====================================================================
        # LLM Relay Metrics
        # ====================================================================
        self.llm_calls_total = Counter(
            "entitlements_llm_calls_total",
            "Calls to the LLM aggregation API",
            [MetricLabels.MODEL, MetricLabels.OUTCOME],
        )

        self.llm_call_duration_seconds = Histogram(
            "entitlements_llm_call_duration_seconds",
            "LLM call duration in seconds",
            [MetricLabels.MODEL],
            buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 45.0),
        )

        self.llm_fallbacks_total = Counter(
            "entitlements_llm_fallbacks_total",
            "Retries against the fallback model",
        )

        self.tokens_estimated_total = Counter(
            "entitlements_tokens_estimated_total",
            "Chat turns whose token count was estimated rather than reported",
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "entitlements_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_debit(self, source: str, success: bool, tokens: int) -> None:
        """Record a ledger debit."""
        self.debits_total.labels(source=source, success=str(success)).inc()
        if success and tokens > 0:
            self.debit_tokens.observe(tokens)

    def record_admission(self, allowed: bool) -> None:
        self.admission_checks_total.labels(allowed=str(allowed)).inc()

    def record_subscription_event(self, action: str, outcome: str) -> None:
        """Record a subscription create/verify/cancel outcome."""
        self.subscription_events_total.labels(action=action, outcome=outcome).inc()

    def record_llm_call(self, model: str, outcome: str, duration: float) -> None:
        """Record one LLM call."""
        self.llm_calls_total.labels(model=model, outcome=outcome).inc()
        self.llm_call_duration_seconds.labels(model=model).observe(duration)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = EntitlementMetrics()


class track_http_request:
    """
    Context manager for tracking HTTP requests.

    Usage:
        with track_http_request("/v1/chat", "POST") as tracker:
            # ... process request
            tracker.set_status_code(200)
    """

    def __init__(self, endpoint: str, method: str) -> None:
        self.endpoint = endpoint
        self.method = method
        self.status_code = 200
        self.start_time: float = 0.0

    def set_status_code(self, status_code: int) -> None:
        """Set the response status code."""
        self.status_code = status_code

    def __enter__(self) -> "track_http_request":
        self.start_time = time.perf_counter()
        metrics.http_requests_in_progress.labels(
            endpoint=self.endpoint, method=self.method
        ).inc()
        return self

    def __exit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        duration = time.perf_counter() - self.start_time
        if exc_type is not None:
            self.status_code = 500
        metrics.record_http_request(self.endpoint, self.method, self.status_code, duration)
        metrics.http_requests_in_progress.labels(
            endpoint=self.endpoint, method=self.method
        ).dec()


def get_metrics_handler() -> Callable[[], bytes]:
    """Get Prometheus exposition handler for the /metrics route."""
    from prometheus_client import REGISTRY, generate_latest

    def metrics_endpoint() -> bytes:
        return generate_latest(REGISTRY)

    return metrics_endpoint
