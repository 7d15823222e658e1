"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

from visionai.config import settings


class VisionMetrics:
    """
    Centralized metrics for the VisionAI API.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Payment intents (created, failed)
    - Reconciliations (by confirmation path and outcome)
    - Credit grants and deductions
    - Auth rate limiting (decisions, tracked clients)
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info("visionai_service", "Service information")
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
            "visionai_http_requests_total",
            "Total HTTP requests",
            ["endpoint", "method", "status_code"],
        )

        self.http_request_duration_seconds = Histogram(
            "visionai_http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["endpoint", "method"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "visionai_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            ["endpoint", "method"],
        )

        # ====================================================================
        # Payment Metrics
        # ====================================================================
        self.payment_intents_total = Counter(
            "visionai_payment_intents_total",
            "Payment intents requested",
            ["plan_id", "success"],
        )

        self.reconciliations_total = Counter(
            "visionai_reconciliations_total",
            "Payment reconciliations by confirmation path and outcome",
            ["source", "outcome"],
        )

        self.gateway_call_duration_seconds = Histogram(
            "visionai_gateway_call_duration_seconds",
            "Payment gateway call duration in seconds",
            ["operation"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        # ====================================================================
        # Credit Metrics
        # ====================================================================
        self.credits_granted_total = Counter(
            "visionai_credits_granted_total",
            "Credits granted through successful payments",
            ["plan_id"],
        )

        self.credits_deducted_total = Counter(
            "visionai_credits_deducted_total",
            "Credits deducted from balances",
        )

        # ====================================================================
        # Rate Limiting Metrics
        # ====================================================================
        self.rate_limit_decisions_total = Counter(
            "visionai_rate_limit_decisions_total",
            "Rate limit decisions",
            ["limiter", "allowed"],
        )

        self.rate_limit_entries = Gauge(
            "visionai_rate_limit_entries",
            "Client identifiers currently tracked by a rate limiter",
            ["limiter"],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "visionai_errors_total",
            "Total errors by type",
            ["error_type", "operation"],
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

    def record_payment_intent(self, plan_id: str, success: bool) -> None:
        """Record a payment intent creation attempt."""
        self.payment_intents_total.labels(plan_id=plan_id, success=str(success)).inc()

    def record_reconciliation(self, source: str, outcome: str) -> None:
        """Record a reconciliation outcome (credited, already_processed, rejected)."""
        self.reconciliations_total.labels(source=source, outcome=outcome).inc()

    def record_gateway_call(self, operation: str, duration: float) -> None:
        """Record gateway call latency."""
        self.gateway_call_duration_seconds.labels(operation=operation).observe(duration)

    def record_credit_grant(self, plan_id: str, credits: int) -> None:
        """Record credits granted by a payment."""
        self.credits_granted_total.labels(plan_id=plan_id).inc(credits)

    def record_rate_limit(self, limiter: str, allowed: bool, tracked: int) -> None:
        """Record a rate limit decision and the current number of tracked clients."""
        self.rate_limit_decisions_total.labels(limiter=limiter, allowed=str(allowed)).inc()
        self.rate_limit_entries.labels(limiter=limiter).set(tracked)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = VisionMetrics()
