"""
Prometheus metrics for the booking pipeline.

Service timings come from ``@BaseService.measure_operation``; the domain
counters below track best-effort steps, settlement paths and the gift card
saga so silent degradations remain visible.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "beautonomi_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "beautonomi_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "beautonomi_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

booking_post_creation_steps_total = Counter(
    "beautonomi_booking_post_creation_steps_total",
    "Outcomes of best-effort steps that run after a booking is committed",
    ["step", "status"],  # success | failed | skipped
    registry=REGISTRY,
)

settlement_outcomes_total = Counter(
    "beautonomi_settlement_outcomes_total",
    "Payment settlement outcomes by funding path",
    ["path", "status"],
    registry=REGISTRY,
)

gift_card_transitions_total = Counter(
    "beautonomi_gift_card_transitions_total",
    "Gift card reservation lifecycle transitions",
    ["transition"],  # reserved | captured | released | voided
    registry=REGISTRY,
)

notifications_outbox_total = Counter(
    "beautonomi_notifications_outbox_total",
    "Total notification outbox events by terminal status",
    ["status", "event_type"],
    registry=REGISTRY,
)

notifications_outbox_attempt_total = Counter(
    "beautonomi_notifications_outbox_attempt_total",
    "Number of notification outbox delivery attempts",
    ["event_type"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'BookingCreationService')
            operation: Operation name (e.g., 'reserve_and_insert')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_post_creation_step(step: str, status: str) -> None:
        booking_post_creation_steps_total.labels(step=step, status=status).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_settlement(path: str, status: str) -> None:
        settlement_outcomes_total.labels(path=path, status=status).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_gift_card_transition(transition: str, count: int = 1) -> None:
        if count > 0:
            gift_card_transitions_total.labels(transition=transition).inc(count)
            PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_notification_attempt(event_type: str) -> None:
        """Increment attempt counter for notification outbox delivery."""
        notifications_outbox_attempt_total.labels(event_type=event_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_notification_outcome(event_type: str, status: str) -> None:
        """Record terminal outcome for notification outbox delivery."""
        notifications_outbox_total.labels(status=status, event_type=event_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate metrics in Prometheus text format, cached for a short TTL."""
        now = monotonic()
        with PrometheusMetrics._cache_lock:
            payload = PrometheusMetrics._cache_payload
            ts = PrometheusMetrics._cache_ts
            if payload is None or ts is None or (now - ts) > PrometheusMetrics._cache_ttl_seconds:
                payload = cast(bytes, generate_latest(REGISTRY))
                PrometheusMetrics._cache_payload = payload
                PrometheusMetrics._cache_ts = now
        return payload

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


# Singleton instance
prometheus_metrics = PrometheusMetrics()
