"""
Prometheus metrics module for IceTime.

Service timings come from the ``@measure_operation`` decorator; the domain
counters below are fed directly by the booking engine services.
"""

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

http_request_duration_seconds = Histogram(
    "icetime_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_total = Counter(
    "icetime_http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

service_operation_duration_seconds = Histogram(
    "icetime_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "icetime_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "icetime_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

reservations_total = Counter(
    "icetime_reservations_total",
    "Reservation attempts by program and outcome",
    ["program_type", "outcome"],
    registry=REGISTRY,
)

credits_moved_total = Counter(
    "icetime_credits_moved_total",
    "Credits moved through the ledger, by entry type",
    ["entry_type"],
    registry=REGISTRY,
)

recurring_occurrences_total = Counter(
    "icetime_recurring_occurrences_total",
    "Recurring schedule occurrences processed, by outcome",
    ["outcome"],
    registry=REGISTRY,
)

pairing_actions_total = Counter(
    "icetime_pairing_actions_total",
    "Pairings committed and dissolved",
    ["action"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    @staticmethod
    def record_http_request(method: str, endpoint: str, duration: float, status_code: int) -> None:
        labels = {"method": method, "endpoint": endpoint, "status_code": str(status_code)}
        http_request_duration_seconds.labels(**labels).observe(duration)
        http_requests_total.labels(**labels).inc()

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
            service: Service name (e.g., 'BookingService')
            operation: Operation/method name (e.g., 'reserve')
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

    @staticmethod
    def inc_reservation(program_type: str, outcome: str) -> None:
        reservations_total.labels(program_type=program_type, outcome=outcome).inc()

    @staticmethod
    def inc_credits(entry_type: str, quantity: int) -> None:
        if quantity:
            credits_moved_total.labels(entry_type=entry_type).inc(abs(quantity))

    @staticmethod
    def inc_recurring_occurrence(outcome: str) -> None:
        recurring_occurrences_total.labels(outcome=outcome).inc()

    @staticmethod
    def inc_pairing_action(action: str) -> None:
        pairing_actions_total.labels(action=action).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
