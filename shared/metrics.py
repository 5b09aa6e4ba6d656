"""
Shared metrics configuration for the Eventboard Listings Layer.
"""

from prometheus_client import Counter, Histogram, Info, CollectorRegistry, generate_latest
from typing import Any, Dict, Optional, Tuple, Type
import time
import threading
from contextlib import contextmanager

MetricSpec = Tuple[str, Type[Any], str, Tuple[str, ...]]

# Every service exposes these
COMMON_METRICS: Tuple[MetricSpec, ...] = (
    ("http_requests_total", Counter, "Total HTTP requests", ("method", "endpoint", "status_code")),
    ("http_request_duration_seconds", Histogram, "HTTP request duration in seconds", ("method", "endpoint")),
    ("health_check_total", Counter, "Total health check requests", ("status",)),
    ("errors_total", Counter, "Total errors", ("error_type", "service")),
)

# Finder and cache metrics, labelled by listing entity
LISTINGS_METRICS: Tuple[MetricSpec, ...] = (
    ("cache_hits_total", Counter, "List requests answered from the cache", ("entity",)),
    ("cache_misses_total", Counter, "List requests answered from the store", ("entity",)),
    ("cache_invalidations_total", Counter, "Entity-wide list cache invalidations", ("entity",)),
    ("store_query_duration_seconds", Histogram, "Store slice and count query duration in seconds", ("entity",)),
)

SERVICE_METRICS: Dict[str, Tuple[MetricSpec, ...]] = {
    "listings": LISTINGS_METRICS,
}


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns its registry so several service instances can live in
    one process (tests) without duplicate-timeseries errors. Recording into a
    metric the collector does not define is a no-op.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()

        info = Info("service_info", "Service information", registry=self.registry)
        info.info({"service": service_name, "version": "1.0.0"})
        self._metrics["service_info"] = info

        for spec in COMMON_METRICS + SERVICE_METRICS.get(service_name, ()):
            self._register(*spec)

    def _register(self, name: str, metric_type: Type[Any], documentation: str, labels: Tuple[str, ...]):
        self._metrics[name] = metric_type(name, documentation, list(labels), registry=self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self.increment_counter("http_requests_total", method=method, endpoint=endpoint, status_code=str(status_code))
        self.observe_histogram("http_request_duration_seconds", duration, method=method, endpoint=endpoint)

    def record_health_check(self, status: str):
        self.increment_counter("health_check_total", status=status)

    def record_error(self, error_type: str, service: Optional[str] = None):
        self.increment_counter("errors_total", error_type=error_type, service=service or self.service_name)

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation into a histogram."""
        start_time = time.time()
        try:
            yield
        finally:
            self.observe_histogram(operation_name, time.time() - start_time, **labels)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        metric = self._metrics.get(metric_name)
        if metric is not None:
            with self._lock:
                metric.labels(**labels).inc()

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        metric = self._metrics.get(metric_name)
        if metric is not None:
            metric.labels(**labels).observe(value)

    def render(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
