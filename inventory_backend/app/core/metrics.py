"""
Prometheus metrics for application monitoring.

HTTP metrics are collected by PrometheusMiddleware. Inventory metrics go
through an InventoryObserver that is handed to the ledger, the reservation
service and the sweeper, so each application (or test) owns its collectors.
"""
import time
from typing import Optional

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


class InventoryObserver:
    """Side-effect hooks for inventory events. The base class ignores everything."""

    def reservation_created(self, item_count: int) -> None:
        pass

    def reservation_confirmed(self) -> None:
        pass

    def reservation_released(self) -> None:
        pass

    def reservation_expired(self) -> None:
        pass

    def stock_status_changed(self, sku: str, old_status: Optional[str], new_status: str) -> None:
        pass

    def low_stock_count(self, count: int) -> None:
        pass


class PrometheusInventoryObserver(InventoryObserver):
    """Registers inventory counters and the low-stock gauge on a registry."""

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.registry = registry
        self.reservations_created = Counter(
            "inventory_reservations_created",
            "Total reservations created",
            registry=registry,
        )
        self.reservation_items_reserved = Counter(
            "inventory_reservation_items_reserved",
            "Total reservation line items reserved",
            registry=registry,
        )
        self.reservations_confirmed = Counter(
            "inventory_reservations_confirmed",
            "Total reservations confirmed",
            registry=registry,
        )
        self.reservations_released = Counter(
            "inventory_reservations_released",
            "Total reservations released by callers",
            registry=registry,
        )
        self.reservations_expired = Counter(
            "inventory_reservations_expired",
            "Total reservations released by the expiry sweeper",
            registry=registry,
        )
        self.stock_status_changes = Counter(
            "inventory_stock_status_changes",
            "Stock status transitions by resulting status",
            ["status"],
            registry=registry,
        )
        self.low_stock_items = Gauge(
            "inventory_low_stock_items",
            "Number of low stock items",
            registry=registry,
        )

    def reservation_created(self, item_count: int) -> None:
        self.reservations_created.inc()
        self.reservation_items_reserved.inc(item_count)

    def reservation_confirmed(self) -> None:
        self.reservations_confirmed.inc()

    def reservation_released(self) -> None:
        self.reservations_released.inc()

    def reservation_expired(self) -> None:
        self.reservations_expired.inc()

    def stock_status_changed(self, sku: str, old_status: Optional[str], new_status: str) -> None:
        # no sku label: one series per SKU would be unbounded
        self.stock_status_changes.labels(status=new_status).inc()

    def low_stock_count(self, count: int) -> None:
        self.low_stock_items.set(count)


# Request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0]
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP request metrics."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        # Skip metrics endpoint itself
        if request.url.path == "/metrics":
            return await call_next(request)

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration = time.time() - start_time
            # Route template (/{sku}) rather than the raw path keeps labels bounded
            route = request.scope.get("route")
            endpoint = getattr(route, "path", None) or request.url.path

            http_requests_total.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status_code
            ).inc()

            http_request_duration_seconds.labels(
                method=request.method,
                endpoint=endpoint
            ).observe(duration)

        return response


def get_metrics_response(registry: CollectorRegistry = REGISTRY) -> Response:
    """Render the registry in the Prometheus text format."""
    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)
