"""
Prometheus metrics for the Dex operator.

This module provides metrics collection for monitoring reconciliation
passes, child resource creation and client lifecycle transitions.
"""

import logging
import time
from contextlib import asynccontextmanager

# aiohttp is provided by kopf; reusing it keeps the HTTP stack consistent
from aiohttp.web import AppRunner, Application, Request, Response, TCPSite
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

# Dedicated registry so tests and the default process collectors never clash
_metrics_registry = CollectorRegistry()

RECONCILIATION_TOTAL = Counter(
    "dex_operator_reconciliation_total",
    "Total number of reconciliation attempts",
    ["resource_type", "namespace", "name", "result"],
    registry=_metrics_registry,
)

RECONCILIATION_DURATION = Histogram(
    "dex_operator_reconciliation_duration_seconds",
    "Time spent on reconciliation operations",
    ["resource_type", "namespace", "operation"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
    registry=_metrics_registry,
)

RECONCILIATION_ERRORS = Counter(
    "dex_operator_reconciliation_errors_total",
    "Total number of reconciliation errors",
    ["resource_type", "namespace", "error_type", "retryable"],
    registry=_metrics_registry,
)

CHILD_RESOURCES_CREATED = Counter(
    "dex_operator_child_resources_created_total",
    "Child resources created for DexServers",
    ["namespace", "kind"],
    registry=_metrics_registry,
)

CLIENT_STATE_TRANSITIONS = Counter(
    "dex_operator_client_state_transitions_total",
    "DexClient lifecycle phase transitions",
    ["namespace", "from_state", "to_state"],
    registry=_metrics_registry,
)


def get_metrics_registry() -> CollectorRegistry:
    """Return the operator's metrics registry."""
    return _metrics_registry


class MetricsCollector:
    """Collects and manages metrics for the Dex operator."""

    def __init__(self):
        self.registry = get_metrics_registry()

    @asynccontextmanager
    async def track_reconciliation(
        self,
        resource_type: str,
        namespace: str,
        name: str,
        operation: str = "reconcile",
    ):
        """
        Context manager to track reconciliation operations.

        Args:
            resource_type: Type of resource being reconciled
            namespace: Namespace of the resource
            name: Name of the resource
            operation: Type of operation being performed
        """
        start_time = time.time()
        result = "unknown"

        try:
            yield
            result = "success"
        except Exception as e:
            result = "error"
            retryable = "true" if getattr(e, "retryable", False) else "false"

            RECONCILIATION_ERRORS.labels(
                resource_type=resource_type,
                namespace=namespace,
                error_type=type(e).__name__,
                retryable=retryable,
            ).inc()

            raise
        finally:
            duration = time.time() - start_time

            RECONCILIATION_TOTAL.labels(
                resource_type=resource_type,
                namespace=namespace,
                name=name,
                result=result,
            ).inc()

            RECONCILIATION_DURATION.labels(
                resource_type=resource_type, namespace=namespace, operation=operation
            ).observe(duration)

    def record_child_created(self, namespace: str, kind: str) -> None:
        """Count a child resource created by the server convergence loop."""
        CHILD_RESOURCES_CREATED.labels(namespace=namespace, kind=kind).inc()

    def record_state_transition(
        self, namespace: str, from_state: str, to_state: str
    ) -> None:
        """Count a DexClient phase change."""
        CLIENT_STATE_TRANSITIONS.labels(
            namespace=namespace, from_state=from_state or "Unset", to_state=to_state
        ).inc()


class MetricsServer:
    """HTTP server for exposing Prometheus metrics."""

    def __init__(self, port: int = 8081, host: str = "0.0.0.0"):
        """
        Initialize metrics server.

        Args:
            port: Port to serve metrics on
            host: Host interface to bind to
        """
        self.port = port
        self.host = host
        self.app = Application()
        self.runner: AppRunner | None = None
        self.site: TCPSite | None = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        self.app.router.add_get("/metrics", self._metrics_handler)
        self.app.router.add_get("/healthz", self._healthz_handler)

    async def _metrics_handler(self, request: Request) -> Response:
        """Handle /metrics endpoint for Prometheus scraping."""
        try:
            metrics_data = generate_latest(get_metrics_registry())
        except Exception as e:
            logger.error(f"Failed to generate metrics: {e}")
            return Response(
                text=f"Error generating metrics: {type(e).__name__}. Check logs for details.",
                status=500,
            )
        # aiohttp rejects a charset inside content_type, so set the header directly
        return Response(body=metrics_data, headers={"Content-Type": CONTENT_TYPE_LATEST})

    async def _healthz_handler(self, request: Request) -> Response:
        """Handle /healthz liveness probe."""
        return Response(text="ok")

    async def start(self) -> None:
        """Start the metrics server."""
        try:
            self.runner = AppRunner(self.app)
            await self.runner.setup()

            self.site = TCPSite(self.runner, self.host, self.port)
            await self.site.start()

            logger.info(f"Metrics server started on {self.host}:{self.port}")
        except Exception as e:
            logger.error(f"Failed to start metrics server: {e}")
            raise

    async def stop(self) -> None:
        """Stop the metrics server."""
        if self.site:
            await self.site.stop()
            self.site = None

        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        logger.info("Metrics server stopped")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()


# Global metrics collector instance
metrics_collector = MetricsCollector()
