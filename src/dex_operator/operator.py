#!/usr/bin/env python3
"""
Dex Operator - Main entry point for the Kopf-based Dex operator.

This operator manages Dex identity provider instances and the OAuth2
clients registered against them:
- DexServer: config bundle, service, service account, deployment and route
- DexClient: registration with the Dex gRPC API over mutual TLS

Usage:
    python -m dex_operator.operator
    # Or with kopf directly:
    kopf run -m dex_operator.operator --all-namespaces

Environment Variables:
    DEX_OPERATOR_NAMESPACES: Comma-separated list of namespaces to watch
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
    See dex_operator.settings for the full list.
"""

import logging
import sys

import kopf

from dex_operator.constants import API_GROUP

# Import all handler modules to register them with kopf
from dex_operator.handlers import client as client_handler  # noqa: F401
from dex_operator.handlers import server as server_handler  # noqa: F401
from dex_operator.observability.logging import setup_structured_logging
from dex_operator.observability.metrics import MetricsServer
from dex_operator.settings import settings as operator_settings
from dex_operator.utils.kubernetes import ResourceClient, get_kubernetes_client

# Global reference to metrics server for cleanup
_global_metrics_server: MetricsServer | None = None


def configure_logging() -> None:
    """Configure structured logging for the operator based on operator_settings."""
    setup_structured_logging(
        log_level=operator_settings.log_level.upper(),
        enable_json_formatting=operator_settings.json_logs,
        correlation_id_enabled=operator_settings.correlation_ids,
    )


def get_watched_namespaces() -> list[str] | None:
    """
    Get the list of namespaces to watch from operator_settings.

    Returns:
        List of namespace names, or None to watch all namespaces
    """
    return operator_settings.watched_namespaces


@kopf.on.startup()
async def startup_handler(
    settings: kopf.OperatorSettings, memo: kopf.Memo, **_
) -> None:
    """
    Operator startup configuration.

    Keeps kopf's bookkeeping in annotations so the status subresource is
    written only by the reconcilers, loads the Kubernetes configuration and
    starts the metrics endpoint.
    """
    logging.info("Starting Dex Operator...")

    settings.watching.reconnect_backoff = 1.0
    settings.execution.max_workers = 20
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(
        prefix=API_GROUP
    )
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(
        prefix=API_GROUP, key="last-handled-configuration"
    )

    watched_namespaces = get_watched_namespaces()
    if watched_namespaces:
        logging.info(f"Watching namespaces: {', '.join(watched_namespaces)}")
    else:
        logging.info("Watching all namespaces (cluster-wide mode)")

    memo.resources = ResourceClient(get_kubernetes_client())

    if not operator_settings.metrics_enabled:
        logging.info("Metrics server disabled")
        return

    try:
        metrics_server = MetricsServer(
            port=operator_settings.metrics_port, host=operator_settings.metrics_host
        )
        await metrics_server.start()

        global _global_metrics_server
        _global_metrics_server = metrics_server
    except Exception as e:
        logging.error(f"Failed to start metrics server: {e}")
        # Don't fail operator startup if metrics server fails
        logging.warning("Continuing without metrics server")


@kopf.on.cleanup()
async def cleanup_handler(**_) -> None:
    """Stop the metrics server when the operator shuts down."""
    logging.info("Shutting down Dex Operator...")

    global _global_metrics_server
    if _global_metrics_server:
        try:
            await _global_metrics_server.stop()
        except Exception as e:
            logging.error(f"Error stopping metrics server: {e}")
        _global_metrics_server = None


def main() -> None:
    """
    Main entry point for the operator.

    Configures logging, determines the namespace scope and runs kopf.
    """
    configure_logging()

    watched_namespaces = get_watched_namespaces()

    try:
        if watched_namespaces:
            kopf.run(
                namespaces=watched_namespaces,
                liveness_endpoint="http://0.0.0.0:8080/healthz",
            )
        else:
            kopf.run(
                clusterwide=True,
                liveness_endpoint="http://0.0.0.0:8080/healthz",
            )
    except KeyboardInterrupt:
        logging.info("Received shutdown signal")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Operator failed with error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
