"""Centralized operator settings using pydantic-settings.

This module provides a single source of truth for all operator configuration
loaded from environment variables. Uses pydantic for automatic validation,
type coercion, and documentation.
"""

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_DEX_GRPC_PORT,
    DEFAULT_DEX_HTTP_PORT,
    DEFAULT_DEX_IMAGE,
    DEFAULT_DEX_IMAGE_PULL_POLICY,
    DEFAULT_GRPC_ADDRESS_TEMPLATE,
    DEFAULT_GRPC_SERVICE_NAME,
    DEFAULT_GRPC_TIMEOUT_SECONDS,
    DEFAULT_INGRESS_CLASS_NAME,
    DEFAULT_MTLS_SECRET_NAME,
    DEFAULT_SERVER_RESYNC_INTERVAL,
    DEFAULT_SERVICE_ACCOUNT_NAME,
    DEFAULT_TLS_SECRET_SUFFIX,
    FAILURE_BACKOFF_DELAY,
    TRUST_BOOTSTRAP_DELAY,
)


class ServerDefaults(BaseModel):
    """Fixed configuration used when building the children of a DexServer.

    Handed to the server convergence loop at construction time so that
    manifest building never reaches for module-level literals.
    """

    image: str = Field(DEFAULT_DEX_IMAGE, description="Dex container image")
    image_pull_policy: str = Field(
        DEFAULT_DEX_IMAGE_PULL_POLICY, description="Dex container pull policy"
    )
    service_account_name: str = Field(
        DEFAULT_SERVICE_ACCOUNT_NAME,
        description="Service account the Dex pods run as (may contain {name})",
    )
    http_port: int = Field(DEFAULT_DEX_HTTP_PORT, description="Dex web port")
    grpc_port: int = Field(DEFAULT_DEX_GRPC_PORT, description="Dex gRPC API port")
    tls_secret_suffix: str = Field(
        DEFAULT_TLS_SECRET_SUFFIX,
        description="Suffix of the service-serving certificate secret name",
    )
    mtls_secret_name: str = Field(
        DEFAULT_MTLS_SECRET_NAME,
        description="Secret holding the CA used to verify gRPC client certificates",
    )
    route_kind: Literal["route", "ingress"] = Field(
        "route", description="Expose Dex through an OpenShift Route or an Ingress"
    )
    ingress_class_name: str = Field(
        DEFAULT_INGRESS_CLASS_NAME, description="Ingress class for ingress mode"
    )

    def service_account_for(self, server_name: str) -> str:
        """Return the service account name for the given server."""
        return self.service_account_name.format(name=server_name)

    def tls_secret_for(self, server_name: str) -> str:
        """Return the serving certificate secret name for the given server."""
        return f"{server_name}{self.tls_secret_suffix}"


class Settings(BaseSettings):
    """Operator configuration loaded from environment variables.

    All settings have sensible defaults for production use. Override via
    environment variables as documented per field.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Operator identification
    operator_namespace: str = Field(
        default="dex-operator",
        description="Namespace where the operator is deployed",
        validation_alias="OPERATOR_NAMESPACE",
    )
    operator_name: str = Field(
        default="dex-operator",
        description="Name of the operator deployment",
        validation_alias="OPERATOR_NAME",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        validation_alias="JSON_LOGS",
        description="Enable JSON formatted logging for structured log aggregation",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Enable correlation IDs in logs for request tracing",
    )

    # Namespace watching
    namespaces: str = Field(
        default="",
        validation_alias="DEX_OPERATOR_NAMESPACES",
        description="Comma-separated list of namespaces to watch (empty = all namespaces)",
    )

    # Metrics
    metrics_enabled: bool = Field(
        default=True,
        validation_alias="METRICS_ENABLED",
        description="Serve Prometheus metrics",
    )
    metrics_port: int = Field(
        default=8081,
        validation_alias="METRICS_PORT",
        description="Port for Prometheus metrics endpoint",
    )
    metrics_host: str = Field(
        default="0.0.0.0",
        validation_alias="METRICS_HOST",
        description="Host address to bind metrics server",
    )

    # DexServer child resources
    dex_image: str = Field(
        default=DEFAULT_DEX_IMAGE,
        validation_alias="DEX_IMAGE",
        description="Container image used for Dex deployments",
    )
    dex_image_pull_policy: str = Field(
        default=DEFAULT_DEX_IMAGE_PULL_POLICY,
        validation_alias="DEX_IMAGE_PULL_POLICY",
        description="Image pull policy for Dex deployments",
    )
    dex_service_account_name: str = Field(
        default=DEFAULT_SERVICE_ACCOUNT_NAME,
        validation_alias="DEX_SERVICE_ACCOUNT_NAME",
        description="Service account name for Dex pods; '{name}' expands to the server name",
    )
    dex_http_port: int = Field(
        default=DEFAULT_DEX_HTTP_PORT,
        validation_alias="DEX_HTTP_PORT",
        description="Dex web listener port",
    )
    dex_grpc_port: int = Field(
        default=DEFAULT_DEX_GRPC_PORT,
        validation_alias="DEX_GRPC_PORT",
        description="Dex gRPC API listener port",
    )
    dex_route_kind: Literal["route", "ingress"] = Field(
        default="route",
        validation_alias="DEX_ROUTE_KIND",
        description="External exposure of Dex: OpenShift 'route' or 'ingress'",
    )
    dex_ingress_class_name: str = Field(
        default=DEFAULT_INGRESS_CLASS_NAME,
        validation_alias="DEX_INGRESS_CLASS_NAME",
        description="Ingress class used when DEX_ROUTE_KIND=ingress",
    )
    dex_tls_secret_suffix: str = Field(
        default=DEFAULT_TLS_SECRET_SUFFIX,
        validation_alias="DEX_TLS_SECRET_SUFFIX",
        description="Suffix of the serving certificate secret for each server",
    )
    server_resync_interval_seconds: float = Field(
        default=DEFAULT_SERVER_RESYNC_INTERVAL,
        validation_alias="SERVER_RESYNC_INTERVAL_SECONDS",
        description="Interval between periodic DexServer convergence passes",
    )

    # DexClient lifecycle
    dex_mtls_secret_name: str = Field(
        default=DEFAULT_MTLS_SECRET_NAME,
        validation_alias="DEX_MTLS_SECRET_NAME",
        description="Name of the mTLS trust credential secret in each namespace",
    )
    dex_grpc_service_name: str = Field(
        default=DEFAULT_GRPC_SERVICE_NAME,
        validation_alias="DEX_GRPC_SERVICE_NAME",
        description=(
            "Service name fronting the Dex gRPC API in each namespace; "
            "empty uses the Service named after the namespace's DexServer"
        ),
    )
    dex_grpc_address_template: str = Field(
        default=DEFAULT_GRPC_ADDRESS_TEMPLATE,
        validation_alias="DEX_GRPC_ADDRESS_TEMPLATE",
        description="Template for the Dex gRPC address ({service}, {namespace}, {port})",
    )
    dex_grpc_timeout_seconds: float = Field(
        default=DEFAULT_GRPC_TIMEOUT_SECONDS,
        validation_alias="DEX_GRPC_TIMEOUT_SECONDS",
        description="Deadline applied to each Dex gRPC call",
    )
    trust_bootstrap_delay_seconds: float = Field(
        default=TRUST_BOOTSTRAP_DELAY,
        validation_alias="TRUST_BOOTSTRAP_DELAY_SECONDS",
        description="Requeue delay while the mTLS secret does not exist yet",
    )
    failure_backoff_seconds: float = Field(
        default=FAILURE_BACKOFF_DELAY,
        validation_alias="FAILURE_BACKOFF_SECONDS",
        description="Requeue delay after a client reconciliation failure",
    )

    @property
    def watched_namespaces(self) -> list[str] | None:
        """Parse watched namespaces from comma-separated string.

        Returns:
            List of namespace names, or None to watch all namespaces
        """
        if self.namespaces:
            return [ns.strip() for ns in self.namespaces.split(",") if ns.strip()]
        return None

    def server_defaults(self) -> ServerDefaults:
        """Build the child resource configuration for the server reconciler."""
        return ServerDefaults(
            image=self.dex_image,
            image_pull_policy=self.dex_image_pull_policy,
            service_account_name=self.dex_service_account_name,
            http_port=self.dex_http_port,
            grpc_port=self.dex_grpc_port,
            tls_secret_suffix=self.dex_tls_secret_suffix,
            mtls_secret_name=self.dex_mtls_secret_name,
            route_kind=self.dex_route_kind,
            ingress_class_name=self.dex_ingress_class_name,
        )

    def grpc_address(self, namespace: str, service: str | None = None) -> str:
        """Return the Dex gRPC address for the instance in a namespace.

        Args:
            namespace: Namespace of the Dex instance
            service: Service fronting the instance; defaults to the
                configured ``DEX_GRPC_SERVICE_NAME``
        """
        return self.dex_grpc_address_template.format(
            service=service or self.dex_grpc_service_name,
            namespace=namespace,
            port=self.dex_grpc_port,
        )


# Global settings instance - initialized once at module import
settings = Settings()
