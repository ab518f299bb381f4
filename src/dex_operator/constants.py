"""
Constants used throughout the Dex operator.

This module defines all constant values used by the operator including:
- Custom resource coordinates
- Resource labels and annotations
- Default child resource configuration
- Trust credential secret layout
"""

# Custom resource coordinates
API_GROUP = "auth.identitatem.io"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

DEX_SERVER_KIND = "DexServer"
DEX_SERVER_PLURAL = "dexservers"
DEX_CLIENT_KIND = "DexClient"
DEX_CLIENT_PLURAL = "dexclients"

# Child resource kinds, in the order the server convergence loop creates them
KIND_CONFIG_MAP = "ConfigMap"
KIND_SERVICE = "Service"
KIND_SERVICE_ACCOUNT = "ServiceAccount"
KIND_DEPLOYMENT = "Deployment"
KIND_ROUTE = "Route"
KIND_INGRESS = "Ingress"
KIND_SECRET = "Secret"

# OpenShift route coordinates
ROUTE_GROUP = "route.openshift.io"
ROUTE_VERSION = "v1"
ROUTE_PLURAL = "routes"

# Label constants for resource identification
OPERATOR_LABEL_KEY = "app.kubernetes.io/managed-by"
OPERATOR_LABEL_VALUE = "dex-operator"
APP_LABEL_KEY = "app"
DEXCONFIG_NAME_LABEL_KEY = "dexconfig_name"
DEXCONFIG_NAMESPACE_LABEL_KEY = "dexconfig_namespace"

# Annotation requesting an OpenShift service-serving certificate
SERVING_CERT_ANNOTATION = "service.beta.openshift.io/serving-cert-secret-name"

# Default child resource configuration
DEFAULT_DEX_IMAGE = "quay.io/dexidp/dex:v2.28.1"
DEFAULT_DEX_IMAGE_PULL_POLICY = "Always"
DEFAULT_SERVICE_ACCOUNT_NAME = "dex-operator-dexsso"
DEFAULT_DEX_HTTP_PORT = 5556
DEFAULT_DEX_GRPC_PORT = 5557
DEFAULT_TLS_SECRET_SUFFIX = "-tls-secret"
DEFAULT_INGRESS_CLASS_NAME = "nginx"

# Paths inside the Dex container
DEX_BINARY = "/usr/local/bin/dex"
DEX_CONFIG_DIR = "/etc/dex/cfg"
DEX_CONFIG_KEY = "config.yaml"
DEX_TLS_DIR = "/etc/dex/tls"
DEX_MTLS_DIR = "/etc/dex/mtls"

# Trust credential (mTLS) secret layout
DEFAULT_MTLS_SECRET_NAME = "dex-client-mtls"
MTLS_CA_KEY = "ca.crt"
MTLS_CERT_KEY = "client.crt"
MTLS_KEY_KEY = "client.key"
MTLS_SECRET_KEYS = (MTLS_CA_KEY, MTLS_CERT_KEY, MTLS_KEY_KEY)

# Key holding an OAuth2 client's shared secret
CLIENT_SECRET_KEY = "clientSecret"

# Key holding an LDAP connector bind password
LDAP_BIND_PW_KEY = "bindPW"

# gRPC endpoint of a Dex instance, as seen from the operator
# An empty service name means the Service of the namespace's DexServer
DEFAULT_GRPC_SERVICE_NAME = ""
DEFAULT_GRPC_ADDRESS_TEMPLATE = "{service}.{namespace}.svc.cluster.local:{port}"
DEFAULT_GRPC_TIMEOUT_SECONDS = 30.0

# Requeue delays (in seconds)
TRUST_BOOTSTRAP_DELAY = 5
FAILURE_BACKOFF_DELAY = 10
DEFAULT_SERVER_RESYNC_INTERVAL = 300

# Error message templates
ERROR_MISSING_SECRET_KEY = "secret {}/{} doesn't contain the data {}"
