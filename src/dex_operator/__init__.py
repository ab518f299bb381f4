"""
Dex Operator - A Kubernetes operator for Dex identity provider instances.

This operator reconciles two custom resources:
- DexServer: deploys a Dex instance (config bundle, service, service account,
  deployment and external route) and keeps it converged
- DexClient: registers an OAuth2 client with a Dex instance over its mTLS
  gRPC administrative API and keeps the registration in sync
"""

__version__ = "0.1.0"
