"""
Utilities package - Helper functions and shared functionality.

This package contains utility functions for:
- Kubernetes API access through a kind-keyed resource client
- Building the manifests of DexServer children
- Talking to the Dex gRPC administrative API
"""
