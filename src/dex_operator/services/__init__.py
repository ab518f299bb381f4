"""
Services package - Business logic for resource reconciliation.

This package contains the reconcilers that drive DexServer children and
DexClient registrations toward their declared state.
"""

from .base_reconciler import BaseReconciler, ReconcileResult
from .client_reconciler import DexClientReconciler, mtls_dex_client_factory
from .server_reconciler import DexServerReconciler
from .trust import TrustCredential, resolve_trust_credential

__all__ = [
    "BaseReconciler",
    "DexClientReconciler",
    "DexServerReconciler",
    "ReconcileResult",
    "TrustCredential",
    "mtls_dex_client_factory",
    "resolve_trust_credential",
]
