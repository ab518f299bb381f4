"""
Models package - Pydantic models for type-safe resource handling.

Defines data models for:
- DexServer specifications (issuer, listeners, connectors)
- DexClient OAuth2 registrations and their lifecycle phases
"""

from .client import ClientPhase, DexClient, DexClientSpec, DexClientStatus
from .common import ObjectMeta, OwnerReference, SecretRef
from .server import ConnectorType, DexServer, DexServerSpec, DexServerStatus

__all__ = [
    "ClientPhase",
    "ConnectorType",
    "DexClient",
    "DexClientSpec",
    "DexClientStatus",
    "DexServer",
    "DexServerSpec",
    "DexServerStatus",
    "ObjectMeta",
    "OwnerReference",
    "SecretRef",
]
