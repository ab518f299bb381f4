"""
Common models shared across different resource types.

This module defines shared data structures used by multiple resource models,
such as object metadata and secret references.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field


def to_plain(value: Any) -> Any:
    """Recursively convert mapping views (such as kopf bodies) to plain dicts."""
    if isinstance(value, Mapping):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [to_plain(item) for item in value]
    return value


class ObjectMeta(BaseModel):
    """Subset of Kubernetes object metadata the operator relies on."""

    model_config = {"populate_by_name": True, "extra": "allow"}

    name: str = Field(..., description="Resource name")
    namespace: str = Field("default", description="Resource namespace")
    uid: str | None = Field(None, description="Unique identifier set by the API server")
    resource_version: str | None = Field(
        None,
        alias="resourceVersion",
        description="Version used for optimistic concurrency",
    )
    generation: int | None = Field(None, description="Spec generation")
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


class SecretRef(BaseModel):
    """Reference to a secret, optionally in another namespace."""

    model_config = {"populate_by_name": True, "extra": "allow"}

    name: str = Field("", description="Name of the secret")
    namespace: str | None = Field(
        None, description="Namespace of the secret (defaults to the owner's)"
    )

    def resolve_namespace(self, default: str) -> str:
        """Return the referenced namespace, falling back to the given default."""
        return self.namespace or default


class OwnerReference(BaseModel):
    """Owner relation set on child resources for garbage collection."""

    model_config = {"populate_by_name": True}

    api_version: str = Field(..., alias="apiVersion")
    kind: str
    name: str
    uid: str
    controller: bool = True
    block_owner_deletion: bool = Field(True, alias="blockOwnerDeletion")

    def to_manifest(self) -> dict[str, Any]:
        """Render the reference as it appears in metadata.ownerReferences."""
        return self.model_dump(by_alias=True)
