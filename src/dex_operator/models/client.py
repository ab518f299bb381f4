"""
Pydantic models for DexClient resources.

This module defines type-safe data models for OAuth2 client registrations
against a Dex instance, together with the lifecycle phases the client
reconciler drives them through.
"""

import copy
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr

from .common import ObjectMeta, SecretRef, to_plain


class ClientPhase(str, Enum):
    """
    Lifecycle phases of a DexClient.

    ``UNSET`` is the empty state of a freshly created resource and is
    handled exactly like ``CREATING``. ``FAILED`` is terminal: the operator
    never leaves it on its own.
    """

    UNSET = ""
    CREATING = "Creating"
    ACTIVE = "Active"
    ACTIVE_DEGRADED = "ActiveDegraded"
    FAILED = "Failed"

    @classmethod
    def parse(cls, value: str | None) -> "ClientPhase | None":
        """Return the phase for a status string, or None when unrecognised."""
        try:
            return cls(value or "")
        except ValueError:
            return None


class DexClientSpec(BaseModel):
    """
    Specification for a DexClient resource.

    Mirrors the fields Dex stores for an OAuth2 client. The shared secret
    itself never appears in the spec; it is read from ``clientSecretRef``.
    """

    model_config = {"populate_by_name": True, "extra": "allow"}

    redirect_uris: list[str] = Field(
        default_factory=list, alias="redirectURIs", description="Valid redirect URIs"
    )
    trusted_peers: list[str] = Field(
        default_factory=list,
        alias="trustedPeers",
        description="Client IDs allowed to mint tokens for this client",
    )
    public: bool = Field(False, description="Whether this is a public client")
    client_id: str = Field("", alias="clientID", description="Stable client identifier")
    name: str = Field("", description="Display name")
    logo_url: str = Field("", alias="logoURL", description="Logo shown on login screens")
    client_secret_ref: SecretRef = Field(
        default_factory=SecretRef,
        alias="clientSecretRef",
        description="Secret holding the client's shared secret",
    )


class DexClientStatus(BaseModel):
    """Observed state of a DexClient."""

    model_config = {"extra": "allow"}

    state: str = ""
    message: str = ""


class DexClient(BaseModel):
    """A DexClient custom resource."""

    model_config = {"populate_by_name": True, "extra": "allow"}

    api_version: str = Field("auth.identitatem.io/v1alpha1", alias="apiVersion")
    kind: str = "DexClient"
    metadata: ObjectMeta
    spec: DexClientSpec = Field(default_factory=DexClientSpec)
    status: DexClientStatus = Field(default_factory=DexClientStatus)

    _source: dict[str, Any] | None = PrivateAttr(default=None)

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> "DexClient":
        """Parse a resource body as delivered by kopf or the API server."""
        plain = to_plain(body)
        client = cls.model_validate(plain)
        client._source = plain
        return client

    def to_body(self) -> dict[str, Any]:
        """
        Render the resource for writing back to the API server.

        A parsed resource is written back as it was received, with only the
        status and the resourceVersion replaced, so model defaults never end
        up in the stored spec.
        """
        if self._source is None:
            return self.model_dump(by_alias=True, exclude_none=True, exclude_unset=True)

        body = copy.deepcopy(self._source)
        metadata = body.setdefault("metadata", {})
        metadata.setdefault("name", self.metadata.name)
        metadata.setdefault("namespace", self.metadata.namespace)
        if self.metadata.resource_version:
            metadata["resourceVersion"] = self.metadata.resource_version
        body["status"] = self.status.model_dump(exclude_none=True)
        return body
