"""
Pydantic models for DexServer resources.

This module defines type-safe data models for the specification and status
of a Dex instance: its issuer, storage, listener overrides, OAuth2 behavior
flags and the ordered list of upstream connectors.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .common import ObjectMeta, SecretRef, to_plain


class StaticPasswordSpec(BaseModel):
    """A static login credential."""

    model_config = {"populate_by_name": True, "extra": "allow"}

    email: str = ""


class StorageSpec(BaseModel):
    """Storage backend selection."""

    type: str = Field("kubernetes", description="Dex storage backend type")


class WebSpec(BaseModel):
    """Overrides for the Dex web listener."""

    model_config = {"populate_by_name": True}

    http: str = ""
    https: str = ""
    tls_cert: str = Field("", alias="tlsCert")
    tls_key: str = Field("", alias="tlsKey")


class GrpcSpec(BaseModel):
    """Overrides for the Dex gRPC API listener."""

    model_config = {"populate_by_name": True}

    addr: str = ""
    tls_cert: str = Field("", alias="tlsCert")
    tls_key: str = Field("", alias="tlsKey")
    tls_client_ca: str = Field("", alias="tlsClientCA")


class ExpirySpec(BaseModel):
    """Token and request expiry settings."""

    model_config = {"populate_by_name": True}

    device_requests: str = Field("", alias="deviceRequests")


class LoggerSpec(BaseModel):
    """Dex logger settings."""

    level: str = ""
    format: str = ""


class Oauth2Spec(BaseModel):
    """Dex OAuth2 behavior flags."""

    model_config = {"populate_by_name": True}

    response_types: list[str] = Field(default_factory=list, alias="responseTypes")
    skip_approval_screen: bool = Field(False, alias="skipApprovalScreen")
    always_show_login_screen: bool = Field(False, alias="alwaysShowLoginScreen")
    password_connector: str = Field("", alias="passwordConnector")


class ConnectorType(str, Enum):
    """Supported upstream connector types."""

    GITHUB = "github"
    LDAP = "ldap"


class GitHubConfigSpec(BaseModel):
    """Settings for the GitHub OAuth2 connector."""

    model_config = {"populate_by_name": True}

    client_id: str = Field("", alias="clientID")
    client_secret_ref: SecretRef = Field(
        default_factory=SecretRef, alias="clientSecretRef"
    )
    redirect_uri: str = Field("", alias="redirectURI")
    org: str = ""


class UserMatcher(BaseModel):
    """LDAP user to group attribute matching."""

    model_config = {"populate_by_name": True}

    user_attr: str = Field(..., alias="userAttr")
    group_attr: str = Field(..., alias="groupAttr")


class UserSearchSpec(BaseModel):
    """LDAP user entry search configuration."""

    model_config = {"populate_by_name": True}

    base_dn: str = Field("", alias="baseDN")
    filter: str = ""
    username: str = ""
    scope: str = ""
    id_attr: str = Field("", alias="idAttr")
    email_attr: str = Field("", alias="emailAttr")
    name_attr: str = Field("", alias="nameAttr")
    preferred_username_attr: str = Field("", alias="preferredUsernameAttr")
    email_suffix: str = Field("", alias="emailSuffix")


class GroupSearchSpec(BaseModel):
    """LDAP group search configuration."""

    model_config = {"populate_by_name": True}

    base_dn: str = Field("", alias="baseDN")
    filter: str = ""
    scope: str = ""
    user_attr: str = Field("", alias="userAttr")
    group_attr: str = Field("", alias="groupAttr")
    user_matchers: list[UserMatcher] = Field(
        default_factory=list, alias="userMatchers"
    )
    name_attr: str = Field("", alias="nameAttr")


class LDAPConfigSpec(BaseModel):
    """Settings for the LDAP directory-search connector."""

    model_config = {"populate_by_name": True}

    host: str = ""
    insecure_no_ssl: bool = Field(False, alias="insecureNoSSL")
    insecure_skip_verify: bool = Field(False, alias="insecureSkipVerify")
    start_tls: bool = Field(False, alias="startTLS")
    root_ca: str = Field("", alias="rootCA")
    root_ca_data: str = Field("", alias="rootCAData")
    bind_dn: str = Field("", alias="bindDN")
    bind_pw_ref: SecretRef = Field(default_factory=SecretRef, alias="bindPWRef")
    username_prompt: str = Field("", alias="usernamePrompt")
    user_search: UserSearchSpec = Field(
        default_factory=UserSearchSpec, alias="userSearch"
    )
    group_search: GroupSearchSpec = Field(
        default_factory=GroupSearchSpec, alias="groupSearch"
    )


class ConnectorSpec(BaseModel):
    """An upstream identity connector."""

    model_config = {"populate_by_name": True}

    type: ConnectorType = Field(..., description="Connector type")
    id: str = Field(..., description="Connector identifier")
    name: str = Field("", description="Display name")
    github: GitHubConfigSpec | None = None
    ldap: LDAPConfigSpec | None = None

    @field_validator("id")
    @classmethod
    def validate_id(cls, v):
        if not v:
            raise ValueError("Connector id must not be empty")
        return v


class DexServerSpec(BaseModel):
    """
    Specification for a DexServer resource.

    Field names follow the CRD schema, which uses lower-case keys for the
    password database toggle and the static password list.
    """

    model_config = {"populate_by_name": True, "extra": "allow"}

    issuer: str = Field("", description="Issuer URL of the Dex instance")
    enable_password_db: bool = Field(False, alias="enablepassworddb")
    static_passwords: list[StaticPasswordSpec] = Field(
        default_factory=list, alias="staticpasswords"
    )
    storage: StorageSpec = Field(default_factory=StorageSpec)
    web: WebSpec = Field(default_factory=WebSpec)
    grpc: GrpcSpec = Field(default_factory=GrpcSpec)
    expiry: ExpirySpec = Field(default_factory=ExpirySpec)
    logger: LoggerSpec = Field(default_factory=LoggerSpec)
    oauth2: Oauth2Spec = Field(default_factory=Oauth2Spec)
    connectors: list[ConnectorSpec] = Field(default_factory=list)


class DexServerStatus(BaseModel):
    """Observed state of a DexServer."""

    model_config = {"extra": "allow"}

    state: str = ""
    message: str = ""


class DexServer(BaseModel):
    """A DexServer custom resource."""

    model_config = {"populate_by_name": True, "extra": "allow"}

    api_version: str = Field("auth.identitatem.io/v1alpha1", alias="apiVersion")
    kind: str = "DexServer"
    metadata: ObjectMeta
    spec: DexServerSpec = Field(default_factory=DexServerSpec)
    status: DexServerStatus = Field(default_factory=DexServerStatus)

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> "DexServer":
        """Parse a resource body as delivered by kopf or the API server."""
        return cls.model_validate(to_plain(body))
