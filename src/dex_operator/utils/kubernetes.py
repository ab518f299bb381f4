"""
Kubernetes utilities for the Dex operator.

This module provides the resource client the reconcilers use to read and
write cluster state, together with small helpers for owner references and
secret data.

Key functionality:
- Kubernetes client management and configuration
- Kind-keyed get/list/create/update/update-status primitives
- Translation of API failures into the operator error hierarchy
"""

import asyncio
import base64
import binascii
import logging
from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from dex_operator.constants import (
    API_GROUP,
    API_VERSION,
    DEX_CLIENT_KIND,
    DEX_CLIENT_PLURAL,
    DEX_SERVER_KIND,
    DEX_SERVER_PLURAL,
    KIND_CONFIG_MAP,
    KIND_DEPLOYMENT,
    KIND_INGRESS,
    KIND_ROUTE,
    KIND_SECRET,
    KIND_SERVICE,
    KIND_SERVICE_ACCOUNT,
    ROUTE_GROUP,
    ROUTE_PLURAL,
    ROUTE_VERSION,
)
from dex_operator.errors import (
    ConfigurationError,
    KubernetesAPIError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
)
from dex_operator.models import OwnerReference

logger = logging.getLogger(__name__)

# Built-in kinds: (API class, method suffix)
TYPED_KINDS: dict[str, tuple[type, str]] = {
    KIND_CONFIG_MAP: (client.CoreV1Api, "config_map"),
    KIND_SERVICE: (client.CoreV1Api, "service"),
    KIND_SERVICE_ACCOUNT: (client.CoreV1Api, "service_account"),
    KIND_SECRET: (client.CoreV1Api, "secret"),
    KIND_DEPLOYMENT: (client.AppsV1Api, "deployment"),
    KIND_INGRESS: (client.NetworkingV1Api, "ingress"),
}

# Custom kinds: (group, version, plural)
CUSTOM_KINDS: dict[str, tuple[str, str, str]] = {
    KIND_ROUTE: (ROUTE_GROUP, ROUTE_VERSION, ROUTE_PLURAL),
    DEX_SERVER_KIND: (API_GROUP, API_VERSION, DEX_SERVER_PLURAL),
    DEX_CLIENT_KIND: (API_GROUP, API_VERSION, DEX_CLIENT_PLURAL),
}


def get_kubernetes_client() -> client.ApiClient:
    """
    Get configured Kubernetes API client.

    Tries in-cluster configuration first and falls back to the local
    kubeconfig for development.

    Returns:
        Configured Kubernetes API client
    """
    try:
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.debug("Loaded kubeconfig from local environment")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise

    return client.ApiClient()


def set_owner_reference(manifest: dict[str, Any], owner: OwnerReference) -> None:
    """
    Set a controller owner reference on a manifest for garbage collection.

    Args:
        manifest: Child resource manifest to modify in place
        owner: Owner relation to record
    """
    metadata = manifest.setdefault("metadata", {})
    references = metadata.setdefault("ownerReferences", [])
    references.append(owner.to_manifest())


def read_secret_value(secret: dict[str, Any], key: str) -> bytes | None:
    """
    Return the decoded value of a secret key, or None when absent or empty.

    Values under ``stringData`` are accepted as well as the base64 encoded
    ``data`` the API server returns.
    """
    raw = (secret.get("data") or {}).get(key)
    if raw:
        try:
            return base64.b64decode(raw, validate=True) or None
        except (binascii.Error, ValueError):
            logger.warning(f"Secret key '{key}' is not valid base64")
            return None

    plain = (secret.get("stringData") or {}).get(key)
    if plain:
        return plain.encode("utf-8")
    return None


class ResourceClient:
    """
    Kind-keyed access to the Kubernetes API.

    Every method is asynchronous; the blocking client calls run in a worker
    thread. Results are plain dictionaries in API (camelCase) form.
    """

    def __init__(self, api_client: client.ApiClient | None = None):
        self.api_client = api_client or get_kubernetes_client()
        self._apis: dict[type, Any] = {}

    def _api(self, api_class: type) -> Any:
        if api_class not in self._apis:
            self._apis[api_class] = api_class(self.api_client)
        return self._apis[api_class]

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        if isinstance(obj, dict):
            return obj
        return self.api_client.sanitize_for_serialization(obj)

    @staticmethod
    def _resolve(kind: str) -> tuple[str, Any]:
        if kind in TYPED_KINDS:
            return "typed", TYPED_KINDS[kind]
        if kind in CUSTOM_KINDS:
            return "custom", CUSTOM_KINDS[kind]
        raise ConfigurationError(f"Unsupported resource kind '{kind}'")

    @staticmethod
    def _identity(body: dict[str, Any]) -> tuple[str, str]:
        metadata = body.get("metadata") or {}
        return metadata.get("namespace", ""), metadata.get("name", "")

    async def get(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        """
        Fetch a resource.

        Raises:
            ResourceNotFoundError: If the resource does not exist
            KubernetesAPIError: On any other API failure
        """
        mode, target = self._resolve(kind)
        try:
            if mode == "typed":
                api_class, suffix = target
                method = getattr(self._api(api_class), f"read_namespaced_{suffix}")
                result = await asyncio.to_thread(method, name, namespace)
            else:
                group, version, plural = target
                result = await asyncio.to_thread(
                    self._api(client.CustomObjectsApi).get_namespaced_custom_object,
                    group,
                    version,
                    namespace,
                    plural,
                    name,
                )
        except ApiException as e:
            if e.status == 404:
                raise ResourceNotFoundError(kind, namespace, name) from e
            raise self._api_error(f"Failed to get {kind} {namespace}/{name}", e) from e

        return self._to_dict(result)

    async def list_namespaced(self, kind: str, namespace: str) -> list[dict[str, Any]]:
        """
        List the resources of a kind in a namespace.

        Raises:
            KubernetesAPIError: On any API failure
        """
        mode, target = self._resolve(kind)
        try:
            if mode == "typed":
                api_class, suffix = target
                method = getattr(self._api(api_class), f"list_namespaced_{suffix}")
                result = await asyncio.to_thread(method, namespace)
            else:
                group, version, plural = target
                result = await asyncio.to_thread(
                    self._api(client.CustomObjectsApi).list_namespaced_custom_object,
                    group,
                    version,
                    namespace,
                    plural,
                )
        except ApiException as e:
            raise self._api_error(f"Failed to list {kind} in {namespace}", e) from e

        return list(self._to_dict(result).get("items") or [])

    async def create(
        self, kind: str, namespace: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Create a resource.

        Raises:
            ResourceAlreadyExistsError: If a resource with that name exists
            KubernetesAPIError: On any other API failure
        """
        mode, target = self._resolve(kind)
        name = (body.get("metadata") or {}).get("name", "")
        try:
            if mode == "typed":
                api_class, suffix = target
                method = getattr(self._api(api_class), f"create_namespaced_{suffix}")
                result = await asyncio.to_thread(method, namespace, body)
            else:
                group, version, plural = target
                result = await asyncio.to_thread(
                    self._api(client.CustomObjectsApi).create_namespaced_custom_object,
                    group,
                    version,
                    namespace,
                    plural,
                    body,
                )
        except ApiException as e:
            if e.status == 409:
                raise ResourceAlreadyExistsError(kind, namespace, name) from e
            raise self._api_error(
                f"Failed to create {kind} {namespace}/{name}", e
            ) from e

        logger.info(f"Created {kind} {namespace}/{name}")
        return self._to_dict(result)

    async def update(self, kind: str, body: dict[str, Any]) -> dict[str, Any]:
        """
        Replace a resource, guarded by the resourceVersion in ``body``.

        Raises:
            ResourceNotFoundError: If the resource was deleted meanwhile
            KubernetesAPIError: On conflicts and any other API failure
        """
        return await self._replace(kind, body, status=False)

    async def update_status(self, kind: str, body: dict[str, Any]) -> dict[str, Any]:
        """
        Replace the status subresource, guarded by the resourceVersion in ``body``.

        Returns the stored resource, whose resourceVersion must be used for
        any subsequent write.
        """
        return await self._replace(kind, body, status=True)

    async def _replace(
        self, kind: str, body: dict[str, Any], status: bool
    ) -> dict[str, Any]:
        mode, target = self._resolve(kind)
        namespace, name = self._identity(body)
        try:
            if mode == "typed":
                api_class, suffix = target
                method_name = f"replace_namespaced_{suffix}" + ("_status" if status else "")
                method = getattr(self._api(api_class), method_name)
                result = await asyncio.to_thread(method, name, namespace, body)
            else:
                group, version, plural = target
                custom_api = self._api(client.CustomObjectsApi)
                method = (
                    custom_api.replace_namespaced_custom_object_status
                    if status
                    else custom_api.replace_namespaced_custom_object
                )
                result = await asyncio.to_thread(
                    method, group, version, namespace, plural, name, body
                )
        except ApiException as e:
            if e.status == 404:
                raise ResourceNotFoundError(kind, namespace, name) from e
            what = "status of " if status else ""
            raise self._api_error(
                f"Failed to update {what}{kind} {namespace}/{name}", e
            ) from e

        return self._to_dict(result)

    @staticmethod
    def _api_error(message: str, error: ApiException) -> KubernetesAPIError:
        return KubernetesAPIError(
            f"{message}: {error.status}", reason=error.reason, status=error.status
        )
