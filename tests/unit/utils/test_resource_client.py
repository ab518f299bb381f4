"""Unit tests for the kind-keyed Kubernetes resource client."""

import base64
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from dex_operator.errors import (
    ConfigurationError,
    KubernetesAPIError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
)
from dex_operator.models import OwnerReference
from dex_operator.utils.kubernetes import (
    ResourceClient,
    read_secret_value,
    set_owner_reference,
)


@pytest.fixture
def core_api():
    return MagicMock()


@pytest.fixture
def custom_api():
    return MagicMock()


@pytest.fixture
def resources(core_api, custom_api):
    api_client = MagicMock()
    api_client.sanitize_for_serialization.side_effect = lambda obj: {"sanitized": obj}
    resource_client = ResourceClient(api_client)
    resource_client._apis[client.CoreV1Api] = core_api
    resource_client._apis[client.CustomObjectsApi] = custom_api
    return resource_client


class TestGet:
    @pytest.mark.asyncio
    async def test_typed_kind(self, resources, core_api):
        core_api.read_namespaced_service.return_value = "service-object"

        result = await resources.get("Service", "ns", "dex")

        core_api.read_namespaced_service.assert_called_once_with("dex", "ns")
        assert result == {"sanitized": "service-object"}

    @pytest.mark.asyncio
    async def test_custom_kind(self, resources, custom_api):
        custom_api.get_namespaced_custom_object.return_value = {"kind": "Route"}

        result = await resources.get("Route", "ns", "dex")

        custom_api.get_namespaced_custom_object.assert_called_once_with(
            "route.openshift.io", "v1", "ns", "routes", "dex"
        )
        assert result == {"kind": "Route"}

    @pytest.mark.asyncio
    async def test_not_found(self, resources, core_api):
        core_api.read_namespaced_secret.side_effect = ApiException(status=404)

        with pytest.raises(ResourceNotFoundError) as exc_info:
            await resources.get("Secret", "ns", "dex-client-mtls")

        assert exc_info.value.name == "dex-client-mtls"

    @pytest.mark.asyncio
    async def test_forbidden_is_not_retryable(self, resources, core_api):
        core_api.read_namespaced_secret.side_effect = ApiException(
            status=403, reason="Forbidden"
        )

        with pytest.raises(KubernetesAPIError) as exc_info:
            await resources.get("Secret", "ns", "dex-client-mtls")

        assert exc_info.value.status == 403
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_unknown_kind(self, resources):
        with pytest.raises(ConfigurationError):
            await resources.get("Pod", "ns", "dex")


class TestList:
    @pytest.mark.asyncio
    async def test_custom_kind_returns_items(self, resources, custom_api):
        custom_api.list_namespaced_custom_object.return_value = {
            "items": [{"metadata": {"name": "dex"}}]
        }

        result = await resources.list_namespaced("DexServer", "ns")

        custom_api.list_namespaced_custom_object.assert_called_once_with(
            "auth.identitatem.io", "v1alpha1", "ns", "dexservers"
        )
        assert result == [{"metadata": {"name": "dex"}}]

    @pytest.mark.asyncio
    async def test_typed_kind(self, resources, core_api):
        core_api.list_namespaced_secret.return_value = "secret-list"

        result = await resources.list_namespaced("Secret", "ns")

        core_api.list_namespaced_secret.assert_called_once_with("ns")
        assert result == []

    @pytest.mark.asyncio
    async def test_failure_is_api_error(self, resources, custom_api):
        custom_api.list_namespaced_custom_object.side_effect = ApiException(
            status=500, reason="InternalError"
        )

        with pytest.raises(KubernetesAPIError):
            await resources.list_namespaced("DexServer", "ns")


class TestWrites:
    @pytest.mark.asyncio
    async def test_create_conflict_is_already_exists(self, resources, core_api):
        core_api.create_namespaced_config_map.side_effect = ApiException(status=409)

        with pytest.raises(ResourceAlreadyExistsError):
            await resources.create("ConfigMap", "ns", {"metadata": {"name": "dex"}})

    @pytest.mark.asyncio
    async def test_create_custom_kind(self, resources, custom_api):
        body = {"metadata": {"name": "dex"}}
        custom_api.create_namespaced_custom_object.return_value = body

        await resources.create("Route", "ns", body)

        custom_api.create_namespaced_custom_object.assert_called_once_with(
            "route.openshift.io", "v1", "ns", "routes", body
        )

    @pytest.mark.asyncio
    async def test_update_status_uses_status_subresource(self, resources, custom_api):
        body = {"metadata": {"name": "portal", "namespace": "ns"}, "status": {}}
        custom_api.replace_namespaced_custom_object_status.return_value = body

        result = await resources.update_status("DexClient", body)

        custom_api.replace_namespaced_custom_object_status.assert_called_once_with(
            "auth.identitatem.io", "v1alpha1", "ns", "dexclients", "portal", body
        )
        assert result == body

    @pytest.mark.asyncio
    async def test_update_conflict_is_api_error(self, resources, custom_api):
        custom_api.replace_namespaced_custom_object.side_effect = ApiException(
            status=409, reason="Conflict"
        )

        with pytest.raises(KubernetesAPIError) as exc_info:
            await resources.update(
                "DexClient", {"metadata": {"name": "portal", "namespace": "ns"}}
            )

        assert exc_info.value.reason == "Conflict"


class TestHelpers:
    def test_set_owner_reference_appends(self):
        manifest = {"metadata": {"name": "dex"}}
        owner = OwnerReference(
            api_version="auth.identitatem.io/v1alpha1",
            kind="DexServer",
            name="dex",
            uid="uid-1",
        )

        set_owner_reference(manifest, owner)

        assert manifest["metadata"]["ownerReferences"][0]["uid"] == "uid-1"
        assert manifest["metadata"]["ownerReferences"][0]["controller"] is True

    def test_read_secret_value_decodes_data(self):
        secret = {"data": {"ca.crt": base64.b64encode(b"PEM").decode()}}

        assert read_secret_value(secret, "ca.crt") == b"PEM"

    def test_read_secret_value_accepts_string_data(self):
        assert read_secret_value({"stringData": {"k": "v"}}, "k") == b"v"

    @pytest.mark.parametrize(
        "secret",
        [{}, {"data": {}}, {"data": {"k": ""}}, {"data": {"k": "not base64!"}}],
    )
    def test_read_secret_value_missing(self, secret):
        assert read_secret_value(secret, "k") is None
