"""Unit tests for the DexClient lifecycle state machine."""

import base64

import pytest

from dex_operator.constants import DEX_CLIENT_KIND, DEX_SERVER_KIND, KIND_SECRET
from dex_operator.errors import (
    DexAPIError,
    KubernetesAPIError,
    PersistenceError,
    ResolutionError,
    UnknownStateError,
)
from dex_operator.models import DexClient
from dex_operator.services import DexClientReconciler, ReconcileResult
from dex_operator.services.trust import TrustCredential
from dex_operator.settings import Settings
from dex_operator.utils.dex_api import CreateClientResult
from tests.fixtures.fake_store import FakeDexClientFactory, FakeResourceClient

NAMESPACE = "team-a"


def encode(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def mtls_secret(**overrides) -> dict:
    data = {
        "ca.crt": encode("CA"),
        "client.crt": encode("CERT"),
        "client.key": encode("KEY"),
    }
    data.update(overrides)
    return {
        "metadata": {"name": "dex-client-mtls", "namespace": NAMESPACE},
        "data": {key: value for key, value in data.items() if value is not None},
    }


def client_body(state: str = "", message: str = "") -> dict:
    return {
        "apiVersion": "auth.identitatem.io/v1alpha1",
        "kind": DEX_CLIENT_KIND,
        "metadata": {"name": "portal", "namespace": NAMESPACE},
        "spec": {
            "clientID": "portal-id",
            "name": "Portal",
            "logoURL": "https://example.com/logo.png",
            "public": False,
            "redirectURIs": ["https://portal.example.com/callback"],
            "trustedPeers": ["cli"],
            "clientSecretRef": {"name": "portal-secret"},
        },
        "status": {"state": state, "message": message},
    }


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def store() -> FakeResourceClient:
    store = FakeResourceClient()
    store.add(KIND_SECRET, mtls_secret())
    store.add(
        KIND_SECRET,
        {
            "metadata": {"name": "portal-secret", "namespace": NAMESPACE},
            "data": {"clientSecret": encode("s3cr3t")},
        },
    )
    store.add(DEX_SERVER_KIND, {"metadata": {"name": "dex", "namespace": NAMESPACE}})
    return store


@pytest.fixture
def factory() -> FakeDexClientFactory:
    return FakeDexClientFactory()


@pytest.fixture
def reconciler(store, factory, settings) -> DexClientReconciler:
    return DexClientReconciler(store, dex_client_factory=factory, settings=settings)


def seed_client(store: FakeResourceClient, state: str = "", message: str = "") -> DexClient:
    return DexClient.from_body(store.add(DEX_CLIENT_KIND, client_body(state, message)))


def stored_status(store: FakeResourceClient) -> dict:
    return store.stored(DEX_CLIENT_KIND, NAMESPACE, "portal")["status"]


class TestRegistration:
    """Unset and Creating clients are registered with Dex."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", ["", "Creating"])
    async def test_registers_and_becomes_active(self, reconciler, store, factory, state):
        client = seed_client(store, state)

        result = await reconciler.reconcile(client)

        assert result == ReconcileResult()
        assert stored_status(store)["state"] == "Active"
        factory.dex.create_client.assert_awaited_once_with(
            redirect_uris=["https://portal.example.com/callback"],
            trusted_peers=["cli"],
            public=False,
            name="Portal",
            client_id="portal-id",
            logo_url="https://example.com/logo.png",
            secret="s3cr3t",
        )
        factory.dex.update_client.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connects_to_namespace_grpc_address_with_trust(
        self, reconciler, store, factory
    ):
        await reconciler.reconcile(seed_client(store))

        address, credential = factory.calls[0]
        assert address == "dex.team-a.svc.cluster.local:5557"
        assert credential == TrustCredential(ca=b"CA", cert=b"CERT", key=b"KEY")

    @pytest.mark.asyncio
    async def test_status_then_resource_are_persisted(self, reconciler, store):
        await reconciler.reconcile(seed_client(store))

        assert store.status_writes == [{"state": "Active", "message": ""}]
        assert len(store.updates) == 1

    @pytest.mark.asyncio
    async def test_dex_already_exists_counts_as_registered(
        self, reconciler, store, factory
    ):
        factory.dex.create_client.side_effect = None
        factory.dex.create_client.return_value = CreateClientResult(
            client_id="portal-id", already_exists=True
        )

        result = await reconciler.reconcile(seed_client(store))

        assert result == ReconcileResult()
        assert stored_status(store)["state"] == "Active"

    @pytest.mark.asyncio
    async def test_create_failure_marks_failed(self, reconciler, store, factory):
        factory.dex.create_client.side_effect = DexAPIError("connection refused")

        with pytest.raises(DexAPIError) as exc_info:
            await reconciler.reconcile(seed_client(store))

        assert exc_info.value.delay == 10
        assert stored_status(store) == {"state": "Failed", "message": "connection refused"}
        assert store.updates == []

    @pytest.mark.asyncio
    async def test_missing_shared_secret_marks_failed_without_rpc(
        self, reconciler, store, factory
    ):
        del store.objects[(KIND_SECRET, NAMESPACE, "portal-secret")]

        with pytest.raises(ResolutionError):
            await reconciler.reconcile(seed_client(store))

        assert stored_status(store)["state"] == "Failed"
        assert "portal-secret" in stored_status(store)["message"]
        assert factory.calls == []

    @pytest.mark.asyncio
    async def test_shared_secret_without_key_marks_failed(self, reconciler, store, factory):
        store.stored(KIND_SECRET, NAMESPACE, "portal-secret")["data"] = {}

        with pytest.raises(ResolutionError):
            await reconciler.reconcile(seed_client(store))

        assert stored_status(store)["state"] == "Failed"
        factory.dex.create_client.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_shared_secret_namespace_can_be_overridden(self, reconciler, store):
        store.add(
            KIND_SECRET,
            {
                "metadata": {"name": "shared", "namespace": "vault"},
                "data": {"clientSecret": encode("other")},
            },
        )
        client = seed_client(store)
        client.spec.client_secret_ref.name = "shared"
        client.spec.client_secret_ref.namespace = "vault"

        assert await reconciler.resolve_shared_secret(client) == "other"

    @pytest.mark.asyncio
    async def test_public_client_without_secret_ref(self, reconciler, store):
        client = seed_client(store)
        client.spec.public = True
        client.spec.client_secret_ref.name = ""

        assert await reconciler.resolve_shared_secret(client) == ""


class TestActiveClients:
    """Active clients are kept in sync with their spec."""

    @pytest.mark.asyncio
    async def test_successful_update_keeps_active(self, reconciler, store, factory):
        result = await reconciler.reconcile(seed_client(store, "Active"))

        assert result == ReconcileResult()
        factory.dex.update_client.assert_awaited_once_with(
            client_id="portal-id",
            redirect_uris=["https://portal.example.com/callback"],
            trusted_peers=["cli"],
            name="Portal",
            logo_url="https://example.com/logo.png",
        )
        factory.dex.create_client.assert_not_awaited()
        assert stored_status(store)["state"] == "Active"

    @pytest.mark.asyncio
    async def test_failed_update_degrades(self, reconciler, store, factory):
        factory.dex.update_client.side_effect = DexAPIError(
            "rpc error: code = Unavailable desc = dex is down"
        )

        with pytest.raises(DexAPIError) as exc_info:
            await reconciler.reconcile(seed_client(store, "Active"))

        assert exc_info.value.delay == 10
        assert stored_status(store) == {
            "state": "ActiveDegraded",
            "message": "rpc error: code = Unavailable desc = dex is down",
        }

    @pytest.mark.asyncio
    async def test_degraded_client_recovers_on_successful_update(
        self, reconciler, store, factory
    ):
        await reconciler.reconcile(seed_client(store, "ActiveDegraded", "boom"))

        factory.dex.update_client.assert_awaited_once()
        assert stored_status(store) == {"state": "Active", "message": ""}

    @pytest.mark.asyncio
    async def test_active_never_returns_to_creating(self, reconciler, store, factory):
        factory.dex.update_client.side_effect = DexAPIError("client portal-id not found")

        with pytest.raises(DexAPIError):
            await reconciler.reconcile(seed_client(store, "Active"))

        factory.dex.create_client.assert_not_awaited()
        assert stored_status(store)["state"] == "ActiveDegraded"


class TestTrustBootstrap:
    """Dependency on the mTLS trust credential."""

    @pytest.mark.asyncio
    async def test_missing_trust_secret_requeues_without_rpc(
        self, reconciler, store, factory
    ):
        del store.objects[(KIND_SECRET, NAMESPACE, "dex-client-mtls")]
        client = seed_client(store)

        result = await reconciler.reconcile(client)

        assert result == ReconcileResult(requeue=True, requeue_after=5)
        assert factory.calls == []
        assert store.status_writes == []

    @pytest.mark.asyncio
    async def test_trust_lookup_error_marks_failed(self, reconciler, store, factory):
        store.get_errors[(KIND_SECRET, NAMESPACE, "dex-client-mtls")] = (
            KubernetesAPIError("Failed to get Secret", reason="Forbidden", status=403)
        )

        with pytest.raises(KubernetesAPIError):
            await reconciler.reconcile(seed_client(store))

        assert stored_status(store)["state"] == "Failed"
        assert factory.calls == []

    @pytest.mark.asyncio
    async def test_incomplete_trust_secret_marks_failed(self, reconciler, store, factory):
        store.stored(KIND_SECRET, NAMESPACE, "dex-client-mtls")["data"].pop("client.key")

        with pytest.raises(ResolutionError):
            await reconciler.reconcile(seed_client(store))

        assert stored_status(store)["state"] == "Failed"
        assert "client.key" in stored_status(store)["message"]
        assert factory.calls == []


class TestTerminalAndUnknownStates:
    """Failed is terminal; unknown states are rejected."""

    @pytest.mark.asyncio
    async def test_failed_client_makes_no_rpc(self, reconciler, store, factory):
        client = seed_client(store, "Failed", "earlier failure")

        result = await reconciler.reconcile(client)

        assert result == ReconcileResult()
        assert factory.calls == []
        assert store.status_writes == []
        assert stored_status(store) == {"state": "Failed", "message": "earlier failure"}

    @pytest.mark.asyncio
    async def test_unknown_state_is_an_error(self, reconciler, store, factory):
        client = seed_client(store, "Bogus")

        with pytest.raises(UnknownStateError) as exc_info:
            await reconciler.reconcile(client)

        assert not exc_info.value.retryable
        assert factory.calls == []
        status = stored_status(store)
        assert status["state"] == "Bogus"
        assert "'Bogus'" in status["message"]
        assert store.updates == []


class TestConnectionLifetime:
    """The Dex client is closed exactly once on every path."""

    @pytest.mark.asyncio
    async def test_closed_after_success(self, reconciler, store, factory):
        await reconciler.reconcile(seed_client(store))

        assert factory.dex.close_calls == 1

    @pytest.mark.asyncio
    async def test_closed_after_create_failure(self, reconciler, store, factory):
        factory.dex.create_client.side_effect = DexAPIError("boom")

        with pytest.raises(DexAPIError):
            await reconciler.reconcile(seed_client(store))

        assert factory.dex.close_calls == 1

    @pytest.mark.asyncio
    async def test_closed_after_update_failure(self, reconciler, store, factory):
        factory.dex.update_client.side_effect = DexAPIError("boom")

        with pytest.raises(DexAPIError):
            await reconciler.reconcile(seed_client(store, "Active"))

        assert factory.dex.close_calls == 1

    @pytest.mark.asyncio
    async def test_factory_failure_marks_failed(self, reconciler, store):
        def broken_factory(address, credential):
            raise ValueError("bad PEM")

        reconciler.dex_client_factory = broken_factory

        with pytest.raises(DexAPIError):
            await reconciler.reconcile(seed_client(store))

        assert stored_status(store)["state"] == "Failed"
        assert "bad PEM" in stored_status(store)["message"]


class TestPersistence:
    """Write failures surface as hard errors."""

    @pytest.mark.asyncio
    async def test_status_write_failure(self, reconciler, store):
        store.update_status_error = KubernetesAPIError(
            "Failed to update status", reason="Conflict", status=409
        )

        with pytest.raises(PersistenceError):
            await reconciler.reconcile(seed_client(store))

    @pytest.mark.asyncio
    async def test_resource_write_failure(self, reconciler, store):
        store.update_error = KubernetesAPIError(
            "Failed to update", reason="InternalError", status=500
        )

        with pytest.raises(PersistenceError):
            await reconciler.reconcile(seed_client(store))

    @pytest.mark.asyncio
    async def test_stale_resource_version_is_a_persistence_error(
        self, reconciler, store
    ):
        client = seed_client(store)
        store.add(DEX_CLIENT_KIND, client_body())

        with pytest.raises(PersistenceError):
            await reconciler.reconcile(client)


class TestStoredResource:
    """Writing back a client leaves its desired state untouched."""

    @pytest.mark.asyncio
    async def test_spec_defaults_are_not_written_back(self, reconciler, store):
        spec = {"redirectURIs": ["https://portal.example.com/callback"], "public": True}
        body = store.add(
            DEX_CLIENT_KIND,
            {
                "apiVersion": "auth.identitatem.io/v1alpha1",
                "kind": DEX_CLIENT_KIND,
                "metadata": {"name": "portal", "namespace": NAMESPACE},
                "spec": spec,
            },
        )

        await reconciler.reconcile(DexClient.from_body(body))

        stored = store.stored(DEX_CLIENT_KIND, NAMESPACE, "portal")
        assert stored["spec"] == spec
        assert stored["status"] == {"state": "Active", "message": ""}

    @pytest.mark.asyncio
    async def test_unknown_fields_survive_the_write(self, reconciler, store):
        body = client_body()
        body["metadata"]["labels"] = {"team": "a"}
        body["spec"]["extraField"] = "kept"
        client = DexClient.from_body(store.add(DEX_CLIENT_KIND, body))

        await reconciler.reconcile(client)

        stored = store.stored(DEX_CLIENT_KIND, NAMESPACE, "portal")
        assert stored["spec"]["extraField"] == "kept"
        assert stored["metadata"]["labels"] == {"team": "a"}
        assert "namespace" not in stored["spec"]["clientSecretRef"]


class TestDexAddress:
    """The gRPC address follows the DexServer of the client's namespace."""

    @pytest.mark.asyncio
    async def test_configured_service_name_wins(self, store, factory):
        settings = Settings(_env_file=None, DEX_GRPC_SERVICE_NAME="dex-api")
        reconciler = DexClientReconciler(
            store, dex_client_factory=factory, settings=settings
        )

        await reconciler.reconcile(seed_client(store))

        address, _ = factory.calls[0]
        assert address == "dex-api.team-a.svc.cluster.local:5557"

    @pytest.mark.asyncio
    async def test_waits_for_a_dex_server(self, reconciler, store, factory):
        del store.objects[(DEX_SERVER_KIND, NAMESPACE, "dex")]
        client = seed_client(store)

        result = await reconciler.reconcile(client)

        assert result == ReconcileResult(requeue=True, requeue_after=5)
        assert factory.calls == []
        assert store.status_writes == []

    @pytest.mark.asyncio
    async def test_several_dex_servers_mark_new_client_failed(
        self, reconciler, store, factory
    ):
        store.add(DEX_SERVER_KIND, {"metadata": {"name": "dex-b", "namespace": NAMESPACE}})

        with pytest.raises(ResolutionError, match="several DexServers"):
            await reconciler.reconcile(seed_client(store))

        assert factory.calls == []
        assert stored_status(store)["state"] == "Failed"

    @pytest.mark.asyncio
    async def test_several_dex_servers_degrade_active_client(
        self, reconciler, store, factory
    ):
        store.add(DEX_SERVER_KIND, {"metadata": {"name": "dex-b", "namespace": NAMESPACE}})

        with pytest.raises(ResolutionError):
            await reconciler.reconcile(seed_client(store, "Active"))

        assert factory.calls == []
        assert stored_status(store)["state"] == "ActiveDegraded"
