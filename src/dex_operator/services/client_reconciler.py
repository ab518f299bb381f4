"""
Lifecycle state machine for DexClient resources.

A client moves through ``Creating -> Active`` on successful registration
with Dex, to ``Failed`` when registration cannot be attempted or fails,
and to ``ActiveDegraded`` when keeping an active registration in sync
fails. ``Failed`` is terminal: nothing is sent to Dex for it again.

Every pass first resolves the mTLS trust credential of the client's
namespace. While that secret does not exist the pass ends with a short
requeue hint and makes no RPC. The same holds while the namespace has no
DexServer whose Service fronts the gRPC API.
"""

from collections.abc import Callable
from typing import Any

from ..constants import (
    CLIENT_SECRET_KEY,
    DEX_CLIENT_KIND,
    DEX_SERVER_KIND,
    ERROR_MISSING_SECRET_KEY,
    KIND_SECRET,
)
from ..errors import (
    DexAPIError,
    OperatorError,
    PersistenceError,
    ResolutionError,
    ResourceNotFoundError,
    UnknownStateError,
)
from ..models import ClientPhase, DexClient
from ..observability.metrics import metrics_collector
from ..settings import Settings
from ..settings import settings as operator_settings
from ..utils.dex_api import DexApiClient
from ..utils.kubernetes import read_secret_value
from .base_reconciler import BaseReconciler, ReconcileResult
from .trust import TrustCredential, resolve_trust_credential

DexClientFactory = Callable[[str, TrustCredential], DexApiClient]


def mtls_dex_client_factory(timeout: float) -> DexClientFactory:
    """Return a factory opening mutual-TLS Dex clients with the given deadline."""

    def factory(address: str, credential: TrustCredential) -> DexApiClient:
        return DexApiClient(
            address, credential.ca, credential.cert, credential.key, timeout=timeout
        )

    return factory


class DexClientReconciler(BaseReconciler):
    """Drives a DexClient through its lifecycle against the Dex gRPC API."""

    resource_type = "dexclient"

    def __init__(
        self,
        resource_client: Any,
        dex_client_factory: DexClientFactory | None = None,
        settings: Settings | None = None,
    ):
        super().__init__(resource_client)
        self.settings = settings or operator_settings
        self.dex_client_factory = dex_client_factory or mtls_dex_client_factory(
            self.settings.dex_grpc_timeout_seconds
        )

    async def do_reconcile(self, client: DexClient) -> ReconcileResult:
        name = client.metadata.name
        namespace = client.metadata.namespace

        phase = ClientPhase.parse(client.status.state)
        if phase is None:
            error = UnknownStateError(client.status.state, kind=DEX_CLIENT_KIND)
            client.status.message = error.message
            await self._persist(client, status_only=True)
            raise error

        if phase is ClientPhase.FAILED:
            self.logger.info(
                f"DexClient {namespace}/{name} is Failed; nothing to do",
                resource_name=name,
                namespace=namespace,
            )
            return ReconcileResult()

        try:
            trust = await resolve_trust_credential(
                self.resources,
                client,
                self.settings.dex_mtls_secret_name,
                self.settings.trust_bootstrap_delay_seconds,
            )
        except OperatorError as e:
            await self._record_failure(client, ClientPhase.FAILED, e)
            raise
        if isinstance(trust, ReconcileResult):
            return trust

        registering = phase in (ClientPhase.UNSET, ClientPhase.CREATING)
        try:
            address = await self.resolve_grpc_address(client)
        except OperatorError as e:
            failed = ClientPhase.FAILED if registering else ClientPhase.ACTIVE_DEGRADED
            await self._record_failure(client, failed, e)
            raise
        if address is None:
            self.logger.info(
                f"No DexServer in namespace {namespace} yet; waiting",
                resource_name=name,
                namespace=namespace,
            )
            return ReconcileResult.after(self.settings.trust_bootstrap_delay_seconds)

        if registering:
            await self._register(client, trust, address)
        else:
            await self._synchronize(client, trust, address, phase)

        await self._persist(client)
        return ReconcileResult()

    async def _register(
        self, client: DexClient, trust: TrustCredential, address: str
    ) -> None:
        """Create the client in Dex and mark it Active."""
        spec = client.spec
        try:
            secret = await self.resolve_shared_secret(client)
            async with self._open(address, trust) as dex:
                result = await dex.create_client(
                    redirect_uris=spec.redirect_uris,
                    trusted_peers=spec.trusted_peers,
                    public=spec.public,
                    name=self._display_name(client),
                    client_id=self._client_id(client),
                    logo_url=spec.logo_url,
                    secret=secret,
                )
        except OperatorError as e:
            await self._record_failure(client, ClientPhase.FAILED, e)
            raise

        message = "Client already registered in Dex" if result.already_exists else ""
        self._transition(client, ClientPhase.ACTIVE, message)

    async def _synchronize(
        self,
        client: DexClient,
        trust: TrustCredential,
        address: str,
        phase: ClientPhase,
    ) -> None:
        """Push the spec to an existing Dex client."""
        spec = client.spec
        try:
            async with self._open(address, trust) as dex:
                await dex.update_client(
                    client_id=self._client_id(client),
                    redirect_uris=spec.redirect_uris,
                    trusted_peers=spec.trusted_peers,
                    name=self._display_name(client),
                    logo_url=spec.logo_url,
                )
        except OperatorError as e:
            await self._record_failure(client, ClientPhase.ACTIVE_DEGRADED, e)
            raise

        if phase is ClientPhase.ACTIVE_DEGRADED:
            self._transition(client, ClientPhase.ACTIVE, "")
        else:
            self.logger.info(
                f"Dex client {self._client_id(client)} updated",
                client_id=self._client_id(client),
                namespace=client.metadata.namespace,
            )

    async def resolve_shared_secret(self, client: DexClient) -> str:
        """
        Read the client's shared secret from ``clientSecretRef``.

        The reference namespace defaults to the client's own. Public clients
        may omit the reference entirely.

        Raises:
            ResolutionError: If the secret or its ``clientSecret`` key is missing
            KubernetesAPIError: If the lookup fails for any other reason
        """
        ref = client.spec.client_secret_ref
        if not ref.name:
            if client.spec.public:
                return ""
            raise ResolutionError(
                "clientSecretRef.name must be set for a confidential client"
            )

        namespace = ref.resolve_namespace(client.metadata.namespace)
        try:
            secret = await self.resources.get(KIND_SECRET, namespace, ref.name)
        except ResourceNotFoundError as e:
            raise ResolutionError(
                f"secret {namespace}/{ref.name} referenced by clientSecretRef not found"
            ) from e

        value = read_secret_value(secret, CLIENT_SECRET_KEY)
        if value is None:
            raise ResolutionError(
                ERROR_MISSING_SECRET_KEY.format(namespace, ref.name, CLIENT_SECRET_KEY)
            )
        return value.decode("utf-8")

    async def resolve_grpc_address(self, client: DexClient) -> str | None:
        """
        Return the gRPC address of the Dex instance serving the client.

        Without a configured ``DEX_GRPC_SERVICE_NAME`` the address points at
        the Service the server loop creates for the DexServer in the client's
        namespace. Returns None while that namespace has no DexServer.

        Raises:
            ResolutionError: If the namespace holds more than one DexServer
        """
        namespace = client.metadata.namespace
        if self.settings.dex_grpc_service_name:
            return self.settings.grpc_address(namespace)

        servers = await self.resources.list_namespaced(DEX_SERVER_KIND, namespace)
        names = sorted(server["metadata"]["name"] for server in servers)
        if not names:
            return None
        if len(names) > 1:
            raise ResolutionError(
                f"namespace {namespace} has several DexServers ({', '.join(names)})",
                user_action="Set DEX_GRPC_SERVICE_NAME to the Service to connect to",
            )
        return self.settings.grpc_address(namespace, names[0])

    def _open(self, address: str, trust: TrustCredential) -> DexApiClient:
        try:
            return self.dex_client_factory(address, trust)
        except OperatorError:
            raise
        except Exception as e:
            raise DexAPIError(
                f"failed to create Dex API client for {address}: {e}", cause=e
            ) from e

    @staticmethod
    def _client_id(client: DexClient) -> str:
        return client.spec.client_id or client.metadata.name

    @staticmethod
    def _display_name(client: DexClient) -> str:
        return client.spec.name or client.metadata.name

    def _transition(self, client: DexClient, phase: ClientPhase, message: str) -> None:
        previous = client.status.state
        client.status.state = phase.value
        client.status.message = message
        if previous != phase.value:
            self.logger.log_state_transition(
                client.metadata.name,
                client.metadata.namespace,
                previous,
                phase.value,
                message,
            )
            metrics_collector.record_state_transition(
                client.metadata.namespace, previous, phase.value
            )

    async def _record_failure(
        self, client: DexClient, phase: ClientPhase, error: OperatorError
    ) -> None:
        """Record a failure in the status and persist it."""
        self._transition(client, phase, error.message)
        await self._persist(client, status_only=True)
        error.delay = self.settings.failure_backoff_seconds

    async def _persist(self, client: DexClient, status_only: bool = False) -> None:
        """Write the status and then the resource back to the store."""
        body = client.to_body()
        try:
            stored = await self.resources.update_status(DEX_CLIENT_KIND, body)
            if status_only:
                return
            resource_version = (stored.get("metadata") or {}).get("resourceVersion")
            if resource_version:
                body["metadata"]["resourceVersion"] = resource_version
            await self.resources.update(DEX_CLIENT_KIND, body)
        except OperatorError as e:
            raise PersistenceError(
                f"Failed to persist DexClient {client.metadata.namespace}/"
                f"{client.metadata.name}: {e.message}",
                delay=self.settings.failure_backoff_seconds,
                cause=e,
            ) from e
