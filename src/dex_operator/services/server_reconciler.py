"""
Convergence loop for DexServer resources.

Each pass walks the server's children in a fixed order and creates at most
one missing child before asking to be called again immediately. Children
that exist are never modified or deleted here; garbage collection follows
the controller owner reference set on every child.
"""

from collections.abc import Callable
from typing import Any

from ..constants import (
    API_GROUP_VERSION,
    DEX_SERVER_KIND,
    KIND_CONFIG_MAP,
    KIND_DEPLOYMENT,
    KIND_INGRESS,
    KIND_ROUTE,
    KIND_SERVICE,
    KIND_SERVICE_ACCOUNT,
)
from ..errors import (
    ConfigurationError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
)
from ..models import DexServer, OwnerReference
from ..observability.metrics import metrics_collector
from ..settings import ServerDefaults
from ..utils import manifests
from ..utils.kubernetes import set_owner_reference
from .base_reconciler import BaseReconciler, ReconcileResult

ManifestBuilder = Callable[[DexServer, ServerDefaults], dict[str, Any]]


class DexServerReconciler(BaseReconciler):
    """
    Ensures the ordered set of children of a DexServer exists.

    The order is config bundle, network service, service identity, workload
    and external route (an Ingress replaces the Route when configured).
    """

    resource_type = "dexserver"

    def __init__(self, resource_client: Any, defaults: ServerDefaults | None = None):
        super().__init__(resource_client)
        self.defaults = defaults or ServerDefaults()

    def children(self, server: DexServer) -> list[tuple[str, str, ManifestBuilder]]:
        """Return (kind, name, builder) for every child, in creation order."""
        name = server.metadata.name
        if self.defaults.route_kind == "ingress":
            route = (KIND_INGRESS, name, manifests.build_ingress)
        else:
            route = (KIND_ROUTE, name, manifests.build_route)
        return [
            (KIND_CONFIG_MAP, name, manifests.build_config_map),
            (KIND_SERVICE, name, manifests.build_service),
            (
                KIND_SERVICE_ACCOUNT,
                self.defaults.service_account_for(name),
                manifests.build_service_account,
            ),
            (KIND_DEPLOYMENT, name, manifests.build_deployment),
            route,
        ]

    def owner_reference(self, server: DexServer) -> OwnerReference:
        """Controller owner relation pointing at the server."""
        if not server.metadata.uid:
            raise ConfigurationError(
                f"DexServer {server.metadata.namespace}/{server.metadata.name} "
                "has no uid; cannot own child resources"
            )
        return OwnerReference(
            api_version=API_GROUP_VERSION,
            kind=DEX_SERVER_KIND,
            name=server.metadata.name,
            uid=server.metadata.uid,
        )

    def build_child(
        self, server: DexServer, builder: ManifestBuilder
    ) -> dict[str, Any]:
        """Build a child manifest with the server set as its owner."""
        manifest = builder(server, self.defaults)
        set_owner_reference(manifest, self.owner_reference(server))
        return manifest

    async def converge(self, server: DexServer) -> ReconcileResult:
        """Run one convergence pass for a server."""
        return await self.reconcile(server)

    async def do_reconcile(self, server: DexServer) -> ReconcileResult:
        namespace = server.metadata.namespace

        for kind, child_name, builder in self.children(server):
            try:
                await self.resources.get(kind, namespace, child_name)
                continue
            except ResourceNotFoundError:
                pass

            manifest = self.build_child(server, builder)
            self.logger.info(
                f"Creating {kind} {namespace}/{child_name}",
                child_kind=kind,
                child_name=child_name,
                namespace=namespace,
            )
            try:
                await self.resources.create(kind, namespace, manifest)
                metrics_collector.record_child_created(namespace, kind)
            except ResourceAlreadyExistsError:
                self.logger.info(
                    f"{kind} {namespace}/{child_name} was created concurrently",
                    child_kind=kind,
                    child_name=child_name,
                    namespace=namespace,
                )
            return ReconcileResult.immediately()

        self.logger.debug(
            f"All children of DexServer {namespace}/{server.metadata.name} exist"
        )
        return ReconcileResult()
