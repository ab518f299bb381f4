"""
DexServer handlers - Converge the children of a Dex instance.

Every event for a DexServer runs one convergence pass. A pass creates at
most one missing child and asks to be requeued immediately, so a new
server reaches its full set of children through a short series of kopf
retries. A periodic timer repeats the pass so that a deleted child is
recreated.
"""

import logging
from typing import Any

import kopf

from dex_operator.constants import API_GROUP, API_VERSION, DEX_SERVER_PLURAL
from dex_operator.handlers.common import (
    get_resource_client,
    parse_resource,
    run_reconciliation,
)
from dex_operator.models import DexServer
from dex_operator.services import DexServerReconciler
from dex_operator.settings import settings as operator_settings

logger = logging.getLogger(__name__)


def build_reconciler(memo: kopf.Memo) -> DexServerReconciler:
    return DexServerReconciler(
        get_resource_client(memo), operator_settings.server_defaults()
    )


@kopf.on.create(DEX_SERVER_PLURAL, group=API_GROUP, version=API_VERSION, backoff=1.5)
@kopf.on.resume(DEX_SERVER_PLURAL, group=API_GROUP, version=API_VERSION, backoff=1.5)
@kopf.on.update(DEX_SERVER_PLURAL, group=API_GROUP, version=API_VERSION, backoff=1.5)
async def reconcile_dex_server(
    body: kopf.Body,
    name: str,
    namespace: str,
    memo: kopf.Memo,
    **kwargs: Any,
) -> None:
    """
    Ensure the children of a DexServer exist.

    Args:
        body: Full DexServer resource
        name: Name of the DexServer resource
        namespace: Namespace where the resource exists
        memo: Operator-wide shared state
    """
    logger.debug(f"Handling DexServer {namespace}/{name}")
    resource = parse_resource(DexServer, body)
    await run_reconciliation(build_reconciler(memo), resource)


@kopf.timer(
    DEX_SERVER_PLURAL,
    group=API_GROUP,
    version=API_VERSION,
    interval=float(operator_settings.server_resync_interval_seconds),
    initial_delay=float(operator_settings.server_resync_interval_seconds),
)
async def resync_dex_server(
    body: kopf.Body,
    memo: kopf.Memo,
    **kwargs: Any,
) -> None:
    """Periodically repeat the convergence pass for a DexServer."""
    resource = parse_resource(DexServer, body)
    await run_reconciliation(build_reconciler(memo), resource)
