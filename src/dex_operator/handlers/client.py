"""
DexClient handlers - Register OAuth2 clients with Dex.

Creation, resumption after an operator restart and spec changes all run
the same lifecycle pass. The pass itself decides what to do from the
client's recorded state.
"""

import logging
from typing import Any

import kopf

from dex_operator.constants import API_GROUP, API_VERSION, DEX_CLIENT_PLURAL
from dex_operator.handlers.common import (
    get_resource_client,
    parse_resource,
    run_reconciliation,
)
from dex_operator.models import DexClient
from dex_operator.services import DexClientReconciler
from dex_operator.settings import settings as operator_settings

logger = logging.getLogger(__name__)


def build_reconciler(memo: kopf.Memo) -> DexClientReconciler:
    return DexClientReconciler(get_resource_client(memo), settings=operator_settings)


@kopf.on.create(DEX_CLIENT_PLURAL, group=API_GROUP, version=API_VERSION, backoff=1.5)
@kopf.on.resume(DEX_CLIENT_PLURAL, group=API_GROUP, version=API_VERSION, backoff=1.5)
@kopf.on.update(DEX_CLIENT_PLURAL, group=API_GROUP, version=API_VERSION, backoff=1.5)
async def reconcile_dex_client(
    body: kopf.Body,
    name: str,
    namespace: str,
    memo: kopf.Memo,
    **kwargs: Any,
) -> None:
    """
    Drive a DexClient through its lifecycle.

    Args:
        body: Full DexClient resource
        name: Name of the DexClient resource
        namespace: Namespace where the resource exists
        memo: Operator-wide shared state
    """
    logger.debug(f"Handling DexClient {namespace}/{name}")
    resource = parse_resource(DexClient, body)
    await run_reconciliation(build_reconciler(memo), resource)
