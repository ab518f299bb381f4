"""
Glue between kopf handlers and the reconcilers.

Reconcilers return re-invocation hints and raise operator errors; kopf
expects handlers to raise its own error types to schedule retries. This
module performs that translation in one place.
"""

import logging
from typing import Any, TypeVar

import kopf
import pydantic

from dex_operator.errors import OperatorError, ValidationError
from dex_operator.services import BaseReconciler
from dex_operator.utils.kubernetes import ResourceClient

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


def get_resource_client(memo: kopf.Memo) -> ResourceClient:
    """Return the operator-wide resource client, creating it on first use."""
    resources = getattr(memo, "resources", None)
    if resources is None:
        resources = ResourceClient()
        memo.resources = resources
    return resources


def parse_resource(model: type[ModelT], body: kopf.Body) -> ModelT:
    """
    Parse a resource body into its model.

    Raises:
        kopf.PermanentError: When the body does not match the resource schema
    """
    try:
        return model.from_body(body)
    except pydantic.ValidationError as e:
        error = ValidationError(f"Invalid {body.get('kind', 'resource')}: {e}")
        raise error.as_kopf_error() from e


async def run_reconciliation(reconciler: BaseReconciler, resource: Any) -> None:
    """
    Run one reconciliation pass and translate its outcome for kopf.

    Raises:
        kopf.TemporaryError: When the pass asks to be requeued or failed
            with a retryable error
        kopf.PermanentError: When the pass failed with a non-retryable error
    """
    try:
        result = await reconciler.reconcile(resource)
    except OperatorError as e:
        raise e.as_kopf_error() from e

    if result.requeue:
        raise kopf.TemporaryError(
            f"{resource.kind} {resource.metadata.namespace}/{resource.metadata.name} "
            "requeued",
            delay=result.delay,
        )
