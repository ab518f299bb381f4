"""
Base reconciler class providing common patterns for resource reconciliation.

This module defines the ``ReconcileResult`` re-invocation hint and the
``BaseReconciler`` class that wraps each pass with correlation-aware
logging, metrics and error normalization.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from kubernetes.client.rest import ApiException

from ..errors import KubernetesAPIError, OperatorError, TemporaryError
from ..observability.logging import OperatorLogger
from ..observability.metrics import metrics_collector


@dataclass(frozen=True)
class ReconcileResult:
    """
    Re-invocation hint returned by a reconciliation pass.

    ``requeue`` without ``requeue_after`` asks for an immediate retry.
    The default value means the resource has converged.
    """

    requeue: bool = False
    requeue_after: float | None = None

    @classmethod
    def immediately(cls) -> "ReconcileResult":
        return cls(requeue=True, requeue_after=0)

    @classmethod
    def after(cls, seconds: float) -> "ReconcileResult":
        return cls(requeue=True, requeue_after=seconds)

    @property
    def delay(self) -> float:
        """Seconds to wait before the next pass (0 when immediate)."""
        return self.requeue_after or 0


class BaseReconciler(ABC):
    """
    Base class for all resource reconcilers.

    Provides common patterns for:
    - Correlation ID and reconciliation lifecycle logging
    - Metrics tracking per pass
    - Translation of stray API exceptions into operator errors
    """

    resource_type = "resource"

    def __init__(self, resource_client: Any):
        """
        Initialize base reconciler.

        Args:
            resource_client: Kind-keyed store access (see ``utils.kubernetes``)
        """
        self.resources = resource_client
        self.logger = OperatorLogger(self.__class__.__name__)

    async def reconcile(self, resource: Any) -> ReconcileResult:
        """
        Run one reconciliation pass with logging and metrics.

        Args:
            resource: Parsed custom resource model

        Returns:
            Hint telling the caller whether and when to call again

        Raises:
            OperatorError: For every failure not absorbed into a hint
        """
        name = resource.metadata.name
        namespace = resource.metadata.namespace
        start_time = time.time()

        self.logger.log_reconciliation_start(
            resource_type=self.resource_type, resource_name=name, namespace=namespace
        )

        async with metrics_collector.track_reconciliation(
            resource_type=self.resource_type, namespace=namespace, name=name
        ):
            try:
                result = await self.do_reconcile(resource)
            except OperatorError as e:
                self.logger.log_reconciliation_error(
                    resource_type=self.resource_type,
                    resource_name=name,
                    namespace=namespace,
                    error=e,
                    duration=time.time() - start_time,
                )
                raise
            except ApiException as e:
                error = KubernetesAPIError(
                    message=str(e),
                    reason=getattr(e, "reason", None),
                    status=getattr(e, "status", None),
                )
                self.logger.log_reconciliation_error(
                    resource_type=self.resource_type,
                    resource_name=name,
                    namespace=namespace,
                    error=error,
                    duration=time.time() - start_time,
                )
                raise error from e
            except Exception as e:
                # Wrap unexpected errors as temporary to allow retry
                error = TemporaryError(
                    f"Unexpected error during reconciliation: {str(e)}"
                )
                self.logger.log_reconciliation_error(
                    resource_type=self.resource_type,
                    resource_name=name,
                    namespace=namespace,
                    error=error,
                    duration=time.time() - start_time,
                )
                raise error from e

        self.logger.log_reconciliation_success(
            resource_type=self.resource_type,
            resource_name=name,
            namespace=namespace,
            duration=time.time() - start_time,
            requeue_after=result.requeue_after if result.requeue else None,
        )
        return result

    @abstractmethod
    async def do_reconcile(self, resource: Any) -> ReconcileResult:
        """
        Perform the resource-specific reconciliation logic.

        Must be implemented by subclasses.
        """
        raise NotImplementedError
