"""
Operator error hierarchy with categorization and retry logic.

This module defines the error types used throughout the Dex operator,
providing clear categorization and integration with kopf's retry mechanisms.
"""

import kopf


class OperatorError(Exception):
    """
    Base error class for all operator-related exceptions.

    Provides categorization, retry behavior, and user guidance for resolution.
    """

    def __init__(
        self,
        message: str,
        category: str,
        retryable: bool = True,
        delay: float = 30,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        """
        Initialize operator error.

        Args:
            message: Human-readable error description
            category: Error category (validation, api, configuration, external)
            retryable: Whether kopf should retry this operation
            delay: Suggested retry delay in seconds
            user_action: What user should do to resolve the issue
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.retryable = retryable
        self.delay = delay
        self.user_action = user_action
        self.cause = cause

    def as_kopf_error(self):
        """Convert to appropriate kopf exception type."""
        if self.retryable:
            return kopf.TemporaryError(str(self), delay=self.delay)
        else:
            return kopf.PermanentError(str(self))

    def __str__(self) -> str:
        """Enhanced string representation with user guidance."""
        base_msg = super().__str__()
        if self.user_action:
            return f"{base_msg}\nAction required: {self.user_action}"
        return base_msg


class ValidationError(OperatorError):
    """Error in resource specification validation."""

    def __init__(
        self, message: str, field: str | None = None, user_action: str | None = None
    ):
        action = user_action or "Check resource specification and fix validation errors"
        if field:
            message = f"Validation error in field '{field}': {message}"
        super().__init__(
            message=message, category="validation", retryable=False, user_action=action
        )


class TemporaryError(OperatorError):
    """Temporary error that should be retried."""

    def __init__(self, message: str, delay: float = 30, user_action: str | None = None):
        super().__init__(
            message=message,
            category="temporary",
            retryable=True,
            delay=delay,
            user_action=user_action
            or "Wait for automatic retry or check system status",
        )


class PermanentError(OperatorError):
    """Permanent error that should not be retried."""

    def __init__(self, message: str, user_action: str | None = None):
        super().__init__(
            message=message,
            category="permanent",
            retryable=False,
            user_action=user_action or "Manual intervention required to resolve",
        )


class ExternalServiceError(OperatorError):
    """Error communicating with external services."""

    def __init__(
        self,
        service: str,
        message: str,
        retryable: bool = True,
        delay: float = 60,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        action = user_action or f"Check {service} connectivity and credentials"
        super().__init__(
            message=f"{service} error: {message}",
            category="external",
            retryable=retryable,
            delay=delay,
            user_action=action,
            cause=cause,
        )


class KubernetesAPIError(ExternalServiceError):
    """Error communicating with Kubernetes API."""

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        status: int | None = None,
        retryable: bool = True,
    ):
        if reason:
            message = f"{message} (reason: {reason})"

        # Some K8s errors are not retryable
        non_retryable_reasons = {"Forbidden", "Unauthorized", "Invalid"}
        if reason in non_retryable_reasons:
            retryable = False

        super().__init__(
            service="Kubernetes API",
            message=message,
            retryable=retryable,
            user_action="Check RBAC permissions and cluster connectivity",
        )
        self.reason = reason
        self.status = status


class ResourceNotFoundError(OperatorError):
    """A resource looked up in the store does not exist (yet)."""

    def __init__(self, kind: str, namespace: str, name: str, delay: float = 5):
        super().__init__(
            message=f"{kind} {namespace}/{name} not found",
            category="not_found",
            retryable=True,
            delay=delay,
        )
        self.kind = kind
        self.namespace = namespace
        self.name = name


class ResourceAlreadyExistsError(OperatorError):
    """A create raced with another writer and the resource already exists."""

    def __init__(self, kind: str, namespace: str, name: str):
        super().__init__(
            message=f"{kind} {namespace}/{name} already exists",
            category="conflict",
            retryable=True,
            delay=0,
        )
        self.kind = kind
        self.namespace = namespace
        self.name = name


class DexAPIError(ExternalServiceError):
    """Error returned by the Dex gRPC administrative API."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        retryable: bool = True,
        delay: float = 10,
        cause: Exception | None = None,
    ):
        super().__init__(
            service="Dex API",
            message=message,
            retryable=retryable,
            delay=delay,
            user_action="Check the Dex instance and its mTLS client credentials",
            cause=cause,
        )
        self.code = code
        # Status messages carry the bare RPC error text
        self.message = message


class ResolutionError(OperatorError):
    """A referenced secret or field is missing or malformed."""

    def __init__(self, message: str, delay: float = 10, user_action: str | None = None):
        super().__init__(
            message=message,
            category="resolution",
            retryable=True,
            delay=delay,
            user_action=user_action
            or "Create or fix the referenced secret and its data keys",
        )


class PersistenceError(OperatorError):
    """Writing the status or the resource back to the store failed."""

    def __init__(self, message: str, delay: float = 10, cause: Exception | None = None):
        super().__init__(
            message=message,
            category="persistence",
            retryable=True,
            delay=delay,
            user_action="Wait for automatic retry; the change was not committed",
            cause=cause,
        )


class UnknownStateError(OperatorError):
    """A resource carries a status state the operator does not recognise."""

    def __init__(self, state: str, kind: str = "DexClient"):
        super().__init__(
            message=f"{kind} has unrecognised status state '{state}'",
            category="state",
            retryable=False,
            user_action="Reset status.state to a known value or clear it",
        )
        self.state = state


class ConfigurationError(OperatorError):
    """Error in operator or resource configuration."""

    def __init__(
        self, message: str, retryable: bool = False, user_action: str | None = None
    ):
        super().__init__(
            message=message,
            category="configuration",
            retryable=retryable,
            user_action=user_action or "Review and correct configuration",
        )
