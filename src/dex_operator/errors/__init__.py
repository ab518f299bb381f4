"""
Error handling module for the Dex operator.

This module provides an error hierarchy that integrates with kopf
and provides clear categorization for different types of failures.
"""

from .operator_errors import (
    ConfigurationError,
    DexAPIError,
    ExternalServiceError,
    KubernetesAPIError,
    OperatorError,
    PermanentError,
    PersistenceError,
    ResolutionError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
    TemporaryError,
    UnknownStateError,
    ValidationError,
)

__all__ = [
    "OperatorError",
    "ValidationError",
    "TemporaryError",
    "PermanentError",
    "ExternalServiceError",
    "KubernetesAPIError",
    "ResourceNotFoundError",
    "ResourceAlreadyExistsError",
    "DexAPIError",
    "ResolutionError",
    "PersistenceError",
    "UnknownStateError",
    "ConfigurationError",
]
