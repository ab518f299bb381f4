"""
Trust bootstrap wait for the Dex mTLS credential.

A DexClient talks to the Dex instance of its own namespace through mutual
TLS. The credential is a secret with a conventional name holding the CA,
client certificate and client key. When a server and its clients are
created together the secret may not exist yet; that case yields a short
requeue hint instead of an error.
"""

import logging
from dataclasses import dataclass

from ..constants import (
    ERROR_MISSING_SECRET_KEY,
    KIND_SECRET,
    MTLS_CA_KEY,
    MTLS_CERT_KEY,
    MTLS_KEY_KEY,
    MTLS_SECRET_KEYS,
    TRUST_BOOTSTRAP_DELAY,
)
from ..errors import ResolutionError, ResourceNotFoundError
from ..models import DexClient
from ..utils.kubernetes import read_secret_value
from .base_reconciler import ReconcileResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrustCredential:
    """PEM material for a mutual-TLS connection to Dex."""

    ca: bytes
    cert: bytes
    key: bytes


async def resolve_trust_credential(
    resources,
    client: DexClient,
    secret_name: str,
    bootstrap_delay: float = TRUST_BOOTSTRAP_DELAY,
) -> TrustCredential | ReconcileResult:
    """
    Look up the trust credential for a client.

    Args:
        resources: Resource client used for the lookup
        client: The DexClient being reconciled
        secret_name: Conventional name of the credential secret
        bootstrap_delay: Requeue delay while the secret does not exist

    Returns:
        The credential, or a requeue hint when the secret is not there yet

    Raises:
        ResolutionError: If the secret lacks one of its three fields
        KubernetesAPIError: If the lookup fails for any other reason
    """
    namespace = client.metadata.namespace
    try:
        secret = await resources.get(KIND_SECRET, namespace, secret_name)
    except ResourceNotFoundError:
        logger.info(
            f"Trust credential {namespace}/{secret_name} not available yet, "
            f"retrying in {bootstrap_delay}s"
        )
        return ReconcileResult.after(bootstrap_delay)

    values = {}
    for key in MTLS_SECRET_KEYS:
        value = read_secret_value(secret, key)
        if value is None:
            raise ResolutionError(
                ERROR_MISSING_SECRET_KEY.format(namespace, secret_name, key)
            )
        values[key] = value

    return TrustCredential(
        ca=values[MTLS_CA_KEY],
        cert=values[MTLS_CERT_KEY],
        key=values[MTLS_KEY_KEY],
    )
