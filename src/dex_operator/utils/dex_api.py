"""
Client for the Dex gRPC administrative API.

Only the two calls the operator needs are wired: ``CreateClient`` and
``UpdateClient`` of the ``api.Dex`` service. Their message classes are
generated at import time from a descriptor that mirrors Dex's
``api/v2/api.proto``, so no generated stubs need to be shipped.

Connections use mutual TLS with the CA, certificate and key taken from the
trust credential secret of the client's namespace. A client is meant to
live for a single reconciliation:

    async with DexApiClient(address, ca, cert, key) as dex:
        await dex.create_client(...)
"""

import logging
from dataclasses import dataclass

import grpc
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from dex_operator.constants import DEFAULT_GRPC_TIMEOUT_SECONDS
from dex_operator.errors import DexAPIError

logger = logging.getLogger(__name__)

_FIELD = descriptor_pb2.FieldDescriptorProto

# (name, number, type, repeated, message type)
_MESSAGES: dict[str, list[tuple[str, int, int, bool, str | None]]] = {
    "Client": [
        ("id", 1, _FIELD.TYPE_STRING, False, None),
        ("secret", 2, _FIELD.TYPE_STRING, False, None),
        ("redirect_uris", 3, _FIELD.TYPE_STRING, True, None),
        ("trusted_peers", 4, _FIELD.TYPE_STRING, True, None),
        ("public", 5, _FIELD.TYPE_BOOL, False, None),
        ("name", 6, _FIELD.TYPE_STRING, False, None),
        ("logo_url", 7, _FIELD.TYPE_STRING, False, None),
    ],
    "CreateClientReq": [
        ("client", 1, _FIELD.TYPE_MESSAGE, False, ".api.Client"),
    ],
    "CreateClientResp": [
        ("already_exists", 1, _FIELD.TYPE_BOOL, False, None),
        ("client", 2, _FIELD.TYPE_MESSAGE, False, ".api.Client"),
    ],
    "UpdateClientReq": [
        ("id", 1, _FIELD.TYPE_STRING, False, None),
        ("redirect_uris", 2, _FIELD.TYPE_STRING, True, None),
        ("trusted_peers", 3, _FIELD.TYPE_STRING, True, None),
        ("name", 4, _FIELD.TYPE_STRING, False, None),
        ("logo_url", 5, _FIELD.TYPE_STRING, False, None),
    ],
    "UpdateClientResp": [
        ("not_found", 1, _FIELD.TYPE_BOOL, False, None),
    ],
}


def _build_message_classes() -> dict[str, type]:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="dex_operator/dex_api.proto", package="api", syntax="proto3"
    )
    for message_name, fields in _MESSAGES.items():
        message = file_proto.message_type.add(name=message_name)
        for field_name, number, field_type, repeated, type_name in fields:
            field = message.field.add(
                name=field_name,
                number=number,
                type=field_type,
                label=_FIELD.LABEL_REPEATED if repeated else _FIELD.LABEL_OPTIONAL,
            )
            if type_name:
                field.type_name = type_name

    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(file_proto.SerializeToString())
    return {
        name: message_factory.GetMessageClass(pool.FindMessageTypeByName(f"api.{name}"))
        for name in _MESSAGES
    }


_classes = _build_message_classes()
Client = _classes["Client"]
CreateClientReq = _classes["CreateClientReq"]
CreateClientResp = _classes["CreateClientResp"]
UpdateClientReq = _classes["UpdateClientReq"]
UpdateClientResp = _classes["UpdateClientResp"]

CREATE_CLIENT_METHOD = "/api.Dex/CreateClient"
UPDATE_CLIENT_METHOD = "/api.Dex/UpdateClient"

# Status codes worth retrying without operator intervention
RETRYABLE_CODES = frozenset(
    {
        grpc.StatusCode.UNAVAILABLE,
        grpc.StatusCode.DEADLINE_EXCEEDED,
        grpc.StatusCode.RESOURCE_EXHAUSTED,
        grpc.StatusCode.ABORTED,
    }
)


@dataclass(frozen=True)
class CreateClientResult:
    """Outcome of a CreateClient call."""

    client_id: str
    already_exists: bool = False


def _rpc_error(operation: str, error: grpc.aio.AioRpcError) -> DexAPIError:
    code = error.code()
    return DexAPIError(
        error.details() or f"{operation} failed with {code.name}",
        code=code.name,
        retryable=code in RETRYABLE_CODES,
        cause=error,
    )


class DexApiClient:
    """Mutual-TLS client for one Dex instance."""

    def __init__(
        self,
        address: str,
        ca: bytes,
        cert: bytes,
        key: bytes,
        timeout: float = DEFAULT_GRPC_TIMEOUT_SECONDS,
    ):
        self.address = address
        self.timeout = timeout
        credentials = grpc.ssl_channel_credentials(
            root_certificates=ca, private_key=key, certificate_chain=cert
        )
        self._channel = grpc.aio.secure_channel(address, credentials)
        self._closed = False

        self._create_client = self._channel.unary_unary(
            CREATE_CLIENT_METHOD,
            request_serializer=CreateClientReq.SerializeToString,
            response_deserializer=CreateClientResp.FromString,
        )
        self._update_client = self._channel.unary_unary(
            UPDATE_CLIENT_METHOD,
            request_serializer=UpdateClientReq.SerializeToString,
            response_deserializer=UpdateClientResp.FromString,
        )

    async def create_client(
        self,
        redirect_uris: list[str],
        trusted_peers: list[str],
        public: bool,
        name: str,
        client_id: str,
        logo_url: str,
        secret: str,
    ) -> CreateClientResult:
        """
        Register an OAuth2 client.

        A client that already exists on the Dex side, reported either through
        the ``already_exists`` response flag or the ``ALREADY_EXISTS`` status
        code, is returned as a result rather than raised.

        Raises:
            DexAPIError: If the call fails for any other reason
        """
        request = CreateClientReq(
            client=Client(
                id=client_id,
                secret=secret,
                redirect_uris=redirect_uris,
                trusted_peers=trusted_peers,
                public=public,
                name=name,
                logo_url=logo_url,
            )
        )
        try:
            response = await self._create_client(request, timeout=self.timeout)
        except grpc.aio.AioRpcError as e:
            if e.code() == grpc.StatusCode.ALREADY_EXISTS:
                logger.info(f"Dex client {client_id} already exists at {self.address}")
                return CreateClientResult(client_id=client_id, already_exists=True)
            raise _rpc_error("CreateClient", e) from e

        return CreateClientResult(
            client_id=response.client.id or client_id,
            already_exists=response.already_exists,
        )

    async def update_client(
        self,
        client_id: str,
        redirect_uris: list[str],
        trusted_peers: list[str],
        name: str,
        logo_url: str,
    ) -> None:
        """
        Update the mutable fields of an existing OAuth2 client.

        Raises:
            DexAPIError: If the call fails or Dex does not know the client
        """
        request = UpdateClientReq(
            id=client_id,
            redirect_uris=redirect_uris,
            trusted_peers=trusted_peers,
            name=name,
            logo_url=logo_url,
        )
        try:
            response = await self._update_client(request, timeout=self.timeout)
        except grpc.aio.AioRpcError as e:
            raise _rpc_error("UpdateClient", e) from e

        if response.not_found:
            raise DexAPIError(
                f"client {client_id} not found", code="NOT_FOUND", retryable=True
            )

    async def close(self) -> None:
        """Close the underlying channel. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self._channel.close()

    async def __aenter__(self) -> "DexApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
