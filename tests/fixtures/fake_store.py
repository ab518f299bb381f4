"""In-memory stand-ins for the resource client and the Dex API client."""

import asyncio
import copy
from typing import Any
from unittest.mock import AsyncMock

from dex_operator.errors import (
    KubernetesAPIError,
    OperatorError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
)
from dex_operator.utils.dex_api import CreateClientResult


class FakeResourceClient:
    """
    Dictionary-backed implementation of the resource client interface.

    Every call yields to the event loop once so that overlapping passes
    interleave the way concurrent handler invocations would.
    """

    def __init__(self):
        self.objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.created: list[tuple[str, str, str]] = []
        self.status_writes: list[dict[str, Any]] = []
        self.updates: list[dict[str, Any]] = []
        self.get_errors: dict[tuple[str, str, str], OperatorError] = {}
        self.create_errors: dict[str, OperatorError] = {}
        self.update_status_error: OperatorError | None = None
        self.update_error: OperatorError | None = None
        self._version = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def add(self, kind: str, body: dict[str, Any]) -> dict[str, Any]:
        """Seed an object without recording it as created."""
        body = copy.deepcopy(body)
        metadata = body.setdefault("metadata", {})
        metadata.setdefault("namespace", "default")
        metadata["resourceVersion"] = self._next_version()
        self.objects[(kind, metadata["namespace"], metadata["name"])] = body
        return copy.deepcopy(body)

    def stored(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        return self.objects[(kind, namespace, name)]

    async def get(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        await asyncio.sleep(0)
        key = (kind, namespace, name)
        if key in self.get_errors:
            raise self.get_errors[key]
        if key not in self.objects:
            raise ResourceNotFoundError(kind, namespace, name)
        return copy.deepcopy(self.objects[key])

    async def list_namespaced(self, kind: str, namespace: str) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        return [
            copy.deepcopy(body)
            for (stored_kind, stored_namespace, _), body in sorted(self.objects.items())
            if stored_kind == kind and stored_namespace == namespace
        ]

    async def create(
        self, kind: str, namespace: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        await asyncio.sleep(0)
        if kind in self.create_errors:
            raise self.create_errors[kind]
        name = body["metadata"]["name"]
        key = (kind, namespace, name)
        if key in self.objects:
            raise ResourceAlreadyExistsError(kind, namespace, name)
        body = copy.deepcopy(body)
        body["metadata"]["resourceVersion"] = self._next_version()
        self.objects[key] = body
        self.created.append(key)
        return copy.deepcopy(body)

    def _check_version(self, kind: str, body: dict[str, Any]) -> tuple:
        metadata = body["metadata"]
        key = (kind, metadata["namespace"], metadata["name"])
        if key not in self.objects:
            raise ResourceNotFoundError(*key)
        current = self.objects[key]["metadata"].get("resourceVersion")
        if metadata.get("resourceVersion") != current:
            raise KubernetesAPIError(
                "Operation cannot be fulfilled", reason="Conflict", status=409
            )
        return key

    async def update_status(self, kind: str, body: dict[str, Any]) -> dict[str, Any]:
        await asyncio.sleep(0)
        if self.update_status_error:
            raise self.update_status_error
        key = self._check_version(kind, body)
        stored = self.objects[key]
        stored["status"] = copy.deepcopy(body.get("status", {}))
        stored["metadata"]["resourceVersion"] = self._next_version()
        self.status_writes.append(copy.deepcopy(stored["status"]))
        return copy.deepcopy(stored)

    async def update(self, kind: str, body: dict[str, Any]) -> dict[str, Any]:
        await asyncio.sleep(0)
        if self.update_error:
            raise self.update_error
        key = self._check_version(kind, body)
        status = self.objects[key].get("status")
        stored = copy.deepcopy(body)
        stored["status"] = status
        stored["metadata"]["resourceVersion"] = self._next_version()
        self.objects[key] = stored
        self.updates.append(copy.deepcopy(stored))
        return copy.deepcopy(stored)


class FakeDexClient:
    """Dex API client double recording calls and closes."""

    def __init__(self):
        self.create_client = AsyncMock(
            side_effect=lambda **kwargs: CreateClientResult(
                client_id=kwargs["client_id"]
            )
        )
        self.update_client = AsyncMock(return_value=None)
        self.close_calls = 0

    async def close(self) -> None:
        self.close_calls += 1

    async def __aenter__(self) -> "FakeDexClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class FakeDexClientFactory:
    """Factory handing out a single FakeDexClient and recording addresses."""

    def __init__(self, dex: FakeDexClient | None = None):
        self.dex = dex or FakeDexClient()
        self.calls: list[tuple[str, Any]] = []

    def __call__(self, address: str, credential: Any) -> FakeDexClient:
        self.calls.append((address, credential))
        return self.dex
