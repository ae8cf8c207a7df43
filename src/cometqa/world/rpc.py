"""JSON-RPC snapshot primitive for a local development chain.

Talks to any node that implements ``evm_snapshot`` / ``evm_revert``
(Hardhat, Anvil, Ganache).
"""

from __future__ import annotations

import itertools
import logging
from typing import Any

import httpx

from cometqa.errors import RestoreError, SnapshotError

logger = logging.getLogger(__name__)


class JsonRpcClient:
    """Minimal async JSON-RPC 2.0 client."""

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._ids = itertools.count(1)
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={"Content-Type": "application/json", **(headers or {})},
            transport=transport,
        )

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        try:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise SnapshotError(
                message=f"{method} request failed: {e}",
                cause=e,
                method=method,
                url=self.url,
            ) from e
        except ValueError as e:
            raise SnapshotError(message=f"{method} returned invalid JSON", cause=e, method=method) from e

        if "error" in body:
            error = body["error"] or {}
            raise SnapshotError(
                message=f"{method} failed: {error.get('message', error)}",
                method=method,
                rpc_error=error,
            )
        return body.get("result")

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> JsonRpcClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


class JsonRpcRestorer:
    """Reverts the chain to a snapshot, then re-takes it so it can revert again."""

    def __init__(self, client: JsonRpcClient, snapshot_id: str) -> None:
        self._client = client
        self.snapshot_id = snapshot_id

    async def restore(self) -> None:
        reverted = await self._client.request("evm_revert", [self.snapshot_id])
        if not isinstance(reverted, bool):
            raise RestoreError(message="EVM_REVERT_VALUE_NOT_A_BOOLEAN", value=reverted)
        if not reverted:
            raise RestoreError(message="INVALID_SNAPSHOT", snapshot_id=self.snapshot_id)
        # a reverted snapshot id cannot be reused
        self.snapshot_id = await _evm_snapshot(self._client)
        logger.debug(f"Reverted chain, re-armed as snapshot {self.snapshot_id}")


async def _evm_snapshot(client: JsonRpcClient) -> str:
    snapshot_id = await client.request("evm_snapshot")
    if not isinstance(snapshot_id, str):
        raise SnapshotError(message="EVM_SNAPSHOT_VALUE_NOT_A_STRING", value=snapshot_id)
    return snapshot_id


class JsonRpcSnapshotter:
    """Takes chain snapshots over JSON-RPC."""

    def __init__(self, client: JsonRpcClient) -> None:
        self.client = client

    @classmethod
    def from_settings(cls, settings: Any) -> JsonRpcSnapshotter:
        if not settings.rpc_url:
            raise SnapshotError(message="rpc_url is not configured")
        return cls(JsonRpcClient(settings.rpc_url, timeout=settings.rpc_timeout))

    async def take_snapshot(self) -> JsonRpcRestorer:
        snapshot_id = await _evm_snapshot(self.client)
        logger.debug(f"Took chain snapshot {snapshot_id}")
        return JsonRpcRestorer(self.client, snapshot_id)
