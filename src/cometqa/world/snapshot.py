"""Scoped acquisition of isolated Contexts.

Both worlds snapshot on entry to ``isolated()`` and restore on exit, whether
the block finished or raised.

- ``ForkingWorld`` hands every execution its own copy of a baseline market,
  so executions can run in parallel.
- ``SnapshotWorld`` drives one shared system (for example a local chain
  reached over JSON-RPC) and serialises executions with a lock, since
  snapshot/revert of a single chain is global.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any, Protocol

from cometqa.config import RunnerSettings
from cometqa.errors import CometQAError, RestoreError, SnapshotError
from cometqa.scenario.context import SnapshotRestorer
from cometqa.world.simulated import SimulatedChain, SimulatedCometContext

logger = logging.getLogger(__name__)


class Snapshotter(Protocol):
    def take_snapshot(self) -> Any: ...


class Forkable(Snapshotter, Protocol):
    def fork(self) -> Any: ...


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def take_snapshot(snapshotter: Snapshotter) -> SnapshotRestorer:
    try:
        return await _maybe_await(snapshotter.take_snapshot())
    except CometQAError:
        raise
    except Exception as e:
        raise SnapshotError(message=f"Failed to take snapshot: {e}", cause=e) from e


async def restore_snapshot(restorer: SnapshotRestorer) -> None:
    try:
        await restorer.restore()
    except CometQAError:
        raise
    except Exception as e:
        raise RestoreError(message=f"Failed to restore snapshot: {e}", cause=e) from e


class ForkingWorld:
    """Gives each execution an independent fork of a baseline system."""

    def __init__(
        self,
        baseline: Forkable,
        context_factory: Callable[[Any], Any] = SimulatedCometContext,
    ) -> None:
        self.baseline = baseline
        self.context_factory = context_factory

    @classmethod
    def simulated(cls, network: str = "mainnet", deployment: str = "usdc") -> ForkingWorld:
        return cls(SimulatedChain.default_market(network=network, deployment=deployment))

    @classmethod
    def from_settings(cls, settings: RunnerSettings) -> ForkingWorld:
        """Simulated world for the network and deployment named in settings."""
        return cls.simulated(network=settings.network, deployment=settings.deployment)

    @asynccontextmanager
    async def isolated(self) -> AsyncIterator[Any]:
        system = self.baseline.fork()
        restorer = await take_snapshot(system)
        try:
            yield await _maybe_await(self.context_factory(system))
        finally:
            await restore_snapshot(restorer)


class SnapshotWorld:
    """Shares one system across executions, one execution at a time."""

    def __init__(
        self,
        snapshotter: Snapshotter,
        context_factory: Callable[[], Any],
    ) -> None:
        self.snapshotter = snapshotter
        self.context_factory = context_factory
        self._lock = asyncio.Lock()

    @classmethod
    def simulated(cls, chain: SimulatedChain | None = None) -> SnapshotWorld:
        chain = chain or SimulatedChain.default_market()
        return cls(chain, lambda: SimulatedCometContext(chain))

    @asynccontextmanager
    async def isolated(self) -> AsyncIterator[Any]:
        async with self._lock:
            restorer = await take_snapshot(self.snapshotter)
            try:
                yield await _maybe_await(self.context_factory())
            finally:
                await restore_snapshot(restorer)
                logger.debug("Shared system restored")
