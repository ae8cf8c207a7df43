"""Protocols for the system under test.

The engine never talks to a ledger directly; it drives whatever implements
these protocols. ``cometqa.world.simulated`` provides an in-memory
implementation, and a live deployment can be wrapped the same way.
"""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Context(Protocol):
    """A handle to one running instance of the system under test.

    ``upgrade`` returns a new logical Context. Callers must keep using the
    returned value even when the underlying transport is stateful.
    """

    async def get_configuration(self) -> dict[str, Any]: ...

    async def upgrade(self, configuration: Mapping[str, Any]) -> Context: ...


@runtime_checkable
class LendingContext(Context, Protocol):
    """Context accessors used by the lending-market constraints.

    Amounts are raw integer units of the asset unless noted. Asset and
    account arguments accept aliases (``$base``, ``$asset0``, ``$comet``) or
    direct names.
    """

    @property
    def base_token(self) -> str: ...

    @property
    def collateral_assets(self) -> list[str]: ...

    def resolve_asset(self, alias: str) -> str: ...

    def resolve_account(self, alias: str) -> str: ...

    def asset_scale(self, asset: str) -> int: ...

    async def balance_of(self, account: str, asset: str) -> int: ...

    async def set_balance(self, account: str, asset: str, amount: int) -> None: ...

    async def source_tokens(self, account: str, asset: str, amount: int) -> None: ...

    async def get_price(self, asset: str) -> int: ...

    async def set_price(self, asset: str, price: int) -> None: ...

    async def base_balance_of(self, account: str) -> int: ...

    async def collateral_balance_of(self, account: str, asset: str) -> int: ...

    async def supply(self, account: str, asset: str, amount: int) -> None: ...

    async def withdraw(self, account: str, asset: str, amount: int) -> None: ...

    async def pause_flags(self) -> dict[str, bool]: ...

    async def pause(self, **flags: bool) -> None: ...

    async def total_supply(self) -> int: ...

    async def total_borrow(self) -> int: ...

    async def get_utilization(self) -> float: ...


@runtime_checkable
class SnapshotRestorer(Protocol):
    """Returned by ``take_snapshot``.

    ``restore`` re-arms itself, so calling it a second time in the same
    execution restores the same state again.
    """

    async def restore(self) -> None: ...


@runtime_checkable
class World(Protocol):
    """Source of isolated Contexts for scenario executions.

    ``isolated()`` snapshots on entry and restores on exit, on every path.
    """

    def isolated(self) -> AbstractAsyncContextManager[Context]: ...
