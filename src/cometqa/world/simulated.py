"""In-memory lending market used as a reference Context.

``SimulatedChain`` keeps the whole market in one ``LedgerState`` so that
snapshots are plain deep copies. ``SimulatedCometContext`` is the async
``LendingContext`` handed to constraints and scenario bodies; ``upgrade``
returns a fresh context over the same chain.

Units follow the protocol: token amounts are raw integers (``10**decimals``
per whole token), prices have 8 decimals, collateral factors and interest
rate parameters have 18 decimals. Interest does not accrue.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from cometqa.config import get_config_for_scenario
from cometqa.config.scenario_config import ScenarioConfig
from cometqa.errors import LedgerError, LedgerRevertError, RestoreError

logger = logging.getLogger(__name__)

FACTOR_SCALE = 10**18
PRICE_SCALE = 10**8

COMET = "comet"
ACTORS = ("admin", "albert", "betty", "charles")
PAUSE_FLAGS = ("supply_paused", "transfer_paused", "withdraw_paused", "absorb_paused", "buy_paused")


@dataclass
class LedgerState:
    """Everything a snapshot has to capture."""

    tokens: dict[str, int] = field(default_factory=dict)
    prices: dict[str, int] = field(default_factory=dict)
    configuration: dict[str, Any] = field(default_factory=dict)
    wallets: dict[str, dict[str, int]] = field(default_factory=dict)
    principals: dict[str, int] = field(default_factory=dict)
    collateral: dict[str, dict[str, int]] = field(default_factory=dict)
    pause: dict[str, bool] = field(default_factory=lambda: {flag: False for flag in PAUSE_FLAGS})
    version: int = 0


def default_configuration() -> dict[str, Any]:
    """Configuration of a USDC market with three collateral assets."""
    return {
        "governor": "admin",
        "pause_guardian": "admin",
        "base_token": "USDC",
        "base_borrow_min": 10**6,
        "base_tracking_supply_speed": 0,
        "base_tracking_borrow_speed": 0,
        "store_front_price_factor": 5 * 10**17,
        "target_reserves": 5_000_000 * 10**6,
        "supply_kink": 8 * 10**17,
        "supply_per_year_interest_rate_slope_low": 4 * 10**16,
        "supply_per_year_interest_rate_slope_high": 4 * 10**17,
        "supply_per_year_interest_rate_base": 0,
        "borrow_kink": 8 * 10**17,
        "borrow_per_year_interest_rate_slope_low": 5 * 10**16,
        "borrow_per_year_interest_rate_slope_high": 3 * 10**17,
        "borrow_per_year_interest_rate_base": 10**16,
        "asset_configs": [
            {
                "asset": "COMP",
                "borrow_collateral_factor": 65 * 10**16,
                "liquidate_collateral_factor": 70 * 10**16,
                "liquidation_factor": 88 * 10**16,
                "supply_cap": 500_000 * 10**18,
            },
            {
                "asset": "WETH",
                "borrow_collateral_factor": 825 * 10**15,
                "liquidate_collateral_factor": 895 * 10**15,
                "liquidation_factor": 95 * 10**16,
                "supply_cap": 350_000 * 10**18,
            },
            {
                "asset": "WBTC",
                "borrow_collateral_factor": 70 * 10**16,
                "liquidate_collateral_factor": 77 * 10**16,
                "liquidation_factor": 95 * 10**16,
                "supply_cap": 12_000 * 10**8,
            },
        ],
    }


class SimulatedRestorer:
    """Restores a SimulatedChain to the state captured at creation.

    Re-arms after each restore, so it can be restored again.
    """

    def __init__(self, chain: SimulatedChain) -> None:
        self._chain = chain
        self._saved = chain.capture()
        self.restores = 0

    async def restore(self) -> None:
        self.restore_sync()

    def restore_sync(self) -> None:
        if self._saved is None:
            raise RestoreError(message="Snapshot was never taken")
        self._chain.load(self._saved)
        self._saved = self._chain.capture()
        self.restores += 1
        logger.debug(f"Restored simulated chain (restore #{self.restores})")


class SimulatedChain:
    """A single lending market held in memory."""

    def __init__(
        self,
        state: LedgerState | None = None,
        network: str = "mainnet",
        deployment: str = "usdc",
    ) -> None:
        self.state = state or LedgerState()
        self.network = network
        self.deployment = deployment

    @classmethod
    def default_market(cls, network: str = "mainnet", deployment: str = "usdc") -> SimulatedChain:
        state = LedgerState(
            tokens={"USDC": 6, "COMP": 18, "WETH": 18, "WBTC": 8},
            prices={
                "USDC": 1 * PRICE_SCALE,
                "COMP": 50 * PRICE_SCALE,
                "WETH": 2000 * PRICE_SCALE,
                "WBTC": 30000 * PRICE_SCALE,
            },
            configuration=default_configuration(),
        )
        return cls(state, network=network, deployment=deployment)

    # -- snapshots ---------------------------------------------------------

    def capture(self) -> LedgerState:
        return copy.deepcopy(self.state)

    def load(self, state: LedgerState) -> None:
        self.state = copy.deepcopy(state)

    def take_snapshot(self) -> SimulatedRestorer:
        return SimulatedRestorer(self)

    def fork(self) -> SimulatedChain:
        """An independent copy sharing nothing with this chain."""
        return SimulatedChain(self.capture(), network=self.network, deployment=self.deployment)

    # -- lookups -----------------------------------------------------------

    @property
    def base_token(self) -> str:
        return self.state.configuration["base_token"]

    @property
    def collateral_assets(self) -> list[str]:
        return [entry["asset"] for entry in self.state.configuration.get("asset_configs", [])]

    def asset_config(self, asset: str) -> dict[str, Any]:
        for entry in self.state.configuration.get("asset_configs", []):
            if entry["asset"] == asset:
                return entry
        raise LedgerRevertError("BadAsset", operation=f"asset_config({asset})")

    def scale(self, asset: str) -> int:
        if asset not in self.state.tokens:
            raise LedgerError(message=f"Unknown token {asset!r}")
        return 10 ** self.state.tokens[asset]

    def resolve_asset(self, alias: str) -> str:
        if alias == "$base":
            return self.base_token
        if alias.startswith("$asset"):
            index = alias[len("$asset"):]
            assets = self.collateral_assets
            if not index.isdigit() or int(index) >= len(assets):
                raise LedgerError(message=f"No collateral asset for alias {alias!r}")
            return assets[int(index)]
        if alias not in self.state.tokens:
            raise LedgerError(message=f"Unknown asset {alias!r}")
        return alias

    @staticmethod
    def resolve_account(alias: str) -> str:
        return COMET if alias == "$comet" else alias

    # -- balances ----------------------------------------------------------

    def balance_of(self, account: str, asset: str) -> int:
        return self.state.wallets.get(account, {}).get(asset, 0)

    def set_balance(self, account: str, asset: str, amount: int) -> None:
        if amount < 0:
            raise LedgerError(message=f"Negative balance {amount} for {account}")
        self.scale(asset)
        self.state.wallets.setdefault(account, {})[asset] = amount

    def _transfer(self, source: str, destination: str, asset: str, amount: int, operation: str) -> None:
        if self.balance_of(source, asset) < amount:
            raise LedgerRevertError("InsufficientBalance", operation=operation)
        self.state.wallets.setdefault(source, {})[asset] = self.balance_of(source, asset) - amount
        self.state.wallets.setdefault(destination, {})[asset] = (
            self.balance_of(destination, asset) + amount
        )

    def base_balance_of(self, account: str) -> int:
        return self.state.principals.get(account, 0)

    def collateral_balance_of(self, account: str, asset: str) -> int:
        return self.state.collateral.get(account, {}).get(asset, 0)

    def total_collateral(self, asset: str) -> int:
        return sum(holdings.get(asset, 0) for holdings in self.state.collateral.values())

    def total_supply_base(self) -> int:
        return sum(p for p in self.state.principals.values() if p > 0)

    def total_borrow_base(self) -> int:
        return -sum(p for p in self.state.principals.values() if p < 0)

    # -- protocol operations -----------------------------------------------

    def supply(self, account: str, asset: str, amount: int) -> None:
        operation = f"supply({account}, {asset}, {amount})"
        if self.state.pause["supply_paused"]:
            raise LedgerRevertError("Paused", operation=operation)
        if asset == self.base_token:
            self._transfer(account, COMET, asset, amount, operation)
            self.state.principals[account] = self.base_balance_of(account) + amount
            return
        config = self.asset_config(asset)
        if self.total_collateral(asset) + amount > config["supply_cap"]:
            raise LedgerRevertError("SupplyCapExceeded", operation=operation)
        self._transfer(account, COMET, asset, amount, operation)
        holdings = self.state.collateral.setdefault(account, {})
        holdings[asset] = holdings.get(asset, 0) + amount

    def withdraw(self, account: str, asset: str, amount: int) -> None:
        operation = f"withdraw({account}, {asset}, {amount})"
        if self.state.pause["withdraw_paused"]:
            raise LedgerRevertError("Paused", operation=operation)
        if asset == self.base_token:
            principal = self.base_balance_of(account) - amount
            if principal < 0:
                if -principal < self.state.configuration["base_borrow_min"]:
                    raise LedgerRevertError("BorrowTooSmall", operation=operation)
                if not self._is_collateralized(account, principal):
                    raise LedgerRevertError("NotCollateralized", operation=operation)
            if self.balance_of(COMET, asset) < amount:
                raise LedgerRevertError("InsufficientLiquidity", operation=operation)
            self.state.principals[account] = principal
            self._transfer(COMET, account, asset, amount, operation)
            return
        held = self.collateral_balance_of(account, asset)
        if held < amount:
            raise LedgerRevertError("InsufficientBalance", operation=operation)
        holdings = self.state.collateral.setdefault(account, {})
        holdings[asset] = held - amount
        if not self._is_collateralized(account, self.base_balance_of(account)):
            holdings[asset] = held
            raise LedgerRevertError("NotCollateralized", operation=operation)
        self._transfer(COMET, account, asset, amount, operation)

    def collateral_value(self, account: str) -> int:
        """Borrow capacity of an account in 8-decimal USD."""
        capacity = 0
        for asset, amount in self.state.collateral.get(account, {}).items():
            if amount == 0:
                continue
            value = amount * self.state.prices[asset] // self.scale(asset)
            capacity += value * self.asset_config(asset)["borrow_collateral_factor"] // FACTOR_SCALE
        return capacity

    def debt_value(self, principal: int) -> int:
        if principal >= 0:
            return 0
        base = self.base_token
        return -principal * self.state.prices[base] // self.scale(base)

    def _is_collateralized(self, account: str, principal: int) -> bool:
        return self.collateral_value(account) >= self.debt_value(principal)

    def pause(self, **flags: bool) -> None:
        unknown = set(flags) - set(PAUSE_FLAGS)
        if unknown:
            raise LedgerError(message=f"Unknown pause flags: {sorted(unknown)}")
        self.state.pause.update({flag: bool(value) for flag, value in flags.items()})

    def set_price(self, asset: str, price: int) -> None:
        self.scale(asset)
        if price <= 0:
            raise LedgerRevertError("BadPrice", operation=f"set_price({asset}, {price})")
        self.state.prices[asset] = price

    def upgrade(self, configuration: Mapping[str, Any]) -> None:
        """Replace the market configuration and bump the implementation version."""
        new_configuration = copy.deepcopy(dict(configuration))
        base = new_configuration.get("base_token")
        if base not in self.state.tokens:
            raise LedgerRevertError("BadBaseToken", operation="upgrade")
        for entry in new_configuration.get("asset_configs", []):
            if entry.get("asset") not in self.state.tokens or entry.get("asset") == base:
                raise LedgerRevertError("BadAsset", operation="upgrade")
        self.state.configuration = new_configuration
        self.state.version += 1
        logger.debug(f"Upgraded simulated market to version {self.state.version}")

    # -- interest rate model -----------------------------------------------

    def utilization(self) -> int:
        """Utilization with 18 decimals."""
        supplied = self.total_supply_base()
        if supplied == 0:
            return 0
        return self.total_borrow_base() * FACTOR_SCALE // supplied

    def _rate(self, prefix: str, utilization: int) -> int:
        config = self.state.configuration
        kink = config[f"{prefix}_kink"]
        base = config[f"{prefix}_per_year_interest_rate_base"]
        slope_low = config[f"{prefix}_per_year_interest_rate_slope_low"]
        slope_high = config[f"{prefix}_per_year_interest_rate_slope_high"]
        if utilization <= kink:
            return base + slope_low * utilization // FACTOR_SCALE
        return base + slope_low * kink // FACTOR_SCALE + slope_high * (utilization - kink) // FACTOR_SCALE

    def supply_rate(self, utilization: int | None = None) -> int:
        return self._rate("supply", self.utilization() if utilization is None else utilization)

    def borrow_rate(self, utilization: int | None = None) -> int:
        return self._rate("borrow", self.utilization() if utilization is None else utilization)


class SimulatedCometContext:
    """Async LendingContext over a SimulatedChain."""

    def __init__(self, chain: SimulatedChain) -> None:
        self.chain = chain
        self.version = chain.state.version
        self.actors = {name: name for name in ACTORS}

    def __repr__(self) -> str:
        return f"SimulatedCometContext(version={self.version})"

    @property
    def network(self) -> str:
        return self.chain.network

    @property
    def deployment(self) -> str:
        return self.chain.deployment

    def scenario_config(self) -> ScenarioConfig:
        return get_config_for_scenario(self.network, self.deployment)

    async def get_configuration(self) -> dict[str, Any]:
        return copy.deepcopy(self.chain.state.configuration)

    async def upgrade(self, configuration: Mapping[str, Any]) -> SimulatedCometContext:
        self.chain.upgrade(configuration)
        return SimulatedCometContext(self.chain)

    def resolve_asset(self, alias: str) -> str:
        return self.chain.resolve_asset(alias)

    def resolve_account(self, alias: str) -> str:
        return self.chain.resolve_account(alias)

    def asset_scale(self, asset: str) -> int:
        return self.chain.scale(self.resolve_asset(asset))

    @property
    def base_token(self) -> str:
        return self.chain.base_token

    @property
    def collateral_assets(self) -> list[str]:
        return self.chain.collateral_assets

    async def balance_of(self, account: str, asset: str) -> int:
        return self.chain.balance_of(self.resolve_account(account), self.resolve_asset(asset))

    async def set_balance(self, account: str, asset: str, amount: int) -> None:
        self.chain.set_balance(self.resolve_account(account), self.resolve_asset(asset), amount)

    async def source_tokens(self, account: str, asset: str, amount: int) -> None:
        """Add ``amount`` to an account's wallet."""
        current = await self.balance_of(account, asset)
        await self.set_balance(account, asset, current + amount)

    async def get_price(self, asset: str) -> int:
        return self.chain.state.prices[self.resolve_asset(asset)]

    async def set_price(self, asset: str, price: int) -> None:
        self.chain.set_price(self.resolve_asset(asset), price)

    async def base_balance_of(self, account: str) -> int:
        return self.chain.base_balance_of(self.resolve_account(account))

    async def collateral_balance_of(self, account: str, asset: str) -> int:
        return self.chain.collateral_balance_of(self.resolve_account(account), self.resolve_asset(asset))

    async def supply(self, account: str, asset: str, amount: int) -> None:
        self.chain.supply(self.resolve_account(account), self.resolve_asset(asset), amount)

    async def withdraw(self, account: str, asset: str, amount: int) -> None:
        self.chain.withdraw(self.resolve_account(account), self.resolve_asset(asset), amount)

    async def is_borrow_collateralized(self, account: str) -> bool:
        account = self.resolve_account(account)
        return self.chain.collateral_value(account) >= self.chain.debt_value(
            self.chain.base_balance_of(account)
        )

    async def pause_flags(self) -> dict[str, bool]:
        return dict(self.chain.state.pause)

    async def pause(self, **flags: bool) -> None:
        self.chain.pause(**flags)

    async def total_supply(self) -> int:
        return self.chain.total_supply_base()

    async def total_borrow(self) -> int:
        return self.chain.total_borrow_base()

    async def get_utilization(self) -> float:
        supplied = self.chain.total_supply_base()
        if supplied == 0:
            return 0.0
        return self.chain.total_borrow_base() / supplied

    async def get_supply_rate(self) -> int:
        return self.chain.supply_rate()

    async def get_borrow_rate(self) -> int:
        return self.chain.borrow_rate()
