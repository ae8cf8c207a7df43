"""Wallet and protocol balance constraints.

``token_balances: {account: {asset: amount}}`` sets wallet balances.
``comet_balances: {account: {asset: amount}}`` sets positions in the
protocol: collateral for collateral assets, and for the base asset a signed
principal where a negative amount is a borrow.

Amounts are whole tokens, either exact numbers or comparisons such as
``">= 1000"``. When the current balance already satisfies a comparison it
is left alone; otherwise it moves to the nearest satisfying value.
Accounts may be actor names or ``$comet``; assets may be symbols, ``$base``
or ``$assetN``.
"""

from __future__ import annotations

import logging
from typing import Any

from cometqa.constraints.amounts import Comparison, parse_holdings
from cometqa.constraints.lending import describe, move_base_principal, move_collateral
from cometqa.errors import ConstraintCheckError, LedgerError
from cometqa.scenario.constraint import DimensionConstraint
from cometqa.scenario.solution import Solution

logger = logging.getLogger(__name__)


class TokenBalanceConstraint(DimensionConstraint):
    name = "token_balances"
    dimensions = ("token_balances",)

    def build_solutions(self, values: dict[str, Any], context: Any) -> list[Solution]:
        holdings = parse_holdings(values["token_balances"], "token_balances")

        async def set_balances(ctx: Any) -> Any:
            for account, asset, comparison in holdings:
                scale = ctx.asset_scale(asset)
                current = await ctx.balance_of(account, asset)
                target = comparison.target(current, scale)
                if target < 0:
                    raise LedgerError(
                        message=f"Wallet balance {account}.{asset} cannot satisfy '{comparison}'"
                    )
                if target != current:
                    logger.debug(f"Setting {account} {asset} wallet balance {current} -> {target}")
                    await ctx.set_balance(account, asset, target)
            return ctx

        return [
            Solution(
                name=f"token_balances({describe(holdings)})",
                transform=set_balances,
                constraint=self.name,
            )
        ]

    async def verify(self, values: dict[str, Any], context: Any) -> None:
        for account, asset, comparison in parse_holdings(values["token_balances"], "token_balances"):
            actual = await context.balance_of(account, asset)
            _assert_holds(f"{account} {asset} wallet balance", comparison, actual, context.asset_scale(asset))


class CometBalanceConstraint(DimensionConstraint):
    name = "comet_balances"
    dimensions = ("comet_balances",)

    def build_solutions(self, values: dict[str, Any], context: Any) -> list[Solution]:
        holdings = parse_holdings(values["comet_balances"], "comet_balances")

        async def set_positions(ctx: Any) -> Any:
            by_account: dict[str, list[tuple[str, Comparison]]] = {}
            for account, asset, comparison in holdings:
                by_account.setdefault(account, []).append((asset, comparison))

            for account, positions in by_account.items():
                base_comparison = None
                pinned = set()
                # collateral first so that a base borrow can rely on it
                for alias, comparison in positions:
                    asset = ctx.resolve_asset(alias)
                    if asset == ctx.base_token:
                        base_comparison = comparison
                        continue
                    pinned.add(asset)
                    current = await ctx.collateral_balance_of(account, asset)
                    target = comparison.target(current, ctx.asset_scale(asset))
                    if target < 0:
                        raise LedgerError(
                            message=f"Collateral {account}.{asset} cannot satisfy '{comparison}'"
                        )
                    await move_collateral(ctx, account, asset, target)

                if base_comparison is not None:
                    current = await ctx.base_balance_of(account)
                    target = base_comparison.target(current, ctx.asset_scale(ctx.base_token))
                    await move_base_principal(ctx, account, target, pinned)
            return ctx

        return [
            Solution(
                name=f"comet_balances({describe(holdings)})",
                transform=set_positions,
                constraint=self.name,
            )
        ]

    async def verify(self, values: dict[str, Any], context: Any) -> None:
        for account, alias, comparison in parse_holdings(values["comet_balances"], "comet_balances"):
            asset = context.resolve_asset(alias)
            if asset == context.base_token:
                actual = await context.base_balance_of(account)
            else:
                actual = await context.collateral_balance_of(account, asset)
            _assert_holds(f"{account} {asset} protocol balance", comparison, actual, context.asset_scale(asset))


def _assert_holds(label: str, comparison: Comparison, actual: int, scale: int) -> None:
    if not comparison.holds(actual, scale):
        raise ConstraintCheckError(
            message=f"{label} is {actual}, expected {comparison} (x{scale})",
            expected=str(comparison),
            actual=actual,
        )
