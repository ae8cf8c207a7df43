"""Market moves shared by the balance and utilization constraints."""

from __future__ import annotations

import logging
from collections.abc import Collection
from typing import Any

from cometqa.scenario.context import LendingContext

logger = logging.getLogger(__name__)

FACTOR_SCALE = 10**18


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


async def supply_new_tokens(ctx: LendingContext, account: str, asset: str, amount: int) -> None:
    """Source ``amount`` into the account's wallet and supply it."""
    if amount <= 0:
        return
    await ctx.source_tokens(account, asset, amount)
    await ctx.supply(account, asset, amount)


async def ensure_liquidity(ctx: LendingContext, amount: int) -> None:
    """Make sure the protocol holds at least ``amount`` of the base token."""
    available = await ctx.balance_of("$comet", "$base")
    if available < amount:
        await ctx.source_tokens("$comet", "$base", amount - available)


async def _collateral_factors(ctx: LendingContext) -> dict[str, int]:
    configuration = await ctx.get_configuration()
    return {
        entry["asset"]: entry["borrow_collateral_factor"]
        for entry in configuration.get("asset_configs", [])
    }


async def borrow_capacity(ctx: LendingContext, account: str, factors: dict[str, int]) -> int:
    """Borrow capacity of an account in 8-decimal USD."""
    capacity = 0
    for asset, factor in factors.items():
        held = await ctx.collateral_balance_of(account, asset)
        if held:
            value = held * await ctx.get_price(asset) // ctx.asset_scale(asset)
            capacity += value * factor // FACTOR_SCALE
    return capacity


async def ensure_borrow_capacity(
    ctx: LendingContext,
    account: str,
    principal: int,
    pinned: Collection[str] = (),
) -> None:
    """Supply collateral until ``account`` can carry a base ``principal``.

    Collateral goes into the first collateral asset whose balance the caller
    has not pinned. When every asset is pinned nothing is added and the
    borrow itself is left to revert.
    """
    if principal >= 0:
        return
    base = ctx.base_token
    debt = -principal * await ctx.get_price(base) // ctx.asset_scale(base)
    factors = await _collateral_factors(ctx)
    shortfall = debt - await borrow_capacity(ctx, account, factors)
    if shortfall <= 0:
        return

    candidates = [asset for asset in factors if asset not in pinned and factors[asset] > 0]
    if not candidates:
        logger.debug(f"No unpinned collateral asset to back {account}'s borrow")
        return
    asset = candidates[0]
    value_needed = _ceil_div(shortfall * FACTOR_SCALE, factors[asset])
    amount = _ceil_div(value_needed * ctx.asset_scale(asset), await ctx.get_price(asset))
    logger.debug(f"Supplying {amount} {asset} as collateral for {account}")
    await supply_new_tokens(ctx, account, asset, amount)


async def move_base_principal(
    ctx: LendingContext,
    account: str,
    target: int,
    pinned: Collection[str] = (),
) -> None:
    """Supply, withdraw or borrow base until the account's principal equals ``target``."""
    base = ctx.base_token
    current = await ctx.base_balance_of(account)
    if target > current:
        await supply_new_tokens(ctx, account, base, target - current)
    elif target < current:
        amount = current - target
        await ensure_borrow_capacity(ctx, account, target, pinned)
        await ensure_liquidity(ctx, amount)
        await ctx.withdraw(account, base, amount)


async def move_collateral(ctx: LendingContext, account: str, asset: str, target: int) -> None:
    """Supply or withdraw collateral until the account holds ``target``."""
    current = await ctx.collateral_balance_of(account, asset)
    if target > current:
        await supply_new_tokens(ctx, account, asset, target - current)
    elif target < current:
        await ctx.withdraw(account, asset, current - target)


def describe(holdings: list[tuple[str, str, Any]]) -> str:
    return ", ".join(f"{account}.{asset}" for account, asset, _ in holdings)
