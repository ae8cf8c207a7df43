"""Price feed constraint: ``prices: {asset: usd_price}``."""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from cometqa.errors import ConstraintCheckError, RequirementValidationError
from cometqa.scenario.constraint import DimensionConstraint
from cometqa.scenario.solution import Solution

PRICE_DECIMALS = 8


def to_feed_price(usd: Any) -> int:
    """USD price to an 8-decimal feed answer."""
    return int(Decimal(str(usd)) * 10**PRICE_DECIMALS)


class PriceConstraint(DimensionConstraint):
    name = "prices"
    dimensions = ("prices",)

    @staticmethod
    def _parse(value: Any) -> dict[str, int]:
        if not isinstance(value, Mapping):
            raise RequirementValidationError(
                message=f"prices: expected a mapping of asset to USD price, got {value!r}",
                dimension="prices",
            )
        prices = {}
        for asset, usd in value.items():
            if isinstance(usd, bool) or not isinstance(usd, (int, float, Decimal, str)):
                raise RequirementValidationError(
                    message=f"prices.{asset}: invalid price {usd!r}", dimension="prices"
                )
            price = to_feed_price(usd)
            if price <= 0:
                raise RequirementValidationError(
                    message=f"prices.{asset}: price must be positive, got {usd!r}", dimension="prices"
                )
            prices[str(asset)] = price
        return prices

    def build_solutions(self, values: dict[str, Any], context: Any) -> list[Solution]:
        prices = self._parse(values["prices"])

        async def set_prices(ctx: Any) -> Any:
            for asset, price in prices.items():
                await ctx.set_price(asset, price)
            return ctx

        return [Solution(name=f"prices({', '.join(prices)})", transform=set_prices, constraint=self.name)]

    async def verify(self, values: dict[str, Any], context: Any) -> None:
        for asset, expected in self._parse(values["prices"]).items():
            actual = await context.get_price(asset)
            if actual != expected:
                raise ConstraintCheckError(
                    message=f"Price of {asset} is {actual}, expected {expected}",
                    expected=expected,
                    actual=actual,
                )
