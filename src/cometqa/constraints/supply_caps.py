"""Supply cap constraint: ``supply_caps: {asset: whole_tokens}``.

Caps live in the market configuration, so the solution is an upgrade of the
``asset_configs`` field.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from cometqa.constraints.amounts import to_units
from cometqa.errors import ConstraintCheckError, LedgerError, RequirementValidationError
from cometqa.scenario.constraint import DimensionConstraint
from cometqa.scenario.solution import Solution


class SupplyCapConstraint(DimensionConstraint):
    name = "supply_caps"
    dimensions = ("supply_caps",)

    @staticmethod
    def _parse(value: Any) -> dict[str, Decimal]:
        if not isinstance(value, Mapping):
            raise RequirementValidationError(
                message=f"supply_caps: expected a mapping of asset to cap, got {value!r}",
                dimension="supply_caps",
            )
        caps = {}
        for asset, cap in value.items():
            if isinstance(cap, bool) or not isinstance(cap, (int, float, Decimal)) or cap < 0:
                raise RequirementValidationError(
                    message=f"supply_caps.{asset}: invalid cap {cap!r}", dimension="supply_caps"
                )
            caps[str(asset)] = Decimal(str(cap))
        return caps

    def build_solutions(self, values: dict[str, Any], context: Any) -> list[Solution]:
        caps = self._parse(values["supply_caps"])

        async def set_caps(ctx: Any) -> Any:
            configuration = await ctx.get_configuration()
            asset_configs = copy.deepcopy(configuration.get("asset_configs", []))
            by_asset = {entry["asset"]: entry for entry in asset_configs}
            for alias, cap in caps.items():
                asset = ctx.resolve_asset(alias)
                if asset not in by_asset:
                    raise LedgerError(message=f"{asset} is not listed as collateral")
                by_asset[asset]["supply_cap"] = to_units(cap, ctx.asset_scale(asset))
            return await ctx.upgrade({**configuration, "asset_configs": asset_configs})

        return [
            Solution(
                name=f"supply_caps({', '.join(caps)})",
                transform=set_caps,
                constraint=self.name,
                touches=frozenset({"asset_configs"}),
            )
        ]

    async def verify(self, values: dict[str, Any], context: Any) -> None:
        configuration = await context.get_configuration()
        by_asset = {entry["asset"]: entry for entry in configuration.get("asset_configs", [])}
        for alias, cap in self._parse(values["supply_caps"]).items():
            asset = context.resolve_asset(alias)
            expected = to_units(cap, context.asset_scale(asset))
            actual = by_asset.get(asset, {}).get("supply_cap")
            if actual != expected:
                raise ConstraintCheckError(
                    message=f"Supply cap of {asset} is {actual}, expected {expected}",
                    expected=expected,
                    actual=actual,
                )
