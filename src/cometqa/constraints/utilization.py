"""Utilization constraint: ``utilization: 0.5``.

Raises utilization by borrowing base as ``charles`` and lowers it by
supplying base as ``admin``. An empty market is first seeded with one
million base tokens of supply.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from fractions import Fraction
from math import ceil
from typing import Any

from cometqa.constraints.lending import move_base_principal, supply_new_tokens
from cometqa.errors import ConstraintCheckError, LedgerError, RequirementValidationError
from cometqa.scenario.constraint import DimensionConstraint
from cometqa.scenario.solution import Solution

logger = logging.getLogger(__name__)

BORROWER = "charles"
SUPPLIER = "admin"
SEED_SUPPLY = 1_000_000
TOLERANCE = 1e-5


class UtilizationConstraint(DimensionConstraint):
    name = "utilization"
    dimensions = ("utilization",)

    @staticmethod
    def _parse(value: Any) -> Fraction:
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            raise RequirementValidationError(
                message=f"utilization: expected a number, got {value!r}", dimension="utilization"
            )
        target = Fraction(str(value))
        if not 0 <= target < 1:
            raise RequirementValidationError(
                message=f"utilization: {value} is outside [0, 1)", dimension="utilization"
            )
        return target

    def build_solutions(self, values: dict[str, Any], context: Any) -> list[Solution]:
        target = self._parse(values["utilization"])

        async def set_utilization(ctx: Any) -> Any:
            base = ctx.base_token
            supplied = await ctx.total_supply()
            borrowed = await ctx.total_borrow()

            if supplied == 0:
                if target == 0:
                    return ctx
                seed = SEED_SUPPLY * ctx.asset_scale(base)
                await supply_new_tokens(ctx, SUPPLIER, base, seed)
                supplied += seed

            if Fraction(borrowed, supplied) < target:
                extra = ceil(target * supplied) - borrowed
                logger.debug(f"Borrowing {extra} {base} as {BORROWER} for utilization {float(target)}")
                principal = await ctx.base_balance_of(BORROWER)
                await move_base_principal(ctx, BORROWER, principal - extra)
            elif Fraction(borrowed, supplied) > target:
                if target == 0:
                    raise LedgerError(message="Cannot lower utilization to 0 with open borrows")
                extra = ceil(borrowed / target) - supplied
                logger.debug(f"Supplying {extra} {base} as {SUPPLIER} for utilization {float(target)}")
                await supply_new_tokens(ctx, SUPPLIER, base, extra)
            return ctx

        return [
            Solution(
                name=f"utilization({float(target)})",
                transform=set_utilization,
                constraint=self.name,
            )
        ]

    async def verify(self, values: dict[str, Any], context: Any) -> None:
        target = float(self._parse(values["utilization"]))
        actual = await context.get_utilization()
        if abs(actual - target) > TOLERANCE:
            raise ConstraintCheckError(
                message=f"Utilization is {actual:.6f}, expected {target}",
                expected=target,
                actual=actual,
            )
