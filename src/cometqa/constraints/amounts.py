"""Whole-token amount comparisons used by balance requirements.

A requirement amount is either a number (exact, in whole tokens) or a
comparison string such as ``">= 1000"``, ``"== 0n"`` or ``"<= -1000"``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from cometqa.errors import RequirementValidationError

_COMPARISON = re.compile(r"^\s*(==|>=|<=|>|<)\s*(-?\d+(?:\.\d+)?)\s*n?\s*$")


def to_units(amount: Decimal | int | float, scale: int) -> int:
    """Whole tokens to raw units, truncating below one unit."""
    return int(Decimal(str(amount)) * scale)


@dataclass(frozen=True)
class Comparison:
    """``<op> <amount>`` where amount is in whole tokens."""

    op: str
    amount: Decimal

    @classmethod
    def parse(cls, value: Any, dimension: str = "") -> Comparison:
        if isinstance(value, bool):
            raise RequirementValidationError(
                message=f"{dimension}: expected an amount, got {value!r}", dimension=dimension
            )
        if isinstance(value, (int, float, Decimal)):
            try:
                return cls("==", Decimal(str(value)))
            except InvalidOperation as e:
                raise RequirementValidationError(
                    message=f"{dimension}: invalid amount {value!r}", dimension=dimension, cause=e
                ) from e
        if isinstance(value, str):
            match = _COMPARISON.match(value)
            if match:
                return cls(match.group(1), Decimal(match.group(2)))
        raise RequirementValidationError(
            message=f"{dimension}: invalid amount {value!r}, expected a number or e.g. '>= 1000'",
            dimension=dimension,
        )

    def units(self, scale: int) -> int:
        return to_units(self.amount, scale)

    def holds(self, actual: int, scale: int) -> bool:
        bound = self.units(scale)
        return {
            "==": actual == bound,
            ">=": actual >= bound,
            "<=": actual <= bound,
            ">": actual > bound,
            "<": actual < bound,
        }[self.op]

    def target(self, current: int, scale: int) -> int:
        """The value closest to ``current`` that satisfies the comparison."""
        if self.holds(current, scale):
            return current
        bound = self.units(scale)
        if self.op == ">":
            return bound + 1
        if self.op == "<":
            return bound - 1
        return bound

    def __str__(self) -> str:
        return f"{self.op} {self.amount}"


def parse_holdings(value: Any, dimension: str) -> list[tuple[str, str, Comparison]]:
    """Parse ``{account: {asset: amount}}`` into (account, asset, comparison) triples."""
    if not isinstance(value, Mapping):
        raise RequirementValidationError(
            message=f"{dimension}: expected a mapping of account to holdings, got {value!r}",
            dimension=dimension,
        )
    holdings = []
    for account, assets in value.items():
        if not isinstance(assets, Mapping):
            raise RequirementValidationError(
                message=f"{dimension}.{account}: expected a mapping of asset to amount",
                dimension=dimension,
            )
        for asset, amount in assets.items():
            holdings.append((str(account), str(asset), Comparison.parse(amount, f"{dimension}.{account}.{asset}")))
    return holdings
