"""Concrete constraints for lending-market scenarios."""

from __future__ import annotations

from cometqa.constraints.balances import CometBalanceConstraint, TokenBalanceConstraint
from cometqa.constraints.pause import PauseConstraint
from cometqa.constraints.prices import PriceConstraint
from cometqa.constraints.supply_caps import SupplyCapConstraint
from cometqa.constraints.upgrade import UpgradeConstraint, merge_configuration
from cometqa.constraints.utilization import UtilizationConstraint
from cometqa.scenario.constraint import Constraint


def default_constraints() -> list[Constraint]:
    """The standard constraints in solve order.

    Configuration changes come first, then prices and balances. Pausing comes
    last so that a paused market does not block balance setup.
    """
    return [
        UpgradeConstraint(),
        SupplyCapConstraint(),
        PriceConstraint(),
        TokenBalanceConstraint(),
        CometBalanceConstraint(),
        UtilizationConstraint(),
        PauseConstraint(),
    ]


__all__ = [
    "CometBalanceConstraint",
    "PauseConstraint",
    "PriceConstraint",
    "SupplyCapConstraint",
    "TokenBalanceConstraint",
    "UpgradeConstraint",
    "UtilizationConstraint",
    "default_constraints",
    "merge_configuration",
]
