"""Default amounts used by scenario bodies, with per-deployment overrides.

Some deployments list assets with very different prices or liquidity, so the
same scenario needs smaller or larger amounts to stay within caps. Scenario
bodies read their amounts from ``get_config_for_scenario`` instead of
hard-coding them.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from cometqa.errors import ConfigValidationError


class AmountTiers(BaseModel):
    tiny: int = 1
    small: int = 2
    standard: int = 1000
    large: int = 10000
    hundred: int = 100


class Timing(BaseModel):
    one_day: int = 86400
    interest_seconds: int = 110


class CommonConfig(BaseModel):
    base_amounts: AmountTiers = Field(default_factory=AmountTiers)
    collateral_amounts: AmountTiers = Field(
        default_factory=lambda: AmountTiers(tiny=1, small=50, standard=100, large=5000)
    )
    timing: Timing = Field(default_factory=Timing)
    balance_tolerance: int = 1


class SupplyConfig(BaseModel):
    collateral_amount: int = 100
    base_supply_amount: int = 100
    base_supply_with_fees: int = 1000
    base_borrow_with_fees: int = -1000
    base_borrow_repay_amount: int = -999
    base_balance: int = 1010
    min_borrow: str = "<= -1000"


class WithdrawConfig(BaseModel):
    base_amount: int = 1000
    asset_amount: int = 3000
    collateral_amount: int = 100


class TransferConfig(BaseModel):
    base_amount: int = 1000
    asset_amount: int = 5000
    collateral_amount: int = 100
    base_balance_large: int = 10000
    borrow_amount_large: int = -10000


class LiquidationFactors(BaseModel):
    numerator: int = 90
    denominator: int = 90


class LiquidationConfig(BaseModel):
    base: AmountTiers = Field(
        default_factory=lambda: AmountTiers(tiny=10, small=100, standard=100000, large=1000)
    )
    asset: AmountTiers = Field(
        default_factory=lambda: AmountTiers(tiny=1, small=1, standard=200, large=5000)
    )
    factors: LiquidationFactors = Field(default_factory=LiquidationFactors)


class ScenarioConfig(BaseModel):
    common: CommonConfig = Field(default_factory=CommonConfig)
    supply: SupplyConfig = Field(default_factory=SupplyConfig)
    withdraw: WithdrawConfig = Field(default_factory=WithdrawConfig)
    transfer: TransferConfig = Field(default_factory=TransferConfig)
    liquidation: LiquidationConfig = Field(default_factory=LiquidationConfig)


NETWORK_OVERRIDES: dict[tuple[str, str], dict[str, Any]] = {
    ("mainnet", "wbtc"): {
        "liquidation": {"base": {"standard": 1000}, "asset": {"standard": 100}},
        "transfer": {"base_amount": 100, "asset_amount": 500},
        "withdraw": {"base_amount": 100, "asset_amount": 200},
        "common": {
            "timing": {"interest_seconds": 70},
            "base_amounts": {"large": 1000},
            "collateral_amounts": {"large": 500},
        },
    },
    ("mainnet", "wsteth"): {
        "liquidation": {
            "base": {"standard": 10000},
            "asset": {"standard": 100},
            "factors": {"denominator": 84},
        },
        "common": {"timing": {"interest_seconds": 70}},
    },
    ("mainnet", "weth"): {
        "liquidation": {"base": {"standard": 10000}, "factors": {"numerator": 60}},
    },
    ("mainnet", "usds"): {
        "liquidation": {"asset": {"standard": 100}},
    },
    ("mainnet", "usdt"): {
        "liquidation": {"asset": {"tiny": 100, "small": 100}},
        "supply": {"base_borrow_repay_amount": 999},
    },
    ("base", "usds"): {
        "supply": {"collateral_amount": 10},
        "withdraw": {"collateral_amount": 10},
        "transfer": {"collateral_amount": 10},
        "common": {"collateral_amounts": {"standard": 10, "large": 10}},
        "liquidation": {"base": {"standard": 100000}, "asset": {"standard": 50000}},
    },
    ("base", "weth"): {
        "liquidation": {"base": {"standard": 1000}},
    },
}


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any], path: str = "") -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        location = f"{path}.{key}" if path else key
        if key not in merged:
            raise ConfigValidationError(
                message=f"Unknown scenario config field: {location}",
                field=location,
                value=value,
            )
        if isinstance(value, dict) and isinstance(merged[key], dict):
            merged[key] = _deep_merge(merged[key], value, location)
        else:
            merged[key] = value
    return merged


def get_config_for_scenario(
    network: str | None = None,
    deployment: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> ScenarioConfig:
    """Build the scenario config for a deployment.

    Every call returns a new object, so scenario bodies may mutate it freely.

    Args:
        network: Network name, e.g. "mainnet".
        deployment: Deployment name on that network, e.g. "usdt".
        overrides: Extra nested overrides applied after the deployment table.

    Returns:
        The merged ScenarioConfig.
    """
    data = ScenarioConfig().model_dump()
    if network and deployment:
        data = _deep_merge(data, NETWORK_OVERRIDES.get((network, deployment), {}))
    if overrides:
        data = _deep_merge(data, overrides)
    return ScenarioConfig.model_validate(data)
