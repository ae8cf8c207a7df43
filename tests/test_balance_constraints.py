"""Tests for amount parsing and the balance, price, pause and supply cap constraints."""

from __future__ import annotations

from decimal import Decimal

import pytest

from cometqa.constraints import (
    CometBalanceConstraint,
    PauseConstraint,
    PriceConstraint,
    SupplyCapConstraint,
    TokenBalanceConstraint,
)
from cometqa.constraints.amounts import Comparison, parse_holdings, to_units
from cometqa.errors import ConstraintCheckError, RequirementValidationError
from cometqa.scenario import ConcreteRequirement, Requirement, apply_solutions
from cometqa.world import COMET, SimulatedCometContext

USDC = 10**6
WETH = 10**18


async def _setup(constraint, requirement: dict, context: SimulatedCometContext) -> SimulatedCometContext:
    solutions = await constraint.solve(Requirement(requirement), context)
    context = await apply_solutions(solutions, context)
    await constraint.check(ConcreteRequirement(requirement), context)
    return context


# =============================================================================
# Amounts
# =============================================================================


class TestComparison:
    """Whole-token amount comparisons."""

    def test_number_is_exact(self) -> None:
        assert Comparison.parse(100) == Comparison("==", Decimal(100))

    @pytest.mark.parametrize(
        "text,op,amount",
        [
            (">= 1000", ">=", "1000"),
            ("<= -1000", "<=", "-1000"),
            ("== 0n", "==", "0"),
            ("> 1.5", ">", "1.5"),
            ("<10", "<", "10"),
        ],
    )
    def test_parse_strings(self, text: str, op: str, amount: str) -> None:
        comparison = Comparison.parse(text)
        assert comparison.op == op
        assert comparison.amount == Decimal(amount)

    @pytest.mark.parametrize("value", [True, "about 10", ">= ten", None, [1]])
    def test_rejects_invalid(self, value: object) -> None:
        with pytest.raises(RequirementValidationError):
            Comparison.parse(value, "token_balances.albert.$base")

    def test_to_units_truncates(self) -> None:
        assert to_units(Decimal("1.5"), USDC) == 1_500_000
        assert to_units(Decimal("0.0000001"), USDC) == 0

    def test_target_keeps_satisfying_value(self) -> None:
        assert Comparison.parse(">= 1000").target(2000 * USDC, USDC) == 2000 * USDC

    def test_target_moves_to_nearest_bound(self) -> None:
        assert Comparison.parse(">= 1000").target(0, USDC) == 1000 * USDC
        assert Comparison.parse("> 1000").target(0, USDC) == 1000 * USDC + 1
        assert Comparison.parse("< 0").target(0, USDC) == -1
        assert Comparison.parse(5).target(0, USDC) == 5 * USDC

    def test_parse_holdings(self) -> None:
        holdings = parse_holdings({"albert": {"$base": 10, "$asset0": ">= 1"}}, "comet_balances")
        assert [(a, s) for a, s, _ in holdings] == [("albert", "$base"), ("albert", "$asset0")]

    def test_parse_holdings_rejects_flat_mapping(self) -> None:
        with pytest.raises(RequirementValidationError):
            parse_holdings({"albert": 10}, "token_balances")


# =============================================================================
# Wallet balances
# =============================================================================


class TestTokenBalanceConstraint:
    """token_balances sets wallet balances."""

    @pytest.mark.asyncio
    async def test_sets_exact_balance(self, context: SimulatedCometContext) -> None:
        ctx = await _setup(TokenBalanceConstraint(), {"token_balances": {"albert": {"$base": 100}}}, context)
        assert await ctx.balance_of("albert", "USDC") == 100 * USDC

    @pytest.mark.asyncio
    async def test_comet_alias(self, context: SimulatedCometContext) -> None:
        ctx = await _setup(
            TokenBalanceConstraint(), {"token_balances": {"$comet": {"$base": ">= 1000"}}}, context
        )
        assert context.chain.balance_of(COMET, "USDC") == 1000 * USDC
        assert await ctx.balance_of("$comet", "$base") == 1000 * USDC

    @pytest.mark.asyncio
    async def test_satisfied_comparison_leaves_balance(self, context: SimulatedCometContext) -> None:
        await context.set_balance("betty", "WETH", 7 * WETH)
        ctx = await _setup(TokenBalanceConstraint(), {"token_balances": {"betty": {"$asset1": ">= 5"}}}, context)
        assert await ctx.balance_of("betty", "WETH") == 7 * WETH

    @pytest.mark.asyncio
    async def test_check_reports_mismatch(self, context: SimulatedCometContext) -> None:
        with pytest.raises(ConstraintCheckError):
            await TokenBalanceConstraint().check(
                ConcreteRequirement({"token_balances": {"albert": {"$base": ">= 1"}}}), context
            )


# =============================================================================
# Protocol balances
# =============================================================================


class TestCometBalanceConstraint:
    """comet_balances sets collateral and signed base principal."""

    @pytest.mark.asyncio
    async def test_supplies_collateral(self, context: SimulatedCometContext) -> None:
        ctx = await _setup(CometBalanceConstraint(), {"comet_balances": {"albert": {"$asset1": 2}}}, context)
        assert await ctx.collateral_balance_of("albert", "WETH") == 2 * WETH

    @pytest.mark.asyncio
    async def test_supplies_base(self, context: SimulatedCometContext) -> None:
        ctx = await _setup(CometBalanceConstraint(), {"comet_balances": {"albert": {"$base": 500}}}, context)
        assert await ctx.base_balance_of("albert") == 500 * USDC
        assert await ctx.total_supply() == 500 * USDC

    @pytest.mark.asyncio
    async def test_borrow_sources_collateral(self, context: SimulatedCometContext) -> None:
        ctx = await _setup(CometBalanceConstraint(), {"comet_balances": {"betty": {"$base": -1000}}}, context)

        assert await ctx.base_balance_of("betty") == -1000 * USDC
        assert await ctx.is_borrow_collateralized("betty")
        assert await ctx.collateral_balance_of("betty", "COMP") > 0
        assert await ctx.balance_of("betty", "USDC") == 1000 * USDC

    @pytest.mark.asyncio
    async def test_borrow_uses_unpinned_asset(self, context: SimulatedCometContext) -> None:
        requirement = {"comet_balances": {"betty": {"$asset0": 0, "$base": "<= -1000"}}}
        ctx = await _setup(CometBalanceConstraint(), requirement, context)

        assert await ctx.collateral_balance_of("betty", "COMP") == 0
        assert await ctx.collateral_balance_of("betty", "WETH") > 0
        assert await ctx.base_balance_of("betty") == -1000 * USDC

    @pytest.mark.asyncio
    async def test_borrow_with_explicit_collateral(self, context: SimulatedCometContext) -> None:
        requirement = {"comet_balances": {"albert": {"$asset1": 1, "$base": -1000}}}
        ctx = await _setup(CometBalanceConstraint(), requirement, context)

        assert await ctx.collateral_balance_of("albert", "WETH") == WETH
        assert await ctx.base_balance_of("albert") == -1000 * USDC

    @pytest.mark.asyncio
    async def test_withdraws_excess_collateral(self, context: SimulatedCometContext) -> None:
        await context.source_tokens("albert", "WETH", 5 * WETH)
        await context.supply("albert", "WETH", 5 * WETH)

        ctx = await _setup(CometBalanceConstraint(), {"comet_balances": {"albert": {"$asset1": 2}}}, context)

        assert await ctx.collateral_balance_of("albert", "WETH") == 2 * WETH
        assert await ctx.balance_of("albert", "WETH") == 3 * WETH


# =============================================================================
# Prices, pause flags and supply caps
# =============================================================================


class TestPriceConstraint:
    """prices sets 8-decimal feed answers."""

    @pytest.mark.asyncio
    async def test_sets_prices(self, context: SimulatedCometContext) -> None:
        ctx = await _setup(PriceConstraint(), {"prices": {"$base": 1, "WETH": "1500.5"}}, context)
        assert await ctx.get_price("USDC") == 10**8
        assert await ctx.get_price("WETH") == 150_050_000_000

    @pytest.mark.asyncio
    async def test_rejects_non_positive(self, context: SimulatedCometContext) -> None:
        with pytest.raises(RequirementValidationError):
            await PriceConstraint().solve(Requirement({"prices": {"$base": 0}}), context)


class TestPauseConstraint:
    """pause merges flags over the current ones."""

    @pytest.mark.asyncio
    async def test_sets_named_flags_only(self, context: SimulatedCometContext) -> None:
        await context.pause(withdraw_paused=True)
        ctx = await _setup(PauseConstraint(), {"pause": {"supply_paused": True}}, context)
        flags = await ctx.pause_flags()
        assert flags["supply_paused"] is True
        assert flags["withdraw_paused"] is True
        assert flags["transfer_paused"] is False

    @pytest.mark.asyncio
    async def test_rejects_non_bool(self, context: SimulatedCometContext) -> None:
        with pytest.raises(RequirementValidationError):
            await PauseConstraint().solve(Requirement({"pause": {"supply_paused": "yes"}}), context)


class TestSupplyCapConstraint:
    """supply_caps upgrades asset_configs."""

    @pytest.mark.asyncio
    async def test_sets_cap(self, context: SimulatedCometContext) -> None:
        ctx = await _setup(SupplyCapConstraint(), {"supply_caps": {"$asset0": 10}}, context)
        configuration = await ctx.get_configuration()
        caps = {entry["asset"]: entry["supply_cap"] for entry in configuration["asset_configs"]}
        assert caps["COMP"] == 10 * 10**18
        assert caps["WETH"] == 350_000 * 10**18
        assert ctx.version == 1

    @pytest.mark.asyncio
    async def test_touches_asset_configs(self, context: SimulatedCometContext) -> None:
        solutions = await SupplyCapConstraint().solve(Requirement({"supply_caps": {"WBTC": 1}}), context)
        assert solutions[0].touches == frozenset({"asset_configs"})
