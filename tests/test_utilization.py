"""Tests for the utilization constraint."""

from __future__ import annotations

import pytest

from cometqa.constraints import UtilizationConstraint
from cometqa.constraints.utilization import BORROWER, SUPPLIER
from cometqa.errors import ApplyError, ConstraintCheckError, LedgerError, RequirementValidationError
from cometqa.scenario import ConcreteRequirement, OneOf, Requirement, apply_solutions
from cometqa.world import SimulatedCometContext

USDC = 10**6


async def _set_utilization(value: float, context: SimulatedCometContext) -> SimulatedCometContext:
    constraint = UtilizationConstraint()
    solutions = await constraint.solve(Requirement({"utilization": value}), context)
    context = await apply_solutions(solutions, context)
    await constraint.check(ConcreteRequirement({"utilization": value}), context)
    return context


class TestUtilizationConstraint:
    """Utilization is moved by borrowing or supplying base."""

    @pytest.mark.asyncio
    async def test_seeds_empty_market(self, context: SimulatedCometContext) -> None:
        ctx = await _set_utilization(0.5, context)

        assert await ctx.total_supply() == 1_000_000 * USDC
        assert await ctx.total_borrow() == 500_000 * USDC
        assert await ctx.base_balance_of(BORROWER) == -500_000 * USDC
        assert await ctx.get_utilization() == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_zero_on_empty_market_is_noop(self, context: SimulatedCometContext) -> None:
        ctx = await _set_utilization(0, context)
        assert await ctx.total_supply() == 0

    @pytest.mark.asyncio
    async def test_lowers_utilization_by_supplying(self, context: SimulatedCometContext) -> None:
        ctx = await _set_utilization(0.8, context)
        ctx = await _set_utilization(0.4, ctx)

        assert await ctx.total_borrow() == 800_000 * USDC
        assert await ctx.total_supply() == 2_000_000 * USDC
        assert await ctx.base_balance_of(SUPPLIER) == 2_000_000 * USDC

    @pytest.mark.asyncio
    async def test_raises_utilization_of_existing_market(self, context: SimulatedCometContext) -> None:
        ctx = await _set_utilization(0.25, context)
        ctx = await _set_utilization(0.75, ctx)
        assert await ctx.get_utilization() == pytest.approx(0.75, abs=1e-5)

    @pytest.mark.asyncio
    async def test_cannot_lower_to_zero_with_borrows(self, context: SimulatedCometContext) -> None:
        ctx = await _set_utilization(0.5, context)
        solutions = await UtilizationConstraint().solve(Requirement({"utilization": 0}), ctx)
        with pytest.raises(ApplyError) as exc_info:
            await apply_solutions(solutions, ctx)
        assert isinstance(exc_info.value.cause, LedgerError)

    @pytest.mark.asyncio
    async def test_fuzzed_values_each_get_a_solution(self, context: SimulatedCometContext) -> None:
        solutions = await UtilizationConstraint().solve(
            Requirement({"utilization": OneOf([0.1, 0.9])}), context
        )
        assert [s.name for s in solutions] == ["utilization(0.1)", "utilization(0.9)"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [1, 1.5, -0.1, "0.5", True])
    async def test_rejects_out_of_range(self, value: object, context: SimulatedCometContext) -> None:
        with pytest.raises(RequirementValidationError):
            await UtilizationConstraint().solve(Requirement({"utilization": value}), context)

    @pytest.mark.asyncio
    async def test_check_detects_mismatch(self, context: SimulatedCometContext) -> None:
        with pytest.raises(ConstraintCheckError):
            await UtilizationConstraint().check(ConcreteRequirement({"utilization": 0.3}), context)
